"""
Inheritor - inactivity detection and fund disbursement for registered wallets.
"""

__version__ = "0.3.0"
