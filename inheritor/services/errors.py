"""
Inheritor error taxonomy.

Store and ledger adapters raise the low-level errors; the executor and the
scheduler translate ledger failures into the stage-specific ones so the logs
say which step of a cycle went wrong.
"""

from typing import Any


class InheritorError(Exception):
    """Base class for every error raised by inheritor."""


# --- Activity store ---

class StoreUnavailable(InheritorError):
    """The activity store could not be reached. Aborts the current tick."""


class NotFound(InheritorError):
    """No activity record exists for the wallet."""

    def __init__(self, wallet_id: str):
        self.wallet_id = wallet_id
        super().__init__(f"No activity record for {wallet_id}")


class AlreadySettled(InheritorError):
    """The wallet is SETTLED; upserts and repeated settles are refused."""

    def __init__(self, wallet_id: str):
        self.wallet_id = wallet_id
        super().__init__(f"Wallet {wallet_id} is already settled")


class InvalidWallet(InheritorError):
    """The wallet identifier is missing or not a valid address."""


# --- Ledger ---

class LedgerError(InheritorError):
    """Any failure talking to the ledger."""


class LedgerUnavailable(LedgerError):
    """Transport-level failure: node unreachable, timeout, bad HTTP status."""


class LedgerRejected(LedgerError):
    """The node answered with a JSON-RPC error (revert, bad params, ...)."""

    def __init__(self, code: int, message: str, data: Any = None):
        self.code = code
        self.rpc_message = message
        self.data = data
        super().__init__(f"Ledger RPC error {code}: {message}")


# --- Cycle stages ---

class ThresholdFetchFailed(InheritorError):
    """The inactivity threshold could not be read. Aborts the current tick."""


class EstimationFailed(InheritorError):
    """Gas estimation for one wallet failed. The wallet stays ACTIVE."""


class SubmissionFailed(InheritorError):
    """The disbursement transaction for one wallet was not accepted."""
