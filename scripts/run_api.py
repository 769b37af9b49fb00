#!/usr/bin/env python3
"""
Inheritor API Server - activity ingress, registration and keeper status.

Usage:
    python scripts/run_api.py                    # Development (auto-reload)
    python scripts/run_api.py --prod             # Production mode
    python scripts/run_api.py --port 5000        # Custom port
"""

import argparse
import sys
from pathlib import Path

ROOT_DIR = Path(__file__).parent.parent.absolute()
sys.path.insert(0, str(ROOT_DIR))


def main():
    from inheritor.config.settings import settings

    parser = argparse.ArgumentParser(description="Inheritor API Server")
    parser.add_argument("--host", default=settings.api_host, help=f"Host (default: {settings.api_host})")
    parser.add_argument("--port", type=int, default=settings.api_port, help=f"Port (default: {settings.api_port})")
    parser.add_argument("--prod", action="store_true", help="Production mode")

    args = parser.parse_args()

    print("=" * 60)
    print("    Inheritor API")
    print(f"    Host: {args.host}")
    print(f"    Port: {args.port}")
    print(f"    Mode: {'Production' if args.prod else 'Development'}")
    print("=" * 60)

    import uvicorn

    # One worker: the app owns the only scheduler instance.
    uvicorn.run(
        "inheritor.api.app:app",
        host=args.host,
        port=args.port,
        reload=not args.prod,
        workers=1,
        log_level="info",
    )


if __name__ == "__main__":
    main()
