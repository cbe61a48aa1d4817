"""
main.py: Server launcher and entry point.

Starts the booking API and, optionally, the Streamlit staff console:

    python main.py
    python main.py --with-console

This file does NOT contain application logic. See app.py for the FastAPI
application, service wiring, and startup sequence.

Direct uvicorn usage:
    uvicorn app:app --reload
"""

from __future__ import annotations

import argparse
import subprocess
import sys
from pathlib import Path

import uvicorn


HOST = "127.0.0.1"
PORT = 8000
CONSOLE_SCRIPT = Path(__file__).resolve().parent / "dashboard" / "app.py"


def _start_console() -> subprocess.Popen:
    """Launch the Streamlit console as a child process pointed at this server."""
    return subprocess.Popen(
        [sys.executable, "-m", "streamlit", "run", str(CONSOLE_SCRIPT)],
    )


def main() -> None:
    """Start the StayHub booking API."""
    parser = argparse.ArgumentParser(description="Run the StayHub booking API")
    parser.add_argument("--host", default=HOST)
    parser.add_argument("--port", type=int, default=PORT)
    parser.add_argument("--reload", action="store_true", help="hot-reload on file changes")
    parser.add_argument(
        "--with-console",
        action="store_true",
        help="also start the Streamlit staff console",
    )
    args = parser.parse_args()

    print("=" * 60)
    print("  StayHub: Availability & Pricing Engine")
    print("=" * 60)
    print(f"  Server   : http://{args.host}:{args.port}")
    print(f"  API docs : http://{args.host}:{args.port}/docs")
    print("=" * 60)
    print("  Press CTRL+C to stop\n")

    console = _start_console() if args.with_console else None
    try:
        uvicorn.run(
            "app:app",
            host=args.host,
            port=args.port,
            reload=args.reload,
            log_level="info",
        )
    finally:
        if console is not None:
            console.terminate()


if __name__ == "__main__":
    main()
