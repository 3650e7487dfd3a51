"""
Run the bug tracker API with uvicorn.
"""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

import uvicorn

from bugtracker.config import get_settings

logger = logging.getLogger(__name__)


def main() -> int:
    parser = argparse.ArgumentParser(description="Bug tracker API server")
    parser.add_argument(
        "--host",
        type=str,
        default="127.0.0.1",
        help="Interface to bind",
    )
    parser.add_argument(
        "-p",
        "--port",
        type=int,
        default=5000,
        help="Port to listen on",
    )
    parser.add_argument(
        "--reload",
        action="store_true",
        help="Restart on code changes (development only)",
    )
    args = parser.parse_args()

    settings = get_settings()
    logger.info(
        "Starting bug tracker API on %s:%d (environment=%s)",
        args.host,
        args.port,
        settings.environment,
    )
    uvicorn.run(
        "bugtracker.app:app",
        host=args.host,
        port=args.port,
        reload=args.reload,
        log_level=settings.effective_log_level.lower(),
    )
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
