"""
pbirag - HTTP Server Launcher
==============================
CLI entry point that:
    1. Loads settings (fail-fast on a missing ``GOOGLE_API_KEY``).
    2. Starts uvicorn on ``pbirag.src.main:app``.

Usage:
    pbirag-serve                      # HOST / PORT from settings
    pbirag-serve --port 8080 --reload
"""

from __future__ import annotations

import argparse
import sys


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="pbirag-serve", description="Run the PowerBI RAG chat API.")
    parser.add_argument("--host", default=None, help="Bind address (default: settings.HOST).")
    parser.add_argument("--port", type=int, default=None, help="Port (default: settings.PORT).")
    parser.add_argument("--reload", action="store_true", default=False, help="Auto-reload on code changes (development only).")
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> None:
    args = _parse_args(argv)

    try:
        from pbirag.config.settings import settings
    except Exception as exc:
        print("\n[FATAL] Configuration error — check your .env file:\n")
        print(f"  {exc}")
        print()
        sys.exit(1)

    import uvicorn

    from pbirag.src.utils.logger import get_logger

    logger = get_logger(__name__)
    host = args.host or settings.HOST
    port = args.port or settings.PORT
    logger.info("Starting PowerBI RAG Server on %s:%d (health: http://localhost:%d%s/health)", host, port, port, settings.API_PREFIX)

    uvicorn.run("pbirag.src.main:app", host=host, port=port, reload=args.reload)


if __name__ == "__main__":
    main()
