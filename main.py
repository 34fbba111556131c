#!/usr/bin/env python
"""
parcellapse - parcel ingestion and offline capture queue.

Main entry point for the command line application.

Usage
-----
    uv run python main.py ingest parcels.zip --year 2026

or:
    python main.py queue list
"""

import sys


def main() -> int:
    """
    Main entry point for the parcellapse CLI.

    Returns
    -------
    int
        Exit code (0 for success, non-zero for error).
    """
    from loguru import logger

    from parcellapse.cli import app
    from parcellapse.log import configure_logging

    configure_logging("INFO")
    logger.debug("Starting parcellapse...")

    try:
        app(prog_name="parcellapse")
    except SystemExit as exc:
        return int(exc.code or 0)
    return 0


if __name__ == "__main__":
    sys.exit(main())
