#!/usr/bin/env python3
"""
Run the import API server.

Usage:
    python scripts/run_api.py
    python scripts/run_api.py --port 9000 --reload
"""

import argparse
import sys
from pathlib import Path

import uvicorn

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from config.settings import settings


def main():
    parser = argparse.ArgumentParser(description="Run the career import API")
    parser.add_argument("--host", default=settings.API_HOST, help="Bind address")
    parser.add_argument("--port", type=int, default=settings.API_PORT, help="Bind port")
    parser.add_argument("--reload", action="store_true", help="Reload on code changes")
    args = parser.parse_args()

    uvicorn.run(
        "career_import.api:app",
        host=args.host,
        port=args.port,
        reload=args.reload,
        log_level=settings.LOG_LEVEL.lower(),
    )


if __name__ == "__main__":
    main()
