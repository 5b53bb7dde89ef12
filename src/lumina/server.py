"""Uvicorn startup for Lumina."""

from __future__ import annotations

import argparse
import os
import sys


def main() -> None:
    """Start the Lumina server."""
    parser = argparse.ArgumentParser(description="Lumina Server")
    parser.add_argument("--host", default="127.0.0.1", help="Bind host (default: 127.0.0.1)")
    parser.add_argument("--port", type=int, default=8742, help="Bind port (default: 8742)")
    parser.add_argument("--reload", action="store_true", help="Enable auto-reload for development")
    parser.add_argument("--data-dir", default=None, help="Index data directory (default: ~/.lumina)")
    parser.add_argument(
        "--cors-origins",
        default=None,
        help="Comma-separated CORS origins (default: CORS disabled)",
    )
    args = parser.parse_args()

    try:
        import uvicorn
    except ImportError:
        print("uvicorn not installed. Run: pip install uvicorn[standard]", file=sys.stderr)
        sys.exit(1)

    # Store config in environment for the factory
    if args.data_dir:
        os.environ["LUMINA_DATA_DIR"] = args.data_dir
    if args.cors_origins:
        os.environ["LUMINA_CORS_ORIGINS"] = args.cors_origins

    uvicorn.run(
        "lumina.app:create_app",
        factory=True,
        host=args.host,
        port=args.port,
        reload=args.reload,
        log_level="info",
    )


if __name__ == "__main__":
    main()
