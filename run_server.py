#!/usr/bin/env python
"""
Server Entry Point

Starts the dashboard API with Uvicorn.
Usage:
    Development:  python run_server.py --dev
    Production:   python run_server.py --workers 2
"""

import argparse
import os


def run_dev_server(port: int) -> None:
    """Run development server with auto-reload."""
    import uvicorn

    uvicorn.run(
        "sales_dashboard.main:app",
        host="0.0.0.0",
        port=port,
        reload=True,
        reload_dirs=["sales_dashboard"],
        log_level="debug",
        access_log=True,
    )


def run_prod_server(port: int, workers: int) -> None:
    """Run production server with Uvicorn directly."""
    import uvicorn

    # Each worker runs its own coordinator; they meet in the shared cache
    uvicorn.run(
        "sales_dashboard.main:app",
        host="0.0.0.0",
        port=port,
        workers=workers,
        log_level=os.getenv("LOG_LEVEL", "info").lower(),
        access_log=True,
        proxy_headers=True,
        forwarded_allow_ips="*",
        server_header=False,
    )


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Sales Performance Dashboard API Server")
    parser.add_argument("--dev", action="store_true", help="Run in development mode with auto-reload")
    parser.add_argument("--port", type=int, default=int(os.getenv("PORT", 8000)), help="Port to run on")
    parser.add_argument("--workers", type=int, default=int(os.getenv("WORKERS", 1)), help="Worker processes")

    args = parser.parse_args()

    if args.dev:
        print("Starting development server...")
        run_dev_server(args.port)
    else:
        print("Starting production server with Uvicorn...")
        run_prod_server(args.port, args.workers)
