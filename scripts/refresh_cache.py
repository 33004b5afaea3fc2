"""
One-shot Cache Refresh

Recomputes the performance result from the configured sources and
publishes it to the shared and local caches, the same way a manual refresh
from the dashboard does.

Usage:
    python scripts/refresh_cache.py
    python scripts/refresh_cache.py --no-remote --log-level DEBUG
"""

import argparse
import asyncio
import sys

import structlog

from sales_dashboard.config import get_settings, load_dashboard_config
from sales_dashboard.config.logging import configure_logging
from sales_dashboard.serving.cache import close_redis, init_redis
from sales_dashboard.serving.refresh import RefreshFailedError, RefreshTrigger, create_coordinator
from sales_dashboard.serving.strategies import RemoteComputeStrategy

logger = structlog.get_logger(__name__)


async def run(use_remote: bool) -> int:
    settings = get_settings()
    config = load_dashboard_config(settings)

    try:
        await init_redis()
    except Exception as e:
        logger.warning("Redis unavailable, shared cache will not be updated", error=str(e))

    coordinator = create_coordinator(settings, config)
    if not use_remote:
        coordinator.strategies = [
            s for s in coordinator.strategies if not isinstance(s, RemoteComputeStrategy)
        ]

    try:
        snapshot = await coordinator.refresh(RefreshTrigger.MANUAL)
    except RefreshFailedError as e:
        print(f"Refresh failed: {e}", file=sys.stderr)
        return 1
    finally:
        await close_redis()

    summary = snapshot.result.summary
    print(f"Customers:        {summary.customer_count}")
    print(f"Total target:     {summary.total_target:,.0f}")
    print(f"Total achieved:   {summary.total_achieved:,.0f}")
    print(f"Overall progress: {summary.overall_progress:.1f}%")
    print(f"Computed by:      {snapshot.source}")
    return 0


def main() -> None:
    parser = argparse.ArgumentParser(description="Recompute and publish the performance result")
    parser.add_argument("--no-remote", action="store_true", help="Skip the remote compute endpoint")
    parser.add_argument("--log-level", default=None, help="Override LOG_LEVEL")
    args = parser.parse_args()

    configure_logging(args.log_level)
    sys.exit(asyncio.run(run(use_remote=not args.no_remote)))


if __name__ == "__main__":
    main()
