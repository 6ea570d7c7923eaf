"""
Minimal scheduler host.

Runs one orchestration cycle per interval until interrupted:
    python -m kinesis_ingestion --config bridge.json
    python -m kinesis_ingestion --config bridge.json --once
"""

import argparse
import asyncio
import logging
import sys
from pathlib import Path

from .config import BridgeConfig
from .errors import ConfigError
from .orchestrator import StreamOrchestrator

logger = logging.getLogger("kinesis_ingestion")

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


async def run_bridge(config: BridgeConfig, once: bool = False):
    orchestrator = StreamOrchestrator()
    orchestrator.setup(config)
    try:
        while True:
            cycle = await orchestrator.poll_once()
            # The next cycle must not start while this one still owns the shards
            results = await orchestrator.drain()
            failed = sum(1 for r in results if not r.success)
            logger.info(f"{cycle.cycle_id}: {len(results)} shards polled, {failed} failed")
            if once:
                break
            await asyncio.sleep(config.poll_interval_seconds)
    finally:
        await orchestrator.close()


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Kinesis to PostHog ingestion bridge")
    parser.add_argument("--config", type=Path, help="JSON config file (env vars override)")
    parser.add_argument("--once", action="store_true", help="Run a single cycle and exit (for Cron/CI).")
    parser.add_argument(
        "--log-level",
        default="INFO",
        type=str.upper,
        choices=LOG_LEVELS,
        help="Logging level"
    )
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=args.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s"
    )

    try:
        config = BridgeConfig.load(args.config)
    except ConfigError as e:
        logger.error(f"Invalid configuration: {e}")
        return 2

    try:
        asyncio.run(run_bridge(config, once=args.once))
    except KeyboardInterrupt:
        logger.info("Bridge stopped.")
    return 0


if __name__ == "__main__":
    sys.exit(main())
