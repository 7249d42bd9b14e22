"""
Main entry point for the token metadata watcher.
"""

import asyncio
import logging
import os
import signal
import sys

from dotenv import load_dotenv

# Add project root to PYTHONPATH so imports work when running this script directly
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from core.pipeline_orchestrator import run_all, load_pipelines_config
from core.plugin_loader import refresh_registry, list_available


def setup_logging() -> None:
    logging.basicConfig(
        level=os.getenv("LOG_LEVEL", "INFO").upper(),
        format="%(asctime)s | %(name)s | %(levelname)s | %(message)s"
    )


async def main():
    """Discover plugins, load pipelines and run them until done or signalled."""
    load_dotenv()
    setup_logging()
    logger = logging.getLogger(__name__)

    logger.info("Starting token metadata watcher...")

    refresh_registry()
    available_transforms = list_available()
    logger.info(f"Discovered {len(available_transforms)} transform classes:")
    for name in sorted(available_transforms):
        logger.info(f"  - {name}")

    config_file = os.getenv("PIPELINES_CONFIG", "pipelines.yml")
    pipelines_cfg = load_pipelines_config(config_file)
    if not pipelines_cfg:
        logger.error(f"No pipelines configured in {config_file}. Exiting.")
        return

    logger.info(f"Loaded {len(pipelines_cfg)} pipeline(s)")
    for pipeline in pipelines_cfg:
        name = pipeline.get("name", "unnamed")
        chain_len = len(pipeline.get("chain", []))
        logger.info(f"  - {name}: {chain_len} stages")

    # Setup graceful shutdown
    stop_event = asyncio.Event()

    def signal_handler():
        logger.info("Received shutdown signal")
        stop_event.set()

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(sig, signal_handler)

    pipeline_task = asyncio.create_task(run_all(pipelines_cfg))
    stop_task = asyncio.create_task(stop_event.wait())

    try:
        await asyncio.wait([stop_task, pipeline_task], return_when=asyncio.FIRST_COMPLETED)
    finally:
        stop_task.cancel()
        if not pipeline_task.done():
            logger.info("Cancelling pipelines...")
            pipeline_task.cancel()
            try:
                await pipeline_task
            except asyncio.CancelledError:
                pass

        logger.info("Shutdown complete")


if __name__ == "__main__":
    asyncio.run(main())
