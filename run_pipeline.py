#!/usr/bin/env python3
"""
Run one pipeline from a config file, e.g. to replay history into the queue.
"""

import asyncio
import logging
import os
import sys

from dotenv import load_dotenv

# Add project root to PYTHONPATH
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from core.pipeline_orchestrator import run_pipeline, load_pipelines_config
from core.plugin_loader import refresh_registry
from main import setup_logging


async def run_specific_pipeline(config_file: str, pipeline_name: str) -> int:
    """Run a specific pipeline by name; returns a process exit code."""
    load_dotenv()
    setup_logging()
    logger = logging.getLogger(__name__)

    refresh_registry()

    pipelines_cfg = load_pipelines_config(config_file)
    if not pipelines_cfg:
        logger.error(f"No pipelines found in {config_file}")
        return 1

    target_pipeline = next((p for p in pipelines_cfg if p.get("name") == pipeline_name), None)
    if not target_pipeline:
        available = [p.get("name", "unnamed") for p in pipelines_cfg]
        logger.error(f"Pipeline '{pipeline_name}' not found in {config_file}. Available: {available}")
        return 1

    drained = await run_pipeline(target_pipeline)
    return 0 if drained is not None else 1


if __name__ == "__main__":
    if len(sys.argv) != 3:
        print("Usage: python run_pipeline.py <config_file> <pipeline_name>")
        print("Example: python run_pipeline.py pipelines.yml replay_from_api")
        sys.exit(1)

    sys.exit(asyncio.run(run_specific_pipeline(sys.argv[1], sys.argv[2])))
