"""
Pipeline orchestrator using the Transform chain pattern.

A pipeline is a source, the watcher and one or more sinks, declared in YAML::

    pipelines:
      mainnet:
        chain:
          - class: token_metadata.NodeEventFetcher
            kwargs: {url: "ws://localhost:3700/events"}
          - class: token_metadata.MetadataUpdateWatcher
          - class: token_metadata.RefreshQueueSink
            kwargs: {db_path: watcher.db}
"""

import asyncio
import logging
from contextlib import AsyncExitStack
from pathlib import Path
from typing import Any, AsyncIterator, Dict, List, Optional

import yaml

from .interfaces import Transform
from .plugin_loader import get as load_transform_class

logger = logging.getLogger(__name__)


async def _drain(stages: List[Transform]) -> int:
    """Execute a pipeline by connecting transform stages; returns items drained."""

    async def seed() -> AsyncIterator[None]:
        """Seed the pipeline with a single None value."""
        yield None

    stream: AsyncIterator[Any] = seed()
    drained = 0

    async with AsyncExitStack() as stack:
        # Stages holding sockets, sessions or connections are context managers
        for stage in stages:
            if hasattr(stage, "__aenter__"):
                await stack.enter_async_context(stage)

        for stage in stages:
            stream = stage(stream)

        # Sinks do the work; the tail of the chain is only counted
        async for _ in stream:
            drained += 1

    return drained


def build_stages(cfg: Dict[str, Any]) -> List[Transform]:
    """Instantiate every stage of a pipeline config; raises on bad config."""
    chain = cfg.get("chain")
    if not chain:
        raise ValueError("pipeline has no 'chain'")

    instances: List[Transform] = []
    for entry in chain:
        cls = load_transform_class(entry["class"])
        kwargs = entry.get("kwargs") or {}
        instances.append(cls(**kwargs))
    return instances


async def run_pipeline(cfg: Dict[str, Any]) -> Optional[int]:
    """Run a single pipeline from configuration.

    Returns the number of items that reached the end of the chain, or None
    when the pipeline could not be built or failed while running.
    """
    pipeline_name = cfg.get("name", "unnamed")

    try:
        stages = build_stages(cfg)
    except (KeyError, TypeError, ValueError) as e:
        logger.error(f"Pipeline {pipeline_name} misconfigured: {e}")
        return None

    try:
        logger.info(f"Starting pipeline: {pipeline_name}")
        drained = await _drain(stages)
        logger.info(f"Pipeline completed: {pipeline_name} ({drained} tasks)")
        return drained
    except asyncio.CancelledError:
        logger.info(f"Pipeline cancelled: {pipeline_name}")
        raise
    except Exception as e:
        logger.error(f"Pipeline {pipeline_name} failed: {e}", exc_info=True)
        return None


async def run_all(pipelines_cfg: List[Dict[str, Any]]) -> None:
    """Run all pipelines concurrently."""
    tasks = [
        asyncio.create_task(
            run_pipeline(pipeline_cfg),
            name=f"pipeline-{pipeline_cfg.get('name', 'unnamed')}",
        )
        for pipeline_cfg in pipelines_cfg
    ]

    # Wait for all pipelines to complete
    await asyncio.gather(*tasks, return_exceptions=True)


def load_pipelines_config(config_path: str = "pipelines.yml") -> List[Dict[str, Any]]:
    """Load pipeline configuration from YAML file."""
    path = Path(config_path)

    if not path.exists():
        logger.warning(f"Pipeline config file not found: {config_path}")
        return []

    with path.open() as f:
        data = yaml.safe_load(f) or {}

    if "pipelines" not in data:
        logger.error(f"No 'pipelines' key found in {config_path}")
        return []

    pipelines = data["pipelines"]

    # Convert dict format to list format
    if isinstance(pipelines, dict):
        result = []
        for name, config in pipelines.items():
            config = dict(config or {})
            config["name"] = name
            result.append(config)
        return result

    return pipelines
