"""
Plugin loader for automatic discovery and registration of transform classes.
"""

import importlib
import inspect
import logging
import pathlib
from types import ModuleType
from typing import Dict, Type

from .interfaces import Transform

logger = logging.getLogger(__name__)

# Plugin directory relative to this file
PLUGIN_DIR = pathlib.Path(__file__).parent.parent / "plugins"

# Global registry of discovered transform classes
_REGISTRY: Dict[str, Type[Transform]] = {}


def _load_module(path: pathlib.Path) -> ModuleType:
    """Import a plugin module by its dotted name, e.g. plugins.token_metadata.watcher."""
    relative = path.relative_to(PLUGIN_DIR).with_suffix("")
    full_name = ".".join(("plugins",) + relative.parts)
    mod = importlib.import_module(full_name)
    logger.debug(f"Loaded module: {full_name}")
    return mod


def refresh_registry() -> None:
    """Scan all Python files in plugins/ and register concrete Transform subclasses."""
    _REGISTRY.clear()

    if not PLUGIN_DIR.exists():
        logger.warning(f"Plugin directory does not exist: {PLUGIN_DIR}")
        return

    module_count = 0

    for py_file in sorted(PLUGIN_DIR.rglob("*.py")):
        # Skip __init__.py and private helpers
        if py_file.name.startswith("_"):
            continue

        try:
            mod = _load_module(py_file)
        except Exception as e:
            logger.error(f"Failed to load module {py_file}: {e}")
            continue
        module_count += 1

        plugin_name = py_file.parent.name
        for _, obj in inspect.getmembers(mod, inspect.isclass):
            if (
                issubclass(obj, Transform)
                and not inspect.isabstract(obj)
                and obj.__module__ == mod.__name__
            ):
                # Register with key: plugin_name.ClassName
                key = f"{plugin_name}.{obj.__name__}"
                _REGISTRY[key] = obj
                logger.debug(f"Registered transform: {key}")

    logger.info(f"Plugin discovery complete: {module_count} modules, {len(_REGISTRY)} transforms")


def get(class_path: str) -> Type[Transform]:
    """Get a transform class by its plugin path.

    Args:
        class_path: Format 'plugin_name.ClassName' (e.g., 'token_metadata.MetadataUpdateWatcher')

    Raises:
        KeyError: If the class is not found
    """
    if not _REGISTRY:
        refresh_registry()

    if class_path not in _REGISTRY:
        available = sorted(_REGISTRY)
        raise KeyError(f"Transform '{class_path}' not found. Available: {available}")

    return _REGISTRY[class_path]


def list_available() -> Dict[str, Type[Transform]]:
    """Get a copy of all registered transforms."""
    if not _REGISTRY:
        refresh_registry()
    return _REGISTRY.copy()
