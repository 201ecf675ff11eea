"""Plugin target resolution and discovery for Egile Plugins."""

from __future__ import annotations

import hashlib
import importlib
import importlib.util
import logging
import sys
from importlib.metadata import entry_points
from pathlib import Path
from typing import Any, Protocol

from egile_plugins.config import get_config
from egile_plugins.entry import PluginConfig, PluginType
from egile_plugins.exceptions import LoadError

logger = logging.getLogger(__name__)


class PluginLoader(Protocol):
    """Resolves a plugin name or target string to a capability object."""

    def resolve(self, target: str) -> Any: ...


def is_path_target(target: str) -> bool:
    """Check whether a target designates a file or directory rather than a module."""
    return target.startswith((".", "/", "\\", "~")) or target.endswith(".py")


def target_type(target: str) -> PluginType:
    """Classify a target as a module or a path."""
    return PluginType.REQUIRE_PATH if is_path_target(target) else PluginType.REQUIRE_MODULE


def _split_attribute(target: str) -> tuple[str, str | None]:
    """Split 'location:attribute', leaving drive letters and plain targets alone."""
    location, sep, attribute = target.rpartition(":")
    if sep and location and attribute.isidentifier():
        return location, attribute
    return target, None


class ImportLoader:
    """
    Default loader backed by the import system.

    Targets take one of these forms:

    - `package.module`: the module itself is the capability object.
    - `package.module:attribute`: an attribute of the module.
    - `./path/to/plugin.py` or `/abs/path/pkg` (optionally with `:attribute`):
      a file or package directory loaded from disk.

    A resolved class is instantiated without arguments.
    """

    def resolve(self, target: str) -> Any:
        """
        Resolve a target to a capability object.

        Args:
            target: The module or path string.

        Returns:
            The loaded capability object.

        Raises:
            LoadError: If the module, file or attribute cannot be loaded.
        """
        location, attribute = _split_attribute(target)
        try:
            if is_path_target(location):
                module = self._load_path(location)
            else:
                module = importlib.import_module(location)
        except LoadError:
            raise
        except Exception as e:
            raise LoadError(target, f"Failed to load: {e}") from e

        if attribute is None:
            return module

        value = getattr(module, attribute, None)
        if value is None:
            raise LoadError(
                target, f"Attribute '{attribute}' not found in '{location}'"
            )
        if isinstance(value, type):
            try:
                value = value()
            except Exception as e:
                raise LoadError(
                    target, f"Failed to instantiate '{attribute}': {e}"
                ) from e
        return value

    def _load_path(self, location: str) -> Any:
        path = Path(location).expanduser().resolve()
        if path.is_dir():
            path = path / "__init__.py"
        if not path.is_file():
            raise LoadError(location, f"No such file: {path}")

        digest = hashlib.sha1(str(path).encode("utf-8")).hexdigest()[:12]
        module_name = f"_egile_plugins_{path.stem}_{digest}"
        spec = importlib.util.spec_from_file_location(module_name, path)
        if spec is None or spec.loader is None:
            raise LoadError(location, f"Cannot import from {path}")

        module = importlib.util.module_from_spec(spec)
        sys.modules[module_name] = module
        try:
            spec.loader.exec_module(module)
        except BaseException:
            sys.modules.pop(module_name, None)
            raise
        return module


def discover_plugin_configs(group: str | None = None) -> list[PluginConfig]:
    """
    Discover installed plugins via entry points.

    Looks for plugins registered under the configured entry point group
    ('egile_plugins.plugins' by default) in installed packages.

    Args:
        group: Entry point group overriding the configured one.

    Returns:
        One PluginConfig per loadable entry point, ready for `add_all()`.

    Example:
        In a plugin package's pyproject.toml:
        ```toml
        [project.entry-points."egile_plugins.plugins"]
        my_plugin = "my_package.plugins:MyPlugin"
        ```

        Then in your code:
        ```python
        manager.add_all(discover_plugin_configs())
        ```
    """
    if group is None:
        group = get_config().entry_point_group

    configs: list[PluginConfig] = []
    for ep in entry_points(group=group):
        try:
            instance = ep.load()
            if isinstance(instance, type):
                instance = instance()
        except Exception as e:
            logger.warning("Failed to load plugin '%s': %s", ep.name, e)
            continue
        configs.append(PluginConfig(name=ep.name, target=ep.value, instance=instance))

    return configs
