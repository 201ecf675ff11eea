"""Custom exceptions for Egile Plugins."""


class EgilePluginsError(Exception):
    """Base exception for all Egile Plugins errors."""

    pass


class ConfigurationError(EgilePluginsError):
    """Raised when there is a configuration issue."""

    pass


class ValidationError(EgilePluginsError, TypeError):
    """Raised when a plugin config, option or invocation argument is malformed."""

    pass


class NoTargetError(EgilePluginsError):
    """Raised when a dispatch matched no enabled plugin and `throw_no_plugin` is set."""

    def __init__(self, message: str = "PluginManager failed to find any target plugins."):
        super().__init__(message)


class NoMethodError(EgilePluginsError):
    """Raised when no plugin method was invoked and `throw_no_method` is set."""

    def __init__(self, method_name: str):
        self.method_name = method_name
        super().__init__(f"PluginManager failed to invoke '{method_name}'.")


class LoadError(EgilePluginsError):
    """Raised when a plugin target cannot be resolved to a capability object."""

    def __init__(self, plugin_name: str, message: str):
        self.plugin_name = plugin_name
        super().__init__(f"Plugin '{plugin_name}': {message}")


class ManagerDestroyedError(EgilePluginsError):
    """Raised when a destroyed PluginManager is used."""

    def __init__(self) -> None:
        super().__init__("This PluginManager instance has been destroyed.")


class ProxyDestroyedError(EgilePluginsError):
    """Raised when a destroyed EventProxy is used."""

    def __init__(self) -> None:
        super().__init__("This EventProxy instance has been destroyed.")
