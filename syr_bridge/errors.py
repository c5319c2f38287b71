"""Exceptions raised by the bridge."""


class SyrBridgeError(Exception):
    """Base class for all bridge errors."""


class ConfigError(SyrBridgeError):
    """Startup configuration is missing or invalid."""


class CommandParseError(SyrBridgeError, ValueError):
    """A command envelope is not well-formed or lacks the sc/d/c structure."""
