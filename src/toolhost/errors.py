"""Exceptions raised inside the tool host."""


class ToolhostError(Exception):
    """Base class for tool host errors."""


class MissingSecretError(ToolhostError):
    """A secret mount could not be resolved to a value."""

    def __init__(self, provider: str):
        self.provider = provider
        super().__init__(f"Missing secret for {provider}.")


class PluginLoadError(ToolhostError):
    """A plugin handler module could not be imported."""
