"""Typed failures raised by the engine and mapped to responses by the routes."""


class EngineError(Exception):
    """Base class for engine failures the caller is expected to handle."""


class LaunchError(EngineError):
    pass


class GameNotFound(LaunchError):
    pass


class AlreadyRunning(LaunchError):
    pass


class NotRunning(LaunchError):
    pass


class NotInstalled(LaunchError):
    pass


class RuntimeNotFound(LaunchError):
    pass


class RuntimeNotConfigured(RuntimeNotFound):
    """No runtime chosen for the launch, the game, or in settings."""


class SpawnFailed(LaunchError):
    pass


class InvalidPath(EngineError, ValueError):
    pass


class NoExecutableFound(EngineError, ValueError):
    pass


class InvalidSettings(EngineError, ValueError):
    pass


class InvalidGameData(EngineError, ValueError):
    """A game field has the wrong type or an empty value."""
