"""Error types raised by the stage package pipeline."""


class StagePackError(Exception):
    """Base class for all pipeline errors."""
    pass


class NotFoundError(StagePackError, FileNotFoundError):
    """A template archive or required input does not exist."""
    pass


class MalformedArchiveError(StagePackError):
    """The source container is corrupt or cannot be decoded."""
    pass


class InvariantViolationError(StagePackError):
    """The tree cannot be written as a compliant container."""
    pass


class ArchiveIOError(StagePackError, OSError):
    """Reading a payload or writing the output failed."""
    pass


class ConfigError(StagePackError):
    """Invalid stage configuration."""
    pass
