class RenderError(Exception):
    """Raised when a deck or worksheet cannot be produced."""


class MalformedLessonError(RenderError, ValueError):
    """The lesson object is missing required structure (e.g. no slides)."""


class ArtifactWriteError(RenderError):
    """Serialising or writing the output file failed."""
