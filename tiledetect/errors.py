"""Exceptions raised by the tiled detection pipeline."""


class TileDetectError(Exception):
    """Base error for tiled detection."""
    pass


class ConfigurationError(TileDetectError, ValueError):
    """Invalid slicing or merge parameters. Raised before any tile work."""
    pass


class DetectionError(TileDetectError):
    """The detector failed on a single input."""
    pass


class PipelineError(TileDetectError):
    """Failure outside tile scope, e.g. the source image could not be read."""
    pass


class PipelineCancelled(PipelineError):
    """The request was cancelled before every tile completed."""
    pass
