"""Configuration for tiled detection."""

from .detection_config import DetectionConfig, TILE_FORMATS, ENCODINGS, require_int, require_number

__all__ = ["DetectionConfig", "TILE_FORMATS", "ENCODINGS", "require_int", "require_number"]
