"""
Tiled Object Detection Package

Runs a fixed-resolution object detector over large images by slicing them
into overlapping tiles and merging the per-tile detections.
"""

from .errors import (
    TileDetectError,
    ConfigurationError,
    DetectionError,
    PipelineError,
    PipelineCancelled,
)
from .config import DetectionConfig
from .tiling import (
    Detection,
    Tile,
    TiledDetectionResult,
    ImageSlicer,
    TiledDetector,
    detect_tiled,
    merge_detections,
    calculate_iou,
)
from .detectors import Detector, CallableDetector, YoloDetector

__version__ = "1.0.0"

__all__ = [
    "TileDetectError",
    "ConfigurationError",
    "DetectionError",
    "PipelineError",
    "PipelineCancelled",
    "DetectionConfig",
    "Detection",
    "Tile",
    "TiledDetectionResult",
    "ImageSlicer",
    "TiledDetector",
    "detect_tiled",
    "merge_detections",
    "calculate_iou",
    "Detector",
    "CallableDetector",
    "YoloDetector",
]
