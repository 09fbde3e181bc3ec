"""
Tiled Detection Module

Handles large images by splitting them into overlapping tiles,
detecting on each tile independently, and merging results.
"""

from .models import Detection, Tile, TileDetections, TileFailure, TiledDetectionResult
from .iou import calculate_iou, boxes_overlap, xywh_to_xyxy, xyxy_to_xywh, bbox_area
from .backends import ImageBackend, TensorImageBackend, EncodedImageBackend, create_backend
from .slicer import ImageSlicer, slice_image
from .transforms import tile_to_original, original_to_tile, remap_detections, clip_detections
from .merging import group_by_label, non_max_suppression, merge_detections
from .coordinator import DetectionCoordinator, ProcessingProgress, detect_tiles
from .pipeline import TiledDetector, detect_tiled

__all__ = [
    # Models
    "Detection",
    "Tile",
    "TileDetections",
    "TileFailure",
    "TiledDetectionResult",
    # IoU
    "calculate_iou",
    "boxes_overlap",
    "xywh_to_xyxy",
    "xyxy_to_xywh",
    "bbox_area",
    # Backends
    "ImageBackend",
    "TensorImageBackend",
    "EncodedImageBackend",
    "create_backend",
    # Slicer
    "ImageSlicer",
    "slice_image",
    # Transforms
    "tile_to_original",
    "original_to_tile",
    "remap_detections",
    "clip_detections",
    # Merging
    "group_by_label",
    "non_max_suppression",
    "merge_detections",
    # Coordinator
    "DetectionCoordinator",
    "ProcessingProgress",
    "detect_tiles",
    # Pipeline
    "TiledDetector",
    "detect_tiled",
]
