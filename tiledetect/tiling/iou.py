"""
IoU (Intersection over Union) for axis-aligned detection boxes.

Boxes are (x, y, width, height) unless a helper name says otherwise.
"""

from typing import Tuple

BBox = Tuple[float, float, float, float]


def xywh_to_xyxy(bbox: BBox) -> BBox:
    """
    Convert (x, y, width, height) to corner form.

    Example:
        >>> xywh_to_xyxy((10, 20, 30, 40))
        (10, 20, 40, 60)
    """
    x, y, w, h = bbox
    return (x, y, x + w, y + h)


def xyxy_to_xywh(bbox: BBox) -> BBox:
    """Convert (x1, y1, x2, y2) to (x, y, width, height)."""
    x1, y1, x2, y2 = bbox
    return (x1, y1, x2 - x1, y2 - y1)


def bbox_area(bbox: BBox) -> float:
    """Area of an (x, y, width, height) box, zero for degenerate boxes."""
    return max(0.0, bbox[2]) * max(0.0, bbox[3])


def calculate_iou(bbox1: BBox, bbox2: BBox) -> float:
    """
    Calculate Intersection over Union between two boxes.

    Args:
        bbox1: (x, y, width, height) of first box
        bbox2: (x, y, width, height) of second box

    Returns:
        IoU value between 0.0 and 1.0

    Example:
        >>> round(calculate_iou((0, 0, 100, 100), (50, 0, 100, 100)), 3)
        0.333
    """
    x1_1, y1_1, x2_1, y2_1 = xywh_to_xyxy(bbox1)
    x1_2, y1_2, x2_2, y2_2 = xywh_to_xyxy(bbox2)

    # Overlap extents, clamped at zero
    inter_w = max(0.0, min(x2_1, x2_2) - max(x1_1, x1_2))
    inter_h = max(0.0, min(y2_1, y2_2) - max(y1_1, y1_2))
    intersection = inter_w * inter_h

    union = bbox_area(bbox1) + bbox_area(bbox2) - intersection

    if union <= 0:
        return 0.0

    return intersection / union


def boxes_overlap(bbox1: BBox, bbox2: BBox, threshold: float = 0.0) -> bool:
    """
    Check if two boxes overlap above a given IoU threshold.

    Args:
        bbox1: First box (x, y, width, height)
        bbox2: Second box (x, y, width, height)
        threshold: IoU that must be exceeded

    Returns:
        True if IoU > threshold
    """
    return calculate_iou(bbox1, bbox2) > threshold
