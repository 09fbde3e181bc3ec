"""
Merging of detections from overlapping tiles.

Detections are grouped by label and each group is reduced with greedy
non-maximum suppression, so objects of different classes never suppress
each other.
"""

from typing import Dict, List, Optional

from .iou import calculate_iou
from .models import Detection


def group_by_label(detections: List[Detection]) -> Dict[str, List[Detection]]:
    """
    Partition detections by label, keeping first-seen label order.

    Args:
        detections: Detections to group

    Returns:
        Mapping of label to its detections in input order
    """
    groups: Dict[str, List[Detection]] = {}
    for det in detections:
        groups.setdefault(det.label, []).append(det)
    return groups


def non_max_suppression(
    detections: List[Detection],
    iou_threshold: float = 0.5,
) -> List[Detection]:
    """
    Greedy NMS over a single group of detections.

    Detections are visited by descending score (ties keep input order).
    Each kept detection suppresses every later one whose IoU with it
    exceeds the threshold.

    Args:
        detections: Detections to reduce (labels are not inspected)
        iou_threshold: IoU above which a detection is a duplicate

    Returns:
        Kept detections, highest score first
    """
    if len(detections) <= 1:
        return list(detections)

    ordered = sorted(detections, key=lambda d: d.score, reverse=True)
    suppressed = [False] * len(ordered)
    kept = []

    for i in range(len(ordered)):
        if suppressed[i]:
            continue

        current = ordered[i]
        kept.append(current)

        for j in range(i + 1, len(ordered)):
            if suppressed[j]:
                continue
            if calculate_iou(current.bbox, ordered[j].bbox) > iou_threshold:
                suppressed[j] = True

    return kept


def merge_detections(
    detections: List[Detection],
    iou_threshold: float = 0.5,
    max_detections: Optional[int] = None,
) -> List[Detection]:
    """
    Remove duplicate detections produced by overlapping tiles.

    Args:
        detections: Detections in original image coordinates
        iou_threshold: Same-label IoU above which detections are duplicates
        max_detections: Optional cap, keeping the highest scores

    Returns:
        Merged detections, grouped by label in first-seen order
    """
    if not detections:
        return []

    merged = []
    for group in group_by_label(detections).values():
        merged.extend(non_max_suppression(group, iou_threshold))

    if max_detections is not None and len(merged) > max_detections:
        top = sorted(range(len(merged)), key=lambda i: merged[i].score, reverse=True)[:max_detections]
        merged = [merged[i] for i in sorted(top)]

    return merged
