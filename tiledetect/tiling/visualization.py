"""
Visualization utilities for tiling and detection debugging.
"""

import cv2
import numpy as np
from typing import Dict, List, Tuple

from .models import Detection


# Color palette for tiles
TILE_COLORS = [
    (255, 0, 0),    # Blue
    (0, 255, 0),    # Green
    (0, 0, 255),    # Red
    (255, 255, 0),  # Cyan
    (255, 0, 255),  # Magenta
    (0, 255, 255),  # Yellow
    (128, 0, 255),  # Purple
    (255, 128, 0),  # Orange-ish
]


def visualize_tile_grid(
    image: np.ndarray,
    boundaries: List[Tuple[int, int, int, int]],
    show_labels: bool = True,
    alpha: float = 0.2,
) -> np.ndarray:
    """
    Draw tile regions on a copy of the image.

    Args:
        image: Original image
        boundaries: List of (x, y, slice_width, slice_height) tile regions
        show_labels: Whether to show tile index and dimensions
        alpha: Transparency for tile fill

    Returns:
        Annotated image
    """
    vis = image.copy()
    height, width = vis.shape[:2]

    # Create overlay for transparent fills
    overlay = vis.copy()

    for i, (x, y, w, h) in enumerate(boundaries):
        color = TILE_COLORS[i % len(TILE_COLORS)]
        x2, y2 = x + w - 1, y + h - 1

        cv2.rectangle(overlay, (x, y), (x2, y2), color, -1)
        cv2.rectangle(vis, (x, y), (x2, y2), color, 2)

        if show_labels:
            label_x = x + 5
            label_y = y + 20
            cv2.putText(vis, f"tile_{i}", (label_x, label_y),
                       cv2.FONT_HERSHEY_SIMPLEX, 0.5, color, 1)
            cv2.putText(vis, f"{w}x{h}", (label_x, label_y + 15),
                       cv2.FONT_HERSHEY_SIMPLEX, 0.4, (255, 255, 255), 1)

    # Blend overlay
    cv2.addWeighted(overlay, alpha, vis, 1 - alpha, 0, vis)

    legend_y = max(20, height - 30)
    cv2.putText(vis, f"Tiles: {len(boundaries)}  Image: {width}x{height}", (10, legend_y),
               cv2.FONT_HERSHEY_SIMPLEX, 0.6, (255, 255, 255), 1)
    return vis


def draw_detections(
    image: np.ndarray,
    detections: List[Detection],
    thickness: int = 2,
) -> np.ndarray:
    """
    Draw labelled detection boxes on a copy of the image.

    Each label gets a stable color from the tile palette.

    Args:
        image: Original image
        detections: Detections in image coordinates
        thickness: Box line thickness

    Returns:
        Annotated image
    """
    vis = image.copy()
    label_colors: Dict[str, Tuple[int, int, int]] = {}

    for det in detections:
        if det.label not in label_colors:
            label_colors[det.label] = TILE_COLORS[len(label_colors) % len(TILE_COLORS)]
        color = label_colors[det.label]

        x1, y1 = int(round(det.x)), int(round(det.y))
        x2, y2 = int(round(det.x + det.width)), int(round(det.y + det.height))
        cv2.rectangle(vis, (x1, y1), (x2, y2), color, thickness)

        text = f"{det.label} {det.score:.2f}"
        (text_w, text_h), _ = cv2.getTextSize(text, cv2.FONT_HERSHEY_SIMPLEX, 0.5, 1)
        text_y = max(y1, text_h + 4)
        cv2.rectangle(vis, (x1, text_y - text_h - 4), (x1 + text_w + 4, text_y), color, -1)
        cv2.putText(vis, text, (x1 + 2, text_y - 2),
                   cv2.FONT_HERSHEY_SIMPLEX, 0.5, (0, 0, 0), 1)

    return vis
