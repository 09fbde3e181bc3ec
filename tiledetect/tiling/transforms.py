"""
Coordinate transformation from tile-local to full-image space.
"""

from typing import List, Tuple

from .models import Detection


def tile_to_original(
    point: Tuple[float, float],
    offset: Tuple[int, int],
) -> Tuple[float, float]:
    """
    Transform a point from tile coordinates to original image coordinates.

    Args:
        point: (x, y) in tile-local coordinates
        offset: (offset_x, offset_y) of the tile in the original image

    Returns:
        (x, y) in original image coordinates

    Example:
        >>> tile_to_original((10, 20), (320, 640))
        (330, 660)
    """
    return (point[0] + offset[0], point[1] + offset[1])


def original_to_tile(
    point: Tuple[float, float],
    offset: Tuple[int, int],
) -> Tuple[float, float]:
    """
    Transform a point from original image coordinates to tile coordinates.

    Args:
        point: (x, y) in original image coordinates
        offset: (offset_x, offset_y) of the tile in the original image

    Returns:
        (x, y) in tile-local coordinates
    """
    return (point[0] - offset[0], point[1] - offset[1])


def remap_detections(
    offset: Tuple[int, int],
    detections: List[Detection],
) -> List[Detection]:
    """
    Move tile-local detections into original image coordinates.

    Only the box origin changes. Padding is added on the high side of a
    tile, so tile-local (0, 0) is always the tile offset.

    Args:
        offset: (offset_x, offset_y) of the tile
        detections: Detections in tile-local coordinates

    Returns:
        New detections in original image coordinates
    """
    offset_x, offset_y = offset
    return [det.translated(offset_x, offset_y) for det in detections]


def clip_detections(
    detections: List[Detection],
    width: int,
    height: int,
) -> List[Detection]:
    """
    Clip boxes to the image and drop those with no area left.

    Boxes from edge tiles may reach into the zero padding past the image.

    Args:
        detections: Detections in original image coordinates
        width: Image width
        height: Image height

    Returns:
        Clipped detections with positive area
    """
    clipped = []
    for det in detections:
        c = det.clipped(width, height)
        if c.width > 0 and c.height > 0:
            clipped.append(c)
    return clipped
