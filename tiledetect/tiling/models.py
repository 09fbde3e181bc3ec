"""
Data structures for tiled detection.
"""

from dataclasses import dataclass, field
from typing import List, Tuple, Dict, Any, Optional, Union
import numpy as np

from .iou import BBox

TileData = Union[np.ndarray, bytes]


@dataclass(frozen=True)
class Detection:
    """
    A single detector output.

    Attributes:
        bbox: (x, y, width, height) in pixels
        label: Class name
        score: Confidence in [0, 1]
    """
    bbox: BBox
    label: str
    score: float

    def __post_init__(self):
        """Normalize bbox to a tuple of floats."""
        if len(self.bbox) != 4:
            raise ValueError(f"bbox must have 4 values, got {len(self.bbox)}")
        object.__setattr__(self, "bbox", tuple(float(v) for v in self.bbox))
        object.__setattr__(self, "score", float(self.score))

    @property
    def x(self) -> float:
        return self.bbox[0]

    @property
    def y(self) -> float:
        return self.bbox[1]

    @property
    def width(self) -> float:
        return self.bbox[2]

    @property
    def height(self) -> float:
        return self.bbox[3]

    @property
    def area(self) -> float:
        """Box area in square pixels."""
        return max(0.0, self.bbox[2]) * max(0.0, self.bbox[3])

    def translated(self, dx: float, dy: float) -> "Detection":
        """Return a copy with the box origin moved by (dx, dy)."""
        x, y, w, h = self.bbox
        return Detection(bbox=(x + dx, y + dy, w, h), label=self.label, score=self.score)

    def clipped(self, width: float, height: float) -> "Detection":
        """Return a copy with the box clipped to [0, width) x [0, height)."""
        x, y, w, h = self.bbox
        x1 = min(max(x, 0.0), width)
        y1 = min(max(y, 0.0), height)
        x2 = min(max(x + w, 0.0), width)
        y2 = min(max(y + h, 0.0), height)
        return Detection(bbox=(x1, y1, x2 - x1, y2 - y1), label=self.label, score=self.score)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to the wire format used by the transport."""
        return {
            "label": self.label,
            "score": self.score,
            "bbox": {
                "x": self.bbox[0],
                "y": self.bbox[1],
                "width": self.bbox[2],
                "height": self.bbox[3],
            },
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Detection":
        """
        Create from dictionary.

        Accepts bbox as {"x", "y", "width", "height"} or as [x, y, w, h].
        """
        bbox = data["bbox"]
        if isinstance(bbox, dict):
            bbox = (bbox["x"], bbox["y"], bbox["width"], bbox["height"])
        return cls(bbox=tuple(bbox), label=str(data["label"]), score=data["score"])


@dataclass
class Tile:
    """
    A rectangular region of the source image, ready for detection.

    Attributes:
        id: Unique identifier for this tile (e.g., "tile_0")
        index: Position in row-major slicing order
        offset_x: Left edge in original image
        offset_y: Top edge in original image
        slice_width: Unpadded width taken from the source
        slice_height: Unpadded height taken from the source
        slice_size: Edge length of the padded tile
        data: Materialized pixels (ndarray) or encoded image bytes
    """
    id: str
    index: int
    offset_x: int
    offset_y: int
    slice_width: int
    slice_height: int
    slice_size: int
    data: Optional[TileData] = None

    @property
    def offset(self) -> Tuple[int, int]:
        """Offset (x, y) from original image origin."""
        return (self.offset_x, self.offset_y)

    @property
    def bounds(self) -> Tuple[int, int, int, int]:
        """Unpadded (x1, y1, x2, y2) in original image coordinates."""
        return (
            self.offset_x,
            self.offset_y,
            self.offset_x + self.slice_width,
            self.offset_y + self.slice_height,
        )

    @property
    def is_padded(self) -> bool:
        """True when the tile touches the right or bottom image edge."""
        return self.slice_width < self.slice_size or self.slice_height < self.slice_size

    @property
    def is_released(self) -> bool:
        return self.data is None

    def release(self):
        """Drop the pixel buffer."""
        self.data = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary (without pixel data)."""
        return {
            "id": self.id,
            "index": self.index,
            "offset_x": self.offset_x,
            "offset_y": self.offset_y,
            "slice_width": self.slice_width,
            "slice_height": self.slice_height,
            "slice_size": self.slice_size,
            "padded": self.is_padded,
        }


@dataclass
class TileDetections:
    """
    Raw detections from a single tile, still in tile-local coordinates.
    """
    tile_id: str
    offset: Tuple[int, int]
    detections: List[Detection] = field(default_factory=list)


@dataclass
class TileFailure:
    """
    Diagnostic event for a tile whose detector call failed.

    Attributes:
        tile_id: ID of the failed tile
        offset_x: Tile left edge in original image
        offset_y: Tile top edge in original image
        error_kind: Exception class name
        message: Exception message
    """
    tile_id: str
    offset_x: int
    offset_y: int
    error_kind: str
    message: str

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "tile_id": self.tile_id,
            "offset_x": self.offset_x,
            "offset_y": self.offset_y,
            "error_kind": self.error_kind,
            "message": self.message,
        }


@dataclass
class TiledDetectionResult:
    """Merged output of a tiled detection pass."""
    detections: List[Detection]
    failures: List[TileFailure]
    tile_count: int
    image_width: int
    image_height: int
    processing_time_ms: float = 0.0

    @property
    def degraded(self) -> bool:
        """True when at least one tile contributed no detections due to an error."""
        return len(self.failures) > 0

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "detections": [d.to_dict() for d in self.detections],
            "detection_count": len(self.detections),
            "failures": [f.to_dict() for f in self.failures],
            "degraded": self.degraded,
            "tile_count": self.tile_count,
            "image_width": self.image_width,
            "image_height": self.image_height,
            "processing_time_ms": self.processing_time_ms,
        }
