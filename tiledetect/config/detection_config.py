"""
Configuration for tiled detection.

Collects the slicing, detector and merge options in one place so the CLI,
the server and library callers share defaults and validation.
"""

import numbers
from dataclasses import dataclass
from typing import Dict, Any, Optional

from ..errors import ConfigurationError


TILE_FORMATS = ("tensor", "encoded")
ENCODINGS = (".png", ".jpg", ".jpeg")


def require_int(name: str, value: Any) -> int:
    """Raise ConfigurationError unless value is an int (bools excluded)."""
    if isinstance(value, bool) or not isinstance(value, numbers.Integral):
        raise ConfigurationError(f"{name} must be an integer, got {value!r}")
    return value


def require_number(name: str, value: Any) -> float:
    """Raise ConfigurationError unless value is a real number (bools excluded)."""
    if isinstance(value, bool) or not isinstance(value, numbers.Real):
        raise ConfigurationError(f"{name} must be a number, got {value!r}")
    return value


@dataclass
class DetectionConfig:
    """
    Options for one tiled detection pass.

    Attributes:
        slice_size: Tile edge length in pixels
        overlap_ratio: Fraction of a tile's edge shared with its neighbor (0.0 to < 1.0)
        nms_threshold: IoU above which same-label detections are duplicates
        max_boxes_per_tile: Cap on raw detections the detector returns per tile
        min_score: Confidence floor applied by the detector
        max_detections: Optional cap on detections kept after merge
        tile_format: "tensor" for ndarray tiles, "encoded" for image-file bytes
        encoding: Codec extension used when tile_format is "encoded"
        clip_to_image: Clip remapped boxes that reach into tile padding
        max_workers: Number of tiles processed concurrently (1 = sequential)
    """
    slice_size: int = 400
    overlap_ratio: float = 0.2
    nms_threshold: float = 0.5
    max_boxes_per_tile: int = 2000
    min_score: float = 0.5
    max_detections: Optional[int] = None
    tile_format: str = "tensor"
    encoding: str = ".png"
    clip_to_image: bool = True
    max_workers: int = 1

    def __post_init__(self):
        """Validate configuration values."""
        self._validate()

    def _validate(self):
        """Validate all configuration values."""
        require_int("slice_size", self.slice_size)
        require_number("overlap_ratio", self.overlap_ratio)
        require_number("nms_threshold", self.nms_threshold)
        require_int("max_boxes_per_tile", self.max_boxes_per_tile)
        require_number("min_score", self.min_score)
        require_int("max_workers", self.max_workers)
        if self.max_detections is not None:
            require_int("max_detections", self.max_detections)
        if not isinstance(self.tile_format, str) or not isinstance(self.encoding, str):
            raise ConfigurationError(
                f"tile_format and encoding must be strings, got {self.tile_format!r}, {self.encoding!r}"
            )

        if self.slice_size <= 0:
            raise ConfigurationError(f"slice_size must be > 0, got {self.slice_size}")

        if not (0.0 <= self.overlap_ratio < 1.0):
            raise ConfigurationError(
                f"overlap_ratio must be in [0.0, 1.0), got {self.overlap_ratio}"
            )

        if self.step <= 0:
            raise ConfigurationError(
                f"overlap_ratio {self.overlap_ratio} leaves no step for slice_size {self.slice_size}"
            )

        if not (0.0 <= self.nms_threshold <= 1.0):
            raise ConfigurationError(
                f"nms_threshold must be between 0.0 and 1.0, got {self.nms_threshold}"
            )

        if self.max_boxes_per_tile < 1:
            raise ConfigurationError(
                f"max_boxes_per_tile must be >= 1, got {self.max_boxes_per_tile}"
            )

        if not (0.0 <= self.min_score <= 1.0):
            raise ConfigurationError(
                f"min_score must be between 0.0 and 1.0, got {self.min_score}"
            )

        if self.max_detections is not None and self.max_detections < 0:
            raise ConfigurationError(
                f"max_detections must be >= 0, got {self.max_detections}"
            )

        if self.tile_format not in TILE_FORMATS:
            raise ConfigurationError(
                f"tile_format must be one of {TILE_FORMATS}, got {self.tile_format!r}"
            )

        if self.encoding.lower() not in ENCODINGS:
            raise ConfigurationError(
                f"encoding must be one of {ENCODINGS}, got {self.encoding!r}"
            )

        if self.max_workers < 1:
            raise ConfigurationError(f"max_workers must be >= 1, got {self.max_workers}")

    @property
    def overlap(self) -> int:
        """Overlap between adjacent tiles in pixels."""
        return int(self.slice_size * self.overlap_ratio)

    @property
    def step(self) -> int:
        """Distance between the origins of adjacent tiles."""
        return self.slice_size - self.overlap

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "slice_size": self.slice_size,
            "overlap_ratio": self.overlap_ratio,
            "nms_threshold": self.nms_threshold,
            "max_boxes_per_tile": self.max_boxes_per_tile,
            "min_score": self.min_score,
            "max_detections": self.max_detections,
            "tile_format": self.tile_format,
            "encoding": self.encoding,
            "clip_to_image": self.clip_to_image,
            "max_workers": self.max_workers,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "DetectionConfig":
        """Create from dictionary (e.g., from YAML config)."""
        return cls(
            slice_size=data.get("slice_size", 400),
            overlap_ratio=data.get("overlap_ratio", 0.2),
            nms_threshold=data.get("nms_threshold", 0.5),
            max_boxes_per_tile=data.get("max_boxes_per_tile", 2000),
            min_score=data.get("min_score", 0.5),
            max_detections=data.get("max_detections"),
            tile_format=data.get("tile_format", "tensor"),
            encoding=data.get("encoding", ".png"),
            clip_to_image=data.get("clip_to_image", True),
            max_workers=data.get("max_workers", 1),
        )

    @classmethod
    def from_yaml(cls, yaml_path: str) -> "DetectionConfig":
        """Load configuration from YAML file."""
        import yaml

        with open(yaml_path, "r") as f:
            data = yaml.safe_load(f) or {}

        return cls.from_dict(data.get("detection", data))

    @classmethod
    def default(cls) -> "DetectionConfig":
        """Create default configuration."""
        return cls()

    def with_overrides(self, **overrides: Any) -> "DetectionConfig":
        """
        Return a copy with some options replaced.

        None values are ignored so request models can pass optional fields through.
        """
        data = self.to_dict()
        data.update({k: v for k, v in overrides.items() if v is not None})
        return DetectionConfig.from_dict(data)
