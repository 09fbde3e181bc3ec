"""
Image backends for tile materialization.

The slicer owns the tiling geometry; a backend only knows how to read the
dimensions of an image, crop a region, pad it, and turn the result into
whatever the detector consumes.
"""

from abc import ABC, abstractmethod
from typing import Tuple, Union

import cv2
import numpy as np

from ..errors import PipelineError
from ..imaging import decode_image_bytes, ensure_three_channels
from .models import TileData

SourceImage = Union[np.ndarray, bytes]


class ImageBackend(ABC):
    """Abstract base class for tile materialization backends."""

    #: Detector input format this backend produces ("tensor" or "encoded")
    input_format: str = "tensor"

    def prepare(self, image: SourceImage) -> np.ndarray:
        """
        Normalize a source image to a read-only (H, W, 3) array.

        Args:
            image: Decoded array or encoded image bytes

        Returns:
            3-channel image array
        """
        if isinstance(image, (bytes, bytearray)):
            image = decode_image_bytes(bytes(image))
        if not isinstance(image, np.ndarray):
            raise PipelineError(f"Unsupported image type: {type(image).__name__}")

        image = ensure_three_channels(image)
        height, width = image.shape[:2]
        if width <= 0 or height <= 0:
            raise PipelineError(f"Image has no pixels: {width}x{height}")
        return image

    def get_dimensions(self, image: np.ndarray) -> Tuple[int, int]:
        """Return (width, height) of a prepared image."""
        height, width = image.shape[:2]
        return width, height

    def crop(self, image: np.ndarray, x: int, y: int, width: int, height: int) -> np.ndarray:
        """Copy the region [x, x + width) x [y, y + height)."""
        return image[y:y + height, x:x + width].copy()

    def pad(self, region: np.ndarray, size: int) -> np.ndarray:
        """Zero-pad a region on the bottom and right to size x size."""
        pad_h = size - region.shape[0]
        pad_w = size - region.shape[1]
        if pad_h == 0 and pad_w == 0:
            return region
        return np.pad(region, ((0, pad_h), (0, pad_w), (0, 0)), mode="constant", constant_values=0)

    @abstractmethod
    def materialize(self, region: np.ndarray) -> TileData:
        """Convert a padded region into the detector's input representation."""
        pass

    @property
    def name(self) -> str:
        """Backend name for logging."""
        return self.__class__.__name__


class TensorImageBackend(ImageBackend):
    """Tiles are (size, size, 3) uint8 arrays."""

    input_format = "tensor"

    def materialize(self, region: np.ndarray) -> TileData:
        return np.ascontiguousarray(region)


class EncodedImageBackend(ImageBackend):
    """
    Tiles are encoded image bytes.

    For detectors that take a file-like image rather than raw pixels.
    """

    input_format = "encoded"

    def __init__(self, encoding: str = ".png"):
        """
        Args:
            encoding: OpenCV codec extension (".png", ".jpg")
        """
        self.encoding = encoding

    def materialize(self, region: np.ndarray) -> TileData:
        ok, buffer = cv2.imencode(self.encoding, region)
        if not ok:
            raise PipelineError(f"Failed to encode tile as {self.encoding}")
        return buffer.tobytes()


def create_backend(tile_format: str = "tensor", encoding: str = ".png") -> ImageBackend:
    """
    Create the backend for a tile format.

    Args:
        tile_format: "tensor" or "encoded"
        encoding: Codec extension for encoded tiles

    Returns:
        ImageBackend instance
    """
    if tile_format == "tensor":
        return TensorImageBackend()
    if tile_format == "encoded":
        return EncodedImageBackend(encoding=encoding)
    raise ValueError(f"Unknown tile format: {tile_format}")
