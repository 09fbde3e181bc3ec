"""
Image slicing for detection on large images.

Splits an image into overlapping fixed-size tiles. Tiles on the right and
bottom edges are zero-padded on their high side so every tile has the same
shape while its top-left origin stays at its offset.
"""

import logging
from typing import Iterator, List, Optional, Tuple

import numpy as np

from ..config import DetectionConfig, require_int, require_number
from ..errors import ConfigurationError
from .backends import ImageBackend, SourceImage, TensorImageBackend, create_backend
from .models import Tile

logger = logging.getLogger(__name__)


class ImageSlicer:
    """
    Splits images into overlapping tiles for per-tile detection.

    Example:
        >>> slicer = ImageSlicer(slice_size=400, overlap_ratio=0.2)
        >>> for tile in slicer.iter_tiles(image):
        ...     detect(tile.data)
    """

    def __init__(
        self,
        slice_size: int = 400,
        overlap_ratio: float = 0.2,
        backend: Optional[ImageBackend] = None,
        config: Optional[DetectionConfig] = None,
    ):
        """
        Initialize the image slicer.

        Args:
            slice_size: Tile edge length in pixels
            overlap_ratio: Fraction of the tile edge shared with neighbors
            backend: Tile materialization backend (defaults to ndarray tiles)
            config: Optional DetectionConfig to use instead of individual params
        """
        if config is not None:
            self.slice_size = config.slice_size
            self.overlap_ratio = config.overlap_ratio
            if backend is None:
                backend = create_backend(config.tile_format, config.encoding)
        else:
            self.slice_size = slice_size
            self.overlap_ratio = overlap_ratio

        self.backend = backend or TensorImageBackend()

        # Validate
        require_int("slice_size", self.slice_size)
        require_number("overlap_ratio", self.overlap_ratio)
        if self.slice_size <= 0:
            raise ConfigurationError(f"slice_size must be > 0, got {self.slice_size}")
        if not (0.0 <= self.overlap_ratio < 1.0):
            raise ConfigurationError(
                f"overlap_ratio must be in [0.0, 1.0), got {self.overlap_ratio}"
            )

        self.overlap = int(self.slice_size * self.overlap_ratio)
        self.step = self.slice_size - self.overlap
        if self.step <= 0:
            raise ConfigurationError(
                f"step must be > 0 (slice_size={self.slice_size}, overlap={self.overlap})"
            )

    def calculate_grid_boundaries(
        self,
        width: int,
        height: int,
    ) -> List[Tuple[int, int, int, int]]:
        """
        Calculate tile regions in row-major order.

        Args:
            width: Image width
            height: Image height

        Returns:
            List of (x, y, slice_width, slice_height) unpadded tile regions
        """
        boundaries = []
        for y in range(0, height, self.step):
            slice_height = min(self.slice_size, height - y)
            for x in range(0, width, self.step):
                slice_width = min(self.slice_size, width - x)
                boundaries.append((x, y, slice_width, slice_height))
        return boundaries

    def get_tile_count(self, width: int, height: int) -> int:
        """
        Calculate how many tiles would be created for given dimensions.

        Args:
            width: Image width
            height: Image height

        Returns:
            Number of tiles
        """
        if width <= 0 or height <= 0:
            return 0
        cols = -(-width // self.step)
        rows = -(-height // self.step)
        return cols * rows

    def iter_tiles(self, image: SourceImage) -> Iterator[Tile]:
        """
        Yield tiles one at a time, materializing each buffer on demand.

        Args:
            image: Input image (H, W, C) array or encoded bytes

        Yields:
            Tile objects in row-major order
        """
        image = self.backend.prepare(image)
        yield from self.iter_prepared_tiles(image)

    def iter_prepared_tiles(self, image: np.ndarray) -> Iterator[Tile]:
        """Yield tiles from an image already normalized by the backend."""
        width, height = self.backend.get_dimensions(image)

        for i, (x, y, slice_width, slice_height) in enumerate(
            self.calculate_grid_boundaries(width, height)
        ):
            # The generator holds no reference to tile.data
            yield Tile(
                id=f"tile_{i}",
                index=i,
                offset_x=x,
                offset_y=y,
                slice_width=slice_width,
                slice_height=slice_height,
                slice_size=self.slice_size,
                data=self.backend.materialize(
                    self.backend.pad(
                        self.backend.crop(image, x, y, slice_width, slice_height),
                        self.slice_size,
                    )
                ),
            )

    def slice(self, image: SourceImage) -> List[Tile]:
        """
        Create all tiles from an image.

        Args:
            image: Input image (H, W, C) array or encoded bytes

        Returns:
            List of Tile objects
        """
        tiles = list(self.iter_tiles(image))
        logger.debug(
            f"Sliced image into {len(tiles)} tiles "
            f"(slice_size={self.slice_size}, step={self.step}, backend={self.backend.name})"
        )
        return tiles


def slice_image(
    image: SourceImage,
    slice_size: int,
    overlap_ratio: float,
    backend: Optional[ImageBackend] = None,
) -> List[Tile]:
    """
    Slice an image into overlapping, padded tiles.

    Args:
        image: Input image
        slice_size: Tile edge length in pixels
        overlap_ratio: Fraction of tile overlap, in [0, 1)
        backend: Optional materialization backend

    Returns:
        List of Tile objects in row-major order
    """
    return ImageSlicer(slice_size=slice_size, overlap_ratio=overlap_ratio, backend=backend).slice(image)
