"""Detector capability interface.

The tiling pipeline needs one thing from a model: detect objects in an
image-like input, bounded by a box count and a score floor. Concrete
detectors implement that single method.
"""

import threading
from abc import ABC, abstractmethod
from typing import Callable, List

from ..tiling.models import Detection, TileData


class Detector(ABC):
    """Abstract base class for detectors."""

    #: "tensor" for ndarray input, "encoded" for image-file bytes
    input_format: str = "tensor"

    #: Whether one instance may serve concurrent detect() calls
    supports_concurrency: bool = False

    @abstractmethod
    def detect(
        self,
        image: TileData,
        max_boxes: int,
        min_score: float,
    ) -> List[Detection]:
        """Detect objects in an image.

        Args:
            image: (H, W, 3) array or encoded image bytes, per input_format.
            max_boxes: Maximum number of detections to return.
            min_score: Minimum confidence for a detection to be returned.

        Returns:
            Detections in the input image's pixel coordinates.

        Raises:
            DetectionError: On invalid input or internal failure.
        """
        pass

    @property
    def name(self) -> str:
        """Detector name for logging."""
        return self.__class__.__name__


class CallableDetector(Detector):
    """Adapts a plain function to the Detector interface.

    Example:
        >>> detector = CallableDetector(lambda img, max_boxes, min_score: [])
    """

    def __init__(
        self,
        fn: Callable[[TileData, int, float], List[Detection]],
        input_format: str = "tensor",
        supports_concurrency: bool = False,
    ):
        self.fn = fn
        self.input_format = input_format
        self.supports_concurrency = supports_concurrency

    def detect(self, image: TileData, max_boxes: int, min_score: float) -> List[Detection]:
        return list(self.fn(image, max_boxes, min_score))

    @property
    def name(self) -> str:
        return getattr(self.fn, "__name__", super().name)


class SerializedDetector(Detector):
    """Wraps a detector so at most one detect() call runs at a time."""

    supports_concurrency = True

    def __init__(self, detector: Detector):
        self.detector = detector
        self.input_format = detector.input_format
        self._lock = threading.Lock()

    def detect(self, image: TileData, max_boxes: int, min_score: float) -> List[Detection]:
        with self._lock:
            return self.detector.detect(image, max_boxes, min_score)

    @property
    def name(self) -> str:
        return f"Serialized({self.detector.name})"


def serialized(detector: Detector) -> Detector:
    """Return the detector itself if it is concurrency-safe, else a serialized wrapper."""
    if getattr(detector, "supports_concurrency", False):
        return detector
    return SerializedDetector(detector)
