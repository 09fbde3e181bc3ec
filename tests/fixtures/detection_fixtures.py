"""
Programmatic test images and fake detectors for tiled detection tests.
"""

import threading
import time
from typing import List, Optional, Sequence, Set, Tuple

import cv2
import numpy as np

from tiledetect.detectors.base import Detector
from tiledetect.errors import DetectionError
from tiledetect.tiling.models import Detection, TileData


def create_blank_image(size: Tuple[int, int] = (1000, 1000), value: int = 0) -> np.ndarray:
    """
    Create a uniform BGR image.

    Args:
        size: Image dimensions (height, width)
        value: Fill value for every channel

    Returns:
        (H, W, 3) uint8 image
    """
    return np.full((size[0], size[1], 3), value, dtype=np.uint8)


def create_marked_image(
    size: Tuple[int, int] = (800, 800),
    squares: Sequence[Tuple[int, int, int]] = ((100, 100, 50),),
) -> np.ndarray:
    """
    Create a black image with white squares at known positions.

    Args:
        size: Image dimensions (height, width)
        squares: (x, y, side) of each white square

    Returns:
        BGR image
    """
    image = create_blank_image(size)
    for x, y, side in squares:
        cv2.rectangle(image, (x, y), (x + side - 1, y + side - 1), (255, 255, 255), -1)
    return image


def encode_png(image: np.ndarray) -> bytes:
    """Encode an image as PNG bytes."""
    ok, buffer = cv2.imencode(".png", image)
    assert ok
    return buffer.tobytes()


class FixedDetector(Detector):
    """Returns the same tile-local detections for every tile."""

    def __init__(self, detections: Optional[List[Detection]] = None):
        self.detections = list(detections or [])
        self.calls = 0

    def detect(self, image: TileData, max_boxes: int, min_score: float) -> List[Detection]:
        self.calls += 1
        return [d for d in self.detections if d.score >= min_score][:max_boxes]


class WhiteSquareDetector(Detector):
    """
    Finds white squares in a tile with contour analysis.

    Boxes are exact, so the result depends only on where the squares are.
    """

    def __init__(self, label: str = "Square", score: float = 0.9):
        self.label = label
        self.score = score

    def detect(self, image: TileData, max_boxes: int, min_score: float) -> List[Detection]:
        gray = cv2.cvtColor(image, cv2.COLOR_BGR2GRAY)
        _, mask = cv2.threshold(gray, 127, 255, cv2.THRESH_BINARY)
        contours, _ = cv2.findContours(mask, cv2.RETR_EXTERNAL, cv2.CHAIN_APPROX_SIMPLE)
        detections = [
            Detection(bbox=cv2.boundingRect(c), label=self.label, score=self.score)
            for c in contours
        ]
        detections.sort(key=lambda d: (d.y, d.x))
        return [d for d in detections if d.score >= min_score][:max_boxes]


class FailingDetector(Detector):
    """Raises DetectionError on the given call numbers (0-based), otherwise delegates."""

    def __init__(self, fail_on: Set[int], inner: Optional[Detector] = None):
        self.fail_on = set(fail_on)
        self.inner = inner or FixedDetector()
        self.calls = 0

    def detect(self, image: TileData, max_boxes: int, min_score: float) -> List[Detection]:
        call = self.calls
        self.calls += 1
        if call in self.fail_on:
            raise DetectionError(f"model crashed on call {call}")
        return self.inner.detect(image, max_boxes, min_score)


class RecordingDetector(Detector):
    """Records the inputs and arguments of every call."""

    def __init__(self, input_format: str = "tensor"):
        self.input_format = input_format
        self.inputs: List[TileData] = []
        self.arguments: List[Tuple[int, float]] = []

    def detect(self, image: TileData, max_boxes: int, min_score: float) -> List[Detection]:
        self.inputs.append(image)
        self.arguments.append((max_boxes, min_score))
        return []


class ConcurrencyTrackingDetector(Detector):
    """Tracks the peak number of simultaneous detect() calls."""

    def __init__(self, delay: float = 0.01):
        self.delay = delay
        self.active = 0
        self.peak = 0
        self._lock = threading.Lock()

    def detect(self, image: TileData, max_boxes: int, min_score: float) -> List[Detection]:
        with self._lock:
            self.active += 1
            self.peak = max(self.peak, self.active)
        time.sleep(self.delay)
        with self._lock:
            self.active -= 1
        return []
