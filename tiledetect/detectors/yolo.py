"""YOLOv8-style detector with pluggable inference backends.

Handles preprocessing and decoding of the raw (1, 4 + num_classes, N)
prediction tensor. Inference itself is delegated to an InferenceBackend.
"""

import logging
from abc import ABC, abstractmethod
from typing import Dict, List, Optional, Tuple

import cv2
import numpy as np

from ..errors import DetectionError
from ..imaging import decode_image_bytes, ensure_three_channels
from ..tiling.models import Detection, TileData
from .base import Detector
from .classes import WALDO_CLASSES, ObjectClass, class_label

logger = logging.getLogger(__name__)


class InferenceBackend(ABC):
    """Abstract base class for inference backends."""

    @abstractmethod
    def run(self, input_tensor: np.ndarray) -> np.ndarray:
        """Run inference on input tensor.

        Args:
            input_tensor: Input tensor of shape (1, C, H, W), float32.

        Returns:
            Raw model output.
        """
        pass

    @property
    def name(self) -> str:
        """Backend name for logging."""
        return self.__class__.__name__


def _nms(
    boxes: np.ndarray,
    scores: np.ndarray,
    iou_threshold: float,
) -> np.ndarray:
    """Class-agnostic non-maximum suppression (pure numpy).

    Args:
        boxes: Array of shape (N, 4) with [x1, y1, x2, y2].
        scores: Array of shape (N,) with confidence scores.
        iou_threshold: IoU threshold for suppression.

    Returns:
        Array of indices to keep, highest score first.
    """
    if len(boxes) == 0:
        return np.array([], dtype=np.int64)

    x1, y1, x2, y2 = boxes[:, 0], boxes[:, 1], boxes[:, 2], boxes[:, 3]
    areas = (x2 - x1) * (y2 - y1)
    order = np.argsort(-scores, kind="stable")

    keep = []
    while order.size > 0:
        i = order[0]
        keep.append(i)

        if order.size == 1:
            break

        xx1 = np.maximum(x1[i], x1[order[1:]])
        yy1 = np.maximum(y1[i], y1[order[1:]])
        xx2 = np.minimum(x2[i], x2[order[1:]])
        yy2 = np.minimum(y2[i], y2[order[1:]])

        inter = np.maximum(0, xx2 - xx1) * np.maximum(0, yy2 - yy1)
        iou = inter / (areas[i] + areas[order[1:]] - inter + 1e-8)

        inds = np.where(iou <= iou_threshold)[0]
        order = order[inds + 1]

    return np.array(keep, dtype=np.int64)


class YoloDetector(Detector):
    """YOLOv8 detector over a square model input.

    Accepts both (H, W, 3) BGR arrays and encoded image bytes, so it can
    serve either tile format.

    Example:
        >>> detector = YoloDetector(OnnxInferenceBackend().load("waldo.onnx"))
        >>> detections = detector.detect(image, max_boxes=100, min_score=0.5)
    """

    def __init__(
        self,
        backend: InferenceBackend,
        input_size: int = 640,
        classes: Optional[Dict[int, ObjectClass]] = None,
        nms_threshold: float = 0.4,
        input_format: str = "tensor",
    ):
        """Initialize detector.

        Args:
            backend: Inference backend producing raw predictions.
            input_size: Model input edge length.
            classes: Class table; defaults to WALDO_CLASSES.
            nms_threshold: IoU threshold for the detector's own NMS.
            input_format: Tile format this detector advertises.
        """
        self.backend = backend
        self.input_size = input_size
        self.classes = classes if classes is not None else WALDO_CLASSES
        self.nms_threshold = nms_threshold
        self.input_format = input_format

    def preprocess(self, image: np.ndarray) -> np.ndarray:
        """Resize and normalize a BGR image to a (1, 3, S, S) float32 tensor."""
        resized = cv2.resize(image, (self.input_size, self.input_size), interpolation=cv2.INTER_LINEAR)
        rgb = cv2.cvtColor(resized, cv2.COLOR_BGR2RGB)
        tensor = rgb.astype(np.float32) / 255.0
        return np.expand_dims(tensor.transpose(2, 0, 1), axis=0)

    def postprocess(
        self,
        output: np.ndarray,
        original_size: Tuple[int, int],
        max_boxes: int,
        min_score: float,
    ) -> List[Detection]:
        """Decode raw predictions into detections.

        Args:
            output: Raw output of shape (1, 4 + C, N) or (1, N, 4 + C).
            original_size: (width, height) of the image passed to detect().
            max_boxes: Maximum detections to return.
            min_score: Minimum class score.

        Returns:
            Detections in original image pixels, highest score first.
        """
        preds = np.asarray(output, dtype=np.float32)
        if preds.ndim == 3:
            preds = preds[0]
        if preds.ndim != 2:
            raise DetectionError(f"Unexpected model output shape: {np.shape(output)}")

        # Channels-first is (4 + C, N); transpose when anchors come first.
        if preds.shape[0] > preds.shape[1]:
            preds = preds.T
        if preds.shape[0] < 5:
            raise DetectionError(f"Model output has no class scores: {preds.shape}")

        class_scores = preds[4:]
        class_ids = np.argmax(class_scores, axis=0)
        scores = class_scores[class_ids, np.arange(preds.shape[1])]

        mask = scores >= min_score
        if not np.any(mask):
            return []

        cx, cy, w, h = preds[0][mask], preds[1][mask], preds[2][mask], preds[3][mask]
        scores = scores[mask]
        class_ids = class_ids[mask]

        orig_w, orig_h = original_size
        sx = orig_w / self.input_size
        sy = orig_h / self.input_size
        boxes = np.stack([
            (cx - w / 2) * sx,
            (cy - h / 2) * sy,
            (cx + w / 2) * sx,
            (cy + h / 2) * sy,
        ], axis=1)

        keep = _nms(boxes, scores, self.nms_threshold)[:max_boxes]

        return [
            Detection(
                bbox=(
                    float(boxes[i, 0]),
                    float(boxes[i, 1]),
                    float(boxes[i, 2] - boxes[i, 0]),
                    float(boxes[i, 3] - boxes[i, 1]),
                ),
                label=class_label(self.classes, int(class_ids[i])),
                score=float(scores[i]),
            )
            for i in keep
        ]

    def detect(
        self,
        image: TileData,
        max_boxes: int = 2000,
        min_score: float = 0.5,
    ) -> List[Detection]:
        """Detect objects in a single image.

        Raises:
            DetectionError: If the input cannot be decoded or inference fails.
        """
        if max_boxes < 1:
            raise DetectionError(f"max_boxes must be >= 1, got {max_boxes}")

        try:
            if isinstance(image, (bytes, bytearray)):
                image = decode_image_bytes(bytes(image))
            if not isinstance(image, np.ndarray):
                raise DetectionError(f"Unsupported input type: {type(image).__name__}")
            image = ensure_three_channels(image)
        except DetectionError:
            raise
        except Exception as e:
            raise DetectionError(f"Invalid detector input: {e}") from e

        height, width = image.shape[:2]
        input_tensor = self.preprocess(image)

        try:
            output = self.backend.run(input_tensor)
        except Exception as e:
            raise DetectionError(f"{self.backend.name} inference failed: {e}") from e

        return self.postprocess(output, (width, height), max_boxes, min_score)
