"""
Detector capability and concrete detectors.
"""

from .base import Detector, CallableDetector, SerializedDetector, serialized
from .classes import ObjectClass, WALDO_CLASSES, class_label, classes_from_names
from .yolo import InferenceBackend, YoloDetector
from .onnx_backend import OnnxInferenceBackend, load_yolo_detector

__all__ = [
    # Interface
    "Detector",
    "CallableDetector",
    "SerializedDetector",
    "serialized",
    # Classes
    "ObjectClass",
    "WALDO_CLASSES",
    "class_label",
    "classes_from_names",
    # YOLO
    "InferenceBackend",
    "YoloDetector",
    "OnnxInferenceBackend",
    "load_yolo_detector",
]
