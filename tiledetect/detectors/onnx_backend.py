"""ONNX Runtime inference backend.

onnxruntime is an optional dependency (the "onnx" extra); it is imported
when a model is loaded.
"""

import logging
from typing import List, Optional, Tuple

import numpy as np

from .yolo import InferenceBackend, YoloDetector

logger = logging.getLogger(__name__)

DEFAULT_PROVIDERS = ["CUDAExecutionProvider", "CPUExecutionProvider"]


def get_execution_providers(requested: Optional[List[str]] = None) -> List[str]:
    """Filter requested providers to those available, always ending with CPU."""
    import onnxruntime as ort

    available = ort.get_available_providers()
    providers = [p for p in (requested or DEFAULT_PROVIDERS) if p in available]
    if "CPUExecutionProvider" not in providers:
        providers.append("CPUExecutionProvider")
    return providers


class OnnxInferenceBackend(InferenceBackend):
    """Runs a single-input, single-output ONNX model."""

    def __init__(self, providers: Optional[List[str]] = None, num_threads: int = 4):
        """Initialize ONNX backend.

        Args:
            providers: Execution providers in priority order (CUDA -> CPU by default).
            num_threads: Intra-op thread count.
        """
        self.providers = providers
        self.num_threads = num_threads
        self.session = None
        self._input_name: Optional[str] = None
        self._output_name: Optional[str] = None
        self._input_shape: Optional[Tuple] = None

    def load(self, model_path: str) -> "OnnxInferenceBackend":
        """Load ONNX model.

        Args:
            model_path: Path to .onnx model file.

        Returns:
            self, for chaining.
        """
        import onnxruntime as ort

        sess_options = ort.SessionOptions()
        sess_options.graph_optimization_level = ort.GraphOptimizationLevel.ORT_ENABLE_ALL
        sess_options.intra_op_num_threads = self.num_threads

        self.session = ort.InferenceSession(
            model_path,
            sess_options=sess_options,
            providers=get_execution_providers(self.providers),
        )

        input_info = self.session.get_inputs()[0]
        self._input_name = input_info.name
        self._output_name = self.session.get_outputs()[0].name
        self._input_shape = tuple(input_info.shape)

        logger.info(f"Loaded {model_path} with provider {self.session.get_providers()[0]}")
        return self

    def run(self, input_tensor: np.ndarray) -> np.ndarray:
        if self.session is None:
            raise RuntimeError("Model not loaded. Call load() first.")

        outputs = self.session.run(
            [self._output_name],
            {self._input_name: input_tensor.astype(np.float32)},
        )
        return outputs[0]

    @property
    def input_size(self) -> Optional[int]:
        """Square input edge from the model signature, if static."""
        if self._input_shape is None or len(self._input_shape) != 4:
            return None
        size = self._input_shape[-1]
        return size if isinstance(size, int) else None

    @property
    def is_loaded(self) -> bool:
        return self.session is not None


def load_yolo_detector(model_path: str, input_size: Optional[int] = None, **kwargs) -> YoloDetector:
    """Load an ONNX YOLO model and wrap it in a YoloDetector.

    Args:
        model_path: Path to .onnx model file.
        input_size: Model input edge; read from the model when omitted.
        **kwargs: Passed to YoloDetector.

    Returns:
        YoloDetector instance.
    """
    backend = OnnxInferenceBackend().load(model_path)
    size = input_size or backend.input_size or 640
    return YoloDetector(backend, input_size=size, **kwargs)
