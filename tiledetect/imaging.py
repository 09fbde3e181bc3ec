"""
Image decode/encode helpers shared by the CLI and the server.
"""

import base64
import binascii
import io
import json
from pathlib import Path
from typing import Any, Union

import cv2
import numpy as np
from PIL import Image

from .errors import PipelineError


def ensure_three_channels(image: np.ndarray) -> np.ndarray:
    """
    Return a 3-channel view of an image.

    Grayscale images are expanded and alpha channels dropped.
    """
    if image.ndim == 2:
        return cv2.cvtColor(image, cv2.COLOR_GRAY2BGR)
    if image.ndim == 3 and image.shape[2] == 1:
        return cv2.cvtColor(image, cv2.COLOR_GRAY2BGR)
    if image.ndim == 3 and image.shape[2] == 4:
        return cv2.cvtColor(image, cv2.COLOR_BGRA2BGR)
    if image.ndim == 3 and image.shape[2] == 3:
        return image
    raise PipelineError(f"Unsupported image shape: {image.shape}")


def decode_image_bytes(data: bytes) -> np.ndarray:
    """Decode encoded image bytes (PNG, JPEG, ...) to a BGR array."""
    img_array = np.frombuffer(data, dtype=np.uint8)
    image = cv2.imdecode(img_array, cv2.IMREAD_COLOR) if img_array.size else None
    if image is None:
        raise PipelineError("Failed to decode image")
    return image


def image_from_base64(base64_string: str) -> np.ndarray:
    """Decode a base64 image string (optionally a data URL) to a BGR array."""
    # Remove data URL prefix if present
    if "," in base64_string:
        base64_string = base64_string.split(",", 1)[1]

    try:
        img_bytes = base64.b64decode(base64_string, validate=False)
    except (binascii.Error, ValueError) as e:
        raise PipelineError(f"Invalid base64 image: {e}") from e

    return decode_image_bytes(img_bytes)


def image_to_base64(image: np.ndarray, format: str = "png") -> str:
    """Encode a BGR array to a base64 string."""
    # Convert BGR to RGB for PIL
    if len(image.shape) == 3:
        image_rgb = cv2.cvtColor(image, cv2.COLOR_BGR2RGB)
    else:
        image_rgb = image

    pil_image = Image.fromarray(image_rgb)
    buffer = io.BytesIO()
    pil_format = "JPEG" if format.lower() in ("jpg", "jpeg") else format.upper()
    pil_image.save(buffer, format=pil_format)
    buffer.seek(0)

    return base64.b64encode(buffer.read()).decode("utf-8")


def load_image(path: Union[str, Path]) -> np.ndarray:
    """Read an image file, raising PipelineError when it cannot be loaded."""
    image_path = Path(path)
    if not image_path.exists():
        raise PipelineError(f"Image not found: {image_path}")

    image = cv2.imread(str(image_path))
    if image is None:
        raise PipelineError(f"Could not load image: {image_path}")
    return image


def convert_numpy_types(obj: Any) -> Any:
    """Recursively convert numpy types to Python native types for JSON serialization"""
    if isinstance(obj, dict):
        return {k: convert_numpy_types(v) for k, v in obj.items()}
    if isinstance(obj, (list, tuple)):
        return [convert_numpy_types(v) for v in obj]
    if isinstance(obj, np.integer):
        return int(obj)
    if isinstance(obj, np.floating):
        return float(obj)
    if isinstance(obj, np.bool_):
        return bool(obj)
    if isinstance(obj, np.ndarray):
        return obj.tolist()
    return obj


class NumpyEncoder(json.JSONEncoder):
    """Custom JSON encoder that handles numpy types"""
    def default(self, obj: Any) -> Any:
        if isinstance(obj, np.integer):
            return int(obj)
        if isinstance(obj, np.floating):
            return float(obj)
        if isinstance(obj, np.ndarray):
            return obj.tolist()
        if isinstance(obj, np.bool_):
            return bool(obj)
        return super().default(obj)
