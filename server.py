"""
FastAPI Server for Tiled Object Detection

Provides REST and websocket endpoints that run tiled detection on
base64-encoded frames and return merged detections.
"""

import json
import logging
import os
import time
from typing import Optional, Tuple

import numpy as np
from fastapi import FastAPI, HTTPException, WebSocket, WebSocketDisconnect
from fastapi.concurrency import run_in_threadpool
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from tiledetect import __version__
from tiledetect.config import DetectionConfig
from tiledetect.detectors.base import Detector, serialized
from tiledetect.errors import ConfigurationError, PipelineError
from tiledetect.imaging import NumpyEncoder, convert_numpy_types, image_from_base64, image_to_base64
from tiledetect.tiling.models import TiledDetectionResult
from tiledetect.tiling.pipeline import TiledDetector
from tiledetect.tiling.visualization import draw_detections

# Configure logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

MODEL_PATH_ENV = "TILEDETECT_MODEL_PATH"
CONFIG_PATH_ENV = "TILEDETECT_CONFIG"


class HealthResponse(BaseModel):
    """Health check response"""
    status: str
    version: str
    detector_loaded: bool


class DetectRequest(BaseModel):
    """Request body for base64-encoded image detection"""
    image: str  # Base64-encoded image (with or without data URL prefix)
    frame: Optional[str] = None  # Opaque frame reference echoed in the response
    include_visualization: bool = False  # Add a base64 PNG with the detections drawn

    # Optional configuration overrides
    slice_size: Optional[int] = None
    overlap_ratio: Optional[float] = None
    nms_threshold: Optional[float] = None
    max_boxes_per_tile: Optional[int] = None
    min_score: Optional[float] = None
    max_detections: Optional[int] = None


def result_record(result: TiledDetectionResult, frame: Optional[str]) -> dict:
    """Flat output record: detections, frame reference and timestamp."""
    return {
        "frame": frame,
        "detections": [d.to_dict() for d in result.detections],
        "failures": [f.to_dict() for f in result.failures],
        "degraded": result.degraded,
        "tile_count": result.tile_count,
        "timestamp": int(time.time() * 1000),
    }


def create_app(
    detector: Optional[Detector] = None,
    config: Optional[DetectionConfig] = None,
) -> FastAPI:
    """
    Create the API application.

    Args:
        detector: Detector shared by all requests; calls into it are serialized
        config: Default detection configuration

    Returns:
        FastAPI app
    """
    app = FastAPI(
        title="Tiled Object Detection API",
        description="Object detection on large images via overlapping tiles and per-label NMS",
        version=__version__,
    )

    # Add CORS middleware for frontend access
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.state.detector = serialized(detector) if detector is not None else None
    app.state.config = config or DetectionConfig()

    def run_detection(image_b64: str, config: DetectionConfig) -> Tuple[np.ndarray, TiledDetectionResult]:
        if app.state.detector is None:
            raise HTTPException(status_code=503, detail="No detector loaded")
        image = image_from_base64(image_b64)
        logger.info(f"Image decoded: {image.shape[1]}x{image.shape[0]}")
        return image, TiledDetector(app.state.detector, config).detect(image)

    @app.get("/health", response_model=HealthResponse)
    async def health_check():
        """Health check endpoint"""
        return HealthResponse(
            status="healthy",
            version=__version__,
            detector_loaded=app.state.detector is not None,
        )

    @app.get("/detect/config")
    async def get_default_config():
        """Get the default detection configuration"""
        return app.state.config.to_dict()

    @app.post("/detect")
    async def detect(request: DetectRequest):
        """
        Run tiled detection on a base64-encoded image.

        Returns merged detections, per-tile failures and a timestamp.
        """
        logger.info("Received detection request")
        try:
            config = app.state.config.with_overrides(
                slice_size=request.slice_size,
                overlap_ratio=request.overlap_ratio,
                nms_threshold=request.nms_threshold,
                max_boxes_per_tile=request.max_boxes_per_tile,
                min_score=request.min_score,
                max_detections=request.max_detections,
            )
            image, result = await run_in_threadpool(run_detection, request.image, config)
        except ConfigurationError as e:
            raise HTTPException(status_code=400, detail=str(e))
        except PipelineError as e:
            logger.error(f"Detection error: {str(e)}")
            raise HTTPException(status_code=400, detail=str(e))

        output = result_record(result, request.frame)
        if request.include_visualization:
            output["visualization"] = image_to_base64(draw_detections(image, result.detections))

        # Use custom encoder to handle numpy types
        json_str = json.dumps(output, cls=NumpyEncoder)
        return JSONResponse(content=json.loads(json_str))

    @app.websocket("/ws")
    async def detect_stream(websocket: WebSocket):
        """
        Streaming detection.

        Each message is either a base64 image or a JSON object
        {"image": ..., "frame": ...}; each reply is one result record.
        """
        await websocket.accept()
        logger.info("Websocket client connected")
        try:
            while True:
                message = await websocket.receive_text()
                frame = None
                image_b64 = message
                if message.lstrip().startswith("{"):
                    try:
                        payload = json.loads(message)
                    except json.JSONDecodeError:
                        await websocket.send_json({"error": "Invalid JSON message"})
                        continue
                    image_b64 = payload.get("image", "")
                    frame = payload.get("frame")

                try:
                    _, result = await run_in_threadpool(run_detection, image_b64, app.state.config)
                except (PipelineError, HTTPException) as e:
                    detail = e.detail if isinstance(e, HTTPException) else str(e)
                    logger.error(f"Detection error: {detail}")
                    await websocket.send_json({"error": detail, "frame": frame})
                    continue

                record = result_record(result, frame if frame is not None else image_b64)
                await websocket.send_json(convert_numpy_types(record))
        except WebSocketDisconnect:
            logger.info("Websocket client disconnected")

    return app


def create_default_app() -> FastAPI:
    """App configured from environment variables."""
    config_path = os.environ.get(CONFIG_PATH_ENV)
    config = DetectionConfig.from_yaml(config_path) if config_path else DetectionConfig()

    detector = None
    model_path = os.environ.get(MODEL_PATH_ENV)
    if model_path:
        from tiledetect.detectors.onnx_backend import load_yolo_detector

        detector = load_yolo_detector(model_path)
    else:
        logger.warning(f"{MODEL_PATH_ENV} not set; /detect will return 503")

    return create_app(detector=detector, config=config)


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(create_default_app(), host="0.0.0.0", port=8346)
