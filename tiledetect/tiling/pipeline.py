"""
TiledDetector: slice, detect per tile, remap and merge.
"""

import logging
import threading
import time
from typing import List, Optional

from ..config import DetectionConfig
from ..detectors.base import Detector
from ..errors import PipelineError
from .backends import ImageBackend, SourceImage, create_backend
from .coordinator import DetectionCoordinator, DetectorSource, ProgressCallback
from .merging import merge_detections
from .models import Detection, TiledDetectionResult
from .slicer import ImageSlicer
from .transforms import clip_detections, remap_detections

logger = logging.getLogger(__name__)


class TiledDetector:
    """
    Detection on images larger than the detector's input resolution.

    Handles:
    - Slicing the image into overlapping, padded tiles
    - Running the detector per tile with failure isolation
    - Remapping tile-local boxes into image coordinates
    - Per-label NMS over the combined detections

    Example:
        >>> tiled = TiledDetector(detector, DetectionConfig(slice_size=400))
        >>> result = tiled.detect(image)
        >>> for det in result.detections:
        ...     print(det.label, det.score, det.bbox)
    """

    def __init__(
        self,
        detector: DetectorSource,
        config: Optional[DetectionConfig] = None,
        backend: Optional[ImageBackend] = None,
        progress_callback: Optional[ProgressCallback] = None,
    ):
        """
        Initialize the tiled detector.

        Args:
            detector: Detector, or one detector per worker
            config: Detection configuration
            backend: Tile materialization backend; defaults to the one matching
                the detector's input format
            progress_callback: Optional callback for progress updates
        """
        self.config = config or DetectionConfig()
        self.detector = detector
        self.progress_callback = progress_callback

        if backend is None:
            tile_format = self.config.tile_format
            first = detector if isinstance(detector, Detector) else next(iter(detector), None)
            if first is not None and first.input_format != tile_format:
                tile_format = first.input_format
            backend = create_backend(tile_format, self.config.encoding)
        self.backend = backend

        self.slicer = ImageSlicer(config=self.config, backend=self.backend)

    def detect(
        self,
        image: SourceImage,
        cancel_event: Optional[threading.Event] = None,
    ) -> TiledDetectionResult:
        """
        Run tiled detection on one image.

        Args:
            image: Input image (H, W, 3) array or encoded bytes
            cancel_event: Optional event to abandon the request

        Returns:
            TiledDetectionResult with merged detections and per-tile failures

        Raises:
            PipelineError: If the image cannot be read or the request is cancelled
        """
        start_time = time.time()

        try:
            prepared = self.backend.prepare(image)
        except PipelineError:
            raise
        except Exception as e:
            raise PipelineError(f"Could not read source image: {e}") from e

        width, height = self.backend.get_dimensions(prepared)
        tile_count = self.slicer.get_tile_count(width, height)

        coordinator = DetectionCoordinator(
            max_boxes_per_tile=self.config.max_boxes_per_tile,
            min_score=self.config.min_score,
            max_workers=self.config.max_workers,
            progress_callback=self.progress_callback,
            cancel_event=cancel_event,
        )
        tile_results, failures = coordinator.detect_tiles(
            self.slicer.iter_prepared_tiles(prepared),
            self.detector,
            total_tiles=tile_count,
        )

        coordinator.update_progress(tile_count, tile_count, "merging", failed=len(failures))

        remapped: List[Detection] = []
        for result in tile_results:
            remapped.extend(remap_detections(result.offset, result.detections))
        if self.config.clip_to_image:
            remapped = clip_detections(remapped, width, height)

        detections = merge_detections(
            remapped,
            iou_threshold=self.config.nms_threshold,
            max_detections=self.config.max_detections,
        )

        coordinator.update_progress(tile_count, tile_count, "complete", failed=len(failures))

        processing_time = (time.time() - start_time) * 1000
        logger.info(
            f"Tiled detection complete: {width}x{height}, {tile_count} tiles, "
            f"{len(remapped)} raw -> {len(detections)} merged detections, "
            f"{len(failures)} failed tiles, {processing_time:.1f}ms"
        )

        return TiledDetectionResult(
            detections=detections,
            failures=failures,
            tile_count=tile_count,
            image_width=width,
            image_height=height,
            processing_time_ms=processing_time,
        )


def detect_tiled(
    image: SourceImage,
    detector: DetectorSource,
    slice_size: int = 400,
    overlap_ratio: float = 0.2,
    nms_threshold: float = 0.5,
    max_boxes_per_tile: int = 2000,
    min_score: float = 0.5,
) -> List[Detection]:
    """
    Tiled detection with per-label NMS merge.

    Args:
        image: Input image
        detector: Detector capability
        slice_size: Tile edge length in pixels
        overlap_ratio: Fraction of tile overlap, in [0, 1)
        nms_threshold: Same-label IoU cutoff for duplicates
        max_boxes_per_tile: Cap on raw detections per tile
        min_score: Confidence floor applied by the detector

    Returns:
        Merged detections in image coordinates

    Raises:
        ConfigurationError: On invalid parameters, before any tile work
        PipelineError: If the image cannot be read
    """
    config = DetectionConfig(
        slice_size=slice_size,
        overlap_ratio=overlap_ratio,
        nms_threshold=nms_threshold,
        max_boxes_per_tile=max_boxes_per_tile,
        min_score=min_score,
    )
    return TiledDetector(detector, config).detect(image).detections

