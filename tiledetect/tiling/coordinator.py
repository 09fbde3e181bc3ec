"""
DetectionCoordinator: runs a detector over tiles with per-tile failure isolation.

A failing tile contributes no detections and a TileFailure event; the rest of
the image is still processed. Each tile's buffer is released as soon as its
detector call returns or raises.
"""

import logging
import queue
import threading
import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple, Union

from ..detectors.base import Detector
from ..errors import DetectionError, PipelineCancelled
from .models import Detection, Tile, TileDetections, TileFailure

logger = logging.getLogger(__name__)


@dataclass
class ProcessingProgress:
    """Progress information for tiled detection."""
    total_tiles: int
    completed_tiles: int
    current_tile: Optional[str] = None
    status: str = "pending"  # pending, processing, merging, complete, error
    failed_tiles: int = 0
    error_message: Optional[str] = None

    @property
    def progress_percent(self) -> float:
        """Get completion percentage."""
        if self.total_tiles == 0:
            return 100.0
        return (self.completed_tiles / self.total_tiles) * 100

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "total_tiles": self.total_tiles,
            "completed_tiles": self.completed_tiles,
            "current_tile": self.current_tile,
            "status": self.status,
            "failed_tiles": self.failed_tiles,
            "progress_percent": self.progress_percent,
            "error_message": self.error_message,
        }


ProgressCallback = Callable[[ProcessingProgress], None]
DetectorSource = Union[Detector, Sequence[Detector]]


def as_detection(item: Any) -> Detection:
    """
    Coerce one detector output record to a Detection.

    Accepts Detection instances and {"bbox", "label", "score"} mappings.

    Raises:
        DetectionError: If the record is malformed
    """
    if isinstance(item, Detection):
        return item
    if isinstance(item, Mapping):
        try:
            return Detection.from_dict(item)
        except (KeyError, TypeError, ValueError) as e:
            raise DetectionError(f"Malformed detection record {item!r}: {e}") from e
    raise DetectionError(f"Detector returned {type(item).__name__}, expected a Detection")


class DetectionCoordinator:
    """
    Drives a detector over a sequence of tiles.

    Tiles are processed sequentially unless max_workers > 1. A detector
    instance never serves two tiles at once unless it sets
    supports_concurrency; pass several instances to scale out.

    Example:
        >>> coordinator = DetectionCoordinator(max_boxes_per_tile=2000, min_score=0.5)
        >>> results, failures = coordinator.detect_tiles(tiles, detector)
    """

    def __init__(
        self,
        max_boxes_per_tile: int = 2000,
        min_score: float = 0.5,
        max_workers: int = 1,
        progress_callback: Optional[ProgressCallback] = None,
        cancel_event: Optional[threading.Event] = None,
    ):
        """
        Initialize the coordinator.

        Args:
            max_boxes_per_tile: Cap on raw detections requested per tile
            min_score: Confidence floor passed to the detector
            max_workers: Number of tiles processed concurrently
            progress_callback: Optional callback for progress updates
            cancel_event: Optional event; once set, no further tiles start
        """
        self.max_boxes_per_tile = max_boxes_per_tile
        self.min_score = min_score
        self.max_workers = max(1, max_workers)
        self.progress_callback = progress_callback
        self.cancel_event = cancel_event
        self._progress = ProcessingProgress(total_tiles=0, completed_tiles=0)

    def detect_tiles(
        self,
        tiles: Iterable[Tile],
        detector: DetectorSource,
        total_tiles: Optional[int] = None,
    ) -> Tuple[List[TileDetections], List[TileFailure]]:
        """
        Run detection over every tile.

        Args:
            tiles: Tiles to process (consumed lazily in sequential mode)
            detector: A detector, or one detector per worker
            total_tiles: Tile count for progress reporting when tiles is lazy

        Returns:
            (per-tile raw detections in tile order, failure events)

        Raises:
            PipelineCancelled: If the cancel event was set before all tiles finished
        """
        instances = self._detector_instances(detector)
        workers = min(self.max_workers, len(instances))

        if total_tiles is None and isinstance(tiles, Sequence):
            total_tiles = len(tiles)
        total = total_tiles or 0

        if workers > 1:
            results, failures = self._detect_parallel(list(tiles), instances, workers)
        else:
            results, failures = self._detect_sequential(tiles, instances[0], total)

        if failures:
            logger.info(f"{len(failures)} of {len(results)} tiles failed detection")
        return results, failures

    def _detector_instances(self, detector: DetectorSource) -> List[Detector]:
        if isinstance(detector, Detector):
            if detector.supports_concurrency:
                return [detector] * self.max_workers
            return [detector]

        instances = list(detector)
        if not instances:
            raise ValueError("At least one detector instance is required")
        return instances

    def _detect_one(
        self,
        tile: Tile,
        detector: Detector,
    ) -> Tuple[TileDetections, Optional[TileFailure]]:
        """Detect on one tile, always releasing its buffer."""
        start_time = time.time()
        try:
            detections = detector.detect(
                tile.data,
                max_boxes=self.max_boxes_per_tile,
                min_score=self.min_score,
            )
            return TileDetections(
                tile_id=tile.id,
                offset=tile.offset,
                detections=[as_detection(d) for d in list(detections)[:self.max_boxes_per_tile]],
            ), None
        except Exception as e:
            logger.warning(
                f"Detection failed on {tile.id} at ({tile.offset_x}, {tile.offset_y}): "
                f"{type(e).__name__}: {e}"
            )
            failure = TileFailure(
                tile_id=tile.id,
                offset_x=tile.offset_x,
                offset_y=tile.offset_y,
                error_kind=type(e).__name__,
                message=str(e),
            )
            return TileDetections(tile_id=tile.id, offset=tile.offset, detections=[]), failure
        finally:
            tile.release()
            logger.debug(f"{tile.id} processed in {(time.time() - start_time) * 1000:.1f}ms")

    def _check_cancelled(self, completed: int, total: int):
        if self.cancel_event is not None and self.cancel_event.is_set():
            self.update_progress(total, completed, "error", error="cancelled")
            raise PipelineCancelled(f"Detection cancelled after {completed} tiles")

    def _detect_sequential(
        self,
        tiles: Iterable[Tile],
        detector: Detector,
        total: int,
    ) -> Tuple[List[TileDetections], List[TileFailure]]:
        """Process tiles one at a time."""
        results = []
        failures = []

        for i, tile in enumerate(tiles):
            try:
                self._check_cancelled(i, total)
            except PipelineCancelled:
                tile.release()
                raise

            self.update_progress(total, i, "processing", tile.id, len(failures))
            result, failure = self._detect_one(tile, detector)
            results.append(result)
            if failure is not None:
                failures.append(failure)

        self.update_progress(max(total, len(results)), len(results), "processing", None, len(failures))
        return results, failures

    def _detect_parallel(
        self,
        tiles: List[Tile],
        instances: List[Detector],
        workers: int,
    ) -> Tuple[List[TileDetections], List[TileFailure]]:
        """Process tiles on a thread pool, one in-flight call per detector instance."""
        pool: "queue.Queue[Detector]" = queue.Queue()
        for instance in instances:
            pool.put(instance)

        def run(tile: Tile) -> Tuple[TileDetections, Optional[TileFailure]]:
            if self.cancel_event is not None and self.cancel_event.is_set():
                tile.release()
                return TileDetections(tile_id=tile.id, offset=tile.offset), None
            instance = pool.get()
            try:
                return self._detect_one(tile, instance)
            finally:
                pool.put(instance)

        results: List[Optional[TileDetections]] = [None] * len(tiles)
        failures_by_index: Dict[int, TileFailure] = {}
        completed = 0

        with ThreadPoolExecutor(max_workers=workers) as executor:
            future_to_idx = {
                executor.submit(run, tile): i
                for i, tile in enumerate(tiles)
            }

            for future in as_completed(future_to_idx):
                idx = future_to_idx[future]
                completed += 1
                result, failure = future.result()
                results[idx] = result
                if failure is not None:
                    failures_by_index[idx] = failure
                self.update_progress(
                    len(tiles), completed, "processing", tiles[idx].id, len(failures_by_index)
                )

        self._check_cancelled(completed, len(tiles))

        failures = [failures_by_index[i] for i in sorted(failures_by_index)]
        return [r for r in results if r is not None], failures

    def update_progress(
        self,
        total: int,
        completed: int,
        status: str,
        current_tile: Optional[str] = None,
        failed: int = 0,
        error: Optional[str] = None,
    ):
        """Update progress and notify callback."""
        self._progress = ProcessingProgress(
            total_tiles=total,
            completed_tiles=completed,
            current_tile=current_tile,
            status=status,
            failed_tiles=failed,
            error_message=error,
        )

        if self.progress_callback:
            self.progress_callback(self._progress)

    @property
    def progress(self) -> ProcessingProgress:
        """Get current processing progress."""
        return self._progress


def detect_tiles(
    tiles: Iterable[Tile],
    detector: DetectorSource,
    max_boxes_per_tile: int = 2000,
    min_score: float = 0.5,
) -> Tuple[List[TileDetections], List[TileFailure]]:
    """
    Run a detector over tiles sequentially.

    Args:
        tiles: Tiles to process
        detector: Detector capability
        max_boxes_per_tile: Cap on raw detections per tile
        min_score: Confidence floor passed to the detector

    Returns:
        (per-tile raw detections, failure events)
    """
    coordinator = DetectionCoordinator(max_boxes_per_tile=max_boxes_per_tile, min_score=min_score)
    return coordinator.detect_tiles(tiles, detector)
