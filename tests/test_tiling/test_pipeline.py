"""Tests for TiledDetector and detect_tiled."""

import threading

import numpy as np
import pytest

from tiledetect.config import DetectionConfig
from tiledetect.detectors.base import CallableDetector
from tiledetect.errors import ConfigurationError, PipelineCancelled, PipelineError
from tiledetect.tiling.backends import EncodedImageBackend, TensorImageBackend
from tiledetect.tiling.models import Detection
from tiledetect.tiling.pipeline import TiledDetector, detect_tiled
from tests.fixtures.detection_fixtures import (
    FailingDetector,
    FixedDetector,
    RecordingDetector,
    WhiteSquareDetector,
    create_blank_image,
    create_marked_image,
    encode_png,
)


class TestTiledDetectorInit:
    """Tests for TiledDetector initialization."""

    def test_default_config(self):
        tiled = TiledDetector(FixedDetector())
        assert tiled.config.slice_size == 400
        assert isinstance(tiled.backend, TensorImageBackend)

    def test_backend_follows_detector_format(self):
        tiled = TiledDetector(RecordingDetector(input_format="encoded"))
        assert isinstance(tiled.backend, EncodedImageBackend)

    def test_explicit_backend(self):
        backend = EncodedImageBackend(encoding=".jpg")
        tiled = TiledDetector(FixedDetector(), backend=backend)
        assert tiled.backend is backend

    def test_invalid_config_rejected_before_work(self):
        detector = FixedDetector()
        with pytest.raises(ConfigurationError):
            TiledDetector(detector, DetectionConfig(slice_size=0))
        assert detector.calls == 0


class TestTiledDetection:
    """End-to-end tests with a deterministic square detector."""

    def test_single_object(self):
        image = create_marked_image((800, 800), squares=[(100, 100, 50)])
        result = TiledDetector(WhiteSquareDetector()).detect(image)

        assert result.tile_count == 9
        assert result.image_width == 800
        assert result.image_height == 800
        assert not result.degraded
        assert len(result.detections) == 1
        assert result.detections[0].bbox == (100, 100, 50, 50)

    def test_object_in_overlap_deduplicated(self):
        """A square seen by four overlapping tiles is reported once."""
        image = create_marked_image((800, 800), squares=[(340, 340, 40)])
        tiled = TiledDetector(WhiteSquareDetector(), DetectionConfig(slice_size=400, overlap_ratio=0.2))
        result = tiled.detect(image)

        assert len(result.detections) == 1
        assert result.detections[0].bbox == (340, 340, 40, 40)

    def test_objects_in_edge_tiles(self):
        """Boxes in padded edge tiles keep their image coordinates."""
        image = create_marked_image((1000, 1000), squares=[(965, 965, 30), (10, 970, 20)])
        result = TiledDetector(WhiteSquareDetector()).detect(image)
        boxes = sorted(d.bbox for d in result.detections)
        assert boxes == [(10, 970, 20, 20), (965, 965, 30, 30)]

    def test_no_overlap_counts(self):
        image = create_marked_image((800, 800), squares=[(50, 50, 20), (450, 450, 20)])
        config = DetectionConfig(slice_size=400, overlap_ratio=0.0)
        result = TiledDetector(WhiteSquareDetector(), config).detect(image)
        assert result.tile_count == 4
        assert len(result.detections) == 2

    def test_encoded_tiles(self):
        """Detectors taking encoded input receive PNG bytes."""
        recorder = RecordingDetector(input_format="encoded")
        TiledDetector(recorder).detect(create_blank_image((500, 500)))
        assert len(recorder.inputs) == 4
        assert all(data.startswith(b"\x89PNG") for data in recorder.inputs)

    def test_encoded_source_image(self):
        image = create_marked_image((800, 800), squares=[(100, 100, 50)])
        result = TiledDetector(WhiteSquareDetector()).detect(encode_png(image))
        assert [d.bbox for d in result.detections] == [(100, 100, 50, 50)]

    def test_clip_to_image(self):
        """Boxes reaching into padding are clipped."""
        padded_box = [Detection(bbox=(30, 10, 100, 20), label="Car", score=0.9)]
        image = create_blank_image((400, 440))
        config = DetectionConfig(slice_size=400, overlap_ratio=0.0)

        result = TiledDetector(FixedDetector(padded_box), config).detect(image)
        # Tile at x=400 reports (430, 10, 100, 20), clipped to the 440px width
        assert sorted(d.bbox for d in result.detections) == [(30, 10, 100, 20), (430, 10, 10, 20)]

    def test_clip_disabled(self):
        padded_box = [Detection(bbox=(30, 10, 100, 20), label="Car", score=0.9)]
        image = create_blank_image((400, 440))
        config = DetectionConfig(slice_size=400, overlap_ratio=0.0, clip_to_image=False)

        result = TiledDetector(FixedDetector(padded_box), config).detect(image)
        assert (430, 10, 100, 20) in [d.bbox for d in result.detections]

    def test_max_detections(self):
        image = create_marked_image((800, 800), squares=[(50, 50, 20), (450, 450, 20), (50, 450, 20)])
        config = DetectionConfig(max_detections=2)
        result = TiledDetector(WhiteSquareDetector(), config).detect(image)
        assert len(result.detections) == 2

    def test_parallel_matches_sequential(self):
        image = create_marked_image(
            (1000, 1000), squares=[(100, 100, 50), (340, 340, 40), (700, 300, 60), (965, 965, 30)]
        )
        sequential = TiledDetector(WhiteSquareDetector()).detect(image)
        parallel = TiledDetector(
            [WhiteSquareDetector() for _ in range(4)],
            DetectionConfig(max_workers=4),
        ).detect(image)
        assert parallel.detections == sequential.detections


class TestTileFailures:
    """Tests for per-tile failure isolation."""

    def test_failure_on_tile_two_of_four(self):
        """The pipeline succeeds and reports the failed tile."""
        image = create_marked_image((800, 800), squares=[(50, 50, 20), (450, 50, 20), (50, 450, 20)])
        detector = FailingDetector(fail_on={2}, inner=WhiteSquareDetector())
        config = DetectionConfig(slice_size=400, overlap_ratio=0.0)

        result = TiledDetector(detector, config).detect(image)

        assert result.tile_count == 4
        assert result.degraded
        assert [f.tile_id for f in result.failures] == ["tile_2"]
        # The square at (50, 450) lives only in the failed tile
        assert sorted(d.bbox for d in result.detections) == [(50, 50, 20, 20), (450, 50, 20, 20)]

    def test_all_tiles_fail(self):
        def broken(image, max_boxes, min_score):
            raise RuntimeError("gpu lost")

        result = TiledDetector(CallableDetector(broken)).detect(create_blank_image((800, 800)))
        assert result.detections == []
        assert len(result.failures) == result.tile_count


class TestPipelineErrors:
    """Tests for failures outside tile scope."""

    def test_undecodable_image(self):
        with pytest.raises(PipelineError):
            TiledDetector(FixedDetector()).detect(b"garbage")

    def test_empty_image(self):
        with pytest.raises(PipelineError):
            TiledDetector(FixedDetector()).detect(np.zeros((0, 0, 3), dtype=np.uint8))

    def test_unsupported_channels(self):
        with pytest.raises(PipelineError):
            TiledDetector(FixedDetector()).detect(np.zeros((10, 10, 2), dtype=np.uint8))

    def test_cancelled(self):
        event = threading.Event()
        event.set()
        with pytest.raises(PipelineCancelled):
            TiledDetector(FixedDetector()).detect(create_blank_image((800, 800)), cancel_event=event)


class TestProgressCallback:
    """Tests for pipeline progress stages."""

    def test_stages(self):
        updates = []
        TiledDetector(FixedDetector(), progress_callback=updates.append).detect(
            create_blank_image((800, 800))
        )
        statuses = [u.status for u in updates]
        assert statuses[0] == "processing"
        assert statuses[-2:] == ["merging", "complete"]
        assert updates[-1].progress_percent == 100.0


class TestDetectTiled:
    """Tests for the detect_tiled function."""

    def test_detect_tiled(self):
        image = create_marked_image((800, 800), squares=[(340, 340, 40)])
        detections = detect_tiled(image, WhiteSquareDetector())
        assert [d.bbox for d in detections] == [(340, 340, 40, 40)]

    def test_small_image_single_tile(self):
        image = create_marked_image((100, 150), squares=[(10, 10, 20)])
        detections = detect_tiled(image, WhiteSquareDetector(), slice_size=400)
        assert len(detections) == 1

    def test_invalid_overlap(self):
        with pytest.raises(ConfigurationError):
            detect_tiled(create_blank_image((100, 100)), FixedDetector(), overlap_ratio=1.0)

    def test_invalid_nms_threshold(self):
        with pytest.raises(ConfigurationError):
            detect_tiled(create_blank_image((100, 100)), FixedDetector(), nms_threshold=1.5)

    def test_min_score_passed_through(self):
        low = [Detection(bbox=(1, 1, 5, 5), label="Car", score=0.3)]
        assert detect_tiled(create_blank_image((100, 100)), FixedDetector(low)) == []
        assert len(detect_tiled(create_blank_image((100, 100)), FixedDetector(low), min_score=0.2)) == 1

    def test_non_integer_slice_size(self):
        detector = FixedDetector()
        with pytest.raises(ConfigurationError):
            detect_tiled(create_blank_image((100, 100)), detector, slice_size=40.5)
        assert detector.calls == 0

    def test_dict_records_from_callable(self):
        detector = CallableDetector(
            lambda image, max_boxes, min_score: [{"bbox": (1, 1, 5, 5), "label": "a", "score": 0.9}]
        )
        detections = detect_tiled(create_blank_image((100, 100)), detector)
        assert detections == [Detection(bbox=(1, 1, 5, 5), label="a", score=0.9)]
