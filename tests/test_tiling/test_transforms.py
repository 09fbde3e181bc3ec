"""Tests for tile-to-image coordinate transforms."""

from tiledetect.tiling.models import Detection
from tiledetect.tiling.transforms import (
    clip_detections,
    original_to_tile,
    remap_detections,
    tile_to_original,
)


class TestPointTransforms:
    """Tests for point transforms."""

    def test_tile_to_original(self):
        assert tile_to_original((10, 20), (320, 640)) == (330, 660)

    def test_original_to_tile(self):
        assert original_to_tile((330, 660), (320, 640)) == (10, 20)

    def test_round_trip(self):
        point = (12.5, 7.25)
        offset = (960, 320)
        assert original_to_tile(tile_to_original(point, offset), offset) == point


class TestRemapDetections:
    """Tests for remap_detections function."""

    def test_remap_moves_origin_only(self):
        dets = [Detection(bbox=(10, 20, 30, 40), label="Person", score=0.9)]
        remapped = remap_detections((320, 640), dets)
        assert remapped[0].bbox == (330, 660, 30, 40)
        assert remapped[0].label == "Person"
        assert remapped[0].score == 0.9

    def test_remap_origin_tile_unchanged(self):
        dets = [Detection(bbox=(10, 20, 30, 40), label="Person", score=0.9)]
        assert remap_detections((0, 0), dets) == dets

    def test_remap_empty(self):
        assert remap_detections((320, 0), []) == []

    def test_remap_keeps_order(self):
        dets = [
            Detection(bbox=(0, 0, 5, 5), label="A", score=0.1),
            Detection(bbox=(1, 1, 5, 5), label="B", score=0.9),
        ]
        assert [d.label for d in remap_detections((5, 5), dets)] == ["A", "B"]


class TestClipDetections:
    """Tests for clip_detections function."""

    def test_inside_unchanged(self):
        dets = [Detection(bbox=(10, 10, 20, 20), label="Car", score=0.8)]
        assert clip_detections(dets, 100, 100) == dets

    def test_box_reaching_into_padding(self):
        dets = [Detection(bbox=(980, 100, 50, 20), label="Car", score=0.8)]
        clipped = clip_detections(dets, 1000, 1000)
        assert clipped[0].bbox == (980, 100, 20, 20)

    def test_box_entirely_in_padding_dropped(self):
        dets = [
            Detection(bbox=(1005, 100, 30, 20), label="Car", score=0.8),
            Detection(bbox=(10, 10, 5, 5), label="Car", score=0.8),
        ]
        clipped = clip_detections(dets, 1000, 1000)
        assert len(clipped) == 1
        assert clipped[0].bbox == (10, 10, 5, 5)
