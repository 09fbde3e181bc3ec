"""Tests for tile grid and detection visualization."""

import numpy as np

from tiledetect.tiling.models import Detection
from tiledetect.tiling.slicer import ImageSlicer
from tiledetect.tiling.visualization import TILE_COLORS, draw_detections, visualize_tile_grid
from tests.fixtures.detection_fixtures import create_blank_image


class TestVisualizeTileGrid:
    """Tests for visualize_tile_grid function."""

    def test_returns_annotated_copy(self):
        image = create_blank_image((800, 800))
        boundaries = ImageSlicer().calculate_grid_boundaries(800, 800)
        vis = visualize_tile_grid(image, boundaries)

        assert vis.shape == image.shape
        assert vis.dtype == np.uint8
        assert vis.any()
        assert not image.any()

    def test_without_labels(self):
        image = create_blank_image((400, 400))
        vis = visualize_tile_grid(image, [(0, 0, 400, 400)], show_labels=False)
        assert vis.shape == (400, 400, 3)

    def test_palette_is_bgr(self):
        assert all(len(c) == 3 for c in TILE_COLORS)


class TestDrawDetections:
    """Tests for draw_detections function."""

    def test_draws_boxes(self):
        image = create_blank_image((200, 200))
        dets = [Detection(bbox=(50, 50, 40, 40), label="Person", score=0.9)]
        vis = draw_detections(image, dets)

        assert vis.shape == image.shape
        assert vis[70, 50].any()  # left edge
        assert not vis[70, 70].any()  # interior untouched
        assert not image.any()

    def test_no_detections(self):
        image = create_blank_image((100, 100), value=3)
        assert np.array_equal(draw_detections(image, []), image)
