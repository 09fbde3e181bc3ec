"""Tests for ImageSlicer class."""

import gc
import weakref

import numpy as np
import pytest

from tiledetect.config import DetectionConfig
from tiledetect.errors import ConfigurationError
from tiledetect.tiling.backends import EncodedImageBackend
from tiledetect.tiling.slicer import ImageSlicer, slice_image
from tests.fixtures.detection_fixtures import create_blank_image, encode_png


class TestImageSlicerInit:
    """Tests for ImageSlicer initialization."""

    def test_default_init(self):
        """Test default initialization."""
        slicer = ImageSlicer()
        assert slicer.slice_size == 400
        assert slicer.overlap == 80
        assert slicer.step == 320

    def test_overlap_truncated(self):
        """Overlap is truncated toward zero."""
        slicer = ImageSlicer(slice_size=333, overlap_ratio=0.2)
        assert slicer.overlap == 66
        assert slicer.step == 267

    def test_init_with_config(self):
        config = DetectionConfig(slice_size=256, overlap_ratio=0.25, tile_format="encoded")
        slicer = ImageSlicer(config=config)
        assert slicer.slice_size == 256
        assert slicer.step == 192
        assert isinstance(slicer.backend, EncodedImageBackend)

    @pytest.mark.parametrize("slice_size,overlap_ratio", [
        (0, 0.2),
        (-5, 0.2),
        (400, 1.0),
        (400, -0.1),
    ])
    def test_invalid_parameters(self, slice_size, overlap_ratio):
        with pytest.raises(ConfigurationError):
            ImageSlicer(slice_size=slice_size, overlap_ratio=overlap_ratio)

    @pytest.mark.parametrize("slice_size,overlap_ratio", [
        (40.5, 0.2),
        ("400", 0.2),
        (True, 0.2),
        (400, "0.2"),
        (400, None),
    ])
    def test_wrong_parameter_types(self, slice_size, overlap_ratio):
        with pytest.raises(ConfigurationError):
            ImageSlicer(slice_size=slice_size, overlap_ratio=overlap_ratio)

    def test_configuration_error_is_value_error(self):
        with pytest.raises(ValueError):
            ImageSlicer(slice_size=0)


class TestGridBoundaries:
    """Tests for tile geometry."""

    def test_worked_example(self):
        """1000x1000, slice 400, overlap 0.2."""
        slicer = ImageSlicer(slice_size=400, overlap_ratio=0.2)
        boundaries = slicer.calculate_grid_boundaries(1000, 1000)

        assert len(boundaries) == 16
        assert sorted({x for x, _, _, _ in boundaries}) == [0, 320, 640, 960]
        assert sorted({y for _, y, _, _ in boundaries}) == [0, 320, 640, 960]

        last = boundaries[-1]
        assert last == (960, 960, 40, 40)

    def test_row_major_order(self):
        slicer = ImageSlicer(slice_size=400, overlap_ratio=0.0)
        boundaries = slicer.calculate_grid_boundaries(800, 800)
        assert [(x, y) for x, y, _, _ in boundaries] == [
            (0, 0), (400, 0), (0, 400), (400, 400),
        ]

    def test_image_smaller_than_tile(self):
        slicer = ImageSlicer(slice_size=400, overlap_ratio=0.2)
        assert slicer.calculate_grid_boundaries(100, 50) == [(0, 0, 100, 50)]

    def test_non_square_image(self):
        slicer = ImageSlicer(slice_size=400, overlap_ratio=0.2)
        boundaries = slicer.calculate_grid_boundaries(1000, 300)
        assert len(boundaries) == 4
        assert all(h == 300 for _, _, _, h in boundaries)

    @pytest.mark.parametrize("width,height", [(1000, 1000), (1, 1), (799, 801), (1920, 1080)])
    def test_tile_count_matches_grid(self, width, height):
        slicer = ImageSlicer(slice_size=400, overlap_ratio=0.2)
        assert slicer.get_tile_count(width, height) == len(
            slicer.calculate_grid_boundaries(width, height)
        )

    def test_tile_count_empty(self):
        assert ImageSlicer().get_tile_count(0, 100) == 0

    @pytest.mark.parametrize("width,height,size,ratio", [
        (1000, 1000, 400, 0.2),
        (517, 233, 128, 0.5),
        (640, 640, 640, 0.0),
    ])
    def test_grid_covers_every_pixel(self, width, height, size, ratio):
        """Every pixel lies in at least one tile."""
        slicer = ImageSlicer(slice_size=size, overlap_ratio=ratio)
        covered = np.zeros((height, width), dtype=bool)
        for x, y, w, h in slicer.calculate_grid_boundaries(width, height):
            covered[y:y + h, x:x + w] = True
        assert covered.all()


class TestSlice:
    """Tests for tile materialization."""

    def test_tiles_are_padded_to_slice_size(self):
        image = create_blank_image((1000, 1000), value=9)
        tiles = ImageSlicer(slice_size=400, overlap_ratio=0.2).slice(image)

        assert len(tiles) == 16
        for tile in tiles:
            assert tile.data.shape == (400, 400, 3)

        last_in_row = tiles[3]
        assert last_in_row.offset == (960, 0)
        assert last_in_row.slice_width == 40
        assert last_in_row.is_padded
        assert np.all(last_in_row.data[:, :40] == 9)
        assert np.all(last_in_row.data[:, 40:] == 0)

    def test_tile_content_matches_source(self):
        image = np.random.RandomState(0).randint(0, 255, (500, 700, 3), dtype=np.uint8)
        for tile in ImageSlicer(slice_size=256, overlap_ratio=0.25).slice(image):
            x1, y1, x2, y2 = tile.bounds
            assert np.array_equal(tile.data[:y2 - y1, :x2 - x1], image[y1:y2, x1:x2])

    def test_tile_ids_and_indices(self):
        tiles = ImageSlicer(slice_size=400, overlap_ratio=0.0).slice(create_blank_image((800, 800)))
        assert [t.id for t in tiles] == ["tile_0", "tile_1", "tile_2", "tile_3"]
        assert [t.index for t in tiles] == [0, 1, 2, 3]

    def test_iter_tiles_is_lazy(self):
        slicer = ImageSlicer(slice_size=400, overlap_ratio=0.0)
        tiles = slicer.iter_tiles(create_blank_image((800, 800)))
        first = next(tiles)
        assert first.id == "tile_0"

    def test_released_tile_buffer_is_freed(self):
        """Once a tile is released nothing else keeps its pixel buffer alive."""
        slicer = ImageSlicer(slice_size=400, overlap_ratio=0.0)
        tiles = slicer.iter_prepared_tiles(create_blank_image((800, 800)))
        tile = next(tiles)
        buffer_ref = weakref.ref(tile.data)

        tile.release()
        gc.collect()

        assert buffer_ref() is None
        assert next(tiles).id == "tile_1"

    def test_encoded_source(self):
        data = encode_png(create_blank_image((300, 500)))
        tiles = ImageSlicer(slice_size=400, overlap_ratio=0.2).slice(data)
        assert len(tiles) == 2

    def test_encoded_tiles(self):
        slicer = ImageSlicer(slice_size=400, overlap_ratio=0.2, backend=EncodedImageBackend())
        tiles = slicer.slice(create_blank_image((300, 500)))
        assert all(isinstance(t.data, bytes) for t in tiles)

    def test_slice_image_function(self):
        tiles = slice_image(create_blank_image((1000, 1000)), 400, 0.2)
        assert len(tiles) == 16
