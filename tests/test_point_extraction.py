import cv2
import numpy as np
import pytest

from landmark_localizer.errors import InvalidInputError
from landmark_localizer.point_extraction import PointExtractor, validate_gray_image


def dot_image(centers, shape=(480, 640), radius=2):
    image = np.zeros(shape, dtype=np.uint8)
    for x, y in centers:
        cv2.circle(image, (x, y), radius, 255, -1)
    return image


def test_finds_dot_centres():
    centers = [(300, 300), (100, 100), (200, 150)]
    points = PointExtractor().detect(dot_image(centers))

    assert len(points) == 3
    # row-major discovery order
    expected = [(100, 100), (200, 150), (300, 300)]
    for (px, py), (ex, ey) in zip(points, expected):
        assert abs(px - ex) < 1e-6
        assert abs(py - ey) < 1e-6


def test_black_image_gives_no_points():
    assert PointExtractor().detect(np.zeros((120, 160), dtype=np.uint8)) == []


def test_uniform_brightness_is_suppressed():
    image = np.full((120, 160), 200, dtype=np.uint8)
    assert PointExtractor().detect(image) == []


def test_filtered_image_is_binary_mask():
    extractor = PointExtractor()
    extractor.detect(dot_image([(50, 50)], shape=(100, 100)))

    assert extractor.filtered_image.shape == (100, 100)
    assert set(np.unique(extractor.filtered_image)) <= {0, 255}
    assert extractor.filtered_image[50, 50] == 255
    assert len(extractor.pixel_clusters) == 1


def test_blob_size_limits():
    config = {
        'THRESHOLD': 20,
        'TIGHT_FILTER_SIZE': 3,
        'WIDE_FILTER_SIZE': 11,
        'PIXEL_CLUSTER_RADIUS': 3,
        'MIN_PIXELS': 1,
        'MAX_PIXELS': 10
    }
    image = dot_image([(50, 50)], shape=(100, 100))

    assert len(PointExtractor().detect(image)) == 1
    assert PointExtractor(config).detect(image) == []


def test_single_channel_3d_image_is_accepted():
    image = dot_image([(50, 50)], shape=(100, 100))[:, :, np.newaxis]
    assert len(PointExtractor().detect(image)) == 1


@pytest.mark.parametrize('image', [
    None,
    np.zeros((0, 0), dtype=np.uint8),
    np.zeros((100, 100, 3), dtype=np.uint8),
    np.zeros((100, 100), dtype=np.float32),
])
def test_invalid_images_raise(image):
    with pytest.raises(InvalidInputError):
        PointExtractor().detect(image)


def test_validate_gray_image_squeezes_channel_axis():
    image = np.zeros((4, 5, 1), dtype=np.uint8)
    assert validate_gray_image(image).shape == (4, 5)
