"""
Point Extraction Module

Finds the centres of small bright spots (marker dots) in a grayscale image.
A band-pass filter suppresses slow illumination gradients, the result is
thresholded and the bright pixels are grouped into blobs.
"""

import logging
from typing import Iterator, List, Optional

import cv2
import numpy as np

from .clustering import find_clusters
from .config import PipelineConfig
from .errors import InvalidInputError
from .types import Cluster, Point

logger = logging.getLogger(__name__)


def validate_gray_image(image: np.ndarray) -> np.ndarray:
    """Raise InvalidInputError unless image is a non-empty single 8-bit channel."""
    if image is None or not isinstance(image, np.ndarray) or image.size == 0:
        raise InvalidInputError("Input data is invalid: image is empty")
    if image.dtype != np.uint8:
        raise InvalidInputError(f"Input data is invalid: expected uint8, got {image.dtype}")
    if image.ndim == 3 and image.shape[2] == 1:
        image = image[:, :, 0]
    if image.ndim != 2:
        raise InvalidInputError(f"Input data is invalid: expected one channel, got shape {image.shape}")
    return image


class PointExtractor:
    """Extracts bright spot centroids from grayscale images."""

    def __init__(self, config: dict = None):
        """
        Initialize point extractor.

        Args:
            config: Optional config dict, uses PipelineConfig.POINT_EXTRACTION if None
        """
        self.config = config or PipelineConfig.POINT_EXTRACTION
        self.threshold = self.config['THRESHOLD']
        self.tight_size = self.config['TIGHT_FILTER_SIZE']
        self.wide_size = self.config['WIDE_FILTER_SIZE']
        self.pixel_radius = self.config['PIXEL_CLUSTER_RADIUS']
        self.min_pixels = self.config['MIN_PIXELS']
        self.max_pixels = self.config['MAX_PIXELS']

        self.filtered_image: Optional[np.ndarray] = None
        self.pixel_clusters: List[Cluster] = []

    def filter_image(self, gray: np.ndarray) -> np.ndarray:
        """Band-pass the image and threshold it to a binary mask."""
        tight = cv2.blur(gray, (self.tight_size, self.tight_size))
        wide = cv2.blur(gray, (self.wide_size, self.wide_size))
        band = cv2.subtract(tight, wide)
        _, binary = cv2.threshold(band, self.threshold, 255, cv2.THRESH_BINARY)
        return binary

    def bright_pixels(self, binary: np.ndarray) -> List[Point]:
        """Bright pixel coordinates in row-major order."""
        nonzero = cv2.findNonZero(binary)
        if nonzero is None:
            return []
        return [(int(x), int(y)) for x, y in nonzero.reshape(-1, 2)]

    @staticmethod
    def centroids(clusters: List[Cluster]) -> Iterator[Point]:
        """Reduce each pixel cluster to its centre of mass."""
        for cluster in clusters:
            pts = np.asarray(cluster, dtype=float)
            cx, cy = pts.mean(axis=0)
            yield (float(cx), float(cy))

    def detect(self, image: np.ndarray) -> List[Point]:
        """
        Main detection method.

        Args:
            image: Grayscale uint8 image

        Returns:
            List of blob centroids (x, y); empty if nothing bright was found

        Raises:
            InvalidInputError: If the image is empty or not single channel 8-bit
        """
        gray = validate_gray_image(image)

        self.filtered_image = self.filter_image(gray)
        pixels = self.bright_pixels(self.filtered_image)

        self.pixel_clusters = find_clusters(
            pixels, self.pixel_radius, self.min_pixels, self.max_pixels
        )
        points = list(self.centroids(self.pixel_clusters))

        logger.debug("%d bright pixels -> %d points", len(pixels), len(points))
        return points
