"""
Identity Decoding Module

Computes the identity of landmark hypotheses from their dot pattern.

Forward decoding quantizes the observed id points in the unit square of the
corner frame. Backward decoding samples the image at every expected dot
position instead, which recovers identities with missed dots. Both claim
identities from one pool per frame, so an identity is assigned at most once.
"""

import logging
from typing import Iterable, List, Optional

import numpy as np

from .config import PipelineConfig
from .landmark_grid import cell_to_unit, cell_value, data_cells, to_image, to_unit_square, unit_to_cell
from .types import LandmarkObservation

logger = logging.getLogger(__name__)


class IdentityPool:
    """Identities that may still be assigned in the current frame."""

    def __init__(self, identities: Iterable[int]):
        self._remaining: List[int] = list(identities)

    def claim(self, identity: int) -> bool:
        """Remove identity from the pool; False if it is not available."""
        if identity in self._remaining:
            self._remaining.remove(identity)
            return True
        return False

    def __contains__(self, identity: int) -> bool:
        return identity in self._remaining

    def __len__(self) -> int:
        return len(self._remaining)

    @property
    def remaining(self) -> List[int]:
        return list(self._remaining)


def decode_forward(landmark: LandmarkObservation, pool: IdentityPool) -> bool:
    """
    Identify a landmark from its observed id points.

    Returns:
        True if the computed identity was claimed from the pool
    """
    identity = 0
    if landmark.id_points:
        try:
            local = to_unit_square(landmark.corners, landmark.id_points)
        except np.linalg.LinAlgError:
            return False
        for u, v in local:
            identity += cell_value(*unit_to_cell(u, v))

    if pool.claim(identity):
        landmark.identity = identity
        return True
    return False


def decode_backward(landmark: LandmarkObservation,
                    pool: IdentityPool,
                    image: np.ndarray,
                    threshold: float = 128) -> bool:
    """
    Identify a landmark by looking for bright pixels where dots should be.

    Every data cell centre is projected into the image through the corner
    frame. A cell outside the image makes the decode fail. On success the
    landmark's id points are replaced by the projected positions of the
    bright cells.

    Returns:
        True if the computed identity was claimed from the pool
    """
    cells = data_cells()
    projected = to_image(landmark.corners, [cell_to_unit(nx, ny) for nx, ny in cells])
    h, w = image.shape[:2]

    identity = 0
    id_points = []
    for (nx, ny), (x, y) in zip(cells, projected):
        col = int(round(x))
        row = int(round(y))
        if col < 0 or row < 0 or col >= w or row >= h:
            # hypothesis puts id points outside the visible area
            return False
        if image[row, col] > threshold:
            identity += cell_value(nx, ny)
            id_points.append((float(x), float(y)))

    if pool.claim(identity):
        landmark.identity = identity
        landmark.id_points = id_points
        return True
    return False


class IdentityDecoder:
    """Assigns identities to landmark hypotheses of one frame."""

    def __init__(self, valid_ids: Iterable[int], config: dict = None):
        """
        Initialize decoder.

        Args:
            valid_ids: Identities of all landmarks in the map
            config: Optional config dict, uses PipelineConfig.ID_DECODING if None
        """
        self.config = config or PipelineConfig.ID_DECODING
        self.valid_ids = list(valid_ids)
        self.threshold = self.config['BRIGHTNESS_THRESHOLD']

    def decode(self,
               landmarks: List[LandmarkObservation],
               image: Optional[np.ndarray]) -> List[LandmarkObservation]:
        """
        Two-pass decoding.

        All hypotheses are tried forward first. Those that fail are tried
        backward against the identities still left in the pool. Hypotheses
        that fail both are dropped.

        Args:
            landmarks: Hypotheses of the current frame
            image: Image sampled by backward decoding (None disables it)

        Returns:
            Identified landmarks, forward successes first
        """
        pool = IdentityPool(self.valid_ids)

        identified = []
        unknown = []
        for lm in landmarks:
            if decode_forward(lm, pool):
                identified.append(lm)
            else:
                unknown.append(lm)

        if image is not None:
            for lm in unknown:
                if decode_backward(lm, pool, image, self.threshold):
                    identified.append(lm)

        dropped = len(landmarks) - len(identified)
        if dropped:
            logger.debug("Dropped %d unidentified hypotheses", dropped)
        return identified
