"""
Corner Detection Module

Searches a point cluster for the three dots that form the marker's
right-angle corner frame. Every triple of points is scored; the best
triples become landmark hypotheses.
"""

import logging
from itertools import combinations
from typing import List, Sequence, Tuple

import numpy as np

from .config import PipelineConfig
from .landmark_grid import to_unit_square
from .types import Cluster, LandmarkObservation, Point

logger = logging.getLogger(__name__)


class CornerHypothesizer:
    """Finds corner triples in marker point clusters."""

    def __init__(self, config: dict = None):
        """
        Initialize corner hypothesizer.

        Args:
            config: Optional config dict, uses PipelineConfig.CORNER_SEARCH if None
        """
        self.config = config or PipelineConfig.CORNER_SEARCH
        self.max_hypotheses = self.config['MAX_HYPOTHESES']
        self.cutoff = self.config['CUTOFF']
        self.w_length = self.config['W_TRIANGLE_LENGTH']
        self.w_projection = self.config['W_PROJECTED_SECANT']
        self.w_length_diff = self.config['W_SECANT_LENGTH_DIFF']
        self.hypotenuse_tolerance = self.config['HYPOTENUSE_TOLERANCE']
        self.inside_tolerance = self.config.get('POINT_INSIDE_TOLERANCE')

    @staticmethod
    def fix_winding(apex: Point, h1: Point, h2: Point) -> List[Point]:
        """
        Order a corner triple so that cross(corners[0] - S, corners[2] - S) >= 0.

        Returns:
            [corners[0], apex, corners[2]]
        """
        v1 = np.subtract(h1, apex)
        v2 = np.subtract(h2, apex)
        if v1[0] * v2[1] - v1[1] * v2[0] < 0:
            h1, h2 = h2, h1
        return [h1, apex, h2]

    def score_triple(self, corners: Sequence[Point]) -> float:
        """
        Score a wound corner triple. Higher is better.

        Rewards the triangle circumference, penalizes the projection of the
        first leg onto the second and the difference of the leg lengths.
        """
        apex = np.asarray(corners[1], dtype=float)
        v1 = np.asarray(corners[0], dtype=float) - apex
        v2 = np.asarray(corners[2], dtype=float) - apex

        n1 = np.linalg.norm(v1)
        n2 = np.linalg.norm(v2)
        hyp = np.linalg.norm(v2 - v1)

        length_triangle = n1 + n2 + hyp
        projected_secant = abs(np.dot(v1, v2)) / n2
        length_diff = abs(n1 - n2)

        return float(self.w_length * length_triangle
                     - self.w_projection * projected_secant
                     - self.w_length_diff * length_diff)

    def is_plausible(self, apex: Point, h1: Point, h2: Point) -> bool:
        """Cheap rejection of triples that cannot be a right-angle corner."""
        v1 = np.subtract(h1, apex)
        v2 = np.subtract(h2, apex)
        n1 = np.linalg.norm(v1)
        n2 = np.linalg.norm(v2)
        hyp = np.linalg.norm(np.subtract(h2, h1))

        if n1 == 0 or n2 == 0:
            return False
        if n1 > self.hypotenuse_tolerance * hyp or n2 > self.hypotenuse_tolerance * hyp:
            return False
        # collinear triples do not span a frame
        return v1[0] * v2[1] - v1[1] * v2[0] != 0

    def points_inside(self, corners: Sequence[Point], id_points: Sequence[Point]) -> bool:
        """Check that all id points fall into the (tolerant) unit square."""
        if self.inside_tolerance is None or not id_points:
            return True
        local = to_unit_square(corners, id_points)
        lo = -self.inside_tolerance
        hi = 1.0 + self.inside_tolerance
        return bool(np.all((local >= lo) & (local <= hi)))

    def score_cluster(self, cluster: Cluster) -> List[Tuple[float, LandmarkObservation]]:
        """All plausible (score, hypothesis) pairs in enumeration order."""
        scored = []
        n = len(cluster)

        for i in range(n):
            apex = cluster[i]
            others = [j for j in range(n) if j != i]
            for j, k in combinations(others, 2):
                if not self.is_plausible(apex, cluster[j], cluster[k]):
                    continue

                corners = self.fix_winding(apex, cluster[j], cluster[k])
                id_points = [cluster[m] for m in range(n) if m not in (i, j, k)]

                if not self.points_inside(corners, id_points):
                    continue

                score = self.score_triple(corners)
                scored.append((score, LandmarkObservation(corners=corners, id_points=id_points)))

        return scored

    def find_hypotheses(self, cluster: Cluster) -> List[LandmarkObservation]:
        """
        Main search method.

        Args:
            cluster: Points believed to belong to one marker

        Returns:
            Up to MAX_HYPOTHESES observations whose score is at least
            CUTOFF * best score, best first. Empty if no triple is plausible.
        """
        scored = self.score_cluster(cluster)
        if not scored:
            logger.debug("No corner hypothesis for cluster of %d points", len(cluster))
            return []

        best_score = max(score for score, _ in scored)
        kept = [(s, lm) for s, lm in scored if s >= self.cutoff * best_score]
        kept.sort(key=lambda item: item[0], reverse=True)

        return [lm for _, lm in kept[:self.max_hypotheses]]
