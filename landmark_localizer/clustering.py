"""
Spatial Clustering Module

Groups nearby points into clusters. Used at pixel scale to merge bright pixels
into blobs and at marker scale to merge blob centroids into landmark
candidates.
"""

import math
from collections import defaultdict
from typing import Dict, Iterable, List, Tuple

from .config import PipelineConfig
from .types import Cluster, Point


def find_clusters(points: Iterable[Point],
                  radius: float,
                  min_points: int,
                  max_points: int) -> List[Cluster]:
    """
    Online single-link clustering.

    Each point joins the first cluster, scanning from the most recently
    created one backwards, that already holds a point within radius.
    Otherwise it starts a new cluster. The result depends on the input order.

    The newest cluster with a member in reach is the one with the highest
    index, so members are bucketed on a grid of cell size radius and only
    the 3x3 neighbouring cells are searched.

    Args:
        points: Points in discovery order
        radius: Maximum distance to a cluster member (inclusive)
        min_points: Smallest cluster size kept
        max_points: Largest cluster size kept

    Returns:
        Clusters in creation order, filtered by size
    """
    clusters: List[Cluster] = []
    cell_size = radius if radius > 0 else 1.0
    radius_sq = radius * radius
    # (cx, cy) -> [(x, y, cluster index), ...]
    grid: Dict[Tuple[int, int], List[Tuple[float, float, int]]] = defaultdict(list)

    for point in points:
        px, py = point
        cx = math.floor(px / cell_size)
        cy = math.floor(py / cell_size)

        target = -1
        for gx in (cx - 1, cx, cx + 1):
            for gy in (cy - 1, cy, cy + 1):
                for mx, my, index in grid.get((gx, gy), ()):
                    if index > target and (mx - px) ** 2 + (my - py) ** 2 <= radius_sq:
                        target = index

        if target < 0:
            target = len(clusters)
            clusters.append([point])
        else:
            clusters[target].append(point)
        grid[(cx, cy)].append((px, py, target))

    return [c for c in clusters if min_points <= len(c) <= max_points]


class SpatialClusterer:
    """Groups marker points into landmark candidates."""

    def __init__(self, config: dict = None):
        """
        Initialize clusterer.

        Args:
            config: Optional config dict, uses PipelineConfig.CLUSTERING if None
        """
        self.config = config or PipelineConfig.CLUSTERING
        self.radius = self.config['MAX_RADIUS']
        self.min_points = self.config['MIN_POINTS']
        self.max_points = self.config['MAX_POINTS']

    def cluster(self, points: Iterable[Point]) -> List[Cluster]:
        return find_clusters(points, self.radius, self.min_points, self.max_points)
