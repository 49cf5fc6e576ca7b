"""
Landmark Map Module

Reads the surveyed landmark map from YAML.

    grid_spacing: 0.08
    landmarks:
      - id: 1
        position: [0.0, 0.0, 2.0]
        orientation: [1.0, 0.0, 0.0, 0.0]   # w, x, y, z
        points: [[0.24, 0.0, 0.0], ...]     # optional, marker frame

Without explicit points a landmark's points are generated from its
identity's grid cells.
"""

import logging
from pathlib import Path
from typing import Dict, Union

import yaml

from .config import PipelineConfig
from .landmark_grid import local_marker_points
from .types import MapLandmark

logger = logging.getLogger(__name__)

LandmarkMap = Dict[int, MapLandmark]


def landmark_from_dict(entry: dict, spacing: float) -> MapLandmark:
    identity = int(entry['id'])
    if not 0 <= identity <= 0xFFFF:
        raise ValueError(f"Landmark id {identity} does not fit into 16 bit")

    points = entry.get('points')
    if points is None:
        points = local_marker_points(identity, spacing)

    return MapLandmark(
        identity=identity,
        position=entry.get('position', [0.0, 0.0, 0.0]),
        orientation=entry.get('orientation', [1.0, 0.0, 0.0, 0.0]),
        points=points
    )


def parse_map(data: dict) -> LandmarkMap:
    spacing = float(data.get('grid_spacing', PipelineConfig.LANDMARK_MAP['GRID_SPACING']))
    landmarks: LandmarkMap = {}
    for entry in data.get('landmarks', []):
        lm = landmark_from_dict(entry, spacing)
        if lm.identity in landmarks:
            raise ValueError(f"Duplicate landmark id {lm.identity}")
        landmarks[lm.identity] = lm
    return landmarks


def load_map(file_path: Union[str, Path]) -> LandmarkMap:
    """Load a landmark map, points in the marker frame."""
    with open(file_path, 'r', encoding='utf-8') as f:
        data = yaml.safe_load(f) or {}
    landmarks = parse_map(data)
    logger.info("Loaded %d landmarks from %s", len(landmarks), file_path)
    return landmarks
