"""
Landmark Localization

This package contains modular components for ceiling landmark localization:
- point_extraction: Finds bright marker dots
- clustering: Groups points into landmark candidates
- corner_detection: Searches the right-angle corner frame of each candidate
- id_decoding: Decodes landmark identities (forward and backward)
- pose_estimation: Refines the camera pose against the landmark map
- pipeline: Orchestrates detection from image to identified landmarks
"""

from .camera import CameraIntrinsics
from .clustering import SpatialClusterer, find_clusters
from .corner_detection import CornerHypothesizer
from .errors import InvalidInputError, LocalizationError, PointCountMismatchError, UnknownLandmarkError
from .id_decoding import IdentityDecoder, IdentityPool
from .landmark_map import load_map
from .pipeline import LandmarkFinder
from .point_extraction import PointExtractor
from .pose_estimation import EstimatorState, PoseEstimator
from .types import EgoPose, LandmarkObservation, MapLandmark

__all__ = [
    'CameraIntrinsics',
    'SpatialClusterer',
    'find_clusters',
    'CornerHypothesizer',
    'InvalidInputError',
    'LocalizationError',
    'PointCountMismatchError',
    'UnknownLandmarkError',
    'IdentityDecoder',
    'IdentityPool',
    'load_map',
    'LandmarkFinder',
    'PointExtractor',
    'EstimatorState',
    'PoseEstimator',
    'EgoPose',
    'LandmarkObservation',
    'MapLandmark'
]
