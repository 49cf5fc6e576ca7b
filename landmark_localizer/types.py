"""
Shared data types for detection and pose estimation.

Quaternions are stored as (w, x, y, z) arrays throughout the package.
"""

from dataclasses import dataclass, field
from typing import List, Optional, Tuple

import numpy as np
from scipy.spatial.transform import Rotation as R

Point = Tuple[float, float]
Cluster = List[Point]

NUM_CORNERS = 3


def quat_to_rotation(q: np.ndarray) -> R:
    """Build a scipy rotation from a (w, x, y, z) quaternion."""
    w, x, y, z = np.asarray(q, dtype=float)
    return R.from_quat([x, y, z, w])


def rotation_to_quat(rot: R) -> np.ndarray:
    """Convert a scipy rotation to a (w, x, y, z) quaternion with w >= 0."""
    x, y, z, w = rot.as_quat()
    q = np.array([w, x, y, z], dtype=float)
    return -q if q[0] < 0 else q


@dataclass
class LandmarkObservation:
    """A marker seen in one image.

    corners holds exactly three points: corners[1] is the right-angle apex,
    corners[0] and corners[2] the leg ends in right-handed image order.
    """
    corners: List[Point] = field(default_factory=list)
    id_points: List[Point] = field(default_factory=list)
    identity: Optional[int] = None

    @property
    def point_count(self) -> int:
        return len(self.corners) + len(self.id_points)


@dataclass
class MapLandmark:
    """A surveyed landmark with its pose in the world and its marker points.

    points are in the marker's local frame until to_world() has been applied.
    """
    identity: int
    position: np.ndarray
    orientation: np.ndarray
    points: np.ndarray
    in_world_frame: bool = False

    def __post_init__(self):
        self.position = np.asarray(self.position, dtype=float).reshape(3)
        self.orientation = np.asarray(self.orientation, dtype=float).reshape(4)
        self.points = np.asarray(self.points, dtype=float).reshape(-1, 3)

    @property
    def point_count(self) -> int:
        return len(self.points)

    def to_world(self) -> None:
        """Transform the local points into world coordinates (only once)."""
        if self.in_world_frame:
            return
        rot = quat_to_rotation(self.orientation)
        self.points = rot.apply(self.points) + self.position
        self.in_world_frame = True


@dataclass
class EgoPose:
    """Camera pose in the world: world <- camera."""
    position: np.ndarray = field(default_factory=lambda: np.zeros(3))
    orientation: np.ndarray = field(default_factory=lambda: np.array([1.0, 0.0, 0.0, 0.0]))

    def __post_init__(self):
        self.position = np.asarray(self.position, dtype=float).reshape(3)
        self.orientation = np.asarray(self.orientation, dtype=float).reshape(4)

    def copy(self) -> 'EgoPose':
        return EgoPose(self.position.copy(), self.orientation.copy())

    @property
    def yaw(self) -> float:
        return float(quat_to_rotation(self.orientation).as_euler('xyz')[2])
