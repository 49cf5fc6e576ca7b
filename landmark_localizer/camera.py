"""
Camera Model Module

Pinhole camera with OpenCV distortion, used to project map points into the
image for a given ego pose.
"""

import logging
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Union

import cv2
import numpy as np
import yaml

from .types import quat_to_rotation

logger = logging.getLogger(__name__)

INTRINSICS_SIZE = 9


@dataclass
class CameraIntrinsics:
    """Camera intrinsics.

    - focal lengths (fx, fy)
    - principal point (cx, cy)
    - distortion coefficients (k1, k2, p1, p2, k3)
    """
    fx: float
    fy: float
    cx: float
    cy: float
    k1: float = 0.0
    k2: float = 0.0
    p1: float = 0.0
    p2: float = 0.0
    k3: float = 0.0

    @property
    def camera_matrix(self) -> np.ndarray:
        return np.array([
            [self.fx, 0, self.cx],
            [0, self.fy, self.cy],
            [0, 0, 1]
        ], dtype=np.float64)

    @property
    def distortion_coeffs(self) -> np.ndarray:
        return np.array([self.k1, self.k2, self.p1, self.p2, self.k3], dtype=np.float64)

    def as_vector(self) -> np.ndarray:
        """Parameter vector (fx, fy, cx, cy, k1, k2, p1, p2, k3)."""
        return np.array([self.fx, self.fy, self.cx, self.cy,
                         self.k1, self.k2, self.p1, self.p2, self.k3], dtype=np.float64)

    @classmethod
    def from_vector(cls, vec) -> 'CameraIntrinsics':
        return cls(*[float(v) for v in np.asarray(vec).reshape(INTRINSICS_SIZE)])

    def save(self, file_path: Union[str, Path]) -> None:
        with open(file_path, 'w', encoding='utf-8') as f:
            yaml.safe_dump(asdict(self), f, sort_keys=False)
        logger.info("Camera intrinsics saved to %s", file_path)

    @classmethod
    def load(cls, file_path: Union[str, Path]) -> 'CameraIntrinsics':
        """
        Load intrinsics from a YAML file.

        Required keys are fx, fy, cx, cy; distortion keys default to 0.
        Unknown keys are ignored.
        """
        with open(file_path, 'r', encoding='utf-8') as f:
            data = yaml.safe_load(f) or {}

        missing = [k for k in ('fx', 'fy', 'cx', 'cy') if k not in data]
        if missing:
            raise ValueError(f"Camera file {file_path} is missing {missing}")

        fields = cls.__dataclass_fields__
        intrinsics = cls(**{k: float(v) for k, v in data.items() if k in fields})
        logger.info("Camera intrinsics loaded from %s", file_path)
        return intrinsics


def world_to_camera(points_world: np.ndarray,
                    position: np.ndarray,
                    orientation: np.ndarray) -> np.ndarray:
    """Transform world points into the camera frame of the pose world <- camera."""
    rot = quat_to_rotation(orientation)
    return rot.inv().apply(np.asarray(points_world, dtype=float).reshape(-1, 3) - position)


def project_points(points_world: np.ndarray,
                   position: np.ndarray,
                   orientation: np.ndarray,
                   intrinsics: np.ndarray) -> np.ndarray:
    """
    Project world points into the image.

    Args:
        points_world: (N, 3) points in world coordinates
        position: Camera position in the world
        orientation: Camera orientation quaternion (w, x, y, z), world <- camera
        intrinsics: Intrinsics parameter vector, see CameraIntrinsics.as_vector

    Returns:
        (N, 2) pixel coordinates
    """
    cam = CameraIntrinsics.from_vector(intrinsics)
    points_cam = world_to_camera(points_world, position, orientation)
    image_points, _ = cv2.projectPoints(
        np.ascontiguousarray(points_cam.reshape(-1, 1, 3)),
        np.zeros(3), np.zeros(3),
        cam.camera_matrix, cam.distortion_coeffs
    )
    return image_points.reshape(-1, 2)
