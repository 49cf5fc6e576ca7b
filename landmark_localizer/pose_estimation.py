"""
Pose Estimation Module

Estimates the camera (ego) pose from identified landmark observations and
the surveyed landmark map by minimizing robustified reprojection errors.
The residuals are rebuilt from scratch on every update.
"""

import logging
from enum import Enum
from typing import List, Sequence

import numpy as np

from .camera import CameraIntrinsics, project_points
from .config import PipelineConfig
from .errors import PointCountMismatchError, UnknownLandmarkError
from .landmark_map import LandmarkMap
from .optimization import (EuclideanManifold, OptimizationProblem, QuaternionManifold, ResidualBlock,
                           SolverOptions, SolverSummary, YawQuaternionManifold)
from .types import NUM_CORNERS, EgoPose, LandmarkObservation

logger = logging.getLogger(__name__)

POSITION = 'position'
ORIENTATION = 'orientation'
INTRINSICS = 'intrinsics'


class EstimatorState(Enum):
    UNINITIALIZED = 'uninitialized'
    TRACKING = 'tracking'


class ReprojectionCost:
    """
    Pixel offset between an observed point and its projected map point.

    The (u, v) offset is one residual block: the robust loss is applied to
    its squared length, so the weight of an error does not depend on its
    direction in the image.
    """

    def __init__(self, observed, point_world):
        self.observed = np.asarray(observed, dtype=float).reshape(2)
        self.point_world = np.asarray(point_world, dtype=float).reshape(1, 3)

    def __call__(self, position, orientation, intrinsics) -> np.ndarray:
        return project_points(self.point_world, position, orientation, intrinsics)[0] - self.observed


class PoseEstimator:
    """Keeps and refines the ego pose from landmark observations."""

    def __init__(self,
                 landmarks: LandmarkMap,
                 intrinsics: CameraIntrinsics,
                 config: dict = None):
        """
        Initialize estimator.

        Transforms the points of every landmark into world coordinates and
        derives the upper bound for the camera height.

        Args:
            landmarks: Map of identity -> landmark (points in marker frame)
            intrinsics: Calibrated camera intrinsics, never refined
            config: Optional config dict, uses PipelineConfig.POSE_ESTIMATION if None
        """
        self.config = config or PipelineConfig.POSE_ESTIMATION
        self.estimate_2d_pose = self.config['ESTIMATE_2D_POSE']
        self.solver_options = SolverOptions(
            max_function_evaluations=self.config['MAX_FUNCTION_EVALUATIONS'],
            ftol=self.config['FTOL'],
            xtol=self.config['XTOL'],
            gtol=self.config['GTOL'],
            loss='cauchy',
            loss_scale=self.config['ROBUST_LOSS_SCALE']
        )

        self.landmarks = landmarks
        min_z = np.inf
        for lm in self.landmarks.values():
            lm.to_world()
            if lm.point_count:
                min_z = min(min_z, float(lm.points[:, 2].min()))
        # the camera is assumed to sit at least this far below every marker
        self.z_upper_bound = min_z - self.config['MIN_CAMERA_CLEARANCE']
        self.max_reprojection_error = self.config['MAX_REPROJECTION_ERROR']

        self.ego_pose = EgoPose()
        self.camera_intrinsics = intrinsics.as_vector()
        self.state = EstimatorState.UNINITIALIZED
        self.problem = OptimizationProblem()
        self.summary = SolverSummary()
        self.reprojection_error = 0.0
        self._quaternion_manifold_set = False

    @property
    def is_initialized(self) -> bool:
        return self.state is EstimatorState.TRACKING

    @property
    def pose(self) -> EgoPose:
        return self.ego_pose.copy()

    def build_residual_blocks(self, observations: Sequence[LandmarkObservation]) -> List[ResidualBlock]:
        """
        Residual blocks for the corners of all observations.

        Raises:
            UnknownLandmarkError: If an identity is not part of the map
            PointCountMismatchError: If an observation's point count differs
                from its map entry
        """
        blocks = []
        for obs in observations:
            lm = self.landmarks.get(obs.identity)
            if lm is None:
                raise UnknownLandmarkError(f"Landmark {obs.identity} is not in the map")
            if obs.point_count != lm.point_count:
                raise PointCountMismatchError(obs.identity, obs.point_count, lm.point_count)

            # id points stay out of the cost, the corners pin the pose
            for k in range(NUM_CORNERS):
                blocks.append(ResidualBlock(
                    ReprojectionCost(obs.corners[k], lm.points[k]),
                    [POSITION, ORIENTATION, INTRINSICS]
                ))
        return blocks

    def _seed_position(self, observations: Sequence[LandmarkObservation]) -> None:
        xy = np.mean([self.landmarks[obs.identity].position[:2] for obs in observations], axis=0)
        self.ego_pose.position[:2] = xy

    def _initialize_planar(self) -> None:
        self.ego_pose.position[2] = 0.0
        self.ego_pose.orientation[1] = 0.0
        self.ego_pose.orientation[2] = 0.0
        self.ego_pose.orientation /= np.linalg.norm(self.ego_pose.orientation)
        self.problem.set_manifold(POSITION, EuclideanManifold(3, fixed=[2]))
        self.problem.set_manifold(ORIENTATION, YawQuaternionManifold())

    def update(self, observations: Sequence[LandmarkObservation], dt: float = 0.0) -> EgoPose:
        """
        Refine the ego pose with the observations of one frame.

        Args:
            observations: Identified landmarks of the frame
            dt: Time since the last update (not used by the estimate)

        Returns:
            The current ego pose (a copy)

        Raises:
            UnknownLandmarkError, PointCountMismatchError: The update is
                aborted and the pose is left unchanged
        """
        if not observations:
            logger.debug("Received empty landmark list, pose unchanged")
            return self.pose

        # validate everything before touching any state
        blocks = self.build_residual_blocks(observations)

        if self.state is EstimatorState.UNINITIALIZED:
            self._seed_position(observations)

        self.problem.add_parameter_block(POSITION, self.ego_pose.position)
        self.problem.add_parameter_block(ORIENTATION, self.ego_pose.orientation)
        self.problem.add_parameter_block(INTRINSICS, self.camera_intrinsics)
        self.problem.replace_residual_blocks(blocks)

        if self.state is EstimatorState.UNINITIALIZED and self.estimate_2d_pose:
            self._initialize_planar()

        # keeps the solution in front of the markers, the camera model alone
        # also accepts the mirrored pose behind them
        self.problem.set_upper_bound(POSITION, 2, self.z_upper_bound)

        if not self.estimate_2d_pose and not self._quaternion_manifold_set:
            self.problem.set_manifold(ORIENTATION, QuaternionManifold())
            self._quaternion_manifold_set = True

        self.problem.set_constant(INTRINSICS)
        self.state = EstimatorState.TRACKING

        self.summary = self.problem.solve(self.solver_options)
        if not self.summary.converged:
            logger.warning("Pose solver did not converge: %s", self.summary.message)

        # RMS pixel distance of the corners after the solve
        errors = self.problem.evaluate().reshape(-1, 2)
        self.reprojection_error = float(np.sqrt(np.mean(np.sum(errors ** 2, axis=1))))
        if self.reprojection_error > self.max_reprojection_error:
            logger.warning("Pose update left a reprojection error of %.3g px (limit %.3g px), "
                           "the pose is likely wrong", self.reprojection_error, self.max_reprojection_error)

        logger.debug("Pose update: %d residuals, cost %.4g -> %.4g",
                     self.summary.num_residuals, self.summary.initial_cost, self.summary.final_cost)

        return self.pose
