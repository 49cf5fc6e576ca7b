"""
Landmark Localization Pipeline

Orchestrates all modules to find identified landmarks in an image and,
optionally, to track the camera pose over an image sequence.
Process: Point Extraction -> Clustering -> Corner Hypotheses -> Identity Decoding -> Pose Update

Usage:
    landmark-localizer <image_or_directory> --map map.yaml [--camera camera.yaml] [--visualize] [--plot]
"""

import argparse
import logging
import sys
from pathlib import Path
from typing import Dict, Iterable, List

import cv2
import numpy as np

from .camera import CameraIntrinsics
from .clustering import SpatialClusterer
from .config import PipelineConfig
from .corner_detection import CornerHypothesizer
from .errors import InvalidInputError, LocalizationError
from .id_decoding import IdentityDecoder
from .landmark_map import load_map
from .point_extraction import PointExtractor
from .pose_estimation import PoseEstimator
from .types import Cluster, LandmarkObservation, Point
from .visualization import (create_grid_visualization, create_trajectory_figure, dim_image, draw_clusters,
                            draw_landmarks, draw_points)

logger = logging.getLogger(__name__)


class LandmarkFinder:
    """Detects identified landmarks in grayscale images."""

    def __init__(self, valid_ids: Iterable[int], config: Dict[str, dict] = None):
        """
        Initialize all module detectors.

        Args:
            valid_ids: Identities of the landmarks in the map
            config: Optional per-stage config dicts keyed like the
                PipelineConfig attributes ('POINT_EXTRACTION', ...)
        """
        config = config or {}
        self.point_extractor = PointExtractor(config.get('POINT_EXTRACTION'))
        self.clusterer = SpatialClusterer(config.get('CLUSTERING'))
        self.corner_hypothesizer = CornerHypothesizer(config.get('CORNER_SEARCH'))
        self.id_decoder = IdentityDecoder(valid_ids, config.get('ID_DECODING'))
        self.sample_filtered = self.id_decoder.config['SAMPLE_FILTERED_IMAGE']

        # copies of the intermediate results of the last frame
        self.points: List[Point] = []
        self.clusters: List[Cluster] = []
        self.hypotheses: List[LandmarkObservation] = []

    def find_landmarks(self, clusters: List[Cluster], image: np.ndarray) -> List[LandmarkObservation]:
        self.hypotheses = []
        for cluster in clusters:
            self.hypotheses.extend(self.corner_hypothesizer.find_hypotheses(cluster))
        return self.id_decoder.decode(list(self.hypotheses), image)

    def detect_landmarks(self, image: np.ndarray) -> List[LandmarkObservation]:
        """
        Main worker method.

        Args:
            image: Grayscale uint8 image

        Returns:
            Identified landmarks; empty if the image is invalid
        """
        self.points, self.clusters, self.hypotheses = [], [], []
        try:
            self.points = self.point_extractor.detect(image)
        except InvalidInputError as e:
            logger.error("%s", e)
            return []

        self.clusters = self.clusterer.cluster(self.points)

        sample_image = self.point_extractor.filtered_image if self.sample_filtered else image
        landmarks = self.find_landmarks(self.clusters, sample_image)

        logger.debug("%d points, %d clusters, %d hypotheses, %d landmarks",
                     len(self.points), len(self.clusters), len(self.hypotheses), len(landmarks))
        return landmarks

    def detect_landmarks_from_file(self, path) -> List[LandmarkObservation]:
        image = cv2.imread(str(path), cv2.IMREAD_GRAYSCALE)
        if image is None:
            logger.error("Could not read image %s", path)
            return []
        return self.detect_landmarks(image)

    def process_image(self, image: np.ndarray) -> Dict:
        """
        Run the detector and collect all intermediate results.

        Returns:
            Dictionary with points, clusters, hypotheses and landmarks
        """
        landmarks = self.detect_landmarks(image)
        return {
            'points': self.points,
            'clusters': self.clusters,
            'hypotheses': self.hypotheses,
            'landmarks': landmarks
        }

    def visualize_results(self, image: np.ndarray, results: Dict) -> np.ndarray:
        """
        Four-panel visualization of one frame.

        Returns:
            Visualization image (2x2 grid)
        """
        base = dim_image(image, PipelineConfig.VIZ_COLORS['BG_DIM'])
        filtered = self.point_extractor.filtered_image
        if filtered is None:
            filtered = np.zeros_like(image)

        panels = [
            filtered,
            draw_points(base, results['points']),
            draw_clusters(base, results['clusters'], self.clusterer.radius),
            draw_landmarks(image, results['landmarks'])
        ]
        labels = ["1. Band-pass", "2. Points", "3. Clusters", f"4. Landmarks ({len(results['landmarks'])})"]
        return create_grid_visualization(panels, labels, cols=2)


def find_images(target: Path) -> List[Path]:
    if target.is_file():
        return [target]
    image_files = []
    for ext in ['*.jpg', '*.jpeg', '*.png', '*.bmp', '*.JPG', '*.JPEG', '*.PNG']:
        image_files.extend(target.glob(ext))
    return sorted(set(image_files))


def main(argv=None):
    parser = argparse.ArgumentParser(description='Ceiling Landmark Localization Pipeline')
    parser.add_argument('input', type=str, help='Image file or directory of images (processed in name order)')
    parser.add_argument('--map', '-m', type=str, required=True, help='Landmark map (YAML)')
    parser.add_argument('--camera', '-c', type=str, help='Camera intrinsics (YAML); enables pose estimation')
    parser.add_argument('--planar', action='store_true', help='Estimate x, y and yaw only')
    parser.add_argument('--output', '-o', type=str, help='Output directory (default: <input>/localization_results)')
    parser.add_argument('--visualize', '-v', action='store_true', help='Save visualization images')
    parser.add_argument('--plot', action='store_true', help='Save an interactive 3D plot of the poses')
    parser.add_argument('--debug', action='store_true', help='Verbose logging')

    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.debug else logging.INFO,
        format='%(asctime)s [%(levelname)s] %(name)s: %(message)s'
    )

    target = Path(args.input)
    if not target.exists():
        print(f"Error: Input does not exist: {target}")
        return 1

    output_dir = Path(args.output) if args.output else (target if target.is_dir() else target.parent) / "localization_results"
    if args.visualize or args.plot:
        output_dir.mkdir(exist_ok=True, parents=True)

    image_files = find_images(target)
    print(f"Found {len(image_files)} image(s) to process\n")
    if not image_files:
        print("No images found!")
        return 1

    try:
        landmark_map = load_map(args.map)
        intrinsics = CameraIntrinsics.load(args.camera) if args.camera else None
    except (OSError, ValueError, KeyError) as e:
        print(f"Error: Could not load configuration: {e}")
        return 1

    finder = LandmarkFinder(landmark_map.keys())

    estimator = None
    if intrinsics is not None:
        pose_config = dict(PipelineConfig.POSE_ESTIMATION, ESTIMATE_2D_POSE=args.planar)
        estimator = PoseEstimator(landmark_map, intrinsics, pose_config)

    poses, labels = [], []
    for idx, img_path in enumerate(image_files, 1):
        print(f"[{idx}/{len(image_files)}] Processing {img_path.name}...")

        image = cv2.imread(str(img_path), cv2.IMREAD_GRAYSCALE)
        if image is None:
            print("  Warning: Could not read image")
            continue

        results = finder.process_image(image)
        landmarks = results['landmarks']
        ids = sorted(lm.identity for lm in landmarks)
        print(f"  Points: {len(results['points'])} | Clusters: {len(results['clusters'])} | "
              f"Landmarks: {len(landmarks)} {ids}")

        if estimator is not None:
            try:
                pose = estimator.update(landmarks)
            except LocalizationError as e:
                print(f"  Warning: Pose update skipped: {e}")
            else:
                if estimator.is_initialized:
                    x, y, z = pose.position
                    print(f"  Pose: [{x:.3f}, {y:.3f}, {z:.3f}] yaw {np.degrees(pose.yaw):.1f} deg | "
                          f"cost {estimator.summary.final_cost:.3g} | converged {estimator.summary.converged}")
                    poses.append(pose)
                    labels.append(img_path.name)

        if args.visualize:
            vis = finder.visualize_results(image, results)
            out_path = output_dir / f"{img_path.stem}_landmarks.jpg"
            cv2.imwrite(str(out_path), vis)
            print(f"  Saved: {out_path.name}")

    if args.plot and estimator is not None and poses:
        fig = create_trajectory_figure(poses, estimator.landmarks, labels)
        out_html = output_dir / "camera_poses_3d.html"
        fig.write_html(str(out_html))
        print(f"\nInteractive 3D visualization saved to: {out_html}")

    print("\nDone!")
    return 0


if __name__ == "__main__":
    sys.exit(main())
