"""
Visualization utilities for the localization pipeline.
Common functions for drawing detections and plotting estimated poses.
"""

from typing import List, Optional, Sequence, Tuple

import cv2
import numpy as np
import plotly.graph_objects as go

from .config import PipelineConfig
from .landmark_map import LandmarkMap
from .types import Cluster, EgoPose, LandmarkObservation, Point, quat_to_rotation

COLORS = PipelineConfig.VIZ_COLORS


def to_bgr(img: np.ndarray) -> np.ndarray:
    if len(img.shape) == 2:
        return cv2.cvtColor(img, cv2.COLOR_GRAY2BGR)
    return img.copy()


def _pt(p: Point) -> Tuple[int, int]:
    return (int(round(p[0])), int(round(p[1])))


def add_label_to_image(img: np.ndarray,
                       text: str,
                       color: Tuple[int, int, int] = (255, 255, 255),
                       bg_color: Tuple[int, int, int] = (0, 0, 0),
                       position: str = 'top') -> np.ndarray:
    """
    Add a labeled banner to an image.

    Args:
        img: Input image (BGR or grayscale)
        text: Label text
        color: Text color
        bg_color: Background color
        position: 'top' or 'bottom'

    Returns:
        Image with label added
    """
    vis = to_bgr(img)

    h, w = vis.shape[:2]
    font_scale = w / 900.0
    thickness = max(1, int(w / 400.0))
    bar_h = int(h * 0.07)

    if position == 'top':
        y_start, y_end = 0, bar_h
        text_y = int(bar_h * 0.7)
    else:
        y_start, y_end = h - bar_h, h
        text_y = h - int(bar_h * 0.3)

    cv2.rectangle(vis, (0, y_start), (w, y_end), bg_color, -1)
    cv2.putText(vis, text, (10, text_y), cv2.FONT_HERSHEY_SIMPLEX,
                font_scale, color, thickness, cv2.LINE_AA)

    return vis


def create_grid_visualization(images: List[np.ndarray],
                              labels: Optional[List[str]] = None,
                              cols: Optional[int] = None) -> np.ndarray:
    """
    Arrange equally sized images in a grid.

    Args:
        images: List of images to arrange
        labels: Optional labels for each image
        cols: Optional column count, auto-calculated if None

    Returns:
        Grid visualization
    """
    if not images:
        raise ValueError("No images provided")

    images = [to_bgr(img) for img in images]
    if labels:
        images = [add_label_to_image(img, label) for img, label in zip(images, labels)]

    n = len(images)
    cols = cols or int(np.ceil(np.sqrt(n)))
    rows = int(np.ceil(n / cols))

    h, w = images[0].shape[:2]
    while len(images) < rows * cols:
        images.append(np.zeros((h, w, 3), dtype=np.uint8))

    return np.vstack([np.hstack(images[r * cols:(r + 1) * cols]) for r in range(rows)])


def dim_image(img: np.ndarray, factor: float = 0.3) -> np.ndarray:
    return (to_bgr(img).astype(float) * factor).astype(np.uint8)


def draw_points(img: np.ndarray, points: Sequence[Point], color=COLORS['POINT'], radius: int = 3) -> np.ndarray:
    vis = to_bgr(img)
    for p in points:
        cv2.circle(vis, _pt(p), radius, color, 1, cv2.LINE_AA)
    return vis


def draw_clusters(img: np.ndarray, clusters: Sequence[Cluster], radius: float) -> np.ndarray:
    """Draw every cluster's points and a circle around its centre."""
    vis = to_bgr(img)
    for cluster in clusters:
        center = np.mean(np.asarray(cluster, dtype=float), axis=0)
        cv2.circle(vis, _pt(center), int(radius), COLORS['CLUSTER'], 1, cv2.LINE_AA)
        for p in cluster:
            cv2.circle(vis, _pt(p), 2, COLORS['CLUSTER'], -1)
    return vis


def draw_landmarks(img: np.ndarray, landmarks: Sequence[LandmarkObservation]) -> np.ndarray:
    """Draw corner frames, id points and identities."""
    vis = to_bgr(img)
    for lm in landmarks:
        c0, s, c2 = (_pt(p) for p in lm.corners)
        cv2.line(vis, s, c0, COLORS['FRAME'], 1, cv2.LINE_AA)
        cv2.line(vis, s, c2, COLORS['FRAME'], 1, cv2.LINE_AA)
        cv2.circle(vis, c0, 5, COLORS['CORNER'], -1)
        cv2.circle(vis, c2, 5, COLORS['CORNER'], -1)
        cv2.circle(vis, s, 6, COLORS['APEX'], -1)
        for p in lm.id_points:
            cv2.circle(vis, _pt(p), 4, COLORS['ID_POINT'], -1)
        if lm.identity is not None:
            cv2.putText(vis, str(lm.identity), (s[0] + 8, s[1] - 8),
                        cv2.FONT_HERSHEY_SIMPLEX, 0.6, (0, 0, 0), 3)
            cv2.putText(vis, str(lm.identity), (s[0] + 8, s[1] - 8),
                        cv2.FONT_HERSHEY_SIMPLEX, 0.6, COLORS['LABEL'], 1)
    return vis


def create_trajectory_figure(poses: Sequence[EgoPose],
                             landmarks: LandmarkMap,
                             labels: Optional[Sequence[str]] = None,
                             arrow_length: float = 0.3) -> go.Figure:
    """
    Interactive 3D view of the landmark map and the estimated camera poses.

    Args:
        poses: Estimated ego poses in frame order
        landmarks: Map with points in world coordinates
        labels: Optional hover label per pose
        arrow_length: Length of the viewing direction arrows

    Returns:
        Plotly figure
    """
    fig = go.Figure()

    for identity, lm in landmarks.items():
        pts = lm.points
        fig.add_trace(go.Scatter3d(
            x=pts[:, 0], y=pts[:, 1], z=pts[:, 2],
            mode='markers',
            marker=dict(size=3, color='royalblue'),
            name=f"Landmark {identity}"
        ))

    if poses:
        positions = np.array([p.position for p in poses])
        fig.add_trace(go.Scatter3d(
            x=positions[:, 0], y=positions[:, 1], z=positions[:, 2],
            mode='lines+markers',
            line=dict(color='#FF6B6B', width=4),
            marker=dict(size=4, color='#FF6B6B'),
            text=list(labels) if labels else None,
            name='Camera'
        ))

        # viewing direction is the camera z axis
        for pose in poses:
            forward = quat_to_rotation(pose.orientation).apply([0.0, 0.0, 1.0])
            end = pose.position + arrow_length * forward
            fig.add_trace(go.Scatter3d(
                x=[pose.position[0], end[0]],
                y=[pose.position[1], end[1]],
                z=[pose.position[2], end[2]],
                mode='lines',
                line=dict(color='#4ECDC4', width=2),
                showlegend=False,
                hoverinfo='skip'
            ))

    fig.update_layout(
        title=dict(text='Camera Poses', font=dict(size=20)),
        scene=dict(
            xaxis=dict(title='X (m)'),
            yaxis=dict(title='Y (m)'),
            zaxis=dict(title='Z (m)'),
            aspectmode='data'
        ),
        margin=dict(l=0, r=0, t=50, b=0),
        showlegend=True
    )
    return fig
