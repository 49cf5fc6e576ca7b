"""
Landmark Grid Module

The marker pattern is a DIM x DIM grid of dot positions. Three grid cells
hold the corner dots; every other cell encodes one identity bit.

    ---> x (towards corners[0])
    |   S   .   .   C0
    |   .   .   .   .
    V   .   .   .   .
    y   C2  .   .   .

S = corners[1] is the origin of the unit square, cell (nx, ny) carries
the value (1 << nx) << (DIM * ny).
"""

from typing import List, Sequence, Tuple

import numpy as np

from .types import Point

DIM = 4

# (nx, ny) of corners[0], corners[1], corners[2]
CORNER_CELLS = ((DIM - 1, 0), (0, 0), (0, DIM - 1))


def cell_value(nx: int, ny: int) -> int:
    return (1 << nx) << (DIM * ny)


def data_cells() -> List[Tuple[int, int]]:
    """All non-corner cells in row-major order."""
    return [(nx, ny) for ny in range(DIM) for nx in range(DIM)
            if (nx, ny) not in CORNER_CELLS]


def encode_identity(cells: Sequence[Tuple[int, int]]) -> int:
    """Identity value of a set of occupied data cells."""
    identity = 0
    for nx, ny in cells:
        if (nx, ny) in CORNER_CELLS:
            continue
        identity += cell_value(nx, ny)
    return identity


def identity_cells(identity: int) -> List[Tuple[int, int]]:
    """Occupied data cells of an identity, row-major order."""
    return [(nx, ny) for nx, ny in data_cells() if identity & cell_value(nx, ny)]


def cell_to_unit(nx: int, ny: int) -> Tuple[float, float]:
    """Nominal centre of a cell in unit square coordinates."""
    return (nx / (DIM - 1), ny / (DIM - 1))


def unit_to_cell(u: float, v: float) -> Tuple[int, int]:
    """Quantize a unit square position to the nearest cell, clamped to the grid."""
    nx = int(0.5 + (DIM - 1) * u)
    ny = int(0.5 + (DIM - 1) * v)
    nx = min(max(nx, 0), DIM - 1)
    ny = min(max(ny, 0), DIM - 1)
    return nx, ny


def _frame(corners: Sequence[Point]) -> Tuple[np.ndarray, np.ndarray]:
    origin = np.asarray(corners[1], dtype=float)
    axes = np.column_stack([
        np.asarray(corners[0], dtype=float) - origin,
        np.asarray(corners[2], dtype=float) - origin
    ])
    return origin, axes


def to_unit_square(corners: Sequence[Point], points: Sequence[Point]) -> np.ndarray:
    """
    Map image points into the unit square spanned by the corner frame.

    Args:
        corners: [corners[0], apex, corners[2]]
        points: Image points (x, y)

    Returns:
        Array (N, 2) of (u, v) coordinates

    Raises:
        numpy.linalg.LinAlgError: If the corners are collinear
    """
    origin, axes = _frame(corners)
    inv = np.linalg.inv(axes)
    pts = np.asarray(points, dtype=float).reshape(-1, 2)
    return (pts - origin) @ inv.T


def to_image(corners: Sequence[Point], unit_points: Sequence[Point]) -> np.ndarray:
    """Map unit square points back into the image."""
    origin, axes = _frame(corners)
    pts = np.asarray(unit_points, dtype=float).reshape(-1, 2)
    return origin + pts @ axes.T


def local_marker_points(identity: int, spacing: float) -> np.ndarray:
    """
    3D points of a marker in its own frame (z = 0).

    Order: the three corners as the detector reports them, then the
    occupied data cells in row-major order.
    """
    cells = list(CORNER_CELLS) + identity_cells(identity)
    return np.array([[nx * spacing, ny * spacing, 0.0] for nx, ny in cells], dtype=float)
