"""
Optimization Problem Module

A small nonlinear least-squares problem made of named parameter blocks and
residual blocks, solved with scipy's trust-region reflective method.

Parameter blocks own their numpy arrays; a solve writes the result back
into them. Each block can be held constant, restricted to a manifold and
bounded per component. The solver works on the tangent space of every free
block around its current value.
"""

import logging
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Sequence

import numpy as np
from scipy.optimize import least_squares
from scipy.spatial.transform import Rotation as R

from .types import quat_to_rotation, rotation_to_quat

logger = logging.getLogger(__name__)


# ---------- manifolds ----------

class EuclideanManifold:
    """Plain vector space, optionally with some components held fixed."""

    def __init__(self, size: int, fixed: Sequence[int] = ()):
        self.size = size
        self.fixed = tuple(sorted(set(fixed)))
        self.free = [i for i in range(size) if i not in self.fixed]

    @property
    def tangent_size(self) -> int:
        return len(self.free)

    def plus(self, x: np.ndarray, delta: np.ndarray) -> np.ndarray:
        y = np.array(x, dtype=float)
        y[self.free] += delta
        return y


class QuaternionManifold:
    """Unit quaternions (w, x, y, z): 4 parameters, 3 degrees of freedom."""

    size = 4
    tangent_size = 3

    def plus(self, q: np.ndarray, delta: np.ndarray) -> np.ndarray:
        return rotation_to_quat(R.from_rotvec(delta) * quat_to_rotation(q))


class YawQuaternionManifold:
    """Unit quaternions with x = y = 0, i.e. rotations about the world z axis."""

    size = 4
    tangent_size = 1

    def plus(self, q: np.ndarray, delta: np.ndarray) -> np.ndarray:
        rot = R.from_rotvec([0.0, 0.0, float(delta[0])]) * quat_to_rotation(q)
        out = rotation_to_quat(rot)
        out[1] = out[2] = 0.0
        return out / np.linalg.norm(out)


# ---------- blocks ----------

@dataclass
class ParameterBlock:
    name: str
    values: np.ndarray
    manifold: object = None
    constant: bool = False
    lower: np.ndarray = None
    upper: np.ndarray = None

    def __post_init__(self):
        size = len(self.values)
        if self.manifold is None:
            self.manifold = EuclideanManifold(size)
        self.lower = np.full(size, -np.inf)
        self.upper = np.full(size, np.inf)


@dataclass
class ResidualBlock:
    """cost_function(*parameter_values) -> residual vector."""
    cost_function: Callable[..., np.ndarray]
    parameter_names: List[str]


@dataclass
class SolverOptions:
    max_function_evaluations: int = 200
    ftol: float = 1e-10
    xtol: float = 1e-10
    gtol: float = 1e-10
    loss: str = 'cauchy'
    loss_scale: float = 3.0


@dataclass
class SolverSummary:
    """Diagnostics of the last solve."""
    iterations: int = 0
    function_evaluations: int = 0
    initial_cost: float = 0.0
    final_cost: float = 0.0
    converged: bool = False
    message: str = ''
    num_residuals: int = 0
    num_parameters: int = 0


def loss_rho(z: np.ndarray, loss: str) -> np.ndarray:
    """Loss rho(z) of a squared, scale-normalized residual norm z."""
    if loss == 'cauchy':
        return np.log1p(z)
    if loss == 'linear':
        return np.asarray(z, dtype=float)
    raise ValueError(f"Unknown loss '{loss}'")


def robustify_block(residual: np.ndarray, loss: str, scale: float) -> np.ndarray:
    """
    Rescale one residual block so that its squared norm becomes
    scale^2 * rho(|r|^2 / scale^2).

    The loss acts on the block as a whole, so a 2D reprojection error is
    weighted by its length and not by its direction.
    """
    r = np.asarray(residual, dtype=float).ravel()
    z = float(np.dot(r, r)) / scale ** 2
    rho = float(loss_rho(z, loss))
    if z < 1e-12:
        return r
    return r * np.sqrt(rho / z)


def robust_cost(blocks: Sequence[np.ndarray], loss: str, scale: float) -> float:
    """0.5 * sum over blocks of scale^2 * rho(|r_i|^2 / scale^2)."""
    z = np.array([np.sum(np.square(np.asarray(b, dtype=float))) for b in blocks]) / scale ** 2
    return float(0.5 * scale ** 2 * np.sum(loss_rho(z, loss)))


# ---------- problem ----------

class OptimizationProblem:
    """Named parameter blocks plus a replaceable set of residual blocks."""

    def __init__(self):
        self.parameter_blocks: Dict[str, ParameterBlock] = {}
        self.residual_blocks: List[ResidualBlock] = []

    # parameter blocks

    def add_parameter_block(self, name: str, values: np.ndarray) -> ParameterBlock:
        """Register values under name. Re-adding an existing name is a no-op."""
        if name in self.parameter_blocks:
            return self.parameter_blocks[name]
        block = ParameterBlock(name, values)
        self.parameter_blocks[name] = block
        return block

    def _block(self, name: str) -> ParameterBlock:
        if name not in self.parameter_blocks:
            raise KeyError(f"Unknown parameter block '{name}'")
        return self.parameter_blocks[name]

    def set_manifold(self, name: str, manifold) -> None:
        block = self._block(name)
        if manifold.size != len(block.values):
            raise ValueError(f"Manifold size {manifold.size} does not match block '{name}'")
        block.manifold = manifold

    def get_manifold(self, name: str):
        return self._block(name).manifold

    def set_constant(self, name: str) -> None:
        self._block(name).constant = True

    def set_variable(self, name: str) -> None:
        self._block(name).constant = False

    def is_constant(self, name: str) -> bool:
        return self._block(name).constant

    def set_upper_bound(self, name: str, index: int, value: float) -> None:
        self._block(name).upper[index] = value

    def set_lower_bound(self, name: str, index: int, value: float) -> None:
        self._block(name).lower[index] = value

    # residual blocks

    def add_residual_block(self, cost_function: Callable[..., np.ndarray],
                           parameter_names: Sequence[str]) -> ResidualBlock:
        for name in parameter_names:
            self._block(name)
        block = ResidualBlock(cost_function, list(parameter_names))
        self.residual_blocks.append(block)
        return block

    def clear_residual_blocks(self) -> None:
        self.residual_blocks = []

    def replace_residual_blocks(self, blocks: Sequence[ResidualBlock]) -> None:
        """Swap in a complete, already validated set of residual blocks."""
        for block in blocks:
            for name in block.parameter_names:
                self._block(name)
        self.residual_blocks = list(blocks)

    @property
    def num_residual_blocks(self) -> int:
        return len(self.residual_blocks)

    # evaluation

    def _active_blocks(self) -> List[ParameterBlock]:
        used = []
        for rb in self.residual_blocks:
            for name in rb.parameter_names:
                if name not in used:
                    used.append(name)
        return [self.parameter_blocks[n] for n in used]

    def evaluate_blocks(self, values: Optional[Dict[str, np.ndarray]] = None) -> List[np.ndarray]:
        """Residual vector of every block at the given (or current) parameter values."""
        if values is None:
            values = {n: b.values for n, b in self.parameter_blocks.items()}
        return [
            np.asarray(rb.cost_function(*[values[n] for n in rb.parameter_names]), dtype=float).ravel()
            for rb in self.residual_blocks
        ]

    def evaluate(self, values: Optional[Dict[str, np.ndarray]] = None) -> np.ndarray:
        """Stacked residual vector at the given (or current) parameter values."""
        blocks = self.evaluate_blocks(values)
        return np.concatenate(blocks) if blocks else np.zeros(0)

    def _tangent_bounds(self, block: ParameterBlock):
        n = block.manifold.tangent_size
        lower = np.full(n, -np.inf)
        upper = np.full(n, np.inf)
        bounded = np.isfinite(block.lower).any() or np.isfinite(block.upper).any()
        if not bounded:
            return lower, upper
        if not isinstance(block.manifold, EuclideanManifold):
            raise ValueError(f"Bounds on block '{block.name}' need a Euclidean manifold")

        for t, i in enumerate(block.manifold.free):
            # linearization point must be feasible
            block.values[i] = np.clip(block.values[i], block.lower[i], block.upper[i])
            lower[t] = block.lower[i] - block.values[i]
            upper[t] = block.upper[i] - block.values[i]
        return lower, upper

    def solve(self, options: SolverOptions = None) -> SolverSummary:
        """
        Minimize the sum of the robustified squared norms of all residual
        blocks.

        The solution is written into the parameter arrays. Non-convergence is
        reported in the summary only.
        """
        options = options or SolverOptions()
        summary = SolverSummary(num_residuals=0)
        if not self.residual_blocks:
            summary.message = 'no residual blocks'
            return summary

        free = [b for b in self._active_blocks() if not b.constant and b.manifold.tangent_size > 0]
        slices = {}
        lower, upper = [], []
        offset = 0
        for block in free:
            n = block.manifold.tangent_size
            slices[block.name] = slice(offset, offset + n)
            lo, hi = self._tangent_bounds(block)
            lower.append(lo)
            upper.append(hi)
            offset += n

        origin = {n: b.values.copy() for n, b in self.parameter_blocks.items()}

        def unpack(delta: np.ndarray) -> Dict[str, np.ndarray]:
            values = dict(origin)
            for block in free:
                values[block.name] = block.manifold.plus(origin[block.name], delta[slices[block.name]])
            return values

        def residuals(delta: np.ndarray) -> np.ndarray:
            return np.concatenate([
                robustify_block(r, options.loss, options.loss_scale)
                for r in self.evaluate_blocks(unpack(delta))
            ])

        x0 = np.zeros(offset)
        blocks0 = self.evaluate_blocks(unpack(x0))
        summary.num_residuals = sum(len(r) for r in blocks0)
        summary.num_parameters = offset
        summary.initial_cost = robust_cost(blocks0, options.loss, options.loss_scale)

        if offset == 0:
            summary.final_cost = summary.initial_cost
            summary.converged = True
            summary.message = 'no free parameters'
            return summary

        result = least_squares(
            residuals, x0,
            jac='3-point',
            bounds=(np.concatenate(lower), np.concatenate(upper)),
            method='trf',
            tr_solver='exact',
            x_scale='jac',
            # the loss is already folded into the residuals per block
            loss='linear',
            ftol=options.ftol,
            xtol=options.xtol,
            gtol=options.gtol,
            max_nfev=options.max_function_evaluations
        )

        solution = unpack(result.x)
        for block in free:
            block.values[:] = solution[block.name]

        summary.iterations = int(result.njev or 0)
        summary.function_evaluations = int(result.nfev)
        summary.final_cost = float(result.cost)
        summary.converged = bool(result.success)
        summary.message = str(result.message)
        return summary
