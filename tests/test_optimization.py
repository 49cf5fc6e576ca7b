import numpy as np
import pytest
from scipy.spatial.transform import Rotation as R

from landmark_localizer.optimization import (EuclideanManifold, OptimizationProblem, QuaternionManifold,
                                             SolverOptions, YawQuaternionManifold, robust_cost,
                                             robustify_block)
from landmark_localizer.types import quat_to_rotation

LINEAR = SolverOptions(loss='linear')


def test_solution_is_written_into_the_block_array():
    x = np.zeros(2)
    problem = OptimizationProblem()
    problem.add_parameter_block('x', x)
    problem.add_residual_block(lambda v: v - np.array([1.0, -2.0]), ['x'])

    summary = problem.solve(LINEAR)

    np.testing.assert_allclose(x, [1.0, -2.0], atol=1e-8)
    assert summary.converged
    assert summary.num_residuals == 2
    assert summary.num_parameters == 2
    assert summary.final_cost < summary.initial_cost


def test_adding_a_block_twice_keeps_the_first():
    problem = OptimizationProblem()
    first = problem.add_parameter_block('x', np.zeros(2))
    assert problem.add_parameter_block('x', np.ones(2)) is first


def test_upper_bound_is_respected():
    x = np.zeros(1)
    problem = OptimizationProblem()
    problem.add_parameter_block('x', x)
    problem.set_upper_bound('x', 0, 2.0)
    problem.add_residual_block(lambda v: v - 5.0, ['x'])

    problem.solve(LINEAR)
    assert x[0] <= 2.0
    assert x[0] == pytest.approx(2.0, abs=1e-3)


def test_infeasible_start_is_clipped_into_bounds():
    x = np.array([3.0])
    problem = OptimizationProblem()
    problem.add_parameter_block('x', x)
    problem.set_lower_bound('x', 0, -1.0)
    problem.set_upper_bound('x', 0, 1.0)
    problem.add_residual_block(lambda v: v - 0.5, ['x'])

    problem.solve(LINEAR)
    assert x[0] == pytest.approx(0.5, abs=1e-6)


def test_fixed_component_does_not_move():
    x = np.array([0.0, 0.0, 7.0])
    problem = OptimizationProblem()
    problem.add_parameter_block('x', x)
    problem.set_manifold('x', EuclideanManifold(3, fixed=[2]))
    problem.add_residual_block(lambda v: v - np.array([1.0, 2.0, 3.0]), ['x'])

    problem.solve(LINEAR)
    np.testing.assert_allclose(x, [1.0, 2.0, 7.0], atol=1e-8)


def test_constant_block_is_left_alone():
    a = np.array([1.0])
    b = np.array([0.0])
    problem = OptimizationProblem()
    problem.add_parameter_block('a', a)
    problem.add_parameter_block('b', b)
    problem.set_constant('a')
    problem.add_residual_block(lambda va, vb: va + vb - 3.0, ['a', 'b'])

    problem.solve(LINEAR)
    assert a[0] == 1.0
    assert b[0] == pytest.approx(2.0, abs=1e-8)
    assert problem.is_constant('a')

    problem.set_variable('a')
    assert not problem.is_constant('a')


def test_quaternion_manifold_keeps_unit_norm():
    target = R.from_euler('xyz', [0.2, -0.1, 0.3])
    vectors = np.eye(3)

    q = np.array([1.0, 0.0, 0.0, 0.0])
    problem = OptimizationProblem()
    problem.add_parameter_block('q', q)
    problem.set_manifold('q', QuaternionManifold())
    problem.add_residual_block(
        lambda v: (quat_to_rotation(v).apply(vectors) - target.apply(vectors)).ravel(), ['q'])

    problem.solve(LINEAR)

    assert np.linalg.norm(q) == pytest.approx(1.0)
    assert (quat_to_rotation(q).inv() * target).magnitude() < 1e-6


def test_yaw_manifold_stays_about_z():
    manifold = YawQuaternionManifold()
    q = manifold.plus(np.array([1.0, 0.0, 0.0, 0.0]), np.array([0.5]))

    assert q[1] == 0.0 and q[2] == 0.0
    assert quat_to_rotation(q).as_euler('xyz')[2] == pytest.approx(0.5)


def test_manifold_size_must_match_block():
    problem = OptimizationProblem()
    problem.add_parameter_block('x', np.zeros(3))
    with pytest.raises(ValueError):
        problem.set_manifold('x', QuaternionManifold())


def test_residuals_need_known_blocks():
    problem = OptimizationProblem()
    with pytest.raises(KeyError):
        problem.add_residual_block(lambda v: v, ['missing'])


def test_replace_residual_blocks_swaps_the_whole_set():
    problem = OptimizationProblem()
    problem.add_parameter_block('x', np.zeros(1))
    first = problem.add_residual_block(lambda v: v - 1.0, ['x'])
    second = problem.add_residual_block(lambda v: v - 2.0, ['x'])
    assert problem.num_residual_blocks == 2

    problem.replace_residual_blocks([second])
    assert problem.residual_blocks == [second]
    assert first not in problem.residual_blocks

    problem.clear_residual_blocks()
    assert problem.num_residual_blocks == 0


def test_solving_without_residuals_is_a_no_op():
    x = np.array([4.0])
    problem = OptimizationProblem()
    problem.add_parameter_block('x', x)

    summary = problem.solve()
    assert x[0] == 4.0
    assert not summary.converged
    assert summary.num_residuals == 0


def test_robust_cost_matches_least_squares_convention():
    blocks = [np.array([1.0]), np.array([-2.0]), np.array([0.5])]
    assert robust_cost(blocks, 'linear', 1.0) == pytest.approx(0.5 * 5.25)
    assert robust_cost([np.array([1.0, -2.0])], 'cauchy', 3.0) == pytest.approx(0.5 * 9.0 * np.log1p(5.0 / 9.0))
    # cauchy grows slower than the square for large residuals
    assert robust_cost([[100.0]], 'cauchy', 3.0) < robust_cost([[100.0]], 'linear', 3.0)

    with pytest.raises(ValueError):
        robust_cost(blocks, 'nope', 1.0)


def test_loss_acts_on_the_block_norm():
    assert robust_cost([[3.0, 4.0]], 'cauchy', 3.0) == pytest.approx(robust_cost([[5.0, 0.0]], 'cauchy', 3.0))
    assert robust_cost([[3.0, 4.0]], 'cauchy', 3.0) != pytest.approx(
        robust_cost([[3.0], [4.0]], 'cauchy', 3.0))

    a = robustify_block([3.0, 4.0], 'cauchy', 3.0)
    b = robustify_block([5.0, 0.0], 'cauchy', 3.0)
    assert np.linalg.norm(a) == pytest.approx(np.linalg.norm(b))
    assert 0.5 * np.dot(a, a) == pytest.approx(robust_cost([[3.0, 4.0]], 'cauchy', 3.0))
    np.testing.assert_allclose(robustify_block([0.0, 0.0], 'cauchy', 3.0), [0.0, 0.0])


def solve_with_outlier(outlier):
    problem = OptimizationProblem()
    x = np.zeros(2)
    problem.add_parameter_block('x', x)
    for target in [np.zeros(2)] * 3 + [np.asarray(outlier, dtype=float)]:
        problem.add_residual_block(lambda v, t=target: v - t, ['x'])
    summary = problem.solve(SolverOptions())
    return x, summary


def test_robust_solution_does_not_depend_on_error_direction():
    angle = np.pi / 4
    rot = np.array([[np.cos(angle), -np.sin(angle)], [np.sin(angle), np.cos(angle)]])

    x_a, summary = solve_with_outlier([20.0, 0.0])
    x_b, _ = solve_with_outlier(rot @ [20.0, 0.0])

    assert summary.converged
    assert 0.0 < x_a[0] < 1.0
    assert abs(x_a[1]) < 1e-8
    np.testing.assert_allclose(rot @ x_a, x_b, atol=1e-6)
    blocks = [x_a, x_a, x_a, x_a - [20.0, 0.0]]
    assert summary.final_cost == pytest.approx(robust_cost(blocks, 'cauchy', 3.0))
