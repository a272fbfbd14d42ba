"""Tests for the humanoid extension: named joints, gaze and zero momentum point."""

import logging

import numpy as np
import pytest

from jax_dynamics import HumanoidDynamicRobot, Joint, KinematicChainError, NotReadyError


def _set_state(robot, q, dq=None, ddq=None):
    n = robot.number_dof()
    robot.current_configuration = q
    robot.current_velocity = np.zeros(n) if dq is None else dq
    robot.current_acceleration = np.zeros(n) if ddq is None else ddq


def test_named_joints(humanoid):
    robot, joints = humanoid
    assert robot.left_foot is joints["left_ankle"]
    assert robot.right_foot is joints["right_ankle"]
    assert robot.left_hand is joints["left_wrist"]
    assert robot.right_hand is joints["right_wrist"]
    assert robot.chest is joints["chest"]
    assert robot.gaze_joint is joints["neck"]

    robot.left_hand = None
    assert robot.left_hand is None


def test_named_joint_must_belong_to_robot(humanoid):
    robot, joints = humanoid
    with pytest.raises(KinematicChainError):
        robot.right_hand = Joint("stranger")
    assert robot.right_hand is joints["right_wrist"]


def test_unset_named_joints():
    robot = HumanoidDynamicRobot()
    assert robot.left_foot is None
    assert robot.gaze_joint is None


def test_gaze_line(humanoid):
    robot, _ = humanoid
    origin, direction = robot.gaze
    np.testing.assert_allclose(direction, [1.0, 0.0, 0.0])

    robot.set_gaze([0.05, 0.0, 0.1], [0.0, 3.0, 4.0])
    origin, direction = robot.gaze
    np.testing.assert_allclose(origin, [0.05, 0.0, 0.1])
    np.testing.assert_allclose(direction, [0.0, 0.6, 0.8])

    # The returned arrays are copies
    direction[0] = 10.0
    np.testing.assert_allclose(robot.gaze[1], [0.0, 0.6, 0.8])


def test_gaze_rejects_zero_direction(humanoid):
    robot, _ = humanoid
    with pytest.raises(ValueError):
        robot.set_gaze(np.zeros(3), np.zeros(3))
    np.testing.assert_allclose(robot.gaze[1], [1.0, 0.0, 0.0])


def test_zmp_requires_center_of_mass_pass(humanoid):
    robot, _ = humanoid
    with pytest.raises(NotReadyError):
        robot.zero_momentum_point()
    robot.compute_center_of_mass_dynamics()
    robot.zero_momentum_point()
    robot.current_configuration = np.full(18, 0.1)
    with pytest.raises(NotReadyError):
        robot.zero_momentum_point()


def test_static_zmp_is_com_projection(humanoid, random_state):
    robot, _ = humanoid
    _set_state(robot, random_state(18, seed=41)[0])
    robot.compute_center_of_mass_dynamics()
    com = robot.position_center_of_mass
    np.testing.assert_allclose(robot.zero_momentum_point(), [com[0], com[1], 0.0], atol=1e-12)


def test_zmp_of_accelerating_point_mass(humanoid):
    """Pure horizontal acceleration of the whole robot tilts the ZMP backwards."""
    robot, _ = humanoid
    ddq = np.zeros(18)
    ddq[0] = 1.0
    _set_state(robot, np.zeros(18), None, ddq)
    robot.compute_center_of_mass_dynamics()
    com = robot.position_center_of_mass
    zmp = robot.zero_momentum_point()
    # No rotation: dL = 0, F = M (1, 0, 9.81)
    assert zmp[0] == pytest.approx(com[0] - com[2] * 1.0 / 9.81)
    assert zmp[1] == pytest.approx(com[1])
    assert zmp[2] == 0.0


def test_zmp_option_runs_center_of_mass(humanoid):
    robot, _ = humanoid
    robot.set_property("ComputeZMP", "true")
    robot.compute_forward_kinematics()
    assert robot.zero_momentum_point().shape == (3,)


def test_zmp_undefined_without_vertical_force(humanoid, caplog):
    robot, _ = humanoid
    robot.set_property("Gravity", "0 0 0")
    robot.compute_center_of_mass_dynamics()
    with caplog.at_level(logging.WARNING, logger="jax_dynamics.humanoid"):
        zmp = robot.zero_momentum_point()
    assert not np.all(np.isfinite(zmp))
    assert "ZMP is undefined" in caplog.text
