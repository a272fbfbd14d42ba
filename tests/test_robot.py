"""Tests for the robot-level registries, bounds, actuation and property channel."""

import math

import numpy as np
import pytest

from jax_dynamics import (
    DynamicRobot,
    EngineOptions,
    Joint,
    KinematicChainError,
    NotReadyError,
    OutOfRangeError,
    RobotOption,
    UnsupportedPropertyError,
)


def _set_state(robot, q, dq=None, ddq=None):
    n = robot.number_dof()
    robot.current_configuration = q
    robot.current_velocity = np.zeros(n) if dq is None else dq
    robot.current_acceleration = np.zeros(n) if ddq is None else ddq


# Initialization
def test_initialize_requires_root():
    with pytest.raises(KinematicChainError):
        DynamicRobot().initialize()


def test_queries_before_initialize():
    robot = DynamicRobot()
    robot.root_joint = Joint("only")
    assert not robot.is_initialized
    assert robot.number_dof() == 1
    with pytest.raises(NotReadyError):
        robot.current_configuration = [0.0]
    with pytest.raises(NotReadyError):
        robot.compute_forward_kinematics()


def test_root_joint_must_be_parentless(arm):
    _, joints = arm
    robot = DynamicRobot()
    with pytest.raises(KinematicChainError):
        robot.root_joint = joints["pitch"]


def test_initialize_allocates_zero_state(humanoid):
    robot, _ = humanoid
    assert robot.is_initialized
    np.testing.assert_array_equal(robot.current_configuration, np.zeros(18))
    np.testing.assert_array_equal(robot.current_velocity, np.zeros(18))
    np.testing.assert_array_equal(robot.current_acceleration, np.zeros(18))


# Fixed joints
def test_fixed_joint_registry(humanoid):
    robot, joints = humanoid
    left, right = joints["left_ankle"], joints["right_ankle"]
    assert robot.count_fixed_joints() == 0

    robot.add_fixed_joint(left)
    robot.add_fixed_joint(left)
    assert robot.count_fixed_joints() == 1

    robot.add_fixed_joint(right)
    assert robot.count_fixed_joints() == 2
    assert robot.fixed_joint(0) is left
    assert robot.fixed_joint(1) is right
    with pytest.raises(OutOfRangeError):
        robot.fixed_joint(2)
    with pytest.raises(OutOfRangeError):
        robot.fixed_joint(-1)

    robot.remove_fixed_joint(joints["neck"])
    assert robot.count_fixed_joints() == 2
    robot.remove_fixed_joint(left)
    assert robot.count_fixed_joints() == 1
    assert robot.fixed_joint(0) is right

    robot.clear_fixed_joints()
    assert robot.count_fixed_joints() == 0


def test_fixed_joint_must_belong_to_robot(humanoid):
    robot, _ = humanoid
    with pytest.raises(KinematicChainError):
        robot.add_fixed_joint(Joint("stranger"))


def test_fixed_joint_invalidates_kinematics(humanoid):
    robot, joints = humanoid
    robot.compute_forward_kinematics()
    assert robot.kinematics_ready
    robot.add_fixed_joint(joints["left_ankle"])
    assert not robot.kinematics_ready


def test_anchored_joint_stays_still(humanoid, random_state):
    robot, joints = humanoid
    foot = joints["left_ankle"]
    robot.compute_forward_kinematics()
    frozen = robot.joint_kinematics(foot).transformation

    robot.add_fixed_joint(foot)
    _set_state(robot, *random_state(18, seed=31))
    robot.compute_forward_kinematics()
    anchored = robot.joint_kinematics(foot)

    np.testing.assert_allclose(anchored.transformation, frozen, atol=1e-12)
    np.testing.assert_allclose(anchored.linear_velocity, np.zeros(3), atol=1e-12)
    np.testing.assert_allclose(anchored.angular_velocity, np.zeros(3), atol=1e-12)
    np.testing.assert_allclose(anchored.linear_acceleration, np.zeros(3), atol=1e-12)
    np.testing.assert_allclose(anchored.angular_acceleration, np.zeros(3), atol=1e-12)


def test_anchoring_preserves_relative_motion(humanoid, random_state):
    """Fixing a joint moves the tree rigidly: relative poses are unchanged."""
    robot, joints = humanoid
    q, dq, ddq = random_state(18, seed=32)
    _set_state(robot, q, dq, ddq)
    robot.compute_forward_kinematics()
    foot = robot.joint_kinematics(joints["left_ankle"]).transformation
    hand = robot.joint_kinematics(joints["right_wrist"]).transformation
    free_relative = np.linalg.inv(foot) @ hand

    robot.add_fixed_joint(joints["left_ankle"])
    robot.compute_forward_kinematics()
    foot = robot.joint_kinematics(joints["left_ankle"]).transformation
    hand = robot.joint_kinematics(joints["right_wrist"]).transformation
    np.testing.assert_allclose(np.linalg.inv(foot) @ hand, free_relative, atol=1e-10)


def test_anchor_before_any_kinematics(humanoid):
    robot, joints = humanoid
    robot.add_fixed_joint(joints["right_ankle"])
    robot.compute_forward_kinematics()
    T = robot.joint_kinematics(joints["right_ankle"]).transformation
    np.testing.assert_allclose(T[:3, 3], [0.0, -0.1, -0.9], atol=1e-12)


# Bounds
def test_static_bounds(arm):
    robot, joints = arm
    rank = joints["pitch"].rank_in_configuration
    assert robot.upper_bound_dof(rank) == pytest.approx(1.5)
    assert robot.lower_bound_dof(rank) == pytest.approx(-1.5)


def test_out_of_range_bounds_are_nan(arm):
    robot, _ = arm
    assert math.isnan(robot.upper_bound_dof(3))
    assert math.isnan(robot.lower_bound_dof(-1))
    assert math.isnan(robot.upper_bound_dof(100, np.zeros(3)))


def test_unbounded_free_flyer(humanoid):
    robot, _ = humanoid
    assert robot.upper_bound_dof(0) == math.inf
    assert robot.lower_bound_dof(5) == -math.inf


def test_coupled_bounds(arm):
    robot, joints = arm
    joints["pitch"].set_min_max_table(joints["yaw"], [[-1.0, -0.5, 0.5], [1.0, -2.0, 2.0]])
    rank = joints["pitch"].rank_in_configuration
    yaw = joints["yaw"].rank_in_configuration

    config = np.zeros(3)
    assert robot.lower_bound_dof(rank, config) == pytest.approx(-1.25)
    assert robot.upper_bound_dof(rank, config) == pytest.approx(1.25)

    # Intersected with the static limits
    config[yaw] = 1.0
    assert robot.lower_bound_dof(rank, config) == pytest.approx(-1.5)
    assert robot.upper_bound_dof(rank, config) == pytest.approx(1.5)

    # Held constant outside the table
    config[yaw] = -3.0
    assert robot.upper_bound_dof(rank, config) == pytest.approx(0.5)

    # Without a configuration the static limits apply
    assert robot.upper_bound_dof(rank) == pytest.approx(1.5)


def test_min_max_table_validation(arm):
    _, joints = arm
    with pytest.raises(ValueError):
        joints["pitch"].set_min_max_table(joints["yaw"], [[1.0, -1.0, 1.0], [0.0, -1.0, 1.0]])
    with pytest.raises(ValueError):
        joints["base"].set_min_max_table(joints["yaw"], [[0.0, -1.0, 1.0]])


# Actuated joints
def test_default_actuated_joints(humanoid, arm):
    robot, _ = humanoid
    assert robot.actuated_joints == list(range(6, 18))
    assert arm[0].actuated_joints == [0, 1, 2]


def test_set_actuated_joints(arm):
    robot, _ = arm
    robot.set_actuated_joints([0, 2])
    assert robot.actuated_joints == [0, 2]
    with pytest.raises(OutOfRangeError):
        robot.set_actuated_joints([0, 3])
    assert robot.actuated_joints == [0, 2]


# Property channel
def test_property_channel_round_trip(arm):
    robot, _ = arm
    assert robot.is_supported("ComputeCoM")
    assert robot.get_property("ComputeCoM") == "false"
    robot.set_property("ComputeCoM", "true")
    assert robot.get_property("ComputeCoM") == "true"
    assert robot.options.compute_com is True

    robot.set_property(RobotOption.GRAVITY, "0 0 -1.62")
    assert robot.options.gravity == (0.0, 0.0, -1.62)
    assert robot.get_property("Gravity") == "0.0 0.0 -1.62"


def test_unsupported_property(arm):
    robot, _ = arm
    assert not robot.is_supported("Flux")
    with pytest.raises(UnsupportedPropertyError):
        robot.get_property("Flux")
    with pytest.raises(UnsupportedPropertyError):
        robot.set_property("Flux", "1")


def test_invalid_property_value(arm):
    robot, _ = arm
    with pytest.raises(ValueError):
        robot.set_property("ComputeVelocity", "maybe")
    with pytest.raises(ValueError):
        robot.set_property("Gravity", "0 0")


def test_extension_property():
    options = EngineOptions()
    options.register_extension("SolverTolerance", "1e-6")
    assert options.is_supported("SolverTolerance")
    assert options.get("SolverTolerance") == "1e-6"
    options.set("SolverTolerance", "1e-8")
    assert options.get("SolverTolerance") == "1e-8"
    with pytest.raises(ValueError):
        options.register_extension("Gravity")


def test_set_property_invalidates_results(arm):
    robot, _ = arm
    robot.compute_forward_kinematics()
    robot.set_property("ComputeAcceleration", "false")
    assert not robot.kinematics_ready


def test_joint_attached_after_initialize_is_rejected(arm):
    robot, joints = arm
    extra = Joint("extra")
    joints["slide"].add_child_joint(extra)
    robot.compute_forward_kinematics()
    with pytest.raises(KinematicChainError):
        robot.joint_kinematics(extra)
    with pytest.raises(KinematicChainError):
        robot.get_jacobian(joints["base"], extra, np.zeros(3))
    with pytest.raises(KinematicChainError):
        robot.add_fixed_joint(extra)
    assert robot.count_fixed_joints() == 0
