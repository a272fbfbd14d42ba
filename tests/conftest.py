"""Small robots built programmatically for the test-suite."""

import numpy as np
import pytest

from jax_dynamics import Body, DynamicRobot, HumanoidDynamicRobot, Joint, JointType


def translation(x, y, z):
    T = np.eye(4)
    T[:3, 3] = (x, y, z)
    return T


def build_pendulum():
    """Fixed base and one revolute joint about z carrying 1 kg at 1 m along x."""
    base = Joint("base", JointType.FIXED)
    swing = Joint("swing", JointType.REVOLUTE, axis=(0.0, 0.0, 1.0),
                  body=Body(mass=1.0, com=(1.0, 0.0, 0.0)))
    base.add_child_joint(swing)

    robot = DynamicRobot()
    robot.root_joint = base
    robot.initialize()
    return robot, {"base": base, "swing": swing}


def build_arm():
    """Fixed base, yaw, pitch and a prismatic forearm: 3 dof."""
    base = Joint("base", JointType.FIXED, body=Body(mass=2.0, com=(0.0, 0.0, 0.05),
                                                    inertia=np.diag([0.01, 0.01, 0.02])))
    yaw = Joint("yaw", JointType.REVOLUTE, axis=(0.0, 0.0, 1.0),
                placement=translation(0.0, 0.0, 0.1),
                lower_bounds=[-2.5], upper_bounds=[2.5],
                body=Body(mass=1.5, com=(0.0, 0.0, 0.1), inertia=np.diag([0.02, 0.02, 0.01])))
    pitch = Joint("pitch", JointType.REVOLUTE, axis=(0.0, 1.0, 0.0),
                  placement=translation(0.0, 0.0, 0.2),
                  lower_bounds=[-1.5], upper_bounds=[1.5],
                  body=Body(mass=1.0, com=(0.2, 0.0, 0.0), inertia=np.diag([0.001, 0.01, 0.01])))
    slide = Joint("slide", JointType.PRISMATIC, axis=(1.0, 0.0, 0.0),
                  placement=translation(0.4, 0.0, 0.0),
                  lower_bounds=[0.0], upper_bounds=[0.3],
                  body=Body(mass=0.5, com=(0.05, 0.0, 0.0), inertia=np.diag([0.001, 0.002, 0.002])))
    base.add_child_joint(yaw)
    yaw.add_child_joint(pitch)
    pitch.add_child_joint(slide)

    robot = DynamicRobot()
    robot.root_joint = base
    robot.initialize()
    return robot, {"base": base, "yaw": yaw, "pitch": pitch, "slide": slide}


def _limb(name, parent, placement, axis, mass, com, length):
    joint = Joint(name, JointType.REVOLUTE, axis=axis, placement=placement,
                  body=Body(mass=mass, com=com,
                            inertia=np.diag([mass * length ** 2 / 12.0] * 2 + [mass * 1e-3])))
    parent.add_child_joint(joint)
    return joint


def build_humanoid():
    """Free-flyer waist with two 3-dof legs, a chest, two 2-dof arms and a neck: 18 dof."""
    waist = Joint("waist", JointType.FREE_FLYER,
                  body=Body(mass=10.0, com=(0.0, 0.0, 0.05), inertia=np.diag([0.1, 0.08, 0.06])))
    joints = {"waist": waist}
    for side, y in (("left", 0.1), ("right", -0.1)):
        hip = _limb(f"{side}_hip", waist, translation(0.0, y, -0.1), (0.0, 1.0, 0.0),
                    2.0, (0.0, 0.0, -0.2), 0.4)
        knee = _limb(f"{side}_knee", hip, translation(0.0, 0.0, -0.4), (0.0, 1.0, 0.0),
                     1.5, (0.0, 0.0, -0.2), 0.4)
        ankle = _limb(f"{side}_ankle", knee, translation(0.0, 0.0, -0.4), (1.0, 0.0, 0.0),
                      0.5, (0.05, 0.0, -0.05), 0.1)
        joints.update({hip.name: hip, knee.name: knee, ankle.name: ankle})

    chest = _limb("chest", waist, translation(0.0, 0.0, 0.2), (0.0, 0.0, 1.0),
                  8.0, (0.0, 0.0, 0.2), 0.4)
    joints["chest"] = chest
    for side, y in (("left", 0.2), ("right", -0.2)):
        shoulder = _limb(f"{side}_shoulder", chest, translation(0.0, y, 0.3), (0.0, 1.0, 0.0),
                         1.0, (0.0, 0.0, -0.15), 0.3)
        wrist = _limb(f"{side}_wrist", shoulder, translation(0.0, 0.0, -0.3), (1.0, 0.0, 0.0),
                      0.3, (0.0, 0.0, -0.05), 0.1)
        joints.update({shoulder.name: shoulder, wrist.name: wrist})
    joints["neck"] = _limb("neck", chest, translation(0.0, 0.0, 0.4), (0.0, 0.0, 1.0),
                           1.5, (0.0, 0.0, 0.1), 0.2)

    robot = HumanoidDynamicRobot()
    robot.root_joint = waist
    robot.initialize()
    robot.left_foot = joints["left_ankle"]
    robot.right_foot = joints["right_ankle"]
    robot.left_hand = joints["left_wrist"]
    robot.right_hand = joints["right_wrist"]
    robot.chest = joints["chest"]
    robot.gaze_joint = joints["neck"]
    return robot, joints


@pytest.fixture
def pendulum():
    return build_pendulum()


@pytest.fixture
def arm():
    return build_arm()


@pytest.fixture
def humanoid():
    return build_humanoid()


@pytest.fixture
def random_state():
    """Deterministic non-trivial (q, dq, ddq) generator for a given dof count."""
    def make(n, seed=0):
        rng = np.random.default_rng(seed)
        return (rng.uniform(-0.8, 0.8, n), rng.uniform(-1.0, 1.0, n), rng.uniform(-1.0, 1.0, n))
    return make
