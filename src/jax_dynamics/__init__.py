"""
JAX Dynamics: a rigid-body dynamics engine for humanoid robots.

This library maintains a tree of joints carrying rigid bodies and computes,
for a given configuration, velocity and acceleration, the kinematic state of
every joint, the center of mass and momenta, Jacobians, the inertia matrix,
joint wrenches and the zero momentum point, using JAX primitives.
"""

import jax
jax.config.update("jax_enable_x64", True)

# Import core modules
from . import transforms
from . import core
from . import chain
from . import dynamics
from .config import EngineOptions, RobotOption
from .core import Body, Joint, JointType, RobotModel
from .errors import (
    DimensionMismatchError,
    DynamicsError,
    KinematicChainError,
    NotReadyError,
    OutOfRangeError,
    UnsupportedPropertyError,
)
from .humanoid import HumanoidDynamicRobot
from .robot import DynamicRobot, JointKinematics

__version__ = "0.1.0"
__all__ = [
    "transforms",
    "core",
    "chain",
    "dynamics",
    "Body",
    "Joint",
    "JointType",
    "RobotModel",
    "DynamicRobot",
    "HumanoidDynamicRobot",
    "JointKinematics",
    "EngineOptions",
    "RobotOption",
    "DynamicsError",
    "DimensionMismatchError",
    "OutOfRangeError",
    "NotReadyError",
    "UnsupportedPropertyError",
    "KinematicChainError",
]
