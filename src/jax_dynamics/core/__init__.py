"""Core robot data structures for JAX Dynamics.

This module provides the mutable joint tree model builders populate and the
immutable, JAX-native model it is compiled into.
"""

from .joint import MAX_JOINT_DOF, Body, Joint, JointType
from .robot_model import RobotModel

__all__ = ["Body", "Joint", "JointType", "MAX_JOINT_DOF", "RobotModel"]
