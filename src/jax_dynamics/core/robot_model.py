"""RobotModel PyTree data structure for JAX-native robot representation.

This module defines the immutable, array-only form of a joint tree that the
kinematics and dynamics kernels operate on.
"""

from typing import Sequence, Tuple

import jax.numpy as jnp
import numpy as np
from flax import struct
from jax import Array

from .joint import MAX_JOINT_DOF, Joint


@struct.dataclass
class RobotModel:
    """Immutable PyTree representation of a robot's kinematic and inertial structure.

    Joints are stored in a parent-before-child traversal order and linked by
    integer indices. Every joint has MAX_JOINT_DOF motion slots; unused slots
    carry a zero screw axis and point at the extra, always-zero entry appended
    to the configuration vector (index ``num_dof``).

    Attributes:
        joint_names: Tuple of all joint names. Index corresponds to joint ID.
        num_dof: Length of the configuration vector.
        parent_indices: Array of shape (num_joints,), parent joint index, -1
                        for the root.
        placements: Array of shape (num_joints, 4, 4), pose of each joint frame
                    in its parent joint frame at zero configuration.
        motion_axes: Array of shape (num_joints, 6, 6), screw axes [v, w] of
                     the motion slots, in application order.
        dof_indices: Array of shape (num_joints, 6), configuration index of each
                     motion slot.
        masses: Array of shape (num_joints,), body masses.
        coms: Array of shape (num_joints, 3), body centers of mass in joint frame.
        inertias: Array of shape (num_joints, 3, 3), body inertias about the COM.
        ancestor_mask: Array of shape (num_joints, num_joints), entry [b, j]
                       is 1 when joint j is joint b or one of its ancestors.
    """
    joint_names: Tuple[str, ...] = struct.field(pytree_node=False)
    num_dof: int = struct.field(pytree_node=False)
    parent_indices: Array
    placements: Array
    motion_axes: Array
    dof_indices: Array
    masses: Array
    coms: Array
    inertias: Array
    ancestor_mask: Array

    @property
    def num_joints(self) -> int:
        return len(self.joint_names)

    @classmethod
    def from_joints(cls, joints: Sequence[Joint]) -> "RobotModel":
        """Compile a joint tree into a RobotModel.

        Args:
            joints: All joints of the tree in parent-before-child order, each
                    with its ``rank_in_configuration`` already assigned.

        Returns:
            RobotModel: A JAX-native robot representation.
        """
        index = {id(joint): i for i, joint in enumerate(joints)}
        num_joints = len(joints)
        num_dof = sum(joint.number_dof() for joint in joints)

        parent_indices = np.full(num_joints, -1, dtype=np.int32)
        placements = np.zeros((num_joints, 4, 4))
        motion_axes = np.zeros((num_joints, MAX_JOINT_DOF, 6))
        # Unused slots read the zero appended after the last DOF
        dof_indices = np.full((num_joints, MAX_JOINT_DOF), num_dof, dtype=np.int32)
        masses = np.zeros(num_joints)
        coms = np.zeros((num_joints, 3))
        inertias = np.zeros((num_joints, 3, 3))
        ancestor_mask = np.zeros((num_joints, num_joints))

        for i, joint in enumerate(joints):
            if joint.parent is not None:
                parent_indices[i] = index[id(joint.parent)]
                if parent_indices[i] >= i:
                    raise ValueError("joints must be listed parent before child")
            placements[i] = joint.placement

            axes = joint.motion_axes()
            motion_axes[i, :len(axes)] = axes
            for slot, k in enumerate(joint.application_order()):
                dof_indices[i, slot] = joint.rank_in_configuration + k

            masses[i] = joint.body.mass
            coms[i] = joint.body.com
            inertias[i] = joint.body.inertia

            for ancestor in joint.joints_from_root():
                ancestor_mask[i, index[id(ancestor)]] = 1.0

        return cls(
            joint_names=tuple(joint.name for joint in joints),
            num_dof=num_dof,
            parent_indices=jnp.asarray(parent_indices),
            placements=jnp.asarray(placements),
            motion_axes=jnp.asarray(motion_axes),
            dof_indices=jnp.asarray(dof_indices),
            masses=jnp.asarray(masses),
            coms=jnp.asarray(coms),
            inertias=jnp.asarray(inertias),
            ancestor_mask=jnp.asarray(ancestor_mask),
        )
