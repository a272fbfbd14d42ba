"""Core kinematics algorithms: forward kinematics and Jacobian computation.

The forward pass propagates pose, twist and spatial acceleration from the root
to the leaves with the body-frame recursion of Lynch & Park (eq. 8.50-8.52):

    V_i  = Ad_{T^-1} V_{i-1} + S q'
    V'_i = Ad_{T^-1} V'_{i-1} + ad_{V_i} S q' + S q''

and returns everything in world coordinates. Twists are spatial twists
[v_o, w], v_o being the velocity of the body point passing through the world
origin. Jacobians are assembled from the world screw axes of each DOF.
"""

from typing import Optional

import jax
import jax.numpy as jnp
from flax import struct
from jax import Array

from .core import MAX_JOINT_DOF, RobotModel
from .transforms import se3


@struct.dataclass
class KinematicState:
    """World-frame kinematic state of every joint.

    Attributes:
        poses: (num_joints, 4, 4) world pose of each joint frame.
        twists: (num_joints, 6) world spatial twist of each joint body.
        accelerations: (num_joints, 6) time derivative of ``twists``.
        dof_axes: (num_joints, 6, 6) world screw axis of each motion slot.
    """
    poses: Array
    twists: Array
    accelerations: Array
    dof_axes: Array


def _transport(T_step: Array, T: Array, V: Array, dV: Array):
    """Move pose, body twist and body acceleration across a rigid step."""
    X = se3.adjoint(se3.inverse(T_step))
    return T @ T_step, X @ V, X @ dV


def forward_kinematics(
    robot: RobotModel,
    q: Array,
    dq: Array,
    ddq: Array,
    anchor_index: Array = -1,
    anchor_pose: Optional[Array] = None,
) -> KinematicState:
    """Compute pose, twist and acceleration of every joint.

    Args:
        robot: RobotModel containing the robot's structure
        q: Configuration vector of shape (num_dof,)
        dq: Velocity vector of shape (num_dof,)
        ddq: Acceleration vector of shape (num_dof,)
        anchor_index: Index of the joint held fixed in the world, or -1 to let
                      the root joint frame coincide with the world frame.
        anchor_pose: (4, 4) world pose the anchor joint is held at.

    Returns:
        KinematicState in world coordinates.
    """
    num_joints = robot.num_joints
    dtype = robot.placements.dtype

    # Extra trailing zero read by unused motion slots
    pad = jnp.zeros(1, dtype=dtype)
    q_ext = jnp.concatenate([jnp.asarray(q, dtype=dtype), pad])
    dq_ext = jnp.concatenate([jnp.asarray(dq, dtype=dtype), pad])
    ddq_ext = jnp.concatenate([jnp.asarray(ddq, dtype=dtype), pad])

    identity = jnp.eye(4, dtype=dtype)
    poses = jnp.broadcast_to(identity, (num_joints, 4, 4))
    twists = jnp.zeros((num_joints, 6), dtype=dtype)
    accels = jnp.zeros((num_joints, 6), dtype=dtype)

    def scan_body(carry, i):
        """Processes joint `i` using its parent's state from `carry`."""
        poses, twists, accels = carry
        parent = robot.parent_indices[i]
        is_root = parent < 0

        T = jnp.where(is_root, identity, poses[parent])
        V = jnp.where(is_root, 0.0, twists[parent])
        dV = jnp.where(is_root, 0.0, accels[parent])

        T, V, dV = _transport(robot.placements[i], T, V, dV)

        axes = []
        for slot in range(MAX_JOINT_DOF):
            S = robot.motion_axes[i, slot]
            k = robot.dof_indices[i, slot]
            T, V, dV = _transport(se3.exp(S * q_ext[k]), T, V, dV)
            V = V + S * dq_ext[k]
            dV = dV + se3.ad(V) @ S * dq_ext[k] + S * ddq_ext[k]
            axes.append(se3.adjoint(T) @ S)

        carry = (poses.at[i].set(T), twists.at[i].set(V), accels.at[i].set(dV))
        return carry, jnp.stack(axes)

    (poses, body_twists, body_accels), dof_axes = jax.lax.scan(
        scan_body, (poses, twists, accels), jnp.arange(num_joints)
    )

    # Body-frame quantities to world spatial quantities
    Ad = se3.adjoint(poses)
    twists = jnp.einsum("nij,nj->ni", Ad, body_twists)
    accels = jnp.einsum("nij,nj->ni", Ad, body_accels)

    if anchor_pose is None:
        anchor_pose = identity
    return _reanchor(KinematicState(poses, twists, accels, dof_axes), anchor_index, anchor_pose)


def _reanchor(state: KinematicState, anchor_index: Array, anchor_pose: Array) -> KinematicState:
    """Move the whole tree rigidly so the anchor joint is still in the world.

    With g the correcting motion and a the anchor:
        xi'_i  = Ad_g (xi_i - xi_a)
        dxi'_i = Ad_g (dxi_i - dxi_a) + ad_{xi_g} xi'_i,   xi_g = -Ad_g xi_a
    """
    anchored = anchor_index >= 0
    a = jnp.maximum(anchor_index, 0)

    g = jnp.where(anchored, anchor_pose @ se3.inverse(state.poses[a]), jnp.eye(4, dtype=anchor_pose.dtype))
    xi_a = jnp.where(anchored, state.twists[a], 0.0)
    dxi_a = jnp.where(anchored, state.accelerations[a], 0.0)

    Ad_g = se3.adjoint(g)
    twists = jnp.einsum("ij,nj->ni", Ad_g, state.twists - xi_a)
    xi_g = -Ad_g @ xi_a
    accels = (jnp.einsum("ij,nj->ni", Ad_g, state.accelerations - dxi_a)
              + jnp.einsum("ij,nj->ni", se3.ad(xi_g), twists))

    return KinematicState(
        poses=jnp.einsum("ij,njk->nik", g, state.poses),
        twists=twists,
        accelerations=accels,
        dof_axes=jnp.einsum("ij,nkj->nki", Ad_g, state.dof_axes),
    )


def point_jacobian(robot: RobotModel, state: KinematicState, joint_signs: Array, point: Array) -> Array:
    """Compute the 6D Jacobian of a world point w.r.t. the configuration.

    Column k holds the velocity [linear; angular] the point receives from a
    unit velocity of DOF k, scaled by the sign of the joint owning DOF k.

    Args:
        robot: RobotModel containing the robot's structure
        state: KinematicState at the current configuration
        joint_signs: Array of shape (num_joints,), +1 for joints moving the
                     point, -1 for joints moving the reference, 0 otherwise
        point: World coordinates (3,) of the point

    Returns:
        6x(num_dof) Jacobian matrix in configuration order
    """
    axes = state.dof_axes * joint_signs[:, None, None]
    linear = se3.point_velocity(axes, point)
    columns = jnp.concatenate([linear, axes[..., 3:]], axis=-1).reshape(-1, 6)

    J = jnp.zeros((robot.num_dof + 1, 6), dtype=columns.dtype)
    J = J.at[robot.dof_indices.reshape(-1)].add(columns)
    return J[:-1].T


def body_com_positions(robot: RobotModel, state: KinematicState) -> Array:
    """World positions (num_joints, 3) of every body center of mass."""
    return se3.apply(state.poses, robot.coms)


def center_of_mass_jacobian(robot: RobotModel, state: KinematicState, sign_rows: Array) -> Array:
    """Mass-weighted sum of the body COM Jacobians.

    Args:
        robot: RobotModel containing the robot's structure
        state: KinematicState at the current configuration
        sign_rows: Array of shape (num_joints, num_joints); row b holds the
                   joint signs for the chain ending at body b

    Returns:
        3x(num_dof) Jacobian of the center of mass in configuration order
    """
    coms = body_com_positions(robot, state)
    jacobians = jax.vmap(point_jacobian, in_axes=(None, None, 0, 0))(robot, state, sign_rows, coms)
    weights = robot.masses / _safe_total(robot.masses)
    return jnp.einsum("b,bij->ij", weights, jacobians[:, :3])


def _safe_total(masses: Array) -> Array:
    total = jnp.sum(masses)
    return jnp.where(total > 0.0, total, 1.0)
