"""Mass-distribution quantities computed from a kinematic state.

Center of mass and momentum, the generalized inertia matrix, backward
Newton-Euler inverse dynamics and the zero momentum point. Every function is
pure and consumes the KinematicState produced by
:func:`jax_dynamics.chain.forward_kinematics`.
"""

import jax
import jax.numpy as jnp
from flax import struct
from jax import Array

from .chain import KinematicState, body_com_positions, forward_kinematics, point_jacobian
from .core import RobotModel
from .transforms import se3, so3


@struct.dataclass
class CenterOfMassState:
    """Whole-robot center of mass and momentum, world frame.

    Angular momentum and its derivative are taken about the center of mass.
    """
    mass: Array
    position: Array
    velocity: Array
    acceleration: Array
    linear_momentum: Array
    linear_momentum_derivative: Array
    angular_momentum: Array
    angular_momentum_derivative: Array


def _world_inertias(robot: RobotModel, state: KinematicState) -> Array:
    R = se3.get_rotation(state.poses)
    return R @ robot.inertias @ jnp.swapaxes(R, -1, -2)


def center_of_mass_dynamics(robot: RobotModel, state: KinematicState) -> CenterOfMassState:
    """Aggregate the bodies into COM position, velocity, acceleration and momenta.

    L  = sum(I_w w + m (c_b - c) x v_b)
    L' = sum(I_w w' + w x I_w w + m (c_b - c) x a_b)

    Args:
        robot: RobotModel containing the robot's structure
        state: KinematicState at the current configuration

    Returns:
        CenterOfMassState
    """
    m = robot.masses
    total = jnp.sum(m)
    divisor = jnp.where(total > 0.0, total, 1.0)

    points = body_com_positions(robot, state)
    velocities = se3.point_velocity(state.twists, points)
    accelerations = se3.point_acceleration(state.twists, state.accelerations, points)

    position = m @ points / divisor
    velocity = m @ velocities / divisor
    acceleration = m @ accelerations / divisor

    w = state.twists[:, 3:]
    dw = state.accelerations[:, 3:]
    I_w = _world_inertias(robot, state)
    I_w_w = jnp.einsum("nij,nj->ni", I_w, w)
    offsets = points - position

    angular = jnp.sum(I_w_w + m[:, None] * jnp.cross(offsets, velocities), axis=0)
    angular_dot = jnp.sum(
        jnp.einsum("nij,nj->ni", I_w, dw)
        + jnp.cross(w, I_w_w)
        + m[:, None] * jnp.cross(offsets, accelerations),
        axis=0,
    )

    return CenterOfMassState(
        mass=total,
        position=position,
        velocity=velocity,
        acceleration=acceleration,
        linear_momentum=total * velocity,
        linear_momentum_derivative=total * acceleration,
        angular_momentum=angular,
        angular_momentum_derivative=angular_dot,
    )


def center_of_mass_position(robot: RobotModel, q: Array) -> Array:
    """COM position as a function of the configuration alone.

    Convenience for differentiation with jax.jacfwd / jax.jacrev.
    """
    zeros = jnp.zeros_like(q)
    state = forward_kinematics(robot, q, zeros, zeros)
    return center_of_mass_dynamics(robot, state).position


def inertia_matrix(robot: RobotModel, state: KinematicState) -> Array:
    """Generalized mass matrix M = sum(Jv^T m Jv + Jw^T I_w Jw).

    Body Jacobians are taken at each body COM w.r.t. the whole configuration.
    The result is symmetrized.

    Args:
        robot: RobotModel containing the robot's structure
        state: KinematicState at the current configuration

    Returns:
        (num_dof, num_dof) inertia matrix
    """
    points = body_com_positions(robot, state)
    J = jax.vmap(point_jacobian, in_axes=(None, None, 0, 0))(robot, state, robot.ancestor_mask, points)
    Jv, Jw = J[:, :3], J[:, 3:]
    I_w = _world_inertias(robot, state)

    M = (jnp.einsum("b,bin,bim->nm", robot.masses, Jv, Jv)
         + jnp.einsum("bin,bij,bjm->nm", Jw, I_w, Jw))
    return 0.5 * (M + M.T)


@struct.dataclass
class JointWrenches:
    """Wrenches transmitted from each parent body to each joint's subtree.

    Attributes:
        forces: (num_joints, 3) world-frame forces.
        torques: (num_joints, 3) world-frame torques about each joint origin.
        generalized: (num_dof,) projection on the DOF screw axes.
    """
    forces: Array
    torques: Array
    generalized: Array


def _spatial_inertias(robot: RobotModel, state: KinematicState) -> Array:
    """(num_joints, 6, 6) body spatial inertias about the world origin, [v, w] order."""
    m = robot.masses[:, None, None]
    c = so3.skew_symmetric(body_com_positions(robot, state))
    I_c = _world_inertias(robot, state)
    eye = jnp.broadcast_to(jnp.eye(3, dtype=c.dtype), c.shape)

    top = jnp.concatenate([m * eye, -m * c], axis=-1)
    bottom = jnp.concatenate([m * c, I_c - m * c @ c], axis=-1)
    return jnp.concatenate([top, bottom], axis=-2)


def inverse_dynamics(robot: RobotModel, state: KinematicState, gravity: Array) -> JointWrenches:
    """Backward Newton-Euler pass over the computed motion.

    Each body needs F = G (xi' - [g; 0]) - ad_xi^T G xi, world spatial form.
    Wrenches [f; tau_o] are accumulated from the leaves to the root.

    Args:
        robot: RobotModel containing the robot's structure
        state: KinematicState at the current configuration
        gravity: (3,) gravity acceleration

    Returns:
        JointWrenches
    """
    G = _spatial_inertias(robot, state)
    a_g = jnp.concatenate([jnp.asarray(gravity, dtype=G.dtype), jnp.zeros(3, dtype=G.dtype)])
    momenta = jnp.einsum("nij,nj->ni", G, state.twists)
    body_wrenches = (jnp.einsum("nij,nj->ni", G, state.accelerations - a_g)
                     - jnp.einsum("nji,nj->ni", se3.ad(state.twists), momenta))

    def scan_body(wrenches, i):
        parent = robot.parent_indices[i]
        contribution = jnp.where(parent >= 0, wrenches[i], 0.0)
        return wrenches.at[jnp.maximum(parent, 0)].add(contribution), None

    # Reverse traversal visits children before their parent
    wrenches, _ = jax.lax.scan(scan_body, body_wrenches, jnp.arange(robot.num_joints), reverse=True)

    forces = wrenches[:, :3]
    origins = se3.get_position(state.poses)
    torques = wrenches[:, 3:] - jnp.cross(origins, forces)

    projections = jnp.einsum("nkj,nj->nk", state.dof_axes, wrenches).reshape(-1)
    generalized = jnp.zeros(robot.num_dof + 1, dtype=G.dtype).at[robot.dof_indices.reshape(-1)].add(projections)

    return JointWrenches(forces=forces, torques=torques, generalized=generalized[:-1])


def zero_momentum_point(com: CenterOfMassState, gravity: Array) -> Array:
    """Zero momentum point on the ground plane z = 0.

    With F = M (c'' - g) and L' about the COM, the horizontal moment of the
    gravito-inertial wrench vanishes at

        x = c_x - (L'_y + c_z F_x) / F_z
        y = c_y + (L'_x - c_z F_y) / F_z

    Args:
        com: CenterOfMassState at the current configuration
        gravity: (3,) gravity acceleration

    Returns:
        (3,) ZMP, non-finite when F_z vanishes
    """
    c = com.position
    force = com.mass * (com.acceleration - jnp.asarray(gravity))
    dL = com.angular_momentum_derivative
    x = c[0] - (dL[1] + c[2] * force[0]) / force[2]
    y = c[1] + (dL[0] - c[2] * force[1]) / force[2]
    return jnp.stack([x, y, jnp.zeros_like(x)])
