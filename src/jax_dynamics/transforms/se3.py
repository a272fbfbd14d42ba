"""SE(3) and se(3) Lie group operations in JAX.

This module implements SE(3) rigid body transforms using homogeneous matrices
and 6D twist vectors. Twists, spatial accelerations and screw axes are all
ordered [vx, vy, vz, wx, wy, wz]: the linear part first, the angular part last.
All functions are pure, JIT-able and differentiable at the identity.
"""


import jax
import jax.numpy as jnp

from . import so3

Array = jax.Array

_SMALL_ANGLE_SQ = 1e-12


def from_position_and_rotation(p: Array, R: Array) -> Array:
    """
    Construct SE(3) transform from position and rotation.

    Args:
        p: (..., 3) position vector
        R: (..., 3, 3) rotation matrix

    Returns:
        (..., 4, 4) homogeneous transformation matrix
    """
    p = jnp.asarray(p)
    R = jnp.asarray(R)

    # Ensure consistent batch shapes
    batch_shape = jnp.broadcast_shapes(p.shape[:-1], R.shape[:-2])
    p = jnp.broadcast_to(p, batch_shape + (3,))
    R = jnp.broadcast_to(R, batch_shape + (3, 3))

    dtype = jnp.result_type(p.dtype, R.dtype)
    T = jnp.zeros(batch_shape + (4, 4), dtype=dtype)
    T = T.at[..., :3, :3].set(R)
    T = T.at[..., :3, 3].set(p)
    T = T.at[..., 3, 3].set(1.0)

    return T


def exp(twist: Array) -> Array:
    """
    SE(3) exponential map: convert twist to transformation matrix.

    The translation uses V = I + ((1 - cos t) / t^2) K + ((t - sin t) / t^3) K^2
    on the unnormalized skew matrix K of the angular part, with Taylor
    expansions near t = 0.

    Args:
        twist: (..., 6) array of twists [vx, vy, vz, wx, wy, wz].

    Returns:
        (..., 4, 4) array of transformation matrices.
    """
    v, w = twist[..., :3], twist[..., 3:]

    R = so3.exp(w)

    angle_sq = jnp.sum(w * w, axis=-1)[..., None, None]
    small = angle_sq < _SMALL_ANGLE_SQ
    safe_sq = jnp.where(small, 1.0, angle_sq)
    angle = jnp.sqrt(safe_sq)

    # B = (1 - cos(theta)) / theta^2,  C = (theta - sin(theta)) / theta^3
    B = jnp.where(small, 0.5 - angle_sq / 24.0, (1.0 - jnp.cos(angle)) / safe_sq)
    C = jnp.where(small, 1.0 / 6.0 - angle_sq / 120.0, (angle - jnp.sin(angle)) / (safe_sq * angle))

    K = so3.skew_symmetric(w)
    I = jnp.broadcast_to(jnp.eye(3, dtype=twist.dtype), K.shape)
    V = I + B * K + C * jnp.matmul(K, K)

    t = jnp.einsum("...ij,...j->...i", V, v)

    return from_position_and_rotation(t, R)


def inverse(T: Array) -> Array:
    """
    Compute inverse of SE(3) transformation matrix.

    Uses the block structure: T^-1 = [[R^T, -R^T @ t], [0, 1]]

    Args:
        T: (..., 4, 4) transformation matrix

    Returns:
        (..., 4, 4) inverse transformation matrix
    """
    R = T[..., :3, :3]
    t = T[..., :3, 3]

    R_inv = jnp.swapaxes(R, -1, -2)
    t_inv = -jnp.einsum("...ij,...j->...i", R_inv, t)

    return from_position_and_rotation(t_inv, R_inv)


def apply(T: Array, points: Array) -> Array:
    """
    Apply SE(3) transformation to points.

    Args:
        T: (..., 4, 4) transformation matrix
        points: (..., 3) points to transform

    Returns:
        (..., 3) transformed points
    """
    return jnp.einsum("...ij,...j->...i", T[..., :3, :3], points) + T[..., :3, 3]


def get_position(T: Array) -> Array:
    """Extract the (..., 3) position from a (..., 4, 4) transformation matrix."""
    return T[..., :3, 3]


def get_rotation(T: Array) -> Array:
    """Extract the (..., 3, 3) rotation from a (..., 4, 4) transformation matrix."""
    return T[..., :3, :3]


def adjoint(T: Array) -> Array:
    """
    Compute the adjoint matrix of SE(3) transformation.

    Ad_T maps a twist expressed in the frame of T to the same twist expressed
    in the reference frame: Ad_T = [[R, [t]_x R], [0, R]].

    Args:
        T: (..., 4, 4) transformation matrix

    Returns:
        (..., 6, 6) adjoint matrix
    """
    R = T[..., :3, :3]
    t = T[..., :3, 3]

    t_skew = so3.skew_symmetric(t)
    zeros = jnp.zeros_like(R)

    top = jnp.concatenate([R, jnp.matmul(t_skew, R)], axis=-1)
    bottom = jnp.concatenate([zeros, R], axis=-1)

    return jnp.concatenate([top, bottom], axis=-2)


def ad(twist: Array) -> Array:
    """
    Lie bracket matrix of a twist, ad_V = [[[w]_x, [v]_x], [0, [w]_x]].

    ad_V @ S is the rate of change of the screw S carried by a frame moving
    with twist V. Its transpose (negated) acts on wrenches.

    Args:
        twist: (..., 6) twist [v, w]

    Returns:
        (..., 6, 6) matrix
    """
    v_skew = so3.skew_symmetric(twist[..., :3])
    w_skew = so3.skew_symmetric(twist[..., 3:])
    zeros = jnp.zeros_like(w_skew)

    top = jnp.concatenate([w_skew, v_skew], axis=-1)
    bottom = jnp.concatenate([zeros, w_skew], axis=-1)

    return jnp.concatenate([top, bottom], axis=-2)


def point_velocity(twist: Array, point: Array) -> Array:
    """
    Velocity of a point rigidly attached to a body with world spatial twist.

    Args:
        twist: (..., 6) spatial twist [v_o, w] expressed at the world origin
        point: (..., 3) world coordinates of the point

    Returns:
        (..., 3) linear velocity of the point
    """
    return twist[..., :3] + jnp.cross(twist[..., 3:], point)


def point_acceleration(twist: Array, accel: Array, point: Array) -> Array:
    """
    Classical acceleration of a point from a spatial twist and its derivative.

    a_p = dv_o + dw x p + w x (v_o + w x p)

    Args:
        twist: (..., 6) spatial twist
        accel: (..., 6) time derivative of the spatial twist
        point: (..., 3) world coordinates of the point

    Returns:
        (..., 3) linear acceleration of the point
    """
    w = twist[..., 3:]
    return accel[..., :3] + jnp.cross(accel[..., 3:], point) + jnp.cross(w, point_velocity(twist, point))
