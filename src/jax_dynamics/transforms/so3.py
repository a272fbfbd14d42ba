"""SO(3) and so(3) Lie group operations in JAX.

This module implements the rotation part of the rigid-body algebra used by the
dynamics passes. All functions are pure, JIT-able, differentiable everywhere
(including at the identity) and operate on JAX arrays.
"""

import jax
import jax.numpy as jnp

Array = jax.Array

# Below this squared angle the Taylor expansions are used.
_SMALL_ANGLE_SQ = 1e-12


def skew_symmetric(v: Array) -> Array:
    """
    Convert 3D vector to skew-symmetric matrix, so that skew(v) @ u == v x u.

    Args:
        v: (..., 3) vector

    Returns:
        (..., 3, 3) skew-symmetric matrix
    """
    zeros = jnp.zeros(v.shape[:-1], dtype=v.dtype)

    return jnp.stack([
        jnp.stack([zeros, -v[..., 2], v[..., 1]], axis=-1),
        jnp.stack([v[..., 2], zeros, -v[..., 0]], axis=-1),
        jnp.stack([-v[..., 1], v[..., 0], zeros], axis=-1)
    ], axis=-2)


def exp(log_r: Array) -> Array:
    """
    SO(3) exponential map: convert axis-angle vector to rotation matrix.

    Rodrigues' formula written on the unnormalized skew matrix,
    R = I + (sin t / t) K + ((1 - cos t) / t^2) K^2, so that no division by
    the angle happens and gradients stay finite at t = 0.

    Args:
        log_r: (..., 3) array of axis-angle vectors

    Returns:
        (..., 3, 3) array of rotation matrices
    """
    angle_sq = jnp.sum(log_r * log_r, axis=-1)[..., None, None]
    small = angle_sq < _SMALL_ANGLE_SQ

    # Double-where keeps the discarded branch NaN-free under differentiation
    safe_sq = jnp.where(small, 1.0, angle_sq)
    angle = jnp.sqrt(safe_sq)

    a = jnp.where(small, 1.0 - angle_sq / 6.0, jnp.sin(angle) / angle)
    b = jnp.where(small, 0.5 - angle_sq / 24.0, (1.0 - jnp.cos(angle)) / safe_sq)

    K = skew_symmetric(log_r)
    I = jnp.broadcast_to(jnp.eye(3, dtype=log_r.dtype), K.shape)

    return I + a * K + b * jnp.matmul(K, K)


def inverse(R: Array) -> Array:
    """Inverse of a rotation matrix (its transpose)."""
    return jnp.swapaxes(R, -1, -2)


def apply(R: Array, v: Array) -> Array:
    """
    Apply rotation to vector(s).

    Args:
        R: (..., 3, 3) rotation matrix
        v: (..., 3) or (..., N, 3) vector(s) to rotate

    Returns:
        (..., 3) or (..., N, 3) rotated vector(s)
    """
    if v.ndim == R.ndim - 1:  # Single vector case
        return jnp.einsum('...ij,...j->...i', R, v)
    else:  # Multiple vectors case
        return jnp.einsum('...ij,...nj->...ni', R, v)


def from_rpy(rpy: Array) -> Array:
    """
    Convert roll-pitch-yaw angles to rotation matrix, R = Rz(yaw) Ry(pitch) Rx(roll).

    Args:
        rpy: (..., 3) array of [roll, pitch, yaw] angles in radians

    Returns:
        (..., 3, 3) rotation matrices
    """
    rpy = jnp.asarray(rpy)
    roll, pitch, yaw = rpy[..., 0], rpy[..., 1], rpy[..., 2]
    cr, sr = jnp.cos(roll), jnp.sin(roll)
    cp, sp = jnp.cos(pitch), jnp.sin(pitch)
    cy, sy = jnp.cos(yaw), jnp.sin(yaw)

    return jnp.stack([
        jnp.stack([cy * cp, cy * sp * sr - sy * cr, cy * sp * cr + sy * sr], axis=-1),
        jnp.stack([sy * cp, sy * sp * sr + cy * cr, sy * sp * cr - cy * sr], axis=-1),
        jnp.stack([-sp, cp * sr, cp * cr], axis=-1),
    ], axis=-2)
