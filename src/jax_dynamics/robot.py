"""Stateful dynamic robot built on the pure kinematics and dynamics kernels.

A :class:`DynamicRobot` owns a joint tree, the current configuration, velocity
and acceleration vectors and the results derived from them. Each setter
invalidates the cached results; each ``compute_*`` call refreshes one of them
by calling a jitted kernel on the compiled :class:`RobotModel`.

Typical control cycle::

    robot.current_configuration = q
    robot.current_velocity = dq
    robot.current_acceleration = ddq
    robot.compute_forward_kinematics()
    robot.compute_center_of_mass_dynamics()
    J = robot.get_jacobian(robot.root_joint, hand, np.zeros(3))

Instances are not thread-safe: callers sharing one robot must serialize the
whole set / compute / read sequence.
"""

import math
from logging import getLogger
from typing import Dict, List, NamedTuple, Optional, Sequence

import jax
import jax.numpy as jnp
import numpy as np

from . import chain, dynamics
from .config import EngineOptions
from .core import Joint, JointType, RobotModel
from .errors import (
    DimensionMismatchError,
    KinematicChainError,
    NotReadyError,
    OutOfRangeError,
)
from .transforms import se3, so3

logger = getLogger(__name__)

_forward_kinematics = jax.jit(chain.forward_kinematics)
_point_jacobian = jax.jit(chain.point_jacobian)
_center_of_mass_jacobian = jax.jit(chain.center_of_mass_jacobian)
_center_of_mass_dynamics = jax.jit(dynamics.center_of_mass_dynamics)
_inertia_matrix = jax.jit(dynamics.inertia_matrix)
_inverse_dynamics = jax.jit(dynamics.inverse_dynamics)


class JointKinematics(NamedTuple):
    """World-frame state of one joint frame origin."""
    transformation: np.ndarray
    linear_velocity: np.ndarray
    angular_velocity: np.ndarray
    linear_acceleration: np.ndarray
    angular_acceleration: np.ndarray


class DynamicRobot:
    """A kinematic tree of joints carrying rigid bodies.

    Build the tree, set the root joint, optionally fix the configuration
    layout with :meth:`set_joint_order_in_config`, then call
    :meth:`initialize` before setting configurations.

    Args:
        options: Engine options; defaults are used when omitted.
    """

    def __init__(self, options: Optional[EngineOptions] = None):
        self.options = options if options is not None else EngineOptions()
        self._root: Optional[Joint] = None
        self._config_order: Optional[List[Joint]] = None
        self._fixed_joints: List[Joint] = []
        self._anchor_pose: Optional[np.ndarray] = None
        self._actuated_joints: Optional[List[int]] = None

        self._model: Optional[RobotModel] = None
        self._joints: List[Joint] = []
        self._index: Dict[int, int] = {}
        self._dof_owner: List[tuple] = []
        self._jacobian_columns = np.zeros(0, dtype=np.int64)
        self._com_sign_rows: Dict[int, np.ndarray] = {}

        self._q = self._dq = self._ddq = None
        self._invalidate()
        self._last_poses = None

    # Initialization
    def initialize(self) -> None:
        """Compile the joint tree and allocate zero configuration vectors."""
        if self._root is None:
            raise KinematicChainError("The root joint must be set before initialize()")
        joints = self.joint_vector()
        order = self._config_order if self._config_order is not None else joints

        rank = 0
        self._dof_owner = []
        for joint in order:
            joint.rank_in_configuration = rank
            self._dof_owner.extend((joint, k) for k in range(joint.number_dof()))
            rank += joint.number_dof()

        self._joints = joints
        self._index = {id(joint): i for i, joint in enumerate(joints)}
        self._model = RobotModel.from_joints(joints)
        self._com_sign_rows = {}

        n = self._model.num_dof
        free_flyer = self._free_flyer_ranks()
        self._jacobian_columns = np.array([k for k in range(n) if k not in free_flyer], dtype=np.int64)
        if self._actuated_joints is None:
            self._actuated_joints = [int(k) for k in self._jacobian_columns]

        self._q = jnp.zeros(n)
        self._dq = jnp.zeros(n)
        self._ddq = jnp.zeros(n)
        self._invalidate()
        self._last_poses = None
        if self._fixed_joints:
            self._anchor_pose = None
            self._refresh_anchor()

        logger.debug("Initialized robot with %d joints and %d dof", len(joints), n)

    @property
    def is_initialized(self) -> bool:
        return self._model is not None

    @property
    def model(self) -> RobotModel:
        """Compiled model, available after :meth:`initialize`."""
        self._require_initialized()
        return self._model

    def _require_initialized(self) -> None:
        if self._model is None:
            raise NotReadyError("initialize() has not been called")

    def _free_flyer_ranks(self):
        if self._root.joint_type is not JointType.FREE_FLYER:
            return set()
        start = self._root.rank_in_configuration
        return set(range(start, start + 6))

    # Kinematic chain
    @property
    def root_joint(self) -> Optional[Joint]:
        return self._root

    @root_joint.setter
    def root_joint(self, joint: Joint) -> None:
        if self._model is not None:
            raise KinematicChainError("The root joint cannot change after initialize()")
        if joint.parent is not None:
            raise KinematicChainError(f"Joint '{joint.name}' has a parent and cannot be the root")
        self._root = joint

    def joint_vector(self) -> List[Joint]:
        """All joints, depth first, parents before children."""
        if self._root is None:
            return []
        joints = []
        stack = [self._root]
        while stack:
            joint = stack.pop()
            joints.append(joint)
            stack.extend(reversed(joint.children))
        return joints

    def joints_between(self, start: Joint, end: Joint) -> List[Joint]:
        """Joints whose motion changes the pose of ``end`` relative to ``start``.

        The branch from ``start`` up to the lowest common ancestor, then the
        branch from the lowest common ancestor down to ``end``; the common
        ancestor itself moves both joints and is left out.
        """
        start_branch, end_branch = self._branches(start, end)
        return list(reversed(start_branch)) + end_branch

    def _branches(self, start, end):
        self._require_member(start)
        self._require_member(end)
        to_start = start.joints_from_root()
        to_end = end.joints_from_root()
        common = 0
        while (common < min(len(to_start), len(to_end))
               and to_start[common] is to_end[common]):
            common += 1
        return to_start[common:], to_end[common:]

    def _require_member(self, joint: Joint) -> None:
        if self._model is not None:
            # Joints attached after initialize() are not part of the compiled model
            member = id(joint) in self._index
        else:
            member = self._root is not None and joint.joints_from_root()[0] is self._root
        if not member:
            raise KinematicChainError(f"Joint '{joint.name}' does not belong to this robot")

    def _chain_signs(self, start: Joint, end: Joint) -> np.ndarray:
        start_branch, end_branch = self._branches(start, end)
        signs = np.zeros(len(self._joints))
        for joint in start_branch:
            signs[self._index[id(joint)]] = -1.0
        for joint in end_branch:
            signs[self._index[id(joint)]] = 1.0
        return signs

    def set_joint_order_in_config(self, joints: Sequence[Joint]) -> None:
        """Specify the order of the joints in the configuration vector.

        Must list every joint of the robot exactly once and be called before
        :meth:`initialize`.
        """
        if self._model is not None:
            raise KinematicChainError("The configuration layout is fixed once initialized")
        joints = list(joints)
        expected = {id(joint) for joint in self.joint_vector()}
        given = [id(joint) for joint in joints]
        if len(given) != len(set(given)) or set(given) != expected:
            raise KinematicChainError("The joint order must list every robot joint exactly once")
        self._config_order = joints

    def number_dof(self) -> int:
        if self._model is not None:
            return self._model.num_dof
        return sum(joint.number_dof() for joint in self.joint_vector())

    def upper_bound_dof(self, rank: int, config: Optional[Sequence[float]] = None) -> float:
        """Upper limit of DOF ``rank``, ``nan`` when ``rank`` is out of range.

        When ``config`` is given, coupled limits of the DOF are evaluated for
        that configuration.
        """
        bounds = self._bounds(rank, config)
        return bounds[1] if bounds is not None else math.nan

    def lower_bound_dof(self, rank: int, config: Optional[Sequence[float]] = None) -> float:
        """Lower limit of DOF ``rank``, ``nan`` when ``rank`` is out of range."""
        bounds = self._bounds(rank, config)
        return bounds[0] if bounds is not None else math.nan

    def _bounds(self, rank, config):
        self._require_initialized()
        if not isinstance(rank, (int, np.integer)) or not 0 <= rank < len(self._dof_owner):
            return None
        joint, k = self._dof_owner[rank]
        if config is not None:
            config = self._checked_vector(config, "configuration")
            target = joint.min_max_target
            if target is not None:
                return joint.coupled_bounds(float(config[target.rank_in_configuration]))
        return float(joint.lower_bounds[k]), float(joint.upper_bounds[k])

    # Fixed joints
    def add_fixed_joint(self, joint: Joint) -> None:
        """Declare ``joint`` fixed in the world. Adding it again does nothing."""
        self._require_member(joint)
        if any(fixed is joint for fixed in self._fixed_joints):
            return
        self._fixed_joints.append(joint)
        logger.debug("Fixed joint '%s'", joint.name)
        if len(self._fixed_joints) == 1:
            self._refresh_anchor()
        self._invalidate()

    def remove_fixed_joint(self, joint: Joint) -> None:
        """Release ``joint``. Releasing a joint that is not fixed does nothing."""
        for i, fixed in enumerate(self._fixed_joints):
            if fixed is joint:
                del self._fixed_joints[i]
                logger.debug("Released joint '%s'", joint.name)
                if i == 0:
                    self._anchor_pose = None
                    self._refresh_anchor()
                self._invalidate()
                return

    def clear_fixed_joints(self) -> None:
        self._fixed_joints = []
        self._anchor_pose = None
        self._invalidate()

    def count_fixed_joints(self) -> int:
        return len(self._fixed_joints)

    def fixed_joint(self, rank: int) -> Joint:
        if not 0 <= rank < len(self._fixed_joints):
            raise OutOfRangeError(
                f"Fixed joint rank {rank} out of range [0, {len(self._fixed_joints)})"
            )
        return self._fixed_joints[rank]

    def _refresh_anchor(self) -> None:
        """Freeze the world pose of the first fixed joint."""
        if not self._fixed_joints or self._model is None:
            self._anchor_pose = None
            return
        index = self._index[id(self._fixed_joints[0])]
        poses = self._last_poses
        if poses is None:
            zeros = jnp.zeros_like(self._q)
            poses = self._run_forward_kinematics(self._q, zeros, zeros, -1, jnp.eye(4)).poses
        self._anchor_pose = np.asarray(poses[index])

    # Configuration, velocity and acceleration
    def _checked_vector(self, values, what: str) -> jax.Array:
        self._require_initialized()
        values = jnp.asarray(values, dtype=jnp.float64)
        if values.ndim != 1 or values.shape[0] != self._model.num_dof:
            raise DimensionMismatchError(
                f"The {what} vector must have shape ({self._model.num_dof},), got {values.shape}"
            )
        return values

    @property
    def current_configuration(self) -> jax.Array:
        self._require_initialized()
        return self._q

    @current_configuration.setter
    def current_configuration(self, q) -> None:
        self._q = self._checked_vector(q, "configuration")
        self._invalidate()

    @property
    def current_velocity(self) -> jax.Array:
        self._require_initialized()
        return self._dq

    @current_velocity.setter
    def current_velocity(self, dq) -> None:
        self._dq = self._checked_vector(dq, "velocity")
        self._invalidate()

    @property
    def current_acceleration(self) -> jax.Array:
        self._require_initialized()
        return self._ddq

    @current_acceleration.setter
    def current_acceleration(self, ddq) -> None:
        self._ddq = self._checked_vector(ddq, "acceleration")
        self._invalidate()

    def _invalidate(self) -> None:
        self._kinematics = None
        self._com = None
        self._com_jacobian = None
        self._inertia = None
        self._wrenches = None

    # Forward kinematics
    def _run_forward_kinematics(self, q, dq, ddq, anchor_index, anchor_pose):
        return _forward_kinematics(self._model, q, dq, ddq, anchor_index, anchor_pose)

    def compute_forward_kinematics(self) -> None:
        """Update pose, velocity and acceleration of every joint.

        Depending on the options, the center of mass pass and inverse dynamics
        run afterwards.
        """
        self._require_initialized()
        dq = self._dq if self.options.compute_velocity else jnp.zeros_like(self._dq)
        ddq = self._ddq if self.options.compute_acceleration else jnp.zeros_like(self._ddq)

        if self._fixed_joints:
            anchor_index = self._index[id(self._fixed_joints[0])]
            anchor_pose = jnp.asarray(self._anchor_pose)
        else:
            anchor_index, anchor_pose = -1, jnp.eye(4)

        state = self._run_forward_kinematics(self._q, dq, ddq, anchor_index, anchor_pose)
        self._invalidate()
        self._kinematics = state
        self._last_poses = state.poses

        if self.options.compute_com or self.options.compute_zmp:
            self.compute_center_of_mass_dynamics()
        if self.options.compute_backward_dynamics:
            self.compute_inverse_dynamics()

    @property
    def kinematics_ready(self) -> bool:
        return self._kinematics is not None

    def _ensure_kinematics(self) -> chain.KinematicState:
        if self._kinematics is None:
            self.compute_forward_kinematics()
        return self._kinematics

    def joint_kinematics(self, joint: Joint) -> JointKinematics:
        """World pose, velocity and acceleration of ``joint``'s frame origin."""
        if self._kinematics is None:
            raise NotReadyError("compute_forward_kinematics() has not run on the current state")
        self._require_member(joint)
        i = self._index[id(joint)]
        T = self._kinematics.poses[i]
        twist = self._kinematics.twists[i]
        accel = self._kinematics.accelerations[i]
        origin = se3.get_position(T)
        return JointKinematics(
            transformation=np.asarray(T),
            linear_velocity=np.asarray(se3.point_velocity(twist, origin)),
            angular_velocity=np.asarray(twist[3:]),
            linear_acceleration=np.asarray(se3.point_acceleration(twist, accel, origin)),
            angular_acceleration=np.asarray(accel[3:]),
        )

    # Center of mass and momentum
    def compute_center_of_mass_dynamics(self) -> None:
        """Compute COM position, velocity, acceleration and momenta.

        Runs forward kinematics first when its results are stale.
        """
        state = self._ensure_kinematics()
        self._com = _center_of_mass_dynamics(self._model, state)

    def _require_com(self) -> dynamics.CenterOfMassState:
        if self._com is None:
            raise NotReadyError("compute_center_of_mass_dynamics() has not run on the current state")
        return self._com

    @property
    def position_center_of_mass(self) -> np.ndarray:
        return np.asarray(self._require_com().position)

    @property
    def velocity_center_of_mass(self) -> np.ndarray:
        return np.asarray(self._require_com().velocity)

    @property
    def acceleration_center_of_mass(self) -> np.ndarray:
        return np.asarray(self._require_com().acceleration)

    @property
    def linear_momentum_robot(self) -> np.ndarray:
        return np.asarray(self._require_com().linear_momentum)

    @property
    def derivative_linear_momentum(self) -> np.ndarray:
        return np.asarray(self._require_com().linear_momentum_derivative)

    @property
    def angular_momentum_robot(self) -> np.ndarray:
        """Angular momentum about the center of mass."""
        return np.asarray(self._require_com().angular_momentum)

    @property
    def derivative_angular_momentum(self) -> np.ndarray:
        return np.asarray(self._require_com().angular_momentum_derivative)

    def mass(self) -> float:
        return float(jnp.sum(self.model.masses))

    # Jacobians
    def _jacobian_width(self, include_free_flyer: bool) -> int:
        return len(self._jacobian_columns) + (6 if include_free_flyer else 0)

    def _check_output(self, out, rows: int, offset: int, include_free_flyer: bool) -> None:
        """Validate ``out`` before anything is computed or written."""
        if out is None:
            return
        if not isinstance(out, np.ndarray) or out.ndim != 2:
            raise DimensionMismatchError("The output Jacobian must be a 2D numpy array")
        if offset < 0:
            raise OutOfRangeError(f"Negative column offset {offset}")
        width = self._jacobian_width(include_free_flyer)
        if out.shape[0] != rows or out.shape[1] < offset + width:
            raise DimensionMismatchError(
                f"The output Jacobian needs {rows} rows and at least {offset + width} columns, "
                f"got shape {out.shape}"
            )

    @staticmethod
    def _write_jacobian(block: np.ndarray, out, offset: int) -> np.ndarray:
        if out is None:
            return block
        out[:, offset:offset + block.shape[1]] = block
        return out

    def _free_flyer_block(self, start: Joint, point) -> np.ndarray:
        origin = np.asarray(se3.get_position(self._kinematics.poses[self._index[id(start)]]))
        block = np.zeros((6, 6))
        block[:3, :3] = np.eye(3)
        block[:3, 3:] = -np.asarray(so3.skew_symmetric(jnp.asarray(point - origin)))
        block[3:, 3:] = np.eye(3)
        return block

    def _layout(self, J, start, point, include_free_flyer):
        J = np.asarray(J)[:, self._jacobian_columns]
        if include_free_flyer:
            J = np.hstack([self._free_flyer_block(start, point)[:J.shape[0]], J])
        return J

    def get_jacobian(
        self,
        start: Joint,
        end: Joint,
        local_point: Sequence[float],
        out: Optional[np.ndarray] = None,
        offset: int = 0,
        include_free_flyer: bool = True,
    ) -> np.ndarray:
        """Jacobian of a point fixed in ``end``'s frame, relative to ``start``.

        Rows are [linear; angular] velocity in world coordinates. With
        ``include_free_flyer`` the first six columns belong to a fictive
        free-flyer superposed with ``start``; the remaining columns follow the
        configuration vector without the DOFs of a free-flyer root joint.

        Args:
            start: Reference joint.
            end: Joint carrying the point.
            local_point: (3,) point in ``end``'s frame.
            out: Optional (6, k) numpy array written from column ``offset``;
                 other columns are left untouched.
            offset: First column written in ``out``.
            include_free_flyer: Whether to prepend the fictive free-flyer.

        Returns:
            ``out`` when given, a new (6, width) array otherwise.
        """
        self._check_output(out, 6, offset, include_free_flyer)
        state = self._ensure_kinematics()
        signs = self._chain_signs(start, end)
        point = se3.apply(state.poses[self._index[id(end)]], jnp.asarray(local_point, dtype=jnp.float64))
        J = _point_jacobian(self._model, state, jnp.asarray(signs), point)
        return self._write_jacobian(self._layout(J, start, np.asarray(point), include_free_flyer), out, offset)

    def get_position_jacobian(self, start, end, local_point, out=None, offset=0, include_free_flyer=True):
        """Rows 0-2 of :meth:`get_jacobian`."""
        self._check_output(out, 3, offset, include_free_flyer)
        J = self.get_jacobian(start, end, local_point, include_free_flyer=include_free_flyer)
        return self._write_jacobian(J[:3], out, offset)

    def get_orientation_jacobian(self, start, end, out=None, offset=0, include_free_flyer=True):
        """Rows 3-5 of :meth:`get_jacobian`, independent of any point."""
        self._check_output(out, 3, offset, include_free_flyer)
        J = self.get_jacobian(start, end, np.zeros(3), include_free_flyer=include_free_flyer)
        return self._write_jacobian(J[3:], out, offset)

    def get_jacobian_center_of_mass(self, start, out=None, offset=0, include_free_flyer=True):
        """Jacobian of the whole-robot COM relative to ``start``.

        Mass-weighted sum of the body COM Jacobians, each taken along the
        chain from ``start`` to the body.
        """
        self._check_output(out, 3, offset, include_free_flyer)
        self._require_member(start)
        state = self._ensure_kinematics()
        J = _center_of_mass_jacobian(self._model, state, self._com_signs(start))

        com = self._com if self._com is not None else _center_of_mass_dynamics(self._model, state)
        return self._write_jacobian(self._layout(J, start, np.asarray(com.position), include_free_flyer), out, offset)

    def _com_signs(self, start: Joint) -> jax.Array:
        """Joint sign rows of the chains from ``start`` to every body, cached per start."""
        key = id(start)
        if key not in self._com_sign_rows:
            self._com_sign_rows[key] = np.stack([self._chain_signs(start, joint) for joint in self._joints])
        return jnp.asarray(self._com_sign_rows[key])

    def compute_jacobian_center_of_mass(self) -> None:
        """COM Jacobian w.r.t. the whole configuration vector, world frame.

        Rooted at the root joint, or at the anchor once a joint is fixed, so
        that it maps the velocity vector to :attr:`velocity_center_of_mass`.
        """
        state = self._ensure_kinematics()
        if self._fixed_joints:
            signs = self._com_signs(self._fixed_joints[0])
        else:
            signs = self._model.ancestor_mask
        self._com_jacobian = _center_of_mass_jacobian(self._model, state, signs)

    @property
    def jacobian_center_of_mass(self) -> np.ndarray:
        if self._com_jacobian is None:
            raise NotReadyError("compute_jacobian_center_of_mass() has not run on the current state")
        return np.asarray(self._com_jacobian)

    # Inertia matrix
    def compute_inertia_matrix(self) -> None:
        state = self._ensure_kinematics()
        self._inertia = _inertia_matrix(self._model, state)

    @property
    def inertia_matrix(self) -> np.ndarray:
        if self._inertia is None:
            raise NotReadyError("compute_inertia_matrix() has not run on the current state")
        return np.asarray(self._inertia)

    # Inverse dynamics
    def compute_inverse_dynamics(self) -> None:
        """Backward Newton-Euler pass: joint wrenches and generalized torques."""
        state = self._ensure_kinematics()
        self._wrenches = _inverse_dynamics(self._model, state, jnp.asarray(self.options.gravity))

    def _require_wrenches(self) -> dynamics.JointWrenches:
        if self._wrenches is None:
            raise NotReadyError("compute_inverse_dynamics() has not run on the current state")
        return self._wrenches

    @property
    def current_forces(self) -> np.ndarray:
        """(num_joints, 3) forces transmitted through each joint, joint_vector() order."""
        return np.asarray(self._require_wrenches().forces)

    @property
    def current_torques(self) -> np.ndarray:
        """(num_joints, 3) torques about each joint origin, joint_vector() order."""
        return np.asarray(self._require_wrenches().torques)

    @property
    def generalized_torques(self) -> np.ndarray:
        return np.asarray(self._require_wrenches().generalized)

    # Actuated joints
    @property
    def actuated_joints(self) -> List[int]:
        """Configuration indices of the actuated DOFs."""
        self._require_initialized()
        return list(self._actuated_joints)

    def set_actuated_joints(self, indices: Sequence[int]) -> None:
        indices = [int(k) for k in indices]
        n = self.number_dof()
        bad = [k for k in indices if not 0 <= k < n]
        if bad:
            raise OutOfRangeError(f"Actuated indices {bad} outside [0, {n})")
        self._actuated_joints = indices

    # Property channel
    def is_supported(self, name: str) -> bool:
        return self.options.is_supported(name)

    def get_property(self, name: str) -> str:
        return self.options.get(name)

    def set_property(self, name: str, value: str) -> None:
        self.options.set(name, value)
        logger.debug("Property %s set to %s", name, value)
        self._invalidate()
