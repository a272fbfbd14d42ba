"""Joints and bodies: the mutable tree a robot model is built from.

Model builders create :class:`Joint` objects, attach a :class:`Body` to each
of them and link them into a tree with :meth:`Joint.add_child_joint`. The tree
is compiled into an immutable :class:`~jax_dynamics.core.RobotModel` when the
owning robot is initialized.
"""

import dataclasses
import enum
import math
from typing import List, Optional, Sequence, Tuple

import jax
import numpy as np

from jax_dynamics.errors import KinematicChainError
from jax_dynamics.transforms import se3, so3

Array = jax.Array

MAX_JOINT_DOF = 6


class JointType(enum.Enum):
    """Kinds of joint and their number of degrees of freedom."""

    FIXED = 0
    REVOLUTE = 1
    PRISMATIC = 2
    FREE_FLYER = 3

    @property
    def dof(self) -> int:
        return _JOINT_DOF[self]


_JOINT_DOF = {
    JointType.FIXED: 0,
    JointType.REVOLUTE: 1,
    JointType.PRISMATIC: 1,
    JointType.FREE_FLYER: 6,
}

# Free-flyer values are [x, y, z, roll, pitch, yaw]; the motion is applied as
# Trans(x, y, z) Rz(yaw) Ry(pitch) Rx(roll), hence this application order.
_FREE_FLYER_AXES = np.array([
    [1.0, 0.0, 0.0, 0.0, 0.0, 0.0],
    [0.0, 1.0, 0.0, 0.0, 0.0, 0.0],
    [0.0, 0.0, 1.0, 0.0, 0.0, 0.0],
    [0.0, 0.0, 0.0, 0.0, 0.0, 1.0],
    [0.0, 0.0, 0.0, 0.0, 1.0, 0.0],
    [0.0, 0.0, 0.0, 1.0, 0.0, 0.0],
])
_FREE_FLYER_ORDER = (0, 1, 2, 5, 4, 3)


@dataclasses.dataclass(eq=False)
class Body:
    """Rigid mass element attached to a joint.

    Attributes:
        mass: Mass in kg, non-negative.
        com: (3,) center of mass in the joint frame.
        inertia: (3, 3) symmetric positive semi-definite inertia tensor about
                 the center of mass, in joint-frame axes.
    """
    mass: float = 0.0
    com: np.ndarray = dataclasses.field(default_factory=lambda: np.zeros(3))
    inertia: np.ndarray = dataclasses.field(default_factory=lambda: np.zeros((3, 3)))

    def __post_init__(self):
        self.mass = float(self.mass)
        self.com = np.asarray(self.com, dtype=np.float64).reshape(3)
        self.inertia = np.asarray(self.inertia, dtype=np.float64)
        if self.mass < 0.0:
            raise ValueError(f"Body mass must be non-negative, got {self.mass}")
        if self.inertia.shape != (3, 3):
            raise ValueError(f"inertia must have shape (3, 3), got {self.inertia.shape}")
        if not np.allclose(self.inertia, self.inertia.T, atol=1e-12):
            raise ValueError("inertia must be symmetric")
        if np.linalg.eigvalsh(self.inertia).min() < -1e-12:
            raise ValueError("inertia must be positive semi-definite")


class Joint:
    """One node of the kinematic tree.

    A joint connects its parent joint's body to its own body. Its frame is
    obtained from the parent joint frame by the static ``placement`` followed
    by the joint motion, a function of the joint's own DOF values.

    Args:
        name: Joint name, used in error messages and by model builders.
        joint_type: A :class:`JointType`.
        axis: Unit rotation (revolute) or translation (prismatic) axis in the
              joint frame. Ignored by fixed and free-flyer joints.
        placement: (4, 4) pose of the joint frame in the parent joint frame at
                   zero configuration. Identity by default.
        lower_bounds, upper_bounds: Static limits of each DOF. Unbounded by
                   default.
        body: The :class:`Body` carried by this joint. A massless body is
              created when omitted.
    """

    def __init__(
        self,
        name: str,
        joint_type: JointType = JointType.REVOLUTE,
        axis: Sequence[float] = (0.0, 0.0, 1.0),
        placement: Optional[np.ndarray] = None,
        lower_bounds: Optional[Sequence[float]] = None,
        upper_bounds: Optional[Sequence[float]] = None,
        body: Optional[Body] = None,
    ):
        self.name = name
        self.joint_type = JointType(joint_type)

        axis = np.asarray(axis, dtype=np.float64).reshape(3)
        if self.joint_type in (JointType.REVOLUTE, JointType.PRISMATIC):
            norm = np.linalg.norm(axis)
            if norm < 1e-12:
                raise ValueError(f"Joint '{name}' needs a non-zero axis")
            axis = axis / norm
        self.axis = axis

        if placement is None:
            placement = np.eye(4)
        placement = np.asarray(placement, dtype=np.float64)
        if placement.shape != (4, 4):
            raise ValueError(f"placement must have shape (4, 4), got {placement.shape}")
        self.placement = placement

        ndof = self.number_dof()
        self.lower_bounds = _bounds(lower_bounds, ndof, -math.inf)
        self.upper_bounds = _bounds(upper_bounds, ndof, math.inf)

        self._parent = None
        self._children: List["Joint"] = []
        self._body = None
        self.body = body if body is not None else Body()

        # Assigned by the owning robot when it is initialized
        self.rank_in_configuration: Optional[int] = None

        self._min_max_target = None
        self._min_max_table = None

    def __repr__(self):
        return f"Joint({self.name!r}, {self.joint_type.name})"

    # Tree structure
    @property
    def parent(self) -> Optional["Joint"]:
        return self._parent

    @property
    def children(self) -> Tuple["Joint", ...]:
        return tuple(self._children)

    def count_child_joints(self) -> int:
        return len(self._children)

    def child_joint(self, rank: int) -> "Joint":
        return self._children[rank]

    def add_child_joint(self, child: "Joint") -> None:
        """Attach ``child`` below this joint, keeping the tree acyclic."""
        if child is self:
            raise KinematicChainError(f"Joint '{self.name}' cannot be its own child")
        if child._parent is not None:
            raise KinematicChainError(
                f"Joint '{child.name}' already has parent '{child._parent.name}'"
            )
        if any(ancestor is child for ancestor in self.joints_from_root()):
            raise KinematicChainError(
                f"Attaching '{child.name}' below '{self.name}' would create a cycle"
            )
        child._parent = self
        self._children.append(child)

    def joints_from_root(self) -> List["Joint"]:
        """Joints from the tree root down to this joint, both included."""
        path = []
        joint = self
        while joint is not None:
            path.append(joint)
            joint = joint._parent
        path.reverse()
        return path

    @property
    def body(self) -> Body:
        return self._body

    @body.setter
    def body(self, body: Body) -> None:
        owner = getattr(body, "_owner", None)
        if owner is not None and owner is not self:
            raise KinematicChainError(f"Body is already attached to joint '{owner.name}'")
        if self._body is not None:
            self._body._owner = None
        body._owner = self
        self._body = body

    # Degrees of freedom
    def number_dof(self) -> int:
        return self.joint_type.dof

    def motion_axes(self) -> np.ndarray:
        """(number_dof, 6) screw axes [v, w] in the order the motions are applied."""
        if self.joint_type is JointType.FREE_FLYER:
            return _FREE_FLYER_AXES.copy()
        if self.joint_type is JointType.REVOLUTE:
            return np.concatenate([np.zeros(3), self.axis])[None]
        if self.joint_type is JointType.PRISMATIC:
            return np.concatenate([self.axis, np.zeros(3)])[None]
        return np.zeros((0, 6))

    def application_order(self) -> Tuple[int, ...]:
        """Index into the joint's DOF sub-vector of each applied motion axis."""
        if self.joint_type is JointType.FREE_FLYER:
            return _FREE_FLYER_ORDER
        return tuple(range(self.number_dof()))

    def local_transform(self, values: Sequence[float]) -> Array:
        """Pose of the joint frame in the parent joint frame for the DOF ``values``."""
        values = np.asarray(values, dtype=np.float64).reshape(-1)
        if values.shape[0] != self.number_dof():
            raise ValueError(
                f"Joint '{self.name}' has {self.number_dof()} dof, got {values.shape[0]} values"
            )
        if self.joint_type is JointType.FREE_FLYER:
            motion = se3.from_position_and_rotation(values[:3], so3.from_rpy(values[3:]))
            return self.placement @ motion
        T = self.placement
        for axis, k in zip(self.motion_axes(), self.application_order()):
            T = T @ se3.exp(axis * values[k])
        return T

    # Coupled limits
    def set_min_max_table(self, target: "Joint", table: Sequence[Sequence[float]]) -> None:
        """Couple the limits of this 1-dof joint to the value of ``target``.

        Args:
            target: Another 1-dof joint.
            table: Rows of ``[target_value, lower, upper]`` sorted by
                   target value; limits are interpolated linearly between rows
                   and held constant outside them.
        """
        if self.number_dof() != 1 or target.number_dof() != 1:
            raise ValueError("min-max tables only couple 1-dof joints")
        table = np.asarray(table, dtype=np.float64)
        if table.ndim != 2 or table.shape[1] != 3 or table.shape[0] == 0:
            raise ValueError("min-max table must have shape (k, 3)")
        if np.any(np.diff(table[:, 0]) <= 0.0):
            raise ValueError("min-max table must be sorted by strictly increasing target value")
        self._min_max_target = target
        self._min_max_table = table

    @property
    def min_max_target(self) -> Optional["Joint"]:
        return self._min_max_target

    def coupled_bounds(self, target_value: float) -> Tuple[float, float]:
        """(lower, upper) of the single DOF given the value of the min-max target."""
        table = self._min_max_table
        lower = float(np.interp(target_value, table[:, 0], table[:, 1]))
        upper = float(np.interp(target_value, table[:, 0], table[:, 2]))
        return max(lower, self.lower_bounds[0]), min(upper, self.upper_bounds[0])


def _bounds(values, ndof, default):
    if values is None:
        return np.full(ndof, default)
    values = np.asarray(values, dtype=np.float64).reshape(-1)
    if values.shape[0] != ndof:
        raise ValueError(f"Expected {ndof} bounds, got {values.shape[0]}")
    return values
