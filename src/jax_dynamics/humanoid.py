"""Humanoid robots: named end joints, gaze line and zero momentum point."""

from logging import getLogger
from typing import Optional, Sequence, Tuple

import numpy as np

from . import dynamics
from .core import Joint
from .robot import DynamicRobot

logger = getLogger(__name__)


class HumanoidDynamicRobot(DynamicRobot):
    """Dynamic robot with hands, feet, gaze and chest joints.

    The named joints are references into the robot's own joint tree. Fixed
    joints (typically the stance foot) use the generic fixed-joint registry.
    """

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self._left_hand: Optional[Joint] = None
        self._right_hand: Optional[Joint] = None
        self._left_foot: Optional[Joint] = None
        self._right_foot: Optional[Joint] = None
        self._gaze_joint: Optional[Joint] = None
        self._chest: Optional[Joint] = None
        self._gaze_origin = np.zeros(3)
        self._gaze_direction = np.array([1.0, 0.0, 0.0])

    def _named(self, joint: Optional[Joint]) -> Optional[Joint]:
        if joint is not None:
            self._require_member(joint)
        return joint

    @property
    def left_hand(self) -> Optional[Joint]:
        return self._left_hand

    @left_hand.setter
    def left_hand(self, joint: Optional[Joint]) -> None:
        self._left_hand = self._named(joint)

    @property
    def right_hand(self) -> Optional[Joint]:
        return self._right_hand

    @right_hand.setter
    def right_hand(self, joint: Optional[Joint]) -> None:
        self._right_hand = self._named(joint)

    @property
    def left_foot(self) -> Optional[Joint]:
        return self._left_foot

    @left_foot.setter
    def left_foot(self, joint: Optional[Joint]) -> None:
        self._left_foot = self._named(joint)

    @property
    def right_foot(self) -> Optional[Joint]:
        return self._right_foot

    @right_foot.setter
    def right_foot(self, joint: Optional[Joint]) -> None:
        self._right_foot = self._named(joint)

    @property
    def gaze_joint(self) -> Optional[Joint]:
        """Joint carrying the gaze, usually the head."""
        return self._gaze_joint

    @gaze_joint.setter
    def gaze_joint(self, joint: Optional[Joint]) -> None:
        self._gaze_joint = self._named(joint)

    @property
    def chest(self) -> Optional[Joint]:
        return self._chest

    @chest.setter
    def chest(self, joint: Optional[Joint]) -> None:
        self._chest = self._named(joint)

    @property
    def gaze(self) -> Tuple[np.ndarray, np.ndarray]:
        """(origin, unit direction) of the gaze line in the gaze joint frame."""
        return self._gaze_origin.copy(), self._gaze_direction.copy()

    def set_gaze(self, origin: Sequence[float], direction: Sequence[float]) -> None:
        origin = np.asarray(origin, dtype=np.float64).reshape(3)
        direction = np.asarray(direction, dtype=np.float64).reshape(3)
        norm = np.linalg.norm(direction)
        if norm < 1e-12:
            raise ValueError("The gaze direction must be non-zero")
        self._gaze_origin = origin
        self._gaze_direction = direction / norm

    def zero_momentum_point(self) -> np.ndarray:
        """Zero momentum point on the ground plane z = 0, world frame.

        Requires :meth:`compute_center_of_mass_dynamics` to have run on the
        current state.
        """
        com = self._require_com()
        zmp = np.asarray(dynamics.zero_momentum_point(com, np.asarray(self.options.gravity)))
        if not np.all(np.isfinite(zmp)):
            logger.warning("Vertical gravito-inertial force vanishes, the ZMP is undefined")
        return zmp
