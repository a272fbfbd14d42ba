"""Typed engine options behind the string-keyed property channel.

The property channel (``is_supported`` / ``get_property`` / ``set_property``)
exchanges values as strings. Known options are listed in :class:`RobotOption`
and stored with their native type in :class:`EngineOptions`; anything else must
be registered first as an extension, which is kept as a plain string.

Options
-------
ComputeVelocity
    ``bool``, default ``true``. When false, forward kinematics ignores the
    velocity vector and every twist is zero.
ComputeAcceleration
    ``bool``, default ``true``. When false, forward kinematics ignores the
    acceleration vector (Coriolis terms from velocities are kept).
ComputeCoM
    ``bool``, default ``false``. Run the center-of-mass and momentum pass at
    the end of every forward kinematics pass.
ComputeZMP
    ``bool``, default ``false``. Like ComputeCoM, and also compute the zero
    momentum point (humanoid robots only).
ComputeBackwardDynamics
    ``bool``, default ``false``. Run inverse dynamics at the end of every
    forward kinematics pass.
Gravity
    three floats separated by spaces, default ``0 0 -9.81``.
"""

import dataclasses
import enum
from typing import Dict, Tuple

from .errors import UnsupportedPropertyError


class RobotOption(str, enum.Enum):
    """Options understood by every dynamic robot."""

    COMPUTE_VELOCITY = "ComputeVelocity"
    COMPUTE_ACCELERATION = "ComputeAcceleration"
    COMPUTE_COM = "ComputeCoM"
    COMPUTE_ZMP = "ComputeZMP"
    COMPUTE_BACKWARD_DYNAMICS = "ComputeBackwardDynamics"
    GRAVITY = "Gravity"


_TRUE_STRINGS = ("true", "1", "yes", "on")
_FALSE_STRINGS = ("false", "0", "no", "off")


def parse_bool(value: str) -> bool:
    lowered = value.strip().lower()
    if lowered in _TRUE_STRINGS:
        return True
    if lowered in _FALSE_STRINGS:
        return False
    raise ValueError(f"Expected a boolean, got {value!r}")


def format_bool(value: bool) -> str:
    return "true" if value else "false"


def parse_vector3(value: str) -> Tuple[float, float, float]:
    parts = value.replace(",", " ").split()
    if len(parts) != 3:
        raise ValueError(f"Expected three numbers, got {value!r}")
    return tuple(float(x) for x in parts)


def format_vector3(value: Tuple[float, float, float]) -> str:
    return " ".join(repr(float(x)) for x in value)


@dataclasses.dataclass
class EngineOptions:
    """Typed option values of one robot instance."""

    compute_velocity: bool = True
    compute_acceleration: bool = True
    compute_com: bool = False
    compute_zmp: bool = False
    compute_backward_dynamics: bool = False
    gravity: Tuple[float, float, float] = (0.0, 0.0, -9.81)
    extensions: Dict[str, str] = dataclasses.field(default_factory=dict)

    def register_extension(self, name: str, default: str = "") -> None:
        """Accept ``name`` as an implementation-specific option."""
        if _lookup(name) is not None:
            raise ValueError(f"'{name}' is a standard option")
        self.extensions.setdefault(name, default)

    def is_supported(self, name: str) -> bool:
        return _lookup(name) is not None or name in self.extensions

    def get(self, name: str) -> str:
        option = _lookup(name)
        if option is None:
            if name in self.extensions:
                return self.extensions[name]
            raise UnsupportedPropertyError(name)
        attribute, _, formatter = _CODECS[option]
        return formatter(getattr(self, attribute))

    def set(self, name: str, value: str) -> None:
        option = _lookup(name)
        if option is None:
            if name in self.extensions:
                self.extensions[name] = str(value)
                return
            raise UnsupportedPropertyError(name)
        attribute, parser, _ = _CODECS[option]
        setattr(self, attribute, parser(value))


_CODECS = {
    RobotOption.COMPUTE_VELOCITY: ("compute_velocity", parse_bool, format_bool),
    RobotOption.COMPUTE_ACCELERATION: ("compute_acceleration", parse_bool, format_bool),
    RobotOption.COMPUTE_COM: ("compute_com", parse_bool, format_bool),
    RobotOption.COMPUTE_ZMP: ("compute_zmp", parse_bool, format_bool),
    RobotOption.COMPUTE_BACKWARD_DYNAMICS: ("compute_backward_dynamics", parse_bool, format_bool),
    RobotOption.GRAVITY: ("gravity", parse_vector3, format_vector3),
}


def _lookup(name):
    try:
        return RobotOption(name)
    except ValueError:
        return None
