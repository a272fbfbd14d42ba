"""Exceptions raised by the dynamics engine.

Every failure of the engine is reported through one of these types. They also
derive from the matching builtin exception so callers may catch either.
"""


class DynamicsError(Exception):
    """Base class of all dynamics engine errors."""


class DimensionMismatchError(DynamicsError, ValueError):
    """A vector or output matrix does not have the size the robot requires."""


class OutOfRangeError(DynamicsError, IndexError):
    """A joint, DOF or fixed-joint rank is outside its current bounds."""


class NotReadyError(DynamicsError, RuntimeError):
    """A quantity was queried before the pass producing it has run."""


class UnsupportedPropertyError(DynamicsError, KeyError):
    """A property name is unknown to this engine."""


class KinematicChainError(DynamicsError, ValueError):
    """The joint tree is malformed or modified at the wrong time."""
