"""
Point records: one sample with a position and optional color and normal.

The four variants differ only in which attributes they carry. Code that
needs a capability should check against the ``HasColor`` / ``HasNormal``
protocols rather than against a concrete class.
"""
from typing import Protocol, runtime_checkable

import numpy as np


@runtime_checkable
class HasPosition(Protocol):
    position: np.ndarray


@runtime_checkable
class HasColor(Protocol):
    color: np.ndarray


@runtime_checkable
class HasNormal(Protocol):
    normal: np.ndarray


def _as_vector(value, name):
    if value is None:
        return np.zeros(3, dtype=np.float64)
    vec = np.array(value, dtype=np.float64).reshape(-1)
    if vec.shape != (3,):
        raise ValueError(f"{name} must have exactly 3 components, got shape {np.shape(value)}")
    return vec


class _PointRecord:
    """
    Shared machinery for the record variants.

    Subclasses list their attributes in ``fields``; ``position`` always comes
    first. Absent attributes default to the zero vector.
    """
    __slots__ = ()
    fields = ('position',)

    def __init__(self, position=None, **attributes):
        unknown = set(attributes) - set(self.fields)
        if unknown:
            raise TypeError(
                f"{type(self).__name__} has no attribute(s) {', '.join(sorted(unknown))}"
            )
        self.position = position
        for name in self.fields[1:]:
            setattr(self, name, attributes.get(name))

    def __setattr__(self, name, value):
        if name in self.fields:
            value = _as_vector(value, name)
        object.__setattr__(self, name, value)

    @classmethod
    def from_position(cls, position):
        """Create a record at ``position`` with zero color and normal."""
        return cls(position)

    @classmethod
    def has_color(cls):
        return 'color' in cls.fields

    @classmethod
    def has_normal(cls):
        return 'normal' in cls.fields

    def __add__(self, other):
        if type(other) is not type(self):
            return NotImplemented
        return type(self)(**{f: getattr(self, f) + getattr(other, f) for f in self.fields})

    def __truediv__(self, divisor):
        return type(self)(**{f: getattr(self, f) / divisor for f in self.fields})

    def __eq__(self, other):
        if type(other) is not type(self):
            return NotImplemented
        return all(np.array_equal(getattr(self, f), getattr(other, f)) for f in self.fields)

    __hash__ = None

    def __repr__(self):
        parts = ", ".join(f"{f}={getattr(self, f).tolist()}" for f in self.fields)
        return f"{type(self).__name__}({parts})"


class PointXYZ(_PointRecord):
    __slots__ = ('position',)
    fields = ('position',)


class PointXYZNormal(_PointRecord):
    __slots__ = ('position', 'normal')
    fields = ('position', 'normal')


class PointXYZRGB(_PointRecord):
    __slots__ = ('position', 'color')
    fields = ('position', 'color')


class PointXYZRGBNormal(_PointRecord):
    __slots__ = ('position', 'color', 'normal')
    fields = ('position', 'color', 'normal')


POINT_TYPES = (PointXYZ, PointXYZNormal, PointXYZRGB, PointXYZRGBNormal)


def point_type_for(has_color: bool, has_normal: bool):
    """Pick the record variant carrying exactly the requested attributes."""
    if has_color and has_normal:
        return PointXYZRGBNormal
    if has_color:
        return PointXYZRGB
    if has_normal:
        return PointXYZNormal
    return PointXYZ
