# ltn/models/edits.py
"""
Edit state and the commands that change it.

A Command is a plain tagged union. Applying one returns the command that
reverses it, which is how undo and redo work.
"""
from dataclasses import dataclass
from enum import Enum
from typing import Dict, Optional, Tuple, Union

from ltn.models.network import Intersection, IntersectionID, RoadID


class FilterKind(str, Enum):
    WALK_CYCLE_ONLY = "walk_cycle_only"
    NO_ENTRY = "no_entry"
    BUS_GATE = "bus_gate"
    SCHOOL_STREET = "school_street"

    @classmethod
    def parse(cls, value: str) -> "FilterKind":
        try:
            return cls(value)
        except ValueError:
            raise ValueError(f"Invalid FilterKind: {value}") from None


class Direction(str, Enum):
    FORWARDS = "forwards"
    BACKWARDS = "backwards"
    BOTH_WAYS = "both"

    @classmethod
    def parse(cls, value: str) -> "Direction":
        try:
            return cls(value)
        except ValueError:
            raise ValueError(f"Invalid Direction: {value}") from None

    @classmethod
    def from_tags(cls, tags: Dict[str, str]) -> "Direction":
        oneway = tags.get("oneway")
        if oneway in ("yes", "true", "1"):
            return cls.FORWARDS
        if oneway == "-1":
            return cls.BACKWARDS
        # https://wiki.openstreetmap.org/wiki/Key:oneway#Implied_oneway_restriction
        if tags.get("highway") == "motorway" or tags.get("junction") == "roundabout":
            return cls.FORWARDS
        return cls.BOTH_WAYS

    def toggled(self) -> "Direction":
        """
        forwards -> backwards -> both -> forwards
        """
        if self is Direction.FORWARDS:
            return Direction.BACKWARDS
        if self is Direction.BACKWARDS:
            return Direction.BOTH_WAYS
        return Direction.FORWARDS

    def allows(self, forwards: bool) -> bool:
        if self is Direction.BOTH_WAYS:
            return True
        return forwards == (self is Direction.FORWARDS)


@dataclass(frozen=True)
class ModalFilter:
    kind: FilterKind
    # 0..1 along the road's linestring
    percent_along: float


@dataclass(frozen=True)
class DiagonalFilter:
    """
    A DiagonalFilter sits at a 4-way intersection and stops traffic going
    straight through: movements are only allowed between two roads of the
    same group.

    It can be placed in one of two rotations, deciding which way traffic is
    forced to turn. When every road at the junction is one-way, only one
    rotation is sensible; the other blocks the junction entirely. That's left
    to the user.
    """
    angle: float
    group_a: Tuple[RoadID, RoadID]
    group_b: Tuple[RoadID, RoadID]

    def allows_movement(self, movement: Tuple[RoadID, RoadID]) -> bool:
        from_r, to_r = movement
        assert from_r in self.group_a or from_r in self.group_b
        assert to_r in self.group_a or to_r in self.group_b

        return (from_r in self.group_a and to_r in self.group_a) or (
            from_r in self.group_b and to_r in self.group_b
        )

    def split_offset(self, intersection: Intersection) -> int:
        """
        The rotation this filter was built with, relative to the clockwise road
        order at `intersection`.
        """
        try:
            return intersection.roads.index(self.group_a[0])
        except ValueError:
            raise RuntimeError(
                f"diagonal filter at {intersection} has roads that don't belong there"
            ) from None


# ---------------------------------------------------------------------- #
# Commands
# ---------------------------------------------------------------------- #


@dataclass(frozen=True)
class SetModalFilter:
    road: RoadID
    # None deletes the filter
    filter: Optional[ModalFilter]


@dataclass(frozen=True)
class SetDiagonalFilter:
    intersection: IntersectionID
    filter: Optional[DiagonalFilter]


@dataclass(frozen=True)
class SetDirection:
    road: RoadID
    direction: Direction


@dataclass(frozen=True)
class Multiple:
    commands: Tuple["Command", ...]


Command = Union[SetModalFilter, SetDiagonalFilter, SetDirection, Multiple]
