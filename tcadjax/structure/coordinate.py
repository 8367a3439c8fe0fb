"""Mesh node shared by the Regions, Contacts and Interfaces of a Device."""

from typing import Optional, Tuple


class Coordinate:
    """An indexable mesh node.

    The index is assigned once, by Device.add_coordinate, and is the node's
    registration sequence number within that Device. Coordinates compare and
    hash by identity: two nodes at the same position are still two nodes.
    """

    __slots__ = ("x", "y", "z", "_index")

    def __init__(self, x: float, y: float = 0.0, z: float = 0.0):
        self.x = float(x)
        self.y = float(y)
        self.z = float(z)
        self._index: Optional[int] = None

    @property
    def index(self) -> Optional[int]:
        """Device-assigned index, None until the coordinate is registered."""
        return self._index

    @property
    def position(self) -> Tuple[float, float, float]:
        return (self.x, self.y, self.z)

    def _assign_index(self, index: int) -> None:
        self._index = index

    def __repr__(self) -> str:
        return f"Coordinate(index={self._index}, x={self.x}, y={self.y}, z={self.z})"
