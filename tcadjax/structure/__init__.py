"""Device structure: coordinates, regions, contacts, interfaces and the device."""

from tcadjax.structure.contact import Contact
from tcadjax.structure.coordinate import Coordinate
from tcadjax.structure.device import EQUATION_NUMBER_SIGNAL, AssemblyResult, Device
from tcadjax.structure.interface import Interface
from tcadjax.structure.region import Region

__all__ = [
    "AssemblyResult",
    "Contact",
    "Coordinate",
    "Device",
    "EQUATION_NUMBER_SIGNAL",
    "Interface",
    "Region",
]
