"""Physical models plugged into Regions, Contacts and Interfaces."""

from tcadjax.models.base import ContactModel, InterfaceModel, RegionModel
from tcadjax.models.continuity import ContinuityInterfaceModel
from tcadjax.models.dirichlet import DirichletContactModel
from tcadjax.models.poisson import PoissonRegionModel

__all__ = [
    "RegionModel",
    "ContactModel",
    "InterfaceModel",
    "PoissonRegionModel",
    "DirichletContactModel",
    "ContinuityInterfaceModel",
]
