from .context import ActorType, RequestContext
from .records import InsurancePolicySnapshot, NameParts, PatientSnapshot

__all__ = [
    "ActorType",
    "InsurancePolicySnapshot",
    "NameParts",
    "PatientSnapshot",
    "RequestContext",
]
