"""
Service catalogue and Duration Resolver.

The clinic offers a closed set of services. Each one maps to a fixed
duration; this table is the single source of truth for "how long does X take".
"""

from enum import Enum
from typing import Dict, Union

from scheduler.errors import InvalidServiceType


class ServiceType(str, Enum):
    """Bookable services. Values are the labels patients see and the API receives."""
    CONSULTATION = "Consulta"
    CONSULTATION_PAP = "Consulta & PAP"
    IUD_PROCEDURE = "Extracción & Colocación de DIU"
    REGENERATIVE_THERAPY = "Terapia de Ginecología Regenerativa"
    BIOPSY = "Biopsia"


DEFAULT_DURATION_MINUTES = 20

SERVICE_DURATIONS: Dict[ServiceType, int] = {
    ServiceType.CONSULTATION: DEFAULT_DURATION_MINUTES,
    ServiceType.CONSULTATION_PAP: 30,       # Combined consult + PAP smear
    ServiceType.IUD_PROCEDURE: 40,
    ServiceType.REGENERATIVE_THERAPY: 40,
    ServiceType.BIOPSY: 40,
}

# Services that only conflict on an exact start-time match.
# Do not add services here without product sign-off.
SPECIAL_CASE_SERVICES = frozenset({ServiceType.REGENERATIVE_THERAPY})


def parse_service_type(service_type: Union[ServiceType, str]) -> ServiceType:
    """Coerce a label (or enum member) into a ServiceType, raising InvalidServiceType otherwise."""
    if isinstance(service_type, ServiceType):
        return service_type
    try:
        return ServiceType(service_type)
    except ValueError:
        raise InvalidServiceType(service_type) from None


def resolve_duration(service_type: Union[ServiceType, str]) -> int:
    """Appointment length in minutes for a service."""
    return SERVICE_DURATIONS[parse_service_type(service_type)]


def is_special_case_service(service_type: Union[ServiceType, str]) -> bool:
    """True for services that may be placed in any open slot (exact-match conflicts only)."""
    return parse_service_type(service_type) in SPECIAL_CASE_SERVICES
