import pytest

from models import ServiceType, SERVICE_DURATIONS, is_special_case_service, parse_service_type, resolve_duration
from scheduler.errors import ErrorCode, InvalidServiceType


@pytest.mark.parametrize("service,minutes", [
    (ServiceType.CONSULTATION, 20),
    (ServiceType.CONSULTATION_PAP, 30),
    (ServiceType.IUD_PROCEDURE, 40),
    (ServiceType.REGENERATIVE_THERAPY, 40),
    (ServiceType.BIOPSY, 40),
])
def test_duration_table(service, minutes):
    """Every service resolves to its fixed length."""
    assert resolve_duration(service) == minutes


def test_every_service_has_a_duration():
    """The table is total over the enumeration."""
    assert set(SERVICE_DURATIONS) == set(ServiceType)


def test_labels_are_accepted():
    """The API sends the clinic's own labels."""
    assert resolve_duration("Consulta & PAP") == 30
    assert parse_service_type("Biopsia") is ServiceType.BIOPSY


def test_unknown_label_raises():
    """Unknown services are a defect, not a default."""
    with pytest.raises(InvalidServiceType) as exc:
        resolve_duration("Masaje")
    assert exc.value.code is ErrorCode.INVALID_SERVICE_TYPE


def test_only_regenerative_therapy_is_special():
    """The relaxed conflict rule applies to one service only."""
    special = [s for s in ServiceType if is_special_case_service(s)]
    assert special == [ServiceType.REGENERATIVE_THERAPY]
