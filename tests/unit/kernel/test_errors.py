from __future__ import annotations

import pytest

from yardline.kernel.errors import (
    DuplicateVehicleError,
    InsufficientIdentificationError,
    NotFoundError,
    ValidationError,
    VehicleIdentificationError,
    YardlineError,
)


@pytest.mark.unit
def test_error_code_must_be_dotted_lowercase():
    with pytest.raises(ValueError):
        YardlineError(code="Bad-Code", message="nope")


@pytest.mark.unit
def test_public_dict_includes_meta_only_when_present():
    assert NotFoundError().to_public_dict() == {"detail": "Not found", "code": "resource.not_found"}

    err = VehicleIdentificationError(message="ABC123 needs review", meta={"decision": "review"})
    assert err.to_public_dict() == {
        "detail": "ABC123 needs review",
        "code": "vehicle.identification_failed",
        "meta": {"decision": "review"},
    }


@pytest.mark.unit
def test_insufficient_identification_is_a_validation_error():
    err = InsufficientIdentificationError()
    assert isinstance(err, ValidationError)
    assert err.code == "vehicle.insufficient_identification"
    assert "rego or make+model" in err.message


@pytest.mark.unit
def test_duplicate_vehicle_error_carries_rego():
    err = DuplicateVehicleError(rego="ABC123")
    assert err.rego == "ABC123"
    assert err.meta == {"rego": "ABC123"}
    assert str(err) == "Vehicle ABC123 already exists"
