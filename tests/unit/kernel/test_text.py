from __future__ import annotations

import pytest

from yardline.kernel.text import clean, compact_rego, normalize_rego, same_text, vehicle_label


@pytest.mark.unit
def test_normalize_rego_keeps_only_letters_and_digits():
    assert normalize_rego(" abc-123 ") == "ABC123"
    assert normalize_rego(None) == ""


@pytest.mark.unit
def test_compact_rego_strips_whitespace_only():
    assert compact_rego(" ab c 12-3 ") == "ABC12-3"


@pytest.mark.unit
def test_clean_and_same_text():
    assert clean(None) == ""
    assert same_text(" Workshop ", "workshop")
    assert not same_text("Workshop", "Yard")


@pytest.mark.unit
def test_vehicle_label_full_and_fallback():
    label = vehicle_label(
        rego="XYZ789", make="Toyota", model="Corolla", badge="SR", description="white", year="2015"
    )
    assert label == "XYZ789 - Toyota Corolla SR (white, 2015)"
    assert vehicle_label() == "Unidentified vehicle"
    assert vehicle_label(make="Ford", model="Ranger") == "Ford Ranger"
