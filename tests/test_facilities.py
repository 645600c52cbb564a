from __future__ import annotations

from yard_analytics.facilities import MAX_FACILITY_NAME_LENGTH, FacilityRegistry, normalize_facility_name


def test_normalize_facility_name_strips_unsafe_characters_and_caps_length() -> None:
    assert normalize_facility_name('  <Dock & "North">  ') == "Dock North"
    assert normalize_facility_name("   ") is None
    assert normalize_facility_name(None) is None
    assert normalize_facility_name(42) == "42"
    assert len(normalize_facility_name("x" * 150) or "") == MAX_FACILITY_NAME_LENGTH


def test_facility_registry_turns_multi_facility_on_second_distinct_name() -> None:
    registry = FacilityRegistry()
    assert registry.register("DC-1") == "DC-1"
    registry.register(" DC-1 ")
    registry.register("")
    assert len(registry) == 1
    assert not registry.is_multi_facility

    registry.register("DC-2")
    assert registry.is_multi_facility
    assert registry.names == ["DC-1", "DC-2"]
    assert "DC-2" in registry
