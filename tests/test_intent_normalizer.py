"""
Tests for room, door, device and value normalization.
"""
import pytest

from homectl.models import ALL_AREAS, DeviceType
from homectl.services.intent_normalizer import (
    is_all_target,
    normalize_device_type,
    normalize_door,
    normalize_room,
    normalize_value,
)


class TestNormalizeRoom:

    @pytest.mark.parametrize("room,expected", [
        ("bedroom", "bedroom1"),
        ("Bedroom 1", "bedroom1"),
        ("first bedroom", "bedroom1"),
        ("bedroom 2", "bedroom2"),
        ("Room 2", "bedroom2"),
        ("second bedroom", "bedroom2"),
        ("kitchen", "kitchen"),
        ("Living Room", "mainhall"),
        ("main hall", "mainhall"),
    ])
    def test_keywords(self, room, expected):
        assert normalize_room(room) == expected

    def test_bare_bedroom_is_first_bedroom(self):
        assert normalize_room("bedroom") == "bedroom1"
        assert normalize_room("bedroom") != "bedroom2"

    @pytest.mark.parametrize("room", ["all", "everywhere", "the whole house", "entire home", "All rooms"])
    def test_whole_house(self, room):
        assert normalize_room(room) == ALL_AREAS

    def test_hall_is_not_all(self):
        assert normalize_room("hall") == "mainhall"
        assert normalize_room("main hall") == "mainhall"

    @pytest.mark.parametrize("room", [None, "", "garage"])
    def test_defaults_to_main_hall(self, room):
        assert normalize_room(room) == "mainhall"


class TestNormalizeDoor:

    def test_has_no_all_target(self):
        assert normalize_door("all") == "mainhall"

    def test_same_order_as_rooms(self):
        assert normalize_door("bedroom") == "bedroom1"
        assert normalize_door("second bedroom door") == "bedroom2"
        assert normalize_door("Kitchen Door") == "kitchen"


class TestNormalizeDevice:

    @pytest.mark.parametrize("device,expected", [
        ("fan", DeviceType.FAN),
        ("Fans", DeviceType.FAN),
        ("ac", DeviceType.AC),
        ("A/C", DeviceType.AC),
        ("airconditioner", DeviceType.AC),
        ("air-conditioner", DeviceType.AC),
        ("Air Conditioner", DeviceType.AC),
        ("light", DeviceType.LIGHT),
        ("lamp", DeviceType.LIGHT),
        (None, DeviceType.LIGHT),
    ])
    def test_aliases(self, device, expected):
        assert normalize_device_type(device) == expected


class TestNormalizeValue:

    def test_only_off_is_off(self):
        assert normalize_value("OFF") == "off"
        assert normalize_value("on") == "on"
        assert normalize_value(None) == "on"
        assert normalize_value("maybe") == "on"

    def test_is_all_target(self):
        assert is_all_target("every door")
        assert not is_all_target("main hall")
        assert not is_all_target(None)
