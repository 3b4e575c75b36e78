"""
Tests for the offline keyword parser.
"""
import pytest

from homectl.services.local_parser import (
    FALLBACK_REPLY,
    GREETING_REPLY,
    HELP_REPLY,
    parse_local_command,
)


class TestDevices:

    def test_all_lights(self):
        result = parse_local_command("Turn on all lights")

        assert result.success
        assert result.action == "device.set"
        assert (result.room, result.device, result.value) == ("all", "light", "on")
        assert result.say == "Turning on all lights in your home."

    def test_room_and_device(self):
        result = parse_local_command("turn off bedroom fan")
        assert (result.room, result.device, result.value) == ("bedroom1", "fan", "off")
        assert result.say == "Turning off the fan in the bedroom 1."

    def test_air_conditioner(self):
        result = parse_local_command("switch on the air conditioner in bedroom 2")
        assert (result.room, result.device, result.value) == ("bedroom2", "ac", "on")

    def test_room_defaults_to_main_hall(self):
        result = parse_local_command("lamp on please")
        assert result.room == "mainhall"

    def test_on_inside_other_words_is_ignored(self):
        assert parse_local_command("bedroom one light").success is False


class TestDoors:

    @pytest.mark.parametrize("text,action,door", [
        ("lock the kitchen door", "door.lock", "kitchen"),
        ("please unlock bedroom 2 door", "door.unlock", "bedroom2"),
        ("open the front door", "door.unlock", "mainhall"),
        ("secure the door", "door.lock", "mainhall"),
    ])
    def test_single_door(self, text, action, door):
        result = parse_local_command(text)
        assert result.success
        assert result.action == action
        assert result.door == door

    def test_unlock_is_not_read_as_lock(self):
        assert parse_local_command("unlock the kitchen door").action == "door.unlock"

    @pytest.mark.parametrize("text,action", [
        ("lock all doors", "door.lock_all"),
        ("Unlock every door", "door.unlock_all"),
    ])
    def test_all_doors(self, text, action):
        result = parse_local_command(text)
        assert result.action == action
        assert result.door is None


class TestConversation:

    def test_greeting(self):
        result = parse_local_command("Hello there")
        assert result.success and result.action == "none"
        assert result.say == GREETING_REPLY

    def test_help(self):
        assert parse_local_command("what can you do?").say == HELP_REPLY

    @pytest.mark.parametrize("text", ["sing me a song", "", None])
    def test_unrecognized(self, text):
        result = parse_local_command(text)
        assert result.success is False
        assert result.action == "none"
        assert result.say == FALLBACK_REPLY


class TestConversion:

    def test_custom_area_labels(self):
        labels = {"kitchen": "galley", "mainhall": "front room"}

        assert parse_local_command("turn on the kitchen light", labels).say == "Turning on the light in the galley."
        assert parse_local_command("lock the hall door", labels).say == "Locking the front room door."

    def test_unlabelled_area_uses_its_id(self):
        result = parse_local_command("turn off bedroom fan", {})
        assert result.say == "Turning off the fan in the bedroom1."

    def test_to_dict_drops_empty_fields(self):
        data = parse_local_command("lock all doors").to_dict()
        assert data == {"success": True, "action": "door.lock_all", "say": "Locking all doors for you."}
