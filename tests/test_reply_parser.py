"""
Tests for the reply parser: directive extraction, fallbacks, and utterance choice.
"""
import re

import pytest

from homectl.models import CommandAction, DeviceType
from homectl.services.reply_parser import (
    ParsedReply,
    choose_utterance,
    extract_command,
    format_directive,
    interpret_reply,
    parse_directive_line,
    strip_command_artifacts,
)


def assert_no_leak(text: str):
    assert "COMMAND:" not in text.upper()
    assert not re.search(r'\{[^{}]*"action"', text)
    assert "```" not in text
    assert all(line.strip().lower() != "json" for line in text.split("\n"))
    assert not re.search(r"\bjson\b\s*:?\s*$", text, re.IGNORECASE | re.MULTILINE)


# =============================================================================
# Directive Line
# =============================================================================

class TestDirectiveLine:

    def test_parses_trailing_directive(self):
        raw = ("Sure, turning on the fan.\n"
               "COMMAND: action=device.set; room=Bedroom1; device=Fan; value=ON; say=Fan Is On")
        parsed = extract_command(raw)

        assert parsed.payload == {
            "action": "device.set",
            "room": "bedroom1",
            "device": "fan",
            "value": "on",
            "say": "Fan Is On",
        }
        assert parsed.remainder == "Sure, turning on the fan."

    def test_missing_action_defaults_to_none(self):
        payload, prefix = parse_directive_line("COMMAND: say=Hello there")
        assert payload == {"say": "Hello there", "action": "none"}
        assert prefix == ""

    def test_text_before_marker_is_kept(self):
        payload, prefix = parse_directive_line("Locking now. COMMAND: action=door.lock; door=kitchen")
        assert payload["action"] == "door.lock"
        assert prefix == "Locking now."

    def test_last_directive_wins(self):
        raw = "COMMAND: action=none\nHello\nCOMMAND: action=door.lock; door=kitchen"
        parsed = extract_command(raw)

        assert parsed.payload == {"action": "door.lock", "door": "kitchen"}
        assert parsed.remainder == "Hello"

    @pytest.mark.parametrize("fields", [
        {"action": "device.set", "room": "kitchen", "device": "light", "value": "off"},
        {"action": "door.unlock_all"},
        {"action": "none", "say": "Good Morning, Alex"},
    ])
    def test_directive_round_trip(self, fields):
        parsed = extract_command(format_directive(fields))

        assert parsed.payload == fields
        assert parsed.remainder == ""

    def test_format_directive_lowercases_except_say(self):
        line = format_directive({"action": "Door.Lock", "door": "Kitchen", "say": "On It", "room": None})
        assert line == "COMMAND: action=door.lock; door=kitchen; say=On It"


# =============================================================================
# Fallbacks
# =============================================================================

class TestFallbacks:

    def test_json_block_in_code_fence(self):
        raw = 'Okay, locking it.\n```json\n{"action": "door.lock", "door": "Kitchen", "say": "Locking"}\n```'
        parsed = extract_command(raw)

        assert parsed.payload == {"action": "door.lock", "door": "kitchen", "say": "Locking"}
        assert parsed.remainder == "Okay, locking it."

    def test_last_json_object_with_action_is_used(self):
        raw = ('First {"action": "door.lock", "door": "kitchen"} then '
               '{"action": "door.unlock", "door": "bedroom1"}')
        parsed = extract_command(raw)

        assert parsed.payload["action"] == "door.unlock"
        assert parsed.payload["door"] == "bedroom1"

    def test_loose_pairs_on_last_line(self):
        raw = 'Turning off the fan.\n"action": "device.set", "device": "fan", "value": "off"'
        parsed = extract_command(raw)

        assert parsed.payload == {"action": "device.set", "device": "fan", "value": "off"}
        assert parsed.remainder == "Turning off the fan."

    def test_broken_json_degrades_to_loose_pairs(self):
        raw = 'Done!\njson\n{"action": "door.lock", "door": }'
        parsed = extract_command(raw)

        assert parsed.payload == {"action": "door.lock"}
        assert parsed.remainder == "Done!"

    def test_plain_text_becomes_say(self):
        raw = "The weather is nice today."
        parsed = extract_command(raw)

        assert parsed.payload == {"action": "none", "say": raw}
        assert parsed.remainder == raw

    def test_empty_input(self):
        assert extract_command("") == ParsedReply(payload=None, remainder="")
        assert extract_command(None) == ParsedReply(payload=None, remainder="")

    @pytest.mark.parametrize("raw", ["{{{{", '{"action": [1, 2', "COMMAND:", "```json\n```", '"action":'])
    def test_never_raises(self, raw):
        parsed = extract_command(raw)
        assert isinstance(parsed, ParsedReply)
        assert_no_leak(parsed.remainder)


# =============================================================================
# No Leakage
# =============================================================================

class TestNoLeakage:

    @pytest.mark.parametrize("raw", [
        "All set!\nCOMMAND: action=device.set; room=all; device=light; value=on",
        'Here you go:\n```json\n{"action": "door.lock", "door": "mainhall"}\n```\nAnything else?',
        'Sure.\njson\n{"action": "none", "say": "Sure."}',
        'Locking up {"action": "door.lock_all"} for the night.',
        'Heads up.\n"action": "door.lock", "door": "kitchen"\n"say": "Locked"',
        'Here you go json {"action":"none","say":"hi"}',
        'Done json: COMMAND: action=door.lock; door=kitchen',
    ])
    def test_remainder_has_no_machine_syntax(self, raw):
        assert_no_leak(extract_command(raw).remainder)

    def test_inline_json_token_is_dropped(self):
        parsed = extract_command('Here you go json {"action":"none","say":"hi"}')

        assert parsed.payload == {"action": "none", "say": "hi"}
        assert parsed.remainder == "Here you go"

    def test_strip_keeps_conversation(self):
        text = "Hello!\n```\n{\n\"action\": \"none\"\n}\n```\nHave a nice day."
        assert strip_command_artifacts(text) == "Hello!\n\nHave a nice day."


# =============================================================================
# Utterance & Command
# =============================================================================

class TestUtterance:

    def test_prefers_remainder(self):
        parsed = ParsedReply(payload={"action": "none", "say": "From payload"}, remainder="From text")
        assert choose_utterance("ignored", parsed) == "From text"

    def test_falls_back_to_payload_say(self):
        parsed = extract_command("COMMAND: action=none; say=Good Night")
        assert choose_utterance("COMMAND: action=none; say=Good Night", parsed) == "Good Night"

    def test_directive_only_reply_says_okay(self):
        raw = "COMMAND: action=none"
        assert choose_utterance(raw, extract_command(raw)) == "Okay."


class TestInterpretReply:

    def test_device_command_is_normalized(self):
        command = interpret_reply("Sure!\nCOMMAND: action=device.set; room=bedroom; device=aircon; value=off")

        assert command.action == CommandAction.DEVICE_SET
        assert command.room == "bedroom1"
        assert command.device == DeviceType.AC
        assert command.value == "off"
        assert command.say == "Sure!"

    def test_door_all_target_promotes_action(self):
        command = interpret_reply("COMMAND: action=door.lock; door=all doors")
        assert command.action == CommandAction.DOOR_LOCK_ALL

    def test_actionable_without_words_leaves_say_empty(self):
        command = interpret_reply("COMMAND: action=door.lock; door=kitchen")
        assert command.action == CommandAction.DOOR_LOCK
        assert command.door == "kitchen"
        assert command.say == ""

    def test_unknown_action_is_none(self):
        command = interpret_reply("Let me think.\nCOMMAND: action=teleport")
        assert command.action == CommandAction.NONE
        assert command.say == "Let me think."
