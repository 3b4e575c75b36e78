"""
Tests for the voice/chat loop.
"""
from unittest.mock import AsyncMock

import pytest

from homectl.config import HomeSettings
from homectl.household import build_household
from homectl.models import CommandAction
from homectl.services.assistant_service import VOICE_DENIED_REPLY, AssistantService
from homectl.services.remote_client import RemoteDeviceClient
from homectl.services.storage import MemoryStore


@pytest.fixture
def make_assistant(policy, make_actuation):
    def _make(text_source=None, history_size=50, remote=None):
        return AssistantService(policy, make_actuation(remote), text_source=text_source,
                                history_size=history_size)
    return _make


class TestUserText:

    @pytest.mark.asyncio
    async def test_local_parser_without_assistant(self, make_assistant, device_states, owner):
        turn = await make_assistant().handle_user_text("turn on the kitchen light")

        assert turn.source == "local"
        assert turn.command.action == CommandAction.DEVICE_SET
        assert turn.message == "Turning on the light in the kitchen."
        assert device_states.get("kitchen-light-1") is True

    @pytest.mark.asyncio
    async def test_assistant_reply_is_executed(self, make_assistant, doors, owner):
        source = AsyncMock(return_value="Unlocking it now.\nCOMMAND: action=door.unlock; door=kitchen")
        assistant = make_assistant(text_source=source)

        turn = await assistant.handle_user_text("let me into the kitchen")

        assert turn.source == "assistant"
        assert turn.message == "Unlocking it now."
        assert doors.get_state("kitchen") is False
        source.assert_awaited_once()
        assert source.await_args.args == ("let me into the kitchen", [])

    @pytest.mark.asyncio
    async def test_history_is_passed_to_assistant(self, make_assistant, owner):
        source = AsyncMock(return_value="Sure.\nCOMMAND: action=none")
        assistant = make_assistant(text_source=source)

        await assistant.handle_user_text("hi")
        await assistant.handle_user_text("how are you")

        history = source.await_args.args[1]
        assert [m["role"] for m in history] == ["user", "assistant"]
        assert history[0]["content"] == "hi"

    @pytest.mark.asyncio
    async def test_assistant_failure_falls_back_to_local(self, make_assistant, doors, owner):
        source = AsyncMock(side_effect=TimeoutError("assistant timed out"))
        turn = await make_assistant(text_source=source).handle_user_text("unlock the kitchen door")

        assert turn.source == "local"
        assert doors.get_state("kitchen") is False

    @pytest.mark.asyncio
    async def test_empty_assistant_reply_falls_back_to_local(self, make_assistant, owner):
        source = AsyncMock(return_value="   ")
        turn = await make_assistant(text_source=source).handle_user_text("hello")

        assert turn.source == "local"
        assert turn.message.startswith("Hello!")

    @pytest.mark.asyncio
    async def test_voice_permission_required(self, make_assistant, registry, device_states, owner):
        await registry.update_member(owner.id, {"policies": {"controls": {"voice": False}}})
        source = AsyncMock()

        turn = await make_assistant(text_source=source).handle_user_text("turn on the kitchen light")

        assert turn.source == "denied"
        assert turn.message == VOICE_DENIED_REPLY
        source.assert_not_awaited()
        assert device_states.get("kitchen-light-1") is False

    @pytest.mark.asyncio
    async def test_history_is_bounded(self, make_assistant, owner):
        assistant = make_assistant(history_size=4)
        for text in ["hello", "help", "turn on the fan", "lock all doors"]:
            await assistant.handle_user_text(text)

        history = assistant.history
        assert len(history) == 4
        assert history[0].content == "turn on the fan"
        assert history[2].content == "lock all doors"

        assistant.clear_history()
        assert assistant.history == []


class TestAssistantReply:

    @pytest.mark.asyncio
    async def test_denial_is_reported(self, make_assistant, doors, member):
        turn = await make_assistant().handle_assistant_reply(
            "Okay!\nCOMMAND: action=door.unlock_all"
        )

        assert turn.result.denied
        assert turn.message == "You are not allowed to unlock all doors."
        assert all(doors.snapshot().values())

    @pytest.mark.asyncio
    async def test_synthesized_message_when_reply_has_no_words(self, make_assistant, owner):
        turn = await make_assistant().handle_assistant_reply(
            "COMMAND: action=device.set; room=everywhere; device=fan; value=on"
        )
        assert turn.message == "Turning on all fans."

    @pytest.mark.asyncio
    async def test_to_dict(self, make_assistant, owner):
        turn = await make_assistant().handle_assistant_reply("Just chatting.")
        data = turn.to_dict()

        assert data["message"] == "Just chatting."
        assert data["action"] == "none"
        assert data["result"]["outcome"] == "nothing_to_do"


class TestAreaLabels:

    @pytest.mark.asyncio
    async def test_local_replies_use_household_labels(self, tmp_path):
        home_settings = HomeSettings(
            STORAGE_BACKEND="memory",
            DATA_DIR=str(tmp_path),
            AREA_LABELS={"kitchen": "galley"},
        )
        home = build_household(home_settings, store=MemoryStore(), remote=RemoteDeviceClient(""))
        await home.start()
        owner = await home.registry.register("Alex", pin="1234")
        home.registry.set_current(owner.id)

        turn = await home.assistant.handle_user_text("turn on the kitchen light")

        assert turn.source == "local"
        assert turn.message == "Turning on the light in the galley."
