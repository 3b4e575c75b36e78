"""
HomeCtl - Assistant Service
=============================
The voice/chat loop: user text -> assistant reply -> Command -> actuation.

The assistant itself is an injected async callable
``text_source(text, history) -> str``. Without one, or when it fails, the
offline keyword parser answers instead, and its result is fed through the
same reply pipeline as a rendered ``COMMAND:`` line.
"""
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime
from typing import Awaitable, Callable, Dict, List, Mapping, Optional, Tuple

from loguru import logger

from homectl.models import Command
from homectl.services.actuation_service import ActuationResult, ActuationService
from homectl.services.local_parser import parse_local_command
from homectl.services.reply_parser import format_directive, interpret_reply


VOICE_DENIED_REPLY = "You are not allowed to use voice control."

TextSource = Callable[[str, List[Dict[str, str]]], Awaitable[str]]


@dataclass
class ChatMessage:
    role: str  # "user" | "assistant"
    content: str
    timestamp: str = field(default_factory=lambda: datetime.now().isoformat())

    def to_dict(self) -> Dict[str, str]:
        return {"role": self.role, "content": self.content, "timestamp": self.timestamp}


@dataclass
class AssistantTurn:
    message: str
    command: Optional[Command] = None
    result: Optional[ActuationResult] = None
    source: str = "assistant"  # assistant | local | denied

    def to_dict(self) -> Dict:
        data = {"message": self.message, "source": self.source}
        if self.command is not None:
            data["action"] = self.command.action.value
        if self.result is not None:
            data["result"] = self.result.to_dict()
        return data


class AssistantService:
    """Turns conversation into actuation and keeps a bounded history."""

    def __init__(self, policy, actuation: ActuationService,
                 text_source: Optional[TextSource] = None, history_size: int = 50,
                 area_labels: Optional[Mapping[str, str]] = None):
        self._policy = policy
        self._actuation = actuation
        self._text_source = text_source
        self._area_labels = area_labels
        self._history: deque = deque(maxlen=history_size)
        logger.info(f"Assistant service initialized (assistant: {'external' if text_source else 'local only'})")

    @property
    def history(self) -> List[ChatMessage]:
        return list(self._history)

    def clear_history(self):
        self._history.clear()

    def _remember(self, role: str, content: str):
        self._history.append(ChatMessage(role=role, content=content))

    async def _ask(self, text: str) -> Tuple[str, str]:
        """Get a raw reply for ``text``: from the assistant if possible, else locally."""
        if self._text_source is not None:
            chat = [{"role": m.role, "content": m.content} for m in self._history]
            try:
                reply = await self._text_source(text, chat)
                if reply and reply.strip():
                    return reply, "assistant"
                logger.warning("Assistant returned an empty reply; using local parser")
            except Exception as e:
                logger.warning(f"Assistant unavailable, using local parser: {e}")

        local = parse_local_command(text, self._area_labels)
        fields = {k: v for k, v in local.to_dict().items() if k not in ("success", "say")}
        return f"{local.say}\n{format_directive(fields)}", "local"

    async def handle_user_text(self, text: str) -> AssistantTurn:
        """One conversational turn for what the user said."""
        if not self._policy.can("voice.use"):
            logger.warning("Voice control denied for current member")
            return AssistantTurn(message=VOICE_DENIED_REPLY, source="denied")

        text = (text or "").strip()
        raw, source = await self._ask(text)
        self._remember("user", text)
        turn = await self.handle_assistant_reply(raw, remember=False)
        turn.source = source
        self._remember("assistant", turn.message)
        return turn

    async def handle_assistant_reply(self, raw: str, remember: bool = True) -> AssistantTurn:
        """Interpret and execute a reply that was already obtained."""
        command = interpret_reply(raw)
        result = await self._actuation.execute(command)
        if remember:
            self._remember("assistant", result.message)
        logger.info(f"Assistant turn: {command.action.value} -> {result.outcome.value}")
        return AssistantTurn(message=result.message, command=command, result=result)
