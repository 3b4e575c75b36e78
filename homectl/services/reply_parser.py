"""
HomeCtl - Reply Parser
========================
Splits an assistant's raw reply into the sentence meant for the user and the
machine directive riding along with it.

The assistant is asked to end every reply with a line like::

    COMMAND: action=device.set; room=bedroom1; device=fan; value=on

Models do not always comply, so extraction is an ordered chain of strategies,
each returning ``(payload, remainder)`` or ``None``. The first hit wins:

1. a ``COMMAND:`` line, searched from the last line upwards
2. the last JSON object carrying an ``"action"`` key (code fences tolerated)
3. loose ``"key": "value"`` pairs on the last non-empty line
4. loose pairs anywhere, when the text still mentions ``"action":``
5. plain text, when no directive markers exist at all

Nothing here raises: a failing strategy simply hands over to the next one.
"""
import json
import re
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Tuple

from loguru import logger

from homectl.models import ALL_AREAS, Command, CommandAction
from homectl.services.intent_normalizer import (
    is_all_target,
    normalize_device_type,
    normalize_door,
    normalize_room,
    normalize_value,
)


ReplyPayload = Dict[str, str]
StrategyResult = Optional[Tuple[ReplyPayload, str]]

FALLBACK_UTTERANCE = "Okay."

_DIRECTIVE_RE = re.compile(r"\bCOMMAND:\s*(.*)$", re.IGNORECASE)
_DIRECTIVE_START_RE = re.compile(r"^\s*(COMMAND:|\{|```|json\b)", re.IGNORECASE)
_ACTION_KEY_RE = re.compile(r'"action"\s*:', re.IGNORECASE)
_SAY_KEY_RE = re.compile(r'"say"\s*:', re.IGNORECASE)
_LOOSE_PAIR_RE = re.compile(r'"([a-zA-Z0-9_.-]+)"\s*:?\s*"([^"\n]*)"')
_FLAT_ACTION_OBJECT_RE = re.compile(r'(?:\bjson\b[\s:=-]*)?\{[^{}]*"action"\s*:[^{}]*\}', re.IGNORECASE)
_FENCE_RE = re.compile(r"```(?:json)?", re.IGNORECASE)
_BARE_JSON_TOKEN_RE = re.compile(r"^json\b[\s:=-]*$", re.IGNORECASE)
_TRAILING_JSON_TOKEN_RE = re.compile(r"\bjson\b[\s:=-]*$", re.IGNORECASE)
_JSON_PAIR_LINE_RE = re.compile(r'^"[\w.-]+"\s*:\s*.*$')
_PUNCTUATION_LINE_RE = re.compile(r"^[{}\[\],;`\s]+$")


@dataclass
class ParsedReply:
    payload: Optional[ReplyPayload]
    remainder: str


# ================================================================
# Helpers
# ================================================================
def _normalize_pairs(pairs: List[Tuple[str, object]]) -> ReplyPayload:
    """Lower-case keys and values (except ``say``), drop empties, default the action."""
    result: ReplyPayload = {}
    for raw_key, raw_value in pairs:
        if raw_value is None or isinstance(raw_value, (dict, list)):
            continue
        key = str(raw_key).strip().lower()
        value = str(raw_value).strip()
        if not key or not value:
            continue
        result[key] = value if key == "say" else value.lower()
    if result and "action" not in result:
        result["action"] = CommandAction.NONE.value
    return result


def sanitize_json_candidate(candidate: str) -> str:
    """Peel code fences and a leading ``json`` token off a JSON candidate."""
    cleaned = candidate.strip()
    cleaned = re.sub(r"^```(?:json)?", "", cleaned, flags=re.IGNORECASE)
    cleaned = re.sub(r"```$", "", cleaned)
    cleaned = re.sub(r"^json\b[\s:=-]*", "", cleaned, flags=re.IGNORECASE)
    return cleaned.strip("`").strip()


def has_directive_markers(text: str) -> bool:
    return bool(re.search(r"\bCOMMAND:", text, re.IGNORECASE) or _ACTION_KEY_RE.search(text))


def parse_directive_line(line: str) -> Optional[Tuple[ReplyPayload, str]]:
    """Parse ``COMMAND: k=v; k=v``. Returns the payload and any text before the marker."""
    if not line:
        return None
    match = _DIRECTIVE_RE.search(line.strip())
    if not match:
        return None
    body = match.group(1)
    if not body:
        return None
    pairs = []
    for segment in re.split(r";+", body):
        key, sep, value = segment.strip().partition("=")
        if sep:
            pairs.append((key, value))
    payload = _normalize_pairs(pairs)
    if not payload:
        return None
    prefix = _TRAILING_JSON_TOKEN_RE.sub("", line.strip()[:match.start()]).strip()
    return payload, prefix


def parse_loose_key_values(candidate: str) -> Optional[ReplyPayload]:
    cleaned = sanitize_json_candidate(candidate)
    if not cleaned:
        return None
    pairs = _LOOSE_PAIR_RE.findall(cleaned)
    if not pairs:
        return None
    raw = dict(pairs)
    if "action" not in raw and "say" not in raw:
        return None
    return _normalize_pairs(list(raw.items()))


def find_json_command_block(text: str) -> Optional[Tuple[dict, int, int]]:
    """Locate the last top-level JSON object that has an ``action`` key."""
    decoder = json.JSONDecoder()
    found = None
    index = text.find("{")
    while index != -1:
        try:
            obj, end = decoder.raw_decode(text, index)
        except ValueError:
            index = text.find("{", index + 1)
            continue
        if isinstance(obj, dict) and any(str(k).lower() == "action" for k in obj):
            found = (obj, index, end)
            index = text.find("{", end)
        else:
            index = text.find("{", index + 1)
    return found


def strip_command_artifacts(text: str) -> str:
    """Remove directive leftovers so no machine syntax reaches the user."""
    text = _FLAT_ACTION_OBJECT_RE.sub("", text)
    kept = []
    for line in text.split("\n"):
        match = re.search(r"\bCOMMAND:", line, re.IGNORECASE)
        if match:
            line = line[:match.start()]
        line = _FENCE_RE.sub("", line)
        stripped = line.strip()
        if not stripped:
            kept.append("")
            continue
        if _BARE_JSON_TOKEN_RE.match(stripped) or _PUNCTUATION_LINE_RE.match(stripped):
            continue
        if _ACTION_KEY_RE.search(stripped) or _SAY_KEY_RE.search(stripped):
            continue
        if _JSON_PAIR_LINE_RE.match(stripped):
            continue
        kept.append(line.rstrip())
    result = "\n".join(kept).strip()
    return re.sub(r"\n{3,}", "\n\n", result)


# ================================================================
# Strategies
# ================================================================
def _directive_line_strategy(text: str) -> StrategyResult:
    lines = text.split("\n")
    for i in range(len(lines) - 1, -1, -1):
        if not lines[i].strip():
            continue
        parsed = parse_directive_line(lines[i])
        if parsed:
            payload, prefix = parsed
            if prefix:
                lines[i] = prefix
            else:
                del lines[i]
            return payload, "\n".join(lines).strip()
    return None


def _json_block_strategy(text: str) -> StrategyResult:
    block = find_json_command_block(text)
    if not block:
        return None
    obj, start, end = block
    payload = _normalize_pairs(list(obj.items()))
    if not payload:
        return None
    before = _TRAILING_JSON_TOKEN_RE.sub("", text[:start])
    return payload, (before + text[end:]).strip()


def _last_line_loose_strategy(text: str) -> StrategyResult:
    non_empty = [line for line in text.split("\n") if line.strip()]
    if not non_empty:
        return None
    last_line = non_empty[-1]
    payload = parse_loose_key_values(last_line)
    if not payload:
        return None
    cut = text.rfind(last_line)
    remainder = text[:cut] + text[cut + len(last_line):] if cut >= 0 else text
    return payload, remainder.strip()


def _anywhere_loose_strategy(text: str) -> StrategyResult:
    if not _ACTION_KEY_RE.search(text):
        return None
    payload = parse_loose_key_values(text)
    if not payload:
        return None
    return payload, strip_command_artifacts(text)


def _plain_text_strategy(text: str) -> StrategyResult:
    if has_directive_markers(text):
        return None
    return {"action": CommandAction.NONE.value, "say": text}, text


STRATEGIES: List[Callable[[str], StrategyResult]] = [
    _directive_line_strategy,
    _json_block_strategy,
    _last_line_loose_strategy,
    _anywhere_loose_strategy,
    _plain_text_strategy,
]


# ================================================================
# Public API
# ================================================================
def extract_command(text: Optional[str]) -> ParsedReply:
    """Run the strategy chain over a raw reply."""
    trimmed = (text or "").strip()
    if not trimmed:
        return ParsedReply(payload=None, remainder="")

    payload: Optional[ReplyPayload] = None
    remainder = trimmed
    for strategy in STRATEGIES:
        try:
            result = strategy(trimmed)
        except Exception as e:
            logger.debug(f"Reply strategy {strategy.__name__} failed: {e}")
            continue
        if result:
            payload, remainder = result
            break

    return ParsedReply(payload=payload, remainder=strip_command_artifacts(remainder))


def choose_utterance(raw: Optional[str], parsed: ParsedReply, default: str = FALLBACK_UTTERANCE) -> str:
    """Pick what to say: remainder, then the payload's ``say``, then the raw text."""
    primary = parsed.remainder.strip()
    secondary = ((parsed.payload or {}).get("say") or "").strip()
    raw_text = (raw or "").strip()
    fallback = "" if _DIRECTIVE_START_RE.match(raw_text) else raw_text
    return primary or secondary or fallback or default


def build_command(payload: Optional[ReplyPayload], say: str = "") -> Command:
    """Canonicalize a raw payload into a typed Command."""
    payload = payload or {}
    action = CommandAction.parse(payload.get("action"))
    command = Command(action=action, say=say)

    if action == CommandAction.DEVICE_SET:
        command.room = normalize_room(payload.get("room"))
        command.device = normalize_device_type(payload.get("device"))
        command.value = normalize_value(payload.get("value"))
    elif action in (CommandAction.DOOR_LOCK, CommandAction.DOOR_UNLOCK):
        target = payload.get("door") or payload.get("room")
        if is_all_target(target):
            command.action = (CommandAction.DOOR_LOCK_ALL if action == CommandAction.DOOR_LOCK
                              else CommandAction.DOOR_UNLOCK_ALL)
            command.door = ALL_AREAS
        else:
            command.door = normalize_door(target)
    elif action in (CommandAction.DOOR_LOCK_ALL, CommandAction.DOOR_UNLOCK_ALL):
        command.door = ALL_AREAS
    return command


def interpret_reply(raw: Optional[str]) -> Command:
    """Raw assistant text in, normalized Command out."""
    parsed = extract_command(raw)
    action = CommandAction.parse((parsed.payload or {}).get("action"))
    # actionable commands without any wording get a synthesized sentence later
    default = FALLBACK_UTTERANCE if action == CommandAction.NONE else ""
    command = build_command(parsed.payload, choose_utterance(raw, parsed, default=default))
    logger.info(f"Interpreted reply: action={command.action.value} room={command.room} "
                f"device={command.device.value if command.device else None} "
                f"value={command.value} door={command.door}")
    return command


def format_directive(fields: Dict[str, Optional[str]]) -> str:
    """Render fields as a ``COMMAND:`` line; the inverse of parse_directive_line."""
    parts = []
    for key, value in fields.items():
        if value is None or str(value).strip() == "":
            continue
        value = str(value).strip()
        parts.append(f"{key.lower()}={value if key.lower() == 'say' else value.lower()}")
    return "COMMAND: " + "; ".join(parts)
