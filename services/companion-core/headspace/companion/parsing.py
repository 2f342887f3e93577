import json
import logging
import re
from pathlib import Path
from typing import Any, Dict, List, Optional

import jsonschema

from ..schemas.conversation import ConversationReply
from ..schemas.task import NewTaskDirective, RemoveTaskDirective, TaskUpdates
from .client import ApiReply

logger = logging.getLogger(__name__)

TRUNCATION_REASONS = {"MAX_TOKENS", "max_tokens", "length"}
TRUNCATED_RESPONSE = "I have a lot to say about that! Could you ask me something a little more specific so I can give you a focused answer?"
EMPTY_RESPONSE = "Sorry, I couldn't process that request."

_OPENING_FENCE = re.compile(r"^\s*```[a-zA-Z]*\s*")
_CLOSING_FENCE = re.compile(r"\s*```\s*$")
_RESPONSE_FIELD = re.compile(r'"response"\s*:\s*"((?:[^"\\]|\\.)*)"', re.DOTALL)


def _load_schema(name: str) -> Dict[str, Any]:
    schema_path = Path(__file__).with_name(f"{name}.schema.json")
    with schema_path.open("r", encoding="utf-8") as f:
        return json.load(f)["schema"]


_reply_validator = jsonschema.Draft7Validator(_load_schema("conversation_reply"))


def validate_reply(data: Any) -> Dict[str, Any]:
    errors = sorted(_reply_validator.iter_errors(data), key=lambda e: list(e.path))
    if not errors:
        return {"valid": True}
    return {"valid": False, "errors": [f"{'/'.join(map(str, err.path))} {err.message}" for err in errors]}


def strip_code_fences(value: str) -> str:
    return _CLOSING_FENCE.sub("", _OPENING_FENCE.sub("", value or "")).strip()


def extract_response_text(text: str) -> Optional[str]:
    match = _RESPONSE_FIELD.search(text or "")
    if not match:
        return None
    raw = match.group(1)
    try:
        decoded = json.loads(f'"{raw}"')
    except ValueError:
        decoded = raw
    return decoded.strip() or None


def _try_json(text: str) -> Any:
    try:
        return json.loads(text)
    except ValueError:
        return None


def _task_updates(raw: Any) -> TaskUpdates:
    if not isinstance(raw, dict):
        return TaskUpdates()
    new_tasks: List[NewTaskDirective] = []
    for item in raw.get("newTasks") or []:
        text = item.get("text") if isinstance(item, dict) else None
        if isinstance(text, str) and text.strip():
            new_tasks.append(NewTaskDirective(text=text.strip(), reason=item.get("reason")))
    remove_tasks: List[RemoveTaskDirective] = []
    for item in raw.get("removeTasks") or []:
        if isinstance(item, str) and item.strip():
            remove_tasks.append(RemoveTaskDirective(id=item.strip()))
        elif isinstance(item, dict) and (item.get("id") or item.get("text")):
            remove_tasks.append(RemoveTaskDirective(id=item.get("id"), text=item.get("text"), reason=item.get("reason")))
    return TaskUpdates(newTasks=new_tasks, removeTasks=remove_tasks)


def parse_conversation_reply(reply: ApiReply) -> ConversationReply:
    """Turn whatever the conversation API sent into a reply and task updates.

    Never raises. Anything short of a well-formed payload degrades to a best
    effort response with no task updates.
    """
    if reply.finish_reason in TRUNCATION_REASONS:
        logger.warning("Conversation reply truncated (finish reason %s)", reply.finish_reason)
        return ConversationReply(response=TRUNCATED_RESPONSE, degraded=True, reason="truncated")

    cleaned = strip_code_fences(reply.text)
    candidate = reply.payload if reply.payload is not None else _try_json(cleaned)
    if candidate is not None:
        validation = validate_reply(candidate)
        if validation["valid"] and candidate["response"].strip():
            return ConversationReply(response=candidate["response"].strip(), taskUpdates=_task_updates(candidate.get("taskUpdates")))
        if validation["valid"]:
            logger.warning("Conversation reply has a blank response")
        else:
            logger.warning("Conversation reply failed validation: %s", "; ".join(validation["errors"]))

    extracted = extract_response_text(cleaned)
    if extracted:
        return ConversationReply(response=extracted, degraded=True, reason="malformed")

    if isinstance(candidate, str) and candidate.strip():
        return ConversationReply(response=candidate.strip(), degraded=True, reason="plain_text")

    if cleaned and candidate is None:
        logger.info("Conversation reply was not JSON, using it as plain text")
        return ConversationReply(response=cleaned, degraded=True, reason="plain_text")

    return ConversationReply(response=EMPTY_RESPONSE, degraded=True, reason="empty")
