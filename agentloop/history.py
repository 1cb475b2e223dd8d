"""
agentloop - Conversation history framing.

Builds the message list sent to the model for the first turn and strips
caller-supplied history of entries the providers would reject.
"""

from typing import Any, Callable, Iterable, Optional, Union

from .models import Message, MessageRole

HistoryEntry = Union[Message, dict[str, Any]]

DROPPED_TOOL_MESSAGE = "Dropping invalid tool message: missing toolCallId"
DROPPED_MALFORMED_MESSAGE = "Dropping malformed history entry"


def _coerce(entry: HistoryEntry) -> Message:
    if isinstance(entry, Message):
        return entry
    return Message.from_dict(entry)


def sanitize_history(
    history: Optional[Iterable[HistoryEntry]],
    on_debug: Optional[Callable[..., None]] = None,
) -> list[Message]:
    """Drop ``tool`` messages that lack a ``tool_call_id``.

    Entries that cannot be read as a message (no or unknown ``role``, not a
    mapping) are dropped too. Every other entry passes through unchanged and
    in order. Each dropped entry is reported once through ``on_debug``.
    Running this on its own output is a no-op.
    """
    result: list[Message] = []
    for entry in history or ():
        try:
            msg = _coerce(entry)
        except (AttributeError, KeyError, TypeError, ValueError) as e:
            if on_debug is not None:
                on_debug(
                    DROPPED_MALFORMED_MESSAGE,
                    {"entry": repr(entry)[:100], "error": f"{type(e).__name__}: {e}"},
                )
            continue
        if msg.role == MessageRole.TOOL and not msg.tool_call_id:
            if on_debug is not None:
                on_debug(
                    DROPPED_TOOL_MESSAGE,
                    {"tool_name": msg.name, "content": msg.content[:100]},
                )
            continue
        result.append(msg)
    return result


def build_initial_messages(
    system_prompt: str,
    history: Optional[Iterable[HistoryEntry]],
    query: str,
    on_debug: Optional[Callable[..., None]] = None,
) -> list[Message]:
    """Return ``[system] + sanitized history + [user query]``."""
    messages = [Message.system(system_prompt)]
    messages.extend(sanitize_history(history, on_debug))
    messages.append(Message.user(query))
    return messages
