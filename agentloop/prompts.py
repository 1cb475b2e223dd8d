"""
agentloop - Default system prompt assembly.

Used when an :class:`~agentloop.agent.Agent` is built without a
``system_prompt`` override.
"""

import os
import platform
from datetime import date
from typing import Optional, Sequence

from .tools import ToolDef

BASE_PROMPT = (
    "You are a helpful command-line assistant. Answer the user's request "
    "directly and concisely. When a tool can provide information you lack, "
    "call it instead of guessing, then use its output to answer."
)


def build_system_prompt(
    model: str,
    provider: str,
    tools: Sequence[ToolDef] = (),
    working_dir: Optional[str] = None,
    custom_prompt: Optional[str] = None,
) -> str:
    parts = [custom_prompt or BASE_PROMPT]

    parts.append(
        "\nEnvironment:"
        f"\n  - Model: {model} ({provider})"
        f"\n  - Working directory: {working_dir or os.getcwd()}"
        f"\n  - Platform: {platform.system()} {platform.release()}"
        f"\n  - Date: {date.today().isoformat()}"
    )

    if tools:
        parts.append("\nYou have access to the following tools:")
        for t in tools:
            parts.append(f"  - {t.name}: {t.description}")

    return "\n".join(parts)
