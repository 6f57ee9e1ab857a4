"""Agent identity generation."""

from __future__ import annotations

import secrets
import string

AGENT_ID_LENGTH = 10
_ALPHABET = string.ascii_letters + string.digits


def generate_agent_id(length: int = AGENT_ID_LENGTH) -> str:
    """Return a random alphanumeric agent id.

    Ids are not persisted; every process start without an explicit id gets
    a new one.
    """
    if length <= 0:
        raise ValueError(f"length must be positive: {length}")
    return "".join(secrets.choice(_ALPHABET) for _ in range(length))


def resolve_agent_id(agent_id: str | None) -> str:
    """Return ``agent_id`` if set (non-blank), else a freshly generated one."""
    if agent_id is not None and agent_id.strip():
        return agent_id.strip()
    return generate_agent_id()
