"""Shared tool classification constants.

Centralizes which tools would mutate balances or positions so that the chat
loop, the tool layer and tests do not drift. Mutating tools are never run
server-side; the client owns the authoritative store.
"""

from __future__ import annotations

MUTATING_TOOLS: set[str] = {
    "execute_deposit",
    "withdraw_from_position",
}


def is_mutating_tool(name: str) -> bool:
    return name in MUTATING_TOOLS
