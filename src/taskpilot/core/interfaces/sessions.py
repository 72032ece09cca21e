"""
Session Store Protocol

Where terminal session snapshots are archived once the in-memory registry
lets go of them.
"""

from typing import Any, Protocol


class SessionStoreProtocol(Protocol):
    async def save(self, session_id: str, snapshot: dict[str, Any]) -> bool:
        ...

    async def load(self, session_id: str) -> dict[str, Any] | None:
        ...

    async def list_sessions(self) -> list[str]:
        ...
