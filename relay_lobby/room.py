from __future__ import annotations

from typing import Any, Optional


class Room:
    """A matchmaking unit: one owner that relays traffic for its guests."""

    def __init__(self, room_id: str, key: Any = None, owner_id: Optional[str] = None, slot: bool = False):
        self.room_id = room_id
        self.key = key
        self.owner_id = owner_id
        # Provisioned relay slot: reset instead of removed when its owner leaves
        self.slot = slot
        # Opaque blob published by the owner; ``None`` until published
        self.config: Any = None
        self.servermode: bool = False
        # Guest session that claimed this servermode slot and awaits its config
        self.pending_handoff_id: Optional[str] = None

    # ---------------------------------------------------------------------
    # Helper utilities
    # ---------------------------------------------------------------------

    @property
    def has_config(self) -> bool:
        return self.config is not None

    def reset(self) -> None:
        self.owner_id = None
        self.config = None
        self.servermode = False
        self.pending_handoff_id = None

    def is_open_slot(self) -> bool:
        return self.servermode and self.pending_handoff_id is None

    def accepts_guests(self) -> bool:
        """A published config, and either not started or open to observers."""
        if not self.has_config:
            return False
        config = self.config if isinstance(self.config, dict) else {}
        if config.get("gameStarted"):
            return bool(config.get("observe") and config.get("observeReady"))
        return True

    def __repr__(self) -> str:
        return f"<Room {self.room_id} key={self.key!r} owner={self.owner_id} servermode={self.servermode}>"


__all__ = ["Room"]
