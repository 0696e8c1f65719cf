"""In-memory ban list: IPs, auth keys and content keywords."""
from __future__ import annotations

from typing import Any, Callable, Iterable, List, Set

from .logging_config import get_logger

logger = get_logger(__name__)

BanListener = Callable[[str, str], None]

IP = "ip"
KEY = "key"
KEYWORD = "keyword"


class BanList:
    def __init__(
        self,
        ips: Iterable[str] = (),
        keys: Iterable[str] = (),
        keywords: Iterable[str] = (),
    ):
        self.ips: Set[str] = set(ips)
        self.keys: Set[str] = set(keys)
        self.keywords: Set[str] = set(keywords)
        self._listeners: List[BanListener] = []

    def subscribe(self, listener: BanListener) -> None:
        """Call *listener(kind, value)* whenever a new entry is added."""
        self._listeners.append(listener)

    # -------------------- Lookups -------------------- #

    def is_ip_banned(self, ip: str) -> bool:
        return ip in self.ips

    def is_key_banned(self, key: Any) -> bool:
        if not isinstance(key, str):
            return False
        return key in self.keys

    def contains_banned_keyword(self, text: Any) -> bool:
        """Substring match, case-sensitive. Non-string content never matches."""
        if not isinstance(text, str):
            return False
        return any(word in text for word in self.keywords)

    # -------------------- Mutation -------------------- #

    def ban_ip(self, ip: str) -> bool:
        return self._add(self.ips, IP, ip)

    def ban_key(self, key: str) -> bool:
        return self._add(self.keys, KEY, key)

    def ban_keyword(self, keyword: str) -> bool:
        return self._add(self.keywords, KEYWORD, keyword)

    def add(self, kind: str, value: str) -> bool:
        if kind == IP:
            return self.ban_ip(value)
        if kind == KEY:
            return self.ban_key(value)
        if kind == KEYWORD:
            return self.ban_keyword(value)
        raise ValueError(f"unknown ban kind: {kind!r}")

    def _add(self, target: Set[str], kind: str, value: str) -> bool:
        if value in target:
            return False
        target.add(value)
        logger.info(f"Banned {kind} {value!r}")
        for listener in list(self._listeners):
            listener(kind, value)
        return True


__all__ = ["BanList", "IP", "KEY", "KEYWORD"]
