"""
Cooldown throttling for sensitive account actions (password change).

The check is a pure function of (user_id, now, store). The store is
injected: the in-memory one is process-local and only suitable for a single
instance; multi-instance deployments plug in a shared backing store.
"""
from typing import Dict, Optional, Protocol


class CooldownStore(Protocol):
    def get(self, user_id: int) -> Optional[float]:
        ...

    def set(self, user_id: int, until: float) -> None:
        ...


class InMemoryCooldownStore:
    def __init__(self):
        self._until: Dict[int, float] = {}

    def get(self, user_id: int) -> Optional[float]:
        return self._until.get(user_id)

    def set(self, user_id: int, until: float) -> None:
        self._until[user_id] = until


def is_cooling_down(user_id: int, now: float, store: CooldownStore) -> bool:
    until = store.get(user_id)
    return until is not None and until > now


def start_cooldown(user_id: int, now: float, seconds: float, store: CooldownStore) -> float:
    until = now + seconds
    store.set(user_id, until)
    return until
