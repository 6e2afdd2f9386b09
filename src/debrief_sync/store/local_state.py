"""
In-memory materialized view of the remote table.

One map per kind of value, keyed by composite key, plus per-key save status
and pending markers. All three sync channels and every local edit go
through ``put``/``reset``, which replace a whole value at once and then
notify listeners with ``(kind, key)``.
"""

from dataclasses import is_dataclass, replace
from enum import Enum
from typing import Any, Callable, Dict, Iterator, List, Optional, Set, Tuple

from ..keys import Address, ConfigName, KeyKind
from ..models.catalog import DEFAULT_DEPARTMENT, DEFAULT_PERIODS
from ..models.records import ReviewRecord, Task
from ..utils.logging import get_logger


logger = get_logger("debrief-sync.store")

ChangeListener = Callable[[KeyKind, str], None]


class SaveStatus(str, Enum):
    """Per-key write status."""
    IDLE = "idle"
    SAVING = "saving"
    SAVED = "saved"
    ERROR = "error"


# Aggregate indicator: the highest-ranked status across keys wins
_AGGREGATE_RANK = {
    SaveStatus.SAVING: 3,
    SaveStatus.ERROR: 2,
    SaveStatus.SAVED: 1,
    SaveStatus.IDLE: 0,
}


def default_value(address: Address) -> Any:
    """Typed default returned for a key nothing has been stored under."""
    if address.kind == KeyKind.REVIEW:
        return ReviewRecord()
    if address.kind in (KeyKind.TASKS, KeyKind.AREAS):
        return []
    if address.kind == KeyKind.DESCRIPTION:
        return ""
    if address.kind == KeyKind.CATEGORIES:
        return None
    if address.config == ConfigName.PERIODS:
        return list(DEFAULT_PERIODS)
    if address.config == ConfigName.DEPARTMENTS:
        return [DEFAULT_DEPARTMENT]
    return []


def _copy(value: Any) -> Any:
    # Callers get their own containers; records are replaced, never mutated
    if isinstance(value, list):
        return [_copy(item) for item in value]
    if isinstance(value, ReviewRecord):
        return replace(
            value,
            votes=dict(value.votes),
            worked_well=list(value.worked_well),
            needs_improvement=list(value.needs_improvement),
            tags=list(value.tags),
        )
    if isinstance(value, Task):
        return replace(value, assignees=list(value.assignees), tags=list(value.tags))
    if is_dataclass(value) and not isinstance(value, type):
        return replace(value)
    return value


class LocalStateStore:
    """Composite-key record store with save status and pending tracking."""

    def __init__(self):
        self._maps: Dict[KeyKind, Dict[str, Any]] = {kind: {} for kind in KeyKind}
        self._addresses: Dict[str, Address] = {}
        self._status: Dict[str, SaveStatus] = {}
        self._pending: Set[str] = set()
        self._listeners: List[ChangeListener] = []

    # Reads

    def get(self, address: Address) -> Any:
        values = self._maps[address.kind]
        if address.key in values:
            return _copy(values[address.key])
        return default_value(address)

    def has(self, address: Address) -> bool:
        return address.key in self._maps[address.kind]

    def address_of(self, key: str) -> Optional[Address]:
        return self._addresses.get(key)

    def items(self, kind: KeyKind) -> Iterator[Tuple[Address, Any]]:
        for key, value in list(self._maps[kind].items()):
            yield self._addresses[key], _copy(value)

    def __len__(self) -> int:
        return sum(len(values) for values in self._maps.values())

    # Writes

    def put(self, address: Address, value: Any) -> None:
        """Replace the value stored under an address."""
        self._maps[address.kind][address.key] = _copy(value)
        self._addresses[address.key] = address
        self._emit(address.kind, address.key)

    def reset(self, address: Address) -> None:
        """Drop a stored value so reads fall back to the default."""
        values = self._maps[address.kind]
        if address.key in values:
            del values[address.key]
            self._emit(address.kind, address.key)

    def clear(self) -> None:
        for values in self._maps.values():
            values.clear()
        self._addresses.clear()
        self._status.clear()
        self._pending.clear()

    # Save status

    def status(self, key: str) -> SaveStatus:
        return self._status.get(key, SaveStatus.IDLE)

    def set_status(self, key: str, status: SaveStatus) -> None:
        if status == SaveStatus.IDLE:
            self._status.pop(key, None)
        else:
            self._status[key] = status

    def aggregate_status(self) -> SaveStatus:
        if not self._status:
            return SaveStatus.IDLE
        return max(self._status.values(), key=_AGGREGATE_RANK.__getitem__)

    # Pending

    def mark_pending(self, key: str) -> None:
        self._pending.add(key)

    def clear_pending(self, key: str) -> None:
        self._pending.discard(key)

    def is_pending(self, key: str) -> bool:
        return key in self._pending

    @property
    def pending_keys(self) -> Set[str]:
        return set(self._pending)

    # Listeners

    def add_listener(self, listener: ChangeListener) -> None:
        self._listeners.append(listener)

    def remove_listener(self, listener: ChangeListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def _emit(self, kind: KeyKind, key: str) -> None:
        for listener in list(self._listeners):
            try:
                listener(kind, key)
            except Exception as e:
                logger.error("change_listener_failed", kind=kind.value, key=key, error=str(e))
