# netrain_formula/event_log.py
# Event Log -- in-memory, hash-stamped record of harness events.
#
# Scope: records process state transitions and signals for diagnostics.
# No file IO. No global mutable state. Each EventLog instance is independent.
# All timestamps are caller-supplied. All hashes are deterministic.
#
# Canonical import:
#   from netrain_formula.event_log import EventLog, Event, EventFilter

import hashlib
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Iterator, List, Optional

# ===========================================================================
# CONSTANTS
# ===========================================================================

# Field separator used inside the hash preimage.
_HASH_SEP: str = "|"

# Event types emitted by the harness.
STATE_CHANGE: str = "STATE_CHANGE"
SIGNAL_SENT:  str = "SIGNAL_SENT"
SPAWN_FAILED: str = "SPAWN_FAILED"
FORCED_KILL:  str = "FORCED_KILL"

# ===========================================================================
# DATACLASSES: Event, EventFilter
# ===========================================================================

@dataclass(frozen=True)
class Event:
    """
    Immutable record of a single harness event.

    Fields
    ------
    id        : Deterministic identifier derived from the log's counter.
    type      : Category string (STATE_CHANGE, SIGNAL_SENT, ...).
    timestamp : Caller-supplied datetime. Never generated internally.
    data      : Key-value payload, copied on entry.
    hash      : SHA-256 hex digest over (id, type, timestamp, data).
    """
    id: str
    type: str
    timestamp: datetime
    data: Dict[str, Any]
    hash: str

    def describe(self) -> str:
        """One-line rendering used in failure diagnostics."""
        payload = ", ".join("{}={}".format(k, self.data[k]) for k in sorted(self.data))
        return "{} {} {} [{}]".format(self.id, self.timestamp.isoformat(), self.type, payload)


@dataclass
class EventFilter:
    """
    Filter criteria for EventLog.query_events().

    All fields are optional. Omitted fields apply no constraint.
    """
    event_type: Optional[str] = None
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    limit: Optional[int] = None


# ===========================================================================
# INTERNAL HELPERS
# ===========================================================================

def _compute_hash(
    event_id: str,
    event_type: str,
    timestamp: datetime,
    data: Dict[str, Any],
) -> str:
    """
    Compute a deterministic SHA-256 hex digest for an event.

    Preimage: id, type, timestamp.isoformat() and repr(sorted(data.items())),
    joined with _HASH_SEP. Returns a 64-character lowercase hex string.
    """
    sorted_items: str = repr(sorted(data.items()))
    preimage: str = (
        event_id
        + _HASH_SEP
        + event_type
        + _HASH_SEP
        + timestamp.isoformat()
        + _HASH_SEP
        + sorted_items
    )
    return hashlib.sha256(preimage.encode("ascii", errors="replace")).hexdigest()


def _make_event_id(counter: int) -> str:
    """Format: "EVT-{counter:016d}"."""
    return "EVT-{:016d}".format(counter)


# ===========================================================================
# EventLog
# ===========================================================================

class EventLog:
    """
    Append-only event log.

    Events are held in an instance-level list. log_event() raises
    EventLogError on any invalid input instead of dropping the event.
    """

    def __init__(self) -> None:
        self._store: List[Event] = []
        self._counter: int = 0

    def log_event(self, event_type: str, data: Dict[str, Any], timestamp: datetime) -> str:
        """
        Record one event. Return the assigned event ID.

        Raises
        ------
        EventLogError : If event_type is empty or timestamp is not a datetime.
        """
        if not event_type:
            raise EventLogError("event_type must be a non-empty string")
        if timestamp is None:
            raise EventLogError("timestamp must be caller-supplied; None is not permitted")
        if not isinstance(timestamp, datetime):
            raise EventLogError(
                "timestamp must be a datetime instance; got: {}".format(type(timestamp))
            )

        self._counter += 1
        event_id: str = _make_event_id(self._counter)
        payload: Dict[str, Any] = dict(data)
        event = Event(
            id=event_id,
            type=event_type,
            timestamp=timestamp,
            data=payload,
            hash=_compute_hash(event_id, event_type, timestamp, payload),
        )
        self._store.append(event)
        return event_id

    def log_state_change(self, old_state: Any, new_state: Any, timestamp: datetime) -> str:
        """Log a ProcessState transition. States are stored by value."""
        if new_state is None:
            raise EventLogError("new_state must not be None")
        data: Dict[str, Any] = {
            "from": getattr(old_state, "value", old_state),
            "to": getattr(new_state, "value", new_state),
        }
        return self.log_event(STATE_CHANGE, data, timestamp)

    def query_events(self, filter: EventFilter) -> List[Event]:
        """
        Return events matching the filter, oldest first.

        Filtering order: event_type, start_time (inclusive),
        end_time (inclusive), then limit truncation.
        """
        if filter is None:
            raise EventLogError("filter must not be None")

        results: List[Event] = []
        for event in self._store:
            if filter.event_type is not None and event.type != filter.event_type:
                continue
            if filter.start_time is not None and event.timestamp < filter.start_time:
                continue
            if filter.end_time is not None and event.timestamp > filter.end_time:
                continue
            results.append(event)

        if filter.limit is not None:
            results = results[: filter.limit]

        return results

    def __iter__(self) -> Iterator[Event]:
        return iter(list(self._store))

    def events(self) -> tuple:
        """Snapshot of all events in insertion order."""
        return tuple(self._store)

    def event_count(self) -> int:
        return len(self._store)

    def render(self) -> str:
        """Multi-line rendering of every event, for failure diagnostics."""
        return "\n".join(event.describe() for event in self._store)


# ===========================================================================
# EXCEPTIONS
# ===========================================================================

class EventLogError(Exception):
    """
    Raised by EventLog when an invariant is violated.

    Never silently swallowed; callers handle it or let it propagate.
    """
