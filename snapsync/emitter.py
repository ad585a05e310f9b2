# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Change Emitter - Deliver diff results to callers.

Two delivery shapes, both in primary-key order:

- BatchResult: one ordered response object
- ChangeStream: a single-pass iterator the caller pulls from, or drains
  into a sink that receives one JSON document per event
"""

import json
from dataclasses import dataclass
from typing import Any, Dict, Iterator, List, Protocol

from snapsync.differ import ChangeEvent, ChangeType, Inserted, Modified
from snapsync.schema import Schema


class ChangeSink(Protocol):
    """Protocol for streaming change consumers."""

    def __call__(self, event_json: str) -> None:
        """
        Handle one change event.

        Args:
            event_json: JSON object with "type", "key" and either "row"
                (inserted) or "changedFields" (modified)
        """
        ...


def event_to_dict(schema: Schema, event: ChangeEvent) -> Dict[str, Any]:
    """Wire representation of one change event."""
    payload: Dict[str, Any] = {
        "type": event.type.value,
        "key": schema.key_dict(event.key),
    }
    if isinstance(event, Inserted):
        payload["row"] = dict(event.row)
    elif isinstance(event, Modified):
        payload["changedFields"] = dict(event.changed)
    return payload


def event_to_json(schema: Schema, event: ChangeEvent) -> str:
    return json.dumps(event_to_dict(schema, event), separators=(",", ":"))


@dataclass
class BatchResult:
    """All events of one update, in primary-key order."""

    schema: Schema
    events: List[ChangeEvent]

    def __len__(self) -> int:
        return len(self.events)

    def to_list(self) -> List[Dict[str, Any]]:
        return [event_to_dict(self.schema, event) for event in self.events]

    def to_json(self) -> str:
        return json.dumps(self.to_list(), separators=(",", ":"))

    def counts(self) -> Dict[str, int]:
        totals = {change.value: 0 for change in ChangeType}
        for event in self.events:
            totals[event.type.value] += 1
        return totals


class ChangeStream:
    """
    Ordered, bounded, single-pass stream of change events.

    Iterating yields ChangeEvent objects; drain() pushes JSON to a sink.
    """

    def __init__(self, schema: Schema, events: List[ChangeEvent]):
        self.schema = schema
        self._events = events
        self._position = 0

    def __iter__(self) -> Iterator[ChangeEvent]:
        return self

    def __next__(self) -> ChangeEvent:
        if self._position >= len(self._events):
            raise StopIteration
        event = self._events[self._position]
        self._position += 1
        return event

    def __len__(self) -> int:
        return len(self._events)

    @property
    def remaining(self) -> int:
        return len(self._events) - self._position

    def drain(self, sink: ChangeSink) -> int:
        """
        Deliver every remaining event to sink, synchronously and in order.

        Returns:
            Number of events delivered

        If the sink raises, delivery stops and the exception propagates;
        events after the failing one stay in the stream.
        """
        delivered = 0
        for event in self:
            sink(event_to_json(self.schema, event))
            delivered += 1
        return delivered
