import asyncio
import logging
from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from backend.models.check_in import TERMINAL_STATUSES

logger = logging.getLogger(__name__)

EVENT_TYPES = ("insert", "update", "delete")
WILDCARD = "*"

# Rows in these statuses are dropped from live tables once the event is applied
RETIRED_STATUSES = tuple(s.value for s in TERMINAL_STATUSES)


@dataclass
class ChangeEvent:
    table: str
    event: str
    row: Dict[str, Any]
    timestamp: datetime = field(default_factory=datetime.now)

    @property
    def row_id(self) -> Optional[str]:
        return self.row.get("id")

    def to_message(self) -> Dict[str, Any]:
        return {
            "type": "change",
            "table": self.table,
            "event": self.event,
            "row": self.row,
            "timestamp": self.timestamp.isoformat(),
        }


class LiveTable:
    """Local copy of one table, rebuilt from change events.

    Every event carries the whole row, so applying one is a replacement keyed
    by id. Replaying the same event leaves the table unchanged. Only open rows
    are held: a delete or a move to a closed status evicts the row, so the
    table stays the size of the current working set.
    """

    def __init__(self, name: str):
        self.name = name
        self.rows: Dict[str, Dict[str, Any]] = {}

    def apply(self, change: ChangeEvent):
        row_id = change.row_id
        if row_id is None:
            logger.warning(f"Ignoring {change.event} on {self.name} without an id")
            return
        if change.event == "delete" or change.row.get("status") in RETIRED_STATUSES:
            self.rows.pop(row_id, None)
        else:
            self.rows[row_id] = dict(change.row)

    def get(self, row_id: str) -> Optional[Dict[str, Any]]:
        return self.rows.get(row_id)

    def __len__(self):
        return len(self.rows)


@dataclass
class Subscription:
    websocket: Any
    table: str
    event: str = WILDCARD

    def matches(self, change: ChangeEvent) -> bool:
        if self.table not in (WILDCARD, change.table):
            return False
        return self.event in (WILDCARD, change.event)


class ChangeFeed:
    """Single-consumer channel for record changes.

    Services call ``publish`` after each write. ``run`` drains the queue,
    merges every event into the live tables and pushes it to matching
    WebSocket subscribers. Delivery is best effort: a socket that fails is
    dropped and nothing is retried.
    """

    def __init__(self):
        self.queue: asyncio.Queue = asyncio.Queue()
        self.tables: Dict[str, LiveTable] = {}
        self.subscriptions: List[Subscription] = []

    def table(self, name: str) -> LiveTable:
        if name not in self.tables:
            self.tables[name] = LiveTable(name)
        return self.tables[name]

    def publish(self, table: str, event: str, row: Dict[str, Any]):
        if event not in EVENT_TYPES:
            raise ValueError(f"Unknown change event type: {event}")
        self.queue.put_nowait(ChangeEvent(table=table, event=event, row=_jsonable(row)))

    def subscribe(self, websocket, table: str = WILDCARD, event: str = WILDCARD) -> Subscription:
        if event != WILDCARD and event not in EVENT_TYPES:
            raise ValueError(f"Unknown change event type: {event}")
        subscription = Subscription(websocket=websocket, table=table, event=event)
        self.subscriptions.append(subscription)
        logger.info(f"Added change feed subscriber for {table}/{event}. Total: {len(self.subscriptions)}")
        return subscription

    def unsubscribe(self, websocket):
        self.subscriptions = [s for s in self.subscriptions if s.websocket is not websocket]
        logger.info(f"Removed change feed subscriber. Total: {len(self.subscriptions)}")

    async def process(self, change: ChangeEvent):
        self.table(change.table).apply(change)
        message = change.to_message()
        for subscription in self.subscriptions[:]:  # Copy, failures remove entries
            if not subscription.matches(change):
                continue
            try:
                await subscription.websocket.send_json(message)
            except Exception as e:
                logger.error(f"Error broadcasting to WebSocket: {str(e)}")
                self.unsubscribe(subscription.websocket)

    async def drain(self):
        """Process everything queued so far"""
        while not self.queue.empty():
            change = self.queue.get_nowait()
            await self.process(change)
            self.queue.task_done()

    async def run(self):
        logger.info("Change feed loop started")
        while True:
            change = await self.queue.get()
            try:
                await self.process(change)
            except Exception as e:
                logger.error(f"Error processing {change.event} on {change.table}: {str(e)}")
            finally:
                self.queue.task_done()


def _jsonable(row: Dict[str, Any]) -> Dict[str, Any]:
    data = {}
    for key, value in row.items():
        if isinstance(value, (date, datetime)):
            data[key] = value.isoformat()
        elif isinstance(value, Enum):
            data[key] = value.value
        else:
            data[key] = value
    return data
