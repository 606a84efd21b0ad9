"""Trigger bus: broadcast of "upstream has new data" notifications.

Delivery is fire-and-forget. A message published for a target with no
registered listener is recorded as a :class:`PropagationMiss` and dropped.
"""

import asyncio
import inspect
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any

import structlog

from flowboard.config.settings import Settings, get_settings
from flowboard.exceptions import GraphError, PropagationMiss

from .store import GraphStore

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class TriggerMessage:
    """Notification that ``source_node_id`` committed new output for ``target_node_id``."""

    target_node_id: str
    source_node_id: str


Listener = Callable[[TriggerMessage], Awaitable[Any] | Any]


class TriggerBus:
    """Per-pipeline broadcast bus keyed by target node id."""

    def __init__(self, settings: Settings | None = None) -> None:
        self._settings = settings or get_settings()
        self._listeners: dict[str, list[Listener]] = {}
        self._tasks: set[asyncio.Task] = set()
        self._store: GraphStore | None = None
        self.misses: list[PropagationMiss] = []

    @property
    def stagger_seconds(self) -> float:
        return max(0, self._settings.trigger_stagger_ms) / 1000

    def register(self, node_id: str, listener: Listener) -> None:
        listeners = self._listeners.setdefault(node_id, [])
        if listener not in listeners:
            listeners.append(listener)

    def deregister(self, node_id: str, listener: Listener) -> None:
        listeners = self._listeners.get(node_id, [])
        if listener in listeners:
            listeners.remove(listener)
        if not listeners:
            self._listeners.pop(node_id, None)

    def listeners(self, node_id: str) -> list[Listener]:
        return list(self._listeners.get(node_id, []))

    def publish(self, message: TriggerMessage) -> int:
        """Deliver a message to every listener of its target.

        Returns:
            Number of listeners the message was handed to.
        """
        listeners = self.listeners(message.target_node_id)
        if not listeners:
            miss = PropagationMiss(message.target_node_id, message.source_node_id)
            self.misses.append(miss)
            logger.warning(
                "propagation_miss",
                target=message.target_node_id,
                source=message.source_node_id,
            )
            return 0

        for listener in listeners:
            try:
                result = listener(message)
            except Exception:
                logger.exception("trigger_listener_error", target=message.target_node_id)
                continue
            if inspect.isawaitable(result):
                self._track(asyncio.ensure_future(self._guard(result, message)))

        logger.debug(
            "trigger_published",
            target=message.target_node_id,
            source=message.source_node_id,
            listeners=len(listeners),
        )
        return len(listeners)

    def attach(self, store: GraphStore) -> None:
        """Propagate from every successful commit that lands in ``store``."""
        if self._store is not None:
            self._store.unsubscribe(self._on_commit)
        self._store = store
        store.subscribe(self._on_commit)

    def detach(self) -> None:
        if self._store is not None:
            self._store.unsubscribe(self._on_commit)
            self._store = None

    def propagate(self, source_node_id: str) -> None:
        """Notify every downstream target of ``source_node_id``.

        The i-th outgoing edge (insertion order) is notified after
        ``i * trigger_stagger_ms``.
        """
        if self._store is None:
            raise GraphError("Trigger bus is not attached to a graph store")

        stagger = self.stagger_seconds
        for i, edge in enumerate(self._store.outgoing_edges(source_node_id)):
            message = TriggerMessage(target_node_id=edge.target, source_node_id=source_node_id)
            delay = i * stagger
            if delay <= 0:
                self.publish(message)
            else:
                self._track(asyncio.ensure_future(self._publish_later(delay, message)))

    async def drain(self) -> None:
        """Wait until every scheduled notification has been delivered."""
        while self._tasks:
            await asyncio.wait(list(self._tasks))

    @property
    def pending(self) -> int:
        return len(self._tasks)

    def _on_commit(self, node_id: str, succeeded: bool) -> None:
        if succeeded:
            self.propagate(node_id)

    async def _publish_later(self, delay: float, message: TriggerMessage) -> None:
        await asyncio.sleep(delay)
        self.publish(message)

    async def _guard(self, awaitable: Awaitable[Any], message: TriggerMessage) -> None:
        try:
            await awaitable
        except Exception:
            logger.exception("trigger_listener_error", target=message.target_node_id)

    def _track(self, task: asyncio.Task) -> None:
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
