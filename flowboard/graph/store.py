"""Graph & edge store: nodes, edges and debounced output commits."""

import asyncio
from collections.abc import Callable
from typing import Any

import structlog

from flowboard.config.settings import Settings, get_settings
from flowboard.exceptions import GraphError
from flowboard.models import Edge, Node, ProcessingState, StageKind, StageOutput

logger = structlog.get_logger(__name__)

CommitListener = Callable[[str, bool], None]


class _PendingCommit:
    """Latest payload waiting for its debounce window to close."""

    __slots__ = ("output", "error", "handle")

    def __init__(self, output: StageOutput | None, error: str | None) -> None:
        self.output = output
        self.error = error
        self.handle: asyncio.TimerHandle | None = None


class GraphStore:
    """In-memory store of the pipeline graph.

    The store is the only shared mutable state between stages. Each node's
    output and state are written only by the stage that owns the node.
    """

    def __init__(self, settings: Settings | None = None) -> None:
        self._settings = settings or get_settings()
        self._nodes: dict[str, Node] = {}
        self._edges: dict[str, Edge] = {}
        self._pending: dict[str, _PendingCommit] = {}
        self._listeners: list[CommitListener] = []

    @property
    def debounce_seconds(self) -> float:
        return max(0, self._settings.commit_debounce_ms) / 1000

    # Nodes

    def add_node(
        self, node_id: str, kind: StageKind | str, config: dict[str, Any] | None = None
    ) -> Node:
        if node_id in self._nodes:
            raise GraphError(f"Node '{node_id}' already exists")
        node = Node(node_id=node_id, kind=StageKind(kind), config=dict(config or {}))
        self._nodes[node_id] = node
        logger.debug("node_added", node_id=node_id, kind=node.kind.value)
        return node

    def remove_node(self, node_id: str) -> None:
        """Remove a node, its incident edges and any pending commit."""
        self.get_node(node_id)
        for edge in [e for e in self._edges.values() if node_id in (e.source, e.target)]:
            del self._edges[edge.edge_id]
        self._cancel_pending(node_id)
        del self._nodes[node_id]
        logger.debug("node_removed", node_id=node_id)

    def get_node(self, node_id: str) -> Node:
        try:
            return self._nodes[node_id]
        except KeyError:
            raise GraphError(f"Unknown node '{node_id}'") from None

    def has_node(self, node_id: str) -> bool:
        return node_id in self._nodes

    @property
    def nodes(self) -> list[Node]:
        return list(self._nodes.values())

    def update_config(self, node_id: str, changes: dict[str, Any]) -> Node:
        node = self.get_node(node_id)
        node.config = {**node.config, **changes}
        return node

    def write_state(
        self, node_id: str, state: ProcessingState, waiting: bool = False
    ) -> None:
        node = self.get_node(node_id)
        node.state = state
        node.waiting = waiting

    # Edges

    def add_edge(
        self,
        source: str,
        target: str,
        source_port: str | None = None,
        target_port: str | None = None,
        edge_id: str | None = None,
    ) -> Edge:
        """Connect two nodes.

        Raises:
            GraphError: On a self-loop, an unknown endpoint, a duplicate edge id,
                or a second incoming edge on the same target port.
        """
        if source == target:
            raise GraphError(f"Self-loop on '{source}' is not allowed")
        self.get_node(source)
        self.get_node(target)

        for edge in self.incoming_edges(target):
            if edge.target_port == target_port:
                port = f" port '{target_port}'" if target_port else ""
                raise GraphError(
                    f"'{target}'{port} already has an input from '{edge.source}'; "
                    "joins are not supported"
                )

        edge_id = edge_id or f"e{source}-{target}"
        if edge_id in self._edges:
            raise GraphError(f"Edge '{edge_id}' already exists")

        edge = Edge(
            edge_id=edge_id,
            source=source,
            target=target,
            source_port=source_port,
            target_port=target_port,
        )
        self._edges[edge_id] = edge
        logger.debug("edge_added", edge_id=edge_id, source=source, target=target)
        return edge

    def remove_edge(self, edge_id: str) -> None:
        """Remove an edge. The target keeps whatever output it already committed."""
        if edge_id not in self._edges:
            raise GraphError(f"Unknown edge '{edge_id}'")
        del self._edges[edge_id]
        logger.debug("edge_removed", edge_id=edge_id)

    @property
    def edges(self) -> list[Edge]:
        return list(self._edges.values())

    def incoming_edges(self, node_id: str) -> list[Edge]:
        return [e for e in self._edges.values() if e.target == node_id]

    def outgoing_edges(self, node_id: str) -> list[Edge]:
        return [e for e in self._edges.values() if e.source == node_id]

    # Commits

    def subscribe(self, listener: CommitListener) -> None:
        if listener not in self._listeners:
            self._listeners.append(listener)

    def unsubscribe(self, listener: CommitListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def commit_output(self, node_id: str, output: StageOutput) -> None:
        """Commit a node's output, last writer wins within the debounce window."""
        self.get_node(node_id)
        self._schedule(node_id, _PendingCommit(output, None))

    def commit_error(self, node_id: str, message: str) -> None:
        """Record a failure message and clear the output. Never propagates."""
        self.get_node(node_id)
        self._schedule(node_id, _PendingCommit(None, message))

    def invalidate(self, node_id: str) -> None:
        """Drop a node's committed output and error, and any pending commit."""
        node = self.get_node(node_id)
        self._cancel_pending(node_id)
        node.output = None
        node.error = None

    @property
    def pending_commits(self) -> int:
        return len(self._pending)

    def flush(self) -> None:
        """Land every pending commit now."""
        for node_id in list(self._pending):
            self._land(node_id)

    def _schedule(self, node_id: str, commit: _PendingCommit) -> None:
        self._cancel_pending(node_id)
        self._pending[node_id] = commit

        delay = self.debounce_seconds
        if delay <= 0:
            self._land(node_id)
            return
        loop = asyncio.get_running_loop()
        commit.handle = loop.call_later(delay, self._land, node_id)

    def _cancel_pending(self, node_id: str) -> None:
        commit = self._pending.pop(node_id, None)
        if commit is not None and commit.handle is not None:
            commit.handle.cancel()

    def _land(self, node_id: str) -> None:
        commit = self._pending.pop(node_id, None)
        if commit is None or node_id not in self._nodes:
            return
        if commit.handle is not None:
            commit.handle.cancel()

        node = self._nodes[node_id]
        node.output = commit.output
        node.error = commit.error
        succeeded = commit.error is None

        logger.debug("commit_landed", node_id=node_id, succeeded=succeeded)
        for listener in list(self._listeners):
            try:
                listener(node_id, succeeded)
            except Exception:
                logger.exception("commit_listener_error", node_id=node_id)
