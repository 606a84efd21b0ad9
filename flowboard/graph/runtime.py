"""Pipeline runtime: one store, one bus and the stages bound to them."""

import asyncio
from collections.abc import Callable
from typing import Any

import structlog

from flowboard.config.settings import Settings, get_settings
from flowboard.exceptions import ConfigurationError, GraphError
from flowboard.models import (
    ChunkedOutput,
    Edge,
    FilteredListingOutput,
    ListingOutput,
    ParsedOutput,
    StageKind,
    StageOutput,
    TextOutput,
)

from .bus import TriggerBus
from .stage import Stage
from .stages import STAGE_TYPES
from .store import GraphStore

logger = structlog.get_logger(__name__)

# Node type names used by graph editors, mapped to stage kinds
NODE_TYPE_ALIASES: dict[str, StageKind] = {
    "textNode": StageKind.TEXT,
    "gitNode": StageKind.REPOSITORY,
    "filterNode": StageKind.FILTER,
    "parseNode": StageKind.PARSE,
    "chunkNode": StageKind.CHUNK,
}

# Stage kind -> name of the collaborator its constructor takes
_COLLABORATORS: dict[StageKind, str] = {
    StageKind.REPOSITORY: "fetcher",
    StageKind.PARSE: "content_loader",
}


def _stage_kind(value: str) -> StageKind:
    if value in NODE_TYPE_ALIASES:
        return NODE_TYPE_ALIASES[value]
    try:
        return StageKind(value)
    except ValueError:
        raise ConfigurationError(f"Unknown stage type '{value}'") from None


def summarize_output(output: StageOutput | None) -> dict[str, Any] | None:
    """Small, JSON-friendly description of a committed output."""
    if output is None:
        return None
    summary: dict[str, Any] = {"kind": output.kind.value}
    if isinstance(output, TextOutput):
        summary["characters"] = len(output.text)
    elif isinstance(output, ListingOutput):
        summary["entries"] = len(output.listing.contents)
    elif isinstance(output, FilteredListingOutput):
        summary["original_count"] = output.original_count
        summary["filtered_count"] = output.filtered_count
    elif isinstance(output, ParsedOutput):
        summary["parsed_files"] = output.parsed_files
        summary["skipped_files"] = output.skipped_files
        summary["errors"] = output.errors
    elif isinstance(output, ChunkedOutput):
        summary["files"] = len(output.chunked_files)
        summary["total_chunks"] = output.total_chunks
    return summary


class Pipeline:
    """A graph of stages sharing one store and one trigger bus.

    Everything is scoped to the pipeline instance; two pipelines never see
    each other's nodes or triggers.
    """

    def __init__(
        self,
        settings: Settings | None = None,
        fetcher: Callable[..., Any] | None = None,
        content_loader: Callable[..., Any] | None = None,
    ) -> None:
        self.settings = settings or get_settings()
        self.store = GraphStore(self.settings)
        self.bus = TriggerBus(self.settings)
        self.bus.attach(self.store)
        self.stages: dict[str, Stage] = {}
        self._collaborators = {"fetcher": fetcher, "content_loader": content_loader}
        self._started = False

    def __repr__(self) -> str:
        return f"Pipeline(stages={len(self.stages)}, edges={len(self.store.edges)})"

    # Building

    def add_stage(self, kind: StageKind | str, node_id: str, **config: Any) -> Stage:
        """Create a node and its stage.

        Raises:
            ConfigurationError: If the stage configuration is invalid.
            GraphError: If the node id is taken.
        """
        kind = _stage_kind(kind.value if isinstance(kind, StageKind) else kind)
        if self.store.has_node(node_id):
            raise GraphError(f"Node '{node_id}' already exists")
        stage_cls = STAGE_TYPES[kind]

        extra = {}
        collaborator = _COLLABORATORS.get(kind)
        if collaborator is not None:
            extra[collaborator] = self._collaborators[collaborator]

        stage = stage_cls(node_id, self.store, self.bus, self.settings, **extra)
        stage.validate_config({**stage_cls.default_config, **config})
        self.store.add_node(node_id, kind, config)
        self.stages[node_id] = stage
        if self._started:
            stage.mount()
        logger.info("stage_added", node_id=node_id, kind=kind.value)
        return stage

    def remove_stage(self, node_id: str) -> None:
        stage = self.stage(node_id)
        stage.unmount()
        self.store.remove_node(node_id)
        del self.stages[node_id]

    def connect(
        self,
        source: str,
        target: str,
        source_port: str | None = None,
        target_port: str | None = None,
    ) -> Edge:
        return self.store.add_edge(source, target, source_port, target_port)

    def disconnect(self, edge_id: str) -> None:
        self.store.remove_edge(edge_id)

    def stage(self, node_id: str) -> Stage:
        try:
            return self.stages[node_id]
        except KeyError:
            raise GraphError(f"Unknown stage '{node_id}'") from None

    # Running

    def start(self) -> None:
        """Mount every stage. Must be called from a running event loop."""
        for stage in self.stages.values():
            stage.mount()
        self._started = True
        logger.info("pipeline_started", stages=len(self.stages))

    def trigger(self, node_id: str) -> asyncio.Task | None:
        """Start a run of one stage, usually a source."""
        return self.stage(node_id).start_run()

    @property
    def idle(self) -> bool:
        return (
            not any(stage.busy for stage in self.stages.values())
            and self.store.pending_commits == 0
            and self.bus.pending == 0
        )

    async def wait_idle(self, timeout: float | None = None) -> None:
        """Wait until no stage is running and no commit or notification is pending.

        Raises:
            TimeoutError: If the pipeline is still busy after ``timeout`` seconds.
        """
        await asyncio.wait_for(self._settle(), timeout)

    async def _settle(self) -> None:
        while True:
            await self.bus.drain()
            running = [stage.wait() for stage in self.stages.values() if stage.busy]
            if running:
                await asyncio.gather(*running, return_exceptions=True)
                continue
            if self.store.pending_commits:
                await asyncio.sleep(self.store.debounce_seconds)
                continue
            # Landed commits may have scheduled new notifications
            await asyncio.sleep(0)
            if self.idle:
                return

    def stop(self) -> None:
        """Unmount every stage. Runs already in flight are not cancelled."""
        for stage in self.stages.values():
            stage.unmount()
        self._started = False
        logger.info("pipeline_stopped", stages=len(self.stages))

    async def run(self, *sources: str, timeout: float | None = None) -> dict[str, Any]:
        """Start, trigger the given sources (or every source stage) and settle."""
        if not self._started:
            self.start()
        targets = sources or [nid for nid, s in self.stages.items() if s.is_source]
        for node_id in targets:
            self.trigger(node_id)
        await self.wait_idle(timeout)
        return self.snapshot()

    def snapshot(self) -> dict[str, Any]:
        """State and output summary of every node."""
        return {
            node.node_id: {
                "kind": node.kind.value,
                "state": node.state.value,
                "waiting": node.waiting,
                "error": node.error,
                "output": summarize_output(node.output),
            }
            for node in self.store.nodes
        }

    # Definitions

    @classmethod
    def from_definition(
        cls,
        definition: dict[str, Any],
        settings: Settings | None = None,
        **collaborators: Any,
    ) -> "Pipeline":
        """Build a pipeline from ``{"nodes": [...], "edges": [...]}``.

        Nodes accept ``id``/``node_id``, ``type``/``kind`` and
        ``config``/``data``. Edges accept ``source``, ``target`` and the
        optional ``sourceHandle``/``targetHandle`` ports.
        """
        pipeline = cls(settings=settings, **collaborators)

        for raw in definition.get("nodes", []):
            node_id = raw.get("id") or raw.get("node_id")
            kind = raw.get("type") or raw.get("kind")
            if not node_id or not kind:
                raise ConfigurationError(f"Node definition needs an id and a type: {raw!r}")
            config = raw.get("config") or raw.get("data") or {}
            pipeline.add_stage(kind, node_id, **config)

        for raw in definition.get("edges", []):
            try:
                source, target = raw["source"], raw["target"]
            except KeyError as e:
                raise ConfigurationError(f"Edge definition is missing {e}") from None
            pipeline.connect(
                source,
                target,
                source_port=raw.get("source_port") or raw.get("sourceHandle"),
                target_port=raw.get("target_port") or raw.get("targetHandle"),
            )

        logger.info(
            "pipeline_loaded",
            stages=len(pipeline.stages),
            edges=len(pipeline.store.edges),
        )
        return pipeline
