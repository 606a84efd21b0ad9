"""Stage base class and its processing state machine.

States: idle -> processing -> succeeded | failed -> idle. A trigger that
arrives while processing is ignored, so a stage runs at most once at a time.
"""

import asyncio
from typing import Any, ClassVar

import structlog

from flowboard.config.settings import Settings, get_settings
from flowboard.exceptions import InputUnavailableError, InvalidTransitionError
from flowboard.models import Node, OutputKind, ProcessingState, StageKind, StageOutput

from .bus import TriggerBus, TriggerMessage
from .discovery import discover_input
from .store import GraphStore

logger = structlog.get_logger(__name__)

_TRANSITIONS: dict[ProcessingState, set[ProcessingState]] = {
    ProcessingState.IDLE: {ProcessingState.PROCESSING},
    # Idle from processing only when a run is discarded after a config change
    ProcessingState.PROCESSING: {
        ProcessingState.SUCCEEDED,
        ProcessingState.FAILED,
        ProcessingState.IDLE,
    },
    ProcessingState.SUCCEEDED: {ProcessingState.IDLE},
    ProcessingState.FAILED: {ProcessingState.IDLE},
}


class Stage:
    """A processing step bound to one node of the graph.

    Subclasses set ``kind`` and ``accepts`` and implement :meth:`process`.
    A stage with an empty ``accepts`` is a source and runs without input.
    """

    kind: ClassVar[StageKind]
    accepts: ClassVar[tuple[OutputKind, ...]] = ()
    default_config: ClassVar[dict[str, Any]] = {}

    def __init__(
        self,
        node_id: str,
        store: GraphStore,
        bus: TriggerBus,
        settings: Settings | None = None,
    ) -> None:
        self.node_id = node_id
        self.store = store
        self.bus = bus
        self.settings = settings or get_settings()
        self._run_task: asyncio.Task | None = None
        self._poll_task: asyncio.Task | None = None
        self._mounted = False

    def __repr__(self) -> str:
        return f"{type(self).__name__}(node_id={self.node_id!r}, state={self.state.value})"

    @property
    def node(self) -> Node:
        return self.store.get_node(self.node_id)

    @property
    def state(self) -> ProcessingState:
        return self.node.state

    @property
    def waiting(self) -> bool:
        return self.node.waiting

    @property
    def error(self) -> str | None:
        return self.node.error

    @property
    def output(self) -> StageOutput | None:
        return self.node.output

    @property
    def config(self) -> dict[str, Any]:
        return {**self.default_config, **self.node.config}

    @property
    def is_source(self) -> bool:
        return not self.accepts

    @property
    def busy(self) -> bool:
        """A run is in flight."""
        return self._run_task is not None and not self._run_task.done()

    @property
    def polling(self) -> bool:
        return self._poll_task is not None and not self._poll_task.done()

    # Lifecycle

    def mount(self) -> None:
        """Register on the bus and look for input that is already available."""
        if self._mounted:
            return
        self.bus.register(self.node_id, self.on_trigger)
        self._mounted = True
        logger.debug("stage_mounted", node_id=self.node_id, kind=self.kind.value)

        if self.is_source:
            return
        try:
            discover_input(self.store, self.node_id, self.accepts)
        except InputUnavailableError as e:
            self._set_waiting(e.reason)
            return
        self.start_run()

    def unmount(self) -> None:
        self.bus.deregister(self.node_id, self.on_trigger)
        self._cancel_poll()
        self._mounted = False
        logger.debug("stage_unmounted", node_id=self.node_id)

    def on_trigger(self, message: TriggerMessage) -> asyncio.Task | None:
        """Bus listener: start a run unless one is already in progress."""
        logger.debug("trigger_received", node_id=self.node_id, source=message.source_node_id)
        return self.start_run()

    def configure(self, **changes: Any) -> None:
        """Merge configuration changes; a finished stage returns to idle.

        A run in flight when the configuration changes is discarded on
        completion instead of committed.

        Raises:
            ConfigurationError: If the merged configuration is invalid.
        """
        self.validate_config({**self.config, **changes})
        self.store.update_config(self.node_id, changes)
        if self.state in (ProcessingState.SUCCEEDED, ProcessingState.FAILED):
            self._reset()
        logger.info("stage_configured", node_id=self.node_id, keys=sorted(changes))

    # Running

    def start_run(self) -> asyncio.Task | None:
        """Discover input and begin processing.

        Discovery and the switch to processing happen before this returns,
        so a second call while the run is in flight is a no-op.

        Returns:
            The run task, or None if the stage is busy or has no input yet.
        """
        if self.state == ProcessingState.PROCESSING:
            logger.info("trigger_ignored_processing", node_id=self.node_id)
            return None
        if self.state in (ProcessingState.SUCCEEDED, ProcessingState.FAILED):
            self._reset()

        input_data: StageOutput | None = None
        if not self.is_source:
            try:
                input_data = discover_input(self.store, self.node_id, self.accepts)
            except InputUnavailableError as e:
                self._set_waiting(e.reason)
                return None

        if self._poll_task is not asyncio.current_task():
            self._cancel_poll()
        self._transition(ProcessingState.PROCESSING)
        self._run_task = asyncio.ensure_future(self._execute(input_data, self.config))
        return self._run_task

    async def run(self) -> ProcessingState:
        """Start a run and wait for it to finish."""
        task = self.start_run()
        if task is not None:
            await task
        return self.state

    async def wait(self) -> None:
        """Wait for the current run; cancelling the waiter leaves the run going."""
        if self._run_task is not None:
            await asyncio.shield(self._run_task)

    async def process(self, input_data: StageOutput | None) -> StageOutput:
        raise NotImplementedError

    def validate_config(self, config: dict[str, Any]) -> None:
        """Raise ConfigurationError for an unusable configuration."""

    async def _execute(self, input_data: StageOutput | None, run_config: dict[str, Any]) -> None:
        logger.info("stage_started", node_id=self.node_id, kind=self.kind.value)
        try:
            output = await self.process(input_data)
        except Exception as e:
            if self._config_changed(run_config):
                return
            message = str(e) or type(e).__name__
            logger.error(
                "stage_failed",
                node_id=self.node_id,
                error=message,
                error_type=type(e).__name__,
            )
            self._transition(ProcessingState.FAILED)
            self.store.commit_error(self.node_id, message)
            return

        if self._config_changed(run_config):
            return
        self._transition(ProcessingState.SUCCEEDED)
        self.store.commit_output(self.node_id, output)
        logger.info("stage_succeeded", node_id=self.node_id, kind=output.kind.value)

    # State

    def _transition(self, new_state: ProcessingState) -> None:
        current = self.state
        if new_state not in _TRANSITIONS[current]:
            raise InvalidTransitionError(
                f"{self.node_id}: cannot go from {current.value} to {new_state.value}"
            )
        self.store.write_state(self.node_id, new_state)

    def _reset(self) -> None:
        self.store.invalidate(self.node_id)
        self._transition(ProcessingState.IDLE)

    def _config_changed(self, run_config: dict[str, Any]) -> bool:
        """Discard a finished run whose configuration changed while it ran."""
        if self.config == run_config:
            return False
        logger.info("stage_run_discarded", node_id=self.node_id, reason="config_changed")
        self._reset()
        return True

    def _set_waiting(self, reason: str) -> None:
        self.store.write_state(self.node_id, ProcessingState.IDLE, waiting=True)
        logger.info("stage_waiting", node_id=self.node_id, reason=reason)
        self._ensure_poll()

    # Polling fallback

    def _ensure_poll(self) -> None:
        if not self._mounted or self.polling:
            return
        self._poll_task = asyncio.ensure_future(self._poll_for_input())

    def _cancel_poll(self) -> None:
        if self._poll_task is not None and not self._poll_task.done():
            self._poll_task.cancel()
        self._poll_task = None

    async def _poll_for_input(self) -> None:
        interval = self.settings.discovery_poll_seconds
        ceiling = self.settings.discovery_poll_max_seconds
        while self._mounted:
            await asyncio.sleep(interval)
            if self.state != ProcessingState.IDLE:
                return
            try:
                discover_input(self.store, self.node_id, self.accepts)
            except InputUnavailableError:
                interval = min(interval * self.settings.discovery_poll_backoff, ceiling)
                continue
            logger.info("input_discovered_by_poll", node_id=self.node_id)
            self.start_run()
            return
