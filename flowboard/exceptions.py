"""Exception hierarchy for the pipeline."""


class FlowboardError(Exception):
    """Base error for pipeline failures."""


class ConfigurationError(FlowboardError):
    """Raised when a stage or chunking configuration is invalid.

    Always raised before any processing starts.
    """


class InputUnavailableError(FlowboardError):
    """Raised by discovery when no upstream data can be adopted.

    The stage stays idle and waits; this is not a failure.
    """

    def __init__(self, node_id: str, reason: str) -> None:
        self.node_id = node_id
        self.reason = reason
        super().__init__(f"No input for node '{node_id}': {reason}")


class SegmentationError(FlowboardError):
    """Raised inside a chunking strategy.

    The engine catches it per document and degrades to a fallback chunk.
    """


class PropagationMiss(FlowboardError):
    """A trigger was published for a target with no live listener.

    Recorded by the trigger bus, never raised across it.
    """

    def __init__(self, target_node_id: str, source_node_id: str) -> None:
        self.target_node_id = target_node_id
        self.source_node_id = source_node_id
        super().__init__(
            f"Trigger from '{source_node_id}' to '{target_node_id}' had no listener"
        )


class GraphError(FlowboardError):
    """Raised when a graph mutation would break graph invariants."""


class InvalidTransitionError(FlowboardError):
    """Raised on an illegal stage state transition."""


class ParseError(FlowboardError):
    """Raised when a single file cannot be parsed."""
