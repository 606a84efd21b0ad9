"""Pull-based input discovery.

A stage locates its input by following its incoming edge to the source
node and reading that node's committed output from the store.
"""

from collections.abc import Sequence
from typing import Any

import structlog
from pydantic import BaseModel, TypeAdapter, ValidationError

from flowboard.exceptions import InputUnavailableError
from flowboard.models import (
    ChunkedOutput,
    EntryType,
    FilteredListingOutput,
    ListingEntry,
    ListingOutput,
    OutputKind,
    ParsedOutput,
    RepositoryListing,
    StageOutput,
    TextOutput,
)

from .store import GraphStore

logger = structlog.get_logger(__name__)

_OUTPUT_ADAPTER: TypeAdapter[StageOutput] = TypeAdapter(StageOutput)

# Field names external collaborators have used for each payload, in priority order
CHUNKED_FIELDS = ("chunkedData", "chunkedFiles", "chunked_files")
FILTERED_FIELDS = ("filteredData", "filteredFiles", "filtered_files")
PARSED_FIELDS = ("parsedFiles", "documents")
LISTING_FIELDS = ("repoData", "repositoryData", "listing", "contents")
TEXT_FIELDS = (
    "parsedContent",
    "content",
    "text",
    "extractedText",
    "fileContent",
    "filteredContent",
    "output",
)


def discover_input(
    store: GraphStore,
    node_id: str,
    accepts: Sequence[OutputKind],
    port: str | None = None,
) -> StageOutput:
    """Find the upstream output a stage should process.

    Args:
        store: Graph store holding the committed outputs.
        node_id: The consuming node.
        accepts: Output kinds the stage can process, most preferred first.
        port: Restrict discovery to edges arriving on this target port.

    Returns:
        The first non-empty upstream output whose kind is accepted.

    Raises:
        InputUnavailableError: If there is no edge, no committed output, or
            nothing of an accepted kind.
    """
    edges = store.incoming_edges(node_id)
    if port is not None:
        edges = [e for e in edges if e.target_port == port]
    if not edges:
        raise InputUnavailableError(node_id, "no incoming edge")

    outputs = []
    for edge in edges:
        if not store.has_node(edge.source):
            continue
        output = store.get_node(edge.source).output
        if output is not None:
            outputs.append((edge.source, output))
    if not outputs:
        raise InputUnavailableError(node_id, "upstream has not committed any output")

    for kind in accepts:
        for source, output in outputs:
            if output.kind == kind and not output.is_empty():
                logger.debug("input_discovered", node_id=node_id, source=source, kind=kind.value)
                return output

    kinds = ", ".join(OutputKind(o.kind).value for _, o in outputs)
    raise InputUnavailableError(node_id, f"no usable input among upstream outputs ({kinds})")


def _first(payload: dict[str, Any], fields: Sequence[str]) -> Any:
    for name in fields:
        value = payload.get(name)
        if value:
            return value
    return None


def _entries(value: Any) -> list[ListingEntry]:
    entries = []
    for item in value:
        if isinstance(item, ListingEntry):
            entries.append(item)
            continue
        item = dict(item)
        item.setdefault("name", str(item.get("path", "")).rsplit("/", 1)[-1])
        item.setdefault("type", EntryType.FILE)
        entries.append(ListingEntry.model_validate(item))
    return entries


def _listing(value: Any) -> RepositoryListing:
    if isinstance(value, RepositoryListing):
        return value
    if isinstance(value, dict):
        data = dict(value)
        data["contents"] = _entries(data.get("contents") or [])
        return RepositoryListing.model_validate(data)
    return RepositoryListing(contents=_entries(value))


def coerce_output(payload: Any, node_id: str = "external") -> StageOutput:
    """Resolve a collaborator payload into a typed stage output.

    Typed outputs and ``kind``-tagged dicts are validated directly. Untyped
    dicts are probed for well-known field names, most specific payload first,
    and the first non-empty field wins. Plain strings become text.

    Raises:
        InputUnavailableError: If nothing usable is found.
    """
    if isinstance(payload, BaseModel) and hasattr(payload, "kind"):
        return payload
    if isinstance(payload, str):
        return TextOutput(text=payload, source=node_id)
    if not isinstance(payload, dict):
        raise InputUnavailableError(node_id, f"unsupported payload type {type(payload).__name__}")

    try:
        if "kind" in payload:
            return _OUTPUT_ADAPTER.validate_python(payload)

        chunked = _first(payload, CHUNKED_FIELDS)
        if chunked is not None:
            data = chunked if isinstance(chunked, dict) else {**payload, "chunkedFiles": chunked}
            data = {k: v for k, v in data.items() if k != "chunkedData"}
            return ChunkedOutput.model_validate(data)

        filtered = _first(payload, FILTERED_FIELDS)
        if filtered is not None:
            listing = _listing(filtered)
            return FilteredListingOutput(
                listing=listing,
                original_count=payload.get("originalCount", len(listing.contents)),
                filtered_count=len(listing.contents),
            )

        parsed = _first(payload, PARSED_FIELDS)
        if parsed is not None:
            return ParsedOutput.model_validate({"documents": parsed})

        listing = _first(payload, LISTING_FIELDS)
        if listing is not None:
            if isinstance(listing, list) and "contents" in payload:
                listing = payload
            return ListingOutput(listing=_listing(listing))

        text = _first(payload, TEXT_FIELDS)
        if isinstance(text, str):
            return TextOutput(text=text, source=node_id)
    except ValidationError as e:
        raise InputUnavailableError(node_id, f"malformed payload: {e.error_count()} errors") from e

    raise InputUnavailableError(node_id, "payload has no recognizable content field")
