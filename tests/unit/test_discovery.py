"""Unit tests for pull-based input discovery."""

import pytest

from flowboard.exceptions import InputUnavailableError
from flowboard.graph import GraphStore, coerce_output, discover_input
from flowboard.models import (
    ChunkedOutput,
    FilteredListingOutput,
    ListingOutput,
    OutputKind,
    ParsedOutput,
    StageKind,
    TextOutput,
)


@pytest.fixture
def store(settings) -> GraphStore:
    store = GraphStore(settings)
    store.add_node("up", StageKind.TEXT)
    store.add_node("down", StageKind.CHUNK)
    return store


class TestDiscoverInput:
    """Tests for locating upstream output."""

    def test_no_edge(self, store):
        with pytest.raises(InputUnavailableError, match="no incoming edge"):
            discover_input(store, "down", [OutputKind.TEXT])

    def test_nothing_committed(self, store):
        store.add_edge("up", "down")
        with pytest.raises(InputUnavailableError, match="not committed"):
            discover_input(store, "down", [OutputKind.TEXT])

    def test_finds_committed_output(self, store):
        store.add_edge("up", "down")
        store.commit_output("up", TextOutput(text="hello"))

        output = discover_input(store, "down", [OutputKind.PARSED, OutputKind.TEXT])

        assert isinstance(output, TextOutput)
        assert output.text == "hello"

    def test_empty_output_is_unusable(self, store):
        store.add_edge("up", "down")
        store.commit_output("up", TextOutput(text="   "))

        with pytest.raises(InputUnavailableError, match="no usable input"):
            discover_input(store, "down", [OutputKind.TEXT])

    def test_unaccepted_kind(self, store):
        store.add_edge("up", "down")
        store.commit_output("up", TextOutput(text="hello"))

        with pytest.raises(InputUnavailableError) as exc_info:
            discover_input(store, "down", [OutputKind.LISTING])
        assert exc_info.value.node_id == "down"

    def test_accept_order_decides(self, store, make_document):
        store.add_node("other", StageKind.PARSE)
        store.add_edge("up", "down", target_port="text")
        store.add_edge("other", "down", target_port="docs")
        store.commit_output("up", TextOutput(text="hello"))
        store.commit_output("other", ParsedOutput(documents=[make_document("body")], total_files=1))

        preferred = discover_input(store, "down", [OutputKind.PARSED, OutputKind.TEXT])
        assert preferred.kind == OutputKind.PARSED
        fallback = discover_input(store, "down", [OutputKind.TEXT, OutputKind.PARSED])
        assert fallback.kind == OutputKind.TEXT

    def test_empty_parsed_output_falls_through(self, store):
        store.add_node("other", StageKind.PARSE)
        store.add_edge("up", "down", target_port="text")
        store.add_edge("other", "down", target_port="docs")
        store.commit_output("up", TextOutput(text="hello"))
        store.commit_output("other", ParsedOutput(documents=[], total_files=0))

        output = discover_input(store, "down", [OutputKind.PARSED, OutputKind.TEXT])
        assert output.kind == OutputKind.TEXT

    def test_port_filter(self, store):
        store.add_edge("up", "down", target_port="left")
        store.commit_output("up", TextOutput(text="hello"))

        with pytest.raises(InputUnavailableError):
            discover_input(store, "down", [OutputKind.TEXT], port="right")
        assert discover_input(store, "down", [OutputKind.TEXT], port="left").text == "hello"


class TestCoerceOutput:
    """Tests for resolving collaborator payloads."""

    def test_typed_output_passes_through(self):
        output = TextOutput(text="x")
        assert coerce_output(output) is output

    def test_string_becomes_text(self):
        output = coerce_output("raw", node_id="n1")
        assert isinstance(output, TextOutput)
        assert output.source == "n1"

    def test_kind_tagged_dict(self):
        output = coerce_output({"kind": "text", "text": "tagged"})
        assert isinstance(output, TextOutput)

    def test_parsed_content_field(self):
        output = coerce_output({"parsedContent": "body", "fileName": "a.txt"})
        assert isinstance(output, TextOutput)
        assert output.text == "body"

    def test_first_non_empty_text_field_wins(self):
        output = coerce_output({"parsedContent": "", "extractedText": "second"})
        assert output.text == "second"

    def test_repo_data(self):
        output = coerce_output(
            {
                "repoData": {
                    "owner": "acme",
                    "repo": "widgets",
                    "contents": [{"path": "src/a.py"}, {"path": "src", "type": "folder"}],
                }
            }
        )
        assert isinstance(output, ListingOutput)
        assert output.listing.owner == "acme"
        assert [e.name for e in output.listing.contents] == ["a.py", "src"]

    def test_bare_contents_list(self):
        output = coerce_output({"owner": "acme", "contents": [{"path": "README.md"}]})
        assert isinstance(output, ListingOutput)
        assert output.listing.owner == "acme"

    def test_filtered_files(self):
        output = coerce_output(
            {"filteredFiles": [{"path": "a.md"}, {"path": "b.md"}], "originalCount": 5}
        )
        assert isinstance(output, FilteredListingOutput)
        assert output.original_count == 5
        assert output.filtered_count == 2

    def test_chunked_files(self):
        output = coerce_output(
            {
                "chunkedFiles": [
                    {"originalFile": {"name": "a.md", "path": "a.md"}, "chunkCount": 0}
                ],
                "totalChunks": 0,
            }
        )
        assert isinstance(output, ChunkedOutput)
        assert len(output.chunked_files) == 1

    def test_empty_fields_are_skipped(self):
        output = coerce_output({"chunkedFiles": [], "content": "fallback"})
        assert isinstance(output, TextOutput)
        assert output.text == "fallback"

    def test_chunked_wins_over_text(self):
        payload = {
            "chunkedData": {
                "chunkedFiles": [
                    {
                        "originalFile": {"name": "a.md", "path": "a.md"},
                        "chunks": [],
                        "chunkCount": 0,
                    }
                ],
                "totalChunks": 0,
            },
            "content": "ignored",
        }
        output = coerce_output(payload)
        assert isinstance(output, ChunkedOutput)
        assert output.chunked_files[0].original_file.name == "a.md"

    def test_unrecognized_payload(self):
        with pytest.raises(InputUnavailableError, match="no recognizable"):
            coerce_output({"something": "else"})

    def test_unsupported_type(self):
        with pytest.raises(InputUnavailableError):
            coerce_output(42)

    def test_malformed_payload(self):
        with pytest.raises(InputUnavailableError, match="malformed"):
            coerce_output({"kind": "listing"})
