"""Unit tests for the stage state machine and the concrete stages."""

import asyncio

import pytest

import flowboard.graph.stage as stage_module
from flowboard.exceptions import ConfigurationError, ParseError
from flowboard.graph import (
    ChunkStage,
    FilterStage,
    GraphStore,
    ParseStage,
    RepositoryStage,
    Stage,
    TextStage,
    TriggerBus,
    TriggerMessage,
)
from flowboard.graph.stages import ParseOptions, parse_content
from flowboard.models import (
    ChunkedOutput,
    EntryType,
    FilteredListingOutput,
    ListingEntry,
    ListingOutput,
    OutputKind,
    ParsedOutput,
    ProcessingState,
    RepositoryListing,
    StageKind,
    TextOutput,
)


def make_stage(stage_cls, settings, node_id="n", store=None, bus=None, config=None, **extra):
    """Bind a stage to a fresh (or given) store and bus."""
    if store is None:
        store = GraphStore(settings)
        bus = TriggerBus(settings)
        bus.attach(store)
    store.add_node(node_id, stage_cls.kind, config or {})
    return stage_cls(node_id, store, bus, settings, **extra)


class SlowStage(Stage):
    """Echoes its text input once released."""

    kind = StageKind.CHUNK
    accepts = (OutputKind.TEXT,)

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.release = asyncio.Event()
        self.calls = 0

    async def process(self, input_data):
        self.calls += 1
        suffix = self.config.get("suffix", "")
        await self.release.wait()
        return TextOutput(text=input_data.text.upper() + suffix)


class RecordingLogger:
    """Stands in for the module logger and keeps event names."""

    def __init__(self):
        self.events = []

    def _record(self, event, **kwargs):
        self.events.append(event)

    debug = info = warning = error = exception = _record


class BrokenStage(Stage):
    kind = StageKind.CHUNK
    accepts = (OutputKind.TEXT,)

    async def process(self, input_data):
        raise RuntimeError("kaput")


@pytest.fixture
def wired(settings):
    """Store and bus with a committed text source named ``src``."""
    store = GraphStore(settings)
    bus = TriggerBus(settings)
    bus.attach(store)
    store.add_node("src", StageKind.TEXT)
    store.commit_output("src", TextOutput(text="hello"))
    return store, bus


def entry(path, content=None, size=None, entry_type=EntryType.FILE):
    return ListingEntry(
        path=path,
        name=path.rsplit("/", 1)[-1],
        type=entry_type,
        size=len(content or "") if size is None else size,
        content=content,
    )


class TestStateMachine:
    """Tests for run guarding, failure handling and waiting."""

    @pytest.mark.asyncio
    async def test_retrigger_while_processing_is_ignored(self, settings, wired):
        store, bus = wired
        stage = make_stage(SlowStage, settings, "slow", store, bus)
        store.add_edge("src", "slow")
        commits = []
        store.subscribe(lambda node_id, ok: commits.append(node_id))

        stage.mount()
        assert stage.state == ProcessingState.PROCESSING

        assert bus.publish(TriggerMessage("slow", "src")) == 1
        assert stage.start_run() is None
        assert stage.on_trigger(TriggerMessage("slow", "src")) is None

        stage.release.set()
        await stage.wait()

        assert stage.calls == 1
        assert commits == ["slow"]
        assert stage.state == ProcessingState.SUCCEEDED
        assert stage.output.text == "HELLO"

    @pytest.mark.asyncio
    async def test_ignored_trigger_logged_once(self, settings, wired, monkeypatch):
        store, bus = wired
        recorder = RecordingLogger()
        monkeypatch.setattr(stage_module, "logger", recorder)
        stage = make_stage(SlowStage, settings, "slow", store, bus)
        store.add_edge("src", "slow")

        stage.mount()
        stage.on_trigger(TriggerMessage("slow", "src"))
        stage.release.set()
        await stage.wait()

        assert recorder.events.count("trigger_ignored_processing") == 1

    @pytest.mark.asyncio
    async def test_config_change_during_run_discards_result(self, settings, wired):
        store, bus = wired
        stage = make_stage(SlowStage, settings, "slow", store, bus, config={"suffix": "!"})
        store.add_edge("src", "slow")
        commits = []
        store.subscribe(lambda node_id, ok: commits.append(node_id))

        stage.start_run()
        stage.configure(suffix="?")
        stage.release.set()
        await stage.wait()

        assert commits == []
        assert stage.state == ProcessingState.IDLE
        assert stage.output is None

        await stage.run()
        assert stage.output.text == "HELLO?"
        assert stage.calls == 2

    @pytest.mark.asyncio
    async def test_input_change_during_run_reruns_on_next_trigger(self, settings, wired):
        store, bus = wired
        stage = make_stage(SlowStage, settings, "slow", store, bus)
        store.add_edge("src", "slow")

        stage.mount()
        store.commit_output("src", TextOutput(text="bye"))
        stage.release.set()
        await stage.wait()

        assert stage.calls == 1
        assert stage.output.text == "HELLO"

        bus.propagate("src")
        await stage.wait()
        assert stage.output.text == "BYE"
        stage.unmount()

    @pytest.mark.asyncio
    async def test_failure_records_error_without_propagating(self, settings, wired):
        store, bus = wired
        stage = make_stage(BrokenStage, settings, "broken", store, bus)
        store.add_node("down", StageKind.CHUNK)
        store.add_edge("src", "broken")
        store.add_edge("broken", "down")
        received = []
        bus.register("down", received.append)

        state = await stage.run()

        assert state == ProcessingState.FAILED
        assert stage.error == "kaput"
        assert stage.output is None
        assert received == []

    @pytest.mark.asyncio
    async def test_rerun_after_success(self, settings, wired):
        store, bus = wired
        stage = make_stage(SlowStage, settings, "slow", store, bus)
        store.add_edge("src", "slow")
        stage.release.set()

        await stage.run()
        await stage.run()

        assert stage.calls == 2
        assert stage.state == ProcessingState.SUCCEEDED

    @pytest.mark.asyncio
    async def test_waits_then_polls_for_input(self, settings, wired):
        store, bus = wired
        stage = make_stage(SlowStage, settings, "slow", store, bus)
        stage.release.set()

        stage.mount()
        assert stage.waiting
        assert stage.polling
        assert stage.state == ProcessingState.IDLE

        store.add_edge("src", "slow")
        for _ in range(50):
            await asyncio.sleep(0.01)
            if stage.state == ProcessingState.SUCCEEDED:
                break
        await stage.wait()

        assert stage.state == ProcessingState.SUCCEEDED
        assert not stage.waiting
        stage.unmount()

    @pytest.mark.asyncio
    async def test_trigger_without_input_waits(self, settings, wired):
        store, bus = wired
        stage = make_stage(SlowStage, settings, "slow", store, bus)

        assert stage.start_run() is None
        assert stage.waiting
        assert not stage.polling

    @pytest.mark.asyncio
    async def test_unmount_stops_polling(self, settings, wired):
        store, bus = wired
        stage = make_stage(SlowStage, settings, "slow", store, bus)

        stage.mount()
        stage.unmount()
        await asyncio.sleep(0)

        assert not stage.polling
        assert bus.listeners("slow") == []

    @pytest.mark.asyncio
    async def test_configure_resets_finished_stage(self, settings):
        stage = make_stage(TextStage, settings, config={"text": "hello"})
        await stage.run()
        assert stage.state == ProcessingState.SUCCEEDED

        stage.configure(text="changed")

        assert stage.state == ProcessingState.IDLE
        assert stage.output is None
        assert stage.config["text"] == "changed"

    def test_configure_rejects_invalid_values(self, settings):
        stage = make_stage(ChunkStage, settings, config={"chunk_size": 100, "overlap": 10})

        with pytest.raises(ConfigurationError):
            stage.configure(overlap=500)

        assert stage.config["overlap"] == 10


class TestTextStage:
    @pytest.mark.asyncio
    async def test_emits_text(self, settings):
        stage = make_stage(TextStage, settings, config={"text": "notes", "source": "cli"})
        await stage.run()
        assert stage.output == TextOutput(text="notes", source="cli")

    @pytest.mark.asyncio
    async def test_empty_text_fails(self, settings):
        stage = make_stage(TextStage, settings)
        assert await stage.run() == ProcessingState.FAILED
        assert stage.error == "No text configured"


class TestRepositoryStage:
    """Tests for the fetch collaborator adapter."""

    @pytest.mark.asyncio
    async def test_sync_fetcher(self, settings):
        def fetcher(config):
            return [{"path": "README.md"}, {"path": "src", "type": "folder"}]

        stage = make_stage(
            RepositoryStage,
            settings,
            config={"owner": "acme", "repo": "widgets"},
            fetcher=fetcher,
        )
        await stage.run()

        assert isinstance(stage.output, ListingOutput)
        assert stage.output.listing.owner == "acme"
        assert stage.output.listing.repo == "widgets"
        assert len(stage.output.listing.contents) == 2

    @pytest.mark.asyncio
    async def test_async_fetcher_sees_config(self, settings, sample_listing):
        seen = {}

        async def fetcher(config):
            seen.update(config)
            return sample_listing

        stage = make_stage(RepositoryStage, settings, config={"repo": "widgets"}, fetcher=fetcher)
        await stage.run()

        assert seen["repo"] == "widgets"
        assert stage.output.listing.owner == "acme"

    @pytest.mark.asyncio
    async def test_configured_listing(self, settings):
        stage = make_stage(
            RepositoryStage,
            settings,
            config={"listing": {"repoData": {"contents": [{"path": "a.py"}]}}},
        )
        await stage.run()
        assert stage.output.listing.contents[0].name == "a.py"

    @pytest.mark.asyncio
    async def test_nothing_to_list_fails(self, settings):
        stage = make_stage(RepositoryStage, settings)
        assert await stage.run() == ProcessingState.FAILED
        assert "no fetcher" in stage.error

    @pytest.mark.asyncio
    async def test_wrong_payload_kind_fails(self, settings):
        stage = make_stage(RepositoryStage, settings, fetcher=lambda config: "just text")
        assert await stage.run() == ProcessingState.FAILED
        assert "expected a listing" in stage.error


class TestFilterStage:
    @pytest.mark.asyncio
    async def test_filters_listing(self, settings, sample_listing):
        stage = make_stage(
            FilterStage,
            settings,
            config={"selectedFolders": ["src"], "extensions": ["js"]},
        )

        output = await stage.process(ListingOutput(listing=sample_listing))

        assert isinstance(output, FilteredListingOutput)
        assert output.original_count == 10
        assert output.filtered_count == 4
        assert output.listing.owner == "acme"
        assert output.selected_classes == ["js"]

    def test_rejects_string_selection(self, settings):
        stage = make_stage(FilterStage, settings)
        with pytest.raises(ConfigurationError):
            stage.validate_config({"selected_folders": "src"})


class TestParseStage:
    """Tests for file parsing and accounting."""

    @pytest.mark.asyncio
    async def test_parses_listing(self, settings, sample_listing):
        stage = make_stage(ParseStage, settings)

        output = await stage.process(FilteredListingOutput(listing=sample_listing))

        assert output.total_files == 9
        assert output.parsed_files == 9
        names = [d.file.name for d in output.documents]
        assert names[0] == "README.md"
        readme = output.documents[0]
        assert readme.metadata["type"] == "markdown"
        assert readme.metadata["original_path"] == "README.md"
        assert readme.file.content_type.value == "markup"
        setup = next(d for d in output.documents if d.file.name == "setup.py")
        assert setup.metadata["type"] == "code"

    @pytest.mark.asyncio
    async def test_oversized_files_are_skipped(self, settings):
        stage = make_stage(ParseStage, settings, config={"max_file_size_mb": 0.0001})
        listing = RepositoryListing(
            contents=[entry("small.txt", "tiny"), entry("big.txt", "x", size=10_000)]
        )

        output = await stage.process(ListingOutput(listing=listing))

        assert output.parsed_files == 1
        assert output.skipped_files == 1

    @pytest.mark.asyncio
    async def test_content_loader(self, settings):
        async def loader(item):
            return f"loaded {item.path}"

        stage = make_stage(ParseStage, settings, content_loader=loader)
        listing = RepositoryListing(contents=[entry("docs/a.txt", size=0)])

        output = await stage.process(ListingOutput(listing=listing))

        assert output.documents[0].text == "loaded docs/a.txt"

    @pytest.mark.asyncio
    async def test_missing_content_counts_as_error(self, settings):
        stage = make_stage(ParseStage, settings)
        listing = RepositoryListing(
            contents=[entry("a.txt", "present"), entry("b.txt", size=0)]
        )

        output = await stage.process(ListingOutput(listing=listing))

        assert output.parsed_files == 1
        assert output.errors == 1

    @pytest.mark.asyncio
    async def test_nothing_parsed_fails(self, settings):
        stage = make_stage(ParseStage, settings)
        listing = RepositoryListing(contents=[entry("a.txt", size=0)])

        with pytest.raises(ParseError):
            await stage.process(ListingOutput(listing=listing))

    @pytest.mark.asyncio
    async def test_text_input(self, settings):
        stage = make_stage(ParseStage, settings)

        output = await stage.process(TextOutput(text="  some notes  ", source="s"))

        assert output.parsed_files == 1
        assert output.documents[0].file.name == "input.txt"
        assert output.documents[0].text == "some notes"

    def test_rejects_non_positive_limit(self, settings):
        stage = make_stage(ParseStage, settings)
        with pytest.raises(ConfigurationError):
            stage.validate_config({"max_file_size_mb": 0})


class TestParsers:
    """Tests for per-format parsing."""

    def test_markdown_keeps_formatting_by_default(self):
        text, meta = parse_content("a.md", "# Title\n\n**bold** [link](x)\n", ParseOptions())
        assert text == "# Title\n\n**bold** [link](x)"
        assert meta["headers"] == 1
        assert meta["links"] == 1

    def test_markdown_strips_formatting(self):
        options = ParseOptions(preserve_formatting=False)
        text, _ = parse_content("a.md", "# Title\n\n**bold** [link](x)\n", options)
        assert text == "Title\n\nbold link"

    def test_invalid_json_is_kept(self):
        text, meta = parse_content("a.json", "{not json", ParseOptions())
        assert text == "{not json"
        assert meta["valid"] is False

    def test_json_reformatted(self):
        text, meta = parse_content("a.json", '{"a": 1}', ParseOptions(preserve_formatting=False))
        assert text == '{\n  "a": 1\n}'
        assert meta["keys"] == 1

    def test_html_to_text(self):
        html = "<html><script>x()</script><p>Hello <b>there</b></p></html>"
        text, meta = parse_content("a.html", html, ParseOptions(preserve_formatting=False))
        assert text == "Hello there"

    def test_code_counts(self, sample_python):
        _, meta = parse_content("loader.py", sample_python, ParseOptions())
        assert meta["functions"] == 3
        assert meta["classes"] == 1
        assert meta["imports"] == 2

    def test_text_whitespace_options(self):
        options = ParseOptions(remove_empty_lines=True, normalize_whitespace=True)
        text, _ = parse_content("a.txt", "one\n\n  two   three\n", options)
        assert text == "one two three"


class TestChunkStage:
    @pytest.mark.asyncio
    async def test_chunks_text_input(self, settings):
        stage = make_stage(
            ChunkStage,
            settings,
            config={"chunkMethod": "fixed", "chunkSize": 10, "chunkOverlap": 0},
        )

        output = await stage.process(TextOutput(text="a" * 25))

        assert isinstance(output, ChunkedOutput)
        assert output.total_chunks == 3
        assert output.chunked_files[0].chunk_count == 3
        assert output.chunking_config["strategy"] == "fixed"
        assert output.chunking_config["chunkSize"] == 10

    @pytest.mark.asyncio
    async def test_defaults_from_settings(self, settings, make_document):
        stage = make_stage(ChunkStage, settings)
        docs = [make_document("alpha"), make_document("   ")]

        output = await stage.process(ParsedOutput(documents=docs))

        assert output.chunking_config["chunkSize"] == settings.chunk_size
        assert len(output.chunked_files) == 1
        assert output.total_chunks == 1
