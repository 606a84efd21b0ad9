"""Pytest configuration and fixtures."""

import uuid

import pytest

from flowboard.chunking import detect_content_type
from flowboard.config.settings import Settings, get_settings
from flowboard.filtering import extension_of
from flowboard.models import Document, EntryType, FileMetadata, ListingEntry, RepositoryListing


# Not a registered tiktoken encoding, so token counts use the length estimate
OFFLINE_ENCODING = "flowboard-offline"


@pytest.fixture(autouse=True)
def offline_token_encoding(monkeypatch):
    """Keep the configured encoding from being downloaded during tests."""
    monkeypatch.setenv("TOKEN_ENCODING", OFFLINE_ENCODING)
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def settings() -> Settings:
    """Settings with immediate commits and no trigger stagger."""
    return Settings(
        _env_file=None,
        token_encoding=OFFLINE_ENCODING,
        commit_debounce_ms=0,
        trigger_stagger_ms=0,
        discovery_poll_seconds=0.01,
        discovery_poll_backoff=1.5,
        discovery_poll_max_seconds=0.05,
    )


@pytest.fixture
def make_document():
    """Factory for documents whose file metadata is derived from the name."""

    def _make(text: str, name: str = "notes.txt", path: str | None = None) -> Document:
        return Document(
            document_id=f"doc_{uuid.uuid4().hex[:8]}",
            file=FileMetadata(
                name=name,
                path=path or name,
                size=len(text.encode("utf-8")),
                extension=extension_of(name),
                content_type=detect_content_type(name),
            ),
            text=text,
        )

    return _make


@pytest.fixture
def sample_listing() -> RepositoryListing:
    """Five root files (3 .md, 2 .py) and a src/ folder holding four .js files."""

    def entry(path: str, entry_type: EntryType = EntryType.FILE, content: str | None = None):
        return ListingEntry(
            path=path,
            name=path.rsplit("/", 1)[-1],
            type=entry_type,
            size=0 if entry_type == EntryType.FOLDER else len(content or "x"),
            content=content,
        )

    return RepositoryListing(
        owner="acme",
        repo="widgets",
        contents=[
            entry("README.md", content="# Widgets\n\nA widget library."),
            entry("CHANGELOG.md", content="# Changelog\n\n- first release"),
            entry("CONTRIBUTING.md", content="# Contributing\n\nOpen a pull request."),
            entry("setup.py", content="from setuptools import setup\n\nsetup(name='widgets')\n"),
            entry("manage.py", content="def main():\n    return 0\n"),
            entry("src", EntryType.FOLDER),
            entry("src/index.js", content="export function start() {\n  return 1;\n}\n"),
            entry("src/util.js", content="function helper(a, b) {\n  return a + b;\n}\n"),
            entry("src/api.js", content="const call = (url) => fetch(url);\n"),
            entry("src/view.js", content="class View {\n  render() {}\n}\n"),
        ],
    )


@pytest.fixture
def sample_markdown() -> str:
    return (
        "# Widgets\n"
        "\n"
        "Widgets are small reusable components.\n"
        "\n"
        "## Install\n"
        "\n"
        "Run the installer and follow the prompts.\n"
        "\n"
        "```\n"
        "# not a heading\n"
        "make install\n"
        "```\n"
        "\n"
        "## Usage\n"
        "\n"
        "Import a widget and render it.\n"
    )


@pytest.fixture
def sample_python() -> str:
    return (
        "import os\n"
        "import sys\n"
        "\n"
        "\n"
        "@cache\n"
        "def load(path):\n"
        "    with open(path) as f:\n"
        "        return f.read()\n"
        "\n"
        "\n"
        "class Loader:\n"
        "    def __init__(self, root):\n"
        "        self.root = root\n"
        "\n"
        "    def read(self, name):\n"
        "        return load(os.path.join(self.root, name))\n"
        "\n"
        "\n"
        "if __name__ == '__main__':\n"
        "    print(load(sys.argv[1]))\n"
    )


@pytest.fixture
def sample_job_script() -> str:
    return (
        "#!/bin/bash\n"
        "#SBATCH --job-name=train\n"
        "#SBATCH --nodes=2\n"
        "#SBATCH --time=04:00:00\n"
        "\n"
        "module purge\n"
        "module load python/3.11\n"
        "ml cuda/12.1\n"
        "\n"
        "# run the training loop\n"
        "cd $SLURM_SUBMIT_DIR\n"
        "srun python train.py --epochs 10\n"
    )
