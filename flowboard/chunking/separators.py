"""Content-type detection and separator tables for recursive splitting."""

from flowboard.filtering.formats import classify_entry, extension_of
from flowboard.models import ContentType

_CODE_EXTENSIONS = {
    "py", "pyi", "js", "jsx", "mjs", "cjs", "ts", "tsx", "java", "kt", "scala",
    "c", "h", "cc", "cpp", "hpp", "cs", "go", "rs", "rb", "php", "swift",
    "sh", "bash", "zsh", "slurm", "sbatch", "pbs", "sql", "r", "lua", "pl",
    "css", "scss", "less",
}
_MARKUP_EXTENSIONS = {"md", "markdown", "mdx", "rst", "adoc", "html", "htm", "tex"}
_CONFIG_EXTENSIONS = {
    "json", "yaml", "yml", "toml", "ini", "cfg", "conf", "xml", "lock",
    "properties", "env", "def", "csv",
}

# Special classes from the filter map onto content families
_SPECIAL_CONTENT_TYPES = {
    "dockerfile": ContentType.CODE,
    "makefile": ContentType.CODE,
    "package.json": ContentType.CONFIG,
    "lock": ContentType.CONFIG,
    "gitignore": ContentType.CONFIG,
    "license": ContentType.TEXT,
}

_LANGUAGES = {
    "py": "python",
    "pyi": "python",
    "js": "javascript",
    "jsx": "javascript",
    "mjs": "javascript",
    "cjs": "javascript",
    "ts": "typescript",
    "tsx": "typescript",
    "java": "java",
    "go": "go",
    "rs": "rust",
    "rb": "ruby",
    "php": "php",
}


def detect_content_type(name: str) -> ContentType:
    """Detect the content family of a file from its name."""
    file_class = classify_entry(name)
    if file_class in _SPECIAL_CONTENT_TYPES:
        return _SPECIAL_CONTENT_TYPES[file_class]
    if file_class == "readme":
        return ContentType.MARKUP if extension_of(name) in _MARKUP_EXTENSIONS else ContentType.TEXT

    ext = extension_of(name)
    if ext in _CODE_EXTENSIONS:
        return ContentType.CODE
    if ext in _MARKUP_EXTENSIONS:
        return ContentType.MARKUP
    if ext in _CONFIG_EXTENSIONS:
        return ContentType.CONFIG
    return ContentType.TEXT


def detect_language(name: str) -> str | None:
    """Programming language for the code-aware strategy, if supported."""
    return _LANGUAGES.get(extension_of(name))


DEFAULT_SEPARATORS: dict[ContentType, list[str]] = {
    ContentType.CODE: [
        "\nclass ",
        "\ndef ",
        "\nasync def ",
        "\nfunction ",
        "\nexport ",
        "\nfunc ",
        "\nfn ",
        "\n\n",
        "\n",
        " ",
    ],
    ContentType.MARKUP: [
        "\n# ",
        "\n## ",
        "\n### ",
        "\n#### ",
        "\n##### ",
        "\n###### ",
        "\n```",
        "\n\n",
        "\n",
        ". ",
        " ",
    ],
    ContentType.CONFIG: [
        "\n\n",
        "\n[",
        "\n- ",
        "\n",
        ", ",
        " ",
    ],
    ContentType.TEXT: [
        "\n\n",
        "\n",
        ". ",
        " ",
    ],
}


class SeparatorRegistry:
    """Separator tables keyed by content type, with one default entry."""

    def __init__(
        self,
        tables: dict[ContentType, list[str]] | None = None,
        default: ContentType = ContentType.TEXT,
    ) -> None:
        source = DEFAULT_SEPARATORS if tables is None else tables
        self._tables: dict[ContentType, list[str]] = {
            ContentType(k): list(v) for k, v in source.items()
        }
        if default not in self._tables:
            raise ValueError(f"Default content type '{default.value}' has no separator table")
        self._default = default

    def register(self, content_type: ContentType, separators: list[str]) -> None:
        """Replace the table for a content type."""
        if not any(separators):
            raise ValueError("separator table must contain a non-empty separator")
        self._tables[ContentType(content_type)] = list(separators)

    def get(self, content_type: ContentType | str | None) -> list[str]:
        """Separators for a content type, or the default table."""
        try:
            key = ContentType(content_type) if content_type is not None else self._default
        except ValueError:
            key = self._default
        return list(self._tables.get(key, self._tables[self._default]))

    def __contains__(self, content_type: object) -> bool:
        return content_type in self._tables


default_registry = SeparatorRegistry()
