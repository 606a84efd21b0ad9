"""File classification for the format/folder filter."""

import re

# Special file names win over extension-based classification
SPECIAL_FILENAMES: list[tuple[re.Pattern, str]] = [
    (re.compile(r"^dockerfile(\..+)?$", re.IGNORECASE), "dockerfile"),
    (re.compile(r"^readme(\..+)?$", re.IGNORECASE), "readme"),
    (re.compile(r"^(license|licence|copying)(\..+)?$", re.IGNORECASE), "license"),
    (re.compile(r"^\.gitignore$", re.IGNORECASE), "gitignore"),
    (re.compile(r"^(gnu)?makefile$", re.IGNORECASE), "makefile"),
    (re.compile(r"^package\.json$", re.IGNORECASE), "package.json"),
    (re.compile(r"^.+\.lock$", re.IGNORECASE), "lock"),
]

# Display categories for known classes
FORMAT_CATEGORIES: dict[str, str] = {
    "js": "Programming",
    "jsx": "Programming",
    "ts": "Programming",
    "tsx": "Programming",
    "py": "Programming",
    "java": "Programming",
    "cpp": "Programming",
    "c": "Programming",
    "cs": "Programming",
    "php": "Programming",
    "rb": "Programming",
    "go": "Programming",
    "rs": "Programming",
    "sh": "Programming",
    "html": "Web",
    "css": "Web",
    "scss": "Web",
    "json": "Data",
    "xml": "Data",
    "csv": "Data",
    "yml": "Config",
    "yaml": "Config",
    "toml": "Config",
    "ini": "Config",
    "md": "Documentation",
    "rst": "Documentation",
    "txt": "Documentation",
    "png": "Image",
    "jpg": "Image",
    "jpeg": "Image",
    "gif": "Image",
    "svg": "Image",
    "pdf": "Document",
    "dockerfile": "Build",
    "makefile": "Build",
    "package.json": "Build",
    "lock": "Build",
    "readme": "Documentation",
    "license": "Documentation",
    "gitignore": "Config",
}


def extension_of(name: str) -> str:
    """Lowercased extension without the dot, or "" when there is none.

    Dotfiles such as ``.env`` have no extension.
    """
    base = name.rsplit("/", 1)[-1]
    stem, dot, ext = base.rpartition(".")
    if not dot or not stem:
        return ""
    return ext.lower()


def classify_entry(name: str) -> str:
    """Derive the filter class for a file name.

    Special file names take precedence over the generic extension, so
    ``README.md`` classifies as ``readme`` rather than ``md``.
    """
    base = name.rsplit("/", 1)[-1]
    for pattern, file_class in SPECIAL_FILENAMES:
        if pattern.match(base):
            return file_class
    return extension_of(base)


def category_of(file_class: str) -> str:
    """Display category for a class."""
    return FORMAT_CATEGORIES.get(file_class, "Other")
