"""Folder and format selection over a flat repository listing."""

from collections.abc import Iterable
from dataclasses import dataclass, field

import structlog

from flowboard.models import EntryType, ListingEntry

from .formats import category_of, classify_entry

logger = structlog.get_logger(__name__)


@dataclass
class FilterResult:
    """Entries retained by a filter pass."""

    entries: list[ListingEntry]
    original_count: int
    selected_folders: list[str] = field(default_factory=list)
    selected_classes: list[str] = field(default_factory=list)
    include_root_files: bool = True

    @property
    def filtered_count(self) -> int:
        return len(self.entries)


def normalize_classes(classes: Iterable[str]) -> set[str]:
    """Lowercase class names and drop a leading dot (".py" -> "py")."""
    return {c.strip().lower().lstrip(".") for c in classes if c and c.strip()}


def normalize_folders(folders: Iterable[str]) -> set[str]:
    """Strip trailing slashes; "" keeps meaning "every path"."""
    return {f.strip().rstrip("/") for f in folders if f is not None}


def in_selected_folder(entry: ListingEntry, folders: set[str]) -> bool:
    """Entry lies under a selected folder or is one itself."""
    for folder in folders:
        if folder == "":
            return True
        if entry.path == folder or entry.path.startswith(folder + "/"):
            return True
    return False


def is_retained(
    entry: ListingEntry,
    folders: set[str],
    classes: set[str],
    include_root_files: bool = True,
) -> bool:
    """Decide whether a single entry survives the filter.

    An entry is kept when no folder is selected, root files are included and
    the entry sits in the root; or when it is inside (or is) a selected folder
    and either no class is selected and it is a folder, or its class is
    selected.
    """
    if not folders and include_root_files and entry.is_root:
        return True

    if not in_selected_folder(entry, folders):
        return False

    if not classes:
        return entry.type == EntryType.FOLDER

    if entry.type == EntryType.FOLDER:
        return False
    return classify_entry(entry.name) in classes


def filter_listing(
    entries: Iterable[ListingEntry],
    selected_folders: Iterable[str] = (),
    selected_classes: Iterable[str] = (),
    include_root_files: bool = True,
) -> FilterResult:
    """Apply folder and format selection to a listing.

    Args:
        entries: Flat listing entries.
        selected_folders: Folder paths chosen by the user.
        selected_classes: Extensions or special classes (e.g. "js", "readme").
        include_root_files: Keep root-level entries when no folder is selected.

    Returns:
        FilterResult with retained entries in listing order.
    """
    entries = list(entries)
    folders = normalize_folders(selected_folders)
    classes = normalize_classes(selected_classes)

    retained = [e for e in entries if is_retained(e, folders, classes, include_root_files)]

    logger.info(
        "listing_filtered",
        original=len(entries),
        retained=len(retained),
        folders=len(folders),
        formats=len(classes),
    )

    return FilterResult(
        entries=retained,
        original_count=len(entries),
        selected_folders=sorted(folders),
        selected_classes=sorted(classes),
        include_root_files=include_root_files,
    )


def available_classes(
    entries: Iterable[ListingEntry],
    selected_folders: Iterable[str] = (),
) -> dict[str, list[str]]:
    """Classes of files under the selected folders, grouped by category."""
    folders = normalize_folders(selected_folders)
    grouped: dict[str, set[str]] = {}

    for entry in entries:
        if entry.type != EntryType.FILE:
            continue
        if folders and not in_selected_folder(entry, folders):
            continue
        file_class = classify_entry(entry.name)
        if not file_class:
            continue
        grouped.setdefault(category_of(file_class), set()).add(file_class)

    return {category: sorted(values) for category, values in sorted(grouped.items())}
