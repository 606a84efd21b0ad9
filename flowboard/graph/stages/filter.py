"""Folder/format filter stage."""

from typing import Any

from flowboard.exceptions import ConfigurationError
from flowboard.filtering import filter_listing
from flowboard.models import (
    FilteredListingOutput,
    OutputKind,
    StageKind,
    StageOutput,
)

from ..stage import Stage

_LIST_KEYS = {
    "selected_folders": ("selected_folders", "selectedFolders", "folders"),
    "selected_classes": (
        "selected_classes",
        "selectedClasses",
        "selectedExtensions",
        "extensions",
    ),
}


def _option(config: dict[str, Any], name: str) -> list[str]:
    for key in _LIST_KEYS[name]:
        if config.get(key) is not None:
            return list(config[key])
    return []


class FilterStage(Stage):
    """Applies folder and format selection to an upstream listing."""

    kind = StageKind.FILTER
    accepts = (OutputKind.LISTING, OutputKind.FILTERED_LISTING)
    default_config = {"include_root_files": True}

    def validate_config(self, config: dict[str, Any]) -> None:
        for name, keys in _LIST_KEYS.items():
            for key in keys:
                value = config.get(key)
                if value is not None and (
                    isinstance(value, str) or not all(isinstance(v, str) for v in value)
                ):
                    raise ConfigurationError(f"{key} must be a list of strings")

    async def process(self, input_data: StageOutput | None) -> FilteredListingOutput:
        config = self.config
        listing = input_data.listing

        result = filter_listing(
            listing.contents,
            selected_folders=_option(config, "selected_folders"),
            selected_classes=_option(config, "selected_classes"),
            include_root_files=config.get("includeRootFiles", config["include_root_files"]),
        )
        return FilteredListingOutput(
            listing=listing.model_copy(update={"contents": result.entries}),
            original_count=result.original_count,
            filtered_count=result.filtered_count,
            selected_folders=result.selected_folders,
            selected_classes=result.selected_classes,
        )
