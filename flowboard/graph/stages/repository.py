"""Repository listing source, the adapter to the fetch collaborator."""

import inspect
from collections.abc import Awaitable, Callable
from typing import Any

import structlog

from flowboard.config.settings import Settings
from flowboard.exceptions import ConfigurationError
from flowboard.models import ListingOutput, RepositoryListing, StageKind, StageOutput

from ..bus import TriggerBus
from ..discovery import coerce_output
from ..stage import Stage
from ..store import GraphStore

logger = structlog.get_logger(__name__)

Fetcher = Callable[[dict[str, Any]], Awaitable[Any] | Any]


class RepositoryStage(Stage):
    """Emits a :class:`ListingOutput`.

    The listing comes from the injected ``fetcher(config)`` when there is
    one, otherwise from the ``listing`` configured on the node.
    """

    kind = StageKind.REPOSITORY
    default_config = {"owner": "", "repo": "", "platform": "github", "listing": None}

    def __init__(
        self,
        node_id: str,
        store: GraphStore,
        bus: TriggerBus,
        settings: Settings | None = None,
        fetcher: Fetcher | None = None,
    ) -> None:
        super().__init__(node_id, store, bus, settings)
        self.fetcher = fetcher

    async def process(self, input_data: StageOutput | None) -> ListingOutput:
        config = self.config

        if self.fetcher is not None:
            result = self.fetcher(config)
            if inspect.isawaitable(result):
                result = await result
        elif config.get("listing") is not None:
            result = config["listing"]
        else:
            raise ConfigurationError("No repository listing configured and no fetcher available")

        output = self._to_output(result, config)
        listing = output.listing
        logger.info(
            "repository_listed",
            node_id=self.node_id,
            owner=listing.owner,
            repo=listing.repo,
            entries=len(listing.contents),
        )
        return output

    def _to_output(self, result: Any, config: dict[str, Any]) -> ListingOutput:
        if isinstance(result, RepositoryListing):
            output = ListingOutput(listing=result)
        elif isinstance(result, list):
            output = coerce_output({"contents": result}, self.node_id)
        else:
            output = coerce_output(result, self.node_id)

        if not isinstance(output, ListingOutput):
            raise ConfigurationError(
                f"Fetcher returned {output.kind.value} output, expected a listing"
            )

        listing = output.listing
        return ListingOutput(
            listing=listing.model_copy(
                update={
                    "owner": listing.owner or config["owner"],
                    "repo": listing.repo or config["repo"],
                    "platform": listing.platform or config["platform"],
                }
            )
        )
