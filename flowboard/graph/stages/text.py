"""Manual text source."""

from typing import Any

from flowboard.exceptions import ConfigurationError
from flowboard.models import StageKind, StageOutput, TextOutput

from ..stage import Stage


class TextStage(Stage):
    """Emits its configured text as a :class:`TextOutput`."""

    kind = StageKind.TEXT
    default_config = {"text": "", "source": "manual_input"}

    def validate_config(self, config: dict[str, Any]) -> None:
        if not isinstance(config.get("text", ""), str):
            raise ConfigurationError("text must be a string")

    async def process(self, input_data: StageOutput | None) -> TextOutput:
        config = self.config
        text = config["text"]
        if not text.strip():
            raise ConfigurationError("No text configured")
        return TextOutput(text=text, source=config["source"])
