import json
from pathlib import Path
from typing import Any, List, Union

import structlog
from pydantic import BaseModel, Field, ValidationError

from docwriter.errors import InvalidArgumentError
from docwriter.models import Rule

logger = structlog.get_logger(__name__)


class WriterConfig(BaseModel):
    """
    Rules for a writer, grouped in passes.
    Each pass is one engine run; content inserted by one pass is visible to the next.
    """

    passes: List[List[Rule]] = Field(default_factory=list)

    @property
    def rules(self) -> list:
        return [rule for rules in self.passes for rule in rules]

    @classmethod
    def from_data(cls, data: Any) -> "WriterConfig":
        """
        Accepts a list of rules (one pass), {"rules": [...]} (one pass)
        or {"passes": [[...], ...]}.
        """
        if isinstance(data, list):
            data = {"passes": [data]}
        elif isinstance(data, dict) and "rules" in data and "passes" not in data:
            data = {"passes": [data["rules"]]}

        try:
            return cls.model_validate(data)
        except ValidationError as e:
            raise InvalidArgumentError(f"Invalid rule configuration: {e}") from e


def load_config(path: Union[str, Path]) -> WriterConfig:
    path = Path(path)
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
    except json.JSONDecodeError as e:
        raise InvalidArgumentError(f"Rule file is not valid JSON: {path}") from e

    config = WriterConfig.from_data(data)
    logger.info("Loaded rule configuration", path=str(path), passes=len(config.passes), rules=len(config.rules))
    return config
