from __future__ import annotations

import logging
from pathlib import Path
from typing import Union

from pydantic import ValidationError

from dbprofiler.exceptions import ProfileDefinitionError
from dbprofiler.schemas import ProfileDefinition

logger = logging.getLogger(__name__)


def parse_profile_definition(raw: Union[str, bytes]) -> ProfileDefinition:
    """Validate a JSON profile definition document."""

    try:
        definition = ProfileDefinition.model_validate_json(raw)
    except ValidationError as exc:
        raise ProfileDefinitionError(f"invalid profile definition: {exc}") from exc
    if definition.task_count == 0:
        logger.warning("Profile definition lists no tables to profile.")
    return definition


def load_profile_definition(path: Union[str, Path]) -> ProfileDefinition:
    definition_path = Path(path)
    try:
        raw = definition_path.read_bytes()
    except OSError as exc:
        raise ProfileDefinitionError(f"unable to read profile definition {definition_path}: {exc}") from exc
    logger.debug("Loaded profile definition from %s", definition_path)
    return parse_profile_definition(raw)


__all__ = ["load_profile_definition", "parse_profile_definition"]
