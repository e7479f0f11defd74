"""
Shared Pydantic base models.

Undo logs and defaults files are JSON documents with camelCase keys
(``originalValues``, ``fileOperations``). Models use snake_case attributes,
accept either spelling on input, and must be dumped with ``by_alias=True``.
"""

from __future__ import annotations

import pydantic
from pydantic.alias_generators import to_camel

from make_template.schemas.types import BaseStrictModel


class StrictModel(BaseStrictModel):
    """Strict, frozen, camelCase-on-the-wire model.

    Inherits from BaseStrictModel (extra='forbid', strict=True, frozen=True).
    """

    model_config = pydantic.ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
    )

    def to_json_dict(self) -> dict[str, object]:
        """Dump with wire (camelCase) names and JSON-safe values."""
        return self.model_dump(mode='json', by_alias=True)


class MutableModel(StrictModel):
    """StrictModel that can be updated in place (plans, results under construction)."""

    model_config = pydantic.ConfigDict(frozen=False)
