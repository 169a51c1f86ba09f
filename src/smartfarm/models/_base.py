"""Base model for smartfarm data models.

Every model inherits from :class:`FarmBaseModel` which provides
``alias_generator=to_camel`` so camelCase wire keys map to snake_case
fields, and freezes instances after validation.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class FarmBaseModel(BaseModel):
    """Base for frozen wire/data models."""

    model_config = ConfigDict(
        frozen=True,
        extra="ignore",
        populate_by_name=True,
        alias_generator=to_camel,
    )
