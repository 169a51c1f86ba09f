"""Module package model."""

from __future__ import annotations

from typing import Any

from pydantic import Field, field_validator

from smartfarm.models._base import FarmBaseModel


class ModulePackage(FarmBaseModel):
    """A fetched display module: markup plus ordered code fragments.

    Fragments are plugin references, either a name from the loader's
    local catalog or an import path of the form ``"package.module:attr"``.
    """

    name: str = ""
    markup: str = ""
    fragments: tuple[str, ...] = Field(default_factory=tuple)

    @field_validator("fragments", mode="before")
    @classmethod
    def _clean_fragments(cls, value: Any) -> Any:
        if value is None:
            return ()
        if isinstance(value, str):
            value = [value]
        if isinstance(value, (list, tuple)):
            return tuple(str(ref).strip() for ref in value if ref is not None and str(ref).strip())
        return value
