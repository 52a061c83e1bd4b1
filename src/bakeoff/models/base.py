# Copyright (c) Syntropy Systems
"""Common base for bakeoff's stored records and API bodies."""

from __future__ import annotations

from typing import ClassVar

from pydantic import BaseModel, ConfigDict, JsonValue
from typing_extensions import TypeAlias

# Untyped JSON bodies, e.g. the status route's record-or-placeholder
JSONValue: TypeAlias = JsonValue


class BakeoffBaseModel(BaseModel):
    """Ignores unknown keys so records written by newer versions still load."""

    model_config: ClassVar[ConfigDict] = ConfigDict(
        extra="ignore",
        populate_by_name=True,
    )
