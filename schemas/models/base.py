"""
Base model for MongoDB documents read by the engine.

The engine never inserts documents (accounts are created elsewhere) and
writes back only explicit field sets, so the base only has to turn a raw
pymongo dict into a model and keep the ObjectId around for logging.
"""

from __future__ import annotations

from typing import Any, Optional

from bson import ObjectId
from pydantic import BaseModel, ConfigDict, Field, field_validator


class MongoBaseModel(BaseModel):
    model_config = ConfigDict(
        populate_by_name=True,
        arbitrary_types_allowed=True,
    )

    id: Optional[ObjectId] = Field(default=None, alias="_id")

    @field_validator("id", mode="before")
    @classmethod
    def _coerce_object_id(cls, v: Any) -> Optional[ObjectId]:
        if v is None or isinstance(v, ObjectId):
            return v
        if isinstance(v, str) and ObjectId.is_valid(v):
            return ObjectId(v)
        raise ValueError(f"Invalid ObjectId: {v!r}")

    @classmethod
    def from_mongo(cls, data: Optional[dict]):
        """Build a model from a raw MongoDB document; ``None`` stays ``None``."""
        if data is None:
            return None
        return cls.model_validate(data)
