# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Base entity models with common fields and MongoDB document conversion.

Entities are stored with camelCase keys (``createdAt``, ``driverId``) and
exposed to Python code with snake_case attributes. The alias generator keeps
both spellings in sync so routes never map fields by hand.
"""

from datetime import datetime
from typing import Any, Dict, Optional, Type, TypeVar
from pydantic import BaseModel, Field, ConfigDict
from pydantic.alias_generators import to_camel
from bson import ObjectId

E = TypeVar('E', bound='BaseEntity')


def generate_object_id() -> str:
    """Generate a new MongoDB ObjectId as string."""
    return str(ObjectId())


class BaseEntity(BaseModel):
    """Base entity with common fields for all domain objects."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        # Allow population by field name or alias
        populate_by_name=True,
        # Use enum values instead of enum objects
        use_enum_values=True,
        validate_default=True,
        validate_assignment=True,
        arbitrary_types_allowed=True
    )

    id: str = Field(default_factory=generate_object_id, description="Unique identifier")
    created_at: datetime = Field(default_factory=datetime.utcnow, description="Creation timestamp")
    updated_at: datetime = Field(default_factory=datetime.utcnow, description="Last update timestamp")
    deleted_at: Optional[datetime] = Field(None, description="Soft delete timestamp")
    created_by: Optional[str] = Field(None, description="User ID who created this entity")
    updated_by: Optional[str] = Field(None, description="User ID who last updated this entity")
    schema_version: int = Field(default=1, description="Schema version for migrations")

    def update_timestamp(self, updated_by: str) -> None:
        """Update the timestamp and updated_by fields."""
        self.updated_at = datetime.utcnow()
        self.updated_by = updated_by

    def soft_delete(self, deleted_by: str) -> None:
        """Perform soft delete by setting deleted_at timestamp."""
        self.deleted_at = datetime.utcnow()
        self.update_timestamp(deleted_by)

    def is_deleted(self) -> bool:
        """Check if entity is soft deleted."""
        return self.deleted_at is not None

    def to_public_dict(self) -> Dict[str, Any]:
        """JSON-ready snake_case representation for API responses."""
        return self.model_dump(mode='json')


def to_document(entity: BaseEntity) -> Dict[str, Any]:
    """Convert an entity into a camelCase MongoDB document keyed by ``_id``."""
    document = entity.model_dump(by_alias=True)
    document["_id"] = ObjectId(document.pop("id"))
    return document


def from_document(model_class: Type[E], document: Dict[str, Any]) -> E:
    """
    Build an entity from a stored document.

    Accepts documents with either ``_id`` (raw pymongo) or ``id`` (as returned
    by MongoDBService) as the identifier.
    """
    data = dict(document)
    if "_id" in data:
        data["id"] = str(data.pop("_id"))
    return model_class.model_validate(data)
