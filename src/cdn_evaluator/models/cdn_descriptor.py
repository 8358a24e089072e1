"""Structured descriptor of a CDN delivery URL."""

from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_serializer


class ResourceType(str, Enum):
    """Resource types in the delivery URL convention."""

    IMAGE = "image"
    VIDEO = "video"
    RAW = "raw"


class DeliveryType(str, Enum):
    """Delivery types in the delivery URL convention."""

    UPLOAD = "upload"
    FETCH = "fetch"
    PRIVATE = "private"
    AUTHENTICATED = "authenticated"


class CdnDescriptor(BaseModel):
    """Parsed form of a CDN delivery URL."""

    model_config = ConfigDict(frozen=True)

    cloud_name: Optional[str] = None
    resource_type: ResourceType
    delivery_type: DeliveryType = DeliveryType.UPLOAD
    public_id: str = Field(..., min_length=1)
    transformation_set: frozenset[str] = Field(default_factory=frozenset)
    raw_transformations: str = ""

    @field_serializer("transformation_set")
    def _serialize_tokens(self, tokens: frozenset[str]) -> list[str]:
        return sorted(tokens)

    @property
    def is_exempt(self) -> bool:
        """Raw files and SVGs get no optimization advice."""
        return self.resource_type is ResourceType.RAW or self.public_id.lower().endswith(".svg")

    @property
    def has_auto_format(self) -> bool:
        return "f_auto" in self.transformation_set

    @property
    def has_auto_quality(self) -> bool:
        return any(t == "q_auto" or t.startswith("q_auto:") for t in self.transformation_set)

    @property
    def has_sizing(self) -> bool:
        return any(t.startswith(("w_", "h_")) for t in self.transformation_set)

    @property
    def is_fully_optimized(self) -> bool:
        return self.is_exempt or (self.has_auto_format and self.has_auto_quality)
