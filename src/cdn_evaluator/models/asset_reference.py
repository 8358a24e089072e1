"""Asset references and the input shapes they are extracted from."""

from typing import Annotated, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

from .cdn_descriptor import CdnDescriptor


class CaptureEntry(BaseModel):
    """One request/response pair from a network capture (HAR)."""

    kind: Literal["capture"] = "capture"
    url: str
    mime_type: str = ""
    headers: dict[str, str] = Field(default_factory=dict)


class MarkupElement(BaseModel):
    """A media element found in markup, reduced to its first source URL."""

    kind: Literal["markup"] = "markup"
    url: str
    tag: str = "img"
    page_url: Optional[str] = None


class LiteralUrl(BaseModel):
    """A single delivery URL supplied directly by the caller."""

    kind: Literal["literal"] = "literal"
    url: str


AssetSource = Annotated[
    Union[CaptureEntry, MarkupElement, LiteralUrl],
    Field(discriminator="kind"),
]


class AssetReference(BaseModel):
    """
    An extracted media asset. No descriptor means non-CDN media.
    cache_control is only known for capture entries.
    """

    model_config = ConfigDict(frozen=True)

    url: str
    descriptor: Optional[CdnDescriptor] = None
    source_page: Optional[str] = None
    cache_control: Optional[str] = None

    @property
    def is_cdn(self) -> bool:
        return self.descriptor is not None
