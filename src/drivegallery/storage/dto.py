# storage/dto.py
from datetime import datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

FOLDER_MIME_TYPE = "application/vnd.google-apps.folder"
IMAGE_MIME_PREFIX = "image/"


class Entry(BaseModel):
    """
    A standardized Data Transfer Object for a folder or file in the remote store,
    abstracting away provider-specific representations.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    id: str
    name: str
    mime_type: str = Field(alias="mimeType")
    created_at: Optional[datetime] = Field(None, alias="createdTime")
    # Drive links, present only when the store provides them.
    thumbnail_link: Optional[str] = Field(None, alias="thumbnailLink")
    web_view_link: Optional[str] = Field(None, alias="webViewLink")
    web_content_link: Optional[str] = Field(None, alias="webContentLink")

    @property
    def is_folder(self) -> bool:
        return self.mime_type == FOLDER_MIME_TYPE

    @property
    def is_image(self) -> bool:
        return self.mime_type.startswith(IMAGE_MIME_PREFIX)


class EntryPage(BaseModel):
    """One page of children. `next_page_token` is None exactly on the last page."""

    entries: List[Entry] = Field(default_factory=list)
    next_page_token: Optional[str] = None


class ChildFilter(BaseModel):
    """Which children of a folder a listing should return."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["any", "folder", "image"] = "any"
    name: Optional[str] = None

    @classmethod
    def folders(cls) -> "ChildFilter":
        return cls(kind="folder")

    @classmethod
    def images(cls) -> "ChildFilter":
        return cls(kind="image")

    @classmethod
    def named(cls, name: str) -> "ChildFilter":
        return cls(kind="any", name=name)


class Album(BaseModel):
    """A top-level folder presented with one representative cover image."""

    model_config = ConfigDict(populate_by_name=True)

    id: str
    name: str
    cover_image_id: Optional[str] = Field(None, alias="coverImageId")
