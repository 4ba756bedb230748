"""Publishable content carried in a publish job's payload."""

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field


class MediaItem(BaseModel):
    model_config = ConfigDict(extra="forbid")

    url: str = Field(..., min_length=1)
    type: Literal["image", "video"] = "image"


class PublishContent(BaseModel):
    model_config = ConfigDict(extra="ignore")

    text: str = Field(..., min_length=1)
    media: list[MediaItem] = Field(default_factory=list)
    link: str | None = None

    @property
    def images(self) -> list[MediaItem]:
        return [m for m in self.media if m.type == "image"]
