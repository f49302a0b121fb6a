"""Request/response models for progress endpoints."""

from __future__ import annotations

from datetime import datetime
from typing import Annotated

from pydantic import AliasChoices, BaseModel, ConfigDict, Field

# JSON numbers only: "10" and NaN are rejected as a malformed interval
Seconds = Annotated[float, Field(strict=True, allow_inf_nan=False)]


class IntervalPayload(BaseModel):
    start: Seconds
    end: Seconds


class SubmitProgressRequest(BaseModel):
    """Body of ``POST /api/v1/progress/{video_id}``.

    Accepts the player's camelCase keys as well as snake_case.
    """

    model_config = ConfigDict(populate_by_name=True)

    interval: IntervalPayload
    last_position: Seconds | None = Field(
        default=None,
        validation_alias=AliasChoices("last_position", "lastPosition"),
    )
    video_duration: Seconds | None = Field(
        default=None,
        gt=0,
        validation_alias=AliasChoices("video_duration", "videoDuration"),
    )


class IntervalResponse(BaseModel):
    start: float
    end: float


class ProgressResponse(BaseModel):
    user_id: str
    video_id: str
    intervals: list[IntervalResponse]
    last_position: float
    total_watched: float
    video_duration: float
    last_watched_at: datetime | None = None
    is_completed: bool
    completion_percent: float
    created_at: datetime | None = None
    updated_at: datetime | None = None


class SubmitProgressResponse(ProgressResponse):
    accepted: bool


class ResetProgressResponse(BaseModel):
    message: str
