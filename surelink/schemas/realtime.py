from typing import Optional, Union

from pydantic import BaseModel, ConfigDict, Field


class UpdateLocationPayload(BaseModel):
    model_config = ConfigDict(extra="ignore")

    # strict: "35.0" or True are not coordinates
    lat: float = Field(strict=True, allow_inf_nan=False)
    lng: float = Field(strict=True, allow_inf_nan=False)
    nickname: Optional[str] = None


class ChatMessagePayload(BaseModel):
    model_config = ConfigDict(extra="ignore")

    user: str = ""
    text: str = ""
    id: Optional[Union[str, int]] = None


class NearbyQuery(BaseModel):
    radius: float = Field(default=1000.0, gt=0)


class HistoryQuery(BaseModel):
    limit: int = Field(default=50, ge=1, le=500)


class DailyStatsQuery(BaseModel):
    days: int = Field(default=30, ge=1, le=365)


class CleanupRequest(BaseModel):
    secret: Optional[str] = None
    days: int = Field(default=30, ge=1)
