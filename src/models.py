from pydantic import BaseModel, ConfigDict, Field, model_validator
from typing import Any, Dict, List, Optional


class AccessToken(BaseModel):
    access_token: str
    token_type: str = "Bearer"
    expires_in: Optional[int] = None
    refresh_token: Optional[str] = None


class UploadRequest(BaseModel):
    url: str
    fields: Dict[str, str] = Field(default_factory=dict)


class UploadTarget(BaseModel):
    """Presigned POST descriptor returned by `POST /file`."""

    model_config = ConfigDict(populate_by_name=True)

    file_id: str = Field(..., alias="fileId")
    request: UploadRequest


class AudioPayload(BaseModel):
    content: bytes
    filename: str
    size_bytes: int

    @model_validator(mode="after")
    def _size_matches_content(self) -> "AudioPayload":
        if self.size_bytes != len(self.content):
            raise ValueError("size_bytes must equal the content length")
        return self

    @classmethod
    def from_bytes(cls, content: bytes, filename: str) -> "AudioPayload":
        return cls(content=content, filename=filename, size_bytes=len(content))


class CreativeTonie(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str
    name: Optional[str] = None
    image: Optional[str] = None
    live: Optional[bool] = None
    private: Optional[bool] = None
    no_cloud: Optional[bool] = Field(None, alias="noCloud")
    chapters_count: int = Field(0, alias="chaptersCount")
    total_length: Optional[Any] = Field(None, alias="totalLength")
    last_content: Optional[Any] = Field(None, alias="lastContent")
    raw: Dict[str, Any] = Field(default_factory=dict, alias="_raw")


class Household(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="allow")

    id: str
    name: Optional[str] = None
    creative_tonies: List[CreativeTonie] = Field(default_factory=list, alias="creativeTonies")


class ChapterRequest(BaseModel):
    title: str
    file: str


class VideoInfo(BaseModel):
    title: str
    author: str = ""
    duration: int = 0
    video_id: str = Field(..., alias="videoId")
    description: Optional[str] = None

    model_config = ConfigDict(populate_by_name=True)


class FetchResult(BaseModel):
    size_bytes: int
    title: str
    author: str
    video_id: str
    duration_seconds: int


class AuthActionRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    app_password: Optional[str] = Field(None, alias="appPassword")
    action: Optional[str] = None


class HouseholdsRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    app_password: Optional[str] = Field(None, alias="appPassword")
    session_token: Optional[str] = Field(None, alias="sessionToken")


class UrlUploadRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    app_password: Optional[str] = Field(None, alias="appPassword")
    tonie_id: Optional[str] = Field(None, alias="tonieId")
    title: Optional[str] = None
    url: Optional[str] = None


class HealthResponse(BaseModel):
    status: str = "ok"
    version: str
    platform: str
    uptime_seconds: float
