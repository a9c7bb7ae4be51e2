from pydantic import BaseModel, Field, field_validator
from zoneinfo import ZoneInfo

from epghub.services.fetch_types import EpgProgram, PlaylistChannel
from epghub.utils.timezone import parse_iso8601_to_utc, convert_to_timezone, DateFormatError


def _validate_timezone(v: str) -> str:
    if v == "UTC":
        return v
    try:
        ZoneInfo(v)
        return v
    except (KeyError, ValueError):
        raise ValueError(f"Invalid timezone: {v}. Must be a valid IANA timezone (e.g., 'Europe/London', 'America/New_York') or 'UTC'")


class ChannelRequest(BaseModel):
    """Playlist channel to resolve against the guide"""
    name: str = Field(..., min_length=1, description="Channel display name from the playlist")
    tvg_id: str | None = Field(None, description="External guide id (tvg-id), if any")
    category_name: str = Field("", description="Playlist category")
    logo_url: str | None = Field(None, description="Channel logo URL")
    stream_url: str = Field("", description="Stream URL")

    def to_playlist_channel(self, provider_id: str) -> PlaylistChannel:
        return PlaylistChannel(
            provider_id=provider_id,
            name=self.name,
            tvg_id=self.tvg_id,
            category_name=self.category_name,
            logo_url=self.logo_url,
            stream_url=self.stream_url,
        )


class ScheduleRequest(BaseModel):
    """Base for schedule queries"""
    channel: ChannelRequest
    at: str | None = Field(None, description="ISO8601 query instant, defaults to now (e.g., '2025-10-09T20:00:00Z')")
    timezone: str = Field(default="UTC", description="Timezone for response timestamps")

    @field_validator('timezone')
    @classmethod
    def validate_timezone(cls, v: str) -> str:
        """Validate timezone string"""
        return _validate_timezone(v)

    @field_validator('at')
    @classmethod
    def validate_at(cls, v: str | None) -> str | None:
        """Validate ISO8601 datetime format using centralized parser"""
        if v is None:
            return v
        try:
            parse_iso8601_to_utc(v)
            return v
        except DateFormatError:
            raise ValueError(f"Invalid datetime format: {v}. Must be valid ISO8601 format (e.g., '2025-10-09T00:00:00Z')")


MAX_WINDOW_MINUTES = 1_000_000_000


class NowNextRequest(ScheduleRequest):
    pass


class TimelineRequest(ScheduleRequest):
    past_minutes: int = Field(60, ge=-MAX_WINDOW_MINUTES, le=MAX_WINDOW_MINUTES, description="Minutes before the query instant; negative values count as 0")
    future_minutes: int = Field(360, ge=-MAX_WINDOW_MINUTES, le=MAX_WINDOW_MINUTES, description="Minutes after the query instant; negative values count as 0")


class RefreshRequest(BaseModel):
    """Guide refresh request; the first non-empty option wins: file_path, urls, playlist"""
    file_path: str | None = Field(None, description="Local XMLTV file (single source)")
    urls: list[str] | None = Field(None, description="Feed URLs to merge")
    playlist: str | None = Field(None, description="Playlist text whose header advertises feed URLs")


class DiscoverRequest(BaseModel):
    playlist: str = Field(..., description="Full playlist text")


class DiscoverResponse(BaseModel):
    urls: list[str]


class ProgramResponse(BaseModel):
    """Single program data"""
    channel_id: str
    title: str
    description: str | None
    start_time: str
    stop_time: str

    @classmethod
    def from_program(cls, program: EpgProgram, timezone_str: str) -> "ProgramResponse":
        return cls(
            channel_id=program.channel_id,
            title=program.title,
            description=program.description,
            start_time=convert_to_timezone(program.start_time, timezone_str),
            stop_time=convert_to_timezone(program.stop_time, timezone_str),
        )


class NowNextResponse(BaseModel):
    timezone: str
    now: ProgramResponse | None
    next: ProgramResponse | None


class TimelineItemResponse(BaseModel):
    program: ProgramResponse
    is_now: bool
    progress: int = Field(..., ge=0, le=100)


class TimelineResponse(BaseModel):
    timezone: str
    total_programs: int
    items: list[TimelineItemResponse]


class MergeSummaryResponse(BaseModel):
    ok: int
    download_failed: int
    parse_failed: int
    not_guide_format: int
    programs: int
    channels: int


class RefreshResponse(BaseModel):
    provider_id: str
    source: str
    urls: list[str]
    message: str
    programs: int
    channels: int
    summary: MergeSummaryResponse | None = None
    report: list[str] = Field(default_factory=list)
    source_details: list[dict] = Field(default_factory=list)


class SnapshotInfoResponse(BaseModel):
    provider_id: str
    snapshot_id: str
    created_at: str
    programs: int
    channels: int


class NotificationResponse(BaseModel):
    kind: str
    provider_id: str | None
    message: str
    payload: dict
    timestamp: str


class ErrorDetail(BaseModel):
    """Standard error detail"""
    code: str = Field(..., description="Error code (e.g., 'DOWNLOAD_FAILED', 'NOT_XMLTV')")
    message: str = Field(..., description="Human-readable error message")
    context: dict | None = Field(None, description="Additional context about the error")


class StandardErrorResponse(BaseModel):
    """Standardized error response for all endpoints"""
    status: str = Field("error", description="Status indicator")
    timestamp: str = Field(..., description="ISO8601 timestamp of error")
    error: ErrorDetail = Field(..., description="Error details")
