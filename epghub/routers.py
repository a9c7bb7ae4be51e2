from datetime import datetime, timedelta, timezone
from typing import Annotated
import logging

from fastapi import APIRouter, Depends, HTTPException, Query, Request

from epghub.schemas import (
    DiscoverRequest,
    DiscoverResponse,
    MergeSummaryResponse,
    NotificationResponse,
    NowNextRequest,
    NowNextResponse,
    ProgramResponse,
    RefreshRequest,
    RefreshResponse,
    SnapshotInfoResponse,
    TimelineItemResponse,
    TimelineRequest,
    TimelineResponse,
)
from epghub.services.feed_discovery_service import extract_epg_urls
from epghub.services.fetch_coordinator import RefreshInProgress
from epghub.services.provider_service import ProviderService
from epghub.utils.timezone import parse_iso8601_to_utc


logger = logging.getLogger(__name__)

main_router = APIRouter()


def get_provider_service(request: Request) -> ProviderService:
    """Provider service owned by the application"""
    return request.app.state.provider_service


ProviderServiceDep = Annotated[ProviderService, Depends(get_provider_service)]


def _query_instant(value: str | None) -> datetime:
    return parse_iso8601_to_utc(value) if value else datetime.now(timezone.utc)


@main_router.get("/")
async def root(request: Request) -> dict:
    """Root endpoint with service information"""
    scheduler = getattr(request.app.state, "scheduler", None)
    next_run = scheduler.get_next_run_time() if scheduler else None

    return {
        "service": "EPG Hub",
        "version": "0.1.0",
        "next_scheduled_refresh": next_run.isoformat() if next_run else None,
        "endpoints": {
            "refresh": "/providers/{provider_id}/refresh - Fetch and merge guide feeds (POST)",
            "snapshot": "/providers/{provider_id}/snapshot - Current snapshot info",
            "now-next": "/providers/{provider_id}/now-next - Now/next for a playlist channel (POST)",
            "timeline": "/providers/{provider_id}/timeline - Timeline for a playlist channel (POST)",
            "report": "/providers/{provider_id}/report - Diagnostic report of the last merge",
            "discover": "/discover - Guide URLs advertised by a playlist header (POST)",
            "health": "/health - Health check"
        }
    }


@main_router.get("/health")
async def health_check(request: Request) -> dict:
    """Health check endpoint"""
    scheduler = getattr(request.app.state, "scheduler", None)
    next_run = scheduler.get_next_run_time() if scheduler else None
    return {
        "status": "ok",
        "scheduler_running": bool(scheduler and scheduler.scheduler and scheduler.scheduler.running),
        "next_refresh": next_run.isoformat() if next_run else None
    }


@main_router.post("/discover", response_model=DiscoverResponse)
async def discover(request: DiscoverRequest) -> DiscoverResponse:
    """Extract guide URLs from a playlist header"""
    return DiscoverResponse(urls=extract_epg_urls(request.playlist))


@main_router.post("/providers/{provider_id}/refresh", response_model=RefreshResponse)
async def refresh_provider(
    provider_id: str,
    request: RefreshRequest,
    service: ProviderServiceDep,
) -> RefreshResponse:
    """
    Refresh guide data for a provider

    Downloads, parses and merges the feeds, then stores the new snapshot
    """
    logger.info("Manual refresh triggered for provider %s", provider_id)
    try:
        result = await service.refresh(
            provider_id,
            urls=request.urls,
            playlist_text=request.playlist,
            file_path=request.file_path,
        )
    except RefreshInProgress as exc:
        raise HTTPException(status_code=409, detail=str(exc))

    snapshot = result.snapshot
    return RefreshResponse(
        provider_id=provider_id,
        source=result.source,
        urls=result.urls,
        message=result.message,
        programs=len(snapshot.programs) if snapshot else 0,
        channels=len(snapshot.channels) if snapshot else 0,
        summary=MergeSummaryResponse(**result.summary.to_dict()) if result.summary else None,
        report=result.report_lines,
        source_details=result.source_details,
    )


@main_router.get("/providers/{provider_id}/snapshot", response_model=SnapshotInfoResponse)
async def get_snapshot_info(provider_id: str, service: ProviderServiceDep) -> SnapshotInfoResponse:
    """Current snapshot metadata for a provider"""
    snapshot = await service.get_snapshot(provider_id)
    if snapshot is None:
        raise HTTPException(status_code=404, detail=f"No guide data for provider '{provider_id}'")

    return SnapshotInfoResponse(
        provider_id=snapshot.provider_id,
        snapshot_id=snapshot.snapshot_id,
        created_at=snapshot.created_at,
        programs=len(snapshot.programs),
        channels=len(snapshot.channels),
    )


@main_router.post("/providers/{provider_id}/now-next", response_model=NowNextResponse)
async def get_now_next(
    provider_id: str,
    request: NowNextRequest,
    service: ProviderServiceDep,
) -> NowNextResponse:
    """What is on now and next for a playlist channel"""
    at = _query_instant(request.at)
    result = await service.now_next(provider_id, request.channel.to_playlist_channel(provider_id), at)

    return NowNextResponse(
        timezone=request.timezone,
        now=ProgramResponse.from_program(result.now, request.timezone) if result.now else None,
        next=ProgramResponse.from_program(result.next, request.timezone) if result.next else None,
    )


@main_router.post("/providers/{provider_id}/timeline", response_model=TimelineResponse)
async def get_timeline(
    provider_id: str,
    request: TimelineRequest,
    service: ProviderServiceDep,
) -> TimelineResponse:
    """Programs around the query instant for a playlist channel"""
    at = _query_instant(request.at)
    items = await service.timeline(
        provider_id,
        request.channel.to_playlist_channel(provider_id),
        at,
        timedelta(minutes=request.past_minutes),
        timedelta(minutes=request.future_minutes),
    )

    logger.info(
        "Timeline for %r on provider %s: %s programs",
        request.channel.name,
        provider_id,
        len(items),
    )

    return TimelineResponse(
        timezone=request.timezone,
        total_programs=len(items),
        items=[
            TimelineItemResponse(
                program=ProgramResponse.from_program(item.program, request.timezone),
                is_now=item.is_now,
                progress=item.progress,
            )
            for item in items
        ],
    )


@main_router.get("/providers/{provider_id}/report")
async def get_report(provider_id: str, service: ProviderServiceDep) -> dict:
    """Diagnostic report from the provider's last merge"""
    lines = await service.get_report(provider_id)
    return {"provider_id": provider_id, "lines": lines}


@main_router.delete("/providers/{provider_id}")
async def delete_provider(provider_id: str, service: ProviderServiceDep) -> dict:
    """Delete stored guide data for a provider"""
    await service.delete_provider(provider_id)
    return {"status": "deleted", "provider_id": provider_id}


@main_router.get("/notifications", response_model=list[NotificationResponse])
async def list_notifications(
    service: ProviderServiceDep,
    limit: Annotated[int, Query(ge=1, le=50)] = 20,
) -> list[NotificationResponse]:
    """Most recent notifications, oldest first"""
    return [NotificationResponse(**n.to_dict()) for n in service.notifier.recent(limit)]
