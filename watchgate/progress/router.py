"""Progress tracking API endpoints."""

import logging
from typing import Annotated

from fastapi import APIRouter, Depends, Query, Request, status

from .models import (
    ActivityCompletion,
    ActivityTimeUpdate,
    ClassStatistics,
    ClassStatisticsRequest,
    LearnerSummary,
    ProgressRecord,
    ProgressUpdate,
    ResumeResponse,
)
from .service import ProgressService


logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/progress", tags=["progress"])


def get_progress_service(request: Request) -> ProgressService:
    """Dependency to get the progress service built at startup."""
    return request.app.state.progress_service


ProgressServiceDep = Annotated[ProgressService, Depends(get_progress_service)]


@router.get("/health")
async def progress_health(service: ProgressServiceDep) -> dict[str, str]:
    """Report which store backs the progress API."""
    return {"status": "healthy", "store": type(service.store).__name__}


@router.get("/learners/{learner_id}/summary")
async def get_learner_summary(learner_id: str, service: ProgressServiceDep) -> LearnerSummary:
    """Summarize a learner's progress across all units."""
    return await service.learner_summary(learner_id)


@router.post("/statistics")
async def get_class_statistics(request: ClassStatisticsRequest, service: ProgressServiceDep) -> ClassStatistics:
    """Aggregate progress for a group of learners."""
    return await service.class_statistics(request.learner_ids)


@router.get("/{learner_id}/{unit_id}")
async def get_progress(learner_id: str, unit_id: str, service: ProgressServiceDep) -> ProgressRecord:
    """Get progress for a learner on a unit."""
    return await service.get_progress(learner_id, unit_id)


@router.patch("/{learner_id}/{unit_id}")
async def merge_progress(
    learner_id: str,
    unit_id: str,
    update: ProgressUpdate,
    service: ProgressServiceDep,
) -> ProgressRecord:
    """Merge a partial update; stored values never move backwards.

    Meant for tracking clients writing cumulative snapshots. Learners asking
    to skip the rest of a video go through ``/video/complete``.
    """
    return await service.merge_progress(learner_id, unit_id, update)


@router.delete("/{learner_id}/{unit_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_progress(learner_id: str, unit_id: str, service: ProgressServiceDep) -> None:
    """Delete progress for a learner on a unit."""
    await service.delete_progress(learner_id, unit_id)


@router.get("/{learner_id}/{unit_id}/resume")
async def get_resume_position(
    learner_id: str,
    unit_id: str,
    duration: Annotated[float, Query(gt=0, description="Video length in seconds")],
    service: ProgressServiceDep,
) -> ResumeResponse:
    """Get the seek target for a new playback session."""
    return await service.get_resume(learner_id, unit_id, duration)


@router.post("/{learner_id}/{unit_id}/video/complete")
async def complete_video_manually(learner_id: str, unit_id: str, service: ProgressServiceDep) -> ProgressRecord:
    """Mark the video completed on the learner's request, after the minimum exposure."""
    return await service.manual_override_complete(learner_id, unit_id)


@router.post("/{learner_id}/{unit_id}/activity/start")
async def start_activity(learner_id: str, unit_id: str, service: ProgressServiceDep) -> ProgressRecord:
    """Record that the follow-on activity was opened."""
    return await service.begin_activity(learner_id, unit_id)


@router.post("/{learner_id}/{unit_id}/activity/time")
async def record_activity_time(
    learner_id: str,
    unit_id: str,
    update: ActivityTimeUpdate,
    service: ProgressServiceDep,
) -> ProgressRecord:
    """Record cumulative time spent in the follow-on activity."""
    return await service.record_activity_time(learner_id, unit_id, update.time_seconds, update.started_at)


@router.post("/{learner_id}/{unit_id}/activity/complete")
async def complete_activity(
    learner_id: str,
    unit_id: str,
    service: ProgressServiceDep,
    completion: ActivityCompletion | None = None,
) -> ProgressRecord:
    """Record a finished attempt at the follow-on activity."""
    score = completion.score if completion else None
    return await service.complete_activity(learner_id, unit_id, score)
