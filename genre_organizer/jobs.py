"""
Organize jobs: lifecycle model, the shared job registry and progress sinks.

Each job is written only by its own background task and read by status
polls. Every read returns a snapshot copy taken under the registry lock.
"""

from __future__ import annotations

import copy
import threading
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from .errors import InvalidTransitionError
from .models import utcnow


class JobStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class JobStage(str, Enum):
    INITIALIZING = "initializing"
    FETCHING = "fetching"
    ANALYZING = "analyzing"
    CREATING = "creating"
    DONE = "done"


_STAGE_ORDER = {stage: i for i, stage in enumerate(JobStage)}

ALLOWED_TRANSITIONS = {
    JobStatus.PENDING: {JobStatus.PROCESSING},
    JobStatus.PROCESSING: {JobStatus.COMPLETED, JobStatus.FAILED},
    JobStatus.COMPLETED: set(),
    JobStatus.FAILED: set(),
}


@dataclass
class Job:
    id: str
    user_id: Optional[str] = None
    status: JobStatus = JobStatus.PENDING
    stage: JobStage = JobStage.INITIALIZING
    songs_processed: int = 0
    total_songs: int = 0
    genres_discovered: List[str] = field(default_factory=list)
    result: Optional[Any] = None
    error: Optional[str] = None
    created_at: datetime = field(default_factory=utcnow)

    @property
    def finished(self) -> bool:
        return self.status in (JobStatus.COMPLETED, JobStatus.FAILED)

    def to_dict(self) -> dict:
        data = {
            "id": self.id,
            "status": self.status.value,
            "stage": self.stage.value,
            "songs_processed": self.songs_processed,
            "total_songs": self.total_songs,
            "genres_discovered": list(self.genres_discovered),
        }
        if self.result is not None:
            data["result"] = self.result.to_dict() if hasattr(self.result, "to_dict") else self.result
        if self.error:
            data["error"] = self.error
        return data


class JobRegistry:
    """In-memory jobs keyed by id, guarded by one lock."""

    def __init__(self):
        self._jobs: Dict[str, Job] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._jobs)

    def __contains__(self, job_id: str) -> bool:
        with self._lock:
            return job_id in self._jobs

    def create(self, user_id: Optional[str] = None) -> Job:
        job = Job(id=str(uuid.uuid4()), user_id=user_id)
        with self._lock:
            self._jobs[job.id] = job
            return copy.deepcopy(job)

    def get(self, job_id: str) -> Optional[Job]:
        """Snapshot of a job, or None if the id is unknown."""
        with self._lock:
            job = self._jobs.get(job_id)
            return copy.deepcopy(job) if job is not None else None

    def update(self, job_id: str, **changes) -> Job:
        """Apply field changes to a job, enforcing the lifecycle rules.

        Status may only move along ALLOWED_TRANSITIONS and the stage never
        moves backwards.
        """
        with self._lock:
            job = self._jobs.get(job_id)
            if job is None:
                raise KeyError(job_id)

            status = changes.get("status")
            if status is not None:
                status = JobStatus(status)
                if status != job.status and status not in ALLOWED_TRANSITIONS[job.status]:
                    raise InvalidTransitionError(
                        f"job {job_id}: {job.status.value} -> {status.value} not allowed"
                    )
                changes["status"] = status

            stage = changes.get("stage")
            if stage is not None:
                stage = JobStage(stage)
                if _STAGE_ORDER[stage] < _STAGE_ORDER[job.stage]:
                    raise InvalidTransitionError(
                        f"job {job_id}: stage {job.stage.value} -> {stage.value} goes backwards"
                    )
                changes["stage"] = stage

            for name, value in changes.items():
                if not hasattr(job, name):
                    raise AttributeError(f"Job has no field {name!r}")
                setattr(job, name, value)
            return copy.deepcopy(job)

    def report_progress(self, job_id: str, stage: JobStage, processed: int, total: int) -> Job:
        """Record counters for a stage; within one stage counters never decrease."""
        with self._lock:
            job = self._jobs.get(job_id)
            if job is None:
                raise KeyError(job_id)
            stage = JobStage(stage)
            if _STAGE_ORDER[stage] < _STAGE_ORDER[job.stage]:
                raise InvalidTransitionError(
                    f"job {job_id}: stage {job.stage.value} -> {stage.value} goes backwards"
                )
            if stage == job.stage:
                processed = max(processed, job.songs_processed)
                total = max(total, job.total_songs)
            job.stage = stage
            job.songs_processed = processed
            job.total_songs = total
            return copy.deepcopy(job)


class ProgressSink:
    """Receives (stage, processed, total) progress reports from a pipeline."""

    def report(self, stage: JobStage, processed: int, total: int) -> None:
        raise NotImplementedError


class NullProgress(ProgressSink):
    def report(self, stage: JobStage, processed: int, total: int) -> None:
        pass


class JobProgress(ProgressSink):
    """Writes progress reports into one job of a registry."""

    def __init__(self, registry: JobRegistry, job_id: str):
        self.registry = registry
        self.job_id = job_id

    def report(self, stage: JobStage, processed: int, total: int) -> None:
        self.registry.report_progress(self.job_id, stage, processed, total)
