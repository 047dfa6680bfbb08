"""
Shared fixtures: a scripted job backend and a sleep recorder.
"""

from unittest.mock import AsyncMock

import pytest

from core.jobs import Job


def make_job(job_id="1", status="completed", urls=()):
    return Job(
        id=job_id,
        status=status,
        output_url=[{"publicUrl": u} for u in urls]
    )


class FakeBackend:
    """Job backend whose status checks replay a script of statuses"""

    def __init__(self, statuses=("completed",), urls=("https://cdn.example/out.mp3",)):
        self.statuses = list(statuses)
        self.urls = list(urls)
        self.checks = []
        self.submitted = []

    async def submit_extraction_job(self, video_url):
        self.submitted.append(("extract", video_url))
        return make_job(job_id="extract-1", status="queued")

    async def submit_clip_job(self, video_url, start, duration):
        self.submitted.append(("clip", video_url, start, duration))
        return make_job(job_id="clip-1", status="queued")

    async def check_status(self, job_id):
        self.checks.append(job_id)
        status = self.statuses.pop(0) if len(self.statuses) > 1 else self.statuses[0]
        urls = self.urls if status == "completed" else []
        return make_job(job_id=job_id, status=status, urls=urls)


@pytest.fixture
def fake_backend():
    return FakeBackend()


@pytest.fixture
def sleep_mock(monkeypatch):
    """Replace asyncio.sleep inside the job waiter"""
    mock = AsyncMock()
    monkeypatch.setattr("core.jobs.asyncio.sleep", mock)
    return mock
