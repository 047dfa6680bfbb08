"""
Remote Job Module

Single responsibility: submitted job ID → public URL of its first output
Polls the job backend at a fixed interval until the job reaches a terminal state.
"""

import asyncio
from enum import Enum
from typing import Awaitable, Callable, List, Optional

import structlog
from pydantic import BaseModel, ConfigDict, Field, validator

# Configure structured logger
logger = structlog.get_logger(__name__)


class OutputArtifact(BaseModel):
    """File produced by a finished job"""

    model_config = ConfigDict(populate_by_name=True, extra='ignore')

    public_url: str = Field(alias="publicUrl", description="Publicly reachable URL")


class Job(BaseModel):
    """Job as reported by the backend"""

    model_config = ConfigDict(populate_by_name=True, extra='ignore')

    id: str = Field(description="Backend job identifier")
    status: str = Field(description="Backend status label")
    output_url: List[OutputArtifact] = Field(
        default_factory=list,
        description="Output artifacts, filled in once the job completes"
    )

    @validator('id', pre=True)
    def coerce_id(cls, v):
        # StreamPot hands out numeric IDs
        if v is None or v == "":
            raise ValueError("job id is missing")
        return str(v)

    @validator('output_url', pre=True)
    def default_outputs(cls, v):
        return v or []


class WaitState(str, Enum):
    WAITING = "waiting"
    COMPLETED = "completed"
    FAILED = "failed"


COMPLETED_STATUS = "completed"
FAILED_STATUS = "failed"


class JobError(Exception):
    """Custom exception for remote job failures"""
    pass


class JobFailedError(JobError):
    """The backend reported the job as failed"""

    def __init__(self, job: Job):
        self.job = job
        super().__init__(f"StreamPot job {job.id} failed")


class JobOutputMissingError(JobError):
    """A completed job carried no output artifact"""
    pass


class JobTimeoutError(JobError):
    """Polling gave up before the job reached a terminal state"""
    pass


def classify_status(status: str) -> WaitState:
    """Map a backend status label onto the waiter's state machine.

    Anything that is neither completed nor failed keeps the waiter polling,
    including labels the backend may add later.
    """
    if status == COMPLETED_STATUS:
        return WaitState.COMPLETED
    if status == FAILED_STATUS:
        return WaitState.FAILED
    return WaitState.WAITING


def first_output_url(job: Job) -> str:
    """Public URL of the job's first output artifact"""
    if not job.output_url:
        raise JobOutputMissingError(f"Job {job.id} completed without output")
    return job.output_url[0].public_url


class JobWaiter:
    """Drives the submit-once, poll-until-terminal protocol.

    ``backend`` needs an async ``check_status(job_id) -> Job``. Polling sleeps
    ``interval_ms`` between checks and, unless ``max_attempts`` is given,
    never gives up on a job that is still waiting.
    """

    def __init__(self, backend, interval_ms: int = 5000, max_attempts: Optional[int] = None):
        self.backend = backend
        self.interval_ms = interval_ms
        self.max_attempts = max_attempts

    async def wait(self, job_id: str) -> Job:
        """Poll until the job completes; raise if it fails"""

        logger.info("Waiting for job",
                   job_id=job_id,
                   interval_ms=self.interval_ms,
                   max_attempts=self.max_attempts)

        attempts = 0
        while True:
            job = await self.backend.check_status(job_id)
            attempts += 1
            state = classify_status(job.status)

            if state is WaitState.COMPLETED:
                logger.info("Job completed", job_id=job_id, polls=attempts)
                return job

            if state is WaitState.FAILED:
                logger.error("Job failed", job_id=job_id, polls=attempts)
                raise JobFailedError(job)

            logger.debug("Job still running",
                        job_id=job_id, status=job.status, polls=attempts)

            if self.max_attempts is not None and attempts >= self.max_attempts:
                logger.error("Gave up waiting for job",
                            job_id=job_id, polls=attempts, status=job.status)
                raise JobTimeoutError(
                    f"Job {job_id} still '{job.status}' after {attempts} status checks"
                )

            await asyncio.sleep(self.interval_ms / 1000)

    async def poll(self, job_id: str) -> str:
        """Wait for an already submitted job and return its output URL"""
        job = await self.wait(job_id)
        return first_output_url(job)

    async def run(self, submit: Callable[[], Awaitable[Job]]) -> str:
        """Submit a job once, then poll it to completion"""
        job = await submit()
        logger.info("Job submitted", job_id=job.id, status=job.status)
        return await self.poll(job.id)
