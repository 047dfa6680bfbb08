"""
StreamPot Backend Module

Single responsibility: video URL → submitted StreamPot job
Builds StreamPot action lists and talks to the server over HTTP with tenacity retries.
"""

import asyncio
from typing import Any, Dict, List, Optional

import requests
import structlog
from tenacity import (
    retry,
    stop_after_attempt,
    wait_exponential,
    retry_if_exception_type
)

from config import config
from core.jobs import Job

# Configure structured logger
logger = structlog.get_logger(__name__)


class BackendError(Exception):
    """Custom exception for StreamPot communication failures"""
    pass


class BackendUnavailableError(BackendError):
    """Connection problems, timeouts and 5xx responses"""
    pass


class BackendUnreachableError(BackendUnavailableError):
    """The connection was never established, so the server saw nothing"""
    pass


class BackendRequestError(BackendError):
    """The server rejected the request (4xx) or answered with garbage"""
    pass


class StreamPotActions:
    """Fluent builder for a StreamPot job.

    Each call appends one action, named after the ffmpeg builder method the
    StreamPot server replays, e.g. ``{"name": "noVideo", "value": []}``.
    """

    def __init__(self):
        self.actions: List[Dict[str, Any]] = []

    def _add(self, name: str, *values) -> 'StreamPotActions':
        self.actions.append({"name": name, "value": list(values)})
        return self

    def input(self, url: str) -> 'StreamPotActions':
        return self._add("input", url)

    def no_video(self) -> 'StreamPotActions':
        return self._add("noVideo")

    def set_start_time(self, seconds: float) -> 'StreamPotActions':
        return self._add("setStartTime", seconds)

    def set_duration(self, seconds: float) -> 'StreamPotActions':
        return self._add("setDuration", seconds)

    def output(self, filename: str) -> 'StreamPotActions':
        return self._add("output", filename)

    def to_payload(self) -> Dict[str, Any]:
        return {"actions": list(self.actions)}


def extraction_actions(video_url: str, audio_output: str = "output.mp3") -> StreamPotActions:
    """Audio-only copy of the video"""
    return StreamPotActions().input(video_url).no_video().output(audio_output)


def clip_actions(
    video_url: str,
    start: float,
    duration: float,
    clip_output: str = "clip.mp4"
) -> StreamPotActions:
    """Cut ``duration`` seconds of the video starting at ``start``"""
    return (
        StreamPotActions()
        .input(video_url)
        .set_start_time(start)
        .set_duration(duration)
        .output(clip_output)
    )


class StreamPotClient:
    """Job backend backed by a StreamPot server.

    Status checks are retried on any transport failure. Submissions create a
    job on the server, so they are only resent when the connection was never
    established.
    """

    def __init__(
        self,
        base_url: str = config.streampot.base_url,
        secret_key: Optional[str] = None,
        timeout: int = config.streampot.request_timeout,
        audio_output: str = "output.mp3",
        clip_output: str = "clip.mp4",
        session: Optional[requests.Session] = None
    ):
        self.base_url = base_url.rstrip('/')
        self.timeout = timeout
        self.audio_output = audio_output
        self.clip_output = clip_output
        self.session = session or requests.Session()
        if secret_key:
            self.session.headers['Authorization'] = f"Bearer {secret_key}"

    @classmethod
    def from_config(cls, app_config=config) -> 'StreamPotClient':
        return cls(
            base_url=app_config.streampot.base_url,
            secret_key=app_config.streampot.secret_key,
            timeout=app_config.streampot.request_timeout,
            audio_output=app_config.clip.audio_output,
            clip_output=app_config.clip.clip_output
        )

    def _send(self, method: str, path: str, payload: Optional[Dict[str, Any]] = None) -> Job:
        url = f"{self.base_url}{path}"

        try:
            response = self.session.request(method, url, json=payload, timeout=self.timeout)
        except requests.ConnectTimeout as e:
            logger.warning("StreamPot unreachable", url=url, error=str(e))
            raise BackendUnreachableError(f"Could not connect to StreamPot at {url}: {e}")
        except (requests.ConnectionError, requests.Timeout) as e:
            logger.warning("StreamPot request interrupted", url=url, error=str(e))
            raise BackendUnavailableError(f"StreamPot request to {url} failed: {e}")

        if response.status_code >= 500:
            logger.warning("StreamPot server error",
                          url=url, status_code=response.status_code)
            raise BackendUnavailableError(
                f"StreamPot returned {response.status_code} for {method} {path}"
            )
        if response.status_code >= 400:
            logger.error("StreamPot rejected request",
                        url=url, status_code=response.status_code, body=response.text[:200])
            raise BackendRequestError(
                f"StreamPot returned {response.status_code} for {method} {path}: {response.text[:200]}"
            )

        try:
            return Job(**response.json())
        except Exception as e:
            raise BackendRequestError(f"Unexpected StreamPot response for {method} {path}: {e}")

    @retry(
        stop=stop_after_attempt(config.streampot.max_retries),
        wait=wait_exponential(
            multiplier=config.streampot.retry_delay,
            min=1,
            max=30
        ),
        retry=retry_if_exception_type((BackendUnreachableError,)),
        reraise=True
    )
    def _post(self, payload: Dict[str, Any]) -> Job:
        return self._send("POST", "/", payload)

    @retry(
        stop=stop_after_attempt(config.streampot.max_retries),
        wait=wait_exponential(
            multiplier=config.streampot.retry_delay,
            min=1,
            max=30
        ),
        retry=retry_if_exception_type((BackendUnavailableError,)),
        reraise=True
    )
    def _get(self, path: str) -> Job:
        return self._send("GET", path)

    async def submit(self, actions: StreamPotActions) -> Job:
        job = await asyncio.to_thread(self._post, actions.to_payload())
        logger.info("StreamPot job submitted",
                   job_id=job.id,
                   actions=[a["name"] for a in actions.actions])
        return job

    async def submit_extraction_job(self, video_url: str) -> Job:
        return await self.submit(extraction_actions(video_url, self.audio_output))

    async def submit_clip_job(self, video_url: str, start: float, duration: float) -> Job:
        return await self.submit(clip_actions(video_url, start, duration, self.clip_output))

    async def check_status(self, job_id: str) -> Job:
        return await asyncio.to_thread(self._get, f"/jobs/{job_id}")
