"""
Highlight Pipeline Module

Single responsibility: video URL → public URL of a highlight clip
extraction → transcription → excerpt selection → location → clip cutting, one step at a time.
"""

from typing import Callable, Optional, Tuple

import structlog
from openai import AsyncOpenAI
from pydantic import BaseModel, Field

from config import config
from core.excerpt import TimeSpan, locate_excerpt
from core.jobs import JobWaiter
from core.selection import DEFAULT_PROMPT, OpenAISelector, select_highlight
from core.streampot import StreamPotClient
from core.transcribe import Transcript, build_transcriber

# Configure structured logger
logger = structlog.get_logger(__name__)

STEP_EXTRACT = "extract"
STEP_TRANSCRIBE = "transcribe"
STEP_SELECT = "select"
STEP_CLIP = "clip"
STEPS = (STEP_EXTRACT, STEP_TRANSCRIBE, STEP_SELECT, STEP_CLIP)

# Called as hook(step, event, **details) with event "started", "completed" or "skipped"
StepHook = Callable[..., None]


def _ignore_step(step: str, event: str, **details):
    pass


class ClipSettings(BaseModel):
    """Per-pipeline clip options"""

    time_scale: float = Field(default=1000.0, gt=0, description="Transcript units per second")
    fallback_span: TimeSpan = Field(
        default_factory=lambda: TimeSpan(start=0.0, end=10.0),
        description="Span cut when selection is unavailable"
    )
    fallback_on_no_match: bool = Field(default=False)
    prompt: str = Field(default=DEFAULT_PROMPT, description="Instruction for the selection model")

    @classmethod
    def from_config(cls, app_config=config) -> 'ClipSettings':
        return cls(
            time_scale=app_config.clip.time_scale,
            fallback_span=TimeSpan(
                start=app_config.clip.fallback_start,
                end=app_config.clip.fallback_end
            ),
            fallback_on_no_match=app_config.clip.fallback_on_no_match
        )


class HighlightResult(BaseModel):
    """What one pipeline run produced"""

    span: TimeSpan
    used_fallback: bool = False
    audio_url: Optional[str] = None
    transcript_id: Optional[str] = None
    word_count: Optional[int] = None
    excerpt: Optional[str] = None
    clip_url: Optional[str] = None


class PipelineError(Exception):
    """Custom exception for pipeline failures"""
    pass


class ExcerptNotFoundError(PipelineError):
    """The selected excerpt does not appear verbatim in the transcript"""

    def __init__(self, excerpt: str):
        self.excerpt = excerpt
        super().__init__(f"Excerpt not found in transcript: {excerpt[:80]!r}")


class HighlightPipeline:
    """Sequential highlight pipeline for one video at a time.

    Without both a transcriber and a selector the pipeline runs degraded: it
    skips extraction, transcription and selection and cuts the fallback span.
    """

    def __init__(
        self,
        backend,
        waiter: JobWaiter,
        transcriber=None,
        selector=None,
        settings: Optional[ClipSettings] = None
    ):
        self.backend = backend
        self.waiter = waiter
        self.transcriber = transcriber
        self.selector = selector
        self.settings = settings or ClipSettings()

    @property
    def has_credentials(self) -> bool:
        return self.transcriber is not None and self.selector is not None

    async def extract_audio(self, video_url: str) -> str:
        """Run the audio extraction job and return the audio URL"""
        return await self.waiter.run(lambda: self.backend.submit_extraction_job(video_url))

    async def select(self, transcript: Transcript) -> str:
        return await select_highlight(self.selector, transcript, self.settings.prompt)

    def locate(self, excerpt: str, transcript: Transcript) -> Tuple[TimeSpan, bool]:
        """Span of ``excerpt`` in the transcript and whether the fallback span was used"""

        span = locate_excerpt(excerpt, transcript.words, self.settings.time_scale)
        if span is None:
            if self.settings.fallback_on_no_match:
                logger.warning("Excerpt not found, using fallback span",
                              transcript_id=transcript.id)
                return self.settings.fallback_span, True
            raise ExcerptNotFoundError(excerpt)

        logger.info("Highlight located",
                   transcript_id=transcript.id,
                   start=span.start,
                   end=span.end)
        return span, False

    async def make_clip(self, video_url: str, span: TimeSpan) -> str:
        """Run the clip cutting job for ``span`` and return the clip URL"""
        return await self.waiter.run(
            lambda: self.backend.submit_clip_job(video_url, span.start, span.duration)
        )

    async def run(
        self,
        video_url: str,
        cut_clip: bool = True,
        on_step: Optional[StepHook] = None
    ) -> HighlightResult:
        """Run every step for one video, reporting each one to ``on_step``"""

        notify = on_step or _ignore_step
        logger.info("Running highlight pipeline", video_url=video_url, cut_clip=cut_clip)

        if not self.has_credentials:
            logger.warning("No API key configured, using fallback span",
                          start=self.settings.fallback_span.start,
                          end=self.settings.fallback_span.end)
            for step in (STEP_EXTRACT, STEP_TRANSCRIBE, STEP_SELECT):
                notify(step, "skipped", reason="no API key")
            result = HighlightResult(span=self.settings.fallback_span, used_fallback=True)
        else:
            notify(STEP_EXTRACT, "started")
            audio_url = await self.extract_audio(video_url)
            logger.info("Audio extracted", audio_url=audio_url)
            notify(STEP_EXTRACT, "completed", audio_url=audio_url)

            notify(STEP_TRANSCRIBE, "started")
            transcript = await self.transcriber.transcribe(audio_url)
            notify(STEP_TRANSCRIBE, "completed",
                   transcript_id=transcript.id, word_count=len(transcript.words))

            notify(STEP_SELECT, "started")
            excerpt = await self.select(transcript)
            span, used_fallback = self.locate(excerpt, transcript)
            notify(STEP_SELECT, "completed",
                   excerpt=excerpt, span=span, used_fallback=used_fallback)

            result = HighlightResult(
                span=span,
                used_fallback=used_fallback,
                audio_url=audio_url,
                transcript_id=transcript.id,
                word_count=len(transcript.words),
                excerpt=excerpt
            )

        if not cut_clip:
            notify(STEP_CLIP, "skipped", reason="span only")
            return result

        notify(STEP_CLIP, "started")
        result.clip_url = await self.make_clip(video_url, result.span)
        logger.info("Highlight clip ready", clip_url=result.clip_url)
        notify(STEP_CLIP, "completed", clip_url=result.clip_url)
        return result

    async def find_highlight_span(self, video_url: str) -> TimeSpan:
        """Pick the highlight and return its bounds in seconds"""
        result = await self.run(video_url, cut_clip=False)
        return result.span

    async def produce_highlight_clip(self, video_url: str) -> str:
        result = await self.run(video_url)
        return result.clip_url


def build_pipeline(app_config=config, backend=None) -> HighlightPipeline:
    """Wire a pipeline from configuration with freshly constructed clients"""

    backend = backend or StreamPotClient.from_config(app_config)
    waiter = JobWaiter(
        backend,
        interval_ms=app_config.streampot.poll_interval_ms,
        max_attempts=app_config.streampot.max_poll_attempts
    )

    transcriber = None
    selector = None
    if app_config.ai.has_credentials:
        client = AsyncOpenAI(
            api_key=app_config.ai.openai_api_key,
            timeout=app_config.ai.api_timeout
        )
        transcriber = build_transcriber(app_config, client=client)
        selector = OpenAISelector(
            client,
            model=app_config.ai.selection_model,
            temperature=app_config.ai.temperature
        )

    return HighlightPipeline(
        backend,
        waiter,
        transcriber=transcriber,
        selector=selector,
        settings=ClipSettings.from_config(app_config)
    )
