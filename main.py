#!/usr/bin/env python3
"""
Highlight Clipper - Main Orchestrator

Entry point that runs the highlight pipeline for a single video.
Handles the complete flow: Video URL → Audio → Transcript → Excerpt → Time Span → Clip
"""

import sys
import asyncio
import logging
import uuid
from datetime import datetime
from typing import Optional

import structlog
from pydantic import BaseModel, Field
from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()

from config import config
from core.excerpt import TimeSpan
from core.jobs import JobError
from core.pipeline import (
    STEP_CLIP,
    STEP_EXTRACT,
    STEP_TRANSCRIBE,
    STEPS,
    HighlightPipeline,
    PipelineError,
    build_pipeline,
)
from core.selection import SelectionError
from core.streampot import BackendError
from core.transcribe import TranscriptionError

# Configure structured logging
logging.basicConfig(format="%(message)s", level=logging.DEBUG if config.debug else logging.INFO)
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.dev.ConsoleRenderer(colors=True)
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)

logger = structlog.get_logger(__name__)

EXAMPLE_VIDEO = "https://github.com/jackbridger/streampot-ai-video-example/raw/main/example.webm"


class HighlightRun(BaseModel):
    """One pipeline run with its results and timings, kept in memory only"""

    # Run identification
    run_id: str = Field(description="Unique run identifier")
    video_url: str = Field(description="Source video")
    start_time: datetime = Field(default_factory=datetime.now)
    end_time: Optional[datetime] = None
    status: str = Field(default="running", description="Run status")
    error_message: Optional[str] = None

    # Results
    audio_url: Optional[str] = None
    transcript_id: Optional[str] = None
    word_count: Optional[int] = None
    excerpt: Optional[str] = None
    span: Optional[TimeSpan] = None
    used_fallback: bool = False
    clip_url: Optional[str] = None

    # Timing metrics
    extraction_start_time: Optional[datetime] = None
    extraction_end_time: Optional[datetime] = None
    transcription_start_time: Optional[datetime] = None
    transcription_end_time: Optional[datetime] = None
    clip_start_time: Optional[datetime] = None
    clip_end_time: Optional[datetime] = None

    def duration_seconds(self) -> float:
        """Calculate run duration in seconds"""
        end = self.end_time or datetime.now()
        return (end - self.start_time).total_seconds()

    def extraction_duration_seconds(self) -> Optional[float]:
        if self.extraction_start_time and self.extraction_end_time:
            return (self.extraction_end_time - self.extraction_start_time).total_seconds()
        return None

    def transcription_duration_seconds(self) -> Optional[float]:
        if self.transcription_start_time and self.transcription_end_time:
            return (self.transcription_end_time - self.transcription_start_time).total_seconds()
        return None

    def clip_duration_seconds(self) -> Optional[float]:
        if self.clip_start_time and self.clip_end_time:
            return (self.clip_end_time - self.clip_start_time).total_seconds()
        return None

    def mark_completed(self):
        """Mark run as completed successfully"""
        self.end_time = datetime.now()
        self.status = "completed"

    def mark_failed(self, error: str):
        """Mark run as failed with error message"""
        self.end_time = datetime.now()
        self.status = "failed"
        self.error_message = error


class ProgressTracker:
    """Step progress printed to the console alongside structured logs"""

    def __init__(self):
        self.step_names = [
            "🎵 Extracting audio",
            "📝 Transcribing audio",
            "🤖 Selecting highlight",
            "✂️  Cutting clip"
        ]
        self.total_steps = len(self.step_names)

    def start_step(self, step_index: int):
        progress = (step_index / self.total_steps) * 100
        step_name = self.step_names[step_index]

        print(f"\n[{progress:.0f}%] {step_name}")
        logger.info("Processing step started",
                   step=step_name,
                   step_index=step_index,
                   progress_percent=progress)

    def complete_step(self, step_index: int):
        progress = ((step_index + 1) / self.total_steps) * 100
        step_name = self.step_names[step_index]

        print(f"[{progress:.0f}%] ✅ {step_name}")
        logger.info("Processing step completed",
                   step=step_name,
                   step_index=step_index,
                   progress_percent=progress)

    def skip_step(self, step_index: int, reason: str):
        print(f"⏭️  {self.step_names[step_index]} skipped ({reason})")

    def show_final_summary(self, run: HighlightRun):
        print(f"\n{'='*60}")
        print(f"🎉 Highlight Ready!")
        print(f"{'='*60}")
        print(f"📹 Video: {run.video_url}")
        print(f"⏱️  Total Time: {run.duration_seconds():.1f}s")
        print(f"📊 Status: {run.status}")

        if run.word_count:
            print(f"📝 Transcript: {run.word_count:,} words")
        if run.excerpt:
            print(f"💬 Excerpt: \"{run.excerpt[:80]}\"")
        if run.span:
            source = "fallback" if run.used_fallback else "transcript"
            print(f"🎯 Span: {run.span.start:.2f}s → {run.span.end:.2f}s ({source})")
        if run.clip_url:
            print(f"🔗 Clip: {run.clip_url}")


def generate_run_id() -> str:
    """Generate a unique run ID with UUID suffix for uniqueness"""
    timestamp = datetime.now().strftime('%Y%m%d_%H%M%S')
    unique_suffix = str(uuid.uuid4())[:8]
    return f"{timestamp}_{unique_suffix}"


class StepRecorder:
    """Pipeline step hook that fills in the run record and prints progress"""

    timing_prefixes = {
        STEP_EXTRACT: "extraction",
        STEP_TRANSCRIBE: "transcription",
        STEP_CLIP: "clip"
    }

    def __init__(self, run: HighlightRun, progress: ProgressTracker):
        self.run = run
        self.progress = progress

    def __call__(self, step: str, event: str, **details):
        index = STEPS.index(step)
        prefix = self.timing_prefixes.get(step)

        if event == "skipped":
            self.progress.skip_step(index, details.get("reason", "skipped"))
        elif event == "started":
            if prefix:
                setattr(self.run, f"{prefix}_start_time", datetime.now())
            self.progress.start_step(index)
        else:
            if prefix:
                setattr(self.run, f"{prefix}_end_time", datetime.now())
            for field, value in details.items():
                setattr(self.run, field, value)
            self.progress.complete_step(index)


async def process_video(url: str, span_only: bool = False,
                        pipeline: Optional[HighlightPipeline] = None) -> HighlightRun:
    """Run the full pipeline for one video and report on the console"""

    run = HighlightRun(run_id=generate_run_id(), video_url=url)
    progress = ProgressTracker()
    pipeline = pipeline or build_pipeline(config)

    logger.info("Starting highlight run",
               url=url,
               run_id=run.run_id,
               span_only=span_only,
               has_credentials=pipeline.has_credentials)

    print(f"🎬 Highlight Clipper")
    print(f"📋 Run ID: {run.run_id}")
    print(f"🔗 URL: {url}")
    print("="*60)

    try:
        result = await pipeline.run(url, cut_clip=not span_only,
                                    on_step=StepRecorder(run, progress))
        run.span = result.span
        run.used_fallback = result.used_fallback
        run.clip_url = result.clip_url

        run.mark_completed()
        progress.show_final_summary(run)
        return run

    except (JobError, BackendError) as e:
        error_msg = f"StreamPot error: {e}"
        logger.error("StreamPot job failed", error=str(e))

    except TranscriptionError as e:
        error_msg = f"Transcription error: {e}"
        logger.error("Transcription failed", error=str(e))

    except SelectionError as e:
        error_msg = f"Selection error: {e}"
        logger.error("Excerpt selection failed", error=str(e))

    except PipelineError as e:
        error_msg = f"Pipeline error: {e}"
        logger.error("Highlight could not be located", error=str(e))

    except Exception as e:
        error_msg = f"Unexpected error: {e}"
        logger.exception("Unexpected error occurred")

    print(f"\n❌ {error_msg}")
    run.mark_failed(error_msg)
    return run


def main():
    """Main entry point with argument parsing"""

    args = [a for a in sys.argv[1:] if not a.startswith("--")]
    span_only = "--span-only" in sys.argv

    if "--help" in sys.argv or len(args) > 1:
        print("Usage: python main.py [video_url] [--span-only]")
        print("       python main.py <video_url>               # Cut the highlight clip")
        print("       python main.py <video_url> --span-only   # Only report the time span")
        sys.exit(0 if "--help" in sys.argv else 1)

    url = args[0] if args else EXAMPLE_VIDEO

    if not url.startswith(("http://", "https://")):
        print("❌ Error: Please provide an http(s) video URL")
        sys.exit(1)

    if config.debug:
        print(f"🔧 Debug mode enabled")
        print(f"🛰️  StreamPot: {config.streampot.base_url}")
        print(f"🤖 Selection Model: {config.ai.selection_model}")
        print(f"🎵 Transcription: {config.ai.transcription_provider}")
        print()

    run = asyncio.run(process_video(url, span_only=span_only))

    if run.status == "completed":
        print(f"\n✨ Processing completed successfully!")
        sys.exit(0)
    else:
        print(f"\n💥 Processing failed: {run.error_message}")
        sys.exit(1)


if __name__ == "__main__":
    main()
