"""
Audio Transcription Module

Single responsibility: audio URL → transcript with word-level timestamps
Word times are normalised to integer milliseconds whatever the provider reports.
"""

import asyncio
import uuid
from typing import List, Optional
from urllib.parse import urlparse
from pathlib import PurePosixPath

import requests
import structlog
from openai import AsyncOpenAI
from pydantic import BaseModel, Field, validator
from tenacity import (
    retry,
    stop_after_attempt,
    wait_exponential,
    retry_if_exception_type
)

from config import config
from core.excerpt import TimestampedToken

# Configure structured logger
logger = structlog.get_logger(__name__)


class Transcript(BaseModel):
    """Transcript with its ordered, timestamped words"""

    id: str = Field(default_factory=lambda: uuid.uuid4().hex, description="Transcript identifier")
    text: str = Field(description="Full transcript text")
    words: List[TimestampedToken] = Field(description="Words in spoken order")
    provider: str = Field(description="Transcription backend used")

    @validator('words')
    def validate_has_words(cls, v):
        if not v:
            raise ValueError("Transcript has no timestamped words")
        return v


class TranscriptionError(Exception):
    """Custom exception for transcription failures"""
    pass


class AudioDownloadError(TranscriptionError):
    """Audio could not be fetched from the extraction job's URL"""
    pass


class WhisperError(TranscriptionError):
    """Local Whisper model errors"""
    pass


class RetryableTranscriptionError(TranscriptionError):
    """Timeouts and rate limits from the transcription API"""
    pass


def seconds_to_ms(seconds: float) -> int:
    return int(round(seconds * 1000))


def build_tokens(words) -> List[TimestampedToken]:
    """Convert provider word records (seconds) into millisecond tokens.

    Accepts objects or dicts exposing ``word``, ``start`` and ``end``. Whisper
    prefixes most words with a space, which is stripped; blank words are dropped.
    """
    tokens = []
    for w in words:
        if isinstance(w, dict):
            text, start, end = w.get("word", ""), w.get("start", 0.0), w.get("end", 0.0)
        else:
            text, start, end = w.word, w.start, w.end
        text = (text or "").strip()
        if not text:
            continue
        start_ms = seconds_to_ms(start)
        tokens.append(TimestampedToken(
            text=text,
            start=start_ms,
            end=max(start_ms, seconds_to_ms(end))
        ))
    return tokens


def audio_filename(audio_url: str) -> str:
    name = PurePosixPath(urlparse(audio_url).path).name
    return name or "audio.mp3"


def download_audio_bytes(audio_url: str, timeout: int = 120) -> bytes:
    """Fetch the extracted audio so it can be uploaded for transcription"""

    logger.debug("Downloading audio", url=audio_url)
    try:
        resp = requests.get(audio_url, timeout=timeout, allow_redirects=True)
        resp.raise_for_status()
    except requests.RequestException as e:
        logger.error("Audio download failed", url=audio_url, error=str(e))
        raise AudioDownloadError(f"Could not download audio from {audio_url}: {e}")

    if not resp.content:
        raise AudioDownloadError(f"Audio at {audio_url} is empty")

    logger.info("Audio downloaded", url=audio_url, size_kb=len(resp.content) / 1024)
    return resp.content


class OpenAITranscriber:
    """Word-level transcription through the OpenAI audio API"""

    provider = "openai"

    def __init__(self, client: AsyncOpenAI, model: str = "whisper-1", download_timeout: int = 120):
        self.client = client
        self.model = model
        self.download_timeout = download_timeout

    @retry(
        stop=stop_after_attempt(config.ai.max_retries),
        wait=wait_exponential(
            multiplier=config.ai.retry_delay,
            min=1,
            max=60
        ),
        retry=retry_if_exception_type((RetryableTranscriptionError,)),
        reraise=True
    )
    async def _create_transcription(self, filename: str, audio: bytes):
        try:
            return await self.client.audio.transcriptions.create(
                model=self.model,
                file=(filename, audio),
                response_format="verbose_json",
                timestamp_granularities=["word"]
            )
        except Exception as e:
            logger.error("Transcription request failed", model=self.model, error=str(e))
            if "timeout" in str(e).lower() or "rate limit" in str(e).lower():
                raise RetryableTranscriptionError(f"Transcription API error: {e}")
            raise TranscriptionError(f"Transcription failed: {e}")

    async def transcribe(self, audio_url: str) -> Transcript:
        logger.info("Starting transcription", provider=self.provider, model=self.model)

        audio = await asyncio.to_thread(download_audio_bytes, audio_url, self.download_timeout)
        result = await self._create_transcription(audio_filename(audio_url), audio)

        tokens = build_tokens(getattr(result, "words", None) or [])
        if not tokens:
            raise TranscriptionError("Transcription returned no word timestamps")

        transcript = Transcript(
            text=(result.text or "").strip(),
            words=tokens,
            provider=self.provider
        )
        logger.info("Transcription completed",
                   transcript_id=transcript.id,
                   word_count=len(tokens))
        return transcript


class WhisperTranscriber:
    """Word-level transcription with a local Whisper model.

    Whisper hands the URL to ffmpeg, so the audio is never written to disk here.
    """

    provider = "whisper"

    def __init__(self, model_size: str = "base"):
        self.model_size = model_size
        self._model = None

    def _load_model(self):
        import whisper

        if self._model is None:
            try:
                self._model = whisper.load_model(self.model_size)
                logger.debug("Whisper model loaded", model=self.model_size)
            except Exception as e:
                raise WhisperError(f"Failed to load Whisper model '{self.model_size}': {e}")
        return self._model

    def _transcribe_sync(self, audio_url: str) -> Transcript:
        model = self._load_model()
        try:
            result = model.transcribe(audio_url, fp16=False, word_timestamps=True)
        except Exception as e:
            logger.error("Whisper transcription failed", error=str(e))
            raise WhisperError(f"Transcription failed: {e}")

        words = [w for seg in result.get("segments", []) for w in seg.get("words", [])]
        tokens = build_tokens(words)
        if not tokens:
            raise WhisperError("Whisper returned no word timestamps")

        return Transcript(
            text=(result.get("text") or "").strip(),
            words=tokens,
            provider=self.provider
        )

    async def transcribe(self, audio_url: str) -> Transcript:
        logger.info("Starting transcription", provider=self.provider, model=self.model_size)
        transcript = await asyncio.to_thread(self._transcribe_sync, audio_url)
        logger.info("Transcription completed",
                   transcript_id=transcript.id,
                   word_count=len(transcript.words))
        return transcript


def build_transcriber(app_config=config, client: Optional[AsyncOpenAI] = None):
    """Transcriber selected by ``ai.transcription_provider``"""
    if app_config.ai.transcription_provider == "whisper":
        return WhisperTranscriber(model_size=app_config.ai.whisper_model)
    if client is None:
        client = AsyncOpenAI(
            api_key=app_config.ai.openai_api_key,
            timeout=app_config.ai.api_timeout
        )
    return OpenAITranscriber(client, model=app_config.ai.transcription_model)
