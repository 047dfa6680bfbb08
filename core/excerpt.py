"""
Excerpt Location Module

Single responsibility: excerpt text + timestamped words → clip time span
Matching is exact, token by token, in transcript order.
"""

from typing import Iterable, Optional

import structlog
from pydantic import BaseModel, Field, validator

# Configure structured logger
logger = structlog.get_logger(__name__)


class TimestampedToken(BaseModel):
    """One transcribed word with its time bounds"""

    text: str = Field(description="Word as transcribed")
    start: int = Field(description="Start time in milliseconds", ge=0)
    end: int = Field(description="End time in milliseconds", ge=0)

    @validator('end')
    def validate_end_after_start(cls, v, values):
        if 'start' in values and v < values['start']:
            raise ValueError("Token end must not be before its start")
        return v


class TimeSpan(BaseModel):
    """Clip bounds in seconds"""

    start: float = Field(description="Clip start in seconds", ge=0)
    end: float = Field(description="Clip end in seconds", ge=0)

    @validator('end')
    def validate_end_after_start(cls, v, values):
        if 'start' in values and v < values['start']:
            raise ValueError("Span end must not be before its start")
        return v

    @property
    def duration(self) -> float:
        return self.end - self.start


def locate_excerpt(
    excerpt: str,
    tokens: Iterable[TimestampedToken],
    time_scale: float = 1000.0
) -> Optional[TimeSpan]:
    """Find the first contiguous run of tokens spelling out the excerpt.

    The excerpt is split on whitespace and compared word for word against the
    token texts with exact string equality. Returns the span from the first
    matched token's start to the last matched token's end, divided by
    ``time_scale`` to give seconds, or None when no run matches.

    A mismatch abandons the partial match without re-testing the mismatching
    token as the first word of a new match, so ``"a b"`` is not found in
    ``a a b``.
    """
    words = excerpt.split()
    if not words:
        logger.warning("Empty excerpt, nothing to locate")
        return None

    i = 0
    clip_start = None

    for token in tokens:
        if token.text == words[i]:
            if i == 0:
                clip_start = token.start
            i += 1
            if i == len(words):
                span = TimeSpan(
                    start=clip_start / time_scale,
                    end=token.end / time_scale
                )
                logger.debug("Excerpt located",
                            word_count=len(words),
                            start=span.start,
                            end=span.end)
                return span
        else:
            i = 0
            clip_start = None

    logger.info("Excerpt not found in transcript", word_count=len(words))
    return None
