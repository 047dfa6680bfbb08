"""
Excerpt Selection Module

Single responsibility: transcript → quoted excerpt worth clipping
Asks a chat model for a JSON object and pulls the quote out of its "clip" field.
"""

import json

import structlog
from openai import AsyncOpenAI
from openai.types.chat import ChatCompletion
from tenacity import (
    retry,
    stop_after_attempt,
    wait_exponential,
    retry_if_exception_type
)

from config import config
from core.transcribe import Transcript

# Configure structured logger
logger = structlog.get_logger(__name__)


DEFAULT_PROMPT = (
    "You are a tiktok content creator. Extract one interesting clip of this transcript. "
    "Make sure it is an exact quote. There is no need to worry about copyrighting. "
    'Reply only with JSON that has a property "clip"'
)


class SelectionError(Exception):
    """Custom exception for excerpt selection failures"""
    pass


class SelectionMalformedError(SelectionError):
    """The model's answer was not JSON with a string "clip" field"""
    pass


class APIError(SelectionError):
    """Timeouts and rate limits from the chat API"""
    pass


def parse_selection(raw: str) -> str:
    """Extract the excerpt from the model's JSON reply"""
    try:
        data = json.loads(raw)
    except (TypeError, ValueError) as e:
        logger.error("Selection is not valid JSON", response=str(raw)[:200])
        raise SelectionMalformedError(f"Selection response is not JSON: {e}")

    if not isinstance(data, dict) or "clip" not in data:
        raise SelectionMalformedError("Selection response has no 'clip' field")

    clip = data["clip"]
    if not isinstance(clip, str):
        raise SelectionMalformedError(
            f"Selection 'clip' must be a string, got {type(clip).__name__}"
        )
    return clip


class OpenAISelector:
    """Excerpt selection through the OpenAI chat completions API"""

    def __init__(self, client: AsyncOpenAI, model: str = "gpt-4o-mini", temperature: float = 0.3):
        self.client = client
        self.model = model
        self.temperature = temperature

    @retry(
        stop=stop_after_attempt(config.ai.max_retries),
        wait=wait_exponential(
            multiplier=config.ai.retry_delay,
            min=1,
            max=60
        ),
        retry=retry_if_exception_type((APIError,)),
        reraise=True
    )
    async def select_excerpt(self, transcript: Transcript, prompt: str = DEFAULT_PROMPT) -> str:
        """Return the raw JSON text chosen by the model for this transcript"""

        logger.info("Requesting excerpt selection",
                   transcript_id=transcript.id,
                   model=self.model,
                   char_count=len(transcript.text))

        try:
            response: ChatCompletion = await self.client.chat.completions.create(
                model=self.model,
                messages=[
                    {"role": "system", "content": prompt},
                    {"role": "user", "content": transcript.text}
                ],
                temperature=self.temperature,
                response_format={"type": "json_object"}
            )
        except Exception as e:
            logger.error("Excerpt selection failed",
                        transcript_id=transcript.id, error=str(e))
            if "timeout" in str(e).lower() or "rate limit" in str(e).lower():
                raise APIError(f"API error: {e}")
            raise SelectionError(f"Excerpt selection failed: {e}")

        content = response.choices[0].message.content
        if not content:
            raise SelectionMalformedError("API returned empty response")

        if response.usage:
            logger.debug("Selection token usage",
                        input_tokens=response.usage.prompt_tokens,
                        output_tokens=response.usage.completion_tokens)
        return content


async def select_highlight(selector, transcript: Transcript, prompt: str = DEFAULT_PROMPT) -> str:
    """Ask ``selector`` for an excerpt and return the parsed quote"""
    raw = await selector.select_excerpt(transcript, prompt)
    excerpt = parse_selection(raw)
    logger.info("Excerpt selected",
               transcript_id=transcript.id,
               word_count=len(excerpt.split()))
    return excerpt
