"""
Configuration management for Highlight Clipper

Using pydantic-settings for type-safe configuration with environment variable support.
All settings can be overridden via environment variables with the HLC_ prefix.
The OpenAI key is also read from the conventional OPENAI_API_KEY variable.
"""

from typing import Optional
from pydantic import AliasChoices, Field, validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class StreamPotConfig(BaseSettings):
    """Configuration for the StreamPot job backend"""

    model_config = SettingsConfigDict(
        env_prefix='HLC_STREAMPOT_',
        env_file='.env',
        env_file_encoding='utf-8',
        extra='ignore'
    )

    base_url: str = Field(
        default="http://127.0.0.1:3000",
        description="Address of the StreamPot server"
    )

    secret_key: Optional[str] = Field(
        default=None,
        description="Bearer token sent to StreamPot, if the server requires one"
    )

    request_timeout: int = Field(
        default=30,
        description="HTTP timeout in seconds for a single StreamPot request",
        ge=1,
        le=600
    )

    # Job polling
    poll_interval_ms: int = Field(
        default=5000,
        description="Delay between job status checks in milliseconds",
        ge=0
    )

    max_poll_attempts: Optional[int] = Field(
        default=None,
        description="Stop polling after this many checks (unset = poll until terminal)",
        ge=1
    )

    # Transport retries
    max_retries: int = Field(
        default=3,
        description="Maximum attempts for a failing StreamPot request",
        ge=1,
        le=10
    )

    retry_delay: int = Field(
        default=1,
        description="Initial retry delay in seconds",
        ge=1,
        le=60
    )

    @validator('base_url')
    def strip_trailing_slash(cls, v):
        return v.rstrip('/')


class AIConfig(BaseSettings):
    """Configuration for transcription and excerpt selection"""

    model_config = SettingsConfigDict(
        env_prefix='HLC_AI_',
        env_file='.env',
        env_file_encoding='utf-8',
        populate_by_name=True,
        extra='ignore'
    )

    openai_api_key: Optional[str] = Field(
        default=None,
        description="OpenAI API key; without it the pipeline cuts the fallback span",
        validation_alias=AliasChoices('HLC_AI_OPENAI_API_KEY', 'OPENAI_API_KEY')
    )

    transcription_provider: str = Field(
        default="openai",
        description="Where word timestamps come from: 'openai' API or local 'whisper'"
    )

    transcription_model: str = Field(
        default="whisper-1",
        description="OpenAI speech-to-text model"
    )

    whisper_model: str = Field(
        default="base",
        description="Local Whisper model used when transcription_provider is 'whisper'"
    )

    selection_model: str = Field(
        default="gpt-4o-mini",
        description="Chat model that picks the highlight excerpt"
    )

    temperature: float = Field(
        default=0.3,
        description="Sampling temperature for excerpt selection",
        ge=0.0,
        le=2.0
    )

    api_timeout: int = Field(
        default=120,
        description="OpenAI API timeout in seconds",
        ge=30,
        le=600
    )

    max_retries: int = Field(
        default=3,
        description="Maximum API retry attempts",
        ge=1,
        le=10
    )

    retry_delay: int = Field(
        default=1,
        description="Initial retry delay in seconds",
        ge=1,
        le=60
    )

    @validator('transcription_provider')
    def validate_transcription_provider(cls, v):
        valid_providers = ["openai", "whisper"]
        if v not in valid_providers:
            raise ValueError(f"Transcription provider must be one of {valid_providers}")
        return v

    @validator('whisper_model')
    def validate_whisper_model(cls, v):
        valid_models = ["tiny", "base", "small", "medium", "large"]
        if v not in valid_models:
            raise ValueError(f"Whisper model must be one of {valid_models}")
        return v

    @property
    def has_credentials(self) -> bool:
        return bool(self.openai_api_key)


class ClipConfig(BaseSettings):
    """Configuration for the clip produced from the located excerpt"""

    model_config = SettingsConfigDict(
        env_prefix='HLC_CLIP_',
        env_file='.env',
        env_file_encoding='utf-8',
        extra='ignore'
    )

    audio_output: str = Field(
        default="output.mp3",
        description="Output filename of the audio extraction job"
    )

    clip_output: str = Field(
        default="clip.mp4",
        description="Output filename of the clip cutting job"
    )

    time_scale: float = Field(
        default=1000.0,
        description="Transcript time units per second (1000 = milliseconds)",
        gt=0
    )

    # Span used when there is no API key, or when the excerpt is not found
    # and fallback_on_no_match is enabled
    fallback_start: float = Field(
        default=0.0,
        description="Fallback clip start in seconds",
        ge=0
    )

    fallback_end: float = Field(
        default=10.0,
        description="Fallback clip end in seconds",
        ge=0
    )

    fallback_on_no_match: bool = Field(
        default=False,
        description="Cut the fallback span instead of failing when the excerpt is not found"
    )

    @validator('fallback_end')
    def validate_fallback_end(cls, v, values):
        start = values.get('fallback_start')
        if start is not None and v < start:
            raise ValueError("fallback_end must not be before fallback_start")
        return v


class AppConfig(BaseSettings):
    """Main application configuration"""

    model_config = SettingsConfigDict(
        env_prefix='HLC_',
        env_file='.env',
        env_file_encoding='utf-8',
        extra='ignore'  # Ignore unknown environment variables
    )

    # Sub-configurations
    streampot: StreamPotConfig = Field(default_factory=StreamPotConfig)
    ai: AIConfig = Field(default_factory=AIConfig)
    clip: ClipConfig = Field(default_factory=ClipConfig)

    # Global settings
    debug: bool = Field(
        default=False,
        description="Enable debug logging"
    )


# Global configuration instance
config = AppConfig()
