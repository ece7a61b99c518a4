"""Configuration loading and validation."""

from pathlib import Path
from typing import Annotated, Literal

import yaml
from pydantic import BaseModel, Field, SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


def clamp_unit(value: float) -> float:
    """Clamp a value into [0, 1]. NaN collapses to 0."""
    value = float(value)
    if value != value:
        return 0.0
    return max(0.0, min(1.0, value))


class TwitchConfig(BaseModel):
    """Twitch chat and Helix API configuration."""

    server: str = "irc.chat.twitch.tv"
    port: int = 6697
    ssl: bool = True
    username: str = "sidekick_bot"
    oauth_token: SecretStr | None = None
    channels: list[str] = Field(default_factory=lambda: ["#sidekick"])
    client_id: SecretStr | None = None
    access_token: SecretStr | None = None
    stream_info_interval_seconds: Annotated[float, Field(gt=0)] = 60.0

    @field_validator("channels")
    @classmethod
    def normalize_channels(cls, channels: list[str]) -> list[str]:
        """Lowercase channel names and ensure the IRC '#' prefix."""
        normalized = []
        for channel in channels:
            channel = channel.strip().lower()
            if not channel:
                continue
            normalized.append(channel if channel.startswith("#") else f"#{channel}")
        return normalized


class LLMConfig(BaseModel):
    """Completion provider configuration."""

    provider: Literal["anthropic", "gemini", "none"] = "anthropic"
    anthropic_api_key: SecretStr | None = None
    google_api_key: SecretStr | None = None
    anthropic_model: str = "claude-sonnet-4-5"
    gemini_model: str = "gemini-2.0-flash"
    timeout_seconds: Annotated[float, Field(gt=0)] = 15.0
    max_tokens: Annotated[int, Field(ge=1)] = 150
    temperature: Annotated[float, Field(ge=0.0, le=2.0)] = 0.8


class ResponseConfig(BaseModel):
    """Generated reply policy configuration."""

    intensity: float = 0.5
    min_interval_ms: Annotated[int, Field(ge=0)] = 30_000
    command_prefix: str = "!"
    bot_display_name: str | None = None
    queue_max_age_ms: Annotated[int, Field(ge=0)] = 60_000
    drain_interval_seconds: Annotated[float, Field(gt=0)] = 5.0
    gameplay_min_event_intensity: float = 0.7
    history_size: Annotated[int, Field(ge=1)] = 20
    prompt_history_size: Annotated[int, Field(ge=0)] = 5
    recent_events_size: Annotated[int, Field(ge=1)] = 10

    @field_validator("intensity", "gameplay_min_event_intensity")
    @classmethod
    def clamp_probability(cls, value: float) -> float:
        """Out-of-range values are clamped, never rejected."""
        return clamp_unit(value)


class ObserverConfig(BaseModel):
    """Gameplay observer configuration."""

    sensitivity: float = 0.5
    poll_interval_seconds: Annotated[float, Field(gt=0)] = 5.0

    @field_validator("sensitivity")
    @classmethod
    def clamp_sensitivity(cls, value: float) -> float:
        """Out-of-range values are clamped, never rejected."""
        return clamp_unit(value)


class ClipConfig(BaseModel):
    """Clip pipeline configuration."""

    cooldown_ms: Annotated[int, Field(ge=0)] = 60_000
    max_age_ms: Annotated[int, Field(ge=0)] = 120_000
    drain_interval_seconds: Annotated[float, Field(gt=0)] = 10.0
    timeout_seconds: Annotated[float, Field(gt=0)] = 10.0
    moment_buffer_size: Annotated[int, Field(ge=1)] = 50
    recent_clips_size: Annotated[int, Field(ge=1)] = 20
    announce_simulated: bool = False


class FilterConfig(BaseModel):
    """Outbound message filter configuration."""

    denied_words: set[str] = Field(default_factory=set)
    max_length: Annotated[int, Field(ge=4)] = 500


class PersonaConfig(BaseModel):
    """Bot persona used for the system prompt."""

    style: str = "fun and empathetic"
    traits: list[str] = Field(
        default_factory=lambda: ["creative", "encouraging", "humorous", "respectful"]
    )
    restrictions: list[str] = Field(
        default_factory=lambda: ["no spam", "no offensive content", "no spoilers"]
    )
    language: str = "English"
    persona_file: Path | None = None


class KnowledgeConfig(BaseModel):
    """Streamer knowledge facts."""

    path: Path | None = None


class MessagesConfig(BaseModel):
    """Chat templates for platform events."""

    follow: str = "Thanks for the follow, {username}! Welcome aboard!"
    subscribe: str = "{username} just subscribed (tier {tier})! Thank you!"
    cheer: str = "{username} cheered {bits} bits! Thank you!"


class RecurringConfig(BaseModel):
    """Reminders posted to the first channel while chat is quiet."""

    messages: list[str] = Field(
        default_factory=lambda: [
            "Remember to follow the channel so you never miss a stream!",
            "Type !help to see what the bot can do.",
            "Curious about the bot? Ask about it in chat!",
            "Enjoying the stream? Consider sharing it with a friend!",
        ]
    )
    interval_seconds: Annotated[float, Field(gt=0)] = 900.0
    min_chat_inactivity_ms: Annotated[int, Field(ge=0)] = 300_000


class FeaturesConfig(BaseModel):
    """Initial activation of each sub-engine."""

    chat_ai: bool = True
    observer: bool = True
    clipper: bool = True
    platform_events: bool = True
    chat_commands: bool = True
    recurring_messages: bool = False


class PanelConfig(BaseModel):
    """Web control panel configuration."""

    enabled: bool = True
    host: str = "127.0.0.1"
    port: int = 8080


class StorageConfig(BaseModel):
    """Local persistence configuration."""

    db_path: Path = Path("data/sidekick.db")


class Config(BaseSettings):
    """Main application configuration."""

    model_config = SettingsConfigDict(
        env_prefix="SIDEKICK_",
        env_nested_delimiter="__",
        extra="ignore",
    )

    twitch: TwitchConfig = Field(default_factory=TwitchConfig)
    llm: LLMConfig = Field(default_factory=LLMConfig)
    response: ResponseConfig = Field(default_factory=ResponseConfig)
    observer: ObserverConfig = Field(default_factory=ObserverConfig)
    clips: ClipConfig = Field(default_factory=ClipConfig)
    filters: FilterConfig = Field(default_factory=FilterConfig)
    persona: PersonaConfig = Field(default_factory=PersonaConfig)
    knowledge: KnowledgeConfig = Field(default_factory=KnowledgeConfig)
    messages: MessagesConfig = Field(default_factory=MessagesConfig)
    recurring: RecurringConfig = Field(default_factory=RecurringConfig)
    features: FeaturesConfig = Field(default_factory=FeaturesConfig)
    panel: PanelConfig = Field(default_factory=PanelConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)


def load_config(config_path: Path | str | None = None) -> Config:
    """Load configuration from YAML file and environment variables.

    Priority (highest to lowest):
    1. Environment variables (SIDEKICK_* prefix)
    2. YAML config file
    3. Default values

    Args:
        config_path: Path to YAML config file. If None, tries ./config.yaml

    Returns:
        Validated configuration object
    """
    if config_path is None:
        config_path = Path("config.yaml")
    else:
        config_path = Path(config_path)

    yaml_config: dict = {}
    if config_path.exists():
        with open(config_path) as f:
            yaml_config = yaml.safe_load(f) or {}

    # "llm:" with no values parses as None
    yaml_config = {k: v for k, v in yaml_config.items() if v is not None}

    return Config(**yaml_config)


def get_bot_name(config: Config) -> str:
    """Name the bot answers to in chat (mention detection)."""
    return config.response.bot_display_name or config.twitch.username
