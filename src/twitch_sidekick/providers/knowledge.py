"""Static streamer facts spliced into prompts."""

import logging
from pathlib import Path
from typing import Protocol

import yaml

logger = logging.getLogger(__name__)

DEFAULT_FACTS: dict[str, str] = {
    "streamer_name": "Streamer",
    "streaming_since": "2024",
    "favorite_games": "FPS, RPG, indie games",
    "streaming_schedule": "Flexible hours, usually in the evening",
    "pc_specs": "Gaming PC with a dedicated graphics card, 16GB RAM, SSD",
    "streaming_software": "OBS Studio",
    "discord_server": "Link in the channel description",
    "skill_level": "Intermediate/advanced",
    "play_style": "Aggressive but strategic",
    "community_rules": "Mutual respect, no spam, no toxicity",
    "fun_facts": "Loves pizza, coffee and indie games",
    "motto": "GG always, win or lose!",
}

# Used when no topic matches
IMPORTANT_KEYS = (
    "streamer_name",
    "favorite_games",
    "streaming_schedule",
    "pc_specs",
    "discord_server",
    "skill_level",
    "play_style",
    "motto",
)


class KnowledgeSource(Protocol):
    """Free-text facts for a topic."""

    def lookup(self, topic: str | None = None) -> str: ...


def _format(facts: dict[str, str]) -> str:
    return "\n".join(f"- {key.replace('_', ' ')}: {value}" for key, value in facts.items())


class StaticKnowledgeSource:
    """In-memory fact table, optionally loaded from a YAML mapping."""

    def __init__(self, facts: dict[str, str] | None = None):
        self._facts = dict(DEFAULT_FACTS if facts is None else facts)

    @classmethod
    def from_file(cls, path: Path | str) -> "StaticKnowledgeSource":
        """Load facts from YAML. Unreadable files fall back to the defaults."""
        path = Path(path)
        try:
            with open(path) as f:
                data = yaml.safe_load(f) or {}
        except (OSError, yaml.YAMLError) as e:
            logger.warning(f"Could not load knowledge from {path}: {e}")
            return cls()

        if not isinstance(data, dict):
            logger.warning(f"Knowledge file {path} is not a mapping, using defaults")
            return cls()

        facts = {str(k): str(v) for k, v in data.items() if v is not None}
        logger.info(f"Loaded {len(facts)} knowledge facts from {path}")
        return cls(facts)

    @property
    def facts(self) -> dict[str, str]:
        return dict(self._facts)

    def search(self, keyword: str) -> dict[str, str]:
        """Facts whose key or value contains the keyword."""
        keyword = keyword.lower().strip()
        if not keyword:
            return {}
        return {
            key: value
            for key, value in self._facts.items()
            if keyword in key.lower() or keyword in value.lower()
        }

    def lookup(self, topic: str | None = None) -> str:
        if topic:
            # Match any sufficiently long word of the topic
            related: dict[str, str] = {}
            for word in topic.split():
                if len(word) >= 4:
                    related.update(self.search(word.strip(".,!?")))
            if related:
                return _format(related)

        important = {k: self._facts[k] for k in IMPORTANT_KEYS if self._facts.get(k)}
        return _format(important)
