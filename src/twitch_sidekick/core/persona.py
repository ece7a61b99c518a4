"""Bot persona and system prompt."""

import logging
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any

import frontmatter

from twitch_sidekick.config import PersonaConfig

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Persona:
    """Style, traits and restrictions rendered into the system prompt."""

    style: str
    traits: tuple[str, ...] = ()
    restrictions: tuple[str, ...] = ()
    language: str = "English"
    extra_instructions: str = ""
    model: str | None = None
    max_tokens: int | None = None
    temperature: float | None = None
    raw_frontmatter: dict[str, Any] = field(default_factory=dict, compare=False)

    @classmethod
    def from_config(cls, config: PersonaConfig) -> "Persona":
        persona = cls(
            style=config.style,
            traits=tuple(config.traits),
            restrictions=tuple(config.restrictions),
            language=config.language,
        )
        if config.persona_file:
            persona = load_persona_file(config.persona_file, base=persona)
        return persona


def load_persona_file(path: Path | str, base: Persona) -> Persona:
    """Overlay a markdown persona file onto ``base``.

    The body becomes extra instructions; frontmatter keys ``style``,
    ``traits``, ``restrictions``, ``language``, ``model``, ``max_tokens``
    and ``temperature`` override the base values.
    """
    path = Path(path)
    if not path.exists():
        logger.warning(f"Persona file not found: {path}")
        return base

    try:
        post = frontmatter.load(path)
    except Exception as e:
        logger.error(f"Failed to load persona file {path}: {e}")
        return base

    overrides: dict[str, Any] = {"extra_instructions": post.content.strip()}
    for key in ("style", "language", "model"):
        if post.get(key):
            overrides[key] = str(post[key])
    for key in ("traits", "restrictions"):
        if post.get(key):
            overrides[key] = tuple(str(v) for v in post[key])
    if post.get("max_tokens") is not None:
        overrides["max_tokens"] = int(post["max_tokens"])
    if post.get("temperature") is not None:
        overrides["temperature"] = float(post["temperature"])
    overrides["raw_frontmatter"] = dict(post.metadata)

    logger.info(f"Loaded persona from {path}")
    return replace(base, **overrides)


def get_system_prompt(persona: Persona, bot_name: str) -> str:
    """Render the persona into the system section of a prompt."""
    prompt = f"""You are {bot_name}, a Twitch chat bot with a {persona.style} personality.
Your traits: {', '.join(persona.traits) or 'friendly'}.
Restrictions: {', '.join(persona.restrictions) or 'none'}.

Keep replies short (two sentences at most), natural and engaged with the community.
Reply in {persona.language} and keep everything appropriate for all ages.
Do not use markdown formatting. Do not prefix your reply with your name."""

    if persona.extra_instructions:
        prompt += f"\n\n{persona.extra_instructions}"
    return prompt
