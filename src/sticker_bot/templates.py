"""Sticker template catalog."""

import httpx

from sticker_bot.domain.errors import ConfigurationError
from sticker_bot.domain.templates import Template

_ASSET_BASE_URL = (
    "https://raw.githubusercontent.com/Santino42-gr/NewPeople_stickers"
    "/main/assets/memes"
)

_CATALOG: tuple[tuple[str, str], ...] = (
    ("1", "😄"),
    ("2", "😎"),
    ("3", "🤪"),
    ("4", "😏"),
    ("5", "🥳"),
    ("6", "🤯"),
    ("7", "😂"),
    ("8", "🔥"),
    ("9", "💪"),
    ("10", "🚀"),
)

STICKER_TEMPLATES: tuple[Template, ...] = tuple(
    Template(
        id=template_id,
        display_name=f"Meme Template {template_id}",
        emoji=emoji,
        source_image_url=f"{_ASSET_BASE_URL}/meme-{template_id}.png",
        description="Meme template for stickers",
    )
    for template_id, emoji in _CATALOG
)

MAX_EMOJI_LENGTH = 2
REQUIRED_FIELDS = ("id", "display_name", "emoji", "source_image_url", "description")


def validate_template(template: Template) -> None:
    """Raise ConfigurationError when a template is unusable."""
    for field_name in REQUIRED_FIELDS:
        if not getattr(template, field_name):
            raise ConfigurationError(
                f"Template {template.id or '?'} missing required field: {field_name}"
            )
    if len(template.emoji) > MAX_EMOJI_LENGTH:
        raise ConfigurationError(
            f"Invalid emoji for template {template.id}: {template.emoji}"
        )
    if not is_absolute_http_url(template.source_image_url):
        raise ConfigurationError(
            f"Invalid URL for template {template.id}: {template.source_image_url}"
        )


def load_templates(
    templates: tuple[Template, ...] | list[Template] = STICKER_TEMPLATES,
) -> list[Template]:
    """Validate the catalog and return a copy of it."""
    if not templates:
        raise ConfigurationError("Template catalog is empty")
    seen: set[str] = set()
    for template in templates:
        validate_template(template)
        if template.id in seen:
            raise ConfigurationError(f"Duplicate template id: {template.id}")
        seen.add(template.id)
    return list(templates)


def is_absolute_http_url(value: str) -> bool:
    """Return true for absolute http(s) URLs with a host."""
    try:
        url = httpx.URL(value)
    except (httpx.InvalidURL, TypeError):
        return False
    return url.scheme in {"http", "https"} and bool(url.host)
