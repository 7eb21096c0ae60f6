"""Tests for the template catalog."""

from dataclasses import replace

import pytest

from sticker_bot.domain.errors import ConfigurationError
from sticker_bot.templates import STICKER_TEMPLATES, load_templates
from tests.conftest import make_template


def test_default_catalog_loads() -> None:
    templates = load_templates()

    assert len(templates) == len(STICKER_TEMPLATES)
    assert len({template.id for template in templates}) == len(templates)
    assert all(
        template.source_image_url.startswith("https://") for template in templates
    )


def test_empty_catalog_fails() -> None:
    with pytest.raises(ConfigurationError):
        load_templates(())


def test_duplicate_ids_fail() -> None:
    with pytest.raises(ConfigurationError, match="Duplicate"):
        load_templates([make_template("a"), make_template("a")])


def test_long_emoji_fails() -> None:
    with pytest.raises(ConfigurationError, match="emoji"):
        load_templates([make_template("a", emoji="😄😄😄")])


def test_relative_url_fails() -> None:
    template = replace(make_template("a"), source_image_url="/memes/a.png")

    with pytest.raises(ConfigurationError, match="URL"):
        load_templates([template])


def test_missing_field_fails() -> None:
    template = replace(make_template("a"), display_name="")

    with pytest.raises(ConfigurationError, match="display_name"):
        load_templates([template])
