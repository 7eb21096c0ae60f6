"""ASGI entrypoint for the sticker bot API."""

from sticker_bot.api.app import create_app
from sticker_bot.containers import build_container

app = create_app(build_container())
