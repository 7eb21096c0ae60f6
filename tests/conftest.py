"""Shared test fixtures."""

import asyncio
import io
import threading
from dataclasses import dataclass, field
from datetime import date

import httpx
import pytest
from PIL import Image

from sticker_bot.adapters.telegram_client import TelegramClient
from sticker_bot.config import Settings
from sticker_bot.containers import AppContainer
from sticker_bot.domain.errors import StickerSetApiError
from sticker_bot.domain.images import NormalizedImage
from sticker_bot.domain.templates import Template
from sticker_bot.domain.usage import UsageRecord
from sticker_bot.services.assembler import PackAssembler
from sticker_bot.services.batches import TemplateBatchOrchestrator
from sticker_bot.services.commands import HelpCommandHandler, StartCommandHandler
from sticker_bot.services.fallback import FallbackSynthesizer
from sticker_bot.services.generation import GenerationController
from sticker_bot.services.images import ImageNormalizer
from sticker_bot.services.sessions import GenerationSessionStore
from sticker_bot.services.usage import UsageRepository, UsageService
from sticker_bot.templates import load_templates


def make_image_bytes(
    width: int = 640,
    height: int = 480,
    image_format: str = "PNG",
    color: tuple[int, int, int] = (200, 120, 40),
) -> bytes:
    """Render a solid-color test image."""
    buffer = io.BytesIO()
    Image.new("RGB", (width, height), color).save(buffer, format=image_format)
    return buffer.getvalue()


def make_template(template_id: str, emoji: str = "😄") -> Template:
    return Template(
        id=template_id,
        display_name=f"Template {template_id}",
        emoji=emoji,
        source_image_url=f"https://example.com/templates/{template_id}.png",
        description="Test template",
    )


async def no_sleep(seconds: float) -> None:
    await asyncio.sleep(0)


async def open_gate_later(gate: threading.Event, delay: float = 0.05) -> None:
    await asyncio.sleep(delay)
    gate.set()


@dataclass
class GatedNormalizer(ImageNormalizer):
    """Normalizer whose re-encode waits until another coroutine opens a gate."""

    gate: threading.Event = field(default_factory=threading.Event)
    released: list[bool] = field(default_factory=list)

    def prepare_sticker(self, data: bytes) -> NormalizedImage:
        self.released.append(self.gate.wait(timeout=2.0))
        return super().prepare_sticker(data)


@dataclass
class GatedSynthesizer(FallbackSynthesizer):
    """Fallback synthesizer that waits until another coroutine opens a gate."""

    gate: threading.Event = field(default_factory=threading.Event)
    released: list[bool] = field(default_factory=list)

    def synthesize(self, template: Template, image: NormalizedImage) -> bytes:
        self.released.append(self.gate.wait(timeout=2.0))
        return super().synthesize(template, image)


@dataclass
class FakeTelegramClient(TelegramClient):
    """Fake Telegram client that records messages."""

    messages: list[tuple[int, str]] = field(default_factory=list)
    actions: list[tuple[int, str]] = field(default_factory=list)
    commands: list[dict[str, str]] | None = None
    menu_button: dict[str, object] | None = None

    async def send_message(
        self, chat_id: int, text: str, reply_markup: dict | None = None
    ) -> None:
        self.messages.append((chat_id, text))

    async def send_chat_action(self, chat_id: int, action: str) -> None:
        self.actions.append((chat_id, action))

    async def set_my_commands(self, commands: list[dict[str, str]]) -> None:
        self.commands = commands

    async def set_chat_menu_button(
        self, menu_button: dict[str, object] | None = None
    ) -> None:
        self.menu_button = menu_button


@dataclass
class FakeTelegramFileClient:
    """Fake Telegram file client returning static bytes after scripted failures."""

    content: bytes = field(default_factory=make_image_bytes)
    failures: int = 0
    calls: int = 0

    async def download_file_bytes(
        self, file_id: str, max_bytes: int | None = None
    ) -> bytes:
        self.calls += 1
        if self.calls <= self.failures:
            raise httpx.ConnectError("connection refused")
        return self.content


@dataclass
class FakeFaceSwap:
    """Face swap stand-in scripted per template URL."""

    results: dict[str, list[bytes | Exception]] = field(default_factory=dict)
    default: bytes = field(default_factory=lambda: make_image_bytes(300, 300))
    delay: float = 0.0
    delays: dict[str, float] = field(default_factory=dict)
    calls: list[str] = field(default_factory=list)
    completed: list[str] = field(default_factory=list)
    in_flight: int = 0
    max_in_flight: int = 0

    async def swap_face(  # noqa: PLR0913
        self,
        target_url: str,
        source_url: str,
        max_wait: float,
        poll_interval: float,
        options: dict[str, object] | None = None,
    ) -> bytes:
        self.calls.append(target_url)
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            await asyncio.sleep(self.delays.get(target_url, self.delay))
            scripted = self.results.get(target_url)
            result = scripted.pop(0) if scripted else self.default
            if isinstance(result, Exception):
                raise result
            self.completed.append(target_url)
            return result
        finally:
            self.in_flight -= 1


@dataclass
class FakeStickerSetClient:
    """Fake sticker set client recording calls in order."""

    add_failures: list[Exception | None] = field(default_factory=list)
    create_failures: list[Exception | None] = field(default_factory=list)
    upload_error: Exception | None = None
    failing_uploads: set[int] = field(default_factory=set)
    reported_count: int | None = None
    uploads: int = 0
    upload_attempts: int = 0
    created: list[dict[str, object]] = field(default_factory=list)
    added: list[tuple[str, dict[str, object], dict[str, bytes] | None]] = field(
        default_factory=list
    )
    add_calls: int = 0
    create_calls: int = 0

    async def upload_sticker_file(self, user_id: int, data: bytes) -> str:
        self.upload_attempts += 1
        if self.upload_error is not None:
            raise self.upload_error
        if self.upload_attempts in self.failing_uploads:
            raise sticker_error("file upload rejected")
        self.uploads += 1
        return f"file-{self.upload_attempts}"

    async def create_new_sticker_set(
        self,
        user_id: int,
        name: str,
        title: str,
        sticker: dict[str, object],
        files: dict[str, bytes] | None = None,
    ) -> None:
        self.create_calls += 1
        failure = self.create_failures.pop(0) if self.create_failures else None
        if failure is not None:
            raise failure
        self.created.append(
            {"name": name, "title": title, "sticker": sticker, "files": files}
        )

    async def add_sticker_to_set(
        self,
        user_id: int,
        name: str,
        sticker: dict[str, object],
        files: dict[str, bytes] | None = None,
    ) -> None:
        self.add_calls += 1
        failure = self.add_failures.pop(0) if self.add_failures else None
        if failure is not None:
            raise failure
        self.added.append((name, sticker, files))

    async def get_sticker_set(self, name: str) -> dict[str, object]:
        count = (
            self.reported_count
            if self.reported_count is not None
            else len(self.created) + len(self.added)
        )
        return {"name": name, "stickers": [{} for _ in range(count)]}

    def sticker_set_url(self, name: str) -> str:
        return f"https://t.me/addstickers/{name}"


def sticker_error(description: str) -> StickerSetApiError:
    return StickerSetApiError(f"Bad Request: {description}", status_code=400)


@dataclass
class InMemoryUsageRepository(UsageRepository):
    """In-memory usage repository for tests."""

    records: dict[int, UsageRecord] = field(default_factory=dict)
    logs: list[tuple[int, str, dict[str, object]]] = field(default_factory=list)
    broken: bool = False

    def get_usage(self, user_id: int) -> UsageRecord | None:
        if self.broken:
            raise RuntimeError("database unavailable")
        return self.records.get(user_id)

    def save_usage(self, record: UsageRecord) -> None:
        if self.broken:
            raise RuntimeError("database unavailable")
        self.records[record.user_id] = record

    def create_log(self, user_id: int, stage: str, details: dict[str, object]) -> None:
        if self.broken:
            raise RuntimeError("database unavailable")
        self.logs.append((user_id, stage, details))


TODAY = date(2026, 3, 14)


def build_controller(  # noqa: PLR0913
    telegram_client: FakeTelegramClient,
    sticker_client: FakeStickerSetClient,
    usage_repository: InMemoryUsageRepository | None = None,
    face_swap: FakeFaceSwap | None = None,
    file_client: FakeTelegramFileClient | None = None,
    templates: list[Template] | None = None,
    **overrides: object,
) -> GenerationController:
    """Wire a controller over fakes with zero delays."""
    normalizer = ImageNormalizer(
        file_client=file_client or FakeTelegramFileClient(), sleep=no_sleep
    )
    orchestrator = TemplateBatchOrchestrator(
        normalizer=normalizer,
        fallback=FallbackSynthesizer(),
        face_swap=face_swap,
    )
    assembler = PackAssembler(
        client=sticker_client,
        bot_username="TestStickersBot",
        append_delay_seconds=0,
        retry_delay_seconds=0,
        sleep=no_sleep,
    )
    return GenerationController(
        telegram_client=telegram_client,
        normalizer=normalizer,
        orchestrator=orchestrator,
        assembler=assembler,
        usage_service=UsageService(
            repository=usage_repository, today=lambda: TODAY
        ),
        session_store=GenerationSessionStore(),
        templates=templates or load_templates(),
        **overrides,
    )


@pytest.fixture
def settings() -> Settings:
    return Settings(
        telegram_bot_token="test-token",
        piapi_api_key="piapi-key",
        _env_file=None,
    )


@pytest.fixture
def telegram_client() -> FakeTelegramClient:
    return FakeTelegramClient()


@pytest.fixture
def sticker_client() -> FakeStickerSetClient:
    return FakeStickerSetClient()


@pytest.fixture
def usage_repository() -> InMemoryUsageRepository:
    return InMemoryUsageRepository()


@pytest.fixture
def container(
    settings: Settings,
    telegram_client: FakeTelegramClient,
    sticker_client: FakeStickerSetClient,
    usage_repository: InMemoryUsageRepository,
) -> AppContainer:
    controller = build_controller(telegram_client, sticker_client, usage_repository)

    async def close_resources() -> None:
        return None

    return AppContainer(
        settings=settings,
        telegram_client=telegram_client,
        templates=list(controller.templates),
        start_command_handler=StartCommandHandler(telegram_client),
        help_command_handler=HelpCommandHandler(telegram_client),
        generation_controller=controller,
        close_resources=close_resources,
    )
