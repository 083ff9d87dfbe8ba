"""Tests for the application context."""

import asyncio
import sys

import pytest

from lingoworker.config.schema import Settings
from lingoworker.orchestrator import AppContext, language_name, parse_text_stats, worker_command
from lingoworker.rpc.protocol import GenerateOptions
from lingoworker.utils.exceptions import RemoteFailure


class FakeChannel:
    def __init__(self, *, fail_first_load: bool = False):
        self.loads = 0
        self.fail_first_load = fail_first_load
        self.generated: list[tuple[str, str, GenerateOptions]] = []
        self.closed = False

    async def load(self, *, timeout=None) -> None:
        self.loads += 1
        await asyncio.sleep(0.01)
        if self.fail_first_load and self.loads == 1:
            raise RemoteFailure("download failed")

    async def generate(self, message: str, language: str, options: GenerateOptions) -> str:
        self.generated.append((message, language, options))
        return f"reply in {language}"

    async def close(self) -> None:
        self.closed = True


def _context(channel: FakeChannel, **worker) -> AppContext:
    settings = Settings(worker=worker) if worker else Settings()
    return AppContext(settings, channel=channel)


def test_parse_text_stats() -> None:
    stats = parse_text_stats(
        '{"wordCount": 2, "characterCount": 11, "characterCountNoSpaces": 10, '
        '"sentenceCount": 1, "averageWordLength": 5.0}'
    )
    assert stats is not None
    assert stats.word_count == 2
    assert stats.average_word_length == 5.0
    assert parse_text_stats("not json") is None
    assert parse_text_stats('{"wordCount": 2}') is None
    assert parse_text_stats("[]") is None


def test_worker_command_uses_configured_interpreter() -> None:
    settings = Settings()
    assert worker_command(settings) == [sys.executable, "-m", "lingoworker.worker"]
    assert worker_command(settings, config_path="/tmp/c.json")[-2:] == ["--config", "/tmp/c.json"]


def test_language_name() -> None:
    assert language_name("th") == "ไทย"
    assert language_name("xx") == "XX"


def test_analyze_before_start_defaults_to_english() -> None:
    ctx = _context(FakeChannel())
    analysis = ctx.analyze("Der Hund und die Katze")
    assert analysis.language == "en"
    assert analysis.stats is None


@pytest.mark.asyncio
async def test_chat_detects_language_and_forwards_options() -> None:
    channel = FakeChannel()
    async with _context(channel, max_new_tokens=40, do_sample=False) as ctx:
        turn = await ctx.chat("Der Hund und die Katze sind im Haus")

    assert turn.language == "de"
    assert turn.reply == "reply in de"
    assert turn.stats is not None and turn.stats.word_count == 8
    message, language, options = channel.generated[0]
    assert language == "de"
    assert options.max_new_tokens == 40
    assert options.do_sample is False
    assert channel.closed


@pytest.mark.asyncio
async def test_concurrent_chats_load_model_once() -> None:
    channel = FakeChannel()
    async with _context(channel) as ctx:
        turns = await asyncio.gather(ctx.chat("hello there"), ctx.chat("hola amigo"), ctx.chat("ciao"))
    assert channel.loads == 1
    assert len(turns) == 3


@pytest.mark.asyncio
async def test_failed_model_load_is_retried_on_next_chat() -> None:
    channel = FakeChannel(fail_first_load=True)
    async with _context(channel) as ctx:
        with pytest.raises(RemoteFailure):
            await ctx.chat("hello")
        turn = await ctx.chat("hello")
    assert channel.loads == 2
    assert turn.reply == "reply in en"


@pytest.mark.asyncio
async def test_preprocess_operations() -> None:
    ctx = _context(FakeChannel())
    ids = await ctx.preprocess_text("Hello   WORLD")
    assert len(ids) == 2

    image = await ctx.preprocess_image(bytes(range(16)), 2, 2, 1, 1)
    assert image.data == bytes(range(4))
    assert (image.width, image.height) == (1, 1)
    assert image.stats["scale_factor"] == 0.5


@pytest.mark.asyncio
async def test_chat_after_close_is_not_initialized() -> None:
    from lingoworker.rpc.channel import WorkerChannel
    from lingoworker.utils.exceptions import NotInitializedError

    async def never_spawned():
        raise AssertionError("closed channel must not spawn")

    ctx = AppContext(Settings(), channel=WorkerChannel(["unused"], spawner=never_spawned))
    await ctx.start()
    await ctx.close()
    with pytest.raises(NotInitializedError):
        await ctx.chat("hello")
