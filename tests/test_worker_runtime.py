"""Tests for the worker-side command loop and prompt handling."""

import asyncio
import json

import pytest

from lingoworker.rpc.protocol import GenerateOptions
from lingoworker.worker.prompts import (
    FALLBACK_REPLY,
    chat_messages,
    extract_assistant_response,
    extract_generated_text,
    plain_prompt,
    system_prompt_for,
)
from lingoworker.worker.runtime import WorkerRuntime


class RecordingBackend:
    def __init__(self, *, fail_loads: int = 0, reply: str | None = None):
        self.loads = 0
        self.fail_loads = fail_loads
        self.reply = reply
        self.calls: list[tuple[str, str, GenerateOptions]] = []
        self.closed = False

    async def load(self) -> None:
        self.loads += 1
        await asyncio.sleep(0.01)
        if self.loads <= self.fail_loads:
            raise RuntimeError("weights missing")

    async def generate(self, message: str, language: str, options: GenerateOptions) -> str:
        self.calls.append((message, language, options))
        if message == "explode":
            raise ValueError("tokenizer exploded")
        return self.reply if self.reply is not None else f"{language}:{message}"

    async def aclose(self) -> None:
        self.closed = True


def _runtime(backend) -> tuple[WorkerRuntime, list[dict]]:
    out: list[dict] = []
    return WorkerRuntime(backend, write=lambda line: out.append(json.loads(line))), out


@pytest.mark.asyncio
async def test_concurrent_loads_initialize_backend_once() -> None:
    backend = RecordingBackend()
    runtime, out = _runtime(backend)
    await asyncio.gather(
        runtime.handle_line('{"id": "a", "type": "load"}'),
        runtime.handle_line('{"id": "b", "type": "load"}'),
    )
    assert backend.loads == 1
    assert sorted(out, key=lambda f: f["id"]) == [
        {"id": "a", "type": "loaded"},
        {"id": "b", "type": "loaded"},
    ]


@pytest.mark.asyncio
async def test_generate_replies_with_result() -> None:
    backend = RecordingBackend()
    runtime, out = _runtime(backend)
    await runtime.handle_line('{"id": "a", "type": "load"}')
    await runtime.handle_line(
        '{"id": "b", "type": "generate", "message": "Bonjour", "language": "fr", '
        '"options": {"max_new_tokens": 12, "temperature": 0.1, "do_sample": false}}'
    )
    assert out[-1] == {"id": "b", "type": "result", "response": "fr:Bonjour"}
    assert backend.calls[0][2] == GenerateOptions(max_new_tokens=12, temperature=0.1, do_sample=False)


@pytest.mark.asyncio
async def test_empty_generation_uses_fallback_reply() -> None:
    runtime, out = _runtime(RecordingBackend(reply=""))
    await runtime.handle_line('{"id": "b", "type": "generate", "message": "x", "language": "en"}')
    assert out == [{"id": "b", "type": "result", "response": FALLBACK_REPLY}]


@pytest.mark.asyncio
async def test_backend_error_becomes_error_reply() -> None:
    runtime, out = _runtime(RecordingBackend())
    await runtime.handle_line('{"id": "b", "type": "generate", "message": "explode", "language": "en"}')
    assert out == [{"id": "b", "type": "error", "error": "tokenizer exploded"}]


@pytest.mark.asyncio
async def test_failed_load_can_be_retried() -> None:
    backend = RecordingBackend(fail_loads=1)
    runtime, out = _runtime(backend)
    await runtime.handle_line('{"id": "a", "type": "load"}')
    await runtime.handle_line('{"id": "b", "type": "load"}')
    assert out == [
        {"id": "a", "type": "error", "error": "weights missing"},
        {"id": "b", "type": "loaded"},
    ]
    assert backend.loads == 2


@pytest.mark.asyncio
async def test_malformed_command_with_id_gets_error_reply() -> None:
    runtime, out = _runtime(RecordingBackend())
    await runtime.handle_line('{"id": "b", "type": "generate", "language": "en"}')
    assert out[0]["id"] == "b"
    assert out[0]["type"] == "error"
    assert out[0]["error"].startswith("malformed command")


@pytest.mark.asyncio
async def test_unreadable_command_is_ignored() -> None:
    runtime, out = _runtime(RecordingBackend())
    await runtime.handle_line("garbage")
    await runtime.handle_line('{"type": "load"}')
    await runtime.handle_line("   ")
    assert out == []


@pytest.mark.asyncio
async def test_serve_handles_overlapping_commands_until_eof() -> None:
    backend = RecordingBackend()
    runtime, out = _runtime(backend)
    reader = asyncio.StreamReader()
    reader.feed_data(b'{"id": "a", "type": "load"}\n')
    reader.feed_data(b'{"id": "b", "type": "generate", "message": "uno", "language": "es"}\n')
    reader.feed_data(b'{"id": "c", "type": "generate", "message": "due", "language": "it"}\n')

    serving = asyncio.create_task(runtime.serve(reader))
    for _ in range(200):
        if len(out) == 3:
            break
        await asyncio.sleep(0.005)
    reader.feed_eof()
    await serving

    assert {f["id"]: f.get("response") for f in out} == {"a": None, "b": "es:uno", "c": "it:due"}
    assert backend.loads == 1
    assert backend.closed


def test_system_prompt_falls_back_to_english() -> None:
    assert "Deutsch" in system_prompt_for("de")
    assert system_prompt_for("xx") == system_prompt_for("en")
    assert chat_messages("hola", "es")[0]["content"] == system_prompt_for("es")
    assert plain_prompt("hi", "en").endswith("User: hi\nAssistant:")


def test_extract_generated_text_shapes() -> None:
    assert extract_generated_text([{"generated_text": "hello"}]) == "hello"
    assert extract_generated_text({"generated_text": "hi"}) == "hi"
    assert extract_generated_text([]) == ""
    assert extract_generated_text([{"generated_text": [{"role": "assistant"}]}]) == ""


def test_extract_assistant_response_strips_prompt_and_markers() -> None:
    prompt = (
        "<|im_start|>system\nYou are a helpful assistant.<|im_end|>\n"
        "<|im_start|>user\nHi<|im_end|>\n<|im_start|>assistant\n"
    )
    generated = prompt + "Hello there!<|im_end|>"
    assert extract_assistant_response(generated, prompt) == "Hello there!"


def test_extract_assistant_response_drops_role_labels() -> None:
    assert extract_assistant_response("assistant: Ciao!", "") == "Ciao!"
    assert extract_assistant_response("User: hi\nassistant\nSalut", "") == "Salut"


@pytest.mark.asyncio
async def test_failed_reply_write_becomes_error_frame() -> None:
    out: list[dict] = []

    def latin1_write(line: str) -> None:
        line.encode("latin-1")
        out.append(json.loads(line))

    runtime = WorkerRuntime(RecordingBackend(reply="สวัสดีครับ"), write=latin1_write)
    await runtime.handle_line('{"id": "b", "type": "generate", "message": "hi", "language": "th"}')

    assert len(out) == 1
    assert out[0]["id"] == "b"
    assert out[0]["type"] == "error"
    assert out[0]["error"].startswith("failed to write reply")


@pytest.mark.asyncio
async def test_broken_writer_does_not_crash_handler() -> None:
    def broken(line: str) -> None:
        raise BrokenPipeError("stdout closed")

    runtime = WorkerRuntime(RecordingBackend(), write=broken)
    await runtime.handle_line('{"id": "a", "type": "load"}')


def test_writer_emits_utf8_bytes() -> None:
    import io

    from lingoworker.worker.runtime import _make_writer

    buffer = io.BytesIO()
    _make_writer(buffer)('{"response": "नमस्ते"}')
    assert buffer.getvalue() == '{"response": "नमस्ते"}\n'.encode("utf-8")
