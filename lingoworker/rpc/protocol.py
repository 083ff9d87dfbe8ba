"""Wire messages exchanged with the inference worker (one JSON object per line)."""

from __future__ import annotations

import json
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError


class GenerateOptions(BaseModel):
    """Sampling options forwarded to the text generator."""

    max_new_tokens: int = Field(150, ge=1)
    temperature: float = Field(0.7, ge=0.0)
    do_sample: bool = True


class LoadCommand(BaseModel):
    id: str
    type: Literal["load"] = "load"


class GenerateCommand(BaseModel):
    id: str
    type: Literal["generate"] = "generate"
    message: str
    language: str
    options: GenerateOptions = Field(default_factory=GenerateOptions)


class LoadedReply(BaseModel):
    id: str
    type: Literal["loaded"] = "loaded"


class ResultReply(BaseModel):
    id: str
    type: Literal["result"] = "result"
    response: str


class ErrorReply(BaseModel):
    id: str
    type: Literal["error"] = "error"
    error: str


class _Envelope(BaseModel):
    """Just enough of a frame to correlate it."""

    model_config = ConfigDict(extra="allow")

    id: str


WorkerCommand = Annotated[Union[LoadCommand, GenerateCommand], Field(discriminator="type")]
WorkerReply = Annotated[Union[LoadedReply, ResultReply, ErrorReply], Field(discriminator="type")]

_command_adapter: TypeAdapter[LoadCommand | GenerateCommand] = TypeAdapter(WorkerCommand)
_reply_adapter: TypeAdapter[LoadedReply | ResultReply | ErrorReply] = TypeAdapter(WorkerReply)


class FrameError(ValueError):
    """A frame could not be decoded; ``frame_id`` is set when the id was readable."""

    def __init__(self, message: str, frame_id: str | None = None):
        super().__init__(message)
        self.frame_id = frame_id


def encode_frame(message: BaseModel) -> str:
    """Encode a message into one line of JSON (no trailing newline)."""
    return json.dumps(message.model_dump(mode="json"), ensure_ascii=False)


def _load_json(line: str) -> Any:
    try:
        return json.loads(line)
    except json.JSONDecodeError as e:
        raise FrameError(f"invalid JSON frame: {e.msg}") from e


def _frame_id(payload: Any) -> str | None:
    try:
        return _Envelope.model_validate(payload).id
    except ValidationError:
        return None


def _describe(e: ValidationError) -> str:
    parts = []
    for err in e.errors():
        loc = ".".join(str(x) for x in err.get("loc", ())) or "frame"
        parts.append(f"{loc}: {err.get('msg', 'invalid')}")
    return "; ".join(parts)


def decode_reply(line: str) -> LoadedReply | ResultReply | ErrorReply:
    """Decode a worker reply, raising FrameError on any shape problem."""
    payload = _load_json(line)
    try:
        return _reply_adapter.validate_python(payload)
    except ValidationError as e:
        raise FrameError(f"malformed worker reply: {_describe(e)}", _frame_id(payload)) from e


def decode_command(line: str) -> LoadCommand | GenerateCommand:
    """Decode an orchestrator command, raising FrameError on any shape problem."""
    payload = _load_json(line)
    try:
        return _command_adapter.validate_python(payload)
    except ValidationError as e:
        raise FrameError(f"malformed command: {_describe(e)}", _frame_id(payload)) from e
