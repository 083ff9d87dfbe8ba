"""Worker RPC protocol and channel."""

from lingoworker.rpc.channel import PendingCall, WorkerChannel
from lingoworker.rpc.protocol import (
    ErrorReply,
    FrameError,
    GenerateCommand,
    GenerateOptions,
    LoadCommand,
    LoadedReply,
    ResultReply,
    decode_command,
    decode_reply,
    encode_frame,
)

__all__ = [
    "WorkerChannel",
    "PendingCall",
    "GenerateOptions",
    "LoadCommand",
    "GenerateCommand",
    "LoadedReply",
    "ResultReply",
    "ErrorReply",
    "FrameError",
    "encode_frame",
    "decode_reply",
    "decode_command",
]
