"""Reference build of the preprocessing module (text tokenization, RGBA resizing)."""

from __future__ import annotations

__all__ = ["memory", "normalize_text", "preprocess_text", "preprocess_image", "get_preprocess_stats"]

memory = bytearray(64 * 1024)

_FNV_OFFSET = 0x811C9DC5
_FNV_PRIME = 0x01000193


def _fnv1a(word: str) -> int:
    h = _FNV_OFFSET
    for byte in word.encode("utf-8"):
        h ^= byte
        h = (h * _FNV_PRIME) & 0xFFFFFFFF
    return h


def normalize_text(text: str) -> str:
    """Lowercase and collapse whitespace."""
    return " ".join(text.lower().split())


def preprocess_text(text: str) -> list[int]:
    """Token ids (32-bit FNV-1a per normalized word)."""
    return [_fnv1a(word) for word in normalize_text(text).split(" ") if word]


def preprocess_image(
    data: bytes | bytearray | memoryview,
    source_width: int,
    source_height: int,
    target_width: int,
    target_height: int,
) -> bytes:
    """Nearest-neighbour resize of an RGBA buffer."""
    if min(source_width, source_height, target_width, target_height) <= 0:
        raise ValueError("image dimensions must be positive")
    src = bytes(data)
    if len(src) != source_width * source_height * 4:
        raise ValueError(
            f"buffer length {len(src)} does not match {source_width}x{source_height} RGBA"
        )
    out = bytearray(target_width * target_height * 4)
    for y in range(target_height):
        sy = y * source_height // target_height
        row = sy * source_width
        for x in range(target_width):
            sx = x * source_width // target_width
            s = (row + sx) * 4
            d = (y * target_width + x) * 4
            out[d:d + 4] = src[s:s + 4]
    return bytes(out)


def get_preprocess_stats(original_size: int, target_size: int) -> dict[str, float]:
    return {
        "original_size": original_size,
        "target_size": target_size,
        "scale_factor": target_size / original_size if original_size else 0.0,
    }
