"""Reference build of the multilingual text module (language detection, stats, normalization)."""

from __future__ import annotations

import json
import unicodedata

__all__ = ["memory", "init", "detect_language", "get_text_stats", "normalize_text"]

PAGE_SIZE = 64 * 1024

memory = bytearray(PAGE_SIZE)

# Order breaks score ties.
LANGUAGE_ORDER = ("en", "de", "fr", "it", "pt", "hi", "es", "th")

_COMMON_WORDS: dict[str, tuple[frozenset[str], int]] = {
    "en": (frozenset("the be to of and a in that have i it for not on with he as you do at".split()), 2),
    "de": (frozenset("der die und in den von zu das mit sich des auf für ist im dem nicht ein eine als".split()), 2),
    "fr": (frozenset("le de et à un il être en avoir que pour dans ce son une sur avec ne se".split()), 2),
    "it": (frozenset("il di e la a un per è in una sono che si con non le da al i come".split()), 2),
    "pt": (frozenset("o de e do da em um para é com não uma os no se na por mais as como".split()), 2),
    "hi": (frozenset("है और के में को से का की यह वह हो नहीं तो भी या पर इस उस जो कि".split()), 3),
    "es": (frozenset("el la de que y a en un ser se no haber por con su para como estar tener le".split()), 2),
    "th": (frozenset("ที่ เป็น และ ใน ของ จะ ได้ ไม่ มี ก็ แล้ว กับ ให้ ไป มา นี้ นั้น เขา เธอ เรา".split()), 3),
}

_DIACRITICS: tuple[tuple[str, frozenset[str], int], ...] = (
    ("fr", frozenset("àâéèêëîïôùûüÿç"), 3),
    ("es", frozenset("áéíóúñü"), 3),
    ("pt", frozenset("áàâãéêíóôõúüç"), 3),
    ("it", frozenset("àèéìòù"), 3),
    ("de", frozenset("äöüß"), 5),
)

_started = False


def init() -> None:
    """Start hook; clears the linear memory once."""
    global _started
    if not _started:
        memory[:] = bytes(len(memory))
        _started = True


def _is_word_char(c: str) -> bool:
    return c.isalnum() or unicodedata.category(c).startswith("M")


def _trim_word(word: str) -> str:
    start, end = 0, len(word)
    while start < end and not _is_word_char(word[start]):
        start += 1
    while end > start and not _is_word_char(word[end - 1]):
        end -= 1
    return word[start:end]


def _has_range(text: str, lo: int, hi: int) -> bool:
    return any(lo <= ord(c) <= hi for c in text)


def detect_language(text: str) -> str:
    """Return one of en, de, fr, it, pt, hi, es, th."""
    if not text.strip():
        return "en"
    words = text.lower().split()
    scores = dict.fromkeys(LANGUAGE_ORDER, 0)

    for word in words[:50]:
        trimmed = _trim_word(word)
        if not trimmed:
            continue
        for lang, (vocab, weight) in _COMMON_WORDS.items():
            if trimmed in vocab:
                scores[lang] += weight

    if _has_range(text, 0x0900, 0x097F):
        scores["hi"] += 10
    if _has_range(text, 0x0E00, 0x0E7F):
        scores["th"] += 10

    chars = set(text)
    for lang, marks, weight in _DIACRITICS:
        if chars & marks:
            scores[lang] += weight

    best = max(LANGUAGE_ORDER, key=lambda lang: scores[lang])
    return best if scores[best] > 0 else "en"


def get_text_stats(text: str) -> str:
    """Word, character and sentence statistics as a JSON record."""
    words = text.split()
    word_count = len(words)
    sentences = [s for s in text.replace("!", ".").replace("?", ".").split(".") if s.strip()]
    total_len = sum(len(w) for w in words)
    stats = {
        "wordCount": word_count,
        "characterCount": len(text),
        "characterCountNoSpaces": sum(1 for c in text if not c.isspace()),
        "sentenceCount": len(sentences),
        "averageWordLength": total_len / word_count if word_count else 0.0,
    }
    return json.dumps(stats)


def normalize_text(text: str, language: str) -> str:
    """Hindi and Thai are trimmed; every other language is lowercased."""
    if language in ("hi", "th"):
        return text.strip()
    return text.lower()
