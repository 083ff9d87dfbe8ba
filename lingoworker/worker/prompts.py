"""Language system prompts and assistant-text extraction."""

from __future__ import annotations

import re
from typing import Any

LANGUAGE_PROMPTS: dict[str, str] = {
    "en": "You are a helpful assistant. Respond in English.",
    "de": "Du bist ein hilfreicher Assistent. Antworte auf Deutsch.",
    "fr": "Vous êtes un assistant utile. Répondez en français.",
    "it": "Sei un assistente utile. Rispondi in italiano.",
    "pt": "Você é um assistente útil. Responda em português.",
    "hi": "आप एक सहायक सहायक हैं। हिंदी में उत्तर दें।",
    "es": "Eres un asistente útil. Responde en español.",
    "th": "คุณเป็นผู้ช่วยที่เป็นประโยชน์ ตอบเป็นภาษาไทย",
}

FALLBACK_REPLY = "I understand."

_SPECIAL_TOKENS = (
    re.compile(r"<\|im_start\|>assistant\s*"),
    re.compile(r"<\|im_end\|>"),
    re.compile(r"<\|im_start\|>"),
    re.compile(r"<\|begin_of_text\|>"),
    re.compile(r"<\|end_of_text\|>"),
)
_LEADING_ROLE = re.compile(r"^\s*(user|assistant)[:\s]+", re.IGNORECASE)
_LEADING_USER = re.compile(r"^\s*user[:\s]+", re.IGNORECASE)


def system_prompt_for(language: str) -> str:
    return LANGUAGE_PROMPTS.get(language, LANGUAGE_PROMPTS["en"])


def chat_messages(message: str, language: str) -> list[dict[str, str]]:
    return [
        {"role": "system", "content": system_prompt_for(language)},
        {"role": "user", "content": message},
    ]


def plain_prompt(message: str, language: str) -> str:
    """Prompt used when the tokenizer has no chat template."""
    return f"{system_prompt_for(language)}\n\nUser: {message}\nAssistant:"


def extract_generated_text(result: Any) -> str:
    """Pull ``generated_text`` out of a text-generation pipeline result."""
    item = result[0] if isinstance(result, list) and result else result
    if isinstance(item, dict):
        text = item.get("generated_text")
        if isinstance(text, str):
            return text
    return ""


def extract_assistant_response(generated: str, prompt: str) -> str:
    """Strip the echoed prompt, chat-template markers and role labels."""
    response = generated
    if prompt and prompt in response:
        response = response.replace(prompt, "", 1)
    for pattern in _SPECIAL_TOKENS:
        response = pattern.sub("", response)
    response = _LEADING_ROLE.sub("", response, count=1)

    idx = response.rfind("assistant")
    if idx != -1:
        after = response[idx + len("assistant"):]
        if after.strip():
            response = after

    response = _LEADING_USER.sub("", response, count=1)
    return response.strip()
