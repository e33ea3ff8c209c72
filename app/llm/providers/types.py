"""Message shapes shared by the chat-completion backends."""

from collections.abc import Sequence
from typing import Any, TypedDict

from app.llm.errors import ProviderError


class ImageURL(TypedDict):
    """URL wrapper of an image part."""

    url: str


class ContentPart(TypedDict, total=False):
    """One part of a multimodal user message."""

    type: str
    text: str
    image_url: ImageURL


class ChatMessage(TypedDict):
    """Single chat message."""

    role: str
    content: list[ContentPart]


def build_user_message(prompt: str, images: Sequence[str]) -> ChatMessage:
    """Build one user turn: the prompt text followed by one part per image."""
    content: list[ContentPart] = [{"type": "text", "text": prompt}]
    for url in images:
        content.append({"type": "image_url", "image_url": {"url": url}})
    return {"role": "user", "content": content}


def extract_message_text(body: Any, backend: str) -> str:
    """Pull the reply text out of a chat-completions response body.

    The message content may be a plain string or a list of parts, in which
    case the text of every part is concatenated.

    Raises:
        ProviderError: If the body has no message or no text content
    """
    message = None
    if isinstance(body, dict):
        choices = body.get("choices")
        if isinstance(choices, list) and choices and isinstance(choices[0], dict):
            message = choices[0].get("message")

    if not isinstance(message, dict):
        raise ProviderError(f"{backend} response has no message")

    content = message.get("content")
    if isinstance(content, str):
        return content

    if isinstance(content, list):
        merged = "".join(
            part.get("text") or part.get("content") or ""
            for part in content
            if isinstance(part, dict)
        )
        if not merged.strip():
            raise ProviderError(f"{backend} response content has no text parts")
        return merged

    raise ProviderError(f"{backend} response content has an unknown type")
