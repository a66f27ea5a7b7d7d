"""Generation port — the one narrow seam between the core and a model.

The engine and chat responder only ever call ``generate(parts)``. The
default adapter talks to any OpenAI-compatible chat completions endpoint;
tests swap in a fake that returns canned text.
"""

import base64
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass

import openai
from openai import OpenAI

from homefix_ai.config import settings
from homefix_ai.errors import GenerationUnavailable

logger = logging.getLogger("homefix_ai")


@dataclass(frozen=True)
class TextPart:
    text: str


@dataclass(frozen=True)
class ImagePart:
    data: bytes
    mime_type: str = "image/jpeg"

    def data_url(self) -> str:
        encoded = base64.b64encode(self.data).decode("ascii")
        return f"data:{self.mime_type};base64,{encoded}"


class GenerationPort(ABC):
    """Strategy interface for a single model call."""

    @abstractmethod
    def generate(self, parts, max_tokens=None):
        """Returns the model's raw reply text.

        Args:
            parts: Ordered sequence of TextPart / ImagePart.
            max_tokens: Optional cap on the reply length.

        Raises:
            GenerationUnavailable: on transport, auth, quota or timeout errors.
        """
        ...


def to_chat_content(parts):
    """Convert ordered parts into OpenAI multi-part message content."""
    content = []
    for part in parts:
        if isinstance(part, TextPart):
            content.append({"type": "text", "text": part.text})
        elif isinstance(part, ImagePart):
            content.append({
                "type": "image_url",
                "image_url": {"url": part.data_url()},
            })
        else:
            raise TypeError(f"unsupported prompt part: {type(part).__name__}")
    return content


class OpenAIGenerator(GenerationPort):
    """Generation port backed by the OpenAI chat completions API."""

    def __init__(self, client: OpenAI, model=None):
        self.client = client
        self.model = model or settings.OPENAI_MODEL

    @classmethod
    def from_settings(cls):
        # Retries belong to the caller; a failed call is terminal here.
        client = OpenAI(
            api_key=settings.OPENAI_API_KEY,
            base_url=settings.OPENAI_BASE_URL,
            timeout=settings.GENERATION_TIMEOUT_SECONDS,
            max_retries=0,
        )
        return cls(client=client)

    def generate(self, parts, max_tokens=None):
        kwargs = {}
        if max_tokens is not None:
            kwargs["max_tokens"] = max_tokens
        try:
            response = self.client.chat.completions.create(
                model=self.model,
                messages=[{"role": "user", "content": to_chat_content(parts)}],
                **kwargs,
            )
        except openai.OpenAIError as e:
            logger.error(f"Generation call failed: {type(e).__name__}: {e}")
            raise GenerationUnavailable(f"{type(e).__name__}: {e}") from e

        if not response.choices:
            raise GenerationUnavailable("model returned no choices")
        text = response.choices[0].message.content
        if not text:
            raise GenerationUnavailable("model returned an empty reply")
        return text
