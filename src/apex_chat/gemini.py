"""Async Gemini client wrapper covering chat, image, grounded search, video, and titles."""

from __future__ import annotations

from collections.abc import AsyncGenerator, Iterable
from dataclasses import dataclass
import logging
import os
from typing import Any

from google import genai
from google.genai import errors as genai_errors
from google.genai import types
import httpx

from .exceptions import (
    ConfigValidationError,
    GenerationConnectionError,
    GenerationError,
    GenerationServiceError,
)
from .models import Attachment, Message, Source

LOGGER = logging.getLogger(__name__)

API_KEY_ENV_VARS = ("GEMINI_API_KEY", "API_KEY")

TITLE_PROMPT = (
    "Generate a short, concise title (4 words max) for a conversation that "
    'starts with this prompt: "{prompt}"'
)


@dataclass(frozen=True)
class GroundedAnswer:
    """Text answer together with the web pages it was grounded on."""

    text: str
    sources: tuple[Source, ...]


def resolve_api_key(configured: str = "") -> str:
    """Return the configured key or the first non-empty key from the environment."""
    if configured.strip():
        return configured.strip()
    for name in API_KEY_ENV_VARS:
        value = os.environ.get(name, "").strip()
        if value:
            return value
    return ""


def _attachment_part(attachment: Attachment) -> types.Part:
    return types.Part.from_bytes(data=attachment.to_bytes(), mime_type=attachment.mime_type)


def build_parts(text: str, attachment: Attachment | None = None) -> list[types.Part]:
    """Build request parts; the attachment always precedes the text."""
    parts: list[types.Part] = []
    if attachment is not None:
        parts.append(_attachment_part(attachment))
    if text:
        parts.append(types.Part(text=text))
    return parts


def build_history(messages: Iterable[Message]) -> list[types.Content]:
    """Convert stored messages into role-tagged Gemini contents.

    Messages without any part (for example a user message whose attachment was
    stripped by persistence) are skipped because the API rejects empty turns.
    """
    contents: list[types.Content] = []
    for message in messages:
        parts = build_parts(message.content, message.attachment)
        if not parts:
            continue
        contents.append(types.Content(role=message.role.value, parts=parts))
    return contents


class GeminiService:
    """Generation service backed by the ``google-genai`` async client."""

    def __init__(
        self,
        api_key: str,
        *,
        chat_model: str = "gemini-2.5-flash",
        search_model: str = "gemini-2.5-flash",
        title_model: str = "gemini-2.5-flash",
        image_model: str = "imagen-4.0-generate-001",
        video_model: str = "veo-2.0-generate-001",
        timeout: int = 120,
        download_timeout: int = 300,
        client: Any | None = None,
        http_transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.chat_model = chat_model
        self.search_model = search_model
        self.title_model = title_model
        self.image_model = image_model
        self.video_model = video_model
        self.download_timeout = download_timeout
        self._api_key = api_key
        self._http_transport = http_transport

        if client is not None:
            self._client = client
        elif api_key:
            self._client = genai.Client(
                api_key=api_key,
                http_options=types.HttpOptions(timeout=timeout * 1000),
            )
        else:
            raise ConfigValidationError(
                "No Gemini API key configured. Set GEMINI_API_KEY or gemini.api_key."
            )

    @classmethod
    def from_config(
        cls, gemini_config: dict[str, Any], video_config: dict[str, Any]
    ) -> GeminiService:
        return cls(
            resolve_api_key(str(gemini_config.get("api_key", ""))),
            chat_model=gemini_config["chat_model"],
            search_model=gemini_config["search_model"],
            title_model=gemini_config["title_model"],
            image_model=gemini_config["image_model"],
            video_model=gemini_config["video_model"],
            timeout=int(gemini_config["timeout"]),
            download_timeout=int(video_config["download_timeout_seconds"]),
        )

    def _map_exception(self, exc: Exception) -> GenerationError:
        if isinstance(exc, GenerationError):
            return exc
        if isinstance(
            exc,
            (httpx.ConnectError, httpx.ConnectTimeout, httpx.ReadTimeout, httpx.NetworkError),
        ):
            return GenerationConnectionError(f"Unable to reach the Gemini API: {exc}")
        if isinstance(exc, genai_errors.APIError):
            return GenerationServiceError(f"Gemini API error {exc.code}: {exc.message}")
        return GenerationError(f"Gemini request failed: {exc}")

    def create_session(
        self, history: Iterable[Message], system_instruction: str
    ) -> Any:
        """Create a stateful chat session seeded with ``history``."""
        return self._client.aio.chats.create(
            model=self.chat_model,
            history=build_history(history),
            config=types.GenerateContentConfig(system_instruction=system_instruction),
        )

    async def stream_reply(
        self, session: Any, prompt: str, attachment: Attachment | None = None
    ) -> AsyncGenerator[str, None]:
        """Send a prompt through ``session`` and yield the growing reply text."""
        parts = build_parts(prompt, attachment)
        if not parts:
            return

        text = ""
        try:
            stream = await session.send_message_stream(parts)
            async for chunk in stream:
                text += chunk.text or ""
                yield text
        except Exception as exc:  # noqa: BLE001 - external API can fail in many ways.
            raise self._map_exception(exc) from exc

    async def generate_image(self, prompt: str) -> Attachment:
        try:
            response = await self._client.aio.models.generate_images(
                model=self.image_model,
                prompt=prompt,
                config=types.GenerateImagesConfig(
                    number_of_images=1,
                    output_mime_type="image/png",
                    aspect_ratio="1:1",
                ),
            )
        except Exception as exc:  # noqa: BLE001
            raise self._map_exception(exc) from exc

        images = getattr(response, "generated_images", None) or []
        image = getattr(images[0], "image", None) if images else None
        image_bytes = getattr(image, "image_bytes", None)
        if not image_bytes:
            raise GenerationServiceError("Image generation returned no image data.")
        return Attachment.from_bytes(image_bytes, "image/png", f"{prompt[:20]}.png")

    async def grounded_answer(self, prompt: str) -> GroundedAnswer:
        """Answer ``prompt`` with Google Search grounding."""
        try:
            response = await self._client.aio.models.generate_content(
                model=self.search_model,
                contents=prompt,
                config=types.GenerateContentConfig(
                    tools=[types.Tool(google_search=types.GoogleSearch())]
                ),
            )
        except Exception as exc:  # noqa: BLE001
            raise self._map_exception(exc) from exc

        sources: list[Source] = []
        candidates = getattr(response, "candidates", None) or []
        metadata = getattr(candidates[0], "grounding_metadata", None) if candidates else None
        for chunk in getattr(metadata, "grounding_chunks", None) or []:
            web = getattr(chunk, "web", None)
            uri = getattr(web, "uri", None) or ""
            if uri:
                sources.append(Source(uri=uri, title=getattr(web, "title", None) or ""))
        return GroundedAnswer(text=response.text or "", sources=tuple(sources))

    async def start_video(self, prompt: str) -> Any:
        try:
            return await self._client.aio.models.generate_videos(
                model=self.video_model,
                prompt=prompt,
                config=types.GenerateVideosConfig(number_of_videos=1),
            )
        except Exception as exc:  # noqa: BLE001
            raise self._map_exception(exc) from exc

    async def poll_video(self, operation: Any) -> Any:
        try:
            return await self._client.aio.operations.get(operation)
        except Exception as exc:  # noqa: BLE001
            raise self._map_exception(exc) from exc

    async def fetch_video(self, operation: Any) -> Attachment | None:
        """Download the finished video, or return ``None`` when no result is linked."""
        response = getattr(operation, "response", None)
        videos = getattr(response, "generated_videos", None) or []
        video = getattr(videos[0], "video", None) if videos else None
        uri = getattr(video, "uri", None)
        if not uri:
            return None

        try:
            async with httpx.AsyncClient(
                timeout=self.download_timeout,
                transport=self._http_transport,
                follow_redirects=True,
            ) as http:
                download = await http.get(uri, params={"key": self._api_key})
        except Exception as exc:  # noqa: BLE001
            raise self._map_exception(exc) from exc

        if download.is_error:
            raise GenerationServiceError(
                f"Failed to download video (HTTP {download.status_code})."
            )
        mime_type = download.headers.get("content-type", "").split(";")[0].strip()
        LOGGER.info(
            "gemini.video.downloaded",
            extra={"event": "gemini.video.downloaded", "bytes": len(download.content)},
        )
        return Attachment.from_bytes(
            download.content, mime_type or "video/mp4", "generated-video.mp4"
        )

    async def generate_title(self, prompt: str) -> str:
        try:
            response = await self._client.aio.models.generate_content(
                model=self.title_model,
                contents=TITLE_PROMPT.format(prompt=prompt),
            )
        except Exception as exc:  # noqa: BLE001
            raise self._map_exception(exc) from exc
        return (response.text or "").strip().replace('"', "")


