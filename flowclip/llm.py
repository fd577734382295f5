"""LLM invocation gateway: text completion, screenshot vision and message builders."""

from __future__ import annotations

import asyncio
import base64
import io
import logging
from pathlib import Path
from typing import Any, List, Optional, Protocol, Sequence

from langchain_core.messages import BaseMessage, HumanMessage, SystemMessage
from langchain_openai import ChatOpenAI
from PIL import Image

from .config import FlowClipConfig
from .constants import VISION_CACHE_MAX_AGE, VISION_MAX_BASE64_LENGTH, VISION_MAX_IMAGE_SIDE
from .errors import ExternalCallError, NotConfiguredError
from .models import CaptureContext
from .utils import TimedCache

logger = logging.getLogger(__name__)


class ChatModel(Protocol):
    async def ainvoke(self, input: Sequence[BaseMessage], **kwargs: Any) -> Any:  # pragma: no cover - protocol
        ...


def response_text(response: Any) -> str:
    """Extract plain text from a chat model response."""

    content = getattr(response, "content", response)
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        parts: List[str] = []
        for part in content:
            if isinstance(part, str):
                parts.append(part)
            elif isinstance(part, dict) and part.get("type") == "text":
                parts.append(str(part.get("text", "")))
        return "".join(parts)
    return "" if content is None else str(content)


def build_analysis_messages(
    system_prompt: str,
    content: str,
    context: CaptureContext | None = None,
) -> List[BaseMessage]:
    context = context or CaptureContext()
    human = (
        f"Content: {content}\n\n"
        f"Source Application: {context.source_app or 'unknown'}\n"
        f"Window Title: {context.window_title or 'unknown'}\n"
        f"Has Screenshot: {'Yes' if context.screenshot_path else 'No'}"
    )
    return [SystemMessage(content=system_prompt), HumanMessage(content=human)]


def build_vision_message(content: str, image_b64: str, prompt: str) -> HumanMessage:
    preview = content if len(content) <= 200 else content[:200] + "..."
    return HumanMessage(
        content=[
            {
                "type": "text",
                "text": f"{prompt or 'Analyze this screenshot for context.'}\n\nContent that was copied: \"{preview}\"",
            },
            {
                "type": "image_url",
                "image_url": {"url": f"data:image/png;base64,{image_b64}", "detail": "auto"},
            },
        ]
    )


def encode_screenshot(path: Path, *, max_side: int = VISION_MAX_IMAGE_SIDE) -> str:
    """Load, downscale and return the screenshot as base64 PNG."""

    with Image.open(path) as image:
        image.thumbnail((max_side, max_side))
        if image.mode not in ("RGB", "RGBA"):
            image = image.convert("RGB")
        buffer = io.BytesIO()
        image.save(buffer, format="PNG")
    return base64.b64encode(buffer.getvalue()).decode("ascii")


class LLMGateway:
    """Wraps an injected chat model (and optional vision model)."""

    def __init__(
        self,
        chat_model: ChatModel,
        vision_model: Optional[ChatModel] = None,
        *,
        cache: Optional[TimedCache[str]] = None,
    ) -> None:
        self.chat_model = chat_model
        self.vision_model = vision_model
        self.cache: TimedCache[str] = cache if cache is not None else TimedCache(VISION_CACHE_MAX_AGE)

    async def complete(self, messages: Sequence[BaseMessage]) -> str:
        try:
            response = await self.chat_model.ainvoke(list(messages))
        except Exception as exc:
            raise ExternalCallError(f"LLM call failed: {exc}") from exc
        return response_text(response)

    async def describe_screenshot(self, path: Path | str | None, content: str, prompt: str) -> Optional[str]:
        """Return the vision model's description of a screenshot, or None.

        Results are cached per screenshot path and content prefix. Every
        failure is logged and yields None.
        """

        if not path or not content or not prompt:
            return None
        if self.vision_model is None:
            logger.debug("Vision model not configured; skipping screenshot analysis")
            return None
        cache_key = f"{path}_{content[:100]}"
        cached = self.cache.get(cache_key)
        if cached is not None:
            logger.debug("Vision cache hit for %s", path)
            return cached
        screenshot = Path(path).expanduser()
        if not screenshot.is_file():
            logger.warning("Screenshot not found: %s", screenshot)
            return None
        try:
            image_b64 = await asyncio.to_thread(encode_screenshot, screenshot)
        except (OSError, ValueError) as exc:
            logger.warning("Screenshot could not be encoded: %s", exc)
            return None
        if len(image_b64) < 100 or len(image_b64) > VISION_MAX_BASE64_LENGTH:
            logger.warning("Screenshot size unsuitable for vision processing: %s", screenshot)
            return None
        try:
            response = await self.vision_model.ainvoke([build_vision_message(content, image_b64, prompt)])
        except Exception as exc:
            logger.warning("Screenshot analysis failed: %s", exc)
            return None
        description = response_text(response).strip()
        if description:
            self.cache.set(cache_key, description)
        return description or None


def build_gateway(config: FlowClipConfig) -> LLMGateway:
    """Create an OpenAI-backed gateway from configuration."""

    if not config.is_configured:
        raise NotConfiguredError()
    chat = ChatOpenAI(model=config.model, temperature=config.temperature, api_key=config.openai_api_key)
    vision = ChatOpenAI(model=config.vision_model, temperature=config.temperature, api_key=config.openai_api_key)
    return LLMGateway(chat, vision, cache=TimedCache(config.vision_cache_seconds))
