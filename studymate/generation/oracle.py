"""
Generation oracle client.

Sends a conversation to the language-model proxy and returns the generated
text. The proxy accepts {messages, apiKey, model} and answers with
{output: {text}}.

Without a proxy configured nothing is sent: the would-be prompt is logged
and a fixed placeholder reply is returned so the caller can still show
something to the learner.
"""

from __future__ import annotations

from typing import Any

import httpx
from loguru import logger
from pydantic import BaseModel, ValidationError

from config import Settings, get_settings
from studymate.errors import ConfigurationError

UNCONFIGURED_PLACEHOLDER = "未配置代理服务器。请在设置中配置代理地址，或查看日志获取请求信息。"

ROLE_LABELS = {"user": "用户", "assistant": "助手"}


class ChatMessage(BaseModel):
    role: str
    content: str


class ProxyRequest(BaseModel):
    """Request body accepted by the proxy."""

    messages: list[ChatMessage]
    apiKey: str
    model: str


class ProxyOutput(BaseModel):
    text: str


class ProxyResponse(BaseModel):
    """Response body returned by the proxy."""

    output: ProxyOutput


def to_prompt(messages: list[dict[str, str]]) -> str:
    """Flatten messages into "用户: ..." / "助手: ..." lines."""
    return "\n".join(
        f"{ROLE_LABELS.get(m.get('role', ''), ROLE_LABELS['assistant'])}: {m.get('content', '')}"
        for m in messages
    )


class GenerationClient:
    """Async HTTP client for the generation proxy."""

    def __init__(self, settings: Settings | None = None):
        """
        Initialize the client.

        Args:
            settings: Settings instance (uses get_settings() if None)
        """
        self._settings = settings or get_settings()
        self.client = httpx.AsyncClient(
            timeout=httpx.Timeout(self._settings.http_timeout_seconds),
            follow_redirects=True,
        )

    @property
    def configured(self) -> bool:
        return bool(self._settings.proxy_url)

    async def close(self) -> None:
        """Close the HTTP client."""
        await self.client.aclose()

    async def generate(self, messages: list[dict[str, str]]) -> str | None:
        """
        Generate a reply for a conversation.

        Args:
            messages: Ordered {role, content} messages; truncation is the
                caller's job

        Returns:
            Generated text, the placeholder if no proxy is configured, or
            None on any request or response failure (no retry)

        Raises:
            ConfigurationError: If a proxy is configured without an API key
        """
        if not self.configured:
            logger.warning("Generation proxy not configured; request not sent")
            logger.info(f"Model: {self._settings.ai_model}\nPrompt:\n{to_prompt(messages)}")
            return UNCONFIGURED_PLACEHOLDER

        if not self._settings.ai_api_key:
            raise ConfigurationError("请先配置 API 密钥！")

        request = ProxyRequest(
            messages=[ChatMessage(**m) for m in messages],
            apiKey=self._settings.ai_api_key,
            model=self._settings.ai_model,
        )

        try:
            response = await self.client.post(
                self._settings.proxy_url,
                json=request.model_dump(),
            )
        except httpx.HTTPError as e:
            logger.error(f"Generation request failed: {e}")
            return None

        if not response.is_success:
            logger.error(f"Generation proxy error: {response.status_code} {response.text}")
            return None

        try:
            data: Any = response.json()
            return ProxyResponse.model_validate(data).output.text
        except (ValueError, ValidationError) as e:
            logger.error(f"Malformed generation response: {e}")
            return None
