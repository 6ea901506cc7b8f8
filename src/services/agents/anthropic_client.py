"""
Thin async client for the Anthropic Messages API.

Only the pieces the agents need: send one user turn, get the text back
with token usage, and translate failures into AgentError kinds.
"""

from dataclasses import dataclass
from typing import Any
import httpx
from loguru import logger
from ...core.config import settings
from ...core.errors import AgentError, ErrorKind

_ERROR_TYPE_KINDS = {
    "authentication_error": ErrorKind.AUTHENTICATION,
    "permission_error": ErrorKind.AUTHENTICATION,
    "rate_limit_error": ErrorKind.RATE_LIMIT,
    "overloaded_error": ErrorKind.SERVER,
    "api_error": ErrorKind.SERVER,
}


@dataclass(frozen=True)
class MessageResponse:
    text: str
    model: str
    input_tokens: int = 0
    output_tokens: int = 0


def classify_http_error(status_code: int, body: Any) -> tuple[ErrorKind, str]:
    """Map an error response from the API to an ErrorKind and message."""
    error_type = ""
    message = f"HTTP {status_code}"
    if isinstance(body, dict) and isinstance(body.get("error"), dict):
        error_type = body["error"].get("type", "") or ""
        message = body["error"].get("message", message) or message

    lowered = message.lower()
    if "credit balance" in lowered or "billing" in lowered:
        return ErrorKind.INSUFFICIENT_CREDITS, message
    if error_type in _ERROR_TYPE_KINDS:
        return _ERROR_TYPE_KINDS[error_type], message
    if status_code in (401, 403):
        return ErrorKind.AUTHENTICATION, message
    if status_code == 429:
        return ErrorKind.RATE_LIMIT, message
    if status_code == 402:
        return ErrorKind.INSUFFICIENT_CREDITS, message
    if status_code >= 500:
        return ErrorKind.SERVER, message
    return ErrorKind.INVALID_RESPONSE, message


class AnthropicMessagesClient:
    """
    Args:
        api_key: Anthropic API key (defaults to ANTHROPIC_API_KEY)
        base_url: API base URL (defaults to ANTHROPIC_BASE_URL)
        timeout_seconds: Per-request timeout
    """

    def __init__(
        self,
        api_key: str | None = None,
        base_url: str | None = None,
        timeout_seconds: float | None = None,
    ):
        self.api_key = api_key or settings.anthropic_api_key
        self.base_url = (base_url or settings.anthropic_base_url).rstrip("/")
        self.timeout_seconds = timeout_seconds or settings.llm_timeout_seconds

    async def create_message(
        self,
        model: str,
        content: str | list[dict],
        max_tokens: int = 1024,
        temperature: float = 0.0,
    ) -> MessageResponse:
        """
        Send a single user message and return the first text block.

        Raises:
            AgentError: Missing key, transport failure, error status or a
                response without text content
        """
        if not self.api_key:
            raise AgentError(ErrorKind.API_KEY_MISSING, "ANTHROPIC_API_KEY is not configured")

        payload = {
            "model": model,
            "max_tokens": max_tokens,
            "temperature": temperature,
            "messages": [{"role": "user", "content": content}],
        }
        headers = {
            "x-api-key": self.api_key,
            "anthropic-version": settings.anthropic_version,
            "content-type": "application/json",
        }

        try:
            async with httpx.AsyncClient(timeout=self.timeout_seconds) as client:
                response = await client.post(f"{self.base_url}/v1/messages", headers=headers, json=payload)
        except httpx.TimeoutException as e:
            raise AgentError(ErrorKind.TIMEOUT, f"Request to model API timed out: {e}") from e
        except httpx.TransportError as e:
            raise AgentError(ErrorKind.NETWORK, f"Network error calling model API: {e}") from e

        if response.status_code >= 400:
            try:
                body = response.json()
            except ValueError:
                body = None
            kind, message = classify_http_error(response.status_code, body)
            logger.error(
                "Model API returned an error",
                status_code=response.status_code,
                kind=kind.value,
                model=model,
            )
            raise AgentError(kind, message, status_code=response.status_code)

        try:
            data = response.json()
        except ValueError as e:
            raise AgentError(ErrorKind.INVALID_RESPONSE, "Model API returned non-JSON body") from e

        blocks = data.get("content") or []
        text = next((block.get("text", "") for block in blocks if block.get("type") == "text"), None)
        if text is None:
            raise AgentError(ErrorKind.INVALID_RESPONSE, "Model response contained no text content")

        usage = data.get("usage") or {}
        return MessageResponse(
            text=text,
            model=data.get("model", model),
            input_tokens=int(usage.get("input_tokens", 0) or 0),
            output_tokens=int(usage.get("output_tokens", 0) or 0),
        )
