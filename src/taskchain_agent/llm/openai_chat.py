"""OpenAI-compatible chat completions gateway."""

from __future__ import annotations

import asyncio
import json
import logging
import time
from typing import Any
from urllib import error, request

from taskchain_agent.errors import GatewayError
from taskchain_agent.llm.base import (
    GenerationOptions,
    LLMResponse,
    LLMUsage,
    StructuredLLMResponse,
    parse_structured_content,
    structured_output_system_prompt,
)

logger = logging.getLogger(__name__)


class OpenAIChatGateway:
    """Small gateway over the chat completions REST API.

    The HTTP call is blocking, so it runs in a worker thread to keep the
    event loop free while a request is in flight.
    """

    def __init__(
        self,
        *,
        api_key: str,
        model: str = "gpt-4o-mini",
        base_url: str = "https://api.openai.com/v1",
        temperature: float = 0.7,
        max_tokens: int = 1000,
        timeout_s: float = 30.0,
        max_retries: int = 1,
        backoff_s: float = 0.2,
        trace: bool = False,
    ) -> None:
        if not api_key:
            raise GatewayError("API key is required for the LLM gateway", operation="init")
        self.api_key = api_key
        self.model = model
        self.base_url = base_url.rstrip("/")
        self.temperature = temperature
        self.max_tokens = max_tokens
        self.timeout_s = timeout_s
        self.max_retries = max(0, max_retries)
        self.backoff_s = max(0.0, backoff_s)
        self.trace = trace

    async def get_text(
        self,
        prompt: str,
        options: GenerationOptions | None = None,
    ) -> LLMResponse:
        opts = options or GenerationOptions()
        payload = self._payload(
            messages=[{"role": "user", "content": prompt}],
            options=opts,
            default_temperature=self.temperature,
        )
        response_json = await self._post(payload, operation="get_text")
        return LLMResponse(
            content=_extract_content(response_json, operation="get_text"),
            usage=_extract_usage(response_json),
        )

    async def get_structured(
        self,
        prompt: str,
        output_shape: dict[str, Any],
        options: GenerationOptions | None = None,
        *,
        description: str | None = None,
    ) -> StructuredLLMResponse:
        opts = options or GenerationOptions()
        payload = self._payload(
            messages=[
                {
                    "role": "system",
                    "content": structured_output_system_prompt(output_shape, description),
                },
                {"role": "user", "content": prompt},
            ],
            options=opts,
            default_temperature=0.1,
        )
        payload["response_format"] = {"type": "json_object"}
        response_json = await self._post(payload, operation="get_structured")
        content = _extract_content(response_json, operation="get_structured")
        data, errors = parse_structured_content(content, output_shape)
        return StructuredLLMResponse(
            content=content,
            structured_data=data,
            is_valid=data is not None,
            validation_errors=errors,
            usage=_extract_usage(response_json),
        )

    def _payload(
        self,
        *,
        messages: list[dict[str, str]],
        options: GenerationOptions,
        default_temperature: float,
    ) -> dict[str, Any]:
        temperature = options.temperature_override
        return {
            "model": options.model_override or self.model,
            "messages": messages,
            "temperature": default_temperature if temperature is None else temperature,
            "max_tokens": options.max_tokens_override or self.max_tokens,
        }

    async def _post(self, payload: dict[str, Any], *, operation: str) -> dict[str, Any]:
        return await asyncio.to_thread(self._request_with_retry, payload, operation)

    def _request_with_retry(self, payload: dict[str, Any], operation: str) -> dict[str, Any]:
        last_error: GatewayError | None = None
        for attempt in range(self.max_retries + 1):
            try:
                return self._request(payload, operation=operation)
            except GatewayError as exc:
                last_error = exc
                logger.warning(
                    "LLM request failed attempt=%d/%d model=%s operation=%s reason=%s",
                    attempt + 1,
                    self.max_retries + 1,
                    payload.get("model"),
                    operation,
                    exc,
                )
                if exc.status_code is not None and 400 <= exc.status_code < 500 and exc.status_code != 429:
                    break
                if attempt < self.max_retries and self.backoff_s > 0:
                    time.sleep(self.backoff_s)
        if last_error is None:
            raise GatewayError("LLM request failed with unknown error", operation=operation)
        raise last_error

    def _request(self, payload: dict[str, Any], *, operation: str) -> dict[str, Any]:
        url = f"{self.base_url}/chat/completions"
        if self.trace:
            logger.warning(
                "LLM trace request provider=openai model=%s url=%s timeout_s=%s",
                payload.get("model"),
                url,
                self.timeout_s,
            )
        req = request.Request(
            url=url,
            data=json.dumps(payload).encode("utf-8"),
            method="POST",
            headers={
                "Authorization": f"Bearer {self.api_key}",
                "Content-Type": "application/json",
            },
        )
        try:
            with request.urlopen(req, timeout=self.timeout_s) as response:
                body = response.read().decode("utf-8")
        except error.HTTPError as exc:
            raw_error = exc.read().decode("utf-8", errors="replace")
            raise GatewayError(
                f"LLM API request failed with status {exc.code}: {raw_error[:400]}",
                operation=operation,
                status_code=exc.code,
            ) from exc
        except (error.URLError, TimeoutError) as exc:
            reason = getattr(exc, "reason", exc)
            raise GatewayError(
                f"Network error while calling LLM API: {reason}",
                operation=operation,
            ) from exc

        if self.trace:
            logger.warning(
                "LLM trace response provider=openai model=%s status=ok", payload.get("model")
            )
        try:
            return json.loads(body)
        except json.JSONDecodeError as exc:
            raise GatewayError("LLM API returned non-JSON response", operation=operation) from exc


def _extract_content(response_json: dict[str, Any], *, operation: str) -> str:
    choices = response_json.get("choices", [])
    if not choices:
        raise GatewayError("LLM response did not contain choices", operation=operation)

    message = choices[0].get("message") or {}
    content = message.get("content")
    if isinstance(content, str):
        return content.strip()
    if isinstance(content, list):
        text_segments: list[str] = []
        for item in content:
            if isinstance(item, dict):
                text = item.get("text")
                if isinstance(text, str):
                    text_segments.append(text)
        return "".join(text_segments).strip()
    return ""


def _extract_usage(response_json: dict[str, Any]) -> LLMUsage | None:
    usage = response_json.get("usage")
    if not isinstance(usage, dict):
        return None
    return LLMUsage(
        prompt_tokens=int(usage.get("prompt_tokens", 0)),
        completion_tokens=int(usage.get("completion_tokens", 0)),
        total_tokens=int(usage.get("total_tokens", 0)),
    )
