"""
Model invocation.

The pipeline only needs "prompt in, raw text out". ``ModelClient`` is that
seam; ``OpenAIChatClient`` is the production implementation over the chat
completions API. Tests swap in a scripted fake.
"""

from __future__ import annotations

from typing import Optional, Protocol

import httpx

from sessionsight.config import Settings, get_settings
from sessionsight.errors import ModelInvocationError
from sessionsight.logging_config import get_logger
from sessionsight.services.routing import ModelTask, select_model

logger = get_logger(__name__)


class ModelClient(Protocol):
    async def complete(self, system_prompt: str, user_prompt: str, task: ModelTask) -> str:
        ...


class OpenAIChatClient:
    """
    Chat completions client.

    Uses JSON response format and a low temperature for consistent
    extraction. Any transport or API failure surfaces as
    ``ModelInvocationError``; response parsing is left to the caller.
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        http_client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._http_client = http_client

    async def complete(self, system_prompt: str, user_prompt: str, task: ModelTask) -> str:
        model = select_model(task)
        payload = {
            "model": model,
            "messages": [
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_prompt},
            ],
            "response_format": {"type": "json_object"},
            "temperature": self._settings.llm_temperature,
            "max_tokens": self._settings.llm_max_output_tokens,
        }
        headers = {
            "Authorization": f"Bearer {self._settings.openai_api_key}",
            "Content-Type": "application/json",
        }
        url = f"{self._settings.openai_base_url.rstrip('/')}/chat/completions"

        try:
            if self._http_client is not None:
                response = await self._http_client.post(url, headers=headers, json=payload)
            else:
                async with httpx.AsyncClient(timeout=self._settings.llm_request_timeout_seconds) as client:
                    response = await client.post(url, headers=headers, json=payload)
            response.raise_for_status()
            data = response.json()
        except httpx.HTTPStatusError as e:
            logger.error("model_call_http_error", model=model, task=task.value, status=e.response.status_code)
            raise ModelInvocationError(f"{model} returned HTTP {e.response.status_code}") from e
        except httpx.HTTPError as e:
            logger.error("model_call_transport_error", model=model, task=task.value, error=str(e))
            raise ModelInvocationError(f"{model} request failed: {e}") from e
        except ValueError as e:
            raise ModelInvocationError(f"{model} returned a non-JSON body") from e

        try:
            content = data["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError) as e:
            raise ModelInvocationError(f"{model} response had no message content") from e

        logger.debug("model_call_complete", model=model, task=task.value, content_length=len(content or ""))
        return content or ""
