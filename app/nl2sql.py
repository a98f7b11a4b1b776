# app/nl2sql.py

import asyncio
import logging
import re
from typing import Awaitable, Callable

import httpx
from tenacity import (
    AsyncRetrying,
    before_sleep_log,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from .config import Settings
from .errors import EmptyModelReply, ModelServiceFailure

logger = logging.getLogger(__name__)

HEALTH_TIMEOUT = 5.0

# ```sql / ```postgresql / ```pgsql followed by whitespace, even on the same line;
# any other tag only when the fence ends the line; a bare ``` anywhere else
_FENCE_RE = re.compile(
    r"```(?:(?:sql|postgresql|pgsql)\b[ \t]*|[A-Za-z0-9_+-]*[ \t]*(?=\r?\n|$))?",
    re.IGNORECASE,
)


def clean_model_reply(text: str) -> str:
    """Strips markdown code fences the model adds despite being told not to."""
    return _FENCE_RE.sub("", text).strip()


class OllamaClient:
    """
    Single-turn, non-streaming client for Ollama's /api/chat.
    Transport failures and timeouts are retried with exponential backoff;
    HTTP errors and empty or malformed replies fail immediately.
    """

    def __init__(
        self,
        base_url: str,
        model: str,
        timeout: float = 60.0,
        max_retries: int = 3,
        backoff_initial: float = 2.0,
        backoff_max: float = 10.0,
        client: httpx.AsyncClient | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.model = model
        self.timeout = timeout
        self.max_retries = max_retries
        self.backoff_initial = backoff_initial
        self.backoff_max = backoff_max
        self._client = client or httpx.AsyncClient(base_url=base_url)
        self._sleep = sleep

    @classmethod
    def from_settings(cls, settings: Settings) -> "OllamaClient":
        return cls(
            base_url=settings.ollama_url,
            model=settings.ollama_model,
            timeout=settings.ollama_timeout,
            max_retries=settings.ollama_max_retries,
            backoff_initial=settings.ollama_backoff_initial,
            backoff_max=settings.ollama_backoff_max,
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    def _retrying(self) -> AsyncRetrying:
        # delays run initial, 2*initial, 4*initial ... capped at backoff_max
        return AsyncRetrying(
            stop=stop_after_attempt(self.max_retries + 1),
            wait=wait_exponential(multiplier=self.backoff_initial, max=self.backoff_max),
            retry=retry_if_exception_type(httpx.TransportError),
            before_sleep=before_sleep_log(logger, logging.WARNING),
            sleep=self._sleep,
            reraise=True,
        )

    async def _post_with_retry(self, payload: dict, task: str) -> httpx.Response:
        try:
            async for attempt in self._retrying():
                with attempt:
                    return await self._client.post("/api/chat", json=payload, timeout=self.timeout)
        except httpx.TransportError as e:
            logger.error(
                "Error communicating with Ollama for task: %s. Check model '%s'. Exception: %r",
                task, self.model, e,
            )
            raise ModelServiceFailure(
                f"Failed to get a response from the AI service for {task}. "
                f"Is Ollama running and is the model '{self.model}' pulled?"
            ) from e

    async def chat(self, prompt: str, task: str = "chat") -> str:
        """
        Sends the prompt as one user message and returns the cleaned reply.
        """
        payload = {
            "model": self.model,
            "messages": [{"role": "user", "content": prompt}],
            "stream": False,
        }
        resp = await self._post_with_retry(payload, task)

        try:
            resp.raise_for_status()
            body = resp.json()
        except httpx.HTTPStatusError as e:
            logger.error("Ollama returned HTTP %s for task: %s", e.response.status_code, task)
            raise ModelServiceFailure(
                f"AI service returned HTTP {e.response.status_code} for {task}."
            ) from e
        except ValueError as e:
            raise ModelServiceFailure(
                f"Received an invalid response from Ollama for task: {task}"
            ) from e

        message = body.get("message") if isinstance(body, dict) else None
        if not isinstance(message, dict):
            raise ModelServiceFailure(f"Received an invalid response from Ollama for task: {task}")
        content = message.get("content")
        if content is not None and not isinstance(content, str):
            raise ModelServiceFailure(f"Received an invalid response from Ollama for task: {task}")
        if not content or not content.strip():
            logger.error("Ollama returned empty content for task: %s", task)
            raise EmptyModelReply()

        return clean_model_reply(content)

    async def health_check(self) -> bool:
        try:
            resp = await self._client.get("/", timeout=HEALTH_TIMEOUT)
            resp.raise_for_status()
            return True
        except Exception as e:
            logger.warning("Ollama service health check failed: %s", e)
            return False
