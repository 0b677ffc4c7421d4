"""Reply generation over the Hugging Face chat-completions API.

The generator is the only place that knows about the inference provider. Callers get
plain text back or an ``AIReplyError``.
"""

from typing import Any, Dict, Optional

import httpx

from constants import AI_MAX_TOKENS, AI_TIMEOUT_SECONDS, HF_API_KEY, HF_API_URL, HF_MODEL
from logging_config import get_logger

logger = get_logger(__name__)

SYSTEM_PROMPT = "You are a friendly assistant taking part in a chat conversation. Keep replies short."


class AIReplyError(Exception):
    """The provider could not produce a reply."""


class ReplyGenerator:
    def __init__(
        self,
        *,
        api_key: Optional[str] = None,
        api_url: Optional[str] = None,
        model: Optional[str] = None,
        timeout: Optional[float] = None,
        max_tokens: Optional[int] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_key = api_key if api_key is not None else HF_API_KEY
        self.api_url = api_url or HF_API_URL
        self.model = model or HF_MODEL
        self.timeout = timeout or AI_TIMEOUT_SECONDS
        self.max_tokens = max_tokens or AI_MAX_TOKENS
        self._client = httpx.AsyncClient(timeout=self.timeout, transport=transport)
        logger.info(f"Initializing ReplyGenerator with model {self.model} at {self.api_url}")
        if not self.api_key:
            logger.warning("HF_API_KEY is not set, AI replies will fail until it is configured")

    def _build_payload(self, text: str) -> Dict[str, Any]:
        return {
            "model": self.model,
            "messages": [
                {"role": "system", "content": SYSTEM_PROMPT},
                {"role": "user", "content": text},
            ],
            "max_tokens": self.max_tokens,
        }

    async def generate_reply(self, text: str) -> str:
        if not text or not text.strip():
            raise AIReplyError("Cannot generate a reply to empty content")
        if not self.api_key:
            raise AIReplyError("HF_API_KEY is not configured")

        headers = {"Authorization": f"Bearer {self.api_key}"}
        logger.debug(f"Requesting AI reply for {len(text)} chars of content")
        try:
            resp = await self._client.post(self.api_url, json=self._build_payload(text), headers=headers)
        except httpx.HTTPError as e:
            raise AIReplyError(f"AI provider request failed: {e}") from e

        if resp.status_code != 200:
            raise AIReplyError(f"AI provider error {resp.status_code}: {resp.text[:200]}")

        try:
            body = resp.json()
            reply = body["choices"][0]["message"]["content"]
        except (ValueError, KeyError, IndexError, TypeError) as e:
            raise AIReplyError(f"Unexpected AI provider response: {e}") from e

        if not isinstance(reply, str) or not reply.strip():
            raise AIReplyError("AI provider returned an empty reply")
        reply = reply.strip()
        logger.debug(f"AI reply generated ({len(reply)} chars)")
        return reply

    async def close(self):
        await self._client.aclose()
