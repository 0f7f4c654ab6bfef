from typing import List, Dict, Any, Optional
import logging

import httpx

from ..core.errors import SynthesisError

logger = logging.getLogger("memor.llm")


class LLMClient:
    def __init__(
        self,
        api_key: str,
        model: str = "gpt-3.5-turbo",
        base_url: str = "https://api.openai.com/v1",
        temperature: float = 0.5,
        max_tokens: int = 500,
        timeout: float = 60.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_key = api_key
        self.model = model
        self.url = base_url.rstrip("/") + "/chat/completions"
        self.temperature = temperature
        self.max_tokens = max_tokens
        self.timeout = timeout
        self._transport = transport

    async def chat(
        self,
        messages: List[Dict[str, Any]],
        temperature: float | None = None,
    ) -> Dict[str, Any]:
        """
        Returns the raw message dict from OpenAI, e.g.:
        {
            "role": "assistant",
            "content": "..."
        }
        """
        payload = {
            "model": self.model,
            "messages": messages,
            "temperature": self.temperature if temperature is None else temperature,
            "max_tokens": self.max_tokens,
        }

        async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
            resp = await client.post(
                self.url,
                json=payload,
                headers={"Authorization": f"Bearer {self.api_key}"},
            )
        resp.raise_for_status()
        data = resp.json()
        return data["choices"][0]["message"]

    async def generate(self, prompt: str) -> str:
        """
        Single-shot completion of `prompt`.

        Any transport, HTTP or format problem (timeouts included) is raised as
        SynthesisError. No retries.
        """
        try:
            message = await self.chat([{"role": "user", "content": prompt}])
        except httpx.HTTPError as exc:
            logger.error("Generation request failed (%s): %s", type(exc).__name__, exc)
            raise SynthesisError(
                f"Generation failed: {type(exc).__name__}"
            ) from exc
        except (KeyError, IndexError, TypeError, ValueError) as exc:
            raise SynthesisError("Generation response was malformed.") from exc

        content = message.get("content") if isinstance(message, dict) else None
        if not isinstance(content, str) or not content.strip():
            raise SynthesisError("Generation returned an empty answer.")

        return content.strip()
