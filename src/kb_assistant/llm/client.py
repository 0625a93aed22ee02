from typing import List, Dict, Any, Optional
import logging

import httpx

from ..config import settings

logger = logging.getLogger("kb.llm")


class LLMClient:
    def __init__(
        self,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_key = api_key or settings.require_openai_api_key()
        self.model = model or settings.chat_model
        self._transport = transport

    async def chat(
        self,
        system_prompt: str,
        messages: List[Dict[str, Any]],
        temperature: float = 0.2,
    ) -> Dict[str, Any]:
        """
        Returns the raw message dict from the provider, e.g.:
        {
            "role": "assistant",
            "content": "..."
        }
        """
        payload = {
            "model": self.model,
            "messages": [{"role": "system", "content": system_prompt}] + messages,
            "temperature": temperature,
        }

        async with httpx.AsyncClient(
            timeout=settings.chat_timeout,
            transport=self._transport,
        ) as client:
            resp = await client.post(
                settings.chat_api_url,
                json=payload,
                headers={"Authorization": f"Bearer {self.api_key}"},
            )
        resp.raise_for_status()
        data = resp.json()
        logger.debug("Chat completion usage: %s", data.get("usage"))
        return data["choices"][0]["message"]
