"""OpenAI-compatible chat completions client shared by both reasoning services"""

import logging
from typing import Any, Dict, Optional

from ragtrader.api_clients.base_client import BaseAPIClient
from ragtrader.utils.errors import CollaboratorError

logger = logging.getLogger(__name__)


class ChatCompletionClient(BaseAPIClient):
    """POSTs to ``{base_url}/chat/completions`` and returns the first message text."""

    def __init__(
        self,
        service_name: str,
        api_key: Optional[str],
        model: str,
        base_url: str,
        timeout: int = 60,
        max_retries: int = 2,
        input_cost_per_mtok: float = 0,
        output_cost_per_mtok: float = 0,
    ):
        super().__init__(
            service_name=service_name,
            api_key=api_key,
            base_url=base_url,
            timeout=timeout,
            max_retries=max_retries,
            input_cost_per_mtok=input_cost_per_mtok,
            output_cost_per_mtok=output_cost_per_mtok,
        )
        self.model = model

    async def complete(
        self,
        prompt: str,
        system: Optional[str] = None,
        temperature: float = 0.2,
        max_tokens: int = 2500,
        operation: str = "Chat completion",
    ) -> str:
        """
        Run one chat completion

        Returns:
            The reply text of the first choice

        Raises:
            CollaboratorError: On HTTP failure or an empty reply
        """
        messages = []
        if system:
            messages.append({"role": "system", "content": system})
        messages.append({"role": "user", "content": prompt})

        payload: Dict[str, Any] = {
            "model": self.model,
            "messages": messages,
            "temperature": temperature,
            "max_tokens": max_tokens,
        }
        logger.debug(f"[{self.service_name}] {operation} prompt:\n{prompt}")

        response = await self._request_json(
            "POST",
            "/chat/completions",
            operation,
            json=payload,
            headers=self._build_headers(),
        )
        if not isinstance(response, dict):
            raise CollaboratorError(self.service_name, operation, message="unexpected response shape")

        usage = response.get("usage") or {}
        prompt_tokens = usage.get("prompt_tokens", 0)
        completion_tokens = usage.get("completion_tokens", 0)
        if prompt_tokens or completion_tokens:
            self.record_usage(
                operation=operation,
                input_tokens=prompt_tokens,
                output_tokens=completion_tokens,
            )

        choices = response.get("choices") or []
        if not choices:
            raise CollaboratorError(self.service_name, operation, message="Empty choices array")

        content = (choices[0].get("message") or {}).get("content") or ""
        if not content:
            raise CollaboratorError(self.service_name, operation, message="Empty message content")

        return content
