"""Response parsing utilities for LLM chat completion replies"""

import json
import logging
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)


class ResponseParser:
    """Parser for free-text model replies that should contain JSON"""

    @staticmethod
    def extract_json_from_text(text: str) -> Optional[Any]:
        """
        Extract and parse JSON from a model reply

        Models sometimes wrap JSON in markdown code blocks like:
        ```json
        {"key": "value"}
        ```

        This method handles both bare JSON and markdown-wrapped JSON.

        Args:
            text: Raw text content from the chat completion

        Returns:
            Parsed JSON value or None if parsing fails
        """
        if not text:
            logger.warning("Empty model response text")
            return None

        # Try markdown JSON blocks first
        if '```json' in text:
            try:
                json_text = text.split('```json')[1].split('```')[0].strip()
                return json.loads(json_text)
            except (IndexError, json.JSONDecodeError) as e:
                logger.debug(f"Failed to parse markdown JSON block: {e}")

        # Try generic markdown code blocks
        if '```' in text:
            try:
                json_text = text.split('```')[1].split('```')[0].strip()
                return json.loads(json_text)
            except (IndexError, json.JSONDecodeError) as e:
                logger.debug(f"Failed to parse generic code block: {e}")

        # Try bare JSON
        try:
            return json.loads(text.strip())
        except json.JSONDecodeError as e:
            logger.warning(f"Failed to parse model response as JSON: {e}\nText: {text[:200]}")
            return None

    @staticmethod
    def extract_object(reply: Any) -> Optional[Dict[str, Any]]:
        """
        Coerce a reply (text or already-structured) into a JSON object

        Returns:
            Dict if the reply is, or parses to, a JSON object; otherwise None
        """
        if isinstance(reply, dict):
            return reply
        if isinstance(reply, (bytes, bytearray)):
            reply = reply.decode("utf-8", errors="replace")
        if not isinstance(reply, str):
            return None

        parsed = ResponseParser.extract_json_from_text(reply)
        if isinstance(parsed, dict):
            return parsed
        return None
