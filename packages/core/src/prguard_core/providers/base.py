"""Base LLM provider implementing the Template Method pattern.

Every analysis call follows the same shape:
    complete() → _call_with_retry() → _call_api()   ← only this differs per provider
    parse_json_object() on the raw text

Subclasses implement two things only:
  - __init__: validate and store the SDK client
  - _call_api: make one raw API call and return the text response

Prompt wording belongs to the caller (prguard_core.analyst); this layer only
moves text in and out of a model with retries.
"""

from __future__ import annotations

import json
import logging
import re
import time
from abc import ABC, abstractmethod

logger = logging.getLogger(__name__)

_MAX_RETRIES = 3
_MAX_TOKENS = 8192


class BaseProvider(ABC):
    MODEL: str = ""
    TEMPERATURE: float = 0.2
    MAX_RETRIES: int = _MAX_RETRIES
    MAX_TOKENS: int = _MAX_TOKENS

    def __init__(self, model: str | None = None):
        if model:
            self.MODEL = model

    def complete(self, system_prompt: str, user_prompt: str) -> str | None:
        """Return the model's text response, or None once retries are exhausted."""
        return self._call_with_retry(system_prompt, user_prompt)

    @abstractmethod
    def _call_api(self, system_prompt: str, user_prompt: str) -> str:
        """Make a single API call and return the raw text response.

        It should raise on failure; _call_with_retry handles retries and logging.
        """

    def _call_with_retry(self, system_prompt: str, user_prompt: str) -> str | None:
        for attempt in range(self.MAX_RETRIES):
            try:
                return self._call_api(system_prompt, user_prompt)
            except Exception as e:
                if attempt == self.MAX_RETRIES - 1:
                    logger.error(
                        "%s API failed after %d attempts: %s",
                        self.__class__.__name__,
                        self.MAX_RETRIES,
                        e,
                    )
                    return None
                delay = 2**attempt
                logger.warning(
                    "%s API error (attempt %d/%d): %s. Retrying in %ds...",
                    self.__class__.__name__,
                    attempt + 1,
                    self.MAX_RETRIES,
                    e,
                    delay,
                )
                time.sleep(delay)
        return None

    def parse_json_object(self, raw: str) -> dict | None:
        """Parse a JSON object out of the model's response.

        Returns None when the text is not JSON or the top-level value is not
        an object.
        """
        # Strip only the outer ```json ... ``` fence, not backticks inside
        # string values such as generated test code.
        cleaned = re.sub(r"^```(?:json)?\s*", "", raw.strip())
        cleaned = re.sub(r"\s*```$", "", cleaned.strip())
        try:
            data = json.loads(cleaned)
        except json.JSONDecodeError:
            # Models sometimes wrap the object in prose; fall back to the outermost braces.
            start, end = cleaned.find("{"), cleaned.rfind("}")
            if start == -1 or end <= start:
                logger.warning("%s: failed to parse response as JSON: %s", self.__class__.__name__, raw[:200])
                return None
            try:
                data = json.loads(cleaned[start : end + 1])
            except json.JSONDecodeError:
                logger.warning("%s: failed to parse response as JSON: %s", self.__class__.__name__, raw[:200])
                return None
        if not isinstance(data, dict):
            logger.warning("%s: expected a JSON object, got %s", self.__class__.__name__, type(data).__name__)
            return None
        return data
