import json
import logging
import math
import re
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence

import requests
from requests import exceptions as requests_exceptions

from .models import Decision


# Bare words only count in upper case so "I would not respond" stays unparsed.
DECISION_TOKEN_PATTERN = re.compile(r"\b(RESPOND|IGNORE|STOP)\b")
MAX_CONTEXT_CHARS = 16000

logger = logging.getLogger("mentionloop.interactions")


@dataclass
class ModelConfig:
    model: str
    temperature: float = 0.7
    max_tokens: Optional[int] = None


def parse_decision(text: Any) -> Optional[Decision]:
    """Return the RESPOND/IGNORE/STOP token in ``text``, bracketed tokens first."""
    blob = str(text or "")
    bracketed = re.search(r"\[\s*(RESPOND|IGNORE|STOP)\s*\]", blob, re.IGNORECASE)
    if bracketed:
        return Decision(bracketed.group(1).upper())
    match = DECISION_TOKEN_PATTERN.search(blob)
    if match:
        return Decision(match.group(1).upper())
    return None


def _estimate_tokens(text: str) -> int:
    if not text:
        return 0
    return int(math.ceil(len(text) / 4.0))


def _clip(text: str, max_chars: int) -> str:
    if len(text) <= max_chars:
        return text
    # Keep the tail: templates end with the current post and the instructions.
    return text[-max_chars:]


class CompletionClient:
    """OpenAI-compatible chat completion backend."""

    def __init__(self, api_key: Optional[str], base_url: str = "https://api.openai.com/v1", timeout: int = 60):
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout

    def _request(self, kind: str, context: str, stop: Sequence[str], model_config: ModelConfig) -> str:
        if not self.api_key:
            raise RuntimeError("OPENAI_API_KEY not set")

        prompt = _clip(context, MAX_CONTEXT_CHARS)
        messages: List[Dict[str, str]] = [{"role": "user", "content": prompt}]
        payload: Dict[str, Any] = {
            "model": model_config.model,
            "messages": messages,
            "temperature": model_config.temperature,
        }
        if stop:
            payload["stop"] = list(stop)
        if model_config.max_tokens:
            payload["max_tokens"] = model_config.max_tokens

        logger.info(
            "LLM request kind=%s model=%s prompt_chars=%s prompt_tokens_est=%s",
            kind,
            model_config.model,
            len(prompt),
            _estimate_tokens(prompt),
        )
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }
        try:
            resp = requests.post(
                f"{self.base_url}/chat/completions",
                headers=headers,
                data=json.dumps(payload),
                timeout=self.timeout,
            )
        except requests_exceptions.Timeout as e:
            raise RuntimeError(f"Timed out waiting for completion kind={kind}") from e
        if resp.status_code >= 400:
            raise RuntimeError(f"OpenAI error {resp.status_code}: {resp.text}")

        data = resp.json()
        try:
            content = data["choices"][0]["message"]["content"] or ""
        except (KeyError, IndexError, TypeError) as e:
            raise RuntimeError(f"Unexpected completion payload kind={kind}") from e
        usage = data.get("usage") if isinstance(data.get("usage"), dict) else {}
        logger.info(
            "LLM response kind=%s prompt_tokens=%s completion_tokens=%s total_tokens=%s",
            kind,
            usage.get("prompt_tokens"),
            usage.get("completion_tokens", _estimate_tokens(content)),
            usage.get("total_tokens"),
        )
        return content

    def complete(self, context: str, stop: Sequence[str], model_config: ModelConfig) -> str:
        return self._request("message", context, stop, model_config)

    def should_respond(self, context: str, stop: Sequence[str], model_config: ModelConfig) -> Optional[Decision]:
        return parse_decision(self._request("should_respond", context, stop, model_config))
