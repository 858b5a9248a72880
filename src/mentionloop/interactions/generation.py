from __future__ import annotations

import json
import logging
import re
from typing import Any, Dict, Optional

from .completion import ModelConfig
from .models import AgentIdentity, ConversationContext
from .prompts import MESSAGE_HANDLER_TEMPLATE, compose_context


FENCE_PATTERN = re.compile(r"```(?:json|yaml|text)?\s*(.*?)```", re.IGNORECASE | re.DOTALL)

logger = logging.getLogger("mentionloop.interactions")


def _first_json_object(text: str) -> Optional[Dict[str, Any]]:
    start = text.find("{")
    while start != -1:
        depth = 0
        in_string = False
        escaped = False
        for idx in range(start, len(text)):
            ch = text[idx]
            if in_string:
                if escaped:
                    escaped = False
                elif ch == "\\":
                    escaped = True
                elif ch == '"':
                    in_string = False
                continue
            if ch == '"':
                in_string = True
            elif ch == "{":
                depth += 1
            elif ch == "}":
                depth -= 1
                if depth == 0:
                    try:
                        parsed = json.loads(text[start : idx + 1])
                    except ValueError:
                        break
                    return parsed if isinstance(parsed, dict) else None
        start = text.find("{", start + 1)
    return None


def _strip_outer_quotes(text: str) -> str:
    value = text.strip()
    if len(value) >= 2 and value[0] == value[-1] and value[0] in {'"', "'"}:
        return value[1:-1].strip()
    return value


def extract_reply_text(raw: Any) -> str:
    """Pull the reply out of a completion: the JSON ``text`` field, or the plain answer."""
    text = str(raw or "").strip()
    if not text:
        return ""
    parsed = _first_json_object(text)
    if parsed is not None:
        value = parsed.get("text")
        return _strip_outer_quotes(str(value)) if value else ""
    fenced = FENCE_PATTERN.search(text)
    if fenced:
        text = fenced.group(1).strip()
    return _strip_outer_quotes(text)


class ResponseGenerator:
    def __init__(self, completion, model_config: ModelConfig, template: str = MESSAGE_HANDLER_TEMPLATE):
        self.completion = completion
        self.model_config = model_config
        self.template = template
        self.last_context = ""
        self.last_response = ""

    def render(self, context: ConversationContext, identity: AgentIdentity, state: Optional[Dict[str, Any]] = None) -> str:
        values: Dict[str, Any] = {
            "agentName": identity.display_name,
            "agentHandle": identity.handle,
            "bio": identity.bio,
            "lore": identity.lore,
            "characterPostExamples": identity.post_examples,
            "postDirections": identity.post_directions,
            "conversationThread": context.format(),
            "currentPost": context.current.format(),
        }
        values.update(state or {})
        return compose_context(values, self.template)

    def generate(
        self,
        context: ConversationContext,
        identity: AgentIdentity,
        state: Optional[Dict[str, Any]] = None,
    ) -> str:
        prompt = self.render(context, identity, state)
        self.last_context = prompt
        self.last_response = ""
        try:
            raw = self.completion.complete(prompt, [], self.model_config)
        except Exception as e:
            logger.warning("Reply generation failed interaction_id=%s error=%s", context.current.id, e)
            return ""
        self.last_response = str(raw or "")
        return extract_reply_text(raw)
