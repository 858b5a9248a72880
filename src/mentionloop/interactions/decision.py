from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from .completion import ModelConfig
from .errors import DecisionError
from .models import AgentIdentity, ConversationContext, Decision
from .prompts import SHOULD_RESPOND_TEMPLATE, compose_context


logger = logging.getLogger("mentionloop.interactions")


class DecisionGate:
    def __init__(self, completion, model_config: ModelConfig, template: str = SHOULD_RESPOND_TEMPLATE):
        self.completion = completion
        self.model_config = model_config
        self.template = template

    def render(self, context: ConversationContext, identity: AgentIdentity, state: Optional[Dict[str, Any]] = None) -> str:
        values: Dict[str, Any] = {
            "agentName": identity.display_name,
            "agentHandle": identity.handle,
            "bio": identity.bio,
            "conversationThread": context.format(),
            "currentPost": context.current.format(),
        }
        values.update(state or {})
        return compose_context(values, self.template)

    def decide(
        self,
        context: ConversationContext,
        identity: AgentIdentity,
        state: Optional[Dict[str, Any]] = None,
    ) -> Decision:
        prompt = self.render(context, identity, state)
        try:
            answer = self.completion.should_respond(prompt, [], self.model_config)
        except Exception as e:
            raise DecisionError(f"Decision query failed interaction_id={context.current.id}: {e}") from e
        if answer is None:
            logger.debug("Decision answer unparseable interaction_id=%s; defaulting to IGNORE", context.current.id)
            return Decision.IGNORE
        return answer
