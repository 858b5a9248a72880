from __future__ import annotations

import re
from typing import Any, Dict


PLACEHOLDER_PATTERN = re.compile(r"\{\{\s*([A-Za-z_][A-Za-z0-9_]*)\s*\}\}")

MESSAGE_COMPLETION_FOOTER = """
Response format should be formatted in a JSON block like this:
```json
{ "user": "{{agentName}}", "text": "your reply text", "action": "NONE" }
```"""

SHOULD_RESPOND_FOOTER = "The available options are [RESPOND], [IGNORE], or [STOP]. Choose the most appropriate option."

MESSAGE_HANDLER_TEMPLATE = (
    """# Task: Generate a reply for the character {{agentName}}.
About {{agentName}} (@{{agentHandle}}):
{{bio}}
{{lore}}

{{characterPostExamples}}

{{postDirections}}

Recent interactions between {{agentName}} and other users:
{{recentPostInteractions}}

{{recentPosts}}

Conversation so far:
{{conversationThread}}

# Task: Generate a short reply in the voice, style and perspective of {{agentName}} (@{{agentHandle}}) to:
{{currentPost}}
"""
    + MESSAGE_COMPLETION_FOOTER
)

SHOULD_RESPOND_TEMPLATE = (
    """# INSTRUCTIONS: Determine if {{agentName}} (@{{agentHandle}}) should respond to the message and participate in the conversation. Do not comment.

Response options are RESPOND, IGNORE and STOP.

{{agentName}} is in a room with other users and wants to be conversational, but not annoying.
{{agentName}} should RESPOND to messages that are directed at them, or participate in conversations that are interesting or relevant to their background.
If a message is not interesting or relevant, {{agentName}} should IGNORE.
Unless directly RESPONDing to a user, {{agentName}} should IGNORE messages that are very short or do not contain much information.
If a user asks {{agentName}} to stop talking, {{agentName}} should STOP.
If {{agentName}} concludes a conversation and isn't part of the conversation anymore, {{agentName}} should STOP.

About {{agentName}}:
{{bio}}

{{recentPosts}}

Conversation so far:
{{conversationThread}}

IMPORTANT: {{agentName}} (aka @{{agentHandle}}) is particularly sensitive about being annoying, so if there is any doubt, it is better to IGNORE.

{{currentPost}}

# INSTRUCTIONS: Respond with [RESPOND] if {{agentName}} should respond, or [IGNORE] if {{agentName}} should not respond to the last message and [STOP] if {{agentName}} should stop participating in the conversation.
"""
    + SHOULD_RESPOND_FOOTER
)


def compose_context(state: Dict[str, Any], template: str) -> str:
    """Fill ``{{name}}`` placeholders from ``state``; unknown names render empty."""

    def _replace(match: "re.Match[str]") -> str:
        value = state.get(match.group(1))
        if value is None:
            return ""
        if isinstance(value, (list, tuple)):
            return "\n".join(str(item) for item in value)
        return str(value)

    return PLACEHOLDER_PATTERN.sub(_replace, template)
