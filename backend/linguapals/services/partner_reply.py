"""
Partner Reply - lets a group's AI partner answer the latest human message.
"""

import logging
from typing import List, Optional

from ..llm.base import LLMMessage, LLMProvider
from ..models import GroupChat, GroupMessage

logger = logging.getLogger(__name__)

FALLBACK_REPLY = "Sorry, I'm having trouble connecting right now."
IDLE_REPLY = "Group chat initialized."

# Most recent messages sent to the model
HISTORY_WINDOW = 30


def _system_prompt(group: GroupChat) -> str:
    partner = group.partner
    if partner is None:
        return "You are a friendly language exchange partner chatting with a small group of learners."
    prompt = (
        f"You are {partner.name}, a native {partner.native_language} speaker learning "
        f"{partner.learning_language}, chatting with a small group of learners."
    )
    if partner.interests:
        prompt += f" Your interests: {', '.join(partner.interests)}."
    if group.topic:
        prompt += f" The group is practising: {group.topic}."
    return prompt


def build_conversation(group: GroupChat) -> List[LLMMessage]:
    """Map the group log to chat-completion messages, naming each human speaker."""
    conversation = [LLMMessage.text("system", _system_prompt(group))]
    for message in group.messages[-HISTORY_WINDOW:]:
        if message.sender == "ai":
            conversation.append(LLMMessage.text("assistant", message.text))
        else:
            speaker = message.sender_name or message.sender_id or "member"
            conversation.append(LLMMessage.text("user", f"{speaker}: {message.text}"))
    return conversation


class PartnerReplyService:
    """Produces the AI partner's next message for a group."""

    def __init__(self, llm_provider: Optional[LLMProvider] = None):
        self.llm_provider = llm_provider

    async def reply(self, group: GroupChat) -> GroupMessage:
        """
        Generate the partner's reply to the group log.

        Without a human message to answer, returns a fixed greeting; without
        a configured provider, or when the provider fails, returns a fixed
        apology instead of raising.
        """
        partner_name = group.partner.name if group.partner else None
        if not any(m.sender == "user" for m in group.messages):
            return GroupMessage(sender="ai", sender_name=partner_name, text=IDLE_REPLY)

        if self.llm_provider is None:
            logger.warning("No LLM provider configured for partner replies")
            return GroupMessage(sender="ai", sender_name=partner_name, text=FALLBACK_REPLY)

        try:
            response = await self.llm_provider.chat_completion(build_conversation(group))
            text = response.content.strip() or FALLBACK_REPLY
        except Exception as e:
            logger.error(
                f"Error getting group partner reply: {e}",
                extra={"extra_fields": {"group_id": group.id}}
            )
            text = FALLBACK_REPLY

        return GroupMessage(sender="ai", sender_name=partner_name, text=text)
