"""Reply generation for the client, education and quiz personas."""

from __future__ import annotations

import logging
from typing import Optional, Protocol

from ..errors import WhatsAppRouterError
from ..models import ConversationContext, Intent
from .sanitizer import strip_markup, truncate

LOGGER = logging.getLogger(__name__)

FALLBACK_REPLY = "Désolé, je rencontre des difficultés techniques. Veuillez réessayer plus tard."
EMPTY_REPLY = "Je suis désolé, je n'ai pas pu générer une réponse appropriée."

DEFAULT_LEVEL = "3ème"
DEFAULT_UNDERSTANDING = 0.5
DEFAULT_COMPLEXITY = 0.5

CLIENT_PROMPT = """You are a customer service assistant for a telecom company, answering on {channel}.
Your goal is to help customers with their inquiries, issues, and requests.
Be professional, courteous, and solution-oriented.
Provide clear instructions and ask for clarification when needed.
If you cannot resolve an issue, offer to escalate it to a human agent."""

EDUCATION_PROMPT = """You are an educational assistant on {channel} for {level} students, specialized in {subject}.
Your goal is to provide clear, accurate explanations and guide students through their learning process.
Be patient, encouraging, and adapt your explanations to different learning styles.
Provide step-by-step solutions when appropriate and ask clarifying questions if needed.
Current understanding level: {understanding}
Subject complexity: {complexity}
Adapt your response accordingly."""

QUIZ_PROMPT = """You are a quiz master on {channel} who creates engaging educational quizzes.
Your goal is to make learning fun through interactive questions and challenges.
Be enthusiastic, encouraging, and provide informative feedback on answers.
Keep track of scores and progress, and adapt difficulty based on performance."""


class CompletionClient(Protocol):
    def complete(self, system_prompt: str, user_message: str) -> str:
        ...


def system_prompt(intent: Intent, context: Optional[ConversationContext] = None) -> str:
    context = context or ConversationContext()
    channel = context.channel or "whatsapp"
    if intent is Intent.EDUCATION:
        return EDUCATION_PROMPT.format(
            channel=channel,
            level=context.level or DEFAULT_LEVEL,
            subject=context.subject or "all subjects",
            understanding=DEFAULT_UNDERSTANDING if context.understanding is None else context.understanding,
            complexity=DEFAULT_COMPLEXITY if context.complexity is None else context.complexity,
        )
    if intent is Intent.QUIZ:
        return QUIZ_PROMPT.format(channel=channel)
    return CLIENT_PROMPT.format(channel=channel)


class Responder:
    """Asks the LLM for a reply and degrades to a canned answer instead of raising."""

    def __init__(self, llm: CompletionClient) -> None:
        self._llm = llm

    def respond(
        self,
        intent: Intent,
        message_text: str,
        context: Optional[ConversationContext] = None,
    ) -> str:
        prompt = system_prompt(intent, context)
        try:
            completion = self._llm.complete(prompt, message_text)
        except Exception as exc:
            return self._fallback(intent, exc)
        reply = truncate(strip_markup(completion or "").strip())
        if not reply:
            LOGGER.warning("Empty completion for intent=%s; using default reply", intent.value)
            return EMPTY_REPLY
        return reply

    @staticmethod
    def _fallback(intent: Intent, exc: Exception) -> str:
        if isinstance(exc, WhatsAppRouterError):
            LOGGER.error("LLM completion failed for intent=%s: %s", intent.value, exc)
        else:
            LOGGER.exception("Unexpected LLM failure for intent=%s", intent.value)
        return FALLBACK_REPLY
