"""Keyword based routing of a message to one of the chatbot personas."""

from __future__ import annotations

from ..models import Intent

EDUCATION_KEYWORDS = (
    "learn",
    "study",
    "course",
    "education",
    "school",
    "homework",
    "assignment",
    "question",
    "apprendre",
    "étudier",
    "cours",
    "éducation",
    "école",
    "devoir",
    "exercice",
)

QUIZ_KEYWORDS = (
    "quiz",
    "game",
    "test",
    "play",
    "challenge",
    "question",
    "answer",
    "jeu",
    "défi",
    "réponse",
    "questionnaire",
)


def classify(text: str) -> Intent:
    """Education wins over quiz; anything else goes to client support."""

    lowered = (text or "").lower()
    if any(keyword in lowered for keyword in EDUCATION_KEYWORDS):
        return Intent.EDUCATION
    if any(keyword in lowered for keyword in QUIZ_KEYWORDS):
        return Intent.QUIZ
    return Intent.CLIENT
