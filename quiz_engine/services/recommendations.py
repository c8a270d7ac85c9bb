"""
recommendations.py - Study recommendations for a completed attempt

Runs as the engine's completion hook: once per attempt, right after it moves
to "completed". Always returns a list; when the AI provider is disabled, not
configured or failing, the fixed fallback advice is returned instead.
"""

import json
import logging
import re
from typing import List

from quiz_engine.config import settings
from quiz_engine.models.quiz import Attempt
from quiz_engine.services.ai_client import ai_chat, ai_configured

logger = logging.getLogger(__name__)

MAX_RECOMMENDATIONS = 3

FALLBACK_RECOMMENDATIONS = [
    "Review the questions you got wrong and understand why",
    "Practice similar problems to reinforce your learning",
    "Consider additional study materials or tutoring for challenging topics",
]

_LIST_MARKER_RE = re.compile(r"^\s*(?:\d+[.)]|[-*•])\s*")


def parse_recommendations(text: str) -> List[str]:
    """Split a model reply into at most three plain recommendation lines."""
    lines = []
    for line in (text or "").splitlines():
        cleaned = _LIST_MARKER_RE.sub("", line).strip()
        if cleaned:
            lines.append(cleaned)
    return lines[:MAX_RECOMMENDATIONS]


def _attempt_payload(attempt: Attempt) -> dict:
    return {
        "score": attempt.score,
        "total_questions": attempt.total_questions,
        "percentage": attempt.percentage,
        "answers": [
            {
                "question_id": a.question_id,
                "difficulty": a.difficulty.value,
                "correct": a.is_correct,
            }
            for a in attempt.answers
        ],
    }


async def generate_recommendations(attempt: Attempt) -> List[str]:
    if not settings.recommendations_enabled or not ai_configured("cheap"):
        logger.info("AI provider not configured, using fallback recommendations")
        return list(FALLBACK_RECOMMENDATIONS)

    prompt = f"""Based on this quiz score, provide 3 actionable learning recommendations.

Data: {json.dumps(_attempt_payload(attempt), indent=2)}

Focus on:
1. Areas where the student struggled
2. Study strategies that would be most effective
3. Next steps for continued learning

Return exactly 3 recommendations, each as a separate, actionable point."""

    try:
        text = await ai_chat(
            messages=[
                {
                    "role": "system",
                    "content": "You are an educational advisor providing personalized learning "
                               "recommendations based on student quiz performance.",
                },
                {"role": "user", "content": prompt},
            ],
            use_case="cheap",
            temperature=0.7,
            max_tokens=300,
        )
    except Exception as e:
        logger.warning(f"Recommendation generation failed for attempt {attempt.id}: {e}")
        return list(FALLBACK_RECOMMENDATIONS)

    return parse_recommendations(text) or list(FALLBACK_RECOMMENDATIONS)
