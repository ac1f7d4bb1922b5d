# services/narrative.py

"""
Natural-language text on top of the structured records.

The model is treated as an oracle that may say no at any moment (rate
limits, exhausted quota, network). Every public helper except summarize()
answers with a templated sentence built from data we already have when the
model call fails, so the feature degrades instead of breaking.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional
import json
import logging

import openai
from openai import AsyncOpenAI

from zotprof.settings import OPENAI_MODEL
from zotprof.services.errors import NarrativeError
from zotprof.services.models import GradePercentages, ProfessorRecord, RatingsProfile

log = logging.getLogger("zotprof.narrative")

SUMMARY_TYPES = {"professor-summary", "course-recommendation", "professor-insight", "chat-response"}

ADVISOR_SYSTEM_PROMPT = (
    "You are an expert academic advisor at UCI with deep knowledge of teaching styles "
    "and student needs. Provide honest, balanced, and actionable advice."
)

CHAT_SYSTEM_PROMPT = """
You are ZotProf AI, a friendly UCI academic advisor chatbot.

Help students plan their course schedules by:
- Asking what quarter they're planning for
- Finding out which courses they need
- Understanding their goals (GPA, learning, balance)
- Providing personalized recommendations

Be conversational, friendly, and use emojis occasionally. Keep responses concise (3-5 sentences per message).
""".strip()

CHAT_FALLBACK = "I'm having trouble connecting right now. Could you try rephrasing that?"


@dataclass
class StudentContext:
    quarter: str
    courses: List[str] = field(default_factory=list)
    goals: str = ""
    preferences: str = ""


# ---------------------------
# Deterministic fallbacks
# ---------------------------


def insight_fallback(professor_name: str, grades: Optional[GradePercentages]) -> str:
    if grades:
        detail = f"Historical grade distribution shows {grades.a}% A's and {grades.b}% B's."
    else:
        detail = "Limited data available."
    return f"Professor {professor_name} teaches this course. {detail}"


def recommendation_fallback(options: List[ProfessorRecord]) -> str:
    seen = ", ".join(
        f"{r.name} ({r.section.time if r.section else 'TBA'}, {r.section.seats_text if r.section else 'seats unknown'})"
        for r in options
    )
    return "I'm having trouble analyzing the data right now. But here's what I can see: " + seen


# ---------------------------
# Prompt builders
# ---------------------------


def _grades_line(grades: Optional[GradePercentages]) -> str:
    if not grades:
        return "No historical data available"
    return f"{grades.a}% A's, {grades.b}% B's, {grades.c}% C's, {grades.d}% D's, {grades.f}% F's"


def build_insight_prompt(
    name: str,
    grades: Optional[GradePercentages],
    ratings: Optional[RatingsProfile],
) -> str:
    reviews = "\n".join(f'- "{r.comment}"' for r in (ratings.top_reviews[:5] if ratings else [])) or "No reviews"
    return f"""Generate a 1-2 sentence insight about Professor {name} for UCI students.

RATING: {ratings.avg_rating if ratings else 'N/A'}/5
DIFFICULTY: {ratings.avg_difficulty if ratings else 'N/A'}/5
GRADES: {_grades_line(grades)}

TOP REVIEWS:
{reviews}

Create an honest, specific insight that captures their teaching style. Be concise and actionable (max 40 words)."""


def build_recommendation_prompt(context: StudentContext, course: str, options: List[ProfessorRecord]) -> str:
    blocks = []
    for i, r in enumerate(options, start=1):
        sec = r.section
        blocks.append(
            f"Option {i}: {r.name}\n"
            f"- Section Code: {sec.code if sec else 'TBA'}\n"
            f"- Schedule: {sec.time if sec else 'TBA'}\n"
            f"- Seats: {sec.seats_text if sec else 'unknown'}\n"
            f"- Rating: {r.rating or 'N/A'}/5, Difficulty: {r.difficulty or 'N/A'}/5\n"
            f"- Key review themes: {', '.join(r.tags) or 'Not enough data'}\n"
            f"- Grade Distribution: {_grades_line(r.grade_percentages)}"
        )
    return f"""You are ZotProf AI, a friendly UCI academic advisor helping students choose professors.

STUDENT CONTEXT:
- Quarter: {context.quarter}
- Course: {course}
- All courses planned: {', '.join(context.courses)}
- Goals: {context.goals or 'Not specified'}
- Preferences: {context.preferences or 'Not specified'}

PROFESSOR OPTIONS:
{chr(10).join(blocks)}

Provide a conversational analysis comparing these professors. Your response should:
1. Compare all options briefly (2-3 sentences)
2. Make a specific recommendation based on the student's goals
3. Highlight key insights from the grade data and availability
4. Give practical advice about seat urgency or registration

Be friendly and use emojis sparingly (📚 🎯 ⚠️). Keep it concise (250-350 words)."""


def build_summary_prompt(summary_type: str, data: Dict[str, Any]) -> str:
    """Prompts for the raw generate-ai-summary endpoint, where data is whatever JSON the caller sent."""
    if summary_type == "professor-summary":
        prof = data.get("professorData") or {}
        rmp = data.get("rmpData") or {}
        reviews = data.get("reviews") or []
        review_lines = "\n".join(
            f'- "{r.get("comment", "")}" ({r.get("rating", "N/A")}/5, {r.get("class") or "Unknown Course"})'
            for r in reviews[:10]
        ) or "No reviews available"
        return f"""You are an academic advisor helping UCI students choose professors. Generate a comprehensive, honest, and balanced summary.

PROFESSOR: {prof.get('name') or 'Unknown'}
DEPARTMENT: {prof.get('department') or rmp.get('department') or 'Unknown'}

RATINGS:
- Rating: {rmp.get('avgRating') or 'N/A'}/5 ({rmp.get('numRatings') or 0} ratings)
- Difficulty: {rmp.get('avgDifficulty') or 'N/A'}/5
- Would Take Again: {rmp.get('wouldTakeAgainPercent') or 'N/A'}%

RECENT REVIEWS (Top 10):
{review_lines}

GRADES:
{json.dumps(data.get('grades') or 'No grade data available')}

Generate a 2-3 paragraph summary (200-300 words): teaching style, strengths and challenges from actual
student feedback, and who this professor is best suited for. Be balanced and honest."""

    if summary_type == "course-recommendation":
        profs = data.get("professors") or []
        lines = "\n".join(
            f"{p.get('name')}:\n"
            f"- Rating: {(p.get('rmpData') or {}).get('avgRating') or 'N/A'}/5\n"
            f"- Difficulty: {(p.get('rmpData') or {}).get('avgDifficulty') or 'N/A'}/5\n"
            f"- Key review themes: {', '.join(p.get('topTags') or []) or 'Not enough data'}"
            for p in profs
        )
        return f"""You are advising a UCI student on professor selection.

COURSE: {data.get('course') or 'Unknown'}

STUDENT PROFILE: {json.dumps(data.get('userProfile') or 'Student profile not provided')}

PROFESSOR OPTIONS:
{lines}

Recommend the best professor for this specific student. In 2-3 sentences, explain which professor you
recommend, why they're the best fit based on the data, and one specific piece of advice."""

    if summary_type == "professor-insight":
        rmp = data.get("rmpData") or {}
        reviews = "\n".join(f'- "{r.get("comment", "")}"' for r in (data.get("reviews") or [])[:5]) or "No reviews"
        return f"""Generate a 1-2 sentence insight about Professor {data.get('name') or 'Unknown'} for UCI students.

RATING: {rmp.get('avgRating') or 'N/A'}/5
DIFFICULTY: {rmp.get('avgDifficulty') or 'N/A'}/5

TOP REVIEWS:
{reviews}

Create an honest, specific insight that captures their teaching style. Be concise and actionable (max 40 words)."""

    if summary_type == "chat-response":
        return f"""{CHAT_SYSTEM_PROMPT}

User's message: {data.get('userMessage') or ''}

Respond naturally to continue the conversation."""

    raise ValueError(f"Invalid summary type: {summary_type}")


# ---------------------------
# Service
# ---------------------------


def _status_of(error: openai.OpenAIError) -> int:
    if isinstance(error, openai.RateLimitError):
        return 429
    return getattr(error, "status_code", None) or 502


class NarrativeService:
    def __init__(self, client: Optional[Any] = None, model: str = OPENAI_MODEL):
        self._client = client
        self.model = model

    def _get_client(self):
        # OPENAI_API_KEY is read here; a missing key surfaces as OpenAIError
        if self._client is None:
            self._client = AsyncOpenAI()
        return self._client

    async def complete(self, messages: List[Dict[str, str]]) -> str:
        try:
            resp = await self._get_client().chat.completions.create(
                model=self.model,
                messages=messages,
            )
        except openai.OpenAIError as e:
            status = _status_of(e)
            log.error("AI service error (%s): %s", status, e)
            raise NarrativeError(str(e), status_code=status) from e

        content = (resp.choices[0].message.content or "").strip() if resp.choices else ""
        if not content:
            raise NarrativeError("No content in AI response", status_code=502)
        return content

    async def _advise(self, prompt: str) -> str:
        return await self.complete(
            [
                {"role": "system", "content": ADVISOR_SYSTEM_PROMPT},
                {"role": "user", "content": prompt},
            ]
        )

    async def generate_insight(
        self,
        professor_name: str,
        grades: Optional[GradePercentages],
        ratings: Optional[RatingsProfile] = None,
    ) -> str:
        try:
            return await self._advise(build_insight_prompt(professor_name, grades, ratings))
        except NarrativeError:
            return insight_fallback(professor_name, grades)

    async def recommend(self, context: StudentContext, course: str, options: List[ProfessorRecord]) -> str:
        try:
            return await self._advise(build_recommendation_prompt(context, course, options))
        except NarrativeError:
            return recommendation_fallback(options)

    async def chat_reply(self, history: List[Dict[str, str]], message: str, context: str = "") -> str:
        system = CHAT_SYSTEM_PROMPT
        if context:
            system += "\n\nWhat you already know about this student:\n" + context
        messages = [{"role": "system", "content": system}]
        messages += [{"role": m["role"], "content": m["content"]} for m in history[-6:]]
        messages.append({"role": "user", "content": message})
        try:
            return await self.complete(messages)
        except NarrativeError:
            return CHAT_FALLBACK

    async def summarize(self, summary_type: str, data: Dict[str, Any]) -> str:
        if summary_type not in SUMMARY_TYPES:
            raise ValueError(f"Invalid summary type: {summary_type}")
        log.info("Generating %s summary", summary_type)
        return await self._advise(build_summary_prompt(summary_type, data))
