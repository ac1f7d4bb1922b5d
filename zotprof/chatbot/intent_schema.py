# chatbot/intent_schema.py

from __future__ import annotations
from typing import Literal, Optional, TypedDict


SearchType = Literal["class", "professor", "recommendation"]
IntentKind = Literal["search", "comparison", "recommendation"]


class SearchFilters(TypedDict):
    easyGrading: bool
    highRating: bool
    lowDifficulty: bool


class SearchIntent(TypedDict, total=False):
    """
    Standard shape for a parsed search box query.

    Both the rule-based parser (chatbot.intent.parse_intent) and the AI
    parser (chatbot.llm_intent.parse_with_llm) return this, so the search
    page and the API never care which one ran.
    """

    # What is the user looking for?
    # - "class"          : a specific course, e.g. "ics 33"
    # - "professor"      : a person, e.g. "pattis"
    # - "recommendation" : open question, e.g. "easiest math class"
    type: SearchType

    department: Optional[str]       # canonical code, e.g. "I&C SCI"
    courseNumber: Optional[str]     # e.g. "33", "2A"
    term: Optional[str]             # e.g. "Winter 2026"
    professorName: Optional[str]    # e.g. "Pattis"

    intent: IntentKind
    filters: SearchFilters
