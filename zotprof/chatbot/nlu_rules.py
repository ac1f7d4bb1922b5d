# chatbot/nlu_rules.py
"""
Best-effort extraction from chat messages.

Each extractor returns None / [] when it finds nothing; the conversation
engine decides what that means for the dialogue.
"""
import re
from typing import List, Optional

from zotprof.services.models import QUARTER_NAMES, Term

TERM_PATTERN = re.compile(
    r"\b(fall|winter|spring|summer)\s*(?:quarter\s*|session\s*)?(?:of\s+)?'?(\d{4}|\d{2})\b",
    flags=re.I,
)
# w26, f25, s26 -- "s" is spring, summer has to be spelled out
SHORT_TERM_PATTERN = re.compile(r"\b([fws])\s*'?(\d{2})\b", flags=re.I)
SHORT_SEASONS = {"f": "fall", "w": "winter", "s": "spring"}

COURSE_PATTERN = re.compile(
    r"\b([a-z][a-z&]*(?:\s+sci)?)\s*(\d{1,3}[a-z]{0,2})\b",
    flags=re.I,
)

# words that show up right before a number in normal sentences
NOT_DEPARTMENTS = {
    "and", "or", "also", "plus", "have", "need", "take", "taking", "want",
    "the", "for", "with", "about", "maybe", "course", "courses", "class",
    "classes", "units", "unit", "like", "only", "just", "top", "get",
}


def _year(raw: str) -> int:
    year = int(raw)
    return year + 2000 if year < 100 else year


def extract_term(text: str) -> Optional[Term]:
    """
    "Winter 2026", "winter '26", "w26" -> Term("Winter", 2026).
    """
    m = TERM_PATTERN.search(text or "")
    if m:
        return Term(QUARTER_NAMES[m.group(1).lower()], _year(m.group(2)))
    m = SHORT_TERM_PATTERN.search(text or "")
    if m:
        season = SHORT_SEASONS[m.group(1).lower()]
        return Term(QUARTER_NAMES[season], _year(m.group(2)))
    return None


def extract_courses(text: str) -> List[str]:
    """
    All "DEPT NUMBER" mentions, uppercased, first mention order, no repeats.
    Departments are left as typed; alias mapping happens in chatbot.intent.
    """
    found: List[str] = []
    for dept, number in COURSE_PATTERN.findall(text or ""):
        dept = " ".join(dept.split()).upper()
        if dept.lower() in NOT_DEPARTMENTS or len(dept) > 8:
            continue
        token = f"{dept} {number.upper()}"
        if token not in found:
            found.append(token)
    return found


def extract_goals(text: str) -> Optional[str]:
    cleaned = (text or "").strip()
    return cleaned or None


def is_restart(text: str) -> bool:
    return (text or "").strip().lower() in {"start over", "restart", "reset", "new plan"}
