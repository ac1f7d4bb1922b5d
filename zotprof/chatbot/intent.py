# chatbot/intent.py
from __future__ import annotations
from dataclasses import dataclass
import logging
import re
from typing import Dict, List, Optional

from zotprof.chatbot.intent_schema import SearchIntent
from zotprof.chatbot.nlu_rules import extract_courses, extract_term

log = logging.getLogger("zotprof.intent")

# Whatever students type -> the department code websoc expects.
DEPT_ALIASES = {
    # ICS courses are "I&C SCI" in the schedule of classes
    "ICS": "I&C SCI",
    "I&C SCI": "I&C SCI",
    "I&CSCI": "I&C SCI",

    "COMPSCI": "COMPSCI",
    "CS": "COMPSCI",

    "IN4MATX": "IN4MATX",
    "INFORMATICS": "IN4MATX",
    "INFO": "IN4MATX",

    "MATH": "MATH",
    "MATHEMATICS": "MATH",

    "WRITING": "WRITING",
    "WR": "WRITING",

    "BIO SCI": "BIO SCI",
    "BIOSCI": "BIO SCI",
    "BIO": "BIO SCI",

    "CHEM": "CHEM",
    "CHEMISTRY": "CHEM",

    "PHYSICS": "PHYSICS",
    "PHYS": "PHYSICS",

    "STATS": "STATS",
    "STAT": "STATS",
}

SEARCH_PATTERN = re.compile(r"([A-Z&\s]+?)\s*(\d+[A-Z]*)")

EASY_TOKENS = {"easy", "easiest", "easier", "lenient", "chill", "gpa"}
RATING_TOKENS = {"best", "top", "favorite", "great", "rated"}
RECOMMEND_TOKENS = {"recommend", "recommendation", "should", "who", "which"}


@dataclass
class CourseQuery:
    department: str
    course_number: str

    @property
    def code(self) -> str:
        return f"{self.department} {self.course_number}"

    def to_dict(self) -> Dict:
        return {"department": self.department, "courseNumber": self.course_number}


def normalize_department(raw: str) -> str:
    dept = " ".join(raw.strip().upper().split())
    return DEPT_ALIASES.get(dept, dept)


def parse_search_query(query: str) -> Optional[CourseQuery]:
    """
    "ICS 33" -> CourseQuery("I&C SCI", "33"), "math 3a" -> ("MATH", "3A").

    Returns None when the text has no DEPT + NUMBER shape; that is a normal
    outcome (e.g. a professor name), not an error. Departments missing from
    the alias table pass through uppercased and may not match upstream.
    """
    cleaned = (query or "").strip().upper()
    m = SEARCH_PATTERN.search(cleaned)
    if not m:
        return None

    department = " ".join(m.group(1).split())
    if not department:
        return None
    course_number = m.group(2)

    mapped = DEPT_ALIASES.get(department)
    if mapped is None:
        log.info("Department %r not in alias table, passing through", department)
    result = CourseQuery(department=mapped or department, course_number=course_number)
    log.debug("Parsed %r -> %s", query, result)
    return result


def _tokenize(text: str) -> List[str]:
    return re.findall(r"[a-z0-9&\-]+", text.lower())


def _extract_professor(text: str) -> Optional[str]:
    # drop filler so "best prof pattis" -> "pattis"
    filler = EASY_TOKENS | RATING_TOKENS | RECOMMEND_TOKENS | {
        "prof", "professor", "dr", "for", "the", "teaches", "teaching", "is", "vs", "a", "an", "class",
    }
    words = [w for w in re.findall(r"[A-Za-z'\-]+", text) if w.lower() not in filler]
    if not words:
        return None
    return " ".join(w.capitalize() for w in words)


def _find_course(query: str) -> Optional[CourseQuery]:
    # "easiest math 2a": a known department mentioned inside the sentence
    # beats reading the whole prefix as one department name
    for mention in extract_courses(query):
        parsed = parse_search_query(mention)
        if parsed is not None and parsed.department in DEPT_ALIASES.values():
            return parsed
    return parse_search_query(query)


def parse_intent(query: str) -> SearchIntent:
    """
    Rule-based stand-in for the AI search-intent parser; same output shape.
    """
    tokens = _tokenize(query)
    token_set = set(tokens)
    course = _find_course(query)
    term = extract_term(query)

    filters = {
        "easyGrading": bool(token_set & EASY_TOKENS),
        "highRating": bool(token_set & RATING_TOKENS),
        "lowDifficulty": bool(token_set & EASY_TOKENS),
    }

    if "vs" in token_set or "versus" in token_set:
        intent = "comparison"
    elif token_set & RECOMMEND_TOKENS or filters["easyGrading"] or filters["highRating"]:
        intent = "recommendation"
    else:
        intent = "search"

    professor = None
    if course is not None:
        qtype = "class"
    else:
        professor = _extract_professor(query)
        qtype = "recommendation" if intent == "recommendation" and not professor else "professor"

    return {
        "type": qtype,
        "department": course.department if course else None,
        "courseNumber": course.course_number if course else None,
        "term": term.label if term else None,
        "professorName": professor,
        "intent": intent,
        "filters": filters,
    }
