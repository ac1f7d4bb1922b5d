# chatbot/llm_intent.py

"""
LLM-backed search-intent parser.

Goal: take a natural-language search like:
    "easiest ics 33 prof for w26"

and turn it into the SAME SearchIntent dict that chatbot.intent.parse_intent()
returns, e.g.:

{
    "type": "class",
    "department": "I&C SCI",
    "courseNumber": "33",
    "term": "Winter 2026",
    "professorName": None,
    "intent": "recommendation",
    "filters": {"easyGrading": True, "highRating": False, "lowDifficulty": True},
}

So the search endpoint works the same whichever parser ran.
"""

from __future__ import annotations

from typing import Any, Dict, Optional
import json
import logging

from openai import OpenAI

from zotprof.settings import OPENAI_MODEL, USE_LLM_INTENT
from zotprof.chatbot.intent import normalize_department, parse_intent
from zotprof.chatbot.intent_schema import SearchIntent
from zotprof.chatbot.nlu_rules import extract_term

log = logging.getLogger("zotprof.llm_intent")

# ---------------------------
# 1) System prompt
# ---------------------------

SYSTEM_PROMPT = """
You are a UCI course search query parser. Analyze the user's query and extract structured information.

Return ONLY a valid JSON object with this exact structure:
{
  "type": "class" | "professor" | "recommendation",
  "department": string or null (e.g., "I&C SCI", "COMPSCI", "MATH"),
  "courseNumber": string or null (e.g., "33", "2A"),
  "term": string or null (e.g., "Winter 2026", "Spring 2026"),
  "professorName": string or null (e.g., "Pattis", "Thornton"),
  "intent": "search" | "comparison" | "recommendation",
  "filters": {
    "easyGrading": boolean,
    "highRating": boolean,
    "lowDifficulty": boolean
  }
}

Common abbreviations:
- "ics" → "I&C SCI"
- "cs" → "COMPSCI"
- "w26" or "winter 26" → "Winter 2026"
- "f25" or "fall 25" → "Fall 2025"
- "s26" or "spring 26" → "Spring 2026"

You MUST output ONLY a JSON object, no extra text, no markdown,
no explanations.
"""

# ---------------------------
# 2) Prompt builder
# ---------------------------


def build_prompt(user_text: str) -> str:
    """
    The system message explains the schema; this adds examples and the actual text.
    """
    examples = [
        {
            "user": "ics 33 winter 2026",
            "intent": {
                "type": "class",
                "department": "I&C SCI",
                "courseNumber": "33",
                "term": "Winter 2026",
                "professorName": None,
                "intent": "search",
                "filters": {"easyGrading": False, "highRating": False, "lowDifficulty": False},
            },
        },
        {
            "user": "pattis",
            "intent": {
                "type": "professor",
                "department": None,
                "courseNumber": None,
                "term": None,
                "professorName": "Pattis",
                "intent": "search",
                "filters": {"easyGrading": False, "highRating": False, "lowDifficulty": False},
            },
        },
        {
            "user": "easiest math class",
            "intent": {
                "type": "recommendation",
                "department": "MATH",
                "courseNumber": None,
                "term": None,
                "professorName": None,
                "intent": "recommendation",
                "filters": {"easyGrading": True, "highRating": False, "lowDifficulty": True},
            },
        },
        {
            "user": "thornton vs pattis",
            "intent": {
                "type": "professor",
                "department": None,
                "courseNumber": None,
                "term": None,
                "professorName": "Thornton",
                "intent": "comparison",
                "filters": {"easyGrading": False, "highRating": False, "lowDifficulty": False},
            },
        },
    ]

    examples_text = "\n\n".join(
        [
            f"User: {ex['user']}\nIntent JSON: {json.dumps(ex['intent'])}"
            for ex in examples
        ]
    )

    return f"""
Here are examples of how to map a search to intent JSON:

{examples_text}

Now parse this new search into an intent JSON:

User: {user_text}
Intent JSON:
""".strip()


# ---------------------------
# 3) Helpers: client + JSON extraction + normalization
# ---------------------------


def _get_client() -> OpenAI:
    """
    Requires OPENAI_API_KEY in the environment.
    """
    return OpenAI()


def _extract_json(text: str) -> str:
    """
    Models sometimes wrap JSON in text or ```json fences.
    Take the substring between the first '{' and the last '}'.
    """
    if not text:
        return "{}"
    start = text.find("{")
    end = text.rfind("}")
    if start == -1 or end == -1 or end <= start:
        return "{}"
    return text[start : end + 1]


def _clean_str(value: Any) -> Optional[str]:
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return str(int(value))
    if isinstance(value, str) and value.strip():
        return value.strip()
    return None


def _normalize_intent_dict(data: Dict[str, Any], original_text: str) -> SearchIntent:
    """
    Take the raw dict from the model and enforce types + defaults.
    Anything the model left out is filled from the rule-based parser.
    """
    rules = parse_intent(original_text)

    qtype = str(data.get("type") or "").lower()
    if qtype not in ("class", "professor", "recommendation"):
        qtype = rules["type"]

    department = _clean_str(data.get("department"))
    department = normalize_department(department) if department else rules["department"]

    course_number = _clean_str(data.get("courseNumber"))
    course_number = course_number.upper() if course_number else rules["courseNumber"]

    term = _clean_str(data.get("term"))
    parsed_term = extract_term(term) if term else None
    term = parsed_term.label if parsed_term else rules["term"]

    professor = _clean_str(data.get("professorName")) or rules["professorName"]

    kind = str(data.get("intent") or "").lower()
    if kind not in ("search", "comparison", "recommendation"):
        kind = rules["intent"]

    raw_filters = data.get("filters") if isinstance(data.get("filters"), dict) else {}
    filters = {
        key: bool(raw_filters.get(key, rules["filters"][key]))
        for key in ("easyGrading", "highRating", "lowDifficulty")
    }

    return {
        "type": qtype,
        "department": department,
        "courseNumber": course_number,
        "term": term,
        "professorName": professor,
        "intent": kind,
        "filters": filters,
    }


# ---------------------------
# 4) Main entry points
# ---------------------------


def parse_with_llm(user_text: str, model: str = OPENAI_MODEL) -> SearchIntent:
    client = _get_client()
    prompt = build_prompt(user_text)

    resp = client.chat.completions.create(
        model=model,
        temperature=0.0,
        messages=[
            {"role": "system", "content": SYSTEM_PROMPT},
            {"role": "user", "content": prompt},
        ],
    )

    content = resp.choices[0].message.content or ""
    json_str = _extract_json(content)

    try:
        raw = json.loads(json_str)
    except json.JSONDecodeError:
        log.warning("AI intent parser returned invalid JSON: %r", content[:200])
        raw = {}

    return _normalize_intent_dict(raw, original_text=user_text)


def parse_search_intent(user_text: str, use_llm: bool = USE_LLM_INTENT) -> SearchIntent:
    """
    AI parser when enabled, rule parser otherwise or when the AI call fails.
    """
    if not use_llm:
        return parse_intent(user_text)
    try:
        return parse_with_llm(user_text)
    except Exception as e:
        log.warning("LLM intent parser failed, falling back to rule parser: %s", e)
        return parse_intent(user_text)
