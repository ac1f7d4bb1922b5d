from zotprof.chatbot.intent import parse_intent, parse_search_query


def test_ics_alias():
    q = parse_search_query("ICS 33")
    assert q.department == "I&C SCI"
    assert q.course_number == "33"


def test_lowercase_and_letter_suffix():
    q = parse_search_query("  math 3a ")
    assert q.department == "MATH"
    assert q.course_number == "3A"


def test_cs_maps_to_compsci():
    assert parse_search_query("cs 161").department == "COMPSCI"
    assert parse_search_query("compsci161").department == "COMPSCI"


def test_multiword_department_collapses_spaces():
    q = parse_search_query("bio   sci 93")
    assert q.department == "BIO SCI"
    assert q.course_number == "93"


def test_unmapped_department_passes_through():
    q = parse_search_query("art hist 40a")
    assert q.department == "ART HIST"
    assert q.course_number == "40A"


def test_unparseable_is_none():
    assert parse_search_query("Pattis") is None
    assert parse_search_query("") is None
    assert parse_search_query("33") is None


def test_rule_intent_class():
    p = parse_intent("ics 33 winter 2026")
    assert p["type"] == "class"
    assert p["department"] == "I&C SCI"
    assert p["courseNumber"] == "33"
    assert p["term"] == "Winter 2026"
    assert p["intent"] == "search"


def test_rule_intent_professor():
    p = parse_intent("prof pattis")
    assert p["type"] == "professor"
    assert p["professorName"] == "Pattis"
    assert p["department"] is None


def test_rule_intent_filters_and_comparison():
    p = parse_intent("easiest math 2a")
    assert p["department"] == "MATH"
    assert p["courseNumber"] == "2A"
    assert p["filters"]["easyGrading"] is True
    assert p["filters"]["lowDifficulty"] is True
    assert p["intent"] == "recommendation"

    assert parse_intent("thornton vs pattis")["intent"] == "comparison"
