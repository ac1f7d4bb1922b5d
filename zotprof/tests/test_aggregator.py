import asyncio

import httpx

from zotprof.chatbot.actions import CATALOG_DOWN, Sources, search_course, search_professor
from zotprof.services.catalog import CatalogClient
from zotprof.services.grades import GradesClient
from zotprof.services.models import RatingsProfile, Term
from zotprof.services.narrative import NarrativeService
from zotprof.services.ratings import RatingsLookup, StaticRatingsLookup

WINTER = Term("Winter", 2026)

RATINGS = {
    "RICHARD PATTIS": RatingsProfile(first_name="Richard", last_name="Pattis", avg_rating=4.2, num_ratings=156),
    "ALEX THORNTON": RatingsProfile(first_name="Alex", last_name="Thornton", avg_rating=4.8, num_ratings=203),
}


class Upstream:
    """Routes websoc, instructor and grades calls; records what was asked for."""

    def __init__(self, courses_by_quarter, grades_by_instructor, catalog_status=200, failing_quarters=(), instructors=()):
        self.courses_by_quarter = courses_by_quarter
        self.grades_by_instructor = grades_by_instructor
        self.catalog_status = catalog_status
        self.failing_quarters = set(failing_quarters)
        self.instructors = list(instructors)
        self.websoc_calls = []
        self.grade_calls = []
        self.grade_params = []
        self.instructor_calls = []

    def __call__(self, request):
        params = dict(request.url.params)
        if request.url.path.endswith("/websoc"):
            self.websoc_calls.append(params["quarter"])
            if self.catalog_status != 200:
                return httpx.Response(self.catalog_status)
            if params["quarter"] in self.failing_quarters:
                return httpx.Response(500)
            return httpx.Response(200, json=self.courses_by_quarter.get(params["quarter"]) or {"data": {"schools": []}})
        if request.url.path.endswith("/instructors"):
            self.instructor_calls.append(params["nameContains"])
            return httpx.Response(200, json={"ok": True, "data": self.instructors})
        self.grade_calls.append(params["instructor"])
        self.grade_params.append(params)
        payload = self.grades_by_instructor.get(params["instructor"])
        if callable(payload):
            payload = payload(params)
        return httpx.Response(200, json=payload or {"ok": True, "data": {"sectionList": [], "gradeDistribution": {}}})


def _search(upstream, query="ICS 33", ratings=None, ai=None, generate_insights=False):
    async def go():
        async with httpx.AsyncClient(transport=httpx.MockTransport(upstream)) as http:
            sources = Sources(
                catalog=CatalogClient(http, base_url="https://api.test"),
                grades=GradesClient(http, base_url="https://api.test"),
                ratings=ratings or StaticRatingsLookup(RATINGS),
                narrative=NarrativeService(client=ai),
            )
            return await search_course(sources, query, WINTER, generate_insights=generate_insights)

    return asyncio.run(go())


def _ics33(make_websoc, make_section, *sections):
    return make_websoc(
        [{"deptCode": "I&C SCI", "courseNumber": "33", "courseTitle": "Intermediate Programming", "sections": list(sections)}]
    )


def test_records_follow_section_order_and_staff_is_not_looked_up(make_websoc, make_section, make_grades_payload):
    upstream = Upstream(
        {
            "Winter": _ics33(
                make_websoc,
                make_section,
                make_section("36000", ["PATTIS, R."]),
                make_section("36010", ["STAFF"]),
                make_section("36020", ["THORNTON, A."]),
            )
        },
        {"PATTIS": make_grades_payload(40, 30, 20, 5, 5)},
    )
    result = _search(upstream)

    assert [r.name for r in result.records] == ["Richard Pattis", "STAFF", "Alex Thornton"]
    assert [r.section.code for r in result.records] == ["36000", "36010", "36020"]
    assert sorted(upstream.grade_calls) == ["PATTIS", "THORNTON"]
    assert result.course_code == "I&C SCI 33"
    assert result.term == "Winter 2026"

    pattis = result.records[0]
    assert pattis.grades == {"A": 40, "B": 30, "C": 20, "D": 5, "F": 5}
    assert pattis.narrative == (
        "Professor Richard Pattis teaches this course. Historical grade distribution shows 40% A's and 30% B's."
    )


def test_missing_grades_are_zero_filled_and_flagged(make_websoc, make_section):
    upstream = Upstream({"Winter": _ics33(make_websoc, make_section, make_section("36020", ["THORNTON, A."]))}, {})
    record = _search(upstream).records[0]
    assert record.grades == {"A": 0, "B": 0, "C": 0, "D": 0, "F": 0}
    assert record.has_grade_data is False
    assert record.rating == 4.8
    assert record.narrative.endswith("Limited data available.")


def test_unknown_professor_keeps_section_data(make_websoc, make_section):
    upstream = Upstream({"Winter": _ics33(make_websoc, make_section, make_section("36030", ["NOBODY, Z."], 145, 150))}, {})
    record = _search(upstream).records[0]
    assert record.name == "NOBODY, Z."
    assert record.rating == 0
    assert record.tags == []
    assert record.top_review == "No reviews available"
    assert record.section.almost_full is True


class _Exploding(RatingsLookup):
    async def lookup(self, professor_name):
        if "THORNTON" in professor_name:
            raise RuntimeError("unexpected payload")
        return RATINGS["RICHARD PATTIS"]


def test_one_failing_section_degrades_alone(make_websoc, make_section):
    upstream = Upstream(
        {
            "Winter": _ics33(
                make_websoc,
                make_section,
                make_section("36000", ["PATTIS, R."]),
                make_section("36020", ["THORNTON, A."]),
            )
        },
        {},
    )
    result = _search(upstream, ratings=_Exploding())
    assert [r.name for r in result.records] == ["Richard Pattis", "TBA"]
    assert result.records[1].degraded is True
    assert result.records[1].section.code == "36020"


def test_alternate_term_tried_once(make_websoc, make_section):
    upstream = Upstream({"Spring": _ics33(make_websoc, make_section, make_section("36000", ["PATTIS, R."]))}, {})
    result = _search(upstream)
    assert upstream.websoc_calls == ["Winter", "Spring"]
    assert result.term == "Spring 2026"
    assert "Winter 2026" in result.message


def test_not_found_after_alternate(make_websoc, make_section):
    upstream = Upstream({}, {})
    result = _search(upstream, query="ICS 999")
    assert upstream.websoc_calls == ["Winter", "Spring"]
    assert result.found is False
    assert result.message == "😕 I&C SCI 999 was not found for Winter 2026. It may not be offered this term."


def test_catalog_down():
    upstream = Upstream({}, {}, catalog_status=503)
    result = _search(upstream)
    assert result.found is False
    assert result.message == CATALOG_DOWN


def test_unparseable_query_skips_upstreams():
    upstream = Upstream({}, {})
    result = _search(upstream, query="something easy")
    assert upstream.websoc_calls == []
    assert 'Try a format like "ICS 33"' in result.message


def test_insights_fall_back_when_model_is_rate_limited(make_websoc, make_section, make_grades_payload, fake_ai, rate_limit_error):
    upstream = Upstream(
        {"Winter": _ics33(make_websoc, make_section, make_section("36000", ["PATTIS, R."]))},
        {"PATTIS": make_grades_payload(40, 30, 20, 5, 5)},
    )
    result = _search(upstream, ai=fake_ai(error=rate_limit_error), generate_insights=True)
    assert "40% A's" in result.records[0].narrative
    assert "Richard Pattis" in result.records[0].narrative


def test_next_term_failing_keeps_not_found(make_websoc, make_section):
    # Winter answers "no such course"; Spring is down
    upstream = Upstream({}, {}, failing_quarters={"Spring"})
    result = _search(upstream)
    assert upstream.websoc_calls == ["Winter", "Spring"]
    assert result.found is False
    assert result.message == "😕 I&C SCI 33 was not found for Winter 2026. It may not be offered this term."


def test_both_terms_failing_is_catalog_down():
    upstream = Upstream({}, {}, failing_quarters={"Winter", "Spring"})
    assert _search(upstream).message == CATALOG_DOWN


def _professor_search(upstream, name):
    async def go():
        async with httpx.AsyncClient(transport=httpx.MockTransport(upstream)) as http:
            sources = Sources(
                catalog=CatalogClient(http, base_url="https://api.test"),
                grades=GradesClient(http, base_url="https://api.test"),
                ratings=StaticRatingsLookup(RATINGS),
                narrative=NarrativeService(client=None),
            )
            return await search_professor(sources, name, WINTER, generate_insights=False)

    return asyncio.run(go())


def test_professor_search_pools_grades_across_courses(make_grades_payload):
    def thornton_grades(params):
        if params["courseNumber"] == "32":
            return make_grades_payload(30, 10, 0, 0, 0, instructor="THORNTON, A.")
        return make_grades_payload(10, 30, 20, 0, 0, instructor="THORNTON, A.")

    upstream = Upstream(
        {},
        {"THORNTON": thornton_grades},
        instructors=[
            {
                "name": "Alex Thornton",
                "department": "Computer Science",
                "courses": [
                    {"department": "I&C SCI", "courseNumber": "32"},
                    "I&C SCI 33",
                    "I&C SCI 32",
                ],
            }
        ],
    )
    result = _professor_search(upstream, "thornton")

    record = result.records[0]
    assert record.name == "Alex Thornton"
    assert record.courses == ["I&C SCI 32", "I&C SCI 33"]
    assert sorted((p["department"], p["courseNumber"]) for p in upstream.grade_params) == [
        ("I&C SCI", "32"),
        ("I&C SCI", "33"),
    ]
    # 40 A / 40 B / 20 C over 100 graded
    assert record.has_grade_data is True
    assert record.grade_total == 100
    assert record.grades == {"A": 40, "B": 40, "C": 20, "D": 0, "F": 0}
    assert record.section is None
    assert result.message.startswith("⭐ 4.8/5 (203 reviews)")
    assert upstream.websoc_calls == []


def test_professor_search_caps_courses():
    upstream = Upstream(
        {},
        {},
        instructors=[{"name": "Richard Pattis", "courses": [f"I&C SCI {n}" for n in range(30, 40)]}],
    )
    record = _professor_search(upstream, "Pattis").records[0]
    assert len(record.courses) == 5
    assert len(upstream.grade_calls) == 5
    assert record.has_grade_data is False


def test_professor_search_without_directory_entry():
    upstream = Upstream({}, {})
    found = _professor_search(upstream, "thornton")
    assert [r.name for r in found.records] == ["Alex Thornton"]
    assert found.records[0].courses == []
    assert upstream.instructor_calls == ["thornton"]
    assert upstream.grade_calls == []

    missing = _professor_search(Upstream({}, {}), "nobody")
    assert missing.found is False
    assert missing.message == 'No professors found for "nobody".'


def test_professor_search_with_directory_only():
    upstream = Upstream({}, {}, instructors=[{"name": "Jane Doe", "courses": ["MATH 2A"]}])
    result = _professor_search(upstream, "doe")
    record = result.records[0]
    assert record.name == "Jane Doe"
    assert record.rating == 0
    assert result.message == "No rating data available"
