from typing import AsyncIterator, Dict, List, Optional, Tuple
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
import asyncio
import logging

import httpx

from zotprof.settings import GENERATE_INSIGHTS, HTTP_TIMEOUT, RATINGS_SOURCE
from zotprof.chatbot.intent import parse_search_query
from zotprof.services.catalog import CatalogClient
from zotprof.services.errors import CatalogError, GradesError, RatingsError
from zotprof.services.grades import GradesClient, calculate_grade_percentages
from zotprof.services.models import (
    LETTER_GRADES,
    Course,
    GradePercentages,
    GradeRecord,
    Instructor,
    ProfessorRecord,
    RatingsProfile,
    Section,
    SectionInfo,
    Term,
    split_course_code,
)
from zotprof.services.narrative import NarrativeService, StudentContext, insight_fallback
from zotprof.services.ratings import RatingsLookup, build_ratings_lookup, ratings_summary, top_review, top_tags

log = logging.getLogger("zotprof.actions")

PARSE_HELP = 'Try a format like "ICS 33" or "MATH 3A".'
CATALOG_DOWN = "The course catalog is unavailable right now. Please try again in a moment."
# courses whose grades feed a professor search, most recent first
MAX_PROFESSOR_COURSES = 5


@dataclass
class Sources:
    """The upstreams one search or chat turn talks to."""

    catalog: CatalogClient
    grades: GradesClient
    ratings: RatingsLookup
    narrative: NarrativeService


@asynccontextmanager
async def open_sources(
    ratings_source: str = RATINGS_SOURCE,
    narrative: Optional[NarrativeService] = None,
) -> AsyncIterator[Sources]:
    async with httpx.AsyncClient(timeout=HTTP_TIMEOUT) as http:
        yield Sources(
            catalog=CatalogClient(http),
            grades=GradesClient(http),
            ratings=build_ratings_lookup(ratings_source, http),
            narrative=narrative or NarrativeService(),
        )


def not_found_message(course_code: str, term: Term) -> str:
    return f"😕 {course_code} was not found for {term.label}. It may not be offered this term."


async def find_course_with_fallback(
    catalog: CatalogClient,
    term: Term,
    department: str,
    course_number: str,
) -> Tuple[Optional[Course], Term]:
    """
    Look in `term`, and once more in the following quarter if nothing turns
    up there. Returns the course (or None) and the term it came from.
    """
    first_error = None
    try:
        course = await catalog.find_course(term, department, course_number)
    except CatalogError as e:
        log.warning("Catalog lookup failed for %s %s in %s: %s", department, course_number, term.label, e)
        course, first_error = None, e

    if course is not None and course.sections:
        return course, term

    alternate = term.next()
    log.info("Trying %s %s in %s instead", department, course_number, alternate.label)
    try:
        alt_course = await catalog.find_course(alternate, department, course_number)
    except CatalogError as e:
        if first_error is not None:
            raise
        # the requested term answered; its "not found" stands
        log.warning("Catalog lookup failed for %s %s in %s: %s", department, course_number, alternate.label, e)
        return course, term
    if alt_course is not None and alt_course.sections:
        return alt_course, alternate

    if first_error is not None:
        raise first_error
    return course, term


# ---------------------------
# Per-section enrichment
# ---------------------------


async def _safe_grade_records(
    grades: GradesClient,
    instructor: str,
    course_number: str,
    department: Optional[str] = None,
) -> List[GradeRecord]:
    try:
        return await grades.fetch_grades(instructor, course_number, department)
    except GradesError as e:
        log.warning("Grades unavailable for %s / %s: %s", instructor, course_number, e)
        return []


async def _safe_grades(grades: GradesClient, instructor: str, course_number: str) -> Optional[GradePercentages]:
    return calculate_grade_percentages(await _safe_grade_records(grades, instructor, course_number))


async def _safe_instructor(catalog: CatalogClient, name: str) -> Optional[Instructor]:
    try:
        return await catalog.find_instructor(name)
    except CatalogError as e:
        log.warning("Instructor directory unavailable for %s: %s", name, e)
        return None


async def _safe_ratings(ratings: RatingsLookup, instructor: str) -> Optional[RatingsProfile]:
    try:
        return await ratings.lookup(instructor)
    except RatingsError as e:
        log.warning("Ratings unavailable for %s: %s", instructor, e)
        return None


def _no_instructor_name(section: Section) -> str:
    for name in section.instructors:
        if name.strip().upper() == "STAFF":
            return "STAFF"
    return "TBA"


def build_record(
    section: Optional[Section],
    name: str,
    grades: Optional[GradePercentages],
    profile: Optional[RatingsProfile],
    department: str = "",
) -> ProfessorRecord:
    """
    Merge whatever came back into one display record. Missing grades become
    zero bars with has_grade_data=False; missing ratings become zeros and
    no tags. The section half is always filled in when there is a section.
    """
    record = ProfessorRecord(
        name=profile.full_name if profile and profile.full_name else name,
        department=(profile.department if profile else "") or department,
        section=SectionInfo.from_section(section) if section is not None else None,
        tags=top_tags(profile),
        top_review=top_review(profile),
    )
    if profile is not None:
        record.rating = profile.avg_rating
        record.difficulty = profile.avg_difficulty
        record.review_count = profile.num_ratings
        record.would_take_again = profile.would_take_again_percent
    if grades is not None:
        record.grades = grades.as_bars()
        record.has_grade_data = True
        record.grade_total = grades.total
    else:
        record.grades = {g: 0 for g in LETTER_GRADES}
    return record


def degraded_record(section: Section) -> ProfessorRecord:
    return ProfessorRecord(
        name="TBA",
        section=SectionInfo.from_section(section),
        narrative="Details for this section couldn't be loaded.",
        degraded=True,
    )


async def enrich_section(
    sources: Sources,
    course: Course,
    section: Section,
    generate_insights: bool = GENERATE_INSIGHTS,
) -> ProfessorRecord:
    instructor = section.primary_instructor
    if instructor is None:
        # STAFF / TBA: nobody to look up
        record = build_record(section, _no_instructor_name(section), None, None, course.department_code)
        record.narrative = "Instructor not yet announced."
        return record

    grades, profile = await asyncio.gather(
        _safe_grades(sources.grades, instructor, course.course_number),
        _safe_ratings(sources.ratings, instructor),
    )
    record = build_record(section, instructor, grades, profile, course.department_code)

    if generate_insights:
        record.narrative = await sources.narrative.generate_insight(record.name, grades, profile)
    else:
        record.narrative = insight_fallback(record.name, grades)
    return record


async def aggregate_sections(
    sources: Sources,
    course: Course,
    generate_insights: bool = GENERATE_INSIGHTS,
) -> List[ProfessorRecord]:
    """
    One record per section, in catalog order. Sections are enriched
    concurrently; a section that blows up comes back as a TBA record
    instead of taking the others down with it.
    """

    async def guarded(section: Section) -> ProfessorRecord:
        try:
            return await enrich_section(sources, course, section, generate_insights)
        except Exception:
            log.exception("Enriching section %s of %s failed", section.code, course.code)
            return degraded_record(section)

    records = await asyncio.gather(*(guarded(s) for s in course.sections))
    return list(records)


# ---------------------------
# Search entry points
# ---------------------------


@dataclass
class SearchResult:
    query: str
    term: str
    course_code: Optional[str] = None
    course_title: str = ""
    records: List[ProfessorRecord] = field(default_factory=list)
    message: Optional[str] = None

    @property
    def found(self) -> bool:
        return bool(self.records)

    def to_dict(self) -> Dict:
        return {
            "query": self.query,
            "term": self.term,
            "course_code": self.course_code,
            "course_title": self.course_title,
            "found": self.found,
            "message": self.message,
            "results": [r.to_dict() for r in self.records],
        }


async def search_course(
    sources: Sources,
    query: str,
    term: Term,
    generate_insights: bool = GENERATE_INSIGHTS,
) -> SearchResult:
    parsed = parse_search_query(query)
    if parsed is None:
        return SearchResult(query=query, term=term.label, message=f'Couldn\'t understand "{query}". {PARSE_HELP}')

    try:
        course, used_term = await find_course_with_fallback(
            sources.catalog, term, parsed.department, parsed.course_number
        )
    except CatalogError as e:
        log.error("Catalog unavailable for %s: %s", parsed.code, e)
        return SearchResult(query=query, term=term.label, course_code=parsed.code, message=CATALOG_DOWN)

    if course is None or not course.sections:
        return SearchResult(
            query=query,
            term=term.label,
            course_code=parsed.code,
            message=not_found_message(parsed.code, term),
        )

    records = await aggregate_sections(sources, course, generate_insights)
    result = SearchResult(
        query=query,
        term=used_term.label,
        course_code=course.code,
        course_title=course.title,
        records=records,
    )
    if used_term != term:
        result.message = f"{course.code} isn't offered in {term.label}; showing {used_term.label}."
    return result


async def search_professor(
    sources: Sources,
    name: str,
    term: Term,
    generate_insights: bool = GENERATE_INSIGHTS,
) -> SearchResult:
    name = (name or "").strip()
    if not name:
        return SearchResult(query=name, term=term.label, message="Type a professor's name, e.g. Pattis.")

    profile, instructor = await asyncio.gather(
        _safe_ratings(sources.ratings, name),
        _safe_instructor(sources.catalog, name),
    )
    if profile is None and instructor is None:
        return SearchResult(query=name, term=term.label, message=f'No professors found for "{name}".')

    courses: List[str] = []
    grades = None
    if instructor is not None:
        courses = instructor.courses[:MAX_PROFESSOR_COURSES]
        refs = [split_course_code(code) for code in courses]
        # every course pooled together, like the per-course view pools terms
        grade_sets = await asyncio.gather(
            *(_safe_grade_records(sources.grades, instructor.name, number, dept) for dept, number in refs)
        )
        grades = calculate_grade_percentages([r for records in grade_sets for r in records])

    record = build_record(
        None,
        instructor.name if instructor else name,
        grades,
        profile,
        instructor.department if instructor else "",
    )
    record.courses = courses
    if generate_insights:
        record.narrative = await sources.narrative.generate_insight(record.name, grades, profile)
    else:
        record.narrative = insight_fallback(record.name, grades)
    return SearchResult(query=name, term=term.label, records=[record], message=ratings_summary(profile))


# ---------------------------
# Chat planning
# ---------------------------


class CoursePlanner:
    """Runs the whole pipeline for one course the student asked about."""

    def __init__(self, sources: Sources):
        self.sources = sources

    async def analyze_course(self, term: Term, course_text: str, context: StudentContext) -> str:
        parsed = parse_search_query(course_text)
        if parsed is None:
            return f'⚠️ I couldn\'t read "{course_text}" as a course. {PARSE_HELP}'

        # CatalogError propagates: the conversation turns it into a warning
        course, used_term = await find_course_with_fallback(
            self.sources.catalog, term, parsed.department, parsed.course_number
        )
        if course is None or not course.sections:
            return not_found_message(parsed.code, term)

        records = await aggregate_sections(self.sources, course, generate_insights=False)
        named = [r for r in records if not r.degraded and r.name not in ("STAFF", "TBA")]
        options = named or records

        header = f"📚 {course.code}: {course.title}".rstrip(": ")
        if used_term != term:
            header += f" (not offered in {term.label}, showing {used_term.label})"
        body = await self.sources.narrative.recommend(context, course.code, options)
        return f"{header}\n\n{body}"
