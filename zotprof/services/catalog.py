# services/catalog.py
from typing import Any, Dict, Iterator, Optional
import logging

import httpx

from zotprof.settings import ANTEATER_BASE_URL
from zotprof.services.errors import CatalogError
from zotprof.services.models import Course, Instructor, Term, instructor_last_name

log = logging.getLogger("zotprof.catalog")


def _iter_courses(payload: Dict[str, Any]) -> Iterator[Dict[str, Any]]:
    # schools -> departments -> courses, in the order websoc returns them
    for school in payload.get("schools") or []:
        for dept in school.get("departments") or []:
            log.debug("Checking department: %s", dept.get("deptCode"))
            for course in dept.get("courses") or []:
                yield course


def find_in_websoc(payload: Dict[str, Any], course_number: str, loose: bool = True) -> Optional[Dict[str, Any]]:
    """
    Depth-first scan of a websoc `data` object.

    An exact course-number match anywhere wins; with `loose`, the first
    course whose number merely contains the requested one is the fallback
    (so "33" can still find "H33" when that is all the term offers).
    """
    wanted = course_number.strip().upper()
    for course in _iter_courses(payload):
        if str(course.get("courseNumber", "")).upper() == wanted:
            return course
    if loose:
        for course in _iter_courses(payload):
            if wanted in str(course.get("courseNumber", "")).upper():
                return course
    return None


class CatalogClient:
    """Course catalog + live enrollment, one websoc query per lookup."""

    def __init__(self, http: httpx.AsyncClient, base_url: str = ANTEATER_BASE_URL):
        self.http = http
        self.base_url = base_url.rstrip("/")

    async def find_course(self, term: Term, department: str, course_number: str) -> Optional[Course]:
        params = {
            "year": str(term.year),
            "quarter": term.quarter,
            "department": department,  # already canonical, sent as-is
            "courseNumber": course_number,
        }
        url = f"{self.base_url}/websoc"
        log.info("Fetching %s %s for %s", department, course_number, term.label)

        try:
            resp = await self.http.get(url, params=params)
        except httpx.HTTPError as e:
            raise CatalogError(f"Catalog request failed: {e}") from e

        if resp.status_code != 200:
            raise CatalogError(f"Catalog API error: {resp.status_code}", status_code=resp.status_code)

        try:
            result = resp.json()
        except ValueError as e:
            raise CatalogError("Catalog API returned invalid JSON") from e

        data = result.get("data") if isinstance(result, dict) else None
        if not isinstance(data, dict) or not data.get("schools"):
            log.warning("No schools in catalog response for %s %s (%s)", department, course_number, term.label)
            return None

        raw = find_in_websoc(data, course_number)
        if raw is None:
            log.warning("Course %s %s not found in %s", department, course_number, term.label)
            return None

        course = Course.from_api(raw)
        if not course.department_code:
            course.department_code = department
        log.info("Found %s: %s (%d sections)", course.code, course.title, len(course.sections))
        return course

    async def find_instructor(self, name: str) -> Optional[Instructor]:
        """
        The instructor directory entry for `name`, with the courses they
        teach. Entries whose name contains the searched last name are
        preferred over whatever the directory ranked first.
        """
        query = (name or "").strip()
        if not query:
            return None

        try:
            resp = await self.http.get(f"{self.base_url}/instructors", params={"nameContains": query})
        except httpx.HTTPError as e:
            raise CatalogError(f"Instructor request failed: {e}") from e

        if resp.status_code != 200:
            raise CatalogError(f"Instructor API error: {resp.status_code}", status_code=resp.status_code)

        try:
            result = resp.json()
        except ValueError as e:
            raise CatalogError("Instructor API returned invalid JSON") from e

        entries = result.get("data") if isinstance(result, dict) else result
        entries = [e for e in entries or [] if isinstance(e, dict) and e.get("name")]
        if not entries:
            log.info("No instructor entry for %s", query)
            return None

        last_name = instructor_last_name(query)
        match = next((e for e in entries if last_name in str(e["name"]).upper()), entries[0])
        instructor = Instructor.from_api(match)
        log.info("Instructor %s teaches %d course(s)", instructor.name, len(instructor.courses))
        return instructor
