# services/grades.py
from typing import Any, Dict, List, Optional
import logging

import httpx
import pandas as pd

from zotprof.settings import ANTEATER_BASE_URL
from zotprof.services.errors import GradesError
from zotprof.services.models import (
    GRADE_KEYS,
    LETTER_GRADES,
    GradePercentages,
    GradeRecord,
    instructor_last_name,
)

log = logging.getLogger("zotprof.grades")

# grade letter -> API count field
_COUNT_FIELDS = {g: f"grade{g}Count" for g in GRADE_KEYS}


def _counts_from(payload: Dict[str, Any]) -> Dict[str, int]:
    counts = {}
    for grade, key in _COUNT_FIELDS.items():
        try:
            counts[grade] = int(payload.get(key) or 0)
        except (TypeError, ValueError):
            counts[grade] = 0
    return counts


def records_from_payload(result: Any, instructor: str, course_number: str) -> List[GradeRecord]:
    """
    Two shapes come back from the grades service:

    - aggregate: {ok, data: {sectionList: [...], gradeDistribution: {...}}}
      The distribution already covers every listed section, so it becomes a
      single record tagged with the most recent section.
    - raw: a list of per-section rows, each carrying its own counts.
    """
    if isinstance(result, list):
        rows = result
    elif isinstance(result, dict):
        if result.get("ok") is False:
            return []
        data = result.get("data")
        if isinstance(data, list):
            rows = data
        elif isinstance(data, dict):
            sections = data.get("sectionList") or []
            dist = data.get("gradeDistribution") or {}
            if not sections or not dist:
                return []
            first = sections[0]
            instructors = first.get("instructors") or []
            return [
                GradeRecord(
                    instructor=instructors[0] if instructors else instructor,
                    course_number=str(first.get("courseNumber") or course_number),
                    year=str(first.get("year") or ""),
                    quarter=str(first.get("quarter") or ""),
                    department=str(first.get("department") or ""),
                    section_code=str(first.get("sectionCode") or ""),
                    counts=_counts_from(dist),
                )
            ]
        else:
            return []
    else:
        return []

    records = []
    for row in rows:
        if not isinstance(row, dict):
            continue
        records.append(
            GradeRecord(
                instructor=str(row.get("instructor") or instructor),
                course_number=str(row.get("courseNumber") or course_number),
                year=str(row.get("year") or ""),
                quarter=str(row.get("quarter") or ""),
                department=str(row.get("department") or ""),
                section_code=str(row.get("sectionCode") or ""),
                counts=_counts_from(row),
            )
        )
    return records


def grade_totals(records: List[GradeRecord]) -> Dict[str, int]:
    """Sum every letter across all records (all terms pooled together)."""
    if not records:
        return {g: 0 for g in GRADE_KEYS}
    df = pd.DataFrame([{g: r.count(g) for g in GRADE_KEYS} for r in records], columns=GRADE_KEYS)
    sums = df.fillna(0).sum()
    return {g: int(sums[g]) for g in GRADE_KEYS}


def _largest_remainder(counts: List[int], total: int) -> List[int]:
    """
    Whole percentages that add up to exactly 100: floor every share, then
    give the leftover points to the largest remainders (earlier letters win
    ties). Each value is within 1 of its plainly rounded share.
    """
    floors = [c * 100 // total for c in counts]
    remainders = [c * 100 % total for c in counts]
    leftover = 100 - sum(floors)
    for i in sorted(range(len(counts)), key=lambda i: -remainders[i])[:leftover]:
        floors[i] += 1
    return floors


def calculate_grade_percentages(records: Optional[List[GradeRecord]]) -> Optional[GradePercentages]:
    """
    Letter-grade shares over A-F. Returns None when nothing was graded, so
    callers can tell "no data" apart from "everyone failed".
    """
    if not records:
        return None

    totals = grade_totals(records)
    total = sum(totals[g] for g in LETTER_GRADES)
    if total == 0:
        return None

    pct = _largest_remainder([totals[g] for g in LETTER_GRADES], total)
    return GradePercentages(*pct, total=total)


class GradesClient:
    def __init__(self, http: httpx.AsyncClient, base_url: str = ANTEATER_BASE_URL):
        self.http = http
        self.base_url = base_url.rstrip("/")

    async def fetch_grades(
        self,
        instructor: str,
        course_number: str,
        department: Optional[str] = None,
    ) -> List[GradeRecord]:
        last_name = instructor_last_name(instructor) or instructor.strip().upper()
        params = {"instructor": last_name, "courseNumber": course_number}
        if department:
            params["department"] = department

        try:
            resp = await self.http.get(f"{self.base_url}/grades/aggregate", params=params)
        except httpx.HTTPError as e:
            raise GradesError(f"Grades request failed: {e}") from e

        if resp.status_code != 200:
            raise GradesError(f"Grades API error: {resp.status_code}", status_code=resp.status_code)

        try:
            result = resp.json()
        except ValueError as e:
            raise GradesError("Grades API returned invalid JSON") from e

        records = records_from_payload(result, instructor, course_number)
        log.info("Grades for %s / %s: %d record(s)", last_name, course_number, len(records))
        return records

    async def grade_percentages(self, instructor: str, course_number: str) -> Optional[GradePercentages]:
        return calculate_grade_percentages(await self.fetch_grades(instructor, course_number))
