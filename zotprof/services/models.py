# services/models.py
"""
Plain data records shared by the clients, the aggregator and the chat.

Everything here is request-scoped: records are built fresh from upstream
payloads and thrown away once a response has been rendered.
"""

from __future__ import annotations

from dataclasses import dataclass, field, asdict
from typing import Any, Dict, List, Optional, Tuple
import math

from zotprof.settings import ALMOST_FULL_THRESHOLD

GRADE_KEYS = ["A", "B", "C", "D", "F", "P", "NP", "W"]
LETTER_GRADES = ["A", "B", "C", "D", "F"]

NO_INSTRUCTOR = {"STAFF", "TBA", ""}

# websoc quarter names, keyed by what people actually type
QUARTER_NAMES = {
    "fall": "Fall",
    "winter": "Winter",
    "spring": "Spring",
    "summer": "Summer1",
    "summer1": "Summer1",
    "summer10wk": "Summer10wk",
    "summer2": "Summer2",
}


def round_half_up(value: float) -> int:
    # Python's round() is banker's rounding; 12.5% should read as 13%.
    return int(math.floor(value + 0.5))


def _to_int(value: Any, default: int = 0) -> int:
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, (int, float)):
        return int(value)
    if isinstance(value, str):
        try:
            return int(float(value.strip()))
        except ValueError:
            return default
    return default


def _to_float(value: Any, default: float = 0.0) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        return default


def is_named_instructor(name: Optional[str]) -> bool:
    return bool(name) and name.strip().upper() not in NO_INSTRUCTOR


def instructor_last_name(name: str) -> str:
    """
    "PATTIS, R." -> "PATTIS", "Richard Pattis" -> "PATTIS".
    """
    cleaned = (name or "").strip().upper()
    if "," in cleaned:
        return cleaned.split(",")[0].strip()
    parts = cleaned.split()
    return parts[-1] if parts else ""


# ---------------------------
# Terms
# ---------------------------


@dataclass(frozen=True)
class Term:
    quarter: str  # websoc quarter name, e.g. "Winter", "Summer1"
    year: int

    @classmethod
    def from_label(cls, label: str) -> "Term":
        """
        Strict parser for labels we produce ourselves ("Winter 2026").
        Free text from users goes through chatbot.nlu_rules.extract_term.
        """
        parts = (label or "").split()
        if len(parts) != 2 or not parts[1].isdigit():
            raise ValueError(f"Not a term label: {label!r}")
        quarter = QUARTER_NAMES.get(parts[0].lower())
        if quarter is None:
            raise ValueError(f"Unknown quarter: {parts[0]!r}")
        year = int(parts[1])
        if year < 100:
            year += 2000
        return cls(quarter=quarter, year=year)

    @property
    def label(self) -> str:
        season = "Summer" if self.quarter == "Summer1" else self.quarter
        return f"{season} {self.year}"

    def next(self) -> "Term":
        if self.quarter == "Fall":
            return Term("Winter", self.year + 1)
        if self.quarter == "Winter":
            return Term("Spring", self.year)
        # spring and every summer session roll into fall
        return Term("Fall", self.year)

    def __str__(self) -> str:
        return self.label


# ---------------------------
# Catalog
# ---------------------------


@dataclass
class Meeting:
    days: str = "TBA"
    time: str = "TBA"
    buildings: List[str] = field(default_factory=list)

    @classmethod
    def from_api(cls, data: Dict[str, Any]) -> "Meeting":
        time = data.get("time")
        if not time:
            start, end = data.get("startTime"), data.get("endTime")
            if isinstance(start, dict) and isinstance(end, dict):
                time = "{:d}:{:02d}-{:d}:{:02d}".format(
                    _to_int(start.get("hour")), _to_int(start.get("minute")),
                    _to_int(end.get("hour")), _to_int(end.get("minute")),
                )
        bldg = data.get("bldg") or []
        if isinstance(bldg, str):
            bldg = [bldg]
        return cls(
            days=(data.get("days") or "TBA").strip() or "TBA",
            time=(time or "TBA").strip() or "TBA",
            buildings=list(bldg),
        )


@dataclass
class Section:
    code: str
    type: str = ""
    number: str = ""
    units: str = ""
    instructors: List[str] = field(default_factory=list)
    meetings: List[Meeting] = field(default_factory=list)
    final_exam: str = ""
    capacity: int = 0
    enrolled: int = 0
    waitlist: int = 0
    waitlist_capacity: int = 0
    restrictions: str = ""
    status: str = ""
    comment: str = ""

    @classmethod
    def from_api(cls, data: Dict[str, Any]) -> "Section":
        enrolled = data.get("numCurrentlyEnrolled") or {}
        if isinstance(enrolled, dict):
            enrolled_count = _to_int(enrolled.get("totalEnrolled"))
        else:
            enrolled_count = _to_int(enrolled)
        final_exam = data.get("finalExam") or ""
        if isinstance(final_exam, dict):
            final_exam = final_exam.get("examStatus") or ""
        return cls(
            code=str(data.get("sectionCode") or ""),
            type=str(data.get("sectionType") or ""),
            number=str(data.get("sectionNum") or ""),
            units=str(data.get("units") or ""),
            instructors=[str(i).strip() for i in data.get("instructors") or [] if str(i).strip()],
            meetings=[Meeting.from_api(m) for m in data.get("meetings") or [] if isinstance(m, dict)],
            final_exam=str(final_exam),
            capacity=_to_int(data.get("maxCapacity")),
            enrolled=enrolled_count,
            waitlist=_to_int(data.get("numOnWaitlist")),
            waitlist_capacity=_to_int(data.get("numWaitlistCap")),
            restrictions=str(data.get("restrictions") or ""),
            status=str(data.get("status") or ""),
            comment=str(data.get("sectionComment") or ""),
        )

    @property
    def primary_instructor(self) -> Optional[str]:
        for name in self.instructors:
            if is_named_instructor(name):
                return name
        return None


@dataclass
class Course:
    department_code: str
    course_number: str
    title: str = ""
    comment: str = ""
    prerequisite_link: str = ""
    sections: List[Section] = field(default_factory=list)

    @classmethod
    def from_api(cls, data: Dict[str, Any]) -> "Course":
        return cls(
            department_code=str(data.get("deptCode") or ""),
            course_number=str(data.get("courseNumber") or ""),
            title=str(data.get("courseTitle") or ""),
            comment=str(data.get("courseComment") or ""),
            prerequisite_link=str(data.get("prerequisiteLink") or ""),
            sections=[Section.from_api(s) for s in data.get("sections") or [] if isinstance(s, dict)],
        )

    @property
    def code(self) -> str:
        return f"{self.department_code} {self.course_number}".strip()


def split_course_code(code: str) -> Optional[Tuple[str, str]]:
    """
    "I&C SCI 33" -> ("I&C SCI", "33"). The number is the last token, so
    multi-word departments survive.
    """
    parts = (code or "").strip().upper().rsplit(None, 1)
    if len(parts) != 2 or not any(ch.isdigit() for ch in parts[1]):
        return None
    return parts[0], parts[1]


@dataclass
class Instructor:
    name: str
    department: str = ""
    # "DEPT NUMBER" codes, most recent first as the catalog lists them
    courses: List[str] = field(default_factory=list)

    @classmethod
    def from_api(cls, data: Dict[str, Any]) -> "Instructor":
        courses = []
        for ref in data.get("courses") or []:
            if isinstance(ref, dict):
                code = f"{ref.get('department') or ''} {ref.get('courseNumber') or ''}"
            else:
                code = str(ref)
            code = " ".join(code.split()).upper()
            if split_course_code(code) and code not in courses:
                courses.append(code)
        return cls(
            name=str(data.get("name") or ""),
            department=str(data.get("department") or ""),
            courses=courses,
        )


def seat_percent(section: Section) -> int:
    """Share of seats taken, 0-100. A section with no capacity counts as full."""
    if section.capacity <= 0:
        return 100
    return round_half_up(section.enrolled / section.capacity * 100)


def is_almost_full(section: Section, threshold: int = ALMOST_FULL_THRESHOLD) -> bool:
    return seat_percent(section) > threshold


def seats_available(section: Section) -> int:
    return max(section.capacity - section.enrolled, 0)


def format_meeting_time(section: Section) -> str:
    if not section.meetings:
        return "TBA"
    meeting = section.meetings[0]
    return f"{meeting.days} {meeting.time}"


# ---------------------------
# Grades
# ---------------------------


@dataclass
class GradeRecord:
    instructor: str
    course_number: str
    year: str = ""
    quarter: str = ""
    department: str = ""
    section_code: str = ""
    counts: Dict[str, int] = field(default_factory=dict)

    def count(self, grade: str) -> int:
        return int(self.counts.get(grade, 0))


@dataclass
class GradePercentages:
    a: int
    b: int
    c: int
    d: int
    f: int
    total: int

    def as_bars(self) -> Dict[str, int]:
        return {"A": self.a, "B": self.b, "C": self.c, "D": self.d, "F": self.f}


# ---------------------------
# Ratings
# ---------------------------


@dataclass
class Review:
    comment: str
    course: str = ""
    date: str = ""
    helpful_rating: float = 0.0
    difficulty_rating: float = 0.0
    tags: List[str] = field(default_factory=list)


@dataclass
class RatingsProfile:
    first_name: str
    last_name: str
    department: str = ""
    avg_rating: float = 0.0
    avg_difficulty: float = 0.0
    would_take_again_percent: float = 0.0
    num_ratings: int = 0
    top_tags: List[str] = field(default_factory=list)
    top_reviews: List[Review] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "RatingsProfile":
        return cls(
            first_name=str(data.get("first_name") or ""),
            last_name=str(data.get("last_name") or ""),
            department=str(data.get("department") or ""),
            avg_rating=_to_float(data.get("avg_rating")),
            avg_difficulty=_to_float(data.get("avg_difficulty")),
            would_take_again_percent=_to_float(data.get("would_take_again_percent")),
            num_ratings=_to_int(data.get("num_ratings")),
            top_tags=[str(t) for t in data.get("top_tags") or []],
            top_reviews=[Review(**r) for r in data.get("top_reviews") or []],
        )

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()


# ---------------------------
# Aggregated output
# ---------------------------


@dataclass
class SectionInfo:
    code: str
    type: str
    time: str
    seats_available: int
    seats_total: int
    enrolled_percent: int
    almost_full: bool
    status: str = ""
    waitlist: int = 0

    @classmethod
    def from_section(cls, section: Section) -> "SectionInfo":
        return cls(
            code=section.code,
            type=section.type,
            time=format_meeting_time(section),
            seats_available=seats_available(section),
            seats_total=section.capacity,
            enrolled_percent=seat_percent(section),
            almost_full=is_almost_full(section),
            status=section.status,
            waitlist=section.waitlist,
        )

    @property
    def seats_text(self) -> str:
        text = f"{self.seats_available}/{self.seats_total} seats open"
        if self.almost_full:
            text += " (almost full!)"
        return text


@dataclass
class ProfessorRecord:
    name: str
    department: str = ""
    rating: float = 0.0
    difficulty: float = 0.0
    review_count: int = 0
    would_take_again: float = 0.0
    grades: Dict[str, int] = field(default_factory=lambda: {g: 0 for g in LETTER_GRADES})
    has_grade_data: bool = False
    grade_total: int = 0
    section: Optional[SectionInfo] = None
    tags: List[str] = field(default_factory=list)
    top_review: str = "No reviews available"
    courses: List[str] = field(default_factory=list)
    narrative: str = ""
    degraded: bool = False

    @property
    def grade_percentages(self) -> Optional[GradePercentages]:
        if not self.has_grade_data:
            return None
        g = self.grades
        return GradePercentages(g["A"], g["B"], g["C"], g["D"], g["F"], self.grade_total)

    def to_dict(self) -> Dict[str, Any]:
        d = asdict(self)
        if self.section is not None:
            d["section"]["seats_text"] = self.section.seats_text
        return d
