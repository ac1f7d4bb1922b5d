from types import SimpleNamespace

import httpx
import openai
import pytest


class FakeCompletions:
    def __init__(self, reply="AI says hi", error=None):
        self.reply = reply
        self.error = error
        self.calls = []

    async def create(self, **kwargs):
        self.calls.append(kwargs)
        if self.error is not None:
            raise self.error
        return SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content=self.reply))])


class FakeAI:
    """Stands in for AsyncOpenAI: only chat.completions.create is used."""

    def __init__(self, reply="AI says hi", error=None):
        self.completions = FakeCompletions(reply, error)
        self.chat = SimpleNamespace(completions=self.completions)


@pytest.fixture
def fake_ai():
    return FakeAI


@pytest.fixture
def rate_limit_error():
    request = httpx.Request("POST", "https://api.openai.com/v1/chat/completions")
    response = httpx.Response(429, request=request, json={"error": {"message": "Rate limit exceeded"}})
    return openai.RateLimitError("Rate limit exceeded", response=response, body=None)


def _section(code, instructors, enrolled=100, capacity=150, section_type="Lec", days="MWF", time="10:00-10:50"):
    return {
        "sectionCode": code,
        "sectionType": section_type,
        "sectionNum": "A",
        "units": "4",
        "instructors": instructors,
        "meetings": [{"days": days, "time": time, "bldg": ["SSLH 100"]}],
        "finalExam": "",
        "maxCapacity": str(capacity),
        "numCurrentlyEnrolled": {"totalEnrolled": str(enrolled), "sectionEnrolled": str(enrolled)},
        "numOnWaitlist": "0",
        "numWaitlistCap": "0",
        "restrictions": "",
        "status": "OPEN",
        "sectionComment": "",
    }


def _websoc(courses, dept="I&C SCI"):
    return {
        "ok": True,
        "data": {"schools": [{"schoolName": "ICS", "departments": [{"deptCode": dept, "courses": courses}]}]},
    }


@pytest.fixture
def make_section():
    return _section


@pytest.fixture
def make_websoc():
    return _websoc


def _grades_payload(a, b, c, d, f, instructor="PATTIS, R."):
    return {
        "ok": True,
        "data": {
            "sectionList": [
                {
                    "year": "2024",
                    "quarter": "Fall",
                    "department": "I&C SCI",
                    "courseNumber": "33",
                    "sectionCode": "36000",
                    "instructors": [instructor],
                }
            ],
            "gradeDistribution": {
                "gradeACount": a,
                "gradeBCount": b,
                "gradeCCount": c,
                "gradeDCount": d,
                "gradeFCount": f,
                "gradePCount": 0,
                "gradeNPCount": 0,
                "gradeWCount": 3,
            },
        },
    }


@pytest.fixture
def make_grades_payload():
    return _grades_payload
