import asyncio

import httpx
import pytest

from zotprof.services.errors import RatingsError
from zotprof.services.models import RatingsProfile, Review
from zotprof.services.ratings import (
    FallbackRatingsLookup,
    RatingsLookup,
    RemoteRatingsLookup,
    StaticRatingsLookup,
    ratings_summary,
    top_review,
    top_tags,
)


def _profile(first, last, rating=4.0):
    return RatingsProfile(first_name=first, last_name=last, avg_rating=rating)


def test_exact_match_beats_partial():
    lookup = StaticRatingsLookup(
        {
            "JANE SMITH": _profile("Jane", "Smith", 3.0),
            "JOHN SMITH": _profile("John", "Smith", 4.5),
        }
    )
    assert lookup.find("john smith").first_name == "John"


def test_partial_match_takes_first_in_table_order():
    lookup = StaticRatingsLookup(
        {
            "JANE SMITH": _profile("Jane", "Smith", 3.0),
            "JOHN SMITH": _profile("John", "Smith", 4.5),
        }
    )
    # websoc style "LAST, F." names only carry the surname
    assert lookup.find("SMITH, J.").first_name == "Jane"


def test_unknown_and_empty_names():
    lookup = StaticRatingsLookup({"JANE SMITH": _profile("Jane", "Smith")})
    assert lookup.find("NOBODY, X.") is None
    assert lookup.find("") is None
    assert lookup.find("   ") is None


def test_shipped_table_loads():
    lookup = StaticRatingsLookup.from_yaml()
    profile = lookup.find("PATTIS, R.")
    assert profile.full_name == "Richard Pattis"
    assert profile.top_reviews[0].comment.startswith("Tough but fair")
    assert len(top_tags(profile)) <= 5


def test_projections_on_missing_profile():
    assert top_tags(None) == []
    assert top_review(None) == "No reviews available"
    assert ratings_summary(None) == "No rating data available"


def test_projections_on_profile():
    profile = RatingsProfile(
        first_name="Jane",
        last_name="Smith",
        top_tags=["a", "b", "c", "d", "e", "f"],
        top_reviews=[Review(comment="Great"), Review(comment="Meh")],
    )
    assert top_tags(profile) == ["a", "b", "c", "d", "e"]
    assert top_review(profile) == "Great"


class _Broken(RatingsLookup):
    async def lookup(self, professor_name):
        raise RatingsError("down", status_code=503)


class _Empty(RatingsLookup):
    async def lookup(self, professor_name):
        return None


def test_fallback_used_when_primary_fails_or_misses():
    static = StaticRatingsLookup({"JANE SMITH": _profile("Jane", "Smith")})
    assert asyncio.run(FallbackRatingsLookup(_Broken(), static).lookup("SMITH, J.")).first_name == "Jane"
    assert asyncio.run(FallbackRatingsLookup(_Empty(), static).lookup("SMITH, J.")).first_name == "Jane"


def test_remote_lookup_builds_profile():
    def handler(request):
        body = request.read().decode()
        if "NewSearchTeachersQuery" in body:
            return httpx.Response(
                200,
                json={
                    "data": {
                        "newSearch": {
                            "teachers": {
                                "edges": [
                                    {
                                        "node": {
                                            "id": "VGVhY2hlci0x",
                                            "firstName": "Richard",
                                            "lastName": "Pattis",
                                            "avgRating": 4.2,
                                            "avgDifficulty": 3.8,
                                            "numRatings": 156,
                                            "wouldTakeAgainPercent": 86,
                                            "department": "Computer Science",
                                        }
                                    }
                                ]
                            }
                        }
                    }
                },
            )
        return httpx.Response(
            200,
            json={
                "data": {
                    "node": {
                        "ratings": {
                            "edges": [
                                {"node": {"comment": "Clear", "class": "ICS33", "ratingTags": "Clear lectures--Tough grader"}},
                                {"node": {"comment": "Hard", "class": "ICS33", "ratingTags": ["Tough grader"]}},
                                {"node": {"comment": "", "class": "ICS33"}},
                            ]
                        }
                    }
                }
            },
        )

    async def go():
        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as http:
            return await RemoteRatingsLookup(http, url="https://ratings.test/graphql", school_id="U2Nob29sLTEwNzQ=").lookup(
                "Pattis"
            )

    profile = asyncio.run(go())
    assert profile.full_name == "Richard Pattis"
    assert profile.num_ratings == 156
    assert [r.comment for r in profile.top_reviews] == ["Clear", "Hard"]
    assert profile.top_tags[0] == "Tough grader"


def test_remote_lookup_error_status():
    def handler(request):
        return httpx.Response(500)

    async def go():
        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as http:
            return await RemoteRatingsLookup(http, url="https://ratings.test/graphql").lookup("Pattis")

    with pytest.raises(RatingsError) as exc:
        asyncio.run(go())
    assert exc.value.status_code == 500
