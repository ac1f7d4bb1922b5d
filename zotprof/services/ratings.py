# services/ratings.py
"""
Professor ratings, behind one lookup interface with two sources:

- RemoteRatingsLookup: the ratings site's GraphQL API (search, then reviews)
- StaticRatingsLookup: a pre-scraped table shipped in data/ratings_fallback.yaml

FallbackRatingsLookup chains them so the static table answers whenever the
remote source is down or has never heard of the professor.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections import Counter
from pathlib import Path
from typing import Any, Dict, List, Optional
import logging

import httpx
import yaml

from zotprof.settings import (
    RATINGS_GRAPHQL_URL,
    RATINGS_SCHOOL_ID,
    RATINGS_TABLE_PATH,
)
from zotprof.services.errors import RatingsError
from zotprof.services.models import RatingsProfile, Review, instructor_last_name

log = logging.getLogger("zotprof.ratings")

MAX_TAGS = 5


class RatingsLookup(ABC):
    @abstractmethod
    async def lookup(self, professor_name: str) -> Optional[RatingsProfile]:
        """Return the profile for `professor_name`, or None if there is none."""


class StaticRatingsLookup(RatingsLookup):
    def __init__(self, table: Dict[str, RatingsProfile]):
        # insertion order is the scan order for last-name matches
        self.table = {k.strip().upper(): v for k, v in table.items()}

    @classmethod
    def from_yaml(cls, path: Path = RATINGS_TABLE_PATH) -> "StaticRatingsLookup":
        if not path.exists():
            log.warning("Ratings table not found at %s", path)
            return cls({})
        with open(path, "r", encoding="utf-8") as f:
            raw = yaml.safe_load(f) or {}
        return cls({name: RatingsProfile.from_dict(data or {}) for name, data in raw.items()})

    def find(self, professor_name: str) -> Optional[RatingsProfile]:
        normalized = (professor_name or "").strip().upper()
        if not normalized:
            return None

        if normalized in self.table:
            log.info("Found ratings for %s", professor_name)
            return self.table[normalized]

        # Partial match on last name: first entry in table order wins, even
        # when several professors share the surname.
        last_name = instructor_last_name(normalized)
        if last_name:
            for key, profile in self.table.items():
                if last_name in key:
                    log.info("Found ratings for %s (partial match on %s)", professor_name, key)
                    return profile

        log.warning("No ratings for %s", professor_name)
        return None

    async def lookup(self, professor_name: str) -> Optional[RatingsProfile]:
        return self.find(professor_name)


SEARCH_QUERY = """
query NewSearchTeachersQuery($text: String!, $schoolID: ID!) {
  newSearch {
    teachers(query: {text: $text, schoolID: $schoolID}) {
      edges {
        node {
          id
          firstName
          lastName
          avgRating
          avgDifficulty
          numRatings
          wouldTakeAgainPercent
          department
        }
      }
    }
  }
}
"""

RATINGS_QUERY = """
query RatingsPageQuery($id: ID!) {
  node(id: $id) {
    ... on Teacher {
      ratings(first: 20) {
        edges {
          node {
            comment
            class
            date
            helpfulRating
            clarityRating
            difficultyRating
            ratingTags
          }
        }
      }
    }
  }
}
"""


def _split_tags(raw: Any) -> List[str]:
    if isinstance(raw, list):
        return [str(t).strip() for t in raw if str(t).strip()]
    if isinstance(raw, str):
        return [t.strip() for t in raw.split("--") if t.strip()]
    return []


def _most_common_tags(reviews: List[Review], limit: int = MAX_TAGS) -> List[str]:
    counter = Counter(tag for r in reviews for tag in r.tags)
    return [tag for tag, _ in counter.most_common(limit)]


class RemoteRatingsLookup(RatingsLookup):
    def __init__(
        self,
        http: httpx.AsyncClient,
        url: str = RATINGS_GRAPHQL_URL,
        school_id: str = RATINGS_SCHOOL_ID,
    ):
        self.http = http
        self.url = url
        self.school_id = school_id

    async def _post(self, query: str, variables: Dict[str, Any]) -> Dict[str, Any]:
        try:
            resp = await self.http.post(
                self.url,
                json={"query": query, "variables": variables},
                headers={"Authorization": "Basic dGVzdDp0ZXN0"},
            )
        except httpx.HTTPError as e:
            raise RatingsError(f"Ratings request failed: {e}") from e
        if resp.status_code != 200:
            raise RatingsError(f"Ratings API error: {resp.status_code}", status_code=resp.status_code)
        try:
            return resp.json() or {}
        except ValueError as e:
            raise RatingsError("Ratings API returned invalid JSON") from e

    async def _reviews(self, teacher_id: str) -> List[Review]:
        data = await self._post(RATINGS_QUERY, {"id": teacher_id})
        edges = (((data.get("data") or {}).get("node") or {}).get("ratings") or {}).get("edges") or []
        reviews = []
        for edge in edges:
            node = edge.get("node") or {}
            if not node.get("comment"):
                continue
            reviews.append(
                Review(
                    comment=node["comment"],
                    course=node.get("class") or "",
                    date=node.get("date") or "",
                    helpful_rating=float(node.get("clarityRating") or node.get("helpfulRating") or 0),
                    difficulty_rating=float(node.get("difficultyRating") or 0),
                    tags=_split_tags(node.get("ratingTags")),
                )
            )
        return reviews

    async def lookup(self, professor_name: str) -> Optional[RatingsProfile]:
        if not (professor_name or "").strip():
            return None

        data = await self._post(SEARCH_QUERY, {"text": professor_name, "schoolID": self.school_id})
        edges = ((((data.get("data") or {}).get("newSearch") or {}).get("teachers") or {}).get("edges")) or []
        if not edges:
            log.info("Ratings search found nothing for %s", professor_name)
            return None

        teacher = edges[0].get("node") or {}
        try:
            reviews = await self._reviews(teacher["id"])
        except (KeyError, RatingsError) as e:
            # a profile without reviews is still worth showing
            log.warning("Could not fetch reviews for %s: %s", professor_name, e)
            reviews = []

        return RatingsProfile(
            first_name=teacher.get("firstName") or "",
            last_name=teacher.get("lastName") or "",
            department=teacher.get("department") or "",
            avg_rating=float(teacher.get("avgRating") or 0),
            avg_difficulty=float(teacher.get("avgDifficulty") or 0),
            would_take_again_percent=float(teacher.get("wouldTakeAgainPercent") or 0),
            num_ratings=int(teacher.get("numRatings") or 0),
            top_tags=_most_common_tags(reviews),
            top_reviews=reviews,
        )


class FallbackRatingsLookup(RatingsLookup):
    def __init__(self, primary: RatingsLookup, secondary: RatingsLookup):
        self.primary = primary
        self.secondary = secondary

    async def lookup(self, professor_name: str) -> Optional[RatingsProfile]:
        try:
            profile = await self.primary.lookup(professor_name)
        except RatingsError as e:
            log.warning("Primary ratings source failed for %s, using fallback: %s", professor_name, e)
            profile = None
        if profile is not None:
            return profile
        return await self.secondary.lookup(professor_name)


def build_ratings_lookup(source: str, http: Optional[httpx.AsyncClient] = None) -> RatingsLookup:
    static = StaticRatingsLookup.from_yaml()
    source = (source or "static").lower()
    if source == "static" or http is None:
        return static
    remote = RemoteRatingsLookup(http)
    if source == "remote":
        return remote
    return FallbackRatingsLookup(remote, static)


# ---------------------------
# Projections over a possibly missing profile
# ---------------------------


def top_tags(profile: Optional[RatingsProfile]) -> List[str]:
    if not profile or not profile.top_tags:
        return []
    return profile.top_tags[:MAX_TAGS]


def top_review(profile: Optional[RatingsProfile]) -> str:
    if not profile or not profile.top_reviews:
        return "No reviews available"
    return profile.top_reviews[0].comment


def ratings_summary(profile: Optional[RatingsProfile]) -> str:
    if not profile:
        return "No rating data available"
    return (
        f"⭐ {profile.avg_rating}/5 ({profile.num_ratings} reviews) | "
        f"💪 {profile.avg_difficulty}/5 difficulty | "
        f"🔄 {profile.would_take_again_percent:g}% would retake"
    )
