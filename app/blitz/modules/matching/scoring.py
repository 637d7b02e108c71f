"""
Sponsor/creator match scoring.

A match score blends three yes/no signals, each worth 100 when present and
60 when absent:

    audience      (40%)  a listing's audience profile mentions the creator's audience
    value         (30%)  a listing category is one of the creator's categories
    requirements  (30%)  the creator meets a listing's "min N followers" requirement

The functions here are pure: they take plain listing/creator snapshots so they can
be unit tested without a database.
"""
from __future__ import annotations

import re
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from datetime import datetime, timedelta

MATCH_HIT = 100
MATCH_MISS = 60

AUDIENCE_WEIGHT = 0.4
VALUE_WEIGHT = 0.3
REQUIREMENTS_WEIGHT = 0.3

ENGAGEMENT_WINDOW_DAYS = 30

_NON_DIGITS = re.compile(r"\D")


@dataclass(frozen=True)
class ListingSnapshot:
    audience_profile: str | None = None
    categories: tuple[str, ...] = ()
    requirements: tuple[str, ...] = ()


@dataclass(frozen=True)
class CreatorSnapshot:
    audience_profile: str | None = None
    categories: frozenset[str] = field(default_factory=frozenset)
    followers: int = 0


@dataclass(frozen=True)
class MatchBreakdown:
    audience: int
    value: int
    requirements: int

    @property
    def score(self) -> int:
        raw = AUDIENCE_WEIGHT * self.audience + VALUE_WEIGHT * self.value + REQUIREMENTS_WEIGHT * self.requirements
        return int(raw + 0.5)


def parse_min_followers(requirement: str) -> int | None:
    """
    "Min 5,000 followers" -> 5000. Requirements without "min" (or without digits) -> None.
    """
    if not requirement or "min" not in requirement.lower():
        return None
    digits = _NON_DIGITS.sub("", requirement)
    if not digits:
        return None
    return int(digits)


def audience_overlap(listings: Iterable[ListingSnapshot], creator: CreatorSnapshot) -> bool:
    needle = (creator.audience_profile or "").strip().lower()
    if not needle:
        return False
    return any(l.audience_profile and needle in l.audience_profile.lower() for l in listings)


def value_alignment(listings: Iterable[ListingSnapshot], creator: CreatorSnapshot) -> bool:
    if not creator.categories:
        return False
    return any(c in creator.categories for l in listings for c in l.categories)


def meets_requirements(listings: Iterable[ListingSnapshot], creator: CreatorSnapshot) -> bool:
    if not creator.followers:
        return False
    for l in listings:
        for req in l.requirements:
            minimum = parse_min_followers(req)
            if minimum is not None and creator.followers >= minimum:
                return True
    return False


def match_breakdown(listings: Sequence[ListingSnapshot], creator: CreatorSnapshot) -> MatchBreakdown:
    return MatchBreakdown(
        audience=MATCH_HIT if audience_overlap(listings, creator) else MATCH_MISS,
        value=MATCH_HIT if value_alignment(listings, creator) else MATCH_MISS,
        requirements=MATCH_HIT if meets_requirements(listings, creator) else MATCH_MISS,
    )


def calculate_match_score(listings: Sequence[ListingSnapshot], creator: CreatorSnapshot) -> int:
    return match_breakdown(listings, creator).score


def is_match(listings: Sequence[ListingSnapshot], creator: CreatorSnapshot) -> bool:
    return (
        audience_overlap(listings, creator)
        or value_alignment(listings, creator)
        or meets_requirements(listings, creator)
    )


def days_ago(when: datetime, now: datetime) -> str:
    diff = (now - when).days
    if diff <= 0:
        return "Today"
    if diff == 1:
        return "1 day ago"
    return f"{diff} days ago"


def engagement_rate(timestamps: Iterable[datetime], now: datetime) -> str:
    """Share of the last 30 days with activity, as a percentage string with one decimal."""
    cutoff = now - timedelta(days=ENGAGEMENT_WINDOW_DAYS)
    recent = sum(1 for t in timestamps if t > cutoff)
    return f"{recent / ENGAGEMENT_WINDOW_DAYS * 100:.1f}"
