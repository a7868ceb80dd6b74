"""Client-side search over the loaded commit window."""

from __future__ import annotations

from collections.abc import Iterable
from datetime import date, datetime, time, timedelta, timezone

from pydantic import BaseModel, ConfigDict

from gait.models import Commit


class SearchFilters(BaseModel):
    """Which commit fields a query is matched against.

    Text fields are OR-ed together; the date range, when enabled, is AND-ed
    with the text match.
    """

    model_config = ConfigDict(frozen=True)

    message: bool = True
    author: bool = True
    hash: bool = True
    files: bool = False
    date_range: bool = False
    date_from: date | None = None
    date_to: date | None = None


DEFAULT_FILTERS = SearchFilters()


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _in_date_range(commit: Commit, filters: SearchFilters) -> bool:
    if filters.date_from is None and filters.date_to is None:
        return True
    if commit.date is None:
        return False
    when = _as_utc(commit.date)
    if filters.date_from is not None:
        start = datetime.combine(filters.date_from, time.min, tzinfo=when.tzinfo)
        if when < start:
            return False
    if filters.date_to is not None:
        # Inclusive through the end of the day.
        end = datetime.combine(filters.date_to + timedelta(days=1), time.min, tzinfo=when.tzinfo)
        if when >= end:
            return False
    return True


def _text_match(commit: Commit, needle: str, filters: SearchFilters) -> bool:
    if filters.message and needle in commit.message.lower():
        return True
    if filters.author and needle in commit.author.name.lower():
        return True
    if filters.hash and (needle in commit.hash.lower() or needle in commit.short_hash.lower()):
        return True
    if filters.files:
        return any(needle in change.path.lower() for change in commit.file_changes)
    return False


def matches(commit: Commit, query: str, filters: SearchFilters = DEFAULT_FILTERS) -> bool:
    """Case-insensitive substring match of ``query`` against a commit."""
    needle = query.strip().lower()
    if not needle:
        return True
    if not _text_match(commit, needle, filters):
        return False
    if filters.date_range and not _in_date_range(commit, filters):
        return False
    return True


def filter_commits(
    commits: Iterable[Commit], query: str, filters: SearchFilters = DEFAULT_FILTERS
) -> list[Commit]:
    return [commit for commit in commits if matches(commit, query, filters)]
