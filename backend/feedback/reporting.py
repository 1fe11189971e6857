"""Statistics over a scoped window of feedback.

Averages and percentages are rounded to one decimal place. Growth against an
empty previous window reports fixed sentinels instead of dividing by zero.
"""

import enum
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Iterable

from backend.core.errors import ValidationError
from backend.database import to_utc_iso
from backend.feedback.lifecycle import MAX_RATING, MIN_RATING
from backend.feedback.repository import DayGroup, FeedbackRepository, FeedbackRow, FeedbackScope
from backend.models.feedback import FeedbackStatus


class TimeRange(str, enum.Enum):
    WEEK = 'week'
    MONTH = 'month'
    YEAR = 'year'


WINDOW_DAYS = {
    TimeRange.WEEK: 7,
    TimeRange.MONTH: 30,
    TimeRange.YEAR: 365,
}

DEFAULT_TIME_RANGE = TimeRange.MONTH

COUNT_GROWTH_SENTINEL = 100.0
RATING_GROWTH_SENTINEL = 0.0
RESPONSE_RATE_GROWTH_SENTINEL = 0.0


def parse_time_range(value: str | None) -> TimeRange:
    if value is None or not value.strip():
        return DEFAULT_TIME_RANGE
    try:
        return TimeRange(value.strip().lower())
    except ValueError as exc:
        raise ValidationError('timeRange must be one of week, month, year') from exc


def window_start(time_range: TimeRange, now: datetime) -> datetime:
    return now - timedelta(days=WINDOW_DAYS[time_range])


def average_rating(ratings: Iterable[int]) -> float:
    ratings = list(ratings)
    if not ratings:
        return 0.0
    return round(sum(ratings) / len(ratings), 1)


def rating_distribution(ratings: Iterable[int]) -> dict[int, int]:
    distribution = {rating: 0 for rating in range(MIN_RATING, MAX_RATING + 1)}
    for rating in ratings:
        distribution[rating] += 1
    return distribution


def status_breakdown(counts: dict[FeedbackStatus, int]) -> dict[str, int]:
    return {feedback_status.value: counts.get(feedback_status, 0) for feedback_status in FeedbackStatus}


def response_rate(reviewed: int, total: int) -> float:
    if total == 0:
        return 0.0
    return round(reviewed / total * 100, 1)


def percent_change(current: float, previous: float, sentinel: float) -> float:
    if not previous:
        return sentinel
    return round((current - previous) / previous * 100, 1)


def daily_trends(groups: Iterable[DayGroup]) -> list[dict]:
    return [
        {
            'date': group.day.isoformat(),
            'count': group.count,
            'averageRating': round(group.rating_sum / group.count, 1),
        }
        for group in sorted(groups, key=lambda group: group.day)
    ]


@dataclass(frozen=True)
class WindowSummary:
    count: int
    rating_sum: int
    reviewed: int

    @property
    def mean_rating(self) -> float:
        return self.rating_sum / self.count if self.count else 0.0

    @property
    def reviewed_ratio(self) -> float:
        return self.reviewed / self.count if self.count else 0.0


def summarize_window(rows: Iterable[FeedbackRow]) -> WindowSummary:
    count = 0
    rating_sum = 0
    reviewed = 0
    for row in rows:
        count += 1
        rating_sum += row.rating
        if row.status is FeedbackStatus.REVIEWED:
            reviewed += 1
    return WindowSummary(count=count, rating_sum=rating_sum, reviewed=reviewed)


def compare_windows(current: WindowSummary, previous: WindowSummary) -> dict[str, float]:
    return {
        'feedbackGrowth': percent_change(current.count, previous.count, COUNT_GROWTH_SENTINEL),
        'ratingGrowth': percent_change(current.mean_rating, previous.mean_rating, RATING_GROWTH_SENTINEL),
        'responseRateGrowth': percent_change(
            current.reviewed_ratio,
            previous.reviewed_ratio,
            RESPONSE_RATE_GROWTH_SENTINEL,
        ),
    }


def build_report(
    repository: FeedbackRepository,
    scope: FeedbackScope,
    time_range: TimeRange,
    now: datetime,
) -> dict:
    start = window_start(time_range, now)
    previous_start = start - timedelta(days=WINDOW_DAYS[time_range])

    rows = repository.rows_by_scope(scope, start=start)
    previous_rows = repository.rows_by_scope(scope, start=previous_start, end=start)
    current = summarize_window(rows)
    previous = summarize_window(previous_rows)
    ratings = [row.rating for row in rows]

    return {
        'timeRange': time_range.value,
        'from': to_utc_iso(start),
        'to': to_utc_iso(now),
        'totalFeedback': current.count,
        'averageRating': average_rating(ratings),
        'ratingDistribution': rating_distribution(ratings),
        'statusBreakdown': status_breakdown(repository.count_by_status(scope, start=start)),
        'responseRate': response_rate(current.reviewed, current.count),
        'trends': daily_trends(repository.group_by_day(scope, start=start)),
        'growth': compare_windows(current, previous),
    }
