"""Occurrence resolution for recurring sessions.

The resolver is stateless: callers drive iteration by feeding the previous
occurrence back in as ``after`` together with the number of occurrences
already materialized.
"""

from __future__ import annotations

import calendar
from datetime import date, datetime, timedelta
from typing import Callable, Dict, Iterator, Optional

from ..common.datetime_utils import sunday_first_weekday
from ..core.constants import MAX_RECURRENCE_SCAN_STEPS
from ..core.enums import Frequency
from ..core.exceptions import InvalidRecurrenceSpec
from .model import RecurrencePattern


class RecurrenceResolver:
    def __init__(self) -> None:
        self._resolvers: Dict[Frequency, Callable[[RecurrencePattern, datetime, datetime], Optional[datetime]]] = {
            Frequency.DAILY: self._next_daily,
            Frequency.WEEKLY: self._next_weekly,
            Frequency.MONTHLY: self._next_monthly,
        }

    def validate(self, pattern: RecurrencePattern) -> RecurrencePattern:
        if not isinstance(pattern.interval, int) or pattern.interval < 1:
            raise InvalidRecurrenceSpec("interval must be an integer >= 1")

        if any(d < 0 or d > 6 for d in pattern.days_of_week):
            raise InvalidRecurrenceSpec("days_of_week values must be within 0-6")
        if any(d < 1 or d > 31 for d in pattern.days_of_month):
            raise InvalidRecurrenceSpec("days_of_month values must be within 1-31")

        if pattern.frequency == Frequency.WEEKLY and not pattern.days_of_week:
            raise InvalidRecurrenceSpec("weekly recurrence requires days_of_week")
        if pattern.frequency == Frequency.MONTHLY and not pattern.days_of_month:
            raise InvalidRecurrenceSpec("monthly recurrence requires days_of_month")

        if pattern.end_date is not None and pattern.occurrences is not None:
            raise InvalidRecurrenceSpec("end_date and occurrences are mutually exclusive")
        if pattern.occurrences is not None and pattern.occurrences < 1:
            raise InvalidRecurrenceSpec("occurrences must be >= 1")
        return pattern

    def next_occurrence(
        self,
        pattern: RecurrencePattern,
        after: datetime,
        base_start: datetime,
        *,
        emitted: int = 0,
    ) -> Optional[datetime]:
        """Earliest occurrence strictly after ``after``, or None once the series ended.

        ``emitted`` counts occurrences already materialized (the base start is
        occurrence number one).
        """
        if pattern.occurrences is not None and emitted >= pattern.occurrences:
            return None

        candidate = self._resolvers[pattern.frequency](pattern, after, base_start)
        if candidate is None:
            return None
        if pattern.end_date is not None and candidate.date() > pattern.end_date:
            return None
        return candidate

    def iter_occurrences(
        self,
        pattern: RecurrencePattern,
        base_start: datetime,
        *,
        limit: Optional[int] = None,
    ) -> Iterator[datetime]:
        """Lazily yield the series, starting with ``base_start`` itself."""
        if pattern.end_date is not None and base_start.date() > pattern.end_date:
            return

        current = base_start
        emitted = 1
        yield current
        while limit is None or emitted < limit:
            nxt = self.next_occurrence(pattern, current, base_start, emitted=emitted)
            if nxt is None:
                return
            yield nxt
            current = nxt
            emitted += 1

    @staticmethod
    def _next_daily(pattern: RecurrencePattern, after: datetime, base_start: datetime) -> Optional[datetime]:
        if after < base_start:
            return base_start

        step = timedelta(days=pattern.interval)
        elapsed_days = (after.date() - base_start.date()).days
        day = base_start.date() + timedelta(days=(elapsed_days // pattern.interval) * pattern.interval)
        candidate = datetime.combine(day, base_start.time())
        while candidate <= after:
            candidate += step
        return candidate

    @staticmethod
    def _next_weekly(pattern: RecurrencePattern, after: datetime, base_start: datetime) -> Optional[datetime]:
        base_day = base_start.date()
        week0 = base_day - timedelta(days=sunday_first_weekday(base_day))
        day = max(after.date(), base_day)

        for _ in range(MAX_RECURRENCE_SCAN_STEPS):
            week_index = (day - week0).days // 7
            offset = week_index % pattern.interval
            if offset:
                day = week0 + timedelta(weeks=week_index + pattern.interval - offset)
                continue

            if sunday_first_weekday(day) in pattern.days_of_week:
                candidate = datetime.combine(day, base_start.time())
                if candidate > after:
                    return candidate
            day += timedelta(days=1)
        return None

    @staticmethod
    def _next_monthly(pattern: RecurrencePattern, after: datetime, base_start: datetime) -> Optional[datetime]:
        base_day = base_start.date()
        base_index = base_day.year * 12 + base_day.month - 1
        start_day = max(after.date(), base_day)
        index = start_day.year * 12 + start_day.month - 1

        offset = (index - base_index) % pattern.interval
        if offset:
            index += pattern.interval - offset

        days = sorted(pattern.days_of_month)
        for _ in range(MAX_RECURRENCE_SCAN_STEPS):
            year, month = divmod(index, 12)
            month += 1
            last_day = calendar.monthrange(year, month)[1]
            for d in days:
                # Skip days the month does not have; never clamp to month end.
                if d > last_day:
                    continue
                day = date(year, month, d)
                if day < base_day:
                    continue
                candidate = datetime.combine(day, base_start.time())
                if candidate > after:
                    return candidate
            index += pattern.interval
        return None
