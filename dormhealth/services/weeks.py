"""
Week anchoring shared by every weekly computation.

A reporting week starts on Monday at local midnight. Sunday belongs to the week
that started six days earlier. Using one helper everywhere keeps aggregation,
scoring and prediction windows aligned.
"""

from datetime import date, datetime, timedelta


def week_start_for(moment: date | datetime) -> date:
    """Return the Monday that starts the reporting week containing `moment`.

    Aware datetimes are converted to local time first so the boundary is the
    local midnight, not UTC.
    """
    if isinstance(moment, datetime):
        if moment.tzinfo is not None:
            moment = moment.astimezone()
        moment = moment.date()
    return moment - timedelta(days=moment.weekday())


def weeks_before(week_start: date, weeks: int) -> date:
    """Week start `weeks` weeks before `week_start` (negative moves forward)."""
    return week_start - timedelta(weeks=weeks)
