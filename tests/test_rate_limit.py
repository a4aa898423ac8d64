from __future__ import annotations

from datetime import datetime, timezone

import pytest

from psyche.models.rate_limit import parse_rate_limit_reset

NOW = datetime(2026, 3, 1, 12, 30, tzinfo=timezone.utc)


def test_time_only_later_today() -> None:
    reset = parse_rate_limit_reset("5-hour limit reached ∙ resets 7pm (UTC)", NOW)

    assert reset == datetime(2026, 3, 1, 19, 0, tzinfo=timezone.utc)


def test_time_only_rolls_to_tomorrow_when_not_in_future() -> None:
    assert parse_rate_limit_reset("resets 12pm (UTC)", NOW) == datetime(2026, 3, 2, 12, 0, tzinfo=timezone.utc)
    assert parse_rate_limit_reset("resets 12am (UTC)", NOW) == datetime(2026, 3, 2, 0, 0, tzinfo=timezone.utc)


def test_dated_reset_this_year() -> None:
    reset = parse_rate_limit_reset("Weekly limit reached ∙ resets Mar 5, 9am (UTC)", NOW)

    assert reset == datetime(2026, 3, 5, 9, 0, tzinfo=timezone.utc)


def test_dated_reset_rolls_to_next_year() -> None:
    reset = parse_rate_limit_reset("resets January 3, 7pm (UTC)", NOW)

    assert reset == datetime(2027, 1, 3, 19, 0, tzinfo=timezone.utc)


def test_leap_day_reset_skips_to_the_next_leap_year() -> None:
    reset = parse_rate_limit_reset("resets Feb 29, 7pm (UTC)", NOW)

    assert reset == datetime(2028, 2, 29, 19, 0, tzinfo=timezone.utc)


def test_naive_now_is_treated_as_utc() -> None:
    reset = parse_rate_limit_reset("resets 7pm (UTC)", datetime(2026, 3, 1, 12, 30))

    assert reset == datetime(2026, 3, 1, 19, 0, tzinfo=timezone.utc)


@pytest.mark.parametrize(
    "text",
    [
        "",
        "all good",
        "resets 13pm (UTC)",
        "resets 7pm (PST)",
        "resets Feb 30, 7pm (UTC)",
        "resets Foo 3, 7pm (UTC)",
    ],
)
def test_unrecognised_or_impossible_notices_yield_none(text: str) -> None:
    assert parse_rate_limit_reset(text, NOW) is None
