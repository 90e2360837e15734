from __future__ import annotations

from datetime import date

import pytest

from schedule_core.calendar_math import date_range
from schedule_core.occurrences import DateWindow, as_window, generate, is_active, make_window

RULES = [
    {"type": "once"},
    {"type": "daily", "interval": 1},
    {"type": "daily", "interval": 3},
    {"type": "weekly", "interval": 2, "days": [0, 6]},
    {"type": "weekly", "interval": 1, "days": ["Tue", "Thu"]},
    {"type": "monthly", "interval": 1, "day_of_month": 31},
    {"type": "monthly", "interval": 2, "day_of_month": 15},
    {"type": "single_week", "days": [2, 4]},
    {"type": "double_week", "days": [5]},
    {"type": "custom", "interval": 4, "unit": "day"},
    {"type": "custom", "interval": 2, "unit": "week"},
    {"type": "custom", "interval": 3, "unit": "week", "days": [1, 5]},
    {"type": "custom", "interval": 1, "unit": "month", "day_of_month": 30},
    {"type": "custom", "interval": 1, "unit": "month"},
    {"type": "custom-count", "interval": 2, "unit": "day", "count": 5},
    {"type": "custom-count", "interval": 1, "unit": "week", "days": [1, 3], "count": 7},
    {"type": "custom-count", "interval": 1, "unit": "month", "day_of_month": 31, "count": 3},
    {"type": "weekly", "interval": 1, "days": []},
]

WINDOWS = [
    make_window("2024-01-10", "2024-06-30"),
    make_window("2024-02-01", "2024-03-31", anchor_date="2024-01-15"),
    make_window("2024-03-04", "2024-03-17"),
    make_window("2024-03-01", "2024-05-31", anchor_date="2024-03-20"),
]


def _iso(dates):
    return [d.isoformat() for d in dates]


def test_daily_every_other_day():
    dates = generate({"type": "daily", "interval": 2}, make_window("2024-03-01", "2024-03-10"))
    assert _iso(dates) == [
        "2024-03-01",
        "2024-03-03",
        "2024-03-05",
        "2024-03-07",
        "2024-03-09",
    ]


def test_weekly_with_two_weekdays():
    dates = generate(
        {"type": "weekly", "interval": 1, "days": [1, 3]},
        make_window("2024-03-04", "2024-03-17"),
    )
    assert _iso(dates) == ["2024-03-04", "2024-03-06", "2024-03-11", "2024-03-13"]


def test_monthly_clamps_to_month_end():
    dates = generate(
        {"type": "monthly", "interval": 1, "dayOfMonth": 31},
        make_window("2024-01-01", "2024-04-30"),
    )
    assert _iso(dates) == ["2024-01-31", "2024-02-29", "2024-03-31", "2024-04-30"]


def test_monthly_interval_skips_months():
    dates = generate(
        {"type": "monthly", "interval": 2, "day_of_month": 15},
        make_window("2024-01-20", "2024-08-31"),
    )
    assert _iso(dates) == ["2024-03-15", "2024-05-15", "2024-07-15"]


def test_single_and_double_week_partition_weekly():
    window = make_window("2024-02-26", "2024-04-21")
    single = generate({"type": "single_week", "days": [1]}, window)
    double = generate({"type": "double_week", "days": [1]}, window)
    weekly = generate({"type": "weekly", "interval": 1, "days": [1]}, window)

    assert len(weekly) == 8
    assert not set(single) & set(double)
    assert sorted(set(single) | set(double)) == weekly
    assert single[0] == date(2024, 2, 26)
    assert double[0] == date(2024, 3, 4)


def test_parity_counts_from_anchor_not_window_start():
    window = make_window("2024-03-04", "2024-03-31", anchor_date="2024-02-26")
    single = generate({"type": "single_week", "days": [1]}, window)
    assert _iso(single) == ["2024-03-11", "2024-03-25"]


def test_weekly_never_emits_before_anchor():
    window = make_window("2024-03-01", "2024-03-31", anchor_date="2024-03-13")
    dates = generate({"type": "weekly", "interval": 1, "days": [1, 3]}, window)
    assert _iso(dates) == ["2024-03-13", "2024-03-18", "2024-03-20", "2024-03-25", "2024-03-27"]


def test_custom_week_without_days_keeps_anchor_weekday():
    dates = generate(
        {"type": "custom", "interval": 2, "unit": "week"},
        make_window("2024-03-06", "2024-04-30"),
    )
    assert _iso(dates) == ["2024-03-06", "2024-03-20", "2024-04-03", "2024-04-17"]


def test_custom_count_ignores_window_end():
    dates = generate(
        {"type": "custom-count", "interval": 1, "unit": "week", "days": [1, 3], "count": 7},
        make_window("2024-03-04", "2024-03-10"),
    )
    assert _iso(dates) == [
        "2024-03-04",
        "2024-03-06",
        "2024-03-11",
        "2024-03-13",
        "2024-03-18",
        "2024-03-20",
        "2024-03-25",
    ]


def test_custom_count_without_end_date():
    dates = generate(
        {"type": "custom-count", "interval": 1, "unit": "month", "day_of_month": 31, "count": 3},
        DateWindow(date(2024, 1, 1)),
    )
    assert _iso(dates) == ["2024-01-31", "2024-02-29", "2024-03-31"]


def test_once_fires_only_on_anchor():
    assert generate({"type": "once"}, make_window("2024-05-01", "2024-05-31")) == [date(2024, 5, 1)]
    later_anchor = make_window("2024-05-01", "2024-05-31", anchor_date="2024-05-09")
    assert generate({"type": "once"}, later_anchor) == [date(2024, 5, 9)]
    assert generate({"type": "once"}, make_window("2024-05-10", "2024-05-31", anchor_date="2024-05-09")) == []


def test_invalid_rule_and_inverted_window_produce_nothing():
    window = make_window("2024-03-01", "2024-03-31")
    assert generate({"type": "weekly", "interval": 1, "days": []}, window) == []
    assert generate({"type": "daily", "interval": "x"}, window) == []
    assert generate({"type": "daily", "interval": 1}, make_window("2024-03-31", "2024-03-01")) == []


def test_open_window_uses_default_span():
    dates = generate({"type": "daily", "interval": 1}, DateWindow(date(2024, 1, 1)))
    assert len(dates) == 365
    assert dates[-1] == date(2024, 12, 30)


@pytest.mark.parametrize("window", WINDOWS)
@pytest.mark.parametrize("rule", RULES)
def test_generated_dates_are_sorted_unique_and_contained(rule, window):
    dates = generate(rule, window)
    assert dates == sorted(set(dates))
    if rule["type"] == "custom-count":
        assert len(dates) <= rule["count"]
        assert all(d >= window.start_date for d in dates)
    else:
        assert all(window.start_date <= d <= window.end_date for d in dates)


@pytest.mark.parametrize("window", WINDOWS)
@pytest.mark.parametrize("rule", RULES)
def test_is_active_agrees_with_generate(rule, window):
    generated = set(generate(rule, window))
    for day in date_range(window.start_date, window.end_date):
        assert is_active(rule, window, day) == (day in generated), day
    for day in generated:
        assert is_active(rule, window, day)


def test_generate_is_idempotent():
    rule = {"type": "custom", "interval": 3, "unit": "week", "days": [1, 5]}
    window = make_window("2024-01-10", "2024-06-30")
    assert generate(rule, window) == generate(rule, window)


def test_as_window_accepts_mappings_and_pairs():
    assert as_window({"startDate": "2024-03-01", "endDate": "2024-03-02"}) == make_window(
        "2024-03-01", "2024-03-02"
    )
    assert as_window(("2024-03-01", "2024-03-02")).end_date == date(2024, 3, 2)
    with pytest.raises(TypeError):
        as_window("2024-03-01")


def test_is_active_outside_window_is_false():
    window = make_window("2024-03-01", "2024-03-10")
    assert not is_active({"type": "daily", "interval": 1}, window, "2024-02-29")
    assert not is_active({"type": "daily", "interval": 1}, window, "2024-03-11")
    assert is_active({"type": "daily", "interval": 1}, window, "2024-03-10")


def test_custom_rule_with_empty_days_steps_by_unit():
    window = make_window("2024-03-01", "2024-03-06")
    dates = generate({"type": "custom", "interval": 2, "unit": "day", "days": []}, window)
    assert _iso(dates) == ["2024-03-01", "2024-03-03", "2024-03-05"]
    assert is_active({"type": "custom", "interval": 2, "unit": "day", "days": []}, window, "2024-03-05")

    counted = generate(
        {"type": "custom-count", "interval": 1, "unit": "week", "days": [], "count": 2},
        window,
    )
    assert _iso(counted) == ["2024-03-01", "2024-03-08"]
