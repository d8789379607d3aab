from datetime import date, datetime, timedelta

import pytest

from scheduler.errors import UnsupportedRuleError, ValidationError
from scheduler.nextdate import (
    format_date,
    is_leap_year,
    next_date,
    next_date_lenient,
    next_date_strict,
    parse_date,
    validate_rule,
)

NOW = '20240126'


@pytest.mark.parametrize('stored, repeat, expected', [
    ('20240126', '', None),
    ('15000156', '', None),
    ('ooo', 'y', None),
    ('16890220', 'y', '20240220'),
    ('20250701', 'y', '20260701'),
    ('20240101', 'y', '20250101'),
    ('20231231', 'y', '20241231'),
    ('20240229', 'y', '20250301'),
    ('20240301', 'y', '20250301'),
    ('20240113', 'd 7', '20240127'),
    ('20240120', 'd 20', '20240209'),
    ('20240202', 'd 30', '20240303'),
    ('20240320', 'd 401', None),
    ('20231225', 'd 12', '20240130'),
    ('20240228', 'd 1', '20240229'),
])
def test_nextdate_reference_cases(stored, repeat, expected):
    assert next_date(parse_date(NOW), stored, repeat, 'nextdate') == expected


@pytest.mark.parametrize('repeat', ['k 34', 'ooo', 'd', 'w 2', 'm 1', 'Y', ' y'])
def test_unsupported_rule_raises(repeat):
    with pytest.raises(UnsupportedRuleError):
        next_date(parse_date(NOW), '20240126', repeat, 'nextdate')


def test_empty_stored_date_is_a_noop_even_with_bad_rule():
    assert next_date(date(2024, 1, 26), '', 'w 2', 'list') is None


def test_one_shot_returns_date_only_when_in_future():
    now = date(2024, 1, 26)
    assert next_date(now, '20240127', '', 'add') == '20240127'
    assert next_date(now, '20240126', '', 'add') is None
    assert next_date(now, '20240125', '', 'add') is None


@pytest.mark.parametrize('n', [1, 2, 7, 30, 365, 400])
def test_daily_result_is_smallest_step_after_reference(n):
    start = date(2023, 1, 1)
    now = date(2023, 3, 15)
    got = parse_date(next_date(now, format_date(start), f'd {n}', 'add'))
    assert got > now
    assert (got - start).days % n == 0
    assert got - timedelta(days=n) <= now


@pytest.mark.parametrize('n', [1, 5, 400])
def test_daily_same_day_stays_unless_done(n):
    today = date(2024, 5, 10)
    s = format_date(today)
    for ctx in ('list', 'add', 'check', 'nextdate'):
        assert next_date(today, s, f'd {n}', ctx) == s
    assert next_date(today, s, f'd {n}', 'done') == format_date(today + timedelta(days=n))


def test_daily_listing_example():
    # 20230101 + 7k, first one strictly after 20230115
    assert next_date(date(2023, 1, 15), '20230101', 'd 7', 'list') == '20230122'


def test_daily_future_start_still_advances_one_step():
    assert next_date(date(2024, 1, 1), '20240110', 'd 3', 'done') == '20240113'


@pytest.mark.parametrize('repeat', ['d 0', 'd -1', 'd 401', 'd x', 'd 7 ', 'd  7', 'd '])
def test_daily_bad_interval_is_empty_not_error(repeat):
    assert next_date(date(2024, 1, 26), '20240101', repeat, 'list') is None


def test_yearly_feb29_into_non_leap_year_is_march_first():
    assert next_date(date(2024, 3, 1), '20240229', 'y', 'done') == '20250301'


def test_yearly_feb29_completed_on_landing_day_keeps_march_first():
    assert next_date(date(2025, 3, 1), '20240229', 'y', 'done') == '20250301'


def test_yearly_normalises_only_on_first_step():
    # 2024-02-29 -> 2025-03-01, then plain years: 2026-03-01, 2027-03-01, 2028-03-01
    assert next_date(date(2027, 6, 1), '20240229', 'y', 'list') == '20280301'


def test_yearly_catch_up_from_far_past():
    assert next_date(date(2024, 1, 26), '20000515', 'y', 'list') == '20240515'


def test_reference_accepts_datetime_and_string():
    dt = datetime(2024, 1, 26, 18, 30)
    assert next_date(dt, '20240113', 'd 7', 'list') == '20240127'
    assert next_date('20240126', '20240113', 'd 7', 'list') == '20240127'


def test_unknown_context_is_a_programming_error():
    with pytest.raises(ValueError):
        next_date(date(2024, 1, 26), '20240101', 'y', 'bogus')


def test_deterministic():
    args = (date(2024, 1, 26), '20231225', 'd 12', 'list')
    assert next_date(*args) == next_date(*args)


class TestCallModes:

    @pytest.mark.parametrize('repeat', ['w 2', 'd 0', 'd 401', 'x'])
    def test_strict_rejects_malformed(self, repeat):
        with pytest.raises(UnsupportedRuleError):
            next_date_strict(date(2024, 1, 26), '20240101', repeat, 'check')

    @pytest.mark.parametrize('repeat', ['w 2', 'd 0', 'd 401', 'x'])
    def test_lenient_swallows_malformed(self, repeat):
        assert next_date_lenient(date(2024, 1, 26), '20240101', repeat) is None

    def test_modes_agree_on_valid_rules(self):
        now = date(2024, 1, 26)
        for repeat in ('', 'd 3', 'y'):
            assert next_date_strict(now, '20240101', repeat, 'list') == next_date_lenient(now, '20240101', repeat)


@pytest.mark.parametrize('value', ['', '2024-01-26', '2024012', '202401261', '20241301', '20230229', 'abcdefgh', '２０２４０１２６'])
def test_parse_date_rejects(value):
    with pytest.raises(ValidationError):
        parse_date(value)


def test_parse_and_format_date():
    assert parse_date('20240229') == date(2024, 2, 29)
    assert format_date(date(987, 3, 4)) == '09870304'


@pytest.mark.parametrize('rule', ['', 'y', 'd 1', 'd 400'])
def test_validate_rule_accepts(rule):
    validate_rule(rule)


def test_is_leap_year():
    assert is_leap_year(2024)
    assert is_leap_year(2000)
    assert not is_leap_year(1900)
    assert not is_leap_year(2025)
