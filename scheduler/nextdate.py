"""Recurrence-rule evaluation for scheduled tasks.

Dates travel through the system as 8-digit ``YYYYMMDD`` strings. A task's
``repeat`` rule is one of:

- ``''``      one-shot, no recurrence
- ``'d N'``   every N days, 1 <= N <= 400
- ``'y'``     yearly on the same month/day (Feb 29 falls back to March 1)

``next_date`` is the single pure evaluator. Two wrappers fix how rule problems
are reported:

- ``next_date_strict``  validates the rule completely and raises
  ``UnsupportedRuleError``; used when a task is written (add, update, done).
- ``next_date_lenient`` never raises for a bad rule and returns ``None``;
  used when listing, so one corrupt row cannot break enumeration.
"""
from datetime import date, datetime, timedelta
import logging
import re
from typing import Optional

from dateutil.relativedelta import relativedelta

from .errors import UnsupportedRuleError, ValidationError

logger = logging.getLogger(__name__)

DATE_FORMAT = '%Y%m%d'

MIN_DAY_INTERVAL = 1
MAX_DAY_INTERVAL = 400

CONTEXT_LIST = 'list'
CONTEXT_ADD = 'add'
CONTEXT_CHECK = 'check'
CONTEXT_DONE = 'done'
CONTEXT_NEXTDATE = 'nextdate'
CONTEXTS = frozenset({CONTEXT_LIST, CONTEXT_ADD, CONTEXT_CHECK, CONTEXT_DONE, CONTEXT_NEXTDATE})

_DATE_RE = re.compile(r'[0-9]{8}')
_INT_RE = re.compile(r'[+-]?[0-9]+')


def today() -> date:
    """Return the server's local calendar date."""
    return date.today()


def format_date(d: date) -> str:
    return f'{d.year:04d}{d.month:02d}{d.day:02d}'


def parse_date(value: str | None) -> date:
    """Parse a ``YYYYMMDD`` string into a date.

    Raises ValidationError for anything that is not exactly 8 ASCII digits
    naming a real calendar day.
    """
    if not value or not _DATE_RE.fullmatch(value):
        raise ValidationError(f'invalid date {value!r}, expected YYYYMMDD')
    try:
        return datetime.strptime(value, DATE_FORMAT).date()
    except ValueError:
        raise ValidationError(f'invalid date {value!r}, expected YYYYMMDD')


def _try_parse_date(value: str) -> Optional[date]:
    try:
        return parse_date(value)
    except ValidationError:
        return None


def _as_date(now) -> date:
    if isinstance(now, datetime):
        return now.date()
    if isinstance(now, date):
        return now
    return parse_date(now)


def is_leap_year(year: int) -> bool:
    return year % 4 == 0 and (year % 100 != 0 or year % 400 == 0)


def _parse_day_interval(rule: str) -> Optional[int]:
    """Return N for a ``d N`` rule, or None when N is missing or out of range."""
    rest = rule[2:]
    if not _INT_RE.fullmatch(rest):
        return None
    days = int(rest)
    if days < MIN_DAY_INTERVAL or days > MAX_DAY_INTERVAL:
        return None
    return days


def validate_rule(rule: str | None) -> None:
    """Raise UnsupportedRuleError unless ``rule`` is '', 'y' or a valid 'd N'."""
    if not rule or rule == 'y':
        return
    if rule.startswith('d '):
        if _parse_day_interval(rule) is None:
            raise UnsupportedRuleError(
                rule, f'invalid day interval in {rule!r}, expected d 1..{MAX_DAY_INTERVAL}'
            )
        return
    raise UnsupportedRuleError(rule)


def _next_daily(start: date, now: date, days: int, context: str) -> date:
    # A task due today stays on today unless it is being marked done.
    if context != CONTEXT_DONE and start == now:
        return start
    step = timedelta(days=days)
    nxt = start + step
    if nxt <= now:
        # jump close to now in one go, then finish stepping
        nxt += step * ((now - nxt).days // days)
        while nxt <= now:
            nxt += step
    return nxt


def _next_yearly(start: date, now: date) -> date:
    nxt = start + relativedelta(years=1)
    if start.month == 2 and start.day == 29 and not is_leap_year(nxt.year):
        nxt = date(nxt.year, 3, 1)
    # Feb 29 normalisation applies to the first step only; later steps add
    # plain years to whatever the first step produced.
    if nxt < now:
        while nxt <= now:
            nxt += relativedelta(years=1)
    return nxt


def next_date(now, date_str: str | None, repeat: str | None, context: str) -> Optional[str]:
    """Compute the next occurrence of a task.

    ``now`` is the reference date (a date, datetime or ``YYYYMMDD`` string),
    ``date_str`` the task's stored ``YYYYMMDD`` date and ``repeat`` its rule.
    ``context`` is one of ``CONTEXTS`` and only affects the same-day case of
    daily rules.

    Returns the next date as ``YYYYMMDD`` or None when there is nothing to
    schedule (empty/unparseable date, one-shot task not in the future, or a
    ``d N`` rule with N out of range). Raises UnsupportedRuleError for a rule
    that is neither ``d ...`` nor ``y``.
    """
    if context not in CONTEXTS:
        raise ValueError(f'unknown next_date context {context!r}')
    if not date_str:
        return None
    start = _try_parse_date(date_str)
    if start is None:
        return None
    ref = _as_date(now)
    repeat = repeat or ''

    if repeat == '':
        if start > ref:
            return format_date(start)
        return None

    if repeat.startswith('d '):
        days = _parse_day_interval(repeat)
        if days is None:
            return None
        return format_date(_next_daily(start, ref, days, context))

    if repeat == 'y':
        return format_date(_next_yearly(start, ref))

    raise UnsupportedRuleError(repeat)


def next_date_strict(now, date_str: str | None, repeat: str | None, context: str) -> Optional[str]:
    """Like ``next_date`` but any malformed rule, including ``d 0``, raises."""
    validate_rule(repeat)
    return next_date(now, date_str, repeat, context)


def next_date_lenient(now, date_str: str | None, repeat: str | None, context: str = CONTEXT_LIST) -> Optional[str]:
    """Like ``next_date`` but an unsupported rule yields None instead of raising."""
    try:
        return next_date(now, date_str, repeat, context)
    except UnsupportedRuleError as e:
        logger.debug('ignoring unsupported repeat rule %r for date %s: %s', repeat, date_str, e)
        return None
