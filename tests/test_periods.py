from datetime import date

import pytest

from periods import current_month, resolve_period


def test_current_month_covers_whole_calendar_month() -> None:
    period = current_month(date(2024, 2, 10))
    assert (period.start, period.end) == (date(2024, 2, 1), date(2024, 2, 29))

    december = current_month(date(2024, 12, 31))
    assert (december.start, december.end) == (date(2024, 12, 1), date(2024, 12, 31))


def test_resolve_period_defaults_to_this_month() -> None:
    today = date(2025, 3, 20)
    assert resolve_period(None, None, None, today=today) == current_month(today)

    last = resolve_period("last_month", None, None, today=today)
    assert (last.start, last.end) == (date(2025, 2, 1), date(2025, 2, 28))


def test_resolve_period_custom_requires_ordered_bounds() -> None:
    custom = resolve_period("custom", "2025-01-01", "2025-01-31")
    assert (custom.start, custom.end) == (date(2025, 1, 1), date(2025, 1, 31))

    with pytest.raises(ValueError):
        resolve_period("custom", "2025-02-01", "2025-01-01")
    with pytest.raises(ValueError):
        resolve_period("custom", "2025-02-01", None)
    with pytest.raises(ValueError):
        resolve_period("fortnight", None, None)

