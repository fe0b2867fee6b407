from datetime import date, datetime


def as_day(value):
    """
    Drop any time-of-day component so comparisons happen per calendar day.
    """
    if isinstance(value, datetime):
        return value.date()
    return value


def days_until(target, today):
    return (as_day(target) - as_day(today)).days


def previous_month(month, year):
    """
    Return (month, year) of the calendar month before the given one.
    """
    if month == 1:
        return 12, year - 1
    return month - 1, year


def in_month(value, month, year):
    return value is not None and value.year == year and value.month == month


def format_amount(amount):
    return f"{amount:,.2f}"


def dedupe_by_id(items):
    """
    Keep the first item seen for every ``id``, preserving order.
    """
    seen = set()
    unique = []
    for item in items:
        if item.id not in seen:
            seen.add(item.id)
            unique.append(item)
    return unique
