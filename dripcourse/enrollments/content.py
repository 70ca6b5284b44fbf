"""Static course content: week titles and session outlines.

Used only to enrich notifications; the unlock state machine never depends
on it.
"""

from dataclasses import dataclass


@dataclass(frozen=True)
class WeekContent:
    """Title and session outline of one course week."""

    week: int
    title: str
    sessions: tuple[str, ...]


COURSE_NAME = "Called & Equipped"

WEEK_CONTENT: dict[int, WeekContent] = {
    1: WeekContent(
        1,
        "Created for a Purpose",
        (
            "Monday: You Are God's Masterpiece (Ephesians 2:10)",
            "Wednesday: Before You Were Born (Jeremiah 1:5)",
            "Friday: The Joseph Journey (Genesis 37-50)",
        ),
    ),
    2: WeekContent(
        2,
        "Hearing God's Voice",
        (
            "Monday: The Many Ways God Speaks",
            "Wednesday: Cultivating a Listening Heart",
            "Friday: Confirming Your Calling",
        ),
    ),
    3: WeekContent(
        3,
        "Aligning Passion with Purpose",
        (
            "Monday: Holy Ambition",
            "Wednesday: Marketplace Ministry",
            "Friday: Stewardship of Talents",
        ),
    ),
    4: WeekContent(
        4,
        "Overcoming Purpose Blockers",
        (
            "Monday: Conquering Fear and Doubt",
            "Wednesday: Breaking Comparison and Competition",
            "Friday: Patience in the Process",
        ),
    ),
    5: WeekContent(
        5,
        "Practical Purpose Implementation",
        (
            "Monday: Strategic Planning with God",
            "Wednesday: Building Your Purpose Support System",
            "Friday: Financial Stewardship for Purpose",
        ),
    ),
    6: WeekContent(
        6,
        "Living Your Purpose Daily",
        (
            "Monday: Daily Rhythms of Purpose",
            "Wednesday: Legacy and Multiplication",
            "Friday: Commissioning and Sending",
        ),
    ),
}


def get_week_content(week: int) -> WeekContent:
    """Content for a week, with a generic title for weeks beyond the outline."""
    return WEEK_CONTENT.get(week) or WeekContent(week, f"Week {week}", ())
