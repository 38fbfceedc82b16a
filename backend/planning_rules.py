import re

# Chronological order of seasons within a calendar year.
SEASONS = ("Spring", "Summer", "Fall")

# Per-term credit cap bounds (student-editable).
MIN_CREDIT_LIMIT = 3
MAX_CREDIT_LIMIT = 21
DEFAULT_CREDIT_LIMIT = 12

# Credits assumed for a course with no catalog value.
DEFAULT_COURSE_CREDITS = 3

# A term up to this many credits over its cap is a light overload; beyond is heavy.
OVERLOAD_LIGHT_MARGIN = 3

LOAD_NORMAL = "normal"
LOAD_OVERLOAD_LIGHT = "overload-light"
LOAD_OVERLOAD_HEAVY = "overload-heavy"

# Downstream prerequisite chain depth at which an unfinished course is a bottleneck.
BOTTLENECK_DEPTH_THRESHOLD = 3

# Maximum number of future terms the projector will simulate.
MAX_SIMULATED_TERMS = 30

# Reserved prefix for client-local (unsaved) term identifiers.
DRAFT_ID_PREFIX = "temp-"

CATEGORIES = (
    "general-education",
    "school-core",
    "program-core",
    "program-elective",
    "project-thesis",
    "uncategorized",
)

# Default credits a program requires per category. An optional requirements
# sheet overrides individual rows.
CATEGORY_REQUIRED_CREDITS = {
    "general-education": 39,
    "school-core": 12,
    "program-core": 75,
    "program-elective": 6,
    "project-thesis": 4,
}

_CATEGORY_ALIASES = {
    "ged": "general-education",
    "gen ed": "general-education",
    "general education": "general-education",
    "university core": "general-education",
    "school core": "school-core",
    "major core": "program-core",
    "program core": "program-core",
    "core": "program-core",
    "elective": "program-elective",
    "program elective": "program-elective",
    "major elective": "program-elective",
    "project": "project-thesis",
    "thesis": "project-thesis",
    "project/thesis": "project-thesis",
    "thesis/project": "project-thesis",
}


def normalize_category(raw) -> str:
    """Map a free-form category label onto the closed category set."""
    s = str(raw or "").strip().lower()
    if not s or s == "nan":
        return "uncategorized"
    hyphenated = re.sub(r"[\s_]+", "-", s)
    if hyphenated in CATEGORIES:
        return hyphenated
    spaced = re.sub(r"[-_]+", " ", s)
    return _CATEGORY_ALIASES.get(spaced, _CATEGORY_ALIASES.get(s, "uncategorized"))


def normalize_season(raw) -> str | None:
    """'fall' → 'Fall'. Returns None for anything outside SEASONS."""
    s = str(raw or "").strip().capitalize()
    return s if s in SEASONS else None


def clamp_credit_limit(value) -> int:
    """Clamp a credit limit into [MIN_CREDIT_LIMIT, MAX_CREDIT_LIMIT]."""
    try:
        limit = int(value)
    except (TypeError, ValueError):
        return DEFAULT_CREDIT_LIMIT
    return max(MIN_CREDIT_LIMIT, min(MAX_CREDIT_LIMIT, limit))


def term_sort_key(season: str, year: int) -> tuple[int, int]:
    return (int(year), SEASONS.index(season))


def next_term(season: str, year: int) -> tuple[str, int]:
    """Spring → Summer → Fall → Spring of the next year."""
    idx = SEASONS.index(season)
    if idx == len(SEASONS) - 1:
        return SEASONS[0], int(year) + 1
    return SEASONS[idx + 1], int(year)
