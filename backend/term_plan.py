"""
In-memory multi-term plan.

Holds the chronologically ordered terms of one student's plan and enforces:
  - at most one term per (season, year)
  - at most one placement per course code across the whole plan
  - credit limits clamped to [MIN_CREDIT_LIMIT, MAX_CREDIT_LIMIT]

Eligibility advice lives in eligibility.py; this module trusts the caller's
can_take decision and only enforces the double-placement invariant.
"""

import itertools
from dataclasses import dataclass, field
from datetime import datetime, timezone

from errors import (
    DuplicatePlacementError,
    DuplicateTermError,
    NotEligibleError,
    TermNotFoundError,
)
from normalizer import normalize_code
from planning_rules import (
    DEFAULT_CREDIT_LIMIT,
    DRAFT_ID_PREFIX,
    LOAD_NORMAL,
    LOAD_OVERLOAD_HEAVY,
    LOAD_OVERLOAD_LIGHT,
    OVERLOAD_LIGHT_MARGIN,
    clamp_credit_limit,
    normalize_season,
    term_sort_key,
)


# ── Term identifiers ──────────────────────────────────────────────────────────

@dataclass(frozen=True)
class PersistedId:
    server_id: str

    def __str__(self) -> str:
        return self.server_id


@dataclass(frozen=True)
class DraftId:
    local_id: str

    def __str__(self) -> str:
        return self.local_id


_draft_counter = itertools.count(1)


def new_draft_id() -> DraftId:
    return DraftId(f"{DRAFT_ID_PREFIX}{next(_draft_counter)}")


def parse_term_id(raw) -> PersistedId | DraftId:
    """
    Resolve a raw identifier once at the boundary.
    'temp-3' → DraftId('temp-3'); anything else → PersistedId.
    """
    if isinstance(raw, (PersistedId, DraftId)):
        return raw
    s = str(raw or "").strip()
    if not s:
        raise ValueError("term id must not be empty")
    if s.startswith(DRAFT_ID_PREFIX):
        return DraftId(s)
    return PersistedId(s)


# ── Plan model ────────────────────────────────────────────────────────────────

@dataclass
class Placement:
    course_code: str
    is_repeat: bool = False
    original_grade: str | None = None
    added_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


@dataclass
class Term:
    term_id: PersistedId | DraftId
    season: str
    year: int
    credit_limit: int = DEFAULT_CREDIT_LIMIT
    placements: list[Placement] = field(default_factory=list)
    is_active: bool = True

    @property
    def semester_name(self) -> str:
        return f"{self.season} {self.year}"

    @property
    def state(self) -> str:
        return "persisted" if isinstance(self.term_id, PersistedId) else "draft"

    @property
    def sort_key(self) -> tuple[int, int]:
        return term_sort_key(self.season, self.year)

    def find(self, course_code: str) -> Placement | None:
        for placement in self.placements:
            if placement.course_code == course_code:
                return placement
        return None


def classify_load(total_credits: int, credit_limit: int) -> str:
    """
    normal:          total <= cap
    overload-light:  cap < total <= cap + 3
    overload-heavy:  total > cap + 3
    """
    if total_credits > credit_limit + OVERLOAD_LIGHT_MARGIN:
        return LOAD_OVERLOAD_HEAVY
    if total_credits > credit_limit:
        return LOAD_OVERLOAD_LIGHT
    return LOAD_NORMAL


class TermPlan:
    def __init__(self, terms=None):
        self.terms: list[Term] = []
        self.deleted_term_ids: list[PersistedId] = []
        for term in terms or []:
            self._insert(term)

    def __len__(self) -> int:
        return len(self.terms)

    def _insert(self, term: Term) -> None:
        if self._find_term(term.season, term.year) is not None:
            raise DuplicateTermError(
                f"{term.semester_name} is already in the plan.",
                season=term.season,
                year=term.year,
            )
        self.terms.append(term)
        self.terms.sort(key=lambda t: t.sort_key)

    def _find_term(self, season: str, year: int) -> Term | None:
        for term in self.terms:
            if term.season == season and term.year == year:
                return term
        return None

    def get_term(self, term_id) -> Term:
        tid = parse_term_id(term_id)
        for term in self.terms:
            if term.term_id == tid:
                return term
        raise TermNotFoundError(f"Term {tid} is not in the plan.", term_id=str(tid))

    def find_placement(self, course_code: str) -> tuple[Term, Placement] | None:
        """Scan every term for the course. O(terms × placements)."""
        code = normalize_code(course_code)
        for term in self.terms:
            placement = term.find(code)
            if placement is not None:
                return term, placement
        return None

    def planned_codes(self) -> set[str]:
        return {p.course_code for term in self.terms for p in term.placements}

    # ── Mutations ─────────────────────────────────────────────────────────────

    def add_term(self, season, year, credit_limit=DEFAULT_CREDIT_LIMIT) -> Term:
        normalized_season = normalize_season(season)
        if normalized_season is None:
            raise ValueError(f"season must be one of Spring, Summer, Fall (got {season!r})")
        term = Term(
            term_id=new_draft_id(),
            season=normalized_season,
            year=int(year),
            credit_limit=clamp_credit_limit(credit_limit),
        )
        self._insert(term)
        return term

    def place_course(
        self,
        course_code: str,
        term_id,
        is_repeat: bool = False,
        can_take: bool = True,
        confirm_move: bool = False,
        original_grade: str | None = None,
    ) -> Placement:
        """
        Place a course into a term.

        Raises NotEligibleError when can_take is False and this is not a repeat.
        Raises DuplicatePlacementError when the course sits in another term and
        the move has not been confirmed. With confirm_move=True the course is
        taken out of the other term before it is added here.
        """
        code = normalize_code(course_code)
        if code is None:
            raise ValueError(f"Not a course code: {course_code!r}")
        target = self.get_term(term_id)

        if not can_take and not is_repeat:
            raise NotEligibleError(
                f"{code} cannot be taken yet: hard prerequisites are not completed.",
                course_code=code,
            )

        existing = self.find_placement(code)
        if existing is not None:
            current_term, current_placement = existing
            if current_term is target:
                return current_placement
            if not confirm_move:
                raise DuplicatePlacementError(
                    f"{code} is already planned in {current_term.semester_name}.",
                    course_code=code,
                    current_term_id=str(current_term.term_id),
                    current_term=current_term.semester_name,
                )
            current_term.placements.remove(current_placement)

        placement = Placement(
            course_code=code,
            is_repeat=bool(is_repeat),
            original_grade=original_grade if is_repeat else None,
        )
        target.placements.append(placement)
        return placement

    def move_course(self, course_code: str, to_term_id) -> Placement:
        """Confirmed move of an existing placement, keeping its repeat flag and grade."""
        code = normalize_code(course_code)
        existing = self.find_placement(code) if code else None
        if existing is None:
            raise ValueError(f"{course_code} is not planned in any term.")
        _, placement = existing
        return self.place_course(
            code,
            to_term_id,
            is_repeat=placement.is_repeat,
            can_take=True,
            confirm_move=True,
            original_grade=placement.original_grade,
        )

    def remove_course(self, course_code: str, term_id) -> bool:
        """Returns True if a placement was removed; no-op when absent."""
        term = self.get_term(term_id)
        placement = term.find(normalize_code(course_code))
        if placement is None:
            return False
        term.placements.remove(placement)
        return True

    def update_credit_limit(self, term_id, new_limit) -> int:
        term = self.get_term(term_id)
        term.credit_limit = clamp_credit_limit(new_limit)
        return term.credit_limit

    def delete_term(self, term_id) -> Term:
        """Remove a term and its placements. Completion data is untouched."""
        term = self.get_term(term_id)
        self.terms.remove(term)
        if isinstance(term.term_id, PersistedId):
            self.deleted_term_ids.append(term.term_id)
        return term

    # ── Derived views ─────────────────────────────────────────────────────────

    def compute_load(self, term_id, credits_for) -> dict:
        """
        credits_for: callable code -> credits (e.g. CourseCatalog.credits_for).

        Returns:
          {"total_credits": 15, "credit_limit": 12, "status": "overload-light"}
        """
        term = self.get_term(term_id)
        total = sum(int(credits_for(p.course_code)) for p in term.placements)
        return {
            "total_credits": total,
            "credit_limit": term.credit_limit,
            "status": classify_load(total, term.credit_limit),
        }

    def mark_persisted(self, id_mapping: dict) -> None:
        """Swap draft ids for server ids after a successful save."""
        for term in self.terms:
            server_id = id_mapping.get(term.term_id)
            if server_id is not None:
                term.term_id = PersistedId(server_id)
        self.deleted_term_ids = []
