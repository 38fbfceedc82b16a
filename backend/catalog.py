from dataclasses import dataclass, field

from normalizer import normalize_code
from planning_rules import DEFAULT_COURSE_CREDITS


@dataclass(frozen=True)
class Course:
    course_code: str
    course_name: str
    credits: int = DEFAULT_COURSE_CREDITS
    category: str = "uncategorized"
    prereq_hard: tuple[str, ...] = ()
    prereq_soft: tuple[str, ...] = ()
    repeatable: bool = False

    def to_dict(self) -> dict:
        return {
            "course_code": self.course_code,
            "course_name": self.course_name,
            "credits": self.credits,
            "category": self.category,
            "prereq_hard": list(self.prereq_hard),
            "prereq_soft": list(self.prereq_soft),
            "repeatable": self.repeatable,
        }


@dataclass
class CompletionRecord:
    """
    Read-only view of a student's completed courses.

    entries: {"CSE110": {"grade": "B+", "term": "Fall 2024"}, ...}
    """
    student_id: str
    entries: dict[str, dict] = field(default_factory=dict)

    @property
    def completed_codes(self) -> set[str]:
        return set(self.entries)

    def is_completed(self, code: str) -> bool:
        return normalize_code(code) in self.entries

    def grade_for(self, code: str) -> str | None:
        entry = self.entries.get(normalize_code(code) or "")
        if not entry:
            return None
        return entry.get("grade")


class CourseCatalog:
    """Static course lookup keyed by normalized course code."""

    def __init__(self, courses):
        self._courses: dict[str, Course] = {}
        for course in courses:
            self._courses[course.course_code] = course

    def __len__(self) -> int:
        return len(self._courses)

    def __contains__(self, code) -> bool:
        return normalize_code(code) in self._courses

    def __iter__(self):
        return iter(self._courses.values())

    @property
    def codes(self) -> set[str]:
        return set(self._courses)

    def lookup(self, code) -> Course | None:
        """Returns the Course for any spelling of its code, or None when unknown."""
        normalized = normalize_code(code)
        if normalized is None:
            return None
        return self._courses.get(normalized)

    def credits_for(self, code) -> int:
        course = self.lookup(code)
        return course.credits if course else DEFAULT_COURSE_CREDITS

    def list_remaining(self, record: CompletionRecord | None) -> list[Course]:
        """
        Catalog minus completed courses, except courses flagged repeatable.
        Returned in course-code order.
        """
        completed = record.completed_codes if record else set()
        return [
            self._courses[code]
            for code in sorted(self._courses)
            if code not in completed or self._courses[code].repeatable
        ]
