from catalog import CompletionRecord, CourseCatalog
from errors import CourseNotFoundError
from normalizer import normalize_code
from planning_rules import LOAD_OVERLOAD_HEAVY, LOAD_OVERLOAD_LIGHT
from prereq_parser import build_prereq_check_string, missing_prereqs
from term_plan import TermPlan


def _status(course, completed: set[str], planned: set[str]) -> dict:
    is_completed = course.course_code in completed
    missing_hard = missing_prereqs(course.prereq_hard, completed)
    missing_soft = missing_prereqs(course.prereq_soft, completed)
    return {
        "course_code": course.course_code,
        "is_completed": is_completed,
        "is_planned": course.course_code in planned,
        # Completed courses can always be retaken; soft prereqs never block.
        "can_take": is_completed or not missing_hard,
        "missing_hard": missing_hard,
        "missing_soft": missing_soft,
    }


def resolve(
    catalog: CourseCatalog | None,
    record: CompletionRecord | None,
    plan: TermPlan | None,
) -> dict[str, dict]:
    """
    Eligibility status for every catalog course.

    Returns:
      {
        "CSE111": {
          "course_code": "CSE111",
          "is_completed": False,
          "is_planned": False,
          "can_take": False,
          "missing_hard": ["CSE110"],
          "missing_soft": [],
        },
        ...
      }

    An unreachable catalog (None) yields {}; callers must treat that as
    "no data", not as "nothing eligible".
    """
    if catalog is None:
        return {}
    completed = record.completed_codes if record else set()
    planned = plan.planned_codes() if plan else set()
    return {
        course.course_code: _status(course, completed, planned)
        for course in catalog
    }


def available_to_place(status_map: dict[str, dict]) -> list[str]:
    """Codes a student may drop into a term right now: takable and not already planned."""
    return sorted(
        code for code, status in status_map.items()
        if status["can_take"] and not status["is_planned"]
    )


def check_prerequisites(
    course_code: str,
    catalog: CourseCatalog,
    record: CompletionRecord | None,
) -> dict:
    """Single-course prerequisite lookup: {"missing_hard": [...], "missing_soft": [...]}."""
    course = catalog.lookup(course_code)
    if course is None:
        code = normalize_code(course_code) or str(course_code)
        raise CourseNotFoundError(f"{code} is not in the course catalog.", course_code=code)
    completed = record.completed_codes if record else set()
    return {
        "missing_hard": missing_prereqs(course.prereq_hard, completed),
        "missing_soft": missing_prereqs(course.prereq_soft, completed),
    }


def compute_plan_warnings(
    plan: TermPlan,
    catalog: CourseCatalog,
    record: CompletionRecord | None,
) -> list[dict]:
    """
    Advisory warnings for a whole plan. Never blocks anything.

    Per term:      heavy_overload / light_overload
    Per placement: missing_hard_prereq / missing_soft_prereq (prereq neither
                   completed nor placed in a strictly earlier term), repeat_course
    """
    completed = record.completed_codes if record else set()
    warnings: list[dict] = []
    planned_earlier: set[str] = set()

    for term in plan.terms:
        term_id = str(term.term_id)
        load = plan.compute_load(term.term_id, catalog.credits_for)
        if load["status"] == LOAD_OVERLOAD_HEAVY:
            warnings.append({
                "type": "heavy_overload",
                "term_id": term_id,
                "semester_name": term.semester_name,
                "message": (
                    f"Heavy overload in {term.semester_name}: "
                    f"{load['total_credits']} credits (limit: {term.credit_limit})"
                ),
            })
        elif load["status"] == LOAD_OVERLOAD_LIGHT:
            warnings.append({
                "type": "light_overload",
                "term_id": term_id,
                "semester_name": term.semester_name,
                "message": (
                    f"Slight overload in {term.semester_name}: "
                    f"{load['total_credits']} credits (limit: {term.credit_limit})"
                ),
            })

        satisfied = completed | planned_earlier
        for placement in term.placements:
            code = placement.course_code
            course = catalog.lookup(code)
            if course is not None and not placement.is_repeat:
                missing_hard = missing_prereqs(course.prereq_hard, satisfied)
                if missing_hard:
                    warnings.append({
                        "type": "missing_hard_prereq",
                        "term_id": term_id,
                        "semester_name": term.semester_name,
                        "course_code": code,
                        "missing": missing_hard,
                        "prereq_check": build_prereq_check_string(
                            course.prereq_hard, completed, planned_earlier
                        ),
                        "message": f"{code} missing hard prerequisites: {', '.join(missing_hard)}",
                    })
                missing_soft = missing_prereqs(course.prereq_soft, satisfied)
                if missing_soft:
                    warnings.append({
                        "type": "missing_soft_prereq",
                        "term_id": term_id,
                        "semester_name": term.semester_name,
                        "course_code": code,
                        "missing": missing_soft,
                        "message": f"{code} missing recommended prerequisites: {', '.join(missing_soft)}",
                    })
            if placement.is_repeat:
                warnings.append({
                    "type": "repeat_course",
                    "term_id": term_id,
                    "semester_name": term.semester_name,
                    "course_code": code,
                    "message": f"{code} is planned as a repeat course",
                })

        planned_earlier.update(p.course_code for p in term.placements)

    return warnings
