import pandas as pd

from catalog import CompletionRecord, CourseCatalog
from planning_rules import CATEGORY_REQUIRED_CREDITS


def _percentage(done: int, required: int) -> float:
    if required <= 0:
        return 0.0
    return round(min(100.0, done * 100.0 / required), 1)


def _attempted_credits(
    catalog: CourseCatalog,
    completions_df: pd.DataFrame | None,
    student_id: str,
) -> int | None:
    if completions_df is None:
        return None
    rows = completions_df[completions_df["student_id"] == str(student_id)]
    return int(sum(catalog.credits_for(code) for code in rows["course_code"]))


def compute_progress(
    catalog: CourseCatalog,
    record: CompletionRecord,
    completions_df: pd.DataFrame | None = None,
    required: dict[str, int] | None = None,
    total_required: int | None = None,
) -> dict:
    """
    Credits completed toward graduation, overall and per requirement category.

    Completed credits count each completed course once. Attempted credits sum
    every completion row for the student, repeats and in-progress rows included;
    without completions_df they equal completed credits. Completed courses
    outside the catalog, or in a category with no requirement, count toward
    the totals only. total_required defaults to the sum of the category
    requirements.

    Returns:
      {
        "total_completed_credits": 12,
        "total_attempted_credits": 15,
        "total_required_credits": 136,
        "overall_percentage": 9,
        "completed_courses": 4,
        "categories": {
          "general-education": {
            "completed_courses": 1, "completed_credits": 3,
            "required_credits": 39, "percentage": 7.7,
          },
          ...
        },
      }
    """
    required = dict(CATEGORY_REQUIRED_CREDITS if required is None else required)
    if total_required is None:
        total_required = sum(required.values())

    categories = {
        category: {"completed_courses": 0, "completed_credits": 0, "required_credits": credits}
        for category, credits in required.items()
    }
    total_completed = 0
    for code in sorted(record.completed_codes):
        credits = catalog.credits_for(code)
        total_completed += credits
        course = catalog.lookup(code)
        bucket = categories.get(course.category) if course else None
        if bucket is not None:
            bucket["completed_courses"] += 1
            bucket["completed_credits"] += credits

    for bucket in categories.values():
        bucket["percentage"] = _percentage(bucket["completed_credits"], bucket["required_credits"])

    attempted = _attempted_credits(catalog, completions_df, record.student_id)
    return {
        "total_completed_credits": total_completed,
        "total_attempted_credits": total_completed if attempted is None else attempted,
        "total_required_credits": total_required,
        "overall_percentage": int(round(_percentage(total_completed, total_required))),
        "completed_courses": len(record.completed_codes),
        "categories": categories,
    }
