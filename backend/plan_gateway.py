from datetime import datetime, timezone

from normalizer import normalize_code
from planning_rules import clamp_credit_limit, normalize_season
from term_plan import DraftId, PersistedId, Placement, Term, TermPlan, new_draft_id


def _parse_added_at(raw) -> datetime:
    if isinstance(raw, datetime):
        return raw
    try:
        parsed = datetime.fromisoformat(str(raw).replace("Z", "+00:00"))
    except (TypeError, ValueError):
        return datetime.now(timezone.utc)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def serialize_placement(placement: Placement) -> dict:
    out = {
        "courseCode": placement.course_code,
        "isRepeat": placement.is_repeat,
        "addedAt": placement.added_at.isoformat(),
    }
    if placement.original_grade is not None:
        out["originalGrade"] = placement.original_grade
    return out


def serialize_term(term: Term) -> dict:
    """Persisted Term wire shape. Draft terms carry no _id."""
    out = {
        "semesterName": term.semester_name,
        "season": term.season,
        "year": term.year,
        "creditLimit": term.credit_limit,
        "plannedCourses": [serialize_placement(p) for p in term.placements],
        "isActive": term.is_active,
    }
    if isinstance(term.term_id, PersistedId):
        out["_id"] = term.term_id.server_id
    return out


def deserialize_plan(document: dict) -> TermPlan:
    """
    Build a TermPlan from a stored document. Malformed terms, duplicate
    (season, year) pairs and repeated course codes are dropped with a warning.
    """
    plan = TermPlan()
    seen_codes: set[str] = set()

    for raw in document.get("plannedSemesters") or []:
        if not isinstance(raw, dict):
            print(f"[WARN] Skipping malformed stored term: {raw!r}")
            continue
        season = normalize_season(raw.get("season"))
        try:
            year = int(raw.get("year"))
        except (TypeError, ValueError):
            year = None
        if season is None or year is None:
            print(f"[WARN] Skipping stored term with invalid season/year: {raw.get('semesterName')!r}")
            continue
        if any(t.season == season and t.year == year for t in plan.terms):
            print(f"[WARN] Duplicate stored term {season} {year}; keeping the first one.")
            continue

        sid = raw.get("_id")
        term = Term(
            term_id=PersistedId(str(sid)) if sid else new_draft_id(),
            season=season,
            year=year,
            credit_limit=clamp_credit_limit(raw.get("creditLimit")),
            is_active=bool(raw.get("isActive", True)),
        )
        for raw_course in raw.get("plannedCourses") or []:
            if not isinstance(raw_course, dict):
                print(f"[WARN] Skipping malformed stored course in {season} {year}: {raw_course!r}")
                continue
            code = normalize_code(raw_course.get("courseCode"))
            if code is None:
                continue
            if code in seen_codes:
                print(f"[WARN] {code} stored in more than one term; keeping the earliest placement.")
                continue
            seen_codes.add(code)
            is_repeat = bool(raw_course.get("isRepeat", False))
            term.placements.append(Placement(
                course_code=code,
                is_repeat=is_repeat,
                original_grade=raw_course.get("originalGrade") if is_repeat else None,
                added_at=_parse_added_at(raw_course.get("addedAt")),
            ))

        plan.terms.append(term)

    plan.terms.sort(key=lambda t: t.sort_key)
    return plan


def projection_to_timeline(projection: dict | None) -> dict | None:
    if projection is None:
        return None
    return {
        "estimatedGraduationSemester": projection["graduation_season"],
        "estimatedGraduationYear": projection["graduation_year"],
        "totalRemainingSemesters": projection["remaining_terms"],
        "bottleneckCourses": list(projection["bottleneck_courses"]),
        "calculationMethod": projection["calculation_method"],
    }


def load_plan(store, student_id: str) -> TermPlan | None:
    """Returns the stored plan, or None when the student has never saved one."""
    document = store.get(student_id)
    if document is None:
        return None
    return deserialize_plan(document)


def save_plan(store, student_id: str, plan: TermPlan, projection: dict | None = None) -> dict:
    """
    Wholesale replace of the stored plan.

    Draft terms are sent without _id and receive server ids from the store;
    on success the in-memory plan adopts those ids. On failure the store's
    error propagates and the in-memory plan is left exactly as it was.
    """
    document = {"plannedSemesters": [serialize_term(t) for t in plan.terms]}
    timeline = projection_to_timeline(projection)
    if timeline is not None:
        document["graduationTimeline"] = timeline

    stored = store.put(student_id, document)

    stored_semesters = stored["plannedSemesters"]
    id_mapping = {
        term.term_id: stored_semesters[i]["_id"]
        for i, term in enumerate(plan.terms)
        if isinstance(term.term_id, DraftId)
    }
    reconciled = len(plan.deleted_term_ids)
    plan.mark_persisted(id_mapping)
    print(
        f"[INFO] Saved plan for {student_id}: {len(plan.terms)} term(s), "
        f"{len(id_mapping)} new, {reconciled} deleted"
    )
    return {
        "ok": True,
        "saved_terms": len(plan.terms),
        "assigned_ids": {str(k): v for k, v in id_mapping.items()},
        "updated_at": stored.get("updatedAt"),
    }
