from planning_rules import (
    BOTTLENECK_DEPTH_THRESHOLD,
    MAX_SIMULATED_TERMS,
    clamp_credit_limit,
    next_term,
)
from prereq_parser import prereqs_satisfied
from term_plan import TermPlan
from unlocks import build_reverse_prereq_map, compute_chain_depths


def _find_bottlenecks(depths: dict[str, int], unfinished: list[str]) -> list[str]:
    """
    Unfinished courses whose downstream chain depth reaches the threshold and
    sits above the average depth of all unfinished courses.
    """
    if not unfinished:
        return []
    average = sum(depths.get(c, 0) for c in unfinished) / len(unfinished)
    flagged = [
        c for c in unfinished
        if depths.get(c, 0) >= BOTTLENECK_DEPTH_THRESHOLD and depths.get(c, 0) > average
    ]
    return sorted(flagged, key=lambda c: (-depths.get(c, 0), c))


def _simulate_terms(
    pending: set[str],
    courses: dict,
    satisfied: set[str],
    depths: dict[str, int],
    start_season: str,
    start_year: int,
    credit_limit: int,
) -> tuple[list[dict], set[str]]:
    """
    Greedy topological bin-packing over future terms.

    Each simulated term takes the courses whose hard prerequisites are met by
    completed/planned courses or by strictly earlier simulated terms, deepest
    downstream chain first, up to credit_limit. A course larger than the cap
    may still occupy an otherwise empty term.

    Returns: (simulated_terms, unschedulable_codes)
    """
    pending = set(pending)
    done = set(satisfied)
    season, year = start_season, start_year
    simulated: list[dict] = []

    while pending and len(simulated) < MAX_SIMULATED_TERMS:
        eligible = [
            code for code in pending
            if prereqs_satisfied(courses[code].prereq_hard, done)
        ]
        if not eligible:
            break
        eligible.sort(key=lambda c: (-depths.get(c, 0), c))

        picked: list[str] = []
        load = 0
        for code in eligible:
            credits = courses[code].credits
            if not picked or load + credits <= credit_limit:
                picked.append(code)
                load += credits

        season, year = next_term(season, year)
        simulated.append({
            "season": season,
            "year": year,
            "semester_name": f"{season} {year}",
            "courses": picked,
            "total_credits": load,
        })
        done.update(picked)
        pending.difference_update(picked)

    return simulated, pending


def project(
    remaining_courses,
    eligibility_map: dict[str, dict],
    plan: TermPlan | None,
    simulated_credit_limit: int | None = None,
) -> dict | None:
    """
    Estimate when the remaining courses can be cleared.

    Returns None when the plan has no terms ("not enough data"), otherwise:
      {
        "graduation_season": "Fall",
        "graduation_year": 2027,
        "graduation_term": "Fall 2027",
        "remaining_terms": 5,          # real terms up to graduation + additional_terms
        "planned_terms": 2,
        "additional_terms": 3,
        "bottleneck_courses": ["CSE110", ...],
        "unschedulable_courses": [...],
        "chain_depths": {"CSE110": 3, ...},
        "simulated_terms": [{"season", "year", "semester_name", "courses", "total_credits"}],
        "simulated_credit_limit": 12,
        "calculation_method": "greedy",
      }
    """
    if plan is None or len(plan) == 0:
        return None

    completed = {
        code for code, status in eligibility_map.items()
        if status.get("is_completed")
    }
    courses = {
        c.course_code: c for c in remaining_courses
        if c.course_code not in completed
    }

    planned_non_repeat = {
        p.course_code
        for term in plan.terms
        for p in term.placements
        if not p.is_repeat
    }
    unplaced = {code for code in courses if code not in planned_non_repeat}

    unfinished = sorted(courses)
    reverse_map = build_reverse_prereq_map(courses.values(), only_codes=set(courses))
    depths = compute_chain_depths(reverse_map)

    last_real = plan.terms[-1]
    credit_limit = clamp_credit_limit(
        simulated_credit_limit if simulated_credit_limit is not None else last_real.credit_limit
    )
    simulated, unschedulable = _simulate_terms(
        unplaced,
        courses,
        completed | planned_non_repeat,
        depths,
        last_real.season,
        last_real.year,
        credit_limit,
    )

    real_terms_used = len(plan.terms)
    if simulated:
        graduation_season = simulated[-1]["season"]
        graduation_year = simulated[-1]["year"]
    else:
        # Trailing terms with nothing new in them come after graduation.
        for index in range(len(plan.terms) - 1, -1, -1):
            if any(not p.is_repeat for p in plan.terms[index].placements):
                real_terms_used = index + 1
                break
        anchor = plan.terms[real_terms_used - 1]
        graduation_season, graduation_year = anchor.season, anchor.year

    bottlenecks = _find_bottlenecks(depths, unfinished)
    bottlenecks.extend(c for c in sorted(unschedulable) if c not in bottlenecks)

    return {
        "graduation_season": graduation_season,
        "graduation_year": graduation_year,
        "graduation_term": f"{graduation_season} {graduation_year}",
        "remaining_terms": real_terms_used + len(simulated),
        "planned_terms": len(plan.terms),
        "additional_terms": len(simulated),
        "bottleneck_courses": bottlenecks,
        "unschedulable_courses": sorted(unschedulable),
        "chain_depths": {c: depths.get(c, 0) for c in unfinished},
        "simulated_terms": simulated,
        "simulated_credit_limit": credit_limit,
        "calculation_method": "greedy",
    }
