import os
import sys
import time
import threading

# Ensure backend/ is on sys.path so sibling imports work
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from flask import Flask, g, jsonify, request
from dotenv import load_dotenv

from data_loader import load_completion_record, load_data
from eligibility import (
    available_to_place,
    check_prerequisites,
    compute_plan_warnings,
    resolve,
)
from errors import CourseNotFoundError, DataUnavailableError, PlannerError
from normalizer import normalize_code, normalize_input
from plan_gateway import load_plan, projection_to_timeline, save_plan, serialize_term
from plan_store import JsonFilePlanStore
from planning_rules import DEFAULT_CREDIT_LIMIT, normalize_season
from projector import project
from progress import compute_progress
from term_plan import TermPlan
from unlocks import build_reverse_prereq_map, get_direct_unlocks

load_dotenv()

app = Flask(__name__)

# ── Paths ─────────────────────────────────────────────────────────────────────
BACKEND_DIR = os.path.dirname(os.path.abspath(__file__))
PROJECT_ROOT = os.path.dirname(BACKEND_DIR)


def _resolve_path(env_name: str, default: str) -> str:
    raw = os.environ.get(env_name)
    if not raw:
        return default
    if not os.path.isabs(raw):
        return os.path.join(PROJECT_ROOT, raw)
    return raw


_DEFAULT_DATA_PATH = os.path.join(PROJECT_ROOT, "data")
DATA_PATH = _resolve_path("DATA_PATH", _DEFAULT_DATA_PATH)
PLAN_STORE_PATH = _resolve_path("PLAN_STORE_PATH", os.path.join(PROJECT_ROOT, "plan_store"))
DEFAULT_STUDENT_ID = os.environ.get("DEFAULT_STUDENT_ID", "demo")

_data_lock = threading.Lock()
_data_mtime = None


def _env_float(name: str, default: float, minimum: float = 0.0) -> float:
    raw = os.environ.get(name, "")
    try:
        return max(minimum, float(raw))
    except (TypeError, ValueError):
        return default


def _env_int(name: str, default: int | None, minimum: int = 1) -> int | None:
    raw = os.environ.get(name, "")
    try:
        return max(minimum, int(raw))
    except (TypeError, ValueError):
        return default


_SLOW_REQUEST_LOG_MS = _env_float("SLOW_REQUEST_LOG_MS", 750.0, minimum=0.0)
_SIMULATED_CREDIT_LIMIT = _env_int("SIMULATED_CREDIT_LIMIT", None, minimum=1)
_TOTAL_REQUIRED_CREDITS = _env_int("TOTAL_REQUIRED_CREDITS", None, minimum=1)


def _data_file_mtime(path: str):
    try:
        if os.path.isdir(path):
            mtimes = [
                os.path.getmtime(os.path.join(path, f))
                for f in os.listdir(path)
                if f.endswith(".csv")
            ]
            return max(mtimes) if mtimes else None
        return os.path.getmtime(path)
    except OSError:
        return None


# ── Startup data load ──────────────────────────────────────────────────────────
# A missing catalog is not fatal: catalog routes answer DATA_UNAVAILABLE until
# a reload succeeds.
_data = None
try:
    _data = load_data(DATA_PATH)
    _data_mtime = _data_file_mtime(DATA_PATH)
    print(f"[OK] Loaded {len(_data['catalog'])} courses from {DATA_PATH}")
except Exception as exc:
    print(f"[WARN] Catalog unavailable ({DATA_PATH}): {exc}", file=sys.stderr)

_reverse_map = build_reverse_prereq_map(_data["catalog"]) if _data else {}

_store = JsonFilePlanStore(PLAN_STORE_PATH)

# One in-memory plan per student; the source of truth until the next successful save.
_plans_lock = threading.RLock()
_plans: dict[str, TermPlan] = {}


def _reload_data_if_changed(force: bool = False) -> bool:
    """
    Hot-reload catalog data when DATA_PATH changes on disk.

    Returns True when a reload occurred, else False.
    """
    global _data, _reverse_map, _data_mtime

    candidate_mtime = _data_file_mtime(DATA_PATH)
    if not force:
        if candidate_mtime is None:
            return False
        if _data_mtime is not None and candidate_mtime <= _data_mtime:
            return False

    with _data_lock:
        latest_mtime = _data_file_mtime(DATA_PATH)
        if not force:
            if latest_mtime is None:
                return False
            if _data_mtime is not None and latest_mtime <= _data_mtime:
                return False

        try:
            new_data = load_data(DATA_PATH)
            new_reverse_map = build_reverse_prereq_map(new_data["catalog"])
        except Exception as exc:
            print(f"[WARN] Data reload failed; keeping previous dataset: {exc}", file=sys.stderr)
            return False

        _data = new_data
        _reverse_map = new_reverse_map
        _data_mtime = latest_mtime if latest_mtime is not None else candidate_mtime
        print(f"[OK] Reloaded {len(new_data['catalog'])} courses from {DATA_PATH}")
        return True


def _refresh_data_if_needed() -> None:
    try:
        _reload_data_if_changed()
    except Exception as exc:
        print(f"[WARN] Data reload check failed: {exc}", file=sys.stderr)


# -- Security headers / slow request log -----------------------------------
@app.before_request
def _start_request_timer():
    g._request_start_time = time.perf_counter()


@app.after_request
def _add_security_headers(response):
    response.headers["X-Frame-Options"] = "DENY"
    response.headers["X-Content-Type-Options"] = "nosniff"
    response.headers["Referrer-Policy"] = "same-origin"

    started = getattr(g, "_request_start_time", None)
    if started is not None:
        duration_ms = (time.perf_counter() - started) * 1000.0
        if duration_ms >= _SLOW_REQUEST_LOG_MS:
            endpoint = request.endpoint or "unknown"
            print(
                f"[SLOW] {request.method} {request.path} "
                f"endpoint={endpoint} status={response.status_code} duration_ms={duration_ms:.1f}"
            )
    return response


# ── Error handlers ─────────────────────────────────────────────────────────────
def _error_response(error_code: str, message: str, status: int, **details):
    return jsonify({
        "mode": "error",
        "error": {"error_code": error_code, "message": message, **details},
    }), status


@app.errorhandler(PlannerError)
def handle_planner_error(e):
    return jsonify(e.to_payload()), e.http_status


@app.errorhandler(Exception)
def handle_unexpected_error(e):
    print(f"[ERROR] Unhandled {type(e).__name__}: {e}", file=sys.stderr)
    return _error_response("SERVER_ERROR", "An unexpected server error occurred.", 500)


@app.errorhandler(404)
def handle_not_found(e):
    return _error_response("NOT_FOUND", f"{request.path} not found", 404)


@app.errorhandler(405)
def handle_method_not_allowed(e):
    return _error_response("METHOD_NOT_ALLOWED", f"{request.method} not allowed on {request.path}", 405)


# ── Request helpers ────────────────────────────────────────────────────────────
def _json_body() -> dict:
    body = request.get_json(force=True, silent=True)
    return body if isinstance(body, dict) else {}


def _student_id() -> str:
    raw = request.args.get("student_id") or _json_body().get("student_id") or DEFAULT_STUDENT_ID
    return str(raw).strip() or DEFAULT_STUDENT_ID


def _require_data() -> dict:
    _refresh_data_if_needed()
    if not _data:
        raise DataUnavailableError("Course catalog is unavailable; eligibility is unknown.")
    return _data


def _completion_record(data: dict, student_id: str):
    return load_completion_record(data["completions_df"], student_id)


def _get_plan(student_id: str) -> TermPlan:
    with _plans_lock:
        plan = _plans.get(student_id)
        if plan is None:
            plan = load_plan(_store, student_id) or TermPlan()
            _plans[student_id] = plan
        return plan


def _coerce_bool(raw) -> bool:
    if isinstance(raw, bool):
        return raw
    return str(raw or "").strip().lower() in {"true", "1", "yes", "y"}


def _validate_term_body(body: dict):
    """Returns (error_code, message) on invalid input, (None, None) on success."""
    if normalize_season(body.get("season")) is None:
        return "INVALID_INPUT", "season must be one of Spring, Summer, Fall."
    year = body.get("year")
    if isinstance(year, bool):
        return "INVALID_INPUT", "year must be an integer."
    try:
        year = int(year)
    except (TypeError, ValueError):
        return "INVALID_INPUT", "year must be an integer."
    if year < 1900 or year > 2200:
        return "INVALID_INPUT", "year is out of range."
    if "creditLimit" in body:
        try:
            int(body["creditLimit"])
        except (TypeError, ValueError):
            return "INVALID_INPUT", "creditLimit must be an integer."
    return None, None


def _term_view(plan: TermPlan, term, credits_for) -> dict:
    view = serialize_term(term)
    view["termId"] = str(term.term_id)
    view["state"] = term.state
    if credits_for is not None:
        load = plan.compute_load(term.term_id, credits_for)
        view["totalCredits"] = load["total_credits"]
        view["loadStatus"] = load["status"]
    return view


def _plan_payload(student_id: str, plan: TermPlan) -> dict:
    """Plan plus everything derived from it: loads, warnings, projection."""
    data = _data
    if not data:
        return {
            "mode": "plan",
            "studentId": student_id,
            "dataAvailable": False,
            "plannedSemesters": [_term_view(plan, t, None) for t in plan.terms],
            "graduationTimeline": None,
            "projection": None,
            "warnings": [],
            "availableToPlace": None,
        }

    catalog = data["catalog"]
    record = _completion_record(data, student_id)
    status_map = resolve(catalog, record, plan)
    projection = project(
        catalog.list_remaining(record),
        status_map,
        plan,
        simulated_credit_limit=_SIMULATED_CREDIT_LIMIT,
    )
    return {
        "mode": "plan",
        "studentId": student_id,
        "dataAvailable": True,
        "plannedSemesters": [_term_view(plan, t, catalog.credits_for) for t in plan.terms],
        "graduationTimeline": projection_to_timeline(projection),
        "projection": projection,
        "warnings": compute_plan_warnings(plan, catalog, record),
        "availableToPlace": available_to_place(status_map),
    }


# ── Routes ─────────────────────────────────────────────────────────────────────
@app.route("/health", methods=["GET"])
def health_endpoint():
    return jsonify({
        "status": "ok",
        "version": "1.0.0",
        "catalog_loaded": bool(_data),
    })


def get_course(course_code):
    data = _require_data()
    course = data["catalog"].lookup(course_code)
    if course is None:
        code = normalize_code(course_code) or course_code
        raise CourseNotFoundError(f"{code} is not in the course catalog.", course_code=code)
    payload = course.to_dict()
    payload["unlocks"] = get_direct_unlocks(course.course_code, _reverse_map, limit=5)
    return jsonify(payload)


def remaining_courses_endpoint():
    data = _require_data()
    student_id = _student_id()
    catalog = data["catalog"]
    record = _completion_record(data, student_id)
    status_map = resolve(catalog, record, _get_plan(student_id))
    rows = []
    for course in catalog.list_remaining(record):
        status = status_map[course.course_code]
        rows.append({
            "courseCode": course.course_code,
            "courseName": course.course_name,
            "credits": course.credits,
            "category": course.category,
            "canTake": status["can_take"],
            "missingPrerequisites": status["missing_hard"],
        })
    return jsonify({"studentId": student_id, "courses": rows})


def completed_courses_endpoint():
    data = _require_data()
    student_id = _student_id()
    record = _completion_record(data, student_id)
    rows = []
    for code in sorted(record.entries):
        row = {"courseCode": code}
        grade = record.grade_for(code)
        if grade is not None:
            row["grade"] = grade
        rows.append(row)
    return jsonify({"studentId": student_id, "courses": rows})


def progress_endpoint():
    data = _require_data()
    student_id = _student_id()
    progress = compute_progress(
        data["catalog"],
        _completion_record(data, student_id),
        data["completions_df"],
        required=data.get("requirements"),
        total_required=_TOTAL_REQUIRED_CREDITS,
    )
    categories = {
        category: {
            "completedCourses": bucket["completed_courses"],
            "completedCredits": bucket["completed_credits"],
            "requiredCredits": bucket["required_credits"],
            "percentage": bucket["percentage"],
        }
        for category, bucket in progress["categories"].items()
    }
    return jsonify({
        "studentId": student_id,
        "totalCreditsCompleted": progress["total_completed_credits"],
        "totalCreditsAttempted": progress["total_attempted_credits"],
        "totalCreditsRequired": progress["total_required_credits"],
        "progressPercentage": progress["overall_percentage"],
        "completedCourses": progress["completed_courses"],
        "progressByCategory": categories,
    })


def prerequisites_endpoint(course_code):
    data = _require_data()
    student_id = _student_id()
    result = check_prerequisites(course_code, data["catalog"], _completion_record(data, student_id))
    return jsonify({
        "courseCode": normalize_code(course_code),
        "missingHard": result["missing_hard"],
        "missingSoft": result["missing_soft"],
    })


def eligibility_endpoint():
    data = _require_data()
    student_id = _student_id()
    status_map = resolve(data["catalog"], _completion_record(data, student_id), _get_plan(student_id))
    payload = {"studentId": student_id}

    # Optional ?codes=CSE110,MAT 120 narrows the map to a pasted list.
    raw_codes = request.args.get("codes")
    if raw_codes is not None:
        parsed = normalize_input(raw_codes, data["catalog_codes"])
        status_map = {code: status_map[code] for code in parsed["valid"]}
        payload["invalid"] = parsed["invalid"]
        payload["notInCatalog"] = parsed["not_in_catalog"]

    payload["statuses"] = status_map
    payload["availableToPlace"] = available_to_place(status_map)
    return jsonify(payload)


def get_plan_endpoint():
    _refresh_data_if_needed()
    student_id = _student_id()
    plan = _get_plan(student_id)
    with _plans_lock:
        return jsonify(_plan_payload(student_id, plan))


def save_plan_endpoint():
    """Wholesale replace of the stored plan. Failures leave the in-memory plan intact."""
    _refresh_data_if_needed()
    student_id = _student_id()
    plan = _get_plan(student_id)
    with _plans_lock:
        projection = None
        if _data:
            catalog = _data["catalog"]
            record = _completion_record(_data, student_id)
            projection = project(
                catalog.list_remaining(record),
                resolve(catalog, record, plan),
                plan,
                simulated_credit_limit=_SIMULATED_CREDIT_LIMIT,
            )
        ack = save_plan(_store, student_id, plan, projection)
        payload = _plan_payload(student_id, plan)
    payload["ack"] = ack
    return jsonify(payload)


def reset_plan_endpoint():
    """Discard unsaved in-memory changes and reload the stored plan."""
    student_id = _student_id()
    with _plans_lock:
        _plans.pop(student_id, None)
    return get_plan_endpoint()


def add_term_endpoint():
    body = _json_body()
    error_code, message = _validate_term_body(body)
    if error_code:
        return _error_response(error_code, message, 400)
    student_id = _student_id()
    plan = _get_plan(student_id)
    with _plans_lock:
        term = plan.add_term(
            body["season"],
            int(body["year"]),
            body.get("creditLimit", DEFAULT_CREDIT_LIMIT),
        )
        payload = _plan_payload(student_id, plan)
    payload["termId"] = str(term.term_id)
    return jsonify(payload), 201


def update_term_endpoint(term_id):
    body = _json_body()
    try:
        new_limit = int(body.get("creditLimit"))
    except (TypeError, ValueError):
        return _error_response("INVALID_INPUT", "creditLimit must be an integer.", 400)
    student_id = _student_id()
    plan = _get_plan(student_id)
    with _plans_lock:
        plan.update_credit_limit(term_id, new_limit)
        return jsonify(_plan_payload(student_id, plan))


def delete_term_endpoint(term_id):
    student_id = _student_id()
    plan = _get_plan(student_id)
    with _plans_lock:
        plan.delete_term(term_id)
        return jsonify(_plan_payload(student_id, plan))


def place_course_endpoint(term_id):
    data = _require_data()
    body = _json_body()
    raw_code = str(body.get("courseCode") or "").strip()
    if not raw_code:
        return _error_response("INVALID_INPUT", "courseCode is required.", 400)

    catalog = data["catalog"]
    course = catalog.lookup(raw_code)
    if course is None:
        code = normalize_code(raw_code) or raw_code
        raise CourseNotFoundError(f"Course {code} not found in program catalog", course_code=code)

    is_repeat = _coerce_bool(body.get("isRepeat"))
    confirm_move = _coerce_bool(body.get("confirmMove"))
    student_id = _student_id()
    record = _completion_record(data, student_id)
    plan = _get_plan(student_id)

    with _plans_lock:
        existing = plan.find_placement(course.course_code)
        if confirm_move and existing is not None:
            # Carry the placement as-is; it was checked when first placed.
            plan.move_course(course.course_code, term_id)
            return jsonify(_plan_payload(student_id, plan)), 201

        status = resolve(catalog, record, plan)[course.course_code]
        if status["is_completed"] and not is_repeat:
            return _error_response(
                "REPEAT_CONFIRMATION_REQUIRED",
                f"{course.course_code} is already completed. Plan it as a repeat?",
                409,
                course_code=course.course_code,
                original_grade=record.grade_for(course.course_code),
            )
        # Only completed courses can be repeats.
        is_repeat = is_repeat and record.is_completed(course.course_code)
        plan.place_course(
            course.course_code,
            term_id,
            is_repeat=is_repeat,
            can_take=status["can_take"],
            confirm_move=confirm_move,
            original_grade=record.grade_for(course.course_code),
        )
        return jsonify(_plan_payload(student_id, plan)), 201


def remove_course_endpoint(term_id, course_code):
    student_id = _student_id()
    plan = _get_plan(student_id)
    with _plans_lock:
        removed = plan.remove_course(course_code, term_id)
        payload = _plan_payload(student_id, plan)
    payload["removed"] = removed
    return jsonify(payload)


# -- Canonical API routes ----------------------------------------------------
app.add_url_rule("/api/health", endpoint="api_health", view_func=health_endpoint, methods=["GET"])
app.add_url_rule("/api/courses/<course_code>", endpoint="api_course", view_func=get_course, methods=["GET"])
app.add_url_rule(
    "/api/graduation/remaining-courses", endpoint="api_remaining_courses",
    view_func=remaining_courses_endpoint, methods=["GET"],
)
app.add_url_rule(
    "/api/graduation/completed-courses", endpoint="api_completed_courses",
    view_func=completed_courses_endpoint, methods=["GET"],
)
app.add_url_rule(
    "/api/graduation/progress", endpoint="api_progress",
    view_func=progress_endpoint, methods=["GET"],
)
app.add_url_rule(
    "/api/graduation/prerequisites/<course_code>", endpoint="api_prerequisites",
    view_func=prerequisites_endpoint, methods=["GET"],
)
app.add_url_rule("/api/eligibility", endpoint="api_eligibility", view_func=eligibility_endpoint, methods=["GET"])
app.add_url_rule("/api/semester-planner", endpoint="api_get_plan", view_func=get_plan_endpoint, methods=["GET"])
app.add_url_rule("/api/semester-planner", endpoint="api_save_plan", view_func=save_plan_endpoint, methods=["POST"])
app.add_url_rule(
    "/api/semester-planner/reset", endpoint="api_reset_plan",
    view_func=reset_plan_endpoint, methods=["POST"],
)
app.add_url_rule(
    "/api/semester-planner/terms", endpoint="api_add_term",
    view_func=add_term_endpoint, methods=["POST"],
)
app.add_url_rule(
    "/api/semester-planner/terms/<term_id>", endpoint="api_update_term",
    view_func=update_term_endpoint, methods=["PATCH"],
)
app.add_url_rule(
    "/api/semester-planner/terms/<term_id>", endpoint="api_delete_term",
    view_func=delete_term_endpoint, methods=["DELETE"],
)
app.add_url_rule(
    "/api/semester-planner/terms/<term_id>/courses", endpoint="api_place_course",
    view_func=place_course_endpoint, methods=["POST"],
)
app.add_url_rule(
    "/api/semester-planner/terms/<term_id>/courses/<course_code>", endpoint="api_remove_course",
    view_func=remove_course_endpoint, methods=["DELETE"],
)


if __name__ == "__main__":
    port = int(os.environ.get("PORT", 5000))
    debug = os.environ.get("FLASK_DEBUG", "1") == "1"
    app.run(host="0.0.0.0", port=port, debug=debug)
