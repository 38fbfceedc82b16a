"""
Semester planner API tests.

Covers:
- term lifecycle (add, duplicate, clamp, delete)
- placement flows: NOT_ELIGIBLE, REPEAT_CONFIRMATION_REQUIRED, DUPLICATE_PLACEMENT + confirmMove
- save/reset against a throwaway plan store
- catalog and progress routes, and the DATA_UNAVAILABLE path
"""

import pytest
import server
from errors import PlanPersistenceError
from plan_store import JsonFilePlanStore


@pytest.fixture
def client(tmp_path, monkeypatch):
    monkeypatch.setattr(server, "_store", JsonFilePlanStore(str(tmp_path / "plans")))
    monkeypatch.setattr(server, "_plans", {})
    server.app.config["TESTING"] = True
    with server.app.test_client() as c:
        yield c


def add_term(client, student, season="Spring", year=2025, **extra):
    body = {"season": season, "year": year, **extra}
    return client.post(f"/api/semester-planner/terms?student_id={student}", json=body)


def place(client, student, term_id, code, **extra):
    body = {"courseCode": code, **extra}
    return client.post(f"/api/semester-planner/terms/{term_id}/courses?student_id={student}", json=body)


def plan_for(client, student):
    return client.get(f"/api/semester-planner?student_id={student}").get_json()


class TestPlanLifecycle:
    def test_fresh_plan_is_empty(self, client):
        data = plan_for(client, "fresh")
        assert data["dataAvailable"] is True
        assert data["plannedSemesters"] == []
        assert data["graduationTimeline"] is None
        assert data["projection"] is None

    def test_add_term_returns_draft_id(self, client):
        resp = add_term(client, "s1")
        assert resp.status_code == 201
        data = resp.get_json()
        assert data["termId"].startswith("temp-")
        assert data["plannedSemesters"][0]["state"] == "draft"
        assert data["graduationTimeline"]["calculationMethod"] == "greedy"

    def test_duplicate_term(self, client):
        add_term(client, "s1")
        resp = add_term(client, "s1", season="spring")
        assert resp.status_code == 409
        assert resp.get_json()["error"]["error_code"] == "DUPLICATE_TERM"

    @pytest.mark.parametrize("body", [
        {"season": "Winter", "year": 2025},
        {"season": "Fall", "year": "soon"},
        {"season": "Fall", "year": 2025, "creditLimit": "many"},
    ])
    def test_invalid_term_body(self, client, body):
        resp = client.post("/api/semester-planner/terms?student_id=s1", json=body)
        assert resp.status_code == 400
        assert resp.get_json()["error"]["error_code"] == "INVALID_INPUT"

    def test_credit_limit_clamped(self, client):
        term_id = add_term(client, "s1", creditLimit=40).get_json()["termId"]
        assert plan_for(client, "s1")["plannedSemesters"][0]["creditLimit"] == 21
        resp = client.patch(f"/api/semester-planner/terms/{term_id}?student_id=s1", json={"creditLimit": 1})
        assert resp.status_code == 200
        assert resp.get_json()["plannedSemesters"][0]["creditLimit"] == 3

    def test_delete_term(self, client):
        term_id = add_term(client, "s1").get_json()["termId"]
        resp = client.delete(f"/api/semester-planner/terms/{term_id}?student_id=s1")
        assert resp.status_code == 200
        assert resp.get_json()["plannedSemesters"] == []

    def test_unknown_term(self, client):
        resp = place(client, "s1", "temp-404", "CSE110")
        assert resp.status_code == 404
        assert resp.get_json()["error"]["error_code"] == "TERM_NOT_FOUND"


class TestPlacement:
    def test_eligible_course(self, client):
        term_id = add_term(client, "nobody").get_json()["termId"]
        resp = place(client, "nobody", term_id, "cse 110")
        assert resp.status_code == 201
        term = resp.get_json()["plannedSemesters"][0]
        assert [c["courseCode"] for c in term["plannedCourses"]] == ["CSE110"]
        assert term["totalCredits"] == 3
        assert term["loadStatus"] == "normal"

    def test_not_eligible(self, client):
        term_id = add_term(client, "nobody").get_json()["termId"]
        resp = place(client, "nobody", term_id, "CSE111")
        assert resp.status_code == 409
        assert resp.get_json()["error"]["error_code"] == "NOT_ELIGIBLE"

    def test_unknown_course(self, client):
        term_id = add_term(client, "nobody").get_json()["termId"]
        resp = place(client, "nobody", term_id, "XYZ999")
        assert resp.status_code == 404
        assert resp.get_json()["error"]["error_code"] == "COURSE_NOT_FOUND"

    def test_completed_course_requires_repeat_confirmation(self, client):
        term_id = add_term(client, "demo").get_json()["termId"]
        resp = place(client, "demo", term_id, "CSE110")
        assert resp.status_code == 409
        error = resp.get_json()["error"]
        assert error["error_code"] == "REPEAT_CONFIRMATION_REQUIRED"
        assert error["original_grade"] == "A"

        resp = place(client, "demo", term_id, "CSE110", isRepeat=True)
        assert resp.status_code == 201
        data = resp.get_json()
        course = data["plannedSemesters"][0]["plannedCourses"][0]
        assert course["isRepeat"] is True
        assert course["originalGrade"] == "A"
        assert "repeat_course" in [w["type"] for w in data["warnings"]]

    def test_duplicate_placement_then_confirmed_move(self, client):
        spring = add_term(client, "demo", "Spring", 2025).get_json()["termId"]
        summer = add_term(client, "demo", "Summer", 2025).get_json()["termId"]
        assert place(client, "demo", spring, "CSE111").status_code == 201

        resp = place(client, "demo", summer, "CSE111")
        assert resp.status_code == 409
        error = resp.get_json()["error"]
        assert error["error_code"] == "DUPLICATE_PLACEMENT"
        assert error["current_term"] == "Spring 2025"

        resp = place(client, "demo", summer, "CSE111", confirmMove=True)
        assert resp.status_code == 201
        terms = resp.get_json()["plannedSemesters"]
        codes = [c["courseCode"] for t in terms for c in t["plannedCourses"]]
        assert codes.count("CSE111") == 1
        assert terms[1]["plannedCourses"][0]["courseCode"] == "CSE111"

    def test_repeat_flag_does_not_skip_prerequisites(self, client):
        term_id = add_term(client, "nobody").get_json()["termId"]
        resp = place(client, "nobody", term_id, "CSE220", isRepeat=True)
        assert resp.status_code == 409
        assert resp.get_json()["error"]["error_code"] == "NOT_ELIGIBLE"
        assert plan_for(client, "nobody")["plannedSemesters"][0]["plannedCourses"] == []

    def test_repeat_flag_ignored_for_uncompleted_course(self, client):
        term_id = add_term(client, "nobody").get_json()["termId"]
        resp = place(client, "nobody", term_id, "CSE110", isRepeat=True)
        assert resp.status_code == 201
        course = resp.get_json()["plannedSemesters"][0]["plannedCourses"][0]
        assert course["isRepeat"] is False
        assert "originalGrade" not in course

    def test_confirmed_move_keeps_repeat(self, client):
        spring = add_term(client, "demo", "Spring", 2025).get_json()["termId"]
        fall = add_term(client, "demo", "Fall", 2025).get_json()["termId"]
        place(client, "demo", spring, "CSE110", isRepeat=True)

        resp = place(client, "demo", fall, "CSE110", confirmMove=True)
        assert resp.status_code == 201
        terms = resp.get_json()["plannedSemesters"]
        assert terms[0]["plannedCourses"] == []
        moved = terms[1]["plannedCourses"][0]
        assert moved["courseCode"] == "CSE110"
        assert moved["isRepeat"] is True
        assert moved["originalGrade"] == "A"

    def test_remove_course(self, client):
        term_id = add_term(client, "nobody").get_json()["termId"]
        place(client, "nobody", term_id, "CSE110")
        resp = client.delete(f"/api/semester-planner/terms/{term_id}/courses/CSE110?student_id=nobody")
        assert resp.status_code == 200
        assert resp.get_json()["removed"] is True
        assert resp.get_json()["plannedSemesters"][0]["plannedCourses"] == []

    def test_planned_course_leaves_available_list(self, client):
        term_id = add_term(client, "nobody").get_json()["termId"]
        before = plan_for(client, "nobody")["availableToPlace"]
        assert "CSE110" in before
        data = place(client, "nobody", term_id, "CSE110").get_json()
        assert "CSE110" not in data["availableToPlace"]


class TestSaveAndReset:
    def test_save_assigns_server_ids(self, client):
        add_term(client, "demo", "Fall", 2025)
        resp = client.post("/api/semester-planner?student_id=demo", json={})
        assert resp.status_code == 200
        data = resp.get_json()
        assert data["ack"]["ok"] is True
        term = data["plannedSemesters"][0]
        assert term["state"] == "persisted"
        assert not term["_id"].startswith("temp-")
        stored = server._store.get("demo")
        assert stored["plannedSemesters"][0]["_id"] == term["_id"]
        assert stored["graduationTimeline"]["calculationMethod"] == "greedy"

    def test_reset_discards_unsaved_changes(self, client):
        add_term(client, "demo", "Fall", 2025)
        client.post("/api/semester-planner?student_id=demo", json={})
        add_term(client, "demo", "Spring", 2026)
        resp = client.post("/api/semester-planner/reset?student_id=demo", json={})
        names = [t["semesterName"] for t in resp.get_json()["plannedSemesters"]]
        assert names == ["Fall 2025"]

    def test_save_failure_keeps_draft(self, client, monkeypatch):
        class FailingStore:
            def get(self, student_id):
                return None

            def put(self, student_id, document):
                raise PlanPersistenceError("store offline", student_id=student_id)

        monkeypatch.setattr(server, "_store", FailingStore())
        add_term(client, "demo", "Fall", 2025)
        resp = client.post("/api/semester-planner?student_id=demo", json={})
        assert resp.status_code == 502
        assert resp.get_json()["error"]["error_code"] == "PLAN_PERSISTENCE_FAILED"
        assert plan_for(client, "demo")["plannedSemesters"][0]["state"] == "draft"


class TestCatalogRoutes:
    def test_remaining_courses(self, client):
        rows = client.get("/api/graduation/remaining-courses?student_id=demo").get_json()["courses"]
        by_code = {r["courseCode"]: r for r in rows}
        assert "CSE110" not in by_code
        assert by_code["CSE111"]["canTake"] is True
        assert by_code["CSE220"]["canTake"] is False
        assert by_code["CSE220"]["missingPrerequisites"] == ["CSE111"]

    def test_completed_courses(self, client):
        rows = client.get("/api/graduation/completed-courses?student_id=demo").get_json()["courses"]
        assert {r["courseCode"] for r in rows} == {"CSE110", "CSE230", "ENG101", "MAT110"}

    def test_prerequisites(self, client):
        data = client.get("/api/graduation/prerequisites/cse221?student_id=demo").get_json()
        assert data == {"courseCode": "CSE221", "missingHard": ["CSE220"], "missingSoft": ["MAT216"]}

    def test_progress(self, client):
        data = client.get("/api/graduation/progress?student_id=demo").get_json()
        assert data["totalCreditsCompleted"] == 12
        assert data["totalCreditsAttempted"] == 15
        assert data["totalCreditsRequired"] == 136
        assert data["progressPercentage"] == 9
        assert data["completedCourses"] == 4
        by_cat = data["progressByCategory"]
        assert by_cat["program-core"] == {
            "completedCourses": 2, "completedCredits": 6, "requiredCredits": 75, "percentage": 8.0,
        }
        assert by_cat["school-core"]["percentage"] == 25.0

    def test_progress_total_override(self, client, monkeypatch):
        monkeypatch.setattr(server, "_TOTAL_REQUIRED_CREDITS", 24)
        data = client.get("/api/graduation/progress?student_id=demo").get_json()
        assert data["totalCreditsRequired"] == 24
        assert data["progressPercentage"] == 50

    def test_progress_for_unknown_student(self, client):
        data = client.get("/api/graduation/progress?student_id=nobody").get_json()
        assert data["totalCreditsCompleted"] == 0
        assert data["totalCreditsAttempted"] == 0
        assert data["progressPercentage"] == 0

    def test_course_detail_lists_unlocks(self, client):
        data = client.get("/api/courses/cse110").get_json()
        assert data["course_code"] == "CSE110"
        assert data["unlocks"] == ["CSE111", "CSE260"]

    def test_eligibility(self, client):
        data = client.get("/api/eligibility?student_id=demo").get_json()
        assert data["statuses"]["CSE111"]["can_take"] is True
        assert "CSE221" not in data["availableToPlace"]

    def test_eligibility_for_pasted_codes(self, client):
        resp = client.get("/api/eligibility", query_string={"student_id": "demo", "codes": "cse 111, MAT216; nonsense, XYZ999"})
        data = resp.get_json()
        assert set(data["statuses"]) == {"CSE111", "MAT216"}
        assert data["invalid"] == ["nonsense"]
        assert data["notInCatalog"] == ["XYZ999"]
        assert data["availableToPlace"] == ["CSE111"]


class TestDataUnavailable:
    @pytest.fixture(autouse=True)
    def no_catalog(self, monkeypatch):
        monkeypatch.setattr(server, "_data", None)
        monkeypatch.setattr(server, "_refresh_data_if_needed", lambda: None)

    def test_eligibility_is_unknown(self, client):
        resp = client.get("/api/eligibility?student_id=demo")
        assert resp.status_code == 503
        assert resp.get_json()["error"]["error_code"] == "DATA_UNAVAILABLE"

    def test_progress_is_unknown(self, client):
        assert client.get("/api/graduation/progress?student_id=demo").status_code == 503

    def test_placement_is_unknown(self, client):
        term_id = add_term(client, "demo").get_json()["termId"]
        resp = place(client, "demo", term_id, "CSE110")
        assert resp.status_code == 503

    def test_plan_still_readable(self, client):
        add_term(client, "demo")
        data = plan_for(client, "demo")
        assert data["dataAvailable"] is False
        assert data["availableToPlace"] is None
        assert len(data["plannedSemesters"]) == 1

    def test_health_reports_catalog(self, client):
        assert client.get("/health").get_json()["catalog_loaded"] is False


class TestErrors:
    def test_unknown_route(self, client):
        resp = client.get("/api/nope")
        assert resp.status_code == 404
        assert resp.get_json()["error"]["error_code"] == "NOT_FOUND"

    def test_security_headers(self, client):
        resp = client.get("/api/health")
        assert resp.headers.get("X-Frame-Options") == "DENY"
