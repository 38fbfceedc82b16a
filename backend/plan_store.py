"""
File-backed document store for semester plans.

One JSON document per student:
  {
    "studentId": "20101234",
    "plannedSemesters": [ {_id, semesterName, season, year, creditLimit,
                           plannedCourses: [...], isActive}, ... ],
    "graduationTimeline": {...} | absent,
    "updatedAt": "2025-01-01T00:00:00+00:00"
  }

put() replaces the whole document (last writer wins) and assigns an _id to
every term that arrives without one.
"""

import json
import os
import re
import tempfile
import uuid
from datetime import datetime, timezone

from errors import PlanPersistenceError
from planning_rules import DRAFT_ID_PREFIX

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9_.-]")


def _new_server_id() -> str:
    return uuid.uuid4().hex[:24]


class JsonFilePlanStore:
    def __init__(self, directory: str):
        self.directory = directory

    def _path(self, student_id: str) -> str:
        safe = _UNSAFE_CHARS.sub("_", str(student_id or "").strip()) or "_"
        return os.path.join(self.directory, f"{safe}.json")

    def get(self, student_id: str) -> dict | None:
        path = self._path(student_id)
        if not os.path.exists(path):
            return None
        try:
            with open(path, encoding="utf-8") as f:
                return json.load(f)
        except (OSError, json.JSONDecodeError) as exc:
            raise PlanPersistenceError(
                f"Could not read stored plan for {student_id}: {exc}",
                student_id=str(student_id),
            ) from exc

    def put(self, student_id: str, document: dict) -> dict:
        semesters = document.get("plannedSemesters")
        if not isinstance(semesters, list):
            raise PlanPersistenceError("plannedSemesters must be a list.", student_id=str(student_id))

        stored_semesters = []
        for semester in semesters:
            semester = dict(semester)
            sid = semester.get("_id")
            if sid and str(sid).startswith(DRAFT_ID_PREFIX):
                raise PlanPersistenceError(
                    f"Refusing client-local identifier {sid!r} as a server id.",
                    student_id=str(student_id),
                )
            if not sid:
                semester["_id"] = _new_server_id()
            stored_semesters.append(semester)

        stored = {
            "studentId": str(student_id),
            "plannedSemesters": stored_semesters,
            "updatedAt": datetime.now(timezone.utc).isoformat(),
        }
        if document.get("graduationTimeline") is not None:
            stored["graduationTimeline"] = document["graduationTimeline"]

        path = self._path(student_id)
        try:
            os.makedirs(self.directory, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(dir=self.directory, suffix=".tmp")
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as f:
                    json.dump(stored, f, indent=2, ensure_ascii=False)
                os.replace(tmp_path, path)
            except BaseException:
                if os.path.exists(tmp_path):
                    os.remove(tmp_path)
                raise
        except OSError as exc:
            raise PlanPersistenceError(
                f"Could not write plan for {student_id}: {exc}",
                student_id=str(student_id),
            ) from exc
        return stored
