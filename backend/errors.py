"""
Planner error taxonomy.

Every error carries a stable error_code and the HTTP status the Flask layer
answers with. Validation errors are returned to the caller so the UI can run
its confirmation flows ("move this course?", "repeat this course?"); none of
them is fatal to the process.
"""


class PlannerError(Exception):
    error_code = "PLANNER_ERROR"
    http_status = 400

    def __init__(self, message: str, **details):
        super().__init__(message)
        self.message = message
        self.details = details

    def to_payload(self) -> dict:
        return {
            "mode": "error",
            "error": {
                "error_code": self.error_code,
                "message": self.message,
                **self.details,
            },
        }


class NotEligibleError(PlannerError):
    """Placement attempted without satisfied hard prerequisites and without repeat override."""
    error_code = "NOT_ELIGIBLE"
    http_status = 409


class DuplicateTermError(PlannerError):
    error_code = "DUPLICATE_TERM"
    http_status = 409


class DuplicatePlacementError(PlannerError):
    """Course already placed in another term; resolved by an explicit move confirmation."""
    error_code = "DUPLICATE_PLACEMENT"
    http_status = 409


class DataUnavailableError(PlannerError):
    """Upstream catalog or record data unreachable. Means "unknown", never "ineligible"."""
    error_code = "DATA_UNAVAILABLE"
    http_status = 503


class CourseNotFoundError(PlannerError):
    error_code = "COURSE_NOT_FOUND"
    http_status = 404


class TermNotFoundError(PlannerError):
    error_code = "TERM_NOT_FOUND"
    http_status = 404


class PlanPersistenceError(PlannerError):
    """Plan store failure. Surfaced verbatim, never retried silently."""
    error_code = "PLAN_PERSISTENCE_FAILED"
    http_status = 502
