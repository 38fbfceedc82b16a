"""
Catalog integrity check.

Flags data problems that would make eligibility or graduation projection
misleading: prerequisites pointing at unknown courses, prerequisite cycles,
credit values no term can hold, and completion rows for unknown courses.
Importable for tests and runnable as a standalone CLI.

Usage:
    python scripts/validate_catalog.py
    python scripts/validate_catalog.py --path path/to/catalog.xlsx
"""

import argparse
import os
import sys

import pandas as pd

MAX_TERM_CREDITS = 21


# ── Validation result ─────────────────────────────────────────────────────────

class ValidationResult:
    """Collects errors and warnings for one catalog validation run."""

    def __init__(self, source: str):
        self.source = source
        self.errors: list[str] = []
        self.warnings: list[str] = []

    def error(self, msg: str) -> None:
        self.errors.append(msg)

    def warn(self, msg: str) -> None:
        self.warnings.append(msg)

    @property
    def passed(self) -> bool:
        return len(self.errors) == 0

    def summary(self) -> str:
        status = "PASS" if self.passed else "FAIL"
        lines = [f"[{status}] Catalog '{self.source}'"]
        for e in self.errors:
            lines.append(f"  [ERROR] {e}")
        for w in self.warnings:
            lines.append(f"  [WARN]  {w}")
        if self.passed and not self.warnings:
            lines.append("  All checks passed.")
        return "\n".join(lines)


# ── Individual checks ─────────────────────────────────────────────────────────

def check_not_empty(catalog, result: ValidationResult) -> None:
    if len(catalog) == 0:
        result.error("Catalog has no courses.")


def check_unknown_prereqs(catalog, result: ValidationResult) -> None:
    """Every prerequisite code must exist in the catalog."""
    codes = catalog.codes
    for course in sorted(catalog, key=lambda c: c.course_code):
        unknown_hard = [c for c in course.prereq_hard if c not in codes]
        unknown_soft = [c for c in course.prereq_soft if c not in codes]
        if unknown_hard:
            result.error(
                f"{course.course_code} requires unknown course(s) {unknown_hard}; "
                "it can never become eligible."
            )
        if unknown_soft:
            result.warn(f"{course.course_code} recommends unknown course(s) {unknown_soft}.")


def find_prereq_cycles(catalog) -> list[list[str]]:
    """
    Returns each hard-prerequisite cycle once, as the list of codes on it.
    Standard white/grey/black DFS over course -> prerequisite edges.
    """
    graph = {c.course_code: [p for p in c.prereq_hard if p in catalog.codes] for c in catalog}
    state: dict[str, int] = {}
    stack: list[str] = []
    cycles: list[list[str]] = []
    seen: set[frozenset] = set()

    def _visit(code: str) -> None:
        state[code] = 1
        stack.append(code)
        for prereq in graph.get(code, []):
            if state.get(prereq, 0) == 0:
                _visit(prereq)
            elif state.get(prereq) == 1:
                cycle = stack[stack.index(prereq):]
                key = frozenset(cycle)
                if key not in seen:
                    seen.add(key)
                    cycles.append(cycle)
        stack.pop()
        state[code] = 2

    for code in sorted(graph):
        if state.get(code, 0) == 0:
            _visit(code)
    return cycles


def check_no_cycles(catalog, result: ValidationResult) -> None:
    for cycle in find_prereq_cycles(catalog):
        result.error(f"Prerequisite cycle: {' -> '.join(cycle + [cycle[0]])}")


def check_credit_range(catalog, result: ValidationResult) -> None:
    for course in sorted(catalog, key=lambda c: c.course_code):
        if course.credits > MAX_TERM_CREDITS:
            result.warn(
                f"{course.course_code} carries {course.credits} credits, above the "
                f"{MAX_TERM_CREDITS}-credit term maximum."
            )


def check_completions_known(catalog, completions_df: pd.DataFrame | None, result: ValidationResult) -> None:
    if completions_df is None or len(completions_df) == 0:
        return
    unknown = sorted(set(completions_df["course_code"]) - catalog.codes)
    if unknown:
        result.warn(f"{len(unknown)} completion row code(s) not in catalog: {unknown}")


# ── Orchestrator ──────────────────────────────────────────────────────────────

def validate_catalog(catalog, completions_df: pd.DataFrame | None = None, source: str = "catalog") -> ValidationResult:
    result = ValidationResult(source)
    check_not_empty(catalog, result)
    check_unknown_prereqs(catalog, result)
    check_no_cycles(catalog, result)
    check_credit_range(catalog, result)
    check_completions_known(catalog, completions_df, result)
    return result


def main(args=None):
    parser = argparse.ArgumentParser(description="Validate course catalog data.")
    parser.add_argument(
        "--path", type=str,
        default=os.path.join(os.path.dirname(__file__), "..", "data"),
        help="CSV directory or xlsx workbook.",
    )
    opts = parser.parse_args(args)

    backend_dir = os.path.join(os.path.dirname(os.path.abspath(__file__)), "..", "backend")
    sys.path.insert(0, backend_dir)
    from data_loader import load_data

    try:
        data = load_data(opts.path)
    except (OSError, ValueError) as exc:
        print(f"[FATAL] Could not load {opts.path}: {exc}", file=sys.stderr)
        return 2

    result = validate_catalog(data["catalog"], data["completions_df"], source=opts.path)
    print(result.summary())
    return 0 if result.passed else 1


if __name__ == "__main__":
    sys.exit(main())
