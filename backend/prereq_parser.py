import re
import pandas as pd
from normalizer import normalize_code

# Separators between prerequisite codes: ';', ',', '&', or the word 'and'
AND_SPLIT = re.compile(r'\s*(?:;|,|&|\band\b)\s*', re.IGNORECASE)

# Regex to strip parenthetical annotation clauses, e.g. "(min grade C)"
ANNOTATION_RE = re.compile(r'\s*\([^)]*\)')

NONE_VALUES = {"none", "none listed", "n/a", "na", "nan", "-", ""}


def _strip_annotations(s: str) -> str:
    """Remove parenthetical annotation clauses, e.g. '(may be concurrent)'."""
    return ANNOTATION_RE.sub('', s).strip()


def parse_prereq_list(prereq_str) -> tuple[list[str], list[str]]:
    """
    Parses a prereq_hard / prereq_soft cell into a list of normalized codes.

    Supported grammar (all prerequisites listed are required together):
      none / none listed / blank   → []
      CODE                         → ["CSE110"]
      CODE;CODE / CODE, CODE       → ["CSE110", "MAT110"]
      CODE and CODE                → ["CSE110", "MAT110"]

    Parenthetical annotations are stripped first, so "CSE 111 (min grade C)"
    → ["CSE111"]. Tokens that are not course codes are dropped.

    Returns: (codes, dropped_tokens)
    """
    if prereq_str is None or (isinstance(prereq_str, float) and pd.isna(prereq_str)):
        return [], []

    if isinstance(prereq_str, (list, tuple, set)):
        tokens = [str(t) for t in prereq_str]
    else:
        s = str(prereq_str).strip()
        if s.lower() in NONE_VALUES:
            return [], []
        if "(" in s:
            s = _strip_annotations(s)
        tokens = AND_SPLIT.split(s)

    codes: list[str] = []
    dropped: list[str] = []
    for tok in tokens:
        tok = tok.strip()
        if not tok or tok.lower() in NONE_VALUES:
            continue
        code = normalize_code(tok)
        if code is None:
            dropped.append(tok)
        elif code not in codes:
            codes.append(code)
    return codes, dropped


def missing_prereqs(prereq_codes, satisfied_codes: set) -> list[str]:
    """Prerequisite codes not present in satisfied_codes, in declared order."""
    return [c for c in prereq_codes if c not in satisfied_codes]


def prereqs_satisfied(prereq_codes, satisfied_codes: set) -> bool:
    """
    Returns True if every listed prerequisite is in satisfied_codes.
    An empty prerequisite list is always satisfied.
    """
    return all(c in satisfied_codes for c in prereq_codes)


def build_prereq_check_string(
    prereq_codes,
    completed: set,
    planned_earlier: set,
) -> str:
    """
    Returns a human-readable string showing which prereqs are satisfied and how.
    Examples:
      "CSE110 ✓"
      "CSE110 ✓; MAT110 (planned) ✓"
      "CSE111 ✗"
    """
    if not prereq_codes:
        return "No prerequisites"

    def label_code(code: str) -> str:
        if code in completed:
            return f"{code} ✓"
        if code in planned_earlier:
            return f"{code} (planned) ✓"
        return f"{code} ✗"

    return "; ".join(label_code(c) for c in prereq_codes)
