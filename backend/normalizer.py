import re

# Matches: CSE110, cse 110, CSE-220, MAT 216, PHY111L, FINA 3001
CANONICAL = re.compile(r'^([A-Za-z]{2,6})[\s-]*(\d{3,4}[A-Za-z]?)$')

# Separators accepted in pasted code lists
TOKEN_SPLIT = re.compile(r'[,\n;]+')


def normalize_code(raw) -> str | None:
    """
    Normalizes a course code to canonical 'DEPTNNN' format (uppercase, no whitespace).
    Handles: 'cse220', 'CSE 220', 'CSE-220', ' cse  220 '
    Returns None if the value cannot be parsed as a course code.
    """
    if raw is None:
        return None
    m = CANONICAL.match(str(raw).strip())
    if not m:
        return None
    return (m.group(1) + m.group(2)).upper()


def normalize_input(raw_str: str, catalog_codes: set) -> dict:
    """
    Classifies a pasted list of codes (comma, semicolon or newline separated).

    Returns:
      {
        "valid":          ["CSE110", "MAT110"],   # normalized + found in catalog
        "invalid":        ["asdfasdf"],           # not a course code
        "not_in_catalog": ["CSE999"]              # valid format but unknown course
      }
    Repeats of the same code, however spelled, are reported once.
    """
    result = {"valid": [], "invalid": [], "not_in_catalog": []}
    seen: set[str] = set()

    for token in TOKEN_SPLIT.split(raw_str or ""):
        token = token.strip()
        if not token:
            continue
        code = normalize_code(token)
        key = code or token
        if key in seen:
            continue
        seen.add(key)
        if code is None:
            result["invalid"].append(token)
        elif code in catalog_codes:
            result["valid"].append(code)
        else:
            result["not_in_catalog"].append(code)

    return result
