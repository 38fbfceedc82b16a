import os
import sys
import pandas as pd

from catalog import Course, CompletionRecord, CourseCatalog
from normalizer import normalize_code
from planning_rules import CATEGORY_REQUIRED_CREDITS, DEFAULT_COURSE_CREDITS, normalize_category
from prereq_parser import parse_prereq_list


_BOOL_TRUTHY = {"true", "1", "yes", "y"}

COURSE_COLUMNS = [
    "course_code", "course_name", "credits", "category",
    "prereq_hard", "prereq_soft", "repeatable",
]
COMPLETION_COLUMNS = ["student_id", "course_code", "grade", "term", "status"]
REQUIREMENT_COLUMNS = ["category", "credits_required"]


def _safe_bool_col(df: pd.DataFrame, col: str) -> pd.DataFrame:
    """Normalize a boolean column to Python bool regardless of Excel/CSV format.

    Handles: Python bool, Excel int/float (1/0), and string variants
    (TRUE/FALSE, true/false, 1/0, yes/no, y/n). NaN → False.
    """
    def _coerce(x):
        if pd.isna(x):
            return False
        if isinstance(x, bool):
            return x
        if isinstance(x, (int, float)):
            return bool(x)
        return str(x).strip().lower() in _BOOL_TRUTHY

    if col in df.columns:
        df[col] = df[col].apply(_coerce)
    return df


def _safe_credits(val) -> int:
    num = pd.to_numeric(val, errors="coerce")
    if pd.isna(num) or int(num) <= 0:
        return DEFAULT_COURSE_CREDITS
    return int(num)


def _read_sheets(data_path: str) -> tuple[pd.DataFrame, pd.DataFrame, pd.DataFrame | None]:
    """Read (courses, completions, requirements) from a CSV directory or an xlsx workbook."""
    if os.path.isdir(data_path):
        courses_df = pd.read_csv(os.path.join(data_path, "courses.csv"), dtype=str)
        completions_path = os.path.join(data_path, "completions.csv")
        if os.path.exists(completions_path):
            completions_df = pd.read_csv(completions_path, dtype=str)
        else:
            completions_df = pd.DataFrame(columns=COMPLETION_COLUMNS)
        requirements_path = os.path.join(data_path, "requirements.csv")
        requirements_df = None
        if os.path.exists(requirements_path):
            requirements_df = pd.read_csv(requirements_path, dtype=str)
        return courses_df, completions_df, requirements_df

    xl = pd.ExcelFile(data_path)
    courses_df = xl.parse("courses", dtype=str)
    if "completions" in xl.sheet_names:
        completions_df = xl.parse("completions", dtype=str)
    else:
        completions_df = pd.DataFrame(columns=COMPLETION_COLUMNS)
    requirements_df = None
    if "requirements" in xl.sheet_names:
        requirements_df = xl.parse("requirements", dtype=str)
    return courses_df, completions_df, requirements_df


def normalize_courses_df(courses_df: pd.DataFrame) -> pd.DataFrame:
    """
    Clean the raw courses sheet: normalize codes, drop malformed/duplicate rows,
    fill defaults. Rows whose course_code cannot be normalized are dropped silently.
    """
    courses_df = courses_df.copy()
    for col in COURSE_COLUMNS:
        if col not in courses_df.columns:
            courses_df[col] = None

    courses_df["course_code"] = courses_df["course_code"].apply(normalize_code)
    courses_df = courses_df.dropna(subset=["course_code"])
    courses_df = courses_df.drop_duplicates(subset=["course_code"], keep="first")

    courses_df["course_name"] = courses_df["course_name"].fillna("").astype(str).str.strip()
    blank_name = courses_df["course_name"] == ""
    courses_df.loc[blank_name, "course_name"] = courses_df.loc[blank_name, "course_code"] + " Course"
    courses_df["credits"] = courses_df["credits"].apply(_safe_credits)
    courses_df["category"] = courses_df["category"].apply(normalize_category)
    courses_df["prereq_hard"] = courses_df["prereq_hard"].fillna("none")
    courses_df["prereq_soft"] = courses_df["prereq_soft"].fillna("none")
    courses_df = _safe_bool_col(courses_df, "repeatable")
    return courses_df[COURSE_COLUMNS].reset_index(drop=True)


def build_catalog(courses_df: pd.DataFrame) -> CourseCatalog:
    """Build a CourseCatalog from a normalized courses frame, logging integrity problems."""
    courses: list[Course] = []
    catalog_codes = set(courses_df["course_code"].tolist())
    unknown_refs: set[str] = set()

    for _, row in courses_df.iterrows():
        code = row["course_code"]
        hard, dropped_hard = parse_prereq_list(row.get("prereq_hard"))
        soft, dropped_soft = parse_prereq_list(row.get("prereq_soft"))
        if dropped_hard or dropped_soft:
            print(f"[WARN] {code}: dropped malformed prerequisite token(s): {dropped_hard + dropped_soft}")
        if code in hard or code in soft:
            print(f"[WARN] {code} lists itself as a prerequisite; ignoring self reference.")
            hard = [c for c in hard if c != code]
            soft = [c for c in soft if c != code]
        # A code can be hard or soft, never both.
        soft = [c for c in soft if c not in hard]
        unknown_refs.update(c for c in hard + soft if c not in catalog_codes)

        courses.append(Course(
            course_code=code,
            course_name=row["course_name"],
            credits=int(row["credits"]),
            category=row["category"],
            prereq_hard=tuple(hard),
            prereq_soft=tuple(soft),
            repeatable=bool(row["repeatable"]),
        ))

    if unknown_refs:
        print(f"[WARN] {len(unknown_refs)} prerequisite code(s) not found in courses sheet: {sorted(unknown_refs)}")

    return CourseCatalog(courses)


def normalize_completions_df(completions_df: pd.DataFrame) -> pd.DataFrame:
    completions_df = completions_df.copy()
    for col in COMPLETION_COLUMNS:
        if col not in completions_df.columns:
            completions_df[col] = None

    completions_df["student_id"] = completions_df["student_id"].fillna("").astype(str).str.strip()
    completions_df["course_code"] = completions_df["course_code"].apply(normalize_code)
    completions_df = completions_df.dropna(subset=["course_code"])
    completions_df["status"] = (
        completions_df["status"].fillna("completed").astype(str).str.strip().str.lower()
    )
    return completions_df[COMPLETION_COLUMNS].reset_index(drop=True)


def load_completion_record(completions_df: pd.DataFrame, student_id: str) -> CompletionRecord:
    """
    Build the CompletionRecord for one student. Only rows with status 'completed'
    count; when a course was taken more than once the last row wins (latest attempt).
    """
    entries: dict[str, dict] = {}
    if completions_df is None or len(completions_df) == 0:
        return CompletionRecord(student_id=student_id, entries=entries)

    rows = completions_df[
        (completions_df["student_id"] == str(student_id))
        & (completions_df["status"] == "completed")
    ]
    for _, row in rows.iterrows():
        grade = row.get("grade")
        term = row.get("term")
        entries[row["course_code"]] = {
            "grade": str(grade).strip() if pd.notna(grade) else None,
            "term": str(term).strip() if pd.notna(term) else None,
        }
    return CompletionRecord(student_id=student_id, entries=entries)


def load_requirements(requirements_df: pd.DataFrame | None) -> dict[str, int]:
    """
    Required credits per category. Rows in the requirements sheet override
    CATEGORY_REQUIRED_CREDITS; categories the sheet leaves out keep the default.
    """
    required = dict(CATEGORY_REQUIRED_CREDITS)
    if requirements_df is None or len(requirements_df) == 0:
        return required
    missing = [c for c in REQUIREMENT_COLUMNS if c not in requirements_df.columns]
    if missing:
        print(f"[WARN] requirements sheet missing column(s) {missing}; using default requirements.")
        return required

    for _, row in requirements_df.iterrows():
        category = normalize_category(row["category"])
        credits = pd.to_numeric(row["credits_required"], errors="coerce")
        if category == "uncategorized" or pd.isna(credits) or credits < 0:
            print(f"[WARN] Ignoring requirement row: {row['category']!r} = {row['credits_required']!r}")
            continue
        required[category] = int(credits)
    return required


def load_data(data_path: str) -> dict:
    """Load and parse the catalog data. Raises on file/schema errors."""
    raw_courses_df, raw_completions_df, raw_requirements_df = _read_sheets(data_path)
    if "course_code" not in raw_courses_df.columns:
        raise ValueError(f"courses sheet in {data_path} has no course_code column")

    courses_df = normalize_courses_df(raw_courses_df)
    dropped = len(raw_courses_df) - len(courses_df)
    if dropped:
        print(f"[WARN] Dropped {dropped} course row(s) with malformed or duplicate codes.")

    completions_df = normalize_completions_df(raw_completions_df)
    catalog = build_catalog(courses_df)

    unknown_completed = set(completions_df["course_code"]) - catalog.codes
    if unknown_completed:
        print(
            f"[WARN] {len(unknown_completed)} completed course(s) not in catalog: "
            f"{sorted(unknown_completed)}",
            file=sys.stderr,
        )

    return {
        "completions_df": completions_df,
        "catalog": catalog,
        "catalog_codes": catalog.codes,
        "requirements": load_requirements(raw_requirements_df),
    }
