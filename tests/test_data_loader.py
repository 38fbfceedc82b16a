import pandas as pd
import pytest
from data_loader import (
    _safe_bool_col,
    build_catalog,
    load_completion_record,
    load_data,
    load_requirements,
    normalize_courses_df,
)
from planning_rules import CATEGORY_REQUIRED_CREDITS


@pytest.fixture
def raw_courses():
    return pd.DataFrame([
        {"course_code": "cse 110", "course_name": "PL I", "credits": "3", "category": "Program Core", "prereq_hard": None, "prereq_soft": None, "repeatable": None},
        {"course_code": "CSE111", "course_name": "PL II", "credits": None, "category": "thesis", "prereq_hard": "CSE110", "prereq_soft": "MAT110", "repeatable": "yes"},
        {"course_code": "CSE-110", "course_name": "Duplicate", "credits": "4", "category": "", "prereq_hard": None, "prereq_soft": None, "repeatable": None},
        {"course_code": "???", "course_name": "Broken", "credits": "3", "category": "", "prereq_hard": None, "prereq_soft": None, "repeatable": None},
        {"course_code": "MAT110", "course_name": "", "credits": "-2", "category": "weird", "prereq_hard": "MAT110; CSE110", "prereq_soft": "CSE110", "repeatable": 0},
    ])


class TestNormalizeCoursesDf:
    def test_malformed_and_duplicate_rows_dropped(self, raw_courses):
        df = normalize_courses_df(raw_courses)
        assert df["course_code"].tolist() == ["CSE110", "CSE111", "MAT110"]

    def test_defaults(self, raw_courses):
        df = normalize_courses_df(raw_courses).set_index("course_code")
        assert df.loc["CSE111", "credits"] == 3
        assert df.loc["MAT110", "credits"] == 3
        assert df.loc["MAT110", "course_name"] == "MAT110 Course"

    def test_categories(self, raw_courses):
        df = normalize_courses_df(raw_courses).set_index("course_code")
        assert df.loc["CSE110", "category"] == "program-core"
        assert df.loc["CSE111", "category"] == "project-thesis"
        assert df.loc["MAT110", "category"] == "uncategorized"

    def test_repeatable_bool(self, raw_courses):
        df = normalize_courses_df(raw_courses).set_index("course_code")
        assert df.loc["CSE111", "repeatable"]
        assert not df.loc["CSE110", "repeatable"]


class TestBuildCatalog:
    def test_self_reference_dropped(self, raw_courses):
        catalog = build_catalog(normalize_courses_df(raw_courses))
        mat = catalog.lookup("MAT110")
        assert mat.prereq_hard == ("CSE110",)

    def test_code_is_never_both_hard_and_soft(self, raw_courses):
        catalog = build_catalog(normalize_courses_df(raw_courses))
        assert catalog.lookup("MAT110").prereq_soft == ()

    def test_soft_prereqs_parsed(self, raw_courses):
        catalog = build_catalog(normalize_courses_df(raw_courses))
        assert catalog.lookup("CSE111").prereq_soft == ("MAT110",)


class TestSafeBoolCol:
    def test_variants(self):
        df = pd.DataFrame({"flag": [True, 1, 0.0, "yes", "N", None]})
        out = _safe_bool_col(df, "flag")
        assert out["flag"].tolist() == [True, True, False, True, False, False]


class TestLoadData:
    def test_sample_csv_directory(self, sample_data_dir):
        data = load_data(sample_data_dir)
        assert set(data) == {"completions_df", "catalog", "catalog_codes", "requirements"}
        catalog = data["catalog"]
        assert "CSE110" in catalog
        assert catalog.lookup("CSE220").prereq_hard == ("CSE111",)
        assert catalog.lookup("HUM103").credits == 3
        assert catalog.lookup("HUM103").category == "general-education"
        assert catalog.lookup("CSE299").repeatable is True

    def test_completion_record_counts_only_completed_rows(self, sample_data_dir):
        data = load_data(sample_data_dir)
        record = load_completion_record(data["completions_df"], "demo")
        assert record.completed_codes == {"CSE110", "MAT110", "ENG101", "CSE230"}
        assert record.grade_for("CSE110") == "A"

    def test_unknown_student_has_empty_record(self, sample_data_dir):
        data = load_data(sample_data_dir)
        record = load_completion_record(data["completions_df"], "nobody")
        assert record.completed_codes == set()

    def test_xlsx_workbook(self, tmp_path):
        path = tmp_path / "catalog.xlsx"
        with pd.ExcelWriter(path, engine="openpyxl") as writer:
            pd.DataFrame([
                {"course_code": "CSE110", "course_name": "PL I", "credits": 3},
                {"course_code": "CSE111", "course_name": "PL II", "credits": 3, "prereq_hard": "CSE110"},
            ]).to_excel(writer, sheet_name="courses", index=False)
        data = load_data(str(path))
        assert data["catalog_codes"] == {"CSE110", "CSE111"}
        assert len(data["completions_df"]) == 0

    def test_missing_directory_raises(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_data(str(tmp_path / "nope"))

    def test_sample_requirements_sheet(self, sample_data_dir):
        required = load_data(sample_data_dir)["requirements"]
        assert required["general-education"] == 39
        assert sum(required.values()) == 136

    def test_directory_without_requirements_uses_defaults(self, tmp_path):
        pd.DataFrame([{"course_code": "CSE110", "course_name": "PL I"}]).to_csv(tmp_path / "courses.csv", index=False)
        assert load_data(str(tmp_path))["requirements"] == CATEGORY_REQUIRED_CREDITS


class TestLoadRequirements:
    def test_missing_sheet_uses_defaults(self):
        assert load_requirements(None) == CATEGORY_REQUIRED_CREDITS

    def test_rows_override_defaults(self):
        df = pd.DataFrame([
            {"category": "Program Core", "credits_required": "48"},
            {"category": "thesis", "credits_required": "6"},
        ])
        required = load_requirements(df)
        assert required["program-core"] == 48
        assert required["project-thesis"] == 6
        assert required["school-core"] == CATEGORY_REQUIRED_CREDITS["school-core"]

    def test_bad_rows_ignored(self, capsys):
        df = pd.DataFrame([
            {"category": "basket weaving", "credits_required": "9"},
            {"category": "school-core", "credits_required": "lots"},
            {"category": "school-core", "credits_required": "-3"},
        ])
        assert load_requirements(df) == CATEGORY_REQUIRED_CREDITS
        assert capsys.readouterr().out.count("[WARN] Ignoring requirement row") == 3

    def test_missing_columns_use_defaults(self, capsys):
        df = pd.DataFrame([{"category": "school-core"}])
        assert load_requirements(df) == CATEGORY_REQUIRED_CREDITS
        assert "missing column" in capsys.readouterr().out
