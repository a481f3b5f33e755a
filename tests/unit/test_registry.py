"""
Unit tests for the endpoint registry and parameter validation.
"""

import pytest

from qbank_sync.core.access import (
    DELETE_QUESTIONS,
    EXPORT_QUESTIONS,
    IMPORT_QUESTIONS,
    LIST_QUESTIONS,
)
from qbank_sync.core.errors import ContentStoreError, SchemaError
from qbank_sync.core.ports import ContextLevel
from qbank_sync.external import FUNCTIONS, describe_functions, get_function
from qbank_sync.external.schemas import (
    DeleteQuestionReturns,
    GetQuestionListParams,
    ImportQuizDataParams,
)
from qbank_sync.external.validator import validate_parameters, validate_returns


class TestFunctionRegistry:
    """Test the function registry."""

    def test_all_functions_registered(self):
        assert set(FUNCTIONS) == {
            "qbank_sync_get_question_list",
            "qbank_sync_export_question",
            "qbank_sync_import_question",
            "qbank_sync_delete_question",
            "qbank_sync_export_quiz_data",
            "qbank_sync_import_quiz_data",
        }

    @pytest.mark.parametrize(
        "name,capability",
        [
            ("qbank_sync_get_question_list", LIST_QUESTIONS),
            ("qbank_sync_export_question", EXPORT_QUESTIONS),
            ("qbank_sync_import_question", IMPORT_QUESTIONS),
            ("qbank_sync_delete_question", DELETE_QUESTIONS),
            ("qbank_sync_export_quiz_data", LIST_QUESTIONS),
            ("qbank_sync_import_quiz_data", IMPORT_QUESTIONS),
        ],
    )
    def test_required_capabilities(self, name, capability):
        assert get_function(name).capability == capability

    def test_unknown_function(self):
        with pytest.raises(SchemaError) as exc_info:
            get_function("core_course_get_courses")
        assert exc_info.value.fields == ["wsfunction"]

    def test_describe_functions_sorted(self):
        names = [f["name"] for f in describe_functions()]
        assert names == sorted(names)
        assert {f["type"] for f in describe_functions()} == {"read", "write"}


class TestValidateParameters:
    def test_minimal_list_call(self):
        params = validate_parameters(GetQuestionListParams, {"contextlevel": "50", "coursename": "Course 1"})
        assert params.contextlevel == ContextLevel.COURSE
        assert params.qbankentryids == []
        assert params.contextonly is False

    def test_blank_optional_ids_become_none(self):
        params = validate_parameters(
            GetQuestionListParams, {"contextlevel": "course", "qcategoryid": "", "instanceid": " "}
        )
        assert params.qcategoryid is None
        assert params.instanceid is None

    def test_missing_required_field(self):
        with pytest.raises(SchemaError) as exc_info:
            validate_parameters(GetQuestionListParams, {"coursename": "Course 1"})
        assert exc_info.value.fields == ["contextlevel"]

    @pytest.mark.parametrize(
        "raw,field",
        [
            ({"contextlevel": "block"}, "contextlevel"),
            ({"contextlevel": "50", "qcategoryid": "12a"}, "qcategoryid"),
            ({"contextlevel": "50", "qcategoryid": 12}, "qcategoryid"),
            ({"contextlevel": "50", "qbankentryids": ["1", "x"]}, "qbankentryids.1"),
            ({"contextlevel": "50", "coursname": "typo"}, "coursname"),
        ],
    )
    def test_wrong_values_name_the_field(self, raw, field):
        with pytest.raises(SchemaError) as exc_info:
            validate_parameters(GetQuestionListParams, raw)
        assert field in exc_info.value.fields

    def test_nested_fields(self):
        with pytest.raises(SchemaError) as exc_info:
            validate_parameters(
                ImportQuizDataParams,
                {"quiz": {"name": "Q"}, "questions": [{"questionbankentryid": "1", "slot": "one", "page": "1"}]},
            )
        assert exc_info.value.fields == ["questions.0.slot"]

    def test_non_mapping(self):
        with pytest.raises(SchemaError):
            validate_parameters(GetQuestionListParams, ["contextlevel", "50"])


class TestValidateReturns:
    def test_shapes_result(self):
        assert validate_returns(DeleteQuestionReturns, {"success": True}) == {"success": True}

    def test_invalid_result(self):
        with pytest.raises(ContentStoreError):
            validate_returns(DeleteQuestionReturns, {"deleted": 3})
