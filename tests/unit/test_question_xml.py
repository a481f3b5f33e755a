"""
Unit tests for the question XML codec.
"""

import xml.etree.ElementTree as ET

import pytest

from qbank_sync.core.errors import ImportFormatError
from qbank_sync.core.ports import ContextLevel
from qbank_sync.formats.question_xml import (
    export_questions,
    parse_questions,
    split_category,
    strip_context_prefix,
    with_category,
)

SAMPLE = """<?xml version="1.0" encoding="UTF-8"?>
<quiz>
  <question type="category">
    <category><text>$course$/top/Algebra</text></category>
    <info format="moodle_auto_format"><text></text></info>
  </question>
  <question type="shortanswer">
    <name><text>Capital</text></name>
    <questiontext format="html"><text><![CDATA[<p>Capital of France?</p>]]></text></questiontext>
    <generalfeedback format="html"><text></text></generalfeedback>
    <defaultgrade>2</defaultgrade>
    <penalty>0.1</penalty>
    <hidden>0</hidden>
    <idnumber>geo-1</idnumber>
    <usecase>0</usecase>
    <answer fraction="100" format="moodle_auto_format">
      <text>Paris</text>
      <feedback format="html"><text>Yes</text></feedback>
    </answer>
  </question>
  <question type="category">
    <category><text>$course$/top/Algebra/Linear</text></category>
  </question>
  <question type="truefalse">
    <name><text>Lines</text></name>
    <questiontext format="html"><text>Parallel lines meet?</text></questiontext>
    <answer fraction="0"><text>true</text></answer>
    <answer fraction="100"><text>false</text></answer>
  </question>
</quiz>
"""


class TestParseQuestions:
    def test_categories_switch_target(self):
        parsed = parse_questions(SAMPLE, "sample.xml")
        assert parsed.categories == ["top/Algebra", "top/Algebra/Linear"]
        assert [(path, q.name) for path, q in parsed.questions] == [
            ("top/Algebra", "Capital"),
            ("top/Algebra/Linear", "Lines"),
        ]

    def test_question_fields(self):
        _, question = parse_questions(SAMPLE).questions[0]
        assert question.qtype == "shortanswer"
        assert question.questiontext == "<p>Capital of France?</p>"
        assert question.defaultmark == 2.0
        assert question.penalty == pytest.approx(0.1)
        assert question.idnumber == "geo-1"
        assert question.answers[0].text == "Paris"
        assert question.answers[0].fraction == 100.0
        assert question.answers[0].feedback == "Yes"

    def test_unknown_elements_kept_as_options(self):
        _, question = parse_questions(SAMPLE).questions[0]
        assert question.options == {"usecase": "<usecase>0</usecase>"}

    @pytest.mark.parametrize(
        "payload",
        [
            "<quiz><question>",
            "<questions/>",
            '<quiz><question type="multichoice"><questiontext><text>x</text></questiontext></question></quiz>',
            '<quiz><question type="category"><category><text></text></category></question></quiz>',
        ],
    )
    def test_malformed_files(self, payload):
        with pytest.raises(ImportFormatError) as exc_info:
            parse_questions(payload, "broken.xml")
        assert "broken.xml" in exc_info.value.message
        assert exc_info.value.status_code == 422

    @pytest.mark.parametrize(
        "path,expected",
        [
            ("$course$/top/A", "top/A"),
            ("$module$/top", "top"),
            ("top/A", "top/A"),
        ],
    )
    def test_strip_context_prefix(self, path, expected):
        assert strip_context_prefix(path) == expected


class TestExportQuestions:
    def test_category_header(self, question_factory):
        payload = export_questions([question_factory()], "top/Algebra", ContextLevel.MODULE)
        root = ET.fromstring(payload.encode("utf-8"))
        first = root.findall("question")[0]
        assert first.get("type") == "category"
        assert first.findtext("category/text") == "$module$/top/Algebra"

    def test_no_category_header(self, question_factory):
        root = ET.fromstring(export_questions([question_factory()]).encode("utf-8"))
        assert [q.get("type") for q in root.findall("question")] == ["multichoice"]

    def test_round_trip(self, question_factory):
        original = question_factory(idnumber="arith-1", hidden=True)
        parsed = parse_questions(export_questions([original], "top"))
        assert parsed.categories == ["top"]
        assert parsed.questions[0][1] == original


class TestCategorySplit:
    def test_split_exported_question(self, question_factory):
        path, category_xml, question_xml = split_category(export_questions([question_factory()], "top/Algebra"))
        assert path == "top/Algebra"
        assert "$course$/top/Algebra" in category_xml
        parsed = parse_questions(question_xml)
        assert parsed.categories == []
        assert len(parsed.questions) == 1

    def test_question_part_matches_plain_export(self, question_factory):
        question = question_factory()
        _, _, question_xml = split_category(export_questions([question], "top/Algebra"))
        assert question_xml == export_questions([question])

    def test_split_without_category(self, question_factory):
        path, category_xml, question_xml = split_category(export_questions([question_factory()]))
        assert path is None
        assert category_xml is None
        assert len(parse_questions(question_xml).questions) == 1

    def test_with_category_replaces_markers(self):
        parsed = parse_questions(with_category(SAMPLE, "top/Geometry", ContextLevel.MODULE))
        assert parsed.categories == ["top/Geometry"]
        assert [category for category, _ in parsed.questions] == ["top/Geometry", "top/Geometry"]

    def test_with_category_malformed(self):
        with pytest.raises(ImportFormatError):
            with_category("<quiz>", "top")
