"""
Question interchange format (host-compatible question XML).

A file is a ``<quiz>`` element holding ``<question>`` elements. A question of
type ``category`` is a pseudo-question that switches the target category for
the questions that follow it. Elements the codec does not model explicitly
(type-specific settings such as ``<single>`` or ``<usecase>``) are carried
through untouched as raw XML fragments so a round trip loses nothing.
"""

from __future__ import annotations

import xml.etree.ElementTree as ET
from dataclasses import dataclass, field

from qbank_sync.core.errors import ImportFormatError
from qbank_sync.core.ports import AnswerData, ContextLevel, QuestionData

CONTEXT_PREFIXES = {
    ContextLevel.SYSTEM: "$system$",
    ContextLevel.COURSECATEGORY: "$cat$",
    ContextLevel.COURSE: "$course$",
    ContextLevel.MODULE: "$module$",
}

# Elements mapped onto QuestionData fields rather than kept as options
_KNOWN_ELEMENTS = {
    "name",
    "questiontext",
    "generalfeedback",
    "defaultgrade",
    "penalty",
    "hidden",
    "idnumber",
    "answer",
}


@dataclass
class ParsedQuestionFile:
    """Result of parsing an uploaded question file."""

    categories: list[str] = field(default_factory=list)
    questions: list[tuple[str | None, QuestionData]] = field(default_factory=list)


def _text_element(parent: ET.Element, tag: str, text: str, fmt: str | None = None) -> ET.Element:
    element = ET.SubElement(parent, tag)
    if fmt is not None:
        element.set("format", fmt)
    ET.SubElement(element, "text").text = text
    return element


def _read_text(element: ET.Element | None) -> str:
    if element is None:
        return ""
    inner = element.find("text")
    if inner is not None:
        return inner.text or ""
    return element.text or ""


def _format_number(value: float) -> str:
    text = f"{value:.7f}".rstrip("0").rstrip(".")
    return text or "0"


def strip_context_prefix(path: str) -> str:
    """Drop a leading ``$course$/``-style marker from a category path."""
    if path.startswith("$"):
        marker, _, rest = path.partition("/")
        if marker.endswith("$"):
            return rest
    return path


def _serialize(root: ET.Element) -> str:
    ET.indent(root, space="  ")
    return '<?xml version="1.0" encoding="UTF-8"?>\n' + ET.tostring(root, encoding="unicode") + "\n"


def _category_question(parent: ET.Element, category_path: str, level: ContextLevel) -> None:
    category = ET.SubElement(parent, "question", {"type": "category"})
    _text_element(category, "category", f"{CONTEXT_PREFIXES[level]}/{category_path}")
    _text_element(category, "info", "", "moodle_auto_format")


def export_questions(
    questions: list[QuestionData],
    category_path: str | None = None,
    level: ContextLevel = ContextLevel.COURSE,
) -> str:
    """Serialize questions to XML, optionally preceded by a category pseudo-question."""
    root = ET.Element("quiz")

    if category_path is not None:
        _category_question(root, category_path, level)

    for data in questions:
        question = ET.SubElement(root, "question", {"type": data.qtype})
        _text_element(question, "name", data.name)
        _text_element(question, "questiontext", data.questiontext, data.questiontextformat)
        _text_element(question, "generalfeedback", data.generalfeedback, data.generalfeedbackformat)
        ET.SubElement(question, "defaultgrade").text = _format_number(data.defaultmark)
        ET.SubElement(question, "penalty").text = _format_number(data.penalty)
        ET.SubElement(question, "hidden").text = "1" if data.hidden else "0"
        ET.SubElement(question, "idnumber").text = data.idnumber or ""
        for fragment in data.options.values():
            try:
                question.append(ET.fromstring(fragment))
            except ET.ParseError as exc:
                raise ImportFormatError(f"Could not export question: {data.name}", str(exc)) from exc
        for answer in data.answers:
            element = _text_element(question, "answer", answer.text, answer.format)
            element.set("fraction", _format_number(answer.fraction))
            _text_element(element, "feedback", answer.feedback, answer.feedbackformat)

    return _serialize(root)


def _parse_question(element: ET.Element, filename: str) -> QuestionData:
    qtype = element.get("type")
    name = _read_text(element.find("name")).strip()
    if not qtype or not name:
        raise ImportFormatError(f"Could not import question from file: {filename}", "question needs a type and a name")

    questiontext = element.find("questiontext")
    generalfeedback = element.find("generalfeedback")
    try:
        defaultmark = float(element.findtext("defaultgrade") or 1.0)
        penalty = float(element.findtext("penalty") or 0.3333333)
        answers = [
            AnswerData(
                text=_read_text(answer),
                fraction=float(answer.get("fraction", "0")),
                format=answer.get("format", "moodle_auto_format"),
                feedback=_read_text(answer.find("feedback")),
                feedbackformat=(answer.find("feedback").get("format", "html")
                                if answer.find("feedback") is not None else "html"),
            )
            for answer in element.findall("answer")
        ]
    except ValueError as exc:
        raise ImportFormatError(f"Could not import question from file: {filename}", f"{name}: {exc}") from exc

    options: dict[str, str] = {}
    for child in element:
        if child.tag in _KNOWN_ELEMENTS:
            continue
        child.tail = None
        key = child.tag
        suffix = 1
        while key in options:
            suffix += 1
            key = f"{child.tag}#{suffix}"
        options[key] = ET.tostring(child, encoding="unicode")

    return QuestionData(
        name=name,
        qtype=qtype,
        questiontext=_read_text(questiontext),
        questiontextformat=questiontext.get("format", "html") if questiontext is not None else "html",
        generalfeedback=_read_text(generalfeedback),
        generalfeedbackformat=generalfeedback.get("format", "html") if generalfeedback is not None else "html",
        defaultmark=defaultmark,
        penalty=penalty,
        hidden=(element.findtext("hidden") or "0").strip() == "1",
        idnumber=(element.findtext("idnumber") or "").strip() or None,
        answers=answers,
        options=options,
    )


def parse_questions(payload: str | bytes, filename: str = "<payload>") -> ParsedQuestionFile:
    """
    Parse a whole question file before anything is written.

    Raises:
        ImportFormatError: on malformed XML or any malformed question, so an
            import stops on the first error instead of half-completing.
    """
    try:
        root = ET.fromstring(payload)
    except ET.ParseError as exc:
        raise ImportFormatError(f"Could not import question from file: {filename}", str(exc)) from exc
    if root.tag != "quiz":
        raise ImportFormatError(f"Could not import question from file: {filename}", f"unexpected root <{root.tag}>")

    parsed = ParsedQuestionFile()
    current_category: str | None = None
    for element in root.findall("question"):
        if element.get("type") == "category":
            path = strip_context_prefix(_read_text(element.find("category")).strip())
            if not path:
                raise ImportFormatError(f"Could not import question from file: {filename}", "empty category")
            current_category = path
            parsed.categories.append(path)
            continue
        parsed.questions.append((current_category, _parse_question(element, filename)))
    return parsed


def _parse_root(payload: str | bytes, filename: str) -> ET.Element:
    try:
        root = ET.fromstring(payload)
    except ET.ParseError as exc:
        raise ImportFormatError(f"Could not read question file: {filename}", str(exc)) from exc
    if root.tag != "quiz":
        raise ImportFormatError(f"Could not read question file: {filename}", f"unexpected root <{root.tag}>")
    return root


def split_category(payload: str | bytes, filename: str = "<payload>") -> tuple[str | None, str | None, str]:
    """
    Separate the category pseudo-question from an exported file.

    Returns:
        (category path without its context marker, XML holding only the
        category, XML holding only the questions). Both category values
        are None when the file names no category.
    """
    root = _parse_root(payload, filename)
    category_root = ET.Element("quiz")
    question_root = ET.Element("quiz")
    category_path = None
    for element in root.findall("question"):
        if element.get("type") == "category":
            category_path = strip_context_prefix(_read_text(element.find("category")).strip())
            category_root.append(element)
        else:
            question_root.append(element)
    if category_path is None:
        return None, None, _serialize(question_root)
    return category_path, _serialize(category_root), _serialize(question_root)


def with_category(
    payload: str | bytes,
    category_path: str,
    level: ContextLevel = ContextLevel.COURSE,
    filename: str = "<payload>",
) -> str:
    """Prefix the questions in ``payload`` with a category pseudo-question."""
    root = _parse_root(payload, filename)
    combined = ET.Element("quiz")
    _category_question(combined, category_path, level)
    for element in root.findall("question"):
        if element.get("type") != "category":
            combined.append(element)
    return _serialize(combined)
