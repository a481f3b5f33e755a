"""
qbank_sync_import_quiz_data: create a quiz, or fill an existing one.

Without ``quiz.cmid`` a new quiz is created in the course with the usual
defaults and its default question categories. With ``quiz.cmid`` the quiz
settings are refreshed and the given slots and sections are added. Slots are
added in ascending slot order. A slot whose question is missing, or which the
caller may not use, is skipped and reported in ``skippedslots``. Sections
follow their first slot to wherever it was stored; a section whose first
slot was skipped is dropped.
"""

from __future__ import annotations

from typing import Any

from loguru import logger

from qbank_sync.core.access import IMPORT_QUESTIONS, USE_QUESTIONS
from qbank_sync.core.errors import PermissionDeniedError, QuestionNotFoundError, SchemaError, ScopeNotFoundError
from qbank_sync.core.ports import (
    ContextLevel,
    FeedbackBand,
    QuizRecord,
    QuizSettings,
    QuizSlotRecord,
    Scope,
    ScopeLocator,
)
from qbank_sync.external.registry import CallContext, register
from qbank_sync.external.schemas import ImportQuizDataParams, ImportQuizDataReturns, ImportSlotItem


def _settings(params: ImportQuizDataParams) -> QuizSettings:
    quiz = params.quiz
    return QuizSettings(
        name=quiz.name,
        intro=quiz.intro,
        introformat=int(quiz.introformat),
        questionsperpage=int(quiz.questionsperpage),
        grade=float(quiz.grade),
        navmethod=quiz.navmethod,
    )


def _check_sections(params: ImportQuizDataParams) -> None:
    slots = {int(item.slot) for item in params.questions}
    bad = [
        f"sections.{index}.firstslot"
        for index, section in enumerate(params.sections)
        if int(section.firstslot) != 1 and int(section.firstslot) not in slots
    ]
    if bad:
        raise SchemaError(bad, "Every section must start at slot 1 or at one of the imported slots")


def _add_slots(
    context: CallContext, quiz: QuizRecord, items: list[ImportSlotItem]
) -> tuple[dict[int, QuizSlotRecord], list[str]]:
    """
    Append the incoming slots in ascending slot order.

    Returns:
        The stored slot for each incoming slot number that was added, and
        the incoming slot numbers that were skipped.
    """
    store = context.store
    placed: dict[int, QuizSlotRecord] = {}
    skipped: list[str] = []
    for item in sorted(items, key=lambda i: int(i.slot)):
        try:
            entry = store.get_entry(int(item.questionbankentryid))
            if entry is None:
                raise QuestionNotFoundError(item.questionbankentryid)
            context.guard.require_capability(store.scope_by_context_id(entry.contextid), USE_QUESTIONS)
        except (QuestionNotFoundError, PermissionDeniedError) as e:
            logger.warning(f"Skipping slot {item.slot}: {e.message}")
            skipped.append(item.slot)
            continue

        slot = store.add_quiz_slot(quiz, entry.questionbankentryid, int(item.page), float(item.maxmark))
        if item.requireprevious:
            store.set_require_previous(slot.id)
        placed[int(item.slot)] = slot
    store.recompute_sumgrades(quiz.id)
    return placed, skipped


def _add_sections(
    context: CallContext,
    course: Scope,
    quiz: QuizRecord,
    params: ImportQuizDataParams,
    placed: dict[int, QuizSlotRecord],
) -> None:
    """Start each section at the stored slot its incoming first slot became."""
    store = context.store
    for section in params.sections:
        firstslot = int(section.firstslot)
        shuffle = bool(section.shufflequestions)
        slot = placed.get(firstslot)
        if firstslot != 1 and slot is None:
            logger.warning(f"Quiz {quiz.cmid}: dropping section '{section.heading}', slot {firstslot} was skipped")
            continue
        if firstslot == 1 or slot.slot == 1:
            store.update_first_section(quiz.id, section.heading, shuffle)
            continue
        sectionid = store.insert_section(quiz.id, slot.slot, section.heading, shuffle)
        store.record_event(
            "section_break_created",
            course.contextid,
            sectionid,
            {
                "quizid": quiz.id,
                "firstslotnumber": slot.slot,
                "firstslotid": slot.id,
                "title": section.heading,
            },
        )


@register(
    "qbank_sync_import_quiz_data",
    params=ImportQuizDataParams,
    returns=ImportQuizDataReturns,
    capability=IMPORT_QUESTIONS,
    description="Create a quiz or add its slots, sections and feedback",
    type="write",
)
def import_quiz_data(context: CallContext, params: ImportQuizDataParams) -> dict[str, Any]:
    store = context.store
    course = context.guard.resolve_scope(
        ScopeLocator(
            level=ContextLevel.COURSE,
            coursename=params.quiz.coursename,
            instanceid=int(params.quiz.courseid) if params.quiz.courseid else None,
        )
    )
    context.require(course)

    settings = _settings(params)
    skipped: list[str] = []
    if params.quiz.cmid:
        _check_sections(params)
        cmid = int(params.quiz.cmid)
        existing = store.get_quiz(cmid)
        if existing is None or existing.courseid != course.courseid:
            raise ScopeNotFoundError(f"Context not found: quiz {cmid} in course {course.coursename}")
        quiz = store.update_quiz(cmid, settings)
        placed, skipped = _add_slots(context, quiz, params.questions)
        _add_sections(context, course, quiz, params, placed)
    else:
        quiz = store.create_quiz(course, settings)
        store.seed_default_categories(store.scope_by_context_id(quiz.contextid))

    for band in params.feedback or []:
        store.add_feedback(
            quiz.id,
            FeedbackBand(
                feedbacktext=band.feedbacktext,
                feedbacktextformat=int(band.feedbacktextformat),
                mingrade=float(band.mingrade),
                maxgrade=float(band.maxgrade),
            ),
        )

    if skipped:
        logger.warning(f"Quiz {quiz.cmid}: skipped slots {', '.join(skipped)}")
    return {"success": True, "cmid": str(quiz.cmid), "skippedslots": skipped}
