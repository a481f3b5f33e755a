"""
SQLAlchemy implementation of ContentStorePort.

All reads and writes go through the session handed in by the caller; the
store never commits. The webservice layer owns the transaction so one call
is one unit of work.
"""

from __future__ import annotations

import json
from typing import Any

from loguru import logger
from sqlalchemy import func, select
from sqlalchemy.orm import Session

from qbank_sync.core.errors import ContentStoreError, QuestionNotFoundError, ScopeNotFoundError
from qbank_sync.core.ports import (
    AnswerData,
    CategoryRecord,
    ContextLevel,
    FeedbackBand,
    QuestionData,
    QuestionEntryRecord,
    QuizRecord,
    QuizSectionRecord,
    QuizSettings,
    QuizSlotRecord,
    Scope,
)
from qbank_sync.db.models import (
    Context,
    Course,
    CourseCategory,
    CourseModule,
    LoggedEvent,
    Question,
    QuestionAnswer,
    QuestionBankEntry,
    QuestionCategory,
    QuestionReference,
    QuestionVersion,
    Quiz,
    QuizFeedback,
    QuizSection,
    QuizSlot,
)

# Quiz fields copied from QuizSettings on create and update
_QUIZ_SETTING_FIELDS = (
    "name",
    "intro",
    "introformat",
    "questionsperpage",
    "grade",
    "navmethod",
    "preferredbehaviour",
    "shuffleanswers",
    "grademethod",
    "decimalpoints",
    "questiondecimalpoints",
    "timeopen",
    "timeclose",
    "timelimit",
    "graceperiod",
    "reviewattempt",
    "reviewcorrectness",
    "reviewmarks",
    "reviewspecificfeedback",
    "reviewgeneralfeedback",
    "reviewrightanswer",
    "reviewoverallfeedback",
)


class SqlContentStore:
    """Content store backed by the qbank-sync SQL schema."""

    def __init__(self, session: Session, userid: int | None = None) -> None:
        self.session = session
        self.userid = userid

    # ========================================
    # Scopes
    # ========================================

    def _context_for(self, level: ContextLevel, instanceid: int) -> Context | None:
        return self.session.scalars(
            select(Context).where(
                Context.contextlevel == level.value,
                Context.instanceid == instanceid,
            )
        ).first()

    def _to_scope(self, context: Context) -> Scope:
        level = ContextLevel(context.contextlevel)
        scope = Scope(
            contextid=context.id,
            level=level,
            instanceid=context.instanceid,
            parent_contextid=context.parent_id,
        )
        if level == ContextLevel.COURSECATEGORY:
            category = self.session.get(CourseCategory, context.instanceid)
            scope.categoryname = category.name if category else None
        elif level == ContextLevel.COURSE:
            course = self.session.get(Course, context.instanceid)
            if course:
                scope.coursename = course.fullname
                scope.courseid = course.id
        elif level == ContextLevel.MODULE:
            module = self.session.get(CourseModule, context.instanceid)
            if module:
                scope.courseid = module.course_id
                scope.coursename = module.course.fullname
                quiz = self.session.get(Quiz, module.instance)
                scope.modulename = quiz.name if quiz else None
        return scope

    def _scopes_for(self, level: ContextLevel, instanceids: list[int]) -> list[Scope]:
        scopes = []
        for instanceid in instanceids:
            context = self._context_for(level, instanceid)
            if context is not None:
                scopes.append(self._to_scope(context))
        return scopes

    def system_scope(self) -> Scope:
        context = self.session.scalars(
            select(Context).where(Context.contextlevel == ContextLevel.SYSTEM.value)
        ).first()
        if context is None:
            raise ScopeNotFoundError("System context missing; run 'qbank-sync db init'")
        return self._to_scope(context)

    def course_category_scopes(self, name: str | None, instanceid: int | None) -> list[Scope]:
        if instanceid is not None:
            ids = [instanceid] if self.session.get(CourseCategory, instanceid) else []
        else:
            ids = list(self.session.scalars(select(CourseCategory.id).where(CourseCategory.name == name)))
        return self._scopes_for(ContextLevel.COURSECATEGORY, ids)

    def course_scopes(self, name: str | None, instanceid: int | None) -> list[Scope]:
        if instanceid is not None:
            ids = [instanceid] if self.session.get(Course, instanceid) else []
        else:
            ids = list(self.session.scalars(select(Course.id).where(Course.fullname == name)))
        return self._scopes_for(ContextLevel.COURSE, ids)

    def module_scopes(
        self, coursename: str | None, modulename: str | None, instanceid: int | None
    ) -> list[Scope]:
        if instanceid is not None:
            module = self.session.get(CourseModule, instanceid)
            ids = [instanceid] if module and not module.deletioninprogress else []
        else:
            ids = list(
                self.session.scalars(
                    select(CourseModule.id)
                    .join(Course, Course.id == CourseModule.course_id)
                    .join(Quiz, Quiz.id == CourseModule.instance)
                    .where(
                        Course.fullname == coursename,
                        Quiz.name == modulename,
                        CourseModule.modname == "quiz",
                        CourseModule.deletioninprogress.is_(False),
                    )
                )
            )
        return self._scopes_for(ContextLevel.MODULE, ids)

    def scope_by_context_id(self, contextid: int) -> Scope:
        context = self.session.get(Context, contextid)
        if context is None:
            raise ScopeNotFoundError(f"Context not found: {contextid}")
        return self._to_scope(context)

    # Administrative helpers (not part of the port; used by the CLI and fixtures)

    def create_course_category(self, name: str, parent: Scope | None = None) -> Scope:
        category = CourseCategory(name=name, parent_id=parent.instanceid if parent else None)
        self.session.add(category)
        self.session.flush()
        parent_context = parent.contextid if parent else self.system_scope().contextid
        context = Context(
            contextlevel=ContextLevel.COURSECATEGORY.value,
            instanceid=category.id,
            parent_id=parent_context,
        )
        self.session.add(context)
        self.session.flush()
        return self._to_scope(context)

    def create_course(self, fullname: str, shortname: str, category: Scope) -> Scope:
        course = Course(fullname=fullname, shortname=shortname, category_id=category.instanceid)
        self.session.add(course)
        self.session.flush()
        context = Context(
            contextlevel=ContextLevel.COURSE.value,
            instanceid=course.id,
            parent_id=category.contextid,
        )
        self.session.add(context)
        self.session.flush()
        return self._to_scope(context)

    # ========================================
    # Categories
    # ========================================

    @staticmethod
    def _category_record(category: QuestionCategory) -> CategoryRecord:
        return CategoryRecord(
            id=category.id,
            name=category.name,
            contextid=category.contextid,
            parent=category.parent_id,
            info=category.info or "",
        )

    def list_categories(self, contextid: int) -> list[CategoryRecord]:
        categories = self.session.scalars(
            select(QuestionCategory)
            .where(QuestionCategory.contextid == contextid)
            .order_by(QuestionCategory.id)
        )
        return [self._category_record(c) for c in categories]

    def get_category(self, categoryid: int) -> CategoryRecord | None:
        category = self.session.get(QuestionCategory, categoryid)
        return self._category_record(category) if category else None

    def create_category(self, contextid: int, name: str, parent: int | None, info: str = "") -> CategoryRecord:
        category = QuestionCategory(name=name, contextid=contextid, parent_id=parent, info=info)
        self.session.add(category)
        self.session.flush()
        logger.debug("Created question category {} ({}) in context {}", name, category.id, contextid)
        return self._category_record(category)

    def seed_default_categories(self, scope: Scope) -> CategoryRecord:
        """Create ``top`` and a default category for ``scope`` unless present."""
        existing = self.list_categories(scope.contextid)
        top = next((c for c in existing if c.parent is None), None)
        if top is None:
            top = self.create_category(scope.contextid, "top", None)
        default = next((c for c in existing if c.parent == top.id), None)
        if default is None:
            default = self.create_category(
                scope.contextid,
                f"Default for {scope.modulename or scope.coursename or scope.categoryname or 'System'}",
                top.id,
                info=f"The default category for questions shared in context '{scope.label}'.",
            )
        return default

    # ========================================
    # Questions
    # ========================================

    def _latest_version(self, entryid: int) -> QuestionVersion | None:
        return self.session.scalars(
            select(QuestionVersion)
            .where(QuestionVersion.questionbankentryid == entryid)
            .order_by(QuestionVersion.version.desc())
        ).first()

    def _entry_record(self, entry: QuestionBankEntry) -> QuestionEntryRecord | None:
        version = self._latest_version(entry.id)
        if version is None:
            return None
        return QuestionEntryRecord(
            questionbankentryid=entry.id,
            categoryid=entry.questioncategoryid,
            contextid=entry.category.contextid,
            questionid=version.questionid,
            name=version.question.name,
            version=version.version,
            status=version.status,
        )

    def _records(self, entries) -> list[QuestionEntryRecord]:
        records = []
        for entry in entries:
            record = self._entry_record(entry)
            if record is not None:
                records.append(record)
        return records

    def entries_in_categories(self, categoryids: list[int]) -> list[QuestionEntryRecord]:
        if not categoryids:
            return []
        entries = self.session.scalars(
            select(QuestionBankEntry)
            .where(QuestionBankEntry.questioncategoryid.in_(categoryids))
            .order_by(QuestionBankEntry.id)
        )
        return self._records(entries)

    def get_entry(self, questionbankentryid: int) -> QuestionEntryRecord | None:
        entry = self.session.get(QuestionBankEntry, questionbankentryid)
        return self._entry_record(entry) if entry else None

    def entries_by_ids(self, questionbankentryids: list[int]) -> list[QuestionEntryRecord]:
        if not questionbankentryids:
            return []
        entries = self.session.scalars(
            select(QuestionBankEntry)
            .where(QuestionBankEntry.id.in_(questionbankentryids))
            .order_by(QuestionBankEntry.id)
        )
        return self._records(entries)

    def load_question(self, questionid: int) -> QuestionData:
        question = self.session.get(Question, questionid)
        if question is None:
            raise ContentStoreError(f"Question row missing: {questionid}")
        version = self.session.scalars(
            select(QuestionVersion).where(QuestionVersion.questionid == questionid)
        ).first()
        entry = version.entry if version else None
        return QuestionData(
            name=question.name,
            qtype=question.qtype,
            questiontext=question.questiontext,
            questiontextformat=question.questiontextformat,
            generalfeedback=question.generalfeedback,
            generalfeedbackformat=question.generalfeedbackformat,
            defaultmark=question.defaultmark,
            penalty=question.penalty,
            hidden=bool(version and version.status == "hidden"),
            idnumber=entry.idnumber if entry else None,
            answers=[
                AnswerData(
                    text=a.answer,
                    fraction=a.fraction,
                    format=a.answerformat,
                    feedback=a.feedback,
                    feedbackformat=a.feedbackformat,
                )
                for a in question.answers
            ],
            options=json.loads(question.options or "{}"),
        )

    def _insert_question(self, data: QuestionData) -> Question:
        question = Question(
            name=data.name,
            qtype=data.qtype,
            questiontext=data.questiontext,
            questiontextformat=data.questiontextformat,
            generalfeedback=data.generalfeedback,
            generalfeedbackformat=data.generalfeedbackformat,
            defaultmark=data.defaultmark,
            penalty=data.penalty,
            options=json.dumps(data.options),
            answers=[
                QuestionAnswer(
                    answer=a.text,
                    answerformat=a.format,
                    fraction=a.fraction,
                    feedback=a.feedback,
                    feedbackformat=a.feedbackformat,
                )
                for a in data.answers
            ],
        )
        self.session.add(question)
        self.session.flush()
        return question

    def create_question(self, categoryid: int, data: QuestionData) -> QuestionEntryRecord:
        question = self._insert_question(data)
        entry = QuestionBankEntry(questioncategoryid=categoryid, idnumber=data.idnumber)
        self.session.add(entry)
        self.session.flush()
        self.session.add(
            QuestionVersion(
                questionbankentryid=entry.id,
                questionid=question.id,
                version=1,
                status="hidden" if data.hidden else "ready",
            )
        )
        self.session.flush()
        logger.debug("Created question {} as entry {}", data.name, entry.id)
        return self._entry_record(entry)

    def add_question_version(self, questionbankentryid: int, data: QuestionData) -> QuestionEntryRecord:
        entry = self.session.get(QuestionBankEntry, questionbankentryid)
        if entry is None:
            raise QuestionNotFoundError(questionbankentryid)
        latest = self._latest_version(entry.id)
        question = self._insert_question(data)
        if data.idnumber is not None:
            entry.idnumber = data.idnumber
        self.session.add(
            QuestionVersion(
                questionbankentryid=entry.id,
                questionid=question.id,
                version=(latest.version if latest else 0) + 1,
                status="hidden" if data.hidden else "ready",
            )
        )
        self.session.flush()
        return self._entry_record(entry)

    def delete_entry(self, questionbankentryid: int) -> int:
        """Delete every version of an entry; returns the number of versions removed."""
        entry = self.session.get(QuestionBankEntry, questionbankentryid)
        if entry is None:
            raise QuestionNotFoundError(questionbankentryid)
        in_use = self.session.scalar(
            select(func.count(QuestionReference.id)).where(
                QuestionReference.questionbankentryid == questionbankentryid
            )
        )
        if in_use:
            raise ContentStoreError(
                f"Question {questionbankentryid} is used in {in_use} quiz slot(s) and cannot be deleted"
            )
        questions = [version.question for version in entry.versions]
        # Versions go with the entry (ORM cascade), then the question rows they pointed at
        self.session.delete(entry)
        self.session.flush()
        for question in questions:
            self.session.delete(question)
        self.session.flush()
        return len(questions)

    # ========================================
    # Quizzes
    # ========================================

    def quizzes_in_course(self, courseid: int) -> list[tuple[int, str]]:
        rows = self.session.execute(
            select(CourseModule.id, Quiz.name)
            .join(Quiz, Quiz.id == CourseModule.instance)
            .where(
                CourseModule.course_id == courseid,
                CourseModule.modname == "quiz",
                CourseModule.deletioninprogress.is_(False),
            )
            .order_by(CourseModule.id)
        )
        return [(cmid, name) for cmid, name in rows]

    def _quiz_record(self, module: CourseModule, quiz: Quiz) -> QuizRecord:
        context = self._context_for(ContextLevel.MODULE, module.id)
        if context is None:
            raise ContentStoreError(f"Module {module.id} has no context")
        return QuizRecord(
            id=quiz.id,
            cmid=module.id,
            courseid=module.course_id,
            contextid=context.id,
            name=quiz.name,
            intro=quiz.intro,
            introformat=quiz.introformat,
            sumgrades=quiz.sumgrades,
        )

    def get_quiz(self, cmid: int) -> QuizRecord | None:
        module = self.session.get(CourseModule, cmid)
        if module is None or module.modname != "quiz":
            return None
        quiz = self.session.get(Quiz, module.instance)
        return self._quiz_record(module, quiz) if quiz else None

    def create_quiz(self, course: Scope, settings: QuizSettings) -> QuizRecord:
        quiz = Quiz(course_id=course.courseid)
        for name in _QUIZ_SETTING_FIELDS:
            setattr(quiz, name, getattr(settings, name))
        self.session.add(quiz)
        self.session.flush()

        module = CourseModule(course_id=course.courseid, modname="quiz", instance=quiz.id, section=1)
        self.session.add(module)
        self.session.flush()
        self.session.add(
            Context(contextlevel=ContextLevel.MODULE.value, instanceid=module.id, parent_id=course.contextid)
        )
        # Every quiz starts with an unheaded section at slot 1
        self.session.add(QuizSection(quizid=quiz.id, firstslot=1, heading="", shufflequestions=False))
        self.session.flush()
        logger.info("Created quiz '{}' (cmid {}) in course {}", quiz.name, module.id, course.courseid)
        return self._quiz_record(module, quiz)

    def update_quiz(self, cmid: int, settings: QuizSettings) -> QuizRecord:
        module = self.session.get(CourseModule, cmid)
        quiz = self.session.get(Quiz, module.instance) if module else None
        if quiz is None:
            raise ScopeNotFoundError(f"Context not found: module {cmid}")
        for name in _QUIZ_SETTING_FIELDS:
            setattr(quiz, name, getattr(settings, name))
        self.session.flush()
        return self._quiz_record(module, quiz)

    def quiz_sections(self, quizid: int) -> list[QuizSectionRecord]:
        sections = self.session.scalars(
            select(QuizSection).where(QuizSection.quizid == quizid).order_by(QuizSection.firstslot)
        )
        return [
            QuizSectionRecord(
                firstslot=s.firstslot, heading=s.heading, shufflequestions=s.shufflequestions, id=s.id
            )
            for s in sections
        ]

    def quiz_slots(self, quizid: int) -> list[QuizSlotRecord]:
        quiz = self.session.get(Quiz, quizid)
        module = self.session.scalars(
            select(CourseModule).where(CourseModule.instance == quizid, CourseModule.modname == "quiz")
        ).first()
        if quiz is None or module is None:
            return []
        context = self._context_for(ContextLevel.MODULE, module.id)
        rows = self.session.execute(
            select(QuestionReference.questionbankentryid, QuizSlot)
            .join(QuestionReference, QuestionReference.itemid == QuizSlot.id)
            .where(
                QuizSlot.quizid == quizid,
                QuestionReference.usingcontextid == context.id,
                QuestionReference.questionarea == "slot",
            )
            .order_by(QuizSlot.slot)
        )
        return [
            QuizSlotRecord(
                questionbankentryid=entryid,
                slot=slot.slot,
                page=slot.page,
                requireprevious=slot.requireprevious,
                maxmark=slot.maxmark,
                id=slot.id,
            )
            for entryid, slot in rows
        ]

    def add_quiz_slot(
        self, quiz: QuizRecord, questionbankentryid: int, page: int, maxmark: float
    ) -> QuizSlotRecord:
        """Append a slot for ``questionbankentryid`` at the end of the quiz."""
        last = self.session.scalars(
            select(QuizSlot).where(QuizSlot.quizid == quiz.id).order_by(QuizSlot.slot.desc())
        ).first()
        if page <= 0:
            page = last.page if last else 1
        slot = QuizSlot(
            quizid=quiz.id,
            slot=(last.slot if last else 0) + 1,
            page=page,
            maxmark=maxmark,
            requireprevious=False,
        )
        self.session.add(slot)
        self.session.flush()
        self.session.add(
            QuestionReference(
                usingcontextid=quiz.contextid,
                component="mod_quiz",
                questionarea="slot",
                itemid=slot.id,
                questionbankentryid=questionbankentryid,
            )
        )
        self.session.flush()
        return QuizSlotRecord(
            questionbankentryid=questionbankentryid,
            slot=slot.slot,
            page=slot.page,
            requireprevious=False,
            maxmark=slot.maxmark,
            id=slot.id,
        )

    def set_require_previous(self, slotid: int) -> None:
        """Make the slot with id ``slotid`` wait for the slot before it."""
        slot = self.session.get(QuizSlot, slotid)
        if slot is None:
            raise ContentStoreError(f"Quiz slot {slotid} does not exist")
        slot.requireprevious = True
        self.session.flush()

    def recompute_sumgrades(self, quizid: int) -> float:
        total = self.session.scalar(
            select(func.coalesce(func.sum(QuizSlot.maxmark), 0.0)).where(QuizSlot.quizid == quizid)
        )
        quiz = self.session.get(Quiz, quizid)
        quiz.sumgrades = float(total)
        self.session.flush()
        return quiz.sumgrades

    def update_first_section(self, quizid: int, heading: str, shufflequestions: bool) -> int:
        section = self.session.scalars(
            select(QuizSection).where(QuizSection.quizid == quizid, QuizSection.firstslot == 1)
        ).first()
        if section is None:
            section = QuizSection(quizid=quizid, firstslot=1)
            self.session.add(section)
        section.heading = heading
        section.shufflequestions = shufflequestions
        self.session.flush()
        return section.id

    def insert_section(self, quizid: int, firstslot: int, heading: str, shufflequestions: bool) -> int:
        section = QuizSection(
            quizid=quizid, firstslot=firstslot, heading=heading, shufflequestions=shufflequestions
        )
        self.session.add(section)
        self.session.flush()
        return section.id

    def add_feedback(self, quizid: int, band: FeedbackBand) -> int:
        feedback = QuizFeedback(
            quizid=quizid,
            feedbacktext=band.feedbacktext,
            feedbacktextformat=band.feedbacktextformat,
            mingrade=band.mingrade,
            maxgrade=band.maxgrade,
        )
        self.session.add(feedback)
        self.session.flush()
        return feedback.id

    # ========================================
    # Events
    # ========================================

    def record_event(self, eventname: str, contextid: int, objectid: int | None, other: dict[str, Any]) -> None:
        self.session.add(
            LoggedEvent(
                eventname=eventname,
                contextid=contextid,
                objectid=objectid,
                userid=self.userid,
                other=json.dumps(other, default=str),
            )
        )
        self.session.flush()
        logger.info("Event {} context={} object={} {}", eventname, contextid, objectid, other)
