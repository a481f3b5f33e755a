"""
Quiz structure models.

A quiz is laid out as numbered slots. Each slot references a question bank
entry through a QuestionReference (``questionarea='slot'``, ``itemid`` = slot
id, ``usingcontextid`` = the quiz module's context). Sections split the slot
sequence into headed groups, starting at ``firstslot``.
"""

from __future__ import annotations

from sqlalchemy import Boolean, Float, ForeignKey, Integer, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import Base


class Quiz(Base):
    __tablename__ = "quizzes"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    course_id: Mapped[int] = mapped_column(ForeignKey("courses.id", ondelete="CASCADE"), nullable=False)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    intro: Mapped[str] = mapped_column(Text, default="")
    introformat: Mapped[int] = mapped_column(Integer, default=1)
    questionsperpage: Mapped[int] = mapped_column(Integer, default=1)
    navmethod: Mapped[str] = mapped_column(Text, default="free")
    preferredbehaviour: Mapped[str] = mapped_column(Text, default="deferredfeedback")
    shuffleanswers: Mapped[bool] = mapped_column(Boolean, default=True)
    grade: Mapped[float] = mapped_column(Float, default=10.0)
    sumgrades: Mapped[float] = mapped_column(Float, default=0.0)
    grademethod: Mapped[int] = mapped_column(Integer, default=1)
    decimalpoints: Mapped[int] = mapped_column(Integer, default=2)
    questiondecimalpoints: Mapped[int] = mapped_column(Integer, default=-1)
    timeopen: Mapped[int] = mapped_column(Integer, default=0)
    timeclose: Mapped[int] = mapped_column(Integer, default=0)
    timelimit: Mapped[int] = mapped_column(Integer, default=0)
    graceperiod: Mapped[int] = mapped_column(Integer, default=0)
    reviewattempt: Mapped[int] = mapped_column(Integer, default=0)
    reviewcorrectness: Mapped[int] = mapped_column(Integer, default=0)
    reviewmarks: Mapped[int] = mapped_column(Integer, default=0)
    reviewspecificfeedback: Mapped[int] = mapped_column(Integer, default=0)
    reviewgeneralfeedback: Mapped[int] = mapped_column(Integer, default=0)
    reviewrightanswer: Mapped[int] = mapped_column(Integer, default=0)
    reviewoverallfeedback: Mapped[int] = mapped_column(Integer, default=0)

    slots: Mapped[list[QuizSlot]] = relationship(
        back_populates="quiz", cascade="all, delete-orphan", order_by="QuizSlot.slot"
    )
    sections: Mapped[list[QuizSection]] = relationship(
        back_populates="quiz", cascade="all, delete-orphan", order_by="QuizSection.firstslot"
    )


class QuizSection(Base):
    __tablename__ = "quiz_sections"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    quizid: Mapped[int] = mapped_column(ForeignKey("quizzes.id", ondelete="CASCADE"), nullable=False)
    firstslot: Mapped[int] = mapped_column(Integer, nullable=False)
    heading: Mapped[str] = mapped_column(Text, default="")
    shufflequestions: Mapped[bool] = mapped_column(Boolean, default=False)

    quiz: Mapped[Quiz] = relationship(back_populates="sections")


class QuizSlot(Base):
    __tablename__ = "quiz_slots"
    __table_args__ = (UniqueConstraint("quizid", "slot"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    quizid: Mapped[int] = mapped_column(ForeignKey("quizzes.id", ondelete="CASCADE"), nullable=False)
    slot: Mapped[int] = mapped_column(Integer, nullable=False)
    page: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    requireprevious: Mapped[bool] = mapped_column(Boolean, default=False)
    maxmark: Mapped[float] = mapped_column(Float, default=1.0)

    quiz: Mapped[Quiz] = relationship(back_populates="slots")


class QuestionReference(Base):
    __tablename__ = "question_references"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    usingcontextid: Mapped[int] = mapped_column(ForeignKey("contexts.id", ondelete="CASCADE"), nullable=False)
    component: Mapped[str] = mapped_column(Text, default="mod_quiz")
    questionarea: Mapped[str] = mapped_column(Text, default="slot")
    itemid: Mapped[int] = mapped_column(Integer, nullable=False)
    questionbankentryid: Mapped[int] = mapped_column(
        ForeignKey("question_bank_entries.id", ondelete="CASCADE"), nullable=False
    )
    # None means "always use the latest version"
    version: Mapped[int | None] = mapped_column(Integer)


class QuizFeedback(Base):
    __tablename__ = "quiz_feedback"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    quizid: Mapped[int] = mapped_column(ForeignKey("quizzes.id", ondelete="CASCADE"), nullable=False)
    feedbacktext: Mapped[str] = mapped_column(Text, default="")
    feedbacktextformat: Mapped[int] = mapped_column(Integer, default=1)
    mingrade: Mapped[float] = mapped_column(Float, default=0.0)
    maxgrade: Mapped[float] = mapped_column(Float, default=0.0)
