"""
Question bank models.

Question data is versioned: a QuestionBankEntry is the stable identity, each
QuestionVersion points at one immutable Question row. The highest version is
the current one.
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import Float, ForeignKey, Integer, Text, UniqueConstraint, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import Base


class QuestionCategory(Base):
    """Question category; ``parent_id`` is None for the context's top category."""

    __tablename__ = "question_categories"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    contextid: Mapped[int] = mapped_column(ForeignKey("contexts.id", ondelete="CASCADE"), nullable=False)
    parent_id: Mapped[int | None] = mapped_column(ForeignKey("question_categories.id", ondelete="CASCADE"))
    info: Mapped[str] = mapped_column(Text, default="")
    sortorder: Mapped[int] = mapped_column(Integer, default=999)

    entries: Mapped[list[QuestionBankEntry]] = relationship(back_populates="category")


class QuestionBankEntry(Base):
    __tablename__ = "question_bank_entries"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    questioncategoryid: Mapped[int] = mapped_column(
        ForeignKey("question_categories.id", ondelete="CASCADE"), nullable=False
    )
    idnumber: Mapped[str | None] = mapped_column(Text)

    category: Mapped[QuestionCategory] = relationship(back_populates="entries")
    versions: Mapped[list[QuestionVersion]] = relationship(
        back_populates="entry",
        cascade="all, delete-orphan",
        order_by="QuestionVersion.version",
    )


class Question(Base):
    __tablename__ = "questions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    qtype: Mapped[str] = mapped_column(Text, nullable=False)
    questiontext: Mapped[str] = mapped_column(Text, default="")
    questiontextformat: Mapped[str] = mapped_column(Text, default="html")
    generalfeedback: Mapped[str] = mapped_column(Text, default="")
    generalfeedbackformat: Mapped[str] = mapped_column(Text, default="html")
    defaultmark: Mapped[float] = mapped_column(Float, default=1.0)
    penalty: Mapped[float] = mapped_column(Float, default=0.3333333)
    # JSON object of raw XML fragments for type-specific settings
    options: Mapped[str] = mapped_column(Text, default="{}")
    timecreated: Mapped[datetime] = mapped_column(default=func.now())

    answers: Mapped[list[QuestionAnswer]] = relationship(
        back_populates="question",
        cascade="all, delete-orphan",
        order_by="QuestionAnswer.id",
    )


class QuestionVersion(Base):
    __tablename__ = "question_versions"
    __table_args__ = (UniqueConstraint("questionbankentryid", "version"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    questionbankentryid: Mapped[int] = mapped_column(
        ForeignKey("question_bank_entries.id", ondelete="CASCADE"), nullable=False
    )
    questionid: Mapped[int] = mapped_column(ForeignKey("questions.id", ondelete="CASCADE"), nullable=False)
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    status: Mapped[str] = mapped_column(Text, default="ready")  # ready, hidden, draft

    entry: Mapped[QuestionBankEntry] = relationship(back_populates="versions")
    question: Mapped[Question] = relationship()


class QuestionAnswer(Base):
    __tablename__ = "question_answers"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    questionid: Mapped[int] = mapped_column(ForeignKey("questions.id", ondelete="CASCADE"), nullable=False)
    answer: Mapped[str] = mapped_column(Text, default="")
    answerformat: Mapped[str] = mapped_column(Text, default="moodle_auto_format")
    fraction: Mapped[float] = mapped_column(Float, default=0.0)
    feedback: Mapped[str] = mapped_column(Text, default="")
    feedbackformat: Mapped[str] = mapped_column(Text, default="html")

    question: Mapped[Question] = relationship(back_populates="answers")
