"""
Scope hierarchy and access models.

Contexts form a tree: the system context at the root, course categories
below it (possibly nested), then courses, then course modules. Capability
grants attach to a context and are inherited by every context below it.
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import ForeignKey, Integer, Text, UniqueConstraint, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import Base


class Context(Base):
    """A node in the system / course category / course / module hierarchy."""

    __tablename__ = "contexts"
    __table_args__ = (UniqueConstraint("contextlevel", "instanceid"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    contextlevel: Mapped[int] = mapped_column(Integer, nullable=False)
    instanceid: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    parent_id: Mapped[int | None] = mapped_column(ForeignKey("contexts.id", ondelete="CASCADE"))

    parent: Mapped[Context | None] = relationship(remote_side=[id])

    def __repr__(self) -> str:
        return f"<Context(id={self.id}, level={self.contextlevel}, instance={self.instanceid})>"


class CourseCategory(Base):
    __tablename__ = "course_categories"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    parent_id: Mapped[int | None] = mapped_column(ForeignKey("course_categories.id", ondelete="SET NULL"))


class Course(Base):
    __tablename__ = "courses"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    fullname: Mapped[str] = mapped_column(Text, nullable=False)
    shortname: Mapped[str] = mapped_column(Text, nullable=False)
    category_id: Mapped[int | None] = mapped_column(ForeignKey("course_categories.id", ondelete="SET NULL"))

    modules: Mapped[list[CourseModule]] = relationship(back_populates="course")


class CourseModule(Base):
    """A course module (activity instance); ``modname`` is e.g. 'quiz'."""

    __tablename__ = "course_modules"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    course_id: Mapped[int] = mapped_column(ForeignKey("courses.id", ondelete="CASCADE"), nullable=False)
    modname: Mapped[str] = mapped_column(Text, nullable=False, default="quiz")
    instance: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    section: Mapped[int] = mapped_column(Integer, default=1)
    visible: Mapped[bool] = mapped_column(default=True)
    deletioninprogress: Mapped[bool] = mapped_column(default=False)

    course: Mapped[Course] = relationship(back_populates="modules")


class CapabilityGrant(Base):
    """A capability held by a user in a context (and every context beneath it)."""

    __tablename__ = "capability_grants"
    __table_args__ = (UniqueConstraint("userid", "contextid", "capability"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    userid: Mapped[int] = mapped_column(Integer, nullable=False)
    contextid: Mapped[int] = mapped_column(ForeignKey("contexts.id", ondelete="CASCADE"), nullable=False)
    capability: Mapped[str] = mapped_column(Text, nullable=False)


class WebserviceToken(Base):
    """Bearer token identifying the webservice user."""

    __tablename__ = "webservice_tokens"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    token: Mapped[str] = mapped_column(Text, unique=True, nullable=False)
    userid: Mapped[int] = mapped_column(Integer, nullable=False)
    created_at: Mapped[datetime] = mapped_column(default=func.now())
    lastaccess: Mapped[datetime | None] = mapped_column()


class LoggedEvent(Base):
    """Domain events raised by the handlers (exports, imports, section breaks)."""

    __tablename__ = "logged_events"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    eventname: Mapped[str] = mapped_column(Text, nullable=False)
    contextid: Mapped[int] = mapped_column(Integer, nullable=False)
    objectid: Mapped[int | None] = mapped_column(Integer)
    userid: Mapped[int | None] = mapped_column(Integer)
    other: Mapped[str] = mapped_column(Text, default="{}")
    created_at: Mapped[datetime] = mapped_column(default=func.now())
