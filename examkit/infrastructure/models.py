"""
ExamKit - ORM Models
SQLAlchemy 2.0 declarative tables for domains, tests and attempts
"""

from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional
from uuid import UUID, uuid4

from sqlalchemy import (
    JSON,
    TIMESTAMP,
    Boolean,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    Uuid,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from examkit.infrastructure.database import Base


class DomainModel(Base):
    __tablename__ = "domains"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    name: Mapped[str] = mapped_column(String(100), unique=True, nullable=False)
    display_name: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    config: Mapped[Dict[str, Any]] = mapped_column(JSON, default=dict, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), server_default=func.now()
    )

    tests: Mapped[List["TestModel"]] = relationship(back_populates="domain")


class TestModel(Base):
    __tablename__ = "tests"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text)
    domain_id: Mapped[Optional[UUID]] = mapped_column(
        ForeignKey("domains.id", ondelete="SET NULL")
    )
    creator_id: Mapped[Optional[str]] = mapped_column(String(64))
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="DRAFT")
    pass_percentage: Mapped[Decimal] = mapped_column(Numeric(5, 2), nullable=False)
    time_limit_minutes: Mapped[Optional[int]] = mapped_column(Integer)
    is_public: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    settings: Mapped[Dict[str, Any]] = mapped_column(JSON, default=dict, nullable=False)

    submission_note: Mapped[Optional[str]] = mapped_column(Text)
    reviewer_id: Mapped[Optional[str]] = mapped_column(String(64))
    review_note: Mapped[Optional[str]] = mapped_column(Text)
    reviewed_at: Mapped[Optional[datetime]] = mapped_column(TIMESTAMP(timezone=True))
    published_at: Mapped[Optional[datetime]] = mapped_column(TIMESTAMP(timezone=True))

    created_at: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=True), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=True), nullable=False)

    domain: Mapped[Optional[DomainModel]] = relationship(back_populates="tests")
    questions: Mapped[List["QuestionModel"]] = relationship(
        back_populates="test",
        cascade="all, delete-orphan",
        order_by="QuestionModel.order_index",
        lazy="selectin",
    )

    __table_args__ = (
        Index("ix_tests_status_domain", "status", "domain_id"),
    )


class QuestionModel(Base):
    __tablename__ = "questions"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    test_id: Mapped[UUID] = mapped_column(
        ForeignKey("tests.id", ondelete="CASCADE"), nullable=False, index=True
    )
    stem: Mapped[str] = mapped_column(Text, nullable=False)
    question_type: Mapped[str] = mapped_column(String(20), nullable=False)
    explanation: Mapped[Optional[str]] = mapped_column(Text)
    points: Mapped[Decimal] = mapped_column(Numeric(8, 2), nullable=False)
    difficulty: Mapped[str] = mapped_column(String(10), nullable=False, default="MEDIUM")
    tags: Mapped[List[str]] = mapped_column(JSON, default=list, nullable=False)
    order_index: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    test: Mapped[TestModel] = relationship(back_populates="questions")
    options: Mapped[List["OptionModel"]] = relationship(
        back_populates="question",
        cascade="all, delete-orphan",
        order_by="OptionModel.order_index",
        lazy="selectin",
    )


class OptionModel(Base):
    __tablename__ = "options"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    question_id: Mapped[UUID] = mapped_column(
        ForeignKey("questions.id", ondelete="CASCADE"), nullable=False, index=True
    )
    label: Mapped[str] = mapped_column(Text, nullable=False)
    is_correct: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    feedback: Mapped[Optional[str]] = mapped_column(Text)
    order_index: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    question: Mapped[QuestionModel] = relationship(back_populates="options")


class AttemptModel(Base):
    __tablename__ = "test_attempts"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    test_id: Mapped[UUID] = mapped_column(
        ForeignKey("tests.id", ondelete="CASCADE"), nullable=False
    )
    user_id: Mapped[Optional[str]] = mapped_column(String(64))
    session_id: Mapped[Optional[str]] = mapped_column(String(64))
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="IN_PROGRESS")
    answers: Mapped[Dict[str, List[str]]] = mapped_column(JSON, default=dict, nullable=False)
    started_at: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=True), nullable=False)
    completed_at: Mapped[Optional[datetime]] = mapped_column(TIMESTAMP(timezone=True))
    time_spent_seconds: Mapped[Optional[int]] = mapped_column(Integer)

    # Denormalised from the evaluation for listing and statistics
    score: Mapped[Optional[Decimal]] = mapped_column(Numeric(10, 2))
    percentage: Mapped[Optional[Decimal]] = mapped_column(Numeric(6, 2))
    passed: Mapped[Optional[bool]] = mapped_column(Boolean)
    evaluation: Mapped[Optional[Dict[str, Any]]] = mapped_column(JSON)

    __table_args__ = (
        Index("ix_test_attempts_user_status", "user_id", "status"),
        Index("ix_test_attempts_test_user", "test_id", "user_id"),
    )
