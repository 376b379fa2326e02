"""
Convivencia Escolar - SQLAlchemy ORM Models
Persistent storage for students, case files, milestones and the audit log
"""
from sqlalchemy import Column, String, Integer, DateTime, Text, JSON, ForeignKey, Enum as SQLEnum, Boolean
from sqlalchemy.orm import relationship

from ..database import Base
from .domain import ActorRole, AuditAction, CaseStage, Severity, utcnow


class StudentDB(Base):
    """Student record. Source of truth for name and course."""
    __tablename__ = "students"

    id = Column(String(36), primary_key=True)  # UUID
    run = Column(String(12), nullable=True, index=True)  # RUN without dots or dash
    full_name = Column(String(255), nullable=False)
    course = Column(String(50), nullable=True)
    created_at = Column(DateTime, default=utcnow)

    cases = relationship("CaseDB", back_populates="student")


class CaseDB(Base):
    """
    Disciplinary case file ("expediente").
    Never deleted by normal flow; retained for compliance.
    """
    __tablename__ = "cases"

    id = Column(String(36), primary_key=True)  # UUID
    folio = Column(String(50), unique=True, nullable=False, index=True)
    student_id = Column(String(36), ForeignKey("students.id", ondelete="SET NULL"), nullable=True, index=True)

    # Denormalized copy for display
    student_name = Column(String(255), nullable=False)
    student_course = Column(String(50), nullable=True)

    # Lifecycle
    stage = Column(SQLEnum(CaseStage), nullable=False, default=CaseStage.OPENED, index=True)
    severity = Column(SQLEnum(Severity), nullable=False, default=Severity.RELEVANT)

    # Deadlines
    opened_at = Column(DateTime, nullable=False)  # Immutable after creation
    fatal_deadline = Column(DateTime, nullable=False)

    # Gradation: documented escalating measures before this case
    prior_actions_on_file = Column(Boolean, default=False)

    owner_id = Column(String(36), nullable=True, index=True)  # Staff member in charge

    # Optimistic concurrency token, bumped on every write
    version = Column(Integer, nullable=False, default=1)

    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    # Relationships
    student = relationship("StudentDB", back_populates="cases")
    milestones = relationship(
        "MilestoneDB", back_populates="case",
        cascade="all, delete-orphan", order_by="MilestoneDB.position",
    )
    audit_log = relationship("CaseAuditLogDB", back_populates="case", cascade="all, delete-orphan")


class MilestoneDB(Base):
    """Procedural step of a case. Only completion ever changes."""
    __tablename__ = "milestones"

    pk = Column(Integer, primary_key=True, autoincrement=True)
    case_id = Column(String(36), ForeignKey("cases.id", ondelete="CASCADE"), nullable=False, index=True)
    milestone_id = Column(String(50), nullable=False)  # h1..h6, h-council
    position = Column(Integer, nullable=False)

    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    completed = Column(Boolean, default=False)
    completed_at = Column(DateTime, nullable=True)
    requires_evidence = Column(Boolean, default=True)
    mandatory_for_expulsion = Column(Boolean, default=False)
    evidence_url = Column(String(500), nullable=True)

    case = relationship("CaseDB", back_populates="milestones")


class CaseAuditLogDB(Base):
    """
    Immutable record of case events.
    Append-only - rows are never updated.
    """
    __tablename__ = "case_audit_log"

    id = Column(String(36), primary_key=True)  # UUID
    case_id = Column(String(36), ForeignKey("cases.id", ondelete="CASCADE"), nullable=False, index=True)

    action = Column(SQLEnum(AuditAction), nullable=False)
    description = Column(Text, nullable=False)

    actor_id = Column(String(100), nullable=False)
    actor_name = Column(String(255), nullable=False)
    actor_role = Column(SQLEnum(ActorRole), nullable=False)

    critical = Column(Boolean, default=False)  # Part of the compliance history

    # Event Metadata (named to avoid the reserved 'metadata' attribute)
    event_metadata = Column(JSON, nullable=True)

    created_at = Column(DateTime, default=utcnow, index=True)

    case = relationship("CaseDB", back_populates="audit_log")
