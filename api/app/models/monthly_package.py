import enum
import uuid
from datetime import datetime

from sqlalchemy import (
    DateTime,
    Enum,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
    Uuid,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.core.database import Base
from app.models.user import User


class PackageStatus(str, enum.Enum):
    NEED_STATEMENTS = "need_statements"
    CATEGORIZING = "categorizing"
    CATEGORIZED = "categorized"
    RECONCILING = "reconciling"
    RECONCILED = "reconciled"
    FINISHED = "finished"


class InstitutionType(str, enum.Enum):
    BANK = "bank"
    CREDIT_CARD = "credit_card"
    LOAN = "loan"
    OTHER = "other"


def _values(e: type[enum.Enum]) -> list[str]:
    return [m.value for m in e]


class MonthlyPackage(Base):
    __tablename__ = "monthly_packages"
    __table_args__ = (
        UniqueConstraint("user_id", "month", "year", name="user_month_year_idx"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="CASCADE"), index=True
    )
    month: Mapped[int] = mapped_column(Integer)                # 1–12
    year: Mapped[int] = mapped_column(Integer)
    status: Mapped[PackageStatus] = mapped_column(
        Enum(PackageStatus, name="package_status", values_callable=_values),
        default=PackageStatus.NEED_STATEMENTS,
    )
    submitted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    user: Mapped[User] = relationship(back_populates="packages")
    statements: Mapped[list["Statement"]] = relationship(
        back_populates="package",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="Statement.uploaded_at",
    )


class Statement(Base):
    __tablename__ = "statements"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    monthly_package_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("monthly_packages.id", ondelete="CASCADE"), index=True
    )
    # ── Institution ────────────────────────────────────────────────────────────
    institution_name: Mapped[str] = mapped_column(Text)
    account_last4: Mapped[str] = mapped_column(String(4))
    institution_type: Mapped[InstitutionType] = mapped_column(
        Enum(InstitutionType, name="institution_type", values_callable=_values)
    )
    # ── File Storage ───────────────────────────────────────────────────────────
    file_url: Mapped[str] = mapped_column(Text)                # blob store URL
    file_name: Mapped[str] = mapped_column(Text)               # original user-facing name
    file_size: Mapped[int] = mapped_column(Integer)            # bytes
    uploaded_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    package: Mapped[MonthlyPackage] = relationship(back_populates="statements")
