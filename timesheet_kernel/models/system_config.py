"""
SystemConfig model -- runtime tunables as key/value strings.

Values are stored as text and interpreted by SystemConfigService.
"""

from uuid import UUID

from sqlalchemy import String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from timesheet_kernel.db.base import TimestampedBase, UUIDString


class SystemConfig(TimestampedBase):
    __tablename__ = "system_configs"

    __table_args__ = (
        UniqueConstraint("key", name="uq_system_config_key"),
    )

    key: Mapped[str] = mapped_column(String(100), nullable=False)

    value: Mapped[str] = mapped_column(Text, nullable=False)

    description: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_by_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    updated_by_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    def __repr__(self) -> str:
        return f"<SystemConfig {self.key}={self.value}>"
