"""Alarm point — one monitorable condition linked to a message group.

Rows are created and updated by the alarm point sync from the external
monitoring catalog. Names are unique case-insensitively (functional index).
"""
from sqlalchemy import BigInteger, ForeignKey, Index, String, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from models.base import Base, TimestampMixin


class AlarmPoint(TimestampMixin, Base):
    __tablename__ = "alarm_points"

    __table_args__ = (
        Index("ix_alarm_points_external_id", "external_id"),
        Index("ix_alarm_points_group_id", "group_id"),
        Index("ix_alarm_points_external_seq", "external_seq"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    name: Mapped[str] = mapped_column(String(200))
    description: Mapped[str | None] = mapped_column(String(500), default=None)
    condition: Mapped[str | None] = mapped_column(String(200), default=None)
    group_id: Mapped[int] = mapped_column(
        ForeignKey("message_groups.id", ondelete="RESTRICT")
    )
    is_active: Mapped[bool] = mapped_column(default=True)
    external_id: Mapped[str | None] = mapped_column(String(50), default=None)
    # OBJECT_SEQ of the catalog row; DELETE change log entries carry only this key
    external_seq: Mapped[int | None] = mapped_column(BigInteger, default=None)

    group = relationship("MessageGroup", back_populates="alarm_points")

    def __repr__(self) -> str:
        return f"<AlarmPoint {self.name} group={self.group_id} ext={self.external_id}>"


Index("uq_alarm_points_name_lower", func.lower(AlarmPoint.name), unique=True)
