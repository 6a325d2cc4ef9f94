from sqlalchemy import String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from models.base import Base, TimestampMixin


class MessageGroup(TimestampMixin, Base):
    """Notification group. Owned by the group CRUD side; the sync only reads
    groups and bootstraps a default one when the table is empty."""

    __tablename__ = "message_groups"

    id: Mapped[int] = mapped_column(primary_key=True)
    name: Mapped[str] = mapped_column(String(100))
    description: Mapped[str | None] = mapped_column(String(500), default=None)
    is_active: Mapped[bool] = mapped_column(default=True)

    alarm_points = relationship("AlarmPoint", back_populates="group")

    def __repr__(self) -> str:
        return f"<MessageGroup {self.id} {self.name}>"
