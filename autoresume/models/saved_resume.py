from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import Integer, DateTime, String
from sqlalchemy.orm import Mapped, mapped_column

from ..db.database import Base


class SavedResume(Base):
    """一次成功的简历刷新：保存后跳转到的页面与来源页面。"""

    __tablename__ = "saved_resumes"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    source_url: Mapped[str] = mapped_column(String(1024), nullable=False)
    saved_url: Mapped[str] = mapped_column(String(1024), nullable=False)
    saved_at: Mapped[datetime] = mapped_column(
        DateTime, default=lambda: datetime.now(timezone.utc), nullable=False
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "source_url": self.source_url,
            "saved_url": self.saved_url,
            "saved_at": self.saved_at.isoformat() if self.saved_at else None,
        }
