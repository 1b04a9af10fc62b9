from sqlalchemy import Column, Integer, String, Boolean, DateTime
from datetime import datetime
from crisiswatch.models.database import Base


class TicketCategory(Base):
    """
    工单分类数据模型
    危机关键词可以限定在某个分类下生效
    """
    __tablename__ = "ticket_categories"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), nullable=False, comment="分类名称")
    slug = Column(String(255), nullable=False, unique=True, index=True, comment="分类标识")
    is_active = Column(Boolean, default=True, comment="是否启用")
    crisis_detection_enabled = Column(Boolean, default=True, comment="是否启用危机检测")
    created_at = Column(DateTime, default=datetime.utcnow, comment="创建时间")
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, comment="更新时间")

    def __repr__(self):
        return f"<TicketCategory(id={self.id}, name='{self.name}')>"

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "slug": self.slug,
            "is_active": self.is_active,
            "crisis_detection_enabled": self.crisis_detection_enabled,
            "created_at": self.created_at.isoformat() if self.created_at else None
        }
