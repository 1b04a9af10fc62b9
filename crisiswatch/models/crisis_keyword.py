from typing import Any, Optional
from datetime import datetime
from pydantic import BaseModel, ConfigDict
from sqlalchemy import (
    Column, Integer, String, Text, Boolean, DateTime, ForeignKey, JSON,
    CheckConstraint, Index, func,
)
from crisiswatch.models.database import Base


# 严重程度从低到高
SEVERITY_LEVELS = ("low", "medium", "high", "critical")

# 严重程度权重，危机分数为命中关键词权重之和
SEVERITY_WEIGHTS = {
    "critical": 1000,
    "high": 100,
    "medium": 10,
    "low": 1,
}


class NotificationRules(BaseModel):
    """
    关键词触发后的通知规则
    只描述需要请求哪些通知，由外部通知分发器解释
    """
    model_config = ConfigDict(extra="forbid")

    notify_admins: bool = False
    notify_counselors: bool = False
    auto_escalate: bool = False
    email_alerts: bool = False

    @classmethod
    def from_stored(cls, value: Any) -> "NotificationRules":
        """
        从数据库中的 JSON 构建规则
        只读取已知字段，忽略历史数据中的其他键；列表形式视为启用其中列出的规则
        """
        if isinstance(value, dict):
            return cls(**{name: bool(value.get(name)) for name in cls.model_fields if name in value})
        if isinstance(value, (list, tuple)):
            return cls(**{name: True for name in cls.model_fields if name in value})
        return cls()

    def merge(self, other: "NotificationRules") -> "NotificationRules":
        """按字段取或，合并多个关键词的通知规则"""
        return NotificationRules(
            notify_admins=self.notify_admins or other.notify_admins,
            notify_counselors=self.notify_counselors or other.notify_counselors,
            auto_escalate=self.auto_escalate or other.auto_escalate,
            email_alerts=self.email_alerts or other.email_alerts,
        )


class CrisisKeyword(Base):
    """
    危机关键词数据模型
    存储管理员配置的危机关键词及其匹配方式和触发统计
    """
    __tablename__ = "crisis_keywords"

    id = Column(Integer, primary_key=True, index=True)
    keyword = Column(String(255), nullable=False, comment="关键词（存储时去除首尾空白并转小写）")
    severity_level = Column(String(20), nullable=False, default="medium", comment="严重程度 low/medium/high/critical")
    category_id = Column(
        Integer,
        ForeignKey("ticket_categories.id", ondelete="CASCADE"),
        nullable=True,
        comment="所属工单分类，为空表示全局关键词"
    )

    # 匹配方式
    is_active = Column(Boolean, nullable=False, default=True, comment="是否参与匹配")
    exact_match = Column(Boolean, nullable=False, default=False, comment="是否按完整词/短语匹配")
    case_sensitive = Column(Boolean, nullable=False, default=False, comment="是否区分大小写")

    # 触发统计，只能通过原子自增修改
    trigger_count = Column(Integer, nullable=False, default=0, comment="触发次数")
    last_triggered_at = Column(DateTime, nullable=True, comment="最近触发时间")

    # 处理建议
    response_action = Column(Text, nullable=True, comment="触发后的处理建议（仅供参考）")
    notification_rules = Column(JSON, nullable=True, comment="通知规则")

    # 审计字段
    created_by = Column(Integer, nullable=True, comment="创建人 ID")
    updated_by = Column(Integer, nullable=True, comment="最后修改人 ID")
    created_at = Column(DateTime, default=datetime.utcnow, comment="创建时间")
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, comment="更新时间")

    __table_args__ = (
        CheckConstraint(
            "severity_level IN ('low', 'medium', 'high', 'critical')",
            name="ck_severity_level_valid"
        ),
        CheckConstraint("trigger_count >= 0", name="ck_trigger_count_non_negative"),
        Index("ck_active_severity_idx", "is_active", "severity_level"),
        Index("ck_cat_active_idx", "category_id", "is_active"),
    )

    def __repr__(self):
        return f"<CrisisKeyword(id={self.id}, keyword='{self.keyword}', severity='{self.severity_level}')>"

    @property
    def severity_weight(self) -> int:
        return SEVERITY_WEIGHTS.get(self.severity_level, SEVERITY_WEIGHTS["low"])

    @property
    def rules(self) -> NotificationRules:
        """notification_rules 的结构化视图"""
        return NotificationRules.from_stored(self.notification_rules)

    def to_dict(self, category_name: Optional[str] = None) -> dict:
        """
        转换为字典格式
        """
        return {
            "id": self.id,
            "keyword": self.keyword,
            "severity_level": self.severity_level,
            "severity_weight": self.severity_weight,
            "category_id": self.category_id,
            "category_name": category_name,
            "is_active": self.is_active,
            "exact_match": self.exact_match,
            "case_sensitive": self.case_sensitive,
            "trigger_count": self.trigger_count,
            "last_triggered_at": self.last_triggered_at.isoformat() if self.last_triggered_at else None,
            "response_action": self.response_action,
            "notification_rules": self.rules.model_dump(),
            "created_by": self.created_by,
            "updated_by": self.updated_by,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None
        }


# (keyword, category_id) 唯一；category_id 为空时视为独立的全局作用域
Index(
    "ck_keyword_scope_uq",
    CrisisKeyword.keyword,
    func.coalesce(CrisisKeyword.category_id, 0),
    unique=True,
)
