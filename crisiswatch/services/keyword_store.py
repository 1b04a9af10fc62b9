from datetime import datetime, timedelta
from typing import Any, Dict, Iterable, List, Optional, Union
from pydantic import ValidationError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, update, delete, case
from sqlalchemy.exc import IntegrityError

from crisiswatch.config import settings
from crisiswatch.models import (
    CrisisKeyword,
    NotificationRules,
    TicketCategory,
    SEVERITY_LEVELS,
    SEVERITY_WEIGHTS,
)
from crisiswatch.services import category_service
from crisiswatch.core.logging import get_logger

logger = get_logger(__name__)

# 批量操作类型
BULK_ACTIONS = ("activate", "deactivate", "delete", "change_severity")

# 查询全局关键词时使用的分类过滤值
GLOBAL_SCOPE = "global"

# 区分"未传入"和"显式传入 None"（category_id 为 None 表示全局）
_UNSET: Any = object()

# 按严重程度从高到低排序
_severity_order = case(SEVERITY_WEIGHTS, value=CrisisKeyword.severity_level, else_=0)


class KeywordError(Exception):
    """关键词异常基类"""
    pass


class KeywordValidationError(KeywordError):
    """字段校验失败，不会产生任何修改"""

    def __init__(self, field: str, message: str):
        super().__init__(message)
        self.field = field
        self.message = message


class InvalidSeverityError(KeywordValidationError):
    """严重程度不在 low/medium/high/critical 之内"""

    def __init__(self, severity_level: Any, field: str = "severity_level"):
        super().__init__(field, f"无效的严重程度: {severity_level}，可选值为 {', '.join(SEVERITY_LEVELS)}")
        self.severity_level = severity_level


class DuplicateKeywordError(KeywordError):
    """同一作用域下已存在相同关键词"""

    def __init__(self, keyword: str, category_id: Optional[int] = None):
        scope = "全局" if category_id is None else f"分类 {category_id} "
        super().__init__(f"{scope}下已存在关键词 '{keyword}'")
        self.field = "keyword"
        self.message = str(self)
        self.keyword = keyword
        self.category_id = category_id


class KeywordNotFoundError(KeywordError):
    """关键词不存在"""

    def __init__(self, keyword_ids: Union[int, Iterable[int]]):
        if isinstance(keyword_ids, int):
            keyword_ids = [keyword_ids]
        self.keyword_ids = sorted(keyword_ids)
        super().__init__(f"关键词不存在: {', '.join(str(i) for i in self.keyword_ids)}")
        self.field = "keyword_ids" if len(self.keyword_ids) > 1 else "id"
        self.message = str(self)


def normalize_keyword(text: Optional[str]) -> str:
    return (text or "").strip().lower()


def validate_keyword_text(text: Optional[str]) -> str:
    """
    校验并规范化关键词文本

    Returns:
        去除首尾空白并转小写后的关键词
    """
    if text is not None and not isinstance(text, str):
        raise KeywordValidationError("keyword", "关键词必须是字符串")

    normalized = normalize_keyword(text)
    if not normalized:
        raise KeywordValidationError("keyword", "关键词不能为空")
    if len(normalized) > settings.MAX_KEYWORD_LENGTH:
        raise KeywordValidationError(
            "keyword", f"关键词长度不能超过 {settings.MAX_KEYWORD_LENGTH} 个字符"
        )
    return normalized


def validate_severity(severity_level: Any, field: str = "severity_level") -> str:
    if not isinstance(severity_level, str):
        raise InvalidSeverityError(severity_level, field)
    level = severity_level.strip().lower()
    if level not in SEVERITY_LEVELS:
        raise InvalidSeverityError(severity_level, field)
    return level


def validate_response_action(response_action: Optional[str]) -> Optional[str]:
    if response_action is None:
        return None
    response_action = response_action.strip()
    if len(response_action) > settings.MAX_RESPONSE_ACTION_LENGTH:
        raise KeywordValidationError(
            "response_action",
            f"处理建议长度不能超过 {settings.MAX_RESPONSE_ACTION_LENGTH} 个字符"
        )
    return response_action or None


def validate_notification_rules(
    rules: Union[NotificationRules, Dict[str, Any], None]
) -> Optional[Dict[str, bool]]:
    if rules is None:
        return None
    if isinstance(rules, NotificationRules):
        return rules.model_dump()
    try:
        return NotificationRules(**rules).model_dump()
    except (TypeError, ValidationError):
        raise KeywordValidationError("notification_rules", "通知规则格式无效")


async def validate_category(db: AsyncSession, category_id: Optional[int]) -> None:
    if category_id is None:
        return
    if await category_service.get_category(db, category_id) is None:
        raise KeywordValidationError("category_id", "所选分类不存在")


def _scope_filter(query, category_id: Optional[int]):
    if category_id is None:
        return query.where(CrisisKeyword.category_id.is_(None))
    return query.where(CrisisKeyword.category_id == category_id)


async def find_keyword(
    db: AsyncSession,
    keyword: str,
    category_id: Optional[int] = None,
    exclude_id: Optional[int] = None
) -> Optional[CrisisKeyword]:
    """按 (规范化文本, 分类) 查找关键词"""
    query = select(CrisisKeyword).where(CrisisKeyword.keyword == normalize_keyword(keyword))
    query = _scope_filter(query, category_id)
    if exclude_id is not None:
        query = query.where(CrisisKeyword.id != exclude_id)

    result = await db.execute(query)
    return result.scalars().first()


async def list_active(db: AsyncSession, category_id: Optional[int] = None) -> List[CrisisKeyword]:
    """
    获取参与匹配的关键词快照
    全局关键词始终包含；传入分类时额外包含该分类的关键词
    """
    query = select(CrisisKeyword).where(CrisisKeyword.is_active == True)

    if category_id is None:
        query = query.where(CrisisKeyword.category_id.is_(None))
    else:
        query = query.where(
            (CrisisKeyword.category_id.is_(None)) | (CrisisKeyword.category_id == category_id)
        )

    query = query.order_by(_severity_order.desc(), CrisisKeyword.keyword, CrisisKeyword.id)
    result = await db.execute(query)
    return list(result.scalars().all())


async def get_keyword(db: AsyncSession, keyword_id: int) -> CrisisKeyword:
    keyword = await db.get(CrisisKeyword, keyword_id, populate_existing=True)
    if keyword is None:
        raise KeywordNotFoundError(keyword_id)
    return keyword


async def list_keywords(
    db: AsyncSession,
    category_id: Union[int, str, None] = None,
    severity_level: Optional[str] = None,
    is_active: Optional[bool] = None
) -> List[CrisisKeyword]:
    """
    管理端关键词列表

    Args:
        category_id: 分类 ID；"global" 只返回全局关键词；None 不过滤
        severity_level: 严重程度过滤
        is_active: 启用状态过滤
    """
    query = select(CrisisKeyword)

    if category_id == GLOBAL_SCOPE:
        query = query.where(CrisisKeyword.category_id.is_(None))
    elif category_id is not None:
        query = query.where(CrisisKeyword.category_id == int(category_id))

    if severity_level is not None:
        query = query.where(CrisisKeyword.severity_level == validate_severity(severity_level))

    if is_active is not None:
        query = query.where(CrisisKeyword.is_active == is_active)

    # 触发统计由原子更新写入，需覆盖会话中已加载的旧值
    query = query.order_by(_severity_order.desc(), CrisisKeyword.keyword, CrisisKeyword.id)
    query = query.execution_options(populate_existing=True)
    result = await db.execute(query)
    return list(result.scalars().all())


async def _commit_unique(db: AsyncSession, keyword: str, category_id: Optional[int]) -> None:
    """提交事务；唯一索引冲突时回滚并转换为 DuplicateKeywordError"""
    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        raise DuplicateKeywordError(keyword, category_id)


async def create_keyword(
    db: AsyncSession,
    keyword: str,
    severity_level: str,
    category_id: Optional[int] = None,
    is_active: bool = True,
    exact_match: bool = False,
    case_sensitive: bool = False,
    response_action: Optional[str] = None,
    notification_rules: Union[NotificationRules, Dict[str, Any], None] = None,
    created_by: Optional[int] = None
) -> CrisisKeyword:
    """
    创建危机关键词

    Raises:
        KeywordValidationError: 文本为空/过长、分类不存在等
        InvalidSeverityError: 严重程度无效
        DuplicateKeywordError: 同一作用域下已存在相同关键词
    """
    keyword_text = validate_keyword_text(keyword)
    severity = validate_severity(severity_level)
    response_action = validate_response_action(response_action)
    rules = validate_notification_rules(notification_rules)
    await validate_category(db, category_id)

    if await find_keyword(db, keyword_text, category_id):
        raise DuplicateKeywordError(keyword_text, category_id)

    crisis_keyword = CrisisKeyword(
        keyword=keyword_text,
        severity_level=severity,
        category_id=category_id,
        is_active=bool(is_active),
        exact_match=bool(exact_match),
        case_sensitive=bool(case_sensitive),
        trigger_count=0,
        response_action=response_action,
        notification_rules=rules,
        created_by=created_by
    )
    db.add(crisis_keyword)
    await _commit_unique(db, keyword_text, category_id)
    await db.refresh(crisis_keyword)

    logger.info(
        f"危机关键词已创建: id={crisis_keyword.id}, keyword='{crisis_keyword.keyword}', "
        f"severity={crisis_keyword.severity_level}, category_id={crisis_keyword.category_id}"
    )
    return crisis_keyword


async def update_keyword(
    db: AsyncSession,
    keyword_id: int,
    keyword: Optional[str] = None,
    severity_level: Optional[str] = None,
    category_id: Optional[int] = _UNSET,
    is_active: Optional[bool] = None,
    exact_match: Optional[bool] = None,
    case_sensitive: Optional[bool] = None,
    response_action: Optional[str] = _UNSET,
    notification_rules: Union[NotificationRules, Dict[str, Any], None] = _UNSET,
    updated_by: Optional[int] = None
) -> CrisisKeyword:
    """
    部分更新关键词；未传入的字段保持不变
    触发统计字段只能由 trigger_recorder 修改
    """
    crisis_keyword = await get_keyword(db, keyword_id)

    # 先完成全部校验，再修改对象
    new_text = validate_keyword_text(keyword) if keyword is not None else crisis_keyword.keyword
    new_category_id = crisis_keyword.category_id if category_id is _UNSET else category_id
    new_severity = validate_severity(severity_level) if severity_level is not None else None
    new_action = validate_response_action(response_action) if response_action is not _UNSET else _UNSET
    new_rules = validate_notification_rules(notification_rules) if notification_rules is not _UNSET else _UNSET

    if new_category_id != crisis_keyword.category_id:
        await validate_category(db, new_category_id)

    if new_text != crisis_keyword.keyword or new_category_id != crisis_keyword.category_id:
        if await find_keyword(db, new_text, new_category_id, exclude_id=keyword_id):
            raise DuplicateKeywordError(new_text, new_category_id)

    crisis_keyword.keyword = new_text
    crisis_keyword.category_id = new_category_id
    if new_severity is not None:
        crisis_keyword.severity_level = new_severity
    if is_active is not None:
        crisis_keyword.is_active = is_active
    if exact_match is not None:
        crisis_keyword.exact_match = exact_match
    if case_sensitive is not None:
        crisis_keyword.case_sensitive = case_sensitive
    if new_action is not _UNSET:
        crisis_keyword.response_action = new_action
    if new_rules is not _UNSET:
        crisis_keyword.notification_rules = new_rules
    crisis_keyword.updated_by = updated_by

    await _commit_unique(db, new_text, new_category_id)
    await db.refresh(crisis_keyword)

    logger.info(f"危机关键词已更新: id={crisis_keyword.id}")
    return crisis_keyword


async def toggle_keyword(
    db: AsyncSession,
    keyword_id: int,
    updated_by: Optional[int] = None
) -> CrisisKeyword:
    crisis_keyword = await get_keyword(db, keyword_id)
    crisis_keyword.is_active = not crisis_keyword.is_active
    crisis_keyword.updated_by = updated_by
    await db.commit()
    await db.refresh(crisis_keyword)

    logger.info(f"危机关键词启用状态已切换: id={keyword_id}, is_active={crisis_keyword.is_active}")
    return crisis_keyword


async def delete_keyword(db: AsyncSession, keyword_id: int) -> None:
    """硬删除关键词，触发统计随之丢失"""
    crisis_keyword = await get_keyword(db, keyword_id)
    keyword_text = crisis_keyword.keyword

    await db.delete(crisis_keyword)
    await db.commit()

    logger.info(f"危机关键词已删除: id={keyword_id}, keyword='{keyword_text}'")


async def ensure_keywords_exist(db: AsyncSession, keyword_ids: Iterable[int]) -> List[int]:
    """
    校验 ID 全部存在

    Returns:
        去重排序后的 ID 列表
    """
    ids = sorted(set(keyword_ids))
    if not ids:
        raise KeywordValidationError("keyword_ids", "至少需要选择一个关键词")

    result = await db.execute(select(CrisisKeyword.id).where(CrisisKeyword.id.in_(ids)))
    missing = set(ids) - set(result.scalars().all())
    if missing:
        raise KeywordNotFoundError(missing)
    return ids


async def bulk_action(
    db: AsyncSession,
    action: str,
    keyword_ids: Iterable[int],
    severity_level: Optional[str] = None,
    user_id: Optional[int] = None
) -> int:
    """
    批量启用/停用/删除/修改严重程度
    所有 ID 必须存在，否则不做任何修改

    Returns:
        受影响的关键词数量
    """
    if action not in BULK_ACTIONS:
        raise KeywordValidationError("action", f"不支持的批量操作: {action}")

    severity = validate_severity(severity_level) if action == "change_severity" else None
    ids = await ensure_keywords_exist(db, keyword_ids)

    if action == "delete":
        stmt = delete(CrisisKeyword).where(CrisisKeyword.id.in_(ids))
    else:
        if action == "change_severity":
            values = {"severity_level": severity}
        else:
            values = {"is_active": action == "activate"}
        values["updated_by"] = user_id
        stmt = update(CrisisKeyword).where(CrisisKeyword.id.in_(ids)).values(**values)

    try:
        await db.execute(stmt.execution_options(synchronize_session="fetch"))
        await db.commit()
    except Exception:
        await db.rollback()
        raise

    logger.info(f"批量操作 '{action}' 已完成: affected={len(ids)}")
    return len(ids)


async def get_statistics(db: AsyncSession, timeframe_days: Optional[int] = None) -> Dict[str, Any]:
    """
    关键词统计：总览、按严重程度、触发情况、按分类、有效性

    Args:
        timeframe_days: 统计"近期触发"的天数窗口，默认取配置
    """
    timeframe_days = timeframe_days or settings.STATS_TIMEFRAME_DAYS
    now = datetime.utcnow()
    recent_since = now - timedelta(days=timeframe_days)
    stale_before = now - timedelta(days=30 * settings.STALE_KEYWORD_MONTHS)

    keywords_result = await db.execute(
        select(CrisisKeyword).execution_options(populate_existing=True)
    )
    keywords = list(keywords_result.scalars().all())

    categories_result = await db.execute(select(TicketCategory).order_by(TicketCategory.name))
    categories = list(categories_result.scalars().all())

    total = len(keywords)
    total_triggers = sum(k.trigger_count or 0 for k in keywords)
    triggered = [k for k in keywords if (k.trigger_count or 0) > 0]

    by_severity = {}
    for level in reversed(SEVERITY_LEVELS):
        group = [k for k in keywords if k.severity_level == level]
        by_severity[level] = {
            "count": len(group),
            "total_triggers": sum(k.trigger_count or 0 for k in group)
        }

    most_triggered = sorted(keywords, key=lambda k: (-(k.trigger_count or 0), k.keyword))[:10]

    by_category = []
    for category in categories:
        scoped = [k for k in keywords if k.category_id == category.id]
        by_category.append({
            "category_id": category.id,
            "category_name": category.name,
            "total_keywords": len(scoped),
            "active_keywords": sum(1 for k in scoped if k.is_active),
            "crisis_detection_enabled": category.crisis_detection_enabled
        })

    return {
        "overview": {
            "total_keywords": total,
            "active_keywords": sum(1 for k in keywords if k.is_active),
            "global_keywords": sum(1 for k in keywords if k.category_id is None),
            "category_specific": sum(1 for k in keywords if k.category_id is not None)
        },
        "by_severity": by_severity,
        "trigger_activity": {
            "timeframe_days": timeframe_days,
            "total_triggers": total_triggers,
            "recent_triggers": sum(
                k.trigger_count or 0 for k in keywords
                if k.last_triggered_at and k.last_triggered_at >= recent_since
            ),
            "most_triggered": [
                {
                    "id": k.id,
                    "keyword": k.keyword,
                    "severity_level": k.severity_level,
                    "trigger_count": k.trigger_count or 0,
                    "last_triggered_at": k.last_triggered_at.isoformat() if k.last_triggered_at else None
                }
                for k in most_triggered
            ],
            "least_triggered": sum(
                1 for k in keywords
                if not k.trigger_count or (k.last_triggered_at and k.last_triggered_at < stale_before)
            )
        },
        "by_category": by_category,
        "detection_effectiveness": {
            "keywords_with_triggers": len(triggered),
            "unused_keywords": total - len(triggered),
            "avg_triggers_per_keyword": round(total_triggers / total, 2) if total else 0
        }
    }
