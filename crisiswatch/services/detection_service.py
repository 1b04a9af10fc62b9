"""
危机检测服务

- test_detection: 管理端测试，只读，不记录触发统计，不发送通知
- detect: 工单创建/回复时的正式检测，记录触发统计并在判定为危机时请求通知
"""
from typing import List, Optional
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.exc import SQLAlchemyError

from crisiswatch.models import NotificationRules
from crisiswatch.services import keyword_store, category_service, matcher, scoring, trigger_recorder
from crisiswatch.services.matcher import RawMatch
from crisiswatch.services.scoring import DetectionResult
from crisiswatch.services.notification_service import (
    CrisisAlert,
    NotificationDispatcher,
    NotificationError,
)
from crisiswatch.core.logging import get_logger

logger = get_logger(__name__)


def _evaluate(text: str, keywords) -> tuple:
    raw_matches = matcher.match_keywords(text, keywords)
    return raw_matches, scoring.score(raw_matches)


def build_alert(
    result: DetectionResult,
    raw_matches: List[RawMatch],
    category_id: Optional[int] = None,
    source: str = "ticket"
) -> CrisisAlert:
    """合并命中关键词的通知规则和处理建议"""
    rules = NotificationRules()
    actions = []
    for raw in raw_matches:
        rules = rules.merge(raw.keyword.rules)
        action = raw.keyword.response_action
        if action and action not in actions:
            actions.append(action)

    return CrisisAlert(
        result=result,
        category_id=category_id,
        rules=rules,
        response_actions=tuple(actions),
        source=source
    )


async def test_detection(db: AsyncSession, text: str, category_id: Optional[int] = None) -> dict:
    """
    测试检测（无副作用）

    Returns:
        检测结果及输入概况、严重程度分布、处理建议
    """
    text = text if isinstance(text, str) else ""
    keywords = await keyword_store.list_active(db, category_id)
    _, result = _evaluate(text, keywords)

    category_name = "Global"
    if category_id is not None:
        names = await category_service.get_category_names(db, [category_id])
        category_name = names.get(category_id, "Global")

    logger.info(
        f"危机检测测试完成: is_crisis={result.is_crisis}, score={result.crisis_score}, "
        f"detected={len(result.detected_keywords)}"
    )

    return {
        "input": {
            "text_length": len(text),
            "word_count": len(text.split()),
            "category_id": category_id,
            "category_name": category_name
        },
        "detection_results": {
            **result.to_dict(),
            "recommendation": result.recommendation
        },
        "keywords_tested": len(keywords),
        "recommendation_details": {
            "auto_flag_crisis": result.is_crisis,
            "suggested_priority": "Urgent" if result.is_crisis else "Medium",
            "immediate_notification": result.requires_immediate_notification
        },
        "severity_breakdown": result.severity_breakdown()
    }


async def detect(
    db: AsyncSession,
    text: str,
    category_id: Optional[int] = None,
    dispatcher: Optional[NotificationDispatcher] = None,
    source: str = "ticket"
) -> DetectionResult:
    """
    正式检测，供工单创建和回复流程在保存内容前同步调用

    记录触发统计或发送通知失败只记录日志，不影响检测结果的返回
    """
    keywords = await keyword_store.list_active(db, category_id)
    raw_matches, result = _evaluate(text, keywords)

    logger.info(
        f"危机检测完成: source={source}, text_length={len(text) if isinstance(text, str) else 0}, "
        f"is_crisis={result.is_crisis}, score={result.crisis_score}, keyword_ids={result.keyword_ids}"
    )

    if not result.detected_keywords:
        return result

    # 先构建告警：记录失败回滚后关键词对象会过期
    alert = build_alert(result, raw_matches, category_id, source) if result.is_crisis else None

    try:
        await trigger_recorder.record(db, result.keyword_ids)
    except SQLAlchemyError as e:
        logger.error(f"记录关键词触发统计失败: {str(e)}")

    if alert is not None and dispatcher is not None:
        try:
            await dispatcher.notify(alert)
        except NotificationError as e:
            logger.error(f"危机告警发送失败: {str(e)}")

    return result
