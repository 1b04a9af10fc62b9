from datetime import datetime
from typing import Iterable, Optional
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import update

from crisiswatch.models import CrisisKeyword
from crisiswatch.services import keyword_store
from crisiswatch.core.logging import get_logger

logger = get_logger(__name__)


async def record(db: AsyncSession, keyword_ids: Iterable[int]) -> int:
    """
    记录关键词被正式检测命中

    使用 trigger_count = trigger_count + 1 的原子更新，
    并发提交同一关键词不会丢失计数。只在正式检测路径调用，测试检测不调用。

    Args:
        keyword_ids: 本次检测命中的关键词 ID，重复 ID 只计一次

    Returns:
        实际更新的关键词数量
    """
    ids = sorted({int(keyword_id) for keyword_id in keyword_ids if keyword_id is not None})
    if not ids:
        return 0

    stmt = (
        update(CrisisKeyword)
        .where(CrisisKeyword.id.in_(ids))
        .values(
            trigger_count=CrisisKeyword.trigger_count + 1,
            last_triggered_at=datetime.utcnow(),
            # 触发统计不算作内容修改
            updated_at=CrisisKeyword.updated_at
        )
        .execution_options(synchronize_session=False)
    )

    try:
        result = await db.execute(stmt)
        await db.commit()
    except Exception:
        await db.rollback()
        raise

    logger.debug(f"关键词触发已记录: ids={ids}, updated={result.rowcount}")
    return result.rowcount


async def reset_trigger_counts(
    db: AsyncSession,
    keyword_ids: Iterable[int],
    reset_by: Optional[int] = None
) -> int:
    """
    管理员清零触发统计
    这是 trigger_count 唯一允许减少的操作，会写入审计日志

    Returns:
        被清零的关键词数量
    """
    ids = await keyword_store.ensure_keywords_exist(db, keyword_ids)

    stmt = (
        update(CrisisKeyword)
        .where(CrisisKeyword.id.in_(ids))
        .values(trigger_count=0, last_triggered_at=None, updated_by=reset_by)
        .execution_options(synchronize_session="fetch")
    )

    try:
        await db.execute(stmt)
        await db.commit()
    except Exception:
        await db.rollback()
        raise

    logger.warning(f"[AUDIT] 关键词触发统计已清零: ids={ids}, reset_by={reset_by}")
    return len(ids)
