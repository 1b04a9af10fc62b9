import re
from typing import Dict, Iterable, List, Optional
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from crisiswatch.models import TicketCategory
from crisiswatch.core.logging import get_logger

logger = get_logger(__name__)


class CategoryError(Exception):
    """工单分类异常"""

    def __init__(self, field: str, message: str):
        super().__init__(message)
        self.field = field
        self.message = message


def slugify(name: str) -> str:
    slug = re.sub(r"[^0-9a-z]+", "-", name.strip().lower())
    return slug.strip("-")


async def create_category(
    db: AsyncSession,
    name: str,
    slug: Optional[str] = None,
    crisis_detection_enabled: bool = True,
    is_active: bool = True
) -> TicketCategory:
    name = (name or "").strip()
    if not name:
        raise CategoryError("name", "分类名称不能为空")

    slug = slugify(slug or name)
    if not slug:
        raise CategoryError("slug", "无法根据名称生成分类标识")

    result = await db.execute(select(TicketCategory).where(TicketCategory.slug == slug))
    if result.scalar_one_or_none():
        raise CategoryError("slug", "该分类标识已存在")

    category = TicketCategory(
        name=name,
        slug=slug,
        crisis_detection_enabled=crisis_detection_enabled,
        is_active=is_active
    )
    db.add(category)
    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        raise CategoryError("slug", "该分类标识已存在")

    await db.refresh(category)
    logger.info(f"工单分类已创建: id={category.id}, slug={category.slug}")
    return category


async def get_category(db: AsyncSession, category_id: int) -> Optional[TicketCategory]:
    return await db.get(TicketCategory, category_id)


async def list_categories(db: AsyncSession) -> List[TicketCategory]:
    result = await db.execute(select(TicketCategory).order_by(TicketCategory.name))
    return list(result.scalars().all())


async def get_category_names(
    db: AsyncSession,
    category_ids: Optional[Iterable[int]] = None
) -> Dict[int, str]:
    """
    批量获取分类名称，用于导出和统计时展示

    Args:
        category_ids: 需要的分类 ID，为空时返回全部

    Returns:
        {分类 ID: 分类名称}
    """
    query = select(TicketCategory.id, TicketCategory.name)
    if category_ids is not None:
        ids = {cid for cid in category_ids if cid is not None}
        if not ids:
            return {}
        query = query.where(TicketCategory.id.in_(ids))

    result = await db.execute(query)
    return {row.id: row.name for row in result.all()}
