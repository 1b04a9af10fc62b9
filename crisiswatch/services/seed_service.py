from typing import Dict, List
from sqlalchemy.ext.asyncio import AsyncSession

from crisiswatch.models import CrisisKeyword
from crisiswatch.services import keyword_store
from crisiswatch.core.logging import get_logger

logger = get_logger(__name__)


# 系统默认的全局危机关键词
DEFAULT_KEYWORDS: List[Dict] = [
    # critical
    {"keyword": "suicide", "severity_level": "critical", "exact_match": False},
    {"keyword": "kill myself", "severity_level": "critical", "exact_match": True},
    {"keyword": "end my life", "severity_level": "critical", "exact_match": True},
    {"keyword": "want to die", "severity_level": "critical", "exact_match": True},
    {"keyword": "suicidal", "severity_level": "critical", "exact_match": False},
    # high
    {"keyword": "self-harm", "severity_level": "high", "exact_match": False},
    {"keyword": "cutting", "severity_level": "high", "exact_match": False},
    {"keyword": "hurt myself", "severity_level": "high", "exact_match": True},
    {"keyword": "emergency", "severity_level": "high", "exact_match": False},
    {"keyword": "crisis", "severity_level": "high", "exact_match": False},
    # medium
    {"keyword": "depressed", "severity_level": "medium", "exact_match": False},
    {"keyword": "anxiety", "severity_level": "medium", "exact_match": False},
    {"keyword": "panic attack", "severity_level": "medium", "exact_match": True},
    {"keyword": "overwhelmed", "severity_level": "medium", "exact_match": False},
    {"keyword": "hopeless", "severity_level": "medium", "exact_match": False},
    # low
    {"keyword": "stressed", "severity_level": "low", "exact_match": False},
    {"keyword": "worried", "severity_level": "low", "exact_match": False},
    {"keyword": "struggling", "severity_level": "low", "exact_match": False},
]


async def seed_default_keywords(db: AsyncSession) -> int:
    """
    写入缺失的默认关键词，已存在的保持不变

    Returns:
        新增数量
    """
    created = 0
    for item in DEFAULT_KEYWORDS:
        if await keyword_store.find_keyword(db, item["keyword"], None):
            continue
        db.add(CrisisKeyword(
            keyword=item["keyword"],
            severity_level=item["severity_level"],
            category_id=None,
            is_active=True,
            exact_match=item["exact_match"],
            case_sensitive=False,
            trigger_count=0
        ))
        created += 1

    await db.commit()
    logger.info(f"默认危机关键词写入完成: created={created}, total={len(DEFAULT_KEYWORDS)}")
    return created
