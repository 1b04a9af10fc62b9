from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, func, text

from crisiswatch.models import get_db, CrisisKeyword
from crisiswatch.core.logging import get_logger

logger = get_logger(__name__)

router = APIRouter(prefix="/api", tags=["系统管理"])


@router.get("/health")
async def health_check(db: AsyncSession = Depends(get_db)):
    """
    健康检查接口

    Returns:
        服务状态
    """
    try:
        await db.execute(text("SELECT 1"))
        database = "connected"
    except Exception as e:
        logger.error(f"数据库健康检查失败: {str(e)}")
        database = "disconnected"

    return {
        "status": "healthy" if database == "connected" else "degraded",
        "service": "CrisisWatch",
        "version": "1.0.0",
        "database": database
    }


@router.get("/status")
async def get_status(db: AsyncSession = Depends(get_db)):
    """
    获取系统状态

    Returns:
        关键词数量概况
    """
    total_result = await db.execute(select(func.count(CrisisKeyword.id)))
    active_result = await db.execute(
        select(func.count(CrisisKeyword.id)).where(CrisisKeyword.is_active == True)
    )

    return {
        "status": "running",
        "version": "1.0.0",
        "keywords": {
            "total": total_result.scalar() or 0,
            "active": active_result.scalar() or 0
        }
    }
