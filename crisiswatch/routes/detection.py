from typing import List, Optional
from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from crisiswatch.config import settings
from crisiswatch.models import get_db
from crisiswatch.services import detection_service
from crisiswatch.services.notification_service import NotificationDispatcher, get_notification_dispatcher

router = APIRouter(prefix="/api/detection", tags=["危机检测"])


class DetectionRequest(BaseModel):
    text: str = Field(..., max_length=settings.MAX_DETECTION_TEXT_LENGTH)
    category_id: Optional[int] = None


class DetectedKeyword(BaseModel):
    keyword: str
    severity_level: str
    weight: int


class DetectionResponse(BaseModel):
    is_crisis: bool
    crisis_score: int
    detected_keywords: List[DetectedKeyword]


@router.post("", response_model=DetectionResponse)
async def detect_crisis(
    item: DetectionRequest,
    db: AsyncSession = Depends(get_db),
    dispatcher: NotificationDispatcher = Depends(get_notification_dispatcher)
):
    """
    正式检测：工单创建/回复流程在保存内容前调用
    会记录关键词触发统计，判定为危机时请求通知
    """
    result = await detection_service.detect(
        db,
        item.text,
        category_id=item.category_id,
        dispatcher=dispatcher
    )
    return result.to_dict()


@router.post("/test")
async def test_crisis_detection(item: DetectionRequest, db: AsyncSession = Depends(get_db)):
    """
    管理端测试检测，不修改任何数据
    """
    return await detection_service.test_detection(db, item.text, category_id=item.category_id)
