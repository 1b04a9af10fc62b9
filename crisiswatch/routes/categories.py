from typing import List, Optional
from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from crisiswatch.models import get_db
from crisiswatch.services import category_service
from crisiswatch.services.category_service import CategoryError
from crisiswatch.routes.errors import to_http_exception

router = APIRouter(prefix="/api/categories", tags=["工单分类"])


class CategoryCreate(BaseModel):
    name: str
    slug: Optional[str] = None
    crisis_detection_enabled: bool = True


class CategoryResponse(BaseModel):
    id: int
    name: str
    slug: str
    is_active: bool
    crisis_detection_enabled: bool
    created_at: Optional[str] = None


@router.get("", response_model=List[CategoryResponse])
async def list_categories(db: AsyncSession = Depends(get_db)):
    categories = await category_service.list_categories(db)
    return [CategoryResponse(**category.to_dict()) for category in categories]


@router.post("", response_model=CategoryResponse, status_code=201)
async def create_category(item: CategoryCreate, db: AsyncSession = Depends(get_db)):
    try:
        category = await category_service.create_category(
            db,
            name=item.name,
            slug=item.slug,
            crisis_detection_enabled=item.crisis_detection_enabled
        )
    except CategoryError as e:
        raise to_http_exception(e)

    return CategoryResponse(**category.to_dict())
