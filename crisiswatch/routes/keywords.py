from datetime import datetime
from typing import List, Optional, Union
from fastapi import APIRouter, Depends, File, Form, Header, HTTPException, Query, Response, UploadFile
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from crisiswatch.models import get_db, CrisisKeyword, NotificationRules
from crisiswatch.services import keyword_store, bulk_manager, trigger_recorder, matcher, category_service
from crisiswatch.services.keyword_store import KeywordError, GLOBAL_SCOPE
from crisiswatch.routes.errors import to_http_exception

router = APIRouter(prefix="/api/keywords", tags=["危机关键词"])


class KeywordCreate(BaseModel):
    keyword: str
    severity_level: str
    category_id: Optional[int] = None
    is_active: bool = True
    exact_match: bool = False
    case_sensitive: bool = False
    response_action: Optional[str] = None
    notification_rules: Optional[NotificationRules] = None


class KeywordUpdate(BaseModel):
    keyword: Optional[str] = None
    severity_level: Optional[str] = None
    category_id: Optional[int] = None
    is_active: Optional[bool] = None
    exact_match: Optional[bool] = None
    case_sensitive: Optional[bool] = None
    response_action: Optional[str] = None
    notification_rules: Optional[NotificationRules] = None


class KeywordResponse(BaseModel):
    id: int
    keyword: str
    severity_level: str
    severity_weight: int
    category_id: Optional[int] = None
    category_name: Optional[str] = None
    is_active: bool
    exact_match: bool
    case_sensitive: bool
    trigger_count: int
    last_triggered_at: Optional[str] = None
    response_action: Optional[str] = None
    notification_rules: NotificationRules
    created_by: Optional[int] = None
    updated_by: Optional[int] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None


class KeywordMatchResponse(BaseModel):
    keyword: str
    text: str
    is_match: bool


class BulkActionRequest(BaseModel):
    action: str
    keyword_ids: List[int]
    severity_level: Optional[str] = None


class ResetStatsRequest(BaseModel):
    keyword_ids: List[int]


class PredefinedImportRequest(BaseModel):
    predefined_set: str
    category_id: Optional[int] = None
    default_severity: str = "medium"
    overwrite_existing: bool = False


def parse_category_filter(category_id: Optional[str]) -> Union[int, str, None]:
    """category_id 查询参数：数字或 "global"""
    if category_id is None or category_id == "":
        return None
    if category_id == GLOBAL_SCOPE:
        return GLOBAL_SCOPE
    try:
        return int(category_id)
    except ValueError:
        raise HTTPException(
            status_code=400,
            detail={"field": "category_id", "message": "category_id 必须是数字或 global"}
        )


async def keyword_to_response(db: AsyncSession, keyword: CrisisKeyword) -> KeywordResponse:
    category_name = None
    if keyword.category_id is not None:
        names = await category_service.get_category_names(db, [keyword.category_id])
        category_name = names.get(keyword.category_id)
    return KeywordResponse(**keyword.to_dict(category_name=category_name))


@router.get("", response_model=List[KeywordResponse])
async def list_keywords(
    category_id: Optional[str] = Query(None, description="分类 ID，global 表示全局关键词"),
    severity_level: Optional[str] = None,
    is_active: Optional[bool] = None,
    db: AsyncSession = Depends(get_db)
):
    try:
        keywords = await keyword_store.list_keywords(
            db,
            category_id=parse_category_filter(category_id),
            severity_level=severity_level,
            is_active=is_active
        )
    except KeywordError as e:
        raise to_http_exception(e)

    names = await category_service.get_category_names(db, (k.category_id for k in keywords))
    return [KeywordResponse(**k.to_dict(category_name=names.get(k.category_id))) for k in keywords]


@router.get("/stats")
async def get_keyword_stats(
    timeframe_days: Optional[int] = Query(None, ge=1, le=3650),
    db: AsyncSession = Depends(get_db)
):
    return await keyword_store.get_statistics(db, timeframe_days=timeframe_days)


@router.get("/export")
async def export_keywords(
    format: str = Query("csv", description="导出格式 csv/json"),
    category_id: Optional[str] = None,
    severity_level: Optional[str] = None,
    is_active: Optional[bool] = None,
    include_stats: bool = False,
    db: AsyncSession = Depends(get_db)
):
    if format not in bulk_manager.EXPORT_FORMATS:
        raise HTTPException(status_code=400, detail={"field": "format", "message": "导出格式只支持 csv 或 json"})

    try:
        rows = await bulk_manager.export_keywords(
            db,
            category_id=parse_category_filter(category_id),
            severity_level=severity_level,
            is_active=is_active,
            include_stats=include_stats
        )
    except KeywordError as e:
        raise to_http_exception(e)

    filename = bulk_manager.export_filename(format)

    if format == "csv":
        return Response(
            content=bulk_manager.to_csv(rows, include_stats=include_stats),
            media_type="text/csv; charset=utf-8",
            headers={"Content-Disposition": f'attachment; filename="{filename}"'}
        )

    return {
        "keywords": rows,
        "filename": filename,
        "format": format,
        "count": len(rows),
        "exported_at": datetime.utcnow().isoformat()
    }


@router.post("/test-match", response_model=KeywordMatchResponse)
async def test_keyword_match(
    keyword: str = Query(..., description="要测试的关键词"),
    text: str = Query(..., description="测试文本"),
    exact_match: bool = False,
    case_sensitive: bool = False
):
    is_match = matcher.check_keyword_match(keyword, text, exact_match, case_sensitive)

    return {
        "keyword": keyword,
        "text": text,
        "is_match": is_match
    }


@router.post("/bulk")
async def bulk_keyword_action(
    item: BulkActionRequest,
    x_user_id: Optional[int] = Header(None),
    db: AsyncSession = Depends(get_db)
):
    try:
        affected = await keyword_store.bulk_action(
            db,
            action=item.action,
            keyword_ids=item.keyword_ids,
            severity_level=item.severity_level,
            user_id=x_user_id
        )
    except KeywordError as e:
        raise to_http_exception(e)

    return {
        "success": True,
        "action": item.action,
        "affected_count": affected
    }


@router.post("/reset-stats")
async def reset_keyword_stats(
    item: ResetStatsRequest,
    x_user_id: Optional[int] = Header(None),
    db: AsyncSession = Depends(get_db)
):
    try:
        affected = await trigger_recorder.reset_trigger_counts(db, item.keyword_ids, reset_by=x_user_id)
    except KeywordError as e:
        raise to_http_exception(e)

    return {
        "success": True,
        "reset_count": affected
    }


@router.post("/import/predefined")
async def import_predefined_keywords(
    item: PredefinedImportRequest,
    x_user_id: Optional[int] = Header(None),
    db: AsyncSession = Depends(get_db)
):
    try:
        result = await bulk_manager.import_predefined_set(
            db,
            set_name=item.predefined_set,
            category_id=item.category_id,
            default_severity=item.default_severity,
            overwrite_existing=item.overwrite_existing,
            user_id=x_user_id
        )
    except KeywordError as e:
        raise to_http_exception(e)

    return {"success": True, **result.to_dict()}


@router.post("/import/csv")
async def import_csv_keywords(
    csv_file: UploadFile = File(...),
    category_id: Optional[int] = Form(None),
    default_severity: str = Form("medium"),
    overwrite_existing: bool = Form(False),
    x_user_id: Optional[int] = Header(None),
    db: AsyncSession = Depends(get_db)
):
    content = await csv_file.read()

    try:
        result = await bulk_manager.import_csv(
            db,
            content,
            category_id=category_id,
            default_severity=default_severity,
            overwrite_existing=overwrite_existing,
            user_id=x_user_id
        )
    except KeywordError as e:
        raise to_http_exception(e)

    return {"success": True, **result.to_dict()}


@router.get("/{keyword_id}", response_model=KeywordResponse)
async def get_keyword(keyword_id: int, db: AsyncSession = Depends(get_db)):
    try:
        keyword = await keyword_store.get_keyword(db, keyword_id)
    except KeywordError as e:
        raise to_http_exception(e)

    return await keyword_to_response(db, keyword)


@router.post("", response_model=KeywordResponse, status_code=201)
async def create_keyword(
    item: KeywordCreate,
    x_user_id: Optional[int] = Header(None),
    db: AsyncSession = Depends(get_db)
):
    try:
        keyword = await keyword_store.create_keyword(
            db,
            keyword=item.keyword,
            severity_level=item.severity_level,
            category_id=item.category_id,
            is_active=item.is_active,
            exact_match=item.exact_match,
            case_sensitive=item.case_sensitive,
            response_action=item.response_action,
            notification_rules=item.notification_rules,
            created_by=x_user_id
        )
    except KeywordError as e:
        raise to_http_exception(e)

    return await keyword_to_response(db, keyword)


@router.put("/{keyword_id}", response_model=KeywordResponse)
async def update_keyword(
    keyword_id: int,
    item: KeywordUpdate,
    x_user_id: Optional[int] = Header(None),
    db: AsyncSession = Depends(get_db)
):
    # 只传递请求中显式出现的字段，category_id: null 表示改为全局
    changes = {name: getattr(item, name) for name in item.model_fields_set}

    try:
        keyword = await keyword_store.update_keyword(db, keyword_id, updated_by=x_user_id, **changes)
    except KeywordError as e:
        raise to_http_exception(e)

    return await keyword_to_response(db, keyword)


@router.delete("/{keyword_id}", status_code=204)
async def delete_keyword(keyword_id: int, db: AsyncSession = Depends(get_db)):
    try:
        await keyword_store.delete_keyword(db, keyword_id)
    except KeywordError as e:
        raise to_http_exception(e)

    return None


@router.post("/{keyword_id}/toggle", response_model=KeywordResponse)
async def toggle_keyword(
    keyword_id: int,
    x_user_id: Optional[int] = Header(None),
    db: AsyncSession = Depends(get_db)
):
    try:
        keyword = await keyword_store.toggle_keyword(db, keyword_id, updated_by=x_user_id)
    except KeywordError as e:
        raise to_http_exception(e)

    return await keyword_to_response(db, keyword)
