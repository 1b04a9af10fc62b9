from fastapi import HTTPException

from crisiswatch.services.category_service import CategoryError
from crisiswatch.services.keyword_store import KeywordError, KeywordNotFoundError


def to_http_exception(error: Exception) -> HTTPException:
    """
    将服务层异常转换为字段级的 HTTP 错误
    """
    if isinstance(error, KeywordNotFoundError):
        return HTTPException(status_code=404, detail={"field": error.field, "message": error.message})

    if isinstance(error, (KeywordError, CategoryError)):
        field = getattr(error, "field", None)
        message = getattr(error, "message", str(error))
        return HTTPException(status_code=400, detail={"field": field, "message": message})

    return HTTPException(status_code=500, detail={"field": None, "message": str(error)})
