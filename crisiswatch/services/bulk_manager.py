"""
关键词批量导入导出

导入逐条提交：单条失败只记录错误，不影响其他条目，也不回滚已成功的条目。
"""
import csv
import io
import json
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Union
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from crisiswatch.config import settings
from crisiswatch.models import CrisisKeyword
from crisiswatch.services import keyword_store, category_service
from crisiswatch.services.keyword_store import KeywordValidationError
from crisiswatch.core.logging import get_logger

logger = get_logger(__name__)


# 预置关键词集合
PREDEFINED_SETS: Dict[str, List[Dict[str, str]]] = {
    "mental_health": [
        {"keyword": "depression", "severity_level": "medium"},
        {"keyword": "anxiety", "severity_level": "medium"},
        {"keyword": "panic attack", "severity_level": "high"},
        {"keyword": "mental health crisis", "severity_level": "high"},
    ],
    "suicide_prevention": [
        {"keyword": "suicide", "severity_level": "critical"},
        {"keyword": "kill myself", "severity_level": "critical"},
        {"keyword": "end my life", "severity_level": "critical"},
        {"keyword": "want to die", "severity_level": "critical"},
        {"keyword": "suicidal thoughts", "severity_level": "critical"},
    ],
    "self_harm": [
        {"keyword": "self-harm", "severity_level": "high"},
        {"keyword": "cutting", "severity_level": "high"},
        {"keyword": "hurt myself", "severity_level": "high"},
        {"keyword": "self-injury", "severity_level": "high"},
    ],
    "general_crisis": [
        {"keyword": "emergency", "severity_level": "high"},
        {"keyword": "crisis", "severity_level": "high"},
        {"keyword": "urgent help", "severity_level": "high"},
        {"keyword": "immediate assistance", "severity_level": "high"},
    ],
}

EXPORT_FORMATS = ("csv", "json")

EXPORT_COLUMNS = ["keyword", "severity_level", "category", "is_active", "exact_match", "case_sensitive"]
STATS_COLUMNS = ["trigger_count", "last_triggered_at", "created_at"]

_TRUE_VALUES = {"1", "true", "yes", "y"}
_FALSE_VALUES = {"0", "false", "no", "n"}

# 表格软件会把这些字符开头的单元格解析为公式
_FORMULA_PREFIXES = ("=", "+", "-", "@", "\t", "\r")


@dataclass
class ImportItemError:
    keyword: str
    message: str
    row: Optional[int] = None

    def to_dict(self) -> dict:
        return {"keyword": self.keyword, "message": self.message, "row": self.row}


@dataclass
class ImportResult:
    imported_count: int = 0
    errors: List[ImportItemError] = field(default_factory=list)

    @property
    def total_processed(self) -> int:
        return self.imported_count + len(self.errors)

    def to_dict(self) -> dict:
        return {
            "imported_count": self.imported_count,
            "errors": [e.to_dict() for e in self.errors],
            "total_processed": self.total_processed
        }


def parse_bool(value: Any, default: bool, field_name: str) -> bool:
    if value is None or (isinstance(value, str) and not value.strip()):
        return default
    if isinstance(value, bool):
        return value

    text = str(value).strip().lower()
    if text in _TRUE_VALUES:
        return True
    if text in _FALSE_VALUES:
        return False
    raise KeywordValidationError(field_name, f"无法识别的布尔值: {value}")


async def _validate_import_scope(db: AsyncSession, category_id: Optional[int], default_severity: str) -> str:
    default_severity = keyword_store.validate_severity(default_severity, "default_severity")
    await keyword_store.validate_category(db, category_id)
    return default_severity


async def _import_item(
    db: AsyncSession,
    item: Dict[str, Any],
    category_id: Optional[int],
    default_severity: str,
    overwrite_existing: bool,
    user_id: Optional[int],
    result: ImportResult
) -> None:
    raw_keyword = item.get("keyword") or ""
    row = item.get("row")

    try:
        keyword_text = keyword_store.validate_keyword_text(raw_keyword)
        severity = keyword_store.validate_severity(item.get("severity_level") or default_severity)
        exact_match = parse_bool(item.get("exact_match"), False, "exact_match")
        case_sensitive = parse_bool(item.get("case_sensitive"), False, "case_sensitive")
        is_active = parse_bool(item.get("is_active"), True, "is_active")
        response_action = keyword_store.validate_response_action(item.get("response_action"))
    except KeywordValidationError as e:
        result.errors.append(ImportItemError(raw_keyword, e.message, row))
        return

    try:
        existing = await keyword_store.find_keyword(db, keyword_text, category_id)

        if existing and not overwrite_existing:
            result.errors.append(ImportItemError(keyword_text, f"关键词 '{keyword_text}' 已存在", row))
            return

        if existing:
            # 覆盖时只更新严重程度
            existing.severity_level = severity
            existing.updated_by = user_id
        else:
            db.add(CrisisKeyword(
                keyword=keyword_text,
                severity_level=severity,
                category_id=category_id,
                is_active=is_active,
                exact_match=exact_match,
                case_sensitive=case_sensitive,
                trigger_count=0,
                response_action=response_action,
                created_by=user_id
            ))

        await db.commit()
        result.imported_count += 1
    except IntegrityError:
        await db.rollback()
        result.errors.append(ImportItemError(keyword_text, f"关键词 '{keyword_text}' 已存在", row))
    except SQLAlchemyError as e:
        await db.rollback()
        logger.error(f"导入关键词失败: '{keyword_text}': {str(e)}")
        result.errors.append(ImportItemError(keyword_text, f"导入失败: {str(e)}", row))


async def import_items(
    db: AsyncSession,
    items: Iterable[Dict[str, Any]],
    category_id: Optional[int] = None,
    default_severity: str = "medium",
    overwrite_existing: bool = False,
    user_id: Optional[int] = None
) -> ImportResult:
    """
    逐条导入关键词

    Args:
        items: 每项至少包含 keyword，可选 severity_level/exact_match/case_sensitive/
               is_active/response_action/row
        category_id: 导入到的分类，None 为全局
        default_severity: 条目未指定严重程度时使用
        overwrite_existing: 已存在时是否覆盖严重程度
    """
    default_severity = await _validate_import_scope(db, category_id, default_severity)

    result = ImportResult()
    for item in items:
        await _import_item(db, item, category_id, default_severity, overwrite_existing, user_id, result)

    logger.info(
        f"关键词导入完成: imported={result.imported_count}, errors={len(result.errors)}, "
        f"category_id={category_id}"
    )
    return result


async def import_predefined_set(
    db: AsyncSession,
    set_name: str,
    category_id: Optional[int] = None,
    default_severity: str = "medium",
    overwrite_existing: bool = False,
    user_id: Optional[int] = None
) -> ImportResult:
    """导入预置关键词集合"""
    if set_name not in PREDEFINED_SETS:
        raise KeywordValidationError(
            "predefined_set",
            f"未知的预置集合: {set_name}，可选值为 {', '.join(PREDEFINED_SETS)}"
        )

    logger.info(f"导入预置关键词集合: {set_name}")
    return await import_items(
        db,
        PREDEFINED_SETS[set_name],
        category_id=category_id,
        default_severity=default_severity,
        overwrite_existing=overwrite_existing,
        user_id=user_id
    )


def parse_csv(content: Union[str, bytes]) -> List[Dict[str, Any]]:
    """
    解析关键词 CSV
    第一行为表头，必须包含 keyword 列；空行忽略

    Returns:
        导入条目列表，row 为 CSV 中的行号
    """
    if isinstance(content, bytes):
        if len(content) > settings.MAX_IMPORT_FILE_BYTES:
            raise KeywordValidationError("csv_file", "CSV 文件过大")
        try:
            content = content.decode("utf-8-sig")
        except UnicodeDecodeError:
            raise KeywordValidationError("csv_file", "CSV 文件必须使用 UTF-8 编码")

    reader = csv.reader(io.StringIO(content))
    header = next(reader, None)
    if not header:
        raise KeywordValidationError("csv_file", "CSV 文件为空")

    columns = [column.strip().lower() for column in header]
    if "keyword" not in columns:
        raise KeywordValidationError("csv_file", "CSV 缺少 keyword 列")

    items = []
    for values in reader:
        if not any(value.strip() for value in values):
            continue
        item = {column: value.strip() for column, value in zip(columns, values)}
        item["row"] = reader.line_num
        items.append(item)
    return items


async def import_csv(
    db: AsyncSession,
    content: Union[str, bytes],
    category_id: Optional[int] = None,
    default_severity: str = "medium",
    overwrite_existing: bool = False,
    user_id: Optional[int] = None
) -> ImportResult:
    """从 CSV 内容导入关键词"""
    items = parse_csv(content)
    logger.info(f"导入 CSV 关键词: rows={len(items)}")
    return await import_items(
        db,
        items,
        category_id=category_id,
        default_severity=default_severity,
        overwrite_existing=overwrite_existing,
        user_id=user_id
    )


def _yes_no(value: Optional[bool]) -> str:
    return "Yes" if value else "No"


async def export_keywords(
    db: AsyncSession,
    category_id: Union[int, str, None] = None,
    severity_level: Optional[str] = None,
    is_active: Optional[bool] = None,
    include_stats: bool = False
) -> List[Dict[str, Any]]:
    """
    导出关键词，具体格式由调用方决定（见 to_csv / to_json）
    """
    keywords = await keyword_store.list_keywords(
        db, category_id=category_id, severity_level=severity_level, is_active=is_active
    )
    category_names = await category_service.get_category_names(db, (k.category_id for k in keywords))

    rows = []
    for keyword in keywords:
        row = {
            "keyword": keyword.keyword,
            "severity_level": keyword.severity_level,
            "category": category_names.get(keyword.category_id, "Global") if keyword.category_id else "Global",
            "is_active": _yes_no(keyword.is_active),
            "exact_match": _yes_no(keyword.exact_match),
            "case_sensitive": _yes_no(keyword.case_sensitive),
        }
        if include_stats:
            row["trigger_count"] = keyword.trigger_count or 0
            row["last_triggered_at"] = (
                keyword.last_triggered_at.strftime("%Y-%m-%d %H:%M:%S") if keyword.last_triggered_at else ""
            )
            row["created_at"] = keyword.created_at.strftime("%Y-%m-%d %H:%M:%S") if keyword.created_at else ""
        rows.append(row)

    logger.info(f"导出关键词: count={len(rows)}, include_stats={include_stats}")
    return rows


def _escape_formula(value: Any) -> Any:
    if isinstance(value, str) and value.startswith(_FORMULA_PREFIXES):
        return f"'{value}"
    return value


def to_csv(rows: List[Dict[str, Any]], include_stats: bool = False) -> str:
    """
    序列化为 CSV
    以 = + - @ 等开头的单元格加单引号前缀，防止在表格软件中被当作公式执行
    """
    columns = EXPORT_COLUMNS + (STATS_COLUMNS if include_stats else [])
    buffer = io.StringIO()
    writer = csv.DictWriter(buffer, fieldnames=columns, extrasaction="ignore", lineterminator="\n")
    writer.writeheader()
    for row in rows:
        writer.writerow({column: _escape_formula(value) for column, value in row.items()})
    return buffer.getvalue()


def to_json(rows: List[Dict[str, Any]]) -> str:
    return json.dumps(rows, ensure_ascii=False, indent=2)


def export_filename(export_format: str) -> str:
    return f"crisis_keywords_export_{datetime.utcnow().strftime('%Y-%m-%d_%H-%M-%S')}.{export_format}"
