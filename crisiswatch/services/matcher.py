"""
危机关键词匹配
纯函数实现，只读取关键词快照，不修改任何状态，可在多个请求间并发调用
"""
import re
from dataclasses import dataclass
from functools import lru_cache
from typing import Iterable, List, Optional
from sqlalchemy.ext.asyncio import AsyncSession

from crisiswatch.models import CrisisKeyword
from crisiswatch.services import keyword_store


@dataclass(frozen=True)
class RawMatch:
    """一个在文本中命中的关键词（无论出现多少次都只有一条）"""
    keyword: CrisisKeyword


@lru_cache(maxsize=1024)
def compile_exact_pattern(keyword: str) -> Optional[re.Pattern]:
    """
    完整词匹配的正则
    两侧必须是字符串边界或非字母数字字符；多词关键词按连续词序列匹配，
    词之间允许任意非字母数字字符（空白、连字符、下划线、标点）
    """
    tokens = keyword.split()
    if not tokens:
        return None

    body = r"[\W_]+".join(re.escape(token) for token in tokens)
    # [^\W_] 即字母或数字，下划线视为分隔符
    return re.compile(r"(?<![^\W_])" + body + r"(?![^\W_])")


def keyword_matches(keyword: CrisisKeyword, text: str) -> bool:
    needle = keyword.keyword or ""
    if not needle.strip() or not text:
        return False

    haystack = text
    if not keyword.case_sensitive:
        needle = needle.casefold()
        haystack = text.casefold()

    if keyword.exact_match:
        pattern = compile_exact_pattern(needle)
        return pattern is not None and pattern.search(haystack) is not None

    if len(needle) > len(haystack):
        return False
    return needle in haystack


def match_keywords(text: str, keywords: Iterable[CrisisKeyword]) -> List[RawMatch]:
    """
    在文本中匹配关键词

    Args:
        text: 待检测文本，非字符串或空文本视为无匹配
        keywords: 关键词快照，停用的关键词会被跳过

    Returns:
        命中的关键词列表，每个关键词最多一条
    """
    if not isinstance(text, str) or not text:
        return []

    matches = []
    seen = set()
    for keyword in keywords:
        if keyword.is_active is False:
            continue

        identity = keyword.id if keyword.id is not None else id(keyword)
        if identity in seen:
            continue

        if keyword_matches(keyword, text):
            seen.add(identity)
            matches.append(RawMatch(keyword=keyword))

    return matches


async def match(db: AsyncSession, text: str, category_id: Optional[int] = None) -> List[RawMatch]:
    """按分类作用域（全局 + 指定分类）加载启用的关键词并匹配"""
    keywords = await keyword_store.list_active(db, category_id)
    return match_keywords(text, keywords)


def check_keyword_match(
    keyword: str,
    text: str,
    exact_match: bool = False,
    case_sensitive: bool = False
) -> bool:
    """
    管理端单个关键词试匹配，不访问数据库
    """
    candidate = CrisisKeyword(
        keyword=keyword_store.normalize_keyword(keyword),
        exact_match=exact_match,
        case_sensitive=case_sensitive,
        is_active=True
    )
    return keyword_matches(candidate, text) if isinstance(text, str) else False
