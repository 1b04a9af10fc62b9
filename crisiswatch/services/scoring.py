from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Tuple

from crisiswatch.models import SEVERITY_LEVELS, SEVERITY_WEIGHTS
from crisiswatch.services.matcher import RawMatch

# 命中这些严重程度的关键词即判定为危机
CRISIS_SEVERITIES = frozenset({"critical", "high"})

# 达到该分数需要立即通知（任意一个 critical 关键词即可达到）
IMMEDIATE_NOTIFICATION_SCORE = SEVERITY_WEIGHTS["critical"]


@dataclass(frozen=True)
class MatchedKeyword:
    id: Optional[int]
    keyword: str
    severity_level: str
    weight: int
    category_id: Optional[int] = None

    def to_dict(self) -> dict:
        return {
            "keyword": self.keyword,
            "severity_level": self.severity_level,
            "weight": self.weight
        }


@dataclass(frozen=True)
class DetectionResult:
    """
    一次检测的结果，不持久化

    is_crisis 只取决于是否命中 critical/high 关键词；
    crisis_score 为命中关键词权重之和，用于排序和分级
    """
    is_crisis: bool = False
    crisis_score: int = 0
    detected_keywords: Tuple[MatchedKeyword, ...] = field(default_factory=tuple)

    @property
    def requires_immediate_notification(self) -> bool:
        return self.crisis_score >= IMMEDIATE_NOTIFICATION_SCORE

    @property
    def recommendation(self) -> str:
        return "Immediate attention required" if self.is_crisis else "Normal processing"

    @property
    def keyword_ids(self) -> List[int]:
        return [m.id for m in self.detected_keywords if m.id is not None]

    def severity_breakdown(self) -> Dict[str, dict]:
        breakdown = {}
        for level in reversed(SEVERITY_LEVELS):
            group = [m for m in self.detected_keywords if m.severity_level == level]
            breakdown[level] = {
                "count": len(group),
                "keywords": [m.keyword for m in group],
                "total_weight": sum(m.weight for m in group)
            }
        return breakdown

    def to_dict(self) -> dict:
        return {
            "is_crisis": self.is_crisis,
            "crisis_score": self.crisis_score,
            "detected_keywords": [m.to_dict() for m in self.detected_keywords]
        }


def score(raw_matches: Iterable[RawMatch]) -> DetectionResult:
    """
    根据命中的关键词计算危机分数
    同一关键词只计一次，结果与匹配顺序无关
    """
    matched = {}
    for raw in raw_matches:
        keyword = raw.keyword
        identity = keyword.id if keyword.id is not None else (keyword.keyword, keyword.category_id)
        if identity in matched:
            continue
        matched[identity] = MatchedKeyword(
            id=keyword.id,
            keyword=keyword.keyword,
            severity_level=keyword.severity_level,
            weight=keyword.severity_weight,
            category_id=keyword.category_id
        )

    detected = tuple(sorted(
        matched.values(),
        key=lambda m: (-m.weight, m.keyword, m.category_id or 0, m.id or 0)
    ))

    return DetectionResult(
        is_crisis=any(m.severity_level in CRISIS_SEVERITIES for m in detected),
        crisis_score=sum(m.weight for m in detected),
        detected_keywords=detected
    )
