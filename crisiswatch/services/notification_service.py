from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional, Protocol, Tuple
import httpx
from tenacity import (
    retry,
    stop_after_attempt,
    wait_exponential,
    retry_if_exception_type,
    before_sleep_log,
)

from crisiswatch.config import settings
from crisiswatch.models import NotificationRules
from crisiswatch.services.scoring import DetectionResult
from crisiswatch.core.logging import get_logger

logger = get_logger(__name__)

# 网络层错误可重试，HTTP 状态码错误不重试
RETRYABLE_EXCEPTIONS = (httpx.TimeoutException, httpx.NetworkError, httpx.RemoteProtocolError)


class NotificationError(Exception):
    """通知异常基类"""
    pass


class NotificationConfigError(NotificationError):
    """通知配置错误"""
    pass


class NotificationSendError(NotificationError):
    """通知发送失败"""
    pass


@dataclass(frozen=True)
class CrisisAlert:
    """
    交给外部通知分发器的危机告警
    不包含用户提交的原文
    """
    result: DetectionResult
    category_id: Optional[int] = None
    rules: NotificationRules = field(default_factory=NotificationRules)
    response_actions: Tuple[str, ...] = ()
    source: str = "ticket"
    detected_at: datetime = field(default_factory=datetime.utcnow)

    @property
    def immediate(self) -> bool:
        return self.result.requires_immediate_notification

    def to_payload(self) -> dict:
        return {
            "event": "crisis_detected",
            "source": self.source,
            "category_id": self.category_id,
            "is_crisis": self.result.is_crisis,
            "crisis_score": self.result.crisis_score,
            "immediate": self.immediate,
            "detected_keywords": [m.to_dict() for m in self.result.detected_keywords],
            "notification_rules": self.rules.model_dump(),
            "response_actions": list(self.response_actions),
            "detected_at": self.detected_at.isoformat()
        }


class NotificationDispatcher(Protocol):
    """外部通知分发器接口，投递方式由实现决定"""

    async def notify(self, alert: CrisisAlert) -> None:
        ...


class LoggingNotificationDispatcher:
    """未配置 Webhook 时使用，只记录告警"""

    async def notify(self, alert: CrisisAlert) -> None:
        logger.warning(
            f"危机告警: score={alert.result.crisis_score}, immediate={alert.immediate}, "
            f"keyword_ids={alert.result.keyword_ids}, category_id={alert.category_id}"
        )


class WebhookNotificationDispatcher:
    """
    通过 Webhook 推送危机告警
    使用 httpx.AsyncClient 避免阻塞事件循环，tenacity 对网络错误自动重试
    """

    def __init__(
        self,
        webhook_url: str,
        timeout: Optional[int] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        if not webhook_url:
            raise NotificationConfigError("Webhook URL 未配置")
        self.webhook_url = webhook_url
        self.timeout = timeout or settings.NOTIFICATION_TIMEOUT
        self._transport = transport

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=1, max=5),
        retry=retry_if_exception_type(RETRYABLE_EXCEPTIONS),
        before_sleep=before_sleep_log(logger, log_level=20),  # INFO level
        reraise=True,
    )
    async def _post(self, payload: dict) -> None:
        async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
            response = await client.post(self.webhook_url, json=payload)
            response.raise_for_status()

    async def notify(self, alert: CrisisAlert) -> None:
        try:
            await self._post(alert.to_payload())
        except httpx.TimeoutException:
            logger.error("危机告警 Webhook 请求超时")
            raise NotificationSendError("请求超时")
        except httpx.ConnectError as e:
            logger.error(f"危机告警 Webhook 连接失败: {str(e)}")
            raise NotificationSendError(f"连接失败: {str(e)}")
        except httpx.HTTPStatusError as e:
            logger.error(f"危机告警 Webhook HTTP 错误: {e.response.status_code}")
            raise NotificationSendError(f"HTTP 错误: {e.response.status_code}")
        except httpx.HTTPError as e:
            # 其余传输层错误（读写中断、协议错误、URL 缺少协议等）
            logger.error(f"危机告警 Webhook 请求失败: {type(e).__name__}: {str(e)}")
            raise NotificationSendError(f"请求失败: {type(e).__name__}")
        except httpx.InvalidURL as e:
            logger.error(f"危机告警 Webhook URL 无效: {str(e)}")
            raise NotificationSendError("Webhook URL 无效")

        logger.info(f"危机告警已推送: score={alert.result.crisis_score}, immediate={alert.immediate}")


def get_notification_dispatcher() -> NotificationDispatcher:
    """
    根据配置选择通知分发器
    """
    if settings.NOTIFICATION_ENABLED and settings.NOTIFICATION_WEBHOOK_URL:
        return WebhookNotificationDispatcher(settings.NOTIFICATION_WEBHOOK_URL)
    return LoggingNotificationDispatcher()
