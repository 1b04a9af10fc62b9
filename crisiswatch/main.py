from contextlib import asynccontextmanager
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from crisiswatch.config import settings
from crisiswatch.models import init_db, async_engine, AsyncSessionLocal
from crisiswatch.services import keyword_store
from crisiswatch.routes import (
    keywords_router,
    detection_router,
    categories_router,
    system_router
)
from crisiswatch.core.logging import setup_logging, get_logger

# 初始化日志系统
setup_logging(debug=settings.DEBUG, log_file=settings.LOG_FILE)
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    应用生命周期管理
    """
    # === Startup ===
    logger.info("CrisisWatch 启动中...")

    await init_db()
    logger.info("数据库初始化完成")

    async with AsyncSessionLocal() as session:
        active_keywords = await keyword_store.list_active(session)
    if not active_keywords:
        logger.warning("没有启用的全局危机关键词，可运行 scripts/seed_keywords.py 写入默认关键词")
    else:
        logger.info(f"已加载全局危机关键词: {len(active_keywords)} 个")

    if settings.NOTIFICATION_ENABLED and settings.NOTIFICATION_WEBHOOK_URL:
        logger.info("危机告警通过 Webhook 推送")
    else:
        logger.info("危机告警 Webhook 未启用，告警只写入日志")

    yield  # 应用运行中

    # === Shutdown ===
    await async_engine.dispose()
    logger.info("CrisisWatch 已关闭")


def create_app() -> FastAPI:
    """
    创建 FastAPI 应用实例

    Returns:
        配置好的 FastAPI 应用
    """
    app = FastAPI(
        title="CrisisWatch API",
        description="工单危机关键词检测与评分服务",
        version="1.0.0",
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan
    )

    # 配置 CORS - 从环境变量读取允许的域名
    allowed_origins = [origin.strip() for origin in settings.ALLOWED_ORIGINS.split(",") if origin.strip()]

    app.add_middleware(
        CORSMiddleware,
        allow_origins=allowed_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization", "Accept", "X-User-Id"],
    )

    # 注册路由
    app.include_router(keywords_router)
    app.include_router(detection_router)
    app.include_router(categories_router)
    app.include_router(system_router)
    logger.info("路由注册完成")

    return app


# 创建应用实例
app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "crisiswatch.main:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=settings.DEBUG
    )
