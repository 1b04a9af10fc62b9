#!/usr/bin/env python3
"""
写入默认危机关键词
功能：初始化数据库表，并补齐系统默认的全局危机关键词（已存在的不覆盖）

用法：python scripts/seed_keywords.py
"""

import asyncio

from crisiswatch.models import AsyncSessionLocal, init_db
from crisiswatch.services import seed_default_keywords
from crisiswatch.core.logging import setup_logging, get_logger

logger = get_logger(__name__)


async def main() -> int:
    await init_db()
    async with AsyncSessionLocal() as session:
        return await seed_default_keywords(session)


if __name__ == "__main__":
    setup_logging()
    created = asyncio.run(main())
    print(f"新增默认关键词: {created}")
