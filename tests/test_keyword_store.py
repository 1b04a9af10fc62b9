import pytest

from crisiswatch.models import CrisisKeyword
from crisiswatch.services import keyword_store
from crisiswatch.services.keyword_store import (
    KeywordValidationError,
    InvalidSeverityError,
    DuplicateKeywordError,
    KeywordNotFoundError,
)


class TestCreateKeyword:
    async def test_create_normalizes_text(self, db_session):
        keyword = await keyword_store.create_keyword(db_session, "  Kill Myself ", "critical", created_by=7)

        assert keyword.id is not None
        assert keyword.keyword == "kill myself"
        assert keyword.trigger_count == 0
        assert keyword.last_triggered_at is None
        assert keyword.is_active is True
        assert keyword.exact_match is False
        assert keyword.case_sensitive is False
        assert keyword.created_by == 7

    async def test_duplicate_in_same_category(self, db_session, category):
        await keyword_store.create_keyword(db_session, "crisis", "high", category_id=category.id)

        with pytest.raises(DuplicateKeywordError):
            await keyword_store.create_keyword(db_session, "  CRISIS", "low", category_id=category.id)

        # 全局作用域与分类作用域互不冲突
        global_keyword = await keyword_store.create_keyword(db_session, "crisis", "high")
        assert global_keyword.category_id is None

    async def test_duplicate_global_keyword(self, db_session):
        await keyword_store.create_keyword(db_session, "suicidal", "critical")
        with pytest.raises(DuplicateKeywordError):
            await keyword_store.create_keyword(db_session, "Suicidal", "critical")

    async def test_same_text_in_different_categories(self, db_session, category, other_category):
        await keyword_store.create_keyword(db_session, "failing", "low", category_id=category.id)
        await keyword_store.create_keyword(db_session, "failing", "medium", category_id=other_category.id)

        keywords = await keyword_store.list_keywords(db_session)
        assert len(keywords) == 2

    @pytest.mark.parametrize("severity", ["urgent", "", None, "CRITICAL!", 3])
    async def test_invalid_severity(self, db_session, severity):
        with pytest.raises(InvalidSeverityError):
            await keyword_store.create_keyword(db_session, "hopeless", severity)
        assert await keyword_store.list_keywords(db_session) == []

    async def test_severity_is_normalized(self, db_session):
        keyword = await keyword_store.create_keyword(db_session, "hopeless", "Medium")
        assert keyword.severity_level == "medium"

    @pytest.mark.parametrize("text", ["", "   ", None, "x" * 256])
    async def test_invalid_text(self, db_session, text):
        with pytest.raises(KeywordValidationError) as exc_info:
            await keyword_store.create_keyword(db_session, text, "low")
        assert exc_info.value.field == "keyword"

    async def test_unknown_category(self, db_session):
        with pytest.raises(KeywordValidationError) as exc_info:
            await keyword_store.create_keyword(db_session, "crisis", "high", category_id=999)
        assert exc_info.value.field == "category_id"

    async def test_response_action_too_long(self, db_session):
        with pytest.raises(KeywordValidationError) as exc_info:
            await keyword_store.create_keyword(db_session, "crisis", "high", response_action="x" * 1001)
        assert exc_info.value.field == "response_action"

    async def test_notification_rules(self, db_session):
        keyword = await keyword_store.create_keyword(
            db_session, "overdose", "critical",
            notification_rules={"notify_admins": True, "auto_escalate": True}
        )
        assert keyword.rules.notify_admins is True
        assert keyword.rules.auto_escalate is True
        assert keyword.rules.email_alerts is False

    async def test_unknown_notification_rule_rejected(self, db_session):
        with pytest.raises(KeywordValidationError) as exc_info:
            await keyword_store.create_keyword(
                db_session, "overdose", "critical", notification_rules={"page_everyone": True}
            )
        assert exc_info.value.field == "notification_rules"


class TestListActive:
    async def test_global_and_category_union(self, db_session, category, other_category):
        await keyword_store.create_keyword(db_session, "suicide", "critical")
        await keyword_store.create_keyword(db_session, "exam stress", "low", category_id=category.id)
        await keyword_store.create_keyword(db_session, "homesick", "low", category_id=other_category.id)
        await keyword_store.create_keyword(db_session, "crisis", "high", is_active=False)

        global_only = await keyword_store.list_active(db_session)
        assert [k.keyword for k in global_only] == ["suicide"]

        scoped = await keyword_store.list_active(db_session, category.id)
        assert {k.keyword for k in scoped} == {"suicide", "exam stress"}

    async def test_ordered_by_severity(self, db_session):
        await keyword_store.create_keyword(db_session, "worried", "low")
        await keyword_store.create_keyword(db_session, "suicide", "critical")
        await keyword_store.create_keyword(db_session, "hopeless", "medium")

        keywords = await keyword_store.list_active(db_session)
        assert [k.severity_level for k in keywords] == ["critical", "medium", "low"]


class TestUpdateAndDelete:
    async def test_update_fields(self, db_session, category):
        keyword = await keyword_store.create_keyword(db_session, "cutting", "high")

        updated = await keyword_store.update_keyword(
            db_session, keyword.id,
            keyword="Cutting Myself",
            severity_level="critical",
            category_id=category.id,
            exact_match=True,
            updated_by=3
        )
        assert updated.keyword == "cutting myself"
        assert updated.severity_level == "critical"
        assert updated.category_id == category.id
        assert updated.exact_match is True
        assert updated.updated_by == 3

    async def test_update_back_to_global(self, db_session, category):
        keyword = await keyword_store.create_keyword(db_session, "cutting", "high", category_id=category.id)
        updated = await keyword_store.update_keyword(db_session, keyword.id, category_id=None)
        assert updated.category_id is None

    async def test_update_keeps_unset_fields(self, db_session):
        keyword = await keyword_store.create_keyword(
            db_session, "cutting", "high", response_action="Call counselor", exact_match=True
        )
        updated = await keyword_store.update_keyword(db_session, keyword.id, is_active=False)

        assert updated.is_active is False
        assert updated.exact_match is True
        assert updated.response_action == "Call counselor"
        assert updated.severity_level == "high"

    async def test_update_to_duplicate(self, db_session):
        await keyword_store.create_keyword(db_session, "hopeless", "medium")
        keyword = await keyword_store.create_keyword(db_session, "helpless", "medium")

        with pytest.raises(DuplicateKeywordError):
            await keyword_store.update_keyword(db_session, keyword.id, keyword="HOPELESS")

        unchanged = await keyword_store.get_keyword(db_session, keyword.id)
        assert unchanged.keyword == "helpless"

    async def test_update_invalid_severity_applies_nothing(self, db_session):
        keyword = await keyword_store.create_keyword(db_session, "hopeless", "medium")

        with pytest.raises(InvalidSeverityError):
            await keyword_store.update_keyword(db_session, keyword.id, keyword="despair", severity_level="huge")

        unchanged = await keyword_store.get_keyword(db_session, keyword.id)
        assert unchanged.keyword == "hopeless"

    async def test_update_missing(self, db_session):
        with pytest.raises(KeywordNotFoundError):
            await keyword_store.update_keyword(db_session, 404, severity_level="low")

    async def test_delete(self, db_session):
        keyword = await keyword_store.create_keyword(db_session, "hopeless", "medium")
        await keyword_store.delete_keyword(db_session, keyword.id)

        with pytest.raises(KeywordNotFoundError):
            await keyword_store.get_keyword(db_session, keyword.id)
        with pytest.raises(KeywordNotFoundError):
            await keyword_store.delete_keyword(db_session, keyword.id)

    async def test_toggle(self, db_session):
        keyword = await keyword_store.create_keyword(db_session, "hopeless", "medium")
        toggled = await keyword_store.toggle_keyword(db_session, keyword.id)
        assert toggled.is_active is False
        assert await keyword_store.list_active(db_session) == []


class TestBulkAction:
    async def _seed(self, db_session):
        return [
            await keyword_store.create_keyword(db_session, text, "low")
            for text in ("worried", "struggling", "stressed")
        ]

    async def test_deactivate_and_activate(self, db_session):
        keywords = await self._seed(db_session)
        ids = [k.id for k in keywords[:2]]

        assert await keyword_store.bulk_action(db_session, "deactivate", ids) == 2
        active = await keyword_store.list_active(db_session)
        assert [k.keyword for k in active] == ["stressed"]

        assert await keyword_store.bulk_action(db_session, "activate", ids) == 2
        assert len(await keyword_store.list_active(db_session)) == 3

    async def test_change_severity(self, db_session):
        keywords = await self._seed(db_session)
        await keyword_store.bulk_action(db_session, "change_severity", [keywords[0].id], severity_level="high")

        keyword = await keyword_store.get_keyword(db_session, keywords[0].id)
        assert keyword.severity_level == "high"

    async def test_change_severity_requires_valid_level(self, db_session):
        keywords = await self._seed(db_session)
        with pytest.raises(InvalidSeverityError):
            await keyword_store.bulk_action(db_session, "change_severity", [keywords[0].id])

    async def test_delete(self, db_session):
        keywords = await self._seed(db_session)
        assert await keyword_store.bulk_action(db_session, "delete", [k.id for k in keywords]) == 3
        assert await keyword_store.list_keywords(db_session) == []

    async def test_missing_id_applies_nothing(self, db_session):
        keywords = await self._seed(db_session)

        with pytest.raises(KeywordNotFoundError) as exc_info:
            await keyword_store.bulk_action(db_session, "delete", [keywords[0].id, 999])
        assert exc_info.value.keyword_ids == [999]
        assert len(await keyword_store.list_keywords(db_session)) == 3

    async def test_unknown_action(self, db_session):
        keywords = await self._seed(db_session)
        with pytest.raises(KeywordValidationError) as exc_info:
            await keyword_store.bulk_action(db_session, "archive", [keywords[0].id])
        assert exc_info.value.field == "action"


class TestStatistics:
    async def test_statistics(self, db_session, category):
        suicide = await keyword_store.create_keyword(db_session, "suicide", "critical")
        await keyword_store.create_keyword(db_session, "crisis", "high", is_active=False)
        await keyword_store.create_keyword(db_session, "exam stress", "low", category_id=category.id)

        from crisiswatch.services import trigger_recorder
        await trigger_recorder.record(db_session, [suicide.id])
        await trigger_recorder.record(db_session, [suicide.id])

        stats = await keyword_store.get_statistics(db_session)

        assert stats["overview"] == {
            "total_keywords": 3,
            "active_keywords": 2,
            "global_keywords": 2,
            "category_specific": 1
        }
        assert stats["by_severity"]["critical"] == {"count": 1, "total_triggers": 2}
        assert stats["trigger_activity"]["total_triggers"] == 2
        assert stats["trigger_activity"]["recent_triggers"] == 2
        assert stats["trigger_activity"]["most_triggered"][0]["keyword"] == "suicide"
        assert stats["trigger_activity"]["least_triggered"] == 2
        assert stats["by_category"][0]["category_name"] == category.name
        assert stats["by_category"][0]["total_keywords"] == 1
        assert stats["detection_effectiveness"]["keywords_with_triggers"] == 1
        assert stats["detection_effectiveness"]["unused_keywords"] == 2

    async def test_empty_statistics(self, db_session):
        stats = await keyword_store.get_statistics(db_session)
        assert stats["overview"]["total_keywords"] == 0
        assert stats["detection_effectiveness"]["avg_triggers_per_keyword"] == 0


async def test_storage_rejects_invalid_severity(db_session):
    """存储层 CHECK 约束兜底"""
    from sqlalchemy.exc import IntegrityError

    db_session.add(CrisisKeyword(keyword="bypass", severity_level="extreme"))
    with pytest.raises(IntegrityError):
        await db_session.commit()
    await db_session.rollback()


async def test_storage_rejects_duplicate_global_keyword(db_session):
    """唯一索引把 NULL 分类当作同一个全局作用域"""
    from sqlalchemy.exc import IntegrityError

    db_session.add(CrisisKeyword(keyword="crisis", severity_level="high"))
    await db_session.commit()

    db_session.add(CrisisKeyword(keyword="crisis", severity_level="low"))
    with pytest.raises(IntegrityError):
        await db_session.commit()
    await db_session.rollback()


async def test_seed_default_keywords(db_session):
    from crisiswatch.services import seed_default_keywords, DEFAULT_KEYWORDS

    await keyword_store.create_keyword(db_session, "suicide", "high")

    created = await seed_default_keywords(db_session)
    assert created == len(DEFAULT_KEYWORDS) - 1
    assert await seed_default_keywords(db_session) == 0

    # 已存在的关键词保持原配置
    existing = await keyword_store.find_keyword(db_session, "suicide")
    assert existing.severity_level == "high"
