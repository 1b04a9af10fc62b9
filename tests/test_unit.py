"""
CrisisWatch - 单元测试（不访问数据库）
"""

import itertools

import pytest

from crisiswatch.services import matcher, scoring


def test_config_settings():
    """测试配置加载"""
    from crisiswatch.config import settings

    assert settings.HOST == "0.0.0.0"
    assert settings.PORT == 8000
    assert settings.MAX_DETECTION_TEXT_LENGTH == 5000
    assert "sqlite" in settings.DATABASE_URL


def test_logging_module():
    """测试日志模块"""
    from crisiswatch.core.logging import setup_logging, get_logger, LoggingConfig

    LoggingConfig.reset()
    setup_logging(debug=True)

    logger = get_logger("test_module")
    assert logger is not None
    logger.debug("调试日志")
    logger.warning("警告日志")

    LoggingConfig.reset()


class TestSubstringMatching:
    def test_substring_inside_longer_word(self, keyword_factory):
        keywords = [keyword_factory("stress")]
        matches = matcher.match_keywords("I am so stressed out", keywords)
        assert [m.keyword.keyword for m in matches] == ["stress"]

    def test_case_insensitive_by_default(self, keyword_factory):
        keywords = [keyword_factory("hopeless")]
        assert matcher.match_keywords("Feeling HOPELESS today", keywords)

    def test_case_sensitive_keyword(self, keyword_factory):
        keywords = [keyword_factory("ptsd", case_sensitive=True)]
        assert matcher.match_keywords("my ptsd is back", keywords)
        assert matcher.match_keywords("my PTSD is back", keywords) == []

    def test_anxious_does_not_match_anxiety(self, keyword_factory):
        keywords = [keyword_factory("anxiety", "medium")]
        assert matcher.match_keywords("I feel anxious lately", keywords) == []

    def test_repeated_occurrences_produce_one_match(self, keyword_factory):
        keywords = [keyword_factory("help")]
        matches = matcher.match_keywords("help help help me please, help", keywords)
        assert len(matches) == 1

    def test_inactive_keyword_is_skipped(self, keyword_factory):
        keywords = [keyword_factory("crisis", is_active=False)]
        assert matcher.match_keywords("this is a crisis", keywords) == []

    def test_keyword_longer_than_text(self, keyword_factory):
        keywords = [keyword_factory("mental health crisis")]
        assert matcher.match_keywords("crisis", keywords) == []

    def test_unicode_text(self, keyword_factory):
        keywords = [keyword_factory("désespéré"), keyword_factory("绝望")]
        matches = matcher.match_keywords("Je suis DÉSESPÉRÉ, 我很绝望", keywords)
        assert {m.keyword.keyword for m in matches} == {"désespéré", "绝望"}

    @pytest.mark.parametrize("text", ["", None, 42, b"kill myself", ["kill myself"]])
    def test_malformed_text_never_matches(self, keyword_factory, text):
        keywords = [keyword_factory("kill myself", "critical")]
        assert matcher.match_keywords(text, keywords) == []


class TestExactMatching:
    def test_panic_attack_phrase(self, keyword_factory):
        keywords = [keyword_factory("panic attack", "high", exact_match=True)]
        assert matcher.match_keywords("I had a panic attack yesterday", keywords)
        assert matcher.match_keywords("no panic attacks here", keywords) == []

    def test_punctuation_is_a_boundary(self, keyword_factory):
        keywords = [keyword_factory("hurt myself", exact_match=True)]
        assert matcher.match_keywords("I might hurt myself.", keywords)
        assert matcher.match_keywords("(hurt myself)", keywords)
        assert matcher.match_keywords("hurt myself_now", keywords)
        assert matcher.match_keywords("hurt_myself", keywords)
        assert matcher.match_keywords("hurtmyself", keywords) == []

    @pytest.mark.parametrize("text", ["panic-attack", "PANIC_ATTACK", "panic... attack!", "a panic / attack"])
    def test_tokens_joined_by_any_separator(self, keyword_factory, text):
        keywords = [keyword_factory("panic attack", "high", exact_match=True)]
        assert matcher.match_keywords(text, keywords)

    def test_word_must_not_be_embedded(self, keyword_factory):
        keywords = [keyword_factory("cut", exact_match=True)]
        assert matcher.match_keywords("I cut again", keywords)
        assert matcher.match_keywords("haircut appointment", keywords) == []
        assert matcher.match_keywords("cutting", keywords) == []

    def test_multi_word_allows_any_whitespace(self, keyword_factory):
        keywords = [keyword_factory("want to die", exact_match=True)]
        assert matcher.match_keywords("I  want\tto\ndie", keywords)
        assert matcher.match_keywords("I want to diet", keywords) == []

    def test_hyphenated_keyword(self, keyword_factory):
        keywords = [keyword_factory("self-harm", exact_match=True)]
        assert matcher.match_keywords("thoughts of self-harm again", keywords)
        assert matcher.match_keywords("myself-harmless", keywords) == []

    def test_exact_match_is_case_insensitive(self, keyword_factory):
        keywords = [keyword_factory("kill myself", exact_match=True)]
        assert matcher.match_keywords("I want to KILL MYSELF", keywords)


class TestStoredNotificationRules:
    def test_unknown_keys_are_ignored(self, keyword_factory):
        keyword = keyword_factory("crisis", "high")
        keyword.notification_rules = {"notify_admins": True, "escalate_to": "on-call"}

        assert keyword.rules.notify_admins is True
        assert keyword.to_dict()["notification_rules"]["notify_admins"] is True

    def test_list_form(self):
        from crisiswatch.models import NotificationRules

        rules = NotificationRules.from_stored(["notify_counselors", "page_everyone"])
        assert rules.notify_counselors is True
        assert rules.notify_admins is False

    @pytest.mark.parametrize("value", [None, "notify_admins", 7])
    def test_unreadable_value_gives_defaults(self, value):
        from crisiswatch.models import NotificationRules

        assert NotificationRules.from_stored(value) == NotificationRules()


def test_check_keyword_match():
    """测试管理端单个关键词试匹配"""
    assert matcher.check_keyword_match("  Panic Attack ", "a panic attack", exact_match=True)
    assert not matcher.check_keyword_match("panic attack", "panic attacks", exact_match=True)
    assert matcher.check_keyword_match("panic", "PANICKING")
    assert not matcher.check_keyword_match("panic", None)


class TestScoring:
    def test_weights(self, keyword_factory):
        keywords = [
            keyword_factory("a", "critical"),
            keyword_factory("b", "high"),
            keyword_factory("c", "medium"),
            keyword_factory("d", "low"),
        ]
        result = scoring.score(matcher.RawMatch(k) for k in keywords)
        assert result.crisis_score == 1111
        assert [m.weight for m in result.detected_keywords] == [1000, 100, 10, 1]

    def test_no_matches(self):
        result = scoring.score([])
        assert result.is_crisis is False
        assert result.crisis_score == 0
        assert result.detected_keywords == ()
        assert result.recommendation == "Normal processing"

    @pytest.mark.parametrize("severity, expected", [
        ("critical", True),
        ("high", True),
        ("medium", False),
        ("low", False),
    ])
    def test_is_crisis_depends_on_severity(self, keyword_factory, severity, expected):
        result = scoring.score([matcher.RawMatch(keyword_factory("x", severity))])
        assert result.is_crisis is expected

    def test_many_medium_keywords_are_not_a_crisis(self, keyword_factory):
        keywords = [keyword_factory(f"word{i}", "medium") for i in range(15)]
        result = scoring.score(matcher.RawMatch(k) for k in keywords)
        assert result.crisis_score == 150
        assert result.is_crisis is False

    def test_score_is_order_independent(self, keyword_factory):
        keywords = [
            keyword_factory("suicidal", "critical"),
            keyword_factory("worried", "low"),
            keyword_factory("overwhelmed", "medium"),
        ]
        results = {
            scoring.score(matcher.RawMatch(k) for k in perm)
            for perm in itertools.permutations(keywords)
        }
        assert len(results) == 1

    def test_duplicate_matches_counted_once(self, keyword_factory):
        keyword = keyword_factory("crisis", "high")
        result = scoring.score([matcher.RawMatch(keyword), matcher.RawMatch(keyword)])
        assert result.crisis_score == 100
        assert len(result.detected_keywords) == 1

    def test_immediate_notification_threshold(self, keyword_factory):
        high = scoring.score([matcher.RawMatch(keyword_factory("x", "high"))])
        critical = scoring.score([matcher.RawMatch(keyword_factory("y", "critical"))])
        assert high.requires_immediate_notification is False
        assert critical.requires_immediate_notification is True

    def test_severity_breakdown(self, keyword_factory):
        keywords = [keyword_factory("a", "high"), keyword_factory("b", "high"), keyword_factory("c", "low")]
        breakdown = scoring.score(matcher.RawMatch(k) for k in keywords).severity_breakdown()
        assert breakdown["high"] == {"count": 2, "keywords": ["a", "b"], "total_weight": 200}
        assert breakdown["critical"]["count"] == 0


class TestDetectionScenarios:
    def test_kill_myself(self, keyword_factory):
        keywords = [keyword_factory("kill myself", "critical"), keyword_factory("suicidal", "critical")]
        result = scoring.score(matcher.match_keywords("I want to kill myself", keywords))

        assert result.is_crisis is True
        assert result.crisis_score == 1000
        assert result.to_dict()["detected_keywords"] == [
            {"keyword": "kill myself", "severity_level": "critical", "weight": 1000}
        ]

    def test_stressed_and_anxious(self, keyword_factory):
        keywords = [keyword_factory("stressed", "low"), keyword_factory("anxiety", "medium")]
        text = "I've been feeling really stressed and anxious lately"
        result = scoring.score(matcher.match_keywords(text, keywords))

        assert result.is_crisis is False
        assert result.crisis_score == 1
        assert [m.keyword for m in result.detected_keywords] == ["stressed"]

    def test_detection_is_idempotent(self, keyword_factory):
        keywords = [keyword_factory("hopeless", "medium"), keyword_factory("crisis", "high")]
        text = "Hopeless. This is a crisis."
        first = scoring.score(matcher.match_keywords(text, keywords))
        second = scoring.score(matcher.match_keywords(text, keywords))
        assert first == second
