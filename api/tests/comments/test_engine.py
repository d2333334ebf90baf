"""Tests for the moderation decision engine."""

from datetime import UTC, datetime
from unittest.mock import AsyncMock, Mock
from uuid import uuid4

import pytest

from commentgate.comments.blacklist import NO_MATCH, BlacklistFilter, BlacklistMatch
from commentgate.comments.captcha import CaptchaOutcome, CaptchaResult, CaptchaVerifier
from commentgate.comments.classifier import (
    NOT_CONFIGURED,
    AkismetClassifier,
    ClassifierResult,
)
from commentgate.comments.config import ModerationConfig
from commentgate.comments.engine import DecisionEngine, Submission
from commentgate.comments.models import BlacklistEntryType, ClassifierVerdict, Decision
from commentgate.comments.rate_limit import RateLimiter, RateLimitResult
from commentgate.utils.ip import hash_ip


def allowed(remaining: int = 3) -> RateLimitResult:
    return RateLimitResult(allowed=True, remaining=remaining, reset_time=datetime.now(UTC))


@pytest.fixture
def rate_limiter():
    limiter = Mock(spec=RateLimiter)
    limiter.check = AsyncMock(return_value=allowed())
    limiter.increment = AsyncMock()
    return limiter


@pytest.fixture
def blacklist():
    bl = Mock(spec=BlacklistFilter)
    bl.check = AsyncMock(return_value=NO_MATCH)
    return bl


@pytest.fixture
def classifier():
    cl = Mock(spec=AkismetClassifier)
    cl.check = AsyncMock(return_value=NOT_CONFIGURED)
    return cl


@pytest.fixture
def captcha():
    cv = Mock(spec=CaptchaVerifier)
    cv.verify = AsyncMock(return_value=CaptchaResult(CaptchaOutcome.DISABLED))
    return cv


@pytest.fixture
def history():
    h = Mock()
    h.has_approved_comment = AsyncMock(return_value=True)
    return h


@pytest.fixture
def make_engine(rate_limiter, blacklist, classifier, captcha, history):
    def _engine(**config_overrides) -> DecisionEngine:
        options = {"ip_hash_salt": "salt"}
        options.update(config_overrides)
        return DecisionEngine(
            config=ModerationConfig(**options),
            rate_limiter=rate_limiter,
            blacklist=blacklist,
            classifier=classifier,
            captcha=captcha,
            history=history,
        )

    return _engine


@pytest.fixture
def submit(target):
    def _submission(content: str = "A thoughtful comment", **overrides) -> Submission:
        fields = {
            "target": target,
            "content": content,
            "author_name": "Ana",
            "author_email": "ana@example.com",
            "author_id": uuid4(),
            "client_ip": "198.51.100.7",
        }
        fields.update(overrides)
        return Submission(**fields)

    return _submission


class TestOrdering:
    """Each check short-circuits the ones after it."""

    @pytest.mark.asyncio
    async def test_honeypot_rejects_first(self, make_engine, submit, blacklist, rate_limiter):
        result = await make_engine().evaluate(submit(honeypot_value="http://bot"))

        assert result.decision == Decision.REJECT
        assert result.reason == "Bot detected (honeypot)"
        blacklist.check.assert_not_called()
        rate_limiter.check.assert_not_called()

    @pytest.mark.asyncio
    async def test_honeypot_ignored_when_disabled(self, make_engine, submit):
        result = await make_engine(enable_honeypot=False).evaluate(submit(honeypot_value="x"))
        assert result.decision == Decision.APPROVED

    @pytest.mark.asyncio
    async def test_whitespace_honeypot_is_empty(self, make_engine, submit):
        result = await make_engine().evaluate(submit(honeypot_value="   "))
        assert result.decision == Decision.APPROVED

    @pytest.mark.asyncio
    async def test_sanitizer_rejection(self, make_engine, submit, blacklist):
        result = await make_engine().evaluate(submit("<script>alert(1)</script>"))

        assert result.decision == Decision.REJECT
        assert result.content == ""
        blacklist.check.assert_not_called()

    @pytest.mark.asyncio
    async def test_blacklist_rejects_before_rate_limit(
        self, make_engine, submit, blacklist, rate_limiter
    ):
        blacklist.check.return_value = BlacklistMatch(
            True, BlacklistEntryType.KEYWORD, "Blacklisted keyword"
        )

        result = await make_engine().evaluate(submit())

        assert result.decision == Decision.REJECT
        rate_limiter.check.assert_not_called()
        rate_limiter.increment.assert_not_called()

    @pytest.mark.asyncio
    async def test_blacklist_gets_hashed_ip(self, make_engine, submit, blacklist):
        await make_engine().evaluate(submit())
        email, ip_hash, _content = blacklist.check.call_args.args
        assert email == "ana@example.com"
        assert ip_hash == hash_ip("198.51.100.7", "salt")

    @pytest.mark.asyncio
    async def test_rate_limited_is_not_incremented(
        self, make_engine, submit, rate_limiter, captcha
    ):
        rate_limiter.check.return_value = RateLimitResult(
            allowed=False, remaining=0, reset_time=datetime.now(UTC)
        )

        result = await make_engine().evaluate(submit())

        assert result.decision == Decision.RATE_LIMITED
        rate_limiter.increment.assert_not_called()
        captcha.verify.assert_not_called()

    @pytest.mark.asyncio
    async def test_allowed_submission_is_counted(self, make_engine, submit, rate_limiter):
        await make_engine().evaluate(submit())
        rate_limiter.increment.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_captcha_failure_rejects_before_classifier(
        self, make_engine, submit, captcha, classifier
    ):
        captcha.verify.return_value = CaptchaResult(
            CaptchaOutcome.FAILED, score=0.1, error="low_score"
        )

        result = await make_engine().evaluate(submit())

        assert result.decision == Decision.REJECT
        assert result.spam_score == 0.1
        classifier.check.assert_not_called()


class TestDegradedDependencies:
    """Failures of optional dependencies never block a submitter."""

    @pytest.mark.asyncio
    async def test_blacklist_error_is_no_match(self, make_engine, submit, blacklist):
        blacklist.check.side_effect = RuntimeError("down")
        result = await make_engine().evaluate(submit())
        assert result.decision == Decision.APPROVED

    @pytest.mark.asyncio
    async def test_rate_limiter_error_allows(self, make_engine, submit, rate_limiter):
        rate_limiter.check.return_value = RateLimitResult(
            allowed=True, remaining=3, reset_time=datetime.now(UTC), error="failed"
        )
        result = await make_engine().evaluate(submit())
        assert result.decision == Decision.APPROVED

    @pytest.mark.asyncio
    async def test_classifier_error_is_not_spam(self, make_engine, submit, classifier):
        classifier.check.return_value = ClassifierResult(
            configured=True, is_spam=False, error="timeout"
        )

        result = await make_engine().evaluate(submit())

        assert result.decision == Decision.APPROVED
        assert result.classifier_verdict is None

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "outcome", [CaptchaOutcome.MISSING_TOKEN, CaptchaOutcome.UNAVAILABLE]
    )
    async def test_unverified_captcha_goes_to_review(
        self, make_engine, submit, captcha, outcome
    ):
        captcha.verify.return_value = CaptchaResult(outcome, error="x")

        result = await make_engine().evaluate(submit())

        assert result.decision == Decision.PENDING
        assert result.reason.startswith("CAPTCHA unverified")

    @pytest.mark.asyncio
    async def test_history_error_counts_as_history(
        self, make_engine, submit, history
    ):
        history.has_approved_comment.side_effect = RuntimeError("down")
        result = await make_engine(moderation_mode="first_time").evaluate(submit())
        assert result.decision == Decision.APPROVED


class TestClassifier:
    """Classifier verdicts."""

    @pytest.mark.asyncio
    async def test_spam(self, make_engine, submit, classifier):
        classifier.check.return_value = ClassifierResult(configured=True, is_spam=True)

        result = await make_engine().evaluate(submit())

        assert result.decision == Decision.SPAM
        assert (result.is_approved, result.is_spam) == (False, True)
        assert result.classifier_verdict == ClassifierVerdict.SPAM

    @pytest.mark.asyncio
    async def test_discard_pro_tip_rejects(self, make_engine, submit, classifier):
        classifier.check.return_value = ClassifierResult(
            configured=True, is_spam=True, pro_tip="discard"
        )
        result = await make_engine().evaluate(submit())
        assert result.decision == Decision.REJECT

    @pytest.mark.asyncio
    async def test_ham_verdict_recorded(self, make_engine, submit, classifier):
        classifier.check.return_value = ClassifierResult(configured=True, is_spam=False)

        result = await make_engine().evaluate(submit())

        assert result.decision == Decision.APPROVED
        assert result.classifier_verdict == ClassifierVerdict.HAM

    @pytest.mark.asyncio
    async def test_receives_sanitized_content(self, make_engine, submit, classifier):
        await make_engine().evaluate(submit("  hello\x00 there  "))
        params = classifier.check.call_args.args[0]
        assert params.comment_content == "hello there"
        assert params.user_ip == "198.51.100.7"


class TestReview:
    """Signals that hold a comment for moderation."""

    @pytest.mark.asyncio
    async def test_too_many_links(self, make_engine, submit):
        content = "see https://a.co https://b.co https://c.co"
        result = await make_engine(max_links_before_moderation=2).evaluate(submit(content))

        assert result.decision == Decision.PENDING
        assert result.link_count == 3
        assert "Too many links: 3" in result.reason

    @pytest.mark.asyncio
    async def test_links_at_limit_approved(self, make_engine, submit):
        content = "see https://a.co https://b.co"
        result = await make_engine(max_links_before_moderation=2).evaluate(submit(content))
        assert result.decision == Decision.APPROVED

    @pytest.mark.asyncio
    async def test_repetitive_content(self, make_engine, submit):
        result = await make_engine().evaluate(submit("cheap " * 8))
        assert result.decision == Decision.PENDING
        assert "Repetitive content detected" in result.reason

    @pytest.mark.asyncio
    async def test_mode_all(self, make_engine, submit):
        result = await make_engine(moderation_mode="all").evaluate(submit())
        assert result.decision == Decision.PENDING
        assert (result.is_approved, result.is_spam) == (False, False)

    @pytest.mark.asyncio
    async def test_first_time_author(self, make_engine, submit, history):
        history.has_approved_comment.return_value = False
        result = await make_engine(moderation_mode="first_time").evaluate(submit())
        assert result.decision == Decision.PENDING
        assert result.reason == "First-time commenter"

    @pytest.mark.asyncio
    async def test_returning_author(self, make_engine, submit, history):
        history.has_approved_comment.return_value = True
        result = await make_engine(moderation_mode="first_time").evaluate(submit())
        assert result.decision == Decision.APPROVED

    @pytest.mark.asyncio
    async def test_reasons_are_combined(self, make_engine, submit, captcha):
        captcha.verify.return_value = CaptchaResult(
            CaptchaOutcome.MISSING_TOKEN, error="missing_token"
        )
        result = await make_engine(moderation_mode="all").evaluate(submit())
        assert result.reason == (
            "CAPTCHA unverified: missing_token; All comments require moderation"
        )

    @pytest.mark.asyncio
    async def test_clean_submission_approved(self, make_engine, submit):
        result = await make_engine().evaluate(submit())

        assert result.decision == Decision.APPROVED
        assert (result.is_approved, result.is_spam) == (True, False)
        assert result.reason == "Passed all checks"
        assert result.content == "A thoughtful comment"
