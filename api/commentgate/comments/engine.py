"""Moderation decision engine.

Runs the checks for one submission in a fixed order and stops at the first
decisive signal:

1. Honeypot field filled                     -> reject
2. Sanitizer rejects the text                -> reject
3. Blacklist match                           -> reject
4. Rate limit exhausted                      -> rate_limited
   (otherwise the window is incremented here)
5. CAPTCHA fails or scores low               -> reject
   CAPTCHA token missing / verifier down     -> review flag
6. Classifier unconfigured or erroring       -> treated as not spam
7. Classifier spam with pro-tip "discard"    -> reject
8. Classifier spam                           -> spam
9. Review flag, too many links, repetitive
   text, mode "all", or a first-time author
   under mode "first_time"                   -> pending
   otherwise                                 -> approved

Degraded dependencies never block a submitter: rate limiter errors allow,
classifier errors mean "not spam", CAPTCHA transport errors mean "review".
"""

from dataclasses import dataclass, field
from typing import Protocol
from uuid import UUID

import structlog

from commentgate.utils.ip import hash_ip

from .blacklist import NO_MATCH, BlacklistFilter
from .captcha import CaptchaOutcome, CaptchaVerifier
from .classifier import AkismetClassifier, ClassifierParams
from .config import ModerationConfig
from .models import DECISION_FLAGS, ClassifierVerdict, CommentTarget, Decision
from .rate_limit import RateLimiter
from .sanitizer import is_repetitive, sanitize_content


logger = structlog.get_logger(__name__)

DISCARD_PRO_TIP = "discard"


class CommentHistory(Protocol):
    async def has_approved_comment(self, author_id: UUID) -> bool: ...


@dataclass(frozen=True)
class Submission:
    """Everything the engine needs to judge one comment submission."""

    target: CommentTarget
    content: str
    author_name: str
    author_email: str | None
    author_id: UUID | None
    client_ip: str
    user_agent: str = ""
    referrer: str = ""
    permalink: str = ""
    honeypot_value: str | None = None
    captcha_token: str | None = None


@dataclass(frozen=True)
class EngineResult:
    decision: Decision
    reason: str
    content: str
    link_count: int
    ip_hash: str
    spam_score: float | None = None
    classifier_verdict: ClassifierVerdict | None = None
    pro_tip: str | None = None
    is_approved: bool = field(init=False)
    is_spam: bool = field(init=False)

    def __post_init__(self) -> None:
        is_approved, is_spam = DECISION_FLAGS.get(self.decision, (False, False))
        object.__setattr__(self, "is_approved", is_approved)
        object.__setattr__(self, "is_spam", is_spam)


class DecisionEngine:
    """Combines the moderation checks into one verdict per submission."""

    def __init__(
        self,
        config: ModerationConfig,
        rate_limiter: RateLimiter,
        blacklist: BlacklistFilter,
        classifier: AkismetClassifier,
        captcha: CaptchaVerifier,
        history: CommentHistory | None = None,
    ):
        self.config = config
        self.rate_limiter = rate_limiter
        self.blacklist = blacklist
        self.classifier = classifier
        self.captcha = captcha
        self.history = history

    async def evaluate(self, submission: Submission) -> EngineResult:
        """Judge a submission. Never raises for dependency failures."""
        result = await self._evaluate(submission)

        logger.info(
            "comment_decision",
            decision=result.decision.value,
            reason=result.reason,
            target_type=submission.target.target_type.value,
            target_id=str(submission.target.target_id),
            link_count=result.link_count,
            ip_hash=result.ip_hash,
            spam_score=result.spam_score,
            classifier_verdict=(
                result.classifier_verdict.value if result.classifier_verdict else None
            ),
            pro_tip=result.pro_tip,
        )
        return result

    async def _evaluate(self, submission: Submission) -> EngineResult:
        config = self.config
        ip_hash = hash_ip(submission.client_ip, config.ip_hash_salt)

        def verdict(decision: Decision, reason: str, **extra) -> EngineResult:
            return EngineResult(
                decision=decision,
                reason=reason,
                content=extra.pop("content", ""),
                link_count=extra.pop("link_count", 0),
                ip_hash=ip_hash,
                **extra,
            )

        if config.enable_honeypot and (submission.honeypot_value or "").strip():
            return verdict(Decision.REJECT, "Bot detected (honeypot)")

        sanitized = sanitize_content(submission.content, config.max_length)
        if sanitized.rejected:
            return verdict(Decision.REJECT, sanitized.reject_reason or "Content rejected")

        content = sanitized.content
        link_count = sanitized.link_count

        try:
            match = await self.blacklist.check(submission.author_email, ip_hash, content)
        except Exception as e:
            logger.warning("blacklist_check_failed", error=str(e))
            match = NO_MATCH
        if match.matched:
            return verdict(
                Decision.REJECT,
                match.reason or "Blacklisted",
                content=content,
                link_count=link_count,
            )

        rate = await self.rate_limiter.check(ip_hash, submission.target)
        if not rate.allowed:
            return verdict(
                Decision.RATE_LIMITED,
                "Rate limit exceeded",
                content=content,
                link_count=link_count,
            )
        await self.rate_limiter.increment(ip_hash, submission.target)

        review_reasons: list[str] = []

        captcha = await self.captcha.verify(submission.captcha_token, submission.client_ip)
        if captcha.outcome == CaptchaOutcome.FAILED:
            return verdict(
                Decision.REJECT,
                f"CAPTCHA verification failed: {captcha.error}",
                content=content,
                link_count=link_count,
                spam_score=captcha.score,
            )
        if captcha.needs_review:
            review_reasons.append(f"CAPTCHA unverified: {captcha.error}")

        classified = await self.classifier.check(
            ClassifierParams(
                user_ip=submission.client_ip,
                user_agent=submission.user_agent,
                comment_content=content,
                comment_author=submission.author_name,
                comment_author_email=submission.author_email or "",
                permalink=submission.permalink,
                referrer=submission.referrer,
            )
        )
        classifier_verdict: ClassifierVerdict | None = None
        pro_tip: str | None = None
        if classified.configured and not classified.error:
            classifier_verdict = (
                ClassifierVerdict.SPAM if classified.is_spam else ClassifierVerdict.HAM
            )
            pro_tip = classified.pro_tip

        extra = {
            "content": content,
            "link_count": link_count,
            "spam_score": captcha.score,
            "classifier_verdict": classifier_verdict,
            "pro_tip": pro_tip,
        }

        if classifier_verdict == ClassifierVerdict.SPAM:
            if pro_tip == DISCARD_PRO_TIP:
                return verdict(Decision.REJECT, "Flagged by classifier (discard)", **extra)
            return verdict(Decision.SPAM, "Flagged by classifier", **extra)

        if link_count > config.max_links_before_moderation:
            review_reasons.append(f"Too many links: {link_count}")
        if is_repetitive(content):
            review_reasons.append("Repetitive content detected")
        if config.moderation_mode == "all":
            review_reasons.append("All comments require moderation")
        elif config.moderation_mode == "first_time" and not await self._has_history(
            submission.author_id
        ):
            review_reasons.append("First-time commenter")

        if review_reasons:
            return verdict(Decision.PENDING, "; ".join(review_reasons), **extra)

        return verdict(Decision.APPROVED, "Passed all checks", **extra)

    async def _has_history(self, author_id: UUID | None) -> bool:
        if self.history is None:
            return True
        if author_id is None:
            return False
        try:
            return await self.history.has_approved_comment(author_id)
        except Exception as e:
            logger.warning("comment_history_lookup_failed", error=str(e))
            return True
