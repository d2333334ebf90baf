"""CAPTCHA token verification (reCAPTCHA v3 siteverify contract).

A token that verifies with a score at or above the threshold passes. A token
that fails verification, or scores low, is a failure. A transport problem is
neither: the caller holds the comment for review instead of rejecting it.
"""

import asyncio
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass
from enum import Enum

import httpx
import structlog

from .config import ModerationConfig


logger = structlog.get_logger(__name__)

EXPECTED_ACTION = "submit_comment"


class CaptchaOutcome(str, Enum):
    PASSED = "passed"
    FAILED = "failed"
    MISSING_TOKEN = "missing_token"
    UNAVAILABLE = "unavailable"
    DISABLED = "disabled"


@dataclass(frozen=True)
class CaptchaResult:
    outcome: CaptchaOutcome
    score: float | None = None
    error: str | None = None

    @property
    def needs_review(self) -> bool:
        return self.outcome in (CaptchaOutcome.MISSING_TOKEN, CaptchaOutcome.UNAVAILABLE)


class CaptchaVerifier:
    """Verifies CAPTCHA tokens against a siteverify endpoint."""

    def __init__(self, config: ModerationConfig, client: httpx.AsyncClient | None = None):
        self.config = config
        self._client = client
        self._timeout = httpx.Timeout(config.captcha_timeout_seconds)

    @property
    def enabled(self) -> bool:
        return self.config.captcha_enabled

    @asynccontextmanager
    async def _http(self) -> AsyncIterator[httpx.AsyncClient]:
        if self._client is not None:
            yield self._client
            return
        async with httpx.AsyncClient(timeout=self._timeout) as client:
            yield client

    async def verify(self, token: str | None, remote_ip: str | None = None) -> CaptchaResult:
        """Verify a token.

        Disabled verifiers pass everything as ``DISABLED``. An enabled verifier
        without a secret key cannot verify and reports ``UNAVAILABLE``.
        """
        if not self.enabled:
            return CaptchaResult(CaptchaOutcome.DISABLED)

        if not token or not token.strip():
            return CaptchaResult(CaptchaOutcome.MISSING_TOKEN, error="missing_token")

        if not self.config.captcha_secret_key:
            logger.warning("captcha_not_configured")
            return CaptchaResult(CaptchaOutcome.UNAVAILABLE, error="not_configured")

        form = {"secret": self.config.captcha_secret_key, "response": token}
        if remote_ip:
            form["remoteip"] = remote_ip

        try:
            async with self._http() as client:
                response = await asyncio.wait_for(
                    client.post(
                        self.config.captcha_verify_url,
                        data=form,
                        timeout=self._timeout,
                    ),
                    timeout=self.config.captcha_timeout_seconds,
                )
            response.raise_for_status()
            payload = response.json()
        except (httpx.TimeoutException, TimeoutError) as e:
            logger.warning("captcha_timeout", error=str(e))
            return CaptchaResult(CaptchaOutcome.UNAVAILABLE, error="timeout")
        except (httpx.HTTPError, ValueError) as e:
            logger.warning("captcha_request_failed", error=str(e))
            return CaptchaResult(CaptchaOutcome.UNAVAILABLE, error="request_failed")

        score = payload.get("score")
        score = float(score) if score is not None else None

        if not payload.get("success"):
            return CaptchaResult(
                CaptchaOutcome.FAILED,
                score=score,
                error=",".join(payload.get("error-codes", [])) or "verification_failed",
            )

        action = payload.get("action")
        if action and action != EXPECTED_ACTION:
            return CaptchaResult(CaptchaOutcome.FAILED, score=score, error="action_mismatch")

        if score is not None and score < self.config.captcha_threshold:
            return CaptchaResult(CaptchaOutcome.FAILED, score=score, error="low_score")

        return CaptchaResult(CaptchaOutcome.PASSED, score=score)
