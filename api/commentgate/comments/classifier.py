"""Akismet spam classifier adapter.

Implements the Akismet REST contract (comment-check, submit-spam,
submit-ham, verify-key) over httpx. Each call is bounded as a whole by
``akismet_timeout_seconds``, on top of the per-phase httpx timeout.

The adapter never raises: an unconfigured key, a timeout or any transport
failure is reported in the result and the caller treats it as "not spam".

See https://akismet.com/developers/
"""

import asyncio
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass
from urllib.parse import urlparse

import httpx
import structlog

from .config import ModerationConfig


logger = structlog.get_logger(__name__)

AKISMET_API_VERSION = "1.1"
AKISMET_VERIFY_URL = f"https://rest.akismet.com/{AKISMET_API_VERSION}/verify-key"
PRO_TIP_HEADER = "X-akismet-pro-tip"


@dataclass(frozen=True)
class ClassifierParams:
    user_ip: str
    user_agent: str
    comment_content: str
    comment_author: str
    comment_author_email: str
    permalink: str
    referrer: str = ""


@dataclass(frozen=True)
class ClassifierResult:
    configured: bool
    is_spam: bool
    pro_tip: str | None = None
    error: str | None = None


NOT_CONFIGURED = ClassifierResult(configured=False, is_spam=False, error="not_configured")


class AkismetClassifier:
    """Async client for the Akismet API."""

    def __init__(self, config: ModerationConfig, client: httpx.AsyncClient | None = None):
        self.config = config
        self._api_key = config.akismet_api_key
        self._client = client
        self._timeout = httpx.Timeout(config.akismet_timeout_seconds)

        hostname = urlparse(config.site_url).hostname or "site"
        self._user_agent = f"{hostname}/1.0 | Akismet/1.0"

    @property
    def is_configured(self) -> bool:
        return bool(self._api_key)

    def _endpoint(self, method: str) -> str:
        return f"https://{self._api_key}.rest.akismet.com/{AKISMET_API_VERSION}/{method}"

    @asynccontextmanager
    async def _http(self) -> AsyncIterator[httpx.AsyncClient]:
        if self._client is not None:
            yield self._client
            return
        async with httpx.AsyncClient(timeout=self._timeout) as client:
            yield client

    def _form(self, params: ClassifierParams, *, include_referrer: bool = True) -> dict[str, str]:
        form = {
            "blog": self.config.blog_url,
            "user_ip": params.user_ip,
            "user_agent": params.user_agent,
            "permalink": params.permalink,
            "comment_type": "comment",
            "comment_author": params.comment_author,
            "comment_author_email": params.comment_author_email,
            "comment_content": params.comment_content,
        }
        if include_referrer:
            form["referrer"] = params.referrer
        return form

    async def _post(self, url: str, data: dict[str, str]) -> httpx.Response:
        async with self._http() as client:
            return await asyncio.wait_for(
                client.post(
                    url,
                    data=data,
                    headers={"User-Agent": self._user_agent},
                    timeout=self._timeout,
                ),
                timeout=self.config.akismet_timeout_seconds,
            )

    async def check(self, params: ClassifierParams) -> ClassifierResult:
        """Ask Akismet whether a comment is spam."""
        if not self.is_configured:
            logger.debug("classifier_not_configured")
            return NOT_CONFIGURED

        try:
            response = await self._post(self._endpoint("comment-check"), self._form(params))
        except (httpx.TimeoutException, TimeoutError) as e:
            logger.warning("classifier_timeout", error=str(e))
            return ClassifierResult(configured=True, is_spam=False, error="timeout")
        except httpx.HTTPError as e:
            logger.warning("classifier_request_failed", error=str(e))
            return ClassifierResult(configured=True, is_spam=False, error="request_failed")

        body = response.text.strip()
        if not response.is_success or body not in ("true", "false"):
            logger.warning(
                "classifier_invalid_response",
                status_code=response.status_code,
                body=body[:100],
            )
            return ClassifierResult(configured=True, is_spam=False, error="invalid_response")

        return ClassifierResult(
            configured=True,
            is_spam=body == "true",
            pro_tip=response.headers.get(PRO_TIP_HEADER),
        )

    async def _submit(self, method: str, params: ClassifierParams) -> bool:
        if not self.is_configured:
            return False

        try:
            response = await self._post(
                self._endpoint(method), self._form(params, include_referrer=False)
            )
        except (httpx.HTTPError, TimeoutError) as e:
            logger.warning("classifier_feedback_failed", method=method, error=str(e))
            return False

        if not response.is_success:
            logger.warning(
                "classifier_feedback_rejected",
                method=method,
                status_code=response.status_code,
            )
            return False

        logger.info("classifier_feedback_sent", method=method)
        return True

    async def report_spam(self, params: ClassifierParams) -> bool:
        """Tell Akismet a comment it passed was spam."""
        return await self._submit("submit-spam", params)

    async def report_ham(self, params: ClassifierParams) -> bool:
        """Tell Akismet a comment it flagged was legitimate."""
        return await self._submit("submit-ham", params)

    async def verify_key(self) -> bool:
        """Check the configured key against Akismet."""
        if not self.is_configured:
            logger.warning("classifier_not_configured")
            return False

        try:
            response = await self._post(
                AKISMET_VERIFY_URL,
                {"key": self._api_key or "", "blog": self.config.blog_url},
            )
        except (httpx.HTTPError, TimeoutError) as e:
            logger.warning("classifier_verify_failed", error=str(e))
            return False

        return response.text.strip() == "valid"
