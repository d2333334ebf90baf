"""Moderation configuration handed to every pipeline component."""

from dataclasses import dataclass
from typing import Literal

from commentgate.config.settings import Settings


ModerationMode = Literal["auto", "all", "first_time"]


@dataclass(frozen=True)
class ModerationConfig:
    """Immutable snapshot of the comment moderation settings."""

    max_length: int = 4000
    rate_limit_window_seconds: int = 60
    rate_limit_max: int = 3
    rate_limit_sweep_multiplier: int = 60
    enable_honeypot: bool = True
    max_links_before_moderation: int = 2
    moderation_mode: ModerationMode = "auto"
    ip_hash_salt: str = ""
    site_url: str = "http://localhost:3000"

    akismet_api_key: str | None = None
    akismet_blog_url: str | None = None
    akismet_timeout_seconds: float = 5.0

    captcha_enabled: bool = False
    captcha_secret_key: str | None = None
    captcha_verify_url: str = "https://www.google.com/recaptcha/api/siteverify"
    captcha_threshold: float = 0.5
    captcha_timeout_seconds: float = 5.0

    @classmethod
    def from_settings(cls, settings: Settings) -> "ModerationConfig":
        return cls(
            max_length=settings.comment_max_length,
            rate_limit_window_seconds=settings.comment_rate_limit_window_seconds,
            rate_limit_max=settings.comment_rate_limit_max,
            rate_limit_sweep_multiplier=settings.comment_rate_limit_sweep_multiplier,
            enable_honeypot=settings.comment_enable_honeypot,
            max_links_before_moderation=settings.comment_max_links_before_moderation,
            moderation_mode=settings.comment_moderation_mode,
            ip_hash_salt=settings.comment_ip_hash_salt,
            site_url=settings.site_url,
            akismet_api_key=settings.akismet_api_key,
            akismet_blog_url=settings.akismet_blog_url,
            akismet_timeout_seconds=settings.akismet_timeout_seconds,
            captcha_enabled=settings.captcha_enabled,
            captcha_secret_key=settings.captcha_secret_key,
            captcha_verify_url=settings.captcha_verify_url,
            captcha_threshold=settings.captcha_threshold,
            captcha_timeout_seconds=settings.captcha_timeout_seconds,
        )

    @property
    def blog_url(self) -> str:
        """URL registered with the classifier."""
        return self.akismet_blog_url or self.site_url

    def permalink(self, target_type: str, target_id: str, comment_id: str | None = None) -> str:
        """Public URL of a target (and optionally one of its comments)."""
        base = self.site_url.rstrip("/")
        path = "posts" if target_type == "post" else "gallery"
        url = f"{base}/{path}/{target_id}"
        if comment_id:
            url = f"{url}#comment-{comment_id}"
        return url
