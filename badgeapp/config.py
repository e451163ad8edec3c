from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import Mapping


ASSETS_DIR = os.path.join(os.path.dirname(os.path.abspath(__file__)), "assets")

DEFAULT_BUCKET = "digital-badge-bucket"
DEFAULT_REGION = "us-west-2"
DEFAULT_LINKEDIN_API_URL = "https://api.linkedin.com/v2/shares"


@dataclass(frozen=True)
class RetryPolicy:
    max_attempts: int = 5
    delay_seconds: float = 2.0

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if self.delay_seconds < 0:
            raise ValueError("delay_seconds must not be negative")


@dataclass(frozen=True)
class SubjectRange:
    low: int = 100
    high: int = 151

    def __post_init__(self) -> None:
        if self.low > self.high:
            raise ValueError(f"Empty subject id range {self.low}-{self.high}")

    def __contains__(self, value: object) -> bool:
        return isinstance(value, int) and not isinstance(value, bool) and (
            self.low <= value <= self.high
        )


@dataclass(frozen=True)
class IssuanceSettings:
    """Issuance configuration, built once in create_app() and never mutated."""

    catalog_path: str = os.path.join(ASSETS_DIR, "key_code_catalog.json")
    # not shipped; create it with `python manage.py make_template`
    template_path: str = os.path.join(ASSETS_DIR, "badge_template.png")
    subject_range: SubjectRange = field(default_factory=SubjectRange)
    retry: RetryPolicy = field(default_factory=RetryPolicy)
    artifact_backend: str = "local"
    artifact_bucket: str = DEFAULT_BUCKET
    artifact_public_host: str = ""
    artifact_root: str = "/srv/artifacts"
    aws_region: str = DEFAULT_REGION
    linkedin_api_url: str = DEFAULT_LINKEDIN_API_URL
    linkedin_owner_urn: str = "urn:li:person:me"
    share_base_url: str = "https://badges.example.com"
    http_timeout: float = 10.0

    @property
    def public_host(self) -> str:
        return self.artifact_public_host or f"{self.artifact_bucket}.s3.amazonaws.com"


def _int(environ: Mapping[str, str], key: str, default: int) -> int:
    raw = (environ.get(key) or "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"{key} must be an integer, got {raw!r}") from None


def _float(environ: Mapping[str, str], key: str, default: float) -> float:
    raw = (environ.get(key) or "").strip()
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        raise ValueError(f"{key} must be a number, got {raw!r}") from None


def load_settings(
    environ: Mapping[str, str] | None = None, site_root: str = "/srv"
) -> IssuanceSettings:
    env = os.environ if environ is None else environ
    backend = (env.get("ARTIFACT_BACKEND") or "local").strip().lower()
    if backend not in {"local", "s3"}:
        raise ValueError(f"Unsupported ARTIFACT_BACKEND: {backend!r}")
    defaults = IssuanceSettings()
    return IssuanceSettings(
        catalog_path=env.get("KEY_CODE_CATALOG") or defaults.catalog_path,
        template_path=env.get("BADGE_TEMPLATE") or defaults.template_path,
        subject_range=SubjectRange(
            _int(env, "SUBJECT_ID_MIN", defaults.subject_range.low),
            _int(env, "SUBJECT_ID_MAX", defaults.subject_range.high),
        ),
        retry=RetryPolicy(
            _int(env, "DB_CONNECT_ATTEMPTS", defaults.retry.max_attempts),
            _float(env, "DB_CONNECT_DELAY", defaults.retry.delay_seconds),
        ),
        artifact_backend=backend,
        artifact_bucket=env.get("ARTIFACT_BUCKET") or DEFAULT_BUCKET,
        artifact_public_host=env.get("ARTIFACT_PUBLIC_HOST") or "",
        artifact_root=env.get("ARTIFACT_ROOT") or os.path.join(site_root, "artifacts"),
        aws_region=env.get("AWS_REGION") or DEFAULT_REGION,
        linkedin_api_url=env.get("LINKEDIN_API_URL") or DEFAULT_LINKEDIN_API_URL,
        linkedin_owner_urn=env.get("LINKEDIN_OWNER_URN") or defaults.linkedin_owner_urn,
        share_base_url=(env.get("BADGE_SHARE_BASE_URL") or defaults.share_base_url).rstrip("/"),
        http_timeout=_float(env, "HTTP_TIMEOUT", defaults.http_timeout),
    )
