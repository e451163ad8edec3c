from __future__ import annotations

import logging
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass
from typing import Any, Optional

import requests

from ..shared.errors import PublishError


logger = logging.getLogger("badgeapp.publisher")


@dataclass(frozen=True)
class PublishOutcome:
    badge_id: str
    ok: bool
    confirmation: Optional[dict] = None
    error: Optional[str] = None


class LinkedInPublisher:
    """Shares an issued badge on LinkedIn on behalf of its holder.

    Sharing is best-effort: callers get failures through ``PublishError`` or
    a failed ``PublishOutcome``, never through the issuance result.
    """

    def __init__(
        self,
        api_url: str,
        owner_urn: str,
        share_base_url: str,
        timeout: float = 10.0,
        session: requests.Session | None = None,
        executor: ThreadPoolExecutor | None = None,
    ):
        self.api_url = api_url
        self.owner_urn = owner_urn
        self.share_base_url = share_base_url.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()
        self._executor = executor

    @property
    def executor(self) -> ThreadPoolExecutor:
        if self._executor is None:
            self._executor = ThreadPoolExecutor(
                max_workers=2, thread_name_prefix="badge-share"
            )
        return self._executor

    def build_share(self, badge_id: str) -> dict[str, Any]:
        return {
            "content": {
                "title": "Digital Badge Earned",
                "description": (
                    f"I have completed the training and earned a badge with ID: {badge_id}"
                ),
                "submittedUrl": f"{self.share_base_url}/badge/{badge_id}",
                "submittedImageUrl": f"{self.share_base_url}/images/{badge_id}.png",
            },
            "owner": self.owner_urn,
            "visibility": {"com.linkedin.ugc.MemberNetworkVisibility": "PUBLIC"},
        }

    def publish(self, badge_id: str, token: str) -> dict:
        if not badge_id or not token:
            raise PublishError("badge id and access token are required")
        try:
            response = self.session.post(
                self.api_url,
                json=self.build_share(badge_id),
                headers={"Authorization": f"Bearer {token}"},
                timeout=self.timeout,
            )
        except requests.RequestException as exc:
            raise PublishError(f"Error sharing badge on LinkedIn: {exc}") from exc
        if not response.ok:
            raise PublishError(
                f"Error sharing badge on LinkedIn: {response.status_code} {response.reason}",
                status_code=response.status_code,
            )
        try:
            payload = response.json()
        except ValueError:
            payload = {}
        logger.info("[SHARE] badge=%s status=%s", badge_id, response.status_code)
        return payload

    def _publish_outcome(self, badge_id: str, token: str) -> PublishOutcome:
        try:
            confirmation = self.publish(badge_id, token)
        except PublishError as exc:
            logger.warning("[SHARE-FAIL] badge=%s error=%s", badge_id, exc)
            return PublishOutcome(badge_id, ok=False, error=str(exc))
        return PublishOutcome(badge_id, ok=True, confirmation=confirmation)

    def publish_in_background(self, badge_id: str, token: str) -> Future:
        """Queue a share; the future resolves to a ``PublishOutcome``."""
        return self.executor.submit(self._publish_outcome, badge_id, token)
