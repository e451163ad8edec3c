from __future__ import annotations

import logging
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Optional

from ..config import IssuanceSettings
from ..models import BadgeRecord
from ..shared.catalog import Catalog
from ..shared.ledger import ALREADY_ISSUED, IssuanceLedger
from ..shared.rendering import BadgeDraft, RenderedBadge, render_badge
from ..shared.storage import ArtifactStore, artifact_key
from ..shared.time import now_utc
from ..shared.validation import BadgeRequest, validate_request
from .linkedin import LinkedInPublisher


logger = logging.getLogger("badgeapp.issuance")

ISSUED = "issued"
REJECTED = "rejected"


@dataclass(frozen=True)
class IssuanceResult:
    status: str
    reason: Optional[str] = None
    record: Optional[BadgeRecord] = None
    share: Optional[Future] = None

    @property
    def issued(self) -> bool:
        return self.status == ISSUED


class BadgeIssuer:
    """Validate -> describe -> render -> store -> record -> (share)."""

    def __init__(
        self,
        catalog: Catalog,
        settings: IssuanceSettings,
        store: ArtifactStore,
        ledger: IssuanceLedger,
        publisher: LinkedInPublisher | None = None,
        clock: Callable[[], datetime] = now_utc,
    ):
        self.catalog = catalog
        self.settings = settings
        self.store = store
        self.ledger = ledger
        self.publisher = publisher
        self.clock = clock

    def validate(self, request: BadgeRequest) -> str | None:
        return validate_request(request, self.catalog, self.settings.subject_range)

    def _store_artifacts(self, key: str, rendered: RenderedBadge) -> tuple[str, str]:
        # both uploads finish (or fail) before the ledger sees anything
        with ThreadPoolExecutor(max_workers=2, thread_name_prefix="badge-upload") as pool:
            image = pool.submit(self.store.store, key, rendered.image_bytes, "image/png")
            document = pool.submit(
                self.store.store, key, rendered.document_bytes, "application/pdf"
            )
            return image.result(), document.result()

    def issue(self, request: BadgeRequest, share_token: str | None = None) -> IssuanceResult:
        reason = self.validate(request)
        if reason:
            logger.info(
                "[BADGE-REJECT] subject=%s key=%s reason=%s",
                request.subject_id,
                request.key_code,
                reason,
            )
            return IssuanceResult(REJECTED, reason=reason)

        if self.ledger.check_not_issued(request.subject_id) == ALREADY_ISSUED:
            logger.info("[BADGE-DUP] subject=%s already issued", request.subject_id)
            return IssuanceResult(ALREADY_ISSUED, reason=ALREADY_ISSUED)

        issued_at = self.clock()
        description = self.catalog.describe(request.key_code)
        rendered = render_badge(
            BadgeDraft(
                full_name=request.full_name,
                issuer=request.issuer,
                key_description=description,
                issued_on=issued_at.date(),
            ),
            self.settings.template_path,
        )
        image_url, document_url = self._store_artifacts(
            artifact_key(request.key_code), rendered
        )

        record = BadgeRecord(
            first_name=request.first_name,
            last_name=request.last_name,
            email=request.email,
            subject_id=request.subject_id,
            key_code=request.key_code,
            key_description=description,
            issuer=request.issuer,
            correlation_token=request.correlation_token,
            image_url=image_url,
            document_url=document_url,
            issued=True,
            created_at=issued_at,
        )
        if self.ledger.record(record) == ALREADY_ISSUED:
            logger.info(
                "[BADGE-DUP] subject=%s lost the insert race", request.subject_id
            )
            return IssuanceResult(ALREADY_ISSUED, reason=ALREADY_ISSUED)

        logger.info(
            "[BADGE] subject=%s key=%s image=%s document=%s",
            record.subject_id,
            record.key_code,
            image_url,
            document_url,
        )
        share = None
        if share_token and self.publisher is not None:
            share = self.publisher.publish_in_background(str(record.id), share_token)
        return IssuanceResult(ISSUED, record=record, share=share)
