import threading

import pytest
from sqlalchemy import func, select

from badgeapp.app import db
from badgeapp.models import BadgeRecord
from badgeapp.services.issuance import ISSUED, REJECTED, BadgeIssuer
from badgeapp.shared.errors import RenderError, StorageError
from badgeapp.shared.ledger import ALREADY_ISSUED
from badgeapp.shared.storage import LocalArtifactStore
from badgeapp.shared.validation import SUBJECT_ID_OUT_OF_RANGE, parse_request

from test_linkedin import FakeResponse, FakeSession


def row_count():
    return db.session.scalar(select(func.count(BadgeRecord.id)))


class FailingStore(LocalArtifactStore):
    def __init__(self, root, fail_on):
        super().__init__(root)
        self.fail_on = fail_on

    def store(self, key, data, content_type):
        if content_type == self.fail_on:
            raise StorageError("upload refused")
        return super().store(key, data, content_type)


def test_ada_lovelace_is_issued(issuer, ada_payload, badge_env):
    result = issuer.issue(parse_request(ada_payload))

    assert result.status == ISSUED
    record = result.record
    assert record.key_description == "Intro to CS"
    assert record.issued is True
    assert record.image_url == "https://digital-badge-bucket.s3.amazonaws.com/CS101.png"
    assert record.document_url == "https://digital-badge-bucket.s3.amazonaws.com/CS101.pdf"
    assert (badge_env / "artifacts" / "CS101.png").is_file()
    assert (badge_env / "artifacts" / "CS101.pdf").is_file()

    stored = issuer.ledger.find_issued(120)
    assert stored.email == "ada@example.com"
    assert stored.correlation_token == "tok-123"


def test_resubmission_is_already_issued(issuer, ada_payload):
    assert issuer.issue(parse_request(ada_payload)).issued
    second = issuer.issue(parse_request(ada_payload))
    assert second.status == ALREADY_ISSUED
    assert second.record is None
    assert row_count() == 1


def test_out_of_range_subject_has_no_side_effects(issuer, ada_payload, badge_env):
    ada_payload["studentId"] = 99
    result = issuer.issue(parse_request(ada_payload))
    assert result.status == REJECTED
    assert result.reason == SUBJECT_ID_OUT_OF_RANGE
    assert not (badge_env / "artifacts").exists()
    assert row_count() == 0


def test_storage_failure_aborts_before_ledger(issuer, ada_payload, badge_env):
    failing = BadgeIssuer(
        catalog=issuer.catalog,
        settings=issuer.settings,
        store=FailingStore(str(badge_env / "artifacts"), "application/pdf"),
        ledger=issuer.ledger,
    )
    with pytest.raises(StorageError):
        failing.issue(parse_request(ada_payload))
    assert row_count() == 0
    # the image upload is not compensated
    assert (badge_env / "artifacts" / "CS101.png").is_file()


def test_missing_template_is_fatal(issuer, ada_payload, badge_env):
    (badge_env / "assets" / "badge_template.png").unlink()
    with pytest.raises(RenderError):
        issuer.issue(parse_request(ada_payload))
    assert row_count() == 0


def test_unknown_key_code_echoes_nothing_to_ledger(issuer, ada_payload):
    ada_payload["keyCode"] = "NOPE"
    result = issuer.issue(parse_request(ada_payload))
    assert result.reason == "invalid-key-code"
    assert row_count() == 0


def test_publish_failure_does_not_affect_issuance(issuer, ada_payload):
    issuer.publisher.session = FakeSession(FakeResponse(status_code=503, reason="Unavailable"))
    result = issuer.issue(parse_request(ada_payload), share_token="token")
    assert result.issued
    outcome = result.share.result(timeout=5)
    assert not outcome.ok
    assert outcome.badge_id == str(result.record.id)
    assert issuer.ledger.find_issued(120) is not None


def test_concurrent_issuance_for_same_subject(issuer, ada_payload):
    barrier = threading.Barrier(2)
    results = []
    lock = threading.Lock()

    def worker():
        barrier.wait()
        outcome = issuer.issue(parse_request(ada_payload))
        with lock:
            results.append(outcome.status)

    threads = [threading.Thread(target=worker) for _ in range(2)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert sorted(results) == [ALREADY_ISSUED, ISSUED]
    assert row_count() == 1


def test_corrupt_template_is_a_render_error(issuer, ada_payload, badge_env):
    (badge_env / "assets" / "badge_template.png").write_bytes(b"not a png")
    with pytest.raises(RenderError):
        issuer.issue(parse_request(ada_payload))
    assert row_count() == 0
