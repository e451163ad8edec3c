from concurrent.futures import ThreadPoolExecutor

import pytest
import requests

from badgeapp.services.linkedin import LinkedInPublisher
from badgeapp.shared.errors import PublishError


class FakeResponse:
    def __init__(self, status_code=201, payload=None, reason="Created"):
        self.status_code = status_code
        self.reason = reason
        self._payload = payload if payload is not None else {"id": "share-1"}

    @property
    def ok(self):
        return 200 <= self.status_code < 400

    def json(self):
        return self._payload


class FakeSession:
    def __init__(self, response=None, error=None):
        self.response = response or FakeResponse()
        self.error = error
        self.calls = []

    def post(self, url, json=None, headers=None, timeout=None):
        self.calls.append({"url": url, "json": json, "headers": headers, "timeout": timeout})
        if self.error:
            raise self.error
        return self.response


def make_publisher(session, executor=None):
    return LinkedInPublisher(
        "https://api.linkedin.com/v2/shares",
        "urn:li:person:abc",
        "https://badges.example.com/",
        timeout=3,
        session=session,
        executor=executor,
    )


def test_publish_posts_share_with_bearer_token():
    session = FakeSession()
    result = make_publisher(session).publish("42", "token-1")
    assert result == {"id": "share-1"}
    call = session.calls[0]
    assert call["url"] == "https://api.linkedin.com/v2/shares"
    assert call["headers"]["Authorization"] == "Bearer token-1"
    assert call["timeout"] == 3
    content = call["json"]["content"]
    assert content["submittedUrl"] == "https://badges.example.com/badge/42"
    assert content["submittedImageUrl"] == "https://badges.example.com/images/42.png"
    assert call["json"]["owner"] == "urn:li:person:abc"


def test_publish_non_ok_raises():
    session = FakeSession(FakeResponse(status_code=401, reason="Unauthorized"))
    with pytest.raises(PublishError) as excinfo:
        make_publisher(session).publish("42", "bad")
    assert excinfo.value.status_code == 401


def test_publish_transport_error_raises():
    session = FakeSession(error=requests.ConnectionError("down"))
    with pytest.raises(PublishError):
        make_publisher(session).publish("42", "token")


def test_publish_requires_token():
    session = FakeSession()
    with pytest.raises(PublishError):
        make_publisher(session).publish("42", "")
    assert session.calls == []


def test_background_publish_reports_outcomes():
    with ThreadPoolExecutor(max_workers=1) as executor:
        ok = make_publisher(FakeSession(), executor).publish_in_background("1", "t")
        failed = make_publisher(
            FakeSession(FakeResponse(status_code=500, reason="Server Error")), executor
        ).publish_in_background("2", "t")
        ok_outcome = ok.result(timeout=5)
        failed_outcome = failed.result(timeout=5)
    assert ok_outcome.ok and ok_outcome.confirmation == {"id": "share-1"}
    assert not failed_outcome.ok
    assert "500" in failed_outcome.error
