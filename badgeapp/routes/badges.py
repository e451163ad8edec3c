from __future__ import annotations

from flask import (
    Blueprint,
    abort,
    current_app,
    jsonify,
    render_template_string,
    request,
    send_from_directory,
)
from sqlalchemy.exc import SQLAlchemyError

from ..app import get_issuer
from ..services.issuance import ISSUED
from ..shared.errors import IssuanceError, LedgerUnavailableError, PublishError
from ..shared.ledger import ALREADY_ISSUED
from ..shared.storage import LocalArtifactStore
from ..shared.validation import REJECTION_MESSAGES, parse_request

bp = Blueprint("badges", __name__)

INDEX_TEMPLATE = """<!doctype html>
<html>
  <head><title>Badge Service</title></head>
  <body>
    <h1>Badge Service</h1>
    <ul>
      <li><code>POST {{ url_for('badges.generate_badge') }}</code> issue a badge</li>
      <li><code>POST {{ url_for('badges.share_badge') }}</code> share a badge on LinkedIn</li>
      <li><code>GET /badges/&lt;student id&gt;</code> look up an issued badge</li>
    </ul>
  </body>
</html>
"""


def _payload() -> dict:
    data = request.get_json(silent=True)
    if data is None:
        data = request.form.to_dict()
    if not isinstance(data, dict):
        return {}
    details = data.get("badgeDetails")
    if isinstance(details, dict):
        merged = dict(details)
        for key in ("linkedinToken", "userToken"):
            if key in data and key not in merged:
                merged[key] = data[key]
        return merged
    return data


@bp.get("/")
def index():
    return render_template_string(INDEX_TEMPLATE)


@bp.post("/generate-badge")
def generate_badge():
    payload = _payload()
    badge_request = parse_request(payload)
    share_token = str(payload.get("linkedinToken") or payload.get("userToken") or "").strip()
    try:
        result = get_issuer().issue(badge_request, share_token=share_token or None)
    except (IssuanceError, SQLAlchemyError):
        current_app.logger.exception(
            "[BADGE-FAIL] subject=%s key=%s",
            badge_request.subject_id,
            badge_request.key_code,
        )
        return jsonify({"error": "Failed to generate badge"}), 500

    if result.status == ALREADY_ISSUED:
        return jsonify({"error": "already issued"}), 409
    if result.status != ISSUED:
        return (
            jsonify(
                {
                    "error": result.reason,
                    "message": REJECTION_MESSAGES.get(result.reason, "Invalid request."),
                }
            ),
            400,
        )

    record = result.record
    body = {
        "status": ISSUED,
        "badgeId": record.id,
        "keyDescription": record.key_description,
        "imageUrl": record.image_url,
        "badgeUrl": record.document_url,
    }
    if result.share is not None:
        body["share"] = "queued"
    return jsonify(body), 200


@bp.post("/share-badge")
def share_badge():
    payload = request.get_json(silent=True) or request.form.to_dict()
    if not isinstance(payload, dict):
        return jsonify({"error": "badgeId and userToken are required"}), 400
    badge_id = str(payload.get("badgeId") or "").strip()
    token = str(payload.get("userToken") or "").strip()
    publisher = get_issuer().publisher
    if publisher is None:
        abort(404)
    try:
        confirmation = publisher.publish(badge_id, token)
    except PublishError as exc:
        current_app.logger.warning("[SHARE-FAIL] badge=%s error=%s", badge_id, exc)
        return jsonify({"error": "Failed to share badge on LinkedIn"}), 502
    return jsonify(confirmation), 200


@bp.get("/badges/<int:subject_id>")
def show_badge(subject_id: int):
    try:
        record = get_issuer().ledger.find_issued(subject_id)
    except LedgerUnavailableError:
        current_app.logger.exception("[LEDGER-FAIL] lookup subject=%s", subject_id)
        return jsonify({"error": "Badge lookup unavailable"}), 503
    if record is None:
        abort(404)
    return jsonify(record.to_dict())


@bp.get("/artifacts/<path:filename>")
def artifact_file(filename: str):
    store = get_issuer().store
    if not isinstance(store, LocalArtifactStore):
        abort(404)
    return send_from_directory(store.root, filename)
