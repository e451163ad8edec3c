from __future__ import annotations

from sqlalchemy import text

from .app import db


class BadgeRecord(db.Model):
    """Append-only ledger row for one issued badge."""

    __tablename__ = "badges"

    id = db.Column(db.Integer, primary_key=True)
    first_name = db.Column(db.String(120), nullable=False)
    last_name = db.Column(db.String(120), nullable=False)
    email = db.Column(db.String(255), nullable=False)
    subject_id = db.Column(db.Integer, nullable=False)
    key_code = db.Column(db.String(64), nullable=False)
    key_description = db.Column(db.String(255), nullable=False)
    issuer = db.Column(db.String(255), nullable=False)
    correlation_token = db.Column(db.String(255), nullable=False)
    image_url = db.Column(db.String(512), nullable=False)
    document_url = db.Column(db.String(512), nullable=False)
    issued = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False)
    __table_args__ = (
        db.Index(
            "uix_badges_subject_issued",
            "subject_id",
            unique=True,
            postgresql_where=text("issued"),
            sqlite_where=text("issued = 1"),
        ),
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "firstName": self.first_name,
            "lastName": self.last_name,
            "email": self.email,
            "subjectId": self.subject_id,
            "keyCode": self.key_code,
            "keyDescription": self.key_description,
            "issuer": self.issuer,
            "imageUrl": self.image_url,
            "badgeUrl": self.document_url,
            "issued": self.issued,
            "createdAt": self.created_at.isoformat() if self.created_at else None,
        }
