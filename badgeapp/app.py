import logging
import os
import sys

from flask import Flask, current_app
from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()


def _database_url(region: str) -> str:
    explicit = os.getenv("DATABASE_URL")
    if explicit:
        return explicit
    db_name = os.getenv("DB_NAME", "badge_db")
    secret_ids = [
        part.strip()
        for part in os.getenv("DB_SECRET_IDS", "").split(",")
        if part.strip()
    ]
    if secret_ids:
        from .shared.secrets import resolve_database_url

        return resolve_database_url(secret_ids, db_name, region)
    db_user = os.getenv("DB_USER", "badges")
    db_password = os.getenv("POSTGRES_PASSWORD", "postgres")
    db_host = os.getenv("DB_HOST", "db")
    return f"postgresql+psycopg2://{db_user}:{db_password}@{db_host}/{db_name}"


def create_app():
    from .config import load_settings
    from .services.issuance import BadgeIssuer
    from .services.linkedin import LinkedInPublisher
    from .shared.catalog import load_catalog
    from .shared.ledger import IssuanceLedger
    from .shared.storage import build_artifact_store

    app = Flask(__name__)
    app.config["MAX_CONTENT_LENGTH"] = 1 * 1024 * 1024

    site_root = os.getenv("SITE_ROOT", "/srv")
    app.config["SITE_ROOT"] = site_root
    settings = load_settings(os.environ, site_root=site_root)
    app.config["ISSUANCE_SETTINGS"] = settings

    database_url = _database_url(settings.aws_region)
    app.config["SQLALCHEMY_DATABASE_URI"] = database_url
    app.config["SQLALCHEMY_TRACK_MODIFICATIONS"] = False
    if database_url.startswith("sqlite"):
        # ledger connections are opened from request and worker threads
        app.config["SQLALCHEMY_ENGINE_OPTIONS"] = {
            "connect_args": {"check_same_thread": False}
        }
    db.init_app(app)

    badge_logger = logging.getLogger("badgeapp")
    if not badge_logger.handlers:
        badge_logger.addHandler(logging.StreamHandler(sys.stdout))
    badge_logger.setLevel(logging.INFO)
    app.logger.setLevel(logging.INFO)

    catalog = load_catalog(settings.catalog_path)
    app.logger.info(
        "[CATALOG] loaded %d key codes from %s", len(catalog), settings.catalog_path
    )
    if not os.path.isfile(settings.template_path):
        app.logger.warning(
            "[TEMPLATE] %s missing, issuance will fail until `python manage.py make_template` runs",
            settings.template_path,
        )
    with app.app_context():
        ledger = IssuanceLedger(db.engine, settings.retry)
    publisher = LinkedInPublisher(
        settings.linkedin_api_url,
        settings.linkedin_owner_urn,
        settings.share_base_url,
        timeout=settings.http_timeout,
    )
    app.extensions["badge_issuer"] = BadgeIssuer(
        catalog=catalog,
        settings=settings,
        store=build_artifact_store(settings),
        ledger=ledger,
        publisher=publisher,
    )

    from .routes.badges import bp as badges_bp

    app.register_blueprint(badges_bp)

    return app


def get_issuer():
    return current_app.extensions["badge_issuer"]
