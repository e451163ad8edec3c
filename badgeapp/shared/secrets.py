from __future__ import annotations

import json
import logging
from typing import Iterable

from botocore.exceptions import BotoCoreError, ClientError
from sqlalchemy.engine import URL

from .errors import SecretLookupError


logger = logging.getLogger("badgeapp.secrets")

REQUIRED_KEYS = ("username", "host", "password", "port")


def _read_secret(client, secret_id: str) -> dict:
    response = client.get_secret_value(SecretId=secret_id)
    raw = response.get("SecretString")
    if not raw:
        raise SecretLookupError(f"Secret {secret_id} has an empty SecretString")
    try:
        credentials = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise SecretLookupError(f"Secret {secret_id} is not valid JSON") from exc
    if not isinstance(credentials, dict):
        raise SecretLookupError(f"Secret {secret_id} is not a JSON object")
    missing = [key for key in REQUIRED_KEYS if not credentials.get(key)]
    if missing:
        raise SecretLookupError(
            f"Secret {secret_id} is missing {', '.join(missing)}"
        )
    return credentials


def fetch_db_credentials(secret_ids: Iterable[str], client) -> dict:
    """Return credentials from the first secret id that resolves cleanly."""
    attempted: list[str] = []
    for secret_id in secret_ids:
        attempted.append(secret_id)
        try:
            credentials = _read_secret(client, secret_id)
        except (BotoCoreError, ClientError, SecretLookupError) as exc:
            logger.warning("[SECRETS] lookup failed for %s: %s", secret_id, exc)
            continue
        logger.info("[SECRETS] using database credentials from %s", secret_id)
        return credentials
    raise SecretLookupError(
        f"No usable database credentials; attempted {', '.join(attempted) or 'nothing'}"
    )


def database_url_from_credentials(
    credentials: dict, database: str, drivername: str = "postgresql+psycopg2"
) -> str:
    url = URL.create(
        drivername,
        username=credentials["username"],
        password=credentials["password"],
        host=credentials["host"],
        port=int(credentials["port"]),
        database=credentials.get("dbname") or database,
    )
    return url.render_as_string(hide_password=False)


def resolve_database_url(secret_ids: Iterable[str], database: str, region: str) -> str:
    import boto3

    client = boto3.client("secretsmanager", region_name=region)
    return database_url_from_credentials(
        fetch_db_credentials(secret_ids, client), database
    )
