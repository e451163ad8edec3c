import click
from flask import current_app
from flask.cli import FlaskGroup

from badgeapp.app import create_app, get_issuer
from badgeapp.shared.errors import IssuanceError
from badgeapp.shared.rendering import make_template as write_template
from badgeapp.shared.validation import REJECTION_MESSAGES, parse_request


cli = FlaskGroup(create_app=create_app)


@cli.command("gen_badge")
@click.option("--first-name", required=True)
@click.option("--last-name", required=True)
@click.option("--email", required=True)
@click.option("--student-id", "subject_id", required=True)
@click.option("--key-code", required=True)
@click.option("--issuer", required=True)
@click.option("--token", "correlation_token", default="cli")
def gen_badge(first_name, last_name, email, subject_id, key_code, issuer, correlation_token):
    """Issue a badge for one student."""
    request = parse_request(
        {
            "first_name": first_name,
            "last_name": last_name,
            "email": email,
            "subject_id": subject_id,
            "key_code": key_code,
            "issuer": issuer,
            "correlation_token": correlation_token,
        }
    )
    try:
        result = get_issuer().issue(request)
    except IssuanceError as exc:
        raise click.ClickException(f"Issuance failed: {exc}")
    if not result.issued:
        message = REJECTION_MESSAGES.get(result.reason, "already issued")
        raise click.ClickException(f"{result.reason}: {message}")
    click.echo(result.record.image_url)
    click.echo(result.record.document_url)


@cli.command("check_db")
def check_db():
    """Connect to the ledger database with the configured retry policy."""
    try:
        now = get_issuer().ledger.ping()
    except IssuanceError as exc:
        raise click.ClickException(str(exc))
    click.echo(f"Database connection OK: {now}")


@cli.command("make_template")
@click.option("--path", "path", default=None, help="Defaults to BADGE_TEMPLATE")
def make_template(path):
    """Write a plain base badge template image."""
    target = path or current_app.config["ISSUANCE_SETTINGS"].template_path
    click.echo(write_template(target))


if __name__ == "__main__":
    cli()
