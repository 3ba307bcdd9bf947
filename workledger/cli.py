# workledger/cli.py
from __future__ import annotations

import click
from flask import current_app
from flask.cli import with_appcontext
from sqlalchemy.exc import IntegrityError

from .extensions import db
from .models import Organization, User
from .utils.money import CURRENCIES
from .utils.passwords import hash_password, validate_password


@click.command("create-owner")
@click.option("--email", prompt=True, help="Login email of the owner.")
@click.option("--name", prompt=True, help="Display name of the owner.")
@click.option("--organization", "organization_name", prompt=True, help="Organization to create or join.")
@click.option("--currency", default=None, help="Currency for a new organization (GHS, USD, EUR, GBP, NGN).")
@click.password_option(help="Password (prompted when omitted).")
@with_appcontext
def create_owner(email, name, organization_name, currency, password):
    """Create an owner account, creating its organization if needed."""
    email = (email or "").strip().lower()
    name = (name or "").strip()
    organization_name = (organization_name or "").strip()
    if not email or not name or not organization_name:
        raise click.BadParameter("Email, name and organization are required.")

    currency = (currency or current_app.config["DEFAULT_CURRENCY"]).strip().upper()
    if currency not in CURRENCIES:
        raise click.BadParameter(f"Unsupported currency {currency}. Use one of: {', '.join(CURRENCIES)}.")

    ok, msg = validate_password(password)
    if not ok:
        raise click.BadParameter(msg, param_hint="password")

    org = Organization.query.filter_by(name=organization_name).first()
    if org is None:
        org = Organization(name=organization_name, currency=currency)
        db.session.add(org)
        click.echo(f"Creating organization {organization_name} ({currency})")

    owner = User(
        organization=org,
        name=name,
        email=email,
        role="owner",
        is_active=True,
        password_hash=hash_password(password),
    )
    db.session.add(owner)

    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise click.ClickException(f"A user with email {email} already exists.")

    current_app.logger.info("Owner %s created for organization %s", email, org.id)
    click.echo(f"Owner created: {email}")


def register_cli(app) -> None:
    app.cli.add_command(create_owner)
