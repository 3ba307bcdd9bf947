# tests/conftest.py
from __future__ import annotations

import pytest
from flask import g
from flask_login import FlaskLoginClient

from workledger import create_app
from workledger.extensions import db
from workledger.models import (
    Client,
    ClientCustomField,
    Organization,
    ProjectStatus,
    Service,
    User,
    Worker,
    WorkerProject,
)
from workledger.services.orders import create_order
from workledger.settings import TestConfig
from workledger.utils.passwords import hash_password

PASSWORD = "correct-horse-42"


@pytest.fixture
def app():
    app = create_app(config_class=TestConfig)
    app.test_client_class = FlaskLoginClient

    # The fixture keeps one app context open for the whole test, so Flask reuses
    # it (and its ``g``) for every test request. Drop Flask-Login's per-request
    # user cache so each client is served as its own user.
    @app.before_request
    def _reset_login_cache():
        g.pop("_login_user", None)

    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def org(app):
    org = Organization(name="Acme Repairs", currency="GHS")
    db.session.add(org)
    db.session.commit()
    return org


@pytest.fixture
def other_org(app):
    org = Organization(name="Elsewhere Ltd", currency="USD")
    db.session.add(org)
    db.session.commit()
    return org


def _user(org, email, role):
    user = User(
        organization_id=org.id,
        name=email.split("@")[0].title(),
        email=email,
        role=role,
        password_hash=hash_password(PASSWORD),
    )
    db.session.add(user)
    db.session.commit()
    return user


@pytest.fixture
def owner(org):
    return _user(org, "owner@acme.test", "owner")


@pytest.fixture
def member(org):
    return _user(org, "member@acme.test", "member")


@pytest.fixture
def client_row(org):
    client = Client(organization_id=org.id, name="Kofi Mensah", phone="0240000000")
    client.custom_fields.append(ClientCustomField(title="Vehicle", value="Toyota Corolla"))
    db.session.add(client)
    db.session.commit()
    return client


@pytest.fixture
def worker(org):
    worker = Worker(organization_id=org.id, name="Ama Owusu")
    db.session.add(worker)
    db.session.commit()
    return worker


@pytest.fixture
def project(worker):
    project = WorkerProject(worker_id=worker.id, name="Panel beating", price_minor=2500, status=ProjectStatus.ACTIVE)
    db.session.add(project)
    db.session.commit()
    return project


@pytest.fixture
def second_worker(org):
    worker = Worker(organization_id=org.id, name="Yaw Boateng")
    db.session.add(worker)
    db.session.flush()
    db.session.add(WorkerProject(worker_id=worker.id, name="Spraying", price_minor=4000))
    db.session.commit()
    return worker


@pytest.fixture
def service(org):
    service = Service(organization_id=org.id, name="Full service", cost_minor=10000)
    db.session.add(service)
    db.session.commit()
    return service


@pytest.fixture
def make_order(org, client_row, service):
    """Service order with a 100.00 total unless a quantity is given."""

    def _make(quantity=1, workers=(), **kwargs):
        return create_order(
            org.id,
            client_row.id,
            [{"service_id": service.id, "quantity": quantity}],
            workers=workers,
            **kwargs,
        )

    return _make


@pytest.fixture
def order(make_order, worker, project):
    return make_order(workers=[{"worker_id": worker.id, "project_id": project.id}])
