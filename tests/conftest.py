"""Shared test fixtures for the Leados AI test suite.

Provides:
- app: Flask app configured for testing (in-memory SQLite, CSRF off)
- client: Flask test client
- db_session: clean database per test (tables created/dropped)
- seed_data: an enterprise-plan owner with CRM rows, plus a free-plan user
- auth_client / free_client: clients logged in as those users
"""

from datetime import datetime, timedelta, timezone

import pytest
from werkzeug.security import generate_password_hash

from leados import create_app
from leados.extensions import db as _db
from leados.models.contact import Contact
from leados.models.interaction import Interaction
from leados.models.lead import Lead
from leados.models.opportunity import Opportunity
from leados.models.user import User

OWNER_EMAIL = "owner@leados.test"
FREE_EMAIL = "free@leados.test"
PASSWORD = "s3cret-pass"
SERVICE_KEY = "svc_test_key"


@pytest.fixture(scope="session")
def app():
    """Create the Flask application configured for testing."""
    app = create_app("testing")
    yield app


@pytest.fixture(autouse=True)
def db_session(app):
    """Create all tables before each test, drop after."""
    with app.app_context():
        _db.create_all()
        yield _db.session
        _db.session.rollback()
        _db.drop_all()


@pytest.fixture
def client(app):
    """Flask test client."""
    return app.test_client()


@pytest.fixture
def seed_data(app, db_session):
    """Seed an owner (admin role, so enterprise plan) with leads, a contact,
    an opportunity and an interaction, plus a second user on the free plan.

    Returns a dict with the created objects and their ids.
    """
    owner = User(
        email=OWNER_EMAIL,
        password_hash=generate_password_hash(PASSWORD),
        display_name="Ana Owner",
        company="Leados Test",
        role="admin",
    )
    free_user = User(
        email=FREE_EMAIL,
        password_hash=generate_password_hash(PASSWORD),
        display_name="Bruno Free",
        role="sdr",
    )
    _db.session.add_all([owner, free_user])
    _db.session.flush()

    leads = [
        Lead(
            user_id=owner.id,
            company="Jalles Machado S.A.",
            sector="Agroindústria - Açúcar e Etanol",
            tax_regime="lucro_real",
            decision_maker="CFO/Tributário",
            phone="(62) 3321-8200",
            email="ri@jallesmachado.com",
            prospecting_hook="Alta carga de ICMS",
            status="qualified",
        ),
        Lead(
            user_id=owner.id,
            company="Padaria Central",
            sector="Varejo de alimentos",
            tax_regime="simples_nacional",
            status="new",
        ),
        Lead(
            user_id=owner.id,
            company="Usina Goiás Energia",
            sector="Energia",
            tax_regime="lucro_real",
            status="new",
        ),
    ]
    _db.session.add_all(leads)

    contact = Contact(
        user_id=owner.id,
        name="Carla Fiscal",
        company="Jalles Machado S.A.",
        role="Gerente Fiscal",
        email="carla@jalles.test",
        phone="62999990000",
        status="ativo",
    )
    _db.session.add(contact)
    _db.session.flush()

    opportunity = Opportunity(
        user_id=owner.id,
        contact_id=contact.id,
        title="Recuperação de ICMS",
        company="Jalles Machado S.A.",
        value=150000,
        probability="75",
        stage="proposal",
    )
    interaction = Interaction(
        user_id=owner.id,
        contact_id=contact.id,
        interaction_type="call",
        subject="Primeira ligação",
        interaction_date=datetime.now(timezone.utc) - timedelta(days=2),
        follow_up_date=(datetime.now(timezone.utc) + timedelta(days=3)).date().isoformat(),
    )
    _db.session.add_all([opportunity, interaction])
    _db.session.commit()

    return {
        "password": PASSWORD,
        "owner": owner,
        "owner_id": owner.id,
        "free_user": free_user,
        "free_user_id": free_user.id,
        "leads": leads,
        "lead_ids": [lead.id for lead in leads],
        "contact": contact,
        "contact_id": contact.id,
        "opportunity": opportunity,
        "opportunity_id": opportunity.id,
        "interaction": interaction,
        "interaction_id": interaction.id,
    }


def _login(client, email):
    resp = client.post("/auth/login", json={"email": email, "password": PASSWORD})
    assert resp.status_code == 200, resp.get_json()
    return client


@pytest.fixture
def auth_client(app, seed_data):
    """Client logged in as the enterprise-plan owner."""
    return _login(app.test_client(), OWNER_EMAIL)


@pytest.fixture
def free_client(app, seed_data):
    """Client logged in as the free-plan user."""
    return _login(app.test_client(), FREE_EMAIL)


@pytest.fixture
def service_headers():
    return {"Authorization": f"Bearer {SERVICE_KEY}"}
