"""Tests for the lifecycle email jobs and the Flask CLI commands."""

from datetime import timedelta
from unittest.mock import patch

import pytest

from leados.extensions import db
from leados.models.knowledge import CampaignKnowledge
from leados.models.lead import Lead
from leados.models.user import User
from leados.services import onboarding_service
from leados.utils import as_utc

SENT = {"id": "email_123", "simulated": False}
NOT_DELIVERED = {"id": None, "simulated": True, "error": "503 Server Error"}


@pytest.fixture
def mock_send():
    with patch("leados.services.onboarding_service.send_email_sync", return_value=SENT) as mock:
        yield mock


def _days_after_signup(user, days):
    return as_utc(user.created_at) + timedelta(days=days, hours=1)


class TestOnboardingJob:

    def test_sends_current_day_once(self, seed_data, mock_send):
        now = _days_after_signup(seed_data["owner"], 2)

        assert onboarding_service.process_onboarding(now=now) == 2
        subjects = {c.kwargs["subject"] for c in mock_send.call_args_list}
        assert subjects == {"Uma dica para potencializar seus leads 🚀"}
        assert CampaignKnowledge.query.count() == 2

        mock_send.reset_mock()
        assert onboarding_service.process_onboarding(now=now) == 0
        mock_send.assert_not_called()

    def test_undelivered_email_is_retried(self, seed_data, mock_send):
        now = _days_after_signup(seed_data["owner"], 0)
        mock_send.return_value = NOT_DELIVERED

        assert onboarding_service.process_onboarding(now=now) == 0
        assert mock_send.call_count == 2
        assert CampaignKnowledge.query.count() == 0

        mock_send.return_value = SENT
        assert onboarding_service.process_onboarding(now=now) == 2
        assert CampaignKnowledge.query.count() == 2

    def test_dry_run_sends_nothing(self, seed_data, mock_send):
        now = _days_after_signup(seed_data["owner"], 0)
        assert onboarding_service.process_onboarding(dry_run=True, now=now) == 2
        mock_send.assert_not_called()
        assert CampaignKnowledge.query.count() == 0

    def test_after_first_week(self, seed_data, mock_send):
        now = _days_after_signup(seed_data["owner"], 8)
        assert onboarding_service.process_onboarding(now=now) == 0

    def test_inactive_users_are_skipped(self, seed_data, mock_send):
        seed_data["free_user"].is_active = False
        db.session.commit()
        now = _days_after_signup(seed_data["owner"], 6)
        assert onboarding_service.process_onboarding(now=now) == 1
        assert mock_send.call_args.kwargs["context"]["day"] == 7


class TestUpsellJob:

    def _fill(self, user_id, count):
        for i in range(count):
            db.session.add(Lead(user_id=user_id, company=f"Empresa {i}"))
        db.session.commit()

    def test_only_near_limit_and_once_per_month(self, seed_data, mock_send):
        assert onboarding_service.process_upsell() == 0

        self._fill(seed_data["free_user_id"], 9)
        assert onboarding_service.process_upsell() == 1
        kwargs = mock_send.call_args.kwargs
        assert kwargs["template"] == "emails/upsell.html"
        assert kwargs["context"]["next_plan"]["name"] == "Pro"
        assert kwargs["context"]["usage"] == 90

        assert onboarding_service.process_upsell() == 0

    def test_undelivered_upsell_is_not_marked(self, seed_data, mock_send):
        self._fill(seed_data["free_user_id"], 9)
        mock_send.return_value = NOT_DELIVERED
        assert onboarding_service.process_upsell() == 0

        mock_send.return_value = SENT
        assert onboarding_service.process_upsell() == 1

    def test_enterprise_is_never_upsold(self, seed_data, mock_send):
        self._fill(seed_data["owner_id"], 1800)
        assert onboarding_service.process_upsell(dry_run=True) == 0

    def test_upsell_email_renders(self, seed_data):
        self._fill(seed_data["free_user_id"], 9)
        result = onboarding_service.send_upsell_email(seed_data["free_user"])
        assert result["simulated"] is True
        assert result["subject"] == "Você está quase no seu limite de leads do Leados AI"


class TestCli:

    def test_seed_demo(self, app):
        runner = app.test_cli_runner()
        result = runner.invoke(args=["seed-demo", "--email", "demo@leados.test"])
        assert result.exit_code == 0
        assert "Seed data created successfully!" in result.output

        user = User.query.filter_by(email="demo@leados.test").one()
        assert user.role == "admin"
        assert Lead.query.filter_by(user_id=user.id, source="import").count() > 0

        result = runner.invoke(args=["seed-demo", "--email", "demo@leados.test"])
        assert "Demo user already exists" in result.output
        assert "Duplicates:" in result.output

    def test_qualify_leads(self, app, seed_data):
        runner = app.test_cli_runner()
        result = runner.invoke(args=["qualify-leads", "--user-email", seed_data["owner"].email])
        assert result.exit_code == 0
        assert "1 lead(s) qualified" in result.output

        result = runner.invoke(args=["qualify-leads", "--user-email", "nobody@x.com"])
        assert "ERROR" in result.output

    def test_onboarding_dry_run(self, app, seed_data, mock_send):
        result = app.test_cli_runner().invoke(args=["send-onboarding-emails", "--dry-run"])
        assert result.exit_code == 0
        assert "[DRY RUN]" in result.output
        mock_send.assert_not_called()
