"""Tests for the WhatsApp integration: config routes, Meta webhook and sends."""

from unittest.mock import MagicMock, patch

import pytest
import requests

from leados.extensions import db
from leados.models.knowledge import CampaignKnowledge
from leados.models.sentiment import HumanRedirectNotification, SentimentAnalysis
from leados.models.whatsapp import WhatsAppConfig, WhatsAppMessage
from leados.services import whatsapp_service


def _graph_ok(message_id="wamid.OUT1"):
    resp = MagicMock(status_code=200)
    resp.json.return_value = {"messages": [{"id": message_id}]}
    return resp


def _inbound(text, phone="5562999990000", name="Carla"):
    return {
        "object": "whatsapp_business_account",
        "entry": [{"changes": [{
            "field": "messages",
            "value": {
                "contacts": [{"wa_id": phone, "profile": {"name": name}}],
                "messages": [{
                    "id": "wamid.IN1", "from": phone, "type": "text",
                    "text": {"body": text},
                }],
            },
        }]}],
    }


@pytest.fixture
def wa_config(seed_data):
    config = WhatsAppConfig(
        user_id=seed_data["owner_id"],
        api_token="EAAG-secret-token-1234",
        phone_number_id="10987654321",
        is_active=True,
    )
    db.session.add(config)
    db.session.commit()
    return config


class TestConfigRoutes:

    def test_free_plan_is_blocked(self, free_client):
        resp = free_client.get("/api/whatsapp/config")
        assert resp.status_code == 403
        assert resp.get_json()["upgrade_required"] is True

    def test_create_and_mask_token(self, auth_client):
        assert auth_client.get("/api/whatsapp/config").get_json()["config"] is None

        resp = auth_client.put("/api/whatsapp/config", json={"phone_number_id": "123"})
        assert resp.status_code == 400

        resp = auth_client.put("/api/whatsapp/config", json={
            "api_token": "EAAG-secret-token-1234",
            "phone_number_id": "10987654321",
            "is_active": True,
        })
        assert resp.status_code == 200
        config = resp.get_json()["config"]
        assert config["api_token"] == "********1234"
        assert config["is_active"] is True

    def test_blank_token_keeps_stored_one(self, auth_client, wa_config):
        resp = auth_client.put("/api/whatsapp/config", json={"api_token": "", "is_active": False})
        assert resp.status_code == 200
        assert wa_config.api_token == "EAAG-secret-token-1234"
        assert wa_config.is_active is False

    def test_resolve_notification(self, auth_client, seed_data):
        notification = HumanRedirectNotification(
            user_id=seed_data["owner_id"], reason="Cliente pediu humano",
            urgency_level="high", message_content="atendente por favor",
        )
        db.session.add(notification)
        db.session.commit()

        pending = auth_client.get("/api/whatsapp/notifications").get_json()["notifications"]
        assert [n["id"] for n in pending] == [notification.id]

        resp = auth_client.post(f"/api/whatsapp/notifications/{notification.id}/resolve")
        assert resp.get_json()["notification"]["status"] == "resolved"
        assert auth_client.get("/api/whatsapp/notifications").get_json()["notifications"] == []
        assert auth_client.post("/api/whatsapp/notifications/nope/resolve").status_code == 404


class TestWebhookVerification:

    def test_valid_token_echoes_challenge(self, client):
        resp = client.get(
            "/whatsapp/webhook?hub.mode=subscribe&hub.verify_token=verify_test_token&hub.challenge=42xyz"
        )
        assert resp.status_code == 200
        assert resp.get_data(as_text=True) == "42xyz"

    def test_wrong_token(self, client):
        resp = client.get("/whatsapp/webhook?hub.mode=subscribe&hub.verify_token=bad&hub.challenge=1")
        assert resp.status_code == 403


class TestInboundMessages:

    def test_other_objects_are_ignored(self, client):
        data = client.post("/whatsapp/webhook", json={"object": "page"}).get_json()
        assert data["status"] == "ignored"

    @pytest.mark.parametrize("body", [[1], "texto", 42])
    def test_non_object_body_is_acknowledged(self, client, body):
        resp = client.post("/whatsapp/webhook", json=body)
        assert resp.status_code == 200
        assert resp.get_json()["status"] == "ignored"

    def test_no_active_config(self, client, seed_data):
        data = client.post("/whatsapp/webhook", json=_inbound("Olá")).get_json()
        assert data["processed"] == 0
        assert WhatsAppMessage.query.count() == 0

    @patch("leados.services.whatsapp_service.requests.post")
    def test_message_is_stored_analysed_and_answered(self, mock_post, client, wa_config, seed_data):
        mock_post.return_value = _graph_ok()

        data = client.post(
            "/whatsapp/webhook", json=_inbound("Preciso de ajuda urgente com ICMS")
        ).get_json()
        assert data["processed"] == 1

        message = WhatsAppMessage.query.one()
        assert message.sender_name == "Carla"
        assert message.processed is True
        assert message.response_sent is True

        analysis = SentimentAnalysis.query.one()
        assert analysis.redirect_to_human is True
        assert HumanRedirectNotification.query.filter_by(customer_name="Carla").count() == 1

        body = mock_post.call_args.kwargs["json"]
        assert body["to"] == "5562999990000"
        assert body["text"]["body"].startswith("🤖 *")
        assert "Olá Carla!" in body["text"]["body"]
        assert mock_post.call_args.kwargs["headers"]["Authorization"] == "Bearer EAAG-secret-token-1234"

    @patch("leados.services.whatsapp_service.requests.post")
    def test_graph_failure_is_simulated(self, mock_post, client, wa_config):
        mock_post.side_effect = requests.ConnectionError("graph down")
        client.post("/whatsapp/webhook", json=_inbound("Obrigado, ótimo atendimento"))

        message = WhatsAppMessage.query.one()
        assert message.response_sent is True
        assert SentimentAnalysis.query.one().sentiment == "positive"
        assert HumanRedirectNotification.query.count() == 0


class TestSending:

    def test_normalize_phone(self):
        assert whatsapp_service.normalize_phone("(62) 99999-0000") == "5562999990000"
        assert whatsapp_service.normalize_phone("+55 62 3321-8200") == "556233218200"

    def test_send_requires_config(self, call_as_owner):
        resp = call_as_owner("whatsapp-send-message", to="62999990000", message="Olá")
        assert resp.status_code == 400
        assert "não configurado" in resp.get_json()["error"]

    @patch("leados.services.whatsapp_service.requests.post")
    def test_send_logs_knowledge(self, mock_post, call_as_owner, wa_config, seed_data):
        mock_post.return_value = _graph_ok("wamid.X")
        data = call_as_owner("whatsapp-send-message", to="62999990000", message="Olá").get_json()
        assert data["messageId"] == "wamid.X"
        assert data["simulated"] is False
        entry = CampaignKnowledge.query.filter_by(user_id=seed_data["owner_id"]).one()
        assert "5562999990000" in entry.content

    def test_bot_responder_without_config_is_not_sent(self, call_as_owner):
        data = call_as_owner(
            "whatsapp-bot-responder", phoneNumber="62999990000", message="Qual o prazo?",
        ).get_json()
        assert data["sent"] is False
        assert "Olá Cliente!" in data["response"]

    def test_bot_looks_up_the_customer_words(self, call_as_owner):
        data = call_as_owner(
            "whatsapp-bot-responder", phoneNumber="62999990000",
            message="Padaria Central tem créditos?", customerName="Carla",
        ).get_json()
        assert "Padaria Central" in data["response"]

    @patch("leados.services.llm_service.requests.post")
    def test_bot_prompt_wraps_question_after_lookup(self, mock_post, app, call_as_owner, monkeypatch):
        monkeypatch.setitem(app.config, "GEMINI_API_KEY", "test-gemini-key")
        resp = MagicMock(status_code=200)
        resp.json.return_value = {"candidates": [{"content": {"parts": [{"text": "Sim."}]}}]}
        mock_post.return_value = resp

        call_as_owner(
            "whatsapp-bot-responder", phoneNumber="62999990000",
            message="Padaria Central tem créditos?", customerName="Carla",
        )
        prompt = mock_post.call_args.kwargs["json"]["contents"][0]["parts"][0]["text"]
        assert "- Padaria Central (new)" in prompt
        assert prompt.rstrip().endswith("Responda de forma concisa e profissional.")
        assert "Cliente Carla perguntou via WhatsApp: Padaria Central tem créditos?" in prompt


@pytest.fixture
def call_as_owner(client, service_headers, seed_data):
    def _call(name, **body):
        body["userId"] = seed_data["owner_id"]
        return client.post(f"/functions/v1/{name}", json=body, headers=service_headers)
    return _call
