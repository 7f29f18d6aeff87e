"""Tests for the /functions/v1 endpoints: auth, plan gating, prospecting,
qualification, campaigns, sentiment, RAG chat and lifecycle emails."""

import json
from unittest.mock import MagicMock, patch

import pytest
import requests

from leados.extensions import db
from leados.models.campaign import Campaign
from leados.models.contact import Contact
from leados.models.knowledge import CampaignKnowledge
from leados.models.lead import Lead
from leados.models.sentiment import HumanRedirectNotification, SentimentAnalysis
from leados.services import plan_service


def _gemini(payload):
    """Fake Gemini HTTP response whose text is `payload` (dict or str)."""
    text = payload if isinstance(payload, str) else json.dumps(payload)
    resp = MagicMock(status_code=200)
    resp.json.return_value = {"candidates": [{"content": {"parts": [{"text": text}]}}]}
    return resp


def _receita(**fields):
    resp = MagicMock(status_code=200)
    resp.json.return_value = {"status": "OK", **fields}
    return resp


@pytest.fixture
def gemini_key(app, monkeypatch):
    monkeypatch.setitem(app.config, "GEMINI_API_KEY", "test-gemini-key")


@pytest.fixture
def call(client, service_headers, seed_data):
    """POST to a function as the owner, authenticated with the service key."""

    def _call(name, user_id=None, **body):
        body["userId"] = user_id or seed_data["owner_id"]
        return client.post(f"/functions/v1/{name}", json=body, headers=service_headers)

    return _call


class TestFunctionAuth:

    def test_wrong_service_key(self, client, seed_data):
        resp = client.post(
            "/functions/v1/rag-chat",
            json={"userId": seed_data["owner_id"], "message": "oi"},
            headers={"Authorization": "Bearer nope"},
        )
        assert resp.status_code == 401

    def test_service_key_requires_user_id(self, client, service_headers):
        resp = client.post("/functions/v1/rag-chat", json={"message": "oi"}, headers=service_headers)
        assert resp.status_code == 400

    def test_unknown_user(self, client, service_headers):
        resp = client.post(
            "/functions/v1/rag-chat",
            json={"userId": "missing", "message": "oi"},
            headers=service_headers,
        )
        assert resp.status_code == 404

    def test_no_credentials(self, client, seed_data):
        assert client.post("/functions/v1/rag-chat", json={"message": "oi"}).status_code == 401

    def test_session_login_is_accepted(self, auth_client):
        resp = auth_client.post("/functions/v1/rag-chat", json={"message": "Quais leads tenho?"})
        assert resp.status_code == 200
        assert resp.get_json()["success"] is True

    def test_feature_gate_for_free_plan(self, call, seed_data):
        resp = call("whatsapp-send-message", user_id=seed_data["free_user_id"], to="62999990000", message="oi")
        assert resp.status_code == 403
        data = resp.get_json()
        assert data["upgrade_required"] is True
        assert data["plan"] == "gratuito"

        resp = call("generate-prospects-hybrid", user_id=seed_data["free_user_id"], cnpjs=["1"])
        assert resp.status_code == 403


class TestGenerateProspects:

    def test_not_configured(self, call):
        resp = call("generate-prospects")
        assert resp.status_code == 503
        assert resp.get_json()["success"] is False

    @patch("leados.services.llm_service.requests.post")
    def test_creates_leads_and_skips_duplicates(self, mock_post, call, gemini_key, seed_data):
        mock_post.return_value = _gemini("```json\n" + json.dumps({"prospects": [
            {"company": "Cerrado Grãos Ltda", "sector": "Agro", "tax_regime": "Lucro Real",
             "prospecting_hook": "Créditos de PIS/COFINS"},
            {"company": "padaria central", "sector": "Varejo"},
        ]}) + "\n```")

        resp = call("generate-prospects", sector="Agro", count=5)
        assert resp.status_code == 200
        data = resp.get_json()
        assert data["prospects_created"] == 1
        assert data["skipped_duplicates"] == 1
        assert data["companies"] == ["Cerrado Grãos Ltda"]
        assert data["message"] == "1 prospects gerados com sucesso"

        lead = Lead.query.filter_by(company="Cerrado Grãos Ltda").one()
        assert lead.source == "ai"
        assert lead.user_id == seed_data["owner_id"]

    @patch("leados.services.llm_service.requests.post")
    def test_decision_makers_become_contacts(self, mock_post, call, gemini_key, seed_data):
        mock_post.return_value = _gemini({"prospects": [
            {"company": "Cerrado Grãos Ltda", "decision_maker": "Maria Silva (Sócia)",
             "email": "maria@cerrado.test", "phone": "(62) 3000-0000"},
            {"company": "Sem Decisor SA"},
        ]})

        data = call("generate-prospects").get_json()
        assert data["prospects_created"] == 2
        assert data["contacts_created"] == 1

        contact = Contact.query.filter_by(company="Cerrado Grãos Ltda").one()
        assert contact.user_id == seed_data["owner_id"]
        assert contact.name == "Maria Silva (Sócia)"
        assert contact.role == "Sócia"
        assert contact.status == "ativo"
        assert contact.email == "maria@cerrado.test"

    @patch("leados.services.llm_service.requests.post")
    def test_truncated_answer_is_salvaged(self, mock_post, call, gemini_key):
        truncated = (
            '{"prospects": [{"company": "Alpha Ltda", "sector": "Indústria"}, '
            '{"company": "Beta SA", "sector": "Comércio"}, {"company": "Gam'
        )
        mock_post.return_value = _gemini(truncated)
        data = call("generate-prospects").get_json()
        assert data["prospects_created"] == 2

    @patch("leados.services.llm_service.requests.post")
    def test_empty_answer_is_bad_gateway(self, mock_post, call, gemini_key):
        mock_post.return_value = _gemini({"prospects": []})
        assert call("generate-prospects").status_code == 502

    @patch("leados.services.llm_service.requests.post")
    def test_rate_limit(self, mock_post, call, gemini_key):
        mock_post.return_value = MagicMock(status_code=429)
        assert call("generate-prospects").status_code == 429

    @patch("leados.services.llm_service.requests.post")
    def test_plan_limit_reached(self, mock_post, call, gemini_key, seed_data):
        user_id = seed_data["free_user_id"]
        for i in range(10):
            db.session.add(Lead(user_id=user_id, company=f"Empresa {i}"))
        db.session.commit()
        mock_post.return_value = _gemini({"prospects": [{"company": "Nova"}]})

        resp = call("generate-prospects", user_id=user_id)
        assert resp.status_code == 403
        data = resp.get_json()
        assert data["upgrade_required"] is True
        assert data["plan"]["leads_remaining"] == 0
        mock_post.assert_not_called()


class TestHybridProspects:

    @patch("leados.services.prospect_service.requests.get")
    def test_filters_mei_and_invalid_cnpjs(self, mock_get, call):
        mock_get.side_effect = [
            _receita(
                nome="GOIAS TRANSPORTES LTDA",
                fantasia="Goiás Transportes",
                porte="DEMAIS",
                natureza_juridica="206-2 - Sociedade Empresária Limitada",
                abertura="01/02/2010",
                municipio="Goiânia",
                uf="GO",
                atividade_principal=[{"code": "49.30-2-02", "text": "Transporte rodoviário de carga"}],
                qsa=[{"nome": "João Sócio"}],
                simples={"optante": False},
            ),
            _receita(
                nome="FULANO MEI",
                porte="MICRO EMPRESA",
                natureza_juridica="213-5 - Empresário (Individual)",
            ),
        ]

        resp = call("generate-prospects-hybrid", cnpjs=[
            "12.345.678/0001-90", "98765432000110", "123",
        ])
        assert resp.status_code == 200
        data = resp.get_json()
        assert data["prospects_created"] == 1
        assert data["companies"] == ["Goiás Transportes"]
        reasons = {item["cnpj"]: item["reason"] for item in data["skipped"]}
        assert reasons["98765432000110"] == "MEI"
        assert "123" in reasons
        assert mock_get.call_count == 2

        lead = Lead.query.filter_by(company="Goiás Transportes").one()
        assert lead.source == "receitaws"
        assert lead.decision_maker == "João Sócio"
        assert "Goiânia / GO" in lead.prospecting_hook

    @patch("leados.services.prospect_service.requests.get")
    def test_lookup_failure_is_skipped(self, mock_get, call):
        mock_get.side_effect = requests.ConnectionError("down")
        data = call("generate-prospects-hybrid", cnpjs=["12345678000190"]).get_json()
        assert data["prospects_created"] == 0
        assert data["skipped"][0]["reason"] == "lookup failed"

    @patch("leados.services.llm_service.requests.post")
    @patch("leados.services.prospect_service.requests.get")
    def test_real_data_is_qualified_with_gemini(self, mock_get, mock_post, call, gemini_key):
        mock_get.return_value = _receita(
            nome="GOIAS TRANSPORTES LTDA",
            fantasia="Goiás Transportes",
            porte="DEMAIS",
            natureza_juridica="206-2 - Sociedade Empresária Limitada",
            qsa=[{"nome": "João Sócio"}],
        )
        mock_post.return_value = _gemini({"prospects": [{
            "company": "Goiás Transportes",
            "qualificationScore": 4,
            "urgencyLevel": "Alta",
            "approachStrategy": "Créditos de ICMS sobre frete",
            "estimatedRevenue": "R$ 20M",
        }]})

        data = call("generate-prospects-hybrid", cnpjs=["12345678000190"]).get_json()
        assert data["prospects_created"] == 1
        assert data["qualified"] == 1
        assert data["contacts_created"] == 1
        prompt = mock_post.call_args.kwargs["json"]["contents"][0]["parts"][0]["text"]
        assert "Goiás Transportes" in prompt

        lead = Lead.query.filter_by(company="Goiás Transportes").one()
        assert lead.status == "qualified"
        assert lead.qualification_score == 4
        assert lead.approach_strategy == "Créditos de ICMS sobre frete"
        contact = Contact.query.filter_by(company="Goiás Transportes").one()
        assert contact.role == "Sócio"

    @patch("leados.services.llm_service.requests.post")
    @patch("leados.services.prospect_service.requests.get")
    def test_failed_qualification_keeps_real_data(self, mock_get, mock_post, call, gemini_key):
        mock_get.return_value = _receita(nome="ALFA COMERCIO LTDA", porte="DEMAIS")
        mock_post.side_effect = requests.ConnectionError("gemini down")

        data = call("generate-prospects-hybrid", cnpjs=["12345678000190"]).get_json()
        assert data["prospects_created"] == 1
        assert data["qualified"] == 0
        assert "warning" in data
        assert Lead.query.filter_by(company="ALFA COMERCIO LTDA").one().status == "new"

    @patch("leados.services.prospect_service.requests.get")
    def test_quota_is_checked_before_lookups(self, mock_get, call, monkeypatch):
        monkeypatch.setitem(plan_service.PLANS["enterprise"], "leads_limit", 3)
        resp = call("generate-prospects-hybrid", cnpjs=["12345678000190"])
        assert resp.status_code == 403
        mock_get.assert_not_called()

    def test_requires_list(self, call):
        assert call("generate-prospects-hybrid", cnpjs="123").status_code == 400


class TestQualifyLeads:

    def test_not_configured(self, call):
        assert call("qualify-leads").status_code == 503

    def test_lead_ids_must_be_a_list(self, call):
        resp = call("qualify-leads", leadIds="abc")
        assert resp.status_code == 400
        assert "lista" in resp.get_json()["error"]

    @patch("leados.services.llm_service.requests.post")
    def test_qualifies_new_leads(self, mock_post, call, gemini_key, seed_data):
        mock_post.return_value = _gemini({
            "qualificationScore": "85",
            "urgencyLevel": "alta",
            "notes": "Bom potencial de <b>créditos</b>",
            "bestContactTime": "manhã",
            "approachStrategy": "Foco em ICMS",
            "estimatedRevenue": "R$ 50M",
        })
        resp = call("qualify-leads")
        assert resp.status_code == 200
        data = resp.get_json()
        assert len(data["qualified"]) == 2
        assert data["skipped"] == []

        lead = db.session.get(Lead, seed_data["lead_ids"][1])
        assert lead.status == "qualified"
        assert lead.qualification_score == 85
        assert lead.best_contact_time == "manhã"
        assert "<b>" not in lead.notes

    @patch("leados.services.llm_service.requests.post")
    def test_bad_answer_skips_lead(self, mock_post, call, gemini_key, seed_data):
        mock_post.return_value = _gemini("sem json aqui")
        lead_id = seed_data["lead_ids"][1]
        data = call("qualify-leads", leadIds=[lead_id]).get_json()
        assert data["qualified"] == []
        assert data["skipped"] == [lead_id]
        assert db.session.get(Lead, lead_id).status == "new"


class TestCampaigns:

    def test_launch_without_targets(self, call, seed_data):
        resp = call("launch-campaign", user_id=seed_data["free_user_id"])
        assert resp.status_code == 400
        assert Campaign.query.count() == 0

    def test_launch_uses_template_script_and_simulates_whatsapp(self, call, seed_data):
        resp = call("launch-campaign")
        assert resp.status_code == 200
        data = resp.get_json()
        assert data["totalScripts"] == 1
        assert data["companies"] == ["Jalles Machado S.A."]
        assert data["whatsapp"]["sentCount"] == 1
        message = data["whatsapp"]["messages"][0]
        assert message["simulated"] is True
        assert message["phone"] == "556233218200"

        campaign = db.session.get(Campaign, data["campaignId"])
        assert campaign.status == "ativa"
        script = campaign.scripts[0]
        assert "CFO/Tributário" in script.call_script
        assert script.whatsapp_sent is True

    @patch("leados.services.llm_service.openai.OpenAI")
    def test_launch_with_openai_script(self, mock_openai, app, call, monkeypatch):
        monkeypatch.setitem(app.config, "OPENAI_API_KEY", "sk-test")
        completion = MagicMock()
        completion.choices = [MagicMock()]
        completion.choices[0].message.content = json.dumps({
            "call_script": "Olá [Nome], roteiro sob medida.",
            "email_subject": "Assunto IA",
            "email_body": "",
        })
        mock_openai.return_value.chat.completions.create.return_value = completion

        data = call("launch-campaign").get_json()
        script = db.session.get(Campaign, data["campaignId"]).scripts[0]
        assert script.call_script == "Olá [Nome], roteiro sob medida."
        assert script.email_subject == "Assunto IA"
        assert script.email_body.startswith("Prezado CFO/Tributário")

    def test_whatsapp_campaign_unknown(self, call):
        assert call("whatsapp-campaign", campaignId="nope").status_code == 404
        assert call("whatsapp-campaign").status_code == 400

    def test_email_campaign_is_simulated_without_resend(self, call):
        campaign_id = call("launch-campaign").get_json()["campaignId"]
        resp = call("email-campaign", campaignId=campaign_id)
        assert resp.status_code == 200
        data = resp.get_json()
        assert data["sentCount"] == 1
        assert data["simulated"] is True
        assert data["emails"][0]["to"] == "ri@jallesmachado.com"

        # Already emailed scripts are not sent again
        assert call("email-campaign", campaignId=campaign_id).get_json()["sentCount"] == 0


class TestSentimentAndChat:

    def test_sentiment_requires_message(self, call):
        assert call("sentiment-analysis").status_code == 400

    def test_sentiment_opens_redirect(self, call, seed_data):
        resp = call(
            "sentiment-analysis",
            message="Quero falar com humano, isso não funciona",
            phoneNumber="5562999990000",
            customerName="Carla",
        )
        assert resp.status_code == 200
        data = resp.get_json()
        analysis = data["analysis"]
        assert analysis["sentiment"] == "frustrated"
        assert analysis["redirect_to_human"] is True
        assert analysis["analysis_type"] == "pattern"
        assert db.session.get(SentimentAnalysis, data["analysisId"]) is not None
        notification = HumanRedirectNotification.query.one()
        assert notification.customer_name == "Carla"
        assert notification.status == "pending"

    def test_rag_chat_lookup_answer(self, call):
        data = call("rag-chat", message="Fale sobre a Jalles").get_json()
        assert data["success"] is True
        assert "3 leads" in data["response"]
        assert "Jalles Machado S.A." in data["response"]
        assert data["sources"] == ["crm", "knowledge_base"]

    @patch("leados.services.llm_service.requests.post")
    def test_rag_chat_with_gemini(self, mock_post, call, gemini_key):
        mock_post.return_value = _gemini("  Resposta consultiva.  ")
        data = call("rag-chat", message="Como recuperar ICMS?").get_json()
        assert data["response"] == "Resposta consultiva."
        assert "gemini" in data["sources"]
        prompt = mock_post.call_args.kwargs["json"]["contents"][0]["parts"][0]["text"]
        assert "Leads cadastrados: 3" in prompt

    def test_rag_chat_qualify_command_needs_gemini(self, call):
        assert call("rag-chat", message="Qualificar leads agora").status_code == 503

    @patch("leados.services.llm_service.requests.post")
    def test_rag_chat_qualify_command_is_gated_by_plan(self, mock_post, call, gemini_key, seed_data):
        resp = call("rag-chat", user_id=seed_data["free_user_id"], message="Qualificar leads agora")
        assert resp.status_code == 403
        data = resp.get_json()
        assert data["upgrade_required"] is True
        assert data["plan"]["plan"] == "gratuito"
        mock_post.assert_not_called()

    @patch("leados.services.llm_service.requests.post")
    def test_rag_chat_prospect_command_respects_quota(self, mock_post, call, gemini_key, seed_data):
        user_id = seed_data["free_user_id"]
        for i in range(10):
            db.session.add(Lead(user_id=user_id, company=f"Empresa {i}"))
        db.session.commit()

        resp = call("rag-chat", user_id=user_id, message="Criar prospects de agro")
        assert resp.status_code == 403
        mock_post.assert_not_called()


class TestLifecycleEmails:

    def test_welcome_email(self, call, seed_data):
        data = call("send-welcome-email").get_json()
        assert data["success"] is True
        assert data["simulated"] is True
        entry = CampaignKnowledge.query.filter_by(user_id=seed_data["owner_id"]).one()
        assert "boas-vindas" in entry.content

    def test_onboarding_email_day(self, call):
        data = call("send-onboarding-email", day=3).get_json()
        assert data["day"] == 3
        assert data["subject"] == "Uma dica para potencializar seus leads 🚀"

    def test_onboarding_email_invalid_day(self, call):
        assert call("send-onboarding-email", day=2).status_code == 400
        assert call("send-onboarding-email").status_code == 400

    def test_upsell_only_near_limit(self, call, seed_data):
        user_id = seed_data["free_user_id"]
        data = call("send-upsell-email", user_id=user_id).get_json()
        assert data["message"] == "User not near limit, no email sent"

        for i in range(9):
            db.session.add(Lead(user_id=user_id, company=f"Empresa {i}"))
        db.session.commit()
        data = call("send-upsell-email", user_id=user_id).get_json()
        assert data["message"] == "Upsell email sent"
        assert data["next_plan"] == "pro"

    @patch("leados.services.email_service.requests.post")
    def test_welcome_email_through_resend(self, mock_post, app, call, monkeypatch):
        monkeypatch.setitem(app.config, "RESEND_API_KEY", "re_test")
        mock_post.return_value = MagicMock(status_code=200)
        mock_post.return_value.json.return_value = {"id": "email_123"}

        data = call("send-welcome-email").get_json()
        assert data["simulated"] is False
        payload = mock_post.call_args.kwargs["json"]
        assert payload["to"] == ["owner@leados.test"]
        assert "Leados AI" in payload["html"]
