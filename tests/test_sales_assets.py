"""Tests for content generation, proposals, meeting scheduling and the
promotional WhatsApp run, plus their CRM listings."""

from unittest.mock import MagicMock, patch

import pytest
import requests

from leados.models.content import GeneratedContent
from leados.models.interaction import Interaction
from leados.models.meeting import ScheduledMeeting
from leados.models.proposal import Proposal
from leados.services import meeting_service


def _gemini(text):
    resp = MagicMock(status_code=200)
    resp.json.return_value = {"candidates": [{"content": {"parts": [{"text": text}]}}]}
    return resp


def _sent_prompt(mock_post):
    return mock_post.call_args.kwargs["json"]["contents"][0]["parts"][0]["text"]


@pytest.fixture
def gemini_key(app, monkeypatch):
    monkeypatch.setitem(app.config, "GEMINI_API_KEY", "test-gemini-key")


@pytest.fixture
def sales_agent(app, monkeypatch):
    monkeypatch.setitem(app.config, "SALES_AGENT_URL", "https://agent.test/")
    monkeypatch.setitem(app.config, "SALES_AGENT_API_KEY", "agent-key")


@pytest.fixture
def call(client, service_headers, seed_data):
    def _call(name, user_id=None, **body):
        body["userId"] = user_id or seed_data["owner_id"]
        return client.post(f"/functions/v1/{name}", json=body, headers=service_headers)

    return _call


class TestContentAgent:

    def test_requires_lead_and_type(self, call, seed_data):
        assert call("content-agent", contentType="linkedin-post").status_code == 400
        resp = call("content-agent", leadId=seed_data["lead_ids"][0], contentType="tiktok")
        assert resp.status_code == 400

    def test_unknown_lead(self, call):
        assert call("content-agent", leadId="missing", contentType="linkedin-post").status_code == 404

    def test_free_user_cannot_use_owner_lead(self, call, seed_data):
        resp = call(
            "content-agent",
            user_id=seed_data["free_user_id"],
            leadId=seed_data["lead_ids"][0],
            contentType="linkedin-post",
        )
        assert resp.status_code == 404

    def test_no_generator_configured(self, call, seed_data):
        resp = call("content-agent", leadId=seed_data["lead_ids"][0], contentType="linkedin-post")
        assert resp.status_code == 503
        assert GeneratedContent.query.count() == 0

    @patch("leados.services.llm_service.requests.post")
    def test_gemini_writes_and_stores_content(self, mock_post, call, gemini_key, seed_data):
        mock_post.return_value = _gemini("Créditos de ICMS no agro #tributos")

        resp = call(
            "content-agent",
            leadId=seed_data["lead_ids"][0],
            contentType="linkedin-post",
            tone="professional",
            customPrompt="Falar de etanol",
        )
        assert resp.status_code == 200
        data = resp.get_json()
        assert data["content"] == "Créditos de ICMS no agro #tributos"
        assert data["metadata"] == {
            "leadName": "Jalles Machado S.A.",
            "platform": "linkedin",
            "generatedBy": "gemini",
            "tone": "professional",
        }

        prompt = _sent_prompt(mock_post)
        assert "Post LinkedIn Corporativo" in prompt
        assert "Profissional e técnico" in prompt
        assert "PROMPT PERSONALIZADO: Falar de etanol" in prompt
        assert mock_post.call_args.kwargs["json"]["generationConfig"] == {
            "temperature": 0.8, "maxOutputTokens": 1500,
        }

        record = GeneratedContent.query.one()
        assert record.id == data["contentId"]
        assert record.status == "gerado"
        interaction = Interaction.query.filter_by(interaction_type="content").one()
        assert interaction.contact_id == seed_data["contact_id"]

    @patch("leados.services.content_service.requests.post")
    def test_sales_agent_is_tried_first(self, mock_post, call, sales_agent, seed_data):
        agent_resp = MagicMock(status_code=200)
        agent_resp.json.return_value = {"generated_content": "Roteiro do reel"}
        mock_post.return_value = agent_resp

        resp = call("content-agent", leadId=seed_data["lead_ids"][2], contentType="instagram-reel")
        assert resp.status_code == 200
        data = resp.get_json()
        assert data["content"] == "Roteiro do reel"
        assert data["metadata"]["generatedBy"] == "sales_agent"
        assert mock_post.call_args.args[0] == "https://agent.test/generate-reel"
        assert mock_post.call_args.kwargs["headers"] == {"Authorization": "Bearer agent-key"}
        assert mock_post.call_args.kwargs["json"]["lead_info"]["empresa"] == "Usina Goiás Energia"

    @patch("leados.services.content_service.requests.post")
    def test_sales_agent_failure_falls_back_to_gemini(
        self, mock_post, call, sales_agent, gemini_key, seed_data
    ):
        mock_post.side_effect = [requests.ConnectionError("agent down"), _gemini("Olá! 👋")]

        resp = call("content-agent", leadId=seed_data["lead_ids"][1], contentType="whatsapp-message")
        assert resp.status_code == 200
        assert resp.get_json()["metadata"]["generatedBy"] == "gemini"
        assert "Sem hashtags" in _sent_prompt(mock_post)


class TestProposalGenerator:

    def test_requires_lead(self, call):
        assert call("proposal-generator").status_code == 400
        assert call("proposal-generator", leadId="missing").status_code == 404

    def test_template_without_gemini(self, call, seed_data):
        resp = call("proposal-generator", leadId=seed_data["lead_ids"][0])
        assert resp.status_code == 200
        data = resp.get_json()
        assert data["generatedBy"] == "template"
        assert [s["key"] for s in data["recommendedServices"]] == [
            "recuperacao_creditos",
            "planejamento_tributario",
            "incentivos_fiscais",
            "compliance_auditoria",
        ]
        assert data["proposal"].startswith("🏢 PROPOSTA COMERCIAL - JALLES MACHADO S.A.")
        assert "PROPOSTA COMERCIAL PERSONALIZADA" in data["whatsappMessage"]
        assert "warning" not in data

        proposal = Proposal.query.one()
        assert proposal.id == data["proposalId"]
        assert proposal.status == "enviada"
        interaction = Interaction.query.filter_by(interaction_type="proposal").one()
        assert interaction.subject == "Proposta Comercial - Jalles Machado S.A."
        assert interaction.contact_id == seed_data["contact_id"]

    @pytest.mark.parametrize("index,expected", [
        (1, ["recuperacao_creditos", "planejamento_tributario", "incentivos_fiscais"]),
        (2, ["recuperacao_creditos", "planejamento_tributario",
             "reestruturacao_societaria", "compliance_auditoria"]),
    ])
    def test_services_follow_sector_and_regime(self, call, seed_data, index, expected):
        data = call("proposal-generator", leadId=seed_data["lead_ids"][index]).get_json()
        assert [s["key"] for s in data["recommendedServices"]] == expected

    @patch("leados.services.llm_service.requests.post")
    def test_gemini_proposal(self, mock_post, call, gemini_key, seed_data):
        text = "Proposta sob medida. " * 30
        mock_post.return_value = _gemini(text)

        data = call("proposal-generator", leadId=seed_data["lead_ids"][0]).get_json()
        assert data["generatedBy"] == "gemini"
        assert data["proposal"] == text.strip()
        assert text.strip()[:300] + "..." in data["whatsappMessage"]
        assert "Incentivos Fiscais e Regimes Especiais" in _sent_prompt(mock_post)

    @patch("leados.services.llm_service.requests.post")
    def test_gemini_failure_uses_template(self, mock_post, call, gemini_key, seed_data):
        mock_post.side_effect = requests.ConnectionError("gemini down")

        data = call("proposal-generator", leadId=seed_data["lead_ids"][0]).get_json()
        assert data["success"] is True
        assert data["generatedBy"] == "template"
        assert "gemini down" in data["warning"]
        assert Proposal.query.one().generated_by == "template"


class TestCalendarIntegration:

    def test_requires_email(self, call):
        assert call("calendar-integration").status_code == 400

    @pytest.mark.parametrize("field,value", [
        ("meetingType", "carrier-pigeon"),
        ("duration", "abc"),
        ("duration", 600),
    ])
    def test_invalid_input(self, call, field, value):
        resp = call("calendar-integration", leadEmail="ana@cliente.test", **{field: value})
        assert resp.status_code == 400

    def test_books_first_free_slot(self, call, seed_data):
        first = meeting_service.available_slots(seed_data["owner_id"])[0]

        resp = call("calendar-integration", leadEmail="ana@cliente.test", leadName="Ana")
        assert resp.status_code == 200
        data = resp.get_json()
        meeting = ScheduledMeeting.query.one()
        assert data["eventId"] == meeting.id
        assert meeting.status == "agendado"
        assert data["meetingLink"].endswith(meeting.id)
        assert data["calendarInvite"]["attendees"] == ["ana@cliente.test"]
        assert first["time"] in data["whatsappMessage"]

        interaction = Interaction.query.filter_by(interaction_type="meeting").one()
        assert interaction.follow_up_date == first["date"]
        assert interaction.contact_id is None

    def test_taken_slot_is_refused_with_suggestions(self, call, seed_data):
        slot = meeting_service.available_slots(seed_data["owner_id"])[1]
        body = {"leadEmail": "ana@cliente.test",
                "preferredDate": slot["date"], "preferredTime": slot["time"]}

        assert call("calendar-integration", **body).status_code == 200
        resp = call("calendar-integration", **body)
        assert resp.status_code == 409
        suggestions = resp.get_json()["availableSlots"]
        assert len(suggestions) == 5
        assert slot not in suggestions
        assert ScheduledMeeting.query.count() == 1

    def test_off_grid_time_is_refused(self, call, seed_data):
        slot = meeting_service.available_slots(seed_data["owner_id"])[0]
        resp = call(
            "calendar-integration",
            leadEmail="ana@cliente.test",
            preferredDate=slot["date"],
            preferredTime="08:00",
        )
        assert resp.status_code == 409

    def test_video_meeting_for_lead(self, call, seed_data):
        resp = call(
            "calendar-integration",
            leadEmail="ri@jallesmachado.com",
            leadId=seed_data["lead_ids"][0],
            meetingType="video",
            duration=30,
        )
        data = resp.get_json()
        assert data["meetingLink"] in data["whatsappMessage"]
        assert "Videoconferência" in data["whatsappMessage"]
        meeting = ScheduledMeeting.query.one()
        assert meeting.company == "Jalles Machado S.A."
        assert meeting.lead_name == "CFO/Tributário"
        assert meeting.duration_minutes == 30
        interaction = Interaction.query.filter_by(interaction_type="meeting").one()
        assert interaction.contact_id == seed_data["contact_id"]


class TestWhatsAppPromo:

    def test_free_plan_is_gated(self, call, seed_data):
        resp = call("whatsapp-promo", user_id=seed_data["free_user_id"], campaignId="x")
        assert resp.status_code == 403

    def test_unknown_campaign(self, call):
        assert call("whatsapp-promo", campaignId="nope").status_code == 404
        assert call("whatsapp-promo").status_code == 400

    def test_promo_run_messages_attendance_and_leads(self, call):
        campaign_id = call("launch-campaign").get_json()["campaignId"]

        resp = call("whatsapp-promo", campaignId=campaign_id)
        assert resp.status_code == 200
        data = resp.get_json()
        assert data["sentCount"] == 3
        assert data["attendanceNumber"] == "5562981959829"
        assert [m["type"] for m in data["messages"]] == [
            "promo-campaign", "lead-promo", "campaign-notification",
        ]
        assert [m["to"] for m in data["messages"]] == [
            "5562981959829", "556233218200", "5562981959829",
        ]
        assert all(m["simulated"] for m in data["messages"])
        assert data["messages"][1]["company"] == "Jalles Machado S.A."
        assert data["messages"][1]["preview"].startswith("📞 *Consultoria Tributária Premium*")


class TestListings:

    def test_proposals_meetings_and_contents_are_listed(self, auth_client, seed_data):
        lead_id = seed_data["lead_ids"][0]
        free_before = len(meeting_service.available_slots(seed_data["owner_id"]))
        assert auth_client.post(
            "/functions/v1/proposal-generator", json={"leadId": lead_id}
        ).status_code == 200
        assert auth_client.post(
            "/functions/v1/calendar-integration", json={"leadEmail": "ana@cliente.test"}
        ).status_code == 200

        proposals = auth_client.get("/api/proposals").get_json()["items"]
        assert [p["company"] for p in proposals] == ["Jalles Machado S.A."]
        meetings = auth_client.get("/api/meetings?upcoming=1").get_json()["items"]
        assert [m["lead_email"] for m in meetings] == ["ana@cliente.test"]
        assert auth_client.get("/api/contents").get_json()["items"] == []

        slots = auth_client.get("/api/meetings/slots").get_json()["slots"]
        assert len(slots) == free_before - 1
        assert all(s["time"] in meeting_service.SLOT_TIMES for s in slots)

    def test_listings_are_tenant_scoped(self, free_client, call, seed_data):
        call("proposal-generator", leadId=seed_data["lead_ids"][0])
        assert free_client.get("/api/proposals").get_json()["items"] == []
