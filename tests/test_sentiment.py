"""Tests for the two-tier sentiment analysis."""

import json
from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock, patch

import pytest

from leados.extensions import db
from leados.models.sentiment import HumanRedirectNotification, SentimentAnalysis
from leados.models.whatsapp import WhatsAppMessage
from leados.services import sentiment_service
from leados.services.sentiment_service import pattern_analysis


class TestPatternAnalysis:

    def test_neutral_message(self):
        result = pattern_analysis("Qual o horário de funcionamento?")
        assert result["sentiment"] == "neutral"
        assert result["redirect_to_human"] is False
        assert result["urgency_level"] == "low"
        assert result["suggested_response_tone"] == "consultivo e educativo"

    def test_positive_message(self):
        result = pattern_analysis("Obrigado, excelente explicação!")
        assert result["sentiment"] == "positive"
        assert "satisfação" in result["emotions"]
        assert result["confidence"] == 0.7

    def test_human_request_escalates(self):
        result = pattern_analysis("Quero falar com um atendente")
        assert result["redirect_to_human"] is True
        assert result["urgency_level"] == "high"
        assert result["confidence"] == 0.9
        assert result["suggested_response_tone"] == "direto e ágil"

    def test_heavy_frustration_is_critical(self):
        result = pattern_analysis("Sistema lento, travou e deu erro, péssimo")
        assert result["sentiment"] == "frustrated"
        assert result["urgency_level"] == "critical"
        assert result["confidence"] == 0.95

    def test_urgency_never_lowers_a_higher_level(self):
        result = pattern_analysis("Quero falar com humano agora")
        assert result["urgency_level"] == "high"
        assert "urgência" in result["emotions"]

    def test_repetition_in_history(self):
        history = ["não entendi", "ainda não entendi nada"]
        result = pattern_analysis("não entendi de novo", history)
        assert result["sentiment"] == "frustrated"
        assert "repetição(3)" in result["reasoning"]

    def test_complexity_pattern(self):
        result = pattern_analysis("Isso não resolve meu problema fiscal")
        assert result["redirect_to_human"] is True
        assert result["urgency_level"] in ("high", "critical")
        assert result["confidence"] >= 0.85

    @pytest.mark.parametrize("message,level", [
        ("preciso disso hoje", "medium"),
        ("urgente, preciso hoje", "high"),
        ("urgente, é importante, preciso agora", "critical"),
    ])
    def test_urgency_levels(self, message, level):
        assert pattern_analysis(message)["urgency_level"] == level


class TestAnalyzeMessage:

    def test_history_comes_from_stored_messages(self, seed_data):
        owner_id = seed_data["owner_id"]
        start = datetime.now(timezone.utc) - timedelta(minutes=5)
        for minute, text in enumerate(("não funciona", "continua não funciona")):
            db.session.add(WhatsAppMessage(
                user_id=owner_id, phone_number="5562", message_content=text,
                created_at=start + timedelta(minutes=minute),
            ))
        db.session.commit()
        assert sentiment_service.recent_history(owner_id, "5562") == [
            "não funciona", "continua não funciona",
        ]
        assert sentiment_service.recent_history(owner_id, None) == []

    def test_calm_message_has_no_notification(self, seed_data):
        result = sentiment_service.analyze_message(seed_data["owner"], "Bom dia, tudo certo")
        assert result["notification_id"] is None
        assert result["analysis_type"] == "pattern"
        assert SentimentAnalysis.query.count() == 1
        assert HumanRedirectNotification.query.count() == 0

    def test_long_messages_are_truncated_when_stored(self, seed_data):
        result = sentiment_service.analyze_message(seed_data["owner"], "a" * 800)
        record = db.session.get(SentimentAnalysis, result["analysis_id"])
        assert len(record.message_content) == 500

    @patch("leados.services.llm_service.requests.post")
    def test_ai_tier_replaces_pattern_when_escalated(self, mock_post, app, seed_data, monkeypatch):
        monkeypatch.setitem(app.config, "GEMINI_API_KEY", "test-gemini-key")
        resp = MagicMock(status_code=200)
        resp.json.return_value = {"candidates": [{"content": {"parts": [{"text": json.dumps({
            "sentiment": "urgent",
            "confidence": 0.92,
            "emotions": ["ansiedade"],
            "urgency_level": "critical",
            "redirect_to_human": True,
            "reasoning": "Prazo fiscal hoje",
        })}]}}]}
        mock_post.return_value = resp

        result = sentiment_service.analyze_message(
            seed_data["owner"], "Preciso de ajuda urgente", phone_number="5562",
        )
        assert result["analysis_type"] == "ai"
        assert result["sentiment"] == "urgent"
        notification = db.session.get(HumanRedirectNotification, result["notification_id"])
        assert notification.reason == "Prazo fiscal hoje"
        assert notification.urgency_level == "critical"

    @patch("leados.services.llm_service.requests.post")
    def test_incomplete_ai_answer_keeps_pattern(self, mock_post, app, seed_data, monkeypatch):
        monkeypatch.setitem(app.config, "GEMINI_API_KEY", "test-gemini-key")
        resp = MagicMock(status_code=200)
        resp.json.return_value = {"candidates": [{"content": {"parts": [
            {"text": '{"sentiment": "negative"}'},
        ]}}]}
        mock_post.return_value = resp

        result = sentiment_service.analyze_message(seed_data["owner"], "Quero falar com atendente")
        assert result["analysis_type"] == "pattern"
        assert result["redirect_to_human"] is True

    @patch("leados.services.llm_service.requests.post")
    def test_calm_message_skips_ai(self, mock_post, app, seed_data, monkeypatch):
        monkeypatch.setitem(app.config, "GEMINI_API_KEY", "test-gemini-key")
        sentiment_service.analyze_message(seed_data["owner"], "Tudo certo por aqui")
        mock_post.assert_not_called()
