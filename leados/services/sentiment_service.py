"""Two-tier sentiment analysis for inbound WhatsApp messages.

Tier 1 is a keyword/pattern pass that always runs. Tier 2 asks Gemini for
a deeper read, but only when tier 1 already flagged the message (redirect
or high/critical urgency) and a key is configured. A Gemini answer that is
missing any required field is discarded and tier 1 stands.

Every analysis is stored; a redirect also opens a HumanRedirectNotification.
Functions flush but do NOT commit.
"""

import logging
import re
from datetime import datetime, timezone

from leados.extensions import db
from leados.models.sentiment import HumanRedirectNotification, SentimentAnalysis
from leados.models.whatsapp import WhatsAppMessage
from leados.services import llm_service

logger = logging.getLogger(__name__)

MAX_STORED_MESSAGE = 500
HISTORY_SIZE = 5

FRUSTRATION_KEYWORDS = [
    "não entendi", "confuso", "complicado", "difícil", "problema", "erro",
    "não funciona", "ruim", "péssimo", "horrível", "irritado", "chateado",
    "não resolve", "demora", "lento", "travou", "bugou",
]
URGENCY_KEYWORDS = [
    "urgente", "rápido", "agora", "hoje", "pressa", "emergência",
    "importante", "preciso já", "imediato", "asap", "emergency",
]
HUMAN_REQUEST_KEYWORDS = [
    "falar com humano", "atendente", "pessoa", "operador", "consultor",
    "não é bot", "quero falar com alguém", "preciso de ajuda", "suporte humano",
]
POSITIVE_KEYWORDS = [
    "obrigado", "thanks", "ótimo", "excelente", "perfeito", "bom",
    "gostei", "adorei", "fantástico", "maravilhoso", "legal",
]
NEGATIVE_KEYWORDS = [
    "não", "nunca", "impossível", "difícil", "complicado", "ruim",
    "péssimo", "horrível", "odeio", "detesto", "terrível",
]
REPETITION_MARKERS = ("não entendi", "não funciona")

COMPLEXITY_PATTERNS = [
    re.compile(r"não consigo entender", re.IGNORECASE),
    re.compile(r"muito complicado", re.IGNORECASE),
    re.compile(r"preciso de mais informações", re.IGNORECASE),
    re.compile(r"isso não resolve meu problema", re.IGNORECASE),
]

URGENCY_ORDER = ["low", "medium", "high", "critical"]

REQUIRED_AI_FIELDS = (
    "sentiment", "confidence", "emotions", "urgency_level", "redirect_to_human",
)

AI_PROMPT = """Você é um especialista em análise de sentimento para atendimento B2B em consultoria tributária.

Analise a seguinte mensagem do cliente e forneça uma análise detalhada:

MENSAGEM: "{message}"{history}

CONTEXTO: Cliente em processo de consultoria tributária, interagindo via WhatsApp com bot RAG.

Forneça sua análise em formato JSON com exatamente esta estrutura:
{{
  "sentiment": "positive|neutral|negative|frustrated|urgent",
  "confidence": 0.0-1.0,
  "emotions": ["array", "de", "emoções"],
  "urgency_level": "low|medium|high|critical",
  "redirect_to_human": true|false,
  "reasoning": "explicação detalhada da análise",
  "suggested_response_tone": "tom sugerido para resposta"
}}

CRITÉRIOS PARA REDIRECIONAMENTO HUMANO:
- Cliente expressa frustração clara
- Solicita falar com pessoa
- Pergunta muito complexa ou específica
- Demonstra urgência crítica
- Bot não conseguiu resolver após várias tentativas"""


def _count(text, keywords):
    return sum(1 for keyword in keywords if keyword in text)


def _raise_urgency(current, candidate):
    if URGENCY_ORDER.index(candidate) > URGENCY_ORDER.index(current):
        return candidate
    return current


def recent_history(user_id, phone_number, limit=HISTORY_SIZE):
    """Last stored messages from this sender, oldest first."""
    if not phone_number:
        return []
    rows = (
        WhatsAppMessage.query
        .filter_by(user_id=user_id, phone_number=phone_number)
        .order_by(WhatsAppMessage.created_at.desc())
        .limit(limit)
        .all()
    )
    return [row.message_content for row in reversed(rows)]


def pattern_analysis(message, history=()):
    """Keyword/pattern tier. Pure function of the message and its history."""
    text = message.lower()

    frustration = _count(text, FRUSTRATION_KEYWORDS)
    urgency = _count(text, URGENCY_KEYWORDS)
    human = _count(text, HUMAN_REQUEST_KEYWORDS)
    positive = _count(text, POSITIVE_KEYWORDS)
    negative = _count(text, NEGATIVE_KEYWORDS)
    repetition = sum(
        1
        for item in [*list(history)[-HISTORY_SIZE:], message]
        if any(marker in item.lower() for marker in REPETITION_MARKERS)
    )

    sentiment = "neutral"
    confidence = 0.5
    emotions = []
    urgency_level = "low"
    redirect = False

    if human > 0:
        redirect = True
        emotions.append("solicita_humano")
        urgency_level = "high"
        confidence = 0.9

    if frustration > 0 or repetition > 2:
        sentiment = "frustrated"
        emotions.append("frustração")
        urgency_level = "critical" if frustration > 2 else "high"
        redirect = True
        confidence = min(0.8 + frustration * 0.1, 0.95)

    if urgency > 0:
        emotions.append("urgência")
        if urgency > 2:
            level = "critical"
        elif urgency > 1:
            level = "high"
        else:
            level = "medium"
        urgency_level = _raise_urgency(urgency_level, level)
        confidence = max(confidence, 0.7)

    if sentiment == "neutral":
        if positive > negative:
            sentiment = "positive"
            emotions.append("satisfação")
            confidence = 0.7
        elif negative > positive:
            sentiment = "negative"
            emotions.append("insatisfação")
            confidence = 0.7

    if any(pattern.search(message) for pattern in COMPLEXITY_PATTERNS):
        redirect = True
        urgency_level = _raise_urgency(urgency_level, "high")
        confidence = max(confidence, 0.85)

    if sentiment == "frustrated":
        tone = "empático e solucionador"
    elif sentiment == "positive":
        tone = "entusiasmado e continuativo"
    elif urgency_level == "high":
        tone = "direto e ágil"
    else:
        tone = "consultivo e educativo"

    return {
        "sentiment": sentiment,
        "confidence": round(confidence, 2),
        "emotions": emotions,
        "urgency_level": urgency_level,
        "redirect_to_human": redirect,
        "reasoning": (
            f"Análise baseada em padrões: frustração({frustration}), "
            f"urgência({urgency}), humano({human}), positivo({positive}), "
            f"negativo({negative}), repetição({repetition})"
        ),
        "suggested_response_tone": tone,
    }


def needs_escalation(analysis):
    return analysis["redirect_to_human"] or analysis["urgency_level"] in ("high", "critical")


def ai_analysis(message, history=()):
    """Gemini tier. Returns the analysis dict, or None when unusable."""
    history = list(history)[-HISTORY_SIZE:]
    history_text = ""
    if history:
        history_text = (
            "\n\nHistórico da conversa (últimas 5 mensagens):\n" + "\n".join(history)
        )
    try:
        data = llm_service.generate_gemini_json(
            AI_PROMPT.format(message=message, history=history_text),
            temperature=0.3,
        )
    except llm_service.LLMError as e:
        logger.error(f"AI sentiment analysis failed, keeping pattern result: {e}")
        return None

    if not all(field in data for field in REQUIRED_AI_FIELDS):
        logger.warning("AI sentiment answer missing required fields, ignoring")
        return None

    urgency = data.get("urgency_level")
    return {
        "sentiment": str(data["sentiment"]),
        "confidence": float(data["confidence"]),
        "emotions": list(data["emotions"] or []),
        "urgency_level": urgency if urgency in URGENCY_ORDER else "medium",
        "redirect_to_human": bool(data["redirect_to_human"]),
        "reasoning": data.get("reasoning") or "",
        "suggested_response_tone": data.get("suggested_response_tone") or "",
    }


def analyze_message(user, message, phone_number=None, customer_name=None, history=None):
    """Run both tiers, store the result and open a redirect if needed.

    history defaults to the sender's stored messages; pass it explicitly
    when the current message has already been stored.
    """
    if history is None:
        history = recent_history(user.id, phone_number)
    analysis = pattern_analysis(message, history)
    analysis_type = "pattern"

    if needs_escalation(analysis) and llm_service.gemini_configured():
        deeper = ai_analysis(message, history)
        if deeper:
            analysis = deeper
            analysis_type = "ai"

    record = SentimentAnalysis(
        user_id=user.id,
        phone_number=phone_number,
        message_content=message[:MAX_STORED_MESSAGE],
        sentiment=analysis["sentiment"],
        confidence=analysis["confidence"],
        emotions=analysis["emotions"],
        urgency_level=analysis["urgency_level"],
        redirect_to_human=analysis["redirect_to_human"],
        reasoning=analysis["reasoning"],
        suggested_response_tone=analysis["suggested_response_tone"],
        analysis_type=analysis_type,
    )
    db.session.add(record)
    db.session.flush()

    notification = None
    if analysis["redirect_to_human"]:
        notification = HumanRedirectNotification(
            user_id=user.id,
            sentiment_analysis_id=record.id,
            phone_number=phone_number,
            customer_name=customer_name,
            reason=analysis["reasoning"] or "Redirecionamento solicitado",
            urgency_level=analysis["urgency_level"],
            message_content=message,
        )
        db.session.add(notification)
        db.session.flush()
        logger.info(
            f"Human redirect opened for {phone_number or 'unknown'} "
            f"(urgency {analysis['urgency_level']})"
        )

    return {
        **analysis,
        "analysis_type": analysis_type,
        "analysis_id": record.id,
        "notification_id": notification.id if notification else None,
    }


def list_pending_notifications(user_id):
    return (
        HumanRedirectNotification.query
        .filter_by(user_id=user_id, status="pending")
        .order_by(HumanRedirectNotification.created_at.desc())
        .all()
    )


def resolve_notification(user_id, notification_id, now=None):
    notification = HumanRedirectNotification.query.filter_by(
        id=notification_id, user_id=user_id
    ).first()
    if not notification:
        raise ValueError("Notificação não encontrada")
    notification.status = "resolved"
    notification.resolved_at = now or datetime.now(timezone.utc)
    db.session.flush()
    return notification
