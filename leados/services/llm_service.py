"""LLM service: thin clients for the two hosted models we call.

- Gemini generateContent over HTTP (requests): prospect generation, lead
  qualification, sentiment escalation, RAG chat answers
- OpenAI chat completions (openai SDK): campaign script writing

Both raise the same small error taxonomy so callers can tell a missing key
or a rate limit apart from a bad response:

    LLMError
    ├── LLMNotConfiguredError  no API key configured
    ├── LLMRateLimitError      vendor answered 429
    └── LLMResponseError       no text / no parseable JSON in the answer

Models answer with "JSON-ish" text; extract_json() strips markdown fences
and keeps the outermost {...}, recover_objects() salvages complete objects
from a truncated array.
"""

import json
import logging
import re

import openai
import requests
from flask import current_app

logger = logging.getLogger(__name__)


class LLMError(Exception):
    """Base error for LLM vendor calls."""


class LLMNotConfiguredError(LLMError):
    """The vendor API key is not configured."""


class LLMRateLimitError(LLMError):
    """The vendor rate-limited the request (HTTP 429)."""


class LLMResponseError(LLMError):
    """The vendor answered, but not with usable content."""


def gemini_configured():
    return bool(current_app.config.get("GEMINI_API_KEY"))


def openai_configured():
    return bool(current_app.config.get("OPENAI_API_KEY"))


# ──────────────────────────────────────────────
# Gemini
# ──────────────────────────────────────────────

def generate_gemini(prompt, temperature=0.5, max_output_tokens=None):
    """Send one prompt to Gemini and return the first candidate's text."""
    api_key = current_app.config.get("GEMINI_API_KEY")
    if not api_key:
        raise LLMNotConfiguredError("GEMINI_API_KEY not configured")

    base_url = current_app.config["GEMINI_API_URL"].rstrip("/")
    model = current_app.config["GEMINI_MODEL"]
    generation_config = {"temperature": temperature}
    if max_output_tokens:
        generation_config["maxOutputTokens"] = max_output_tokens

    try:
        resp = requests.post(
            f"{base_url}/{model}:generateContent",
            params={"key": api_key},
            json={
                "contents": [{"parts": [{"text": prompt}]}],
                "generationConfig": generation_config,
            },
            timeout=current_app.config.get("LLM_TIMEOUT", 60),
        )
    except requests.RequestException as e:
        raise LLMError(f"Gemini request failed: {e}") from e

    if resp.status_code == 429:
        raise LLMRateLimitError("Gemini rate limit reached")
    try:
        resp.raise_for_status()
    except requests.HTTPError as e:
        raise LLMError(f"Gemini API error: {resp.status_code}") from e

    data = resp.json()
    try:
        return data["candidates"][0]["content"]["parts"][0]["text"]
    except (KeyError, IndexError, TypeError):
        raise LLMResponseError("Unexpected Gemini response structure")


def generate_gemini_json(prompt, temperature=0.5, max_output_tokens=None):
    return extract_json(generate_gemini(prompt, temperature, max_output_tokens))


# ──────────────────────────────────────────────
# OpenAI
# ──────────────────────────────────────────────

def _openai_client():
    return openai.OpenAI(
        api_key=current_app.config["OPENAI_API_KEY"],
        base_url=current_app.config.get("OPENAI_BASE_URL") or None,
        timeout=current_app.config.get("LLM_TIMEOUT", 60),
    )


def chat_openai(prompt, system_prompt=None, temperature=0.7, max_tokens=1000):
    """Single-turn chat completion; returns the stripped message text."""
    if not openai_configured():
        raise LLMNotConfiguredError("OPENAI_API_KEY not configured")

    messages = []
    if system_prompt:
        messages.append({"role": "system", "content": system_prompt})
    messages.append({"role": "user", "content": prompt})

    try:
        response = _openai_client().chat.completions.create(
            model=current_app.config["OPENAI_MODEL"],
            messages=messages,
            temperature=temperature,
            max_tokens=max_tokens,
        )
    except openai.RateLimitError as e:
        raise LLMRateLimitError(str(e)) from e
    except openai.OpenAIError as e:
        raise LLMError(f"OpenAI error: {e}") from e

    content = response.choices[0].message.content if response.choices else None
    if not content:
        raise LLMResponseError("Empty OpenAI response")
    return content.strip()


def chat_openai_json(prompt, system_prompt=None, temperature=0.7, max_tokens=1000):
    return extract_json(chat_openai(prompt, system_prompt, temperature, max_tokens))


# ──────────────────────────────────────────────
# JSON salvage
# ──────────────────────────────────────────────

_FENCE_RE = re.compile(r"```(?:json)?\s*")
_FLAT_OBJECT_RE = re.compile(r"\{[^{}]*\}")


def _strip_fences(text):
    return _FENCE_RE.sub("", (text or "").strip())


def extract_json(text):
    """Parse the outermost {...} of a model answer. Raises LLMResponseError."""
    cleaned = _strip_fences(text)
    start = cleaned.find("{")
    end = cleaned.rfind("}")
    if start == -1 or end <= start:
        raise LLMResponseError("No JSON object in model response")
    try:
        return json.loads(cleaned[start:end + 1])
    except json.JSONDecodeError as e:
        raise LLMResponseError(f"Invalid JSON in model response: {e}") from e


def recover_objects(text, required_key, limit):
    """Salvage complete flat {...} objects from a truncated JSON answer."""
    recovered = []
    for match in _FLAT_OBJECT_RE.finditer(_strip_fences(text)):
        try:
            obj = json.loads(match.group(0))
        except json.JSONDecodeError:
            continue
        if isinstance(obj, dict) and obj.get(required_key):
            recovered.append(obj)
            if len(recovered) >= limit:
                break
    return recovered
