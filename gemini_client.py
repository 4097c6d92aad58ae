"""Gemini adapter — one method per generation capability.

Each method takes the credential to use explicitly. Clients are built per key
(google-genai binds the key to the Client instance), so calls on different
keys can run concurrently without sharing global SDK state.

Methods return raw provider output (JSON text, prose, base64 media) and
raise SDK exceptions or ProviderError subclasses; retry and classification
happen in ai_resilience.py.
"""

from __future__ import annotations

import base64
import threading

from google import genai
from google.genai import types

from ai_resilience import Malformed, SafetyBlocked

WORD_SCHEMA = {
    "type": "OBJECT",
    "properties": {
        "word": {"type": "STRING"},
        "phonetic": {"type": "STRING"},
        "partOfSpeech": {"type": "STRING"},
        "definition": {"type": "STRING"},
        "etymology": {"type": "STRING", "description": "A concise paragraph explaining the origin history."},
        "roots": {
            "type": "ARRAY",
            "items": {
                "type": "OBJECT",
                "properties": {
                    "term": {"type": "STRING"},
                    "language": {"type": "STRING"},
                    "meaning": {"type": "STRING"},
                },
            },
            "description": "List of 2-3 ancestral roots (e.g., Latin, Greek, Old English) leading to this word.",
        },
        "examples": {"type": "ARRAY", "items": {"type": "STRING"}},
        "synonyms": {"type": "ARRAY", "items": {"type": "STRING"}},
        "funFact": {"type": "STRING", "description": "A short, surprising trivia fact about the word."},
    },
    "required": ["word", "phonetic", "definition", "etymology", "roots", "examples", "synonyms", "funFact"],
}

DETAILS_PROMPT = (
    'Analyze "{word}". If word, provide etymology. If symbol, explain history/usage. '
    "Deep but concise."
)
DETAILS_SYSTEM = "Expert etymologist. Concise."

SUMMARY_PROMPT = (
    'Story-style etymology summary of "{word}". Max 150 words. Focus on surprise. '
    "Write exactly one paragraph."
)

IMAGE_PROMPT = (
    "Create a high-quality, artistic, surrealist illustration representing the concept and "
    'etymological origin of the word "{word}". Context: {context}. The image should be a '
    "symbolic, visual interpretation without any text. Cinematic lighting, highly detailed "
    "illustration style."
)


def _check_blocked(response) -> None:
    feedback = getattr(response, "prompt_feedback", None)
    if feedback is not None and getattr(feedback, "block_reason", None):
        raise SafetyBlocked(f"Prompt blocked: {feedback.block_reason}")
    for candidate in getattr(response, "candidates", None) or []:
        finish = str(getattr(candidate, "finish_reason", "") or "")
        if "SAFETY" in finish.upper() or "PROHIBITED" in finish.upper():
            raise SafetyBlocked(f"Response blocked by safety filters ({finish})")


def _first_inline_data(response) -> bytes | None:
    for candidate in getattr(response, "candidates", None) or []:
        content = getattr(candidate, "content", None)
        for part in getattr(content, "parts", None) or []:
            inline = getattr(part, "inline_data", None)
            if inline is not None and inline.data:
                return inline.data
    return None


def _to_base64(data: bytes | str) -> str:
    if isinstance(data, str):
        return data
    return base64.b64encode(data).decode("ascii")


class GeminiProvider:
    """Thin wrapper over google-genai's ``models.generate_content``."""

    def __init__(
        self,
        details_model: str = "gemini-2.5-flash",
        summary_model: str = "gemini-2.5-flash",
        image_model: str = "gemini-2.5-flash-image",
        tts_model: str = "gemini-2.5-flash-preview-tts",
        tts_voice: str = "Fenrir",
        client_factory=genai.Client,
    ) -> None:
        self.details_model = details_model
        self.summary_model = summary_model
        self.image_model = image_model
        self.tts_model = tts_model
        self.tts_voice = tts_voice
        self._client_factory = client_factory
        self._clients: dict[str, genai.Client] = {}
        self._lock = threading.Lock()

    @classmethod
    def from_config(cls, config) -> GeminiProvider:
        return cls(
            details_model=config.get("DETAILS_MODEL", "gemini-2.5-flash"),
            summary_model=config.get("SUMMARY_MODEL", "gemini-2.5-flash"),
            image_model=config.get("IMAGE_MODEL", "gemini-2.5-flash-image"),
            tts_model=config.get("TTS_MODEL", "gemini-2.5-flash-preview-tts"),
            tts_voice=config.get("TTS_VOICE", "Fenrir"),
        )

    def _client(self, api_key: str):
        with self._lock:
            client = self._clients.get(api_key)
            if client is None:
                client = self._client_factory(api_key=api_key)
                self._clients[api_key] = client
            return client

    def word_details(self, api_key: str, word: str) -> str:
        response = self._client(api_key).models.generate_content(
            model=self.details_model,
            contents=DETAILS_PROMPT.format(word=word),
            config=types.GenerateContentConfig(
                response_mime_type="application/json",
                response_schema=WORD_SCHEMA,
                system_instruction=DETAILS_SYSTEM,
                max_output_tokens=1000,
            ),
        )
        _check_blocked(response)
        return response.text or ""

    def summary(self, api_key: str, word: str) -> str:
        response = self._client(api_key).models.generate_content(
            model=self.summary_model,
            contents=SUMMARY_PROMPT.format(word=word),
            config=types.GenerateContentConfig(max_output_tokens=300),
        )
        _check_blocked(response)
        return response.text or ""

    def image(self, api_key: str, word: str, etymology: str = "") -> str:
        context = etymology[:300] if etymology else "Abstract representation"
        response = self._client(api_key).models.generate_content(
            model=self.image_model,
            contents=IMAGE_PROMPT.format(word=word, context=context),
        )
        _check_blocked(response)
        data = _first_inline_data(response)
        if not data:
            raise Malformed("Model returned no image data.")
        return _to_base64(data)

    def speech(self, api_key: str, text: str) -> str:
        response = self._client(api_key).models.generate_content(
            model=self.tts_model,
            contents=text,
            config=types.GenerateContentConfig(
                response_modalities=["AUDIO"],
                speech_config=types.SpeechConfig(
                    voice_config=types.VoiceConfig(
                        prebuilt_voice_config=types.PrebuiltVoiceConfig(voice_name=self.tts_voice),
                    ),
                ),
            ),
        )
        _check_blocked(response)
        data = _first_inline_data(response)
        if not data:
            raise Malformed("Model returned no audio data.")
        return _to_base64(data)
