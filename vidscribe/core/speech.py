"""
Text-to-speech for audio summaries (OpenAI speech endpoint).
Includes exponential backoff for rate-limit (429) responses.
"""

import re
import time
import random
import logging
import secrets

import requests

from vidscribe.core.constants import (
    ErrorCode, TTS_API_URL, TTS_MODEL, TTS_VOICE, TTS_MAX_LENGTH, TTS_MAX_CHUNKS,
    AUDIO_SUMMARY_PREFIX,
)
from vidscribe.core.error_codes import ConfigurationError, UpstreamError

logger = logging.getLogger(__name__)

_SENTENCE_RE = re.compile(r'[.!?]*[^.!?]+[.!?]+')

_MAX_RATE_LIMIT_RETRIES = 4
_RATE_LIMIT_BASE_DELAY = 2.0   # seconds, doubled on each retry
_REQUEST_TIMEOUT = 120


def _split_sentences(text: str) -> list[str]:
    sentences = []
    end = 0
    for m in _SENTENCE_RE.finditer(text):
        sentences.append(m.group(0).strip())
        end = m.end()
    tail = text[end:].strip()
    if tail:
        sentences.append(tail)
    return [s for s in sentences if s]


def _hard_split(sentence: str, max_length: int) -> list[str]:
    """Split one over-long sentence on whitespace (or mid-word as a last resort)."""
    pieces = []
    current = ''
    for word in sentence.split():
        while len(word) > max_length:
            if current:
                pieces.append(current)
                current = ''
            pieces.append(word[:max_length])
            word = word[max_length:]
        candidate = f"{current} {word}" if current else word
        if len(candidate) <= max_length:
            current = candidate
        else:
            pieces.append(current)
            current = word
    if current:
        pieces.append(current)
    return pieces


def split_text_for_speech(text: str, max_length: int = TTS_MAX_LENGTH) -> list[str]:
    """
    Split text into chunks of at most max_length characters.

    Text that already fits is returned unchanged as a single chunk. Longer
    text is split on sentence boundaries (. ! ?) and sentences are packed
    greedily, joined by single spaces.
    """
    if len(text) <= max_length:
        return [text]

    chunks = []
    current = ''
    for sentence in _split_sentences(text):
        if len(sentence) > max_length:
            if current:
                chunks.append(current)
                current = ''
            chunks.extend(_hard_split(sentence, max_length))
            continue

        candidate = f"{current} {sentence}" if current else sentence
        if len(candidate) <= max_length:
            current = candidate
        else:
            chunks.append(current)
            current = sentence

    if current:
        chunks.append(current)
    return chunks


class SpeechClient:
    """Synthesizes one chunk of text into MP3 bytes."""

    def __init__(self, api_key: str, model: str = TTS_MODEL, voice: str = TTS_VOICE,
                 session: requests.Session | None = None, url: str = TTS_API_URL,
                 sleep=time.sleep):
        if not api_key:
            raise ConfigurationError("Text-to-speech API key is not configured")
        self.api_key = api_key
        self.model = model
        self.voice = voice
        self.session = session or requests.Session()
        self.url = url
        self._sleep = sleep

    @classmethod
    def from_config(cls, config) -> "SpeechClient":
        return cls(config.get('tts_api_key'))

    def synthesize(self, text: str) -> bytes:
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }
        body = {"model": self.model, "voice": self.voice, "input": text}

        for attempt in range(_MAX_RATE_LIMIT_RETRIES + 1):
            try:
                resp = self.session.post(self.url, headers=headers, json=body,
                                         timeout=_REQUEST_TIMEOUT)
            except requests.exceptions.Timeout as e:
                raise UpstreamError("Speech request timed out", code=ErrorCode.TTS_FAILED) from e
            except requests.RequestException as e:
                raise UpstreamError(f"Speech request failed: {type(e).__name__}",
                                    code=ErrorCode.NETWORK_TRANSIENT) from e

            if resp.status_code == 429:
                if attempt < _MAX_RATE_LIMIT_RETRIES:
                    # 2s, 4s, 8s, 16s (+/- 10%)
                    delay = _RATE_LIMIT_BASE_DELAY * (2 ** attempt)
                    delay *= 1 + random.uniform(-0.1, 0.1)
                    logger.warning(
                        "Speech API rate limited (429) — retrying in %.1fs (attempt %d/%d)",
                        delay, attempt + 1, _MAX_RATE_LIMIT_RETRIES,
                    )
                    self._sleep(delay)
                    continue
                raise UpstreamError(f"Speech API rate limited (429) after {_MAX_RATE_LIMIT_RETRIES} retries",
                                    code=ErrorCode.TTS_FAILED)

            if resp.status_code != 200:
                error_body = resp.text[:300] if resp.text else "No response body"
                raise UpstreamError(f"Speech API returned {resp.status_code}: {error_body}",
                                    code=ErrorCode.TTS_FAILED)

            return resp.content

        raise UpstreamError("Speech request exhausted retries", code=ErrorCode.TTS_FAILED)


def synthesize_speech(text: str, client: SpeechClient, max_length: int = TTS_MAX_LENGTH,
                      max_chunks: int = TTS_MAX_CHUNKS) -> bytes:
    """Synthesize up to max_chunks chunks and concatenate the MP3 bytes in order."""
    chunks = split_text_for_speech(text, max_length)
    logger.info("Text split into %d chunks for audio generation", len(chunks))
    if len(chunks) > max_chunks:
        logger.info("Processing only first %d chunks out of %d total", max_chunks, len(chunks))
        chunks = chunks[:max_chunks]

    parts = []
    for i, chunk in enumerate(chunks, 1):
        logger.info("Generating audio for chunk %d/%d", i, len(chunks))
        parts.append(client.synthesize(chunk))
    return b"".join(parts)


def audio_summary_key() -> str:
    return f"{AUDIO_SUMMARY_PREFIX}/{int(time.time() * 1000)}-{secrets.token_hex(4)}.mp3"


def generate_audio_summary(text: str, client: SpeechClient, storage) -> str:
    """Synthesize text and upload it; returns the public URL."""
    audio = synthesize_speech(text, client)
    key = audio_summary_key()
    url = storage.upload_bytes(key, audio, "audio/mpeg")
    logger.info("Audio summary uploaded: %s (%d bytes)", key, len(audio))
    return url
