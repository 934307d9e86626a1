"""
Groq Whisper API transcriber.
"""

import time
from pathlib import Path
from typing import Optional, Sequence

from . import Transcriber


# Whisper only reads the last ~224 prompt tokens
MAX_PROMPT_CHARS = 800


def build_hotword_prompt(hotwords: Sequence[str]) -> Optional[str]:
    """Join hotwords into a Whisper prompt, keeping the newest when too long."""
    prompt = ""
    for word in reversed(hotwords):
        candidate = f"{word}, {prompt}" if prompt else word
        if len(candidate) > MAX_PROMPT_CHARS:
            break
        prompt = candidate
    return prompt or None


class GroqTranscriber(Transcriber):
    """
    Cloud transcription using Groq's Whisper API.

    Learned hotwords are passed as the prompt, which biases Whisper toward
    their spelling.
    """

    name = "groq"

    def __init__(self, api_key: str, model: str = "whisper-large-v3"):
        from groq import Groq

        self.model = model
        self.client = Groq(api_key=api_key)

    def transcribe(
        self,
        audio_path: Path,
        hotwords: Sequence[str] = (),
        language: Optional[str] = None,
    ) -> str:
        start = time.time()

        kwargs = {"model": self.model, "temperature": 0.0}
        prompt = build_hotword_prompt(hotwords)
        if prompt:
            kwargs["prompt"] = prompt
        if language:
            kwargs["language"] = language

        with open(audio_path, "rb") as f:
            response = self.client.audio.transcriptions.create(
                file=(audio_path.name, f.read()),
                **kwargs,
            )

        text = response.text.strip()
        latency = time.time() - start
        print(f"[{self.name}] {latency:.2f}s -> \"{text[:50]}\"")
        return text
