"""
VoxLearn - Push-to-talk dictation that learns from your corrections.

This package provides:
- Hotkey gesture processing (hold, double-tap lock, Escape cancel, accidental-tap discard)
- A session controller running recording -> transcription -> edit -> paste
- Token-level Myers diff between recognized and corrected text
- Learned word remappings and hotwords that bias later transcriptions
- Optional LLM analysis of edits (OpenAI-compatible or Anthropic APIs)

Main entry point: python -m voxlearn
"""

__version__ = "1.0.0"
