"""
Correction-learning pipeline.

Chooses between the diff-based analysis and the LLM analysis for one
confirmed edit. The LLM path never surfaces an error: any failure falls back
to the diff-based result.
"""

from dataclasses import dataclass, field
from typing import Iterable, List, Optional

from .analysis import AnalysisClient
from .corrections import COMMON_WORDS, detect_corrections, extract_hotwords
from .types import CorrectionAnalysisMode, LLMAnalysisRequest, LLMConfig, TextCorrection


@dataclass
class LearningOutcome:
    """Corrections and hotwords produced by one analysis, and which path made them."""
    corrections: List[TextCorrection] = field(default_factory=list)
    hotwords: List[str] = field(default_factory=list)
    source: CorrectionAnalysisMode = CorrectionAnalysisMode.TRADITIONAL
    fallback_reason: Optional[str] = None

    @property
    def is_empty(self) -> bool:
        return not self.corrections and not self.hotwords


def analyze_traditional(
    original_text: str,
    edited_text: str,
    common_words: Iterable[str] = COMMON_WORDS,
) -> LearningOutcome:
    """Tokenize + diff + extract."""
    corrections = detect_corrections(original_text, edited_text)
    hotwords = extract_hotwords(corrections, common_words)
    return LearningOutcome(corrections=corrections, hotwords=hotwords)


def analyze_edit(
    original_text: str,
    edited_text: str,
    mode: CorrectionAnalysisMode,
    llm_config: LLMConfig,
    client: Optional[AnalysisClient] = None,
    language: Optional[str] = None,
) -> LearningOutcome:
    """
    Analyze one edit in the configured mode.

    Args:
        original_text: Transcript as recognized (after remappings)
        edited_text: Transcript as confirmed by the user
        mode: Traditional or LLM
        llm_config: LLM settings, consulted only in LLM mode
        client: Analysis backend for LLM mode
        language: Optional language hint for the model

    Returns:
        LearningOutcome; source is TRADITIONAL whenever the LLM path was not
        used or failed
    """
    if mode is not CorrectionAnalysisMode.LLM:
        return analyze_traditional(original_text, edited_text)

    if client is None or not llm_config.enabled or not llm_config.is_valid:
        print("[Learn] LLM not configured, falling back to traditional")
        outcome = analyze_traditional(original_text, edited_text)
        outcome.fallback_reason = "not configured"
        return outcome

    request = LLMAnalysisRequest(
        original_text=original_text,
        edited_text=edited_text,
        language=language,
    )

    try:
        response = client.analyze_corrections(request, llm_config)
    except Exception as e:
        print(f"[Learn] LLM analysis failed, falling back to traditional: {e}")
        outcome = analyze_traditional(original_text, edited_text)
        outcome.fallback_reason = str(e)
        return outcome

    if response.reasoning:
        print(f"[Learn] LLM reasoning: {response.reasoning}")

    return LearningOutcome(
        corrections=list(response.corrections),
        hotwords=list(response.hotwords),
        source=CorrectionAnalysisMode.LLM,
    )
