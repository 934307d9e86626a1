"""
LLM-assisted correction analysis.

Sends the original and user-edited transcripts to a configurable text model
and parses the corrections/hotwords it returns. Two wire families are
supported: OpenAI-compatible chat completions (Ollama, LM Studio, OpenAI,
custom servers) and the Anthropic messages API.

Calls are made once with the configured timeout and never retried; callers
fall back to the diff-based path on any error.
"""

import json
import re
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional
from urllib.parse import urlparse

import requests

from .types import LLMAnalysisRequest, LLMAnalysisResponse, LLMConfig, TextCorrection


ANTHROPIC_VERSION = "2023-06-01"

_JSON_FENCE = re.compile(r"```json\s*(.*?)\s*```", re.DOTALL)
_ANY_FENCE = re.compile(r"```\s*(.*?)\s*```", re.DOTALL)


class LLMAnalysisError(Exception):
    """Base class for analysis failures."""


class InvalidConfigurationError(LLMAnalysisError):
    def __init__(self, message: str = "LLM config is invalid: check base URL, model and API key"):
        super().__init__(message)


class InvalidURLError(LLMAnalysisError):
    def __init__(self, url: str):
        super().__init__(f"Invalid API URL: {url}")
        self.url = url


class InvalidResponseError(LLMAnalysisError):
    pass


class EmptyResponseError(LLMAnalysisError):
    def __init__(self, message: str = "API returned no content"):
        super().__init__(message)


class InvalidJSONError(LLMAnalysisError):
    pass


class APIError(LLMAnalysisError):
    def __init__(self, status_code: int, message: str):
        super().__init__(f"API error ({status_code}): {message}")
        self.status_code = status_code
        self.message = message


ANALYSIS_PROMPT = """You compare a speech-recognition transcript with the version the user corrected by hand.

Original (speech recognition output):
{original}

Edited (corrected by the user):
{edited}

Your tasks:
1. Find every part the user changed.
2. Pick out hotwords worth remembering for future recognition.

Guidelines:
- Corrections may be single words ("api" -> "API") or whole phrases ("六次体制" -> "热词提示").
- Report meaningful correction units, not a character-by-character comparison.
- Good hotwords: technical terms (API, plist, json, React, TypeScript), proper nouns (companies,
  products, people, places), domain phrases (热词提示, 语音识别), English words of 3+ letters.
- Never hotwords: common words (the, and, 的, 是, 在, 这, 一个, 功能, 测试).
- Hotwords may include specialist terms from the edited text even if they were not changed.

Return JSON in exactly this shape:
{{
  "corrections": [{{"original": "wrong text", "corrected": "right text"}}],
  "hotwords": ["word1", "word2"],
  "reasoning": "one short sentence"
}}

Example 1 (word level):
Original: "I use antropic api"
Edited: "I use Anthropic API"
{{"corrections": [{{"original": "antropic", "corrected": "Anthropic"}}, {{"original": "api", "corrected": "API"}}],
 "hotwords": ["Anthropic", "API"], "reasoning": "Anthropic is a company name, API is a technical term"}}

Example 2 (phrase level):
Original: "测试LLM复制的六次体制功能"
Edited: "测试LLM辅助的热词提示功能"
{{"corrections": [{{"original": "复制", "corrected": "辅助"}}, {{"original": "六次体制", "corrected": "热词提示"}}],
 "hotwords": ["辅助", "热词提示"], "reasoning": "both are domain terms misheard as homophones"}}

Return only the JSON object. Do not wrap it in a markdown code block."""


def build_analysis_prompt(request: LLMAnalysisRequest) -> str:
    """Compose the analysis prompt for one original/edited pair."""
    prompt = ANALYSIS_PROMPT.format(original=request.original_text, edited=request.edited_text)
    if request.language:
        prompt += f"\n\nTranscript language: {request.language}"
    return prompt


def strip_code_fence(content: str) -> str:
    """Return the body of a ```json or ``` fenced block, or the text unchanged."""
    if "```json" in content:
        match = _JSON_FENCE.search(content)
        if match:
            return match.group(1)
    elif "```" in content:
        match = _ANY_FENCE.search(content)
        if match:
            return match.group(1)
    return content


def parse_analysis_response(content: str) -> LLMAnalysisResponse:
    """
    Parse the model's JSON payload.

    Corrections that are empty or differ only by case are dropped.

    Raises:
        InvalidJSONError: not JSON after fence stripping, or the wrong shape
    """
    cleaned = strip_code_fence(content)
    try:
        payload = json.loads(cleaned)
    except json.JSONDecodeError as e:
        raise InvalidJSONError(f"Could not parse LLM JSON: {e}") from e

    if not isinstance(payload, dict):
        raise InvalidJSONError("LLM JSON is not an object")

    raw_corrections = payload.get("corrections")
    raw_hotwords = payload.get("hotwords")
    reasoning = payload.get("reasoning")

    if not isinstance(raw_corrections, list) or not isinstance(raw_hotwords, list):
        raise InvalidJSONError("LLM JSON needs 'corrections' and 'hotwords' lists")
    if reasoning is not None and not isinstance(reasoning, str):
        raise InvalidJSONError("'reasoning' must be a string")

    corrections: List[TextCorrection] = []
    for item in raw_corrections:
        if not isinstance(item, dict):
            raise InvalidJSONError(f"Correction is not an object: {item!r}")
        original = item.get("original")
        corrected = item.get("corrected")
        if not isinstance(original, str) or not isinstance(corrected, str):
            raise InvalidJSONError(f"Correction needs string fields: {item!r}")
        correction = TextCorrection(original=original.strip(), corrected=corrected.strip())
        if correction.is_meaningful():
            corrections.append(correction)

    hotwords: List[str] = []
    for word in raw_hotwords:
        if not isinstance(word, str):
            raise InvalidJSONError(f"Hotword is not a string: {word!r}")
        if word.strip():
            hotwords.append(word.strip())

    print(f"[LLM] Parsed {len(corrections)} corrections, {len(hotwords)} hotwords")
    return LLMAnalysisResponse(corrections=corrections, hotwords=hotwords, reasoning=reasoning)


class AnalysisClient(ABC):
    """
    Interface for correction analysis backends.

    Subclasses must implement analyze_corrections().
    """

    @abstractmethod
    def analyze_corrections(self, request: LLMAnalysisRequest, config: LLMConfig) -> LLMAnalysisResponse:
        """
        Analyze one edit.

        Raises:
            LLMAnalysisError: configuration, HTTP or payload problems
            requests.RequestException: transport failures (live client only)
        """

    def test_connection(self, config: LLMConfig) -> bool:
        """Run a throwaway analysis; True when the backend answers sensibly."""
        if not config.is_valid:
            return False

        probe = LLMAnalysisRequest(original_text="测试", edited_text="测试", language="zh")
        try:
            self.analyze_corrections(probe, config)
            return True
        except Exception as e:
            print(f"[LLM] Connection test failed: {e}")
            return False


class HTTPAnalysisClient(AnalysisClient):
    """
    Live client over HTTP.

    Usage:
        client = HTTPAnalysisClient()
        response = client.analyze_corrections(request, snapshot.llm_config)
    """

    def __init__(self, session: Optional[requests.Session] = None):
        # Persistent session for connection reuse
        self.session = session or requests.Session()

    def analyze_corrections(self, request: LLMAnalysisRequest, config: LLMConfig) -> LLMAnalysisResponse:
        if not config.is_valid:
            raise InvalidConfigurationError()

        print(f"[LLM] Analyzing corrections with {config.provider.value} ({config.model})")
        prompt = build_analysis_prompt(request)

        if config.provider.is_openai_compatible:
            content = self._call_openai_compatible(prompt, config)
        else:
            content = self._call_anthropic(prompt, config)

        return parse_analysis_response(content)

    def _call_openai_compatible(self, prompt: str, config: LLMConfig) -> str:
        url = _endpoint(config.base_url, "v1/chat/completions")

        headers = {"Content-Type": "application/json"}
        if config.provider.requires_api_key:
            headers["Authorization"] = f"Bearer {config.api_key}"

        data = {
            "model": config.model,
            "messages": [{"role": "user", "content": prompt}],
            "temperature": config.temperature,
            "max_tokens": config.max_tokens,
            "response_format": {"type": "json_object"},
        }

        body = self._post(url, headers, data, config.timeout)
        try:
            message = body["choices"][0]["message"]
        except (KeyError, IndexError, TypeError):
            if isinstance(body, dict) and body.get("choices") == []:
                raise EmptyResponseError()
            raise InvalidResponseError(f"Unexpected chat completion shape: {_preview(body)}")

        return _content_text(message.get("content") if isinstance(message, dict) else None)

    def _call_anthropic(self, prompt: str, config: LLMConfig) -> str:
        url = _endpoint(config.base_url, "v1/messages")

        headers = {
            "Content-Type": "application/json",
            "x-api-key": config.api_key,
            "anthropic-version": ANTHROPIC_VERSION,
        }

        data = {
            "model": config.model,
            "messages": [{"role": "user", "content": prompt}],
            "temperature": config.temperature,
            "max_tokens": config.max_tokens,
        }

        body = self._post(url, headers, data, config.timeout)
        blocks = body.get("content") if isinstance(body, dict) else None
        if not isinstance(blocks, list):
            raise InvalidResponseError(f"Unexpected messages shape: {_preview(body)}")
        if not blocks or not isinstance(blocks[0], dict):
            raise EmptyResponseError()

        return _content_text(blocks[0].get("text"))

    def _post(self, url: str, headers: Dict[str, str], data: Dict[str, Any], timeout: float) -> Any:
        try:
            response = self.session.post(url, headers=headers, json=data, timeout=timeout)
        except (requests.exceptions.InvalidURL, requests.exceptions.MissingSchema,
                requests.exceptions.InvalidSchema) as e:
            raise InvalidURLError(url) from e

        if not 200 <= response.status_code < 300:
            message = response.text or "Unknown error"
            print(f"[LLM] API error ({response.status_code}): {message[:200]}")
            raise APIError(response.status_code, message)

        try:
            return response.json()
        except ValueError as e:
            raise InvalidResponseError(f"Response is not JSON: {response.text[:200]}") from e


class StaticAnalysisClient(AnalysisClient):
    """
    Deterministic client for tests and offline runs.

    Returns a canned response, or raises a canned error, and records every
    request it receives.
    """

    def __init__(
        self,
        response: Optional[LLMAnalysisResponse] = None,
        error: Optional[Exception] = None,
    ):
        self.response = response or LLMAnalysisResponse(corrections=[], hotwords=[])
        self.error = error
        self.requests: List[LLMAnalysisRequest] = []

    def analyze_corrections(self, request: LLMAnalysisRequest, config: LLMConfig) -> LLMAnalysisResponse:
        self.requests.append(request)
        if not config.is_valid:
            raise InvalidConfigurationError()
        if self.error is not None:
            raise self.error
        return self.response


def _endpoint(base_url: str, path: str) -> str:
    if not base_url.endswith("/"):
        base_url += "/"
    url = f"{base_url}{path}"

    parsed = urlparse(url)
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        raise InvalidURLError(url)
    return url


def _content_text(content: Any) -> str:
    if content is None:
        raise EmptyResponseError()
    if not isinstance(content, str):
        raise InvalidResponseError(f"Content is not text: {_preview(content)}")
    return content


def _preview(value: Any) -> str:
    text = json.dumps(value, ensure_ascii=False) if not isinstance(value, str) else value
    return text[:200]
