from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import json
import logging
import re

from memory_garden.errors import (
    AuthError,
    ClassifierError,
    ConfigError,
    NotFoundError,
    ParseError,
    ServiceError,
    TransientError,
)


logger = logging.getLogger("memory_garden.llm")

_CODE_FENCE = re.compile(r"```(?:json)?\s*([\s\S]+?)```", re.IGNORECASE)
_ACTION_WORD = re.compile(r"\b(keep|compress|low[_ ]relevance|delete|forget)\b", re.IGNORECASE)
_NUMBER = re.compile(r"(?<![\w.])-?\d+(?:\.\d+)?")


@dataclass(frozen=True)
class CompletionRequest:
    """Everything sent to the external completion service for one memory."""

    prompt: str
    seed: int
    temperature: float = 0.0
    max_tokens: int = 500


def _first_json_object(text: str) -> Optional[Dict[str, Any]]:
    decoder = json.JSONDecoder()
    index = text.find("{")
    while index != -1:
        try:
            parsed, _ = decoder.raw_decode(text, index)
        except ValueError:
            index = text.find("{", index + 1)
            continue
        if isinstance(parsed, dict):
            return parsed
        index = text.find("{", index + 1)
    return None


def extract_from_text(text: str) -> Dict[str, Any]:
    """Pull an action keyword and up to three scores out of free prose.

    Scores in [0, 1] are taken in the order relevance1Month, relevance1Year,
    attachment. Raises ParseError when neither an action nor a score is present.
    """
    result: Dict[str, Any] = {}
    action_match = _ACTION_WORD.search(text)
    if action_match:
        result["action"] = action_match.group(1).lower().replace(" ", "_")

    numbers: List[float] = []
    for raw in _NUMBER.findall(text):
        try:
            value = float(raw)
        except ValueError:
            continue
        if 0.0 <= value <= 1.0:
            numbers.append(value)
        if len(numbers) == 3:
            break
    for key, value in zip(("relevance1Month", "relevance1Year", "attachment"), numbers):
        result[key] = value

    if not result:
        raise ParseError("no action or scores found in model output")
    result["explanation"] = " ".join(text.split())[:200]
    return result


def parse_model_output(text: str) -> Dict[str, Any]:
    """Best-effort parse of a classifier answer.

    Handles code fences (```json ... ```) and prose around the JSON by taking
    the first well-formed object; falls back to keyword/number extraction.
    """
    if not text or text.strip() == "":
        raise ParseError("empty model output")

    candidate = text.strip()
    fenced = _CODE_FENCE.search(candidate)
    if fenced:
        parsed = _first_json_object(fenced.group(1))
        if parsed is not None:
            return parsed

    parsed = _first_json_object(candidate)
    if parsed is not None:
        return parsed

    logger.info("[llm.parse] no JSON object found, using text extraction")
    return extract_from_text(candidate)


def call_completion(
    request: CompletionRequest,
    *,
    api_key: Optional[str],
    base_url: str,
    model: str,
    timeout_s: float,
    use_langfuse: bool = False,
) -> str:
    """Send one chat completion to the OpenAI-compatible endpoint.

    Every failure is raised as a ClassifierError subclass; nothing is retried.
    """
    api_key = (api_key or "").strip()
    if not api_key:
        raise ConfigError("NEMOTRON_API_KEY is not set")

    import openai

    # Use Langfuse OpenAI wrapper for auto-instrumentation if enabled
    if use_langfuse:
        try:
            from langfuse.openai import OpenAI  # type: ignore
        except ImportError:
            from openai import OpenAI  # type: ignore
    else:
        from openai import OpenAI  # type: ignore

    client = OpenAI(api_key=api_key, base_url=base_url, max_retries=0, timeout=timeout_s)
    try:
        resp = client.chat.completions.create(
            model=model,
            messages=[{"role": "user", "content": request.prompt}],
            temperature=request.temperature,
            top_p=0.9,
            max_tokens=request.max_tokens,
            seed=request.seed,
            stream=False,
        )
    except (openai.AuthenticationError, openai.PermissionDeniedError) as exc:
        raise AuthError(
            f"API authentication failed ({exc.status_code}); verify NEMOTRON_API_KEY has access to {model}",
            status_code=exc.status_code,
        ) from exc
    except openai.NotFoundError as exc:
        raise NotFoundError(f"Model not found: {model}", status_code=exc.status_code) from exc
    except openai.APITimeoutError as exc:
        raise TransientError("Request timeout") from exc
    except openai.APIConnectionError as exc:
        raise TransientError(f"Network error: {exc}") from exc
    except openai.APIStatusError as exc:
        raise ServiceError(f"API error ({exc.status_code})", status_code=exc.status_code) from exc
    except openai.OpenAIError as exc:
        raise ClassifierError(f"completion failed: {exc}") from exc

    if not resp.choices:
        raise ParseError("completion returned no choices")
    text = resp.choices[0].message.content or ""
    logger.info(
        "LLM call ok | model=%s | seed=%s | output=%s",
        model,
        request.seed,
        text[:500],
    )
    return text
