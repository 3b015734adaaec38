"""
Scoring Adapter
Capability interface to an external AI grading provider.

Concrete adapters translate a rubric, the rule's weights/strictness and the
learner's content into the provider's request idiom, and turn the raw reply
into a validated ScoreResult. Validation is strict: a missing field or an
out-of-range band is a ProviderValidationError, never a default or a clamp.
"""

import json
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Mapping
from urllib.parse import urlparse

import httpx

from app.models.enums import SkillType
from app.schemas.score import FeedbackBlock, ScoreResult, is_half_band

logger = logging.getLogger(__name__)

MIN_BAND = 0.0
MAX_BAND = 9.0
FEEDBACK_FIELDS = ("strengths", "issues", "actions")


class ProviderError(Exception):
    """Any failure talking to, or understanding, a scoring provider. Retryable."""


class ProviderTimeoutError(ProviderError):
    pass


class ProviderValidationError(ProviderError):
    """Provider replied, but the reply does not satisfy the result contract."""


class UnsupportedScoringError(ProviderError):
    """No adapter/rubric combination can score this submission."""


@dataclass(frozen=True)
class Rubric:
    rubric_id: str
    skill_type: SkillType
    title: str
    criteria: tuple[str, ...]


RUBRICS: dict[str, Rubric] = {
    "ielts_speaking": Rubric(
        rubric_id="ielts_speaking",
        skill_type=SkillType.SPEAKING,
        title="IELTS Speaking",
        criteria=("fluency", "coherence", "lexical", "grammar", "pronunciation"),
    ),
    "ielts_writing": Rubric(
        rubric_id="ielts_writing",
        skill_type=SkillType.WRITING,
        title="IELTS Writing",
        criteria=("task_response", "coherence", "lexical", "grammar"),
    ),
}

CRITERION_LABELS = {
    "fluency": "Fluency",
    "coherence": "Coherence and Cohesion",
    "lexical": "Lexical Resource",
    "grammar": "Grammatical Range & Accuracy",
    "pronunciation": "Pronunciation",
    "task_response": "Task Response",
}

DEFAULT_RUBRIC_FOR_SKILL = {
    SkillType.SPEAKING: "ielts_speaking",
    SkillType.WRITING: "ielts_writing",
}


def get_rubric(rubric_id: str, skill_type: SkillType | None = None) -> Rubric:
    rubric = RUBRICS.get(rubric_id)
    if rubric is None:
        raise UnsupportedScoringError(f"Unknown rubric '{rubric_id}'")
    if skill_type is not None and rubric.skill_type != SkillType(skill_type):
        raise UnsupportedScoringError(
            f"Rubric '{rubric_id}' scores {rubric.skill_type.value}, not {SkillType(skill_type).value}"
        )
    return rubric


def is_audio_reference(content: str) -> bool:
    """Speaking content is either a transcript or an http(s) URL to a recording."""
    parsed = urlparse(content.strip())
    return parsed.scheme in ("http", "https") and bool(parsed.netloc)


def build_scoring_prompt(
    rubric: Rubric,
    *,
    weights: Mapping[str, float],
    strictness: float,
    context: str | None,
    content_label: str,
    content: str | None,
    output_keys: Mapping[str, str],
    extra_instructions: str | None = None,
) -> str:
    """
    Render the examiner prompt.

    `output_keys` maps canonical names (plus 'overall_band') to the keys the
    provider is asked to emit, so each adapter keeps its own JSON idiom.
    """
    weight_lines = "\n".join(
        f"- {CRITERION_LABELS[name]} weight: {weights.get(name, round(1 / len(rubric.criteria), 4))}"
        for name in rubric.criteria
    )
    json_lines = [f'  "{output_keys["overall_band"]}": number']
    json_lines += [f'  "{output_keys[name]}": number' for name in rubric.criteria]
    json_lines.append(
        '  "feedback": {"strengths": string, "issues": string, "actions": string}'
    )

    sections = [
        f"You are an {rubric.title} examiner.",
        f"Use the official {rubric.title} public band descriptors.",
        "Apply the following teacher-defined scoring rule:",
        weight_lines,
        f"- Strictness multiplier: {strictness}",
        f"Rubric: {rubric.rubric_id}",
    ]
    if context:
        sections.append(f"TASK / PROMPT:\n{context}")
    if content is not None:
        sections.append(f"{content_label}:\n{content}")
    else:
        sections.append(f"The learner's response is attached as {content_label}.")
    sections.append(
        "Scoring requirements:\n"
        "- Every band score is between 0 and 9.\n"
        "- The overall band is a multiple of 0.5.\n"
        "- strictness 1.0 is normal scoring; above 1.0 lower each band by "
        "(strictness - 1) * 0.5; below 1.0 raise bands proportionally.\n"
        "- Weights are the relative importance of each criterion in the overall band.\n"
        "- Return JSON only, with exactly this structure:"
    )
    sections.append("{\n" + ",\n".join(json_lines) + "\n}")
    if extra_instructions:
        sections.append(f"ADDITIONAL INSTRUCTIONS:\n{extra_instructions}")
    return "\n\n".join(sections)


def load_json_object(text: str) -> dict:
    stripped = text.strip()
    if stripped.startswith("```"):
        stripped = stripped.strip("`")
        if stripped.lower().startswith("json"):
            stripped = stripped[4:]
    try:
        data = json.loads(stripped)
    except ValueError as e:
        raise ProviderValidationError(f"Provider response is not valid JSON: {e}") from e
    if not isinstance(data, dict):
        raise ProviderValidationError("Provider response must be a JSON object")
    return data


def _band(raw: Mapping[str, Any], key: str) -> float:
    if key not in raw:
        raise ProviderValidationError(f"Missing required field in provider response: {key}")
    value = raw[key]
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ProviderValidationError(f"Invalid band score for {key}: {value!r}. Must be a number")
    if not MIN_BAND <= value <= MAX_BAND:
        raise ProviderValidationError(
            f"Invalid band score for {key}: {value}. Must be between 0 and 9"
        )
    return float(value)


def parse_score_payload(
    raw: Mapping[str, Any],
    rubric: Rubric,
    *,
    output_keys: Mapping[str, str] | None = None,
) -> ScoreResult:
    output_keys = output_keys or canonical_output_keys(rubric)

    overall_key = output_keys["overall_band"]
    overall = _band(raw, overall_key)
    if not is_half_band(overall):
        raise ProviderValidationError(
            f"Invalid band score for {overall_key}: {overall}. Must be a multiple of 0.5"
        )
    criteria = {name: _band(raw, output_keys[name]) for name in rubric.criteria}

    feedback = raw.get("feedback")
    if not isinstance(feedback, dict):
        raise ProviderValidationError("Missing required field in provider response: feedback")
    for field in FEEDBACK_FIELDS:
        if not isinstance(feedback.get(field), str):
            raise ProviderValidationError(f"feedback.{field} must be a string")

    transcript = raw.get("transcript")
    if transcript is not None and not isinstance(transcript, str):
        raise ProviderValidationError("transcript must be a string")

    return ScoreResult(
        criteria=criteria,
        overall_band=overall,
        feedback=FeedbackBlock(**{field: feedback[field] for field in FEEDBACK_FIELDS}),
        transcript=transcript,
    )


def canonical_output_keys(rubric: Rubric) -> dict[str, str]:
    keys = {name: name for name in rubric.criteria}
    keys["overall_band"] = "overall_band"
    return keys


class ScoringAdapter(ABC):
    name = "base"
    supports_audio = False

    def __init__(self, *, timeout: float, client: httpx.Client | None = None):
        self.timeout = timeout
        self._client = client or httpx.Client(timeout=timeout)

    @abstractmethod
    def evaluate_speaking(
        self,
        audio_or_transcript: str,
        context: str | None,
        weights: Mapping[str, float],
        strictness: float,
        *,
        model_id: str,
        rubric_id: str = "ielts_speaking",
        options: Mapping[str, Any] | None = None,
    ) -> ScoreResult:
        raise NotImplementedError

    @abstractmethod
    def evaluate_writing(
        self,
        text: str,
        context: str | None,
        weights: Mapping[str, float],
        strictness: float,
        *,
        model_id: str,
        rubric_id: str = "ielts_writing",
        options: Mapping[str, Any] | None = None,
    ) -> ScoreResult:
        raise NotImplementedError

    def _request(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        try:
            response = self._client.request(method, url, timeout=self.timeout, **kwargs)
            response.raise_for_status()
        except httpx.TimeoutException as e:
            raise ProviderTimeoutError(
                f"{self.name} request timed out after {self.timeout}s"
            ) from e
        except httpx.HTTPStatusError as e:
            raise ProviderError(
                f"{self.name} returned HTTP {e.response.status_code}: {e.response.text[:200]}"
            ) from e
        except httpx.RequestError as e:
            raise ProviderError(f"{self.name} request failed: {e}") from e
        return response

    def _post_json(self, url: str, **kwargs: Any) -> dict:
        response = self._request("POST", url, **kwargs)
        try:
            data = response.json()
        except ValueError as e:
            raise ProviderValidationError(f"{self.name} returned a non-JSON body") from e
        if not isinstance(data, dict):
            raise ProviderValidationError(f"{self.name} returned an unexpected body")
        return data

    def close(self) -> None:
        self._client.close()
