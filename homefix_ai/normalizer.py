"""Result normalizer — loosely structured model text to a strict AnalysisResult.

The model is asked for JSON but routinely wraps it in prose or code fences,
drops keys, returns tools as bare strings and mislabels its own confidence.
Once a JSON object can be located this module never fails: it fills defaults
and reconciles the confidence gate instead.
"""

import json
import re

from homefix_ai.errors import MalformedModelOutput
from homefix_ai.models import (
    AnalysisResult,
    ClarifyingQuestion,
    ConfidenceLevel,
    DamageAssessment,
    DamageSeverity,
    Difficulty,
    DiyFriendly,
    MaterialItem,
    ToolItem,
)
from homefix_ai.prompts import CONFIDENCE_THRESHOLD

DEFAULT_CONFIDENCE = 0.5
DEFAULT_SUMMARY = "Unable to determine issue"

_JSON_FENCE = re.compile(r"```json\s*([\s\S]*?)\s*```", re.IGNORECASE)
_ANY_FENCE = re.compile(r"```[A-Za-z]*\s*(\{[\s\S]*?\})\s*```")


def confidence_level(confidence):
    if confidence >= 0.8:
        return ConfidenceLevel.HIGH
    if confidence >= 0.6:
        return ConfidenceLevel.MEDIUM
    return ConfidenceLevel.LOW


def _first_object_span(text):
    """Return the first balanced top-level {...} span, string-aware."""
    start = text.find("{")
    if start == -1:
        return None

    depth = 0
    in_string = False
    escaped = False
    for i in range(start, len(text)):
        ch = text[i]
        if in_string:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_string = False
        elif ch == '"':
            in_string = True
        elif ch == "{":
            depth += 1
        elif ch == "}":
            depth -= 1
            if depth == 0:
                return text[start:i + 1]
    return None


def extract_json_object(text):
    """Locate and parse the JSON object in a model reply.

    Prefers a ```json fenced block, then any fenced object, then the first
    top-level brace span.

    Raises:
        MalformedModelOutput: no JSON object can be located or parsed.
    """
    if not text:
        raise MalformedModelOutput("empty model output")

    candidates = []
    match = _JSON_FENCE.search(text)
    if match:
        candidates.append(match.group(1))
    match = _ANY_FENCE.search(text)
    if match:
        candidates.append(match.group(1))
    span = _first_object_span(text)
    if span:
        candidates.append(span)

    for candidate in candidates:
        try:
            parsed = json.loads(candidate)
        except json.JSONDecodeError:
            continue
        if isinstance(parsed, dict):
            return parsed

    raise MalformedModelOutput("no JSON object found in model output")


def _clamp_confidence(value):
    if isinstance(value, bool):
        return DEFAULT_CONFIDENCE
    if isinstance(value, str):
        try:
            value = float(value.strip())
        except ValueError:
            return DEFAULT_CONFIDENCE
    if not isinstance(value, (int, float)) or value != value:  # NaN
        return DEFAULT_CONFIDENCE
    return min(1.0, max(0.0, float(value)))


def _text(value, default=""):
    if isinstance(value, str):
        return value.strip() or default
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return str(value)
    return default


def _string_list(value):
    if not isinstance(value, list):
        return []
    return [item.strip() for item in value if isinstance(item, str) and item.strip()]


def _enum(enum_cls, value, default):
    try:
        return enum_cls(str(value).strip().lower())
    except ValueError:
        return default


def normalize_tool(entry):
    """A tool arrives as "sponge" or {"name": ..., "description": ...}."""
    if isinstance(entry, str):
        return ToolItem(name=entry.strip())
    if isinstance(entry, dict):
        return ToolItem(
            name=_text(entry.get("name")),
            description=_text(entry.get("description")),
        )
    return None


def normalize_material(entry):
    if isinstance(entry, str):
        return MaterialItem(item=entry.strip())
    if isinstance(entry, dict):
        return MaterialItem(
            item=_text(entry.get("item") or entry.get("name")),
            qty=_text(entry.get("qty")),
            description=_text(entry.get("description")),
            estimated_cost=_text(entry.get("estimatedCost")),
        )
    return None


def _normalize_items(value, normalize):
    if not isinstance(value, list):
        return []
    items = []
    for entry in value:
        item = normalize(entry)
        if item is not None:
            items.append(item)
    return items


def _normalize_questions(value):
    if not isinstance(value, list):
        return []
    questions = []
    for entry in value:
        if isinstance(entry, str):
            entry = {"question": entry}
        if not isinstance(entry, dict):
            continue
        question = _text(entry.get("question"))
        if not question:
            continue
        questions.append(ClarifyingQuestion(
            question=question,
            suggestions=_string_list(entry.get("suggestions")),
        ))
    return questions


def _normalize_damage(value):
    if not isinstance(value, dict):
        return DamageAssessment()
    return DamageAssessment(
        type=_text(value.get("type")),
        severity=_enum(DamageSeverity, value.get("severity"), DamageSeverity.MODERATE),
        affected_area=_text(value.get("affectedArea")),
    )


def normalize_result(parsed):
    """Build a fully populated AnalysisResult from a parsed JSON object."""
    confidence = _clamp_confidence(parsed.get("confidence"))
    # The model's flag can only add caution, never remove it.
    needs_more_info = parsed.get("needsMoreInfo") is True or confidence < CONFIDENCE_THRESHOLD

    summary = _text(parsed.get("summary"), DEFAULT_SUMMARY)
    common = {
        "needs_more_info": needs_more_info,
        "confidence": confidence,
        "confidence_level": confidence_level(confidence),
        "summary": summary,
    }

    if needs_more_info:
        return AnalysisResult(
            questions=_normalize_questions(parsed.get("questions")),
            **common,
        )

    return AnalysisResult(
        problem_short=_text(parsed.get("problemShort")),
        diy_friendly=_enum(DiyFriendly, parsed.get("diyFriendly"), DiyFriendly.MAYBE),
        difficulty=_enum(Difficulty, parsed.get("difficulty"), Difficulty.MEDIUM),
        estimated_time=_text(parsed.get("estimatedTime")),
        estimated_cost=_text(parsed.get("estimatedCost")),
        pro_estimate=_text(parsed.get("proEstimate")),
        damage=_normalize_damage(parsed.get("damage")),
        materials=_normalize_items(parsed.get("materials"), normalize_material),
        tools=_normalize_items(parsed.get("tools"), normalize_tool),
        steps=_string_list(parsed.get("steps")),
        cure_time_notes=_text(parsed.get("cureTimeNotes")),
        warnings=_string_list(parsed.get("warnings")),
        call_a_pro_if=_string_list(parsed.get("callAProIf")),
        youtube_search_query=_text(parsed.get("youtubeSearchQuery")),
        pro_type=_text(parsed.get("proType")),
        suggested_questions=_string_list(parsed.get("suggestedQuestions")),
        **common,
    )


def parse_analysis(text):
    """Raw model text to AnalysisResult. Raises MalformedModelOutput."""
    return normalize_result(extract_json_object(text))
