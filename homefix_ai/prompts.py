"""Prompt composer for the diagnostic engine.

Everything here is a pure function of its inputs: the same request always
renders to byte-identical text, which is what lets the engine be tested
against a canned fake instead of a live model.
"""

import math
from enum import Enum

from homefix_ai.generation import ImagePart, TextPart

MAX_ROUNDS = 3
QUESTIONS_PER_ROUND = 3
CONFIDENCE_THRESHOLD = 0.7
SKIPPED_ANSWER = "(skipped)"


class DiagnosticRound(int, Enum):
    ROUND_1 = 1
    ROUND_2 = 2
    ROUND_3_FINAL = 3


def round_number(history_length):
    """Round implied by how many Q&A pairs the caller has sent back."""
    return math.ceil(history_length / QUESTIONS_PER_ROUND) + 1


def diagnostic_round(history_length):
    """Map history length to a round state; anything past round 2 is final."""
    number = round_number(history_length)
    if number >= MAX_ROUNDS:
        return DiagnosticRound.ROUND_3_FINAL
    return DiagnosticRound(number)


SYSTEM_PROMPT = f"""You are an experienced home repair diagnostician helping a homeowner understand and fix a problem.

## How to work

1. Read everything you have: the description, any photos, the home profile and earlier answers.
2. Decide how confidently you can diagnose the problem.
3. If the diagnosis is unclear, ask 2-3 focused questions.
4. If the diagnosis is clear, give the full repair analysis.

## Confidence rubric

Confidence measures DIAGNOSTIC CLARITY: can you name the specific problem and its likely cause?
It does not measure how many questions have been answered.

HIGH (0.8-0.95): specific problem and likely cause identified, exact materials and steps known.
  e.g. "water dripping from the pipe connection under the sink" -> 0.85
MEDIUM (0.6-0.75): probable problem, general category known, specifics uncertain.
  e.g. "water under the sink, not sure where from" -> 0.65
LOW (0.3-0.5): several plausible causes, location or nature of the problem unclear.
  e.g. "water on my floor somewhere" -> 0.35

## Output

Reply with a single JSON object and nothing else.

If confidence is below {CONFIDENCE_THRESHOLD}:
{{
  "needsMoreInfo": true,
  "confidence": <0.0-1.0>,
  "summary": "Short assessment of what you know so far",
  "questions": [
    {{"question": "Question that narrows the diagnosis", "suggestions": ["Option 1", "Option 2", "Option 3"]}}
  ]
}}

Question rules:
- Ask 2-3 questions, each specific to THIS problem.
- Give each question 3-4 suggested answers.
- Focus on location, symptoms, timing and visible damage.

If confidence is {CONFIDENCE_THRESHOLD} or higher:
{{
  "needsMoreInfo": false,
  "confidence": <0.0-1.0>,
  "problemShort": "3-5 word problem name",
  "diyFriendly": "yes|maybe|no",
  "difficulty": "easy|medium|hard",
  "estimatedTime": "e.g. '30 min' or '1-2 hours'",
  "estimatedCost": "total materials cost range, e.g. '$20-35'",
  "proEstimate": "professional service cost range, e.g. '$150-300'",
  "summary": "1-2 sentences of detail",
  "damage": {{"type": "Type of damage", "severity": "minor|moderate|severe|critical", "affectedArea": "Where"}},
  "materials": [{{"item": "Material", "qty": "Amount", "description": "What it is for", "estimatedCost": "$X-Y"}}],
  "tools": [{{"name": "Tool", "description": "What it is used for"}}],
  "steps": ["Step 1", "Step 2", "Step 3"],
  "cureTimeNotes": "Drying or cure time, if any",
  "warnings": ["Safety warning"],
  "callAProIf": ["Situation that needs a professional"],
  "youtubeSearchQuery": "specific tutorial search query",
  "proType": "plumber, electrician, HVAC technician, roofer, handyman, general contractor, or empty",
  "suggestedQuestions": ["Follow-up question?", "Another one?"]
}}

## Formatting rules

- problemShort: at most 5 words, e.g. "Loose pipe fitting", "Cracked grout".
- diyFriendly: "yes" = safe and easy, "maybe" = doable but tricky, "no" = call a pro.
- difficulty: "easy" = basic tools and under an hour, "medium" = some skill, "hard" = experienced DIYers.
- estimatedTime: realistic, e.g. "15 min", "1-2 hours", "half day".
- estimatedCost: total for all materials at typical US store prices, always a range.
- proEstimate: labor plus materials, always a range. Simple repairs $100-200,
  medium repairs $200-400, complex repairs $400-800+.
- Give every material its own estimatedCost range.
- Use 2-5 materials, 2-4 tools and 3-7 steps. Use common store names for materials.
- youtubeSearchQuery: phrase it the way a person would search for this exact repair.
- proType: fill it in when diyFriendly is "maybe" or "no"; leave it "" for plain DIY work.
- suggestedQuestions: 2-3 short (under 10 words) follow-ups about THIS repair."""


_OBSERVATION_LABELS = [
    ("location", "Location"),
    ("water_exposure", "Water exposure"),
    ("getting_worse", "Getting worse"),
    ("surface_condition", "Loose or hollow surface"),
    ("repair_goal", "Repair goal"),
]

_PROFILE_NOTE = (
    "(Adapt the advice to this home: older houses may have galvanized pipes or lead paint, "
    "and materials like PEX or slab foundations change the right approach.)"
)


def build_observations_section(request):
    lines = []
    for field, label in _OBSERVATION_LABELS:
        value = getattr(request, field)
        if value.value != "unknown":
            lines.append(f"- {label}: {value.value}")
    if not lines:
        return ""
    return "OBSERVATIONS:\n" + "\n".join(lines) + "\n"


def build_profile_section(profile):
    """Render only the profile attributes that are present."""
    if profile is None:
        return ""

    lines = []
    if profile.home_type:
        lines.append(f"- Home Type: {profile.home_type}")
    if profile.year_built:
        lines.append(f"- Year Built: {profile.year_built}")
    if profile.pipe_type:
        lines.append(f"- Pipe Type: {profile.pipe_type}")
    if profile.water_heater_type:
        lines.append(f"- Water Heater: {profile.water_heater_type}")
    if profile.hvac_type:
        hvac = f"- HVAC: {profile.hvac_type}"
        if profile.hvac_age:
            hvac += f" ({profile.hvac_age} old)"
        lines.append(hvac)
    if profile.roof_type:
        roof = f"- Roof: {profile.roof_type}"
        if profile.roof_age:
            roof += f" ({profile.roof_age} old)"
        lines.append(roof)
    if profile.main_flooring:
        lines.append(f"- Main Flooring: {profile.main_flooring}")

    if not lines:
        return ""
    return "HOME PROFILE:\n" + "\n".join(lines) + "\n" + _PROFILE_NOTE + "\n"


def build_history_section(history):
    if not history:
        return ""
    pairs = [
        f"Q: {qa.question}\nA: {qa.answer.strip() or SKIPPED_ANSWER}"
        for qa in history
    ]
    return "PREVIOUS CONVERSATION:\n" + "\n\n".join(pairs) + "\n"


def build_round_instruction(history_length):
    """Pick the initial, continuation or final instruction for this round."""
    number = round_number(history_length)
    state = diagnostic_round(history_length)

    if state is DiagnosticRound.ROUND_3_FINAL:
        return (
            f"Round {number}/{MAX_ROUNDS} (final). Give your best full analysis now from "
            "everything above. Do NOT ask any more questions, even if your confidence is "
            "still low; report that confidence honestly."
        )
    if history_length > 0:
        return (
            f"Round {number}/{MAX_ROUNDS}. Re-read ALL of the information above, including "
            "the answers. Reassess your confidence by how clearly you can now identify the "
            "problem, not by the fact that questions were answered. Answers marked "
            f"{SKIPPED_ANSWER} add no information and must NOT raise your confidence. Vague "
            "or unhelpful answers leave confidence where it was; only answers that actually "
            "clarify the diagnosis should raise it."
        )
    return (
        f"Round 1/{MAX_ROUNDS}. Assess your diagnostic confidence. Can you identify the "
        "specific problem? If not, ask 2-3 questions that would let you diagnose it."
    )


def build_user_prompt(request, images_present):
    """Render the per-request context that follows the system instructions."""
    image_note = "(User provided photos)" if images_present else "(No photos provided)"
    sections = [
        f'USER\'S PROBLEM:\n"{request.description.strip()}"\n{image_note}\n',
        build_observations_section(request),
        build_profile_section(request.home_profile),
        build_history_section(request.conversation_history),
    ]
    body = "\n".join(section for section in sections if section)
    instruction = build_round_instruction(len(request.conversation_history))
    return (
        f"{body}\n---\n{instruction}\n\n"
        "Base your confidence on DIAGNOSTIC CLARITY: how well you can identify and fix the problem."
    )


def compose_prompt(request, images_present):
    """System instructions plus request context as a single prompt string."""
    return f"{SYSTEM_PROMPT}\n\n---\n\n{build_user_prompt(request, images_present)}"


def build_generation_parts(request, images):
    """Ordered parts for the generation port: system text, photos, context."""
    parts = [TextPart(SYSTEM_PROMPT)]
    parts.extend(ImagePart(data=img.data, mime_type=img.mime_type) for img in images)
    parts.append(TextPart(build_user_prompt(request, images_present=bool(images))))
    return parts
