"""Pydantic request/response models for the repair API.

Field names are snake_case in Python and camelCase on the wire.
"""

from datetime import datetime, timezone
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


def utc_timestamp() -> str:
    return datetime.now(timezone.utc).isoformat()


# --- Request side ---

class Location(str, Enum):
    INDOOR = "indoor"
    OUTDOOR = "outdoor"
    UNKNOWN = "unknown"


class WaterExposure(str, Enum):
    NONE = "none"
    OCCASIONALLY = "occasionally"
    FREQUENTLY = "frequently"
    SUBMERGED = "submerged"
    UNKNOWN = "unknown"


class YesNoUnknown(str, Enum):
    YES = "yes"
    NO = "no"
    UNKNOWN = "unknown"


class RepairGoal(str, Enum):
    TEMPORARY = "temporary"
    PERMANENT = "permanent"
    COSMETIC = "cosmetic"
    UNKNOWN = "unknown"


class QuestionAnswer(CamelModel):
    """One answered (or skipped) clarifying question."""
    model_config = ConfigDict(frozen=True)

    question: str
    answer: str = ""

    @field_validator("answer", mode="before")
    @classmethod
    def _none_is_skipped(cls, v):
        return "" if v is None else v


class HomeProfile(CamelModel):
    """Sparse home attributes, used only to enrich prompt text."""
    model_config = ConfigDict(frozen=True, extra="ignore")

    home_type: str | None = None
    year_built: str | None = None
    pipe_type: str | None = None
    water_heater_type: str | None = None
    hvac_type: str | None = None
    hvac_age: str | None = None
    roof_type: str | None = None
    roof_age: str | None = None
    main_flooring: str | None = None

    @field_validator("*", mode="before")
    @classmethod
    def _stringify(cls, v):
        # yearBuilt arrives as a number from some clients
        if isinstance(v, (int, float)) and not isinstance(v, bool):
            return str(v)
        return v


class DiagnosticRequest(CamelModel):
    """Everything the caller knows about the problem, rebuilt every round."""
    model_config = ConfigDict(frozen=True, extra="ignore")

    description: str
    location: Location = Location.UNKNOWN
    water_exposure: WaterExposure = WaterExposure.UNKNOWN
    getting_worse: YesNoUnknown = YesNoUnknown.UNKNOWN
    surface_condition: YesNoUnknown = YesNoUnknown.UNKNOWN
    repair_goal: RepairGoal = RepairGoal.UNKNOWN
    home_profile: HomeProfile | None = None
    conversation_history: list[QuestionAnswer] = Field(default_factory=list)

    @model_validator(mode="before")
    @classmethod
    def _accept_legacy_answers(cls, data):
        if isinstance(data, dict) and not data.get("conversationHistory") \
                and not data.get("conversation_history") and data.get("previousAnswers"):
            data = dict(data)
            data["conversationHistory"] = data.pop("previousAnswers")
        return data

    @field_validator("description")
    @classmethod
    def _description_required(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("Description is required")
        return v


# --- Analysis result ---

class ConfidenceLevel(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class DiyFriendly(str, Enum):
    YES = "yes"
    MAYBE = "maybe"
    NO = "no"


class Difficulty(str, Enum):
    EASY = "easy"
    MEDIUM = "medium"
    HARD = "hard"


class DamageSeverity(str, Enum):
    MINOR = "minor"
    MODERATE = "moderate"
    SEVERE = "severe"
    CRITICAL = "critical"


class ClarifyingQuestion(CamelModel):
    question: str
    suggestions: list[str] = Field(default_factory=list)


class MaterialItem(CamelModel):
    item: str = ""
    qty: str = ""
    description: str = ""
    estimated_cost: str = ""


class ToolItem(CamelModel):
    name: str = ""
    description: str = ""


class DamageAssessment(CamelModel):
    type: str = ""
    severity: DamageSeverity = DamageSeverity.MODERATE
    affected_area: str = ""


class AnalysisResult(CamelModel):
    """Either a set of clarifying questions or a full repair plan."""

    needs_more_info: bool
    questions: list[ClarifyingQuestion] = Field(default_factory=list)

    summary: str = ""
    confidence: float = Field(ge=0.0, le=1.0)
    confidence_level: ConfidenceLevel

    problem_short: str = ""
    diy_friendly: DiyFriendly = DiyFriendly.MAYBE
    difficulty: Difficulty = Difficulty.MEDIUM
    estimated_time: str = ""
    estimated_cost: str = ""
    pro_estimate: str = ""

    damage: DamageAssessment = Field(default_factory=DamageAssessment)
    materials: list[MaterialItem] = Field(default_factory=list)
    tools: list[ToolItem] = Field(default_factory=list)
    steps: list[str] = Field(default_factory=list)
    cure_time_notes: str = ""
    warnings: list[str] = Field(default_factory=list)
    call_a_pro_if: list[str] = Field(default_factory=list)
    youtube_search_query: str = ""
    pro_type: str = ""
    suggested_questions: list[str] = Field(default_factory=list)


# --- Chat ---

class ChatRole(str, Enum):
    USER = "user"
    ASSISTANT = "assistant"


class ChatMessage(CamelModel):
    role: ChatRole
    content: str


class AnalysisContext(CamelModel):
    """Condensed view of a finished analysis, flattened to text lists."""
    problem_short: str = ""
    summary: str = ""
    materials: list[str] = Field(default_factory=list)
    tools: list[str] = Field(default_factory=list)
    steps: list[str] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)


class ChatRequest(CamelModel):
    """Request body for POST /chat."""
    original_description: str = ""
    analysis_context: AnalysisContext = Field(default_factory=AnalysisContext)
    conversation_history: list[ChatMessage] = Field(default_factory=list)
    new_message: str = ""


# --- Envelopes ---

class AnalyzeResponse(CamelModel):
    """Response body for POST /analyze."""
    success: bool = True
    data: AnalysisResult
    timestamp: str = Field(default_factory=utc_timestamp)


class ChatResponse(CamelModel):
    """Response body for POST /chat."""
    success: bool = True
    response: str
    timestamp: str = Field(default_factory=utc_timestamp)


class ErrorResponse(CamelModel):
    """Tagged failure envelope returned by every endpoint."""
    success: bool = False
    error: str
    timestamp: str = Field(default_factory=utc_timestamp)


class HealthResponse(CamelModel):
    """Response body for GET /health."""
    status: str
    version: str
    llm_provider: str = ""
    llm_model: str = ""
    timestamp: str = Field(default_factory=utc_timestamp)
