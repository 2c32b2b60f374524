"""Agent command, routing and planning models."""

from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class AgentPlane(str, Enum):
    HETZNER = "hetzner"
    EIGEN = "eigen"


class AgentRisk(str, Enum):
    LOW = "low"
    HIGH = "high"


class ExecutionMode(str, Enum):
    ADVISOR = "advisor"
    DRAFT = "draft"
    EXECUTE = "execute"


class ExperienceMode(str, Enum):
    GUIDED = "guided"
    HANDS_OFF = "hands_off"


class SafetyLevel(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class AgentRoutingPlan(BaseModel):
    """Execution-plane decision for one inbound command. Immutable once built."""

    model_config = ConfigDict(frozen=True)

    normalized_text: str
    intent: str
    risk: AgentRisk
    require_attestation: bool
    cacheable: bool
    preferred: AgentPlane
    allow_fallback: bool
    fallbacks: List[AgentPlane]


class AgentPlaneUrls(BaseModel):
    hetzner: Optional[str] = None
    eigen: Optional[str] = None


class ActionPlan(BaseModel):
    id: str
    intent: str
    params: Dict[str, Any] = Field(default_factory=dict)
    dependencies: List[str] = Field(default_factory=list)
    risks: List[str] = Field(default_factory=list)
    outputs: List[str] = Field(default_factory=list)
    created_at: datetime
    expires_at: datetime
    confidence: float = Field(..., ge=0, le=1)


class PolicyDecision(BaseModel):
    allowed: bool
    reasons: List[str] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)


class SafetyAlert(BaseModel):
    level: SafetyLevel
    code: str
    message: str


class RecipientSnapshot(BaseModel):
    github_username: str
    percentage: float
    wallet: Optional[str] = None


class AssistedIntent(BaseModel):
    """Intent inferred from free-form text when no command pattern matched."""

    intent_name: str
    params: Dict[str, Any] = Field(default_factory=dict)
    confidence: float = Field(..., ge=0, le=1)
    outcomes: List[str] = Field(default_factory=list)
    rationale: str = ""
    source: str = "heuristic"


class AgentMessage(BaseModel):
    """Inbound chat command from the web, Farcaster or Twitter."""

    text: str = Field(..., max_length=5000)
    author: str = Field(default="anonymous", min_length=1, max_length=200)
    channel: str = "web"
    wallet_address: Optional[str] = None
    near_account_id: Optional[str] = None

    @field_validator("text", "author", mode="before")
    @classmethod
    def strip_text(cls, v: object) -> object:
        if isinstance(v, str):
            return v.strip()
        return v


class RouteRequest(BaseModel):
    text: str = Field(..., max_length=5000)


class RouteResponse(BaseModel):
    plan: AgentRoutingPlan
    planes: AgentPlaneUrls
    summary: str


class AssistResponse(BaseModel):
    suggestion: Optional[AssistedIntent] = None


class CommandResponse(BaseModel):
    response: str
    routing: AgentRoutingPlan
    event_id: Optional[str] = Field(None, description="Pass to 'replay <id>' to re-run this command")


class SafetyRequest(BaseModel):
    recipients: List[RecipientSnapshot] = Field(default_factory=list)
    override_text: str = ""


class SafetyResponse(BaseModel):
    alerts: List[SafetyAlert]
    blocked: bool
