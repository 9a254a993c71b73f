"""
Domain models -- the request going in, the analysis coming out.

AnalysisRequest is an immutable dataclass built by the caller at submission
time. AnalysisResult is a pydantic model because it mirrors the JSON contract
the model is asked to produce (camelCase wire names) and round-trips through
the history store.

The pydantic model is lenient beyond the validator baseline in
llm/validation.py: malformed risk entries are dropped rather than failing the
whole analysis.
"""

import uuid
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING, Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .config import DEFAULT_MAX_RETRIES, DEFAULT_MODEL, DEFAULT_TIMEOUT_MS

if TYPE_CHECKING:
    from .llm.cancellation import CancelToken


# =============================================================================
# REQUEST
# =============================================================================


@dataclass(frozen=True)
class AnalysisRequest:
    """One submission to the pipeline. Never mutated after construction."""

    text: str
    model: str = DEFAULT_MODEL
    max_retries: int = DEFAULT_MAX_RETRIES
    timeout_ms: int = DEFAULT_TIMEOUT_MS
    cancel_token: "CancelToken | None" = field(default=None, compare=False, repr=False)

    def __post_init__(self):
        if self.max_retries < 0:
            raise ValueError(f"max_retries must be non-negative (got {self.max_retries})")
        if self.timeout_ms <= 0:
            raise ValueError(f"timeout_ms must be positive (got {self.timeout_ms})")

    @property
    def timeout_seconds(self) -> float:
        return self.timeout_ms / 1000


# =============================================================================
# RESULT
# =============================================================================


class Verdict(str, Enum):
    """Overall readiness of a message to be sent."""

    GOOD_TO_SEND = "good_to_send"
    NEEDS_EDIT = "needs_edit"
    HIGH_RISK = "high_risk"


class Risk(BaseModel):
    """A phrase likely to be misread, with the reason."""

    model_config = ConfigDict(extra="allow")

    text: str = ""
    issue: str = ""
    why: str = ""

    @field_validator("text", "issue", "why", mode="before")
    @classmethod
    def _coerce_str(cls, value: Any) -> str:
        return "" if value is None else str(value)


class Rewrites(BaseModel):
    """Full alternative phrasings in the three fixed styles."""

    short: str
    warm: str
    confident: str


class AnalysisMeta(BaseModel):
    model: str
    timestamp: str = Field(default_factory=lambda: datetime.now().isoformat())
    original_length: int = Field(0, alias="originalLength")

    model_config = ConfigDict(populate_by_name=True, protected_namespaces=())


class AnalysisResult(BaseModel):
    """Validated critique of one message."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    verdict: Verdict
    verdict_reason: str = Field("", alias="verdictReason")
    risks: list[Risk] = Field(default_factory=list)
    missing: list[str] = Field(default_factory=list)
    rewrites: Rewrites
    suggested_opener: str | None = Field(None, alias="suggestedOpener")
    meta: AnalysisMeta | None = Field(None, alias="_meta")

    @field_validator("risks", mode="before")
    @classmethod
    def _keep_object_risks(cls, value: Any) -> list:
        if not isinstance(value, list):
            return []
        return [item for item in value if isinstance(item, dict)]

    @field_validator("missing", mode="before")
    @classmethod
    def _coerce_missing(cls, value: Any) -> list:
        if not isinstance(value, list):
            return []
        return [str(item) for item in value if item is not None]

    @field_validator("verdict_reason", mode="before")
    @classmethod
    def _coerce_reason(cls, value: Any) -> str:
        return "" if value is None else str(value)

    @field_validator("suggested_opener", mode="before")
    @classmethod
    def _coerce_opener(cls, value: Any) -> str | None:
        if value is None or value == "":
            return None
        return str(value)

    @classmethod
    def from_payload(
        cls, payload: dict[str, Any], model: str, original_length: int
    ) -> "AnalysisResult":
        """Build a result from a validated model payload and attach metadata."""
        data = {k: v for k, v in payload.items() if k != "_meta"}
        data["_meta"] = AnalysisMeta(model=model, original_length=original_length)
        return cls.model_validate(data)

    def to_wire(self) -> dict[str, Any]:
        """Serialize with the camelCase names the model produced."""
        return self.model_dump(mode="json", by_alias=True)


# =============================================================================
# HISTORY
# =============================================================================


@dataclass
class HistoryEntry:
    """One completed analysis, as kept by the history store."""

    original_message: str
    result: AnalysisResult
    model: str
    id: str = field(default_factory=lambda: str(uuid.uuid4())[:12])
    timestamp: str = field(default_factory=lambda: datetime.now().isoformat())
