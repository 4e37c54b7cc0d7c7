from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Literal, Optional, Type

from pydantic import BaseModel, Field

from .errors import ErrorKind

CompletionType = Literal["complete", "update"]
Decision = Literal["accepted", "rejected"]


class ReplacementBlock(BaseModel):
    """A line-oriented find/replace edit returned by the model."""
    find: List[str] = Field(description="Lines of the current file to replace, copied exactly")
    replace: List[str] = Field(description="Lines to put in place of the found lines")

    @property
    def find_text(self) -> str:
        return "\n".join(self.find)

    @property
    def replace_text(self) -> str:
        return "\n".join(self.replace)


class CodeChanges(BaseModel):
    """Pydantic model for the structured response of a code generation request."""
    changes: List[ReplacementBlock] = Field(description="Ordered list of edits to apply to the file")


@dataclass
class InsertionRequest:
    prompt: str
    file_path: str
    file_content: str
    line_index: int = 0


@dataclass
class InsertionResponse:
    new_code: str
    old_code: str
    file_path: str
    file_content: str
    decision: Decision
    acceptance_line: str
    # Exact text from the pending-open token through the acceptance marker.
    span: str = ""


@dataclass
class PromptContext:
    file_path: str
    file_content: str
    language: str
    marker_line_index: int
    completion_type: CompletionType = "update"
    excerpt: Optional[str] = None

    @property
    def code(self) -> str:
        return self.excerpt if self.excerpt else self.file_content


@dataclass
class PlatformSettings:
    """Credentials and options for one provider, as stored in the global config."""
    name: str
    api_key: Optional[str] = None
    org_id: Optional[str] = None
    base_url: Optional[str] = None
    model: Optional[str] = None
    is_active: bool = False

    def to_json(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"isActive": self.is_active}
        if self.api_key:
            data["apiKey"] = self.api_key
        if self.org_id:
            data["orgId"] = self.org_id
        if self.base_url:
            data["baseUrl"] = self.base_url
        if self.model:
            data["model"] = self.model
        return data

    @classmethod
    def from_json(cls, name: str, data: Dict[str, Any]) -> "PlatformSettings":
        return cls(
            name=name,
            api_key=data.get("apiKey") or None,
            org_id=data.get("orgId") or None,
            base_url=data.get("baseUrl") or None,
            model=data.get("model") or None,
            is_active=bool(data.get("isActive", False)),
        )


@dataclass
class ProviderRequest:
    """Provider-agnostic request envelope handed to a completion provider."""
    platform: str
    model: str
    messages: List[Dict[str, str]]
    temperature: float
    max_tokens: int
    structured_output: bool = False
    response_format: Optional[Type[BaseModel]] = None
    api_key: Optional[str] = None
    api_base: Optional[str] = None
    organization: Optional[str] = None

    def completion_kwargs(self) -> Dict[str, Any]:
        kwargs: Dict[str, Any] = {
            "model": self.model,
            "messages": self.messages,
            "temperature": self.temperature,
            "max_tokens": self.max_tokens,
        }
        if self.api_key:
            kwargs["api_key"] = self.api_key
        if self.api_base:
            kwargs["api_base"] = self.api_base
        if self.organization:
            kwargs["organization"] = self.organization
        if self.response_format is not None:
            kwargs["response_format"] = self.response_format
        return kwargs


@dataclass
class PatchReport:
    file_path: str
    applied: int = 0
    skipped: List[ReplacementBlock] = field(default_factory=list)
    written: bool = False

    @property
    def total(self) -> int:
        return self.applied + len(self.skipped)


@dataclass
class MarkerOutcome:
    kind: str
    line_index: int
    ok: bool
    error_kind: Optional[ErrorKind] = None
    message: str = ""


@dataclass
class PassReport:
    """Outcome of one orchestrator pass over a file."""
    file_path: str
    outcomes: List[MarkerOutcome] = field(default_factory=list)

    def add(self, outcome: MarkerOutcome) -> None:
        self.outcomes.append(outcome)

    @property
    def ok(self) -> bool:
        return all(outcome.ok for outcome in self.outcomes)

    def errors(self, kind: Optional[ErrorKind] = None) -> List[MarkerOutcome]:
        return [
            o for o in self.outcomes
            if not o.ok and (kind is None or o.error_kind is kind)
        ]
