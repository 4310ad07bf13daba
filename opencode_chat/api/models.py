"""Pydantic models for OpenCode server payloads.

Decoding is lenient: missing fields take their defaults, unknown fields are
ignored and a field holding a value of the wrong JSON type falls back to its
default instead of failing the whole object.
"""

from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import Field, field_validator

from opencode_chat.api.base import WireModel
from opencode_chat.api.parts import Part, decode_part


# ---------------------------------------------------------------------------
# Server / project
# ---------------------------------------------------------------------------


class HealthResponse(WireModel):
    healthy: bool = False
    version: str = ""


class Icon(WireModel):
    url: Optional[str] = None
    override: Optional[str] = None
    color: Optional[str] = None


class Commands(WireModel):
    start: Optional[str] = None


class ProjectTime(WireModel):
    created: int = 0
    updated: int = 0
    initialized: Optional[int] = None


class Project(WireModel):
    id: str = ""
    worktree: str = ""
    vcs: str = ""
    name: Optional[str] = None
    icon: Optional[Icon] = None
    commands: Optional[Commands] = None
    time: ProjectTime = Field(default_factory=ProjectTime)
    sandboxes: List[str] = Field(default_factory=list)


class PathInfo(WireModel):
    home: str = ""
    state: str = ""
    config: str = ""
    worktree: str = ""
    directory: str = ""


# ---------------------------------------------------------------------------
# Sessions
# ---------------------------------------------------------------------------


class DiffLine(WireModel):
    prefix: Optional[str] = None
    content: Optional[str] = None


class DiffHunk(WireModel):
    header: Optional[str] = None
    lines: Optional[List[DiffLine]] = None


class FileDiff(WireModel):
    path: Optional[str] = None
    hunks: Optional[List[DiffHunk]] = None


class SessionSummary(WireModel):
    additions: int = 0
    deletions: int = 0
    files: int = 0
    diffs: Optional[List[FileDiff]] = None


class Share(WireModel):
    url: str = ""


class SessionTime(WireModel):
    created: int = 0
    updated: int = 0
    compacting: Optional[int] = None
    archived: Optional[int] = None


class PermissionRule(WireModel):
    id: Optional[str] = None
    rule: Optional[str] = None
    description: Optional[str] = None


class RevertInfo(WireModel):
    message_id: Optional[str] = Field(default=None, alias="messageID")
    part_id: Optional[str] = Field(default=None, alias="partID")
    snapshot: Optional[str] = None
    diff: Optional[str] = None


class Session(WireModel):
    """A conversation thread. Server-authoritative; never mutated locally."""

    id: str = ""
    slug: str = ""
    project_id: Optional[str] = Field(default=None, alias="projectID")
    directory: Optional[str] = None
    parent_id: Optional[str] = Field(default=None, alias="parentID")
    summary: Optional[SessionSummary] = None
    share: Optional[Share] = None
    title: Optional[str] = None
    version: str = ""
    time: SessionTime = Field(default_factory=SessionTime)
    permission: Optional[List[PermissionRule]] = None
    revert: Optional[RevertInfo] = None

    @property
    def created(self) -> int:
        return self.time.created

    @property
    def updated(self) -> int:
        return self.time.updated

    @property
    def display_title(self) -> str:
        return (self.title or "").strip() or self.slug.strip() or "Untitled session"

    @property
    def change_summary(self) -> str:
        s = self.summary or SessionSummary()
        return f"+{s.additions} -{s.deletions} ({s.files} files)"


# ---------------------------------------------------------------------------
# Messages
# ---------------------------------------------------------------------------


class MessageRole(str, Enum):
    USER = "user"
    ASSISTANT = "assistant"


class ModelRef(WireModel):
    """Provider/model pair a message was produced with."""

    provider_id: Optional[str] = Field(default=None, alias="providerID")
    model_id: Optional[str] = Field(default=None, alias="modelID")


class MessageTime(WireModel):
    start: int = 0
    end: Optional[int] = None


class MessageInfo(WireModel):
    id: Optional[str] = None
    session_id: Optional[str] = Field(default=None, alias="sessionID")
    # Kept as the raw string: roles other than user/assistant must still decode
    role: Optional[str] = None
    variant: Optional[str] = None
    model: Optional[ModelRef] = None
    time: Optional[MessageTime] = None

    @property
    def is_user(self) -> bool:
        return self.role == MessageRole.USER.value

    @property
    def is_assistant(self) -> bool:
        return self.role == MessageRole.ASSISTANT.value


class ChatMessage(WireModel):
    info: MessageInfo = Field(default_factory=MessageInfo)
    parts: List[Part] = Field(default_factory=list)

    @field_validator("parts", mode="before")
    @classmethod
    def _decode_parts(cls, value: Any) -> Any:
        if not isinstance(value, list):
            return []
        return [decode_part(item) for item in value if isinstance(item, dict)]


# ---------------------------------------------------------------------------
# Providers and models
# ---------------------------------------------------------------------------


class ModelApi(WireModel):
    id: Optional[str] = None
    url: Optional[str] = None
    npm: Optional[str] = None


class Modalities(WireModel):
    input: Optional[List[str]] = None
    output: Optional[List[str]] = None


class InputOutput(WireModel):
    text: Optional[bool] = None
    audio: Optional[bool] = None
    image: Optional[bool] = None
    video: Optional[bool] = None
    pdf: Optional[bool] = None


class Capabilities(WireModel):
    temperature: Optional[bool] = None
    reasoning: Optional[bool] = None
    attachment: Optional[bool] = None
    toolcall: Optional[bool] = None
    input: Optional[InputOutput] = None
    output: Optional[InputOutput] = None
    interleaved: Any = None


class CacheCost(WireModel):
    read: Optional[float] = None
    write: Optional[float] = None


class Cost(WireModel):
    input: Optional[float] = None
    output: Optional[float] = None
    cache: Optional[CacheCost] = None


class Limit(WireModel):
    context: Optional[int] = None
    input: Optional[int] = None
    output: Optional[int] = None


class ModelProvider(WireModel):
    npm: Optional[str] = None
    api: Optional[str] = None


class Model(WireModel):
    id: str = ""
    provider_id: Optional[str] = Field(default=None, alias="providerID")
    api: Optional[ModelApi] = None
    name: Optional[str] = None
    family: Optional[str] = None
    capabilities: Optional[Capabilities] = None
    cost: Optional[Cost] = None
    release_date: Optional[str] = None
    attachment: Optional[bool] = None
    reasoning: Optional[bool] = None
    temperature: Optional[bool] = None
    tool_call: Optional[bool] = None
    limit: Optional[Limit] = None
    modalities: Optional[Modalities] = None
    experimental: Optional[bool] = None
    status: Optional[str] = None
    options: Optional[Dict[str, Any]] = None
    headers: Optional[Dict[str, str]] = None
    provider: Optional[ModelProvider] = None
    variants: Optional[Dict[str, Dict[str, Any]]] = None

    @property
    def display_name(self) -> str:
        return (self.name or "").strip() or self.id

    def _flag(self, top_level: Optional[bool], capability: str) -> bool:
        if top_level:
            return True
        caps = self.capabilities
        return bool(caps is not None and getattr(caps, capability))

    @property
    def supports_reasoning(self) -> bool:
        return self._flag(self.reasoning, "reasoning")

    @property
    def supports_tool_call(self) -> bool:
        return self._flag(self.tool_call, "toolcall")

    @property
    def supports_attachment(self) -> bool:
        return self._flag(self.attachment, "attachment")

    @property
    def supports_temperature(self) -> bool:
        return self._flag(self.temperature, "temperature")


class Provider(WireModel):
    id: str = ""
    name: str = ""
    source: str = ""
    env: List[str] = Field(default_factory=list)
    key: Optional[str] = None
    options: Dict[str, Any] = Field(default_factory=dict)
    models: Dict[str, Model] = Field(default_factory=dict)

    @field_validator("models", mode="before")
    @classmethod
    def _decode_models(cls, value: Any) -> Any:
        # The map key is the model id, whatever the nested object says
        if not isinstance(value, dict):
            return {}
        models = {}
        for key, raw in value.items():
            if not isinstance(raw, dict):
                continue
            models[key] = Model.decode({**raw, "id": key})
        return models

    @property
    def display_name(self) -> str:
        return self.name.strip() or self.id


class ProvidersResponse(WireModel):
    all: List[Provider] = Field(default_factory=list)
    default: Dict[str, str] = Field(default_factory=dict)
    connected: List[str] = Field(default_factory=list)

    @field_validator("default", mode="before")
    @classmethod
    def _stringify_default(cls, value: Any) -> Any:
        if not isinstance(value, dict):
            return {}
        return {str(k): str(v) for k, v in value.items() if v is not None}

    def get_provider(self, provider_id: str) -> Optional[Provider]:
        for provider in self.all:
            if provider.id == provider_id:
                return provider
        return None

    def find_model(self, provider_id: str, model_id: str) -> Optional[Model]:
        provider = self.get_provider(provider_id)
        if provider is None:
            return None
        return provider.models.get(model_id)
