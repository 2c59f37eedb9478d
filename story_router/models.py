"""Request, response and capability types shared across the router."""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple


class ProviderType(str, Enum):
    COWRITER = "cowriter"
    LOCAL = "local"
    CLOUD = "cloud"


class ProviderStatus(str, Enum):
    UNINITIALIZED = "uninitialized"
    READY = "ready"
    UNAVAILABLE = "unavailable"
    SHUTDOWN = "shutdown"


class RequestType(str, Enum):
    OUTLINE = "outline"
    CHARACTER_ANALYSIS = "character_analysis"
    SCENE_STRUCTURE = "scene_structure"
    PROSE_GENERATION = "prose_generation"
    DIALOGUE_GENERATION = "dialogue_generation"
    STORY_ANALYSIS = "story_analysis"
    PLOT_HOLE_DETECTION = "plot_hole_detection"
    PACING_ANALYSIS = "pacing_analysis"
    CONSISTENCY_CHECK = "consistency_check"
    MANUSCRIPT_ANALYSIS = "manuscript_analysis"
    RESEARCH = "research"
    BRAINSTORMING = "brainstorming"


# Request types the co-writer model was built for.
CORE_CREATIVE_TYPES = frozenset(
    {
        RequestType.OUTLINE,
        RequestType.CHARACTER_ANALYSIS,
        RequestType.SCENE_STRUCTURE,
        RequestType.STORY_ANALYSIS,
        RequestType.PLOT_HOLE_DETECTION,
        RequestType.PACING_ANALYSIS,
        RequestType.MANUSCRIPT_ANALYSIS,
        RequestType.CONSISTENCY_CHECK,
    }
)

# Accepted capability names per request type; a provider matches if it declares any of them.
REQUIRED_CAPABILITIES: Dict[RequestType, Tuple[str, ...]] = {
    RequestType.OUTLINE: ("outline_generation",),
    RequestType.CHARACTER_ANALYSIS: ("character_analysis",),
    RequestType.SCENE_STRUCTURE: ("scene_structure",),
    RequestType.PROSE_GENERATION: ("text_generation",),
    RequestType.DIALOGUE_GENERATION: ("dialogue_generation", "text_generation"),
    RequestType.STORY_ANALYSIS: ("story_analysis",),
    RequestType.PLOT_HOLE_DETECTION: ("plot_hole_detection",),
    RequestType.PACING_ANALYSIS: ("pacing_analysis",),
    RequestType.CONSISTENCY_CHECK: ("consistency_check", "story_analysis"),
    RequestType.MANUSCRIPT_ANALYSIS: ("manuscript_analysis",),
    RequestType.RESEARCH: ("research", "text_generation"),
    RequestType.BRAINSTORMING: ("brainstorming", "text_generation"),
}

ANALYSIS_TYPES = frozenset(
    {
        RequestType.STORY_ANALYSIS,
        RequestType.PLOT_HOLE_DETECTION,
        RequestType.PACING_ANALYSIS,
        RequestType.CONSISTENCY_CHECK,
        RequestType.MANUSCRIPT_ANALYSIS,
    }
)


@dataclass(frozen=True)
class Capability:
    name: str
    description: str = ""
    input_types: Tuple[str, ...] = ()
    output_types: Tuple[str, ...] = ()
    offline: bool = False


@dataclass
class ProviderMetadata:
    author: str = ""
    description: str = ""
    supported_languages: List[str] = field(default_factory=lambda: ["en"])
    requirements: Dict[str, Any] = field(default_factory=dict)
    specialized_genres: List[str] = field(default_factory=list)


@dataclass
class StoryContext:
    characters: List[Any] = field(default_factory=list)
    genre: List[str] = field(default_factory=list)
    target_audience: str = ""
    story_id: Optional[str] = None
    current_chapter: Optional[str] = None
    current_scene: Optional[str] = None
    previous_context: Optional[str] = None


@dataclass
class RequestOptions:
    preferred_provider: Optional[str] = None
    max_tokens: Optional[int] = None
    temperature: Optional[float] = None
    require_offline: bool = False


@dataclass
class RoutingRequest:
    type: RequestType
    content: str
    context: StoryContext = field(default_factory=StoryContext)
    options: RequestOptions = field(default_factory=RequestOptions)

    def __post_init__(self) -> None:
        # Accept plain strings from callers such as the Discord commands.
        self.type = RequestType(self.type)


@dataclass
class ResponseMetadata:
    model: str
    provider: str
    tokens_used: int = 0
    response_time: float = 0.0
    rationale: List[str] = field(default_factory=list)


@dataclass
class Response:
    content: str
    confidence: float
    metadata: ResponseMetadata
    data: Optional[Dict[str, Any]] = None


@dataclass
class HealthStatus:
    healthy: bool
    response_time: float
    details: Optional[str] = None


@dataclass
class Recommendation:
    request_type: RequestType
    recommended: List[str]
    alternatives: List[str]
    reasons: Dict[str, List[str]]
    scores: Dict[str, float]
