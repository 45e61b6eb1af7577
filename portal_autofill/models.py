import json
import time
from dataclasses import dataclass, field, fields, is_dataclass
from enum import Enum
from typing import Any, Dict, List, Optional


# ========== ENUMS ==========
class PageKind(Enum):
    DRAFT = "draft"
    INTRODUCTION = "introduction"
    CONTENT = "content"
    CONFIRMATION = "confirmation"


class FieldKind(Enum):
    TEXT = "text"
    EMAIL = "email"
    TEL = "tel"
    NUMBER = "number"
    DATE = "date"
    URL = "url"
    PASSWORD = "password"
    SELECT = "select"
    CHECKBOX = "checkbox"
    RADIO = "radio"
    FILE = "file"
    TEXTAREA = "textarea"


TEXT_LIKE_KINDS = {FieldKind.TEXT, FieldKind.EMAIL, FieldKind.TEL, FieldKind.URL,
                   FieldKind.PASSWORD, FieldKind.TEXTAREA}


# ========== DATA CLASSES ==========
@dataclass
class PageClassification:
    step_count: int = 1
    current_step_index: int = 1
    page_kind: PageKind = PageKind.CONTENT
    detection_confidence: int = 0
    detection_method: str = "fallback"
    step_titles: List[str] = field(default_factory=list)


@dataclass
class SectionDescriptor:
    title: str
    is_open: bool
    is_closed: bool
    container_selector: str
    has_nested_sections: bool = False
    header: Any = field(default=None, repr=False, compare=False)


@dataclass
class TabDescriptor:
    """One tab of a tabbed sub-panel group; `pane_selector` addresses its content pane."""
    title: str
    pane_selector: str
    is_active: bool
    control: Any = field(default=None, repr=False, compare=False)


@dataclass
class OptionDescriptor:
    value: str
    text: str
    selected: bool = False
    disabled: bool = False


@dataclass
class FieldDescriptor:
    kind: FieldKind
    label: str
    required: bool
    identity: str
    name: str = ""
    element_id: str = ""
    placeholder: str = ""
    metadata: Dict[str, str] = field(default_factory=dict)
    input_mask: str = ""
    css_class: str = ""
    options: List[OptionDescriptor] = field(default_factory=list)
    is_multiple: bool = False


@dataclass
class CompletionRecord:
    label: str
    kind: FieldKind
    assigned_value: Optional[str]
    completed: bool
    required: bool
    failure_reason: Optional[str] = None


@dataclass
class StepResult:
    index: int
    title: str
    page_kind: PageKind = PageKind.CONTENT
    fields_found: int = 0
    fields_completed: int = 0
    elapsed_time: float = 0.0
    records: List[CompletionRecord] = field(default_factory=list)


@dataclass
class ConfirmationCounters:
    correct: int = 0
    incorrect: int = 0
    format_incorrect: int = 0
    success_rate: float = 0.0


@dataclass
class RunTotals:
    fields_found: int = 0
    fields_completed: int = 0
    required_incomplete: int = 0
    success_rate: float = 0.0
    fields_per_second: float = 0.0
    average_step_seconds: float = 0.0


@dataclass
class RunResult:
    succeeded: bool
    start_url: str = ""
    message: str = ""
    steps: List[StepResult] = field(default_factory=list)
    totals: RunTotals = field(default_factory=RunTotals)
    errors: List[str] = field(default_factory=list)
    confirmation: Optional[ConfirmationCounters] = None
    elapsed_seconds: float = 0.0
    timestamp: float = field(default_factory=time.time)

    def to_dict(self) -> Dict[str, Any]:
        return _to_plain(self)

    def to_json(self, indent: int = 2) -> str:
        return json.dumps(self.to_dict(), indent=indent, ensure_ascii=False)


def _to_plain(obj: Any) -> Any:
    if isinstance(obj, Enum):
        return obj.value
    if is_dataclass(obj) and not isinstance(obj, type):
        plain = {}
        for f in fields(obj):
            if not f.repr:
                continue
            plain[f.name] = _to_plain(getattr(obj, f.name))
        return plain
    if isinstance(obj, (list, tuple)):
        return [_to_plain(item) for item in obj]
    if isinstance(obj, dict):
        return {str(k): _to_plain(v) for k, v in obj.items()}
    return obj
