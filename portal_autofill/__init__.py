"""
Portal Autofill - adaptive traversal and completion of multi-step
application forms. Never submits the form.
"""

from .cache import CachedStructure, JsonStructureCache, StructureCache
from .driver import PageDriver, PlaywrightDriver
from .errors import (
    AutofillError, DetectionAmbiguous, FieldUnresolved, InteractionFailed,
    NavigationStalled, SessionLost,
)
from .models import FieldKind, PageKind, RunResult
from .navigator import StepNavigator
from .values import KeywordValueResolver, ValueResolver

__version__ = "0.3.0"

__all__ = [
    "AutofillError", "CachedStructure", "DetectionAmbiguous", "FieldKind", "FieldUnresolved",
    "InteractionFailed", "JsonStructureCache", "KeywordValueResolver", "NavigationStalled",
    "PageDriver", "PageKind", "PlaywrightDriver", "RunResult", "SessionLost", "StepNavigator",
    "StructureCache", "ValueResolver",
]
