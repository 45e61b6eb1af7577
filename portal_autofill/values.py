import json
import logging
import unicodedata
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Dict, List, Optional, Tuple, Union

from .models import FieldDescriptor

logger = logging.getLogger(__name__)


def normalize_text(text: str) -> str:
    """Lowercases and strips accents so 'Teléfono' matches 'telefono'."""
    decomposed = unicodedata.normalize("NFKD", text or "")
    return "".join(ch for ch in decomposed if not unicodedata.combining(ch)).lower().strip()


class ValueResolver(ABC):
    @abstractmethod
    def resolve(self, descriptor: FieldDescriptor) -> Optional[str]:
        """Returns the value for a field, or None when nothing fits."""


class KeywordValueResolver(ValueResolver):
    """Ordered keyword table: the first keyword found in the field context wins.

    The context is the label, placeholder, metadata attributes and name/id of
    the field. `kind_defaults` answers when no keyword matched.
    """

    def __init__(self, table: Union[Dict[str, str], List[Tuple[str, str]]],
                 kind_defaults: Optional[Dict[str, str]] = None):
        entries = table.items() if isinstance(table, dict) else table
        self.entries = [(normalize_text(keyword), str(value)) for keyword, value in entries if keyword]
        self.kind_defaults = {k.lower(): str(v) for k, v in (kind_defaults or {}).items()}

    @classmethod
    def from_json(cls, path: Union[str, Path]) -> "KeywordValueResolver":
        values_file = Path(path)
        with open(values_file, 'r', encoding='utf-8') as f:
            data = json.load(f)
        if "keywords" in data or "defaults" in data:
            table = data.get("keywords", {})
            defaults = data.get("defaults", {})
        else:
            table, defaults = data, {}
        logger.info(f"Loaded {len(table)} value keywords from {values_file}")
        return cls(table, defaults)

    def _context(self, descriptor: FieldDescriptor) -> str:
        parts = [descriptor.label, descriptor.placeholder, descriptor.name, descriptor.element_id]
        parts.extend(descriptor.metadata.values())
        return normalize_text(" ".join(p.replace("_", " ") for p in parts if p))

    def resolve(self, descriptor: FieldDescriptor) -> Optional[str]:
        context = self._context(descriptor)
        for keyword, value in self.entries:
            if keyword in context:
                logger.debug(f"Keyword '{keyword}' matched field '{descriptor.label}'")
                return value
        return self.kind_defaults.get(descriptor.kind.value)
