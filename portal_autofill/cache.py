"""
Structure cache: remembers what a form looked like and which controls worked.
Only used to seed priorities; live detection always runs.
"""

import json
import logging
import time
import urllib.parse
from abc import ABC, abstractmethod
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

logger = logging.getLogger(__name__)


@dataclass
class CachedStructure:
    url: str
    title: str
    structure: Dict[str, Any] = field(default_factory=dict)
    strategies: Dict[str, List[str]] = field(default_factory=dict)
    stored_at: float = field(default_factory=time.time)


class StructureCache(ABC):
    @abstractmethod
    def lookup(self, url: str, title: str) -> Optional[CachedStructure]: ...

    @abstractmethod
    def store(self, url: str, title: str, structure: Dict[str, Any], strategies: Dict[str, List[str]]) -> None: ...


def cache_key(url: str, title: str) -> str:
    parsed = urllib.parse.urlsplit(url)
    return f"{parsed.netloc.lower()}{parsed.path}|{title.strip().lower()}"


class JsonStructureCache(StructureCache):
    def __init__(self, cache_file: Union[str, Path] = "form_structure_cache.json"):
        self.cache_file = Path(cache_file)
        self.entries = self._load_entries()

    def _load_entries(self) -> Dict[str, Any]:
        if self.cache_file.exists():
            try:
                with open(self.cache_file, 'r', encoding='utf-8') as f:
                    return json.load(f).get("entries", {})
            except json.JSONDecodeError:
                logger.error(f"Error decoding JSON from {self.cache_file}. File might be corrupted. Starting with an empty cache.")
            except OSError as e:
                logger.error(f"Error loading structure cache from {self.cache_file}: {e}. Starting with an empty cache.")
        return {}

    def _save_entries(self) -> None:
        try:
            with open(self.cache_file, 'w', encoding='utf-8') as f:
                json.dump({"entries": self.entries}, f, indent=2, ensure_ascii=False)
            logger.info(f"Structure cache saved to {self.cache_file}")
        except OSError as e:
            logger.error(f"Error saving structure cache: {e}")

    def lookup(self, url: str, title: str) -> Optional[CachedStructure]:
        entry = self.entries.get(cache_key(url, title))
        if entry is None:
            logger.debug(f"No cached structure for {url}")
            return None
        try:
            return CachedStructure(**entry)
        except TypeError as e:
            logger.error(f"Ignoring malformed cache entry for {url}: {e}")
            return None

    def store(self, url: str, title: str, structure: Dict[str, Any], strategies: Dict[str, List[str]]) -> None:
        cached = CachedStructure(url=url, title=title, structure=structure, strategies=strategies)
        self.entries[cache_key(url, title)] = asdict(cached)
        self._save_entries()
