"""
Page capability interface used by detection, inspection and completion code,
plus its Playwright implementation.

Elements are opaque handles: the engine never inspects them directly, it only
passes them back to the driver.
"""

import logging
from abc import ABC, abstractmethod
from contextlib import contextmanager
from typing import Any, Callable, Dict, List, Optional

from playwright.sync_api import (
    Page, Locator, Dialog,
    Error as PlaywrightError,
    TimeoutError as PlaywrightTimeoutError
)

from .config import DEFAULT_ACTION_TIMEOUT
from .errors import InteractionFailed, SessionLost
from .models import OptionDescriptor

logger = logging.getLogger(__name__)

READ_TIMEOUT_MS = 1000

CLOSED_TARGET_MARKERS = (
    "has been closed",
    "target closed",
    "browser closed",
    "connection closed",
    "browser has disconnected",
)


class PageDriver(ABC):

    # ---- document ----
    @abstractmethod
    def url(self) -> str: ...

    @abstractmethod
    def title(self) -> str: ...

    @abstractmethod
    def page_text(self) -> str: ...

    @abstractmethod
    def is_closed(self) -> bool: ...

    # ---- queries ----
    @abstractmethod
    def query_all(self, selector: str, scope: Any = None) -> List[Any]: ...

    def query_one(self, selector: str, scope: Any = None) -> Optional[Any]:
        found = self.query_all(selector, scope)
        return found[0] if found else None

    @abstractmethod
    def closest(self, element: Any, selector: str) -> Optional[Any]: ...

    @abstractmethod
    def parent_of(self, element: Any) -> Optional[Any]: ...

    @abstractmethod
    def preceding_siblings(self, element: Any, limit: int) -> List[Any]: ...

    # ---- element state ----
    @abstractmethod
    def text_of(self, element: Any) -> str: ...

    @abstractmethod
    def attribute_of(self, element: Any, name: str) -> Optional[str]: ...

    @abstractmethod
    def tag_of(self, element: Any) -> str: ...

    @abstractmethod
    def value_of(self, element: Any) -> str: ...

    @abstractmethod
    def bounding_box_of(self, element: Any) -> Optional[Dict[str, float]]: ...

    @abstractmethod
    def opacity_of(self, element: Any) -> float: ...

    @abstractmethod
    def is_displayed(self, element: Any) -> bool: ...

    @abstractmethod
    def is_attached(self, element: Any) -> bool: ...

    @abstractmethod
    def is_editable(self, element: Any) -> bool: ...

    @abstractmethod
    def is_checked(self, element: Any) -> bool: ...

    @abstractmethod
    def options_of(self, element: Any) -> List[OptionDescriptor]: ...

    @abstractmethod
    def has_files(self, element: Any) -> bool: ...

    # ---- interactions ----
    @abstractmethod
    def click(self, element: Any) -> None: ...

    @abstractmethod
    def fill(self, element: Any, value: str) -> None: ...

    @abstractmethod
    def type_text(self, element: Any, value: str) -> None: ...

    @abstractmethod
    def select_option(self, element: Any, value: str) -> None: ...

    @abstractmethod
    def set_checked(self, element: Any, checked: bool) -> None: ...

    @abstractmethod
    def set_files(self, element: Any, path: str) -> None: ...

    # ---- scrolling ----
    @abstractmethod
    def scroll_height(self) -> int: ...

    @abstractmethod
    def scroll_to(self, y: int) -> None: ...

    # ---- waits ----
    @abstractmethod
    def wait(self, ms: int) -> None: ...

    @abstractmethod
    def wait_for_settle(self, timeout_ms: int) -> None: ...

    def is_visible(self, element: Any) -> bool:
        if not self.is_displayed(element):
            return False
        box = self.bounding_box_of(element)
        return bool(box and box.get("width", 0) > 0 and box.get("height", 0) > 0)


# ========== PLAYWRIGHT IMPLEMENTATION ==========
def _looks_closed(error: Exception) -> bool:
    message = str(error).lower()
    return any(marker in message for marker in CLOSED_TARGET_MARKERS)


class PlaywrightDriver(PageDriver):
    """PageDriver over one Playwright page. Elements are Locators returned by `Locator.all()`."""

    def __init__(self, page: Page, action_timeout_ms: int = DEFAULT_ACTION_TIMEOUT,
                 accept_native_dialogs: bool = True, read_timeout_ms: int = READ_TIMEOUT_MS):
        self.page = page
        self.action_timeout_ms = action_timeout_ms
        self.read_timeout_ms = read_timeout_ms
        if accept_native_dialogs:
            self.page.on("dialog", self._accept_native_dialog)

    @staticmethod
    def _accept_native_dialog(dialog: Dialog) -> None:
        logger.info(f"Accepting native {dialog.type} dialog: {dialog.message[:120]}")
        try:
            dialog.accept()
        except PlaywrightError as e:
            logger.warning(f"Could not accept native dialog: {e}")

    def _raise_if_session_lost(self, error: Exception, action: str) -> None:
        if self.page.is_closed() or _looks_closed(error):
            raise SessionLost(f"{action}: {error}") from error

    @contextmanager
    def _guard(self, action: str):
        try:
            yield
        except PlaywrightTimeoutError as e:
            self._raise_if_session_lost(e, action)
            raise InteractionFailed(f"{action} timed out") from e
        except PlaywrightError as e:
            self._raise_if_session_lost(e, action)
            raise InteractionFailed(f"{action} failed: {str(e).splitlines()[0]}") from e

    def _read(self, fn: Callable[[], Any], default: Any, action: str) -> Any:
        try:
            return fn()
        except PlaywrightError as e:
            self._raise_if_session_lost(e, action)
            logger.debug(f"{action} failed, using default: {e}")
            return default

    # ---- document ----
    def url(self) -> str:
        if self.page.is_closed():
            raise SessionLost("page closed")
        return self.page.url

    def title(self) -> str:
        return self._read(self.page.title, "", "title") or ""

    def page_text(self) -> str:
        return self._read(lambda: self.page.inner_text("body", timeout=self.action_timeout_ms), "", "page_text") or ""

    def is_closed(self) -> bool:
        return self.page.is_closed()

    # ---- queries ----
    def query_all(self, selector: str, scope: Optional[Locator] = None) -> List[Locator]:
        root = scope if scope is not None else self.page
        return self._read(lambda: root.locator(selector).all(), [], f"query_all({selector})")

    def closest(self, element: Locator, selector: str) -> Optional[Locator]:
        def _closest():
            chain = element.locator("xpath=ancestor-or-self::*")
            index = chain.evaluate_all(
                """(els, sel) => {
                    for (let i = els.length - 1; i >= 0; i--) {
                        if (els[i].matches(sel)) return i;
                    }
                    return -1;
                }""", selector)
            return chain.nth(index) if index >= 0 else None
        return self._read(_closest, None, f"closest({selector})")

    def parent_of(self, element: Locator) -> Optional[Locator]:
        def _parent():
            parent = element.locator("xpath=..")
            return parent if parent.count() else None
        return self._read(_parent, None, "parent_of")

    def preceding_siblings(self, element: Locator, limit: int) -> List[Locator]:
        def _siblings():
            # document order, nearest sibling last
            found = element.locator("xpath=preceding-sibling::*").all()
            return list(reversed(found))[:limit]
        return self._read(_siblings, [], "preceding_siblings")

    # ---- element state ----
    def text_of(self, element: Locator) -> str:
        return (self._read(lambda: element.text_content(timeout=self.read_timeout_ms), "", "text_of") or "").strip()

    def attribute_of(self, element: Locator, name: str) -> Optional[str]:
        return self._read(lambda: element.get_attribute(name, timeout=self.read_timeout_ms), None,
                          f"attribute_of({name})")

    def tag_of(self, element: Locator) -> str:
        return self._read(lambda: element.evaluate("el => el.tagName.toLowerCase()", timeout=self.read_timeout_ms),
                          "unknown", "tag_of")

    def value_of(self, element: Locator) -> str:
        # input_value() rejects anything but input, select and textarea
        return self._read(lambda: element.evaluate(
            "el => el.value == null ? '' : String(el.value)", timeout=self.read_timeout_ms), "", "value_of") or ""

    def bounding_box_of(self, element: Locator) -> Optional[Dict[str, float]]:
        return self._read(lambda: element.bounding_box(timeout=self.read_timeout_ms), None, "bounding_box_of")

    def opacity_of(self, element: Locator) -> float:
        raw = self._read(lambda: element.evaluate(
            "el => window.getComputedStyle(el).opacity", timeout=self.read_timeout_ms), "1", "opacity_of")
        try:
            return float(raw)
        except (TypeError, ValueError):
            return 1.0

    def is_displayed(self, element: Locator) -> bool:
        return bool(self._read(element.is_visible, False, "is_displayed"))

    def is_attached(self, element: Locator) -> bool:
        return bool(self._read(lambda: element.count() > 0, False, "is_attached"))

    def is_editable(self, element: Locator) -> bool:
        return bool(self._read(lambda: element.is_enabled(timeout=self.read_timeout_ms)
                               and element.is_editable(timeout=self.read_timeout_ms), False, "is_editable"))

    def is_checked(self, element: Locator) -> bool:
        return bool(self._read(lambda: element.is_checked(timeout=self.read_timeout_ms), False, "is_checked"))

    def options_of(self, element: Locator) -> List[OptionDescriptor]:
        raw = self._read(lambda: element.evaluate(
            """el => Array.from(el.options || []).map(o => ({
                value: o.value, text: (o.textContent || '').trim(),
                selected: o.selected, disabled: o.disabled
            }))""", timeout=self.read_timeout_ms), [], "options_of")
        return [OptionDescriptor(**option) for option in raw or []]

    def has_files(self, element: Locator) -> bool:
        return bool(self._read(lambda: element.evaluate(
            "el => !!(el.files && el.files.length > 0)", timeout=self.read_timeout_ms), False, "has_files"))

    # ---- interactions ----
    def click(self, element: Locator) -> None:
        with self._guard("click"):
            element.scroll_into_view_if_needed(timeout=self.action_timeout_ms // 3)
            element.click(timeout=self.action_timeout_ms)

    def fill(self, element: Locator, value: str) -> None:
        with self._guard("fill"):
            element.fill(value, timeout=self.action_timeout_ms)

    def type_text(self, element: Locator, value: str) -> None:
        with self._guard("type_text"):
            element.click(timeout=self.action_timeout_ms)
            element.press("Control+A")
            element.press("Backspace")
            element.type(value, delay=50, timeout=self.action_timeout_ms)

    def select_option(self, element: Locator, value: str) -> None:
        with self._guard("select_option"):
            element.select_option(value=value, timeout=self.action_timeout_ms)

    def set_checked(self, element: Locator, checked: bool) -> None:
        with self._guard("set_checked"):
            element.set_checked(checked, timeout=self.action_timeout_ms, force=True)

    def set_files(self, element: Locator, path: str) -> None:
        with self._guard("set_files"):
            element.set_input_files(path, timeout=self.action_timeout_ms)

    # ---- scrolling ----
    def scroll_height(self) -> int:
        return int(self._read(lambda: self.page.evaluate("() => document.body.scrollHeight"), 0,
                              "scroll_height") or 0)

    def scroll_to(self, y: int) -> None:
        with self._guard("scroll_to"):
            self.page.evaluate("y => window.scrollTo(0, y)", y)

    # ---- waits ----
    def wait(self, ms: int) -> None:
        if ms <= 0:
            return
        with self._guard("wait"):
            self.page.wait_for_timeout(ms)

    def wait_for_settle(self, timeout_ms: int) -> None:
        if self.page.is_closed():
            raise SessionLost("page closed while waiting for settle")
        try:
            self.page.wait_for_load_state("networkidle", timeout=timeout_ms)
        except PlaywrightTimeoutError:
            logger.debug(f"Network did not go idle within {timeout_ms}ms, continuing.")
        except PlaywrightError as e:
            self._raise_if_session_lost(e, "wait_for_settle")
            logger.debug(f"Error waiting for settle: {e}")
