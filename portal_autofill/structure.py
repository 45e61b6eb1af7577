"""
Page structure detection: step indicator, page kind, collapsible sections and tabs.

All classifiers here are phrase and marker heuristics. They are tuned for the
portal's markup and are expected to misfire on unrelated pages.
"""

import logging
import re
from typing import Any, List, Optional, Tuple

from .driver import PageDriver
from .inspector import FIELD_SELECTOR, NON_FIELD_INPUT_TYPES, clean_text
from .models import PageClassification, PageKind, SectionDescriptor, TabDescriptor
from .values import normalize_text

logger = logging.getLogger(__name__)

STEP_INDICATOR_SELECTOR = '.slick-slider, .carousel.slick-initialized'
STEP_ITEM_SELECTOR = 'li[data-slick-index]'
ACTIVE_STEP_CLASSES = ("active", "current", "slick-current")

SECTION_HEADER_SELECTOR = (
    'a[class*="collapsed"], a[class*="collapse"], a[data-toggle="collapse"], '
    'button[data-toggle="collapse"], [data-bs-toggle="collapse"]'
)
NESTING_CONTAINER_SELECTOR = '[class*="collapse"]:not(a):not(button)'
TAB_SELECTOR = (
    'a[data-toggle="tab"], a[data-bs-toggle="tab"], button[data-bs-toggle="tab"], [role="tab"]'
)
SECTION_CONTROL_WORDS = re.compile(
    r"\b(siguiente|anterior|atras|continuar|enviar|guardar|cerrar|cancelar|aceptar|"
    r"paso|pagina|step|page|next|previous|back|submit|save|close|cancel)\b"
)

CONTROL_SELECTOR = 'button, a, input[type="button"], input[type="submit"]'
HEADING_SELECTOR = 'h1, h2, h3'

CORRECT_COUNT_PHRASES = ("obligatorios correctos", "required fields correct")
INCORRECT_COUNT_PHRASES = ("obligatorios incorrectos", "required fields incorrect")
CONFIRMATION_URL_FRAGMENTS = ("confirmacion", "resumen", "verification", "final", "review")
CONFIRMATION_PHRASES = ("resumen y confirmacion", "verificacion final", "confirmar envio final",
                        "enviar postulacion", "review and submit")
SUBMIT_WORDS = re.compile(r"\b(enviar|finalizar|submit|send|finish)\b")

DRAFT_URL_FRAGMENTS = ("borradores", "drafts")
DRAFT_VOCABULARY = ("borradores de postulacion", "mis borradores", "postulaciones guardadas",
                    "my drafts", "saved applications", "borrador")
NEW_APPLICATION_PHRASES = ("nueva postulacion", "new application")

INTRODUCTION_PHRASES = ("introduccion", "guia de postulacion", "acepta condiciones",
                        "autoriza notificaciones", "documentos de la convocatoria",
                        "recomendaciones generales", "confirmacion correo electronico",
                        "introduction", "application guidelines")


class StructureDetector:
    def __init__(self, driver: PageDriver):
        self.driver = driver

    def classify(self) -> PageClassification:
        classification = self.detect_steps()
        if self.is_draft_listing():
            classification.page_kind = PageKind.DRAFT
        elif self.is_confirmation_page():
            classification.page_kind = PageKind.CONFIRMATION
        elif self.is_introduction(classification):
            classification.page_kind = PageKind.INTRODUCTION
        else:
            classification.page_kind = PageKind.CONTENT
        logger.info(f"Page classified as {classification.page_kind.value}: step "
                    f"{classification.current_step_index}/{classification.step_count} "
                    f"({classification.detection_method}, confidence {classification.detection_confidence})")
        return classification

    # ---- steps ----
    def detect_steps(self) -> PageClassification:
        for indicator in self.driver.query_all(STEP_INDICATOR_SELECTOR):
            items = [item for item in self.driver.query_all(STEP_ITEM_SELECTOR, indicator)
                     if "slick-cloned" not in (self.driver.attribute_of(item, "class") or "")]
            if not items:
                continue
            titles = []
            for number, item in enumerate(items, 1):
                titles.append(clean_text(self.driver.text_of(item)) or f"Step {number}")
            return PageClassification(
                step_count=len(items),
                current_step_index=self._current_item(items),
                detection_confidence=95,
                detection_method="step_indicator",
                step_titles=titles,
            )
        return PageClassification()

    def _current_item(self, items: List[Any]) -> int:
        for number, item in enumerate(items, 1):
            classes = (self.driver.attribute_of(item, "class") or "").split()
            if any(marker in classes for marker in ACTIVE_STEP_CLASSES):
                return number
        for number, item in enumerate(items, 1):
            if self.driver.attribute_of(item, "aria-hidden") != "true":
                return number
        return 1

    # ---- page kinds ----
    def visible_field_count(self) -> int:
        count = 0
        for element in self.driver.query_all(FIELD_SELECTOR):
            if self.driver.tag_of(element) == "input":
                input_type = (self.driver.attribute_of(element, "type") or "text").lower()
                if input_type in NON_FIELD_INPUT_TYPES:
                    continue
            if self.driver.is_visible(element):
                count += 1
        return count

    def _visible_controls(self) -> List[Tuple[Any, str]]:
        controls = []
        for control in self.driver.query_all(CONTROL_SELECTOR):
            if not self.driver.is_visible(control):
                continue
            text = self.driver.text_of(control) or self.driver.attribute_of(control, "value") or ""
            controls.append((control, normalize_text(text)))
        return controls

    def is_confirmation_page(self) -> bool:
        if self.visible_field_count() > 0:
            return False
        text = normalize_text(self.driver.page_text())
        if not any(p in text for p in CORRECT_COUNT_PHRASES):
            return False
        if not any(p in text for p in INCORRECT_COUNT_PHRASES):
            return False
        if any(self.driver.is_visible(h) for h in self.driver.query_all(SECTION_HEADER_SELECTOR)):
            return False
        url = normalize_text(self.driver.url())
        if any(fragment in url for fragment in CONFIRMATION_URL_FRAGMENTS):
            return True
        if any(phrase in text for phrase in CONFIRMATION_PHRASES):
            return True
        return any(SUBMIT_WORDS.search(label) for _, label in self._visible_controls())

    def find_new_application_control(self) -> Optional[Any]:
        for control, label in self._visible_controls():
            if any(phrase in label for phrase in NEW_APPLICATION_PHRASES):
                return control
        return None

    def is_draft_listing(self) -> bool:
        url = normalize_text(self.driver.url())
        if any(fragment in url for fragment in DRAFT_URL_FRAGMENTS):
            return True
        if not any(self.driver.is_visible(t) for t in self.driver.query_all("table")):
            return False
        if self.find_new_application_control() is None:
            return False
        text = normalize_text(self.driver.page_text())
        return any(word in text for word in DRAFT_VOCABULARY)

    def is_introduction(self, classification: PageClassification) -> bool:
        headings = [self.driver.text_of(h) for h in self.driver.query_all(HEADING_SELECTOR)]
        if classification.step_titles:
            headings.append(classification.step_titles[classification.current_step_index - 1])
        text = normalize_text(" ".join(headings))
        return any(phrase in text for phrase in INTRODUCTION_PHRASES)

    def step_title(self, classification: PageClassification) -> str:
        for heading in self.driver.query_all(HEADING_SELECTOR):
            title = clean_text(self.driver.text_of(heading))
            if title:
                return title
        if classification.step_titles:
            return classification.step_titles[classification.current_step_index - 1]
        return f"Step {classification.current_step_index}"

    # ---- sections ----
    def _content_target(self, header: Any) -> Optional[str]:
        href = self.driver.attribute_of(header, "href") or ""
        if href.startswith("#") and len(href) > 1:
            return href
        for name in ("data-target", "data-bs-target"):
            target = self.driver.attribute_of(header, name)
            if target:
                return target
        controls = self.driver.attribute_of(header, "aria-controls")
        return f"#{controls}" if controls else None

    @staticmethod
    def _is_navigation_text(title: str) -> bool:
        if not (5 <= len(title) <= 100):
            return True
        if re.fullmatch(r"[\d\s\.\-]+", title):
            return True
        if title.upper() == title and re.search(r"[A-Za-zÁÉÍÓÚÑáéíóúñ]", title):
            return True
        return bool(SECTION_CONTROL_WORDS.search(normalize_text(title)))

    def _is_nested(self, header: Any) -> bool:
        # Headers carry "collapse"/"collapsed" classes themselves, so the search starts above them.
        parent = self.driver.parent_of(header)
        return parent is not None and self.driver.closest(parent, NESTING_CONTAINER_SELECTOR) is not None

    def enumerate_sections(self) -> List[SectionDescriptor]:
        sections = []
        seen_targets = set()
        for header in self.driver.query_all(SECTION_HEADER_SELECTOR):
            if not self.driver.is_visible(header):
                continue
            if self._is_nested(header):
                continue
            title = clean_text(self.driver.text_of(header))
            if self._is_navigation_text(title):
                continue
            target = self._content_target(header)
            if not target:
                logger.debug(f"Section header '{title}' has no href, data-target or aria-controls, skipped")
                continue
            if target in seen_targets:
                continue

            classes = (self.driver.attribute_of(header, "class") or "").split()
            expanded = self.driver.attribute_of(header, "aria-expanded")
            collapsed = "collapsed" in classes
            is_closed = collapsed and expanded == "false"
            is_open = not collapsed and expanded == "true"
            if not (is_closed or is_open):
                logger.warning(f"Section '{title}' has ambiguous state "
                               f"(collapsed={collapsed}, aria-expanded={expanded}), excluded")
                continue

            content = self.driver.query_one(target)
            nested = bool(content is not None and self.driver.query_all(SECTION_HEADER_SELECTOR, content))
            seen_targets.add(target)
            sections.append(SectionDescriptor(
                title=title, is_open=is_open, is_closed=is_closed,
                container_selector=target, has_nested_sections=nested, header=header,
            ))
        logger.info(f"Enumerated {len(sections)} first-level section(s)")
        return sections

    # ---- tabs ----
    def _is_active_tab(self, tab: Any) -> bool:
        if self.driver.attribute_of(tab, "aria-selected") == "true":
            return True
        if "active" in (self.driver.attribute_of(tab, "class") or "").split():
            return True
        # Bootstrap 3 marks the <li> around the link
        item = self.driver.parent_of(tab)
        return item is not None and "active" in (self.driver.attribute_of(item, "class") or "").split()

    def enumerate_tabs(self) -> List[TabDescriptor]:
        tabs = []
        seen_panes = set()
        for control in self.driver.query_all(TAB_SELECTOR):
            if not self.driver.is_visible(control):
                continue
            pane = self._content_target(control)
            if not pane or pane in seen_panes:
                continue
            seen_panes.add(pane)
            title = (clean_text(self.driver.text_of(control))
                     or clean_text(self.driver.attribute_of(control, "alt"))
                     or f"Tab {len(tabs) + 1}")
            tabs.append(TabDescriptor(title=title, pane_selector=pane,
                                      is_active=self._is_active_tab(control), control=control))
        if tabs:
            logger.info(f"Enumerated {len(tabs)} tab(s): {[t.title for t in tabs]}")
        return tabs
