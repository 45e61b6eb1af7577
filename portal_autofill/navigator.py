"""
Step navigation: the state machine that walks a multi-step application form
(draft listing -> introduction/content steps -> confirmation) without ever
submitting it.
"""

import logging
import re
import time
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Set, Tuple

from .aggregator import RunAggregator
from .cache import StructureCache
from .completer import FieldCompleter
from .config import default_config
from .dialogs import DialogHandler
from .discovery import DynamicDiscoveryLoop, StepLedger
from .driver import PageDriver
from .errors import InteractionFailed, NavigationStalled, SessionLost
from .inspector import FIELD_SELECTOR, NON_FIELD_INPUT_TYPES, REQUIRED_TOKENS, FieldInspector
from .models import (
    ConfirmationCounters, PageClassification, PageKind, RunResult, StepResult
)
from .sections import SectionSequencer, TabSequencer
from .structure import StructureDetector
from .values import ValueResolver, normalize_text

logger = logging.getLogger(__name__)

NEXT_CONTROL_SELECTOR = 'button, a, input[type="button"], input[type="submit"], [class*="next"]'
NEXT_WORDS = re.compile(r"\b(siguiente|continuar|avanzar|next|continue)\b")
NOT_NEXT_WORDS = re.compile(
    r"\b(enviar|finalizar|postular|submit|send|finish|anterior|atras|volver|previous|back|cancelar|cancel)\b"
)
ADVANCE_SIGNATURE_SELECTOR = 'input, select, textarea, button'


# ========== CONFIRMATION ANALYZER ==========
CORRECT_PHRASES = ("obligatorios correctos", "required fields correct")
INCORRECT_PHRASES = ("obligatorios incorrectos", "required fields incorrect")
FORMAT_INCORRECT_PHRASES = ("formatos incorrectos", "formato incorrecto", "incorrect format")


class ConfirmationAnalyzer:
    def __init__(self, driver: PageDriver):
        self.driver = driver

    @staticmethod
    def _count(text: str, phrases: Tuple[str, ...]) -> int:
        # Counters sit on the same line as their phrase, either after it or before it.
        for phrase in phrases:
            after = re.search(rf"{re.escape(phrase)}[^\S\n]*[:=\-]?[^\S\n]*(\d+)", text)
            if after:
                return int(after.group(1))
            before = re.search(rf"(\d+)[^\S\n]*(?:campos[^\S\n]+)?{re.escape(phrase)}", text)
            if before:
                return int(before.group(1))
        return 0

    def analyze_text(self, text: str) -> ConfirmationCounters:
        normalized = normalize_text(text)
        correct = self._count(normalized, CORRECT_PHRASES)
        incorrect = self._count(normalized, INCORRECT_PHRASES)
        counted = correct + incorrect
        return ConfirmationCounters(
            correct=correct,
            incorrect=incorrect,
            format_incorrect=self._count(normalized, FORMAT_INCORRECT_PHRASES),
            success_rate=round(correct / counted * 100, 2) if counted else 0.0,
        )

    def analyze(self) -> ConfirmationCounters:
        counters = self.analyze_text(self.driver.page_text())
        logger.info(f"Confirmation counters: {counters.correct} correct, {counters.incorrect} incorrect, "
                    f"{counters.format_incorrect} format-incorrect ({counters.success_rate}%)")
        return counters


@dataclass
class CompletenessStatus:
    obligatory: int = 0
    filled: int = 0
    invalid: int = 0

    @property
    def ratio(self) -> float:
        return self.filled / self.obligatory if self.obligatory else 1.0

    @property
    def complete(self) -> bool:
        return self.filled >= self.obligatory and self.invalid == 0


# ========== STEP NAVIGATOR ==========
class StepNavigator:
    def __init__(self, driver: PageDriver, value_resolver: ValueResolver,
                 config: Optional[Dict[str, Any]] = None,
                 structure_cache: Optional[StructureCache] = None):
        self.driver = driver
        self.config = config or default_config()
        self.structure_cache = structure_cache
        self.detector = StructureDetector(driver)
        self.inspector = FieldInspector(driver)
        self.completer = FieldCompleter(driver, value_resolver, self.config)
        self.discovery = DynamicDiscoveryLoop(driver, self.inspector, self.completer, self.config)
        self.sequencer = SectionSequencer(driver, self.discovery, self.config)
        self.tab_sequencer = TabSequencer(driver, self.discovery, self.config)
        self.dialogs = DialogHandler(driver, self.config.get("dialog_definitions"))
        self.analyzer = ConfirmationAnalyzer(driver)
        self.aggregator: Optional[RunAggregator] = None
        self.preferred_next_texts: List[str] = []
        self.used_next_texts: List[str] = []
        self.section_titles: Dict[int, List[str]] = {}
        self.start_title = ""
        self._has_run = False

    # ---- entry point ----
    def run(self) -> RunResult:
        if self._has_run:
            logger.error("StepNavigator.run() called twice; one navigator serves one browser session.")
            return RunResult(succeeded=False, message="Navigator already used",
                             errors=["Navigator already used for a previous run"])
        self._has_run = True
        self.aggregator = RunAggregator(start_url=self._current_url())
        aborted = False
        message = ""
        try:
            self._seed_from_cache()
            message = self._walk()
        except SessionLost as e:
            logger.critical(f"Browser session lost, aborting run: {e}", exc_info=True)
            self.aggregator.add_error(f"Session lost: {e}")
            aborted = True
        except Exception as e:
            logger.critical(f"Unexpected failure during run: {e}", exc_info=True)
            self.aggregator.add_error(f"Unexpected failure: {e}")
            aborted = True
        result = self.aggregator.finalize(aborted=aborted, message="" if aborted else message)
        if not aborted:
            self._store_structure(result)
        return result

    def _current_url(self) -> str:
        try:
            return self.driver.url()
        except SessionLost:
            return ""

    # ---- structure cache ----
    def _seed_from_cache(self) -> None:
        self.start_title = self.driver.title()
        if self.structure_cache is None:
            return
        try:
            cached = self.structure_cache.lookup(self.aggregator.start_url, self.start_title)
        except Exception as e:
            logger.warning(f"Structure cache lookup failed: {e}")
            return
        if cached is None:
            return
        self.preferred_next_texts = [normalize_text(t) for t in cached.strategies.get("next_controls", [])]
        logger.info(f"Seeded next-control priority from cache: {self.preferred_next_texts}")

    def _store_structure(self, result: RunResult) -> None:
        if self.structure_cache is None or not result.steps:
            return
        structure = {
            "step_count": len(result.steps),
            "step_titles": [step.title for step in result.steps],
            "sections": {str(k): v for k, v in self.section_titles.items()},
        }
        try:
            self.structure_cache.store(result.start_url, self.start_title, structure,
                                       {"next_controls": list(dict.fromkeys(self.used_next_texts))})
        except Exception as e:
            logger.warning(f"Structure cache store failed: {e}")

    # ---- state machine ----
    def _walk(self) -> str:
        classification = self.detector.classify()
        if classification.page_kind == PageKind.DRAFT:
            classification = self._leave_draft_listing()
            if classification is None:
                return "Stopped on draft listing"

        if classification.detection_confidence > 0:
            budget = classification.step_count + 1
        else:
            budget = self.config["hard_step_ceiling"]
        logger.info(f"Step budget: {budget}")

        for step_number in range(1, budget + 1):
            if classification.page_kind == PageKind.CONFIRMATION:
                self._process_confirmation(step_number, classification)
                return "Reached confirmation page"
            if classification.page_kind == PageKind.DRAFT:
                logger.warning("Navigation returned to the draft listing, stopping.")
                return "Returned to draft listing"

            self._process_step(step_number, classification)
            try:
                self.advance()
            except NavigationStalled as e:
                logger.warning(f"Navigation stalled after step {step_number}: {e}")
                return f"Navigation stalled after step {step_number}"
            classification = self.detector.classify()

        logger.warning(f"Step budget of {budget} exhausted before reaching confirmation.")
        return f"Step budget of {budget} exhausted"

    def _leave_draft_listing(self) -> Optional[PageClassification]:
        logger.info("Draft listing detected, opening a new application.")
        control = self.detector.find_new_application_control()
        if control is None:
            self.aggregator.add_error("Draft listing without a new-application control")
            return None
        try:
            self.driver.click(control)
        except InteractionFailed as e:
            self.aggregator.add_error(f"Could not open a new application: {e}")
            return None
        self.driver.wait_for_settle(self.config["settle_timeout_ms"])
        self.driver.wait(self.config["dialog_wait_ms"])
        self.dialogs.handle()
        classification = self.detector.classify()
        if classification.page_kind == PageKind.DRAFT:
            self.aggregator.add_error("Still on draft listing after opening a new application")
            return None
        return classification

    def _process_step(self, step_number: int, classification: PageClassification) -> None:
        started = time.monotonic()
        ledger = StepLedger()
        title = f"Step {step_number}"
        try:
            title = self.detector.step_title(classification)
            logger.info(f"\n{'='*20} STEP {step_number} ({classification.page_kind.value}): {title} {'='*20}")
            self.discovery.reveal_lazy_content()
            sections = self.detector.enumerate_sections()
            if sections:
                self.section_titles[step_number] = [s.title for s in sections]
                self.sequencer.run(sections, ledger)
            tabs = self.detector.enumerate_tabs()
            if tabs:
                self.tab_sequencer.run(tabs, ledger)
            self.discovery.run(ledger)
            self._recheck_completeness(ledger)
        except SessionLost:
            raise
        except Exception as e:
            logger.error(f"Step {step_number} failed: {e}", exc_info=True)
            self.aggregator.add_error(f"Step {step_number}: {e}")
        finally:
            self.aggregator.add_step(StepResult(
                index=step_number,
                title=title,
                page_kind=classification.page_kind,
                elapsed_time=round(time.monotonic() - started, 2),
                records=ledger.records,
            ))

    def _process_confirmation(self, step_number: int, classification: PageClassification) -> None:
        started = time.monotonic()
        logger.info(f"\n{'='*20} STEP {step_number}: CONFIRMATION PAGE {'='*20}")
        self.aggregator.set_confirmation(self.analyzer.analyze())
        self.aggregator.add_step(StepResult(
            index=step_number,
            title=self.detector.step_title(classification),
            page_kind=PageKind.CONFIRMATION,
            elapsed_time=round(time.monotonic() - started, 2),
        ))

    # ---- completeness ----
    def _field_state(self, element: Any) -> Optional[Tuple[bool, bool, bool]]:
        """(required, filled, invalid) for a visible field, None for anything else."""
        tag = self.driver.tag_of(element)
        input_type = (self.driver.attribute_of(element, "type") or "text").lower() if tag == "input" else tag
        if tag == "input" and input_type in NON_FIELD_INPUT_TYPES:
            return None
        if not self.inspector.is_interactable(element, input_type):
            return None
        classes = (self.driver.attribute_of(element, "class") or "").lower()
        required = (self.driver.attribute_of(element, "required") is not None
                    or self.driver.attribute_of(element, "aria-required") == "true"
                    or any(token in classes for token in REQUIRED_TOKENS))
        if input_type == "radio":
            group = self.completer.radio_group(self.driver.attribute_of(element, "name") or "")
            filled = any(self.driver.is_checked(radio) for radio in group or [element])
        elif input_type == "checkbox":
            filled = self.driver.is_checked(element)
        elif input_type == "file":
            filled = self.driver.has_files(element)
        else:
            filled = bool(self.driver.value_of(element).strip())
        invalid = ("error" in classes or "invalid" in classes
                   or self.driver.attribute_of(element, "aria-invalid") == "true")
        return required, filled, invalid

    def check_completeness(self) -> CompletenessStatus:
        status = CompletenessStatus()
        for element in self.driver.query_all(FIELD_SELECTOR):
            state = self._field_state(element)
            if state is None:
                continue
            required, filled, invalid = state
            if required:
                status.obligatory += 1
                if filled:
                    status.filled += 1
            if invalid:
                status.invalid += 1
        logger.info(f"Completeness: {status.filled}/{status.obligatory} obligatory filled "
                    f"({status.ratio:.0%}), {status.invalid} invalid")
        return status

    def _recheck_completeness(self, ledger: StepLedger) -> None:
        if self.check_completeness().complete:
            return
        logger.info("Step incomplete, running one retry pass over empty or invalid fields.")
        retried = 0
        for element in self.inspector.candidates():
            state = self._field_state(element)
            if state is None:
                continue
            _, filled, invalid = state
            if filled and not invalid:
                continue
            descriptor = self.inspector.inspect(element)
            if descriptor is None:
                continue
            self.discovery.complete_field(ledger, element, descriptor)
            retried += 1
            self.driver.wait(self.config["field_delay_ms"])
        logger.info(f"Retry pass re-attempted {retried} field(s)")

    # ---- advancing ----
    def _control_label(self, control: Any) -> str:
        return normalize_text(self.driver.text_of(control) or self.driver.attribute_of(control, "value") or "")

    def find_next_control(self) -> Optional[Tuple[Any, str]]:
        ranked = []
        for position, control in enumerate(self.driver.query_all(NEXT_CONTROL_SELECTOR)):
            if not self.driver.is_visible(control):
                continue
            label = self._control_label(control)
            if NOT_NEXT_WORDS.search(label):
                continue
            classes = (self.driver.attribute_of(control, "class") or "").lower()
            if label and label in self.preferred_next_texts:
                priority = 0
            elif NEXT_WORDS.search(label):
                priority = 1
            elif "next" in classes:
                priority = 2
            else:
                continue
            ranked.append((priority, position, control, label))
        if not ranked:
            return None
        _, _, control, label = min(ranked, key=lambda item: (item[0], item[1]))
        return control, label

    def _interactive_signature(self) -> Set[Tuple[str, ...]]:
        signature = set()
        for element in self.driver.query_all(ADVANCE_SIGNATURE_SELECTOR):
            if not self.driver.is_visible(element):
                continue
            signature.add((
                self.driver.tag_of(element),
                self.driver.attribute_of(element, "id") or "",
                self.driver.attribute_of(element, "name") or "",
                self.driver.attribute_of(element, "type") or "",
                self.driver.text_of(element)[:40],
            ))
        return signature

    def advance(self) -> None:
        """Clicks the next-step control and waits for evidence of a new step.

        Raises NavigationStalled when no control exists or nothing changed
        within the advance timeout.
        """
        found = self.find_next_control()
        if found is None:
            raise NavigationStalled("no next/continue control found")
        control, label = found
        before_url = self.driver.url()
        before = self._interactive_signature()

        logger.info(f"Advancing with control '{label}'")
        try:
            self.driver.click(control)
        except InteractionFailed as e:
            raise NavigationStalled(f"next control click failed: {e}") from e
        self.driver.wait(self.config["dialog_wait_ms"])
        self.dialogs.handle()
        self.driver.wait_for_settle(self.config["settle_timeout_ms"])

        poll_ms = max(1, self.config["advance_poll_ms"])
        waited = 0
        while True:
            if self.driver.url() != before_url:
                logger.info(f"Advanced: URL changed to {self.driver.url()}")
                break
            new_elements = self._interactive_signature() - before
            if new_elements:
                logger.info(f"Advanced: {len(new_elements)} new interactive element(s)")
                break
            if waited >= self.config["advance_timeout_ms"]:
                raise NavigationStalled(f"no URL change or new elements after {waited}ms")
            self.driver.wait(poll_ms)
            waited += poll_ms
            self.dialogs.handle()
        self.used_next_texts.append(label)
