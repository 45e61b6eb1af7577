import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Set

from .completer import NOT_A_FIELD, FieldCompleter
from .driver import PageDriver
from .errors import FieldUnresolved, InteractionFailed
from .inspector import FieldInspector
from .models import CompletionRecord, FieldDescriptor, FieldKind

logger = logging.getLogger(__name__)


class StepLedger:
    """Per-step bookkeeping shared by the sequencer, the loop and the retry pass.

    Records are keyed by field identity so a re-attempt replaces the earlier
    record instead of adding a second one.
    """

    def __init__(self):
        self.processed: Set[str] = set()
        self._records: Dict[str, CompletionRecord] = {}

    def record(self, identity: str, record: CompletionRecord) -> None:
        self.processed.add(identity)
        self._records[identity] = record

    def skip(self, identity: str) -> None:
        self.processed.add(identity)

    @property
    def records(self) -> List[CompletionRecord]:
        return list(self._records.values())


@dataclass
class DiscoveryOutcome:
    passes: int
    fields_processed: int
    fields_completed: int = 0


class DynamicDiscoveryLoop:
    def __init__(self, driver: PageDriver, inspector: FieldInspector, completer: FieldCompleter,
                 config: Dict[str, Any]):
        self.driver = driver
        self.inspector = inspector
        self.completer = completer
        self.config = config

    def reveal_lazy_content(self) -> int:
        """Scrolls down the page in fixed steps so lazily rendered content appears, then back to the top.

        The document may grow while scrolling; the walk follows it up to `max_scroll_steps`.
        Returns the number of scroll steps taken.
        """
        step = self.config["scroll_step_px"]
        height = self.driver.scroll_height()
        if step <= 0 or height <= 0:
            return 0
        position = 0
        scrolls = 0
        while position < height and scrolls < self.config["max_scroll_steps"]:
            position += step
            self.driver.scroll_to(position)
            scrolls += 1
            self.driver.wait(self.config["scroll_delay_ms"])
            grown = self.driver.scroll_height()
            if grown > height:
                logger.debug(f"Document grew while scrolling: {height}px -> {grown}px")
                height = grown
        self.driver.scroll_to(0)
        self.driver.wait(self.config["scroll_return_ms"])
        logger.info(f"Scrolled through the page in {scrolls} step(s)")
        return scrolls

    def run(self, ledger: StepLedger, scope: Any = None) -> DiscoveryOutcome:
        """Completes fields until a re-scan finds nothing new, or the pass budget runs out."""
        max_passes = self.config["max_discovery_passes"]
        passes = 0
        processed = 0
        completed = 0
        for pass_number in range(1, max_passes + 1):
            pending = self._scan(ledger, scope)
            if not pending:
                logger.info(f"Discovery fixpoint reached after {passes} pass(es)")
                break
            passes = pass_number
            logger.info(f"Discovery pass {pass_number}/{max_passes}: {len(pending)} new field(s)")
            for element, descriptor in pending:
                if descriptor.identity in ledger.processed:
                    continue
                if not self._still_in_place(element, descriptor):
                    logger.debug(f"Field '{descriptor.label}' moved in the DOM, deferred to the next pass")
                    continue
                record = self.complete_field(ledger, element, descriptor)
                if record is not None:
                    processed += 1
                    if record.completed:
                        completed += 1
                self.driver.wait(self.config["field_delay_ms"])
            if pass_number < max_passes:
                self.driver.wait(self.config["pass_delay_ms"])
        else:
            logger.info(f"Discovery pass budget of {max_passes} exhausted")
        return DiscoveryOutcome(passes=passes, fields_processed=processed, fields_completed=completed)

    def _still_in_place(self, element: Any, descriptor: FieldDescriptor) -> bool:
        """Element handles can be positional, so a field inserted earlier in the pass shifts them."""
        return ((self.driver.attribute_of(element, "name") or "") == descriptor.name
                and (self.driver.attribute_of(element, "id") or "") == descriptor.element_id)

    def _scan(self, ledger: StepLedger, scope: Any) -> List[tuple]:
        pending = []
        seen_in_scan = set()
        for element in self.inspector.candidates(scope):
            descriptor = self.inspector.inspect(element)
            if descriptor is None:
                continue
            if descriptor.identity in ledger.processed or descriptor.identity in seen_in_scan:
                continue
            seen_in_scan.add(descriptor.identity)
            pending.append((element, descriptor))
        return pending

    def complete_field(self, ledger: StepLedger, element: Any, descriptor: FieldDescriptor) -> Optional[CompletionRecord]:
        """Completes one field and files its record. Returns None when the field was dropped."""
        assigned, completed, reason = None, False, None
        try:
            result = self.completer.complete(element, descriptor)
            if result is NOT_A_FIELD:
                ledger.skip(descriptor.identity)
                return None
            assigned, completed = result, True
        except FieldUnresolved as e:
            logger.warning(f"Field '{descriptor.label}' unresolved: {e.reason}")
            assigned, reason = e.assigned, e.reason
        except InteractionFailed as e:
            logger.warning(f"Interaction with '{descriptor.label}' failed: {e}")
            reason = str(e)

        record = CompletionRecord(
            label=descriptor.label,
            kind=descriptor.kind,
            assigned_value=assigned,
            completed=completed,
            required=descriptor.required,
            failure_reason=reason,
        )
        ledger.record(descriptor.identity, record)
        if descriptor.kind == FieldKind.SELECT and assigned is not None:
            self.driver.wait(self.config["select_settle_ms"])
        return record
