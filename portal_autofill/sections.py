import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List

from .discovery import DynamicDiscoveryLoop, StepLedger
from .driver import PageDriver
from .errors import DetectionAmbiguous, InteractionFailed
from .models import SectionDescriptor, TabDescriptor

logger = logging.getLogger(__name__)


@dataclass
class SectionReport:
    opened: List[str] = field(default_factory=list)
    closed: List[str] = field(default_factory=list)
    skipped: List[str] = field(default_factory=list)
    fields_completed: int = 0


class SectionSequencer:
    def __init__(self, driver: PageDriver, discovery: DynamicDiscoveryLoop, config: Dict[str, Any]):
        self.driver = driver
        self.discovery = discovery
        self.config = config

    def run(self, sections: List[SectionDescriptor], ledger: StepLedger) -> SectionReport:
        report = SectionReport()
        for index, section in enumerate(sections):
            is_last = index == len(sections) - 1
            try:
                self._process(section, is_last, ledger, report)
            except DetectionAmbiguous as e:
                logger.warning(f"Skipping section '{section.title}': {e}")
                report.skipped.append(section.title)
            except InteractionFailed as e:
                logger.warning(f"Section '{section.title}' interaction failed: {e}")
                report.skipped.append(section.title)
        logger.info(f"Sections: {len(report.opened)} opened, {len(report.closed)} closed, "
                    f"{report.fields_completed} field(s) completed, {len(report.skipped)} skipped")
        return report

    def _process(self, section: SectionDescriptor, is_last: bool, ledger: StepLedger,
                 report: SectionReport) -> None:
        content = self.driver.query_one(section.container_selector)
        if content is None:
            raise DetectionAmbiguous(f"content target {section.container_selector} not found")

        opened_here = False
        if section.is_closed:
            logger.info(f"Opening section '{section.title}'")
            self.driver.click(section.header)
            self.driver.wait(self.config["section_settle_ms"])
            opened_here = True
            report.opened.append(section.title)

        outcome = self.discovery.run(ledger, scope=content)
        report.fields_completed += outcome.fields_completed

        if opened_here and not is_last:
            logger.info(f"Closing section '{section.title}'")
            self.driver.click(section.header)
            self.driver.wait(self.config["section_settle_ms"])
            report.closed.append(section.title)


class TabSequencer:
    """Activates each tab of a tabbed sub-panel group in order and completes its pane.

    The last tab is left active. Tabs whose pane cannot be found are skipped.
    """

    def __init__(self, driver: PageDriver, discovery: DynamicDiscoveryLoop, config: Dict[str, Any]):
        self.driver = driver
        self.discovery = discovery
        self.config = config

    def run(self, tabs: List[TabDescriptor], ledger: StepLedger) -> SectionReport:
        report = SectionReport()
        for tab in tabs:
            try:
                self._process(tab, ledger, report)
            except (DetectionAmbiguous, InteractionFailed) as e:
                logger.warning(f"Skipping tab '{tab.title}': {e}")
                report.skipped.append(tab.title)
        logger.info(f"Tabs: {len(report.opened)} activated, {report.fields_completed} field(s) completed, "
                    f"{len(report.skipped)} skipped")
        return report

    def _process(self, tab: TabDescriptor, ledger: StepLedger, report: SectionReport) -> None:
        if not tab.is_active:
            logger.info(f"Activating tab '{tab.title}'")
            self.driver.click(tab.control)
            self.driver.wait(self.config["tab_settle_ms"])
            report.opened.append(tab.title)
        pane = self.driver.query_one(tab.pane_selector)
        if pane is None:
            raise DetectionAmbiguous(f"tab pane {tab.pane_selector} not found")
        outcome = self.discovery.run(ledger, scope=pane)
        report.fields_completed += outcome.fields_completed
