"""
In-page dialog handling for step navigation.
Detects modal dialogs raised by the next-step control (e.g. "continue with
incomplete fields?") and answers them with the preferred option.
"""

import logging
import re
from typing import Any, Dict, List, Optional, Tuple

from .driver import PageDriver
from .errors import InteractionFailed
from .values import normalize_text

logger = logging.getLogger(__name__)

DIALOG_BUTTON_SELECTOR = 'button, a, input[type="button"], input[type="submit"]'


class DialogPoint:
    """Represents a modal dialog the navigator knows how to answer"""
    def __init__(self, name: str, description: str, detection_criteria: Dict[str, Any], options: List[Dict[str, Any]]):
        self.name = name
        self.description = description
        self.detection_criteria = detection_criteria
        self.options = options

    @property
    def preferred_option(self) -> Optional[Dict[str, Any]]:
        for option in self.options:
            if option.get("preferred", False):
                return option
        return None


class DialogHandler:
    """Detects known dialogs and clicks their preferred option"""

    def __init__(self, driver: PageDriver, custom_definitions: Optional[List[Dict[str, Any]]] = None):
        self.driver = driver
        self.dialog_points = self._initialize_dialog_points()
        existing_names = {dp.name for dp in self.dialog_points}
        for custom_def in custom_definitions or []:
            if custom_def.get("name") in existing_names:
                continue
            try:
                self.dialog_points.append(DialogPoint(**custom_def))
                existing_names.add(custom_def.get("name"))
            except TypeError as e:
                logger.error(f"Error loading custom dialog definition '{custom_def.get('name')}': {e}. "
                             f"Ensure keys match DialogPoint constructor.")

    def _initialize_dialog_points(self) -> List[DialogPoint]:
        return [
            DialogPoint(
                name="continue_with_incomplete_fields",
                description="Confirmation asked before leaving a step with missing or invalid fields",
                detection_criteria={
                    "container_selectors": ['[role="dialog"]', '.modal', '.swal2-popup', '.bootbox'],
                    "text_indicators": ["esta seguro", "estas seguro", "are you sure", "campos incompletos",
                                        "incomplete fields", "desea continuar", "do you want to continue"],
                },
                options=[
                    {
                        "name": "accept",
                        "texts": ["si, estoy seguro", "si", "yes", "continuar", "continue", "aceptar", "ok"],
                        "classes": ["swal2-confirm", "confirm"],
                        "preferred": True,
                    },
                    {
                        "name": "decline",
                        "texts": ["no", "cancelar", "cancel", "volver"],
                        "classes": ["swal2-cancel", "cancel"],
                        "preferred": False,
                    },
                ],
            )
        ]

    def detect(self) -> Optional[Tuple[DialogPoint, Any]]:
        for dialog_point in self.dialog_points:
            criteria = dialog_point.detection_criteria
            indicators = [normalize_text(t) for t in criteria.get("text_indicators", [])]
            for selector in criteria.get("container_selectors", []):
                for container in self.driver.query_all(selector):
                    if not self.driver.is_visible(container):
                        continue
                    text = normalize_text(self.driver.text_of(container))
                    if any(indicator in text for indicator in indicators):
                        logger.info(f"Detected dialog: {dialog_point.name}")
                        return dialog_point, container
        return None

    @staticmethod
    def _button_matches(option: Dict[str, Any], label: str, classes: str) -> bool:
        for text in option.get("texts", []):
            if re.match(rf"{re.escape(normalize_text(text))}\b", label):
                return True
        return any(cls in classes for cls in option.get("classes", []))

    def _find_option_button(self, container: Any, option: Dict[str, Any]) -> Optional[Any]:
        buttons = [b for b in self.driver.query_all(DIALOG_BUTTON_SELECTOR, container) if self.driver.is_visible(b)]
        # Text matches beat class matches.
        for button in buttons:
            label = normalize_text(self.driver.text_of(button) or self.driver.attribute_of(button, "value") or "")
            if self._button_matches({"texts": option.get("texts", [])}, label, ""):
                return button
        for button in buttons:
            classes = (self.driver.attribute_of(button, "class") or "").lower()
            if self._button_matches({"classes": option.get("classes", [])}, "", classes):
                return button
        return None

    def handle(self) -> Optional[str]:
        """Answers a visible known dialog. Returns the dialog name, or None if none was handled."""
        detected = self.detect()
        if detected is None:
            return None
        dialog_point, container = detected
        option = dialog_point.preferred_option
        if option is None:
            logger.warning(f"No preferred option defined for dialog '{dialog_point.name}'.")
            return None
        button = self._find_option_button(container, option)
        if button is None:
            logger.warning(f"Could not find '{option['name']}' button in dialog '{dialog_point.name}'.")
            return None
        try:
            self.driver.click(button)
        except InteractionFailed as e:
            logger.warning(f"Clicking '{option['name']}' in dialog '{dialog_point.name}' failed: {e}")
            return None
        logger.info(f"Answered dialog '{dialog_point.name}' with '{option['name']}'")
        return dialog_point.name
