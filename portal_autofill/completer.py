"""
Field completion: applies a value to an element according to its kind.

`FieldCompleter.complete` returns the applied value, returns NOT_A_FIELD for
file inputs that are not user fields, and raises FieldUnresolved or
InteractionFailed otherwise.
"""

import logging
import re
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Set, Tuple, Union

from .driver import PageDriver
from .errors import FieldUnresolved, InteractionFailed
from .models import FieldDescriptor, FieldKind, OptionDescriptor, TEXT_LIKE_KINDS
from .values import ValueResolver, normalize_text

logger = logging.getLogger(__name__)


class _NotAField:
    def __repr__(self) -> str:
        return "NOT_A_FIELD"


NOT_A_FIELD = _NotAField()

UNCHECKED_WORDS = {"false", "0", "no", "off"}


# ========== SELECT STRATEGY ==========
PLACEHOLDER_OPTION_PATTERN = re.compile(
    r"seleccion|elija|escoja|choose|select|ninguno|\bnone\b|please|por favor|--"
)

# (name, context predicate, option keywords); first matching family wins.
SELECT_KEYWORD_FAMILIES: List[Tuple[str, Callable[[str], bool], Tuple[str, ...]]] = [
    ("region",
     lambda ctx: "region" in ctx,
     ("metropolitana", "santiago", "valparaiso", "biobio", "araucania")),
    ("application_area",
     lambda ctx: "sector" in ctx and ("aplicacion" in ctx or "application" in ctx),
     ("tecnologia", "innovacion", "medio ambiente", "sustentabilidad", "digital", "technology")),
    ("impact_area",
     lambda ctx: "sector" in ctx and ("impacto" in ctx or "impact" in ctx),
     ("economico", "social", "ambiental", "territorial", "economic", "environmental")),
    ("organization_size",
     lambda ctx: "tamano" in ctx or "size" in ctx,
     ("mediana", "pequena", "grande", "medium", "small", "large")),
    ("document_type",
     lambda ctx: ("tipo" in ctx and "documento" in ctx) or "document type" in ctx,
     ("cedula", "identidad", "identity")),
]


class SelectResolver:
    def __init__(self, families=None):
        self.families = families if families is not None else SELECT_KEYWORD_FAMILIES

    @staticmethod
    def is_valid_option(option: OptionDescriptor) -> bool:
        text = normalize_text(option.text)
        if option.disabled or not option.value.strip() or not text:
            return False
        return not PLACEHOLDER_OPTION_PATTERN.search(text)

    def choose(self, descriptor: FieldDescriptor) -> Tuple[Optional[OptionDescriptor], bool]:
        """Returns (option to commit, whether it is a real choice)."""
        options = descriptor.options
        valid = [o for o in options if self.is_valid_option(o)]
        if not valid:
            return (options[0] if options else None), False

        context = normalize_text(" ".join([descriptor.label, descriptor.metadata.get("data-codigo", "")]).replace("_", " "))
        for name, matches_context, keywords in self.families:
            if not matches_context(context):
                continue
            for option in valid:
                option_text = normalize_text(option.text)
                if any(keyword in option_text for keyword in keywords):
                    logger.debug(f"Select '{descriptor.label}' resolved by '{name}' family: {option.text}")
                    return option, True
            break
        return valid[0], True


# ========== FILE STRATEGY ==========
ATTACH_VOCABULARY = ("subir", "adjuntar", "archivo", "upload", "attach", "examinar", "browse")
ATTACHED_PHRASES = ("archivo adjunto:", "fecha subida", "fecha de subida", "attached file:")
ATTACHED_FILE_SELECTOR = 'a[href*=".pdf"], a[href*=".docx"], a[href*=".xlsx"], [class*="file-name"]'
AFFORDANCE_SELECTOR = 'button, a, label, span'
FILE_GROUP_SELECTOR = '.form-group, .field, fieldset, div'


class FileResolver:
    def __init__(self, driver: PageDriver, config: Dict[str, Any]):
        self.driver = driver
        self.config = config
        self.attached: Set[str] = set()

    def has_attach_affordance(self, element: Any) -> bool:
        element_id = self.driver.attribute_of(element, "id")
        if element_id:
            label = self.driver.query_one(f'label[for="{element_id}"]')
            if label is not None and self._mentions_attach(self.driver.text_of(label)):
                return True
        container = self.driver.closest(element, FILE_GROUP_SELECTOR)
        if container is None:
            return False
        for candidate in self.driver.query_all(AFFORDANCE_SELECTOR, container):
            if self.driver.is_displayed(candidate) and self._mentions_attach(self.driver.text_of(candidate)):
                return True
        return False

    @staticmethod
    def _mentions_attach(text: str) -> bool:
        normalized = normalize_text(text)
        return any(word in normalized for word in ATTACH_VOCABULARY)

    def already_attached(self, element: Any) -> bool:
        if self.driver.has_files(element):
            return True
        container = self.driver.closest(element, FILE_GROUP_SELECTOR)
        if container is not None:
            container_text = normalize_text(self.driver.text_of(container))
            if any(phrase in container_text for phrase in ATTACHED_PHRASES):
                return True
            if self.driver.query_all(ATTACHED_FILE_SELECTOR, container):
                return True
        page_text = normalize_text(self.driver.page_text())
        return any(phrase in page_text for phrase in ATTACHED_PHRASES)

    def _pick_sample(self) -> Optional[Path]:
        samples_dir = Path(self.config["sample_files_dir"])
        for name in self.config["sample_file_names"]:
            candidate = samples_dir / name
            if candidate.is_file():
                return candidate
        return None

    def attach(self, element: Any, descriptor: FieldDescriptor) -> Union[str, _NotAField]:
        if not self.has_attach_affordance(element):
            logger.info(f"File input '{descriptor.label}' has no attach control, not a user field.")
            return NOT_A_FIELD
        if descriptor.identity in self.attached:
            logger.info(f"File for '{descriptor.label}' already attached during this run.")
            return "already attached"
        if self.already_attached(element):
            logger.info(f"Page already shows an attached file for '{descriptor.label}'.")
            self.attached.add(descriptor.identity)
            return "already attached"

        sample = self._pick_sample()
        if sample is None:
            raise FieldUnresolved("no sample file available")
        self.driver.set_files(element, str(sample))
        self.driver.wait(self.config["upload_settle_ms"])
        self.attached.add(descriptor.identity)
        logger.info(f"Attached {sample.name} to '{descriptor.label}'")
        return sample.name


# ========== COMPLETER ==========
class FieldCompleter:
    def __init__(self, driver: PageDriver, value_resolver: ValueResolver, config: Dict[str, Any],
                 select_resolver: Optional[SelectResolver] = None,
                 file_resolver: Optional[FileResolver] = None):
        self.driver = driver
        self.value_resolver = value_resolver
        self.config = config
        self.select_resolver = select_resolver or SelectResolver()
        self.file_resolver = file_resolver or FileResolver(driver, config)
        self.handlers: Dict[FieldKind, Callable[[Any, FieldDescriptor], Union[str, _NotAField]]] = {
            FieldKind.NUMBER: self._complete_number,
            FieldKind.DATE: self._complete_date,
            FieldKind.CHECKBOX: self._complete_checkbox,
            FieldKind.RADIO: self._complete_radio,
            FieldKind.SELECT: self._complete_select,
            FieldKind.FILE: self.file_resolver.attach,
        }
        for kind in TEXT_LIKE_KINDS:
            self.handlers[kind] = self._complete_text

    def complete(self, element: Any, descriptor: FieldDescriptor) -> Union[str, _NotAField]:
        handler = self.handlers.get(descriptor.kind, self._complete_text)
        return handler(element, descriptor)

    def _resolve(self, descriptor: FieldDescriptor) -> str:
        value = self.value_resolver.resolve(descriptor)
        if value is None or value == "":
            raise FieldUnresolved("no value available")
        return value

    def _complete_text(self, element: Any, descriptor: FieldDescriptor) -> str:
        value = self._resolve(descriptor)
        self.driver.fill(element, "")
        self.driver.fill(element, value)
        return value

    def _complete_number(self, element: Any, descriptor: FieldDescriptor) -> str:
        digits = re.sub(r"\D", "", self._resolve(descriptor))
        if not digits:
            raise FieldUnresolved("no value available")
        if descriptor.input_mask:
            if "decimal" in descriptor.input_mask:
                digits += ",00"
            self.driver.type_text(element, digits)
        else:
            self.driver.fill(element, "")
            self.driver.fill(element, digits)
        return digits

    def _complete_date(self, element: Any, descriptor: FieldDescriptor) -> str:
        if descriptor.input_mask or "datepicker" in descriptor.css_class.lower():
            value = self.config["masked_date_literal"]
            self.driver.type_text(element, value)
        else:
            value = self.config["date_literal"]
            self.driver.fill(element, value)
        return value

    def _complete_checkbox(self, element: Any, descriptor: FieldDescriptor) -> str:
        value = self.value_resolver.resolve(descriptor)
        target = not (value is not None and normalize_text(value) in UNCHECKED_WORDS)
        if self.driver.is_checked(element) != target:
            self.driver.click(element)
            if self.driver.is_checked(element) != target:
                self.driver.set_checked(element, target)
            if self.driver.is_checked(element) != target:
                raise InteractionFailed(f"checkbox '{descriptor.label}' did not reach state {target}")
        return "true" if target else "false"

    def radio_group(self, name: str) -> List[Any]:
        if not name:
            return []
        return self.driver.query_all(f'input[type="radio"][name="{name}"]')

    def _complete_radio(self, element: Any, descriptor: FieldDescriptor) -> str:
        if self.driver.is_checked(element):
            return descriptor.label
        group = self.radio_group(descriptor.name)
        if any(self.driver.is_checked(radio) for radio in group):
            return "already selected"

        label = None
        if descriptor.element_id:
            label = self.driver.query_one(f'label[for="{descriptor.element_id}"]')
        if label is None:
            label = self.driver.closest(element, "label")
        attempts = [lambda: self.driver.click(label)] if label is not None else []
        attempts.append(lambda: self.driver.click(element))
        attempts.append(lambda: self.driver.set_checked(element, True))
        for attempt in attempts:
            try:
                attempt()
            except InteractionFailed as e:
                logger.debug(f"Radio attempt for '{descriptor.label}' failed: {e}")
            if self.driver.is_checked(element):
                self._settle_conditional(element)
                return descriptor.label

        for radio in group:
            if self._same_radio(radio, element, descriptor) or not self.driver.is_editable(radio):
                continue
            try:
                self.driver.set_checked(radio, True)
            except InteractionFailed as e:
                logger.debug(f"Group fallback for '{descriptor.label}' failed: {e}")
                continue
            if self.driver.is_checked(radio):
                logger.info(f"Radio '{descriptor.label}' selected through first option of its group")
                self._settle_conditional(radio)
                return "group fallback"
            break
        raise FieldUnresolved("radio could not be selected", assigned="not selected")

    def _same_radio(self, radio: Any, element: Any, descriptor: FieldDescriptor) -> bool:
        # Locator handles are never identical objects, so fall back to the id
        if radio is element:
            return True
        return bool(descriptor.element_id) and self.driver.attribute_of(radio, "id") == descriptor.element_id

    def _settle_conditional(self, element: Any) -> None:
        if self.driver.attribute_of(element, "data-condicional") is not None:
            self.driver.wait(self.config["radio_settle_ms"])

    def _complete_select(self, element: Any, descriptor: FieldDescriptor) -> str:
        option, is_real_choice = self.select_resolver.choose(descriptor)
        if option is None:
            raise FieldUnresolved("select has no options")
        self.driver.select_option(element, option.value)
        if not is_real_choice:
            raise FieldUnresolved("no valid option", assigned=option.text)
        return option.text
