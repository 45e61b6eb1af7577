"""
Field classification: turns one candidate element into a FieldDescriptor.
"""

import logging
import re
from typing import Any, Callable, Dict, List, Optional, Tuple

from .driver import PageDriver
from .models import FieldDescriptor, FieldKind
from .values import normalize_text

logger = logging.getLogger(__name__)

FIELD_SELECTOR = 'input:not([type="hidden"]), select, textarea'
LABEL_CONTAINER_SELECTOR = 'div, td, th, li, fieldset'
FORM_GROUP_SELECTOR = '.form-group, .field, fieldset, div'
FILE_CONTAINER_SELECTOR = 'div, fieldset, section'

METADATA_ATTRIBUTES = ("data-codigo", "data-original-title", "title")
NON_FIELD_INPUT_TYPES = {"hidden", "submit", "button", "image", "reset"}
INPUT_TYPE_KINDS = {
    "text": FieldKind.TEXT, "search": FieldKind.TEXT,
    "email": FieldKind.EMAIL, "tel": FieldKind.TEL,
    "number": FieldKind.NUMBER, "date": FieldKind.DATE, "datetime-local": FieldKind.DATE,
    "url": FieldKind.URL, "password": FieldKind.PASSWORD,
    "checkbox": FieldKind.CHECKBOX, "radio": FieldKind.RADIO, "file": FieldKind.FILE,
}

EMAIL_VOCABULARY = ("email", "e-mail", "correo", "mail")
REQUIRED_TOKENS = ("required", "mandatory", "obligatorio")
REQUIRED_LABEL_PATTERN = re.compile(r"\b(required|obligatorio|requerido)\b")
NUMBER_MASK_PATTERN = re.compile(r"integer|decimal|numeric")
DATE_MASK_PATTERN = re.compile(r"dd/mm/(yyyy|aaaa)")
UPLOAD_TRIGGER_TEXT = "subir archivo"


def clean_text(text: Optional[str]) -> str:
    return re.sub(r"\s+", " ", text or "").strip()


def is_meaningful_text(text: str) -> bool:
    """Rejects decorative text: numbers, symbols and all-caps banners."""
    if not (2 < len(text) < 100):
        return False
    if re.fullmatch(r"\d+", text):
        return False
    if re.fullmatch(r"[^\w\s]+", text):
        return False
    if re.fullmatch(r"[A-Z\s]+", text):
        return False
    return True


class FieldInspector:
    def __init__(self, driver: PageDriver):
        self.driver = driver
        self.label_strategies: List[Tuple[str, Callable[[Any, Dict[str, str]], Optional[str]]]] = [
            ("metadata", self._label_from_metadata),
            ("label_for", self._label_from_label_for),
            ("ancestor_label", self._label_from_ancestor),
            ("placeholder", self._label_from_placeholder),
            ("preceding_sibling", self._label_from_siblings),
            ("container", self._label_from_container),
            ("name_or_id", self._label_from_name),
        ]
        # Refinements only ever apply to plain text inputs.
        self.text_refinements: List[Tuple[Callable[[Dict[str, str], str], bool], FieldKind]] = [
            (self._looks_like_email, FieldKind.EMAIL),
            (lambda attrs, _: bool(NUMBER_MASK_PATTERN.search(attrs["inputmask"])), FieldKind.NUMBER),
            (self._looks_like_date, FieldKind.DATE),
        ]

    # ---- candidates ----
    def candidates(self, scope: Any = None) -> List[Any]:
        return [el for el in self.driver.query_all(FIELD_SELECTOR, scope) if self.driver.is_editable(el)]

    def is_interactable(self, element: Any, input_type: str = "") -> bool:
        if not self.driver.is_attached(element):
            return False
        if input_type == "file":
            return self._file_container_shown(element)
        return self.driver.is_visible(element)

    def _file_container_shown(self, element: Any) -> bool:
        # Styled upload widgets hide the native input, so only its container is judged.
        container = self.driver.closest(element, FILE_CONTAINER_SELECTOR)
        if container is None:
            return True
        return self.driver.is_visible(container) and self.driver.opacity_of(container) > 0

    # ---- descriptor ----
    def _read_attributes(self, element: Any) -> Dict[str, str]:
        attrs = {}
        for name in ("type", "name", "id", "placeholder", "class", "aria-required", "aria-label"):
            attrs[name] = self.driver.attribute_of(element, name) or ""
        attrs["inputmask"] = (self.driver.attribute_of(element, "data-inputmask") or "").lower()
        attrs["required"] = "required" if self.driver.attribute_of(element, "required") is not None else ""
        attrs["multiple"] = "multiple" if self.driver.attribute_of(element, "multiple") is not None else ""
        for name in METADATA_ATTRIBUTES:
            attrs[name] = clean_text(self.driver.attribute_of(element, name))
        return attrs

    def inspect(self, element: Any) -> Optional[FieldDescriptor]:
        tag = self.driver.tag_of(element)
        attrs = self._read_attributes(element)
        input_type = attrs["type"].lower() if tag == "input" else tag

        if tag == "input" and input_type in NON_FIELD_INPUT_TYPES:
            return None
        if not self.is_interactable(element, input_type):
            return None
        if UPLOAD_TRIGGER_TEXT in f"{attrs['placeholder']} {attrs['aria-label']}".lower():
            logger.debug("Skipping upload trigger input")
            return None

        kind = self._base_kind(tag, input_type)
        label = self.resolve_label(element, attrs, kind)
        if kind == FieldKind.TEXT:
            for predicate, refined in self.text_refinements:
                if predicate(attrs, label):
                    kind = refined
                    break

        descriptor = FieldDescriptor(
            kind=kind,
            label=label,
            required=self._is_required(element, attrs, label),
            identity=f"{label}_{kind.value}_{attrs['name'] or attrs['id']}",
            name=attrs["name"],
            element_id=attrs["id"],
            placeholder=attrs["placeholder"],
            metadata={k: attrs[k] for k in METADATA_ATTRIBUTES if attrs[k]},
            input_mask=attrs["inputmask"],
            css_class=attrs["class"],
            is_multiple=bool(attrs["multiple"]),
        )
        if kind == FieldKind.SELECT:
            descriptor.options = self.driver.options_of(element)
        logger.debug(f"Inspected field '{descriptor.label}' ({kind.value}), required={descriptor.required}")
        return descriptor

    @staticmethod
    def _base_kind(tag: str, input_type: str) -> FieldKind:
        if tag == "select":
            return FieldKind.SELECT
        if tag == "textarea":
            return FieldKind.TEXTAREA
        return INPUT_TYPE_KINDS.get(input_type or "text", FieldKind.TEXT)

    # ---- type refinements ----
    @staticmethod
    def _looks_like_email(attrs: Dict[str, str], label: str) -> bool:
        context = normalize_text(" ".join([
            label, attrs["placeholder"], attrs["name"], attrs["id"],
            attrs["data-codigo"], attrs["data-original-title"], attrs["title"],
        ]))
        return any(word in context for word in EMAIL_VOCABULARY)

    @staticmethod
    def _looks_like_date(attrs: Dict[str, str], label: str) -> bool:
        return "datepicker" in attrs["class"].lower() or bool(DATE_MASK_PATTERN.search(attrs["inputmask"]))

    # ---- label cascade ----
    def resolve_label(self, element: Any, attrs: Dict[str, str], kind: FieldKind) -> str:
        for name, strategy in self.label_strategies:
            label = strategy(element, attrs)
            if label:
                logger.debug(f"Label '{label}' resolved via {name}")
                return label
        return f"Field of type {kind.value}"

    @staticmethod
    def _label_from_metadata(element: Any, attrs: Dict[str, str]) -> Optional[str]:
        code = attrs["data-codigo"]
        if code:
            return code.replace("_", " ").title()
        return attrs["data-original-title"] or attrs["title"] or None

    def _label_from_label_for(self, element: Any, attrs: Dict[str, str]) -> Optional[str]:
        if not attrs["id"]:
            return None
        label = self.driver.query_one(f'label[for="{attrs["id"]}"]')
        return clean_text(self.driver.text_of(label)) if label is not None else None

    def _label_from_ancestor(self, element: Any, attrs: Dict[str, str]) -> Optional[str]:
        label = self.driver.closest(element, "label")
        if label is None:
            return None
        text = self.driver.text_of(label)
        value = self.driver.value_of(element)
        if value:
            text = text.replace(value, "")
        return clean_text(text) or None

    @staticmethod
    def _label_from_placeholder(element: Any, attrs: Dict[str, str]) -> Optional[str]:
        placeholder = clean_text(attrs["placeholder"])
        if not placeholder or "999999999" in placeholder:
            return None
        if re.fullmatch(r"[\d\s\-\.\(\)\+]+", placeholder):
            return None
        return placeholder

    def _label_from_siblings(self, element: Any, attrs: Dict[str, str]) -> Optional[str]:
        for sibling in self.driver.preceding_siblings(element, 3):
            text = clean_text(self.driver.text_of(sibling))
            if is_meaningful_text(text):
                return text
        return None

    def _label_from_container(self, element: Any, attrs: Dict[str, str]) -> Optional[str]:
        container = self.driver.closest(element, LABEL_CONTAINER_SELECTOR)
        if container is None:
            return None
        for line in self.driver.text_of(container).split("\n"):
            line = clean_text(line)
            if 2 < len(line) < 100 and not line.isdigit():
                return line
        return None

    @staticmethod
    def _label_from_name(element: Any, attrs: Dict[str, str]) -> Optional[str]:
        raw = attrs["name"] or attrs["id"]
        cleaned = clean_text(re.sub(r"[\W_]+", " ", raw))
        return cleaned if len(cleaned) > 2 else None

    # ---- required-ness ----
    def _is_required(self, element: Any, attrs: Dict[str, str], label: str) -> bool:
        if attrs["required"] or attrs["aria-required"].lower() == "true":
            return True
        naming = f"{attrs['name']} {attrs['class']}".lower()
        if any(token in naming for token in REQUIRED_TOKENS):
            return True
        if "*" in label or REQUIRED_LABEL_PATTERN.search(normalize_text(label)):
            return True

        container = self.driver.closest(element, FORM_GROUP_SELECTOR)
        if container is None:
            return False
        container_class = (self.driver.attribute_of(container, "class") or "").lower()
        if any(token in container_class for token in REQUIRED_TOKENS):
            return True
        container_text = normalize_text(self.driver.text_of(container))
        return "*" in container_text or "obligatorio" in container_text
