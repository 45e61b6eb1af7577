import pytest
from playwright.sync_api import Error as PlaywrightError
from playwright.sync_api import TimeoutError as PlaywrightTimeoutError

from portal_autofill.driver import PlaywrightDriver
from portal_autofill.errors import InteractionFailed, SessionLost

CLOSED_MESSAGE = "Target page, context or browser has been closed"


class StubPage:
    url = "https://portal.example/Postulador.aspx"

    def __init__(self, closed=False, error=None):
        self.closed = closed
        self.error = error
        self.listeners = {}
        self.timeouts = []
        self.selectors = []
        self.found = StubLocator()

    def on(self, event, handler):
        self.listeners[event] = handler

    def is_closed(self):
        return self.closed

    def title(self):
        if self.error:
            raise self.error
        return "Postulación"

    def wait_for_timeout(self, ms):
        self.timeouts.append(ms)

    def wait_for_load_state(self, state, timeout=None):
        raise PlaywrightTimeoutError("Timeout 5000ms exceeded.")

    def locator(self, selector):
        self.selectors.append(selector)
        return self.found


class StubLocator:
    """Stands in for a Locator chain: `locator()` returns itself and `all()` the given items."""

    def __init__(self, items=(), match_index=-1):
        self.items = list(items)
        self.match_index = match_index
        self.selectors = []

    def locator(self, selector):
        self.selectors.append(selector)
        return self

    def all(self):
        return list(self.items)

    def count(self):
        return len(self.items)

    def nth(self, index):
        return self.items[index]

    def evaluate_all(self, expression, arg=None):
        return self.match_index


class StubElement:
    def __init__(self, error):
        self.error = error

    def scroll_into_view_if_needed(self, timeout=None):
        pass

    def click(self, timeout=None):
        raise self.error

    def fill(self, value, timeout=None):
        raise self.error

    def get_attribute(self, name, timeout=None):
        raise self.error


class StubDialog:
    type = "confirm"
    message = "¿Desea salir?"

    def __init__(self):
        self.accepted = False

    def accept(self):
        self.accepted = True


def test_timeout_becomes_interaction_failed():
    driver = PlaywrightDriver(StubPage())
    with pytest.raises(InteractionFailed, match="click timed out"):
        driver.click(StubElement(PlaywrightTimeoutError("Timeout 15000ms exceeded.")))


def test_error_message_keeps_first_line():
    driver = PlaywrightDriver(StubPage())
    with pytest.raises(InteractionFailed) as excinfo:
        driver.fill(StubElement(PlaywrightError("Element is not an <input>\n=== logs ===\nwaiting")), "x")
    assert str(excinfo.value) == "fill failed: Element is not an <input>"


def test_closed_target_becomes_session_lost():
    driver = PlaywrightDriver(StubPage())
    with pytest.raises(SessionLost):
        driver.click(StubElement(PlaywrightError(CLOSED_MESSAGE)))
    with pytest.raises(SessionLost):
        driver.attribute_of(StubElement(PlaywrightError(CLOSED_MESSAGE)), "id")


def test_any_error_on_closed_page_is_session_lost():
    page = StubPage()
    driver = PlaywrightDriver(page)
    page.closed = True
    with pytest.raises(SessionLost):
        driver.fill(StubElement(PlaywrightError("Element is detached")), "x")
    with pytest.raises(SessionLost):
        driver.url()


def test_reads_fall_back_to_defaults():
    driver = PlaywrightDriver(StubPage(error=PlaywrightError("Execution context was destroyed")))
    assert driver.attribute_of(StubElement(PlaywrightError("Element is detached")), "id") is None
    assert driver.title() == ""


def test_waits():
    page = StubPage()
    driver = PlaywrightDriver(page)
    driver.wait(0)
    driver.wait(250)
    driver.wait_for_settle(5000)
    assert page.timeouts == [250]


def test_native_dialogs_are_accepted():
    page = StubPage()
    PlaywrightDriver(page)
    dialog = StubDialog()
    page.listeners["dialog"](dialog)
    assert dialog.accepted

    quiet = StubPage()
    PlaywrightDriver(quiet, accept_native_dialogs=False)
    assert "dialog" not in quiet.listeners


def test_queries_return_locators():
    page = StubPage()
    field = StubLocator()
    page.found = StubLocator([field])
    driver = PlaywrightDriver(page)

    assert driver.query_all('input:not([type="hidden"])') == [field]
    assert page.selectors == ['input:not([type="hidden"])']
    assert driver.query_all("select", scope=StubLocator()) == []


def test_closest_walks_ancestor_chain():
    html, group, field = "html", "div.form-group", "input"
    driver = PlaywrightDriver(StubPage())

    chain = StubLocator([html, group, field], match_index=1)
    assert driver.closest(chain, ".form-group") == group
    assert chain.selectors == ["xpath=ancestor-or-self::*"]
    assert driver.closest(StubLocator([html, field]), "fieldset") is None


def test_preceding_siblings_nearest_first():
    driver = PlaywrightDriver(StubPage())
    element = StubLocator(["titulo", "ayuda", "etiqueta"])
    assert driver.preceding_siblings(element, 2) == ["etiqueta", "ayuda"]
    assert element.selectors == ["xpath=preceding-sibling::*"]
