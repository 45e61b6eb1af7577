import logging

import pytest

from fake_dom import E, FakePage, accordion, tab_group, text_field

from portal_autofill.completer import FieldCompleter
from portal_autofill.discovery import DynamicDiscoveryLoop, StepLedger
from portal_autofill.inspector import FieldInspector
from portal_autofill.sections import SectionSequencer, TabSequencer
from portal_autofill.structure import StructureDetector


@pytest.fixture
def make_sequencer(config, resolver):
    def _make(page):
        loop = DynamicDiscoveryLoop(page, FieldInspector(page), FieldCompleter(page, resolver, config), config)
        return SectionSequencer(page, loop, config)
    return _make


@pytest.fixture
def make_tab_sequencer(config, resolver):
    def _make(page):
        loop = DynamicDiscoveryLoop(page, FieldInspector(page), FieldCompleter(page, resolver, config), config)
        return TabSequencer(page, loop, config)
    return _make


def _two_closed_sections():
    return [
        *accordion("antecedentes", "Antecedentes del proyecto",
                   text_field("titulo", "Título del proyecto", required=True),
                   text_field("monto", "Monto solicitado")),
        *accordion("equipo", "Equipo de trabajo",
                   text_field("lider", "Nombre del líder"),
                   text_field("telefono", "Teléfono de contacto")),
    ]


# ---- enumeration ----
def test_enumerates_first_level_sections():
    page = FakePage(_two_closed_sections())
    sections = StructureDetector(page).enumerate_sections()

    assert [s.title for s in sections] == ["Antecedentes del proyecto", "Equipo de trabajo"]
    assert [s.container_selector for s in sections] == ["#antecedentes", "#equipo"]
    assert all(s.is_closed and not s.is_open for s in sections)
    assert not any(s.has_nested_sections for s in sections)


def test_open_section_state():
    page = FakePage(accordion("datos", "Datos del postulante", text_field("rut", "RUT"), is_open=True))
    (section,) = StructureDetector(page).enumerate_sections()
    assert section.is_open
    assert not section.is_closed


def test_ambiguous_state_is_excluded():
    page = FakePage([
        E("a", text="Antecedentes del proyecto", href="#antecedentes", data_toggle="collapse",
          class_="collapsed", aria_expanded="true"),
        E("div", id="antecedentes", class_="collapse"),
        E("a", text="Equipo de trabajo", href="#equipo", data_toggle="collapse", class_="collapsed"),
        E("div", id="equipo", class_="collapse"),
    ])
    assert StructureDetector(page).enumerate_sections() == []


def test_navigation_like_headers_are_excluded():
    page = FakePage([
        *accordion("paso2", "Paso 2"),
        *accordion("generales", "DATOS GENERALES"),
        *accordion("x", "Ok"),
        *accordion("siguiente", "Ir a la página siguiente"),
        *accordion("presupuesto", "Presupuesto detallado"),
    ])
    sections = StructureDetector(page).enumerate_sections()
    assert [s.title for s in sections] == ["Presupuesto detallado"]


def test_nested_headers_belong_to_their_parent():
    inner = accordion("item1", "Detalle del ítem", text_field("glosa", "Glosa"))
    page = FakePage(accordion("presupuesto", "Presupuesto detallado", *inner))
    sections = StructureDetector(page).enumerate_sections()

    assert [s.title for s in sections] == ["Presupuesto detallado"]
    assert sections[0].has_nested_sections


def test_target_from_aria_controls():
    page = FakePage([
        E("button", text="Documentos adjuntos", data_toggle="collapse", aria_controls="docs",
          class_="collapsed", aria_expanded="false"),
        E("div", id="docs", class_="collapse", displayed=False),
    ])
    (section,) = StructureDetector(page).enumerate_sections()
    assert section.container_selector == "#docs"


def test_card_header_div_is_a_section():
    page = FakePage([E("div",
                       E("div", text="Datos del postulante", class_="card-header collapsed",
                         data_bs_toggle="collapse", data_bs_target="#datos", aria_expanded="false"),
                       E("div", text_field("rut", "RUT"), id="datos", class_="collapse", displayed=False),
                       class_="card")])
    (section,) = StructureDetector(page).enumerate_sections()
    assert section.title == "Datos del postulante"
    assert section.container_selector == "#datos"
    assert section.is_closed


def test_header_without_content_target_is_logged(caplog):
    page = FakePage([E("a", text="Antecedentes generales", data_toggle="collapse",
                       class_="collapsed", aria_expanded="false")])
    with caplog.at_level(logging.DEBUG, logger="portal_autofill.structure"):
        assert StructureDetector(page).enumerate_sections() == []
    assert "Antecedentes generales" in caplog.text
    assert "no href, data-target or aria-controls" in caplog.text


# ---- sequencing ----
def test_sections_opened_in_order_and_all_but_last_closed(make_sequencer):
    page = FakePage(_two_closed_sections())
    sections = StructureDetector(page).enumerate_sections()
    ledger = StepLedger()
    report = make_sequencer(page).run(sections, ledger)

    assert report.opened == ["Antecedentes del proyecto", "Equipo de trabajo"]
    assert report.closed == ["Antecedentes del proyecto"]
    assert report.fields_completed == 4
    assert page.find("#titulo").value == "Proyecto de innovación"
    assert page.find("#lider").value == "Ana Pérez"
    assert not page.find("#antecedentes").displayed
    assert page.find("#equipo").displayed


def test_open_section_is_not_toggled(make_sequencer):
    page = FakePage(accordion("datos", "Datos del postulante",
                              text_field("rut", "RUT del postulante"), is_open=True))
    sections = StructureDetector(page).enumerate_sections()
    report = make_sequencer(page).run(sections, StepLedger())

    assert report.opened == []
    assert report.closed == []
    assert report.fields_completed == 1
    assert page.clicks == []


def test_missing_content_target_is_skipped(make_sequencer):
    page = FakePage([
        E("a", text="Sección fantasma", href="#fantasma", data_toggle="collapse",
          class_="collapsed", aria_expanded="false"),
        *accordion("equipo", "Equipo de trabajo", text_field("lider", "Nombre del líder")),
    ])
    sections = StructureDetector(page).enumerate_sections()
    report = make_sequencer(page).run(sections, StepLedger())

    assert report.skipped == ["Sección fantasma"]
    assert report.opened == ["Equipo de trabajo"]
    assert report.fields_completed == 1


def test_unresolved_fields_do_not_count_as_completed(make_sequencer):
    page = FakePage(accordion("obs", "Observaciones generales",
                              text_field("titulo", "Título del proyecto"),
                              text_field("comentario", "Comentario adicional")))
    sections = StructureDetector(page).enumerate_sections()
    ledger = StepLedger()
    report = make_sequencer(page).run(sections, ledger)

    assert report.fields_completed == 1
    assert [r.completed for r in ledger.records] == [True, False]


# ---- tabs ----
def _budget_tabs():
    return tab_group([
        ("rrhh", "Recursos humanos", [text_field("lider", "Nombre del líder")]),
        ("operacion", "Gastos de operación", [text_field("telefono", "Teléfono de contacto")]),
    ])


def test_enumerates_tabs_with_active_state():
    page = FakePage(_budget_tabs())
    tabs = StructureDetector(page).enumerate_tabs()
    assert [(t.title, t.pane_selector, t.is_active) for t in tabs] == [
        ("Recursos humanos", "#rrhh", True),
        ("Gastos de operación", "#operacion", False),
    ]


def test_tabs_activated_in_order_and_each_pane_completed(make_tab_sequencer):
    page = FakePage(_budget_tabs())
    tabs = StructureDetector(page).enumerate_tabs()
    report = make_tab_sequencer(page).run(tabs, StepLedger())

    assert report.opened == ["Gastos de operación"]
    assert report.fields_completed == 2
    assert page.find("#lider").value == "Ana Pérez"
    assert page.find("#telefono").value == "+56 9 1234 5678"
    assert page.find("#operacion").displayed
    assert not page.find("#rrhh").displayed


def test_tab_without_pane_is_skipped(make_tab_sequencer):
    page = FakePage([
        E("ul", E("li", E("a", text="Resumen", href="#resumen", data_toggle="tab")), class_="nav nav-tabs"),
        *_budget_tabs(),
    ])
    tabs = StructureDetector(page).enumerate_tabs()
    report = make_tab_sequencer(page).run(tabs, StepLedger())

    assert report.skipped == ["Resumen"]
    assert report.fields_completed == 2
