import json

import pytest

from portal_autofill.aggregator import RunAggregator
from portal_autofill.models import CompletionRecord, ConfirmationCounters, FieldKind, PageKind, StepResult


def _record(label, completed, required=False, kind=FieldKind.TEXT):
    return CompletionRecord(label=label, kind=kind, assigned_value="x" if completed else None,
                            completed=completed, required=required,
                            failure_reason=None if completed else "no value available")


@pytest.fixture
def clock(monkeypatch):
    now = [100.0]
    monkeypatch.setattr("portal_autofill.aggregator.time.monotonic", lambda: now[0])
    return now


def test_totals_and_outcome(clock):
    aggregator = RunAggregator("https://portal.example/Postulador.aspx")
    aggregator.add_step(StepResult(index=1, title="Postulante", records=[
        _record("Nombre", True, required=True),
        _record("Correo", True, required=True, kind=FieldKind.EMAIL),
        _record("Observaciones", False, required=True),
    ]))
    aggregator.add_step(StepResult(index=2, title="Proyecto", records=[
        _record("Título", True),
        _record("Monto", True, kind=FieldKind.NUMBER),
    ]))
    clock[0] = 110.0
    result = aggregator.finalize()

    assert [s.fields_found for s in result.steps] == [3, 2]
    assert [s.fields_completed for s in result.steps] == [2, 2]
    assert result.totals.fields_found == 5
    assert result.totals.fields_completed == 4
    assert result.totals.required_incomplete == 1
    assert result.totals.success_rate == 80.0
    assert result.totals.fields_per_second == 0.4
    assert result.totals.average_step_seconds == 5.0
    assert result.elapsed_seconds == 10.0
    assert not result.succeeded
    assert result.message == "1 required field(s) left incomplete"


def test_optional_failures_do_not_fail_the_run(clock):
    aggregator = RunAggregator()
    aggregator.add_step(StepResult(index=1, title="Proyecto", records=[
        _record("Nombre", True, required=True),
        _record("Sitio web", False),
    ]))
    clock[0] = 104.0
    result = aggregator.finalize(message="Reached confirmation page")

    assert result.succeeded
    assert result.message == "Reached confirmation page"
    assert result.totals.success_rate == 50.0


def test_empty_and_aborted_runs(clock):
    assert not RunAggregator().finalize().succeeded
    assert RunAggregator().finalize().message == "No steps were processed"

    aggregator = RunAggregator()
    aggregator.add_step(StepResult(index=1, title="Postulante", records=[_record("Nombre", True)]))
    aggregator.add_error("Session lost: target closed")
    result = aggregator.finalize(aborted=True)
    assert not result.succeeded
    assert result.message == "Run aborted"
    assert result.errors == ["Session lost: target closed"]


def test_zero_elapsed_and_no_fields(clock):
    aggregator = RunAggregator()
    aggregator.add_step(StepResult(index=1, title="Introducción", page_kind=PageKind.INTRODUCTION))
    totals = aggregator.totals(0.0)
    assert totals.success_rate == 0.0
    assert totals.fields_per_second == 0.0
    assert totals.average_step_seconds == 0.0


def test_json_report(clock):
    aggregator = RunAggregator("https://portal.example/Postulador.aspx")
    aggregator.add_step(StepResult(index=1, title="Postulante", records=[_record("Correo", True, kind=FieldKind.EMAIL)]))
    aggregator.add_step(StepResult(index=2, title="Resumen", page_kind=PageKind.CONFIRMATION))
    aggregator.set_confirmation(ConfirmationCounters(correct=8, incorrect=2, success_rate=80.0))
    report = json.loads(aggregator.finalize().to_json())

    assert report["start_url"] == "https://portal.example/Postulador.aspx"
    assert report["steps"][0]["records"][0]["kind"] == "email"
    assert report["steps"][1]["page_kind"] == "confirmation"
    assert report["confirmation"]["success_rate"] == 80.0
    assert report["totals"]["fields_completed"] == 1
