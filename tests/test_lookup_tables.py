"""Tests for the id-keyed lookup tables."""

import pytest

from bvt_reporter.components.lookup_tables import LookupTables, ProtocolViolationError
from bvt_reporter.models.events import GherkinDocument, Pickle


def _document() -> GherkinDocument:
    return GherkinDocument.model_validate({
        "uri": "features/cart.feature",
        "feature": {
            "name": "Cart",
            "children": [
                {"background": {"id": "bg-1", "steps": [{"id": "bg-step-1", "keyword": "Given ", "text": "I am signed in"}]}},
                {"scenario": {"id": "sc-1", "name": "Add item", "steps": [{"id": "step-1", "keyword": "When ", "text": "I add"}]}},
                {
                    "rule": {
                        "id": "rule-1",
                        "name": "Limits",
                        "children": [
                            {"scenario": {"id": "sc-2", "name": "Too many", "steps": [{"id": "step-2", "keyword": "Then ", "text": "I see an error"}]}},
                        ],
                    }
                },
            ],
        },
    })


def test_document_indexes_nested_scenarios_and_steps():
    tables = LookupTables()
    tables.add_document(_document())

    assert tables.require_document("features/cart.feature").feature.name == "Cart"
    assert tables.find_scenario("sc-2").name == "Too many"
    assert tables.find_document_step("bg-step-1").text == "I am signed in"
    assert tables.find_document_step("step-2").keyword == "Then "


def test_missing_entries():
    tables = LookupTables()

    assert tables.find_pickle("pickle-1") is None
    with pytest.raises(ProtocolViolationError) as exc_info:
        tables.require_test_step("step-9")
    assert str(exc_info.value) == "testStep with id step-9 not found"
    assert exc_info.value.kind == "testStep"


def test_scenarios_and_pickle_steps_are_required_by_id():
    tables = LookupTables()
    tables.add_document(_document())
    tables.add_pickle(Pickle.model_validate({
        "id": "pickle-1",
        "uri": "features/cart.feature",
        "name": "Add item",
        "astNodeIds": ["sc-1"],
        "steps": [{"id": "pickle-step-1", "text": "I add", "astNodeIds": ["step-1"]}],
    }))

    assert tables.require_scenario("sc-1").name == "Add item"
    assert tables.require_pickle_step("pickle-step-1").text == "I add"
    with pytest.raises(ProtocolViolationError, match="scenario with id sc-9 not found"):
        tables.require_scenario("sc-9")
    with pytest.raises(ProtocolViolationError, match="pickleStep with id pickle-step-9 not found"):
        tables.require_pickle_step("pickle-step-9")
