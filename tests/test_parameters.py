"""Tests for scenario parameter handling and redaction."""

import json

import pytest

from bvt_reporter.components.parameters import (
    MASKED_PLACEHOLDER,
    compute_parameters,
    load_test_data,
    redact_value,
    resolve_template,
)
from bvt_reporter.models.events import Pickle, Scenario


@pytest.mark.parametrize("prefix", ["secret:", "totp:", "mask:"])
@pytest.mark.parametrize("raw", ["hunter2", "", "a:b:c"])
def test_redaction_yields_fixed_placeholder(prefix, raw):
    redacted = redact_value(prefix + raw)
    assert redacted == prefix + MASKED_PLACEHOLDER
    assert redact_value(redacted) == redacted


def test_plain_values_are_not_redacted():
    assert redact_value("alice") == "alice"
    assert redact_value("my secret:value") == "my secret:value"


def test_compute_parameters_matches_example_row():
    scenario = Scenario.model_validate({
        "id": "sc",
        "examples": [{
            "tableHeader": {"id": "h", "cells": [{"value": "user"}, {"value": "role"}]},
            "tableBody": [
                {"id": "r1", "cells": [{"value": "alice"}, {"value": "admin"}]},
                {"id": "r2", "cells": [{"value": "bob"}, {"value": "viewer"}]},
            ],
        }],
    })
    pickle = Pickle(id="p", uri="f.feature", ast_node_ids=["sc", "r2"])

    assert compute_parameters(pickle, scenario) == {"user": "bob", "role": "viewer"}


def test_plain_scenario_has_no_parameters():
    pickle = Pickle(id="p", uri="f.feature", ast_node_ids=["sc"])
    assert compute_parameters(pickle, Scenario(id="sc")) == {}


def test_resolve_template_requires_every_key():
    data = {"host": "example.test"}
    assert resolve_template("https://{{host}}/login", data) == "https://example.test/login"
    assert resolve_template("{{host}}:{{port}}", data) is None


def test_load_test_data_accepts_object_and_key_value_list(tmp_path):
    as_object = tmp_path / "object.json"
    as_object.write_text(json.dumps({"user": "alice", "retries": 3}), encoding="utf-8")
    as_list = tmp_path / "list.json"
    as_list.write_text(json.dumps([{"key": "user", "value": "bob"}, {"value": "orphan"}]), encoding="utf-8")

    assert load_test_data(as_object) == {"user": "alice", "retries": "3"}
    assert load_test_data(as_list) == {"user": "bob"}


def test_load_test_data_tolerates_missing_and_malformed_files(tmp_path):
    broken = tmp_path / "broken.json"
    broken.write_text("[1, 2", encoding="utf-8")

    assert load_test_data(tmp_path / "missing.json") == {}
    assert load_test_data(broken) == {}
    assert load_test_data(None) == {}
