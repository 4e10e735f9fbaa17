"""Tests for preset schema and step-graph validation."""

import pytest

from automate.errors import SchemaValidationError
from automate.presets import check_preset, validate_preset, validate_step_graph
from automate.presets.types import PRESET_SCHEMA_ID

from tests.conftest import make_step


def _doc(**overrides):
    doc = {
        "$schema": PRESET_SCHEMA_ID,
        "name": "backup",
        "description": "Nightly backup",
        "trigger": {"type": "manual"},
        "vars": {"target": {"type": "string", "required": True}},
        "steps": [make_step("copy", "shell", params={"command": "cp a ${target}"})],
    }
    doc.update(overrides)
    return doc


class TestValidatePreset:
    def test_valid_document(self):
        preset = validate_preset(_doc())

        assert preset.name == "backup"
        assert preset.trigger.type == "manual"
        assert preset.vars["target"].required is True
        assert preset.steps[0].on_error == "stop"

    def test_camel_case_and_reserved_keys(self):
        steps = [
            make_step("check", "if", condition="x > 0", then="a", **{"else": "b"}),
            make_step("a", onError="continue"),
            make_step("b", onError="skip"),
        ]

        preset = validate_preset(_doc(steps=steps))

        assert preset.steps[0].else_ == "b"
        assert preset.steps[1].on_error == "continue"
        assert preset.steps[2].on_error == "skip"

    def test_to_document_uses_file_keys(self):
        steps = [make_step("check", "if", condition="x", then="check", **{"else": "check"})]

        document = validate_preset(_doc(steps=steps)).to_document()

        assert document["$schema"] == PRESET_SCHEMA_ID
        assert document["steps"][0]["else"] == "check"
        assert document["steps"][0]["onError"] == "stop"

    def test_missing_name(self):
        doc = _doc()
        del doc["name"]

        with pytest.raises(SchemaValidationError) as exc_info:
            validate_preset(doc)

        assert any(e.startswith("name:") for e in exc_info.value.errors)

    def test_empty_steps(self):
        with pytest.raises(SchemaValidationError) as exc_info:
            validate_preset(_doc(steps=[]))

        assert any(e.startswith("steps:") for e in exc_info.value.errors)

    def test_bad_step_id(self):
        with pytest.raises(SchemaValidationError) as exc_info:
            validate_preset(_doc(steps=[make_step("has space")]))

        assert any(e.startswith("steps[0].id:") for e in exc_info.value.errors)

    def test_if_step_requires_condition(self):
        with pytest.raises(SchemaValidationError) as exc_info:
            validate_preset(_doc(steps=[make_step("check", "if", then="check")]))

        assert any("condition" in e for e in exc_info.value.errors)

    def test_unknown_field_rejected(self):
        with pytest.raises(SchemaValidationError):
            validate_preset(_doc(extra_field=True))

    def test_bad_on_error(self):
        with pytest.raises(SchemaValidationError):
            validate_preset(_doc(steps=[make_step("a", onError="retry")]))

    def test_unsupported_trigger(self):
        with pytest.raises(SchemaValidationError):
            validate_preset(_doc(trigger={"type": "cron"}))

    def test_bad_variable_type(self):
        with pytest.raises(SchemaValidationError):
            validate_preset(_doc(vars={"n": {"type": "integer"}}))

    def test_collects_several_errors(self):
        doc = {"steps": [{"id": "bad id"}]}

        with pytest.raises(SchemaValidationError) as exc_info:
            validate_preset(doc)

        assert len(exc_info.value.errors) >= 3

    def test_non_object(self):
        with pytest.raises(SchemaValidationError) as exc_info:
            validate_preset(["not", "a", "preset"], source="list.json")

        assert exc_info.value.source == "list.json"
        assert "list.json" in str(exc_info.value)


class TestValidateStepGraph:
    def test_valid_graph(self):
        preset = validate_preset(
            _doc(
                steps=[
                    make_step("a", "if", condition="x", then="b", **{"else": "c"}),
                    make_step("b"),
                    make_step("c"),
                ]
            )
        )

        assert validate_step_graph(preset.steps) == []

    def test_duplicate_ids(self):
        preset = validate_preset(_doc(steps=[make_step("a"), make_step("b"), make_step("a")]))

        errors = validate_step_graph(preset.steps)

        assert len(errors) == 1
        assert 'duplicate step id "a"' in errors[0]

    def test_dangling_targets(self):
        preset = validate_preset(
            _doc(steps=[make_step("a", "if", condition="x", then="nope", **{"else": "gone"})])
        )

        errors = validate_step_graph(preset.steps)

        assert len(errors) == 2
        assert '"nope"' in errors[0]
        assert '"gone"' in errors[1]

    def test_targets_on_non_if_steps_are_ignored(self):
        preset = validate_preset(_doc(steps=[make_step("a", then="missing")]))

        assert validate_step_graph(preset.steps) == []

    def test_idempotent(self):
        preset = validate_preset(
            _doc(
                steps=[
                    make_step("a", "if", condition="x", then="z"),
                    make_step("a"),
                ]
            )
        )

        first = validate_step_graph(preset.steps)
        second = validate_step_graph(preset.steps)

        assert first == second
        assert len(first) == 2


class TestCheckPreset:
    def test_graph_errors_fail_loading(self):
        doc = _doc(steps=[make_step("a"), make_step("a")])

        with pytest.raises(SchemaValidationError) as exc_info:
            check_preset(doc, source="dup.json")

        assert exc_info.value.source == "dup.json"

    def test_valid(self):
        assert check_preset(_doc()).name == "backup"
