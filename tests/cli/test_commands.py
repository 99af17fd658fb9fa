"""CLI command tests using Click CliRunner.

Strategy: patch get_components at each command module's import point so the
commands run against a throwaway database under tmp_path.
"""

from contextlib import ExitStack
from datetime import datetime, timedelta
from unittest.mock import patch

import pytest
from click.testing import CliRunner

from cli.config import get_paths
from cli.config_models import EngineConfig
from cli.main import cli
from observability import StructlogAnalyticsSink
from records import PayloadStore, Record, SQLiteRecordStore

COMMAND_MODULES = ["mode", "rank", "patterns_cmd", "rules", "trigger", "records_cmd"]


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture
def components(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    # Wide enough that rich never wraps ids inside table cells
    monkeypatch.setenv("COLUMNS", "200")
    model = EngineConfig.from_dict(
        {"paths": {"db_path": str(tmp_path / "engine.db")}, "retry": {"max_attempts": 1}}
    )
    config = model.to_dict()
    paths = get_paths(config)
    return {
        "config": config,
        "config_model": model,
        "paths": paths,
        "record_store": SQLiteRecordStore(paths["db_path"]),
        "payload_store": PayloadStore(paths["db_path"]),
        "analytics": StructlogAnalyticsSink(),
    }


@pytest.fixture
def invoke(runner, components):
    """Run the CLI with every command module reading the test components."""

    def _invoke(*args, input=None):
        with ExitStack() as stack:
            for name in COMMAND_MODULES:
                stack.enter_context(
                    patch(f"cli.commands.{name}.get_components", return_value=components)
                )
            return runner.invoke(cli, list(args), input=input)

    return _invoke


def add_notification_rule(invoke, name="welcome", place="home", *extra):
    result = invoke(
        "rules",
        "add",
        "--name",
        name,
        "--place",
        place,
        "--trigger",
        "enter",
        "--action",
        "notification",
        "--param",
        f"message={name}",
        *extra,
    )
    assert result.exit_code == 0, result.output
    return result.output.split("Added:")[1].strip()


class TestMode:
    def test_exhausted_budget_is_lightweight(self, invoke):
        result = invoke("mode", "--battery", "10", "--cpu", "90", "--memory-mb", "50")
        assert result.exit_code == 0
        assert "lightweight" in result.output

    def test_defaults_are_full(self, invoke):
        result = invoke("mode")
        assert result.exit_code == 0
        assert "full" in result.output

    def test_preference_override(self, invoke):
        result = invoke("mode", "--preference", "battery_saver")
        assert "lightweight" in result.output


class TestRecords:
    def test_add_and_list(self, invoke, components):
        result = invoke(
            "records",
            "add",
            "Coffee at home",
            "-t",
            "preference",
            "-i",
            "4",
            "--tags",
            "coffee,morning",
            "--location",
            "home",
        )
        assert result.exit_code == 0
        assert "Stored:" in result.output
        (record,) = components["record_store"].query()
        assert record.tags == ("coffee", "morning")
        assert record.context == {"location": "home"}

        listed = invoke("records", "list")
        assert "Coffee at home" in listed.output

    def test_list_empty(self, invoke):
        assert "No records found" in invoke("records", "list").output

    def test_rejects_bad_importance(self, invoke):
        result = invoke("records", "add", "x", "-i", "9")
        assert result.exit_code != 0


class TestRank:
    def test_no_records(self, invoke):
        assert "No records stored" in invoke("rank", "anything").output

    def test_ranks_matching_record(self, invoke, components):
        store = components["record_store"]
        store.append(Record(content="Porridge", importance=5, context={"activity": "breakfast"}))
        old = datetime.now() - timedelta(days=60)
        store.append(Record(content="Ancient note", importance=1, timestamp=old))
        result = invoke("rank", "breakfast", "--activity", "breakfast")
        assert result.exit_code == 0
        assert "Porridge" in result.output
        assert "Ancient note" not in result.output

    def test_threshold_can_exclude_everything(self, invoke, components):
        components["record_store"].append(Record(content="meh", importance=1))
        result = invoke("rank", "x", "--min-score", "0.99")
        assert "No records above the score threshold" in result.output


class TestPatterns:
    def _seed(self, components):
        for i in range(3):
            components["record_store"].append(
                Record(
                    content="I always order a flat white",
                    timestamp=datetime.now() - timedelta(days=i),
                )
            )

    def test_detects_preference(self, invoke, components):
        self._seed(components)
        result = invoke("patterns")
        assert result.exit_code == 0
        assert "preference" in result.output

    def test_save_persists(self, invoke, components):
        self._seed(components)
        result = invoke("patterns", "--save")
        assert result.exit_code == 0
        assert len(components["payload_store"].all("pattern")) == 1

    def test_nothing_found(self, invoke):
        assert "No patterns" in invoke("patterns").output


class TestRules:
    def test_add_and_list(self, invoke):
        rule_id = add_notification_rule(invoke, "welcome", "home", "--time", "18:00-23:00")
        result = invoke("rules", "list")
        assert rule_id in result.output
        assert "18:00-23:00" in result.output

    def test_invalid_rule_rejected(self, invoke):
        args = "rules add --name x --place home --trigger enter --action device_control"
        result = invoke(*args.split())
        assert result.exit_code == 1
        assert "Invalid rule" in result.output

    def test_bad_time_range(self, invoke):
        args = "rules add --name x --place home --trigger enter --action notification"
        result = invoke(*args.split(), "--param", "message=hi", "--time", "late")
        assert result.exit_code == 1

    def test_disable_enable_remove(self, invoke, components):
        rule_id = add_notification_rule(invoke)
        assert "Disabled" in invoke("rules", "disable", rule_id).output
        assert "No rules defined" in invoke("rules", "list", "--enabled-only").output
        assert "Enabled" in invoke("rules", "enable", rule_id).output
        assert "Removed" in invoke("rules", "remove", rule_id, "-y").output
        assert components["payload_store"].all("rule") == []

    def test_remove_unknown(self, invoke):
        result = invoke("rules", "remove", "nope", "-y")
        assert result.exit_code == 1
        assert "Not found" in result.output

    def test_remove_cancelled(self, invoke):
        rule_id = add_notification_rule(invoke)
        result = invoke("rules", "remove", rule_id, input="n\n")
        assert "Cancelled" in result.output


class TestTrigger:
    def test_no_rules(self, invoke):
        result = invoke("trigger", "home", "enter")
        assert result.exit_code == 0
        assert "No rules matched" in result.output

    def test_executes_matching_rule(self, invoke, components):
        add_notification_rule(invoke, "hello", "home")
        add_notification_rule(invoke, "at work", "work")
        result = invoke("trigger", "home", "enter")
        assert result.exit_code == 0
        assert "Executed 1 rule(s)" in result.output
        automation_records = [
            r for r in components["record_store"].query() if "automation" in r.tags
        ]
        assert len(automation_records) == 1
