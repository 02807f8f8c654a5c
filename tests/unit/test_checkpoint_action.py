"""Unit tests for CheckpointAction."""

from __future__ import annotations

from datetime import datetime
from unittest.mock import MagicMock, patch

import pytest

from integrity_checkpoint.action import (
    BuildContext,
    BuildResult,
    CheckpointAction,
    Failed,
    InMemoryLogSink,
    Skipped,
    Succeeded,
)
from integrity_checkpoint.action.checkpoint import BUILD_CONFIGURATION, BUILD_NOT_SUCCESSFUL
from integrity_checkpoint.errors import (
    APIConnectionError,
    CommandError,
    ExpressionSyntaxError,
    ProjectNotFoundError,
)
from integrity_checkpoint.secret import Secret
from integrity_checkpoint.session import InMemoryAPIConnection, InMemoryAPIConnector
from integrity_checkpoint.settings import CheckpointSettings, ConnectionSettings

CONFIG_PATH = "#/product/main.pj"
ENV = {"JOB_NAME": "nightly", "BUILD_NUMBER": "42"}


def projectinfo(project_type="Normal"):
    return {
        "exit_code": 0,
        "work_items": {
            CONFIG_PATH: {"fields": {"fullConfigSyntax": CONFIG_PATH, "projectType": project_type}}
        },
    }


def checkpoint(revision="1.12"):
    return {
        "exit_code": 0,
        "work_items": {CONFIG_PATH: {"result": {"fields": {"resultant": {"id": revision}}}}},
    }


def make_action(connector, template="${env['JOB_NAME']}-${env['BUILD_NUMBER']}"):
    settings = CheckpointSettings(
        connection=ConnectionSettings(
            host="ims",
            port=7001,
            user_name="builder",
            password=Secret("hunter2"),
            configuration_name=CONFIG_PATH,
        ),
        label_template=template,
    )
    return CheckpointAction(settings, connector)


@pytest.fixture
def connection():
    return InMemoryAPIConnection()


@pytest.fixture
def connector(connection):
    return InMemoryAPIConnector(connection)


@pytest.fixture
def sink():
    return InMemoryLogSink()


class TestGate:
    """Only successful builds are checkpointed."""

    @pytest.mark.parametrize(
        "result",
        [BuildResult.FAILURE, BuildResult.UNSTABLE, BuildResult.ABORTED, "FAILURE", None],
    )
    def test_unsuccessful_build_skips(self, result, sink):
        connector = MagicMock()
        outcome = make_action(connector).perform(BuildContext(result, ENV), sink)

        assert outcome == Skipped(BUILD_NOT_SUCCESSFUL)
        assert outcome.ok is True
        assert connector.mock_calls == []
        assert "Skipping Integrity Checkpoint" in sink.stdout

    def test_string_success_accepted(self):
        assert BuildContext("success").succeeded is True
        assert BuildContext(BuildResult.SUCCESS).succeeded is True


class TestSuccess:
    """Happy path."""

    def test_checkpoint_succeeds(self, connector, connection, sink):
        connection.add_response("projectinfo", projectinfo())
        connection.add_response("checkpoint", checkpoint("1.12"))

        outcome = make_action(connector).perform(BuildContext(BuildResult.SUCCESS, ENV), sink)

        assert isinstance(outcome, Succeeded)
        assert outcome.ok is True
        assert outcome.label == "nightly-42"
        assert outcome.revision == "1.12"
        assert outcome.project.configuration_path == CONFIG_PATH
        assert connection.terminate_calls == 1
        assert [c.name for c in connection.executed] == ["projectinfo", "checkpoint"]
        assert connection.executed[1].option("label") == "nightly-42"
        assert "Preparing to execute si checkpoint for #/product/main.pj" in sink.stdout
        assert "with label 'nightly-42', new revision is 1.12" in sink.stdout
        assert sink.stderr == ""

    def test_label_evaluated_per_run(self, connector, connection, sink):
        action = make_action(connector)
        for number in ("1", "2"):
            connection.add_response("projectinfo", projectinfo())
            connection.add_response("checkpoint", checkpoint(f"1.{number}"))

        first = action.perform(BuildContext("SUCCESS", {"JOB_NAME": "j", "BUILD_NUMBER": "1"}), sink)
        second = action.perform(BuildContext("SUCCESS", {"JOB_NAME": "j", "BUILD_NUMBER": "2"}), sink)

        assert first.label == "j-1"
        assert second.label == "j-2"

    def test_default_template(self, connector, connection, sink):
        connection.add_response("projectinfo", projectinfo())
        connection.add_response("checkpoint", checkpoint())
        action = make_action(connector, template="")

        outcome = action.perform(BuildContext("SUCCESS", ENV), sink)

        assert outcome.label == f"nightly-42-{datetime.now():%Y_%m_%d}"

    def test_invalid_label_is_still_submitted(self, connector, connection, sink):
        connection.add_response("projectinfo", projectinfo())
        connection.add_response(
            "checkpoint", {"exit_code": 1, "message": "Invalid label: 42.nightly"}
        )
        action = make_action(connector, template="${env['BUILD_NUMBER']}.${env['JOB_NAME']}")

        outcome = action.perform(BuildContext("SUCCESS", ENV), sink)

        assert isinstance(outcome, Failed)
        assert connection.executed[-1].option("label") == "42.nightly"
        assert connection.terminate_calls == 1


class TestSkipBuildConfiguration:
    """Build configurations are not checkpointed."""

    def test_build_configuration_skipped(self, connector, connection, sink):
        connection.add_response("projectinfo", projectinfo(project_type="Build"))

        outcome = make_action(connector).perform(BuildContext("SUCCESS", ENV), sink)

        assert outcome == Skipped(BUILD_CONFIGURATION)
        assert outcome.ok is True
        assert [c.name for c in connection.executed] == ["projectinfo"]
        assert connection.terminate_calls == 1
        assert f"Cannot checkpoint a build project configuration: {CONFIG_PATH}!" in sink.stdout


class TestFailures:
    """Every failure becomes a Failed outcome and the session is closed."""

    def test_no_session(self, connection, sink):
        connector = InMemoryAPIConnector(connection, error=OSError("unreachable"))

        outcome = make_action(connector).perform(BuildContext("SUCCESS", ENV), sink)

        assert isinstance(outcome, Failed)
        assert outcome.ok is False
        assert connection.executed == []
        assert connection.terminate_calls == 0
        assert "could not be established" in sink.stderr

    def test_checkpoint_command_error(self, connector, connection, sink):
        connection.add_response("projectinfo", projectinfo())
        connection.add_response(
            "checkpoint",
            CommandError("Label exists", exit_code=128, command="si checkpoint"),
        )

        outcome = make_action(connector).perform(BuildContext("SUCCESS", ENV), sink)

        assert isinstance(outcome, Failed)
        assert isinstance(outcome.error, CommandError)
        assert outcome.reason == "Label exists"
        assert connection.terminate_calls == 1
        assert "Label exists" in sink.stderr
        assert "si checkpoint returned exit code 128" in sink.stderr

    def test_malformed_checkpoint_result(self, connector, connection, sink):
        connection.add_response("projectinfo", projectinfo())
        connection.add_response("checkpoint", {"exit_code": 0, "work_items": {}})

        outcome = make_action(connector).perform(BuildContext("SUCCESS", ENV), sink)

        assert isinstance(outcome.error, CommandError)
        assert connection.terminate_calls == 1

    def test_project_not_found(self, connector, connection, sink):
        connection.add_response("projectinfo", {"exit_code": 0, "work_items": {}})

        outcome = make_action(connector).perform(BuildContext("SUCCESS", ENV), sink)

        assert isinstance(outcome.error, ProjectNotFoundError)
        assert connection.terminate_calls == 1

    def test_expression_error(self, connector, connection, sink):
        outcome = make_action(connector, template='bad"').perform(BuildContext("SUCCESS", ENV), sink)

        assert isinstance(outcome.error, ExpressionSyntaxError)
        assert connection.executed == []
        assert connection.terminate_calls == 1
        assert "Traceback" in sink.stderr

    def test_unexpected_exception(self, connector, connection, sink):
        connection.add_response("projectinfo", projectinfo())
        action = make_action(connector)

        with patch.object(action, "_checkpoint", side_effect=KeyError("boom")):
            outcome = action.perform(BuildContext("SUCCESS", ENV), sink)

        assert isinstance(outcome, Failed)
        assert isinstance(outcome.error, KeyError)
        assert connection.terminate_calls == 1

    def test_interrupt_still_closes_session(self, connector, connection, sink):
        action = make_action(connector)

        with patch.object(action, "_checkpoint", side_effect=KeyboardInterrupt):
            with pytest.raises(KeyboardInterrupt):
                action.perform(BuildContext("SUCCESS", ENV), sink)

        assert connection.terminate_calls == 1

    def test_password_never_logged(self, connection, sink, caplog):
        connector = InMemoryAPIConnector(connection, error=APIConnectionError("denied"))
        caplog.set_level("DEBUG")

        make_action(connector).perform(BuildContext("SUCCESS", ENV), sink)

        assert "hunter2" not in caplog.text
        assert "hunter2" not in sink.stderr
