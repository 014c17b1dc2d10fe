"""
Tests for Records Toolkit CLI module.
"""

import json
from unittest.mock import Mock, patch

import pytest
from click.testing import CliRunner

from records_toolkit.cli import _parse_as_of, cli
from records_toolkit.entities import Department, Notice


@pytest.fixture
def runner():
    """Create a CLI runner."""
    return CliRunner()


@pytest.fixture
def invoke(runner, session_factory):
    """Invoke the CLI against the test database."""

    def _invoke(*args):
        return runner.invoke(
            cli, list(args), obj={"session_factory": session_factory}
        )

    return _invoke


@pytest.fixture
def department(factory, db_session):
    tenant = factory.tenant()
    department = factory.department(tenant)
    factory.principal(tenant, department)
    db_session.commit()
    return department


class TestCLIBasics:
    """Test basic CLI functionality."""

    def test_cli_help(self, runner):
        result = runner.invoke(cli, ["--help"])
        assert result.exit_code == 0
        assert "Records Toolkit" in result.output

    def test_cli_version(self, runner):
        result = runner.invoke(cli, ["--version"])
        assert result.exit_code == 0
        assert "version" in result.output.lower()

    def test_cli_no_command(self, runner):
        result = runner.invoke(cli, [])
        assert result.exit_code == 0
        assert "Records Toolkit" in result.output


class TestConfigCommands:
    def test_config_show(self, runner):
        result = runner.invoke(cli, ["config", "show"])
        assert result.exit_code == 0
        assert "cascade_max_depth" in result.output

    def test_config_show_json(self, runner):
        result = runner.invoke(cli, ["config", "show", "--format", "json"])
        assert result.exit_code == 0
        assert json.loads(result.output)["environment"] == "test"

    def test_config_show_yaml(self, runner):
        result = runner.invoke(cli, ["config", "show", "--format", "yaml"])
        assert result.exit_code == 0
        assert "notice_retention_days: 30" in result.output

    @patch("records_toolkit.cli.get_config")
    def test_config_show_error(self, mock_get_config, runner):
        mock_get_config.side_effect = Exception("Config error")
        result = runner.invoke(cli, ["--log-level", "INFO", "config", "show"])
        assert result.exit_code == 1
        assert "Error loading configuration" in result.output


class TestGraphCommand:
    def test_graph(self, runner):
        result = runner.invoke(cli, ["graph"])
        assert result.exit_code == 0
        assert "tenant" in result.output
        assert "recursive" in result.output
        assert "vendor_id" in result.output


class TestCascadeCommands:
    def test_delete(self, invoke, department, db_session):
        result = invoke("delete", "department", department.id, "--actor", "admin-1")

        assert result.exit_code == 0
        assert "Committed" in result.output
        db_session.expire_all()
        assert department.is_deleted is True

    def test_delete_json(self, invoke, department):
        result = invoke(
            "delete", "department", department.id, "--actor", "admin", "--format", "json"
        )
        assert result.exit_code == 0
        data = json.loads(result.output)
        assert data["success"] is True
        assert data["deleted_count"] == 2

    def test_delete_requires_actor(self, invoke, department):
        result = invoke("delete", "department", department.id)
        assert result.exit_code != 0
        assert "--actor" in result.output

    def test_delete_unknown_kind(self, invoke):
        result = invoke("delete", "invoice", "x", "--actor", "admin")
        assert result.exit_code == 1
        assert "Unknown entity kind" in result.output

    def test_delete_blocked(self, invoke, factory, db_session):
        platform = factory.tenant(is_platform=True)
        db_session.commit()

        result = invoke("delete", "tenant", platform.id, "--actor", "admin")
        assert result.exit_code == 1
        assert "Rolled back" in result.output

        as_json = invoke(
            "delete", "tenant", platform.id, "--actor", "admin", "--format", "json"
        )
        assert as_json.exit_code == 1
        errors = json.loads(as_json.output)["errors"]
        assert errors[0]["code"] == "PLATFORM_TENANT_DELETE_FORBIDDEN"

    def test_delete_max_depth(self, invoke, department, db_session):
        result = invoke(
            "delete",
            "department",
            department.id,
            "--actor",
            "admin",
            "--max-depth",
            "1",
            "--format",
            "json",
        )
        assert result.exit_code == 1
        assert json.loads(result.output)["errors"][0]["code"] == "MAX_DEPTH_EXCEEDED"
        db_session.expire_all()
        assert department.is_deleted is False

    def test_restore(self, invoke, department, db_session):
        invoke("delete", "department", department.id, "--actor", "admin")
        result = invoke("restore", "department", department.id, "--format", "json")

        assert result.exit_code == 0
        assert json.loads(result.output)["restored_count"] == 2
        db_session.expire_all()
        assert department.is_deleted is False

    def test_restore_blocked_by_owner(self, invoke, factory, db_session):
        tenant = factory.tenant()
        department = factory.department(tenant)
        notice = factory.notice(tenant, department)
        db_session.commit()
        invoke("delete", "department", department.id, "--actor", "admin")

        blocked = invoke("restore", "notice", notice.id, "--format", "json")
        assert blocked.exit_code == 1
        assert json.loads(blocked.output)["errors"][0]["code"] == "ANCESTOR_DELETED"

        allowed = invoke("restore", "notice", notice.id, "--no-validate-parents")
        assert allowed.exit_code == 0
        db_session.expire_all()
        assert Notice.query_active(db_session).count() == 1
        assert Department.query_deleted(db_session).count() == 1


class TestReportCommand:
    def test_report_empty(self, invoke):
        result = invoke("report")
        assert result.exit_code == 0
        assert "No soft deletions" in result.output

    def test_report(self, invoke, department):
        invoke("delete", "department", department.id, "--actor", "admin")
        result = invoke("report", "--days", "7")
        assert result.exit_code == 0
        assert "principal" in result.output
        assert "Total records" in result.output


class TestPurgeCommands:
    @pytest.fixture
    def expired_notice(self, factory, db_session):
        notice = factory.soft_deleted(factory.notice(factory.tenant()), days_ago=45)
        db_session.commit()
        return notice.id

    def test_policies(self, runner):
        result = runner.invoke(cli, ["purge", "policies"])
        assert result.exit_code == 0
        assert "never" in result.output
        assert "notice" in result.output

    def test_preview(self, invoke, expired_notice, db_session):
        result = invoke("purge", "preview", "--format", "json")
        assert result.exit_code == 0
        data = json.loads(result.output)
        assert data["dry_run"] is True
        assert data["total_purged"] == 1
        assert Notice.query_all(db_session).count() == 1

    def test_run(self, invoke, expired_notice, db_session):
        result = invoke("purge", "run")
        assert result.exit_code == 0
        assert "Retention Sweep" in result.output
        db_session.expire_all()
        assert Notice.query_all(db_session).count() == 0

    def test_run_as_of(self, invoke, factory, db_session):
        factory.soft_deleted(factory.notice(factory.tenant()), days_ago=1)
        db_session.commit()

        result = invoke("purge", "run", "--as-of", "2999-01-01T00:00:00Z", "--format", "json")
        assert result.exit_code == 0
        assert json.loads(result.output)["total_purged"] == 1

    def test_run_invalid_as_of(self, invoke):
        result = invoke("purge", "run", "--as-of", "not a date")
        assert result.exit_code != 0
        assert "Invalid date" in result.output

    @patch("records_toolkit.cli.PurgeService")
    def test_run_failure(self, mock_service_class, invoke):
        mock_service_class.return_value.purge.side_effect = RuntimeError("db gone")
        result = invoke("purge", "run")
        assert result.exit_code == 1
        assert "rolled back" in result.output

    @patch("records_toolkit.cli.time.sleep", side_effect=KeyboardInterrupt)
    @patch("records_toolkit.cli.PurgeScheduler")
    def test_serve(self, mock_scheduler_class, mock_sleep, invoke):
        scheduler = Mock()
        scheduler.interval_hours = 6
        scheduler.is_running.return_value = True
        mock_scheduler_class.return_value = scheduler

        result = invoke("purge", "serve", "--interval-hours", "6", "--no-run-on-start")

        assert result.exit_code == 0
        _, kwargs = mock_scheduler_class.call_args
        assert kwargs["interval_hours"] == 6
        assert kwargs["run_on_start"] is False
        scheduler.start.assert_called_once()
        scheduler.stop.assert_called_once()


def test_parse_as_of():
    assert _parse_as_of(None) is None
    parsed = _parse_as_of("2026-03-01T12:00:00+02:00")
    assert parsed.tzinfo is None
    assert parsed.hour == 10
