"""
Tests for the soft deletion CLI.
"""

import json
import textwrap

import pytest
import yaml
from click.testing import CliRunner

from soft_deletion.cli import cli


@pytest.fixture
def runner():
    """Create a CLI runner."""
    return CliRunner()


@pytest.fixture
def service_module(tmp_path, monkeypatch):
    """Importable module holding a configured SoftDeletion service."""
    (tmp_path / "cli_service.py").write_text(
        textwrap.dedent(
            """
            from soft_deletion import SoftDeletion, SoftDeletionConfig

            from forum_models import Category, Forum

            soft_deletion = SoftDeletion(config=SoftDeletionConfig())
            soft_deletion.register(Category, relations={"forums": "cascade"})
            soft_deletion.register(Forum, relations={"subscriptions": "nullify"})
            """
        )
    )
    monkeypatch.syspath_prepend(str(tmp_path))
    return "cli_service"


class TestCLIBasics:
    """Test basic CLI functionality."""

    def test_cli_help(self, runner):
        result = runner.invoke(cli, ["--help"])
        assert result.exit_code == 0
        assert "reversible logical deletes" in result.output

    def test_cli_version(self, runner):
        result = runner.invoke(cli, ["--version"])
        assert result.exit_code == 0
        assert "1.0.0" in result.output

    def test_cli_no_command(self, runner):
        result = runner.invoke(cli, [])
        assert result.exit_code == 0
        assert "Soft Deletion" in result.output


class TestConfigCommands:
    """Test configuration-related commands."""

    def test_config_show(self, runner):
        result = runner.invoke(cli, ["config", "show"])
        assert result.exit_code == 0
        assert "Soft Deletion Configuration" in result.output

    def test_config_show_json(self, runner, monkeypatch):
        monkeypatch.setenv("SOFT_DELETION_DELETED_FIELD_NAME", "removed_at")

        result = runner.invoke(cli, ["config", "show", "--format", "json"])

        assert result.exit_code == 0
        data = json.loads(result.output)
        assert data["deleted_field_name"] == "removed_at"
        assert data["use_utc"] is True

    def test_config_show_yaml(self, runner):
        result = runner.invoke(cli, ["config", "show", "--format", "yaml"])

        assert result.exit_code == 0
        assert yaml.safe_load(result.output)["include_deleted_option"] == (
            "include_deleted"
        )

    def test_config_show_invalid_environment(self, runner, monkeypatch):
        monkeypatch.setenv("SOFT_DELETION_DELETED_FIELD_NAME", "not valid")

        result = runner.invoke(cli, ["config", "show"])

        assert result.exit_code == 1
        assert "Error loading configuration" in result.output

    def test_config_validate(self, runner):
        result = runner.invoke(cli, ["config", "validate"])
        assert result.exit_code == 0
        assert "Configuration is valid" in result.output
        assert "Warnings" not in result.output

    def test_config_validate_warnings(self, runner, monkeypatch):
        monkeypatch.setenv("SOFT_DELETION_USE_UTC", "false")
        monkeypatch.setenv("SOFT_DELETION_VALIDATION_METHOD", "")

        result = runner.invoke(cli, ["config", "validate"])

        assert result.exit_code == 0
        assert "Warnings" in result.output
        assert "validation is disabled" in result.output


class TestDescribeCommand:
    """Test printing descriptor tables."""

    def test_describe_declarative_base(self, runner):
        result = runner.invoke(cli, ["describe", "forum_models:Base"])

        assert result.exit_code == 0
        assert "Category marker=deleted_at" in result.output
        assert "subscriptions → Subscription nullify" in result.output
        assert "moderators → Moderator independent" in result.output
        assert "AuditNote not soft-deletable" in result.output
        assert "8 model(s) registered" in result.output

    def test_describe_service(self, runner, service_module):
        result = runner.invoke(cli, ["describe", f"{service_module}:soft_deletion"])

        assert result.exit_code == 0
        assert "forums → Forum cascade" in result.output
        assert "2 model(s) registered" in result.output

    def test_describe_descriptor_table(self, runner, service_module):
        target = f"{service_module}:soft_deletion.descriptors"

        result = runner.invoke(cli, ["describe", target])

        assert result.exit_code == 0
        assert "2 model(s) registered" in result.output

    @pytest.mark.parametrize(
        "target", ["forum_models", "forum_models:missing", "forum_models:PostRules"]
    )
    def test_describe_invalid_target(self, runner, target):
        result = runner.invoke(cli, ["describe", target])

        assert result.exit_code == 1
        assert "Error" in result.output


class TestDoctorCommand:
    """Test the diagnostics command."""

    def test_doctor_without_database(self, runner, monkeypatch):
        monkeypatch.delenv("SOFT_DELETION_DATABASE_URL", raising=False)

        result = runner.invoke(cli, ["doctor"])

        assert result.exit_code == 0
        assert "Configuration loaded successfully" in result.output
        assert "No database configured" in result.output
        assert "All systems operational" in result.output

    def test_doctor_with_database(self, runner, monkeypatch):
        monkeypatch.setenv("SOFT_DELETION_DATABASE_URL", "sqlite://")

        result = runner.invoke(cli, ["doctor"])

        assert result.exit_code == 0
        assert "Database connection successful" in result.output
        assert "0 table(s) carry a 'deleted_at' column" in result.output

    def test_doctor_reports_failures(self, runner, monkeypatch):
        monkeypatch.setenv("SOFT_DELETION_DATABASE_URL", "nosuchdialect://")

        result = runner.invoke(cli, ["doctor"])

        assert result.exit_code == 1
        assert "Database connection failed" in result.output
