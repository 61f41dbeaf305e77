"""
Unit tests for the command line entry point.
"""

import os
from unittest.mock import patch

import pytest
import yaml

from hyperv_lab.cli import build_parser, main
from hyperv_lab.exceptions import InvalidLabPathError
from hyperv_lab.models import RenameKind, RenamePolicy
from hyperv_lab.teardown import TeardownReport


@pytest.fixture
def cli_env(monkeypatch):
    """Patch out logging setup and the real hypervisor."""
    for name in list(os.environ):
        if name.startswith("HYPERV_LAB_"):
            monkeypatch.delenv(name)
    with patch("hyperv_lab.cli.setup_logging") as setup_logging, \
            patch("hyperv_lab.cli.PowerShellHypervisor") as hypervisor_class:
        yield setup_logging, hypervisor_class


class TestParser:
    """Test cases for argument parsing."""

    def test_deploy_arguments(self):
        """Test the deploy subcommand."""
        args = build_parser().parse_args(["deploy", "C:/labs/demo", "--prefix", "lab42"])

        assert args.command == "deploy"
        assert args.path == "C:/labs/demo"
        assert args.prefix == "lab42"
        assert args.check_existing is False

    def test_prefix_and_name_are_exclusive(self):
        """Test that only one rename option is accepted."""
        with pytest.raises(SystemExit):
            build_parser().parse_args(["deploy", "demo", "--prefix", "a", "--name", "b"])

    def test_command_required(self):
        """Test that a subcommand must be given."""
        with pytest.raises(SystemExit):
            build_parser().parse_args([])


class TestMain:
    """Test cases for main()."""

    def test_deploy(self, cli_env, tmp_path):
        """Test that deploy runs the coordinator with the rename policy."""
        with patch("hyperv_lab.cli.DeploymentCoordinator") as coordinator_class:
            exit_code = main(["deploy", str(tmp_path), "--prefix", "lab42"])

        assert exit_code == 0
        coordinator_class.return_value.deploy.assert_called_once_with(
            str(tmp_path), RenamePolicy.add_prefix("lab42")
        )

    def test_deploy_with_new_name(self, cli_env, tmp_path):
        """Test the --name option."""
        with patch("hyperv_lab.cli.DeploymentCoordinator") as coordinator_class:
            main(["deploy", str(tmp_path), "--name", "web"])

        rename = coordinator_class.return_value.deploy.call_args[0][1]
        assert rename.kind is RenameKind.NEW_NAME
        assert rename.value == "web"

    def test_deploy_check_existing(self, cli_env, tmp_path):
        """Test that --check-existing turns the check on."""
        with patch("hyperv_lab.cli.DeploymentCoordinator") as coordinator_class:
            main(["deploy", str(tmp_path), "--check-existing"])

        config = coordinator_class.call_args[0][1]
        assert config.lab.check_existing_deployment is True

    def test_drop(self, cli_env, tmp_path):
        """Test that drop runs the teardown coordinator."""
        with patch("hyperv_lab.cli.TeardownCoordinator") as coordinator_class:
            coordinator_class.return_value.teardown.return_value = TeardownReport()
            exit_code = main(["drop", str(tmp_path)])

        assert exit_code == 0
        coordinator_class.return_value.teardown.assert_called_once_with(str(tmp_path))

    def test_error_exit_code(self, cli_env, tmp_path, capsys):
        """Test that SDK errors print a message and exit with 1."""
        with patch("hyperv_lab.cli.TeardownCoordinator") as coordinator_class:
            coordinator_class.return_value.teardown.side_effect = InvalidLabPathError(
                "Path 'nowhere' does not exist", lab_path="nowhere"
            )
            exit_code = main(["drop", "nowhere"])

        assert exit_code == 1
        assert "Error: [INVALID_LAB_PATH] Path 'nowhere' does not exist" in capsys.readouterr().err

    def test_config_file_and_log_level(self, cli_env, tmp_path):
        """Test that --config is loaded and --log-level overrides it."""
        setup_logging, hypervisor_class = cli_env
        config_file = tmp_path / "lab.yaml"
        config_file.write_text(yaml.dump({
            'hypervisor': {'powershell_path': 'pwsh'},
            'logging': {'level': 'WARNING'},
        }))

        with patch("hyperv_lab.cli.DeploymentCoordinator"):
            main(["--config", str(config_file), "--log-level", "DEBUG", "deploy", str(tmp_path)])

        assert setup_logging.call_args[0][0].level == "DEBUG"
        assert hypervisor_class.call_args[0][0].powershell_path == "pwsh"

    def test_missing_config_file(self, cli_env, tmp_path, capsys):
        """Test that an unreadable config file is reported, not raised."""
        exit_code = main(["--config", str(tmp_path / "missing.yaml"), "drop", str(tmp_path)])

        assert exit_code == 1
        assert "Error:" in capsys.readouterr().err
