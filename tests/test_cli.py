"""
Tests for the command line interface
====================================
"""

import pytest
from click.testing import CliRunner

from flux import VERSION
from flux import cli as cli_module
from flux.cli import cli
from flux.system import SystemStatus
from flux.workflows import WORKFLOWS

from conftest import write_module


@pytest.fixture
def invoke(config_file, tmp_path, monkeypatch):
    monkeypatch.setattr("flux.workflows.REBOOT_REQUIRED_MARKER", tmp_path / "none")
    runner = CliRunner()

    def _invoke(*args):
        return runner.invoke(cli, ["--config", str(config_file), *args])

    return _invoke


def test_version_option(invoke):
    result = invoke("--version")
    assert result.exit_code == 0
    assert VERSION in result.output


def test_run_module(invoke, flux_home):
    write_module(flux_home / "modules", "flux-update-module.sh", "echo updating\n")
    result = invoke("run", "update")
    assert result.exit_code == 0, result.output
    assert "completed" in result.output


def test_run_passes_options_through(invoke, flux_home, tmp_path):
    out = tmp_path / "args.txt"
    write_module(
        flux_home / "modules", "flux-ssh-module.sh", f'echo "$@" > "{out}"\n'
    )
    result = invoke("run", "ssh", "--help", "-p", "2222")
    assert result.exit_code == 0, result.output
    assert out.read_text().strip() == "--help -p 2222"


def test_run_missing_module(invoke):
    result = invoke("run", "missing")
    assert result.exit_code == 1
    assert "Module not found: missing" in result.output
    assert "list-modules" in result.output


def test_run_propagates_exit_code(invoke, flux_home):
    write_module(flux_home / "modules", "flux-certs-module.sh", "exit 5\n")
    result = invoke("run", "certs")
    assert result.exit_code == 5


def test_run_workflow_unknown(invoke):
    result = invoke("run-workflow", "nope", "--yes")
    assert result.exit_code == 1
    assert "Unknown workflow: nope" in result.output
    assert "Available Workflows" in result.output


def test_run_workflow_non_interactive(invoke, flux_home):
    modules = flux_home / "modules"
    write_module(modules, "flux-update-module.sh")
    write_module(modules, "flux-certs-module.sh", "exit 1\n")
    write_module(modules, "flux-sysctl-module.sh")
    write_module(modules, "flux-ssh-module.sh")

    result = invoke("run-workflow", "essential", "--yes")

    assert result.exit_code == 1
    assert "Completed: 3" in result.output
    assert "Failed: 1" in result.output


def test_run_workflow_fail_fast(invoke, flux_home, tmp_path):
    marker = tmp_path / "sysctl-ran"
    modules = flux_home / "modules"
    write_module(modules, "flux-update-module.sh")
    write_module(modules, "flux-certs-module.sh", "exit 1\n")
    write_module(modules, "flux-sysctl-module.sh", f'touch "{marker}"\n')
    write_module(modules, "flux-ssh-module.sh")

    result = invoke("run-workflow", "essential", "-y", "--fail-fast")

    assert result.exit_code == 1
    assert "Completed: 1" in result.output
    assert not marker.exists()


def test_run_workflow_all_succeed(invoke, flux_home):
    for name in WORKFLOWS["monitoring"].modules:
        write_module(flux_home / "modules", f"flux-{name}-module.sh")
    result = invoke("run-workflow", "monitoring", "--yes")
    assert result.exit_code == 0, result.output
    assert "Completed: 2" in result.output


def test_list_modules(invoke, flux_home):
    write_module(
        flux_home / "modules",
        "flux-sysctl-module.sh",
        "# flux-sysctl-module.sh - Kernel parameter hardening module\n# Version: 2.0.0\n",
    )
    write_module(flux_home / "modules", "flux-user-module.sh", executable=False)
    result = invoke("list-modules")
    assert result.exit_code == 0
    assert "Kernel parameter hardening module" in result.output
    assert "2.0.0" in result.output
    assert "not executable" in result.output
    assert "Total modules: 2" in result.output


def test_list_modules_empty(invoke):
    result = invoke("list-modules")
    assert result.exit_code == 0
    assert "No modules found" in result.output


def test_list_workflows_names_each_workflow_once(invoke):
    result = invoke("list-workflows")
    assert result.exit_code == 0
    for name in WORKFLOWS:
        assert result.output.count(name) == 1


def test_config_command(invoke, config_file):
    result = invoke("config", "MODULE_TIMEOUT", "45")
    assert result.exit_code == 0, result.output
    assert 'MODULE_TIMEOUT="45"' in config_file.read_text()


def test_config_command_rejects_bad_value(invoke, config_file):
    before = config_file.read_text()
    result = invoke("config", "DEFAULT_SSH_PORT", "not-a-port")
    assert result.exit_code == 1
    assert "Invalid value" in result.output
    assert config_file.read_text() == before


def test_version_command(invoke, flux_home):
    write_module(flux_home / "modules", "flux-update-module.sh")
    result = invoke("version")
    assert result.exit_code == 0
    assert f"Version: {VERSION}" in result.output
    assert "update" in result.output


def test_status_command(invoke, monkeypatch):
    monkeypatch.setattr(
        cli_module, "gather_status", lambda: SystemStatus(os_name="Test Linux 1.0")
    )
    result = invoke("status")
    assert result.exit_code == 0, result.output
    assert "Test Linux 1.0" in result.output
