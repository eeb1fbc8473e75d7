"""Tests for puppet module."""

from unittest import mock

from vmprovision.models import CommandResult
from vmprovision.puppet import PuppetAgent, PuppetCA, parse_pending_requests

CA_LIST_OUTPUT = """Requested Certificates:
    web01.example.com       (SHA256)  0E:5B:7C:11
    db01.example.com        (SHA256)  AA:BB:CC:DD
Signed Certificates:
    puppet.example.com      (SHA256)  9F:11:22:33  alt names: ["DNS:puppet"]
"""


def test_parse_pending_requests():
    assert parse_pending_requests(CA_LIST_OUTPUT) == ["web01.example.com", "db01.example.com"]


def test_parse_pending_requests_none_pending():
    output = "Signed Certificates:\n    puppet.example.com  (SHA256)  9F:11\n"

    assert parse_pending_requests(output) == []


def test_parse_pending_requests_empty():
    assert parse_pending_requests("") == []


def make_shell(stdout="", exit_status=0):
    shell = mock.MagicMock()
    shell.run.return_value = CommandResult(exit_status=exit_status, stdout=stdout)
    shell.write_file.return_value = CommandResult(exit_status=0)
    return shell


def test_ca_is_pending():
    ca = PuppetCA(make_shell(CA_LIST_OUTPUT), ca_host="puppet.example.com")

    assert ca.is_pending("web01.example.com")
    assert not ca.is_pending("puppet.example.com")


def test_ca_list_failure_means_nothing_pending():
    ca = PuppetCA(make_shell(exit_status=1), ca_host="puppet.example.com")

    assert ca.pending_requests() == []


def test_ca_sign():
    shell = make_shell()

    PuppetCA(shell, ca_host="puppet.example.com").sign("web01.example.com")

    shell.run.assert_called_once_with("puppet.example.com", "puppetserver ca sign --certname web01.example.com")


def test_agent_writes_both_facts():
    shell = make_shell()

    result = PuppetAgent(shell, server="puppet").write_facts("10.0.0.50", "web", "prod")

    assert result.ok
    assert shell.write_file.call_args_list == [
        mock.call("10.0.0.50", "/etc/puppetlabs/facter/facts.d/role.txt", "role=web\n"),
        mock.call("10.0.0.50", "/etc/puppetlabs/facter/facts.d/hiera_env.txt", "hiera_env=prod\n"),
    ]


def test_agent_fact_failure_stops_early():
    shell = make_shell()
    shell.write_file.return_value = CommandResult(exit_status=1, stderr="read-only file system")

    result = PuppetAgent(shell, server="puppet").write_facts("10.0.0.50", "web", "prod")

    assert not result.ok
    assert shell.write_file.call_count == 1


def test_agent_install_formats_command():
    shell = make_shell()
    agent = PuppetAgent(shell, server="puppet.example.com", install_command="install {server} {certname}")

    agent.install("10.0.0.50", "web01.example.com")

    shell.run.assert_called_once_with("10.0.0.50", "install puppet.example.com web01.example.com")


def test_agent_set_environment():
    shell = make_shell()

    PuppetAgent(shell, server="puppet").set_environment("10.0.0.50", "staging")

    command = shell.run.call_args[0][1]
    assert command.endswith("puppet config set environment staging --section agent")
