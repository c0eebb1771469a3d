"""Unit tests for the OCI CLI client (subprocess runner replaced)."""
import json
import subprocess
from pathlib import Path

import pytest

from datasafe_ops.cloud.oci_client import OciCliClient
from datasafe_ops.config.config import OciConfig
from datasafe_ops.exceptions import CliInvocationError, CliNotFoundError, OperationalError, ResolutionError
from datasafe_ops.monitoring.redaction import register_secret

TARGET = {
    "id": "ocid1.datasafetargetdatabase.oc1..t1",
    "display-name": "T1",
    "lifecycle-state": "ACTIVE",
    "connection-option": {
        "connection-type": "ONPREM_CONNECTOR",
        "on-prem-connector-id": "ocid1.datasafeonpremconnector.oc1..ca",
    },
}


class FakeRunner:
    """Records commands and replays queued (returncode, stdout, stderr) results."""

    def __init__(self, *results):
        self.results = list(results)
        self.commands = []

    def __call__(self, cmd, **kwargs):
        self.commands.append(cmd)
        assert kwargs["capture_output"] is True
        assert kwargs["check"] is False
        result = self.results.pop(0) if self.results else (0, "", "")
        if isinstance(result, BaseException):
            raise result
        code, stdout, stderr = result
        return subprocess.CompletedProcess(cmd, code, stdout=stdout, stderr=stderr)


def _ok(payload) -> tuple:
    return 0, json.dumps(payload), ""


def _client(runner, **config) -> OciCliClient:
    return OciCliClient(OciConfig(**config), runner=runner, sleep=lambda _: None)


class TestInvocation:
    def test_base_command_options(self):
        runner = FakeRunner(_ok({"data": []}))
        client = _client(runner, profile="DEFAULT", region="eu-zurich-1", config_file="/tmp/oci.cfg")
        client.list_connectors("ocid1.compartment.oc1..c")
        assert runner.commands[0][:7] == [
            "oci", "--config-file", "/tmp/oci.cfg", "--profile", "DEFAULT", "--region", "eu-zurich-1",
        ]

    def test_missing_executable(self):
        runner = FakeRunner(FileNotFoundError("oci"), FileNotFoundError("oci"), FileNotFoundError("oci"))
        with pytest.raises(CliNotFoundError):
            _client(runner).get_target("ocid1.datasafetargetdatabase.oc1..t1")

    def test_timeout(self):
        runner = FakeRunner(subprocess.TimeoutExpired("oci", 10))
        with pytest.raises(OperationalError, match="timed out"):
            _client(runner, read_retries=0).get_target("ocid1.datasafetargetdatabase.oc1..t1")

    def test_nonzero_exit_masks_secrets(self):
        register_secret("Sup3r-Secret")
        runner = FakeRunner((1, "", "ServiceError: bad password Sup3r-Secret"))
        with pytest.raises(CliInvocationError) as exc_info:
            _client(runner).refresh_target("ocid1.datasafetargetdatabase.oc1..t1")
        assert "Sup3r-Secret" not in str(exc_info.value)
        assert "[hidden]" in exc_info.value.stderr

    def test_invalid_json(self):
        runner = FakeRunner((0, "not json", ""))
        with pytest.raises(CliInvocationError, match="invalid JSON"):
            _client(runner).refresh_target("ocid1.datasafetargetdatabase.oc1..t1")

    def test_reads_are_retried(self):
        runner = FakeRunner((2, "", "TooManyRequests"), _ok({"data": TARGET}))
        target = _client(runner, read_retries=2).get_target(TARGET["id"])
        assert target.display_name == "T1"
        assert len(runner.commands) == 2

    def test_mutations_are_not_retried(self):
        runner = FakeRunner((2, "", "InternalError"), _ok({}))
        with pytest.raises(CliInvocationError):
            _client(runner, read_retries=2).delete_target(TARGET["id"])
        assert len(runner.commands) == 1


class TestTargets:
    def test_list_single_state_passed_to_cli(self):
        runner = FakeRunner(_ok({"data": [TARGET]}))
        targets = _client(runner).list_targets("ocid1.compartment.oc1..c", ["active"])
        cmd = runner.commands[0]
        assert cmd[cmd.index("--lifecycle-state") + 1] == "ACTIVE"
        assert cmd[cmd.index("--compartment-id-in-subtree") + 1] == "true"
        assert targets[0].connector_id == "ocid1.datasafeonpremconnector.oc1..ca"

    def test_list_several_states_filtered_locally(self):
        other = dict(TARGET, id="ocid1.datasafetargetdatabase.oc1..t2", **{"lifecycle-state": "DELETED"})
        runner = FakeRunner(_ok({"data": [TARGET, other]}))
        targets = _client(runner).list_targets("ocid1.compartment.oc1..c", ["ACTIVE", "NEEDS_ATTENTION"])
        assert "--lifecycle-state" not in runner.commands[0]
        assert [t.id for t in targets] == [TARGET["id"]]

    def test_update_connection_payload(self):
        runner = FakeRunner(_ok({}))
        _client(runner).update_target_connection(
            TARGET["id"], "ocid1.datasafeonpremconnector.oc1..cb", wait_for_states=("SUCCEEDED", "FAILED")
        )
        cmd = runner.commands[0]
        assert json.loads(cmd[cmd.index("--connection-option") + 1]) == {
            "connectionType": "ONPREM_CONNECTOR",
            "onPremConnectorId": "ocid1.datasafeonpremconnector.oc1..cb",
        }
        assert "--force" in cmd
        assert cmd[-4:] == ["--wait-for-state", "SUCCEEDED", "--wait-for-state", "FAILED"]

    def test_update_credentials_by_file_reference(self):
        runner = FakeRunner(_ok({}))
        _client(runner).update_target_credentials(TARGET["id"], Path("/tmp/cred.json"))
        cmd = runner.commands[0]
        assert cmd[cmd.index("--credentials") + 1] == "file:///tmp/cred.json"
        assert "--wait-for-state" not in cmd

    def test_delete_dependent_uses_kind_id_flag(self):
        runner = FakeRunner(_ok({}))
        _client(runner).delete_dependent("audit-trail", "ocid1.audittrail.oc1..a1")
        assert "--audit-trail-id" in runner.commands[0]

    def test_dependents_collection_unwrapped(self):
        runner = FakeRunner(_ok({"data": {"items": [{"id": "ocid1.audittrail.oc1..a1"}]}}))
        assert _client(runner).list_dependents("audit-trail", TARGET["id"]) == [{"id": "ocid1.audittrail.oc1..a1"}]

    def test_dependents_plain_list(self):
        runner = FakeRunner(_ok({"data": [{"id": "ocid1.securityassessment.oc1..s1"}]}))
        assert _client(runner).list_dependents("security-assessment", TARGET["id"]) == [
            {"id": "ocid1.securityassessment.oc1..s1"}
        ]

    def test_update_tags_sends_whole_map(self):
        runner = FakeRunner(_ok({}))
        tags = {"DBSec": {"Environment": "prod"}, "Ops": {"Owner": "dba"}}
        _client(runner).update_target_tags(TARGET["id"], tags, wait_for_states=("SUCCEEDED",))
        cmd = runner.commands[0]
        assert cmd[cmd.index("--target-database-id") + 1] == TARGET["id"]
        assert json.loads(cmd[cmd.index("--defined-tags") + 1]) == tags
        assert "--force" in cmd
        assert cmd[-2:] == ["--wait-for-state", "SUCCEEDED"]

    def test_start_audit_trail(self):
        runner = FakeRunner(_ok({}))
        _client(runner).start_audit_trail("ocid1.audittrail.oc1..a1", "2026-01-01T00:00:00Z", auto_purge=True)
        cmd = runner.commands[0]
        assert cmd[cmd.index("audit-trail"):cmd.index("audit-trail") + 2] == ["audit-trail", "start"]
        assert cmd[cmd.index("--audit-trail-id") + 1] == "ocid1.audittrail.oc1..a1"
        assert cmd[cmd.index("--audit-collection-start-time") + 1] == "2026-01-01T00:00:00Z"
        assert cmd[cmd.index("--is-auto-purge-enabled") + 1] == "true"


class TestCompartments:
    def test_ocid_passes_through(self):
        runner = FakeRunner()
        assert _client(runner).resolve_compartment_id("ocid1.compartment.oc1..x") == "ocid1.compartment.oc1..x"
        assert runner.commands == []

    def test_name_lookup(self):
        runner = FakeRunner(_ok({"data": [
            {"id": "ocid1.compartment.oc1..a", "name": "prod", "lifecycle-state": "ACTIVE"},
            {"id": "ocid1.compartment.oc1..b", "name": "prod", "lifecycle-state": "DELETED"},
        ]}))
        assert _client(runner).resolve_compartment_id("prod") == "ocid1.compartment.oc1..a"

    def test_unknown_name(self):
        runner = FakeRunner(_ok({"data": []}))
        with pytest.raises(ResolutionError, match="compartment not found"):
            _client(runner).resolve_compartment_id("nope")

    def test_compartment_name(self):
        runner = FakeRunner(_ok({"data": {"id": "ocid1.compartment.oc1..a", "name": "cmp-acme-prod-projects"}}))
        assert _client(runner).get_compartment_name("ocid1.compartment.oc1..a") == "cmp-acme-prod-projects"
        assert runner.commands[0][-4:] == ["compartment", "get", "--compartment-id", "ocid1.compartment.oc1..a"]
