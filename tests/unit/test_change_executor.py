"""Unit tests for ChangeExecutor dry-run/apply behaviour."""
import json

import pytest

from datasafe_ops.credentials.files import CredentialFileSet
from datasafe_ops.domain.models import (
    AssignmentDecision,
    Credential,
    OutcomeStatus,
)
from datasafe_ops.execution.executor import ChangeExecutor, ExecutionMode, ExecutionOptions, wait_states

CA = "ocid1.datasafeonpremconnector.oc1..ca"
CB = "ocid1.datasafeonpremconnector.oc1..cb"

DRY_RUN = ExecutionOptions()
APPLY = ExecutionOptions(mode=ExecutionMode.APPLY)


def _decision(target, connector_id=CB, name="Cb"):
    return AssignmentDecision.for_target(target, desired_connector_id=connector_id, desired_connector_name=name)


class TestWaitStates:
    def test_wait_defaults(self):
        assert wait_states(True, []) == ("SUCCEEDED", "FAILED")

    def test_explicit_states_deduplicated(self):
        assert wait_states(False, ["succeeded", "SUCCEEDED", "failed"]) == ("SUCCEEDED", "FAILED")

    def test_fire_and_forget(self):
        assert wait_states(False, []) == ()


class TestApplyConnection:
    def test_dry_run_issues_no_mutation(self, fake_client):
        target = fake_client.targets["ocid1.datasafetargetdatabase.oc1..t1"]
        result = ChangeExecutor(fake_client, DRY_RUN).apply_connection(_decision(target))
        assert result.status == OutcomeStatus.SUCCESS
        assert result.message == "would change from none to Cb"
        assert fake_client.mutations == []

    def test_noop_is_success_without_calls(self, client_factory, target_factory):
        target = target_factory("T1", connector_id=CB)
        client = client_factory(targets=[target])
        result = ChangeExecutor(client, APPLY).apply_connection(_decision(target))
        assert result.status == OutcomeStatus.SUCCESS
        assert client.calls == []

    def test_apply_updates_once_with_wait(self, fake_client):
        target = fake_client.targets["ocid1.datasafetargetdatabase.oc1..t1"]
        options = ExecutionOptions(mode=ExecutionMode.APPLY, wait_for_states=("SUCCEEDED",))
        result = ChangeExecutor(fake_client, options).apply_connection(_decision(target))
        assert result.status == OutcomeStatus.SUCCESS
        assert fake_client.mutations == [("update_target_connection", target.id, CB, ("SUCCEEDED",))]

    def test_apply_skips_when_changed_since_listing(self, fake_client):
        target = fake_client.targets["ocid1.datasafetargetdatabase.oc1..t1"]
        decision = _decision(target)
        fake_client.update_target_connection(target.id, CB)
        fake_client.calls.clear()
        result = ChangeExecutor(fake_client, APPLY).apply_connection(decision)
        assert result.message == "already assigned"
        assert fake_client.mutations == []

    def test_failure_is_recorded(self, fake_client):
        target = fake_client.targets["ocid1.datasafetargetdatabase.oc1..t1"]
        fake_client.fail_on["update_target_connection"] = {target.id}
        result = ChangeExecutor(fake_client, APPLY).apply_connection(_decision(target))
        assert result.status == OutcomeStatus.FAILED


class TestApplyCredentials:
    def test_apply_writes_payload_and_removes_file(self, fake_client, tmp_path):
        target = fake_client.targets["ocid1.datasafetargetdatabase.oc1..t1"]
        with CredentialFileSet(directory=str(tmp_path)) as files:
            result = ChangeExecutor(fake_client, APPLY).apply_credentials(target, Credential("u", "pw"), files)
        assert result.status == OutcomeStatus.SUCCESS
        assert json.loads(fake_client.credential_payloads[0]) == {"userName": "u", "password": "pw"}
        assert list(tmp_path.iterdir()) == []

    @pytest.mark.parametrize("state", ["DELETING", "INACTIVE", "CREATING"])
    def test_non_updatable_state_is_skipped(self, client_factory, target_factory, state, tmp_path):
        target = target_factory("T1", state=state)
        client = client_factory(targets=[target])
        with CredentialFileSet(directory=str(tmp_path)) as files:
            result = ChangeExecutor(client, APPLY).apply_credentials(target, Credential("u", "pw"), files)
        assert result.status == OutcomeStatus.SKIPPED
        assert result.message == f"not updatable ({state})"
        assert client.mutations == []

    def test_state_reread_before_apply(self, client_factory, target_factory, tmp_path):
        # Listed as ACTIVE, but DELETING by the time the update would be sent
        listed = target_factory("T1")
        client = client_factory(targets=[target_factory("T1", state="DELETING")])
        with CredentialFileSet(directory=str(tmp_path)) as files:
            result = ChangeExecutor(client, APPLY).apply_credentials(listed, Credential("u", "pw"), files)
        assert result.status == OutcomeStatus.SKIPPED
        assert result.message == "not updatable (DELETING)"
        assert ("get_target", listed.id) in client.calls
        assert client.mutations == []
        assert list(tmp_path.iterdir()) == []

    def test_dry_run_uses_listed_state(self, client_factory, target_factory, tmp_path):
        listed = target_factory("T1")
        client = client_factory(targets=[target_factory("T1", state="DELETING")])
        with CredentialFileSet(directory=str(tmp_path)) as files:
            result = ChangeExecutor(client, DRY_RUN).apply_credentials(listed, Credential("u", "pw"), files)
        assert result.status == OutcomeStatus.SUCCESS
        assert client.calls == []

    def test_dry_run_creates_no_file(self, fake_client, tmp_path):
        target = fake_client.targets["ocid1.datasafetargetdatabase.oc1..t1"]
        with CredentialFileSet(directory=str(tmp_path)) as files:
            result = ChangeExecutor(fake_client, DRY_RUN).apply_credentials(target, Credential("u", "pw"), files)
            assert list(tmp_path.iterdir()) == []
        assert result.status == OutcomeStatus.SUCCESS
        assert fake_client.mutations == []


class TestRunBatch:
    def test_continues_after_failure(self, fake_client):
        targets = list(fake_client.targets.values())
        fake_client.fail_on["update_target_connection"] = {targets[1].id}
        executor = ChangeExecutor(fake_client, APPLY)
        outcome = executor.run_batch([_decision(t) for t in targets], executor.apply_connection)
        assert (outcome.success, outcome.failed, outcome.skipped) == (4, 1, 0)
        assert not outcome.ok

    def test_stop_on_error(self, fake_client):
        targets = list(fake_client.targets.values())
        fake_client.fail_on["update_target_connection"] = {targets[1].id}
        executor = ChangeExecutor(fake_client, ExecutionOptions(mode=ExecutionMode.APPLY, stop_on_error=True))
        outcome = executor.run_batch([_decision(t) for t in targets], executor.apply_connection)
        assert (outcome.success, outcome.failed) == (1, 1)
        assert outcome.total == 2

    def test_dry_run_counts_success(self, fake_client):
        executor = ChangeExecutor(fake_client, DRY_RUN)
        outcome = executor.run_batch([_decision(t) for t in fake_client.targets.values()], executor.apply_connection)
        assert outcome.to_dict() == {"applied": False, "success": 5, "failed": 0, "skipped": 0}


def test_apply_action_dry_run(fake_client):
    target = fake_client.targets["ocid1.datasafetargetdatabase.oc1..t1"]
    called = []
    result = ChangeExecutor(fake_client, DRY_RUN).apply_action(target, "refresh target", lambda: called.append(1))
    assert result.message == "would refresh target"
    assert called == []
