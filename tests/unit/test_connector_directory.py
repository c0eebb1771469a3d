"""Unit tests for ConnectorDirectory listing and resolution."""
import pytest

from datasafe_ops.catalog.connectors import ConnectorDirectory
from datasafe_ops.exceptions import ResolutionError

ROOT = "ocid1.compartment.oc1..root"


@pytest.fixture
def directory(client_factory, connector_factory):
    client = client_factory(connectors=[
        connector_factory("Ca"),
        connector_factory("Cb"),
        connector_factory("Cold", state="INACTIVE"),
        connector_factory("Cgone", state="DELETED"),
    ])
    return ConnectorDirectory(client, ROOT)


def test_lists_only_active(directory):
    assert [c.display_name for c in directory.list()] == ["Ca", "Cb"]


def test_exclusion_trims_names_and_ignores_unknown(directory):
    assert [c.display_name for c in directory.list(exclude=[" Ca ", "does-not-exist"])] == ["Cb"]


def test_resolve_by_name_includes_inactive(directory):
    assert directory.resolve("Cold").display_name == "Cold"


def test_resolve_ignores_deleted(directory):
    with pytest.raises(ResolutionError, match="connector not found"):
        directory.resolve("Cgone")


def test_resolve_ocid_passes_through(directory):
    connector = directory.resolve("ocid1.datasafeonpremconnector.oc1..cb")
    assert connector.id == "ocid1.datasafeonpremconnector.oc1..cb"
    assert connector.display_name == "Cb"


def test_ambiguous_name(client_factory, connector_factory):
    client = client_factory(connectors=[connector_factory("Ca"), connector_factory("Ca", state="INACTIVE")])
    with pytest.raises(ResolutionError, match="ambiguous"):
        ConnectorDirectory(client, ROOT).resolve("Ca")


def test_missing_scope(client_factory):
    with pytest.raises(ResolutionError, match="no connector compartment"):
        ConnectorDirectory(client_factory(), None).list()


class TestNameFor:
    def test_none_for_cloud_native(self, directory):
        assert directory.name_for("") == "none"

    def test_unknown_when_lookup_fails(self, directory):
        assert directory.name_for("ocid1.datasafeonpremconnector.oc1..ghost") == "unknown"

    def test_cached_after_listing(self, directory):
        directory.list()
        calls = len(directory.client.calls)
        assert directory.name_for("ocid1.datasafeonpremconnector.oc1..ca") == "Ca"
        assert len(directory.client.calls) == calls
