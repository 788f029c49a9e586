"""Tests for the security posture checks (SEC-001..SEC-007)."""

from __future__ import annotations

import pytest

from tpudoc.checks import security
from tpudoc.errors import ProbeIOError
from tpudoc.models import PassResult, SkipResult, WarnResult
from tpudoc.probes import metadata, net

DEFAULT_SA = "123-compute@developer.gserviceaccount.com"


@pytest.fixture
def on_gcp(monkeypatch: pytest.MonkeyPatch) -> pytest.MonkeyPatch:
    monkeypatch.setattr(metadata, "reachable", lambda timeout_s=1.0: True)
    return monkeypatch


def _unavailable(*args: object) -> str:
    raise ProbeIOError("metadata", "HTTP 404", status_code=404)


@pytest.mark.usefixtures("offline")
class TestOffGcp:
    @pytest.mark.parametrize(
        "probe",
        [
            security.check_service_account,
            security.check_workload_identity,
            security.check_encryption,
            security.check_metadata_access,
            security.check_ssh_key_management,
        ],
    )
    def test_skips(self, probe) -> None:  # noqa: ANN001
        assert probe() == SkipResult(reason="Not running on GCP")


class TestServiceAccount:
    def test_broad_scope_warns(self, on_gcp: pytest.MonkeyPatch) -> None:
        on_gcp.setattr(metadata, "service_account", lambda: DEFAULT_SA)
        on_gcp.setattr(
            metadata, "access_scopes", lambda: ["https://www.googleapis.com/auth/cloud-platform"]
        )
        result = security.check_service_account()
        assert isinstance(result, WarnResult)
        assert result.message == f"Service account {DEFAULT_SA} has broad scopes"

    def test_narrow_scopes_pass(self, on_gcp: pytest.MonkeyPatch) -> None:
        on_gcp.setattr(metadata, "service_account", lambda: "trainer@proj.iam.gserviceaccount.com")
        on_gcp.setattr(metadata, "access_scopes", lambda: ["https://www.googleapis.com/auth/logging.write"])
        assert isinstance(security.check_service_account(), PassResult)

    def test_scopes_unavailable(self, on_gcp: pytest.MonkeyPatch) -> None:
        on_gcp.setattr(metadata, "service_account", lambda: DEFAULT_SA)
        on_gcp.setattr(metadata, "access_scopes", _unavailable)
        result = security.check_service_account()
        assert isinstance(result, PassResult)
        assert result.message.endswith("(scopes not checked)")

    def test_account_unavailable_skips(self, on_gcp: pytest.MonkeyPatch) -> None:
        on_gcp.setattr(metadata, "service_account", _unavailable)
        assert isinstance(security.check_service_account(), SkipResult)


class TestNetworkExposure:
    def test_nothing_exposed(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr(net, "listening_ports", list)
        result = security.check_network_exposure()
        assert isinstance(result, PassResult)
        assert result.message == "No services exposed on all interfaces"

    def test_concerning_ports_warn(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr(net, "listening_ports", lambda: [22, 9090, 6379])
        result = security.check_network_exposure()
        assert isinstance(result, WarnResult)
        assert result.message == "2 potentially exposed port(s): 22, 6379"

    def test_harmless_ports_pass(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr(net, "listening_ports", lambda: [9090])
        result = security.check_network_exposure()
        assert isinstance(result, PassResult)
        assert result.message == "1 port(s) listening on all interfaces (none concerning)"


class TestWorkloadIdentity:
    def test_gke_cluster(self, on_gcp: pytest.MonkeyPatch) -> None:
        on_gcp.setattr(metadata, "instance_attribute", lambda name: "prod-cluster")
        assert isinstance(security.check_workload_identity(), PassResult)

    def test_default_account_warns(self, on_gcp: pytest.MonkeyPatch) -> None:
        on_gcp.setattr(metadata, "instance_attribute", lambda name: None)
        on_gcp.setattr(metadata, "service_account", lambda: DEFAULT_SA)
        assert isinstance(security.check_workload_identity(), WarnResult)

    def test_custom_account_passes(self, on_gcp: pytest.MonkeyPatch) -> None:
        on_gcp.setattr(metadata, "instance_attribute", lambda name: None)
        on_gcp.setattr(metadata, "service_account", lambda: "trainer@proj.iam.gserviceaccount.com")
        result = security.check_workload_identity()
        assert isinstance(result, PassResult)
        assert result.message == "Using custom service account: trainer@proj.iam.gserviceaccount.com"


class TestMetadataAccess:
    def test_forbidden_without_header_passes(self, on_gcp: pytest.MonkeyPatch) -> None:
        on_gcp.setattr(net, "http_get", lambda url, timeout_ms: net.HttpResult(403, 2, ""))
        assert isinstance(security.check_metadata_access(), PassResult)

    def test_open_metadata_warns(self, on_gcp: pytest.MonkeyPatch) -> None:
        on_gcp.setattr(net, "http_get", lambda url, timeout_ms: net.HttpResult(200, 2, "computeMetadata/"))
        assert isinstance(security.check_metadata_access(), WarnResult)


class TestSshKeyManagement:
    @pytest.mark.parametrize(("value", "expected"), [("TRUE", PassResult), ("false", WarnResult), (None, WarnResult)])
    def test_oslogin(self, on_gcp: pytest.MonkeyPatch, value: str | None, expected: type) -> None:
        on_gcp.setattr(metadata, "instance_attribute", lambda name: value)
        assert isinstance(security.check_ssh_key_management(), expected)

    def test_query_error_warns(self, on_gcp: pytest.MonkeyPatch) -> None:
        on_gcp.setattr(metadata, "instance_attribute", _unavailable)
        result = security.check_ssh_key_management()
        assert isinstance(result, WarnResult)
        assert result.message == "Could not determine OS Login status"


class TestInformational:
    def test_encryption_on_gcp(self, on_gcp: pytest.MonkeyPatch) -> None:
        assert isinstance(security.check_encryption(), PassResult)

    def test_firewall_guidance(self) -> None:
        result = security.check_firewall_rules()
        assert isinstance(result, PassResult)
        assert "gcloud" in result.message
