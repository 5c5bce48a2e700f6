import pytest
from ldap3.core.exceptions import LDAPSocketOpenError

from dirop.config.models import DirectoryDeployment
from dirop.errors import AdmissionError
from dirop.proxy.guard import PARTITIONS_BASE, PrimaryCoordinatorGuard, primaries_from_entries
from dirop.topology.store import RunningTopology

from conftest import FakeQuery, make_document, partition_entry as _entry


def _running(platform, doc, identities, not_ready=()):
    for identity in identities:
        platform.add_running(doc, identity, ready=identity not in not_ready)
    return RunningTopology.load(platform, doc)


def test_primaries_are_extracted_from_backend_dn():
    entries = [
        _entry("v1", "primarywriteserver"),
        _entry("v2", "secondarywriteserver"),
        _entry("v3", "primarywriteserver", deployment="other"),
        ("cn=partitions,cn=proxy,cn=monitor", {"objectClass": ["container"]}),
    ]
    assert primaries_from_entries("Directory", entries) == {"v1"}


def test_primaries_match_backend_dn_in_any_case():
    entries = [
        ("IBM-SLAPDPROXYBACKENDSERVERNAME=Directory-V2,CN=SPLIT_0,cn=partitions,cn=proxy,cn=monitor",
         {"ibm-slapdProxyCurrentServerRole": ["primarywriteserver"]}),
        ("ibm-slapdproxybackendservername=directory-v3,cn=split_1,cn=partitions,cn=proxy,cn=monitor",
         {"ibm-slapdProxyCurrentServerRole": ["primarywriteserver"]}),
    ]
    assert primaries_from_entries("directory", entries) == {"v2", "v3"}


def test_endpoint_uses_service_address_and_resolved_credentials(proxy_platform):
    doc = DirectoryDeployment.model_validate(make_document(["v1"]))
    endpoint = PrimaryCoordinatorGuard(proxy_platform, FakeQuery()).endpoint(doc)
    assert endpoint.url == "ldaps://10.0.0.12:9636"
    assert endpoint.bind_dn == "cn=root"
    assert endpoint.password == "from-secret"


def test_removing_the_primary_writer_is_rejected(proxy_platform):
    doc = DirectoryDeployment.model_validate(make_document(["v1", "v3"]))
    running = _running(proxy_platform, doc, ["v1", "v2", "v3"])
    query = FakeQuery([_entry("v2", "primarywriteserver"), _entry("v1", "secondarywriteserver")])

    with pytest.raises(AdmissionError, match="The pvc, v2, is currently being used as the primary") as exc:
        PrimaryCoordinatorGuard(proxy_platform, query).check(doc, running)
    assert exc.value.retryable is False
    assert query.calls[0][1] == PARTITIONS_BASE
    # nothing was deleted
    assert "directory-v2" in proxy_platform.names("pod")


def test_removing_a_secondary_is_allowed(proxy_platform):
    doc = DirectoryDeployment.model_validate(make_document(["v1", "v3"]))
    running = _running(proxy_platform, doc, ["v1", "v2", "v3"])
    query = FakeQuery([_entry("v1", "primarywriteserver"), _entry("v2", "secondarywriteserver")])
    PrimaryCoordinatorGuard(proxy_platform, query).check(doc, running)


def test_surviving_replicas_must_be_ready(proxy_platform):
    doc = DirectoryDeployment.model_validate(make_document(["v1", "v2", "v3"]))
    running = _running(proxy_platform, doc, ["v1", "v2"], not_ready=["v2"])
    query = FakeQuery()
    with pytest.raises(AdmissionError, match="directory-v2, is not currently ready"):
        PrimaryCoordinatorGuard(proxy_platform, query).check(doc, running)
    assert query.calls == []


def test_unchanged_topology_skips_the_query(proxy_platform):
    doc = DirectoryDeployment.model_validate(make_document(["v1"]))
    running = _running(proxy_platform, doc, ["v1"], not_ready=["v1"])
    query = FakeQuery()
    PrimaryCoordinatorGuard(proxy_platform, query).check(doc, running)
    assert query.calls == []


def test_additions_only_do_not_query_the_proxy(proxy_platform):
    doc = DirectoryDeployment.model_validate(make_document(["v1", "v2"]))
    running = _running(proxy_platform, doc, ["v1"])
    query = FakeQuery()
    PrimaryCoordinatorGuard(proxy_platform, query).check(doc, running)
    assert query.calls == []


def test_unreachable_proxy_is_a_hard_failure(proxy_platform):
    doc = DirectoryDeployment.model_validate(make_document(["v1"]))
    running = _running(proxy_platform, doc, ["v1", "v2"])
    query = FakeQuery(error=LDAPSocketOpenError("connection refused"))
    with pytest.raises(AdmissionError, match="Failed to query the LDAP proxy"):
        PrimaryCoordinatorGuard(proxy_platform, query).check(doc, running)


def test_empty_partition_information_is_rejected(proxy_platform):
    doc = DirectoryDeployment.model_validate(make_document(["v1"]))
    running = _running(proxy_platform, doc, ["v1", "v2"])
    with pytest.raises(AdmissionError, match="split information does not exist"):
        PrimaryCoordinatorGuard(proxy_platform, FakeQuery([])).check(doc, running)


def test_missing_admin_password_is_rejected(proxy_platform):
    proxy_platform.add_config_map("directory-proxy", {"config.yaml": "general: {}\n"})
    doc = DirectoryDeployment.model_validate(make_document(["v1"]))
    with pytest.raises(AdmissionError, match="general.admin.pwd configuration is missing"):
        PrimaryCoordinatorGuard(proxy_platform, FakeQuery()).endpoint(doc)


def test_missing_proxy_service_is_rejected(platform):
    doc = DirectoryDeployment.model_validate(make_document(["v1"]))
    with pytest.raises(AdmissionError, match="proxy service"):
        PrimaryCoordinatorGuard(platform, FakeQuery()).endpoint(doc)
