import pytest

from dirop.errors import CommandError
from dirop.replication.agreements import Agreement, AgreementKind, AgreementManager, remove_command
from dirop.observers.events import AgreementCreated, AgreementRemoved


def test_principal_to_peer_command():
    a = Agreement(source="dir-v1", destination="dir-v2", principal="dir-v1", port=9389)
    assert a.kind is AgreementKind.PRINCIPAL_TO_PEER
    assert a.add_command() == [
        "isvd_manage_replica", "-ap",
        "-h", "dir-v2", "-p", "9389", "-i", "dir-v2",
        "-ph", "dir-v1", "-pp", "9389",
    ]


def test_peer_to_peer_command_secure():
    a = Agreement(source="dir-v2", destination="dir-v3", principal="dir-v1", port=9636, secure=True)
    assert a.kind is AgreementKind.PEER_TO_PEER
    assert a.add_command() == [
        "isvd_manage_replica", "-ar",
        "-h", "dir-v3", "-p", "9636", "-i", "dir-v3",
        "-s", "dir-v1", "-z",
    ]
    assert a.remove_command() == remove_command("dir-v3") == ["isvd_manage_replica", "-r", "-i", "dir-v3"]


def test_create_removes_stale_agreement_first(platform, server_config, bus, capture):
    mgr = AgreementManager(platform, "default", server_config, bus=bus)
    platform.agreements.add(("dir-v1", "dir-v2"))

    mgr.create(mgr.agreement("dir-v1", "dir-v1", "dir-v2"))

    assert [c[1][1] for c in platform.commands] == ["-r", "-ap"]
    assert platform.agreements == {("dir-v1", "dir-v2")}
    created = capture.of(AgreementCreated)
    assert len(created) == 1
    assert created[0].kind == "principal-to-peer"
    assert created[0].run_id == "test-run"


def test_create_twice_does_not_duplicate(platform, server_config):
    mgr = AgreementManager(platform, "default", server_config)
    a = mgr.agreement("dir-v1", "dir-v2", "dir-v3")
    mgr.create(a)
    mgr.create(a)
    assert platform.agreements == {("dir-v2", "dir-v3")}


def test_remove_is_best_effort(platform, server_config, capture, bus):
    mgr = AgreementManager(platform, "default", server_config, bus=bus)
    assert mgr.remove("dir-v1", "dir-v9") is False
    assert capture.of(AgreementRemoved) == []

    platform.agreements.add(("dir-v1", "dir-v2"))
    assert mgr.remove("dir-v1", "dir-v2") is True
    assert capture.of(AgreementRemoved)[0].destination == "dir-v2"


def test_failed_add_command_raises(platform, server_config):
    mgr = AgreementManager(platform, "default", server_config)
    platform.exec_rc = 2
    with pytest.raises(CommandError) as exc:
        mgr.create(mgr.agreement("dir-v1", "dir-v1", "dir-v2"))
    assert exc.value.retryable is True
    assert "forced failure" in exc.value.stderr
