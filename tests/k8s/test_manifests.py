from dirop.config.models import DirectoryDeployment
from dirop.k8s import manifests
from dirop.names import PVC_LABEL

from conftest import make_document


def _doc(**kw):
    body = make_document(["v1", "v2"], **kw)
    body["spec"]["pods"]["env"] = [{"name": "TZ", "value": "UTC"}]
    return DirectoryDeployment.model_validate(body)


def test_replica_pod_carries_identity_and_config():
    pod = manifests.replica_pod(_doc(), "v2", 9389)

    assert pod["metadata"]["name"] == "directory-v2"
    assert pod["metadata"]["labels"][PVC_LABEL] == "v2"
    assert pod["metadata"]["ownerReferences"][0]["uid"] == "1234-abcd"
    spec = pod["spec"]
    assert spec["hostname"] == "directory-v2"
    container = spec["containers"][0]
    assert container["image"] == "icr.io/isvd/verify-directory-server:24.12"
    assert container["ports"][0]["containerPort"] == 9389
    env = {e["name"]: e.get("value") for e in container["env"]}
    assert env == {
        "TZ": "UTC",
        "YAML_CONFIG_FILE": "/var/isvd/config/config.yaml",
        "general.id": "directory-v2",
    }
    claims = [v["persistentVolumeClaim"]["claimName"] for v in spec["volumes"] if "persistentVolumeClaim" in v]
    assert claims == ["v2"]


def test_endpoint_selects_only_its_instance():
    svc = manifests.replica_service(_doc(), "v1", 9636)
    assert svc["metadata"]["name"] == "directory-v1"
    assert svc["spec"]["selector"][PVC_LABEL] == "v1"
    assert svc["spec"]["ports"][0]["port"] == 9636


def test_seed_job_reads_principal_and_writes_target():
    job = manifests.seed_job(_doc(), "v1", "v2", "LICENSE-KEY")

    assert job["metadata"]["name"] == "directory-v2-seed"
    assert job["spec"]["backoffLimit"] == 1
    template = job["spec"]["template"]["spec"]
    assert template["restartPolicy"] == "Never"
    volumes = {v["name"]: v for v in template["volumes"]}
    assert volumes["isvd-data"]["persistentVolumeClaim"] == {"claimName": "v2", "readOnly": False}
    assert volumes["isvd-principal"]["persistentVolumeClaim"] == {"claimName": "v1", "readOnly": True}
    assert volumes["isvd-server-config"]["configMap"]["name"] == "directory-seed"
    env = {e["name"]: e["value"] for e in template["containers"][0]["env"]}
    assert env["general.license.key"] == "LICENSE-KEY"


def test_proxy_pods_are_not_replicas():
    dep = manifests.proxy_deployment(_doc(), 9389)
    labels = dep["spec"]["template"]["metadata"]["labels"]
    assert PVC_LABEL not in labels
    assert labels == dep["spec"]["selector"]["matchLabels"]
    assert manifests.proxy_service(_doc(), 9389)["spec"]["selector"] == labels


def test_no_owner_reference_without_uid():
    body = make_document(["v1"])
    body["metadata"]["uid"] = ""
    pod = manifests.replica_pod(DirectoryDeployment.model_validate(body), "v1", 9389)
    assert "ownerReferences" not in pod["metadata"]
