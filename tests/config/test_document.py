import textwrap

import pytest

from dirop.config.document import ConfigDocument
from dirop.errors import ConfigValidationError


class Secrets:
    def __init__(self, values):
        self.values = values
        self.calls = []

    def read_secret_value(self, namespace, name, key):
        self.calls.append((namespace, name, key))
        return self.values.get((name, key))


DOC = textwrap.dedent("""
    general:
      ports:
        ldap: 9389
        ldaps: "secret:ports/ldaps"
      admin:
        dn: cn=root
        pwd: "secret:admin/password"
      enabled: true
    server:
      suffixes:
        - dn: dc=example,dc=com
""")


def test_typed_getters():
    doc = ConfigDocument.parse(DOC)
    assert doc.get_int("general.ports.ldap") == 9389
    assert doc.get_str("general.admin.dn") == "cn=root"
    assert doc.get_list("server.suffixes") == [{"dn": "dc=example,dc=com"}]
    assert doc.get_value(["general", "ports", "ldap"]) == 9389
    assert doc.has("general.admin")
    assert not doc.has("general.missing")


def test_absent_paths_return_none():
    doc = ConfigDocument.parse(DOC)
    assert doc.get_int("general.ports.other") is None
    assert doc.get_str("nothing.here") is None
    # walking through a scalar is "absent", not an error
    assert doc.get_value("general.ports.ldap.deeper") is None


def test_wrong_types_are_validation_errors():
    doc = ConfigDocument.parse(DOC)
    with pytest.raises(ConfigValidationError, match="general.admin.dn configuration is incorrect"):
        doc.get_int("general.admin.dn")
    with pytest.raises(ConfigValidationError):
        doc.get_int("general.enabled")  # bool is not an int
    with pytest.raises(ConfigValidationError):
        doc.get_list("general.admin")


def test_secret_references_resolve_through_reader():
    secrets = Secrets({("admin", "password"): "s3cret"})
    doc = ConfigDocument.parse(DOC, namespace="ldap", secrets=secrets)

    assert doc.get_str("general.admin.pwd", resolve=True) == "s3cret"
    assert secrets.calls == [("ldap", "admin", "password")]
    # without resolution the reference is returned verbatim
    assert doc.get_str("general.admin.pwd") == "secret:admin/password"


def test_unresolvable_secret_reads_as_absent():
    doc = ConfigDocument.parse(DOC, secrets=Secrets({}))
    assert doc.get_str("general.admin.pwd", resolve=True) is None
    assert doc.get_int("general.ports.ldaps") is None

    no_reader = ConfigDocument.parse(DOC)
    assert no_reader.get_str("general.admin.pwd", resolve=True) is None


def test_unparseable_documents():
    with pytest.raises(ConfigValidationError):
        ConfigDocument.parse("general: [unclosed", source="cm/key")
    with pytest.raises(ConfigValidationError):
        ConfigDocument.parse("- just\n- a list\n")
    assert ConfigDocument.parse("").to_dict() == {}
