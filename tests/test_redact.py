"""Tests for credential redaction of gathered data."""

from subctl.gather.redact import LAST_APPLIED_ANNOTATION, REDACTED, Redactor, is_sensitive_key


class TestIsSensitiveKey:
    def test_sensitive(self):
        for key in ("token", "psk", "password", "client-secret", "ca.crt", "tls.key", "apiKey", "credentials"):
            assert is_sensitive_key(key), key

    def test_not_sensitive(self):
        for key in ("name", "namespace", "image", "replicas", "keys"):
            assert not is_sensitive_key(key), key


class TestRedactObject:
    def test_secret_data_masked(self):
        secret = {
            "kind": "Secret",
            "metadata": {"name": "broker-secret"},
            "data": {"ca.crt": "LS0t", "namespace": "c3Vi"},
            "stringData": {"foo": "bar"},
        }
        result = Redactor().redact_object(secret)
        assert result["data"] == {"ca.crt": REDACTED, "namespace": REDACTED}
        assert result["stringData"] == {"foo": REDACTED}
        assert result["metadata"] == {"name": "broker-secret"}

    def test_secret_annotations_masked(self):
        secret = {
            "kind": "Secret",
            "metadata": {
                "name": "submariner-ipsec-psk",
                "annotations": {
                    LAST_APPLIED_ANNOTATION: '{"data":{"psk":"c3VwZXJzZWNyZXQ="},"kind":"Secret"}',
                    "note": "psk=hunter2",
                    "owner": "submariner",
                },
            },
            "data": {"psk": "c3VwZXJzZWNyZXQ="},
        }
        annotations = Redactor().redact_object(secret)["metadata"]["annotations"]
        assert annotations[LAST_APPLIED_ANNOTATION] == REDACTED
        assert "hunter2" not in annotations["note"]
        assert annotations["owner"] == "submariner"

    def test_other_kinds_keep_last_applied(self):
        configmap = {"kind": "ConfigMap", "metadata": {"annotations": {LAST_APPLIED_ANNOTATION: "{}"}}}
        assert Redactor().redact_object(configmap) == configmap

    def test_configmap_data_not_masked_wholesale(self):
        configmap = {"kind": "ConfigMap", "data": {"clusterinfo": "[]", "token": "abc"}}
        result = Redactor().redact_object(configmap)
        assert result["data"] == {"clusterinfo": "[]", "token": REDACTED}

    def test_sensitive_env_var_masked(self):
        env = [{"name": "SUBMARINER_PSK", "value": "s3cr3t"}, {"name": "SUBMARINER_NAMESPACE", "value": "sub"}]
        assert Redactor().redact_object(env) == [
            {"name": "SUBMARINER_PSK", "value": REDACTED},
            {"name": "SUBMARINER_NAMESPACE", "value": "sub"},
        ]

    def test_nested_keys_masked(self):
        obj = {"spec": {"ceIPSecPSK": "abc", "broker": {"brokerK8sApiServerToken": "tok", "brokerK8sApiServer": "x"}}}
        result = Redactor().redact_object(obj)
        assert result["spec"]["ceIPSecPSK"] == REDACTED
        assert result["spec"]["broker"]["brokerK8sApiServerToken"] == REDACTED
        assert result["spec"]["broker"]["brokerK8sApiServer"] == "x"

    def test_booleans_kept(self):
        assert Redactor().redact_object({"automountServiceAccountToken": False}) == {
            "automountServiceAccountToken": False,
        }

    def test_input_not_modified(self):
        obj = {"token": "abc"}
        Redactor().redact_object(obj)
        assert obj == {"token": "abc"}

    def test_disabled_passthrough(self):
        obj = {"kind": "Secret", "data": {"token": "abc"}}
        assert Redactor(enabled=False).redact_object(obj) is obj


class TestRedactText:
    def test_bearer_token(self):
        text = "Authorization: Bearer eyJhbGciOi.abc-def"
        assert Redactor().redact_text(text) == f"Authorization: Bearer {REDACTED}"

    def test_assignments(self):
        text = 'I0101 starting with psk=abc123 password: hunter2 "token": "xyz"'
        result = Redactor().redact_text(text)
        assert "abc123" not in result
        assert "hunter2" not in result
        assert "xyz" not in result
        assert "starting with" in result

    def test_plain_text_kept(self):
        text = "Gateway pod submariner-gateway-abc is ready"
        assert Redactor().redact_text(text) == text

    def test_disabled_passthrough(self):
        text = "token=abc"
        assert Redactor(enabled=False).redact_text(text) == text
