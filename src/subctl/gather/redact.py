"""Masking of credentials and tokens in gathered data.

Policy:
- every value under ``data`` / ``stringData`` of a Secret is masked, as is
  its ``kubectl.kubernetes.io/last-applied-configuration`` annotation (a
  verbatim copy of the applied Secret); other Secret annotations get the
  free-text masking below;
- any mapping entry whose key looks sensitive (token, password, psk,
  secret, credential, private key, certificate) is masked;
- ``{"name": ..., "value": ...}`` pairs (container env vars) are masked
  when the name looks sensitive;
- in free text (logs), bearer tokens and ``key=value`` / ``key: value``
  assignments of sensitive keys are masked.

With redaction disabled everything passes through verbatim.
"""

from __future__ import annotations

import re
from typing import Any

REDACTED = "##redacted##"

_SENSITIVE_KEY = re.compile(
    r"token|passw(or)?d|psk|secret|credential|private[-_]?key|api[-_]?key|certificate|\.key$|\.crt$",
    re.IGNORECASE,
)
_SECRET_DATA_KEYS = ("data", "stringData")
LAST_APPLIED_ANNOTATION = "kubectl.kubernetes.io/last-applied-configuration"

_TEXT_PATTERNS: tuple[re.Pattern[str], ...] = (
    re.compile(r"(?i)(\bbearer\s+)[A-Za-z0-9\-._~+/]+=*"),
    re.compile(
        r"(?i)(\b[\w.-]*(?:token|passw(?:or)?d|psk|secret)[\w.-]*\"?\s*[=:]\s*\"?)[^\s\",}]+"
    ),
)


def is_sensitive_key(key: str) -> bool:
    return bool(_SENSITIVE_KEY.search(key))


def _is_scalar(value: Any) -> bool:
    return isinstance(value, (str, int, float, bytes)) and not isinstance(value, bool)


class Redactor:
    """Applies the masking policy when ``enabled`` is true."""

    def __init__(self, enabled: bool = True) -> None:
        self.enabled = enabled

    def redact_object(self, obj: Any) -> Any:
        """Return a masked copy of a JSON-like object."""
        if not self.enabled:
            return obj
        return self._redact(obj)

    def redact_text(self, text: str) -> str:
        if not self.enabled:
            return text
        for pattern in _TEXT_PATTERNS:
            text = pattern.sub(lambda m: m.group(1) + REDACTED, text)
        return text

    def _redact(self, obj: Any) -> Any:
        if isinstance(obj, list):
            return [self._redact(item) for item in obj]
        if not isinstance(obj, dict):
            return obj

        is_secret = obj.get("kind") == "Secret"
        masked_value = isinstance(obj.get("name"), str) and "value" in obj and is_sensitive_key(obj["name"])

        result: dict[str, Any] = {}
        for key, value in obj.items():
            if is_secret and key in _SECRET_DATA_KEYS and isinstance(value, dict):
                result[key] = {k: REDACTED for k in value}
            elif is_secret and key == "metadata" and isinstance(value, dict):
                result[key] = self._redact_secret_metadata(value)
            elif masked_value and key == "value":
                result[key] = REDACTED
            elif isinstance(key, str) and is_sensitive_key(key) and _is_scalar(value):
                result[key] = REDACTED
            else:
                result[key] = self._redact(value)
        return result

    def _redact_secret_metadata(self, metadata: dict[str, Any]) -> dict[str, Any]:
        result = self._redact(metadata)
        annotations = result.get("annotations")
        if isinstance(annotations, dict):
            result["annotations"] = {
                key: REDACTED if key == LAST_APPLIED_ANNOTATION
                else self.redact_text(value) if isinstance(value, str)
                else value
                for key, value in annotations.items()
            }
        return result
