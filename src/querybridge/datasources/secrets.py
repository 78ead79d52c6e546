from __future__ import annotations

import os
import re
from typing import Any, Mapping, Optional

SECRET_REF = re.compile(r"^\$\{(?P<provider>[^:}]*):(?P<key>[^}]*)\}$")


class SecretResolver:
    """Replaces ``${env:NAME}`` references in raw datasource configuration.

    Only whole-string references are resolved. The ``env`` provider is the
    only one built in; secrets must be decrypted before they reach this
    process.
    """

    def __init__(self, environ: Optional[Mapping[str, str]] = None):
        self._environ = os.environ if environ is None else environ

    def resolve(self, secret_ref: str) -> str:
        """Returns the value a reference points at.

        Raises:
            ValueError: Malformed reference, unknown provider or unset variable.
        """
        match = SECRET_REF.match(secret_ref)
        if match is None:
            raise ValueError(f"Invalid secret format '{secret_ref}'. Expected '${{env:NAME}}'.")
        if match["provider"] != "env":
            raise ValueError(f"Unknown secret provider ID: '{match['provider']}'")
        value = self._environ.get(match["key"])
        if value is None:
            raise ValueError(f"Secret not found: {secret_ref}")
        return value

    def resolve_object(self, obj: Any) -> Any:
        """Resolves references anywhere inside nested lists and mappings."""
        if isinstance(obj, dict):
            return {key: self.resolve_object(value) for key, value in obj.items()}
        if isinstance(obj, list):
            return [self.resolve_object(item) for item in obj]
        if isinstance(obj, str) and obj.startswith("${") and obj.endswith("}"):
            return self.resolve(obj)
        return obj
