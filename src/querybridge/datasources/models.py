from __future__ import annotations

import hashlib
import json
from typing import Any, Dict, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, SecretStr

from querybridge.common.settings import settings


class Credentials(BaseModel):
    """Decrypted credentials of a datasource. Secrets never render in full."""
    model_config = ConfigDict(frozen=True, extra="ignore")

    username: Optional[str] = None
    password: Optional[SecretStr] = None
    token: Optional[SecretStr] = None

    @property
    def has_password(self) -> bool:
        return bool(self.username and self.password and self.password.get_secret_value())

    def identity(self) -> str:
        """One-way fingerprint of the credentials, safe to use in keys and logs."""
        material = "\x00".join([
            self.username or "",
            self.password.get_secret_value() if self.password else "",
            self.token.get_secret_value() if self.token else "",
        ])
        return hashlib.sha256(material.encode("utf-8")).hexdigest()[:16]


class DatasourceSettings(BaseModel):
    """Settings of one configured datasource.

    Attributes:
        id: Unique identifier used by queries to target the datasource.
        type: Backend type (e.g. 'cassandra', 'signalfx', 's3').
        host: Default connection target. Queries may only override it with
            one of the additional targets listed in ``options.hosts``.
        credentials: Decrypted credentials.
        options: Backend specific options (port, keyspace, region, bucket...).
        request_timeout_sec: Network timeout for a single backend call.
    """
    model_config = ConfigDict(frozen=True, extra="ignore")

    id: str
    type: str
    description: Optional[str] = None
    host: Optional[str] = None
    credentials: Credentials = Field(default_factory=Credentials)
    options: Dict[str, Any] = Field(default_factory=dict)
    request_timeout_sec: float = Field(default_factory=lambda: settings.backend_request_timeout_sec, gt=0)

    @property
    def allowed_hosts(self) -> Tuple[str, ...]:
        """Connection targets queries may select: the default host plus ``options.hosts``."""
        extra = self.options.get("hosts") or ()
        if isinstance(extra, str):
            extra = extra.split(",")
        hosts = [self.host] if self.host else []
        hosts.extend(str(h).strip() for h in extra if str(h).strip())
        return tuple(dict.fromkeys(hosts))

    def fingerprint(self) -> str:
        """Digest of every setting; changes whenever any field (or secret) changes."""
        payload = self.model_dump(mode="json", exclude={"credentials"})
        payload["credentials"] = self.credentials.identity()
        encoded = json.dumps(payload, sort_keys=True, default=str)
        return hashlib.sha256(encoded.encode("utf-8")).hexdigest()

    @classmethod
    def from_instance_settings(
        cls,
        datasource_id: str,
        datasource_type: str,
        json_data: Dict[str, Any],
        secure_json_data: Optional[Dict[str, str]] = None,
    ) -> "DatasourceSettings":
        """Builds settings from a JSON settings blob and already-decrypted secure fields.

        The blob carries ``host`` (or ``url``) plus backend options; the secure
        fields carry ``user``, ``password`` and ``token``.
        """
        secure = secure_json_data or {}
        data = dict(json_data or {})
        host = data.pop("host", None) or data.pop("url", None)
        timeout = data.pop("requestTimeoutSec", None)
        credentials = Credentials(
            username=secure.get("user") or data.pop("user", None),
            password=secure.get("password") or None,
            token=secure.get("token") or None,
        )
        fields: Dict[str, Any] = {
            "id": datasource_id,
            "type": datasource_type,
            "host": host,
            "credentials": credentials,
            "options": data,
        }
        if timeout is not None:
            fields["request_timeout_sec"] = timeout
        return cls(**fields)
