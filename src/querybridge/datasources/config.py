from __future__ import annotations

import pathlib
from typing import List, Optional

import yaml
from pydantic import BaseModel, Field, ValidationError

from querybridge.datasources.models import DatasourceSettings
from querybridge.datasources.secrets import SecretResolver


class DatasourceFileConfig(BaseModel):
    """File-level schema for datasources.yaml."""
    version: int = Field(1, description="Schema version")
    datasources: List[DatasourceSettings]


def load_datasources(path: pathlib.Path, resolver: Optional[SecretResolver] = None) -> List[DatasourceSettings]:
    """Loads datasource settings from YAML.

    Accepts either a bare list of datasources or a mapping with a
    ``datasources`` key. String values may reference environment variables as
    ``${env:NAME}``.

    Raises:
        FileNotFoundError: If the file does not exist.
        ValueError: If the file cannot be parsed or fails validation.
    """
    if not path.exists():
        raise FileNotFoundError(f"Datasource config not found: {path}")

    try:
        raw = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as e:
        raise ValueError(f"Failed to parse YAML from {path}: {e}")

    if isinstance(raw, list):
        raw = {"datasources": raw}

    try:
        resolved = (resolver or SecretResolver()).resolve_object(raw)
        return DatasourceFileConfig.model_validate(resolved).datasources
    except ValidationError as e:
        raise ValueError(f"Datasource Configuration Invalid: {e}")
