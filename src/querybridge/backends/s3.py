"""Object-storage listing backend (S3 ListObjectsV2)."""
from __future__ import annotations

import math
import threading
from typing import TYPE_CHECKING, Any, Callable, Dict, List, Mapping, Optional

import boto3
from botocore.config import Config as BotoConfig
from botocore.exceptions import BotoCoreError, ClientError, NoCredentialsError
from pydantic import TypeAdapter, ValidationError

from querybridge.backends.base import Backend, BackendHandle, Operation
from querybridge.common.errors import (
    AuthError,
    BackendConnectionError,
    BackendError,
    InvalidQueryError,
)
from querybridge.common.logger import get_logger
from querybridge.execution.contracts import Query, QueryKind
from querybridge.normalization.kinds import ScalarKind
from querybridge.normalization.table import ColumnConfig, Table, TableBuilder

if TYPE_CHECKING:
    from querybridge.datasources.models import DatasourceSettings

logger = get_logger(__name__)

DELIMITER = "/"
# Per-call timeouts are rounded down to this step so only a few clients exist.
TIMEOUT_STEP_SEC = 0.25
FORMATTED_MARKER = "FORMATTED"

_flag = TypeAdapter(bool)

NAME_COLUMN = "Name"
MODIFIED_COLUMN = "Last Modified"
SIZE_COLUMN = "Size"
DELETE_COLUMN = "Delete"

MODIFIED_CONFIG = ColumnConfig(width=200, unit="time:YYYY-MM-DD HH:mm:ss")
SIZE_CONFIG = ColumnConfig(width=100, align="left", unit="bytes")
DELETE_CONFIG = ColumnConfig(width=100)

AUTH_ERROR_CODES = {"AccessDenied", "InvalidAccessKeyId", "SignatureDoesNotMatch", "ExpiredToken", "InvalidToken"}
INVALID_REQUEST_CODES = {"NoSuchBucket", "InvalidBucketName", "InvalidArgument"}


class S3Handle(BackendHandle):
    """An S3 client plus the datasource's default bucket.

    ``client`` carries the datasource's request timeout. Calls with a shorter
    timeout go through extra clients built by ``client_factory``, one per
    timeout step, so the map stays bounded by ``default_timeout / TIMEOUT_STEP_SEC``.
    """

    def __init__(
        self,
        client,
        default_bucket: Optional[str] = None,
        client_factory: Optional[Callable[[float], Any]] = None,
        default_timeout: Optional[float] = None,
    ):
        self.client = client
        self.default_bucket = default_bucket
        self._client_factory = client_factory
        self._default_timeout = default_timeout
        self._clients: Dict[float, Any] = {}
        self._lock = threading.Lock()

    def client_for(self, timeout: Optional[float]):
        """Returns a client whose connect and read timeouts do not exceed ``timeout``."""
        if timeout is None or self._client_factory is None:
            return self.client
        if self._default_timeout is not None and timeout >= self._default_timeout:
            return self.client
        step = max(math.floor(timeout / TIMEOUT_STEP_SEC) * TIMEOUT_STEP_SEC, TIMEOUT_STEP_SEC)
        with self._lock:
            client = self._clients.get(step)
            if client is None:
                client = self._client_factory(step)
                self._clients[step] = client
        return client

    def list_objects(self, bucket: str, prefix: str, timeout: Optional[float] = None) -> Dict[str, Any]:
        client = self.client_for(timeout)
        try:
            return client.list_objects_v2(Bucket=bucket, Prefix=prefix, Delimiter=DELIMITER)
        except ClientError as e:
            code = e.response.get("Error", {}).get("Code", "")
            if code in AUTH_ERROR_CODES:
                raise AuthError(f"Object storage rejected the credentials: {code}") from e
            if code in INVALID_REQUEST_CODES:
                raise InvalidQueryError(f"Cannot list bucket '{bucket}': {code}") from e
            raise BackendError(f"Listing bucket '{bucket}' failed: {code or e}") from e
        except NoCredentialsError as e:
            raise AuthError("No object storage credentials available") from e
        except BotoCoreError as e:
            raise BackendConnectionError(f"Object storage unreachable: {e}") from e

    def close(self) -> None:
        with self._lock:
            clients = list(self._clients.values())
            self._clients.clear()
        for client in [self.client, *clients]:
            client.close()


class S3Backend(Backend):
    backend_type = "s3"
    requires_host = False

    def create_handle(self, settings: DatasourceSettings, host: Optional[str]) -> BackendHandle:
        credentials = settings.credentials
        region = settings.options.get("region")
        session = boto3.Session(
            aws_access_key_id=credentials.username,
            aws_secret_access_key=credentials.password.get_secret_value() if credentials.password else None,
            aws_session_token=credentials.token.get_secret_value() if credentials.token else None,
            region_name=region,
        )

        def build_client(timeout: float):
            return session.client(
                "s3",
                region_name=region,
                endpoint_url=host or None,
                config=BotoConfig(
                    connect_timeout=timeout,
                    read_timeout=timeout,
                    retries={"total_max_attempts": 1, "mode": "standard"},
                ),
            )

        return S3Handle(
            build_client(settings.request_timeout_sec),
            default_bucket=settings.options.get("bucket"),
            client_factory=build_client,
            default_timeout=settings.request_timeout_sec,
        )

    def operations(self) -> Mapping[QueryKind, Operation]:
        return {QueryKind.LIST_OBJECTS: list_objects}


def list_objects(handle: S3Handle, query: Query, timeout: float, token=None) -> Table:
    """Lists one level of a bucket: folders (common prefixes) first, then objects.

    A truthy ``options.formatted`` (or ``FORMATTED`` in the program text)
    appends ``,type=<folder|file>,key=<key>`` to each name and adds an empty
    ``Delete`` column for row actions.
    """
    bucket = query.options.get("bucket") or handle.default_bucket
    if not bucket:
        raise InvalidQueryError("No bucket given in the query or the datasource settings")
    prefix = query.options.get("path") or ""
    formatted = is_formatted(query)

    response = handle.list_objects(bucket, prefix, timeout)

    builder = TableBuilder()
    builder.add_column(NAME_COLUMN, ScalarKind.STRING)
    builder.add_column(MODIFIED_COLUMN, ScalarKind.TIMESTAMP, MODIFIED_CONFIG)
    builder.add_column(SIZE_COLUMN, ScalarKind.INT64, SIZE_CONFIG)
    if formatted:
        builder.add_column(DELETE_COLUMN, ScalarKind.STRING, DELETE_CONFIG)

    folders: List[str] = []
    for common_prefix in response.get("CommonPrefixes") or []:
        key = common_prefix.get("Prefix", "")
        name = folder_name(key)
        folders.append(name)
        if formatted:
            name = f"{name},type=folder,key={key}"
        _append(builder, formatted, name, None, None)

    for obj in response.get("Contents") or []:
        key = obj.get("Key", "")
        name = object_name(key)
        if formatted:
            name = f"{name},type=file,key={key}"
        _append(builder, formatted, name, obj.get("LastModified"), obj.get("Size"))

    return builder.build(meta={"folders": folders})


def is_formatted(query: Query) -> bool:
    if FORMATTED_MARKER in query.program:
        return True
    value = query.options.get("formatted")
    if value is None:
        return False
    try:
        return _flag.validate_python(value)
    except ValidationError as e:
        raise InvalidQueryError(f"Option 'formatted' is not a boolean: {value!r}") from e


def _append(builder: TableBuilder, formatted: bool, name: str, modified, size) -> None:
    row = [name, modified, size]
    if formatted:
        row.append("")
    builder.append_row(row)


def folder_name(prefix: str) -> str:
    """Display name of a common prefix: 'a/b/' -> 'b'."""
    parts = prefix.split(DELIMITER)
    return parts[-2] if len(parts) >= 2 else parts[0]


def object_name(key: str) -> str:
    """Display name of an object key: 'a/file.txt' -> 'file.txt'."""
    return key.split(DELIMITER)[-1]
