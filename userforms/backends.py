"""
Persistence backends for fields and user records.

Both backends implement the same CRUD contract over plain JSON payloads:

- ``HttpBackend`` talks to a JSON API (``/fields`` and ``/users`` resources).
- ``LocalBlobBackend`` keeps two named blobs, ``users`` and ``fields``, in one
  JSON document on disk.

Bulk replacement of the field list is a single call in both backends, so
resetting the schema never exposes an empty intermediate state.
"""

import json
import os
import tempfile
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Dict, Any, List, Optional, Union

import httpx
import logging

from .exceptions import BackendFailure

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "http://localhost:3000"
DEFAULT_TIMEOUT = 10.0
DEFAULT_DATA_FILE = "data/userforms.json"

FIELDS_BLOB = "fields"
USERS_BLOB = "users"


class StorageBackend(ABC):
    """CRUD contract shared by every persistence backend."""

    @abstractmethod
    def list_fields(self) -> List[Dict[str, Any]]:
        ...

    @abstractmethod
    def create_field(self, field: Dict[str, Any]) -> Dict[str, Any]:
        ...

    @abstractmethod
    def update_field(self, field_id: str, changes: Dict[str, Any]) -> Dict[str, Any]:
        ...

    @abstractmethod
    def delete_field(self, field_id: str) -> None:
        ...

    @abstractmethod
    def replace_fields(self, fields: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        """Atomically replace the whole field list."""

    @abstractmethod
    def list_users(self) -> List[Dict[str, Any]]:
        ...

    @abstractmethod
    def get_user(self, user_id: str) -> Optional[Dict[str, Any]]:
        """Return the user or None when it does not exist."""

    @abstractmethod
    def create_user(self, user: Dict[str, Any]) -> Dict[str, Any]:
        ...

    @abstractmethod
    def update_user(self, user_id: str, changes: Dict[str, Any]) -> Dict[str, Any]:
        """Shallow-merge ``changes`` into the stored user and return the result."""

    @abstractmethod
    def delete_user(self, user_id: str) -> None:
        ...


class HttpBackend(StorageBackend):
    """JSON API backend; any non-2xx response or transport error is a BackendFailure."""

    def __init__(self, base_url: str = DEFAULT_BASE_URL, timeout: float = DEFAULT_TIMEOUT,
                 transport: Optional[httpx.BaseTransport] = None):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._transport = transport

    def _request(self, operation: str, method: str, path: str,
                 payload: Any = None, allow_missing: bool = False) -> Any:
        """
        Send one request and decode its JSON body.

        Args:
            operation: Human readable operation name for error messages
            method: HTTP method
            path: Resource path relative to the base URL
            payload: Optional JSON body
            allow_missing: Return None on 404 instead of failing

        Returns:
            Decoded JSON body, None for an empty body or an allowed 404

        Raises:
            BackendFailure: On timeout, transport error, non-2xx status or invalid JSON
        """
        try:
            with httpx.Client(base_url=self.base_url, timeout=self.timeout,
                              transport=self._transport) as client:
                response = client.request(method, path, json=payload)
        except httpx.TimeoutException as e:
            logger.error(f"{method} {path} timed out after {self.timeout}s")
            raise BackendFailure(operation, e, message=f"Failed to {operation}: request timed out")
        except httpx.HTTPError as e:
            logger.error(f"{method} {path} failed: {e}")
            raise BackendFailure(operation, e)

        if allow_missing and response.status_code == 404:
            logger.debug(f"{method} {path} returned 404")
            return None

        if response.status_code >= 400:
            logger.error(f"{method} {path} returned HTTP {response.status_code}")
            raise BackendFailure(
                operation, message=f"Failed to {operation}: HTTP {response.status_code}"
            )

        if not response.content:
            return None

        try:
            return response.json()
        except ValueError as e:
            raise BackendFailure(operation, e, message=f"Failed to {operation}: invalid JSON response")

    def list_fields(self) -> List[Dict[str, Any]]:
        return self._request("fetch fields", "GET", "/fields") or []

    def create_field(self, field: Dict[str, Any]) -> Dict[str, Any]:
        return self._request("add field", "POST", "/fields", field) or dict(field)

    def update_field(self, field_id: str, changes: Dict[str, Any]) -> Dict[str, Any]:
        return self._request("update field", "PATCH", f"/fields/{field_id}", changes) or {}

    def delete_field(self, field_id: str) -> None:
        self._request("remove field", "DELETE", f"/fields/{field_id}")

    def replace_fields(self, fields: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        result = self._request("replace fields", "PUT", "/fields", fields)
        return result if isinstance(result, list) else list(fields)

    def list_users(self) -> List[Dict[str, Any]]:
        return self._request("fetch users", "GET", "/users") or []

    def get_user(self, user_id: str) -> Optional[Dict[str, Any]]:
        return self._request("fetch user", "GET", f"/users/{user_id}", allow_missing=True)

    def create_user(self, user: Dict[str, Any]) -> Dict[str, Any]:
        return self._request("create user", "POST", "/users", user) or dict(user)

    def update_user(self, user_id: str, changes: Dict[str, Any]) -> Dict[str, Any]:
        return self._request("update user", "PATCH", f"/users/{user_id}", changes) or {}

    def delete_user(self, user_id: str) -> None:
        self._request("delete user", "DELETE", f"/users/{user_id}")


class LocalBlobBackend(StorageBackend):
    """
    Local key-value backend: one JSON document with a ``users`` and a ``fields`` blob.

    Every write replaces the document through a temporary file so a blob is
    never left half-written.
    """

    def __init__(self, path: Union[str, Path] = DEFAULT_DATA_FILE):
        self.path = Path(path)

    def _read(self, operation: str) -> Dict[str, List[Dict[str, Any]]]:
        if not self.path.exists():
            return {USERS_BLOB: [], FIELDS_BLOB: []}

        try:
            with open(self.path, 'r', encoding='utf-8') as f:
                data = json.load(f)
        except json.JSONDecodeError as e:
            logger.error(f"Corrupted data file {self.path}: {e}")
            raise BackendFailure(operation, e, message=f"Failed to {operation}: data file is corrupted")
        except OSError as e:
            logger.error(f"Failed to read data file {self.path}: {e}")
            raise BackendFailure(operation, e)

        if not isinstance(data, dict):
            raise BackendFailure(operation, message=f"Failed to {operation}: data file is not an object")

        return {
            USERS_BLOB: list(data.get(USERS_BLOB) or []),
            FIELDS_BLOB: list(data.get(FIELDS_BLOB) or []),
        }

    def _write(self, operation: str, data: Dict[str, List[Dict[str, Any]]]) -> None:
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(dir=self.path.parent, prefix=f".{self.path.name}.", suffix=".tmp")
            try:
                with os.fdopen(fd, 'w', encoding='utf-8') as f:
                    json.dump(data, f, indent=2, ensure_ascii=False)
                os.replace(tmp_name, self.path)
            except BaseException:
                if os.path.exists(tmp_name):
                    os.unlink(tmp_name)
                raise
        except (OSError, TypeError, ValueError) as e:
            logger.error(f"Failed to write data file {self.path}: {e}")
            raise BackendFailure(operation, e)

    def list_fields(self) -> List[Dict[str, Any]]:
        return self._read("fetch fields")[FIELDS_BLOB]

    def create_field(self, field: Dict[str, Any]) -> Dict[str, Any]:
        data = self._read("add field")
        data[FIELDS_BLOB].append(dict(field))
        self._write("add field", data)
        return dict(field)

    def update_field(self, field_id: str, changes: Dict[str, Any]) -> Dict[str, Any]:
        data = self._read("update field")
        updated = None
        for index, field in enumerate(data[FIELDS_BLOB]):
            if field.get("id") == field_id:
                updated = {**field, **changes}
                data[FIELDS_BLOB][index] = updated
        if updated is None:
            raise BackendFailure("update field", message=f"Failed to update field: {field_id} not found")
        self._write("update field", data)
        return updated

    def delete_field(self, field_id: str) -> None:
        data = self._read("remove field")
        data[FIELDS_BLOB] = [f for f in data[FIELDS_BLOB] if f.get("id") != field_id]
        self._write("remove field", data)

    def replace_fields(self, fields: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        data = self._read("replace fields")
        data[FIELDS_BLOB] = [dict(f) for f in fields]
        self._write("replace fields", data)
        return data[FIELDS_BLOB]

    def list_users(self) -> List[Dict[str, Any]]:
        return self._read("fetch users")[USERS_BLOB]

    def get_user(self, user_id: str) -> Optional[Dict[str, Any]]:
        for user in self._read("fetch user")[USERS_BLOB]:
            if user.get("id") == user_id:
                return user
        return None

    def create_user(self, user: Dict[str, Any]) -> Dict[str, Any]:
        data = self._read("create user")
        data[USERS_BLOB].append(dict(user))
        self._write("create user", data)
        return dict(user)

    def update_user(self, user_id: str, changes: Dict[str, Any]) -> Dict[str, Any]:
        data = self._read("update user")
        updated = None
        for index, user in enumerate(data[USERS_BLOB]):
            if user.get("id") == user_id:
                updated = {**user, **changes}
                data[USERS_BLOB][index] = updated
        if updated is None:
            raise BackendFailure("update user", message=f"Failed to update user: {user_id} not found")
        self._write("update user", data)
        return updated

    def delete_user(self, user_id: str) -> None:
        data = self._read("delete user")
        data[USERS_BLOB] = [u for u in data[USERS_BLOB] if u.get("id") != user_id]
        self._write("delete user", data)


def create_backend(config: Dict[str, Any]) -> StorageBackend:
    """
    Create the storage backend selected in the configuration.

    Args:
        config: Complete configuration dictionary

    Returns:
        HttpBackend when ``storage.backend`` is ``http``, LocalBlobBackend otherwise
    """
    storage = config.get('storage', {}) or {}
    backend_name = str(storage.get('backend', 'local')).lower()

    if backend_name == 'http':
        http_config = storage.get('http', {}) or {}
        base_url = http_config.get('base_url', DEFAULT_BASE_URL)
        timeout = float(http_config.get('timeout', DEFAULT_TIMEOUT))
        logger.info(f"Using HTTP storage backend at {base_url} (timeout {timeout}s)")
        return HttpBackend(base_url=base_url, timeout=timeout)

    if backend_name != 'local':
        logger.warning(f"Unknown storage backend '{backend_name}', using local storage")

    local_config = storage.get('local', {}) or {}
    path = Path(local_config.get('path', DEFAULT_DATA_FILE))
    logger.info(f"Using local storage backend at {path}")
    return LocalBlobBackend(path)
