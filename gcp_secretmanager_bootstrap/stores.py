# -*- coding: utf-8 -*-
"""
Secret store handles.

A store handle is always bound to one principal. The handle checks the principal's
permission set before making any call so a reader handle can never issue a write
even if IAM were misconfigured, and IAM denials from the service are reported the
same way.

The provisioning job only ever calls exists and set. The workload only ever calls
get.
"""

import logging
import threading
from abc import ABC, abstractmethod

import google_crc32c
from google.api_core import exceptions, retry
from google.cloud import secretmanager, secretmanager_v1

from .exceptions import NoActiveSecretVersion, StoreCallError, StorePermissionDenied
from .principals import (PERMISSION_SECRET_CREATE, PERMISSION_VERSION_ACCESS,
                         PERMISSION_VERSION_ADD, PERMISSION_VERSIONS_LIST)

# transient failures retried inside a single call, everything else surfaces
TRANSIENT_EXCEPTIONS = (exceptions.ServerError,
                        exceptions.TooManyRequests)

MANAGED_BY_LABEL = {"managed-by": "gcp-secret-bootstrap"}


class SecretStore(ABC):
    """Abstract secret store bound to a single principal."""

    EXISTS_PERMISSIONS = frozenset([PERMISSION_VERSIONS_LIST])
    SET_PERMISSIONS = frozenset([PERMISSION_SECRET_CREATE, PERMISSION_VERSION_ADD])
    GET_PERMISSIONS = frozenset([PERMISSION_VERSION_ACCESS])

    def __init__(self, principal):
        self._principal = principal

    @property
    def principal(self):
        return self._principal

    def _require(self, permissions, operation, name):
        if not permissions <= self.principal.permissions:
            raise StorePermissionDenied(self.principal.id, operation, name)

    def exists(self, name):
        """Return True if the secret has a usable value, never reading the value."""
        self._require(self.EXISTS_PERMISSIONS, "check", name)
        return self._exists(name)

    def set(self, name, value):
        """Create the secret if needed and store value as its current version."""
        self._require(self.SET_PERMISSIONS, "write", name)
        return self._set(name, value)

    def get(self, name):
        """Return the current value of the secret as a str."""
        self._require(self.GET_PERMISSIONS, "read", name)
        return self._get(name)

    @abstractmethod
    def _exists(self, name):
        pass

    @abstractmethod
    def _set(self, name, value):
        pass

    @abstractmethod
    def _get(self, name):
        pass


class GCPSecretStore(SecretStore):
    """
    Secret store backed by Google Cloud Secret Manager.

    A secret counts as existing when the secret resource is present and has at
    least one enabled version; a bare secret resource created by other tooling
    with no versions is treated as absent and gets its first version on set.

    Clients are held in thread-local storage and built from the bound principal's
    credentials.
    """

    def __init__(self, project_id, principal, timeout=30.0):
        super(GCPSecretStore, self).__init__(principal)
        self._project_id = project_id
        self._timeout = timeout
        self._retry = retry.Retry(predicate=retry.if_exception_type(*TRANSIENT_EXCEPTIONS),
                                  timeout=timeout)
        self.ns = threading.local()

    @property
    def project_id(self):
        return self._project_id

    @property
    def timeout(self):
        return self._timeout

    @property
    def credentials(self):
        if not hasattr(self.ns, "_credentials"):
            _credentials, _project_id = self.principal.credentials()
            self.ns._credentials = _credentials
        return self.ns._credentials

    @property
    def _client(self):
        if not hasattr(self.ns, "client"):
            self.ns.client = secretmanager.SecretManagerServiceClient(
                credentials=self.credentials
            )
        return self.ns.client

    def secret_path(self, name):
        return f"projects/{self.project_id}/secrets/{name}"

    def _denied(self, operation, name, error):
        return StorePermissionDenied(self.principal.id, operation, name, error.message)

    def _failed(self, operation, name, error):
        return StoreCallError(operation, name, type(error).__name__)

    def _exists(self, name):
        request = secretmanager_v1.ListSecretVersionsRequest(
            parent=self.secret_path(name),
            filter="state=ENABLED",
            page_size=1
        )
        try:
            page_result = self._client.list_secret_versions(request=request,
                                                            retry=self._retry,
                                                            timeout=self.timeout)
            for _ in page_result:
                return True
        except exceptions.NotFound:
            return False
        except exceptions.PermissionDenied as e:
            raise self._denied("check", name, e) from e
        except exceptions.GoogleAPIError as e:
            raise self._failed("check", name, e) from e
        return False

    def _set(self, name, value):
        try:
            self._client.create_secret(
                request={
                    "parent": f"projects/{self.project_id}",
                    "secret_id": name,
                    "secret": {"replication": {"automatic": {}},
                               "labels": MANAGED_BY_LABEL},
                },
                retry=self._retry,
                timeout=self.timeout
            )
        except exceptions.AlreadyExists:
            # resource exists without enabled versions, or a concurrent run made it
            logging.getLogger(__name__).debug(f"Secret resource {name} already present")
        except exceptions.PermissionDenied as e:
            raise self._denied("write", name, e) from e
        except exceptions.GoogleAPIError as e:
            raise self._failed("write", name, e) from e

        payload = value.encode("utf-8") if isinstance(value, str) else value

        # Calculate payload checksum so the service can detect corruption in transit
        crc32c = google_crc32c.Checksum()
        crc32c.update(payload)

        try:
            response = self._client.add_secret_version(
                request={
                    "parent": self.secret_path(name),
                    "payload": {"data": payload, "data_crc32c": int(crc32c.hexdigest(), 16)},
                },
                retry=self._retry,
                timeout=self.timeout
            )
        except exceptions.PermissionDenied as e:
            raise self._denied("write", name, e) from e
        except exceptions.GoogleAPIError as e:
            raise self._failed("write", name, e) from e
        return response

    def _get(self, name):
        try:
            response = self._client.access_secret_version(
                request={"name": f"{self.secret_path(name)}/versions/latest"},
                retry=self._retry,
                timeout=self.timeout
            )
        except exceptions.PermissionDenied as e:
            raise self._denied("read", name, e) from e
        except exceptions.FailedPrecondition as e:
            # latest version is disabled or destroyed
            raise NoActiveSecretVersion(self.secret_path(name)) from e
        except exceptions.NotFound:
            raise
        except exceptions.GoogleAPIError as e:
            raise self._failed("read", name, e) from e

        payload = response.payload
        if payload.data_crc32c:
            crc32c = google_crc32c.Checksum()
            crc32c.update(payload.data)
            if int(crc32c.hexdigest(), 16) != payload.data_crc32c:
                raise exceptions.DataLoss(f"Checksum mismatch reading secret {name}")
        return payload.data.decode("utf-8")
