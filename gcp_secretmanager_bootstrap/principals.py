# -*- coding: utf-8 -*-
"""
Identities that touch the secret store and the IAM bindings that grant them access.

Exactly two principals exist per deployment

writer - creates secrets and adds versions. It may check a secret exists (metadata and
         version listing) but can never read a secret payload.
reader - the identity the workload runs as. It may access secret versions and nothing
         else.

The permission sets are disjoint so a compromised workload holding the reader
identity has no means to mutate a secret, and the bootstrap identity has no means
to read one back.

Secret Manager has no predefined role that allows adding versions without also
allowing reads so the writer is bound to a custom role created per project. The
reader uses the predefined roles/secretmanager.secretAccessor which holds exactly
secretmanager.versions.access.
"""

import logging
import re
import threading
from dataclasses import dataclass, field
from typing import Callable, FrozenSet, Optional

import google.auth
from google.api_core import exceptions
from google.auth import impersonated_credentials
from google.cloud import secretmanager
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError

from .exceptions import InvalidRoleBinding, RoleBindingError

ROLE_WRITER = "writer"
ROLE_READER = "reader"

PERMISSION_SECRET_GET = "secretmanager.secrets.get"
PERMISSION_VERSIONS_LIST = "secretmanager.versions.list"
PERMISSION_SECRET_CREATE = "secretmanager.secrets.create"
PERMISSION_VERSION_ADD = "secretmanager.versions.add"
PERMISSION_VERSION_ACCESS = "secretmanager.versions.access"

WRITER_PERMISSIONS = frozenset([PERMISSION_SECRET_GET,
                                PERMISSION_VERSIONS_LIST,
                                PERMISSION_SECRET_CREATE,
                                PERMISSION_VERSION_ADD])
WRITER_REQUIRED_PERMISSIONS = frozenset([PERMISSION_SECRET_CREATE,
                                         PERMISSION_VERSION_ADD])
READER_PERMISSIONS = frozenset([PERMISSION_VERSION_ACCESS])

WRITER_CUSTOM_ROLE_ID = "secretBootstrapWriter"
READER_ROLE = "roles/secretmanager.secretAccessor"

CLOUD_PLATFORM_SCOPES = ["https://www.googleapis.com/auth/cloud-platform"]

SCOPE_PATTERN = re.compile(r"^projects/([^/]+)(/secrets/([^/]+))?$")


@dataclass(frozen=True)
class IdentityPrincipal:
    """
    A service account acting in one role.

    Credentials come from credentials_callback when given, it returns a tuple of
    (credentials, project_id) in the same way google.auth.default() does. Otherwise
    the ambient credentials are used, impersonating the service account when
    impersonate is set.
    """

    id: str
    role: str
    credentials_callback: Optional[Callable] = field(default=None, compare=False, repr=False)
    impersonate: bool = field(default=True, compare=False)

    def __post_init__(self):
        if self.role not in (ROLE_WRITER, ROLE_READER):
            raise ValueError(f"Unknown principal role {self.role!r}")
        if not self.id:
            raise ValueError("Principal id must be a service account email")

    @property
    def permissions(self) -> FrozenSet[str]:
        return WRITER_PERMISSIONS if self.role == ROLE_WRITER else READER_PERMISSIONS

    @property
    def member(self):
        return f"serviceAccount:{self.id}"

    def credentials(self):
        """
        Obtain credentials acting as this principal.

        :return: tuple of (credentials, project_id)
        """
        if self.credentials_callback is not None:
            return self.credentials_callback()
        source_credentials, project_id = google.auth.default(scopes=CLOUD_PLATFORM_SCOPES)
        if not self.impersonate:
            return source_credentials, project_id
        return impersonated_credentials.Credentials(
            source_credentials=source_credentials,
            target_principal=self.id,
            target_scopes=CLOUD_PLATFORM_SCOPES), project_id


def writer_role_name(project_id):
    return f"projects/{project_id}/roles/{WRITER_CUSTOM_ROLE_ID}"


@dataclass(frozen=True)
class RoleBinding:
    """
    Grant of a permission set on a secret store scope to a single principal.

    scope is either a project (projects/p) meaning every secret in it, or a single
    secret (projects/p/secrets/s).
    """

    principal: IdentityPrincipal
    scope: str
    permissions: FrozenSet[str]
    role: str

    def __post_init__(self):
        permissions = frozenset(self.permissions)
        object.__setattr__(self, "permissions", permissions)

        if not SCOPE_PATTERN.match(self.scope):
            raise InvalidRoleBinding(self.principal.id, self.principal.role,
                                     f"scope {self.scope} is not a project or secret")

        if self.principal.role == ROLE_WRITER:
            missing = WRITER_REQUIRED_PERMISSIONS - permissions
            if missing:
                raise InvalidRoleBinding(self.principal.id, self.principal.role,
                                         f"missing {', '.join(sorted(missing))}")
            if PERMISSION_VERSION_ACCESS in permissions:
                raise InvalidRoleBinding(self.principal.id, self.principal.role,
                                         "writer must not be able to read secret values")
        elif permissions != READER_PERMISSIONS:
            raise InvalidRoleBinding(self.principal.id, self.principal.role,
                                     f"reader must hold exactly {PERMISSION_VERSION_ACCESS}")

    @classmethod
    def for_principal(cls, principal, scope):
        """Build the canonical binding for a principal on a scope."""
        match = SCOPE_PATTERN.match(scope)
        if not match:
            raise InvalidRoleBinding(principal.id, principal.role,
                                     f"scope {scope} is not a project or secret")
        if principal.role == ROLE_WRITER:
            role = writer_role_name(match.group(1))
        else:
            role = READER_ROLE
        return cls(principal=principal,
                   scope=scope,
                   permissions=principal.permissions,
                   role=role)

    @property
    def project_id(self):
        return SCOPE_PATTERN.match(self.scope).group(1)

    @property
    def is_project_scope(self):
        return SCOPE_PATTERN.match(self.scope).group(2) is None


@dataclass(frozen=True)
class DeploymentIdentities:
    writer: IdentityPrincipal
    reader: IdentityPrincipal

    def __post_init__(self):
        if self.writer.role != ROLE_WRITER:
            raise ValueError(f"{self.writer.id} is not a writer principal")
        if self.reader.role != ROLE_READER:
            raise ValueError(f"{self.reader.id} is not a reader principal")
        if self.writer.id == self.reader.id:
            raise ValueError("Writer and reader must be distinct service accounts")

    def bindings(self, scope):
        return (RoleBinding.for_principal(self.writer, scope),
                RoleBinding.for_principal(self.reader, scope))


class RoleBinder:
    """
    Applies role bindings to Cloud IAM.

    The credentials used here belong to the deployment pipeline, not to either
    principal. They need iam.roles.create/update on the project and the ability to
    set IAM policy on the binding scope.

    Applying is a read-modify-write of the policy and is idempotent.
    """

    def __init__(self, _credentials_callback=None):
        self._credentials_callback = _credentials_callback
        self.ns = threading.local()

    @property
    def credentials(self):
        if not hasattr(self.ns, "_credentials"):
            if self._credentials_callback is not None:
                _credentials, _project_id = self._credentials_callback()
            else:
                _credentials, _project_id = google.auth.default()
            self.ns._credentials = _credentials
        return self.ns._credentials

    @property
    def _client(self):
        if not hasattr(self.ns, "client"):
            self.ns.client = secretmanager.SecretManagerServiceClient(
                credentials=self.credentials
            )
        return self.ns.client

    def apply(self, binding):
        """
        Grant a binding.

        :param binding: RoleBinding to grant
        :return: True if the policy changed, False if it was already in place
        """
        if binding.principal.role == ROLE_WRITER:
            self.ensure_writer_role(binding.project_id, binding.permissions)

        if binding.is_project_scope:
            changed = self._apply_project_binding(binding)
        else:
            changed = self._apply_secret_binding(binding)

        if changed:
            logging.getLogger(__name__).info(
                f"Granted {binding.role} to {binding.principal.member} on {binding.scope}")
        else:
            logging.getLogger(__name__).info(
                f"{binding.principal.member} already holds {binding.role} on {binding.scope}")
        return changed

    def ensure_writer_role(self, project_id, permissions):
        """Create or update the custom writer role so it holds exactly permissions."""
        name = writer_role_name(project_id)
        roles_api = build("iam", "v1", credentials=self.credentials).projects().roles()
        included = sorted(permissions)
        try:
            role = roles_api.get(name=name).execute()
        except HttpError as e:
            if e.resp.status != 404:
                raise RoleBindingError(name, "-", f"projects/{project_id}", e) from e
            role = None

        try:
            if role is None:
                roles_api.create(parent=f"projects/{project_id}",
                                 body={"roleId": WRITER_CUSTOM_ROLE_ID,
                                       "role": {
                                           "title": "Secret bootstrap writer",
                                           "description": "Create secrets and add versions "
                                                          "without access to payloads",
                                           "includedPermissions": included,
                                           "stage": "GA"
                                       }}).execute()
                logging.getLogger(__name__).info(f"Created custom role {name}")
            elif sorted(role.get("includedPermissions", [])) != included:
                roles_api.patch(name=name,
                                updateMask="includedPermissions",
                                body={"includedPermissions": included}).execute()
                logging.getLogger(__name__).info(f"Updated permissions of custom role {name}")
        except HttpError as e:
            raise RoleBindingError(name, "-", f"projects/{project_id}", e) from e
        return name

    def _apply_project_binding(self, binding):
        projects_api = build("cloudresourcemanager", "v1",
                             credentials=self.credentials).projects()
        try:
            policy = projects_api.getIamPolicy(
                resource=binding.project_id,
                body={"options": {"requestedPolicyVersion": 3}}).execute()

            bindings = policy.setdefault("bindings", [])
            for existing in bindings:
                if existing["role"] == binding.role and "condition" not in existing:
                    if binding.principal.member in existing.get("members", []):
                        return False
                    existing.setdefault("members", []).append(binding.principal.member)
                    break
            else:
                bindings.append({"role": binding.role,
                                 "members": [binding.principal.member]})

            projects_api.setIamPolicy(resource=binding.project_id,
                                      body={"policy": policy}).execute()
        except HttpError as e:
            raise RoleBindingError(binding.role, binding.principal.member,
                                   binding.scope, e) from e
        return True

    def _apply_secret_binding(self, binding):
        try:
            policy = self._client.get_iam_policy(request={"resource": binding.scope})

            for existing in policy.bindings:
                if existing.role == binding.role:
                    if binding.principal.member in existing.members:
                        return False
                    existing.members.append(binding.principal.member)
                    break
            else:
                policy.bindings.add(role=binding.role, members=[binding.principal.member])

            self._client.set_iam_policy(request={"resource": binding.scope,
                                                 "policy": policy})
        except exceptions.GoogleAPICallError as e:
            raise RoleBindingError(binding.role, binding.principal.member,
                                   binding.scope, e) from e
        return True
