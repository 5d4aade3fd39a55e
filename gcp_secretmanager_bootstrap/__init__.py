# -*- coding: utf-8 -*-
"""gcp_secretmanager_bootstrap

Idempotent bootstrap of deployment secrets in GCP Secret Manager and role separated
access to them. A writer identity creates secrets that are absent, never touching ones
that exist, and a reader identity is the only one the workload uses to resolve them.

"""

from gcp_secretmanager_bootstrap.exceptions import SecretBootstrapError, \
    ConfigError, \
    EntropySourceUnavailable, \
    MissingSuppliedValue, \
    StorePermissionDenied, \
    StoreCallError, \
    NoActiveSecretVersion, \
    SecretResolutionError, \
    ProvisioningTimeout, \
    InvalidRoleBinding, \
    RoleBindingError
from gcp_secretmanager_bootstrap.generator import generate_token
from gcp_secretmanager_bootstrap.descriptors import SecretDescriptor, \
    GenerateIfAbsent, \
    SuppliedValue
from gcp_secretmanager_bootstrap.principals import IdentityPrincipal, \
    RoleBinding, \
    DeploymentIdentities, \
    RoleBinder, \
    ROLE_WRITER, \
    ROLE_READER
from gcp_secretmanager_bootstrap.stores import SecretStore, GCPSecretStore
from gcp_secretmanager_bootstrap.provisioning import ProvisioningJob, \
    ProvisioningReport, \
    SecretOutcome
from gcp_secretmanager_bootstrap.workload import SecretReference, WorkloadSecretBinding
from gcp_secretmanager_bootstrap.decorators import InjectResolvedSecrets
from gcp_secretmanager_bootstrap.config import DeploymentConfig, load_config
from ._version import __version__

__all__ = ["__version__",
           "SecretBootstrapError",
           "ConfigError",
           "EntropySourceUnavailable",
           "MissingSuppliedValue",
           "StorePermissionDenied",
           "StoreCallError",
           "NoActiveSecretVersion",
           "SecretResolutionError",
           "ProvisioningTimeout",
           "InvalidRoleBinding",
           "RoleBindingError",
           "generate_token",
           "SecretDescriptor",
           "GenerateIfAbsent",
           "SuppliedValue",
           "IdentityPrincipal",
           "RoleBinding",
           "DeploymentIdentities",
           "RoleBinder",
           "ROLE_WRITER",
           "ROLE_READER",
           "SecretStore",
           "GCPSecretStore",
           "ProvisioningJob",
           "ProvisioningReport",
           "SecretOutcome",
           "SecretReference",
           "WorkloadSecretBinding",
           "InjectResolvedSecrets",
           "DeploymentConfig",
           "load_config"]
