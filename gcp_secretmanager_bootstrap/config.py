# -*- coding: utf-8 -*-
"""
Deployment parameters.

Parameters come from a json document, either a local file or an object in a storage
bucket (gs://bucket/object), with SECRET_BOOTSTRAP_<FIELD> environment variables
overriding any value from the document. For example

{
    "project_id": "my-project",
    "writer_service_account": "bootstrap-writer@my-project.iam.gserviceaccount.com",
    "reader_service_account": "vault-reader@my-project.iam.gserviceaccount.com",
    "admin_token_secret": "admin-token",
    "db_password_secret": "db-password"
}

The database password itself is never part of the document. The operator supplies it
through the environment variable named by db_password_env, it is only read when the
secret does not exist yet. The admin token is always generated.
"""

import json
import os
from dataclasses import dataclass, fields

from google.cloud import storage

from .descriptors import GenerateIfAbsent, SecretDescriptor, SuppliedValue
from .exceptions import ConfigError
from .principals import ROLE_READER, ROLE_WRITER, DeploymentIdentities, IdentityPrincipal
from .stores import GCPSecretStore
from .workload import SecretReference

ENV_PREFIX = "SECRET_BOOTSTRAP_"

FORBIDDEN_KEYS = ("db_password", "admin_token")


def _to_bool(value):
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in ("1", "true", "yes", "on")


@dataclass(frozen=True)
class DeploymentConfig:
    project_id: str
    writer_service_account: str
    reader_service_account: str
    admin_token_secret: str = "admin-token"
    db_password_secret: str = "db-password"
    db_password_env: str = "DB_PASSWORD"
    admin_token_env_var: str = "ADMIN_TOKEN"
    db_password_env_var: str = "DATABASE_PASSWORD"
    impersonate: bool = True
    timeout: float = 300.0
    call_timeout: float = 30.0

    @property
    def scope(self):
        return f"projects/{self.project_id}"

    def descriptors(self):
        return [SecretDescriptor(name=self.admin_token_secret,
                                 policy=GenerateIfAbsent()),
                SecretDescriptor(name=self.db_password_secret,
                                 policy=SuppliedValue(env_var=self.db_password_env))]

    def references(self):
        return [SecretReference(env_var=self.admin_token_env_var,
                                secret_name=self.admin_token_secret),
                SecretReference(env_var=self.db_password_env_var,
                                secret_name=self.db_password_secret)]

    def identities(self, credentials_callback=None):
        return DeploymentIdentities(
            writer=IdentityPrincipal(id=self.writer_service_account,
                                     role=ROLE_WRITER,
                                     credentials_callback=credentials_callback,
                                     impersonate=self.impersonate),
            reader=IdentityPrincipal(id=self.reader_service_account,
                                     role=ROLE_READER,
                                     credentials_callback=credentials_callback,
                                     impersonate=self.impersonate))

    def writer_store(self, credentials_callback=None):
        return GCPSecretStore(self.project_id,
                              self.identities(credentials_callback).writer,
                              timeout=self.call_timeout)

    def reader_store(self, credentials_callback=None):
        return GCPSecretStore(self.project_id,
                              self.identities(credentials_callback).reader,
                              timeout=self.call_timeout)


def read_document(source, credentials=None):
    """Read a json document from a local path or a gs://bucket/object url."""
    if source.startswith("gs://"):
        bucket_name, _, blob_name = source[len("gs://"):].partition("/")
        if not bucket_name or not blob_name:
            raise ConfigError(f"Config url {source} must be gs://bucket/object")
        client = storage.Client(credentials=credentials)
        bucket = client.get_bucket(bucket_name)
        blob = bucket.get_blob(blob_name)
        if blob is None:
            raise ConfigError(f"Config object {source} does not exist")
        text = blob.download_as_bytes().decode("utf-8")
    else:
        try:
            with open(source, "r", encoding="utf-8") as fh:
                text = fh.read()
        except OSError as e:
            raise ConfigError(f"Cannot read config {source}: {e}") from e
    try:
        document = json.loads(text)
    except json.decoder.JSONDecodeError as e:
        raise ConfigError(f"Config {source} is not valid JSON: {e}") from None
    if not isinstance(document, dict):
        raise ConfigError(f"Config {source} must be a JSON object")
    return document


def load_config(source=None, environ=None, credentials=None):
    """
    Build a DeploymentConfig.

    :param source: path or gs:// url of a json document, optional
    :param environ: mapping of environment overrides, defaults to os.environ
    :param credentials: credentials for reading from a bucket
    :return: DeploymentConfig
    :raises ConfigError: if the document holds secret values, has unknown keys or
        required fields are missing
    """
    if environ is None:
        environ = os.environ

    document = read_document(source, credentials) if source else {}

    for key in FORBIDDEN_KEYS:
        if key in document:
            raise ConfigError(f"Config must not contain secret value {key}, supply it through "
                              f"the environment instead")

    known = {f.name: f for f in fields(DeploymentConfig)}
    unknown = set(document) - set(known)
    if unknown:
        raise ConfigError(f"Unknown config keys {', '.join(sorted(unknown))}")

    values = dict(document)
    for name in known:
        env_name = f"{ENV_PREFIX}{name.upper()}"
        if environ.get(env_name):
            values[name] = environ[env_name]

    missing = [name for name in ("project_id",
                                 "writer_service_account",
                                 "reader_service_account") if not values.get(name)]
    if missing:
        raise ConfigError(f"Missing required config {', '.join(missing)}")

    try:
        for name in ("timeout", "call_timeout"):
            if name in values:
                values[name] = float(values[name])
    except ValueError as e:
        raise ConfigError(f"Invalid timeout: {e}") from None
    if "impersonate" in values:
        values["impersonate"] = _to_bool(values["impersonate"])

    config = DeploymentConfig(**values)
    try:
        config.descriptors()
        config.references()
    except ValueError as e:
        raise ConfigError(f"Invalid config: {e}") from None
    return config
