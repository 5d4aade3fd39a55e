# -*- coding: utf-8 -*-
import json
import os
import tempfile
import unittest
from unittest import mock

from gcp_secretmanager_bootstrap import ConfigError, GCPSecretStore, GenerateIfAbsent, \
    ProvisioningJob, ROLE_READER, ROLE_WRITER, SuppliedValue, WorkloadSecretBinding, \
    load_config
from gcp_secretmanager_bootstrap.tests.memory_store import MemoryBackend, MemorySecretStore, \
    reader_principal, writer_principal

DOCUMENT = {
    "project_id": "test-project",
    "writer_service_account": "bootstrap-writer@test-project.iam.gserviceaccount.com",
    "reader_service_account": "vault-reader@test-project.iam.gserviceaccount.com"
}


class TestLoadConfig(unittest.TestCase):

    def write_document(self, document):
        fd, path = tempfile.mkstemp(suffix=".json")
        with os.fdopen(fd, "w", encoding="utf-8") as fh:
            json.dump(document, fh)
        self.addCleanup(os.remove, path)
        return path

    def test_defaults(self):
        config = load_config(self.write_document(DOCUMENT), environ={})
        assert config.project_id == "test-project"
        assert config.admin_token_secret == "admin-token"
        assert config.db_password_secret == "db-password"
        assert config.timeout == 300.0
        assert config.impersonate
        assert config.scope == "projects/test-project"

    def test_environment_only(self):
        config = load_config(environ={
            "SECRET_BOOTSTRAP_PROJECT_ID": "env-project",
            "SECRET_BOOTSTRAP_WRITER_SERVICE_ACCOUNT": "w@env-project.iam.gserviceaccount.com",
            "SECRET_BOOTSTRAP_READER_SERVICE_ACCOUNT": "r@env-project.iam.gserviceaccount.com",
            "SECRET_BOOTSTRAP_TIMEOUT": "60",
            "SECRET_BOOTSTRAP_IMPERSONATE": "false"
        })
        assert config.project_id == "env-project"
        assert config.timeout == 60.0
        assert not config.impersonate

    def test_environment_overrides_document(self):
        config = load_config(self.write_document(DOCUMENT),
                             environ={"SECRET_BOOTSTRAP_DB_PASSWORD_SECRET": "vault-db"})
        assert config.db_password_secret == "vault-db"

    def test_secret_values_rejected(self):
        for key in ("db_password", "admin_token"):
            path = self.write_document({**DOCUMENT, key: "S3cur3Pass"})
            with self.assertRaises(ConfigError) as ctx:
                load_config(path, environ={})
            assert "S3cur3Pass" not in str(ctx.exception)

    def test_unknown_key(self):
        with self.assertRaises(ConfigError):
            load_config(self.write_document({**DOCUMENT, "signups_allowed": True}), environ={})

    def test_missing_required(self):
        with self.assertRaises(ConfigError) as ctx:
            load_config(self.write_document({"project_id": "p"}), environ={})
        assert "writer_service_account" in str(ctx.exception)

    def test_invalid_json(self):
        fd, path = tempfile.mkstemp(suffix=".json")
        with os.fdopen(fd, "w") as fh:
            fh.write("{not json")
        self.addCleanup(os.remove, path)
        with self.assertRaises(ConfigError):
            load_config(path, environ={})

    def test_missing_file(self):
        with self.assertRaises(ConfigError):
            load_config("/nonexistent/deploy.json", environ={})

    def test_bad_timeout(self):
        with self.assertRaises(ConfigError):
            load_config(self.write_document({**DOCUMENT, "timeout": "soon"}), environ={})

    def test_bucket_document(self):
        with mock.patch("gcp_secretmanager_bootstrap.config.storage.Client") as client_class:
            blob = client_class.return_value.get_bucket.return_value.get_blob.return_value
            blob.download_as_bytes.return_value = json.dumps(DOCUMENT).encode("utf-8")

            config = load_config("gs://deploy-bucket/vault/deploy.json", environ={})

        client_class.return_value.get_bucket.assert_called_once_with("deploy-bucket")
        client_class.return_value.get_bucket.return_value.get_blob.assert_called_once_with(
            "vault/deploy.json")
        assert config.project_id == "test-project"

    def test_bucket_object_missing(self):
        with mock.patch("gcp_secretmanager_bootstrap.config.storage.Client") as client_class:
            client_class.return_value.get_bucket.return_value.get_blob.return_value = None
            with self.assertRaises(ConfigError):
                load_config("gs://deploy-bucket/deploy.json", environ={})

    def test_bad_bucket_url(self):
        with self.assertRaises(ConfigError):
            load_config("gs://deploy-bucket", environ={})


class TestDeploymentConfig(unittest.TestCase):

    def setUp(self):
        self.config = load_config(environ={
            "SECRET_BOOTSTRAP_PROJECT_ID": DOCUMENT["project_id"],
            "SECRET_BOOTSTRAP_WRITER_SERVICE_ACCOUNT": DOCUMENT["writer_service_account"],
            "SECRET_BOOTSTRAP_READER_SERVICE_ACCOUNT": DOCUMENT["reader_service_account"]
        })

    def test_policies(self):
        admin, db = self.config.descriptors()
        assert admin.name == "admin-token"
        assert isinstance(admin.policy, GenerateIfAbsent), "Admin token is always generated"
        assert db.name == "db-password"
        assert isinstance(db.policy, SuppliedValue)
        assert db.policy.env_var == "DB_PASSWORD"
        assert db.policy.value is None

    def test_references(self):
        admin, db = self.config.references()
        assert (admin.env_var, admin.secret_name) == ("ADMIN_TOKEN", "admin-token")
        assert (db.env_var, db.secret_name) == ("DATABASE_PASSWORD", "db-password")

    def test_stores(self):
        writer = self.config.writer_store()
        reader = self.config.reader_store()
        assert isinstance(writer, GCPSecretStore)
        assert writer.principal.role == ROLE_WRITER
        assert writer.principal.id == DOCUMENT["writer_service_account"]
        assert reader.principal.role == ROLE_READER
        assert reader.project_id == "test-project"

    def test_default_references_resolve_with_reader(self):
        backend = MemoryBackend({"admin-token": "T" * 64, "db-password": "S3cur3Pass"})
        binding = WorkloadSecretBinding(MemorySecretStore(backend, reader_principal()),
                                        self.config.references())
        assert binding.resolve() == {"ADMIN_TOKEN": "T" * 64,
                                     "DATABASE_PASSWORD": "S3cur3Pass"}

    def test_default_descriptors_provision_then_resolve(self):
        backend = MemoryBackend()
        ProvisioningJob(MemorySecretStore(backend, writer_principal()),
                        self.config.descriptors(),
                        environ={"DB_PASSWORD": "S3cur3Pass"}).run()
        binding = WorkloadSecretBinding(MemorySecretStore(backend, reader_principal()),
                                        self.config.references())
        values = binding.resolve()
        assert values["DATABASE_PASSWORD"] == "S3cur3Pass"
        assert len(values["ADMIN_TOKEN"]) == 64

    def test_invalid_secret_name(self):
        with self.assertRaises(ConfigError):
            load_config(environ={
                "SECRET_BOOTSTRAP_PROJECT_ID": DOCUMENT["project_id"],
                "SECRET_BOOTSTRAP_WRITER_SERVICE_ACCOUNT": DOCUMENT["writer_service_account"],
                "SECRET_BOOTSTRAP_READER_SERVICE_ACCOUNT": DOCUMENT["reader_service_account"],
                "SECRET_BOOTSTRAP_ADMIN_TOKEN_SECRET": "bad/name"
            })

    def test_env_var_same_as_secret_name(self):
        with self.assertRaises(ConfigError):
            load_config(environ={
                "SECRET_BOOTSTRAP_PROJECT_ID": DOCUMENT["project_id"],
                "SECRET_BOOTSTRAP_WRITER_SERVICE_ACCOUNT": DOCUMENT["writer_service_account"],
                "SECRET_BOOTSTRAP_READER_SERVICE_ACCOUNT": DOCUMENT["reader_service_account"],
                "SECRET_BOOTSTRAP_DB_PASSWORD_SECRET": "DATABASE_PASSWORD"
            })
