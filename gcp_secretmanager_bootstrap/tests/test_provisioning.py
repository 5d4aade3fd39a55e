# -*- coding: utf-8 -*-
import logging
import re
import unittest
from unittest import mock

from google.api_core import exceptions

from gcp_secretmanager_bootstrap import EntropySourceUnavailable, GCPSecretStore, \
    GenerateIfAbsent, IdentityPrincipal, MissingSuppliedValue, ProvisioningJob, \
    ProvisioningTimeout, ROLE_WRITER, SecretBootstrapError, SecretDescriptor, \
    StoreCallError, StorePermissionDenied, SuppliedValue
from gcp_secretmanager_bootstrap.provisioning import STATE_CREATED, STATE_EXISTING
from gcp_secretmanager_bootstrap.tests.memory_store import WRITER_ID, MemoryBackend, \
    MemorySecretStore, reader_principal, writer_principal


def scenario_descriptors():
    return [SecretDescriptor(name="admin-token", policy=GenerateIfAbsent()),
            SecretDescriptor(name="db-password", policy=SuppliedValue(value="S3cur3Pass"))]


class TestProvisioningJob(unittest.TestCase):

    def setUp(self):
        self.backend = MemoryBackend()
        self.store = MemorySecretStore(self.backend, writer_principal())

    def test_scenario_empty_store(self):
        report = ProvisioningJob(self.store, scenario_descriptors()).run()

        assert report.created == ["admin-token", "db-password"]
        assert report.existing == []
        assert report.changed
        token = self.backend.records["admin-token"]
        assert re.match(r"^[A-Za-z0-9_-]{64}$", token), "Admin token must be 64 url safe chars"
        assert self.backend.records["db-password"] == "S3cur3Pass"

    def test_rerun_changes_nothing(self):
        ProvisioningJob(self.store, scenario_descriptors()).run()
        first = dict(self.backend.records)

        report = ProvisioningJob(self.store, scenario_descriptors()).run()

        assert report.created == []
        assert report.existing == ["admin-token", "db-password"]
        assert not report.changed
        assert self.backend.records == first
        assert self.backend.set_calls == ["admin-token", "db-password"], \
            "Exactly one create per secret across both runs"

    def test_job_never_reads_values(self):
        ProvisioningJob(self.store, scenario_descriptors()).run()
        ProvisioningJob(self.store, scenario_descriptors()).run()
        assert self.backend.get_calls == []

    def test_existing_secret_not_overwritten(self):
        self.backend.records.update({"admin-token": "V", "db-password": "W"})

        report = ProvisioningJob(self.store, scenario_descriptors()).run()

        assert [o.state for o in report.outcomes] == [STATE_EXISTING, STATE_EXISTING]
        assert self.backend.records == {"admin-token": "V", "db-password": "W"}
        assert self.backend.set_calls == []

    def test_existing_supplied_secret_needs_no_value(self):
        self.backend.records["db-password"] = "W"
        descriptors = [SecretDescriptor(name="db-password",
                                        policy=SuppliedValue(env_var="DB_PASSWORD"))]

        report = ProvisioningJob(self.store, descriptors, environ={}).run()

        assert report.existing == ["db-password"]
        assert self.backend.records["db-password"] == "W"

    def test_independent_runs_generate_different_values(self):
        other_backend = MemoryBackend()
        other_store = MemorySecretStore(other_backend, writer_principal())

        ProvisioningJob(self.store, scenario_descriptors()).run()
        ProvisioningJob(other_store, scenario_descriptors()).run()

        assert self.backend.records["admin-token"] != other_backend.records["admin-token"]

    def test_supplied_value_from_environment(self):
        descriptors = [SecretDescriptor(name="db-password",
                                        policy=SuppliedValue(env_var="DB_PASSWORD"))]

        ProvisioningJob(self.store, descriptors, environ={"DB_PASSWORD": "from-env"}).run()

        assert self.backend.records["db-password"] == "from-env"

    def test_missing_supplied_value_fails_fast(self):
        descriptors = [SecretDescriptor(name="db-password",
                                        policy=SuppliedValue(env_var="DB_PASSWORD")),
                       SecretDescriptor(name="admin-token", policy=GenerateIfAbsent())]

        with self.assertRaises(MissingSuppliedValue) as ctx:
            ProvisioningJob(self.store, descriptors, environ={}).run()

        assert ctx.exception.secret_id == "db-password"
        assert self.backend.set_calls == [], "Nothing after the failure may be written"
        assert "admin-token" not in self.backend.exists_calls

    def test_partial_run_is_resumable(self):
        descriptors = [SecretDescriptor(name="admin-token", policy=GenerateIfAbsent()),
                       SecretDescriptor(name="db-password",
                                        policy=SuppliedValue(env_var="DB_PASSWORD"))]

        with self.assertRaises(MissingSuppliedValue):
            ProvisioningJob(self.store, descriptors, environ={}).run()
        token = self.backend.records["admin-token"]

        report = ProvisioningJob(self.store, descriptors,
                                 environ={"DB_PASSWORD": "S3cur3Pass"}).run()

        assert report.existing == ["admin-token"]
        assert report.created == ["db-password"]
        assert self.backend.records["admin-token"] == token

    def test_reader_cannot_provision(self):
        backend = MemoryBackend()
        store = MemorySecretStore(backend, reader_principal())

        with self.assertRaises(StorePermissionDenied):
            ProvisioningJob(store, scenario_descriptors()).run()

        assert backend.exists_calls == []
        assert backend.set_calls == []

    def test_entropy_failure_aborts(self):
        def broken_generator():
            raise EntropySourceUnavailable("no entropy")

        with self.assertRaises(EntropySourceUnavailable):
            ProvisioningJob(self.store, scenario_descriptors(), generator=broken_generator).run()

        assert self.backend.set_calls == []

    def test_permission_denied_from_store_aborts(self):
        store = mock.Mock()
        store.principal = writer_principal()
        store.exists.side_effect = StorePermissionDenied(writer_principal().id, "check",
                                                         "admin-token")

        with self.assertRaises(StorePermissionDenied) as ctx:
            ProvisioningJob(store, scenario_descriptors()).run()

        assert ctx.exception.secret_id == "admin-token"
        store.exists.assert_called_once_with("admin-token")
        store.set.assert_not_called()

    def test_timeout_is_fatal(self):
        with mock.patch("gcp_secretmanager_bootstrap.provisioning.time") as mock_time:
            mock_time.monotonic.side_effect = [0.0, 1.0, 10.0]
            with self.assertRaises(ProvisioningTimeout) as ctx:
                ProvisioningJob(self.store, scenario_descriptors(), timeout=5.0).run()

        assert ctx.exception.secret_id == "db-password"
        assert self.backend.set_calls == ["admin-token"]

    def test_generator_used_only_for_absent_secrets(self):
        self.backend.records["admin-token"] = "V"
        generator = mock.Mock(return_value="generated")

        ProvisioningJob(self.store, scenario_descriptors(), generator=generator).run()

        generator.assert_not_called()

    def test_duplicate_descriptors_rejected(self):
        with self.assertRaises(ValueError):
            ProvisioningJob(self.store,
                            [SecretDescriptor(name="admin-token", policy=GenerateIfAbsent()),
                             SecretDescriptor(name="admin-token", policy=GenerateIfAbsent())])

    def test_values_never_logged(self):
        with self.assertLogs("gcp_secretmanager_bootstrap.provisioning",
                             level=logging.DEBUG) as logs:
            ProvisioningJob(self.store, scenario_descriptors()).run()
            ProvisioningJob(self.store, scenario_descriptors()).run()

        output = "\n".join(logs.output)
        assert "admin-token created" in output
        assert "admin-token already exists" in output
        assert "S3cur3Pass" not in output
        token = self.backend.records["admin-token"]
        for fragment in (token, token[:8], token[-8:]):
            assert fragment not in output

    def test_outcome_states(self):
        report = ProvisioningJob(self.store, scenario_descriptors()).run()
        assert [o.state for o in report.outcomes] == [STATE_CREATED, STATE_CREATED]

    def test_store_call_failure_is_reported(self):
        with mock.patch("gcp_secretmanager_bootstrap.stores.secretmanager"
                        ".SecretManagerServiceClient") as client_class:
            client_class.return_value.list_secret_versions.side_effect = exceptions.RetryError(
                "Deadline of 30s exceeded", exceptions.ServiceUnavailable("down"))
            principal = IdentityPrincipal(id=WRITER_ID, role=ROLE_WRITER,
                                          credentials_callback=lambda: (
                                              mock.sentinel.credentials, "test-project"))
            store = GCPSecretStore("test-project", principal)

            with self.assertRaises(StoreCallError) as ctx:
                ProvisioningJob(store, scenario_descriptors()).run()

        assert isinstance(ctx.exception, SecretBootstrapError)
        assert ctx.exception.secret_id == "admin-token"
        client_class.return_value.create_secret.assert_not_called()
