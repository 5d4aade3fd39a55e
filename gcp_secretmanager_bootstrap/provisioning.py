# -*- coding: utf-8 -*-
"""
One shot provisioning of the secrets a deployment needs.

The job is stateless and can be re-run any number of times. For each descriptor it
checks the store and only writes when the secret is absent, so after the first
successful run every later run is a no-op. Existing secrets are never read, logged
or overwritten whatever their generation policy says.

Descriptors are processed one at a time and the first failure aborts the run.
Secrets written before the failure are kept, a re-run skips them.

A supplied value is only looked up once its secret is found absent, just before
the write. So MissingSuppliedValue never leads to a write of that secret or of any
later one, but secrets earlier in the list may already have been created in the same
run. Checking every supplied value up front would demand values for secrets that
already exist.

There is no locking. Two overlapping runs against the same store can both see a
secret as absent and both write it, the store then keeps whichever version was
added last. Pipelines are expected to run one deployment at a time per project.
"""

import logging
import time
from dataclasses import dataclass
from typing import Tuple

from .descriptors import GenerateIfAbsent, SuppliedValue, validate_descriptors
from .exceptions import ProvisioningTimeout, SecretBootstrapError, StorePermissionDenied
from .generator import generate_token
from .principals import ROLE_WRITER

STATE_EXISTING = "existing"
STATE_CREATED = "created"


@dataclass(frozen=True)
class SecretOutcome:
    name: str
    state: str


@dataclass(frozen=True)
class ProvisioningReport:
    outcomes: Tuple[SecretOutcome, ...]

    @property
    def created(self):
        return [outcome.name for outcome in self.outcomes if outcome.state == STATE_CREATED]

    @property
    def existing(self):
        return [outcome.name for outcome in self.outcomes if outcome.state == STATE_EXISTING]

    @property
    def changed(self):
        return bool(self.created)


class ProvisioningJob:
    """Ensures every described secret exists in the store, writing only absent ones.

    Attributes:
        store (SecretStore): store handle bound to the writer principal.
        descriptors (tuple): the SecretDescriptor entries to provision.
        timeout (float): bound in seconds for the whole run, exceeding it is fatal.
    """

    def __init__(self, store, descriptors, generator=generate_token, timeout=300.0,
                 environ=None):
        """Initializes the ProvisioningJob.

        Args:
            store (SecretStore): store handle, it must be bound to the writer principal.
            descriptors (iterable): SecretDescriptor entries with unique names.
            generator (callable, optional): token generator used for
                GenerateIfAbsent secrets. Defaults to `generate_token`.
            timeout (float, optional): seconds the run may take. Defaults to 300.
            environ (mapping, optional): where SuppliedValue env vars are read from.
                Defaults to os.environ.
        """
        self._store = store
        self._descriptors = validate_descriptors(descriptors)
        self._generator = generator
        self._timeout = timeout
        self._environ = environ

    @property
    def store(self):
        return self._store

    @property
    def descriptors(self):
        return self._descriptors

    @property
    def timeout(self):
        return self._timeout

    def run(self):
        """Provision every descriptor.

        Returns:
            ProvisioningReport: the terminal state of every secret.

        Raises:
            StorePermissionDenied: the store is not bound to the writer or the
                store refused a call.
            MissingSuppliedValue: a SuppliedValue secret is absent and no value
                was supplied.
            EntropySourceUnavailable: a token could not be generated.
            ProvisioningTimeout: the run exceeded its timeout.
        """
        principal = self.store.principal
        if principal.role != ROLE_WRITER:
            first = self.descriptors[0].name if self.descriptors else "-"
            raise StorePermissionDenied(principal.id, "provision", first)

        deadline = time.monotonic() + self.timeout
        outcomes = []
        for descriptor in self.descriptors:
            if time.monotonic() > deadline:
                raise ProvisioningTimeout(self.timeout, descriptor.name)
            try:
                outcomes.append(self._provision(descriptor))
            except SecretBootstrapError:
                logging.getLogger(__name__).error(
                    f"Provisioning aborted at secret {descriptor.name}, "
                    f"{len(outcomes)} of {len(self.descriptors)} secrets processed")
                raise

        report = ProvisioningReport(outcomes=tuple(outcomes))
        logging.getLogger(__name__).info(
            f"Provisioning complete created:{len(report.created)} "
            f"existing:{len(report.existing)}")
        return report

    def _provision(self, descriptor):
        # checked immediately before deciding to write to keep the race window small
        if self.store.exists(descriptor.name):
            logging.getLogger(__name__).info(f"Secret {descriptor.name} already exists")
            return SecretOutcome(name=descriptor.name, state=STATE_EXISTING)

        value = self._resolve(descriptor)
        self.store.set(descriptor.name, value)

        logging.getLogger(__name__).info(f"Secret {descriptor.name} created")
        return SecretOutcome(name=descriptor.name, state=STATE_CREATED)

    def _resolve(self, descriptor):
        if isinstance(descriptor.policy, SuppliedValue):
            return descriptor.policy.resolve(descriptor.name, environ=self._environ)
        if isinstance(descriptor.policy, GenerateIfAbsent):
            return self._generator()
        raise ValueError(f"Secret {descriptor.name} has unknown generation policy")
