# -*- coding: utf-8 -*-
"""This module resolves secrets for the running workload

The workload runs as the reader principal. At start, and at every refresh, each
declared reference is fetched from the store and handed to the workload as an
environment entry named for its purpose. Values only ever live in process memory,
they are not written to any file or log.
"""

import logging
import os
import re
import threading
import weakref
from dataclasses import dataclass
from time import sleep

from google.api_core import exceptions

from .exceptions import (NoActiveSecretVersion, SecretBootstrapError,
                         SecretResolutionError, StoreCallError,
                         StorePermissionDenied)
from .principals import ROLE_READER

ENV_VAR_PATTERN = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")

MIN_REFRESH_SECONDS = 30.0


@dataclass(frozen=True)
class SecretReference:
    env_var: str
    secret_name: str

    def __post_init__(self):
        if not ENV_VAR_PATTERN.match(self.env_var):
            raise ValueError(f"{self.env_var!r} is not a valid environment variable name")
        if self.env_var == self.secret_name:
            raise ValueError(f"Environment variable {self.env_var} must be named for its "
                             f"purpose, not after secret {self.secret_name}")


# the thread only holds a weak reference so it does not keep the binding alive

def _background_refresh_thread(binding_weak_ref):
    """
    Background loop re-resolving secrets every ttl seconds
    :param binding_weak_ref: weak reference to a WorkloadSecretBinding
    :return: None
    """
    ttl = max(float(binding_weak_ref().ttl), MIN_REFRESH_SECONDS)

    while True:
        sleep(ttl)
        binding = binding_weak_ref()

        # if the object no longer exists exit
        if binding is None:
            break

        try:
            binding._background_refresh()
        except Exception:
            logging.getLogger(__name__).exception(
                f"While refreshing secrets for {binding!r}")
        # drop the reference so the binding can be collected during sleep
        del binding


class WorkloadSecretBinding:
    """Resolves secret references with a reader bound store.

    Attributes:
        store (SecretStore): store handle bound to the reader principal.
        references (tuple): the SecretReference entries the workload declares.
    """

    def __init__(self, store, references):
        if store.principal.role != ROLE_READER:
            raise StorePermissionDenied(store.principal.id, "resolve workload secrets with",
                                        ",".join(r.secret_name for r in references))
        references = tuple(references)
        env_vars = [reference.env_var for reference in references]
        if len(set(env_vars)) != len(env_vars):
            raise ValueError("Each environment variable may only be bound to one secret")

        self._store = store
        self._references = references
        self._values = None
        self.exception = None
        self.ttl = None
        self.on_change = None
        self.lock = threading.Lock()
        self.t = None

    @property
    def store(self):
        return self._store

    @property
    def references(self):
        return self._references

    def __repr__(self):
        names = ",".join(reference.env_var for reference in self.references)
        return f"WorkloadSecretBinding({self.store.principal.id}, [{names}])"

    def _fetch(self, reference):
        try:
            return self.store.get(reference.secret_name)
        except StorePermissionDenied as e:
            raise SecretResolutionError(reference.secret_name, "permission denied") from e
        except NoActiveSecretVersion as e:
            raise SecretResolutionError(reference.secret_name, "no enabled version") from e
        except exceptions.NotFound as e:
            raise SecretResolutionError(reference.secret_name, "secret does not exist") from e
        except StoreCallError as e:
            raise SecretResolutionError(reference.secret_name, e.kind) from e
        except (SecretBootstrapError, exceptions.GoogleAPIError) as e:
            raise SecretResolutionError(reference.secret_name, type(e).__name__) from e

    def resolve(self):
        """
        Resolve every reference from the store.

        :return: dict of env var name to value
        :raises SecretResolutionError: naming the first secret that could not be resolved
        """
        values = {reference.env_var: self._fetch(reference) for reference in self.references}
        with self.lock:
            self._values = values
            self.exception = None
        return dict(values)

    def refresh(self):
        """
        Re-resolve every reference.

        :return: True if any value differs from the previous resolution
        """
        with self.lock:
            previous = self._values
        current = self.resolve()
        return previous is not None and previous != current

    def current(self):
        """
        The values from the latest resolution, resolving on first use.

        If the latest background refresh failed its error is raised here rather than
        handing back stale values.
        """
        with self.lock:
            values = self._values
            exception = self.exception
        if exception is not None:
            raise exception
        if values is None:
            return self.resolve()
        return dict(values)

    def environment(self, base=None):
        """Return a copy of base (default os.environ) with resolved values injected."""
        if base is None:
            base = os.environ
        return {**base, **self.resolve()}

    def apply(self, environ=None):
        """
        Inject resolved values into environ (default os.environ).

        :return: sorted list of the env var names that were set
        """
        if environ is None:
            environ = os.environ
        values = self.resolve()
        environ.update(values)
        return sorted(values)

    def run_workload(self, argv, base=None):
        """Resolve secrets and replace the current process with the workload."""
        if not argv:
            raise ValueError("No workload command given")
        env = self.environment(base)
        logging.getLogger(__name__).info(
            f"Starting {argv[0]} with secrets "
            f"{','.join(reference.env_var for reference in self.references)}")
        os.execvpe(argv[0], list(argv), env)

    def start_refresh(self, ttl=60.0, on_change=None):
        """
        Start a daemon thread refreshing values every ttl seconds.

        :param ttl: seconds between refreshes, at least 30
        :param on_change: called with the new values when any value changed
        """
        assert ttl >= MIN_REFRESH_SECONDS, \
            "Trying to refresh secrets at too high a frequency min is 30.0 seconds"
        self.ttl = ttl
        self.on_change = on_change
        t = threading.Thread(target=_background_refresh_thread,
                             name=f"refresh_workload_secrets_{self.store.principal.id}",
                             args=[weakref.ref(self)])
        t.daemon = True
        t.start()
        self.t = weakref.ref(t)
        return t

    def _background_refresh(self):
        try:
            changed = self.refresh()
        except SecretResolutionError as e:
            with self.lock:
                self.exception = e
            raise
        if changed and self.on_change is not None:
            self.on_change(self.current())
