# -*- coding: utf-8 -*-
"""
Descriptors for the secrets a deployment requires.

Each descriptor carries a generation policy which is one of

GenerateIfAbsent - a missing secret is synthesised with the token generator
SuppliedValue    - a missing secret takes a value chosen by the operator. The value
                   is handed over either directly or via an environment variable so
                   it never lands in a config document or a deployment log.
"""

import os
import re
from dataclasses import dataclass, field
from typing import Optional, Union

from .exceptions import MissingSuppliedValue

SECRET_ID_PATTERN = re.compile(r"^[A-Za-z0-9_-]{1,255}$")


@dataclass(frozen=True)
class GenerateIfAbsent:
    """Generate a fresh token when the secret does not exist yet."""


@dataclass(frozen=True)
class SuppliedValue:
    """Use an operator supplied value when the secret does not exist yet."""

    value: Optional[str] = field(default=None, repr=False)
    env_var: Optional[str] = None

    def resolve(self, secret_id, environ=None):
        """
        Resolve the supplied value.

        A literal value wins over the environment variable. Empty strings count
        as absent.

        :param secret_id: name of the secret, used for error reporting only
        :param environ: mapping to read env_var from, defaults to os.environ
        :return: the value
        :raises MissingSuppliedValue: if neither channel has a value
        """
        if self.value:
            return self.value
        if self.env_var:
            if environ is None:
                environ = os.environ
            value = environ.get(self.env_var)
            if value:
                return value
        raise MissingSuppliedValue(secret_id, self.env_var)


GenerationPolicy = Union[GenerateIfAbsent, SuppliedValue]


@dataclass(frozen=True)
class SecretDescriptor:
    name: str
    policy: GenerationPolicy
    sensitive: bool = True

    def __post_init__(self):
        if not isinstance(self.name, str) or not SECRET_ID_PATTERN.match(self.name):
            raise ValueError(f"Secret name {self.name!r} is not a valid secret id")
        if not isinstance(self.policy, (GenerateIfAbsent, SuppliedValue)):
            raise ValueError(f"Secret {self.name} has unknown generation policy "
                             f"{type(self.policy).__name__}")
        if not self.sensitive:
            raise ValueError(f"Secret {self.name} must be flagged sensitive")


def validate_descriptors(descriptors):
    """Return descriptors as a tuple, rejecting duplicate names."""
    descriptors = tuple(descriptors)
    seen = set()
    for descriptor in descriptors:
        if descriptor.name in seen:
            raise ValueError(f"Secret {descriptor.name} is described more than once")
        seen.add(descriptor.name)
    return descriptors
