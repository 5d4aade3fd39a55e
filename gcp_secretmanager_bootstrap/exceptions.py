# -*- coding: utf-8 -*-

class SecretBootstrapError(Exception):
    """Base Error class."""


class ConfigError(SecretBootstrapError):
    """Deployment configuration is invalid."""


class EntropySourceUnavailable(SecretBootstrapError):
    CUSTOM_ERROR_MESSAGE = "Cannot generate secret, entropy source unavailable: {}"

    def __init__(self, error):
        super(EntropySourceUnavailable, self).__init__(self.CUSTOM_ERROR_MESSAGE.format(error))
        self._error = error

    @property
    def error(self):
        return self._error


class MissingSuppliedValue(SecretBootstrapError):
    CUSTOM_ERROR_MESSAGE = "Secret {} is absent and no supplied value is available{}"

    def __init__(self, secret_id, env_var=None):
        hint = f" (expected in environment variable {env_var})" if env_var else ""
        super(MissingSuppliedValue, self).__init__(self.CUSTOM_ERROR_MESSAGE.format(secret_id,
                                                                                    hint))
        self._secret_id = secret_id
        self._env_var = env_var

    @property
    def secret_id(self):
        return self._secret_id

    @property
    def env_var(self):
        return self._env_var


class StorePermissionDenied(SecretBootstrapError):
    CUSTOM_ERROR_MESSAGE = "Principal {} is not permitted to {} secret {}"

    def __init__(self, principal_id, operation, secret_id, error=None):
        message = self.CUSTOM_ERROR_MESSAGE.format(principal_id, operation, secret_id)
        if error is not None:
            message = f"{message}: {error}"
        super(StorePermissionDenied, self).__init__(message)
        self._principal_id = principal_id
        self._operation = operation
        self._secret_id = secret_id
        self._error = error

    @property
    def principal_id(self):
        return self._principal_id

    @property
    def operation(self):
        return self._operation

    @property
    def secret_id(self):
        return self._secret_id

    @property
    def error(self):
        return self._error


class NoActiveSecretVersion(SecretBootstrapError):
    CUSTOM_ERROR_MESSAGE = "Secret {} has no active enabled versions"

    def __init__(self, secret_id):
        super(NoActiveSecretVersion, self).__init__(self.CUSTOM_ERROR_MESSAGE.format(secret_id))
        self._secret_id = secret_id

    @property
    def secret_id(self):
        return self._secret_id


class SecretResolutionError(SecretBootstrapError):
    CUSTOM_ERROR_MESSAGE = "Workload could not resolve secret {}: {}"

    def __init__(self, secret_id, reason):
        super(SecretResolutionError, self).__init__(self.CUSTOM_ERROR_MESSAGE.format(secret_id,
                                                                                     reason))
        self._secret_id = secret_id
        self._reason = reason

    @property
    def secret_id(self):
        return self._secret_id

    @property
    def reason(self):
        return self._reason


class ProvisioningTimeout(SecretBootstrapError):
    CUSTOM_ERROR_MESSAGE = "Provisioning exceeded {} seconds before secret {} was processed"

    def __init__(self, timeout, secret_id):
        super(ProvisioningTimeout, self).__init__(self.CUSTOM_ERROR_MESSAGE.format(timeout,
                                                                                   secret_id))
        self._timeout = timeout
        self._secret_id = secret_id

    @property
    def timeout(self):
        return self._timeout

    @property
    def secret_id(self):
        return self._secret_id


class InvalidRoleBinding(SecretBootstrapError):
    CUSTOM_ERROR_MESSAGE = "Role binding for {} ({}) is invalid: {}"

    def __init__(self, principal_id, role, reason):
        super(InvalidRoleBinding, self).__init__(self.CUSTOM_ERROR_MESSAGE.format(principal_id,
                                                                                  role,
                                                                                  reason))
        self._principal_id = principal_id
        self._role = role

    @property
    def principal_id(self):
        return self._principal_id

    @property
    def role(self):
        return self._role


class RoleBindingError(SecretBootstrapError):
    CUSTOM_ERROR_MESSAGE = "Granting {} to {} on {} failed: {}"

    def __init__(self, role, member, scope, error):
        super(RoleBindingError, self).__init__(self.CUSTOM_ERROR_MESSAGE.format(role,
                                                                                member,
                                                                                scope,
                                                                                error))
        self._role = role
        self._member = member
        self._scope = scope
        self._error = error

    @property
    def role(self):
        return self._role

    @property
    def member(self):
        return self._member

    @property
    def scope(self):
        return self._scope

    @property
    def error(self):
        return self._error


class StoreCallError(SecretBootstrapError):
    CUSTOM_ERROR_MESSAGE = "Secret store call to {} secret {} failed: {}"

    def __init__(self, operation, secret_id, kind):
        super(StoreCallError, self).__init__(self.CUSTOM_ERROR_MESSAGE.format(operation,
                                                                              secret_id,
                                                                              kind))
        self._operation = operation
        self._secret_id = secret_id
        self._kind = kind

    @property
    def operation(self):
        return self._operation

    @property
    def secret_id(self):
        return self._secret_id

    @property
    def kind(self):
        return self._kind
