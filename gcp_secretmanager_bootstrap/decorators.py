"""Decorators injecting workload secrets into functions """


class InjectResolvedSecrets:
    """Decorator injecting values resolved by a WorkloadSecretBinding as keyword arguments"""

    def __init__(self, binding, **kwargs):
        """
        Construct a decorator to inject keyword arguments resolved from a binding.

        :type binding: gcp_secretmanager_bootstrap.WorkloadSecretBinding
        :param binding: Binding to resolve secrets with, it must be bound to the reader

        :type kwargs: dict
        :param kwargs: dictionary mapping keyword argument of wrapped function to the
                       environment variable name of a reference. If empty every reference
                       is injected as its environment variable name lower cased.
        """
        self.binding = binding
        if not kwargs:
            kwargs = {reference.env_var.lower(): reference.env_var
                      for reference in binding.references}
        self.kwarg_map = kwargs

    def __call__(self, func):
        """
        Return a function with resolved secrets injected as keyword arguments.

        :type func: object
        :param func: function for injecting keyword arguments.
        :return The original function with injected keyword arguments
        """
        values = self.binding.current()

        resolved_kwargs = dict()
        for orig_kwarg in self.kwarg_map:
            env_var = self.kwarg_map[orig_kwarg]
            try:
                resolved_kwargs[orig_kwarg] = values[env_var]
            except KeyError:
                raise RuntimeError('Binding has no reference for {0}'.format(env_var)) from None

        def _wrapped_func(*args, **kwargs):
            """
            Internal function to execute wrapped function
            """
            return func(*args, **resolved_kwargs, **kwargs)

        return _wrapped_func
