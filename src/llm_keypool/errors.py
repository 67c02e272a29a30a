"""Exception taxonomy.

Every failure carries the provider (and credential name where one applies)
so callers can decide whether to retry, pick another provider, or give up.
Nothing in this package retries internally.
"""


class KeyPoolError(Exception):
    """Base class for all llm_keypool errors."""

    def __init__(self, message: str, provider: str | None = None, name: str | None = None):
        super().__init__(message)
        self.provider = provider
        self.name = name


class NotFound(KeyPoolError):
    """Unknown provider or credential name."""

    def __init__(self, provider: str, name: str | None = None):
        if name is None:
            msg = f"provider {provider} not found"
        else:
            msg = f"key {name} not found for provider {provider}"
        super().__init__(msg, provider, name)


class NoCredentialsAvailable(KeyPoolError):
    """No enabled, under-budget credential exists for a provider."""

    def __init__(self, provider: str, message: str | None = None):
        super().__init__(
            message or f"no enabled keys available for provider {provider}", provider
        )


class AllCredentialsOverBudget(NoCredentialsAvailable):
    """Every candidate has reached its daily cost limit."""

    def __init__(self, provider: str):
        super().__init__(
            provider, f"all keys for provider {provider} have exceeded their cost limits"
        )


class NoHealthyCredential(KeyPoolError):
    """The selected credential (and every fallback) is unhealthy."""

    def __init__(self, provider: str, name: str | None = None):
        if name is None:
            msg = f"no healthy fallback keys available for provider {provider}"
        else:
            msg = f"selected key {name} is unhealthy and no fallback available"
        super().__init__(msg, provider, name)


class EncryptionFailure(KeyPoolError):
    pass


class DecryptionFailure(KeyPoolError):
    pass


class DispatchFailure(KeyPoolError):
    """Provider call failed. The cause is chained as ``__cause__``."""

    def __init__(self, provider: str, name: str, detail: str = ""):
        msg = f"{provider} request with key {name} failed"
        if detail:
            msg = f"{msg}: {detail}"
        super().__init__(msg, provider, name)


class ConfigError(KeyPoolError):
    pass
