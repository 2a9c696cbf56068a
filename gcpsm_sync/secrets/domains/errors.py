"""Error taxonomy for the secret store provider.

None of these errors are retried here. Callers own the retry cadence.
"""


class SecretStoreError(Exception):
    """Base class for every error raised by the provider."""
    pass


class ConfigError(SecretStoreError):
    """Malformed or missing store spec or selector."""
    pass


class AuthError(SecretStoreError):
    """Credential resolution or validation failed."""
    pass


class NotFoundError(SecretStoreError):
    """Remote secret or version does not exist."""
    pass


class NotManagedError(SecretStoreError):
    """Remote secret exists but does not carry the ownership label."""

    def __init__(self, key: str):
        super().__init__(f"secret {key} is not managed by external secrets")
        self.key = key


class MalformedSecretError(SecretStoreError):
    """Remote payload is structurally absent."""
    pass


class PropertyNotFoundError(SecretStoreError):
    """Requested property does not resolve in the secret payload."""

    def __init__(self, key: str, prop: str):
        super().__init__(f"key {prop} does not exist in secret {key}")
        self.key = key
        self.property = prop


class UnmarshalError(SecretStoreError):
    """Secret payload is not a JSON object."""
    pass


class TransportError(SecretStoreError):
    """Generic remote I/O failure."""
    pass


class NotInitializedError(SecretStoreError):
    """Provider used before a client and project were configured."""

    def __init__(self):
        super().__init__("provider GCP is not initialized")


class UnsupportedQueryError(SecretStoreError):
    """Find query carries neither a name pattern nor tags."""

    def __init__(self):
        super().__init__("unexpected find operator")


class OperationCancelledError(SecretStoreError):
    """Cancellation was requested before a remote call started."""
    pass
