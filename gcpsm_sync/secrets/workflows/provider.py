"""Secret Manager provider: construction, operations and close."""
import logging
import threading
from typing import Callable, Dict, Optional

from google.auth import credentials as gcredentials
from google.auth import exceptions as gauth_exceptions

from ..domains.credentials import CredentialResolver, CredentialToken
from ..domains.errors import AuthError, ConfigError, TransportError
from ..domains.gcp_client import GCPSecretClient, RemoteClient
from ..domains.kube import KubeReader
from ..domains.lease import DEFAULT_LEASE_MANAGER, Lease, LeaseManager
from ..domains.models import (
    Capabilities,
    FindQuery,
    PushRemoteRef,
    RemoteSecretRef,
    StoreSpec,
    ValidationResult,
)
from ..domains.validators import validate_store
from .find_operations import SecretFinder
from .push_operations import SecretWriter
from .secret_operations import SecretAccessor

logger = logging.getLogger(__name__)

ClientFactory = Callable[[gcredentials.Credentials, Optional[float], Optional[threading.Event]], RemoteClient]


def _default_client_factory(
    credentials: gcredentials.Credentials,
    timeout: Optional[float],
    cancel_event: Optional[threading.Event],
) -> RemoteClient:
    return GCPSecretClient.from_credentials(credentials, timeout=timeout, cancel_event=cancel_event)


class SecretManagerProvider:
    """
    Provider instance bound to one store.

    Holds the transport lease from construction until close(). Build it with new_client().
    """

    def __init__(
        self,
        client: RemoteClient,
        project_id: str,
        token: Optional[CredentialToken] = None,
        lease: Optional[Lease] = None,
        lease_manager: Optional[LeaseManager] = None,
    ):
        self.client = client
        self.project_id = project_id
        self._token = token
        self._lease = lease
        self._lease_manager = lease_manager
        self._closed = False

        self.accessor = SecretAccessor(client, project_id)
        self.finder = SecretFinder(client, project_id, self.accessor)
        self.writer = SecretWriter(client, project_id)

    def get_secret(self, ref: RemoteSecretRef) -> bytes:
        return self.accessor.get_secret(ref)

    def get_secret_map(self, ref: RemoteSecretRef) -> Dict[str, bytes]:
        return self.accessor.get_secret_map(ref)

    def get_all_secrets(self, query: FindQuery) -> Dict[str, bytes]:
        return self.finder.get_all_secrets(query)

    def set_secret(self, payload: bytes, ref: PushRemoteRef) -> None:
        self.writer.set_secret(payload, ref)

    def capabilities(self) -> Capabilities:
        return Capabilities.READ_WRITE

    def validate(self) -> ValidationResult:
        return ValidationResult.READY

    def validate_store(self, store: StoreSpec) -> None:
        validate_store(store)

    @property
    def closed(self) -> bool:
        return self._closed

    def close(self) -> None:
        """
        Close the client and release the transport lease.

        Safe to call more than once. The lease is released on the first call even when
        closing the client fails.

        Raises:
            TransportError: If the client fails to close
        """
        if self._closed:
            logger.warning("GCP secret manager provider already closed")
            return
        self._closed = True

        try:
            self.client.close()
        except Exception as e:
            raise TransportError(f"unable to close GCP client: {e}") from e
        finally:
            if self._token is not None:
                self._token.close()
            if self._lease is not None and self._lease_manager is not None:
                self._lease_manager.release(self._lease)
        logger.debug(f"Closed provider for project {self.project_id}")

    def __enter__(self) -> "SecretManagerProvider":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        if exc_type is None:
            self.close()
            return
        # keep the operation's error; a close failure is only logged
        try:
            self.close()
        except TransportError as e:
            logger.warning(f"{e} (while handling {exc_type.__name__})")


def new_client(
    store: StoreSpec,
    kube: Optional[KubeReader],
    namespace: str,
    lease_manager: Optional[LeaseManager] = None,
    resolver: Optional[CredentialResolver] = None,
    client_factory: Optional[ClientFactory] = None,
    timeout: Optional[float] = None,
    cancel_event: Optional[threading.Event] = None,
) -> SecretManagerProvider:
    """
    Construct a provider for a store.

    Blocks until the transport lease is free. The lease is held until the returned
    provider is closed, or released here if construction fails.

    Args:
        store: Store configuration
        kube: Kubernetes reader used by the credential strategies
        namespace: Namespace of the object being reconciled
        lease_manager: Transport lease (process-wide default when omitted)
        resolver: Credential resolver (default strategy chain when omitted)
        client_factory: Builds the remote client from validated credentials
        timeout: Deadline in seconds for every remote call
        cancel_event: Set to stop further remote calls

    Returns:
        Ready provider

    Raises:
        ConfigError: If the store configuration is invalid
        AuthError: If credentials cannot be resolved or validated
        TransportError: If the client cannot be created
    """
    if store is None or store.provider is None:
        raise ConfigError("invalid store: missing GCPSM provider spec")

    lease_manager = lease_manager or DEFAULT_LEASE_MANAGER
    resolver = resolver or CredentialResolver()
    client_factory = client_factory or _default_client_factory

    lease = lease_manager.acquire(blocking=True)
    token = None
    try:
        try:
            token = resolver.resolve(store, kube, namespace)
            # fail before building the transport if the credentials are unusable
            token.token()
        except gauth_exceptions.GoogleAuthError as e:
            raise AuthError(f"unable to get credentials: {e}") from e
        client = client_factory(token.credentials, timeout, cancel_event)
    except BaseException:
        if token is not None:
            token.close()
        lease_manager.release(lease)
        raise

    logger.info(f"Created GCP secret manager provider for project {store.provider.project_id} using {token.source}")
    return SecretManagerProvider(
        client,
        store.provider.project_id,
        token=token,
        lease=lease,
        lease_manager=lease_manager,
    )
