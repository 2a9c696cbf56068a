"""Credential resolution for the Secret Manager provider.

Strategies are tried in order. A strategy returning None is not applicable and the next
one is tried. A strategy raising stops the chain.
"""
import json
import logging
from datetime import datetime
from typing import List, Optional, Protocol

import google.auth
import requests
from google.auth import credentials as gcredentials
from google.auth import exceptions as gauth_exceptions
from google.auth.transport.requests import Request
from google.oauth2 import service_account

from .errors import AuthError, ConfigError, NotFoundError
from .kube import KubeReader
from .models import StoreSpec

logger = logging.getLogger(__name__)

CLOUD_PLATFORM_SCOPE = "https://www.googleapis.com/auth/cloud-platform"


class CredentialToken:
    """
    Bearer credential held by one provider instance.

    Owns the HTTP session used for refreshes. Never persisted.
    """

    def __init__(self, credentials: gcredentials.Credentials, source: str):
        self.credentials = credentials
        self.source = source
        self._session = requests.Session()
        self._closed = False

    @property
    def expiry(self) -> Optional[datetime]:
        return self.credentials.expiry

    @property
    def valid(self) -> bool:
        return self.credentials.valid

    def token(self) -> str:
        """
        Return a current token value, refreshing when needed.

        Raises:
            AuthError: If the token cannot be obtained
        """
        if not self.credentials.valid:
            try:
                self.credentials.refresh(Request(session=self._session))
            except gauth_exceptions.GoogleAuthError as e:
                raise AuthError(f"unable to get credentials from {self.source}: {e}") from e
        if not self.credentials.token:
            raise AuthError(f"{self.source} credentials returned an empty token")
        return self.credentials.token

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._session.close()


class CredentialStrategy(Protocol):
    """One way of producing credentials."""

    name: str

    def try_resolve(
        self, store: StoreSpec, kube: Optional[KubeReader], namespace: str
    ) -> Optional[gcredentials.Credentials]:
        ...


class SecretRefStrategy:
    """Service-account JSON read from a Kubernetes secret."""

    name = "secret-ref"

    def try_resolve(
        self, store: StoreSpec, kube: Optional[KubeReader], namespace: str
    ) -> Optional[gcredentials.Credentials]:
        if store.provider is None:
            raise ConfigError("invalid store: missing GCPSM provider spec")
        secret_ref = store.provider.auth.secret_ref
        if secret_ref is None:
            return None

        selector = secret_ref.secret_access_key
        secret_namespace = namespace
        # only cluster stores may point elsewhere, and then they must say where
        if store.is_cluster_scoped:
            if selector.name and selector.namespace is None:
                raise ConfigError("invalid ClusterSecretStore: missing GCP SecretAccessKey Namespace")
            if selector.name:
                secret_namespace = selector.namespace

        if kube is None:
            raise ConfigError("secretRef auth requires a Kubernetes reader")
        try:
            data = kube.get_secret_data(secret_namespace, selector.name)
        except NotFoundError as e:
            raise AuthError(f"cannot get Kubernetes secret \"{selector.name}\": {e}") from e

        blob = data.get(selector.key)
        if not blob:
            raise AuthError("missing SecretAccessKey")

        try:
            info = json.loads(blob)
            return service_account.Credentials.from_service_account_info(
                info, scopes=[CLOUD_PLATFORM_SCOPE]
            )
        except (ValueError, TypeError, KeyError, gauth_exceptions.GoogleAuthError) as e:
            raise AuthError(f"failed to process the provided JSON credentials: {e}") from e


class AmbientDefaultStrategy:
    """Application default credentials of the environment."""

    name = "ambient-default"

    def try_resolve(
        self, store: StoreSpec, kube: Optional[KubeReader], namespace: str
    ) -> Optional[gcredentials.Credentials]:
        try:
            credentials, _ = google.auth.default(scopes=[CLOUD_PLATFORM_SCOPE])
        except gauth_exceptions.GoogleAuthError as e:
            raise AuthError(f"unable to find default credentials: {e}") from e
        return credentials


def default_strategies() -> List[CredentialStrategy]:
    # workload_identity imports this module
    from .workload_identity import WorkloadIdentityStrategy

    return [SecretRefStrategy(), WorkloadIdentityStrategy(), AmbientDefaultStrategy()]


class CredentialResolver:
    """Evaluates credential strategies in priority order."""

    def __init__(self, strategies: Optional[List[CredentialStrategy]] = None):
        self.strategies = strategies if strategies is not None else default_strategies()

    def resolve(self, store: StoreSpec, kube: Optional[KubeReader], namespace: str) -> CredentialToken:
        """
        Produce a credential token for the store.

        Args:
            store: Store configuration
            kube: Kubernetes reader for secret and service account lookups
            namespace: Namespace of the object being reconciled

        Returns:
            CredentialToken from the first applicable strategy

        Raises:
            ConfigError: If the store configuration is invalid
            AuthError: If an applicable strategy fails
        """
        for strategy in self.strategies:
            credentials = strategy.try_resolve(store, kube, namespace)
            if credentials is not None:
                logger.debug(f"Resolved credentials using {strategy.name}")
                return CredentialToken(credentials, strategy.name)
            logger.debug(f"Credential strategy {strategy.name} not applicable")
        raise AuthError("no credential strategy produced credentials")
