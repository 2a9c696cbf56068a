"""Structural validation of store specs. Never performs network I/O."""
from typing import Optional

from .errors import ConfigError
from .models import SecretKeySelector, ServiceAccountSelector, StoreSpec


def _validate_namespace(store: StoreSpec, namespace: Optional[str], what: str) -> None:
    if store.is_cluster_scoped:
        if namespace is None:
            raise ConfigError(f"cluster scope requires namespace ({what})")
        return
    if namespace is not None and namespace != store.namespace:
        raise ConfigError(f"namespace not allowed with namespaced SecretStore ({what})")


def validate_secret_selector(store: StoreSpec, selector: SecretKeySelector) -> None:
    """
    Validate a reference to a Kubernetes secret key.

    ClusterSecretStore selectors must name a namespace. SecretStore selectors may only
    name the store's own namespace.

    Raises:
        ConfigError: If the selector is not legal for the store
    """
    if not selector.name:
        raise ConfigError("secret selector requires a name")
    if not selector.key:
        raise ConfigError("secret selector requires a key")
    _validate_namespace(store, selector.namespace, f"secret {selector.name}")


def validate_service_account_selector(store: StoreSpec, selector: ServiceAccountSelector) -> None:
    if not selector.name:
        raise ConfigError("service account selector requires a name")
    _validate_namespace(store, selector.namespace, f"service account {selector.name}")


def validate_store(store: Optional[StoreSpec]) -> None:
    """
    Validate a store spec.

    Args:
        store: Store configuration to check

    Raises:
        ConfigError: If the store, its provider or any auth selector is invalid
    """
    if store is None:
        raise ConfigError("invalid store")
    if store.provider is None:
        raise ConfigError("invalid provider spec.provider.gcpsm in store")
    if not store.provider.project_id:
        raise ConfigError("invalid store: missing project ID")

    auth = store.provider.auth
    if auth.secret_ref is not None:
        try:
            validate_secret_selector(store, auth.secret_ref.secret_access_key)
        except ConfigError as e:
            raise ConfigError(f"invalid auth secret data: {e}") from e

    wi = auth.workload_identity
    if wi is not None and wi.service_account_ref is not None:
        try:
            validate_service_account_selector(store, wi.service_account_ref)
        except ConfigError as e:
            raise ConfigError(f"invalid workload identity service account reference: {e}") from e
