"""Namespaced Kubernetes reads needed for credential resolution."""
import base64
import logging
from typing import Dict, List, Optional, Protocol

from kubernetes import client as kclient
from kubernetes import config as kconfig
from kubernetes.client.rest import ApiException

from .errors import AuthError, ConfigError, NotFoundError

logger = logging.getLogger(__name__)


class KubeReader(Protocol):
    """Read capability over namespaced Kubernetes objects."""

    def get_secret_data(self, namespace: str, name: str) -> Dict[str, bytes]:
        ...

    def get_service_account_annotations(self, namespace: str, name: str) -> Dict[str, str]:
        ...

    def create_service_account_token(self, namespace: str, name: str, audiences: List[str]) -> str:
        ...


class KubernetesReader:
    """KubeReader backed by the official kubernetes client."""

    def __init__(self, core_v1: kclient.CoreV1Api):
        self._core = core_v1

    @classmethod
    def from_environment(cls) -> "KubernetesReader":
        """
        Load in-cluster config, falling back to the local kubeconfig.

        Raises:
            ConfigError: If neither configuration is available
        """
        try:
            kconfig.load_incluster_config()
            logger.debug("Using in-cluster Kubernetes config")
        except kconfig.ConfigException:
            try:
                kconfig.load_kube_config()
            except (kconfig.ConfigException, OSError) as e:
                raise ConfigError(f"no Kubernetes configuration available: {e}") from e
            logger.debug("Using kubeconfig")
        return cls(kclient.CoreV1Api())

    @staticmethod
    def _translate(e: ApiException, what: str) -> Exception:
        if e.status == 404:
            return NotFoundError(f"{what} not found")
        return AuthError(f"unable to read {what}: {e.reason}")

    def get_secret_data(self, namespace: str, name: str) -> Dict[str, bytes]:
        try:
            secret = self._core.read_namespaced_secret(name=name, namespace=namespace)
        except ApiException as e:
            raise self._translate(e, f"secret {namespace}/{name}") from e
        return {k: base64.b64decode(v) for k, v in (secret.data or {}).items()}

    def get_service_account_annotations(self, namespace: str, name: str) -> Dict[str, str]:
        try:
            sa = self._core.read_namespaced_service_account(name=name, namespace=namespace)
        except ApiException as e:
            raise self._translate(e, f"service account {namespace}/{name}") from e
        return dict(sa.metadata.annotations or {})

    def create_service_account_token(
        self,
        namespace: str,
        name: str,
        audiences: List[str],
        expiration_seconds: Optional[int] = 600,
    ) -> str:
        """Issue a short-lived token for a service account via the TokenRequest API."""
        request = kclient.AuthenticationV1TokenRequest(
            spec=kclient.V1TokenRequestSpec(
                audiences=audiences,
                expiration_seconds=expiration_seconds,
            )
        )
        try:
            response = self._core.create_namespaced_service_account_token(
                name=name, namespace=namespace, body=request
            )
        except ApiException as e:
            raise self._translate(e, f"token for service account {namespace}/{name}") from e
        return response.status.token
