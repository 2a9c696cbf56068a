"""Workload identity credentials.

A Kubernetes service-account token is exchanged at Google STS for a federated token,
which then impersonates a Google service account through IAM credentials.
"""
import logging
import os
from dataclasses import dataclass
from typing import Callable, Optional

from google.auth import credentials as gcredentials
from google.auth import exceptions as gauth_exceptions
from google.auth import identity_pool

from .credentials import CLOUD_PLATFORM_SCOPE
from .errors import AuthError, ConfigError, NotFoundError
from .kube import KubeReader
from .models import StoreSpec

logger = logging.getLogger(__name__)

STS_TOKEN_URL = "https://sts.googleapis.com/v1/token"
IMPERSONATION_URL = (
    "https://iamcredentials.googleapis.com/v1/projects/-/serviceAccounts/{}:generateAccessToken"
)
SUBJECT_TOKEN_TYPE = "urn:ietf:params:oauth:token-type:jwt"

# Service account annotations
CLIENT_ID_ANNOTATION = "iam.gke.io/gcp-service-account"
TENANT_ID_ANNOTATION = "gcpsm-sync.io/workload-identity-provider"

# Fallback environment when no service account is referenced
CLIENT_ID_ENV = "GCP_CLIENT_ID"
TENANT_ID_ENV = "GCP_TENANT_ID"
TOKEN_FILE_ENV = "GCP_FEDERATED_TOKEN_FILE"


@dataclass(frozen=True)
class FederatedIdentity:
    """Where a subject token comes from and what it is exchanged for."""
    client_id: str
    audience: str
    token_audience: str


def gke_identity(cluster_project_id: str, cluster_location: str, cluster_name: str) -> FederatedIdentity:
    """Derive the GKE identity-namespace audience for a cluster."""
    id_pool = f"{cluster_project_id}.svc.id.goog"
    id_provider = (
        f"https://container.googleapis.com/v1/projects/{cluster_project_id}"
        f"/locations/{cluster_location}/clusters/{cluster_name}"
    )
    return FederatedIdentity(
        client_id="",
        audience=f"identitynamespace:{id_pool}:{id_provider}",
        token_audience=id_pool,
    )


class CallableTokenSupplier(identity_pool.SubjectTokenSupplier):
    """Subject token supplier that calls back on every exchange."""

    def __init__(self, fetch: Callable[[], str]):
        self._fetch = fetch

    def get_subject_token(self, context, request):
        try:
            return self._fetch()
        except (AuthError, NotFoundError, OSError) as e:
            raise gauth_exceptions.RefreshError(f"unable to obtain subject token: {e}") from e


def read_token_file(path: str) -> Callable[[], str]:
    def fetch() -> str:
        with open(path, "r") as f:
            return f.read().strip()
    return fetch


def federated_credentials(identity: FederatedIdentity, fetch: Callable[[], str]) -> gcredentials.Credentials:
    """Build credentials that perform the STS exchange and impersonation on refresh."""
    return identity_pool.Credentials(
        audience=identity.audience,
        subject_token_type=SUBJECT_TOKEN_TYPE,
        token_url=STS_TOKEN_URL,
        subject_token_supplier=CallableTokenSupplier(fetch),
        service_account_impersonation_url=IMPERSONATION_URL.format(identity.client_id),
        scopes=[CLOUD_PLATFORM_SCOPE],
    )


class WorkloadIdentityStrategy:
    """Credentials from a federated Kubernetes service-account identity."""

    name = "workload-identity"

    def try_resolve(
        self, store: StoreSpec, kube: Optional[KubeReader], namespace: str
    ) -> Optional[gcredentials.Credentials]:
        if store.provider is None:
            raise ConfigError("invalid store: missing GCPSM provider spec")
        wi = store.provider.auth.workload_identity
        if wi is None:
            return None

        sa_ref = wi.service_account_ref
        if sa_ref is None:
            return self._from_environment()

        if store.is_cluster_scoped and sa_ref.namespace is None:
            raise ConfigError("invalid ClusterSecretStore: missing serviceAccountRef namespace")
        sa_namespace = sa_ref.namespace if store.is_cluster_scoped else namespace
        if kube is None:
            raise ConfigError("workload identity auth requires a Kubernetes reader")

        try:
            annotations = kube.get_service_account_annotations(sa_namespace, sa_ref.name)
        except NotFoundError as e:
            raise AuthError(f"unable to read service account {sa_namespace}/{sa_ref.name}: {e}") from e

        client_id = annotations.get(CLIENT_ID_ANNOTATION)
        if not client_id:
            raise ConfigError(
                f"service account {sa_namespace}/{sa_ref.name} is missing annotation {CLIENT_ID_ANNOTATION}"
            )

        tenant = annotations.get(TENANT_ID_ANNOTATION)
        if tenant:
            identity = FederatedIdentity(client_id=client_id, audience=tenant, token_audience=tenant)
        elif wi.cluster_project_id and wi.cluster_location and wi.cluster_name:
            derived = gke_identity(wi.cluster_project_id, wi.cluster_location, wi.cluster_name)
            identity = FederatedIdentity(
                client_id=client_id,
                audience=derived.audience,
                token_audience=derived.token_audience,
            )
        else:
            raise ConfigError(
                f"service account {sa_namespace}/{sa_ref.name} has no {TENANT_ID_ANNOTATION} annotation "
                f"and clusterProjectID, clusterLocation and clusterName are not all set"
            )

        audiences = [identity.token_audience] + list(sa_ref.audiences)

        def fetch() -> str:
            return kube.create_service_account_token(sa_namespace, sa_ref.name, audiences)

        logger.debug(f"Using workload identity of service account {sa_namespace}/{sa_ref.name}")
        return federated_credentials(identity, fetch)

    def _from_environment(self) -> gcredentials.Credentials:
        values = {}
        for var in (CLIENT_ID_ENV, TENANT_ID_ENV, TOKEN_FILE_ENV):
            value = os.getenv(var)
            if not value:
                raise ConfigError(f"missing environment variable {var} for workload identity")
            values[var] = value

        identity = FederatedIdentity(
            client_id=values[CLIENT_ID_ENV],
            audience=values[TENANT_ID_ENV],
            token_audience=values[TENANT_ID_ENV],
        )
        logger.debug(f"Using workload identity from environment, token file {values[TOKEN_FILE_ENV]}")
        return federated_credentials(identity, read_token_file(values[TOKEN_FILE_ENV]))

