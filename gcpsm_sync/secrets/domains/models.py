"""Domain models for the GCP Secret Manager provider."""
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Dict, Optional, Tuple

SECRET_STORE_KIND = "SecretStore"
CLUSTER_SECRET_STORE_KIND = "ClusterSecretStore"

DEFAULT_VERSION = "latest"

# Marker written on every secret this provider creates
MANAGED_BY_LABEL = "managed-by"
MANAGED_BY_VALUE = "external-secrets"


class Capabilities(str, Enum):
    READ_ONLY = "ReadOnly"
    WRITE_ONLY = "WriteOnly"
    READ_WRITE = "ReadWrite"


class ValidationResult(str, Enum):
    READY = "Ready"
    UNKNOWN = "Unknown"
    ERROR = "Error"


@dataclass(frozen=True)
class SecretKeySelector:
    """Reference to one key of a Kubernetes secret."""
    name: str
    key: str
    namespace: Optional[str] = None


@dataclass(frozen=True)
class ServiceAccountSelector:
    """Reference to a Kubernetes service account."""
    name: str
    namespace: Optional[str] = None
    audiences: Tuple[str, ...] = ()


@dataclass(frozen=True)
class SecretRefAuth:
    secret_access_key: SecretKeySelector


@dataclass(frozen=True)
class WorkloadIdentityAuth:
    service_account_ref: Optional[ServiceAccountSelector] = None
    cluster_location: str = ""
    cluster_name: str = ""
    cluster_project_id: str = ""


@dataclass(frozen=True)
class GCPSMAuth:
    """Auth selector. Neither field set means the ambient default chain."""
    secret_ref: Optional[SecretRefAuth] = None
    workload_identity: Optional[WorkloadIdentityAuth] = None


@dataclass(frozen=True)
class GCPSMProvider:
    project_id: str
    auth: GCPSMAuth = field(default_factory=GCPSMAuth)


@dataclass(frozen=True)
class StoreSpec:
    """Store configuration, read once per provider instance."""
    provider: Optional[GCPSMProvider]
    kind: str = SECRET_STORE_KIND
    name: str = ""
    namespace: str = ""

    @property
    def is_cluster_scoped(self) -> bool:
        return self.kind == CLUSTER_SECRET_STORE_KIND


@dataclass(frozen=True)
class RemoteSecretRef:
    """Point lookup reference for a remote secret."""
    key: str
    version: str = DEFAULT_VERSION
    property: str = ""

    def __post_init__(self):
        if not self.version:
            object.__setattr__(self, "version", DEFAULT_VERSION)


@dataclass(frozen=True)
class PushRemoteRef:
    remote_key: str


# Receives the discovered mapping and returns it with converted keys
KeyConverter = Callable[[Dict[str, bytes]], Dict[str, bytes]]


def identity_keys(secrets: Dict[str, bytes]) -> Dict[str, bytes]:
    return secrets


@dataclass
class FindQuery:
    """Bulk discovery query: a name pattern or a set of required tags."""
    name: Optional[str] = None
    tags: Dict[str, str] = field(default_factory=dict)
    path: Optional[str] = None
    convert_keys: KeyConverter = identity_keys


@dataclass
class RemoteSecretEntry:
    """Secret as returned by the remote store."""
    name: str
    labels: Dict[str, str] = field(default_factory=dict)

    @property
    def is_managed(self) -> bool:
        return self.labels.get(MANAGED_BY_LABEL) == MANAGED_BY_VALUE


@dataclass
class RemoteSecretVersion:
    name: str
    payload: Optional[bytes]
