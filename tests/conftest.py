"""Shared fixtures: in-memory Secret Manager and Kubernetes doubles."""
from typing import Dict, Iterator, List, Optional, Tuple

import pytest
from google.auth import credentials as gcredentials
from google.auth import exceptions as gauth_exceptions

from gcpsm_sync.secrets.domains.credentials import CredentialToken
from gcpsm_sync.secrets.domains.errors import NotFoundError
from gcpsm_sync.secrets.domains.models import (
    GCPSMAuth,
    GCPSMProvider,
    MANAGED_BY_LABEL,
    MANAGED_BY_VALUE,
    RemoteSecretEntry,
    RemoteSecretVersion,
    StoreSpec,
)


class FakeRemoteClient:
    """
    In-memory RemoteClient.

    Requests accept the project id or its numeric alias. Listings always answer with
    the numeric alias, as Secret Manager does.
    """

    def __init__(
        self,
        project_id: str = "p1",
        project_number: str = "123456789",
        page_size: int = 2,
        apply_filters: bool = True,
    ):
        self.project_id = project_id
        self.project_number = project_number
        self.page_size = page_size
        self.apply_filters = apply_filters
        self.labels: Dict[str, Dict[str, str]] = {}
        self.versions: Dict[str, List[Optional[bytes]]] = {}
        self.calls: List[Tuple[str, str]] = []
        self.filters: List[str] = []
        self.pages_fetched = 0
        self.closed = False

    def add(self, key: str, payload: Optional[bytes] = None, labels: Optional[Dict[str, str]] = None,
            with_version: bool = True) -> None:
        self.labels[key] = dict(labels or {})
        self.versions[key] = [payload] if with_version else []

    def add_managed(self, key: str, payload: Optional[bytes] = None) -> None:
        self.add(key, payload, {MANAGED_BY_LABEL: MANAGED_BY_VALUE})

    def _split(self, name: str) -> Tuple[str, Optional[str]]:
        for project in (self.project_id, self.project_number):
            prefix = f"projects/{project}/secrets/"
            if name.startswith(prefix):
                rest = name[len(prefix):]
                if "/versions/" in rest:
                    key, version = rest.rsplit("/versions/", 1)
                    return key, version
                return rest, None
        raise NotFoundError(f"unknown project in {name}")

    def _full_name(self, key: str) -> str:
        return f"projects/{self.project_number}/secrets/{key}"

    def _matches(self, key: str, filter: str) -> bool:
        if not self.apply_filters:
            return True
        for clause in filter.split():
            if clause.startswith("name:"):
                if clause[len("name:"):] not in self._full_name(key):
                    return False
            elif clause.startswith("labels."):
                label, _, value = clause[len("labels."):].partition("=")
                if self.labels[key].get(label) != value:
                    return False
        return True

    def access_version(self, name: str) -> RemoteSecretVersion:
        self.calls.append(("access_version", name))
        key, version = self._split(name)
        versions = self.versions.get(key)
        if not versions:
            raise NotFoundError(f"secret version {name} not found")
        if version == "latest":
            return RemoteSecretVersion(name=f"{self._full_name(key)}/versions/{len(versions)}", payload=versions[-1])
        idx = int(version)
        if idx < 1 or idx > len(versions):
            raise NotFoundError(f"secret version {name} not found")
        return RemoteSecretVersion(name=f"{self._full_name(key)}/versions/{idx}", payload=versions[idx - 1])

    def list_secrets(self, parent: str, filter: str = "") -> Iterator[RemoteSecretEntry]:
        self.calls.append(("list_secrets", parent))
        self.filters.append(filter)
        keys = [k for k in self.labels if self._matches(k, filter)]
        for start in range(0, len(keys), self.page_size):
            self.pages_fetched += 1
            for key in keys[start:start + self.page_size]:
                yield RemoteSecretEntry(name=self._full_name(key), labels=dict(self.labels[key]))

    def add_version(self, parent: str, payload: bytes) -> RemoteSecretVersion:
        self.calls.append(("add_version", parent))
        key, _ = self._split(parent)
        if key not in self.versions:
            raise NotFoundError(f"secret {parent} not found")
        self.versions[key].append(payload)
        return RemoteSecretVersion(name=f"{self._full_name(key)}/versions/{len(self.versions[key])}", payload=payload)

    def create_secret(self, parent: str, secret_id: str, labels: Dict[str, str]) -> RemoteSecretEntry:
        self.calls.append(("create_secret", secret_id))
        self.add(secret_id, labels=labels, with_version=False)
        return RemoteSecretEntry(name=self._full_name(secret_id), labels=dict(labels))

    def get_secret(self, name: str) -> RemoteSecretEntry:
        self.calls.append(("get_secret", name))
        key, _ = self._split(name)
        if key not in self.labels:
            raise NotFoundError(f"secret {name} not found")
        return RemoteSecretEntry(name=self._full_name(key), labels=dict(self.labels[key]))

    def close(self) -> None:
        self.closed = True

    def mutating_calls(self) -> List[Tuple[str, str]]:
        return [c for c in self.calls if c[0] in ("add_version", "create_secret")]


class FakeKube:
    """In-memory KubeReader."""

    def __init__(self):
        self.secrets: Dict[Tuple[str, str], Dict[str, bytes]] = {}
        self.service_accounts: Dict[Tuple[str, str], Dict[str, str]] = {}
        self.token_requests: List[Tuple[str, str, List[str]]] = []
        self.reads: List[Tuple[str, str]] = []

    def get_secret_data(self, namespace: str, name: str) -> Dict[str, bytes]:
        self.reads.append(("secret", f"{namespace}/{name}"))
        if (namespace, name) not in self.secrets:
            raise NotFoundError(f"secret {namespace}/{name} not found")
        return self.secrets[(namespace, name)]

    def get_service_account_annotations(self, namespace: str, name: str) -> Dict[str, str]:
        self.reads.append(("serviceaccount", f"{namespace}/{name}"))
        if (namespace, name) not in self.service_accounts:
            raise NotFoundError(f"service account {namespace}/{name} not found")
        return self.service_accounts[(namespace, name)]

    def create_service_account_token(self, namespace: str, name: str, audiences: List[str]) -> str:
        self.token_requests.append((namespace, name, list(audiences)))
        return f"k8s-token-{namespace}-{name}"


class FakeCredentials(gcredentials.Credentials):
    """Credentials whose refresh never leaves the process."""

    def __init__(self, fail: bool = False):
        super().__init__()
        self.fail = fail
        self.refresh_count = 0

    def refresh(self, request):
        self.refresh_count += 1
        if self.fail:
            raise gauth_exceptions.RefreshError("token request denied")
        self.token = "fake-access-token"


class StaticResolver:
    """Resolver that hands out fresh FakeCredentials."""

    def __init__(self, fail_validation: bool = False, error: Optional[Exception] = None):
        self.fail_validation = fail_validation
        self.error = error
        self.tokens: List[CredentialToken] = []

    def resolve(self, store, kube, namespace) -> CredentialToken:
        if self.error is not None:
            raise self.error
        token = CredentialToken(FakeCredentials(fail=self.fail_validation), "static")
        self.tokens.append(token)
        return token


@pytest.fixture
def remote():
    """Fake Secret Manager for project p1."""
    return FakeRemoteClient()


@pytest.fixture
def kube():
    return FakeKube()


@pytest.fixture
def store():
    """Namespaced store using ambient credentials."""
    return StoreSpec(
        provider=GCPSMProvider(project_id="p1", auth=GCPSMAuth()),
        name="gcp",
        namespace="team-a",
    )
