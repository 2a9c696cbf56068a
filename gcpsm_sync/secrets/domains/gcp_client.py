"""GCP Secret Manager client wrapper."""
import logging
import threading
from typing import Any, Dict, Iterator, Optional, Protocol

from google.api_core import exceptions as gexceptions
from google.cloud import secretmanager

from .errors import NotFoundError, OperationCancelledError, TransportError
from .models import RemoteSecretEntry, RemoteSecretVersion

logger = logging.getLogger(__name__)


def project_path(project_id: str) -> str:
    return f"projects/{project_id}"


def secret_path(project_id: str, key: str) -> str:
    return f"projects/{project_id}/secrets/{key}"


def version_path(project_id: str, key: str, version: str) -> str:
    return f"projects/{project_id}/secrets/{key}/versions/{version}"


class RemoteClient(Protocol):
    """Capabilities the provider needs from Secret Manager."""

    def access_version(self, name: str) -> RemoteSecretVersion:
        ...

    def list_secrets(self, parent: str, filter: str = "") -> Iterator[RemoteSecretEntry]:
        ...

    def add_version(self, parent: str, payload: bytes) -> RemoteSecretVersion:
        ...

    def create_secret(self, parent: str, secret_id: str, labels: Dict[str, str]) -> RemoteSecretEntry:
        ...

    def get_secret(self, name: str) -> RemoteSecretEntry:
        ...

    def close(self) -> None:
        ...


class GCPSecretClient:
    """
    Wrapper around GCP Secret Manager client.

    Cancellation is cooperative: cancel_event is checked before every call and
    between listed secrets. A call already in flight is not interrupted; it ends
    when the SDK returns or when timeout expires, so pass a timeout to bound how
    long cancellation can take.
    """

    def __init__(
        self,
        client: secretmanager.SecretManagerServiceClient,
        timeout: Optional[float] = None,
        cancel_event: Optional[threading.Event] = None,
    ):
        self._client = client
        self._timeout = timeout
        self._cancel_event = cancel_event

    @classmethod
    def from_credentials(
        cls,
        credentials,
        timeout: Optional[float] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> "GCPSecretClient":
        """Build a client authenticated with an already-validated credential."""
        try:
            client = secretmanager.SecretManagerServiceClient(credentials=credentials)
        except Exception as e:
            raise TransportError(f"failed to create GCP secretmanager client: {e}") from e
        return cls(client, timeout=timeout, cancel_event=cancel_event)

    def _call_options(self) -> Dict[str, Any]:
        if self._cancel_event is not None and self._cancel_event.is_set():
            raise OperationCancelledError("operation cancelled before remote call")
        if self._timeout is None:
            return {}
        return {"timeout": self._timeout}

    def _translate(self, e: Exception, what: str) -> Exception:
        if isinstance(e, gexceptions.NotFound):
            return NotFoundError(f"{what}: {e.message}")
        return TransportError(f"{what}: {e}")

    @staticmethod
    def _entry(secret) -> RemoteSecretEntry:
        return RemoteSecretEntry(name=secret.name, labels=dict(secret.labels))

    def access_version(self, name: str) -> RemoteSecretVersion:
        options = self._call_options()
        try:
            response = self._client.access_secret_version(request={"name": name}, **options)
        except (gexceptions.GoogleAPICallError, gexceptions.RetryError) as e:
            raise self._translate(e, f"unable to access secret version {name}") from e
        payload = response.payload.data if "payload" in response else None
        return RemoteSecretVersion(name=response.name, payload=payload)

    def list_secrets(self, parent: str, filter: str = "") -> Iterator[RemoteSecretEntry]:
        """
        Iterate every secret under parent, fetching pages as needed.

        Args:
            parent: Project path
            filter: Server-side filter expression

        Yields:
            RemoteSecretEntry for each listed secret
        """
        request = {"parent": parent}
        if filter:
            request["filter"] = filter
        logger.debug(f"Listing secrets under {parent} with filter '{filter}'")
        try:
            pager = self._client.list_secrets(request=request, **self._call_options())
            for secret in pager:
                yield self._entry(secret)
                self._call_options()
        except (gexceptions.GoogleAPICallError, gexceptions.RetryError) as e:
            raise self._translate(e, "failed to list secrets") from e

    def add_version(self, parent: str, payload: bytes) -> RemoteSecretVersion:
        options = self._call_options()
        try:
            version = self._client.add_secret_version(
                request={"parent": parent, "payload": {"data": payload}},
                **options,
            )
        except (gexceptions.GoogleAPICallError, gexceptions.RetryError) as e:
            raise self._translate(e, f"unable to add version to {parent}") from e
        return RemoteSecretVersion(name=version.name, payload=payload)

    def create_secret(self, parent: str, secret_id: str, labels: Dict[str, str]) -> RemoteSecretEntry:
        options = self._call_options()
        try:
            secret = self._client.create_secret(
                request={
                    "parent": parent,
                    "secret_id": secret_id,
                    "secret": {
                        "labels": labels,
                        "replication": {"automatic": {}},
                    },
                },
                **options,
            )
        except (gexceptions.GoogleAPICallError, gexceptions.RetryError) as e:
            raise self._translate(e, f"unable to create secret {secret_id}") from e
        return self._entry(secret)

    def get_secret(self, name: str) -> RemoteSecretEntry:
        options = self._call_options()
        try:
            secret = self._client.get_secret(request={"name": name}, **options)
        except (gexceptions.GoogleAPICallError, gexceptions.RetryError) as e:
            raise self._translate(e, f"unable to get secret {name}") from e
        return self._entry(secret)

    def close(self) -> None:
        self._client.transport.close()
