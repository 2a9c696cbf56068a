"""Workflow for pushing secrets into Secret Manager."""
import logging
from typing import Optional

from ..domains.errors import NotFoundError, NotInitializedError, NotManagedError
from ..domains.gcp_client import RemoteClient, project_path, secret_path, version_path
from ..domains.models import (
    DEFAULT_VERSION,
    MANAGED_BY_LABEL,
    MANAGED_BY_VALUE,
    PushRemoteRef,
)

logger = logging.getLogger(__name__)


class SecretWriter:
    """Idempotent upsert of secrets owned by this system."""

    def __init__(self, client: Optional[RemoteClient], project_id: str):
        self.client = client
        self.project_id = project_id

    def set_secret(self, payload: bytes, ref: PushRemoteRef) -> None:
        """
        Push a payload as the latest version of a remote secret.

        Creates the secret (with the ownership label) when missing. Refuses to touch a
        secret that lacks the label. Writes nothing when the latest version already
        holds the same payload.

        Raises:
            NotManagedError: If the remote secret is not owned by this system
            TransportError: On any remote failure other than not-found
        """
        if self.client is None or not self.project_id:
            raise NotInitializedError()
        key = ref.remote_key

        try:
            secret = self.client.get_secret(secret_path(self.project_id, key))
        except NotFoundError:
            secret = self.client.create_secret(
                project_path(self.project_id),
                key,
                {MANAGED_BY_LABEL: MANAGED_BY_VALUE},
            )
            logger.info(f"Created secret {key}")

        if not secret.is_managed:
            raise NotManagedError(key)

        try:
            latest = self.client.access_version(version_path(self.project_id, key, DEFAULT_VERSION))
        except NotFoundError:
            # no versions yet
            latest = None

        if latest is not None and latest.payload is not None and latest.payload == payload:
            logger.debug(f"Secret {key} already up to date")
            return

        self.client.add_version(secret_path(self.project_id, key), payload)
        logger.info(f"Added new version to secret {key}")
