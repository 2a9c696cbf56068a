"""Workflow for point lookups of remote secrets."""
import logging
from typing import Dict, Optional

from ..domains.errors import (
    MalformedSecretError,
    NotInitializedError,
    PropertyNotFoundError,
    UnmarshalError,
)
from ..domains.gcp_client import RemoteClient, version_path
from ..domains.models import RemoteSecretRef
from ..domains.properties import get_property, parse_json, split_raw_object

logger = logging.getLogger(__name__)


class SecretAccessor:
    """Reads single secrets and secret maps."""

    def __init__(self, client: Optional[RemoteClient], project_id: str):
        self.client = client
        self.project_id = project_id

    def get_secret(self, ref: RemoteSecretRef) -> bytes:
        """
        Fetch a secret version, optionally extracting one property.

        Args:
            ref: Key, version (defaults to latest) and optional property path

        Returns:
            Raw payload, or the rendered property value

        Raises:
            NotInitializedError: If no client or project is configured
            NotFoundError: If the secret or version does not exist
            MalformedSecretError: If the version carries no payload
            PropertyNotFoundError: If the property does not resolve
        """
        if self.client is None or not self.project_id:
            raise NotInitializedError()

        name = version_path(self.project_id, ref.key, ref.version)
        version = self.client.access_version(name)

        if not ref.property:
            if version.payload is not None:
                return version.payload
            raise MalformedSecretError(f"invalid secret received. no secret string for key: {ref.key}")

        value = get_property(version.payload or b"", ref.property)
        if value is None:
            raise PropertyNotFoundError(ref.key, ref.property)
        return value.encode("utf-8")

    def get_secret_map(self, ref: RemoteSecretRef) -> Dict[str, bytes]:
        """
        Fetch a secret whose payload is a flat JSON object.

        String values are unwrapped. Any other value is kept as its verbatim JSON text.

        Raises:
            UnmarshalError: If the payload is not a JSON object
        """
        if self.client is None or not self.project_id:
            raise NotInitializedError()

        data = self.get_secret(ref)
        try:
            raw = split_raw_object(data.decode("utf-8"))
        except (ValueError, UnicodeDecodeError) as e:
            raise UnmarshalError(f"unable to unmarshal secret {ref.key}: {e}") from e

        secret_data = {}
        for k, v in raw.items():
            value = parse_json(v)
            if isinstance(value, str):
                secret_data[k] = value.encode("utf-8")
            elif value is None:
                secret_data[k] = b""
            else:
                secret_data[k] = v.encode("utf-8")
        return secret_data
