"""Workflow for bulk discovery of remote secrets."""
import logging
import re
from typing import Dict, Iterable, Optional

from ..domains.errors import ConfigError, NotInitializedError, UnsupportedQueryError
from ..domains.gcp_client import RemoteClient, project_path
from ..domains.models import FindQuery, RemoteSecretEntry, RemoteSecretRef
from .secret_operations import SecretAccessor

logger = logging.getLogger(__name__)


def trim_name(name: str) -> str:
    """
    Strip the project prefix from a listed secret name.

    Listings return the project number, not the id the caller used, so the project
    segment is taken from the name itself.
    """
    parts = name.split("/")
    if len(parts) < 4:
        return name
    prefix = f"projects/{parts[1]}/secrets/"
    if name.startswith(prefix):
        return name[len(prefix):]
    return name


def build_tag_filter(tags: Dict[str, str], path: Optional[str] = None) -> str:
    """Conjoin label equalities and an optional name clause into a listing filter."""
    clauses = [f"labels.{k}={v}" for k, v in tags.items()]
    if path:
        clauses.append(f"name:{path}")
    return " ".join(clauses)


class SecretFinder:
    """Finds secrets by name pattern or by labels."""

    def __init__(self, client: Optional[RemoteClient], project_id: str, accessor: SecretAccessor):
        self.client = client
        self.project_id = project_id
        self.accessor = accessor

    def get_all_secrets(self, query: FindQuery) -> Dict[str, bytes]:
        """
        Fetch every secret matching the query.

        Args:
            query: Name pattern or tags, with an optional path prefix

        Returns:
            Mapping of key to payload, after the query's key conversion

        Raises:
            UnsupportedQueryError: If the query has neither a name nor tags
        """
        if query.name is not None:
            return self._find_by_name(query)
        if query.tags:
            return self._find_by_tags(query)
        raise UnsupportedQueryError()

    def _list(self, filter: str) -> Iterable[RemoteSecretEntry]:
        if self.client is None or not self.project_id:
            raise NotInitializedError()
        return self.client.list_secrets(project_path(self.project_id), filter=filter)

    def _find_by_name(self, query: FindQuery) -> Dict[str, bytes]:
        try:
            matcher = re.compile(query.name)
        except re.error as e:
            raise ConfigError(f"invalid name pattern {query.name!r}: {e}") from e

        filter = f"name:{query.path}" if query.path else ""
        secret_map = {}
        for entry in self._list(filter):
            key = trim_name(entry.name)
            # the listing filter matches substrings, so the prefix is checked here
            if not matcher.search(key) or (query.path and not key.startswith(query.path)):
                continue
            logger.debug(f"findByName matches {entry.name}")
            secret_map[key] = self.accessor.get_secret(RemoteSecretRef(key=key))

        return query.convert_keys(secret_map)

    def _find_by_tags(self, query: FindQuery) -> Dict[str, bytes]:
        filter = build_tag_filter(query.tags, query.path)
        logger.debug(f"findByTags filter: {filter}")

        secret_map = {}
        for entry in self._list(filter):
            key = trim_name(entry.name)
            if query.path and not key.startswith(query.path):
                continue
            logger.debug(f"findByTags matches {entry.name}")
            secret_map[key] = self.accessor.get_secret(RemoteSecretRef(key=key))

        return query.convert_keys(secret_map)
