"""Store manifest loader for gcpsm-sync."""
import os
import logging
from pathlib import Path
from typing import Any, Dict, Optional
import yaml

from .errors import ConfigError
from .models import (
    CLUSTER_SECRET_STORE_KIND,
    SECRET_STORE_KIND,
    GCPSMAuth,
    GCPSMProvider,
    SecretKeySelector,
    SecretRefAuth,
    ServiceAccountSelector,
    StoreSpec,
    WorkloadIdentityAuth,
)

logger = logging.getLogger(__name__)

CONFIG_ENV_VAR = "GCPSM_STORE_CONFIG"


def _default_config_path() -> Path:
    return Path.home() / ".config" / "gcpsm-sync" / "store.yml"


def _get_config_path(path: Optional[str] = None) -> str:
    """
    Get store manifest path.

    Priority order:
    1. Explicit path argument
    2. GCPSM_STORE_CONFIG environment variable
    3. Default location: ~/.config/gcpsm-sync/store.yml

    Returns:
        Absolute path to the manifest

    Raises:
        FileNotFoundError: If the manifest doesn't exist in any location
    """
    if path:
        config_path = Path(path).expanduser()
        if config_path.exists():
            logger.debug(f"Using store manifest from argument: {config_path}")
            return str(config_path)
        raise FileNotFoundError(f"Store manifest not found: {config_path}")

    env_path = os.getenv(CONFIG_ENV_VAR)
    if env_path:
        config_path = Path(env_path).expanduser()
        if config_path.exists():
            logger.debug(f"Using store manifest from {CONFIG_ENV_VAR}: {config_path}")
            return str(config_path)
        logger.warning(f"Store manifest from {CONFIG_ENV_VAR} doesn't exist: {config_path}")

    default_config = _default_config_path()
    if default_config.exists():
        logger.debug(f"Using default store manifest: {default_config}")
        return str(default_config)

    raise FileNotFoundError(
        "Store manifest not found. Please set up your manifest using one of these methods:\n\n"
        "1. Use the default location:\n"
        f"   mkdir -p {default_config.parent}\n"
        f"   cp /path/to/your/store.yml {default_config}\n\n"
        "2. Point to an existing manifest:\n"
        f"   export {CONFIG_ENV_VAR}=/path/to/your/store.yml\n\n"
        "3. Pass it explicitly:\n"
        "   gcpsm-sync --config /path/to/your/store.yml ...\n"
    )


def _section(data: Dict[str, Any], key: str, where: str) -> Dict[str, Any]:
    value = data.get(key)
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise ConfigError(f"'{where}.{key}' must be a mapping")
    return value


def _parse_secret_ref(auth: Dict[str, Any], config_path: str) -> Optional[SecretRefAuth]:
    section = _section(auth, "secretRef", "auth")
    if not section:
        return None
    selector = _section(section, "secretAccessKeySecretRef", "auth.secretRef")
    if not selector:
        raise ConfigError(
            f"Missing 'auth.secretRef.secretAccessKeySecretRef' in {config_path}\n"
            f"Required format:\n"
            f"secretRef:\n"
            f"  secretAccessKeySecretRef:\n"
            f"    name: gcp-sa\n"
            f"    key: credentials.json"
        )
    return SecretRefAuth(
        secret_access_key=SecretKeySelector(
            name=selector.get("name", ""),
            key=selector.get("key", ""),
            namespace=selector.get("namespace"),
        )
    )


def _parse_workload_identity(auth: Dict[str, Any]) -> Optional[WorkloadIdentityAuth]:
    if "workloadIdentity" not in auth:
        return None
    section = _section(auth, "workloadIdentity", "auth")
    sa_ref = None
    sa = _section(section, "serviceAccountRef", "auth.workloadIdentity")
    if sa:
        sa_ref = ServiceAccountSelector(
            name=sa.get("name", ""),
            namespace=sa.get("namespace"),
            audiences=tuple(sa.get("audiences") or ()),
        )
    return WorkloadIdentityAuth(
        service_account_ref=sa_ref,
        cluster_location=section.get("clusterLocation", ""),
        cluster_name=section.get("clusterName", ""),
        cluster_project_id=section.get("clusterProjectID", ""),
    )


def parse_store_spec(manifest: Dict[str, Any], config_path: str = "<memory>") -> StoreSpec:
    """
    Build a StoreSpec from a parsed SecretStore or ClusterSecretStore manifest.

    Raises:
        ConfigError: If required sections are missing or have the wrong type
    """
    if not isinstance(manifest, dict):
        raise ConfigError(f"Store manifest at {config_path} must be a mapping")

    kind = manifest.get("kind") or SECRET_STORE_KIND
    if kind not in (SECRET_STORE_KIND, CLUSTER_SECRET_STORE_KIND):
        raise ConfigError(
            f"Unsupported store kind: {kind}\n"
            f"Only '{SECRET_STORE_KIND}' and '{CLUSTER_SECRET_STORE_KIND}' are supported."
        )

    metadata = _section(manifest, "metadata", "manifest")
    spec = _section(manifest, "spec", "manifest")
    provider = _section(spec, "provider", "spec")
    if "gcpsm" not in provider:
        raise ConfigError(
            f"Missing 'spec.provider.gcpsm' section in {config_path}\n"
            f"Required format:\n"
            f"spec:\n"
            f"  provider:\n"
            f"    gcpsm:\n"
            f"      projectID: your-project-id"
        )
    gcpsm = _section(provider, "gcpsm", "spec.provider")

    project_id = gcpsm.get("projectID") or os.getenv("GCP_PROJECT")
    if not project_id:
        raise ConfigError(
            f"Missing 'spec.provider.gcpsm.projectID' in {config_path}\n"
            f"Set it in the manifest or export GCP_PROJECT."
        )

    auth = _section(gcpsm, "auth", "spec.provider.gcpsm")
    store = StoreSpec(
        provider=GCPSMProvider(
            project_id=str(project_id),
            auth=GCPSMAuth(
                secret_ref=_parse_secret_ref(auth, config_path),
                workload_identity=_parse_workload_identity(auth),
            ),
        ),
        kind=kind,
        name=metadata.get("name", ""),
        namespace=metadata.get("namespace", ""),
    )
    logger.debug(f"Using project ID: {store.provider.project_id}")
    return store


def load_store_spec(path: Optional[str] = None) -> StoreSpec:
    """
    Load and validate a store manifest from a YAML file.

    Args:
        path: Manifest path (resolved from the environment when omitted)

    Returns:
        StoreSpec built from the manifest

    Raises:
        FileNotFoundError: If the manifest cannot be located
        ConfigError: If the manifest is unreadable or invalid
    """
    config_path = _get_config_path(path)

    try:
        with open(config_path, 'r') as f:
            manifest = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigError(f"Failed to parse YAML manifest at {config_path}: {e}") from e
    except OSError as e:
        raise ConfigError(f"Failed to read manifest at {config_path}: {e}") from e

    if not manifest:
        raise ConfigError(f"Store manifest at {config_path} is empty")

    try:
        store = parse_store_spec(manifest, config_path)
    except ConfigError as e:
        if config_path in str(e):
            raise
        raise ConfigError(f"{e} (manifest: {config_path})") from e
    logger.info(f"Store manifest loaded successfully from {config_path}")
    return store
