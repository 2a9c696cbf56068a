"""Test suite for store manifest loading and validation.

This test suite validates:
- Manifest path resolution (argument, environment, default location)
- Manifest parsing into StoreSpec
- Structural store validation
"""
import re
from pathlib import Path

import pytest
import yaml

from gcpsm_sync.secrets.domains import config_loader
from gcpsm_sync.secrets.domains.errors import ConfigError
from gcpsm_sync.secrets.domains.models import (
    CLUSTER_SECRET_STORE_KIND,
    GCPSMAuth,
    GCPSMProvider,
    SecretKeySelector,
    SecretRefAuth,
    ServiceAccountSelector,
    StoreSpec,
    WorkloadIdentityAuth,
)
from gcpsm_sync.secrets.domains.validators import validate_store


@pytest.fixture
def temp_home(tmp_path, monkeypatch):
    """Fixture to create a temporary home directory for testing."""
    fake_home = tmp_path / "home"
    fake_home.mkdir()
    monkeypatch.setenv("HOME", str(fake_home))
    monkeypatch.setattr(Path, "home", lambda: fake_home)
    monkeypatch.delenv(config_loader.CONFIG_ENV_VAR, raising=False)
    monkeypatch.delenv("GCP_PROJECT", raising=False)
    return fake_home


@pytest.fixture
def sample_manifest():
    """Sample valid ClusterSecretStore manifest."""
    return {
        "kind": "ClusterSecretStore",
        "metadata": {"name": "gcp", "namespace": "team-a"},
        "spec": {
            "provider": {
                "gcpsm": {
                    "projectID": "p1",
                    "auth": {
                        "secretRef": {
                            "secretAccessKeySecretRef": {
                                "name": "gcp-sa",
                                "key": "credentials.json",
                                "namespace": "team-a",
                            }
                        },
                        "workloadIdentity": {
                            "clusterLocation": "europe-west1",
                            "clusterName": "prod",
                            "clusterProjectID": "infra",
                            "serviceAccountRef": {
                                "name": "eso",
                                "namespace": "team-a",
                                "audiences": ["extra"],
                            },
                        },
                    },
                }
            }
        },
    }


@pytest.fixture
def temp_manifest(tmp_path, sample_manifest):
    manifest = tmp_path / "store.yml"
    with open(manifest, 'w') as f:
        yaml.dump(sample_manifest, f)
    return manifest


class TestConfigPath:
    """Test suite for manifest path resolution."""

    def test_explicit_path(self, temp_home, temp_manifest):
        assert config_loader._get_config_path(str(temp_manifest)) == str(temp_manifest)

    def test_explicit_path_missing(self, temp_home, tmp_path):
        with pytest.raises(FileNotFoundError):
            config_loader._get_config_path(str(tmp_path / "missing.yml"))

    def test_environment_variable(self, temp_home, temp_manifest, monkeypatch):
        monkeypatch.setenv(config_loader.CONFIG_ENV_VAR, str(temp_manifest))
        assert config_loader._get_config_path() == str(temp_manifest)

    def test_default_location(self, temp_home):
        default = temp_home / ".config" / "gcpsm-sync" / "store.yml"
        default.parent.mkdir(parents=True)
        default.write_text("kind: SecretStore")
        assert config_loader._get_config_path() == str(default)

    def test_stale_environment_falls_back_to_default(self, temp_home, monkeypatch, tmp_path):
        monkeypatch.setenv(config_loader.CONFIG_ENV_VAR, str(tmp_path / "gone.yml"))
        default = temp_home / ".config" / "gcpsm-sync" / "store.yml"
        default.parent.mkdir(parents=True)
        default.write_text("kind: SecretStore")
        assert config_loader._get_config_path() == str(default)

    def test_missing_everywhere_has_instructions(self, temp_home):
        with pytest.raises(FileNotFoundError) as exc_info:
            config_loader._get_config_path()
        assert "GCPSM_STORE_CONFIG" in str(exc_info.value)


class TestLoadStoreSpec:
    """Test suite for load_store_spec."""

    def test_full_manifest(self, temp_home, temp_manifest):
        store = config_loader.load_store_spec(str(temp_manifest))
        assert store.kind == CLUSTER_SECRET_STORE_KIND
        assert store.is_cluster_scoped
        assert store.name == "gcp"
        assert store.provider.project_id == "p1"
        assert store.provider.auth.secret_ref.secret_access_key == SecretKeySelector(
            name="gcp-sa", key="credentials.json", namespace="team-a"
        )
        wi = store.provider.auth.workload_identity
        assert wi.service_account_ref == ServiceAccountSelector(name="eso", namespace="team-a", audiences=("extra",))
        assert (wi.cluster_project_id, wi.cluster_location, wi.cluster_name) == ("infra", "europe-west1", "prod")

    def test_minimal_manifest_defaults(self, temp_home, tmp_path):
        manifest = tmp_path / "store.yml"
        manifest.write_text("spec:\n  provider:\n    gcpsm:\n      projectID: p1\n")
        store = config_loader.load_store_spec(str(manifest))
        assert store.kind == "SecretStore"
        assert store.provider.auth == GCPSMAuth()

    def test_empty_workload_identity_section(self, temp_home, tmp_path):
        manifest = tmp_path / "store.yml"
        manifest.write_text("spec:\n  provider:\n    gcpsm:\n      projectID: p1\n      auth:\n        workloadIdentity: {}\n")
        store = config_loader.load_store_spec(str(manifest))
        assert store.provider.auth.workload_identity == WorkloadIdentityAuth()

    def test_project_from_environment(self, temp_home, tmp_path, monkeypatch):
        monkeypatch.setenv("GCP_PROJECT", "env-project")
        manifest = tmp_path / "store.yml"
        manifest.write_text("spec:\n  provider:\n    gcpsm: {}\n")
        assert config_loader.load_store_spec(str(manifest)).provider.project_id == "env-project"

    def test_missing_project(self, temp_home, tmp_path):
        manifest = tmp_path / "store.yml"
        manifest.write_text("spec:\n  provider:\n    gcpsm: {}\n")
        with pytest.raises(ConfigError, match="projectID"):
            config_loader.load_store_spec(str(manifest))

    def test_missing_provider_section(self, temp_home, tmp_path):
        manifest = tmp_path / "store.yml"
        manifest.write_text("spec:\n  provider: {}\n")
        with pytest.raises(ConfigError, match="gcpsm"):
            config_loader.load_store_spec(str(manifest))

    def test_invalid_yaml(self, temp_home, tmp_path):
        manifest = tmp_path / "store.yml"
        manifest.write_text("spec: [unclosed")
        with pytest.raises(ConfigError, match=re.escape(str(manifest))):
            config_loader.load_store_spec(str(manifest))

    def test_empty_file(self, temp_home, tmp_path):
        manifest = tmp_path / "store.yml"
        manifest.write_text("")
        with pytest.raises(ConfigError, match="empty"):
            config_loader.load_store_spec(str(manifest))

    def test_wrong_section_type_names_the_file(self, temp_home, tmp_path):
        manifest = tmp_path / "store.yml"
        manifest.write_text("spec:\n  provider:\n    gcpsm:\n      projectID: p1\n      auth: [1, 2]\n")
        with pytest.raises(ConfigError, match=re.escape(str(manifest))):
            config_loader.load_store_spec(str(manifest))

    def test_unsupported_kind(self, temp_home, tmp_path):
        manifest = tmp_path / "store.yml"
        manifest.write_text("kind: ConfigMap\n")
        with pytest.raises(ConfigError, match="Unsupported store kind"):
            config_loader.load_store_spec(str(manifest))

    def test_secret_ref_without_selector(self, temp_home, tmp_path):
        manifest = tmp_path / "store.yml"
        manifest.write_text("spec:\n  provider:\n    gcpsm:\n      projectID: p1\n      auth:\n        secretRef: {other: 1}\n")
        with pytest.raises(ConfigError, match="secretAccessKeySecretRef"):
            config_loader.load_store_spec(str(manifest))


def _store(kind="SecretStore", secret_ref=None, workload=None):
    return StoreSpec(
        provider=GCPSMProvider(project_id="p1", auth=GCPSMAuth(secret_ref=secret_ref, workload_identity=workload)),
        kind=kind,
        name="gcp",
        namespace="team-a",
    )


class TestValidateStore:
    """Test suite for validate_store."""

    def test_valid_loaded_manifest(self, temp_home, temp_manifest):
        validate_store(config_loader.load_store_spec(str(temp_manifest)))

    def test_none_store(self):
        with pytest.raises(ConfigError):
            validate_store(None)

    def test_missing_provider(self):
        with pytest.raises(ConfigError):
            validate_store(StoreSpec(provider=None))

    def test_missing_project(self):
        with pytest.raises(ConfigError):
            validate_store(StoreSpec(provider=GCPSMProvider(project_id="")))

    def test_ambient_store_is_valid(self):
        validate_store(_store())

    def test_cluster_store_selector_needs_namespace(self):
        ref = SecretRefAuth(SecretKeySelector(name="gcp-sa", key="credentials.json"))
        with pytest.raises(ConfigError, match="invalid auth secret data"):
            validate_store(_store(kind=CLUSTER_SECRET_STORE_KIND, secret_ref=ref))

    def test_namespaced_store_selector_same_namespace(self):
        ref = SecretRefAuth(SecretKeySelector(name="gcp-sa", key="credentials.json", namespace="team-a"))
        validate_store(_store(secret_ref=ref))

    def test_namespaced_store_selector_other_namespace(self):
        ref = SecretRefAuth(SecretKeySelector(name="gcp-sa", key="credentials.json", namespace="team-b"))
        with pytest.raises(ConfigError):
            validate_store(_store(secret_ref=ref))

    def test_selector_requires_key(self):
        ref = SecretRefAuth(SecretKeySelector(name="gcp-sa", key=""))
        with pytest.raises(ConfigError):
            validate_store(_store(secret_ref=ref))

    def test_workload_identity_service_account_namespace(self):
        wi = WorkloadIdentityAuth(service_account_ref=ServiceAccountSelector(name="eso"))
        with pytest.raises(ConfigError, match="workload identity"):
            validate_store(_store(kind=CLUSTER_SECRET_STORE_KIND, workload=wi))
        validate_store(_store(workload=wi))

    def test_workload_identity_without_service_account(self):
        validate_store(_store(workload=WorkloadIdentityAuth()))
