"""CLI entrypoint for gcpsm-sync."""
import sys
import json
import argparse
import logging
from pathlib import Path

from gcpsm_sync import __version__
from .validators import parse_tags, validate_secret_name, validate_secret_value

# Configure logging to stderr
logging.basicConfig(
    level=logging.WARNING,
    format="%(message)s",
    stream=sys.stderr
)
logger = logging.getLogger(__name__)


def _load_store(args):
    from gcpsm_sync.secrets.domains.config_loader import load_store_spec

    return load_store_spec(args.config)


def _needs_kube(store) -> bool:
    auth = store.provider.auth
    if auth.secret_ref is not None:
        return True
    return auth.workload_identity is not None and auth.workload_identity.service_account_ref is not None


def _open_provider(args):
    """Load the store manifest and construct a provider for it."""
    from gcpsm_sync.secrets.domains.kube import KubernetesReader
    from gcpsm_sync.secrets.workflows.provider import new_client

    store = _load_store(args)
    kube = KubernetesReader.from_environment() if _needs_kube(store) else None
    return new_client(store, kube, args.namespace, timeout=args.timeout)


def _decode(value: bytes) -> str:
    return value.decode("utf-8", errors="replace")


def cmd_version(args):
    """Show version information."""
    print(f"gcpsm-sync {__version__}")


def cmd_store_validate(args):
    """Validate the store manifest without contacting GCP."""
    from gcpsm_sync.secrets.domains.validators import validate_store

    store = _load_store(args)
    validate_store(store)
    print(f"Store '{store.name or '<unnamed>'}' ({store.kind}) is valid for project {store.provider.project_id}")


def cmd_secrets_get(args):
    """Get a secret from GCP Secret Manager."""
    from gcpsm_sync.secrets.domains.models import RemoteSecretRef

    ref = RemoteSecretRef(key=args.secret_name, version=args.version, property=args.property or "")
    with _open_provider(args) as provider:
        value = provider.get_secret(ref)

    if args.quiet:
        # Quiet mode: output only value, no formatting
        print(_decode(value))
    else:
        print(f"Secret '{args.secret_name}': {_decode(value)}")


def cmd_secrets_get_map(args):
    """Get a JSON secret as a key/value map."""
    from gcpsm_sync.secrets.domains.models import RemoteSecretRef

    ref = RemoteSecretRef(key=args.secret_name, version=args.version)
    with _open_provider(args) as provider:
        data = provider.get_secret_map(ref)
    print(json.dumps({k: _decode(v) for k, v in data.items()}, indent=2))


def cmd_secrets_find(args):
    """Find secrets by name pattern or tags."""
    from gcpsm_sync.secrets.domains.models import FindQuery

    query = FindQuery(
        name=args.name,
        tags=parse_tags(args.tag or []),
        path=args.path,
    )
    with _open_provider(args) as provider:
        data = provider.get_all_secrets(query)
    print(json.dumps({k: _decode(v) for k, v in sorted(data.items())}, indent=2))


def cmd_secrets_push(args):
    """Push a value as the latest version of a secret."""
    from gcpsm_sync.secrets.domains.models import PushRemoteRef

    validate_secret_name(args.secret_name)
    if args.from_file:
        path = Path(args.from_file)
        if not path.is_file():
            print(f"Error: File not found: {path}", file=sys.stderr)
            sys.exit(2)
        payload = path.read_bytes()
    else:
        payload = args.value.encode("utf-8")
    validate_secret_value(payload)

    with _open_provider(args) as provider:
        provider.set_secret(payload, PushRemoteRef(remote_key=args.secret_name))
    print(f"Secret '{args.secret_name}' is up to date")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="gcpsm-sync",
        description="gcpsm-sync CLI - fetch, find and push GCP Secret Manager secrets",
        epilog="""
Exit codes:
  0 - Success
  1 - Runtime error (authentication, network, secret not found, etc.)
  2 - Usage error (invalid arguments, invalid store manifest, etc.)

Environment variables:
  GCPSM_STORE_CONFIG - Store manifest path
  GCP_PROJECT - GCP project ID (when the manifest has no projectID)

Configuration:
  Default location: ~/.config/gcpsm-sync/store.yml
        """,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--config", help="Path to the SecretStore manifest")
    parser.add_argument("--namespace", default="default", help="Namespace for credential lookups (default: default)")
    parser.add_argument("--timeout", type=float, default=None, help="Deadline in seconds for each GCP call")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # version command
    _version_parser = subparsers.add_parser(
        "version",
        help="Show version information",
        description="Display the current version of gcpsm-sync"
    )

    # store command
    store_parser = subparsers.add_parser(
        "store",
        help="Store manifest operations",
        description="Inspect the SecretStore manifest"
    )
    store_subparsers = store_parser.add_subparsers(dest="store_command")
    _store_validate_parser = store_subparsers.add_parser(
        "validate",
        help="Validate the store manifest",
        description="Check the store manifest and its selectors without contacting GCP"
    )

    # secrets command
    secrets_parser = subparsers.add_parser(
        "secrets",
        help="Secret management operations",
        description="Manage secrets in GCP Secret Manager"
    )
    secrets_subparsers = secrets_parser.add_subparsers(dest="secrets_command")

    get_parser = secrets_subparsers.add_parser("get", help="Get a secret value")
    get_parser.add_argument("secret_name", help="Name of the secret")
    get_parser.add_argument("--version", default="latest", help="Secret version (default: latest)")
    get_parser.add_argument("--property", help="Property path inside a JSON secret")
    get_parser.add_argument("-q", "--quiet", action="store_true", help="Output only the value")

    get_map_parser = secrets_subparsers.add_parser("get-map", help="Get a JSON secret as a key/value map")
    get_map_parser.add_argument("secret_name", help="Name of the secret")
    get_map_parser.add_argument("--version", default="latest", help="Secret version (default: latest)")

    find_parser = secrets_subparsers.add_parser("find", help="Find secrets by name pattern or tags")
    find_group = find_parser.add_mutually_exclusive_group(required=True)
    find_group.add_argument("--name", help="Regular expression matched against secret names")
    find_group.add_argument("--tag", action="append", help="Required label as key=value (repeatable)")
    find_parser.add_argument("--path", help="Only secrets whose name starts with this prefix")

    push_parser = secrets_subparsers.add_parser("push", help="Push a value to a secret")
    push_parser.add_argument("secret_name", help="Name of the secret")
    push_value = push_parser.add_mutually_exclusive_group(required=True)
    push_value.add_argument("--value", help="Secret value")
    push_value.add_argument("--from-file", help="Read the secret value from a file")

    return parser


def main(argv=None):
    """Main CLI entrypoint.

    Exit codes:
        0 - Success
        1 - Runtime errors (authentication, network, secret not found, etc.)
        2 - Usage errors (invalid arguments, invalid store manifest, etc.)
    """
    from gcpsm_sync.secrets.domains.errors import ConfigError, SecretStoreError

    parser = build_parser()
    args = parser.parse_args(argv)

    if args.verbose:
        logging.getLogger().setLevel(logging.DEBUG)

    handlers = {
        "version": cmd_version,
        ("store", "validate"): cmd_store_validate,
        ("secrets", "get"): cmd_secrets_get,
        ("secrets", "get-map"): cmd_secrets_get_map,
        ("secrets", "find"): cmd_secrets_find,
        ("secrets", "push"): cmd_secrets_push,
    }

    if args.command == "version":
        handler = handlers["version"]
    elif args.command == "store":
        handler = handlers.get(("store", args.store_command))
    elif args.command == "secrets":
        handler = handlers.get(("secrets", args.secrets_command))
    else:
        handler = None

    if handler is None:
        parser.print_help()
        sys.exit(2)

    try:
        handler(args)
    except (ConfigError, FileNotFoundError) as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(2)
    except SecretStoreError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)
    sys.exit(0)


if __name__ == "__main__":
    main()
