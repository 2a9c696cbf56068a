"""Input validation for CLI arguments."""
import re
import sys
from typing import Dict, List


def validate_secret_name(name: str) -> None:
    """
    Validate secret name matches GCP requirements.

    GCP Secret Manager allows only: [a-zA-Z0-9_-]

    Args:
        name: Secret name to validate

    Raises:
        SystemExit with code 2 if validation fails
    """
    if not name:
        print("Error: Secret name cannot be empty", file=sys.stderr)
        print("\nSecret names must match: [a-zA-Z0-9_-]", file=sys.stderr)
        sys.exit(2)

    pattern = r'^[a-zA-Z0-9_-]+$'

    if not re.match(pattern, name):
        print(f"Error: Invalid secret name '{name}'", file=sys.stderr)
        print("\nAllowed characters: letters, numbers, underscores (_), hyphens (-)", file=sys.stderr)
        print("Not allowed: dots (.), slashes (/), spaces, special characters (@, $, !, etc.)", file=sys.stderr)
        sys.exit(2)


def validate_secret_value(value: bytes) -> None:
    """
    Validate secret value is not empty.

    GCP Secret Manager does not allow empty secret payloads.

    Raises:
        SystemExit with code 2 if validation fails
    """
    if not value or value.strip() == b"":
        print("Error: Secret value cannot be empty", file=sys.stderr)
        print("\nGCP Secret Manager does not allow empty secret payloads.", file=sys.stderr)
        sys.exit(2)


def parse_tags(tags: List[str]) -> Dict[str, str]:
    """
    Parse K=V tag arguments into a mapping.

    Raises:
        SystemExit with code 2 if a tag is malformed
    """
    result = {}
    for tag in tags:
        key, sep, value = tag.partition("=")
        if not sep or not key:
            print(f"Error: Invalid tag '{tag}'", file=sys.stderr)
            print("\nTags must look like: key=value", file=sys.stderr)
            sys.exit(2)
        result[key] = value
    return result
