# config/validation.py

"""
Environment variable validation for the reconciliation tooling.
Validates required environment variables at startup.
"""

import os
import sys
from typing import List, Tuple


def validate_environment(flask_env: str = None) -> Tuple[bool, List[str]]:
    """
    Validate required environment variables.

    Args:
        flask_env: Flask environment (development, production, testing)
                  If None, reads from FLASK_ENV environment variable

    Returns:
        Tuple of (is_valid, list_of_errors)
    """
    if flask_env is None:
        flask_env = os.environ.get("FLASK_ENV", "development")

    errors = []

    # Only validate in production
    if flask_env != "production":
        return True, []

    collection = os.environ.get("RECONCILE_COLLECTION", "wall_items")
    if not collection.strip():
        errors.append(
            "RECONCILE_COLLECTION must not be blank. "
            "Set it to the canonical collection holding wall items (e.g. wall_items)."
        )

    store = (os.environ.get("RECONCILE_STORE") or "firestore").strip().lower()
    if store not in {"firestore", "memory"}:
        errors.append(f"RECONCILE_STORE must be 'firestore' or 'memory', got '{store}'.")

    if store == "firestore":
        credentials_path = os.environ.get("FIREBASE_CREDENTIALS_PATH")
        if not credentials_path:
            errors.append(
                "FIREBASE_CREDENTIALS_PATH is required in production. "
                "Point it at the Firebase service account JSON file."
            )
        elif not os.path.isfile(credentials_path):
            errors.append(f"FIREBASE_CREDENTIALS_PATH does not exist: {credentials_path}")

    batch_size = os.environ.get("RECONCILE_BATCH_SIZE")
    if batch_size is not None:
        try:
            if int(batch_size) < 1:
                errors.append("RECONCILE_BATCH_SIZE must be a positive integer.")
        except ValueError:
            errors.append(f"RECONCILE_BATCH_SIZE must be an integer, got '{batch_size}'.")

    return len(errors) == 0, errors


def validate_and_exit(flask_env: str = None) -> None:
    """
    Validate environment variables and exit if validation fails.

    Args:
        flask_env: Flask environment (development, production, testing)
    """
    is_valid, errors = validate_environment(flask_env)

    if not is_valid:
        print("=" * 70, file=sys.stderr)
        print("ENVIRONMENT VALIDATION FAILED", file=sys.stderr)
        print("=" * 70, file=sys.stderr)
        for error in errors:
            print(f"  - {error}", file=sys.stderr)
        print("=" * 70, file=sys.stderr)
        sys.exit(1)
