# config.py
import os


def _coerce_bool(value, default=False):
    """Convert environment-style truthy/falsey values to bool."""
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    value_str = str(value).strip().lower()
    if value_str in {"1", "true", "yes", "on"}:
        return True
    if value_str in {"0", "false", "no", "off"}:
        return False
    return default


def _coerce_int(value, default, *, minimum=None, maximum=None):
    """
    Parse an integer environment value, clamping it to the optional bounds.
    """

    if value is None or str(value).strip() == "":
        number = default
    else:
        try:
            number = int(str(value).strip())
        except ValueError:
            number = default
    if minimum is not None and number < minimum:
        number = minimum
    if maximum is not None and number > maximum:
        number = maximum
    return number


def _optional_str(value):
    if value is None:
        return None
    token = str(value).strip()
    return token or None


# Firestore rejects write batches above this size.
MAX_BATCH_SIZE = 500


class Config:
    _flask_env = os.environ.get("FLASK_ENV", "development")
    _is_testing = _flask_env == "testing"

    SECRET_KEY = os.environ.get("SECRET_KEY") or "reconcile-cli-placeholder"

    # Reconciliation engine
    RECONCILE_ENABLED = _coerce_bool(os.environ.get("RECONCILE_ENABLED"), default=True)
    RECONCILE_STORE = (os.environ.get("RECONCILE_STORE") or "firestore").strip().lower()
    RECONCILE_COLLECTION = (os.environ.get("RECONCILE_COLLECTION") or "wall_items").strip()
    RECONCILE_PARENT_ID = _optional_str(os.environ.get("RECONCILE_PARENT_ID"))
    RECONCILE_OBJECT_TYPE = _optional_str(os.environ.get("RECONCILE_OBJECT_TYPE"))
    RECONCILE_ARTIFACT_DIR = _optional_str(os.environ.get("RECONCILE_ARTIFACT_DIR"))
    RECONCILE_BATCH_SIZE = _coerce_int(
        os.environ.get("RECONCILE_BATCH_SIZE"),
        MAX_BATCH_SIZE,
        minimum=1,
        maximum=MAX_BATCH_SIZE,
    )
    RECONCILE_YEAR_MIN = _coerce_int(os.environ.get("RECONCILE_YEAR_MIN"), 1920)
    RECONCILE_YEAR_MAX = _coerce_int(os.environ.get("RECONCILE_YEAR_MAX"), 2030)
    RECONCILE_NORMALIZATION_PROFILE_PATH = _optional_str(os.environ.get("RECONCILE_NORMALIZATION_PROFILE_PATH"))

    # Document layout of wall items inside Firestore
    RECONCILE_PARENT_FIELD = os.environ.get("RECONCILE_PARENT_FIELD", "wallId")
    RECONCILE_FIELDS_FIELD = os.environ.get("RECONCILE_FIELDS_FIELD", "fieldData")
    RECONCILE_IMAGES_FIELD = os.environ.get("RECONCILE_IMAGES_FIELD", "images")
    RECONCILE_CREATED_FIELD = os.environ.get("RECONCILE_CREATED_FIELD", "created")
    RECONCILE_UPDATED_FIELD = os.environ.get("RECONCILE_UPDATED_FIELD", "updated")
    RECONCILE_OBJECT_TYPE_FIELD = os.environ.get("RECONCILE_OBJECT_TYPE_FIELD", "objectTypeId")

    # Firebase credentials
    FIREBASE_CREDENTIALS_PATH = _optional_str(os.environ.get("FIREBASE_CREDENTIALS_PATH"))
    FIREBASE_PROJECT_ID = _optional_str(os.environ.get("FIREBASE_PROJECT_ID"))


class DevelopmentConfig(Config):
    DEBUG = True
    _config_dir = os.path.dirname(os.path.abspath(__file__))
    _project_root = os.path.dirname(_config_dir)
    instance_path = os.path.join(_project_root, "instance")


class TestingConfig(Config):
    TESTING = True
    SECRET_KEY = os.environ.get("SECRET_KEY", "test-secret-key-for-testing-only")
    RECONCILE_STORE = "memory"
    RECONCILE_PARENT_ID = "wall-test"
    RECONCILE_OBJECT_TYPE = None


class ProductionConfig(Config):
    DEBUG = False
