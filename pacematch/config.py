"""
Configuration module for the PaceMatch proximity service.

Loads environment variables and provides configuration singletons.
Uses pydantic for validation.
"""

from pydantic_settings import BaseSettings
from typing import Dict, Optional
import os


class Config(BaseSettings):
    """
    Application configuration loaded from environment variables.

    All values come from .env file or system environment.
    Type hints provide validation (pydantic converts types automatically).
    Dict-valued settings are read from JSON strings in the environment.
    """

    # ============================================================
    # FIREBASE CONFIGURATION (REQUIRED)
    # ============================================================
    FIREBASE_PROJECT_ID: str = ""
    """Firebase project ID. Find in Firebase Console → Project Settings."""

    FIREBASE_DATABASE_URL: str = ""
    """Realtime Database URL, e.g. https://<project>-default-rtdb.<region>.firebasedatabase.app/"""

    GOOGLE_APPLICATION_CREDENTIALS: str = "/config/serviceAccountKey.json"
    """Path to Firebase service account JSON file."""

    # ============================================================
    # LOCATION TRACKING
    # ============================================================
    LOCATION_WRITE_THROTTLE_MS: int = 7500
    """Minimum gap between location writes after the first fix (5-10s cadence)."""

    ACTIVE_THRESHOLD_MS: int = 10 * 60 * 1000
    """A user whose last location push is older than this is not shown as nearby."""

    REEVALUATION_INTERVAL_S: float = 30.0
    """Interval for re-running the nearby filter against the cached snapshot."""

    DEFAULT_NEARBY_RADIUS_KM: float = 5.0
    """Radius used for nearby-user discovery when the caller does not pass one."""

    # ============================================================
    # ENCOUNTERS
    # ============================================================
    ENCOUNTER_DEDUP_WINDOW_MS: int = 5 * 60 * 1000
    """The same candidate is recorded at most once per window within a session."""

    ENCOUNTER_MIN_PASS_GAP_MS: int = 10_000
    """Minimum gap between two encounter-recording passes."""

    ENCOUNTER_MAX_AGE_DAYS: int = 90
    """Encounters not seen for this many days are removed by cleanup."""

    # ============================================================
    # MATCHING
    # ============================================================
    MATCH_ACTIVE_THRESHOLD_MS: int = 3 * 60 * 1000
    """Candidates must have pushed a location within this window to be matched."""

    BASE_RADIUS_METERS: Dict[str, int] = {
        "cycling": 10_000,
        "running": 2_000,
        "walking": 1_000,
    }
    """Base match radius per activity type."""

    RADIUS_MULTIPLIERS: Dict[str, float] = {
        "nearby": 0.5,
        "normal": 1.0,
        "wide": 2.0,
    }
    """Radius preference multipliers. Must satisfy nearby < normal < wide."""

    MATCH_PACE_TOLERANCE: float = 0.30
    """Maximum relative pace difference for a candidate to be matched."""

    MATCH_RESULT_LIMIT: int = 5
    """Number of top matches returned."""

    # ============================================================
    # MOVEMENT DETECTION
    # ============================================================
    MOVEMENT_DISTANCE_THRESHOLD_M: float = 10.0
    """Movement below this distance within the window counts as stationary."""

    MOVEMENT_WINDOW_MINUTES: float = 5.0
    """Detection window for stationary checks."""

    MOVEMENT_CHECK_INTERVAL_S: float = 30.0
    """How often the stationary check runs during a workout."""

    # ============================================================
    # GRAPH CONFIGURATION
    # ============================================================
    GRAPH_TIMEOUT: int = 30
    """Maximum seconds a graph can run before timeout. Default: 30 seconds."""

    # ============================================================
    # SECURITY CONFIGURATION
    # ============================================================
    SERVICE_TOKEN: str = os.getenv("SERVICE_TOKEN", "")
    """Shared secret for authenticating requests to /run-graph. Empty disables the check."""

    # ============================================================
    # SERVER CONFIGURATION
    # ============================================================
    PORT: int = 8000
    """Port to run FastAPI server on. Default: 8000."""

    HOST: str = "0.0.0.0"
    """Host to bind to. 0.0.0.0 = accessible from network."""

    DEBUG: bool = False
    """Enable debug logging. Set True for development, False for production."""

    class Config:
        """Pydantic configuration."""
        env_file = ".env"  # Read from .env file
        case_sensitive = True  # Variable names are case-sensitive
        extra = "ignore"  # Ignore extra env vars not defined above


# ============================================================
# SINGLETON INSTANCE
# ============================================================
# Load config once at startup, reuse throughout app
config = Config()


# ============================================================
# VALIDATION AT STARTUP
# ============================================================
def validate_config() -> dict:
    """
    Validate that required config values are set.

    Called at app startup to fail fast if config is incomplete.

    Returns:
        dict: Status of each required field

    Raises:
        ValueError: If required config is missing or inconsistent
    """
    errors = []

    if not config.FIREBASE_PROJECT_ID:
        errors.append("FIREBASE_PROJECT_ID is required")

    if not config.FIREBASE_DATABASE_URL:
        errors.append("FIREBASE_DATABASE_URL is required")

    multipliers = config.RADIUS_MULTIPLIERS or {}
    bands = [multipliers.get(name) for name in ("nearby", "normal", "wide")]
    if any(band is None for band in bands):
        errors.append("RADIUS_MULTIPLIERS must define nearby, normal and wide")
    elif not bands[0] < bands[1] < bands[2]:
        errors.append("RADIUS_MULTIPLIERS must satisfy nearby < normal < wide")

    if config.LOCATION_WRITE_THROTTLE_MS < 0:
        errors.append("LOCATION_WRITE_THROTTLE_MS must not be negative")

    if errors:
        raise ValueError(f"Configuration errors:\n" + "\n".join([f"  - {e}" for e in errors]))

    return {
        "firebase": "✓ Configured" if config.FIREBASE_PROJECT_ID else "✗ Missing",
        "database": "✓ Configured" if config.FIREBASE_DATABASE_URL else "✗ Missing",
        "service_token": "✓ Configured" if config.SERVICE_TOKEN else "✗ Not set",
    }


if __name__ == "__main__":
    """Allow testing config by running: python -m pacematch.config"""
    try:
        status = validate_config()
        print("✅ Configuration is valid!")
        print("\nConfiguration Status:")
        for key, value in status.items():
            print(f"  {key}: {value}")
    except ValueError as e:
        print(f"❌ Configuration error:\n{e}")
        exit(1)
