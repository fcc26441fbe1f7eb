import os


def _get_bool_env(name: str, default: bool) -> bool:
	raw = os.environ.get(name)
	if raw is None:
		return default
	return raw.strip().lower() in {"1", "true", "yes", "on"}


def _get_int_env(name: str, default: int) -> int:
	raw = os.environ.get(name)
	if raw is None:
		return default
	try:
		return int(raw)
	except ValueError:
		return default


def _get_float_env(name: str, default: float) -> float:
	raw = os.environ.get(name)
	if raw is None:
		return default
	try:
		return float(raw)
	except ValueError:
		return default


def _get_list_env(name: str, default: str) -> tuple:
	return tuple(part.strip() for part in os.environ.get(name, default).split(",") if part.strip())


# Application authentication (identity is only read, never issued here)
APP_JWT_SECRET = os.environ.get("APP_JWT_SECRET") or os.environ.get("NEXTAUTH_SECRET")
APP_JWT_ALGORITHM = os.environ.get("APP_JWT_ALGORITHM", "HS256")
APP_JWT_ISSUER = os.environ.get("APP_JWT_ISSUER", "venue-platform")
APP_JWT_AUDIENCE = os.environ.get("APP_JWT_AUDIENCE", "venue-platform")

# Rate limits (slowapi syntax)
SEARCH_RATE_LIMIT = os.environ.get("SEARCH_RATE_LIMIT", "20/minute")
FACETS_RATE_LIMIT = os.environ.get("FACETS_RATE_LIMIT", "10/minute")
SUGGESTIONS_RATE_LIMIT = os.environ.get("SUGGESTIONS_RATE_LIMIT", "30/minute")

CORS_ALLOW_ORIGINS = _get_list_env("CORS_ALLOW_ORIGINS", "http://localhost:3000")

# Observability configuration
LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")
ENABLE_CLOUD_LOGGING = _get_bool_env("ENABLE_CLOUD_LOGGING", False)
CLOUD_LOGGING_LOG_NAME = os.environ.get("CLOUD_LOGGING_LOG_NAME", "venue-search-service")
CLOUD_LOGGING_EXCLUDED_LOGGERS = _get_list_env("CLOUD_LOGGING_EXCLUDED_LOGGERS", "httpx")

ENABLE_PROMETHEUS_METRICS = _get_bool_env("ENABLE_PROMETHEUS_METRICS", False)
PROMETHEUS_METRICS_NAMESPACE = os.environ.get("PROMETHEUS_METRICS_NAMESPACE", "venue")
PROMETHEUS_METRICS_SUBSYSTEM = os.environ.get("PROMETHEUS_METRICS_SUBSYSTEM", "search")

# Cache configuration
ENABLE_CACHE = _get_bool_env("ENABLE_CACHE", True)
SEARCH_CACHE_TTL = _get_int_env("SEARCH_CACHE_TTL", 300)
SEARCH_CACHE_PREFIX = os.environ.get("SEARCH_CACHE_PREFIX", "search:venues:")
CACHE_MAX_PAYLOAD_BYTES = _get_int_env("CACHE_MAX_PAYLOAD_BYTES", 1_048_576)
CACHE_REDIS_URL = os.environ.get("CACHE_REDIS_URL") or os.environ.get("REDIS_URL")
CACHE_CONNECT_TIMEOUT_SECONDS = _get_float_env("CACHE_CONNECT_TIMEOUT_SECONDS", 2.0)
CACHE_COMMAND_TIMEOUT_SECONDS = _get_float_env("CACHE_COMMAND_TIMEOUT_SECONDS", 1.0)
CACHE_RECONNECT_ATTEMPTS = _get_int_env("CACHE_RECONNECT_ATTEMPTS", 3)
CACHE_RECONNECT_BACKOFF_CAP_SECONDS = _get_float_env("CACHE_RECONNECT_BACKOFF_CAP_SECONDS", 3.0)
CACHE_RECONNECT_BACKOFF_BASE_SECONDS = _get_float_env("CACHE_RECONNECT_BACKOFF_BASE_SECONDS", 0.5)

# Primary store
DATABASE_URL = os.environ.get("DATABASE_URL")
DATABASE_POOL_MIN_SIZE = _get_int_env("DATABASE_POOL_MIN_SIZE", 1)
DATABASE_POOL_MAX_SIZE = _get_int_env("DATABASE_POOL_MAX_SIZE", 10)
DATABASE_QUERY_TIMEOUT_SECONDS = _get_float_env("DATABASE_QUERY_TIMEOUT_SECONDS", 5.0)
DATABASE_AUTO_MIGRATE = _get_bool_env("DATABASE_AUTO_MIGRATE", False)
# JSON list of venues served by the in-memory engine when DATABASE_URL is unset
VENUE_FIXTURE_PATH = os.environ.get("VENUE_FIXTURE_PATH")

# Search behaviour
ENABLE_SEARCH_ANALYTICS = _get_bool_env("ENABLE_SEARCH_ANALYTICS", True)
FACET_AMENITY_LIMIT = _get_int_env("FACET_AMENITY_LIMIT", 20)
SUGGESTION_MIN_LENGTH = _get_int_env("SUGGESTION_MIN_LENGTH", 2)
SUGGESTION_POOL_SIZE = _get_int_env("SUGGESTION_POOL_SIZE", 50)
BACKGROUND_SHUTDOWN_TIMEOUT_SECONDS = _get_float_env("BACKGROUND_SHUTDOWN_TIMEOUT_SECONDS", 5.0)
