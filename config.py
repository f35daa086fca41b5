import os

from dotenv import load_dotenv

load_dotenv()


def _env_flag(name, default="false"):
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes")


class Config:
    """Base configuration class"""

    SECRET_KEY = os.getenv("SECRET_KEY", "dev-secret-key-change-in-production")
    FLASK_ENV = os.getenv("FLASK_ENV", "development")
    DEBUG = os.getenv("DEBUG", "True") == "True"

    # SQLAlchemy configuration
    SQLALCHEMY_DATABASE_URI = os.getenv("DATABASE_URI", "sqlite:///database.db")
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # LLM provider ("openai" or "mistral"); API keys are read by the providers
    LLM_PROVIDER = os.getenv("LLM_PROVIDER", "mistral").lower()
    EVALUATION_MODEL = os.getenv("EVALUATION_MODEL")  # None -> provider default
    CLASSIFIER_MODEL = os.getenv("CLASSIFIER_MODEL")
    LLM_TIMEOUT_SECONDS = float(os.getenv("LLM_TIMEOUT_SECONDS", "30"))

    # Evaluation tiers
    SKIP_FUZZY_LOGIC = _env_flag("SKIP_FUZZY_LOGIC")
    FUZZY_PASS_THRESHOLD = 70
    SEMANTIC_PASS_THRESHOLD = 70

    # Let clients force diagnostic metadata on with superuserOverride=true
    ALLOW_SUPERUSER_OVERRIDE = _env_flag("ALLOW_SUPERUSER_OVERRIDE")

    # Similarity (0-100) lower bounds per band; stricter difficulty -> higher bounds
    FUZZY_BAND_THRESHOLDS = {
        "beginner": {"near_exact": 95, "minor_typo": 80, "partial": 70},
        "intermediate": {"near_exact": 97, "minor_typo": 85, "partial": 75},
        "advanced": {"near_exact": 98, "minor_typo": 90, "partial": 80},
    }

    # Rate limiting for the evaluate endpoint (15 requests per minute per IP)
    EVALUATE_RATE_LIMIT_WINDOW_MS = int(os.getenv("EVALUATE_RATE_LIMIT_WINDOW_MS", "60000"))
    EVALUATE_RATE_LIMIT_MAX_REQUESTS = int(os.getenv("EVALUATE_RATE_LIMIT_MAX_REQUESTS", "15"))
    RATE_LIMIT_CLEANUP_INTERVAL_MS = 5 * 60 * 1000


class DevelopmentConfig(Config):
    """Development environment configuration"""

    DEBUG = True
    ALLOW_SUPERUSER_OVERRIDE = True


class ProductionConfig(Config):
    """Production environment configuration"""

    DEBUG = False

    SQLALCHEMY_ENGINE_OPTIONS = {
        "pool_size": 20,
        "max_overflow": 10,
        "pool_recycle": 3600,
        "pool_pre_ping": True,
    }


class TestingConfig(Config):
    """Testing environment configuration"""

    TESTING = True
    DEBUG = True
    SQLALCHEMY_DATABASE_URI = "sqlite:///:memory:"
    SKIP_FUZZY_LOGIC = False


config = {
    "development": DevelopmentConfig,
    "production": ProductionConfig,
    "testing": TestingConfig,
    "default": DevelopmentConfig,
}
