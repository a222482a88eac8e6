"""
Configuration settings for the company chatbot backend
"""
import os

from dotenv import load_dotenv

load_dotenv()

VALID_CACHE_BACKENDS = ("memory", "redis", "none")


def env_number(name: str, default: str, cast):
    """Numeric env var; None when unparsable so validate() can report it"""
    try:
        return cast(os.getenv(name, default))
    except ValueError:
        return None


class Config:
    """Base configuration"""
    SECRET_KEY = os.getenv("FLASK_SECRET_KEY", "supersecret")

    # Completion API
    API_URL = os.getenv("API_URL")
    API_KEY = os.getenv("API_KEY")
    MODEL = os.getenv("MODEL")
    MAX_TOKENS = env_number("MAX_TOKENS", "500", int)
    TEMPERATURE = env_number("TEMPERATURE", "0.7", float)
    API_TIMEOUT = env_number("API_TIMEOUT", "30", float)
    API_TEST_TIMEOUT = env_number("API_TEST_TIMEOUT", "15", float)

    # Company data and its cache
    COMPANY_DATA_PATH = os.getenv("COMPANY_DATA_PATH", "company_data.json")
    CACHE_PATH = os.getenv("CACHE_PATH", "cache")
    COMPANY_CACHE_FILE = os.getenv("COMPANY_CACHE_FILE", os.path.join(CACHE_PATH, "company_data.json"))
    CACHE_LIFETIME = env_number("CACHE_LIFETIME", "3600", int)
    CACHE_BACKEND = os.getenv("CACHE_BACKEND", "memory").lower()

    # Redis Configuration
    REDIS_URL = os.getenv("REDIS_URL")

    # Session Configuration
    SESSION_TYPE = 'redis' if REDIS_URL else 'filesystem'
    SESSION_PERMANENT = False
    SESSION_USE_SIGNER = True
    SESSION_KEY_PREFIX = 'chatbot:'
    SESSION_COOKIE_HTTPONLY = True
    SESSION_COOKIE_SECURE = os.getenv("SESSION_COOKIE_SECURE", "false").lower() == "true"
    SESSION_COOKIE_SAMESITE = 'Lax'

    # Logging
    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

    @classmethod
    def validate(cls) -> list:
        """Return a list of human readable configuration problems"""
        problems = []
        for name in ("API_URL", "API_KEY", "MODEL"):
            if not getattr(cls, name):
                problems.append(f"{name} is not set")
        if cls.MAX_TOKENS is None or cls.MAX_TOKENS <= 0:
            problems.append("MAX_TOKENS must be a positive integer")
        if cls.TEMPERATURE is None or not 0.0 <= cls.TEMPERATURE <= 2.0:
            problems.append("TEMPERATURE must be between 0.0 and 2.0")
        if cls.CACHE_LIFETIME is None or cls.CACHE_LIFETIME < 0:
            problems.append("CACHE_LIFETIME must be a non-negative integer")
        for name in ("API_TIMEOUT", "API_TEST_TIMEOUT"):
            value = getattr(cls, name)
            if value is None or value <= 0:
                problems.append(f"{name} must be a positive number of seconds")
        if cls.CACHE_BACKEND not in VALID_CACHE_BACKENDS:
            problems.append(f"CACHE_BACKEND must be one of {', '.join(VALID_CACHE_BACKENDS)}")
        if cls.CACHE_BACKEND == "redis" and not cls.REDIS_URL:
            problems.append("CACHE_BACKEND=redis requires REDIS_URL")
        return problems


class DevelopmentConfig(Config):
    """Development configuration"""
    DEBUG = True
    SESSION_COOKIE_SECURE = False


class ProductionConfig(Config):
    """Production configuration"""
    DEBUG = False
    SESSION_COOKIE_SECURE = True


class TestingConfig(Config):
    """Testing configuration: signed cookie sessions, no redis"""
    TESTING = True
    SECRET_KEY = "test-secret"
    API_URL = "https://api.example.test/v1/chat/completions"
    API_KEY = "test-key"
    MODEL = "test-model"
    MAX_TOKENS = 500
    TEMPERATURE = 0.7
    REDIS_URL = None
    SESSION_TYPE = None
    CACHE_BACKEND = "memory"


# Configuration mapping
config = {
    'development': DevelopmentConfig,
    'production': ProductionConfig,
    'testing': TestingConfig,
    'default': DevelopmentConfig
}


def get_config():
    """Get configuration based on environment"""
    env = os.getenv('FLASK_ENV', 'default').lower()
    return config.get(env, config['default'])
