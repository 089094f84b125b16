from enum import Enum


class Environment(str, Enum):
    """Deployment environments the services recognise."""

    PRODUCTION = "production"
    STAGING = "staging"
    TESTING = "testing"
    DEVELOPMENT = "development"

    @classmethod
    def parse(cls, env: str) -> "Environment":
        """Map a free-form environment string, defaulting to production."""
        try:
            return cls(env.strip().lower())
        except ValueError:
            return cls.PRODUCTION

    @classmethod
    def is_testing(cls, env: str) -> bool:
        """Testing shortens idle sleeps so suites do not wait on poll intervals."""
        return cls.parse(env) is cls.TESTING
