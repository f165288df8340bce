"""Pydantic models for gate configuration."""

from typing import Any, Dict, FrozenSet, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field
from pydantic_settings import BaseSettings

# Attack signatures. Patterns carry their own flags so the policy stays plain strings.
DEFAULT_SQL_INJECTION_PATTERNS: Tuple[str, ...] = (
    r"(?i)\b(SELECT|INSERT|UPDATE|DELETE|DROP|CREATE|ALTER|EXEC|UNION)\b",
    r"(?i)\b(OR|AND)\b\s+\d+\s*=\s*\d+",
    r"(?i)\b(OR|AND)\b\s+['\"]?\w+['\"]?\s*=\s*['\"]?\w+['\"]?",
    r"(--|/\*|\*/|;)",
    r"(?i)\b(WAITFOR|DELAY)\b",
    r"(?i)\b(SLEEP|BENCHMARK|PG_SLEEP)\s*\(",
)

DEFAULT_XSS_PATTERNS: Tuple[str, ...] = (
    r"(?i)<\s*script\b",
    r"(?i)javascript\s*:",
    r"(?i)\bon[a-z]+\s*=",
    r"(?i)<\s*iframe\b",
    r"(?i)<\s*object\b",
    r"(?i)<\s*embed\b",
)

DEFAULT_MALICIOUS_PATTERNS: Tuple[str, ...] = (
    r"\.\.[/\\]",
    r"(?i)\beval\s*\(",
    r"(?i)document\.cookie",
)

DEFAULT_SUSPICIOUS_USER_AGENTS: Tuple[str, ...] = (
    "sqlmap",
    "nikto",
    "nmap",
    "masscan",
    "dirb",
)


class GateSettings(BaseSettings):
    """Gate settings loaded from environment variables and .env."""

    app_name: str = "StockAgent"
    environment: str = "development"
    debug_mode: bool = False
    log_level: str = "INFO"
    app_log_dir: str = Field(default="logs", validation_alias="APP_LOG_DIR")
    policy_file: str = Field(
        default="security_policy.yml", validation_alias="SECURITY_POLICY_FILE"
    )

    # Rate limiting settings
    rate_limit_window_ms: int = Field(
        default=15 * 60 * 1000, validation_alias="RATE_LIMIT_WINDOW_MS"
    )
    rate_limit_max_requests: int = Field(
        default=500, validation_alias="RATE_LIMIT_MAX_REQUESTS"
    )
    rate_limit_sweep_probability: float = Field(
        default=0.01, validation_alias="RATE_LIMIT_SWEEP_PROBABILITY"
    )

    # Request validation settings
    max_body_bytes: int = Field(default=1024 * 1024, validation_alias="MAX_BODY_BYTES")
    trust_forwarded_for: bool = Field(
        default=True, validation_alias="TRUST_FORWARDED_FOR"
    )
    security_allowed_methods: List[str] = Field(
        default_factory=lambda: ["GET", "POST", "PUT", "DELETE", "PATCH", "OPTIONS", "HEAD"],
        validation_alias="SECURITY_ALLOWED_METHODS",
    )
    security_auth_required_methods: List[str] = Field(
        default_factory=lambda: ["POST", "PUT", "DELETE", "PATCH"],
        validation_alias="SECURITY_AUTH_REQUIRED_METHODS",
    )
    # Provide list settings as JSON arrays in env, e.g. '["203.0.113.7"]'
    security_denied_ips: List[str] = Field(
        default_factory=list, validation_alias="SECURITY_DENIED_IPS"
    )
    security_allowed_origins: List[str] = Field(
        default_factory=lambda: [
            "http://localhost:3000",
            "https://stockagent.com",
            "https://www.stockagent.com",
        ],
        validation_alias="SECURITY_ALLOWED_ORIGINS",
    )
    security_suspicious_user_agents: List[str] = Field(
        default_factory=lambda: list(DEFAULT_SUSPICIOUS_USER_AGENTS),
        validation_alias="SECURITY_SUSPICIOUS_USER_AGENTS",
    )
    security_api_prefix: str = Field(default="/api/", validation_alias="SECURITY_API_PREFIX")
    security_sensitive_prefixes: List[str] = Field(
        default_factory=lambda: ["/api/auth/", "/api/user/"],
        validation_alias="SECURITY_SENSITIVE_PREFIXES",
    )
    security_session_cookie_name: str = Field(
        default="next-auth.session-token", validation_alias="SECURITY_SESSION_COOKIE_NAME"
    )

    # Security headers settings
    security_xfo_value: str = Field(default="DENY", validation_alias="SECURITY_XFO_VALUE")
    security_referrer_policy_value: str = Field(
        default="strict-origin-when-cross-origin",
        validation_alias="SECURITY_REFERRER_POLICY_VALUE",
    )

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "ignore",
        "env_prefix": "",
        "populate_by_name": True,
    }


class SecurityPolicy(BaseModel):
    """Immutable security policy shared by every gate component."""

    model_config = ConfigDict(frozen=True)

    window_ms: int = 15 * 60 * 1000
    max_requests: int = 500
    max_body_bytes: int = 1024 * 1024
    sweep_probability: float = 0.01
    trust_forwarded_for: bool = True
    allowed_methods: FrozenSet[str] = frozenset(
        {"GET", "POST", "PUT", "DELETE", "PATCH", "OPTIONS", "HEAD"}
    )
    auth_required_methods: FrozenSet[str] = frozenset({"POST", "PUT", "DELETE", "PATCH"})
    denied_identities: FrozenSet[str] = frozenset()
    allowed_origins: Tuple[str, ...] = (
        "http://localhost:3000",
        "https://stockagent.com",
        "https://www.stockagent.com",
    )
    sql_injection_patterns: Tuple[str, ...] = DEFAULT_SQL_INJECTION_PATTERNS
    xss_patterns: Tuple[str, ...] = DEFAULT_XSS_PATTERNS
    malicious_patterns: Tuple[str, ...] = DEFAULT_MALICIOUS_PATTERNS
    suspicious_user_agents: Tuple[str, ...] = DEFAULT_SUSPICIOUS_USER_AGENTS
    api_prefix: str = "/api/"
    sensitive_path_prefixes: Tuple[str, ...] = ("/api/auth/", "/api/user/")
    session_cookie_name: str = "next-auth.session-token"
    frame_options: str = "DENY"
    referrer_policy: str = "strict-origin-when-cross-origin"
    cors_allow_methods: str = "GET, POST, PUT, DELETE, OPTIONS"
    cors_allow_headers: str = "Content-Type, Authorization"
    cors_max_age: int = 600

    @property
    def window_seconds(self) -> float:
        return self.window_ms / 1000.0

    @classmethod
    def from_settings(
        cls, settings: GateSettings, overrides: Optional[Dict[str, Any]] = None
    ) -> "SecurityPolicy":
        """Build a policy from settings, letting policy-file values win."""
        values: Dict[str, Any] = {
            "window_ms": settings.rate_limit_window_ms,
            "max_requests": settings.rate_limit_max_requests,
            "max_body_bytes": settings.max_body_bytes,
            "sweep_probability": settings.rate_limit_sweep_probability,
            "trust_forwarded_for": settings.trust_forwarded_for,
            "allowed_methods": frozenset(m.upper() for m in settings.security_allowed_methods),
            "auth_required_methods": frozenset(
                m.upper() for m in settings.security_auth_required_methods
            ),
            "denied_identities": frozenset(settings.security_denied_ips),
            "allowed_origins": tuple(o.rstrip("/") for o in settings.security_allowed_origins),
            "suspicious_user_agents": tuple(
                a.lower() for a in settings.security_suspicious_user_agents
            ),
            "api_prefix": settings.security_api_prefix,
            "sensitive_path_prefixes": tuple(settings.security_sensitive_prefixes),
            "session_cookie_name": settings.security_session_cookie_name,
            "frame_options": settings.security_xfo_value,
            "referrer_policy": settings.security_referrer_policy_value,
        }
        values.update(overrides or {})
        return cls(**values)


__all__ = [
    "DEFAULT_MALICIOUS_PATTERNS",
    "DEFAULT_SQL_INJECTION_PATTERNS",
    "DEFAULT_SUSPICIOUS_USER_AGENTS",
    "DEFAULT_XSS_PATTERNS",
    "GateSettings",
    "SecurityPolicy",
]
