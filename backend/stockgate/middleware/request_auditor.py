"""
Attack-signature audit for incoming requests.

The audit is a best-effort perimeter check: regular expressions over the
decoded URL and a substring match over the user agent. Handlers still have to
use parameterized queries and encode their output. Any triggered rule fails
the request; signals are not weighted.
"""

import re
from dataclasses import dataclass, field
from typing import Iterable, List, Mapping, Optional, Pattern
from urllib.parse import unquote_plus

from stockgate.managers.config.config_models import (
    DEFAULT_MALICIOUS_PATTERNS,
    DEFAULT_SQL_INJECTION_PATTERNS,
    DEFAULT_SUSPICIOUS_USER_AGENTS,
    DEFAULT_XSS_PATTERNS,
    SecurityPolicy,
)

SQL_INJECTION_ISSUE = "Potential SQL injection in URL"
XSS_ISSUE = "Potential XSS in URL"
MALICIOUS_PATTERN_ISSUE = "Malicious request pattern detected"
SUSPICIOUS_AGENT_ISSUE = "Suspicious user agent detected"
BODY_TOO_LARGE_ISSUE = "Request body too large"


@dataclass
class AuditResult:
    safe: bool
    issues: List[str] = field(default_factory=list)


def _compile(patterns: Iterable[str]) -> List[Pattern]:
    return [re.compile(p) for p in patterns]


def _matches_any(patterns: List[Pattern], text: str) -> bool:
    return any(p.search(text) for p in patterns)


class RequestAuditor:
    """Runs every audit rule against a request and collects one issue per rule."""

    def __init__(
        self,
        sql_patterns: Iterable[str] = DEFAULT_SQL_INJECTION_PATTERNS,
        xss_patterns: Iterable[str] = DEFAULT_XSS_PATTERNS,
        malicious_patterns: Iterable[str] = DEFAULT_MALICIOUS_PATTERNS,
        suspicious_user_agents: Iterable[str] = DEFAULT_SUSPICIOUS_USER_AGENTS,
        max_body_bytes: int = 1024 * 1024,
    ):
        self._sql = _compile(sql_patterns)
        self._xss = _compile(xss_patterns)
        self._malicious = _compile(malicious_patterns)
        self._agents = tuple(a.lower() for a in suspicious_user_agents)
        self.max_body_bytes = max_body_bytes

    @classmethod
    def from_policy(cls, policy: SecurityPolicy) -> "RequestAuditor":
        return cls(
            sql_patterns=policy.sql_injection_patterns,
            xss_patterns=policy.xss_patterns,
            malicious_patterns=policy.malicious_patterns,
            suspicious_user_agents=policy.suspicious_user_agents,
            max_body_bytes=policy.max_body_bytes,
        )

    def contains_sql_injection(self, text: str) -> bool:
        return _matches_any(self._sql, text)

    def contains_xss(self, text: str) -> bool:
        return _matches_any(self._xss, text)

    def contains_malicious_pattern(self, text: str) -> bool:
        return _matches_any(self._malicious, text)

    def is_suspicious_agent(self, user_agent: str) -> bool:
        agent = user_agent.lower()
        return any(a in agent for a in self._agents)

    def audit(
        self,
        url: str,
        headers: Mapping[str, str],
        body_length: Optional[int] = None,
    ) -> AuditResult:
        """Audit a request URL, its headers and declared body size.

        Args:
            url: Full request URL; percent-encoding is decoded before matching.
            headers: Request headers, any key casing.
            body_length: Declared body size in bytes, or None when unknown.

        Returns:
            AuditResult with ``safe=False`` and one issue per triggered rule.
        """
        issues: List[str] = []
        decoded = unquote_plus(url)
        lowered = {k.lower(): v for k, v in headers.items()}

        if self.contains_sql_injection(decoded):
            issues.append(SQL_INJECTION_ISSUE)

        if self.contains_xss(decoded):
            issues.append(XSS_ISSUE)

        if self.contains_malicious_pattern(decoded):
            issues.append(MALICIOUS_PATTERN_ISSUE)

        if self.is_suspicious_agent(lowered.get("user-agent", "")):
            issues.append(SUSPICIOUS_AGENT_ISSUE)

        if body_length is not None and body_length > self.max_body_bytes:
            issues.append(BODY_TOO_LARGE_ISSUE)

        return AuditResult(safe=not issues, issues=issues)


def parse_content_length(headers: Mapping[str, str]) -> Optional[int]:
    """Read Content-Length, ignoring missing or unparsable values."""
    for key, value in headers.items():
        if key.lower() == "content-length":
            try:
                return int(value)
            except (TypeError, ValueError):
                return None
    return None
