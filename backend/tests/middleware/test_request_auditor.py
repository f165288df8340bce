"""Unit tests for RequestAuditor."""

import pytest

from stockgate.managers.config.config_models import SecurityPolicy
from stockgate.middleware.request_auditor import (
    BODY_TOO_LARGE_ISSUE,
    MALICIOUS_PATTERN_ISSUE,
    SQL_INJECTION_ISSUE,
    SUSPICIOUS_AGENT_ISSUE,
    XSS_ISSUE,
    RequestAuditor,
    parse_content_length,
)

BROWSER_UA = {"User-Agent": "Mozilla/5.0 (Macintosh; Intel Mac OS X 14_0)"}


@pytest.fixture
def auditor():
    return RequestAuditor.from_policy(SecurityPolicy())


class TestRequestAuditor:
    """Test cases for RequestAuditor."""

    def test_clean_request_is_safe(self, auditor):
        result = auditor.audit("http://testserver/api/portfolio?symbol=AAPL", BROWSER_UA)

        assert result.safe
        assert result.issues == []

    def test_sql_injection_in_query(self, auditor):
        result = auditor.audit("http://testserver/api/portfolio?q=' OR 1=1 --", BROWSER_UA)

        assert not result.safe
        assert SQL_INJECTION_ISSUE in result.issues

    def test_percent_encoded_sql_injection(self, auditor):
        result = auditor.audit(
            "http://testserver/api/portfolio?q=%27%20OR%201%3D1%20--", BROWSER_UA
        )

        assert SQL_INJECTION_ISSUE in result.issues

    @pytest.mark.parametrize(
        "query",
        [
            "<script>alert(1)</script>",
            "%3Cscript%3Ealert(1)%3C%2Fscript%3E",
            "javascript:alert(1)",
            "<img src=x onerror=alert(1)>",
            "<iframe src=//evil>",
            "<body onpageshow=alert(1)>",
            "<svg><animate onbegin=alert(1) attributeName=x>",
            "<div onpointerover=alert(1)>",
            "<marquee onstart=alert(1)>",
            "<input autofocus onfocusin=alert(1)>",
            "<div onwheel=alert(1)>",
            "<div onanimationstart=alert(1)>",
        ],
    )
    def test_xss_in_query(self, auditor, query):
        result = auditor.audit(f"http://testserver/api/search?q={query}", BROWSER_UA)

        assert XSS_ISSUE in result.issues

    def test_event_handler_rule_ignores_ordinary_words(self, auditor):
        result = auditor.audit(
            "http://testserver/api/search?region=london&period=month", BROWSER_UA
        )

        assert XSS_ISSUE not in result.issues

    @pytest.mark.parametrize(
        "path",
        ["/api/../etc/passwd", "/api/x?cb=eval(1)", "/api/x?c=document.cookie"],
    )
    def test_malicious_patterns(self, auditor, path):
        result = auditor.audit(f"http://testserver{path}", BROWSER_UA)

        assert MALICIOUS_PATTERN_ISSUE in result.issues

    @pytest.mark.parametrize("agent", ["sqlmap/1.7", "Mozilla/5.0 Nikto", "NMAP scripting engine"])
    def test_suspicious_user_agent(self, auditor, agent):
        result = auditor.audit("http://testserver/api/portfolio", {"user-agent": agent})

        assert result.issues == [SUSPICIOUS_AGENT_ISSUE]

    def test_missing_user_agent_is_not_suspicious(self, auditor):
        assert auditor.audit("http://testserver/api/portfolio", {}).safe

    def test_body_size_limit(self, auditor):
        limit = SecurityPolicy().max_body_bytes

        assert auditor.audit("http://testserver/api/x", BROWSER_UA, limit).safe
        result = auditor.audit("http://testserver/api/x", BROWSER_UA, limit + 1)
        assert result.issues == [BODY_TOO_LARGE_ISSUE]

    def test_multiple_issues_are_all_reported(self, auditor):
        result = auditor.audit(
            "http://testserver/api/x?a=' OR 1=1 --&b=<script>",
            {"User-Agent": "sqlmap"},
            10 * 1024 * 1024,
        )

        assert result.issues == [
            SQL_INJECTION_ISSUE,
            XSS_ISSUE,
            SUSPICIOUS_AGENT_ISSUE,
            BODY_TOO_LARGE_ISSUE,
        ]

    def test_audit_is_deterministic(self, auditor):
        url = "http://testserver/api/x?q=<script>"

        assert auditor.audit(url, BROWSER_UA) == auditor.audit(url, BROWSER_UA)

    def test_custom_patterns(self):
        auditor = RequestAuditor(
            sql_patterns=[], xss_patterns=[], malicious_patterns=[r"(?i)wp-admin"],
            suspicious_user_agents=[],
        )

        assert auditor.audit("http://testserver/wp-admin/", {}).issues == [
            MALICIOUS_PATTERN_ISSUE
        ]
        assert auditor.audit("http://testserver/?q=<script>", {}).safe


class TestParseContentLength:
    """Test cases for parse_content_length."""

    def test_reads_header(self):
        assert parse_content_length({"Content-Length": "42"}) == 42

    @pytest.mark.parametrize("headers", [{}, {"content-length": "abc"}])
    def test_missing_or_invalid(self, headers):
        assert parse_content_length(headers) is None
