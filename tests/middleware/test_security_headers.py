"""Test security headers middleware functionality."""

from __future__ import annotations

from fastapi import FastAPI
from fastapi.testclient import TestClient
from starlette.responses import Response

from keystone.middleware.security_headers import (
    DEFAULT_CSP,
    SecurityHeadersMiddleware,
    build_csp,
    setup_security_headers,
)

EXPECTED_HEADERS = [
    "Content-Security-Policy",
    "Cross-Origin-Opener-Policy",
    "Cross-Origin-Resource-Policy",
    "Origin-Agent-Cluster",
    "Referrer-Policy",
    "Strict-Transport-Security",
    "X-Content-Type-Options",
    "X-DNS-Prefetch-Control",
    "X-Download-Options",
    "X-Frame-Options",
    "X-Permitted-Cross-Domain-Policies",
    "X-XSS-Protection",
]


def create_test_app(**options: object) -> FastAPI:
    """Create a test FastAPI app with security headers middleware."""
    app = FastAPI()
    setup_security_headers(app, **options)

    @app.get("/test")
    async def test_endpoint() -> dict[str, str]:
        return {"message": "test"}

    return app


class TestSecurityHeadersMiddleware:
    """Test cases for security headers middleware."""

    def test_all_security_headers_present(self) -> None:
        """Test that all security headers are present in responses."""
        client = TestClient(create_test_app())

        response = client.get("/test")

        for header in EXPECTED_HEADERS:
            assert header in response.headers, header

    def test_content_security_policy(self) -> None:
        """Test the policy keeps sources same-origin with image exceptions."""
        client = TestClient(create_test_app())

        csp = client.get("/test").headers["Content-Security-Policy"]
        directives = {
            part.split()[0]: part.split()[1:] for part in csp.split("; ")
        }

        assert directives["default-src"] == ["'self'"]
        assert directives["script-src"] == ["'self'"]
        assert directives["style-src"][0] == "'self'"
        assert directives["img-src"] == ["'self'", "data:", "https:"]
        assert directives["object-src"] == ["'none'"]

    def test_security_header_values(self) -> None:
        """Test that security headers have correct values."""
        client = TestClient(create_test_app())

        response = client.get("/test")

        assert response.headers["X-Content-Type-Options"] == "nosniff"
        assert response.headers["X-Frame-Options"] == "SAMEORIGIN"
        assert response.headers["Referrer-Policy"] == "no-referrer"
        assert response.headers["X-XSS-Protection"] == "0"
        assert (
            response.headers["Strict-Transport-Security"]
            == "max-age=15552000; includeSubDomains"
        )

    def test_custom_policy(self) -> None:
        """Test a custom CSP and HSTS age can be configured."""
        client = TestClient(
            create_test_app(csp_policy="default-src 'none'", hsts_max_age=60)
        )

        response = client.get("/test")

        assert response.headers["Content-Security-Policy"] == "default-src 'none'"
        assert response.headers["Strict-Transport-Security"].startswith("max-age=60;")

    def test_headers_on_not_found(self) -> None:
        """Test headers are added to error responses too."""
        client = TestClient(create_test_app())

        response = client.get("/missing")

        assert response.status_code == 404
        assert response.headers["Content-Security-Policy"] == DEFAULT_CSP

    def test_static_helper_on_plain_response(self) -> None:
        """Test the helper used by handlers outside the middleware."""
        response = Response("body")

        SecurityHeadersMiddleware.add_security_headers_to_response(response)

        assert response.headers["X-Content-Type-Options"] == "nosniff"
        assert response.headers["Content-Security-Policy"] == DEFAULT_CSP


class TestBuildCsp:
    """Test CSP serialization."""

    def test_valueless_directive(self) -> None:
        """Test directives without sources serialize to their name."""
        csp = build_csp({"default-src": ("'self'",), "upgrade-insecure-requests": ()})

        assert csp == "default-src 'self'; upgrade-insecure-requests"
