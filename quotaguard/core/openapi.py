"""OpenAPI metadata and customization utilities.

Enriches the generated OpenAPI schema with:
- Tags metadata
- API Key security scheme (``X-API-Key``) applied to admin operations only
- The 429 response shared by every rate limited operation

This keeps documentation concerns decoupled from the app factory.
"""

from __future__ import annotations

from typing import Any, Dict

from fastapi import FastAPI

_TAGS = [
    {"name": "Quota", "description": "Consume quota on behalf of the calling identity."},
    {"name": "Admin", "description": "Reset, cleanup and inspect quota entries."},
    {"name": "Health", "description": "Liveness checks."},
]

_RATE_LIMITED_RESPONSE = {
    "description": "Quota exhausted (code RATE_LIMIT_EXCEEDED). See Retry-After.",
    "headers": {
        "Retry-After": {"schema": {"type": "integer"}},
        "X-RateLimit-Limit": {"schema": {"type": "integer"}},
        "X-RateLimit-Remaining": {"schema": {"type": "integer"}},
        "X-RateLimit-Reset": {"schema": {"type": "string", "format": "date-time"}},
    },
}


def apply_openapi_customizations(app: FastAPI) -> None:
    """Patch FastAPI's OpenAPI generation to add metadata and security."""

    original_openapi = app.openapi

    def custom_openapi() -> Dict[str, Any]:
        schema = original_openapi()

        components = schema.setdefault("components", {})
        security_schemes = components.setdefault("securitySchemes", {})
        security_schemes.setdefault(
            "AdminApiKey",
            {
                "type": "apiKey",
                "in": "header",
                "name": "X-API-Key",
                "description": "Admin API key for /admin endpoints.",
            },
        )

        tags = schema.setdefault("tags", [])
        existing_tag_names = {t.get("name") for t in tags}
        for tag in _TAGS:
            if tag["name"] not in existing_tag_names:
                tags.append(tag)

        for path, methods in schema.get("paths", {}).items():
            for method_obj in methods.values():
                if not isinstance(method_obj, dict):
                    continue
                if path.startswith("/admin/"):
                    method_obj["security"] = [{"AdminApiKey": []}]
                if "/rate-limits/" in path and path.endswith("/consume"):
                    method_obj.setdefault("responses", {})["429"] = _RATE_LIMITED_RESPONSE

        return schema

    app.openapi = custom_openapi  # type: ignore[assignment]
