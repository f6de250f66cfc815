"""Minimal document returned when conversion fails."""

OPENAPI_VERSION = "3.0.0"

BEARER_SCHEME = {
    "bearerAuth": {
        "type": "http",
        "scheme": "bearer",
        "bearerFormat": "JWT",
    }
}

DEFAULT_TITLE = "Dataverse OData API"


def _message(cause) -> str:
    try:
        text = str(cause)
    except Exception:
        text = ""
    if not text:
        text = type(cause).__name__
    return text


def fallback(base_url: str, cause: BaseException, title: str | None = None) -> dict:
    """Build a valid document whose only path reports the conversion error."""
    message = _message(cause)
    return {
        "openapi": OPENAPI_VERSION,
        "info": {
            "title": f"{title or DEFAULT_TITLE} (Fallback)",
            "version": "1.0.0",
            "description": "Basic API docs due to conversion error. Please check server logs.",
        },
        "servers": [{"url": base_url}],
        "paths": {
            "/error": {
                "get": {
                    "summary": "Conversion Error",
                    "description": f"Error during metadata conversion: {message}",
                    "operationId": "getConversionError",
                    "responses": {"500": {"description": "Conversion error"}},
                }
            }
        },
        "components": {
            "schemas": {},
            "securitySchemes": {name: dict(scheme) for name, scheme in BEARER_SCHEME.items()},
        },
        "security": [{"bearerAuth": []}],
    }
