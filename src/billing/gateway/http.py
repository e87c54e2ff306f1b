"""Helpers shared by the HTTP-backed adapters."""

import httpx

from billing.gateway.port import GatewayUnavailable


def json_or_text(response: httpx.Response) -> dict:
    """Response body as a dict, tagged with the HTTP status."""
    try:
        body = response.json()
    except ValueError:
        return {"http_status": response.status_code, "body": response.text}
    if isinstance(body, dict):
        return {"http_status": response.status_code, **body}
    return {"http_status": response.status_code, "body": body}


def fetch_token(client: httpx.Client, provider: str, default_ttl: int, **request) -> tuple[str, int]:
    """POST to an OAuth token endpoint and return ``(access_token, expires_in)``.

    Transport errors, HTTP errors and bodies without an ``access_token`` all
    raise GatewayUnavailable.
    """
    try:
        response = client.post(**request)
    except httpx.HTTPError as exc:
        raise GatewayUnavailable(f"{provider} token request failed: {exc}") from exc

    if response.is_error:
        raise GatewayUnavailable(f"{provider} token request failed with HTTP {response.status_code}")

    try:
        body = response.json()
    except ValueError as exc:
        raise GatewayUnavailable(f"{provider} token response is not JSON") from exc

    token = body.get("access_token") if isinstance(body, dict) else None
    if not token:
        raise GatewayUnavailable(f"{provider} token response has no access_token")

    try:
        expires_in = int(body.get("expires_in", default_ttl))
    except (TypeError, ValueError):
        expires_in = default_ttl
    return token, expires_in
