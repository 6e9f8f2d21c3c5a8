"""HTTP plumbing shared by the vendor adapters.

Every failure is raised with the vendor tag embedded so the UI can attribute it:
network problems and non-2xx statuses become TransportError, bodies that are
not JSON or do not match the expected wire schema become ProtocolError.
"""

import json
import logging
from typing import Any, TypeVar

import httpx
from pydantic import BaseModel, ValidationError

from app.core.config import settings
from app.core.errors import ConfigurationError, ProtocolError, TransportError

logger = logging.getLogger(__name__)

WireModel = TypeVar("WireModel", bound=BaseModel)


def http_client() -> httpx.AsyncClient:
    return httpx.AsyncClient(timeout=settings.request_timeout)


def resolve_host(user_host: str, env_host: str, default_host: str) -> str:
    """User-entered host, then the deployment's host, then the vendor default."""
    return (user_host or "").strip() or (env_host or "").strip() or default_host


def fixup_host(host: str, api_path: str) -> str:
    host = host.strip()
    if "://" not in host:
        host = f"https://{host}"
    if host.endswith("/") and api_path.startswith("/"):
        host = host[:-1]
    if api_path.startswith("/v1") and host.endswith("/v1"):
        host = host[: -len("/v1")]

    try:
        parsed = httpx.URL(host)
    except httpx.InvalidURL as e:
        raise ConfigurationError(f"Malformed host URL '{host}': {e}") from e
    if not parsed.host:
        raise ConfigurationError(f"Malformed host URL '{host}'")
    return host


async def _request(
    method: str, url: str, headers: dict[str, str], body: Any, vendor: str
) -> httpx.Response:
    path = httpx.URL(url).path
    logger.debug(f"{vendor}: {method} {url}")
    try:
        async with http_client() as client:
            resp = await client.request(method, url, headers=headers, json=body)
    except httpx.HTTPError as e:
        raise TransportError(vendor, f"network error: {e}", path) from e

    if resp.is_error:
        raise TransportError(
            vendor,
            f"{resp.status_code} {resp.reason_phrase}: {resp.text[:256]}",
            path,
            status_code=resp.status_code,
        )
    return resp


async def fetch_json(
    url: str, method: str, headers: dict[str, str], body: Any, vendor: str
) -> Any:
    resp = await _request(method, url, headers, body, vendor)
    try:
        return resp.json()
    except ValueError as e:
        raise ProtocolError(vendor, f"response is not JSON: {e}", resp.url.path, resp.text[:256]) from e


async def fetch_text(
    url: str, method: str, headers: dict[str, str], body: Any, vendor: str
) -> str:
    resp = await _request(method, url, headers, body, vendor)
    return resp.text


def parse_ndjson(text: str, vendor: str, path: str = "") -> list[dict[str, Any]]:
    """Decode a body made of JSON objects separated by newlines."""
    records = []
    for line in text.strip().splitlines():
        if not line.strip():
            continue
        try:
            record = json.loads(line)
        except json.JSONDecodeError as e:
            raise ProtocolError(vendor, f"bad status line: {e}", path, line[:256]) from e
        if not isinstance(record, dict):
            raise ProtocolError(vendor, "status line is not an object", path, record)
        records.append(record)
    return records


def validate_wire(schema: type[WireModel], payload: Any, vendor: str, path: str = "") -> WireModel:
    try:
        return schema.model_validate(payload)
    except ValidationError as e:
        raise ProtocolError(
            vendor, f"unexpected response ({e.error_count()} schema errors)", path, payload
        ) from e
