"""Minimal GraphQL-over-HTTP helper for the Morpho API."""

from typing import Any, Dict, Optional

import requests

from utils.config import Config
from utils.logging import get_logger

logger = get_logger("utils.http")


class GraphQLError(Exception):
    """Raised when a GraphQL request fails at the transport or query level."""


def graphql_request(
    url: str,
    query: str,
    variables: Optional[Dict[str, Any]] = None,
    timeout: int | None = None,
) -> Dict[str, Any]:
    """POST a GraphQL query and return its ``data`` payload.

    Raises GraphQLError on connection failures, non-200 responses, invalid JSON
    and responses carrying an ``errors`` list.
    """
    if timeout is None:
        timeout = Config.get_request_timeout()
    json_data = {"query": query, "variables": variables or {}}
    try:
        resp = requests.post(url, json=json_data, timeout=timeout)
    except requests.RequestException as e:
        logger.error("Request failed for %s: %s", url, e)
        raise GraphQLError(f"Request failed for {url}: {e}") from e

    if resp.status_code != 200:
        logger.error("HTTP %s for %s: %s", resp.status_code, url, resp.text[:200])
        raise GraphQLError(f"HTTP {resp.status_code} for {url}")

    try:
        payload = resp.json()
    except ValueError as e:
        raise GraphQLError(f"Invalid JSON from {url}") from e

    errors = payload.get("errors")
    if errors:
        messages = ", ".join(error.get("message", "Unknown GraphQL error") for error in errors)
        raise GraphQLError(f"GraphQL Error: {messages}")

    return payload.get("data") or {}
