from __future__ import annotations

import json
import logging
from typing import Any

import httpx
from azure.core.exceptions import ClientAuthenticationError
from azure.identity import DefaultAzureCredential

from .config import DriverConfig
from .errors import ConfigurationError, MissingScopeKeyError
from .models import RESOURCE_GROUP_OPTION, Scope

SUBSCRIPTION_ID_KEY = "subscriptionId"
RESOURCE_GROUP_KEY = RESOURCE_GROUP_OPTION

logger = logging.getLogger(__name__)


def resolve_scope(config: DriverConfig, *, http_client: httpx.Client | None = None) -> Scope:
    """Resolve the subscription and resource group this process operates in.

    The instance metadata endpoint returns a flat JSON object of strings. Both
    ``subscriptionId`` and ``resourceGroupName`` must be present.
    """
    metadata = fetch_instance_metadata(config, http_client=http_client)

    subscription_id = metadata.get(SUBSCRIPTION_ID_KEY, "").strip()
    if not subscription_id:
        raise MissingScopeKeyError(SUBSCRIPTION_ID_KEY)
    resource_group = metadata.get(RESOURCE_GROUP_KEY, "").strip()
    if not resource_group:
        raise MissingScopeKeyError(RESOURCE_GROUP_KEY)

    scope = Scope(subscription_id=subscription_id, resource_group=resource_group)
    logger.info("Resolved Azure scope subscription=%s resource_group=%s", scope.subscription_id, scope.resource_group)
    return scope


def fetch_instance_metadata(config: DriverConfig, *, http_client: httpx.Client | None = None) -> dict[str, str]:
    owns_client = http_client is None
    client = http_client or httpx.Client(timeout=config.metadata_timeout_seconds)
    try:
        response = client.get(
            config.metadata_url,
            headers={"Metadata": "True"},
            params={"format": "json", "api-version": config.metadata_api_version},
            timeout=config.metadata_timeout_seconds,
        )
    except httpx.HTTPError as error:
        raise ConfigurationError(f"Error querying Azure metadata: {_error_message(error)}") from error
    finally:
        if owns_client:
            client.close()

    if response.status_code != 200:
        raise ConfigurationError(
            f"Error querying Azure metadata: code {response.status_code} returned for url {response.url}"
        )
    if not response.content:
        raise ConfigurationError("Error querying Azure metadata: empty response")

    try:
        parsed: Any = json.loads(response.content)
    except ValueError as error:
        raise ConfigurationError(f"Error parsing Azure metadata: {_error_message(error)}") from error

    return _as_string_map(parsed)


def build_credential() -> DefaultAzureCredential:
    try:
        return DefaultAzureCredential()
    except (ClientAuthenticationError, ValueError) as error:
        raise ConfigurationError(f"Unable to build Azure credential from environment: {_error_message(error)}") from error


def _as_string_map(parsed: Any) -> dict[str, str]:
    if not isinstance(parsed, dict):
        raise ConfigurationError("Error parsing Azure metadata: expected a JSON object")
    metadata: dict[str, str] = {}
    for key, value in parsed.items():
        # Nested sections are not part of the flat compute map.
        if isinstance(value, (dict, list)):
            raise ConfigurationError(f"Error parsing Azure metadata: value for '{key}' is not a string")
        metadata[str(key)] = "" if value is None else str(value)
    return metadata


def _error_message(error: Exception) -> str:
    message = str(error).strip()
    return message or error.__class__.__name__
