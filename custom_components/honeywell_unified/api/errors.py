"""Error taxonomy shared by both Honeywell vendor clients."""

from __future__ import annotations

import asyncio
import functools
import logging

import aiohttp

_LOGGER = logging.getLogger(__name__)


class HoneywellError(Exception):
    """Honeywell general error class."""


class AuthError(HoneywellError):
    """Credentials or session rejected by the vendor."""


class RateLimited(HoneywellError):
    """Vendor is throttling us, back off."""


class NetworkError(HoneywellError):
    """Transport failure or timeout."""


class ServiceUnavailable(NetworkError):
    """Vendor returned a 5xx response."""


class ParseError(HoneywellError):
    """Vendor responded with an unexpected payload."""


class DeviceNotFound(HoneywellError):
    """Device is missing from the vendor enumeration."""


class ConfigError(HoneywellError):
    """Required configuration is missing or invalid."""


class AccountNotFound(HoneywellError):
    """Account is not present in the credential store."""


class CommandRejected(HoneywellError):
    """Vendor refused a control change."""


def convert_errors(fn):
    """Decorator to convert aiohttp errors to our exceptions."""

    @functools.wraps(fn)
    async def wrapper(*args, **kwargs):
        try:
            return await fn(*args, **kwargs)
        except asyncio.TimeoutError as ex:
            _LOGGER.error("Connection timeout: %s", ex)
            raise NetworkError("Connection timeout") from ex
        except aiohttp.ClientError as ex:
            _LOGGER.error("Connection error: %s", ex)
            raise NetworkError(f"Connection error: {ex}") from ex

    return wrapper


def raise_for_status(status: int, request: str) -> None:
    """Map a non-200 HTTP status to the error taxonomy."""
    if status == 200:
        return
    if status in (401, 403):
        raise AuthError(f"{status} Error ({request})")
    if status == 429:
        raise RateLimited(f"Rate limited ({request})")
    if status >= 500:
        raise ServiceUnavailable(f"Service Unavailable {status}")
    raise HoneywellError(f"API returned {status}, {request}")
