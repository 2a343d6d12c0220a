"""Bounded HTTP fetches shared by all source adapters."""

from __future__ import annotations

import logging

import httpx

from feedline.errors import FetchError, ParseError

logger = logging.getLogger(__name__)

_ERROR_BODY_CHARS = 240


def _get(url: str, *, timeout: float, user_agent: str, headers=None, params=None) -> httpx.Response:
    request_headers = {"User-Agent": user_agent}
    if headers:
        request_headers.update(headers)
    try:
        response = httpx.get(
            url,
            params=params,
            headers=request_headers,
            timeout=timeout,
            follow_redirects=True,
        )
        response.raise_for_status()
    except httpx.TimeoutException:
        raise FetchError(url, f"timed out after {timeout:g}s") from None
    except httpx.HTTPStatusError as exc:
        body = exc.response.text[:_ERROR_BODY_CHARS].strip()
        message = f"HTTP {exc.response.status_code}"
        if body:
            message = f"{message}: {body}"
        raise FetchError(url, message) from None
    except httpx.HTTPError as exc:
        raise FetchError(url, f"{type(exc).__name__}: {exc}") from None
    return response


def fetch_text(url: str, *, timeout: float, user_agent: str, headers=None, params=None) -> str:
    """GET *url* and return the body text. Raises FetchError on any failure."""
    response = _get(url, timeout=timeout, user_agent=user_agent, headers=headers, params=params)
    logger.debug("Fetched %s (%d bytes)", url, len(response.content))
    return response.text


def fetch_json(url: str, *, timeout: float, user_agent: str, headers=None, params=None):
    """GET *url* and decode JSON. Raises FetchError or ParseError."""
    response = _get(url, timeout=timeout, user_agent=user_agent, headers=headers, params=params)
    try:
        return response.json()
    except ValueError as exc:
        raise ParseError(f"invalid JSON from {url}: {exc}") from exc
