"""Resilient fetch: HTTP retrieval with ordered proxy fallback for restricted hosts."""

from __future__ import annotations

import os
import tempfile
from pathlib import Path
from typing import Any
from urllib.parse import quote, urlparse

import httpx
from loguru import logger

from lingoworker.config.schema import FetchConfig
from lingoworker.utils.exceptions import TransportFailure


def _host_matches(host: str, domain: str) -> bool:
    host = host.lower()
    domain = domain.lower()
    return host == domain or host.endswith("." + domain)


def _hostname(url: str) -> str:
    try:
        return (urlparse(url).hostname or "").lower()
    except ValueError:
        return ""


class ResilientFetcher:
    """
    Fetch resources, rerouting restricted origins through proxy templates.

    Candidates are tried strictly in order; an error status or transport fault
    skips to the next one. When every candidate fails the direct route is
    attempted once more so an unblocked origin still works.
    """

    def __init__(self, settings: FetchConfig | None = None, client: httpx.AsyncClient | None = None):
        self.settings = settings or FetchConfig()
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            timeout=self.settings.timeout,
            follow_redirects=True,
            headers={"User-Agent": self.settings.user_agent},
        )
        self._safe_hosts = [h.lower() for h in self.settings.mirror_hosts]
        self._safe_hosts.extend(_hostname(c) for c in self.settings.proxy_candidates if _hostname(c))

    @property
    def proxy_candidates(self) -> tuple[str, ...]:
        return tuple(self.settings.proxy_candidates)

    def needs_proxy(self, url: str) -> bool:
        host = _hostname(url)
        if not host:
            return False
        if not any(_host_matches(host, r) for r in self.settings.restricted_hosts):
            return False
        lowered = url.lower()
        return not any(safe in lowered for safe in self._safe_hosts)

    def proxied_url(self, candidate: str, url: str) -> str:
        return candidate + quote(url, safe="")

    async def _get(
        self,
        url: str,
        *,
        stream: bool,
        follow_redirects: bool | None = None,
        **kwargs: Any,
    ) -> httpx.Response:
        request = self._client.build_request("GET", url, **kwargs)
        if follow_redirects is None:
            return await self._client.send(request, stream=stream)
        return await self._client.send(request, stream=stream, follow_redirects=follow_redirects)

    async def fetch(self, url: str, *, stream: bool = False, **kwargs: Any) -> httpx.Response:
        """
        GET ``url``, returning the first successful route's response.

        With ``stream=True`` the body is left unread; the caller must consume
        it and ``aclose()`` the response.
        """
        if not self.needs_proxy(url):
            return await self._get(url, stream=stream, **kwargs)

        attempts: list[str] = []
        proxy_kwargs = {"follow_redirects": True, **kwargs}
        for candidate in self.settings.proxy_candidates:
            proxy_url = self.proxied_url(candidate, url)
            attempts.append(proxy_url)
            try:
                response = await self._get(proxy_url, stream=stream, **proxy_kwargs)
            except httpx.TransportError as e:
                logger.debug("Proxy {} failed for {}: {}", candidate, url, e)
                continue
            if response.is_success:
                logger.debug("Fetched {} via {}", url, candidate)
                return response
            logger.debug("Proxy {} returned {} for {}", candidate, response.status_code, url)
            await response.aclose()

        attempts.append(url)
        logger.info("All proxies failed for {}, trying direct", url)
        try:
            return await self._get(url, stream=stream, **kwargs)
        except httpx.TransportError as e:
            raise TransportFailure(url, attempts, str(e)) from e

    async def download(self, url: str, dest: Path) -> Path:
        """Stream ``url`` into ``dest`` atomically; existing files are kept."""
        dest = Path(dest)
        if dest.exists():
            return dest
        response = await self.fetch(url, stream=True)
        try:
            if not response.is_success:
                raise TransportFailure(url, [url], f"HTTP {response.status_code}")
            dest.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp = tempfile.mkstemp(dir=dest.parent, prefix=f".{dest.name}.", suffix=".part")
            size = 0
            try:
                with os.fdopen(fd, "wb") as f:
                    async for chunk in response.aiter_bytes():
                        f.write(chunk)
                        size += len(chunk)
                os.replace(tmp, dest)
            except BaseException:
                Path(tmp).unlink(missing_ok=True)
                raise
        finally:
            await response.aclose()
        logger.info("Downloaded {} ({} bytes)", dest.name, size)
        return dest

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def __aenter__(self) -> ResilientFetcher:
        return self

    async def __aexit__(self, *exc: Any) -> None:
        await self.aclose()
