"""HTTP download adapter."""

from __future__ import annotations

import logging
import os
import tempfile
from pathlib import Path
from typing import Optional

import httpx

from .base import AdapterResult, PathLike

logger = logging.getLogger(__name__)


class HttpFetcher:
    """Download files with ``httpx``.

    Content is streamed into a temporary file next to the destination and
    renamed into place, so an interrupted transfer never leaves a partial
    file at the destination.
    """

    def __init__(
        self, timeout: float = 60.0, client: Optional[httpx.AsyncClient] = None
    ) -> None:
        self._timeout = timeout
        self._client = client

    async def download(self, url: str, destination: PathLike) -> AdapterResult:
        target = Path(destination)
        target.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(prefix=f".{target.name}.", dir=target.parent)
        logger.info(f"Downloading {url} -> {target}")
        try:
            with os.fdopen(fd, "wb") as handle:
                client = self._client or httpx.AsyncClient(
                    timeout=self._timeout, follow_redirects=True
                )
                try:
                    async with client.stream("GET", url) as response:
                        response.raise_for_status()
                        async for chunk in response.aiter_bytes():
                            handle.write(chunk)
                finally:
                    if self._client is None:
                        await client.aclose()
            os.replace(tmp_name, target)
        except httpx.HTTPStatusError as exc:
            os.unlink(tmp_name)
            return AdapterResult.failed(
                str(exc), exit_info=f"HTTP {exc.response.status_code}"
            )
        except (httpx.HTTPError, OSError) as exc:
            if os.path.exists(tmp_name):
                os.unlink(tmp_name)
            return AdapterResult.failed(str(exc), exit_info=type(exc).__name__)
        except BaseException:
            if os.path.exists(tmp_name):
                os.unlink(tmp_name)
            raise
        return AdapterResult.ok(stdout=str(target))
