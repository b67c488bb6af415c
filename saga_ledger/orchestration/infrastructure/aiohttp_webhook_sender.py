import logging
import typing

import aiohttp

from saga_ledger.orchestration.interfaces import IWebhookSender
from saga_ledger.seedwork.infrastructure.utils.json import dumps

__all__ = ('AiohttpWebhookSender',)


class AiohttpWebhookSender(IWebhookSender):
    """Posts webhook payloads as JSON.

    A shared ``client_session`` is used when given; otherwise every call
    opens and closes its own.
    """
    _timeout: aiohttp.ClientTimeout
    _client_session: aiohttp.ClientSession | None

    def __init__(self, timeout: float = 15, client_session: aiohttp.ClientSession | None = None):
        self._timeout = aiohttp.ClientTimeout(total=timeout)
        self._client_session = client_session
        self._logger = logging.getLogger(".".join((type(self).__module__, type(self).__name__)))

    async def post(self, url: str, body: dict) -> tuple[int, typing.Any]:
        if self._client_session is not None:
            return await self._post(self._client_session, url, body)
        async with aiohttp.ClientSession() as client_session:
            return await self._post(client_session, url, body)

    async def _post(self, client_session: aiohttp.ClientSession, url: str, body: dict) -> tuple[int, typing.Any]:
        async with client_session.post(
                url,
                data=dumps(body),
                headers={'Content-Type': 'application/json'},
                timeout=self._timeout
        ) as response:
            text = await response.text()
            self._logger.debug("POST %s -> %s", url, response.status)
            return response.status, text

    async def close(self) -> None:
        if self._client_session is not None:
            await self._client_session.close()
