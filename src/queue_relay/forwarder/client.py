import ssl
from typing import Optional
from urllib.parse import urlparse

import aiohttp
from loguru import logger

from queue_relay.common.models import ForwardAttempt, ForwardOutcome


class WebhookForwarder:
    def __init__(
        self,
        target_url: str,
        auth_token: Optional[str] = None,
        ssl_context: Optional[ssl.SSLContext] = None,
        timeout: Optional[float] = None,
    ):
        self.target_url = target_url
        self.auth_token = auth_token
        self.ssl_context = ssl_context
        self.timeout = timeout
        self._session: Optional[aiohttp.ClientSession] = None

        parsed_url = urlparse(target_url)
        self.target_label = f"{parsed_url.netloc}{parsed_url.path}"

    def build_attempt(self, body: bytes) -> ForwardAttempt:
        return ForwardAttempt(url=self.target_url, body=body, auth_token=self.auth_token)

    async def _get_session(self) -> aiohttp.ClientSession:
        # One session for the process lifetime so connections are pooled
        if self._session is None or self._session.closed:
            session_kwargs = {}
            if self.timeout is not None:
                session_kwargs["timeout"] = aiohttp.ClientTimeout(total=self.timeout)
            connector = aiohttp.TCPConnector(ssl=self.ssl_context)
            self._session = aiohttp.ClientSession(connector=connector, **session_kwargs)
        return self._session

    async def forward(self, attempt: ForwardAttempt) -> ForwardOutcome:
        """POST the attempt's body to its URL.

        Only a 200 response counts as forwarded. Failures are logged and
        reported as ``ForwardOutcome.ERROR``; they never raise.
        """
        try:
            session = await self._get_session()
            async with session.post(
                attempt.url,
                data=attempt.body,
                headers=attempt.headers(),
            ) as response:
                if response.status != 200:
                    response_text = await response.text(errors="replace")
                    logger.error(
                        f"Error POST to {attempt.url} returned status code: "
                        f"{response.status}: {response_text[:200]}"
                    )
                    return ForwardOutcome.ERROR

                logger.debug(f"Event forwarded to {self.target_label}")
                return ForwardOutcome.FORWARDED
        except Exception as e:
            logger.error(f"Error posting to webhook {attempt.url}: {e!r}")
            return ForwardOutcome.ERROR

    async def close(self) -> None:
        if self._session is not None and not self._session.closed:
            await self._session.close()
        self._session = None
