# sequencer/clients/gateway.py
from typing import Optional

import httpx
import structlog

from sequencer.clients.http import request_with_retry, retry_budget
from sequencer.core.capabilities import Gateway
from sequencer.core.errors import GatewayError

DEFAULT_GATEWAY_URL = "https://arweave.net"


class HttpLedgerGateway(Gateway):
    """Reads network info (`GET /info`) from a ledger gateway."""

    def __init__(
        self,
        url: str = DEFAULT_GATEWAY_URL,
        timeout: float = 30.0,
        max_attempts: int = 3,
        client: Optional[httpx.AsyncClient] = None,
        logger=None,
    ):
        self.url = url.rstrip("/")
        self.timeout = timeout
        self.max_attempts = max_attempts
        self._client = client
        self.logger = logger or structlog.get_logger()

    async def _get_info(self, client: httpx.AsyncClient) -> httpx.Response:
        response, _ = await request_with_retry(
            client, "GET", f"{self.url}/info",
            max_attempts=self.max_attempts,
            timeout=self.timeout,
        )
        return response

    def budget(self) -> float:
        """Longest time one `height` call can take, retries and sleeps included."""
        return retry_budget(self.max_attempts, self.timeout)

    async def height(self) -> int:
        try:
            if self._client is not None:
                response = await self._get_info(self._client)
            else:
                async with httpx.AsyncClient() as client:
                    response = await self._get_info(client)
        except httpx.HTTPError as e:
            raise GatewayError(f"Ledger gateway {self.url} unreachable: {e}") from e

        if response.is_error:
            raise GatewayError(
                f"Ledger gateway {self.url} answered {response.status_code}",
                meta={"status_code": response.status_code},
            )
        try:
            info = response.json()
            height = int(info["height"])
        except (ValueError, KeyError, TypeError) as e:
            raise GatewayError(f"Malformed network info from {self.url}: {e}") from e
        if height < 0:
            raise GatewayError(f"Negative height {height} from {self.url}")
        return height
