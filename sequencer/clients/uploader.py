# sequencer/clients/uploader.py
import time
from typing import Optional

import httpx
import structlog

from sequencer.clients.http import DEFAULT_BASE_BACKOFF, DEFAULT_MAX_BACKOFF, request_with_retry, retry_budget
from sequencer.core.capabilities import Uploader
from sequencer.core.errors import UploadError
from sequencer.core.types import Receipt
from sequencer.crypto.hashing import content_hash

DEFAULT_UPLOAD_URL = "https://node2.irys.xyz"


class HttpUploader(Uploader):
    """
    Posts bundle binaries to `{endpoint}/tx`.

    Each request carries `Idempotency-Key: <content hash of binary>`, and
    retries after timeouts or transient statuses resend the same key, so an
    upload that succeeded remotely but looked failed locally is not duplicated.
    A 409 carrying an `id` means the endpoint already holds the bundle.
    """

    def __init__(
        self,
        endpoint: str = DEFAULT_UPLOAD_URL,
        timeout: float = 30.0,
        max_attempts: int = 5,
        base_backoff: float = DEFAULT_BASE_BACKOFF,
        max_backoff: float = DEFAULT_MAX_BACKOFF,
        client: Optional[httpx.AsyncClient] = None,
        logger=None,
    ):
        self.endpoint = endpoint.rstrip("/")
        self.timeout = timeout
        self.max_attempts = max_attempts
        self.base_backoff = base_backoff
        self.max_backoff = max_backoff
        self._client = client
        self.logger = logger or structlog.get_logger()

    async def _post(self, client: httpx.AsyncClient, binary: bytes, key: str):
        return await request_with_retry(
            client, "POST", f"{self.endpoint}/tx",
            max_attempts=self.max_attempts,
            base_backoff=self.base_backoff,
            max_backoff=self.max_backoff,
            content=binary,
            headers={
                "Content-Type": "application/octet-stream",
                "Idempotency-Key": key,
            },
            timeout=self.timeout,
        )

    def budget(self) -> float:
        """Longest time one `upload` call can take, retries and sleeps included."""
        return retry_budget(self.max_attempts, self.timeout, self.base_backoff, self.max_backoff)

    async def upload(self, binary: bytes) -> Receipt:
        key = content_hash(binary)
        try:
            if self._client is not None:
                response, attempts = await self._post(self._client, binary, key)
            else:
                async with httpx.AsyncClient() as client:
                    response, attempts = await self._post(client, binary, key)
        except httpx.HTTPError as e:
            raise UploadError(
                f"Upload to {self.endpoint} failed: {e}",
                meta={"bundle_reference": key},
            ) from e

        if response.is_error and response.status_code != 409:
            raise UploadError(
                f"Upload rejected by {self.endpoint} with status {response.status_code}",
                meta={"bundle_reference": key, "status_code": response.status_code, "body": response.text[:200]},
            )

        try:
            body = response.json()
        except ValueError as e:
            raise UploadError(f"Cannot decode upload receipt: {e}", meta={"bundle_reference": key}) from e
        if not isinstance(body, dict) or not isinstance(body.get("id"), str) or not body["id"]:
            raise UploadError(
                "Upload receipt carries no ledger reference",
                meta={"bundle_reference": key, "status_code": response.status_code},
            )

        if response.status_code == 409:
            self.logger.info("bundle already committed", bundle_reference=key, ledger_id=body["id"])

        ts = body.get("timestamp")
        if not isinstance(ts, int) or isinstance(ts, bool):
            ts = time.time_ns() // 1_000_000
        extra = {k: v for k, v in body.items() if k not in ("id", "timestamp") and isinstance(v, (str, int, bool))}
        return Receipt(id=body["id"], timestamp=ts, bundle_reference=key, attempts=attempts, extra=extra)
