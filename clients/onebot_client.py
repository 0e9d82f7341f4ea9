"""
OneBot Client - action requests over a OneBot v11 WebSocket connection.

Each request carries a unique "echo" token; the server copies it into
the matching response. A reader task feeds inbound frames to
dispatch_message(), which resolves the waiting call() by token.

Protocol:
  → {"action": "send_group_msg", "params": {...}, "echo": "repro_1718000000000_0"}
  ← {"status": "ok", "retcode": 0, "data": {...}, "echo": "repro_1718000000000_0"}

Usage:
    async with OneBotClient("ws://127.0.0.1:3001", access_token="xxx") as client:
        response = await client.call("get_login_info")
"""

import asyncio
import json
import logging
import time
from typing import Any, Dict, List, Optional, Union

import aiohttp

from qq_bot.config import DEFAULT_ONEBOT_TIMEOUT
from qq_bot.exceptions import (
    OneBotActionError,
    OneBotConnectionError,
    OneBotTimeoutError,
)

logger = logging.getLogger(__name__)

CONNECT_TIMEOUT = 15.0


class OneBotClient:
    """Request/response correlator for a OneBot WebSocket endpoint.

    Pending requests are owned by the instance, so several clients can
    run side by side in one process.

    Attributes:
        url: WebSocket endpoint (e.g., "ws://127.0.0.1:3001")
        access_token: Optional token sent as "Authorization: Bearer <token>"
        default_timeout: Seconds to wait for a response when call() gets none
        echo_prefix: Leading part of every echo token
    """

    def __init__(
        self,
        url: str,
        access_token: Optional[str] = None,
        default_timeout: float = DEFAULT_ONEBOT_TIMEOUT,
        echo_prefix: str = "onebot",
    ):
        self.url = url
        self.access_token = access_token or ""
        self.default_timeout = default_timeout
        self.echo_prefix = echo_prefix

        self._session: Optional[aiohttp.ClientSession] = None
        self._ws: Optional[aiohttp.ClientWebSocketResponse] = None
        self._reader_task: Optional[asyncio.Task] = None
        self._pending: Dict[str, asyncio.Future] = {}
        self._seq: int = 0

    async def __aenter__(self):
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.disconnect()

    @property
    def headers(self) -> Dict[str, str]:
        if not self.access_token:
            return {}
        return {"Authorization": f"Bearer {self.access_token}"}

    @property
    def connected(self) -> bool:
        """Whether the WebSocket is open."""
        return self._ws is not None and not self._ws.closed

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    async def connect(self) -> None:
        """Open the WebSocket and start reading responses.

        Raises:
            OneBotConnectionError: If the endpoint is unreachable or refuses the handshake
        """
        if self.connected:
            logger.warning("OneBot client already connected")
            return

        try:
            self._session = aiohttp.ClientSession()
            self._ws = await asyncio.wait_for(
                self._session.ws_connect(self.url, headers=self.headers),
                timeout=CONNECT_TIMEOUT,
            )
        except asyncio.TimeoutError:
            await self._cleanup()
            raise OneBotConnectionError(f"Timeout connecting to OneBot endpoint: {self.url}")
        except Exception as e:
            await self._cleanup()
            raise OneBotConnectionError(f"Failed to connect to OneBot endpoint {self.url}: {e}")

        self._reader_task = asyncio.create_task(self._read_loop())
        logger.info(f"OneBot connected: {self.url}")

    async def disconnect(self) -> None:
        """Close the WebSocket and fail any request still waiting."""
        if self._reader_task is not None:
            self._reader_task.cancel()
            try:
                await self._reader_task
            except asyncio.CancelledError:
                pass
            self._reader_task = None

        was_open = self._ws is not None or self._session is not None
        await self._cleanup()
        self._fail_pending(OneBotConnectionError("OneBot client disconnected"))
        if was_open:
            logger.info(f"OneBot disconnected: {self.url}")

    def next_echo(self) -> str:
        """Echo token: <prefix>_<wall-clock ms>_<per-client sequence>."""
        echo = f"{self.echo_prefix}_{int(time.time() * 1000)}_{self._seq}"
        self._seq += 1
        return echo

    async def call(
        self,
        action: str,
        params: Optional[Dict[str, Any]] = None,
        timeout: Optional[float] = None,
    ) -> Dict[str, Any]:
        """Send an action and wait for the response carrying the same echo.

        Args:
            action: OneBot action name (e.g., "send_group_msg")
            params: Action parameters
            timeout: Seconds to wait (defaults to self.default_timeout)

        Returns:
            The full response payload

        Raises:
            OneBotConnectionError: If not connected or the socket fails
            OneBotTimeoutError: If no matching response arrives in time
        """
        self._ensure_connected()

        timeout = self.default_timeout if timeout is None else timeout
        echo = self.next_echo()
        request = {"action": action, "params": params or {}, "echo": echo}

        # Register before sending so a fast response cannot be missed
        future = asyncio.get_running_loop().create_future()
        self._pending[echo] = future

        try:
            data = json.dumps(request, ensure_ascii=False)
            logger.info(f"-> {data}")
            try:
                await self._ws.send_str(data)
            except (aiohttp.ClientError, ConnectionError) as e:
                raise OneBotConnectionError(f"Failed to send {action}: {e}")

            try:
                return await asyncio.wait_for(future, timeout=timeout)
            except asyncio.TimeoutError:
                raise OneBotTimeoutError(action, echo)
        finally:
            self._pending.pop(echo, None)

    async def send_group_msg(
        self,
        group_id: int,
        message: Union[str, List[Dict[str, Any]]],
        timeout: Optional[float] = None,
    ) -> Dict[str, Any]:
        """Send a text or segment-list message to a group."""
        return await self.call(
            "send_group_msg",
            {"group_id": group_id, "message": message},
            timeout=timeout,
        )

    async def upload_group_file(
        self,
        group_id: int,
        file: str,
        name: str,
        timeout: Optional[float] = None,
    ) -> Dict[str, Any]:
        """Upload a file (path readable by the OneBot server) to group files."""
        return await self.call(
            "upload_group_file",
            {"group_id": group_id, "file": file, "name": name},
            timeout=timeout,
        )

    @staticmethod
    def check_response(response: Dict[str, Any], action: str) -> Dict[str, Any]:
        """Raise OneBotActionError when the server reports status=failed."""
        if response.get("status") == "failed":
            message = response.get("message") or response.get("wording") or ""
            raise OneBotActionError(action, response.get("retcode"), message)
        return response

    def dispatch_message(self, raw: Union[str, bytes]) -> Optional[Any]:
        """Handle one inbound frame.

        Non-JSON frames are logged and dropped. A JSON object whose echo
        matches a pending request resolves that request.

        Returns:
            The decoded payload, or None for non-JSON frames
        """
        text = raw.decode("utf-8", errors="replace") if isinstance(raw, (bytes, bytearray)) else raw

        try:
            payload = json.loads(text)
        except (ValueError, RecursionError):
            logger.info(f"<- NON_JSON {text[:500]}")
            return None

        logger.info(f"<- {json.dumps(payload, ensure_ascii=False)}")

        echo = payload.get("echo") if isinstance(payload, dict) else None
        if not isinstance(echo, str):
            return payload

        future = self._pending.pop(echo, None)
        if future is None:
            logger.debug(f"OneBot: no pending request for echo={echo}")
        elif not future.done():
            future.set_result(payload)

        return payload

    # ---- Internal methods ----

    def _ensure_connected(self) -> None:
        if not self.connected:
            raise OneBotConnectionError("OneBot client not connected")

    async def _read_loop(self) -> None:
        ws = self._ws
        try:
            async for msg in ws:
                if msg.type in (aiohttp.WSMsgType.TEXT, aiohttp.WSMsgType.BINARY):
                    try:
                        self.dispatch_message(msg.data)
                    except Exception as e:
                        logger.error(f"OneBot dropped inbound frame: {e!r}")
                elif msg.type == aiohttp.WSMsgType.ERROR:
                    logger.error(f"OneBot socket error: {ws.exception()}")
                    break
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error(f"OneBot read error: {e}")
        finally:
            self._fail_pending(OneBotConnectionError("OneBot connection closed"))

        # Nothing reads responses any more; make call() fail fast
        if not ws.closed:
            await ws.close()
        logger.info(f"OneBot reader stopped: {self.url}")

    def _fail_pending(self, error: Exception) -> None:
        pending = list(self._pending.values())
        self._pending.clear()
        for future in pending:
            if not future.done():
                future.set_exception(error)

    async def _cleanup(self) -> None:
        if self._ws is not None and not self._ws.closed:
            await self._ws.close()
        if self._session is not None and not self._session.closed:
            await self._session.close()
        self._ws = None
        self._session = None
