"""
PumpPortal WebSocket client with subscribe-on-connect and fixed-delay reconnection.
"""

import asyncio
import json
import logging
from datetime import datetime
from typing import Optional, Dict, Any, Callable, Awaitable

import websockets
from websockets.exceptions import WebSocketException, ConnectionClosedError
from pydantic import ValidationError

from .models import NewTokenMessage, TokenRecord, ConnectionState, ConnectionStatus
from .token_store import TokenStore, now_ms

logger = logging.getLogger(__name__)


SUBSCRIBE_NEW_TOKEN = {"method": "subscribeNewToken"}


class PumpflowClientError(Exception):
    """Custom exception for PumpPortal client errors."""
    pass


class PumpPortalWebSocketClient:
    """
    PumpPortal WebSocket client for the new-token stream.

    Features:
    - Subscribes to new token events on every successful connect
    - Reconnects after a fixed delay whenever the connection closes, forever
    - Normalizes accepted events and writes them into the token store
    - Processes messages strictly in arrival order
    """

    def __init__(
        self,
        websocket_url: str,
        store: TokenStore,
        on_connection_change: Optional[Callable[[ConnectionStatus], Any]] = None,
        reconnect_delay: float = 5.0,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        clock: Optional[Callable[[], int]] = None,
    ):
        """
        Initialize PumpPortal WebSocket client.

        Args:
            websocket_url: WebSocket URL (e.g., wss://pumpportal.fun/api/data)
            store: TokenStore receiving accepted tokens
            on_connection_change: Callback function for connection status changes
            reconnect_delay: Seconds to wait after a close before reconnecting
            sleep: Awaitable used for the reconnect delay
            clock: Millisecond clock used for createdAt
        """
        self.websocket_url = websocket_url
        self.store = store
        self.on_connection_change = on_connection_change

        # Reconnection settings
        self.reconnect_delay = reconnect_delay
        self._sleep = sleep
        self._clock = clock or now_ms

        # Connection state
        self.websocket = None
        self.state = ConnectionState.DISCONNECTED
        self.reconnect_attempts = 0
        self.should_reconnect = True
        self.last_connected: Optional[datetime] = None
        self.last_error: Optional[str] = None
        self._last_created_at = 0

        self.stats = {
            "messages_received": 0,
            "tokens_accepted": 0,
            "messages_ignored": 0,
            "parse_errors": 0,
            "connection_errors": 0,
        }

        logger.info(f"Initialized PumpPortal WebSocket client for {websocket_url}")

    @property
    def is_connected(self) -> bool:
        """True while the connection is open and subscribed."""
        return self.state == ConnectionState.SUBSCRIBED and self.websocket is not None

    async def connect(self) -> bool:
        """
        Connect to PumpPortal WebSocket and subscribe to new token events.

        Returns:
            True if the connection was opened and the subscription sent, False otherwise
        """
        await self._set_state(ConnectionState.CONNECTING)

        try:
            logger.info(f"Connecting to PumpPortal WebSocket: {self.websocket_url}")

            self.websocket = await websockets.connect(
                self.websocket_url,
                ping_interval=20,
                ping_timeout=20,
                close_timeout=10,
                max_size=2**20,
            )
            logger.info("Connected to PumpPortal WebSocket")

        except Exception as e:
            logger.error(f"Failed to connect: {e}")
            self.websocket = None
            self.stats["connection_errors"] += 1
            await self._set_state(ConnectionState.DISCONNECTED, error_message=str(e))
            return False

        if not await self.subscribe_to_new_tokens():
            await self._close_websocket()
            await self._set_state(ConnectionState.DISCONNECTED, error_message=self.last_error)
            return False

        self.last_connected = datetime.now()
        await self._set_state(ConnectionState.SUBSCRIBED)
        return True

    async def subscribe_to_new_tokens(self) -> bool:
        """
        Send the new token subscription. No acknowledgement is awaited.

        Returns:
            True if the subscription message was sent, False otherwise
        """
        try:
            await self.websocket.send(json.dumps(SUBSCRIBE_NEW_TOKEN))
            logger.info("Subscribed to new token events")
            return True
        except Exception as e:
            logger.error(f"New token subscription error: {e}")
            self.last_error = str(e)
            return False

    async def handle_message(self, message) -> Optional[TokenRecord]:
        """
        Handle incoming WebSocket message.

        Args:
            message: Raw JSON message (str or bytes)

        Returns:
            The stored TokenRecord, or None if the message was not accepted
        """
        self.stats["messages_received"] += 1

        try:
            data = json.loads(message)
        except (ValueError, RecursionError, TypeError) as e:
            # JSONDecodeError and UnicodeDecodeError are ValueErrors; deep nesting recurses out
            self.stats["parse_errors"] += 1
            logger.error(f"Failed to decode JSON message: {e}")
            logger.debug(f"Raw message: {message!r}")
            return None

        if not isinstance(data, dict):
            self.stats["messages_ignored"] += 1
            logger.debug(f"Ignoring non-object message: {data!r}")
            return None

        token_msg = NewTokenMessage(msg=data)
        if not token_msg.is_new_token_event():
            # Other event kinds share the channel (e.g. subscription notices)
            self.stats["messages_ignored"] += 1
            logger.debug(f"Ignoring message without mint/name/symbol: {list(data.keys())}")
            return None

        try:
            record = token_msg.to_record(created_at=self._next_created_at())
        except (ValidationError, ValueError) as e:
            self.stats["parse_errors"] += 1
            logger.error(f"Failed to normalize token message: {e}")
            logger.debug(f"Raw token message: {data}")
            return None

        logger.info(f"New token: {record.symbol} - {record.name}")
        total = self.store.insert(record)
        self.stats["tokens_accepted"] += 1
        logger.info(f"Stored token. Total: {total}")
        return record

    async def listen(self) -> None:
        """
        Listen for incoming WebSocket messages until the connection closes.

        Raises:
            PumpflowClientError: If called without an open connection
        """
        if self.websocket is None:
            raise PumpflowClientError("listen() requires an open connection")

        try:
            logger.info("Starting message listener")

            async for message in self.websocket:
                try:
                    await self.handle_message(message)
                except Exception as e:
                    # One bad message never ends the connection
                    self.stats["parse_errors"] += 1
                    logger.error(f"Error handling message: {e!r}")

            logger.info("WebSocket connection closed")

        except ConnectionClosedError as e:
            logger.warning(f"WebSocket connection closed with error: {e}")
            self.last_error = str(e)
            self.stats["connection_errors"] += 1
        except WebSocketException as e:
            logger.error(f"WebSocket error: {e}")
            self.last_error = str(e)
            self.stats["connection_errors"] += 1
        except Exception as e:
            logger.error(f"Unexpected error in listener: {e}")
            self.last_error = str(e)
            self.stats["connection_errors"] += 1
        finally:
            await self._close_websocket()
            if self.state != ConnectionState.STOPPED:
                await self._set_state(ConnectionState.DISCONNECTED, error_message=self.last_error)

    async def wait_before_reconnect(self) -> None:
        """Wait the fixed reconnect delay."""
        await self._set_state(ConnectionState.RECONNECT_WAIT)
        logger.info(f"WebSocket disconnected. Reconnecting in {self.reconnect_delay:g} seconds...")
        await self._sleep(self.reconnect_delay)
        self.reconnect_attempts += 1

    async def start(self) -> None:
        """
        Run the connection lifecycle until stop() is called.

        Every close, expected or not, is followed by a reconnect after
        reconnect_delay seconds. There is no retry limit.
        """
        logger.info("Starting PumpPortal WebSocket client")

        self.should_reconnect = True

        while self.should_reconnect:
            try:
                if await self.connect():
                    await self.listen()
            except Exception as e:
                logger.error(f"Unexpected error in client: {e}")
                self.last_error = str(e)

            if not self.should_reconnect:
                break

            await self.wait_before_reconnect()

        logger.info("PumpPortal WebSocket client stopped")

    async def stop(self) -> None:
        """
        Stop the WebSocket client and close the active connection.
        """
        logger.info("Stopping PumpPortal WebSocket client")
        self.should_reconnect = False
        await self._close_websocket()
        await self._set_state(ConnectionState.STOPPED)

    def get_status(self) -> ConnectionStatus:
        """Current connection status."""
        return ConnectionStatus(
            state=self.state,
            connected=self.is_connected,
            last_connected=self.last_connected,
            reconnect_attempts=self.reconnect_attempts,
            error_message=self.last_error,
        )

    def get_stats(self) -> Dict[str, Any]:
        """Message and connection counters."""
        return {
            **self.stats,
            "state": self.state.value,
            "reconnect_attempts": self.reconnect_attempts,
        }

    def _next_created_at(self) -> int:
        # createdAt never goes backwards even if the wall clock does
        created_at = max(self._clock(), self._last_created_at)
        self._last_created_at = created_at
        return created_at

    async def _close_websocket(self) -> None:
        if self.websocket is None:
            return
        websocket = self.websocket
        self.websocket = None
        try:
            await websocket.close()
        except Exception as e:
            logger.warning(f"Error closing WebSocket: {e}")

    async def _set_state(
        self,
        state: ConnectionState,
        error_message: Optional[str] = None
    ) -> None:
        """
        Update the connection state and notify the status callback.

        Args:
            state: New connection state
            error_message: Optional error message
        """
        self.state = state
        if error_message:
            self.last_error = error_message
        elif state == ConnectionState.SUBSCRIBED:
            self.last_error = None

        if self.on_connection_change:
            status = self.get_status()
            if asyncio.iscoroutinefunction(self.on_connection_change):
                await self.on_connection_change(status)
            else:
                self.on_connection_change(status)

    @classmethod
    def from_env(
        cls,
        store: TokenStore,
        on_connection_change: Optional[Callable[[ConnectionStatus], Any]] = None,
    ) -> 'PumpPortalWebSocketClient':
        """
        Create client instance from environment variables.

        Environment variables:
        - PUMPPORTAL_WS_URL: WebSocket URL (default: wss://pumpportal.fun/api/data)
        - RECONNECT_DELAY_SECONDS: Delay before reconnecting (default: 5)

        Args:
            store: TokenStore receiving accepted tokens
            on_connection_change: Callback function for connection status changes

        Returns:
            PumpPortalWebSocketClient instance
        """
        from .config import PumpflowConfig

        config = PumpflowConfig.from_env()

        return cls(
            websocket_url=config.ws_url,
            store=store,
            on_connection_change=on_connection_change,
            reconnect_delay=config.reconnect_delay,
        )
