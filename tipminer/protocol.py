"""Generic protocol primitives"""
import asyncio
import time

import websockets
from event_bus import EventBus

import tipminer.mining_params as mining_params
from tipminer.connection import Connection
from tipminer.messages import Message, Ping


class ConnectionProcessor:
    """Receives and dispatches messages on a single connection."""

    def __init__(self, name: str, bus: EventBus, connection: Connection):
        self.name = name
        self.bus = bus
        self.connection = connection
        self.started_at = time.time()

    async def send_msg(self, msg: Message):
        await self.connection.send_msg(msg)

    def _emit_aux_msg_on_bus(self, log_msg: str):
        conn_uid = self.connection.uid if self.connection is not None else None
        self.bus.emit(self.name, time.time() - self.started_at, conn_uid, log_msg)

    def _emit_protocol_msg_on_bus(self, log_msg: str, msg: Message):
        self._emit_aux_msg_on_bus("{}: {}".format(log_msg, msg))

    def process(self, msg: Message):
        try:
            msg.accept(self)
        except Message.VisitorMethodNotImplemented as e:
            self._emit_protocol_msg_on_bus(
                "{} doesn't implement {}()".format(type(self).__name__, e), msg
            )

    async def receive_one(self):
        """Processes one frame of the connection.

        :return False once the connection has been closed
        """
        messages = await self.connection.receive()
        if messages is None:
            return False

        for msg in messages:
            self.process(msg)
        await asyncio.sleep(0)
        return True

    async def receive_loop(self):
        """Receive process for a particular connection dispatches each received message"""
        while await self.receive_one():
            pass
        self._emit_aux_msg_on_bus("Receive loop finished, connection closed")

    async def keep_alive(self, interval: float = mining_params.ping_interval):
        """Pings the other side periodically so that the session stays open"""
        while self.connection.is_connected():
            await asyncio.sleep(interval)
            if not self.connection.is_connected():
                break
            try:
                await self.send_msg(Ping())
            except (websockets.ConnectionClosed, OSError) as e:
                self._emit_aux_msg_on_bus("Keep-alive failed: {}".format(e))
