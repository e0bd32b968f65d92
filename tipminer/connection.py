import asyncio
import logging
import random

import requests
import websockets
from colorama import Fore, Style
from hashids import Hashids

import tipminer.mining_params as mining_params
from tipminer.messages import Message

log = logging.getLogger(__name__)


def gen_uid():
    hashids = Hashids()
    return hashids.encode(random.randint(0, 16777216))


class Connection:
    """Session with the block notification feed.

    Also knows how to ask the explorer for the current chain tip, which seeds
    the very first template.
    """

    def __init__(
        self,
        type_name,
        feed_url=mining_params.feed_url,
        tip_url=mining_params.tip_url,
        timeout=10,
    ):
        self.type_name = type_name
        self.uid = gen_uid()
        self.feed_url = feed_url
        self.tip_url = tip_url
        self.timeout = timeout
        self.ws = None

    async def fetch_latest_hash(self) -> str:
        """Asks the explorer for the hash of the current chain tip"""
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, self._get_latest_hash)

    def _get_latest_hash(self):
        response = requests.get(self.tip_url, timeout=self.timeout)
        response.raise_for_status()
        latest_hash = response.text.strip()
        log.debug("chain tip from %s: %s", self.tip_url, latest_hash)
        return latest_hash

    async def connect_to_feed(self):
        self.ws = await websockets.connect(self.feed_url)

    async def disconnect(self):
        if self.ws is None:
            raise RuntimeError("Not connected")
        await self.ws.close()
        self.ws = None

    def is_connected(self):
        return self.ws is not None

    async def send_msg(self, msg: Message):
        print(
            f"{Style.BRIGHT}{Fore.GREEN}Msg send: {Style.NORMAL}%s{Style.RESET_ALL}"
            % msg
        )
        await self.ws.send(msg.to_json())

    async def receive(self) -> [Message]:
        """Waits for the next frame on the feed.

        :return decoded messages, an empty list for a frame that could not be
         decoded, None once the session has been closed
        """
        if self.ws is None:
            return None

        try:
            raw = await self.ws.recv()
        except websockets.ConnectionClosed as e:
            print(
                f"{Style.BRIGHT}{Fore.RED}Connection closed: {Style.NORMAL}%s{Style.RESET_ALL}"
                % e
            )
            self.ws = None
            return None

        log.debug("raw frame: %s", raw)
        print(
            f"{Style.BRIGHT}{Fore.YELLOW}Rcv raw: {Style.NORMAL}%d bytes{Style.RESET_ALL}"
            % len(raw)
        )

        try:
            decoded_msg = Message.from_json(raw)
        except Message.MalformedMessage as e:
            print(
                f"{Style.BRIGHT}{Fore.RED}Malformed frame: {Style.NORMAL}%s{Style.RESET_ALL}"
                % e
            )
            return []

        print(
            f"{Style.BRIGHT}{Fore.YELLOW}Msg rcv: {Style.NORMAL}%s{Style.RESET_ALL}"
            % decoded_msg
        )
        return [decoded_msg]
