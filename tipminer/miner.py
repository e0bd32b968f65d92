import asyncio
import concurrent.futures
import enum
import threading
import time

from colorama import Fore, Style
from event_bus import EventBus

import tipminer.mining_params as mining_params
from tipminer.coins import hash_meets_target
from tipminer.connection import Connection
from tipminer.errors import TemplateError
from tipminer.hashing import double_sha256
from tipminer.hashrate_meter import HashrateMeter
from tipminer.message_types import U32
from tipminer.messages import BlocksSubscribe, NewBlock, Pong, UnknownMessage
from tipminer.protocol import ConnectionProcessor
from tipminer.session import BlockTemplate, TemplateStore

# number of attempts accounted to the hashrate meter at once
HASH_BATCH = 1 << 16


# assemble header without nonce, so we can just append it
def assemble_header_prefix(template: BlockTemplate) -> bytes:
    """version(4) + prev_hash(32) + merkle_root(32) + ntime(4) + nbits(4)

    Fields of the template are already in header byte order.
    :raises IncompleteTemplate: when any of the fields has not been set yet
    """
    template.ensure_complete()
    return (
        template.version
        + template.previous_block_hash
        + template.merkle_root
        + template.timestamp
        + template.bits
    )


def assemble_header(
    template: BlockTemplate, nonce: int, header_without_nonce: bytes = None
) -> bytes:
    """Full 80 byte header for the given nonce

    :param header_without_nonce: prefix already assembled for this template
    """
    if header_without_nonce is None:
        header_without_nonce = assemble_header_prefix(template)
    return header_without_nonce + U32(nonce, "nonce")


class Solution:
    """Nonce that makes the template's header hash meet its target"""

    def __init__(self, template: BlockTemplate, nonce: int, digest: bytes):
        self.template = template
        self.nonce = nonce
        # raw double sha256 output, header byte order
        self.digest = digest

    @property
    def block_hash_hex(self):
        return self.digest[::-1].hex()

    @property
    def nonce_hex(self):
        return "{:08x}".format(self.nonce)

    def report(self):
        return self.block_hash_hex, self.nonce_hex

    def __str__(self):
        return "{}(block_hash={}, nonce={})".format(
            type(self).__name__, self.block_hash_hex, self.nonce_hex
        )


class Miner(ConnectionProcessor):
    class States(enum.Enum):
        IDLE = 0
        SEARCHING = 1
        SUPERSEDED = 2
        SOLVED = 3
        EXHAUSTED = 4

    def __init__(
        self,
        name: str,
        bus: EventBus,
        connection: Connection = None,
        store: TemplateStore = None,
        continuous: bool = True,
        on_solution=None,
        idle_timeout: float = 1.0,
        report_interval: float = mining_params.hashrate_report_interval,
    ):
        """
        :param store: template store shared with the feed, the miner creates an
         empty one when not given
        :param continuous: keep mining new templates after a solution, otherwise
         mine() returns the first solution
        :param on_solution: optional callback invoked with every Solution from the
         mining thread
        :param idle_timeout: how long to wait for a new template before checking
         for a stop request again
        """
        self.store = store if store is not None else TemplateStore()
        self.continuous = continuous
        self.on_solution = on_solution
        self.idle_timeout = idle_timeout
        self.report_interval = report_interval
        self.work_meter = HashrateMeter()

        self.state = self.States.IDLE
        self.solutions = []
        self.hashes = 0
        self.superseded_templates = 0
        self.rejected_templates = 0
        self.rejected_notifications = 0

        self._stop = threading.Event()
        self._last_report = time.monotonic()

        super().__init__(name, bus, connection)

    def set_state(self, state):
        if state != self.state:
            self.__emit_aux_msg_on_bus("{} -> {}".format(self.state.name, state.name))
            self.state = state

    def stop(self):
        """Ends the mining loop at the next nonce attempt"""
        self._stop.set()
        self.store.notify()

    def mine(self):
        """Mining loop, runs until stopped (or solved when not continuous).

        Every pass takes a fresh snapshot of the store, nothing of a previous
        template is carried over.
        """
        while not self._stop.is_set():
            template, generation = self.store.checkout()

            if template is None or not template.is_complete():
                self.set_state(self.States.IDLE)
                self.store.wait_for_change(generation, self.idle_timeout, self._stop)
                continue

            try:
                header_without_nonce = assemble_header_prefix(template)
            except TemplateError as e:
                self.rejected_templates += 1
                self.__emit_aux_msg_on_bus("Skipping template {}: {}".format(template, e))
                self._wait_for_new_template(generation)
                continue

            self.set_state(self.States.SEARCHING)
            solution = self.search(template, generation, header_without_nonce)

            if solution is not None:
                self.set_state(self.States.SOLVED)
                self.submit_mining_solution(solution)
                if not self.continuous:
                    return solution
                self._wait_for_new_template(generation)
            elif self._stop.is_set():
                break
            elif self.store.is_current(generation):
                self.set_state(self.States.EXHAUSTED)
                self.__emit_aux_msg_on_bus(
                    "nonce space exhausted for {}, waiting for new work".format(template)
                )
                self._wait_for_new_template(generation)
            else:
                self.set_state(self.States.SUPERSEDED)
                self.superseded_templates += 1

        return None

    def search(self, template: BlockTemplate, generation: int, header_without_nonce=None):
        """Iterates the nonce space of one template snapshot.

        :return Solution, or None when the template got superseded, the miner was
         stopped or no nonce satisfies the target
        """
        if header_without_nonce is None:
            header_without_nonce = assemble_header_prefix(template)
        target = template.target.to_bytes()

        started_at = time.monotonic()
        hashes = 0
        for nonce in range(mining_params.nonce_space):
            if not self.store.is_current(generation) or self._stop.is_set():
                break

            full_header = assemble_header(template, nonce, header_without_nonce)
            hash_bytes = double_sha256(full_header)
            hashes += 1

            if hash_meets_target(hash_bytes, target):
                self._account_hashes(hashes)
                self.__emit_aux_msg_on_bus(
                    "solution found after {:.1f} sec".format(time.monotonic() - started_at)
                )
                return Solution(template, nonce, hash_bytes)

            if hashes == HASH_BATCH:
                self._account_hashes(hashes)
                hashes = 0

        self._account_hashes(hashes)
        return None

    async def run(self):
        """Runs the mining loop in a worker thread so the feed keeps flowing"""
        loop = asyncio.get_running_loop()
        executor = concurrent.futures.ThreadPoolExecutor(max_workers=1)
        try:
            return await loop.run_in_executor(executor, self.mine)
        finally:
            self.stop()
            executor.shutdown(wait=False)

    def submit_mining_solution(self, solution: Solution):
        block_hash_hex, nonce_hex = solution.report()
        self.solutions.append(solution)
        self.__emit_aux_msg_on_bus(
            "{}{}Block mined!{} hash: {}, nonce: {}".format(
                Fore.GREEN, Style.BRIGHT, Style.RESET_ALL, block_hash_hex, nonce_hex
            )
        )
        if self.on_solution is not None:
            self.on_solution(solution)

    def _wait_for_new_template(self, generation):
        while not self._stop.is_set():
            if self.store.wait_for_change(generation, self.idle_timeout, self._stop):
                return

    def _account_hashes(self, hashes):
        self.hashes += hashes
        self.work_meter.measure(hashes)
        now = time.monotonic()
        if now - self._last_report >= self.report_interval:
            self._last_report = now
            self.__emit_hashrate_msg_on_bus()

    async def subscribe(self):
        await self.send_msg(BlocksSubscribe())

    def visit_new_block(self, msg: NewBlock):
        previous = self.store.snapshot()
        try:
            template = BlockTemplate.from_notification(msg, previous)
        except TemplateError as e:
            self.rejected_notifications += 1
            self._emit_protocol_msg_on_bus("Rejected block notification ({})".format(e), msg)
            return

        self.store.replace(template)
        self.__emit_aux_msg_on_bus("New block received, new template {}".format(template))

    def visit_pong(self, msg: Pong):
        self._emit_protocol_msg_on_bus("Feed alive", msg)

    def visit_unknown_message(self, msg: UnknownMessage):
        self._emit_protocol_msg_on_bus("Ignoring", msg)

    def __emit_aux_msg_on_bus(self, msg: str):
        print(
            f"{Fore.BLUE}{Style.BRIGHT}%s: {Style.NORMAL}%s{Style.RESET_ALL}"
            % (self.name, msg)
        )
        self._emit_aux_msg_on_bus(msg)

    def __emit_hashrate_msg_on_bus(self):
        """Reports hashrate statistics on the message bus"""
        speed = self.work_meter.get_speed()
        self.__emit_aux_msg_on_bus(
            "speed {} H/s | hashes {} | superseded templates {} | solutions {}".format(
                "n/a" if speed is None else "{:.0f}".format(speed),
                self.hashes,
                self.superseded_templates,
                len(self.solutions),
            )
        )
