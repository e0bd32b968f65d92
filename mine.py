import argparse
import asyncio
import logging
import sys

import requests
from colorama import Fore, init
from event_bus import EventBus

import tipminer.mining_params as mining_params
from tipminer.connection import Connection
from tipminer.errors import TemplateError
from tipminer.miner import Miner
from tipminer.session import BlockTemplate, TemplateStore

init()
bus = EventBus()


def parse_args(argv=None):
    parser = argparse.ArgumentParser(
        prog="mine.py",
        description="Mines on top of the bitcoin chain tip, restarting on every new block",
    )
    parser.add_argument(
        "--feed-url",
        help="websocket feed with new block notifications, default = {}".format(
            mining_params.feed_url
        ),
        default=mining_params.feed_url,
    )
    parser.add_argument(
        "--tip-url",
        help="endpoint returning the latest block hash, default = {}".format(
            mining_params.tip_url
        ),
        default=mining_params.tip_url,
    )
    parser.add_argument(
        "--ping-interval",
        type=float,
        help="seconds between keep-alive pings, default = {}".format(
            mining_params.ping_interval
        ),
        default=mining_params.ping_interval,
    )
    parser.add_argument(
        "--once",
        help="stop after the first solution (otherwise keeps mining every new template)",
        action="store_true",
    )
    parser.add_argument(
        "--verbose",
        help="display all events (warning: a lot of text is generated)",
        action="store_const",
        const=True,
    )
    parser.add_argument(
        "--plain-output",
        help="Print just values to terminal: hashes, superseded templates,"
        " rejected templates, solutions",
        action="store_true",
    )
    return parser.parse_args(argv)


def initial_store(latest_hash: str) -> TemplateStore:
    """Seeds the store with the chain tip.

    An unusable tip leaves the store empty, the miner then stays idle until the
    feed has linked two notifications.
    """
    try:
        return TemplateStore(BlockTemplate.from_tip(latest_hash))
    except TemplateError as e:
        print(
            f"{Fore.RED}Ignoring chain tip {latest_hash!r}: {e}{Fore.RESET}",
            file=sys.stderr,
        )
        return TemplateStore()


async def connect(args):
    if args.verbose:

        @bus.on("miner1")
        def subscribe_m1(ts, conn_uid, message):
            print(
                Fore.LIGHTRED_EX,
                "T+{0:.3f}:".format(ts),
                "(miner1)",
                conn_uid if conn_uid is not None else "",
                message,
                Fore.RESET,
            )

    conn1 = Connection("miner", feed_url=args.feed_url, tip_url=args.tip_url)

    latest_hash = await conn1.fetch_latest_hash()

    m1 = Miner(
        "miner1",
        bus,
        connection=conn1,
        store=initial_store(latest_hash),
        continuous=not args.once,
    )

    await conn1.connect_to_feed()
    await m1.subscribe()

    return m1, conn1


def print_stats(m1: Miner, plain_output: bool):
    rejected = m1.rejected_templates + m1.rejected_notifications
    if plain_output:
        print(m1.hashes, m1.superseded_templates, rejected, len(m1.solutions), sep=",")
    else:
        print("hashes:", m1.hashes, "superseded templates:", m1.superseded_templates)
        print("rejected templates:", rejected, "solutions:", len(m1.solutions))
        for solution in m1.solutions:
            print("block hash:", solution.block_hash_hex, "nonce:", solution.nonce_hex)


async def main(args):
    (m1, conn1) = await connect(args)

    mining = asyncio.create_task(m1.run())
    feed = asyncio.gather(m1.receive_loop(), m1.keep_alive(args.ping_interval))
    try:
        await asyncio.wait({mining, feed}, return_when=asyncio.FIRST_COMPLETED)
    finally:
        m1.stop()
        feed.cancel()
        if conn1.is_connected():
            await conn1.disconnect()
        await asyncio.gather(mining, return_exceptions=True)
        print_stats(m1, args.plain_output)


if __name__ == "__main__":
    args = parse_args()
    if args.verbose:
        logging.basicConfig(level=logging.DEBUG)

    try:
        asyncio.run(main(args))
    except requests.RequestException as e:
        print("Cannot fetch the chain tip:", e, file=sys.stderr)
        sys.exit(1)
    except KeyboardInterrupt:
        pass
