import threading
import time

import pytest

import tipminer.miner as miner_module
from tests.conftest import EASY_BITS, GENESIS_HASH, IMPOSSIBLE_BITS, make_template
from tipminer.hashing import double_sha256
from tipminer.miner import Miner, assemble_header
from tipminer.session import BlockTemplate, TemplateStore


def wait_until(predicate, timeout=5.0):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.005)
    return False


def start(miner):
    results = []
    thread = threading.Thread(target=lambda: results.append(miner.mine()), daemon=True)
    thread.start()
    return thread, results


@pytest.fixture
def counted_hashes(monkeypatch):
    calls = []

    def counting_double_sha256(data):
        calls.append(data)
        return double_sha256(data)

    monkeypatch.setattr(miner_module, "double_sha256", counting_double_sha256)
    return calls


def test_solves_easy_template(bus):
    template = make_template(bits=EASY_BITS)
    miner = Miner("miner1", bus, store=TemplateStore(template), continuous=False)

    solution = miner.mine()

    assert miner.state == Miner.States.SOLVED
    assert solution.digest == double_sha256(assemble_header(template, solution.nonce))
    assert template.target.is_met_by(solution.digest)
    assert miner.solutions == [solution]
    assert miner.hashes == solution.nonce + 1
    block_hash_hex, nonce_hex = solution.report()
    assert len(nonce_hex) == 8
    assert int(nonce_hex, 16) == solution.nonce
    assert block_hash_hex == solution.digest[::-1].hex()


def test_solution_callback(bus):
    found = []
    miner = Miner(
        "miner1",
        bus,
        store=TemplateStore(make_template()),
        continuous=False,
        on_solution=found.append,
    )

    solution = miner.mine()

    assert found == [solution]


def test_solution_is_published_on_bus(bus):
    messages = []

    @bus.on("miner1")
    def on_miner_msg(ts, conn_uid, message):
        messages.append(message)

    Miner("miner1", bus, store=TemplateStore(make_template()), continuous=False).mine()

    assert any("Block mined!" in message for message in messages)
    assert any("IDLE -> SEARCHING" in message for message in messages)


def test_idle_miner_does_not_hash(bus, counted_hashes):
    store = TemplateStore(BlockTemplate.from_tip(GENESIS_HASH))
    miner = Miner("miner1", bus, store=store, continuous=False, idle_timeout=0.01)

    thread, results = start(miner)
    time.sleep(0.2)

    assert miner.state == Miner.States.IDLE
    assert counted_hashes == []

    # the first notification makes the template complete
    store.replace(make_template(previous=store.snapshot()))
    thread.join(10)

    assert not thread.is_alive()
    assert results[0] is not None
    assert counted_hashes


def test_superseded_template_is_abandoned(bus, counted_hashes):
    first = make_template(bits=IMPOSSIBLE_BITS, merkle_byte="aa")
    second = make_template(bits=EASY_BITS, merkle_byte="bb", time=1700000000)
    store = TemplateStore(first)
    miner = Miner("miner1", bus, store=store, continuous=False, idle_timeout=0.01)

    thread, results = start(miner)
    assert wait_until(lambda: len(counted_hashes) > 100)

    store.replace(second)
    thread.join(10)

    assert not thread.is_alive()
    solution = results[0]
    assert miner.superseded_templates == 1
    assert solution.template.merkle_root == second.merkle_root
    assert solution.digest == double_sha256(assemble_header(second, solution.nonce))

    # every header is built out of one template, never a mix of both
    headers = {assemble_header(first, 0)[:76], assemble_header(second, 0)[:76]}
    assert {header[:76] for header in counted_hashes} <= headers
    switched = [header[:76] for header in counted_hashes].index(
        assemble_header(second, 0)[:76]
    )
    # nonces restart from zero on the new template
    assert counted_hashes[switched][76:] == bytes(4)


def test_continuous_mining_moves_to_next_template(bus):
    found = []
    store = TemplateStore(make_template(merkle_byte="01"))
    miner = Miner(
        "miner1",
        bus,
        store=store,
        continuous=True,
        on_solution=found.append,
        idle_timeout=0.01,
    )

    thread, results = start(miner)
    assert wait_until(lambda: len(found) == 1)
    assert miner.state == Miner.States.SOLVED

    store.replace(make_template(merkle_byte="02"))
    assert wait_until(lambda: len(found) == 2)

    miner.stop()
    thread.join(5)

    assert not thread.is_alive()
    assert results == [None]
    assert [s.template.merkle_root for s in found] == [
        bytes.fromhex("01" * 32),
        bytes.fromhex("02" * 32),
    ]


def test_exhausted_nonce_space_waits_for_new_work(bus, monkeypatch):
    monkeypatch.setattr(miner_module.mining_params, "nonce_space", 16)
    store = TemplateStore(make_template(bits=IMPOSSIBLE_BITS))
    miner = Miner("miner1", bus, store=store, continuous=False, idle_timeout=0.01)

    thread, results = start(miner)
    assert wait_until(lambda: miner.state == Miner.States.EXHAUSTED)
    assert miner.hashes == 16

    store.replace(make_template(bits=EASY_BITS))
    thread.join(5)

    assert results[0] is not None


def test_malformed_template_is_skipped(bus, counted_hashes):
    good = make_template()
    broken = BlockTemplate(
        version=b"\x01",
        previous_block_hash=good.previous_block_hash,
        merkle_root=good.merkle_root,
        timestamp=good.timestamp,
        bits=good.bits,
        target=good.target,
    )
    store = TemplateStore(broken)
    miner = Miner("miner1", bus, store=store, continuous=False, idle_timeout=0.01)

    thread, results = start(miner)
    assert wait_until(lambda: miner.rejected_templates == 1)
    assert counted_hashes == []

    store.replace(good)
    thread.join(5)

    assert results[0].template.merkle_root == good.merkle_root


def test_stop_ends_search(bus):
    store = TemplateStore(make_template(bits=IMPOSSIBLE_BITS))
    miner = Miner("miner1", bus, store=store, idle_timeout=0.01)

    thread, results = start(miner)
    assert wait_until(lambda: miner.state == Miner.States.SEARCHING)
    miner.stop()
    thread.join(5)

    assert not thread.is_alive()
    assert results == [None]
    assert miner.solutions == []


def test_run_mines_in_worker_thread(bus, run):
    miner = Miner("miner1", bus, store=TemplateStore(make_template()), continuous=False)

    solution = run(miner.run())

    assert solution is miner.solutions[0]


def test_search_hashes_the_assembled_header(bus, counted_hashes):
    template = make_template(bits=EASY_BITS)
    miner = Miner("miner1", bus, store=TemplateStore(template), continuous=False)

    solution = miner.mine()

    assert counted_hashes == [
        assemble_header(template, nonce) for nonce in range(solution.nonce + 1)
    ]
    assert all(
        header[76:] == nonce.to_bytes(4, "little")
        for nonce, header in enumerate(counted_hashes)
    )
