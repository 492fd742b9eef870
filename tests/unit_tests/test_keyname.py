import asyncio
import concurrent.futures
import logging

import pytest

from s3_uploads.errors import KeyNameError
from s3_uploads.keyname import (
    Deferred,
    Immediate,
    KeyRegistry,
    KeyResolver,
    as_key_name_result,
    get_extension,
)


@pytest.mark.parametrize(
    "filename, extension",
    [
        ("report.pdf", "pdf"),
        ("archive.tar.gz", "gz"),
        (".bashrc", "bashrc"),
        ("README", None),
        ("trailing.", None),
        ("", None),
    ],
)
def test_get_extension(filename, extension):
    assert get_extension(filename) == extension


def test_as_key_name_result_tags_values():
    assert as_key_name_result("report") == Immediate("report")
    assert as_key_name_result(None) == Immediate(None)
    assert as_key_name_result(Immediate("x")) == Immediate("x")
    pending = concurrent.futures.Future()
    assert as_key_name_result(pending) == Deferred(pending)


async def test_uuid_key_is_used_verbatim(uuids):
    resolver = KeyResolver("uuid", uuids)

    key = await resolver.resolve_key(0, "photo.jpg")

    assert key == uuids(0)
    assert resolver.registry.get(0) == uuids(0)


async def test_uuid_future_is_already_resolved(uuids):
    resolver = KeyResolver("uuid", uuids)

    future = resolver.resolve_key(1, "photo.jpg")

    assert future.done()
    assert future.result() == uuids(1)


async def test_filename_key_is_used_verbatim(uuids):
    resolver = KeyResolver("filename", uuids)

    assert await resolver.resolve_key(0, "Quarterly Report.v2.pdf") == "Quarterly Report.v2.pdf"
    assert resolver.registry.get(0) == "Quarterly Report.v2.pdf"


async def test_custom_key_gets_extension(uuids):
    resolver = KeyResolver(lambda file_id: "report", uuids)

    assert await resolver.resolve_key(0, "report.pdf") == "report.pdf"


async def test_custom_key_from_future(uuids):
    pending = asyncio.get_running_loop().create_future()
    resolver = KeyResolver(lambda file_id: pending, uuids)

    future = resolver.resolve_key(0, "data.zip")
    assert not future.done()
    assert resolver.registry.get(0) is None

    pending.set_result("archive")

    assert await future == "archive.zip"
    assert resolver.registry.get(0) == "archive.zip"


async def test_custom_key_from_coroutine(uuids):
    async def keyname(file_id):
        await asyncio.sleep(0)
        return f"uploads/{file_id}"

    resolver = KeyResolver(keyname, uuids)

    assert await resolver.resolve_key(2, "scan.png") == "uploads/2.png"


async def test_custom_key_from_concurrent_future(uuids):
    pending = concurrent.futures.Future()
    pending.set_result("threaded")
    resolver = KeyResolver(lambda file_id: pending, uuids)

    assert await resolver.resolve_key(0, "notes.txt") == "threaded.txt"


async def test_explicit_tags(uuids):
    pending = asyncio.get_running_loop().create_future()
    pending.set_result("later")
    names = {0: Immediate("now"), 1: Deferred(pending)}
    resolver = KeyResolver(names.__getitem__, uuids)

    assert await resolver.resolve_key(0, "a.csv") == "now.csv"
    assert await resolver.resolve_key(1, "b.csv") == "later.csv"


async def test_custom_key_without_extension_in_filename(uuids):
    pending = asyncio.get_running_loop().create_future()
    resolver = KeyResolver(lambda file_id: pending, uuids)

    future = resolver.resolve_key(0, "README")
    pending.set_result("notes")

    assert await future == "notes"


@pytest.mark.parametrize("empty", ["", 0])
async def test_empty_custom_key_falls_back_to_filename(uuids, empty):
    resolver = KeyResolver(lambda file_id: empty, uuids)

    assert await resolver.resolve_key(0, "data.zip") == "data.zip"


async def test_future_resolving_to_none_falls_back_to_filename(uuids):
    async def keyname(file_id):
        return None

    resolver = KeyResolver(keyname, uuids)

    assert await resolver.resolve_key(0, "data.zip") == "data.zip"


async def test_custom_none_fails(uuids, caplog):
    resolver = KeyResolver(lambda file_id: None, uuids)

    with caplog.at_level(logging.ERROR, logger="s3_uploads.keyname"):
        future = resolver.resolve_key(1, "report.pdf")
        with pytest.raises(KeyNameError) as exc_info:
            await future

    assert exc_info.value.file_id == 1
    assert resolver.registry.get(1) is None
    assert 1 not in resolver.registry
    assert "Failed to retrieve key name for 1" in caplog.text


async def test_custom_future_failure_fails(uuids, caplog):
    pending = asyncio.get_running_loop().create_future()
    resolver = KeyResolver(lambda file_id: pending, uuids)

    with caplog.at_level(logging.ERROR, logger="s3_uploads.keyname"):
        future = resolver.resolve_key(0, "report.pdf")
        pending.set_exception(RuntimeError("lookup service down"))
        with pytest.raises(KeyNameError):
            await future

    assert len(resolver.registry) == 0
    assert "lookup service down" in caplog.text


async def test_custom_future_cancelled_fails(uuids):
    pending = asyncio.get_running_loop().create_future()
    resolver = KeyResolver(lambda file_id: pending, uuids)

    future = resolver.resolve_key(0, "report.pdf")
    pending.cancel()

    with pytest.raises(KeyNameError):
        await future
    assert resolver.registry.get(0) is None


async def test_custom_function_raising_fails(uuids):
    def keyname(file_id):
        raise LookupError("no such file")

    resolver = KeyResolver(keyname, uuids)

    future = resolver.resolve_key(0, "report.pdf")

    with pytest.raises(KeyNameError):
        await future
    assert resolver.registry.get(0) is None


@pytest.mark.parametrize("keyname", ["bogus", 42, None])
async def test_invalid_keyname_option_fails(uuids, caplog, keyname):
    resolver = KeyResolver(keyname, uuids)

    with caplog.at_level(logging.ERROR, logger="s3_uploads.keyname"):
        future = resolver.resolve_key(0, "report.pdf")

    assert future.done()
    with pytest.raises(KeyNameError):
        future.result()
    assert f"{keyname!r} is not a valid value for the s3.keyname option!" in caplog.text
    assert len(resolver.registry) == 0


async def test_registry_written_before_continuation(uuids):
    pending = asyncio.get_running_loop().create_future()
    resolver = KeyResolver(lambda file_id: pending, uuids)
    seen = []

    future = resolver.resolve_key(0, "data.zip")
    future.add_done_callback(lambda done: seen.append(resolver.registry.get(0)))
    pending.set_result("archive")
    await future
    await asyncio.sleep(0)

    assert seen == ["archive.zip"]


async def test_failure_does_not_touch_other_files(uuids):
    loop = asyncio.get_running_loop()
    pending = {0: loop.create_future(), 1: loop.create_future(), 2: loop.create_future()}
    resolver = KeyResolver(pending.__getitem__, uuids)

    first = resolver.resolve_key(0, "a.txt")
    second = resolver.resolve_key(1, "b.txt")
    third = resolver.resolve_key(2, "c.txt")

    pending[0].set_result("alpha")
    assert await first == "alpha.txt"

    pending[2].set_exception(RuntimeError("nope"))
    with pytest.raises(KeyNameError):
        await third

    assert not second.done()
    pending[1].set_result("beta")
    assert await second == "beta.txt"

    assert list(resolver.registry.items()) == [(0, "alpha.txt"), (1, "beta.txt")]


async def test_resolutions_complete_out_of_order(uuids):
    slow = asyncio.get_running_loop().create_future()
    names = {0: slow, 1: "fast"}
    resolver = KeyResolver(names.__getitem__, uuids)

    first = resolver.resolve_key(0, "a.txt")
    second = resolver.resolve_key(1, "b.txt")

    assert second.done() and not first.done()
    assert list(resolver.registry) == [1]

    slow.set_result("slow")
    assert await first == "slow.txt"
    assert list(resolver.registry) == [0, 1]


async def test_key_is_recorded_once(uuids):
    calls = []

    def keyname(file_id):
        calls.append(file_id)
        return f"name-{len(calls)}"

    resolver = KeyResolver(keyname, uuids)

    assert await resolver.resolve_key(0, "a.txt") == "name-1.txt"
    assert await resolver.resolve_key(0, "a.txt") == "name-1.txt"
    assert resolver.registry.get(0) == "name-1.txt"


def test_registry_rejects_empty_keys():
    registry = KeyRegistry()

    with pytest.raises(ValueError):
        registry.add(0, "")
    assert 0 not in registry


def test_registry_clear():
    registry = KeyRegistry()
    registry.add(3, "c")
    registry.add(1, "a")

    assert list(registry.items()) == [(1, "a"), (3, "c")]

    registry.clear()
    registry.clear()

    assert len(registry) == 0
    assert registry.get(1) is None


async def test_key_arriving_after_clear_is_discarded(uuids):
    pending = asyncio.get_running_loop().create_future()
    resolver = KeyResolver(lambda file_id: pending, uuids)

    future = resolver.resolve_key(0, "data.zip")
    resolver.registry.clear()
    pending.set_result("late")

    with pytest.raises(KeyNameError):
        await future
    assert resolver.registry.get(0) is None
    assert len(resolver.registry) == 0


async def test_resolution_started_after_clear_is_recorded(uuids):
    resolver = KeyResolver(lambda file_id: "fresh", uuids)
    resolver.registry.clear()

    assert await resolver.resolve_key(0, "a.txt") == "fresh.txt"
    assert resolver.registry.get(0) == "fresh.txt"


async def test_resolver_holds_coroutine_task_until_done(uuids):
    gate = asyncio.Event()

    async def keyname(file_id):
        await gate.wait()
        return "gated"

    resolver = KeyResolver(keyname, uuids)

    future = resolver.resolve_key(0, "a.txt")
    await asyncio.sleep(0)
    assert len(resolver._pending) == 1

    gate.set()

    assert await future == "gated.txt"
    await asyncio.sleep(0)
    assert resolver._pending == set()
