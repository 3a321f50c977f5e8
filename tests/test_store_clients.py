import asyncio

import pytest

from shared.clients.store.StoreClientManager import StoreClientManager
from shared.clients.store.memory.StoreClientMemory import StoreClientMemory
from shared.clients.store.sqlite.StoreClientSqlite import StoreClientSqlite
from shared.models.document import VectorDocument, VectorMetadata
from shared.models.search import VectorFilter


def run(coro):
    return asyncio.run(coro)


def make_doc(content, timestamp, **meta):
    return VectorDocument(
        content=content,
        embedding=[1.0, 2.0],
        normalized_embedding=[0.4472, 0.8944],
        norm=2.236,
        metadata=VectorMetadata(timestamp=timestamp, **meta),
    )


@pytest.fixture(params=["memory", "sqlite"])
def client(request, helper_config, tmp_path, monkeypatch):
    if request.param == "memory":
        return StoreClientMemory(helper_config=helper_config)
    monkeypatch.setenv("STORE_SQLITE_PATH", str(tmp_path / "db" / "vectors.db"))
    return StoreClientSqlite(helper_config=helper_config)


def test_store_contract(client):
    async def scenario():
        await client.boot()
        try:
            assert await client.do_healthcheck()
            a = await client.do_add(make_doc("a", 300, type="chat", session_id="s1"))
            b = await client.do_add(make_doc("b", 100, type="file", file_id="f1"))
            c = await client.do_add(make_doc("c", 200, type="file", file_id="f2", url="u"))
            assert a < b < c

            got = await client.do_get(b)
            assert got.id == b
            assert got.content == "b"
            assert got.embedding == [1.0, 2.0]
            assert got.metadata.file_id == "f1"
            assert await client.do_get(999) is None

            assert [d.id for d in await client.do_find()] == [a, b, c]
            assert [d.id for d in await client.do_find(order_by="timestamp")] == [b, c, a]
            assert [d.id for d in await client.do_find(order_by="timestamp", offset=1, limit=1)] == [c]
            assert [d.id for d in await client.do_find(VectorFilter(type="file"))] == [b, c]
            assert [d.id for d in await client.do_find(VectorFilter(file_id=["f2", "zz"]))] == [c]
            assert await client.do_find(VectorFilter(file_id=[])) == []
            assert await client.do_count() == 3
            assert await client.do_count(VectorFilter(session_id="s1")) == 1
            assert await client.do_count(VectorFilter(url="u", type="file")) == 1

            # cursor paging
            assert [d.id for d in await client.do_find(after_id=a)] == [b, c]
            assert [d.id for d in await client.do_find(order_by="timestamp", after_id=b, after_timestamp=100)] == [c, a]
            assert [d.id for d in await client.do_find(VectorFilter(type="file"), order_by="timestamp", after_id=b, after_timestamp=100, limit=5)] == [c]
            with pytest.raises(ValueError):
                await client.do_find(order_by="timestamp", after_id=b)

            assert await client.do_delete(b)
            assert await client.do_bulk_delete([a, 12345]) == 1
            assert not await client.do_delete(a)
            assert await client.do_bulk_delete([c, c]) == 1
            assert await client.do_count() == 0

            # ids are never reused
            d = await client.do_add(make_doc("d", 1, type="chat"))
            assert d > c
            assert await client.do_clear() == 1
            e = await client.do_add(make_doc("e", 1, type="chat"))
            assert e > d
        finally:
            await client.close()

    run(scenario())


def test_sqlite_persists_across_reopen(helper_config, tmp_path, monkeypatch):
    monkeypatch.setenv("STORE_SQLITE_PATH", str(tmp_path / "vectors.db"))

    async def scenario():
        first = StoreClientSqlite(helper_config=helper_config)
        await first.boot()
        doc_id = await first.do_add(make_doc("persisted", 5, type="webpage", url="https://example.org"))
        await first.close()

        second = StoreClientSqlite(helper_config=helper_config)
        await second.boot()
        try:
            return doc_id, await second.do_get(doc_id)
        finally:
            await second.close()

    doc_id, doc = run(scenario())
    assert doc.id == doc_id
    assert doc.content == "persisted"
    assert doc.metadata.url == "https://example.org"


def test_sqlite_requires_boot(helper_config, tmp_path, monkeypatch):
    monkeypatch.setenv("STORE_SQLITE_PATH", str(tmp_path / "vectors.db"))
    client = StoreClientSqlite(helper_config=helper_config)
    assert not run(client.do_healthcheck())
    with pytest.raises(RuntimeError):
        run(client.do_count())


def test_manager_selects_engine(helper_config, monkeypatch, tmp_path):
    monkeypatch.setenv("STORE_ENGINE", "memory")
    assert isinstance(StoreClientManager(helper_config).get_client(), StoreClientMemory)
    monkeypatch.setenv("STORE_ENGINE", "SQLite")
    monkeypatch.setenv("STORE_SQLITE_PATH", str(tmp_path / "x.db"))
    client = StoreClientManager(helper_config).get_client()
    assert isinstance(client, StoreClientSqlite)
    assert client.get_engine_name() == "sqlite"
    monkeypatch.setenv("STORE_ENGINE", "redis")
    with pytest.raises(ValueError):
        StoreClientManager(helper_config)
