import asyncio

import pytest

from flagproviders.connector import (
    Connector,
    FileConnector,
    QueuePayload,
    QueuePayloadType,
)

CONTENT = '{"flags": {}}'


async def _next(connector, timeout=2.0):
    return await asyncio.wait_for(connector.stream.get(), timeout)


async def _wait_for(connector, predicate, attempts=40):
    for _ in range(attempts):
        payload = await _next(connector)
        if predicate(payload):
            return payload
    raise AssertionError("expected payload never arrived")


@pytest.mark.asyncio
async def test_init_sends_file_contents(tmp_path):
    path = tmp_path / "flags.json"
    path.write_text(CONTENT, encoding="utf-8")
    connector = FileConnector(path, poll_interval=0.05)
    await connector.init()
    try:
        payload = await _next(connector)
        assert payload == QueuePayload(QueuePayloadType.DATA, CONTENT, None)
    finally:
        await connector.shutdown()


@pytest.mark.asyncio
async def test_polling_resends_and_picks_up_changes(tmp_path):
    path = tmp_path / "flags.json"
    path.write_text(CONTENT, encoding="utf-8")
    connector = FileConnector(path, poll_interval=0.05)
    await connector.init()
    try:
        first = await _next(connector)
        second = await _next(connector)
        assert first.flag_data == second.flag_data == CONTENT
        updated = '{"flags": {"x": 1}}'
        path.write_text(updated, encoding="utf-8")
        payload = await _wait_for(connector, lambda p: p.flag_data == updated)
        assert payload.payload_type is QueuePayloadType.DATA
    finally:
        await connector.shutdown()


@pytest.mark.asyncio
async def test_missing_file_raises_on_init(tmp_path):
    connector = FileConnector(tmp_path / "absent.json")
    with pytest.raises(FileNotFoundError):
        await connector.init()


@pytest.mark.asyncio
async def test_deleted_file_reports_error(tmp_path):
    path = tmp_path / "flags.json"
    path.write_text(CONTENT, encoding="utf-8")
    connector = FileConnector(path, poll_interval=0.05)
    await connector.init()
    try:
        await _next(connector)
        path.unlink()
        payload = await _wait_for(
            connector, lambda p: p.payload_type is QueuePayloadType.ERROR
        )
        assert payload.payload_type is QueuePayloadType.ERROR
        assert payload.metadata is None
    finally:
        await connector.shutdown()


@pytest.mark.asyncio
async def test_shutdown_stops_polling(tmp_path):
    path = tmp_path / "flags.json"
    path.write_text(CONTENT, encoding="utf-8")
    connector = FileConnector(path, poll_interval=0.02)
    await connector.init()
    await _next(connector)
    await connector.shutdown()
    while not connector.stream.empty():
        connector.stream.get_nowait()
    await asyncio.sleep(0.15)
    assert connector.stream.qsize() == 0


def test_path_is_normalised(tmp_path):
    path = tmp_path / "flags.json"
    connector = FileConnector(str(path))
    assert connector.path == path
    assert connector.poll_interval == 0.1


def test_connector_is_abstract():
    with pytest.raises(TypeError):
        Connector()