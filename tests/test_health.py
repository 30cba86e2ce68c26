import aiohttp
import pytest

from wattwatch.health import HealthReporter, HealthServer


@pytest.mark.asyncio
async def test_health_reporter_snapshot():
    reporter = HealthReporter()

    await reporter.update("telemetry", True)
    await reporter.update("notifications", False, "broker unreachable")

    snapshot = await reporter.snapshot()

    assert snapshot["status"] == "degraded"
    components = {item["name"]: item for item in snapshot["components"]}
    assert components["telemetry"]["healthy"] is True
    assert components["notifications"]["detail"] == "broker unreachable"


@pytest.mark.asyncio
async def test_health_reporter_recovers_to_ok():
    reporter = HealthReporter()

    await reporter.update("telemetry", False, "timed out")
    await reporter.update("telemetry", True)

    snapshot = await reporter.snapshot()

    assert snapshot["status"] == "ok"


@pytest.mark.asyncio
async def test_health_server_serves_snapshot_and_status(unused_tcp_port):
    reporter = HealthReporter()
    await reporter.update("telemetry", True)

    host = "127.0.0.1"
    port = unused_tcp_port
    server = HealthServer(
        reporter, host, port, status_provider=lambda: {"remainingBalancePercent": 42.5}
    )
    await server.start()

    try:
        async with aiohttp.ClientSession() as session:
            async with session.get(f"http://{host}:{port}/healthz") as response:
                payload = await response.json()
                assert response.status == 200
                assert payload["status"] == "ok"
            async with session.get(f"http://{host}:{port}/status") as response:
                assert await response.json() == {"remainingBalancePercent": 42.5}
    finally:
        await server.stop()


@pytest.mark.asyncio
async def test_health_server_reports_degraded_with_503(unused_tcp_port):
    reporter = HealthReporter()
    await reporter.update("telemetry", False, "stopped")

    server = HealthServer(reporter, "127.0.0.1", unused_tcp_port)
    await server.start()

    try:
        async with aiohttp.ClientSession() as session:
            async with session.get(f"http://127.0.0.1:{unused_tcp_port}/healthz") as response:
                assert response.status == 503
            async with session.get(f"http://127.0.0.1:{unused_tcp_port}/status") as response:
                assert response.status == 404
    finally:
        await server.stop()
