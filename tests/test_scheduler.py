from __future__ import annotations

import asyncio

from app.utils import now_ms

from fakes import FakeUpstream, build_stack, list_page

PAGE = list_page(["tt0000001"], title="Alpha")


def _upstream() -> FakeUpstream:
    return FakeUpstream(
        pages={
            "www.imdb.com/list/ls1000001/": PAGE,
            "www.imdb.com/list/ls1000001/?mode=detail": PAGE,
        },
        metas={"movie/tt0000001": {"name": "One"}},
    )


def test_stale_cache_triggers_one_background_run() -> None:
    upstream = _upstream()

    async def runner():
        async with upstream.client() as client:
            service = build_stack(client, static_list_ids=("ls1000001",), interval_seconds=60)
            scheduler = service.scheduler
            started = scheduler.maybe_trigger()
            # A second read while the run is active does not start another.
            again = scheduler.maybe_trigger()
            while scheduler.background_runs:
                await asyncio.sleep(0.01)
            fresh = scheduler.maybe_trigger()
            return service, started, again, fresh

    service, started, again, fresh = asyncio.run(runner())

    assert started is True
    assert again is False
    assert fresh is False
    assert service.context.lists["ls1000001"].ids == ["tt0000001"]


def test_disabled_interval_never_triggers() -> None:
    upstream = _upstream()

    async def runner():
        async with upstream.client() as client:
            service = build_stack(client, interval_seconds=0)
            scheduler = service.scheduler
            scheduler.start()
            return scheduler.running, scheduler.maybe_trigger(), scheduler.next_sync_at()

    running, triggered, next_sync_at = asyncio.run(runner())

    assert running is False
    assert triggered is False
    assert next_sync_at is None


def test_start_stop_and_trigger_now_rearm_the_loop() -> None:
    upstream = _upstream()

    async def runner():
        async with upstream.client() as client:
            service = build_stack(client, static_list_ids=("ls1000001",), interval_seconds=3600)
            scheduler = service.scheduler
            scheduler.start()
            first_task = scheduler._loop_task
            due_before = scheduler._due_at
            await asyncio.sleep(0.01)
            ran = await scheduler.trigger_now()
            rearmed = scheduler._loop_task is first_task and scheduler._due_at > due_before
            next_sync_at = scheduler.next_sync_at()
            await scheduler.stop()
            return ran, rearmed, next_sync_at, scheduler.running, service

    ran, rearmed, next_sync_at, running_after_stop, service = asyncio.run(runner())

    assert ran is True
    assert rearmed is True
    assert running_after_stop is False
    assert next_sync_at == service.context.last_sync_at + 3600 * 1000
    assert service.context.last_sync_at <= now_ms()


def test_manual_trigger_during_a_timed_run_does_not_cancel_it() -> None:
    upstream = _upstream()

    async def runner():
        reached = asyncio.Event()
        release = asyncio.Event()

        async def hold(request):
            reached.set()
            await release.wait()

        upstream.before_response = hold
        async with upstream.client() as client:
            service = build_stack(client, static_list_ids=("ls1000001",), interval_seconds=1)
            scheduler = service.scheduler
            scheduler.start()
            await reached.wait()
            triggered = await service.trigger_sync()
            release.set()
            while scheduler.background_runs:
                await asyncio.sleep(0.01)
            await scheduler.stop()
            return service, triggered

    service, triggered = asyncio.run(runner())

    assert triggered is False
    assert service.context.last_sync_at > 0
    assert service.context.lists["ls1000001"].ids == ["tt0000001"]


def test_purge_during_a_timed_run_leaves_it_running() -> None:
    upstream = _upstream()

    async def runner():
        reached = asyncio.Event()
        release = asyncio.Event()

        async def hold(request):
            reached.set()
            await release.wait()

        upstream.before_response = hold
        async with upstream.client() as client:
            service = build_stack(client, static_list_ids=("ls1000001",), interval_seconds=1)
            scheduler = service.scheduler
            scheduler.start()
            await reached.wait()
            purged = await service.purge_and_sync()
            release.set()
            while scheduler.background_runs:
                await asyncio.sleep(0.01)
            await scheduler.stop()
            return service, purged

    service, purged = asyncio.run(runner())

    assert purged is False
    assert service.context.lists["ls1000001"].ids == ["tt0000001"]


def test_service_start_syncs_once_with_timer_disabled() -> None:
    upstream = _upstream()

    async def runner():
        async with upstream.client() as client:
            service = build_stack(client, static_list_ids=("ls1000001",), interval_seconds=0)
            await service.start()
            launched = service.scheduler.background_runs
            while service.scheduler.background_runs:
                await asyncio.sleep(0.01)
            await service.stop()
            return service, launched

    service, launched = asyncio.run(runner())

    assert launched == 1
    assert service.scheduler.running is False
    assert service.context.lists["ls1000001"].ids == ["tt0000001"]


def test_stop_waits_for_a_run_in_flight() -> None:
    upstream = _upstream()

    async def runner():
        release = asyncio.Event()

        async def hold(request):
            await release.wait()

        upstream.before_response = hold
        async with upstream.client() as client:
            service = build_stack(client, static_list_ids=("ls1000001",), interval_seconds=0)
            await service.start()
            stopping = asyncio.create_task(service.stop())
            await asyncio.sleep(0.01)
            pending = not stopping.done()
            release.set()
            await stopping
            return service, pending

    service, pending = asyncio.run(runner())

    assert pending is True
    assert service.context.lists["ls1000001"].ids == ["tt0000001"]
