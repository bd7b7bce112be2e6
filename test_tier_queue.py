"""
Тесты очередей уровней и состояния бэкенда (Redis подменяется очередью в памяти)
"""
import asyncio
import unittest
from collections import deque

from redis.exceptions import ConnectionError as RedisConnectionError

from vidqueue.models.acquisition_request import AcquisitionRequest
from vidqueue.models.system_load import SystemLoadSnapshot
from vidqueue.models.tier import Tier, TierState
from vidqueue.scheduler.context import SchedulerContext, BackendState
from vidqueue.scheduler.queue_manager import TierQueueManager
from vidqueue.services.errors import BackendUnavailableError


class FakeTaskQueue:
    """Очередь в памяти с интерфейсом RedisTaskQueue"""

    def __init__(self, name, redis_url=None, fail_ping=False):
        self.name = name
        self.redis_url = redis_url
        self.fail_ping = fail_ping
        self.fail_pop = False
        self.items = deque()
        self.closed = False

    async def ping(self):
        if self.fail_ping:
            raise RedisConnectionError("Connection refused")
        return True

    async def push(self, task_json):
        self.items.appendleft(task_json)

    async def pop(self, timeout=1):
        if self.fail_pop:
            raise RedisConnectionError("Connection reset by peer")
        if self.items:
            return self.items.pop()
        await asyncio.sleep(0.01)
        return None

    async def length(self):
        return len(self.items)

    async def close(self):
        self.closed = True


async def wait_until(predicate, timeout=2.0):
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("Условие не выполнено за отведенное время")
        await asyncio.sleep(0.01)


def make_request(job_id):
    return AcquisitionRequest(source_url=f'https://youtu.be/{job_id}', format_selector='720p', job_id=job_id)


class TestTierQueueManager(unittest.IsolatedAsyncioTestCase):

    async def asyncSetUp(self):
        self.context = SchedulerContext(tier_states={
            Tier.HIGH: TierState(Tier.HIGH, 1),
            Tier.MID: TierState(Tier.MID, 1),
            Tier.LOW: TierState(Tier.LOW, 1),
        })
        self.processed = []
        self.created = {}
        self.fail_ping = False

        async def handler(request):
            self.processed.append(request.job_id)
            if request.job_id == 'broken':
                raise RuntimeError("yt-dlp exploded")

        def factory(name, redis_url):
            queue = FakeTaskQueue(name, redis_url, fail_ping=self.fail_ping)
            self.created[name] = queue
            return queue

        self.manager = TierQueueManager(self.context, handler, redis_url='redis://localhost:6379/0',
                                        queue_factory=factory)

    async def asyncTearDown(self):
        await self.manager.close()
        await self.context.cancel_tasks()

    async def test_no_redis_url_means_direct_mode(self):
        manager = TierQueueManager(self.context, self.manager.handler, redis_url=None)
        self.assertFalse(await manager.connect())
        self.assertEqual(self.context.backend_state, BackendState.UNAVAILABLE)
        self.assertFalse(self.context.backend_available)

    async def test_connect_creates_three_queues(self):
        self.assertTrue(await self.manager.connect())
        self.assertEqual(self.context.backend_state, BackendState.AVAILABLE)
        self.assertEqual(set(self.created), {'premium-queue', 'free-queue', 'anonymous-queue'})
        self.assertEqual(set(self.context.queues), set(Tier))

    async def test_probe_failure_closes_queues(self):
        self.fail_ping = True
        self.assertFalse(await self.manager.connect())
        self.assertEqual(self.context.backend_state, BackendState.UNAVAILABLE)
        self.assertEqual(self.context.queues, {})
        self.assertTrue(all(queue.closed for queue in self.created.values()))

    async def test_jobs_processed_in_submission_order(self):
        await self.manager.connect()
        for job_id in ('1', '2', '3'):
            await self.manager.enqueue(Tier.MID, make_request(job_id))

        await wait_until(lambda: len(self.processed) == 3)
        self.assertEqual(self.processed, ['1', '2', '3'])

    async def test_failed_job_does_not_stop_worker(self):
        await self.manager.connect()
        await self.manager.enqueue(Tier.HIGH, make_request('broken'))
        await self.manager.enqueue(Tier.HIGH, make_request('next'))

        await wait_until(lambda: 'next' in self.processed)
        self.assertEqual(self.processed, ['broken', 'next'])

    async def test_paused_tier_does_not_pull(self):
        await self.manager.connect()
        self.manager.apply_load(SystemLoadSnapshot.from_sample(95, 50))
        await self.manager.enqueue(Tier.LOW, make_request('waiting'))

        await asyncio.sleep(0.1)
        self.assertEqual(self.processed, [])
        self.assertEqual(await self.context.queues[Tier.LOW].length(), 1)

        self.manager.apply_load(SystemLoadSnapshot.from_sample(10, 10))
        await wait_until(lambda: self.processed == ['waiting'])

    async def test_runtime_error_marks_backend_unavailable(self):
        await self.manager.connect()
        self.created['free-queue'].fail_pop = True

        await wait_until(lambda: self.context.backend_state == BackendState.UNAVAILABLE)
        self.assertEqual(self.context.queues, {})
        await wait_until(lambda: all(queue.closed for queue in self.created.values()))

        with self.assertRaises(BackendUnavailableError):
            await self.manager.enqueue(Tier.MID, make_request('1'))

    async def test_system_status(self):
        await self.manager.connect()
        self.manager.apply_load(SystemLoadSnapshot.from_sample(85, 50))

        status = await self.manager.system_status()
        self.assertEqual(status['backend'], 'available')
        self.assertTrue(status['redisAvailable'])
        self.assertTrue(status['queues']['anonymous-queue']['paused'])
        self.assertFalse(status['queues']['premium-queue']['paused'])
        self.assertEqual(status['queues']['premium-queue']['concurrency'], 1)
        self.assertEqual(status['queues']['free-queue']['waiting'], 0)

    def make_manager(self, handler, concurrency=1, shutdown_timeout=1.0):
        """Отдельный менеджер со своим обработчиком; возвращает (manager, созданные очереди)"""
        context = SchedulerContext(tier_states={tier: TierState(tier, concurrency) for tier in Tier})
        created = {}

        def factory(name, redis_url):
            created[name] = FakeTaskQueue(name, redis_url)
            return created[name]

        manager = TierQueueManager(context, handler, redis_url='redis://localhost:6379/0',
                                   queue_factory=factory, shutdown_timeout=shutdown_timeout)
        self.addAsyncCleanup(context.cancel_tasks)
        self.addAsyncCleanup(manager.close)
        return manager, created

    async def test_in_flight_jobs_bounded_by_concurrency(self):
        release = asyncio.Event()
        running = []
        finished = []
        peak = 0

        async def handler(request):
            nonlocal peak
            running.append(request.job_id)
            peak = max(peak, len(running))
            await release.wait()
            running.remove(request.job_id)
            finished.append(request.job_id)

        manager, _ = self.make_manager(handler, concurrency=2)
        await manager.connect()
        for job_id in ('1', '2', '3', '4'):
            await manager.enqueue(Tier.MID, make_request(job_id))

        await wait_until(lambda: len(running) == 2)
        await asyncio.sleep(0.1)
        self.assertEqual(sorted(running), ['1', '2'])
        self.assertEqual(await manager.context.queues[Tier.MID].length(), 2)

        release.set()
        await wait_until(lambda: len(finished) == 4)
        self.assertEqual(peak, 2)

    async def test_pause_does_not_interrupt_running_job(self):
        started = asyncio.Event()
        release = asyncio.Event()
        finished = []

        async def handler(request):
            started.set()
            await release.wait()
            finished.append(request.job_id)

        manager, _ = self.make_manager(handler)
        await manager.connect()
        await manager.enqueue(Tier.LOW, make_request('running'))
        await asyncio.wait_for(started.wait(), 2)

        manager.apply_load(SystemLoadSnapshot.from_sample(95, 50))
        self.assertTrue(manager.context.tier_states[Tier.LOW].paused)
        await manager.enqueue(Tier.LOW, make_request('waiting'))

        release.set()
        await wait_until(lambda: finished == ['running'])
        await asyncio.sleep(0.1)
        self.assertEqual(finished, ['running'])
        self.assertEqual(await manager.context.queues[Tier.LOW].length(), 1)

    async def test_redis_error_lets_other_tiers_finish_running_jobs(self):
        """Ошибка Redis в одной очереди не отменяет выполняющиеся задачи других уровней"""
        started = asyncio.Event()
        release = asyncio.Event()
        finished = []

        async def handler(request):
            started.set()
            await release.wait()
            finished.append(request.job_id)

        manager, created = self.make_manager(handler, shutdown_timeout=0.05)
        await manager.connect()
        await manager.enqueue(Tier.HIGH, make_request('premium-job'))
        await asyncio.wait_for(started.wait(), 2)

        created['anonymous-queue'].fail_pop = True
        await wait_until(lambda: manager.context.backend_state == BackendState.UNAVAILABLE)

        await asyncio.sleep(0.2)
        self.assertEqual(finished, [])
        self.assertFalse(created['premium-queue'].closed)

        release.set()
        await wait_until(lambda: finished == ['premium-job'])
        await wait_until(lambda: all(queue.closed for queue in created.values()))
    async def test_close_closes_all_queues(self):
        await self.manager.connect()
        await self.manager.close()
        self.assertEqual(self.context.backend_state, BackendState.UNAVAILABLE)
        self.assertTrue(all(queue.closed for queue in self.created.values()))


if __name__ == '__main__':
    unittest.main()
