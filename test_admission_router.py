"""
Тесты приема задач: очередь или прямая обработка
"""
import os
import shutil
import tempfile
import unittest
from unittest.mock import AsyncMock, Mock

from redis.exceptions import ConnectionError as RedisConnectionError

from vidqueue.app import SchedulerApp
from vidqueue.database.job_repository import InMemoryJobRepository
from vidqueue.models.acquisition_request import AcquisitionRequest
from vidqueue.models.extraction_result import ExtractionResult, QueuedResponse
from vidqueue.models.system_load import SystemLoadSnapshot
from vidqueue.models.tier import Tier
from vidqueue.scheduler.admission import AdmissionRouter, estimated_wait
from vidqueue.scheduler.context import SchedulerContext, BackendState
from vidqueue.services.entitlement import StaticEntitlementResolver
from vidqueue.services.errors import ExtractionError


def make_request(caller_id=None, job_id='job-1'):
    return AcquisitionRequest(
        source_url='https://youtu.be/abc',
        format_selector='720p',
        job_id=job_id,
        caller_id=caller_id,
    )


class TestEntitlements(unittest.IsolatedAsyncioTestCase):

    async def test_resolve_tier(self):
        resolver = StaticEntitlementResolver(['42'])
        self.assertEqual(await resolver.resolve_tier('42'), Tier.HIGH)
        self.assertEqual(await resolver.resolve_tier('7'), Tier.MID)
        self.assertEqual(await resolver.resolve_tier(None), Tier.LOW)


class TestAdmissionRouter(unittest.IsolatedAsyncioTestCase):

    async def asyncSetUp(self):
        self.context = SchedulerContext()
        self.queue_manager = Mock()
        self.queue_manager.enqueue = AsyncMock()
        self.processor = Mock()
        self.processor.process = AsyncMock(
            side_effect=lambda request: ExtractionResult(job_id=request.job_id, status='completed',
                                                         artifact_path='/tmp/x.mp4')
        )
        self.router = AdmissionRouter(self.context, self.queue_manager, self.processor,
                                      StaticEntitlementResolver(['premium-user']))

    def make_available(self):
        self.context.backend_state = BackendState.AVAILABLE
        self.context.queues = {tier: Mock() for tier in Tier}

    async def test_unavailable_backend_returns_terminal_result(self):
        """Redis недоступен - результат возвращается сразу, без очереди"""
        result = await self.router.submit(make_request())

        self.assertIsInstance(result, ExtractionResult)
        self.assertTrue(result.is_completed())
        self.queue_manager.enqueue.assert_not_called()
        request = self.processor.process.call_args.args[0]
        self.assertEqual(request.tier_hint, Tier.LOW)

    async def test_direct_failure_becomes_failed_result(self):
        self.processor.process.side_effect = ExtractionError(1, 'E' * 500)

        result = await self.router.submit(make_request('user-1'))

        self.assertTrue(result.is_failed())
        self.assertEqual(len(result.error_message), 200)

    async def test_queued_with_estimated_wait(self):
        self.make_available()

        premium = await self.router.submit(make_request('premium-user'))
        registered = await self.router.submit(make_request('user-1'))
        anonymous = await self.router.submit(make_request())

        self.assertIsInstance(premium, QueuedResponse)
        self.assertEqual((premium.tier, premium.estimated_wait_seconds), (Tier.HIGH, 10))
        self.assertEqual((registered.tier, registered.estimated_wait_seconds), (Tier.MID, 30))
        self.assertEqual((anonymous.tier, anonymous.estimated_wait_seconds), (Tier.LOW, 60))
        self.assertEqual(anonymous.queue_name, 'anonymous-queue')
        self.processor.process.assert_not_called()

        tier, request = self.queue_manager.enqueue.call_args.args
        self.assertEqual(tier, Tier.LOW)
        self.assertEqual(request.tier_hint, Tier.LOW)

    async def test_overloaded_estimates(self):
        self.make_available()
        self.context.publish_snapshot(SystemLoadSnapshot.from_sample(85, 10))

        result = await self.router.submit(make_request('premium-user'))
        self.assertEqual(result.estimated_wait_seconds, 30)
        self.assertEqual(estimated_wait(Tier.MID, True), 120)
        self.assertEqual(estimated_wait(Tier.LOW, True), 300)

    async def test_enqueue_failure_falls_back_to_direct(self):
        self.make_available()
        self.queue_manager.enqueue.side_effect = RedisConnectionError("Connection reset by peer")

        result = await self.router.submit(make_request('user-1'))

        self.assertIsInstance(result, ExtractionResult)
        self.queue_manager.mark_unavailable.assert_called_once()
        self.processor.process.assert_awaited_once()

    async def test_payload_accepted(self):
        result = await self.router.submit({
            'sourceUrl': 'https://youtu.be/abc',
            'formatSelector': 'best',
            'jobId': 'job-9',
        })
        self.assertEqual(result.job_id, 'job-9')

    async def test_blank_selector_payload_returns_failed_result(self):
        """Селектор из пробелов - итоговый failed результат, а не исключение"""
        result = await self.router.submit({
            'sourceUrl': 'https://youtu.be/abc',
            'formatSelector': '   ',
            'jobId': 'job-10',
        })

        self.assertIsInstance(result, ExtractionResult)
        self.assertTrue(result.is_failed())
        self.assertEqual(result.job_id, 'job-10')
        self.processor.process.assert_not_called()

    async def test_payload_without_job_id_is_rejected(self):
        with self.assertRaises(ValueError):
            await self.router.submit({'sourceUrl': 'https://youtu.be/abc', 'formatSelector': '720p'})

    async def test_direct_value_error_becomes_failed_result(self):
        self.processor.process.side_effect = ValueError("Пустой селектор формата")

        result = await self.router.submit(make_request('user-1'))

        self.assertTrue(result.is_failed())
        self.assertIn("Пустой селектор формата", result.error_message)


class TestSchedulerApp(unittest.IsolatedAsyncioTestCase):
    """Сборка без Redis: прямая обработка"""

    async def asyncSetUp(self):
        self.test_dir = tempfile.mkdtemp()

    async def asyncTearDown(self):
        if os.path.exists(self.test_dir):
            shutil.rmtree(self.test_dir)

    async def test_direct_mode_end_to_end(self):
        async def fake_download(url, format_selector, output_dir, quality_key=None):
            os.makedirs(output_dir, exist_ok=True)
            path = os.path.join(output_dir, '1700000000000.mp4')
            with open(path, 'wb') as f:
                f.write(b'x' * 2048)
            return path

        ytdlp = Mock()
        ytdlp.download = AsyncMock(side_effect=fake_download)
        repository = InMemoryJobRepository()

        app = SchedulerApp(ytdlp=ytdlp, repository=repository, redis_url=None,
                           sampler=lambda: (10.0, 10.0), download_dir=self.test_dir,
                           entitlements=StaticEntitlementResolver([]))
        async with app:
            result = await app.submit({
                'sourceUrl': 'https://youtu.be/abc',
                'formatSelector': '720p',
                'jobId': 'job-1',
                'callerId': 'user-1',
            })
            status = await app.system_status()

        self.assertTrue(result.is_completed())
        self.assertEqual(result.file_size_bytes, 2048)
        self.assertEqual(os.path.dirname(result.artifact_path), os.path.join(self.test_dir, 'user-1'))
        self.assertEqual(status['backend'], 'unavailable')
        self.assertEqual(status['queues']['premium-queue']['concurrency'], 5)
        record = await repository.get('job-1')
        self.assertEqual(record['status'], 'completed')
        self.assertEqual(app.context.pending_tasks, 0)


if __name__ == '__main__':
    unittest.main()
