import asyncio
import unittest
from functools import partial

from webshot.browser import PlaywrightSession, SeleniumSession, create_session
from webshot.browser.orchestrator import CaptureOrchestrator
from webshot.browser.pool import SessionPool
from webshot.browser.session import SessionState
from webshot.core.config import Settings
from webshot.core.errors import LaunchError, NavigationError, SessionStateError
from webshot.core.schemas import ResourceKind, SessionConfig
from webshot.test_helpers import PNG_BYTES, FakeSession, open_processes


class TestCreateSession(unittest.TestCase):

    def test_engines(self):
        config = SessionConfig()
        self.assertIsInstance(create_session("playwright", config), PlaywrightSession)
        self.assertIsInstance(create_session("selenium", config), SeleniumSession)
        self.assertIs(create_session("playwright", config).config, config)

    def test_unknown_engine(self):
        with self.assertRaises(ValueError):
            create_session("netscape")


class TestSessionConfigFromSettings(unittest.TestCase):

    def test_defaults(self):
        config = SessionConfig.from_settings(Settings(_env_file=None))
        self.assertEqual(config.viewport.width, 1920)
        self.assertEqual(config.viewport.height, 1080)
        self.assertEqual(config.navigation_timeout, 30000)
        self.assertIn("Googlebot", config.user_agent)
        self.assertEqual(config.blocked_resource_kinds, frozenset())

    def test_optimize_load_blocks_images_by_default(self):
        config = SessionConfig.from_settings(Settings(_env_file=None, optimize_load=True))
        self.assertEqual(config.blocked_resource_kinds, frozenset({ResourceKind.IMAGE}))

    def test_optimize_load_with_all_kinds(self):
        settings = Settings(_env_file=None, optimize_load=True, block_css=True, block_fonts=True)
        config = SessionConfig.from_settings(settings)
        self.assertEqual(config.blocked_resource_kinds, frozenset(ResourceKind))

    def test_block_flags_ignored_without_optimize_load(self):
        settings = Settings(_env_file=None, block_css=True, block_fonts=True)
        self.assertEqual(SessionConfig.from_settings(settings).blocked_resource_kinds, frozenset())


class TestPerRequestPolicy(unittest.IsolatedAsyncioTestCase):

    def setUp(self):
        self.registry = []
        self.sessions = []

    def factory(self, **behaviour):
        def build():
            session = FakeSession(registry=self.registry, **behaviour)
            self.sessions.append(session)
            return session
        return build

    async def test_success_releases_everything(self):
        orchestrator = CaptureOrchestrator(self.factory())
        result = await orchestrator.capture("http://example.com")
        self.assertEqual(result.image_bytes, PNG_BYTES)
        self.assertEqual(orchestrator.active_sessions, 0)
        self.assertEqual(open_processes(self.registry), 0)
        self.assertEqual(self.sessions[0].visited, ["http://example.com"])
        self.assertEqual(self.sessions[0].state, SessionState.IDLE)

    async def test_failure_releases_everything(self):
        orchestrator = CaptureOrchestrator(self.factory(goto_error=RuntimeError("dns")))
        with self.assertRaises(NavigationError):
            await orchestrator.capture("http://nope.invalid")
        self.assertEqual(orchestrator.active_sessions, 0)
        self.assertEqual(open_processes(self.registry), 0)

    async def test_launch_failure(self):
        orchestrator = CaptureOrchestrator(self.factory(fail_page=True))
        with self.assertRaises(LaunchError):
            await orchestrator.capture("http://example.com")
        self.assertEqual(orchestrator.active_sessions, 0)
        self.assertEqual(open_processes(self.registry), 0)

    async def test_one_session_per_request(self):
        orchestrator = CaptureOrchestrator(self.factory())
        await asyncio.gather(*[
            orchestrator.capture(f"http://example.com/{i}") for i in range(5)
        ])
        self.assertEqual(len(self.sessions), 5)
        self.assertEqual([len(s.visited) for s in self.sessions], [1] * 5)
        self.assertEqual(open_processes(self.registry), 0)

    async def test_browser_crash_releases_driver(self):
        orchestrator = CaptureOrchestrator(self.factory(disconnect_on_goto=True))
        with self.assertRaises(NavigationError):
            await orchestrator.capture("http://example.com")
        self.assertEqual(orchestrator.active_sessions, 0)
        self.assertEqual(open_processes(self.registry), 0)

    async def test_teardown_error_does_not_fail_capture(self):
        orchestrator = CaptureOrchestrator(self.factory(close_error=RuntimeError("zombie")))
        result = await orchestrator.capture("http://example.com")
        self.assertEqual(result.image_bytes, PNG_BYTES)
        self.assertEqual(len(self.sessions[0].teardown_errors), 1)

    def test_unknown_policy(self):
        with self.assertRaises(ValueError):
            CaptureOrchestrator(self.factory(), policy="shared")


class TestSessionPool(unittest.IsolatedAsyncioTestCase):

    def setUp(self):
        self.registry = []
        self.factory = partial(FakeSession, registry=self.registry)

    async def test_reuses_started_sessions(self):
        pool = SessionPool(self.factory, size=1)
        async with pool.session() as first:
            self.assertTrue(first.is_started)
            self.assertEqual(pool.in_use, 1)
        async with pool.session() as second:
            self.assertIs(second, first)
        self.assertEqual(first.launches, 1)
        self.assertEqual(pool.in_use, 0)
        await pool.close()
        self.assertEqual(open_processes(self.registry), 0)

    async def test_checkout_is_exclusive(self):
        pool = SessionPool(self.factory, size=2)
        holders = []

        async def use():
            async with pool.session() as session:
                self.assertNotIn(session, holders)
                holders.append(session)
                await asyncio.sleep(0.01)
                holders.remove(session)

        await asyncio.gather(*[use() for _ in range(6)])
        self.assertEqual(len(self.registry), 2)
        await pool.close()
        self.assertEqual(open_processes(self.registry), 0)

    async def test_restarts_disconnected_session(self):
        pool = SessionPool(self.factory, size=1)
        async with pool.session() as session:
            session.disconnect()
        async with pool.session() as again:
            self.assertIs(again, session)
            self.assertEqual(again.state, SessionState.READY)
        self.assertEqual(session.launches, 2)
        self.assertTrue(self.registry[0].closed)
        await pool.close()
        self.assertEqual(open_processes(self.registry), 0)

    async def test_close_releases_disconnected_session(self):
        pool = SessionPool(self.factory, size=1)
        async with pool.session() as session:
            session.disconnect()
        self.assertEqual(open_processes(self.registry), 1)
        await pool.close()
        self.assertEqual(open_processes(self.registry), 0)

    async def test_failed_start_returns_session(self):
        pool = SessionPool(partial(FakeSession, fail_spawn=True), size=1)
        with self.assertRaises(LaunchError):
            await pool.acquire()
        self.assertEqual(pool.in_use, 0)
        with self.assertRaises(LaunchError):
            await pool.acquire()

    async def test_cancelled_acquire_returns_session(self):
        session = FakeSession(registry=self.registry, hang_launch=True)
        pool = SessionPool(lambda: session, size=1)
        task = asyncio.create_task(pool.acquire())
        await asyncio.sleep(0.01)
        self.assertEqual(pool.in_use, 1)

        task.cancel()
        with self.assertRaises(asyncio.CancelledError):
            await task
        self.assertEqual(pool.in_use, 0)
        self.assertEqual(session.state, SessionState.IDLE)

        session.hang_launch = False
        acquired = await asyncio.wait_for(pool.acquire(), timeout=1)
        self.assertIs(acquired, session)
        self.assertTrue(acquired.is_started)
        await pool.release(acquired)
        await pool.close()
        self.assertEqual(open_processes(self.registry), 0)

    async def test_closed_pool(self):
        pool = SessionPool(self.factory, size=1)
        await pool.close()
        with self.assertRaises(SessionStateError):
            await pool.acquire()

    async def test_session_in_use_stopped_on_release_after_close(self):
        pool = SessionPool(self.factory, size=1)
        session = await pool.acquire()
        await pool.close()
        self.assertTrue(session.is_started)
        await pool.release(session)
        self.assertEqual(session.state, SessionState.IDLE)

    def test_invalid_size(self):
        with self.assertRaises(ValueError):
            SessionPool(self.factory, size=0)


class TestPoolPolicy(unittest.IsolatedAsyncioTestCase):

    async def test_captures_share_pool(self):
        registry = []
        orchestrator = CaptureOrchestrator(
            partial(FakeSession, registry=registry),
            policy="pool",
            pool_size=2
        )
        results = await asyncio.gather(*[
            orchestrator.capture(f"http://example.com/{i}") for i in range(4)
        ])
        self.assertEqual(len(results), 4)
        self.assertLessEqual(len(registry), 2)
        self.assertEqual(orchestrator.active_sessions, 0)

        await orchestrator.close()
        self.assertEqual(open_processes(registry), 0)


if __name__ == "__main__":
    unittest.main()
