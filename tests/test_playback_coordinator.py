"""
测试播放协调器 - 验证重复模式、随机播放、自动推进和引擎命令
"""

import random
import unittest
from unittest.mock import MagicMock

from conftest import make_engine, make_track
from nextqueue.playback import PlaybackCoordinator, PlaybackEventType, ShuffleTracker
from nextqueue.queue import MemoryPersistenceManager, QueueStore, RepeatMode
from nextqueue.utils.config_manager import ConfigManager


def make_config(values):
    """创建模拟配置"""
    config = MagicMock(spec=ConfigManager)
    config.get.side_effect = lambda key, default=None: values.get(key, default)
    return config


class CoordinatorTestCase(unittest.IsolatedAsyncioTestCase):
    """协调器测试基类"""

    def setUp(self):
        """设置测试环境"""
        self.persistence = MemoryPersistenceManager()
        self.store = QueueStore(persistence_manager=self.persistence)
        self.engine = make_engine()
        self.tracker = ShuffleTracker(rng=random.Random(42))
        self.coordinator = PlaybackCoordinator(self.store, self.engine, shuffle_tracker=self.tracker)

        self.events = []
        for event_type in PlaybackEventType:
            self.coordinator.add_event_handler(event_type, self._recorder(event_type))

    def _recorder(self, event_type):
        def handler(**kwargs):
            self.events.append((event_type, kwargs))
        return handler

    def events_of(self, event_type):
        return [kwargs for recorded, kwargs in self.events if recorded == event_type]

    async def fill(self, count):
        """添加 count 首曲目，返回队列ID列表"""
        return [await self.coordinator.add_track(make_track(i)) for i in range(1, count + 1)]

    def loaded_ids(self):
        return [call.args[0].id for call in self.engine.load_and_play.call_args_list]


class TestSequentialAdvance(CoordinatorTestCase):
    """测试顺序推进和重复模式"""

    async def test_skip_next_plays_following_entry(self):
        ids = await self.fill(3)
        await self.coordinator.play_entry(ids[0])

        entry = await self.coordinator.skip_next()

        self.assertEqual(entry.queue_id, ids[1])
        self.assertEqual(self.store.current_index, 1)
        self.assertEqual(self.loaded_ids(), [1, 2])
        self.assertTrue(self.store.is_playing)

    async def test_first_advance_without_current_plays_head(self):
        await self.fill(2)

        entry = await self.coordinator.skip_next()

        self.assertEqual(entry.track.id, 1)
        self.assertEqual(self.store.current_index, 0)

    async def test_repeat_all_wraps_forward_and_backward(self):
        ids = await self.fill(3)
        await self.coordinator.set_repeat_mode("all")
        await self.coordinator.play_entry(ids[2])

        entry = await self.coordinator.skip_next()
        self.assertEqual(entry.queue_id, ids[0])

        entry = await self.coordinator.skip_previous()
        self.assertEqual(entry.queue_id, ids[2])
        self.assertEqual(self.events_of(PlaybackEventType.QUEUE_FINISHED), [])

    async def test_repeat_none_stops_at_end(self):
        ids = await self.fill(2)
        await self.coordinator.play_entry(ids[1])
        self.engine.reset_mock()

        entry = await self.coordinator.on_engine_track_ended()

        self.assertIsNone(entry)
        self.engine.load_and_play.assert_not_called()
        self.assertEqual(self.store.current_index, 1)
        self.assertFalse(self.store.is_playing)
        self.assertEqual(len(self.events_of(PlaybackEventType.QUEUE_FINISHED)), 1)

    async def test_previous_at_head_is_noop(self):
        ids = await self.fill(2)
        await self.coordinator.play_entry(ids[0])
        self.engine.reset_mock()

        entry = await self.coordinator.skip_previous()

        self.assertIsNone(entry)
        self.engine.load_and_play.assert_not_called()
        self.assertEqual(self.store.current_index, 0)
        # 队列结束事件只属于向后推进
        self.assertEqual(self.events_of(PlaybackEventType.QUEUE_FINISHED), [])

    async def test_repeat_one_replays_on_track_end(self):
        ids = await self.fill(3)
        await self.coordinator.play_entry(ids[0])
        await self.coordinator.set_repeat_mode(RepeatMode.ONE)

        entry = await self.coordinator.on_engine_track_ended()

        self.assertEqual(entry.queue_id, ids[0])
        self.assertEqual(self.store.current_index, 0)
        self.assertEqual(self.loaded_ids(), [1, 1])

    async def test_manual_skip_ignores_repeat_one(self):
        ids = await self.fill(3)
        await self.coordinator.play_entry(ids[0])
        await self.coordinator.set_repeat_mode(RepeatMode.ONE)

        entry = await self.coordinator.on_skip_requested()

        self.assertEqual(entry.queue_id, ids[1])

    async def test_empty_queue_advance_is_noop(self):
        self.assertIsNone(await self.coordinator.skip_next())
        self.assertIsNone(await self.coordinator.on_engine_track_ended())

        self.engine.load_and_play.assert_not_called()
        self.assertEqual(self.events, [])
        self.assertEqual(self.persistence.save_count, 0)

    async def test_invalid_advance_request_is_ignored(self):
        ids = await self.fill(2)
        await self.coordinator.play_entry(ids[0])
        saves = self.persistence.save_count

        self.assertIsNone(await self.coordinator.advance("sideways"))
        self.assertIsNone(await self.coordinator.advance("next", reason="bored"))

        self.assertEqual(self.store.current_index, 0)
        self.assertEqual(self.loaded_ids(), [1])
        self.assertEqual(self.persistence.save_count, saves)

    async def test_string_reason_respects_repeat_one(self):
        ids = await self.fill(2)
        await self.coordinator.play_entry(ids[0])
        await self.coordinator.set_repeat_mode("one")

        entry = await self.coordinator.advance("next", "track_ended")

        self.assertEqual(entry.queue_id, ids[0])
        self.assertEqual(self.loaded_ids(), [1, 1])

    async def test_cycle_repeat_mode(self):
        modes = [await self.coordinator.cycle_repeat_mode() for _ in range(3)]
        self.assertEqual(modes, [RepeatMode.ALL, RepeatMode.ONE, RepeatMode.NONE])


class TestPlayNow(CoordinatorTestCase):
    """测试立即播放"""

    async def test_play_track_now_twice_loads_twice(self):
        await self.fill(3)

        first = await self.coordinator.play_track_now(make_track(2))
        state_after_first = self.coordinator.get_state()
        second = await self.coordinator.play_track_now(make_track(2))

        self.assertEqual(first.queue_id, second.queue_id)
        self.assertEqual(self.engine.load_and_play.call_count, 2)
        self.assertEqual(self.coordinator.get_state(), state_after_first)
        self.assertEqual(self.store.current_index, 1)

    async def test_play_track_not_in_queue(self):
        ids = await self.fill(2)
        await self.coordinator.play_entry(ids[0])

        entry = await self.coordinator.play_track_now(make_track(99))

        self.assertIsNone(entry)
        self.assertEqual(self.loaded_ids(), [1, 99])
        self.assertEqual(self.store.current_index, 0)
        self.assertEqual(self.store.length, 2)
        changed = self.events_of(PlaybackEventType.TRACK_CHANGED)[-1]
        self.assertEqual(changed['track'].id, 99)
        self.assertEqual(changed['index'], -1)

    async def test_play_missing_entry(self):
        await self.fill(1)
        self.assertIsNone(await self.coordinator.play_entry("missing"))
        self.engine.load_and_play.assert_not_called()


class TestShufflePlayback(CoordinatorTestCase):
    """测试随机播放"""

    async def asyncSetUp(self):
        self.ids = await self.fill(5)
        await self.coordinator.set_shuffle_mode(True)
        await self.coordinator.play_entry(self.ids[0])

    async def test_one_pass_plays_every_entry_once(self):
        played = [self.ids[0]]
        for _ in range(4):
            entry = await self.coordinator.skip_next()
            played.append(entry.queue_id)

        self.assertEqual(len(set(played)), 5)
        self.assertEqual(set(played), set(self.ids))

    async def test_exhaustion_stops_under_repeat_none(self):
        for _ in range(4):
            await self.coordinator.skip_next()
        current = self.store.get_current_entry().queue_id

        self.assertIsNone(await self.coordinator.skip_next())
        self.assertEqual(len(self.events_of(PlaybackEventType.QUEUE_FINISHED)), 1)
        self.assertEqual(self.store.get_current_entry().queue_id, current)

    async def test_exhaustion_starts_new_round_under_repeat_all(self):
        await self.coordinator.set_repeat_mode("all")
        for _ in range(4):
            await self.coordinator.skip_next()
        current = self.store.get_current_entry().queue_id

        entry = await self.coordinator.skip_next()

        self.assertIsNotNone(entry)
        self.assertNotEqual(entry.queue_id, current)

    async def test_previous_walks_history(self):
        first = await self.coordinator.skip_next()
        await self.coordinator.skip_next()

        back = await self.coordinator.skip_previous()
        self.assertEqual(back.queue_id, first.queue_id)

        back = await self.coordinator.skip_previous()
        self.assertEqual(back.queue_id, self.ids[0])

    async def test_previous_without_history_falls_back_to_sequential(self):
        await self.coordinator.reorder(0, 2)
        self.assertEqual(self.store.current_index, 2)

        entry = await self.coordinator.skip_previous()

        self.assertEqual(self.store.current_index, 1)
        self.assertEqual(entry.queue_id, self.ids[2])

    async def test_toggle_resets_history_and_consumed(self):
        await self.coordinator.skip_next()
        await self.coordinator.skip_next()
        current = self.store.get_current_entry().queue_id

        self.assertFalse(await self.coordinator.toggle_shuffle())
        self.assertEqual(self.tracker.history, [])
        self.assertEqual(self.tracker.consumed, set())

        self.assertTrue(await self.coordinator.toggle_shuffle())
        self.assertEqual(self.tracker.history, [])
        self.assertEqual(self.tracker.consumed, {current})

    async def test_shuffle_survives_reorder(self):
        """已播放记录按条目ID保存，重排不会导致重复播放"""
        played = [self.ids[0]]
        played.append((await self.coordinator.skip_next()).queue_id)
        await self.coordinator.reorder(4, 0)
        await self.coordinator.reorder(1, 3)
        for _ in range(3):
            played.append((await self.coordinator.skip_next()).queue_id)

        self.assertEqual(set(played), set(self.ids))

    async def test_removing_current_picks_unplayed_entry(self):
        """随机模式下移除正在播放的条目，按随机规则选择而不是滑入原位置的条目"""
        await self.coordinator.play_entry(self.ids[1])
        await self.coordinator.play_entry(self.ids[0])
        self.engine.is_playing.return_value = True

        await self.coordinator.remove_entry(self.ids[0])

        # ids[1] 滑入了原位置，但本轮已经播放过
        self.assertIn(self.loaded_ids()[-1], {3, 4, 5})
        self.assertIn(self.store.get_current_entry().queue_id, self.ids[2:])

    async def test_removing_current_after_full_pass_pauses(self):
        for _ in range(4):
            await self.coordinator.skip_next()
        self.engine.is_playing.return_value = True

        await self.coordinator.remove_entry(self.store.get_current_entry().queue_id)

        self.engine.pause.assert_called_once()
        self.assertEqual(self.store.current_index, -1)


class TestQueueMutations(CoordinatorTestCase):
    """测试经由协调器的队列变更"""

    async def test_remove_current_while_playing_plays_next_in_slot(self):
        ids = await self.fill(3)
        await self.coordinator.play_entry(ids[1])
        self.engine.is_playing.return_value = True

        self.assertTrue(await self.coordinator.remove_entry(ids[1]))

        self.assertEqual(self.loaded_ids()[-1], 3)
        self.assertEqual(self.store.current_index, 1)

    async def test_remove_last_current_while_playing_pauses(self):
        ids = await self.fill(3)
        await self.coordinator.play_entry(ids[2])
        self.engine.is_playing.return_value = True

        await self.coordinator.remove_entry(ids[2])

        self.engine.pause.assert_called_once()
        self.assertEqual(self.store.current_index, -1)
        self.assertFalse(self.store.is_playing)

    async def test_remove_last_current_under_repeat_all_wraps(self):
        ids = await self.fill(3)
        await self.coordinator.set_repeat_mode("all")
        await self.coordinator.play_entry(ids[2])
        self.engine.is_playing.return_value = True

        await self.coordinator.remove_entry(ids[2])

        self.assertEqual(self.loaded_ids()[-1], 1)
        self.assertEqual(self.store.current_index, 0)

    async def test_remove_current_while_paused_does_not_touch_engine(self):
        ids = await self.fill(3)
        await self.coordinator.play_entry(ids[1])
        self.engine.reset_mock()

        await self.coordinator.remove_entry(ids[1])

        self.engine.load_and_play.assert_not_called()
        self.engine.pause.assert_not_called()
        self.assertEqual(self.store.current_index, -1)

    async def test_continue_on_removal_can_be_disabled(self):
        self.coordinator = PlaybackCoordinator(
            self.store, self.engine,
            config=make_config({'playback.continue_on_current_removal': False})
        )
        ids = await self.fill(3)
        await self.coordinator.play_entry(ids[0])
        self.engine.is_playing.return_value = True

        await self.coordinator.remove_entry(ids[0])

        self.engine.pause.assert_called_once()
        self.assertEqual(self.store.current_index, -1)

    async def test_clear_queue_pauses_playing_engine(self):
        ids = await self.fill(3)
        await self.coordinator.play_entry(ids[0])
        self.engine.is_playing.return_value = True

        self.assertEqual(await self.coordinator.clear_queue(), 3)

        self.engine.pause.assert_called_once()
        self.assertTrue(self.store.is_empty)
        self.assertEqual(self.store.current_index, -1)
        self.assertEqual(await self.coordinator.clear_queue(), 0)

    async def test_queue_changed_events_carry_state(self):
        await self.fill(2)

        changed = self.events_of(PlaybackEventType.QUEUE_CHANGED)

        self.assertEqual(len(changed), 2)
        self.assertEqual(len(changed[-1]['state'].entries), 2)

    async def test_move_and_dedupe(self):
        ids = await self.fill(2)
        dup = await self.coordinator.add_track(make_track(1))

        self.assertTrue(await self.coordinator.move_to_top(ids[1]))
        self.assertEqual(await self.coordinator.remove_duplicates(), 1)
        self.assertEqual(self.store.find_index(dup), -1)

    async def test_mode_changes_publish_queue_changed(self):
        await self.fill(2)
        self.events.clear()

        await self.coordinator.set_repeat_mode("all")
        await self.coordinator.cycle_repeat_mode()
        await self.coordinator.set_shuffle_mode(True)
        # 没有变化的设置不发布事件
        await self.coordinator.set_repeat_mode("one")
        await self.coordinator.set_shuffle_mode(True)

        changed = self.events_of(PlaybackEventType.QUEUE_CHANGED)
        self.assertEqual(
            [(c['state'].repeat_mode, c['state'].shuffle_mode) for c in changed],
            [(RepeatMode.ALL, False), (RepeatMode.ONE, False), (RepeatMode.ONE, True)]
        )

    async def test_play_state_changes_publish_queue_changed(self):
        ids = await self.fill(1)
        await self.coordinator.play_entry(ids[0])
        self.events.clear()

        await self.coordinator.pause()
        await self.coordinator.pause()
        await self.coordinator.resume()
        await self.coordinator.on_engine_state_changed(False)
        await self.coordinator.on_engine_state_changed(False)

        changed = self.events_of(PlaybackEventType.QUEUE_CHANGED)
        self.assertEqual([c['state'].is_playing for c in changed], [False, True, False])


class TestCommitBoundary(CoordinatorTestCase):
    """测试每个外部事件只保存一次"""

    async def test_one_save_per_event(self):
        ids = await self.fill(3)
        self.assertEqual(self.persistence.save_count, 3)

        await self.coordinator.play_entry(ids[0])
        self.assertEqual(self.persistence.save_count, 4)

        await self.coordinator.skip_next()
        self.assertEqual(self.persistence.save_count, 5)

    async def test_noop_events_do_not_save(self):
        await self.fill(2)
        saves = self.persistence.save_count

        await self.coordinator.remove_duplicates()
        await self.coordinator.set_repeat_mode("none")
        await self.coordinator.reorder(0, 0)
        await self.coordinator.set_volume(0.5)

        self.assertEqual(self.persistence.save_count, saves)

    async def test_play_state_is_not_persisted(self):
        ids = await self.fill(1)
        await self.coordinator.play_entry(ids[0])
        saves = self.persistence.save_count

        await self.coordinator.on_engine_state_changed(False)
        await self.coordinator.pause()

        self.assertFalse(self.store.is_playing)
        self.assertEqual(self.persistence.save_count, saves)


class TestEngineCommands(CoordinatorTestCase):
    """测试引擎命令和错误处理"""

    async def test_engine_failure_fires_error_event(self):
        ids = await self.fill(2)
        self.engine.load_and_play.side_effect = RuntimeError("boom")

        entry = await self.coordinator.play_entry(ids[0])

        self.assertEqual(entry.queue_id, ids[0])
        self.assertEqual(self.store.current_index, 0)
        self.assertFalse(self.store.is_playing)
        errors = self.events_of(PlaybackEventType.PLAYBACK_ERROR)
        self.assertEqual(len(errors), 1)
        self.assertEqual(errors[0]['command'], "load_and_play")
        self.assertIsInstance(errors[0]['error'], RuntimeError)

    async def test_handler_errors_are_isolated(self):
        called = []

        def broken(**kwargs):
            raise ValueError("handler failure")

        async def async_handler(**kwargs):
            called.append(kwargs['index'])

        self.coordinator.add_event_handler(PlaybackEventType.TRACK_CHANGED, broken)
        self.coordinator.add_event_handler("track_changed", async_handler)
        ids = await self.fill(1)

        entry = await self.coordinator.play_entry(ids[0])

        self.assertIsNotNone(entry)
        self.assertEqual(called, [0])

    async def test_handler_can_call_coordinator(self):
        """事件在锁释放后分发，处理器可以再次调用协调器"""
        async def refill(**kwargs):
            await self.coordinator.add_track(make_track(50))

        self.coordinator.add_event_handler(PlaybackEventType.QUEUE_FINISHED, refill)
        ids = await self.fill(1)
        await self.coordinator.play_entry(ids[0])

        await self.coordinator.on_engine_track_ended()

        self.assertEqual(self.store.length, 2)

    async def test_unknown_event_type_is_ignored(self):
        self.coordinator.add_event_handler("no_such_event", lambda **kwargs: None)

    async def test_toggle_play(self):
        ids = await self.fill(2)

        # 没有当前曲目时从队首开始
        await self.coordinator.toggle_play()
        self.assertEqual(self.loaded_ids(), [1])

        self.engine.is_playing.return_value = True
        await self.coordinator.toggle_play()
        self.engine.pause.assert_called_once()

        self.engine.is_playing.return_value = False
        await self.coordinator.toggle_play()
        self.engine.resume.assert_called_once()
        self.assertEqual(self.store.get_current_entry().queue_id, ids[0])

    async def test_toggle_play_after_restart_loads_current(self):
        ids = await self.fill(2)
        await self.coordinator.play_entry(ids[1])

        engine = make_engine()
        store = QueueStore(persistence_manager=self.persistence)
        coordinator = PlaybackCoordinator(store, engine)
        await coordinator.initialize()
        await coordinator.toggle_play()

        engine.resume.assert_not_called()
        engine.load_and_play.assert_called_once_with(make_track(2))

    async def test_seek_and_volume_are_clamped(self):
        await self.coordinator.seek(-50)
        self.engine.seek.assert_called_once_with(0)

        self.assertEqual(await self.coordinator.set_volume(1.5), 1.0)
        self.assertEqual(await self.coordinator.set_volume(-1), 0.0)
        self.assertEqual(self.engine.set_volume.call_args_list[-1].args, (0.0,))

    async def test_invalid_seek_and_volume_are_ignored(self):
        await self.coordinator.seek("later")
        await self.coordinator.seek(None)
        self.assertIsNone(await self.coordinator.set_volume("loud"))
        self.assertIsNone(await self.coordinator.set_volume(float("nan")))

        self.engine.seek.assert_not_called()
        self.engine.set_volume.assert_not_called()
        self.assertEqual(self.events_of(PlaybackEventType.PLAYBACK_ERROR), [])


class TestInitialize(unittest.IsolatedAsyncioTestCase):
    """测试启动恢复"""

    async def test_initialize_restores_queue_and_volume(self):
        persistence = MemoryPersistenceManager()
        first = QueueStore(persistence_manager=persistence)
        first.add_to_queue(make_track(1))
        first.add_to_queue(make_track(2))
        first.set_current_index(1)
        first.set_repeat_mode("all")
        await first.commit()

        engine = make_engine()
        config = make_config({'playback.default_volume': 0.5})
        store = QueueStore(persistence_manager=persistence)
        coordinator = PlaybackCoordinator(store, engine, config=config)

        self.assertTrue(await coordinator.initialize())

        state = coordinator.get_state()
        self.assertEqual(len(state.entries), 2)
        self.assertEqual(state.current_index, 1)
        self.assertEqual(state.repeat_mode, RepeatMode.ALL)
        self.assertFalse(state.is_playing)
        engine.set_volume.assert_called_once_with(0.5)
        engine.load_and_play.assert_not_called()

    async def test_initialize_without_saved_queue(self):
        engine = make_engine()
        coordinator = PlaybackCoordinator(QueueStore(persistence_manager=MemoryPersistenceManager()), engine)

        self.assertFalse(await coordinator.initialize())
        self.assertEqual(coordinator.get_state().entries, ())
        engine.set_volume.assert_not_called()

    async def test_invalid_volume_config_is_ignored(self):
        engine = make_engine()
        coordinator = PlaybackCoordinator(
            QueueStore(), engine, config=make_config({'playback.default_volume': 3})
        )

        await coordinator.initialize()

        engine.set_volume.assert_not_called()


if __name__ == '__main__':
    unittest.main()
