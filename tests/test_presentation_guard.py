from __future__ import annotations

import asyncio
import unittest

from presentation_guard import ScreenShareGuard, is_start_presenting_action, labels_indicate_presenting


class PresentingDetectionTests(unittest.TestCase):
    def test_labels(self) -> None:
        self.assertTrue(labels_indicate_presenting(["Mute", "Stop presenting"]))
        self.assertTrue(labels_indicate_presenting(["Вы показываете экран"]))
        self.assertFalse(labels_indicate_presenting(["Mute", "Leave call", ""]))

    def test_start_actions(self) -> None:
        self.assertTrue(is_start_presenting_action("Present now"))
        self.assertTrue(is_start_presenting_action("", "computer_arrow_up"))
        self.assertTrue(is_start_presenting_action("Поделиться экраном"))
        self.assertFalse(is_start_presenting_action("Turn on captions"))


class ScreenShareGuardTests(unittest.TestCase):
    def test_probe_triggers_once_until_rearmed(self) -> None:
        reasons: list[str] = []
        presenting = [True]
        loop = asyncio.new_event_loop()
        try:
            guard = ScreenShareGuard(loop, lambda: presenting[0], reasons.append)
            self.assertTrue(guard.check_now())
            self.assertTrue(guard.check_now())
            self.assertEqual(reasons, ["Panel hidden during screen share"])

            guard.rearm()
            presenting[0] = False
            self.assertFalse(guard.check_now())
            presenting[0] = True
            guard.check_now()
            self.assertEqual(len(reasons), 2)
        finally:
            loop.close()

    def test_ui_action_triggers_hide(self) -> None:
        reasons: list[str] = []
        loop = asyncio.new_event_loop()
        try:
            guard = ScreenShareGuard(loop, lambda: False, reasons.append)
            self.assertFalse(guard.notify_ui_action("Raise hand"))
            self.assertTrue(guard.notify_ui_action("Share screen"))
            self.assertTrue(guard.notify_ui_action("Share screen"))
            self.assertEqual(reasons, ["Panel hidden while starting screen share"])
            self.assertTrue(guard.triggered)
        finally:
            loop.close()

    def test_poll_loop_fires_and_survives_probe_errors(self) -> None:
        reasons: list[str] = []
        calls = {"count": 0}

        def probe() -> bool:
            calls["count"] += 1
            if calls["count"] == 1:
                raise RuntimeError("page gone")
            return True

        async def scenario() -> None:
            guard = ScreenShareGuard(asyncio.get_running_loop(), probe, reasons.append, interval_s=0.01)
            guard.start()
            self.assertTrue(guard.running)
            await asyncio.sleep(0.08)
            guard.stop()
            self.assertFalse(guard.running)

        with self.assertLogs(level="WARNING"):
            asyncio.run(scenario())

        self.assertEqual(reasons, ["Panel hidden during screen share"])


if __name__ == "__main__":
    unittest.main()
