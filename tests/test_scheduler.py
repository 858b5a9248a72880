import random
import unittest

from mentionloop.interactions.scheduler import RecurringTask


class RecurringTaskTests(unittest.TestCase):
    def test_runs_step_and_threads_state(self):
        sleeps = []
        task = RecurringTask(lambda n: n + 1, 10, 20, sleep=sleeps.append, rng=random.Random(7))
        self.assertEqual(task.run(0, max_runs=3), 3)
        self.assertEqual(task.runs, 3)
        # No sleep after the final run.
        self.assertEqual(len(sleeps), 2)
        for delay in sleeps:
            self.assertGreaterEqual(delay, 10)
            self.assertLessEqual(delay, 20)

    def test_failed_run_keeps_previous_state_and_loop_survives(self):
        calls = []

        def _step(state):
            calls.append(state)
            if len(calls) == 2:
                raise RuntimeError("boom")
            return state + "x"

        task = RecurringTask(_step, 0, 0, sleep=lambda _: None)
        with self.assertLogs("mentionloop.interactions", level="ERROR"):
            final = task.run("", max_runs=3)
        self.assertEqual(calls, ["", "x", "x"])
        self.assertEqual(final, "xx")

    def test_stop_from_inside_step(self):
        sleeps = []
        task = None

        def _step(state):
            if state == 2:
                task.stop()
            return state + 1

        task = RecurringTask(_step, 1, 1, sleep=sleeps.append)
        self.assertEqual(task.run(0), 3)
        self.assertTrue(task.stopped)
        self.assertEqual(sleeps, [1, 1])

    def test_max_runs_applies_to_each_run_call(self):
        task = RecurringTask(lambda n: n + 1, 0, 0, sleep=lambda _: None)
        self.assertEqual(task.run(0, max_runs=2), 2)
        self.assertEqual(task.run(10, max_runs=2), 12)
        self.assertEqual(task.runs, 4)

    def test_equal_bounds_give_fixed_delay(self):
        task = RecurringTask(lambda s: s, 5, 5)
        self.assertEqual(task.next_delay(), 5)

    def test_invalid_bounds_rejected(self):
        with self.assertRaises(ValueError):
            RecurringTask(lambda s: s, 20, 10)
        with self.assertRaises(ValueError):
            RecurringTask(lambda s: s, -1, 10)


if __name__ == "__main__":
    unittest.main()
