"""test_poller.py - Unit tests for invocation classification and the poll loop."""

from __future__ import annotations

import unittest

from awsops.backoff import OperationContext, RetryBudget
from awsops.diagnostics import PollSignal
from awsops.poller import (
    InvocationRecord,
    PollOutcome,
    Termination,
    classify_invocations,
    list_invocation_records,
    poll_command_invocation,
    poll_until_terminal,
)
from awsops.test_fakes import FakeClock, ScriptedSsm, client_error, invocation, plugin


def _records(*raw):
    return [InvocationRecord.from_api(r) for r in raw]


class ClassifyInvocationsTests(unittest.TestCase):
    def test_no_records_is_retryable(self):
        attempt = classify_invocations("cmd-1", [])
        self.assertEqual(attempt.outcome, PollOutcome.NO_RECORDS)
        self.assertEqual(attempt.signal, PollSignal.RETRYABLE)

    def test_all_success(self):
        attempt = classify_invocations(
            "cmd-1",
            _records(invocation("i-1", "Success", [plugin()]), invocation("i-2", "Success", [plugin()])),
        )
        self.assertEqual(attempt.outcome, PollOutcome.SUCCEEDED)
        self.assertEqual(attempt.signal, PollSignal.DONE)
        self.assertEqual(attempt.failures, ())

    def test_intermediate_statuses_are_in_progress(self):
        for status in ("Pending", "InProgress", "Delayed", "Cancelling"):
            attempt = classify_invocations("cmd-1", _records(invocation("i-1", status)))
            self.assertEqual(attempt.outcome, PollOutcome.IN_PROGRESS, status)

    def test_failure_wins_over_in_progress(self):
        attempt = classify_invocations(
            "cmd-1",
            _records(
                invocation("i-1", "InProgress", [plugin(status="InProgress")]),
                invocation("i-2", "Failed", details="Failed"),
            ),
        )
        self.assertEqual(attempt.outcome, PollOutcome.HAS_FAILURE)
        self.assertEqual([f.instance_id for f in attempt.failures], ["i-2"])

    def test_failure_wins_regardless_of_order(self):
        attempt = classify_invocations(
            "cmd-1",
            _records(invocation("i-2", "TimedOut"), invocation("i-1", "Pending")),
        )
        self.assertEqual(attempt.outcome, PollOutcome.HAS_FAILURE)

    def test_failed_plugin_is_failure_with_output(self):
        attempt = classify_invocations(
            "cmd-1",
            _records(invocation("i-1", "InProgress", [plugin("deploy", "Failed", "exit 2", "no such file")])),
        )
        self.assertEqual(attempt.outcome, PollOutcome.HAS_FAILURE)
        failure = attempt.failures[0]
        self.assertEqual(failure.plugin_name, "deploy")
        self.assertEqual(failure.output, "no such file")
        self.assertEqual(failure.summary, "Plugin deploy failed: exit 2")
        self.assertIn("Instance: i-1", failure.describe())
        self.assertIn("Command: cmd-1", failure.describe())

    def test_running_plugins_do_not_fail(self):
        attempt = classify_invocations(
            "cmd-1",
            _records(invocation("i-1", "InProgress", [plugin(status="Pending"), plugin(status="InProgress")])),
        )
        self.assertEqual(attempt.outcome, PollOutcome.IN_PROGRESS)

    def test_all_failures_are_reported(self):
        attempt = classify_invocations(
            "cmd-1",
            _records(invocation("i-1", "Failed"), invocation("i-2", "Cancelled")),
        )
        self.assertEqual(len(attempt.failures), 2)


class ListInvocationRecordsTests(unittest.TestCase):
    def test_follows_next_token(self):
        ssm = ScriptedSsm(
            [
                {"CommandInvocations": [invocation("i-1", "Success")], "NextToken": "t1"},
                {"CommandInvocations": [invocation("i-2", "Success")]},
            ]
        )
        records = list_invocation_records(ssm, "cmd-1")
        self.assertEqual([r.instance_id for r in records], ["i-1", "i-2"])
        self.assertEqual(ssm.list_calls[0], {"CommandId": "cmd-1", "Details": True})
        self.assertEqual(ssm.list_calls[1]["NextToken"], "t1")

    def test_query_error_is_fatal(self):
        ssm = ScriptedSsm([client_error("ThrottlingException", "ListCommandInvocations")])
        attempt = poll_command_invocation(ssm, "cmd-9")
        self.assertEqual(attempt.signal, PollSignal.FATAL)
        self.assertEqual(attempt.error.error_code, "ThrottlingException")
        self.assertIn("cmd-9", str(attempt.error))


class PollUntilTerminalTests(unittest.TestCase):
    def _run(self, ssm, **budget_kwargs):
        clock = FakeClock(start=0.0)
        ctx = OperationContext(clock=clock)
        budget = RetryBudget.start(clock.monotonic(), **budget_kwargs)
        return poll_until_terminal(ssm, "cmd-1", ctx, budget), clock

    def test_empty_results_consume_attempts(self):
        ssm = ScriptedSsm([[], [], [invocation("i-1", "Success")]])
        run, clock = self._run(ssm)
        self.assertEqual(run.termination, Termination.SUCCEEDED)
        self.assertEqual(run.attempts, 3)
        self.assertEqual(clock.waits, [1, 2])

    def test_delays_follow_doubling_schedule(self):
        ssm = ScriptedSsm([[invocation("i-1", "InProgress")]])
        run, clock = self._run(ssm, max_attempts=9)
        self.assertEqual(run.termination, Termination.ATTEMPTS_EXHAUSTED)
        self.assertEqual(run.attempts, 9)
        self.assertEqual(run.delays, [min(2 ** k, 30) for k in range(8)])
        self.assertEqual(clock.waits, run.delays)

    def test_stops_on_first_failure(self):
        ssm = ScriptedSsm(
            [
                [invocation("i-1", "InProgress")],
                [invocation("i-1", "Failed"), invocation("i-2", "Pending")],
                [invocation("i-1", "Success")],
            ]
        )
        run, _ = self._run(ssm)
        self.assertEqual(run.termination, Termination.HAS_FAILURE)
        self.assertEqual(run.attempts, 2)
        self.assertEqual(len(ssm.list_calls), 2)

    def test_query_error_stops_without_retry(self):
        ssm = ScriptedSsm([[invocation("i-1", "InProgress")], client_error("AccessDenied", "ListCommandInvocations")])
        run, _ = self._run(ssm)
        self.assertEqual(run.termination, Termination.QUERY_FAILED)
        self.assertEqual(run.attempts, 2)
        self.assertIsNotNone(run.last_attempt.error)

    def test_time_ceiling(self):
        ssm = ScriptedSsm([[invocation("i-1", "InProgress")]])
        run, clock = self._run(ssm, max_attempts=50, timeout_seconds=20)
        self.assertEqual(run.termination, Termination.TIME_EXCEEDED)
        # 1 + 2 + 4 + 8 = 15, then the next sleep is clipped to the 5s left.
        self.assertEqual(clock.waits, [1, 2, 4, 8, 5])
        self.assertEqual(run.attempts, 5)

    def test_cancel_interrupts_sleep(self):
        ssm = ScriptedSsm([[invocation("i-1", "InProgress")]])
        clock = FakeClock(start=0.0)
        ctx = OperationContext(clock=clock)
        clock.on_wait = lambda _seconds: ctx.cancel("process shutdown")
        run = poll_until_terminal(ssm, "cmd-1", ctx, RetryBudget.start(0.0))
        self.assertEqual(run.termination, Termination.CANCELLED)
        self.assertEqual(run.attempts, 1)
        self.assertEqual(clock.now, 0.0)


if __name__ == "__main__":
    unittest.main()
