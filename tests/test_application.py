# -*- coding: utf-8 -*-
"""
Tests for application.py - mode selection, poll cycle and poll loop.
"""

import imaplib
import io
import os
import signal
import tempfile
import types
import unittest
from unittest.mock import patch

from loguru import logger

import application
from application import MaildirMode
from application import PolledMode
from application import PollState
from application import StdinMode
from fakes import FakeIMAPServer
from fakes import FakePOP3Server
from fakes import RecordingProcessor
from imap_utils import IMAPReceiver
from pop3_utils import POP3Receiver
from receiver_utils import ReceiverConfig

IMAP_OPTIONS = {
    "server": "imap.example.com",
    "username": "user",
    "password": "secret",
}


def make_config(**attrs):
    values = {
        "ignore_stdin": True,
        "imap": None,
        "pop3": None,
        "maildir": None,
        "poll_interval": 0,
        "graceful_death": False,
    }
    values.update(attrs)
    return types.SimpleNamespace(**values)


class ScriptedReceiver:
    """Receiver double; each cycle runs the next scripted step"""

    def __init__(self, steps):
        self.steps = list(steps)
        self.cycles = 0
        self.events = []

    def connect(self):
        self.cycles += 1
        self.events.append("connect")
        step = self.steps.pop(0) if self.steps else None
        if step is not None:
            step()

    def get_messages(self):
        self.events.append("get_messages")

    def disconnect(self):
        self.events.append("disconnect")


def raise_(exc):
    def step():
        raise exc

    return step


class LogCaptureTestCase(unittest.TestCase):
    def setUp(self):
        self.messages = []
        self.sink_id = logger.add(
            self.messages.append, level="DEBUG", format="{level}:{message}"
        )

    def tearDown(self):
        logger.remove(self.sink_id)

    def logged(self, text):
        return any(text in m for m in self.messages)


class TestStdinHasData(unittest.TestCase):
    """Tests for probing STDIN without blocking"""

    def test_pipe_with_data(self):
        r, w = os.pipe()
        os.write(w, b"Subject: piped\r\n\r\nbody")
        os.close(w)
        with os.fdopen(r, "rb") as stream:
            self.assertTrue(application.stdin_has_data(stream))

    def test_pipe_without_data(self):
        r, w = os.pipe()
        try:
            with os.fdopen(r, "rb") as stream:
                self.assertFalse(application.stdin_has_data(stream))
        finally:
            os.close(w)

    def test_dev_null_is_not_data(self):
        with open(os.devnull, "rb") as stream:
            self.assertFalse(application.stdin_has_data(stream))

    def test_stream_without_fileno(self):
        self.assertFalse(application.stdin_has_data(io.BytesIO(b"data")))

    def test_regular_file(self):
        with tempfile.TemporaryFile() as empty:
            self.assertFalse(application.stdin_has_data(empty))
        with tempfile.TemporaryFile() as full:
            full.write(b"message")
            full.flush()
            self.assertTrue(application.stdin_has_data(full))


class TestResolveMode(LogCaptureTestCase):
    """Tests for input mode priority"""

    def test_stdin_wins_when_it_has_data(self):
        r, w = os.pipe()
        os.write(w, b"raw")
        os.close(w)
        with os.fdopen(r, "rb") as stream:
            config = make_config(ignore_stdin=False, imap=IMAP_OPTIONS)
            mode = application.resolve_mode(config, stream)
        self.assertIsInstance(mode, StdinMode)

    def test_ignore_stdin_skips_stdin(self):
        r, w = os.pipe()
        os.write(w, b"raw")
        os.close(w)
        with os.fdopen(r, "rb") as stream:
            config = make_config(ignore_stdin=True, imap=IMAP_OPTIONS)
            mode = application.resolve_mode(config, stream)
        self.assertIsInstance(mode, PolledMode)

    def test_imap_block_gives_polled_mode(self):
        config = make_config(imap=IMAP_OPTIONS, poll_interval=30)

        mode = application.resolve_mode(config, io.BytesIO())

        self.assertEqual(mode.receiver_config.variant, "imap")
        self.assertEqual(mode.receiver_config.server, "imap.example.com")
        self.assertEqual(mode.poll_interval, 30)

    def test_once_forces_zero_interval(self):
        config = make_config(imap=IMAP_OPTIONS, poll_interval=30)

        mode = application.resolve_mode(config, io.BytesIO(), once=True)

        self.assertEqual(mode.poll_interval, 0)

    def test_pop3_wins_over_imap_with_warning(self):
        config = make_config(
            imap=IMAP_OPTIONS, pop3={"server": "pop.example.com"}
        )

        mode = application.resolve_mode(config, io.BytesIO())

        self.assertEqual(mode.receiver_config.variant, "pop3")
        self.assertTrue(self.logged("WARNING:Both pop3 and imap"))

    def test_connection_wins_over_maildir(self):
        config = make_config(imap=IMAP_OPTIONS, maildir="/tmp/Maildir")

        mode = application.resolve_mode(config, io.BytesIO())

        self.assertIsInstance(mode, PolledMode)

    def test_maildir_mode(self):
        config = make_config(maildir="/tmp/Maildir")

        mode = application.resolve_mode(config, io.BytesIO())

        self.assertEqual(mode, MaildirMode("/tmp/Maildir"))

    def test_nothing_configured(self):
        self.assertIsNone(application.resolve_mode(make_config(), io.BytesIO()))

    def test_missing_attributes_treated_as_absent(self):
        self.assertIsNone(
            application.resolve_mode(types.SimpleNamespace(), io.BytesIO())
        )


class TestRetrieveFromConnection(LogCaptureTestCase):
    """Tests for a single poll cycle"""

    def test_runs_connect_fetch_disconnect(self):
        receiver = ScriptedReceiver([])

        self.assertTrue(application.retrieve_from_connection(receiver))
        self.assertEqual(receiver.events, ["connect", "get_messages", "disconnect"])

    def test_connect_failure_is_logged_and_absorbed(self):
        receiver = ScriptedReceiver([raise_(ConnectionRefusedError(111, "refused"))])

        self.assertFalse(application.retrieve_from_connection(receiver))
        self.assertTrue(self.logged("ERROR:Poll cycle failed"))

    def test_protocol_error_is_absorbed(self):
        receiver = ScriptedReceiver([raise_(imaplib.IMAP4.abort("socket error"))])

        self.assertFalse(application.retrieve_from_connection(receiver))

    def test_dispatch_fault_propagates_after_disconnect(self):
        server = FakeIMAPServer(messages=[b"A", b"B"])
        config = ReceiverConfig.from_options("imap", IMAP_OPTIONS)
        receiver = IMAPReceiver(
            config, RecordingProcessor(fail_on=b"B"), server.connect
        )

        with self.assertRaises(ValueError):
            application.retrieve_from_connection(receiver)

        self.assertIsNone(receiver.connection)
        self.assertEqual(server.raws("INBOX"), [b"B"])


class TestWatchConnection(LogCaptureTestCase):
    """Tests for the poll loop"""

    def test_stop_during_cycle_finishes_that_cycle_only(self):
        state = PollState(tick=0.01)
        receiver = ScriptedReceiver([None, state.stop, None])

        application.watch_connection(receiver, 0.01, state=state)

        self.assertEqual(receiver.cycles, 2)
        self.assertEqual(receiver.events[-1], "disconnect")

    def test_stop_during_sleep_prevents_next_cycle(self):
        state = PollState(tick=0.01)
        receiver = ScriptedReceiver([])
        original_sleep = state.sleep

        def sleep_then_stop(seconds):
            original_sleep(seconds)
            if receiver.cycles == 3:
                state.stop()

        state.sleep = sleep_then_stop

        application.watch_connection(receiver, 0.01, state=state)

        self.assertEqual(receiver.cycles, 3)
        self.assertTrue(self.logged("INFO:Polling stopped."))

    def test_transient_fault_does_not_stop_loop(self):
        state = PollState(tick=0.01)
        receiver = ScriptedReceiver(
            [raise_(ConnectionResetError(104, "reset")), state.stop]
        )

        application.watch_connection(receiver, 0.01, state=state)

        self.assertEqual(receiver.cycles, 2)
        self.assertTrue(self.logged("ERROR:Poll cycle failed"))

    def test_other_fault_terminates_loop(self):
        state = PollState(tick=0.01)
        receiver = ScriptedReceiver([raise_(KeyError("boom"))])

        with self.assertRaises(KeyError):
            application.watch_connection(receiver, 0.01, state=state)

        self.assertEqual(receiver.cycles, 1)

    def test_graceful_death_installs_and_restores_sigint_handler(self):
        state = PollState(tick=0.01)
        previous = signal.getsignal(signal.SIGINT)
        seen = []

        def check_handler():
            seen.append(signal.getsignal(signal.SIGINT))
            state.stop()

        receiver = ScriptedReceiver([check_handler])

        application.watch_connection(receiver, 0.01, graceful_death=True, state=state)

        self.assertEqual(seen, [state.stop])
        self.assertEqual(signal.getsignal(signal.SIGINT), previous)

    def test_sigint_restored_when_previous_handler_unknown(self):
        state = PollState(tick=0.01)
        receiver = ScriptedReceiver([state.stop])

        with patch("application.signal.signal", return_value=None) as install:
            application.watch_connection(
                receiver, 0.01, graceful_death=True, state=state
            )

        self.assertEqual(
            [c.args for c in install.call_args_list],
            [(signal.SIGINT, state.stop), (signal.SIGINT, signal.SIG_DFL)],
        )

    def test_sigint_handler_only_clears_flag(self):
        state = PollState(tick=0.01)

        def interrupt():
            signal.getsignal(signal.SIGINT)(signal.SIGINT, None)

        receiver = ScriptedReceiver([interrupt, None])

        application.watch_connection(receiver, 0.01, graceful_death=True, state=state)

        self.assertFalse(state.continue_polling)
        self.assertEqual(receiver.cycles, 1)
        self.assertEqual(receiver.events, ["connect", "get_messages", "disconnect"])


class TestPollState(unittest.TestCase):
    """Tests for the cancellation flag"""

    def test_starts_polling(self):
        self.assertTrue(PollState().continue_polling)

    def test_stop_accepts_signal_arguments(self):
        state = PollState()
        state.stop(signal.SIGINT, None)
        self.assertFalse(state.continue_polling)

    def test_sleep_returns_immediately_when_stopped(self):
        state = PollState(tick=10)
        state.stop()
        state.sleep(3600)
        self.assertFalse(state.continue_polling)


class TestRun(LogCaptureTestCase):
    """Tests for the orchestrator"""

    def test_stdin_message_processed_once(self):
        processor = RecordingProcessor()
        r, w = os.pipe()
        os.write(w, b"Subject: piped\r\n\r\nbody")
        os.close(w)
        with os.fdopen(r, "rb") as stream:
            mode = application.run(
                make_config(ignore_stdin=False, imap=IMAP_OPTIONS), processor, stream
            )

        self.assertIsInstance(mode, StdinMode)
        self.assertEqual(processor.processed, [b"Subject: piped\r\n\r\nbody"])

    def test_zero_interval_runs_exactly_one_cycle(self):
        for graceful_death in (False, True):
            server = FakeIMAPServer(messages=[b"A"])
            processor = RecordingProcessor()

            application.run(
                make_config(imap=IMAP_OPTIONS, graceful_death=graceful_death),
                processor,
                io.BytesIO(),
                connection_factory=server.connect,
            )

            self.assertEqual(len(server.connections), 1)
            self.assertEqual(processor.processed, [b"A"])
        self.assertTrue(self.logged("Polling disabled. Checking for messages once."))

    def test_three_messages_with_processed_folder(self):
        server = FakeIMAPServer(messages=[b"A", b"B", b"C"])
        processor = RecordingProcessor()
        options = dict(IMAP_OPTIONS, processed_folder="Done")

        application.run(
            make_config(imap=options),
            processor,
            io.BytesIO(),
            connection_factory=server.connect,
        )

        self.assertEqual(processor.processed, [b"A", b"B", b"C"])
        self.assertEqual(server.raws("Done"), [b"A", b"B", b"C"])
        self.assertEqual(server.raws("INBOX"), [])

    def test_polls_until_stopped(self):
        server = FakeIMAPServer(messages=[b"A"])
        state = PollState(tick=0.01)

        def deliver_then_stop(raw):
            if raw == b"B":
                state.stop()

        processor = RecordingProcessor(on_process=deliver_then_stop)
        original_connect = server.connect

        def connect(host, port, ssl):
            if len(server.connections) == 1:
                server.deliver("INBOX", b"B")
            return original_connect(host, port, ssl)

        application.run(
            make_config(imap=IMAP_OPTIONS, poll_interval=0.01),
            processor,
            io.BytesIO(),
            connection_factory=connect,
            state=state,
        )

        self.assertEqual(processor.processed, [b"A", b"B"])
        self.assertEqual(len(server.connections), 2)
        self.assertTrue(self.logged("Polling enabled. Checking every 0.01 seconds."))

    def test_pop3_receiver_selected(self):
        server = FakePOP3Server(messages=[b"A\r\n"])
        processor = RecordingProcessor()
        config = make_config(
            pop3={"server": "pop.example.com", "username": "u", "password": "secret"}
        )

        application.run(config, processor, io.BytesIO(), connection_factory=server.connect)

        self.assertEqual(processor.processed, [b"A\r\n"])
        self.assertEqual(server.connections[0].port, 110)

    def test_missing_password_resolved_from_environment(self):
        server = FakeIMAPServer(messages=[b"A"], password="from-env")
        options = {"server": "imap.example.com", "username": "user"}
        os.environ["MAIL_PASSWORD"] = "from-env"
        try:
            application.run(
                make_config(imap=options),
                RecordingProcessor(),
                io.BytesIO(),
                connection_factory=server.connect,
            )
        finally:
            del os.environ["MAIL_PASSWORD"]

        self.assertEqual(server.raws("INBOX"), [])

    def test_nothing_configured_is_noop(self):
        self.assertIsNone(
            application.run(make_config(), RecordingProcessor(), io.BytesIO())
        )
        self.assertTrue(self.logged("nothing to do"))

    def test_create_receiver_by_variant(self):
        imap = ReceiverConfig.from_options("imap", IMAP_OPTIONS)
        pop3 = ReceiverConfig.from_options("pop3", {"server": "pop.example.com"})

        self.assertIsInstance(
            application.create_receiver(imap, RecordingProcessor()), IMAPReceiver
        )
        self.assertIsInstance(
            application.create_receiver(pop3, RecordingProcessor()), POP3Receiver
        )


class TestMain(unittest.TestCase):
    """Tests for the entry point shared by runloop.py and runonce.py"""

    def tearDown(self):
        application.configure_logging("INFO")

    def test_returns_zero_when_nothing_configured(self):
        self.assertEqual(application.main(make_config(log_level="DEBUG"), []), 0)

    def test_keyboard_interrupt_returns_130(self):
        with patch("application.run", side_effect=KeyboardInterrupt):
            self.assertEqual(application.main(make_config(), []), 130)

    def test_once_passed_through(self):
        with patch("application.run") as run:
            application.main(make_config(), [], once=True)

        self.assertTrue(run.call_args.kwargs["once"])

    def test_log_file_receives_lines(self):
        with tempfile.TemporaryDirectory() as tmp:
            path = os.path.join(tmp, "mailpump.log")

            application.main(make_config(log_level="DEBUG", log_file=path), [])
            application.configure_logging("INFO")

            with open(path) as f:
                self.assertIn("mailpump v", f.read())


if __name__ == "__main__":
    unittest.main(verbosity=2)
