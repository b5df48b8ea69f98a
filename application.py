# -*- coding: utf-8 -*-
"""
Application: picks the input mode once at startup and drives it.

Modes, in priority order:
1. STDIN has data: process it as one message and exit
2. pop3/imap configured: poll the mailbox (or check it once)
3. maildir configured: watch it for deliveries
"""

import os
import select
import signal
import stat
import sys
import time
from dataclasses import dataclass

from loguru import logger

import imap_utils
import maildir_utils
import pop3_utils
from processor import MessageProcessor
from processor import Router
from receiver_utils import TRANSPORT_ERRORS
from receiver_utils import ReceiverConfig
from receiver_utils import get_credential

VERSION = "0.1.0"

RECEIVERS = {
    "imap": imap_utils.IMAPReceiver,
    "pop3": pop3_utils.POP3Receiver,
}


# ============================================================================
# Input modes
# ============================================================================


@dataclass(frozen=True)
class StdinMode:
    stream: object


@dataclass(frozen=True)
class PolledMode:
    receiver_config: ReceiverConfig
    poll_interval: float


@dataclass(frozen=True)
class MaildirMode:
    path: str


def stdin_has_data(stream):
    """
    True if stream is a pipe, socket or non-empty file with data ready.
    Terminals and character devices such as /dev/null never count.
    """
    try:
        fd = stream.fileno()
    except (AttributeError, OSError, ValueError):
        return False

    st = os.fstat(fd)
    if stat.S_ISREG(st.st_mode):
        return st.st_size > 0
    if not (stat.S_ISFIFO(st.st_mode) or stat.S_ISSOCK(st.st_mode)):
        return False

    readable, _, _ = select.select([fd], [], [], 0)
    return bool(readable)


def connection_configuration(config):
    """
    Pick the receiver config block.

    Returns:
        (variant, options) or (None, None)
    """
    pop3 = getattr(config, "pop3", None)
    imap = getattr(config, "imap", None)
    if pop3 and imap:
        logger.warning("Both pop3 and imap are configured; using pop3.")
    if pop3:
        return "pop3", pop3
    if imap:
        return "imap", imap
    return None, None


def resolve_mode(config, stdin=None, once=False):
    """
    Decide the input mode from configuration and STDIN.

    Args:
        config: Configuration module (see config_data)
        stdin: Stream to probe, defaults to sys.stdin
        once: Force a single poll cycle

    Returns:
        StdinMode, PolledMode, MaildirMode or None
    """
    stdin = sys.stdin if stdin is None else stdin
    if not getattr(config, "ignore_stdin", False) and stdin_has_data(stdin):
        return StdinMode(stdin)

    variant, options = connection_configuration(config)
    if options:
        poll_interval = 0 if once else getattr(config, "poll_interval", 0)
        return PolledMode(ReceiverConfig.from_options(variant, options), poll_interval)

    maildir = getattr(config, "maildir", None)
    if maildir:
        return MaildirMode(maildir)

    return None


def read_stream(stream):
    """Read a whole stream as bytes"""
    source = getattr(stream, "buffer", stream)
    return source.read()


# ============================================================================
# Poll loop
# ============================================================================


class PollState:
    """
    Cancellation flag for the poll loop.

    Written by the SIGINT handler, read by the loop between cycles only.
    Sleeping is done in ticks so a stop request ends the wait early.
    """

    def __init__(self, tick=1.0):
        self.continue_polling = True
        self.tick = tick

    def stop(self, signum=None, frame=None):
        self.continue_polling = False

    def sleep(self, seconds):
        remaining = seconds
        while remaining > 0 and self.continue_polling:
            nap = min(remaining, self.tick)
            time.sleep(nap)
            remaining -= nap


def create_receiver(receiver_config, processor, connection_factory=None):
    receiver_class = RECEIVERS[receiver_config.variant]
    return receiver_class(receiver_config, processor, connection_factory)


def retrieve_from_connection(receiver):
    """
    Run one connect -> fetch -> disconnect cycle.

    Transport faults are logged and absorbed; anything else propagates.

    Returns:
        True if the cycle completed, False on a transport fault
    """
    logger.debug("Starting poll cycle")
    try:
        receiver.connect()
        try:
            receiver.get_messages()
        finally:
            receiver.disconnect()
    except TRANSPORT_ERRORS as e:
        logger.error(f"Poll cycle failed: {e}")
        return False
    return True


def watch_connection(receiver, poll_interval, graceful_death=False, state=None):
    """
    Poll until stopped.

    With graceful_death, SIGINT only clears the flag; the cycle in flight
    finishes and no further cycle starts.
    """
    state = state or PollState()
    installed = False
    if graceful_death:
        previous_handler = signal.signal(signal.SIGINT, state.stop)
        installed = True

    try:
        while state.continue_polling:
            retrieve_from_connection(receiver)
            if not state.continue_polling:
                break
            state.sleep(poll_interval)
    finally:
        if installed:
            # None means the old handler was not set from Python
            if previous_handler is None:
                previous_handler = signal.SIG_DFL
            signal.signal(signal.SIGINT, previous_handler)

    logger.info("Polling stopped.")


# ============================================================================
# Entry points
# ============================================================================


def configure_logging(level="INFO", log_file=None):
    """Replace loguru's default sink with stderr (and optionally a file)"""
    logger.remove()
    logger.add(sys.stderr, level=level)
    if log_file:
        logger.add(log_file, level=level, rotation="10 MB", retention=5)


def run(
    config,
    processor,
    stdin=None,
    once=False,
    connection_factory=None,
    observer_factory=None,
    state=None,
):
    """
    Run the application in the mode the configuration selects.

    Args:
        config: Configuration module (see config_data)
        processor: Dispatch sink
        stdin: Stream probed for a piped message, defaults to sys.stdin
        once: Force a single poll cycle
        connection_factory: Optional receiver connection factory (testing)
        observer_factory: Optional watchdog observer factory (testing)
        state: Optional PollState to stop polling from outside

    Returns:
        The resolved mode, or None when nothing is configured
    """
    logger.info(f"mailpump v{VERSION} started")
    mode = resolve_mode(config, stdin, once=once)

    match mode:
        case StdinMode(stream=stream):
            logger.debug("Processing message from STDIN.")
            processor.process(read_stream(stream))

        case PolledMode(receiver_config=receiver_config, poll_interval=poll_interval):
            if receiver_config.password is None:
                receiver_config = receiver_config.with_password(
                    get_credential("MAIL_PASSWORD", "password", "Password: ")
                )
            receiver = create_receiver(receiver_config, processor, connection_factory)

            if poll_interval > 0:
                logger.info(
                    f"Polling enabled. Checking every {poll_interval} seconds."
                )
                watch_connection(
                    receiver,
                    poll_interval,
                    getattr(config, "graceful_death", False),
                    state,
                )
            else:
                logger.info("Polling disabled. Checking for messages once.")
                retrieve_from_connection(receiver)

        case MaildirMode(path=path):
            watcher = maildir_utils.MaildirWatcher(path, processor, observer_factory)
            watcher.watch()

        case _:
            logger.info("No input configured; nothing to do.")

    return mode


def main(config, routes, default=None, once=False):
    """
    Configure logging, build the processor and run.

    Returns:
        Process exit code
    """
    configure_logging(
        getattr(config, "log_level", "INFO"), getattr(config, "log_file", None)
    )
    processor = MessageProcessor(Router(routes, default))

    try:
        run(config, processor, once=once)
    except KeyboardInterrupt:
        logger.info("Shutting down gracefully...")
        return 130

    return 0
