# -*- coding: utf-8 -*-
"""
POP3 receiver: connect, fetch-and-delete, disconnect.
POP3 has no server-side folders; deletions are committed by QUIT.
"""

import poplib

from loguru import logger

from receiver_utils import TRANSPORT_ERRORS
from receiver_utils import NotConnectedError

CRLF = b"\r\n"


def open_connection(server, port, ssl):
    """Open a plaintext or SSL POP3 connection (not yet authenticated)"""
    if ssl:
        return poplib.POP3_SSL(server, port)
    return poplib.POP3(server, port)


class POP3Receiver:
    """
    Receives messages over POP3 and passes them to a processor.

    Args:
        config: ReceiverConfig with variant "pop3"
        processor: Dispatch sink with process(raw_bytes)
        connection_factory: Optional (server, port, ssl) -> POP3 connection
    """

    def __init__(self, config, processor, connection_factory=None):
        self.config = config
        self.processor = processor
        self.connection_factory = connection_factory or open_connection
        self.connection = None

    def connect(self):
        connection = self.connection_factory(
            self.config.server, self.config.port, self.config.ssl
        )
        try:
            connection.user(self.config.username)
            connection.pass_(self.config.password)
        except TRANSPORT_ERRORS:
            connection.close()
            raise
        self.connection = connection

    def disconnect(self):
        """QUIT (commits deletions) and drop the connection. Safe to call twice."""
        connection = self.connection
        if connection is None:
            return
        self.connection = None

        try:
            connection.quit()
        except TRANSPORT_ERRORS as e:
            logger.warning(f"Failed to quit cleanly: {e}")
            connection.close()

    def get_messages(self):
        """
        Retrieve, process and mark for deletion every message in the maildrop.

        Returns:
            Number of messages processed
        """
        if self.connection is None:
            raise NotConnectedError("POP3 receiver is not connected")
        connection = self.connection

        count, _ = connection.stat()
        logger.debug(f"{count} message(s) in maildrop")

        for number in range(1, count + 1):
            _, lines, _ = connection.retr(number)
            self.processor.process(CRLF.join(lines) + CRLF)
            connection.dele(number)

        return count
