# -*- coding: utf-8 -*-
"""
IMAP receiver: connect, fetch-and-acknowledge, disconnect.
"""

import imaplib

from loguru import logger

from receiver_utils import TRANSPORT_ERRORS
from receiver_utils import NotConnectedError

SEEN_AND_DELETED = r"(\Seen \Deleted)"


def open_connection(server, port, ssl):
    """Open a plaintext or SSL IMAP connection (not yet authenticated)"""
    if ssl:
        return imaplib.IMAP4_SSL(server, port)
    return imaplib.IMAP4(server, port)


def quote_mailbox(name):
    """Quote a mailbox name for the wire unless it is a plain atom"""
    if name.startswith('"') or not any(c in name for c in ' "\\(){%*'):
        return name
    return '"' + name.replace("\\", "\\\\").replace('"', '\\"') + '"'


def check_response(connection, typ, data, what):
    """Raise the connection's error type on a NO/BAD answer"""
    if typ != "OK":
        raise connection.error(f"{what} failed: {typ} {data!r}")
    return data


class IMAPReceiver:
    """
    Receives messages over IMAP and passes them to a processor.

    Every message in the inbound folder is fetched, dispatched, optionally
    copied to the processed folder, then flagged Seen and Deleted.
    Deleted messages are purged on disconnect.

    Args:
        config: ReceiverConfig with variant "imap"
        processor: Dispatch sink with process(raw_bytes)
        connection_factory: Optional (server, port, ssl) -> IMAP4 connection
    """

    def __init__(self, config, processor, connection_factory=None):
        self.config = config
        self.processor = processor
        self.connection_factory = connection_factory or open_connection
        self.connection = None
        self._known_mailboxes = set()

    def connect(self):
        """Open connection and login to server"""
        connection = self.connection_factory(
            self.config.server, self.config.port, self.config.ssl
        )
        try:
            connection.login(self.config.username, self.config.password)
        except TRANSPORT_ERRORS:
            connection.shutdown()
            raise
        self.connection = connection
        self._known_mailboxes = set()

    def disconnect(self):
        """Expunge, log out and drop the connection. Safe to call twice."""
        connection = self.connection
        if connection is None:
            return
        self.connection = None

        try:
            typ, data = connection.expunge()
            if typ != "OK":
                logger.warning(f"Failed to expunge: {typ} {data!r}")
        except TRANSPORT_ERRORS as e:
            logger.warning(f"Failed to expunge: {e}")

        try:
            connection.logout()
        except TRANSPORT_ERRORS as e:
            logger.debug(f"Logout failed: {e}")

    def get_messages(self):
        """
        Process every message in the inbound folder.

        A processor error aborts the remaining messages and propagates.

        Returns:
            Number of messages processed
        """
        connection = self._require_connection()

        typ, data = connection.select(quote_mailbox(self.config.in_folder))
        check_response(connection, typ, data, f"SELECT {self.config.in_folder}")

        typ, data = connection.uid("SEARCH", None, "ALL")
        data = check_response(connection, typ, data, "SEARCH ALL")
        uids = data[0].split() if data and data[0] else []
        logger.debug(f"{len(uids)} message(s) in {self.config.in_folder}")

        for uid in uids:
            message = self._fetch(connection, uid)
            try:
                self.processor.process(message)
            except Exception:
                if self.config.error_folder:
                    self._move_to_error_folder(connection, uid)
                raise

            if self.config.processed_folder:
                self._copy(connection, uid, self.config.processed_folder)
            self._flag_deleted(connection, uid)

        return len(uids)

    def _require_connection(self):
        if self.connection is None:
            raise NotConnectedError("IMAP receiver is not connected")
        return self.connection

    def _fetch(self, connection, uid):
        typ, data = connection.uid("FETCH", uid, "(RFC822)")
        data = check_response(connection, typ, data, f"FETCH {uid.decode()}")
        for ret in data:
            if isinstance(ret, tuple) and len(ret) > 1:
                return ret[1]
        raise connection.error(f"FETCH {uid.decode()} returned no message body")

    def _copy(self, connection, uid, folder):
        self.ensure_mailbox(folder)
        typ, data = connection.uid("COPY", uid, quote_mailbox(folder))
        check_response(connection, typ, data, f"COPY {uid.decode()} to {folder}")

    def _flag_deleted(self, connection, uid):
        typ, data = connection.uid("STORE", uid, "+FLAGS", SEEN_AND_DELETED)
        check_response(connection, typ, data, f"STORE {uid.decode()}")

    def _copy_and_delete(self, connection, uid, folder):
        self._copy(connection, uid, folder)
        self._flag_deleted(connection, uid)

    def _move_to_error_folder(self, connection, uid):
        # The processor error is what propagates; a failed move is only logged
        folder = self.config.error_folder
        logger.error(f"Processing UID {uid.decode()} failed, moving it to {folder}")
        try:
            self._copy_and_delete(connection, uid, folder)
        except TRANSPORT_ERRORS as e:
            logger.error(f"Could not move UID {uid.decode()} to {folder}: {e}")

    def ensure_mailbox(self, mailbox):
        """Create mailbox unless it exists; checked once per connection"""
        if mailbox in self._known_mailboxes:
            return
        connection = self._require_connection()
        typ, data = connection.list('""', quote_mailbox(mailbox))
        check_response(connection, typ, data, f"LIST {mailbox}")
        if not any(data):
            logger.info(f"Creating mailbox: {mailbox}")
            typ, data = connection.create(quote_mailbox(mailbox))
            check_response(connection, typ, data, f"CREATE {mailbox}")
        self._known_mailboxes.add(mailbox)
