# -*- coding: utf-8 -*-
"""
Route handlers.
All handlers are factory functions that return configured handler functions.
Handler signature: handler(message, raw) -> None
"""

import mailbox

from loguru import logger


def LogMessage(level="INFO"):
    """Factory: Create handler that logs sender and subject"""

    def handler(message, raw):
        logger.log(level, f"{message['From']}: {message['Subject']}")

    return handler


def SaveToMaildir(path):
    """Factory: Create handler that delivers the raw message into a local maildir"""

    def handler(message, raw):
        key = mailbox.Maildir(path, create=True).add(raw)
        logger.debug(f"Saved {message['Message-ID']} to {path} as {key}")

    return handler

