# -*- coding: utf-8 -*-
"""
Default dispatch sink: parse each message and hand it to the first matching route.
"""

from loguru import logger

import email_utils


class Router:
    """
    Ordered routes, first match wins.

    Args:
        routes: List of (predicate, [handler, ...]) pairs
        default: Optional handler list for messages no route matches
    """

    def __init__(self, routes, default=None):
        self.routes = list(routes)
        self.default = default

    def route(self, message, raw):
        """
        Run the handlers of the first matching route.

        Returns:
            True if a route matched, False otherwise
        """
        for condition, handler_funcs in self.routes:
            if condition(message):
                for handlef in handler_funcs:
                    handlef(message, raw)
                return True

        if self.default:
            for handlef in self.default:
                handlef(message, raw)
        else:
            logger.debug(f"No route matched {message['Message-ID']}")
        return False


class MessageProcessor:
    """Dispatch sink consumed by the receivers and the maildir watcher"""

    def __init__(self, router):
        self.router = router

    def process(self, raw):
        message = email_utils.parse_message(raw)
        logger.debug(
            f"Got new message from '{message['From']}' "
            f"with subject '{message['Subject']}'."
        )
        return self.router.route(message, raw)

    def process_maildir_message(self, entry):
        """Process a maildir entry, then move it to cur as Seen"""
        matched = self.process(entry.read())
        entry.mark_processed()
        return matched
