# -*- coding: utf-8 -*-
"""
Configuration data: input mode, receiver settings, routing addresses, logging.
Pure data only - no functions, no side effects at import time.
"""

import os

# ============================================================================
# INPUT MODE
# ============================================================================

# A message piped on STDIN is processed once unless this is set.
ignore_stdin = False

# Receiver blocks; pop3 wins if both are set. The password may be omitted,
# it is then read from $MAIL_PASSWORD, --password, or a prompt.
imap = {
    "server": "imap.provider.com",
    "username": "username",
    "ssl": True,
    "in_folder": "INBOX",
    "processed_folder": "INBOX.Processed",
    "error_folder": "INBOX.Errors",
}

pop3 = None

# Local maildir, used only when no receiver block is set.
maildir = None

# ============================================================================
# POLLING
# ============================================================================

# Seconds between cycles; 0 checks once and exits.
poll_interval = 60

# SIGINT finishes the current cycle instead of killing the process.
graceful_death = True

# ============================================================================
# ROUTING ADDRESSES
# ============================================================================

mydomain = "@example.com"

archive_senders = ["receipts@", "billing@", "noreply@"]

alert_subjects = ["[ALERT]", "[CRITICAL]"]

archive_maildir = os.path.expanduser(
    os.environ.get("ARCHIVE_MAILDIR", "~/Mail/archive")
)

# ============================================================================
# LOGGING
# ============================================================================

log_level = os.environ.get("LOG_LEVEL", "INFO")
log_file = None
