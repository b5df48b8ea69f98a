# -*- coding: utf-8 -*-
"""
Receiver plumbing shared by the IMAP and POP3 transports:
configuration, transient error class, credentials.
"""

import dataclasses
import getpass
import imaplib
import os
import poplib
import sys
from dataclasses import dataclass

# Faults a poll cycle absorbs and retries on the next cycle.
TRANSPORT_ERRORS = (OSError, imaplib.IMAP4.error, poplib.error_proto)

DEFAULT_PORTS = {
    ("imap", False): imaplib.IMAP4_PORT,
    ("imap", True): imaplib.IMAP4_SSL_PORT,
    ("pop3", False): poplib.POP3_PORT,
    ("pop3", True): poplib.POP3_SSL_PORT,
}


class NotConnectedError(RuntimeError):
    """Raised when a receiver is used without a live connection"""


@dataclass(frozen=True)
class ReceiverConfig:
    """
    Immutable settings for one receiver.

    The port defaults from the variant and the ssl flag when not given.
    Folder names only apply to the IMAP variant.
    """

    variant: str
    server: str
    username: str = None
    password: str = dataclasses.field(default=None, repr=False)
    port: int = None
    ssl: bool = False
    in_folder: str = "INBOX"
    processed_folder: str = None
    error_folder: str = None

    def __post_init__(self):
        if self.variant not in ("imap", "pop3"):
            raise ValueError(f"unknown receiver variant: {self.variant!r}")
        if self.port is None:
            object.__setattr__(
                self, "port", DEFAULT_PORTS[(self.variant, bool(self.ssl))]
            )
        if self.variant == "pop3" and (self.processed_folder or self.error_folder):
            raise ValueError("POP3 has no server-side folders")

    @classmethod
    def from_options(cls, variant, options):
        """Build from a config block dict such as config_data.imap"""
        return cls(variant=variant, **options)

    def with_password(self, password):
        return dataclasses.replace(self, password=password)


def get_credential(env_var, arg_name, prompt):
    """
    Get credential from environment, command line args, or prompt.

    Priority:
    1. Environment variable
    2. Command line --arg=value or --arg value
    3. Interactive prompt (masked input)
    """
    value = os.environ.get(env_var)
    if value:
        return value

    for i, arg in enumerate(sys.argv):
        if arg.startswith(f"--{arg_name}="):
            return arg.split("=", 1)[1]
        elif arg == f"--{arg_name}" and i + 1 < len(sys.argv):
            return sys.argv[i + 1]

    return getpass.getpass(prompt)
