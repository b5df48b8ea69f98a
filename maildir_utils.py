# -*- coding: utf-8 -*-
"""
Maildir watcher: wakes on deliveries to <maildir>/new and drains every
waiting message through the processor.
"""

import mailbox
import os
import threading

from loguru import logger
from watchdog.events import FileSystemEventHandler
from watchdog.observers import Observer


class MaildirEntry:
    """One file in the new subdirectory of a maildir"""

    def __init__(self, maildir, key, path):
        self.maildir = maildir
        self.key = key
        self.path = path

    def __repr__(self):
        return f"MaildirEntry({self.key!r})"

    def read(self):
        """Raw message bytes"""
        return self.maildir.get_bytes(self.key)

    def mark_processed(self):
        """Move the message from new to cur and flag it Seen"""
        message = self.maildir.get_message(self.key)
        message.set_subdir("cur")
        message.add_flag("S")
        self.maildir[self.key] = message


def list_new(maildir, root):
    """
    List messages currently waiting in <root>/new, in directory order.

    Args:
        maildir: mailbox.Maildir opened on root
        root: Maildir root path

    Returns:
        List of MaildirEntry
    """
    new_dir = os.path.join(root, "new")
    entries = []
    for name in os.listdir(new_dir):
        if name.startswith("."):
            continue
        path = os.path.join(new_dir, name)
        if not os.path.isfile(path):
            continue
        key = name.split(maildir.colon)[0]
        entries.append(MaildirEntry(maildir, key, path))
    return entries


class NewMailHandler(FileSystemEventHandler):
    """Treats any file arriving in new as a wake-up signal"""

    def __init__(self, watcher):
        super().__init__()
        self.watcher = watcher

    def on_created(self, event):
        if not event.is_directory:
            self.watcher.wake()

    def on_moved(self, event):
        if not event.is_directory:
            self.watcher.wake()


class MaildirWatcher:
    """
    Watch a maildir and hand each new message to the processor.

    Args:
        path: Maildir root (created if missing)
        processor: Dispatch sink with process_maildir_message(entry)
        observer_factory: Optional zero-argument watchdog observer factory
    """

    def __init__(self, path, processor, observer_factory=None):
        self.path = path
        self.processor = processor
        self.observer_factory = observer_factory or Observer
        self.maildir = mailbox.Maildir(path, create=True)
        self.observer = None
        self.failure = None
        self._lock = threading.Lock()

    def drain(self):
        """
        Process every message currently in new.

        Returns:
            Number of messages handed to the processor
        """
        with self._lock:
            logger.debug("Processing new message queue...")
            entries = list_new(self.maildir, self.path)
            for entry in entries:
                self.processor.process_maildir_message(entry)
            return len(entries)

    def wake(self):
        """Event callback; a failing drain stops the watch and is re-raised by watch()"""
        try:
            self.drain()
        except Exception as e:
            logger.exception(f"Maildir drain failed: {e}")
            self.failure = e
            self.stop()

    def watch(self, join_interval=1.0):
        """Block until the observer stops, draining on every delivery"""
        logger.info(f"Maildir receiver enabled ({self.path}).")
        self.observer = self.observer_factory()
        self.observer.schedule(
            NewMailHandler(self), os.path.join(self.path, "new"), recursive=False
        )
        self.observer.start()
        logger.debug("Monitoring the Maildir for new messages...")
        try:
            self.drain()
            while self.observer.is_alive():
                self.observer.join(join_interval)
        finally:
            self.stop()
            self.observer.join()

        if self.failure is not None:
            raise self.failure

    def stop(self):
        if self.observer is not None:
            self.observer.stop()
