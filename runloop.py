#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Continuous mail processor.
Handles piped STDIN once, otherwise polls the configured mailbox
every poll_interval seconds or watches the configured maildir.
"""

import sys

import application
import config_data
import config_routes

sys.exit(application.main(config_data, config_routes.Routes, config_routes.Default))
