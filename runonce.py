#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Single-run mail processor.
Connects to the configured mailbox, processes it once, and exits.
"""

import sys

import application
import config_data
import config_routes

sys.exit(
    application.main(
        config_data, config_routes.Routes, config_routes.Default, once=True
    )
)
