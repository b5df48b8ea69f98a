# -*- coding: utf-8 -*-
"""
Shared test setup for mail receiver tests.
"""

import sys
from pathlib import Path

# Ensure project root is importable without pip install
sys.path.insert(0, str(Path(__file__).parent.parent))
