"""
Test configuration

Environment overrides must be in place before tokenvault.main builds the
global services.
"""

import os

os.environ.setdefault("HASH_ITERATIONS", "1000")
os.environ.setdefault("STORE_BACKEND", "memory")
os.environ.setdefault("LOG_JSON", "false")
