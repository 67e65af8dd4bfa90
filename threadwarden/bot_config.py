"""
Source of truth for IDs & tokens
======================================================
Supports **multi‑env** (TEST vs PROD) so you can point the warden at a sandbox
guild first, then flip the env var when you deploy.

Usage
-----
$ export env=TEST  # or PROD (default PROD)
$ python -m threadwarden

* .env (git‑ignored) keeps the token and the tier layout *
DISCORD_TOKEN=xxx
GUILD_ID=123
ROLE_0_ID=111   THREAD_0_ID=211
ROLE_1_ID=112   THREAD_1_ID=212
IGNORED_ROLES=900,901

Each ``ROLE_<n>_ID`` / ``THREAD_<n>_ID`` pair is one role tier: members of
thread ``n`` must hold role ``n``. Tiers are validated when the roster cog
loads, not at import time.
"""
from __future__ import annotations
import os
import logging
from .util import int_env
from dotenv import load_dotenv
load_dotenv()

# ─── Select env ────────────────────────────────────────────────────────────
env = os.getenv("env", "prod").upper()
IS_TEST = env == "TEST"

# ─── Tokens ───────────────────────────────────────────────────────────────
TOKEN = os.getenv("DISCORD_TOKEN")

# ─── IDs ──────────────────────────────────────────────────────────────────
GUILD_ID = int_env("GUILD_ID", 0)

# Helper: convenience log line
logging.getLogger(f"threadwarden.{__name__}").info(
    "Loaded %s env for Guild %s", env, GUILD_ID
)
