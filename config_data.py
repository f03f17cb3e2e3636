# -*- coding: utf-8 -*-
"""
Configuration data: server defaults, timeouts, and retry limits.
Pure data only - no functions, no side effects at import time.
"""

# ============================================================================
# SERVER SETTINGS
# ============================================================================

imap_port = 993

inbox = "INBOX"

# ============================================================================
# TIMEOUTS (seconds)
# ============================================================================

# TCP connect and TLS handshake
connect_timeout = 30

# Waiting for the tagged reply of LOGIN, SELECT, DONE, LOGOUT
command_timeout = 120

# Servers may drop IDLE after 30 minutes (RFC 2177), so renew before that
idle_timeout = 29 * 60 - 1

# External command, None waits for it to finish
external_command_timeout = None

# ============================================================================
# RECONNECT BACKOFF (seconds)
# ============================================================================

initial_delay = 1
max_delay = 30 * 60

# ============================================================================
# WIRE LIMITS
# ============================================================================

read_size = 4096
max_line_length = 1000000
