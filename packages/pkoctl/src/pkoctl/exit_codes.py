from __future__ import annotations

OK = 0
ERR_FAILURE = 1
ERR_USAGE = 2
ERR_INTERRUPTED = 130

# Every unrecoverable step failure surfaces as ERR_FAILURE; the aliases keep call sites readable.
ERR_PREREQ = ERR_FAILURE
ERR_CONFIG = ERR_FAILURE
ERR_TIMEOUT = ERR_FAILURE
ERR_INTERNAL = ERR_FAILURE
