"""
Active application detection via macOS APIs.

Records which app had focus when recording started, so history entries can
show where a transcript was pasted.
"""

import subprocess
import time
from typing import Optional, Tuple

from .types import AppIdentity


# Cache for get_app_context() - avoids repeated osascript calls
_context_cache: Tuple[float, Optional[AppIdentity]] = (0.0, None)
_CONTEXT_CACHE_TTL = 0.3

_FRONTMOST_APP_SCRIPT = '''
tell application "System Events"
    set frontApp to first application process whose frontmost is true
    return (name of frontApp) & "|||" & (bundle identifier of frontApp)
end tell
'''


def get_app_context() -> Optional[AppIdentity]:
    """
    Get the frontmost application via osascript.

    Results are cached for 300ms. Returns None when the lookup fails
    (non-macOS, permissions, timeout).
    """
    global _context_cache

    cache_time, cached = _context_cache
    if cached is not None and (time.time() - cache_time) < _CONTEXT_CACHE_TTL:
        return cached

    try:
        result = subprocess.run(
            ["osascript", "-e", _FRONTMOST_APP_SCRIPT],
            capture_output=True,
            text=True,
            timeout=2.0,
        )
    except subprocess.TimeoutExpired:
        print("[Context] osascript timed out")
        return None
    except OSError as e:
        print(f"[Context] osascript unavailable: {e}")
        return None

    if result.returncode != 0:
        return None

    parts = result.stdout.strip().split("|||")
    if len(parts) < 2:
        return None

    identity = AppIdentity(bundle_id=parts[1], name=parts[0])
    _context_cache = (time.time(), identity)
    return identity
