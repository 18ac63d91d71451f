# blossom/core/errors.py
from __future__ import annotations



class ReactorScramError(Exception):
    """Raised when Blossom violates a core invariant and hits the shutdown button."""
    pass
