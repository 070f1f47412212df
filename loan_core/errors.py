from __future__ import annotations


class LoadError(RuntimeError):
    """The dataset could not be read or parsed. Fatal to dashboard start-up."""
