"""Vision helpers for locating reference markers in device screencaps."""

from .markers import MarkerVerifier, ReferenceLibrary, ReferenceNotFoundError, VerificationSkipped
from .screen_matcher import MatchResult, ScreenMatcher

__all__ = [
    "MarkerVerifier",
    "MatchResult",
    "ReferenceLibrary",
    "ReferenceNotFoundError",
    "ScreenMatcher",
    "VerificationSkipped",
]
