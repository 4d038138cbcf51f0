"""Request scheduling and device sequencing for the title bot."""
from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:  # pragma: no cover - import typing aid only
    from .locator import BotLocator
    from .scheduler import RequestScheduler
    from .sequencer import ActionSequencer
    from .service import TitleService

__all__ = ["ActionSequencer", "BotLocator", "RequestScheduler", "TitleService"]


def __getattr__(name: str):
    if name == "ActionSequencer":
        from .sequencer import ActionSequencer

        return ActionSequencer
    if name == "BotLocator":
        from .locator import BotLocator

        return BotLocator
    if name == "RequestScheduler":
        from .scheduler import RequestScheduler

        return RequestScheduler
    if name == "TitleService":
        from .service import TitleService

        return TitleService
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
