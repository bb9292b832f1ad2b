"""Blips: capture small notes as files and resurface the ones worth another look.

    store = BlipStore(Path.home() / ".assistant" / "blips")
    blip = store.capture("look into CRDTs", ManualSource(), "curiosity")
    store.add_note(blip.id, "start with the Automerge paper")
    for result in store.get_surfaceable_blips(3):
        print(result.reason, result.suggested_moves)
"""

from .cleanup import CleanupReport, run_cleanup
from .config import BlipsConfig, load_config
from .models import (
    Blip,
    BlipStats,
    IndexEntry,
    InvalidTransitionError,
    PromotedTo,
    SurfaceResult,
)
from .sources import (
    BlipSource,
    ClipperSource,
    DailyNoteSource,
    DiscordSource,
    ManualSource,
    ObsidianInboxSource,
)
from .store import BlipStore
from .surfacing import SurfacingEngine

__all__ = [
    "Blip",
    "BlipSource",
    "BlipStats",
    "BlipStore",
    "BlipsConfig",
    "CleanupReport",
    "ClipperSource",
    "DailyNoteSource",
    "DiscordSource",
    "IndexEntry",
    "InvalidTransitionError",
    "ManualSource",
    "ObsidianInboxSource",
    "PromotedTo",
    "SurfaceResult",
    "SurfacingEngine",
    "load_config",
    "run_cleanup",
]
