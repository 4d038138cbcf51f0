"""Tests for the JSON-backed stores."""
from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path

import pytest

from titlebot_agent.models import AccountType, KingdomTier, Location
from titlebot_agent.store import LocationBook, StoreUnavailable, VisitedContext, VisitedContextStore


def test_visited_context_empty_until_written(tmp_path: Path) -> None:
    store = VisitedContextStore(tmp_path / "data" / "last_visited.json")
    assert store.get() is None

    visited_at = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)
    store.set(VisitedContext("1234", visited_at))

    assert store.get() == VisitedContext("1234", visited_at)


def test_visited_context_last_writer_wins(tmp_path: Path) -> None:
    store = VisitedContextStore(tmp_path / "last_visited.json")
    store.set(VisitedContext("1234", datetime(2024, 5, 1, tzinfo=timezone.utc)))
    store.set(VisitedContext("5678", datetime(2024, 5, 2, tzinfo=timezone.utc)))

    assert store.get().context_id == "5678"
    assert [p.name for p in tmp_path.iterdir()] == ["last_visited.json"]


def test_visited_context_corrupt_file_is_unavailable(tmp_path: Path) -> None:
    path = tmp_path / "last_visited.json"
    path.write_text("{not json", encoding="utf-8")

    with pytest.raises(StoreUnavailable):
        VisitedContextStore(path).get()


def test_visited_context_unwritable_location_is_unavailable(tmp_path: Path) -> None:
    blocker = tmp_path / "blocker"
    blocker.write_text("a file where a directory should be", encoding="utf-8")

    with pytest.raises(StoreUnavailable):
        VisitedContextStore(blocker / "last_visited.json").set(
            VisitedContext("1234", datetime(2024, 5, 1, tzinfo=timezone.utc))
        )


def test_location_book_upserts_per_account_type(tmp_path: Path) -> None:
    book = LocationBook(tmp_path / "locations.json")
    book.save(Location("42", "Rook", AccountType.MAIN, KingdomTier.HOME, 100, 200))
    book.save(Location("42", "Rook", AccountType.FARM, KingdomTier.LOST, 5, 6))
    book.save(Location("42", "Rook", AccountType.MAIN, KingdomTier.LOST, 300, 400))

    main = book.find("42", AccountType.MAIN)
    assert (main.tier, main.x, main.y) == (KingdomTier.LOST, 300, 400)
    assert main.updated_at is not None
    assert book.find("42", AccountType.FARM).x == 5
    assert book.find("42", AccountType.ALT) is None
    assert book.find("7", AccountType.MAIN) is None
    assert len(book.list_for_user("42")) == 2


def test_location_book_survives_reload(tmp_path: Path) -> None:
    path = tmp_path / "locations.json"
    LocationBook(path).save(Location("9", "Scout", AccountType.ALT, KingdomTier.HOME, 1, 2))

    reloaded = LocationBook(path).find("9", AccountType.ALT)

    assert reloaded.user_name == "Scout"
    assert reloaded.tier is KingdomTier.HOME
