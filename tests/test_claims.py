"""
tests/test_claims.py — Folder Claim Table & Tie-Break Tests
=============================================================
"""

from __future__ import annotations

from mytroupe.database.models import EventType
from mytroupe.engine.claims import FolderClaimTable


def _types(*titles: str) -> list[EventType]:
    return [
        EventType(id=f"type-{t}", troupe_id="t1", title=t, value=1, source_folder_uris=[])
        for t in titles
    ]


class TestTieBreak:
    def test_unclaimed_folder_goes_to_challenger(self):
        table = FolderClaimTable(_types("A", "B"))
        assert table.tie_break("f1", 1) == 1

    def test_lower_challenger_count_wins(self):
        """Owner A holds 2, challenger B holds 1: B wins."""
        table = FolderClaimTable(_types("A", "B"))
        table.claim("f1", 0)
        table.claim("f2", 0)
        table.claim("g1", 1)
        assert (table.arena[0].total_files, table.arena[1].total_files) == (2, 1)

        assert table.tie_break("f1", 1) == 1

    def test_equal_counts_go_to_challenger(self):
        table = FolderClaimTable(_types("A", "B"))
        table.claim("f1", 0)
        table.claim("g1", 1)
        assert table.tie_break("f1", 1) == 1

    def test_owner_keeps_folder_when_strictly_lower(self):
        table = FolderClaimTable(_types("A", "B"))
        table.claim("f1", 0)
        table.claim("g1", 1)
        table.claim("g2", 1)
        assert table.tie_break("f1", 1) == 0
        assert table.claim("f1", 1) is False
        assert table.owner_of("f1").index == 0


class TestClaim:
    def test_transfer_moves_counts_and_folder(self):
        table = FolderClaimTable(_types("A", "B"))
        table.claim("f1", 0)
        table.claim("f2", 0)

        assert table.claim("f1", 1) is True

        a, b = table.arena
        assert a.total_files == 1 and a.folder_ids == ["f2"]
        assert b.total_files == 1 and b.folder_ids == ["f1"]
        assert table.owner_of("f1") is b

    def test_transfer_reenqueues_folder(self):
        table = FolderClaimTable(_types("A", "B"))
        table.claim("f1", 0)
        table.worklist.clear()

        table.claim("f1", 1)
        assert table.worklist == ["f1"]

    def test_reclaim_by_owner_is_noop(self):
        table = FolderClaimTable(_types("A"))
        table.claim("f1", 0)
        assert table.claim("f1", 0) is False
        assert table.arena[0].total_files == 1

    def test_release_drops_folder_but_keeps_count(self):
        table = FolderClaimTable(_types("A"))
        table.claim("f1", 0)
        table.release("f1")

        assert not table.is_claimed("f1")
        assert table.arena[0].folder_ids == []
        assert table.arena[0].total_files == 1


class TestWorklist:
    def test_last_in_first_out(self):
        table = FolderClaimTable(_types("A"))
        for folder in ("f1", "f2", "f3"):
            table.claim(folder, 0)

        order = []
        while (item := table.next_folder()) is not None:
            order.append(item[0])
        assert order == ["f3", "f2", "f1"]

    def test_folder_expanded_once_per_owner(self):
        table = FolderClaimTable(_types("A", "B"))
        table.claim("f1", 0)
        assert table.next_folder()[0] == "f1"

        # Same owner again: skipped
        table.worklist.append("f1")
        assert table.next_folder() is None

        # New owner: expanded again
        table.claim("f1", 1)
        folder, owner = table.next_folder()
        assert folder == "f1" and owner.index == 1

    def test_released_folder_is_skipped(self):
        table = FolderClaimTable(_types("A"))
        table.claim("f1", 0)
        table.release("f1")
        assert table.next_folder() is None
