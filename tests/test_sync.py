"""Tests for merge strategies and sync dispatch."""

from datetime import datetime, timedelta, timezone
from types import SimpleNamespace

import pytest

from contextkit.errors import IncompatibleStructureError, UnsupportedOperationError, ValidationError
from contextkit.store.context import Context
from contextkit.sync.engine import SyncResult
from contextkit.sync.merger import MergeResult, MergeStrategy

T1 = datetime(2024, 1, 1, tzinfo=timezone.utc)
T2 = T1 + timedelta(seconds=30)


def stamp(ctx: Context, path: str, at: datetime) -> None:
    ctx.get_wrapped_item(path)._update_modification_timestamps(at)


def player(name: str, at: datetime, **extra) -> Context:
    ctx = Context({"data": {"player": {"name": name, **extra}}})
    stamp(ctx, "data.player.name", at)
    for key in extra:
        stamp(ctx, f"data.player.{key}", at)
    return ctx


@pytest.fixture
def alice() -> Context:
    return player("Alice", T1)


@pytest.fixture
def bob() -> Context:
    return player("Bob", T2)


class TestMergeNewerWins:
    def test_receiver_takes_newer_value(self, alice: Context, bob: Context):
        alice.merge_newer_wins(bob)
        assert alice.get_item("data.player.name") == "Bob"

    def test_both_sides_converge(self, alice: Context, bob: Context):
        alice.merge_newer_wins(bob)
        assert bob.get_item("data.player.name") == "Bob"

    def test_converges_in_either_direction(self, alice: Context, bob: Context):
        bob.merge_newer_wins(alice)
        assert alice.get_item("data.player.name") == "Bob"
        assert bob.get_item("data.player.name") == "Bob"

    def test_tie_goes_to_receiver(self):
        a = player("Alice", T1)
        b = player("Bob", T1)
        a.merge_newer_wins(b)
        assert a.get_item("data.player.name") == "Alice"
        assert b.get_item("data.player.name") == "Alice"

    def test_resolution_is_per_leaf(self):
        a = player("Alice", T2, level=1)
        b = player("Bob", T1, level=9)
        stamp(a, "data.player.level", T1)
        stamp(b, "data.player.level", T2)
        a.merge_newer_wins(b)
        assert a.get_item("data.player") == {"name": "Alice", "level": 9}
        assert b.get_item("data.player") == {"name": "Alice", "level": 9}

    def test_winner_keeps_its_timestamp(self, alice: Context, bob: Context):
        alice.merge_newer_wins(bob)
        assert alice.get_wrapped_item("data.player.name").modified_at == T2

    def test_one_sided_keys_are_copied_both_ways(self, alice: Context, bob: Context):
        alice.set_item("state.turn", 3)
        bob.set_item("flags.seen_intro", True)
        result = alice.merge_newer_wins(bob)
        assert bob.get_item("state.turn") == 3
        assert alice.get_item("flags.seen_intro") is True
        assert result.statistics.created == 2

    def test_copies_are_independent(self, alice: Context, bob: Context):
        bob.set_item("data.inventory", ["sword"])
        alice.merge_newer_wins(bob)
        alice.get_item("data.inventory").append("shield")
        assert bob.get_item("data.inventory") == ["sword"]

    def test_whole_subtree_copied_when_missing(self, alice: Context):
        other = Context({"state": {"map": {"x": 1, "y": 2}}})
        alice.merge_newer_wins(other)
        assert alice.get_item("state.map") == {"x": 1, "y": 2}

    def test_equal_values_are_skipped(self):
        a = player("Same", T1)
        b = player("Same", T2)
        result = a.merge_newer_wins(b)
        assert result.applied == []
        assert result.changes[0].reason == "equal"
        assert result.conflicts == []

    def test_result_details(self, alice: Context, bob: Context):
        result = alice.merge_newer_wins(bob)
        assert isinstance(result, MergeResult)
        assert result.success
        assert result.strategy is MergeStrategy.MERGE_NEWER_WINS
        assert result.items_processed == 1
        assert [c.path for c in result.conflicts] == ["data.player.name"]
        (change,) = result.applied
        assert change.action == "update"
        assert change.applied_to == "source"
        assert change.winner == "target"
        assert result.statistics.target_preferred == 1

    def test_logs_completion(self, alice: Context, bob: Context, caplog):
        with caplog.at_level("INFO", logger="contextkit"):
            alice.merge_newer_wins(bob)
        assert "Completed merge_newer_wins" in caplog.text


class TestMergeSafety:
    def test_incompatible_raises_without_mutation(self, alice: Context):
        other = Context()
        other.set_item("data.player", "flat")
        other.set_item("state.only_other", 1)
        alice.set_item("state.only_alice", 1)
        with pytest.raises(IncompatibleStructureError):
            alice.merge_newer_wins(other)
        assert not alice.has_item("state.only_other")
        assert not other.has_item("state.only_alice")

    def test_frozen_loser_is_skipped(self, alice: Context, bob: Context):
        alice.get_wrapped_item("data.player.name").freeze()
        result = alice.merge_newer_wins(bob)
        assert alice.get_item("data.player.name") == "Alice"
        assert [c.reason for c in result.changes if c.action == "skip"] == ["frozen"]
        assert result.statistics.skipped == 1

    def test_frozen_container_receives_nothing(self, alice: Context, bob: Context):
        bob.set_item("data.y", 1)
        alice.data.freeze()
        result = alice.merge_newer_wins(bob)
        assert not alice.has_item("data.y")
        assert alice.get_item("data.player.name") == "Alice"
        assert sorted(c.path for c in result.changes if c.reason == "frozen") == [
            "data.player.name",
            "data.y",
        ]

    def test_frozen_target_container_is_not_created_into(self, alice: Context, bob: Context):
        alice.set_item("state.turn", 3)
        bob.state.freeze()
        result = alice.merge_newer_wins(bob)
        assert not bob.has_item("state.turn")
        assert bob.get_item("data.player.name") == "Bob"
        assert [c.path for c in result.changes if c.reason == "frozen"] == ["state.turn"]

    def test_dry_run_changes_nothing(self, alice: Context, bob: Context):
        bob.set_item("state.turn", 1)
        result = alice.analyze(bob)
        assert result.dry_run
        assert len(result.applied) == 2
        assert alice.get_item("data.player.name") == "Alice"
        assert not alice.has_item("state.turn")


class TestMergeFilters:
    def test_components_filter(self, alice: Context, bob: Context):
        bob.set_item("state.turn", 1)
        alice.merge_newer_wins(bob, components=["state"])
        assert alice.get_item("state.turn") == 1
        assert alice.get_item("data.player.name") == "Alice"

    def test_exclude_components(self, alice: Context, bob: Context):
        bob.set_item("state.turn", 1)
        alice.merge_newer_wins(bob, exclude_components=["state"])
        assert alice.get_item("data.player.name") == "Bob"
        assert not alice.has_item("state.turn")

    def test_unknown_component(self, alice: Context, bob: Context):
        with pytest.raises(ValidationError, match="Unknown components"):
            alice.merge_newer_wins(bob, components=["inventory"])

    def test_allow_only(self):
        a = player("Alice", T1, level=1)
        b = player("Bob", T2, level=2)
        a.merge_newer_wins(b, allow_only=["data.player.level"])
        assert a.get_item("data.player") == {"name": "Alice", "level": 2}

    def test_block_only(self):
        a = player("Alice", T1, level=1)
        b = player("Bob", T2, level=2)
        result = a.merge_newer_wins(b, block_only=["data.player.name"])
        assert a.get_item("data.player") == {"name": "Alice", "level": 2}
        assert any(c.reason == "blocked" for c in result.changes)


class TestPriorityMerge:
    def test_source_priority_ignores_timestamps(self, alice: Context, bob: Context):
        result = alice.merge_with_priority(bob, priority="source")
        assert alice.get_item("data.player.name") == "Alice"
        assert bob.get_item("data.player.name") == "Alice"
        assert result.strategy is MergeStrategy.MERGE_SOURCE_PRIORITY

    def test_target_priority(self, bob: Context, alice: Context):
        bob.merge_with_target_priority(alice)
        assert bob.get_item("data.player.name") == "Alice"
        assert alice.get_item("data.player.name") == "Alice"

    def test_manual_defers_conflicts(self, alice: Context, bob: Context):
        bob.set_item("state.turn", 2)
        result = alice.merge_with_priority(bob, priority="target", conflict_resolution="manual")
        assert alice.get_item("data.player.name") == "Alice"
        assert bob.get_item("data.player.name") == "Bob"
        assert [c.path for c in result.deferred] == ["data.player.name"]
        assert [c.path for c in result.applied] == ["state.turn"]
        assert result.statistics.deferred == 1
        assert alice.get_item("state.turn") == 2

    def test_invalid_priority(self, alice: Context, bob: Context):
        with pytest.raises(ValidationError, match="priority"):
            alice.merge_with_priority(bob, priority="both")

    def test_invalid_conflict_resolution(self, alice: Context, bob: Context):
        with pytest.raises(ValidationError, match="conflict_resolution"):
            alice.merge_with_priority(bob, conflict_resolution="later")


class TestSync:
    def test_merge_operation(self, alice: Context, bob: Context):
        result = alice.sync(bob)
        assert isinstance(result, SyncResult)
        assert result.success
        assert result.operation == "merge"
        assert isinstance(result.details, MergeResult)
        assert alice.get_item("data.player.name") == "Bob"

    def test_replace_makes_target_a_copy(self, alice: Context):
        target = Context({"data": {"stale": 1}, "state": {"turn": 9}})
        result = alice.sync(target, "replace")
        assert target.peek() == alice.peek()
        assert result.details["direction"] == "source->target"

    def test_replace_copies_are_independent(self, alice: Context):
        target = Context()
        alice.sync(target, "replace")
        target.set_item("data.player.name", "Zed")
        assert alice.get_item("data.player.name") == "Alice"

    def test_update_makes_source_a_copy(self, alice: Context, bob: Context):
        alice.set_item("state.extra", 1)
        alice.sync(bob, "update")
        assert alice.peek() == bob.peek()
        assert not alice.has_item("state.extra")

    def test_replace_skips_frozen_component(self, alice: Context):
        target = Context({"data": {"stale": 1}, "state": {"turn": 9}})
        target.data.freeze()
        result = alice.sync(target, "replace")
        assert target.get_item("data") == {"stale": 1}
        assert target.get_item("state") == {}
        assert result.details["skipped"] == ["data"]
        assert "data" not in result.details["components"]

    def test_update_skips_component_holding_frozen_item(self, alice: Context, bob: Context):
        alice.get_wrapped_item("data.player.name").freeze()
        result = alice.sync(bob, "update")
        assert alice.get_item("data.player.name") == "Alice"
        assert result.details["skipped"] == ["data"]

    def test_unknown_operation(self, alice: Context, bob: Context):
        with pytest.raises(UnsupportedOperationError, match="Unsupported sync operation"):
            alice.sync(bob, "teleport")

    def test_provider_target(self, alice: Context, bob: Context):
        manager = SimpleNamespace(context=bob)
        alice.sync_data(manager)
        assert alice.get_item("data.player.name") == "Bob"

    def test_component_narrowing(self, alice: Context, bob: Context):
        bob.set_item("state.turn", 5)
        result = alice.sync_component(bob, "state")
        assert alice.get_item("state.turn") == 5
        assert alice.get_item("data.player.name") == "Alice"
        assert result.success

    def test_sync_components_replace(self, alice: Context):
        target = Context({"settings": {"volume": 1}})
        alice.set_item("settings.volume", 9)
        alice.sync_components(target, ["settings", "flags"], "replace")
        assert target.get_item("settings.volume") == 9
        assert target.get_item("data") == {}

    @pytest.mark.parametrize("method", ["sync_schema", "sync_state", "sync_flags", "sync_settings"])
    def test_named_component_helpers(self, alice: Context, bob: Context, method):
        name = method.removeprefix("sync_")
        bob.set_item(f"{name}.marker", name)
        getattr(alice, method)(bob)
        assert alice.get_item(f"{name}.marker") == name
        assert alice.get_item("data.player.name") == "Alice"

    def test_sync_rejects_non_context(self, alice: Context):
        with pytest.raises(ValidationError):
            alice.sync({"data": {}})


class TestAutoSync:
    def test_defaults_to_newer_wins(self, alice: Context, bob: Context):
        result = alice.auto_sync(bob)
        assert result.success
        assert result.operation == "merge_newer_wins"
        assert alice.get_item("data.player.name") == "Bob"

    def test_incompatible_is_a_no_op_failure(self, alice: Context):
        other = Context()
        other.set_item("data.player", "flat")
        other.set_item("state.turn", 1)
        result = alice.auto_sync(other)
        assert result.success is False
        assert "data.player" in result.error
        assert not alice.has_item("state.turn")
        assert other.get_item("data.player") == "flat"

    def test_named_strategy(self, alice: Context, bob: Context):
        result = alice.auto_sync(bob, strategy="merge_source_priority")
        assert result.operation == "merge_source_priority"
        assert bob.get_item("data.player.name") == "Alice"

    def test_update_strategy(self, alice: Context, bob: Context):
        alice.auto_sync(bob, strategy=MergeStrategy.UPDATE_TO_MATCH)
        assert alice.get_item("data.player.name") == "Bob"

    def test_unknown_strategy(self, alice: Context, bob: Context):
        with pytest.raises(UnsupportedOperationError, match="Unsupported merge strategy"):
            alice.auto_sync(bob, strategy="coin_flip")
