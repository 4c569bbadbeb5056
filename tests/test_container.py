"""Tests for ContextContainer."""

import pytest

from contextkit.errors import FrozenItemError, ValidationError
from contextkit.store.container import CIRCULAR_MARKER, RESERVED_KEYS, ContextContainer
from contextkit.store.item import ContextItem
from contextkit.store.wrapper import WrapAs, WrapOptions


@pytest.fixture
def container() -> ContextContainer:
    return ContextContainer({"hp": 10, "name": "Ann"})


class TestSetAndGet:
    @pytest.mark.parametrize("key,value", [("a", 1), ("long_key", [1, 2]), ("x", None), ("m", {"k": "v"})])
    def test_set_then_get_value(self, key, value):
        assert ContextContainer().set_item(key, value).get_value(key) == value

    def test_set_item_is_chainable(self):
        c = ContextContainer().set_item("a", 1).set_item("b", 2)
        assert c.value == {"a": 1, "b": 2}

    @pytest.mark.parametrize("key", sorted(RESERVED_KEYS))
    def test_reserved_keys_rejected(self, container: ContextContainer, key):
        before = container.peek()
        modified = container.modified_at
        with pytest.raises(ValidationError, match="reserved"):
            container.set_item(key, 1)
        assert container.peek() == before
        assert container.modified_at == modified

    def test_reserved_segment_rejected(self, container: ContextContainer):
        with pytest.raises(ValidationError, match='Key "size" is reserved'):
            container.set_item("stats.size", 1)
        assert not container.has_item("stats")

    @pytest.mark.parametrize("key", ["", 5, None, "a..b"])
    def test_invalid_keys_rejected(self, container: ContextContainer, key):
        with pytest.raises(ValidationError):
            container.set_item(key, 1)

    def test_dotted_key_creates_containers(self):
        c = ContextContainer().set_item("player.stats.hp", 3)
        assert isinstance(c.get_item("player"), ContextContainer)
        assert isinstance(c.get_item("player.stats"), ContextContainer)
        assert c.get_value("player.stats.hp") == 3
        assert c.value == {"player": {"stats": {"hp": 3}}}

    def test_dotted_get_descends_into_item_values(self):
        c = ContextContainer().set_item("player", {"name": "Bob", "inventory": ["sword"]})
        assert isinstance(c.get_item("player"), ContextItem)
        assert c.get_value("player.name") == "Bob"
        assert c.get_value("player.inventory.0") == "sword"
        assert c.get_value("player.missing", "none") == "none"

    def test_nested_write_through_item_rejected(self, container: ContextContainer):
        with pytest.raises(ValidationError, match="non-container"):
            container.set_item("hp.max", 20)
        assert container.get_value("hp") == 10

    def test_missing_key(self, container: ContextContainer):
        assert container.get_item("nope") is None
        assert container.get_value("nope") is None
        assert container.get_item(42) is None

    def test_wrap_as_container(self):
        c = ContextContainer().set_item("stats", {"hp": 1}, wrap_as=WrapAs.CONTAINER)
        assert isinstance(c.get_item("stats"), ContextContainer)
        assert c.get_value("stats.hp") == 1

    def test_default_item_options_apply(self):
        c = ContextContainer(default_item_options=WrapOptions(wrap_as=WrapAs.CONTAINER))
        c.set_item("stats", {"hp": 1})
        assert isinstance(c.get_item("stats"), ContextContainer)

    def test_per_item_metadata(self):
        c = ContextContainer().set_item("a", 1, metadata={"unit": "m"})
        assert c.get_item("a").metadata == {"unit": "m"}

    def test_existing_node_is_stored_by_reference(self):
        node = ContextItem("kept")
        c = ContextContainer().set_item("a", node)
        assert c.get_item("a") is node


class TestTimestamps:
    def test_set_item_strictly_increases_modified(self, container: ContextContainer):
        before = container.modified_at
        container.set_item("hp", 11)
        assert container.modified_at > before

    def test_get_item_bumps_access_only(self, container: ContextContainer):
        modified = container.modified_at
        accessed = container.last_accessed_at
        child = container._managed_items()["hp"]
        child_accessed = child.last_accessed_at
        container.get_item("hp")
        assert container.last_accessed_at > accessed
        assert container.modified_at == modified
        assert child.last_accessed_at == child_accessed

    def test_get_item_without_record_access(self):
        c = ContextContainer({"a": 1}, record_access=False)
        accessed = c.last_accessed_at
        c.get_item("a")
        c.has_item("a")
        c.size
        assert c.last_accessed_at == accessed

    def test_get_value_bumps_child(self, container: ContextContainer):
        child = container._managed_items()["hp"]
        accessed = child.last_accessed_at
        container.get_value("hp")
        assert child.last_accessed_at > accessed

    def test_nested_write_bumps_every_level(self):
        c = ContextContainer().set_item("a.b", 1)
        outer, inner = c.modified_at, c.get_item("a").modified_at
        c.set_item("a.b", 2)
        assert c.modified_at > outer
        assert c.get_item("a").modified_at > inner

    def test_has_item_and_size_bump_access(self, container: ContextContainer):
        accessed = container.last_accessed_at
        assert container.has_item("hp")
        assert not container.has_item("mp")
        after_has = container.last_accessed_at
        assert after_has > accessed
        assert container.size == 2
        assert container.last_accessed_at > after_has


class TestRemoveAndClear:
    def test_remove_existing(self, container: ContextContainer):
        before = container.modified_at
        assert container.remove_item("hp") is True
        assert not container.has_item("hp")
        assert container.modified_at > before

    def test_remove_missing_leaves_modified(self, container: ContextContainer):
        before = container.modified_at
        assert container.remove_item("mp") is False
        assert container.remove_item("") is False
        assert container.modified_at == before

    def test_remove_nested(self):
        c = ContextContainer().set_item("a.b", 1).set_item("a.c", 2)
        assert c.remove_item("a.b") is True
        assert c.value == {"a": {"c": 2}}
        assert c.remove_item("a.b.c") is False

    def test_clear_items(self, container: ContextContainer):
        before = container.modified_at
        container.clear_items()
        assert container.size == 0
        assert container.modified_at > before

    def test_clear_items_on_empty_leaves_modified(self):
        c = ContextContainer()
        before = c.modified_at
        c.clear_items()
        assert c.modified_at == before


class TestViews:
    def test_keys_are_a_snapshot(self, container: ContextContainer):
        keys = container.keys()
        container.set_item("mp", 5)
        assert set(keys) == {"hp", "name"}
        assert set(container.keys()) == {"hp", "name", "mp"}

    def test_views_are_restartable(self, container: ContextContainer):
        entries = container.entries()
        assert list(entries) == list(entries)

    def test_items_yield_nodes(self, container: ContextContainer):
        assert all(isinstance(node, ContextItem) for node in container.items())

    def test_entries_yield_pairs(self, container: ContextContainer):
        pairs = {key: node.peek() for key, node in container.entries()}
        assert pairs == {"hp": 10, "name": "Ann"}

    def test_each_call_bumps_access(self, container: ContextContainer):
        accessed = container.last_accessed_at
        container.keys()
        first = container.last_accessed_at
        container.items()
        assert accessed < first < container.last_accessed_at


class TestValue:
    @pytest.mark.parametrize(
        "mapping",
        [{}, {"a": 1}, {"a": {"b": [1, 2]}, "c": None}, {"x": "y", "z": {"deep": {"er": 1}}}],
    )
    def test_replace_round_trips(self, mapping):
        c = ContextContainer({"old": 1})
        c.value = mapping
        assert c.value == mapping

    def test_value_touches_children(self, container: ContextContainer):
        child = container._managed_items()["name"]
        accessed = child.last_accessed_at
        container.value
        assert child.last_accessed_at > accessed

    def test_setter_requires_mapping(self, container: ContextContainer):
        with pytest.raises(ValidationError, match="value must be a mapping"):
            container.value = [1, 2]

    def test_setter_is_atomic(self, container: ContextContainer):
        before = container.peek()
        with pytest.raises(ValidationError):
            container.value = {"ok": 1, "metadata": 2}
        assert container.peek() == before

    def test_setter_rejects_nesting_under_item(self, container: ContextContainer):
        before = container.peek()
        with pytest.raises(ValidationError, match='non-container item at key "a"'):
            container.value = {"a": 1, "a.b": 2}
        assert container.peek() == before

    def test_constructor_rejects_nesting_under_item(self):
        with pytest.raises(ValidationError, match="non-container item"):
            ContextContainer({"a": 1, "a.b": 2})

    def test_setter_bumps_modified(self, container: ContextContainer):
        before = container.modified_at
        container.value = {"a": 1}
        assert container.modified_at > before

    def test_self_reference_yields_marker(self):
        c = ContextContainer({"a": 1})
        c.set_item("me", c)
        assert c.value == {"a": 1, "me": {CIRCULAR_MARKER: True}}

    def test_peek_records_nothing(self, container: ContextContainer):
        child = container._managed_items()["hp"]
        stamps = (container.last_accessed_at, child.last_accessed_at)
        assert container.peek() == {"hp": 10, "name": "Ann"}
        assert (container.last_accessed_at, child.last_accessed_at) == stamps

    def test_non_mapping_initial_goes_under_default(self):
        assert ContextContainer(42).value == {"default": 42}


class TestFreezing:
    def test_frozen_item_cannot_be_overwritten(self, container: ContextContainer):
        container.get_item("hp").freeze()
        with pytest.raises(FrozenItemError):
            container.set_item("hp", 0)
        assert container.get_value("hp") == 10

    def test_ignore_frozen(self, container: ContextContainer):
        container.get_item("hp").freeze()
        container.set_item("hp", 0, ignore_frozen=True)
        assert container.get_value("hp") == 0

    def test_frozen_container(self, container: ContextContainer):
        container.freeze()
        with pytest.raises(FrozenItemError):
            container.set_item("mp", 1)
        with pytest.raises(FrozenItemError):
            container.value = {}
        container.unfreeze()
        container.set_item("mp", 1)
        assert container.get_value("mp") == 1

    def test_frozen_container_blocks_removal(self, container: ContextContainer):
        container.freeze()
        with pytest.raises(FrozenItemError):
            container.remove_item("hp")
        with pytest.raises(FrozenItemError):
            container.clear_items()
        assert container.peek() == {"hp": 10, "name": "Ann"}

    def test_frozen_ancestor_blocks_nested_removal(self):
        c = ContextContainer().set_item("a.b", 1)
        c.freeze()
        with pytest.raises(FrozenItemError):
            c.remove_item("a.b")
        assert c.remove_item("a.b", ignore_frozen=True) is True

    def test_frozen_item_cannot_be_removed(self, container: ContextContainer):
        container.get_item("hp").freeze()
        with pytest.raises(FrozenItemError, match="frozen item"):
            container.remove_item("hp")
        assert container.has_item("hp")


class TestLifecycle:
    def test_reinitialize_keeps_identity(self, container: ContextContainer):
        container.set_metadata({"owner": "me"})
        same = container
        container.reinitialize({"fresh": True}, {"v": 2})
        assert container is same
        assert container.peek() == {"fresh": True}
        assert container.metadata == {"v": 2}
        assert container.created_at == container.modified_at

    def test_reinitialize_with_options(self, container: ContextContainer):
        container.reinitialize(new_options={"record_access": False})
        assert container.record_access is False
        assert container.peek() == {}

    def test_reinitialize_rejects_unknown_options(self, container: ContextContainer):
        with pytest.raises(ValidationError, match="Unknown container options"):
            container.reinitialize(new_options={"colour": "red"})
        assert container.peek() == {"hp": 10, "name": "Ann"}

    def test_copy_is_independent(self):
        original = ContextContainer().set_item("a.b", [1])
        clone = original.copy()
        clone.get_value("a.b").append(2)
        clone.set_item("a.c", 3)
        assert original.peek() == {"a": {"b": [1]}}
        assert clone.created_at == original.created_at

    def test_clear(self, container: ContextContainer):
        container.set_metadata({"x": 1})
        container.clear()
        assert container.peek() == {}
        assert container.metadata == {}
