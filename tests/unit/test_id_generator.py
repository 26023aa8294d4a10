"""Unit tests for sc_common.id_generator."""

import pytest

from src.sc_common.id_generator import IdGenerator, generate_id


def test_ids_are_unique_and_sorted() -> None:
    gen = IdGenerator(node=3)
    ids = [gen.next_id("ord_") for _ in range(10_000)]
    assert len(set(ids)) == len(ids)
    assert ids == sorted(ids)


def test_fixed_width_with_prefix() -> None:
    value = IdGenerator().next_id("prp_")
    assert value.startswith("prp_")
    assert len(value) == len("prp_") + 16


def test_node_encoded() -> None:
    a = int(IdGenerator(node=1).next_id(), 16)
    b = int(IdGenerator(node=2).next_id(), 16)
    assert (a >> 12) & 0x3FF == 1
    assert (b >> 12) & 0x3FF == 2


def test_node_out_of_range() -> None:
    with pytest.raises(ValueError):
        IdGenerator(node=1024)


def test_module_level_generator() -> None:
    assert generate_id("ses_") != generate_id("ses_")
