from __future__ import annotations

from equipsearch.tasks.abbreviations import AbbrevCompiled
from equipsearch.tasks.query_rewrite import (
    EXACT_MAP,
    EXPAND_MAP,
    PRIMARY,
    TOKEN_MAP,
    QueryVariant,
    RewriteOptions,
    rewrite_query,
)


def test_passthrough_without_abbreviations():
    plan = rewrite_query("  Aspirador de PÓ ", None)
    assert plan.normalized == "aspirador de po"
    assert plan.primary == "aspirador de po"
    assert plan.variants == [QueryVariant("aspirador de po", 1.0, PRIMARY)]
    assert plan.used_expand_map is False
    assert plan.elapsed_ms >= 0


def test_bare_category_keeps_primary_and_adds_alternates(abbreviations):
    plan = rewrite_query("MOP", abbreviations)
    assert plan.primary == "mop"
    assert plan.variants[0] == QueryVariant("mop", 1.0, PRIMARY)
    assert plan.variants[1] == QueryVariant("mop plano", 0.6, EXACT_MAP)
    assert plan.queries() == ["mop", "mop plano", "mop giratorio", "refil mop"]
    assert [v.reason for v in plan.variants[2:]] == [EXPAND_MAP, EXPAND_MAP]
    assert plan.used_expand_map is True


def test_exact_map_replaces_non_category_primary(abbreviations):
    plan = rewrite_query("Lav. Alta Pressão", abbreviations)
    assert plan.normalized == "lav alta pressao"
    assert plan.primary == "lavadora de alta pressao"
    assert plan.variants == [QueryVariant("lavadora de alta pressao", 1.0, PRIMARY)]


def test_token_map_rewrites_tokens(abbreviations):
    plan = rewrite_query("asp industrial", abbreviations)
    assert plan.primary == "aspirador industrial"
    assert plan.queries() == ["aspirador industrial"]


def test_token_map_on_bare_category_adds_alternate():
    compiled = AbbrevCompiled.from_dict({"tokenMap": {"mop": "esfregao"}})
    plan = rewrite_query("mop", compiled)
    assert plan.primary == "mop"
    assert plan.variants[1] == QueryVariant("esfregao", 0.6, TOKEN_MAP)


def test_variant_cap_counts_primary(abbreviations):
    plan = rewrite_query("mop", abbreviations, RewriteOptions(max_variants_total=2))
    assert len(plan.variants) == 2
    assert plan.variants[0].reason == PRIMARY


def test_expand_map_can_be_disabled(abbreviations):
    plan = rewrite_query("mop", abbreviations, RewriteOptions(enable_expand_map=False))
    assert plan.used_expand_map is False
    assert plan.queries() == ["mop", "mop plano"]


def test_expand_items_are_capped():
    compiled = AbbrevCompiled.from_dict({"expandMap": {"pano": [f"pano tipo {i}" for i in range(20)]}})
    plan = rewrite_query("pano", compiled, RewriteOptions(max_expand_items=3))
    assert plan.queries() == ["pano", "pano tipo 0", "pano tipo 1", "pano tipo 2"]


def test_tokens_with_digits_are_not_expanded():
    compiled = AbbrevCompiled.from_dict({"expandMap": {"40cm": ["mop 40cm"]}})
    plan = rewrite_query("40cm", compiled)
    assert plan.used_expand_map is False
    assert plan.queries() == ["40cm"]


def test_duplicates_are_dropped_keeping_first():
    compiled = AbbrevCompiled.from_dict({"expandMap": {"balde": ["Balde Duplo", "balde duplo", "BALDE", "balde 20l"]}})
    plan = rewrite_query("balde", compiled)
    assert plan.queries() == ["balde", "balde duplo", "balde 20l"]


def test_rewrite_is_pure(abbreviations):
    assert rewrite_query("mop", abbreviations).variants == rewrite_query("mop", abbreviations).variants
