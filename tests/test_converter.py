# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Tests for pageforge.converter — captured tree → builder nodes."""

from __future__ import annotations

import asyncio

import pytest

from pageforge.builder import FINGERPRINT_KEY, PATH_KEY, SOURCE_KEY, TIMESTAMP_KEY, MemoryBuilder
from pageforge.capture import (
    Bounds,
    CaptureMetadata,
    ColorToken,
    DesignTokens,
    MultiViewportCapture,
    StyleDigest,
    Viewport,
    ViewportCapture,
)
from pageforge.config import ImportSettings
from pageforge.converter import convert_capture, convert_tree, convert_variants
from pageforge.detector import FRAMER_TYPE_ATTRIBUTE as FRAMER
from pageforge.errors import BuilderError, MalformedInputError
from pageforge.fingerprint import compute_fingerprint
from pageforge.progress import ImportPhase
from tests._tree_helpers import card_page, make_capture, make_card, make_frame, make_image, make_text

NO_COMPONENTS = ImportSettings(create_components=False)


def _tree_root(builder: MemoryBuilder):
    """The converted root node (first child of the import page)."""
    page = builder.pages[-1]
    return page.children[0]


class TestPage:
    @pytest.mark.asyncio
    async def test_page_is_import_root(self, builder):
        capture = make_capture(make_frame(make_text("hi")), metadata=CaptureMetadata(title="Home"))
        result = await convert_capture(capture, builder)

        page = result.root
        assert builder.pages == [page]
        assert page.name == "Home"
        assert (page.spec.width, page.spec.height) == (1440, 900)
        assert page.data[SOURCE_KEY] == "https://example.com"
        assert page.data[TIMESTAMP_KEY] == "1700000000000"
        assert PATH_KEY not in page.data

    @pytest.mark.asyncio
    async def test_untitled_page_named_after_url(self, builder):
        result = await convert_capture(make_capture(make_frame()), builder)
        assert result.root.name == "Import from https://example.com"

    @pytest.mark.asyncio
    async def test_accepts_json_text(self, builder):
        payload = make_capture(make_frame(make_text("x"))).model_dump_json(by_alias=True)
        result = await convert_capture(payload, builder)
        assert result.node_count == 2


class TestTagging:
    @pytest.mark.asyncio
    async def test_every_created_node_tagged(self, builder):
        root = make_frame(make_text("A"), make_frame(make_image()))
        await convert_capture(make_capture(root), builder, NO_COMPONENTS)

        out = _tree_root(builder)
        paths = [n.data[PATH_KEY] for n in out.walk()]
        assert paths == ["root", "root-0", "root-1", "root-1-0"]

    @pytest.mark.asyncio
    async def test_fingerprint_matches_captured_node(self, builder):
        text = make_text("A")
        await convert_capture(make_capture(make_frame(text)), builder, NO_COMPONENTS)
        out = _tree_root(builder).children[0]
        assert out.data[FINGERPRINT_KEY] == compute_fingerprint(text)

    @pytest.mark.asyncio
    async def test_children_in_capture_order(self, builder):
        root = make_frame(*(make_text(t) for t in "abcde"))
        await convert_capture(make_capture(root), builder, NO_COMPONENTS)
        assert [c.text for c in _tree_root(builder).children] == list("abcde")


class TestComponents:
    @pytest.mark.asyncio
    async def test_instances_replace_repeated_subtrees(self, builder):
        result = await convert_capture(make_capture(card_page()), builder)

        assert result.component_count == 1
        assert result.instance_count == 3
        assert len(builder.components) == 1
        template = next(iter(builder.components.values()))
        assert template.name == "Container Group"
        assert [c.text for c in template.children] == ["One"]

        out = _tree_root(builder)
        assert [c.kind for c in out.children] == ["instance"] * 3
        assert {c.component_id for c in out.children} == {template.id}
        assert [c.data[PATH_KEY] for c in out.children] == ["root-0", "root-1", "root-2"]
        # instance subtrees are not expanded
        assert all(not c.children for c in out.children)

    @pytest.mark.asyncio
    async def test_instance_subtree_counted_as_processed(self, builder):
        result = await convert_capture(make_capture(card_page()), builder)
        assert result.total_nodes == 7
        assert result.node_count == 7

    @pytest.mark.asyncio
    async def test_root_never_substituted(self, builder):
        root = make_frame(make_text("outer"), make_card("a"), make_card("b"), component_hash="H")
        result = await convert_capture(make_capture(root), builder)

        assert result.component_count == 1
        out = _tree_root(builder)
        assert out.kind == "frame"
        assert [c.kind for c in out.children] == ["text", "instance", "instance"]

    @pytest.mark.asyncio
    async def test_disabled_components_expand_everything(self, builder):
        result = await convert_capture(make_capture(card_page()), builder, NO_COMPONENTS)
        assert result.component_count == 0
        assert builder.components == {}
        assert [c.kind for c in _tree_root(builder).children] == ["frame"] * 3

    @pytest.mark.asyncio
    async def test_instance_takes_node_geometry(self, builder):
        cards = [make_card(str(i), bounds=Bounds(x=i * 120, y=10, width=110, height=60)) for i in range(3)]
        await convert_capture(make_capture(make_frame(*cards)), builder)
        instance = _tree_root(builder).children[2]
        assert (instance.spec.x, instance.spec.y, instance.spec.width, instance.spec.height) == (240, 10, 110, 60)

    @pytest.mark.asyncio
    async def test_framer_boundaries_become_instances(self, builder):
        cards = [make_frame(make_text(t), data_attributes={FRAMER: "PricingCard"}) for t in ("a", "b")]
        result = await convert_capture(make_capture(make_frame(*cards), framework="framer"), builder)

        assert result.component_count == 1
        assert result.instance_count == 2
        (template,) = builder.components.values()
        assert template.name == "Pricing Card"
        assert [c.kind for c in _tree_root(builder).children] == ["instance", "instance"]

    @pytest.mark.asyncio
    async def test_framer_boundaries_from_metadata_flag(self, builder):
        cards = [make_frame(make_text(t), data_attributes={FRAMER: "Badge"}) for t in ("a", "b")]
        capture = make_capture(make_frame(*cards), metadata=CaptureMetadata(is_framer_site=True))
        result = await convert_capture(capture, builder)
        assert result.instance_count == 2

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        ("framework", "settings"),
        [("unknown", ImportSettings()), ("framer", ImportSettings(framer_aware=False))],
    )
    async def test_framer_boundaries_ignored(self, builder, framework, settings):
        cards = [make_frame(make_text(t), data_attributes={FRAMER: "Badge"}) for t in ("a", "b")]
        result = await convert_capture(make_capture(make_frame(*cards), framework=framework), builder, settings)
        assert result.component_count == 0
        assert [c.kind for c in _tree_root(builder).children] == ["frame", "frame"]


class TestVisibilityAndDepth:
    @pytest.mark.asyncio
    async def test_hidden_subtree_skipped(self, builder):
        root = make_frame(make_text("shown"), make_frame(make_text("inner"), visible=False))
        result = await convert_capture(make_capture(root), builder, NO_COMPONENTS)

        assert [c.text for c in _tree_root(builder).children] == ["shown"]
        assert result.skipped_count == 2

    @pytest.mark.asyncio
    async def test_hidden_included_on_request(self, builder):
        root = make_frame(make_text("shown"), make_text("ghost", visible=False))
        settings = ImportSettings(create_components=False, include_hidden=True)
        await convert_capture(make_capture(root), builder, settings)

        children = _tree_root(builder).children
        assert [c.text for c in children] == ["shown", "ghost"]
        assert children[1].spec.visible is False

    @pytest.mark.asyncio
    async def test_hidden_root_still_created(self, builder):
        root = make_frame(make_text("x"), visible=False)
        result = await convert_capture(make_capture(root), builder, NO_COMPONENTS)
        assert result.node_count == 2
        assert _tree_root(builder).spec.visible is False

    @pytest.mark.asyncio
    async def test_max_depth_prunes(self, builder):
        root = make_frame(make_frame(make_frame(make_text("deep"))))
        settings = ImportSettings(create_components=False, max_depth=1)
        result = await convert_capture(make_capture(root), builder, settings)

        paths = [n.data[PATH_KEY] for n in _tree_root(builder).walk()]
        assert paths == ["root", "root-0"]
        assert result.skipped_count == 2

    @pytest.mark.asyncio
    async def test_leaf_children_ignored(self, builder):
        text = make_text("label", children=(make_text("nested"),))
        result = await convert_capture(make_capture(make_frame(text)), builder, NO_COMPONENTS)
        assert _tree_root(builder).children[0].children == []
        assert result.skipped_count == 1


class TestNodeSpecs:
    @pytest.mark.asyncio
    async def test_zero_size_clamped_to_one(self, builder):
        root = make_frame(make_frame(bounds=Bounds(width=0, height=0.2)))
        await convert_capture(make_capture(root), builder, NO_COMPONENTS)
        child = _tree_root(builder).children[0]
        assert (child.spec.width, child.spec.height) == (1, 1)

    @pytest.mark.asyncio
    async def test_text_font_parsed(self, builder):
        await convert_capture(make_capture(make_frame(make_text("T"))), builder, NO_COMPONENTS)
        spec = _tree_root(builder).children[0].spec
        assert (spec.font_family, spec.font_size, spec.font_weight) == ("Inter", 16, 400)

    @pytest.mark.asyncio
    async def test_transparent_background_has_no_fill(self, builder):
        root = make_frame(styles=StyleDigest(background_color="rgba(0, 0, 0, 0)"))
        await convert_capture(make_capture(root), builder, NO_COMPONENTS)
        assert _tree_root(builder).spec.fill is None

    @pytest.mark.asyncio
    async def test_matching_token_referenced_as_style(self, builder):
        tokens = DesignTokens(colors=(ColorToken(name="Brand", value="#ff0000", usage_count=4),))
        root = make_frame(styles=StyleDigest(background_color="#FF0000"))
        result = await convert_capture(make_capture(root, tokens=tokens), builder, NO_COMPONENTS)

        assert result.style_count == 1
        assert result.token_count == 1
        (style_id,) = builder.styles
        assert _tree_root(builder).spec.style_refs == {"fill": style_id}

    @pytest.mark.asyncio
    async def test_styles_disabled(self, builder):
        tokens = DesignTokens(colors=(ColorToken(name="Brand", value="#ff0000"),))
        settings = ImportSettings(create_styles=False, create_components=False)
        result = await convert_capture(make_capture(make_frame(), tokens=tokens), builder, settings)
        assert result.style_count == 0
        assert builder.styles == {}


class TestProgress:
    @pytest.mark.asyncio
    async def test_monotonic_and_complete(self, builder):
        events = []
        await convert_capture(
            make_capture(card_page(tuple(str(i) for i in range(20)))),
            builder,
            on_progress=lambda phase, value, msg: events.append((phase, value, msg)),
        )
        values = [v for _, v, _ in events]
        assert values == sorted(values)
        assert all(0.0 <= v <= 1.0 for v in values)
        assert values[-1] == pytest.approx(1.0)
        phases = [p for p, _, _ in events]
        assert phases[0] == ImportPhase.PREPARING
        assert ImportPhase.CREATING_NODES in phases
        assert phases[-1] == ImportPhase.FINALIZING

    @pytest.mark.asyncio
    async def test_node_count_never_exceeds_total(self, builder):
        counts = []
        root = make_frame(*(make_card(str(i)) for i in range(5)))
        result = await convert_tree(root, builder, on_progress=lambda done, _msg: counts.append(done))
        assert counts == sorted(counts)
        assert counts[-1] == result.total_nodes == 11

    @pytest.mark.asyncio
    async def test_walk_yields_to_event_loop(self, builder):
        ticks = 0
        done = False

        async def ticker():
            nonlocal ticks
            while not done:
                ticks += 1
                await asyncio.sleep(0)

        task = asyncio.create_task(ticker())
        root = make_frame(*(make_text(str(i)) for i in range(30)))
        await convert_tree(root, builder, ImportSettings(yield_every=1))
        done = True
        await task
        assert ticks > 1


class TestFailures:
    @pytest.mark.asyncio
    async def test_malformed_input_creates_nothing(self, builder):
        with pytest.raises(MalformedInputError):
            await convert_capture({"url": "https://example.com"}, builder)
        assert builder.nodes == {}
        assert builder.pages == []

    @pytest.mark.asyncio
    async def test_malformed_json_text(self, builder):
        with pytest.raises(MalformedInputError):
            await convert_capture("{not json", builder)

    @pytest.mark.asyncio
    async def test_builder_error_propagates(self):
        builder = MemoryBuilder(max_nodes=3)
        root = make_frame(*(make_text(str(i)) for i in range(5)))
        with pytest.raises(BuilderError, match="Node limit"):
            await convert_capture(make_capture(root), builder, NO_COMPONENTS)

    @pytest.mark.asyncio
    async def test_rejected_component_expands_instances(self, builder):
        async def refuse(name, spec):
            raise BuilderError("components unsupported")

        builder.create_component = refuse
        result = await convert_capture(make_capture(card_page()), builder)

        assert result.component_count == 0
        assert result.instance_count == 0
        assert [c.kind for c in _tree_root(builder).children] == ["frame"] * 3

    @pytest.mark.asyncio
    async def test_unexpected_exception_wrapped(self, builder):
        async def boom(handle, path, fingerprint):
            raise RuntimeError("host crashed")

        builder.tag_with_path = boom
        with pytest.raises(BuilderError, match="host crashed"):
            await convert_capture(make_capture(make_frame()), builder)

    @pytest.mark.asyncio
    async def test_unloadable_font_recovered_and_walk_continues(self):
        builder = MemoryBuilder(broken_resources=("Broken",))
        root = make_frame(
            make_text("ok"),
            make_text("bad", styles=StyleDigest(font_family="Broken", font_size="16px")),
            make_text("after"),
        )
        result = await convert_capture(make_capture(root), builder, NO_COMPONENTS)

        assert result.precondition_failures == 1
        assert result.node_count == 4
        out = _tree_root(builder)
        assert [c.text for c in out.children] == ["ok", "bad", "after"]
        assert out.children[0].spec.font_family == "Inter"
        assert out.children[1].spec.font_family is None

    @pytest.mark.asyncio
    async def test_unloadable_image_in_component_template_counted(self):
        builder = MemoryBuilder(broken_resources=("https://example.com/a.png",))
        cards = [make_frame(make_image(), component_hash="H") for _ in range(3)]
        result = await convert_capture(make_capture(make_frame(*cards)), builder)

        assert result.component_count == 1
        assert result.precondition_failures == 1
        (template,) = builder.components.values()
        assert template.children[0].spec.image_url is None


# ---------------------------------------------------------------------------
# Multi-viewport variants
# ---------------------------------------------------------------------------


def _viewport(label: str, width: float, *texts: str, **overrides) -> ViewportCapture:
    capture = make_capture(
        make_frame(*(make_text(t) for t in texts)),
        viewport=Viewport(width=width, height=800),
        **overrides,
    )
    return ViewportCapture(label=label, width=width, height=800, result=capture)


def _multi(*extractions: ViewportCapture) -> MultiViewportCapture:
    return MultiViewportCapture(url="https://example.com/pricing", extractions=extractions)


class TestVariants:
    @pytest.mark.asyncio
    async def test_one_component_per_viewport_widest_first(self, builder):
        multi = _multi(_viewport("Mobile", 375, "a"), _viewport("Desktop", 1440, "a", "b"))
        result = await convert_variants(multi, builder)

        assert result.variant_count == 2
        assert [v.node_count for v in result.variants] == [3, 2]
        component_set = builder.pages[-1]
        assert component_set is result.root
        assert component_set.kind == "component-set"
        assert component_set.name == "Import from example.com"
        assert [(v.kind, v.name, v.spec.width) for v in component_set.children] == [
            ("component", "Viewport=Desktop", 1440),
            ("component", "Viewport=Mobile", 375),
        ]
        assert component_set.children[0].children[0].data[PATH_KEY] == "root"
        # variants are not listed as reusable templates
        assert builder.components == {}

    @pytest.mark.asyncio
    async def test_styles_created_once_from_widest(self, builder):
        multi = _multi(
            _viewport("Mobile", 375, "a", tokens=DesignTokens(colors=(ColorToken(name="Small", value="#222"),))),
            _viewport(
                "Desktop",
                1440,
                "a",
                tokens=DesignTokens(colors=(ColorToken(name="Ink", value="#111"),)),
                metadata=CaptureMetadata(title="Pricing"),
            ),
        )
        result = await convert_variants(multi, builder)

        assert result.style_count == 1
        assert [s["name"] for s in builder.styles.values()] == ["Ink"]
        assert result.root.name == "Pricing"

    @pytest.mark.asyncio
    async def test_components_detected_per_viewport(self, builder):
        desktop = ViewportCapture(label="Desktop", width=1440, result=make_capture(card_page()))
        mobile = _viewport("Mobile", 375, "a")
        result = await convert_variants(_multi(mobile, desktop), builder)

        assert [v.component_count for v in result.variants] == [1, 0]
        assert len(builder.components) == 1

    @pytest.mark.asyncio
    async def test_progress_monotonic(self, builder):
        events = []
        multi = _multi(_viewport("Mobile", 375, "a"), _viewport("Desktop", 1440, "a", "b"))
        await convert_variants(multi, builder, on_progress=lambda p, v, m: events.append((p, v, m)))

        values = [v for _, v, _ in events]
        assert values == sorted(values)
        assert values[-1] == pytest.approx(1.0)
        assert any(p == ImportPhase.CREATING_VARIANTS and m.startswith("[Mobile]") for p, v, m in events)

    @pytest.mark.asyncio
    async def test_malformed_set_creates_nothing(self, builder):
        with pytest.raises(MalformedInputError, match="multi-viewport"):
            await convert_variants({"url": "https://example.com", "extractions": []}, builder)
        assert builder.nodes == {}
