from src.deck_generation.layout_engine import (
    body_fits,
    build_layout_plans,
    estimate_chars_per_line,
    estimate_overflow_risk,
    make_grid,
    paginate_agenda,
    plan_for_layout,
    plan_in_bounds,
    plan_slide,
    prepare_slide,
    split_slide_by_bullets,
    wrap_line_by_chars,
)
from src.deck_generation.layout_validator import (
    apply_layout_fallback,
    estimate_title_lines,
    pick_fallback_layout,
    validate_layout,
)
from src.deck_generation.models import Box, LayoutPlan, PlannedSlide
from src.deck_generation.theme import resolve_theme

from conftest import LOGO_IMAGE, PROJECT_IMAGE

LONG_TITLE = " ".join(["Quarterly"] * 15)


def _bullets(count, prefix="Present item"):
    return [{"text": f"{prefix} {i + 1}", "sourceKeys": ["k"]} for i in range(count)]


def _deck():
    return [
        {"type": "title", "title": "Harbour Line Interiors Ltd", "keyMessage": "Workplace interiors since 2008.", "images": [PROJECT_IMAGE]},
        {"type": "agenda", "title": "Agenda", "keyMessage": "Navigate the storyline.", "bullets": _bullets(10, "Section")},
        {"type": "cards", "title": "Our Services", "keyMessage": "Deliver end to end.", "bullets": _bullets(6)},
        {"type": "bigNumber", "title": "Scale", "keyMessage": "Present 120 staff.", "number": "120", "bullets": _bullets(2)},
        {"type": "timeline", "title": "Milestones", "keyMessage": "Grow steadily.", "bullets": _bullets(4)},
        {"type": "quote", "title": "Client Voice", "keyMessage": "Deliver on time.", "bullets": _bullets(1)},
        {"type": "profile", "title": "Company Profile", "keyMessage": "Operate from Hong Kong.", "images": [LOGO_IMAGE], "bullets": _bullets(3)},
        {"type": "text", "title": "Contact", "keyMessage": "Reach the team.", "bullets": _bullets(2)},
    ]


class TestTextMetrics:
    def test_wrap_by_chars(self):
        assert wrap_line_by_chars("aaa bbb ccc", 7) == "aaa bbb\nccc"
        assert wrap_line_by_chars("short", 40) == "short"

    def test_chars_per_line_has_floor(self):
        assert estimate_chars_per_line(1.0, 72) == 10

    def test_title_lines(self):
        assert estimate_title_lines("", 10, 26) == 0
        assert estimate_title_lines("Company Overview", 12, 26) == 1
        assert estimate_title_lines(LONG_TITLE, 12.173, 26) == 3


class TestPrepareSlide:
    def test_type_inferred_from_number(self):
        prepared = prepare_slide({"type": "", "title": "Scale", "number": "120"})
        assert prepared.type == "bigNumber"
        assert prepared.layout_hint == "big-number"

    def test_images_pick_split_image(self):
        prepared = prepare_slide({"type": "text", "title": "Project", "images": [PROJECT_IMAGE, "not-a-url"]})
        assert prepared.images == [PROJECT_IMAGE]
        assert prepared.layout_hint == "split-image"

    def test_constraints_are_clamped(self):
        prepared = prepare_slide({"title": "X", "constraints": {"maxBulletsPerSlide": 50, "maxCharsPerBullet": 3}})
        assert prepared.slide.constraints.maxBulletsPerSlide == 8
        assert prepared.slide.constraints.maxCharsPerBullet == 24

    def test_defaults_fill_missing_copy(self):
        prepared = prepare_slide({"title": "", "keyMessage": "", "density": "extreme"})
        assert prepared.slide.title == "Untitled Slide"
        assert prepared.slide.keyMessage == "Not provided."
        assert prepared.slide.density == "medium"


class TestPagination:
    def test_agenda_pages_hold_eight_items(self):
        pages = paginate_agenda(prepare_slide(_deck()[1]))
        assert [len(page.bullet_text) for page in pages] == [8, 2]
        assert [page.slide.title for page in pages] == ["Agenda", "Agenda (cont.)"]
        assert pages[1].bullet_text[0] == "Section 9"

    def test_non_agenda_untouched(self):
        slide = prepare_slide(_deck()[2])
        assert paginate_agenda(slide) == [slide]

    def test_split_by_bullets(self):
        slide = prepare_slide(
            {"type": "text", "title": "Projects", "images": [PROJECT_IMAGE], "bullets": _bullets(10)}
        )
        chunks = split_slide_by_bullets(slide)
        assert [len(chunk.bullet_text) for chunk in chunks] == [6, 4]
        assert chunks[1].slide.title == "Projects (cont.)"
        assert chunks[0].images == [PROJECT_IMAGE]
        assert chunks[1].images == []
        assert chunks[1].layout_hint == "text"
        assert chunks[1].slide.bullets[0].sourceKeys == ["k"]


class TestPlanSlide:
    def test_image_left_places_image_first(self):
        theme = resolve_theme()
        plan = plan_slide(
            {"type": "text", "title": "Project", "layoutHint": "image-left", "images": [PROJECT_IMAGE], "bullets": _bullets(3)},
            theme,
        )
        grid = make_grid(theme)
        assert plan.chosen_layout == "image-left"
        assert abs(plan.boxes["image"].x - grid.safe.x) < 1e-9
        assert plan.boxes["body"].x > plan.boxes["image"].x

    def test_unfittable_title_requests_split(self):
        plan = plan_slide({"type": "text", "title": LONG_TITLE, "bullets": _bullets(2)}, resolve_theme())
        assert plan.requires_split
        assert plan.chosen_layout == "text"

    def test_forced_layout_wins_when_it_fits(self):
        plan = plan_slide({"type": "text", "title": "Services", "bullets": _bullets(4)}, resolve_theme(), "cards")
        assert plan.chosen_layout == "cards"
        assert len(plan.boxes["cards"]) == 4

    def test_body_font_stays_readable(self):
        plan = plan_slide({"type": "text", "title": "Services", "bullets": _bullets(5)}, resolve_theme())
        assert 14 <= plan.sizes["body"] <= 20


class TestDeckPlanning:
    def test_every_plan_is_in_bounds(self):
        theme = resolve_theme()
        planned = build_layout_plans(_deck(), theme)
        assert [item.index for item in planned] == list(range(len(planned)))
        assert all(plan_in_bounds(item.plan, theme) for item in planned)

    def test_layouts_follow_archetypes(self):
        planned = build_layout_plans(_deck(), resolve_theme())
        layouts = [item.layout for item in planned]
        assert layouts[0] == "hero-cover"
        assert layouts[1:3] == ["agenda", "agenda"]
        assert "big-number" in layouts
        assert "timeline" in layouts
        assert "profile" in layouts

    def test_forced_layout_by_planned_index(self):
        planned = build_layout_plans(_deck(), resolve_theme(), forced_layouts={3: "text"})
        assert planned[3].slide.slide.title == "Our Services"
        assert planned[3].layout == "text"


def _scoped_bullets(count):
    scope = "with a delivery scope covering design, build and handover for regional clients"
    return [{"text": f"Present item {i + 1} {scope}", "sourceKeys": ["k"]} for i in range(count)]


def _wordy_bullets(count, words=40):
    return [{"text": f"Present item {i + 1} " + " ".join(["alpha"] * words), "sourceKeys": ["k"]} for i in range(count)]


class TestOverflowHandling:
    def test_cards_reject_more_items_than_they_draw(self):
        theme = resolve_theme()
        prepared = prepare_slide({"type": "text", "title": "Services", "bullets": _scoped_bullets(8)})
        plan = plan_for_layout(prepared, make_grid(theme), theme, {"title": 26, "body": 14}, "cards")
        assert len(plan.boxes["cards"]) == 6
        assert not body_fits(prepared, plan)
        assert estimate_overflow_risk(PlannedSlide(index=0, slide=prepared, plan=plan))

    def test_eight_bullets_stay_on_text_columns(self):
        theme = resolve_theme()
        slide = {"type": "text", "title": "Services", "constraints": {"maxBulletsPerSlide": 8}, "bullets": _scoped_bullets(8)}
        assert prepare_slide(slide).layout_hint == "cards"
        plan = plan_slide(slide, theme)
        assert plan.chosen_layout == "text"
        assert len(plan.boxes["bodyColumns"]) == 2

        fixed = apply_layout_fallback(build_layout_plans([slide], theme), theme)
        assert len(fixed) == 1
        assert fixed[0].layout == "text"
        assert fixed[0].slide.bullet_text == [b["text"] for b in _scoped_bullets(8)]

    def test_overflowing_body_splits_into_continuation_slides(self):
        theme = resolve_theme()
        bullets = _wordy_bullets(8)
        slide = {
            "type": "text",
            "layoutHint": "text",
            "title": "Capabilities",
            "density": "medium",
            "constraints": {"maxBulletsPerSlide": 8},
            "bullets": bullets,
        }
        assert plan_slide(slide, theme).requires_split

        fixed = apply_layout_fallback(build_layout_plans([slide], theme), theme)
        assert [item.slide.slide.title for item in fixed] == ["Capabilities", "Capabilities (cont.)"]
        assert [len(item.slide.bullet_text) for item in fixed] == [6, 2]
        assert [text for item in fixed for text in item.slide.bullet_text] == [b["text"] for b in bullets]
        assert all(item.layout == "text" for item in fixed)
        assert all(plan_in_bounds(item.plan, theme) for item in fixed)
        assert validate_layout(fixed, theme).ok

    def test_unsplittable_overflow_is_kept_and_flagged(self):
        theme = resolve_theme()
        slide = {"type": "text", "layoutHint": "text", "title": "Operating History", "bullets": _wordy_bullets(2, words=400)}
        planned = build_layout_plans([slide], theme)
        assert len(planned) == 1
        assert planned[0].plan.body_overflow
        assert planned[0].plan.sizes["body"] == 14
        assert planned[0].slide.slide.title == "Operating History"
        assert len(planned[0].slide.bullet_text) == 2
        assert all("\n" in text for text in planned[0].slide.bullet_text)

        fixed = apply_layout_fallback(planned, theme)
        assert len(fixed) == 1
        assert fixed[0].layout == "text"
        assert all(plan_in_bounds(item.plan, theme) for item in fixed)
        check = validate_layout(fixed, theme)
        assert [issue.code for issue in check.issues] == ["BODY_OVERFLOW"]
        assert "minimum size" in check.issues[0].message


class TestLayoutValidator:
    def _planned(self, layout, boxes, title="Short"):
        slide = prepare_slide({"type": "text", "title": title})
        plan = LayoutPlan(layout=layout, boxes=boxes, sizes={"title": 26, "body": 14}, chosen_layout=layout)
        return PlannedSlide(index=0, slide=slide, plan=plan)

    def test_out_of_bounds_flagged(self):
        check = validate_layout([self._planned("split-image", {"title": Box(0, 0, 20, 1)})], resolve_theme())
        assert not check.ok
        assert [issue.code for issue in check.issues] == ["OUT_OF_BOUNDS"]
        assert check.failing_indexes() == [0]

    def test_long_title_flagged(self):
        planned = self._planned("text", {"title": Box(0.58, 0.34, 12.173, 0.84)}, title=LONG_TITLE)
        check = validate_layout([planned], resolve_theme())
        assert "TITLE_OVER_2_LINES" in [issue.code for issue in check.issues]

    def test_pick_fallback_layout(self):
        assert pick_fallback_layout("text", "BODY_OVERFLOW") == "cards"
        assert pick_fallback_layout("split-image", "OUT_OF_BOUNDS") == "image-top"
        assert pick_fallback_layout("profile", "OUT_OF_BOUNDS") == "split-image"
        assert pick_fallback_layout("mystery", "OUT_OF_BOUNDS") == "text"

    def test_fallback_replans_failing_slide(self):
        theme = resolve_theme()
        fixed = apply_layout_fallback([self._planned("split-image", {"title": Box(0, 0, 20, 1)})], theme)
        assert validate_layout(fixed, theme).ok
        assert fixed[0].layout == "image-top"

    def test_fallback_keeps_boxes_on_page(self):
        theme = resolve_theme()
        planned = build_layout_plans([{"type": "text", "title": LONG_TITLE, "bullets": _bullets(2)}], theme)
        fixed = apply_layout_fallback(planned, theme)
        assert all(plan_in_bounds(item.plan, theme) for item in fixed)


class TestThemes:
    def test_presets_from_style_hint(self):
        assert resolve_theme(None, "medical clean").name == "medical-clean"
        assert resolve_theme(None, "corporate", "pitch").name == "dark-hero"
        assert resolve_theme().name == "corporate"

    def test_alias_applies_overrides(self):
        theme = resolve_theme("pitchContrast")
        assert theme.name == "dark-hero"
        assert theme.scale["h0"] == 50
        assert theme.scale["body"] == 13
