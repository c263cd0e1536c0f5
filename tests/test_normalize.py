import pytest

from src.agents.deck_agent.models import PatchResponse
from src.agents.deck_agent.normalize import (
    NormalizeContext,
    apply_patches,
    coerce_single_sentence,
    default_section_slides,
    ensure_insight_prefix,
    normalize_bullet,
    normalize_bullet_text,
    normalize_images,
    normalize_slide,
    normalize_source_keys,
    parse_style_hint,
    resolve_source_keys,
)
from src.deck_generation.fact_pack import build_fact_pack

from conftest import LOGO_IMAGE, PROJECT_IMAGE

YEAR = "Company Profile / 公司概況.Year Established / 成立年份"
STAFF = "Company Profile / 公司概況.Number of Employees / 員工人數"
HQ = "Company Profile / 公司概況.Headquarters / 總部"


@pytest.fixture
def pack(sample_input):
    return build_fact_pack(sample_input)


@pytest.fixture
def ctx(pack, fact_index):
    return NormalizeContext.from_pack(pack, fact_index, "corporate")


class TestBulletText:
    def test_colons_and_lead_ins_removed(self):
        assert normalize_bullet_text("Revenue: 1200") == "Revenue 1200"
        assert normalize_bullet_text("According to the report, revenue grew") == "revenue grew"
        assert normalize_bullet_text("Highlight strong growth") == "strong growth"

    def test_truncates_at_word_boundary(self):
        text = "Present the workplace interior design practice across Asia"
        assert normalize_bullet_text(text) == "Present the workplace interior design."

    def test_truncates_unbroken_text_with_ellipsis(self):
        assert normalize_bullet_text("x" * 50) == "x" * 40 + "..."

    def test_single_sentence(self):
        assert coerce_single_sentence("Revenue grew 3.5 percent. Next step.") == "Revenue grew 3.5 percent."
        assert coerce_single_sentence("Visit https://a.example/x.html today. More.") == "Visit https://a.example/x.html today."


class TestBullets:
    def test_insight_prefix_survives(self, fact_index):
        bullet = normalize_bullet(
            {"text": "Suggestion: expand regionally", "kind": "insight", "sourceKeys": [YEAR]}, [], fact_index
        )
        assert bullet == {"text": "Suggestion: expand regionally", "sourceKeys": [YEAR], "kind": "insight"}

    def test_insight_prefix_added(self, fact_index):
        bullet = normalize_bullet({"text": "Expand regionally", "kind": "insight", "sourceKeys": [YEAR]}, [], fact_index)
        assert bullet["text"] == "Suggestion: Expand regionally"
        assert ensure_insight_prefix("Potential implication: x") == "Potential implication: x"

    def test_string_bullet_uses_fallback_keys(self, fact_index):
        bullet = normalize_bullet("Present headquarters.", [HQ], fact_index)
        assert bullet == {"text": "Present headquarters.", "sourceKeys": [HQ], "kind": "fact"}

    def test_unknown_keys_are_kept_for_validation(self, fact_index):
        bullet = normalize_bullet({"text": "Present x.", "sourceKeys": ["Nope", "Company Profile.Year Established"]}, [HQ], fact_index)
        assert bullet["sourceKeys"] == ["Nope", YEAR]

    def test_fallback_only_when_no_keys_given(self, fact_index):
        assert normalize_bullet({"text": "Present x.", "sourceKeys": []}, [HQ], fact_index)["sourceKeys"] == [HQ]
        assert normalize_bullet({"text": "Present x.", "sourceKeys": "Nope"}, [HQ], fact_index)["sourceKeys"] == [HQ]
        assert normalize_source_keys([None, True, " "], fact_index, [HQ, "Nope"]) == [HQ]

    def test_resolve_drops_unknown_paths(self, fact_index):
        assert resolve_source_keys(["Nope", "Company Profile.Year Established", YEAR], fact_index) == [YEAR]
        assert resolve_source_keys("Nope", fact_index) == []

    def test_english_alias_is_canonicalized(self, fact_index):
        assert normalize_source_keys(["Company Profile.Year Established", YEAR], fact_index) == [YEAR]

    def test_empty_text_dropped(self, fact_index):
        assert normalize_bullet({"text": "  "}, [HQ], fact_index) is None
        assert normalize_bullet(42, [HQ], fact_index) is None


class TestStyleHint:
    def test_prompt_keywords(self):
        assert parse_style_hint("Medical device pitch") == "medical clean"
        assert parse_style_hint("Investor roadshow") == "pitch"
        assert parse_style_hint("SaaS platform overview") == "corporate tech"
        assert parse_style_hint("Company profile") == "corporate"
        assert parse_style_hint("") == "corporate"


class TestImages:
    def test_allow_list_enforced(self):
        slide = {"images": [PROJECT_IMAGE, LOGO_IMAGE], "visual": {"imageUrl": PROJECT_IMAGE}}
        assert normalize_images(slide, {LOGO_IMAGE}) == [LOGO_IMAGE]
        assert normalize_images(slide, set()) == []

    def test_without_allow_list_only_http_kept(self):
        slide = {"images": ["ftp://x/a.png", PROJECT_IMAGE], "imagePlan": {"imageUrl": LOGO_IMAGE}}
        assert normalize_images(slide, None) == [PROJECT_IMAGE, LOGO_IMAGE]


class TestNormalizeSlide:
    def test_empty_slide_filled_from_section(self, pack, ctx, fact_index):
        section = pack.sections[0]
        slide = normalize_slide({}, section, ctx)
        assert slide.title == section.title
        assert slide.keyMessage == section.key_message
        assert len(slide.bullets) == min(6, len(section.bullets))
        assert all(key in fact_index for bullet in slide.bullets for key in bullet.sourceKeys)
        assert slide.keyMessageSourceKeys
        assert slide.emphasis.phrases[0].text == slide.keyMessage

    def test_unknown_enumerations_fall_back(self, pack, ctx):
        slide = normalize_slide(
            {"type": "hologram", "layoutHint": "spiral", "tone": "loud", "density": "extreme", "bullets": ["A", "B", "C"]},
            pack.sections[0],
            ctx,
        )
        assert slide.type == "text"
        assert slide.layoutHint == "text"
        assert slide.tone == "business"
        assert slide.density == "medium"

    def test_many_bullets_become_cards(self, pack, ctx):
        slide = normalize_slide({"bullets": [f"Item {i}" for i in range(8)]}, pack.sections[0], ctx)
        assert len(slide.bullets) == 6
        assert slide.type == "cards"
        assert slide.density == "high"

    def test_big_number_takes_first_emphasis_number(self, pack, ctx):
        slide = normalize_slide(
            {
                "type": "bigNumber",
                "keyMessage": "Staff a full team.",
                "bullets": [{"text": "Present 120 staff.", "sourceKeys": [STAFF]}],
                "emphasis": {"numbers": [{"value": 120, "label": "Staff", "sourceKeys": [STAFF]}]},
            },
            pack.sections[0],
            ctx,
        )
        assert slide.number == "120"
        assert slide.caption == "Staff a full team."
        assert slide.emphasis.numbers[0].sourceKeys == [STAFF]

    def test_medical_style_sets_clinical_tone(self, pack, fact_index):
        ctx = NormalizeContext.from_pack(pack, fact_index, "medical clean")
        slide = normalize_slide({"title": "Care"}, pack.sections[0], ctx)
        assert slide.tone == "clinical"
        assert slide.imagePlan.style == "medical"

    def test_images_outside_source_dropped(self, pack, ctx):
        slide = normalize_slide({"images": ["https://evil.example/x.png"]}, pack.sections[0], ctx)
        assert slide.images == []
        assert slide.imagePlan.mode == "none"


class TestSectionSlides:
    def test_one_slide_per_section(self, pack, ctx):
        slides = default_section_slides(pack.sections, ctx)
        assert [s.title for s in slides] == [section.title for section in pack.sections]
        assert all(1 <= len(s.bullets) <= 5 for s in slides)

    def test_patches_replace_by_index(self, pack, ctx):
        slides = default_section_slides(pack.sections, ctx)
        patches = PatchResponse.model_validate(
            {
                "patches": [
                    {"index": 0, "slide": {"title": "Patched Overview", "bullets": ["Present 2008 founding."]}},
                    {"index": 99, "slide": {"title": "Ignored"}},
                    {"index": True, "slide": {"title": "Ignored too"}},
                    "garbage",
                ]
            }
        ).patches
        out = apply_patches(slides, patches, pack.sections, ctx)
        assert out[0].title == "Patched Overview"
        assert out[1:] == slides[1:]
        assert "Ignored" not in [s.title for s in out]


class TestLooselyShapedFields:
    """Model output with scalars where lists belong is coerced, never fatal."""

    def test_non_list_fields_are_ignored(self, pack, ctx):
        section = pack.sections[0]
        slide = normalize_slide(
            {
                "title": "Company Overview",
                "icons": 5,
                "images": "https://evil.example/x.png",
                "bullets": "Present everything at once.",
                "emphasis": {"phrases": "Harbour Line", "numbers": True},
            },
            section,
            ctx,
        )
        assert slide.title == "Company Overview"
        assert slide.icons == []
        assert slide.images == []
        assert len(slide.bullets) == min(6, len(section.bullets))
        assert slide.emphasis.numbers == []
        assert slide.emphasis.phrases[0].text == slide.keyMessage

    def test_non_list_emphasis_items_are_skipped(self, pack, ctx):
        slide = normalize_slide(
            {"emphasis": {"phrases": ["Since 2008", 7], "numbers": [5, {"value": 120, "label": "Staff", "sourceKeys": STAFF}]}},
            pack.sections[0],
            ctx,
        )
        assert [p.text for p in slide.emphasis.phrases] == ["Since 2008"]
        assert [n.value for n in slide.emphasis.numbers] == ["120"]
        assert slide.emphasis.numbers[0].sourceKeys == slide.keyMessageSourceKeys

    def test_unknown_bullet_path_survives_normalization(self, pack, ctx):
        slide = normalize_slide(
            {"bullets": [{"text": "Present regional offices.", "sourceKeys": ["Nope.Path"]}]},
            pack.sections[0],
            ctx,
        )
        assert slide.bullets[0].sourceKeys == ["Nope.Path"]
