import pytest
from pydantic import ValidationError

from src.deck_generation.fact_validator import validate_facts
from src.deck_generation.models import (
    ALLOWED_SLIDE_TYPES,
    AgendaSlide,
    BigNumberSlide,
    Slide,
    SlideSpec,
    TextSlide,
    parse_slide,
)
from src.deck_generation.numeric_guard import guard_numbers
from src.deck_generation.schema_validator import (
    has_parallel_structure,
    looks_json_style_text,
    starts_with_likely_verb,
    validate_slide_spec,
)
from src.deck_generation.validation import validate_all

YEAR = "Company Profile / 公司概況.Year Established / 成立年份"
STAFF = "Company Profile / 公司概況.Number of Employees / 員工人數"
HQ = "Company Profile / 公司概況.Headquarters / 總部"


def _slide(**overrides):
    slide = {
        "type": "text",
        "title": "Company Overview",
        "keyMessage": "Harbour Line has operated since 2008.",
        "keyMessageSourceKeys": [YEAR],
        "density": "medium",
        "tone": "business",
        "layoutHint": "text",
        "bullets": [
            {"text": "Present founding year as 2008.", "sourceKeys": [YEAR], "kind": "fact"},
            {"text": "Present headcount as 120 staff.", "sourceKeys": [STAFF], "kind": "fact"},
            {"text": "Present headquarters in Hong Kong.", "sourceKeys": [HQ], "kind": "fact"},
        ],
    }
    slide.update(overrides)
    return slide


def _spec(*slides):
    return {"presentationTitle": "Harbour Line Interiors Ltd", "slides": list(slides)}


class TestCopyHeuristics:
    def test_json_style_text(self):
        assert looks_json_style_text('{"a": 1}')
        assert looks_json_style_text("revenue: 1200")
        assert not looks_json_style_text("Present revenue as 1200.")

    def test_verb_lead(self):
        assert starts_with_likely_verb("Deliver projects on time")
        assert starts_with_likely_verb("Optimize layouts")
        assert not starts_with_likely_verb("The team is large")

    def test_parallel_structure(self):
        assert has_parallel_structure(["Build a", "Build b", "Build c"])
        assert not has_parallel_structure(["Alpha a", "Beta b", "Gamma c", "Delta d"])


class TestSchemaValidator:
    """Structure, enumerations and PPT copy rules."""

    def test_valid_slide_passes(self):
        result = validate_slide_spec(_spec(_slide()), min_bullets_per_page=1)
        assert result.ok, result.codes()

    def test_accepts_models(self):
        spec = SlideSpec.model_validate(_spec(_slide()))
        assert validate_slide_spec(spec, min_bullets_per_page=1).ok

    def test_empty_deck(self):
        assert validate_slide_spec({"slides": []}).codes() == ["NO_SLIDES"]
        assert validate_slide_spec([]).codes() == ["INVALID_ROOT"]

    def test_enumerations(self):
        result = validate_slide_spec(_spec(_slide(type="poster", tone="loud", density="max")))
        assert {"INVALID_TYPE", "TONE_INVALID", "DENSITY_INVALID"} <= set(result.codes())

    def test_key_message_single_sentence(self):
        result = validate_slide_spec(_spec(_slide(keyMessage="We design. We build.")))
        assert "MULTIPLE_KEY_MESSAGE" in result.codes()

    def test_abbreviations_do_not_split_sentences(self):
        result = validate_slide_spec(_spec(_slide(keyMessage="Clients include U.S. banks, e.g. regional lenders.")))
        assert "MULTIPLE_KEY_MESSAGE" not in result.codes()

    def test_missing_bullets_and_sources(self):
        result = validate_slide_spec(_spec(_slide(bullets=[], keyMessageSourceKeys=[])))
        assert {"MISSING_BULLETS", "KEY_MESSAGE_SOURCE_MISSING"} <= set(result.codes())

    def test_insight_prefix(self):
        bullets = [{"text": "Expand into Singapore.", "sourceKeys": [HQ], "kind": "insight"}]
        result = validate_slide_spec(_spec(_slide(bullets=bullets)), min_bullets_per_page=1)
        assert "INSIGHT_PREFIX_REQUIRED" in result.codes()

    def test_copy_rules_can_be_disabled(self):
        bullets = [
            {"text": "Alpha point", "sourceKeys": [HQ]},
            {"text": "Beta point", "sourceKeys": [HQ]},
            {"text": "Gamma point", "sourceKeys": [HQ]},
            {"text": "Delta point", "sourceKeys": [HQ]},
        ]
        strict = validate_slide_spec(_spec(_slide(bullets=bullets)))
        assert {"BULLET_NOT_VERB_LEAD", "BULLET_NOT_PARALLEL"} <= set(strict.codes())
        relaxed = validate_slide_spec(_spec(_slide(bullets=bullets)), enforce_ppt_copy_rules=False)
        assert relaxed.ok, relaxed.codes()

    def test_images_checked_against_allow_list(self):
        slide = _slide(images=["https://cdn.example.com/a.png", "not-a-url", "https://x.example/b.png"])
        result = validate_slide_spec(
            _spec(slide), allowed_image_urls=["https://cdn.example.com/a.png"], max_images_per_slide=2
        )
        codes = result.codes()
        assert "IMAGE_COUNT_EXCEEDED" in codes
        assert "IMAGE_URL_INVALID" in codes
        assert "IMAGE_NOT_FROM_SOURCE" in codes

    def test_big_number_requires_number_and_caption(self):
        result = validate_slide_spec(_spec(_slide(type="bigNumber", bullets=[])))
        assert {"MISSING_NUMBER", "MISSING_CAPTION"} <= set(result.codes())

    @pytest.mark.parametrize("slide_type", ["bullets", "twoColumn", "chart"])
    def test_unknown_types_rejected(self, slide_type):
        result = validate_slide_spec(_spec(_slide(type=slide_type)), min_bullets_per_page=1)
        assert result.codes() == ["INVALID_TYPE"]


class TestSlideUnion:
    """Slides parse into the variant their ``type`` names."""

    def test_variants_by_type(self):
        spec = SlideSpec.model_validate(
            _spec(_slide(), _slide(type="bigNumber", number=120, caption="Staff"), {"title": "Untyped"})
        )
        assert [type(slide) for slide in spec.slides] == [TextSlide, BigNumberSlide, TextSlide]
        assert spec.slides[1].number == "120"
        assert isinstance(parse_slide({"type": "agenda", "title": "Agenda"}), AgendaSlide)

    def test_big_number_requires_number(self):
        with pytest.raises(ValidationError):
            parse_slide(_slide(type="bigNumber"))
        with pytest.raises(ValidationError):
            SlideSpec.model_validate(_spec(_slide(type="bigNumber", number="")))

    @pytest.mark.parametrize("slide_type", ["bullets", "twoColumn"])
    def test_legacy_types_rejected(self, slide_type):
        assert slide_type not in ALLOWED_SLIDE_TYPES
        with pytest.raises(ValidationError):
            parse_slide(_slide(type=slide_type))

    def test_extra_fields_ignored(self):
        slide = parse_slide(_slide(left=["Design"], trusted=True))
        assert not hasattr(slide, "left")
        assert "trusted" not in slide.model_dump()

    def test_base_slides_are_tagged(self):
        spec = SlideSpec(slides=[Slide(title="Contact", keyMessage="Reach us.")])
        assert isinstance(spec.slides[0], TextSlide)


class TestFactValidator:
    def test_resolved_sources_pass(self, fact_index):
        assert validate_facts(_spec(_slide()), fact_index).ok

    def test_unknown_path(self, fact_index):
        bullets = [{"text": "Present awards.", "sourceKeys": ["Awards.99"], "kind": "fact"}]
        result = validate_facts(_spec(_slide(bullets=bullets)), fact_index)
        issue = next(i for i in result.issues if i.code == "SOURCE_PATH_NOT_FOUND")
        assert issue.path == "Awards.99"

    def test_number_must_come_from_cited_sources(self, fact_index):
        bullets = [{"text": "Present headcount as 450 staff.", "sourceKeys": [STAFF], "kind": "fact"}]
        result = validate_facts(_spec(_slide(bullets=bullets)), fact_index)
        assert "NUMBER_NOT_IN_SOURCE" in result.codes()

    def test_small_numbers_are_not_checked(self, fact_index):
        bullets = [{"text": "Present 2 offices in Hong Kong.", "sourceKeys": [HQ], "kind": "fact"}]
        assert validate_facts(_spec(_slide(bullets=bullets)), fact_index).ok

    def test_agenda_numbers_are_exempt(self, fact_index):
        slide = _slide(type="agenda", bullets=[{"text": "1. Overview", "sourceKeys": [HQ]}])
        slide["keyMessage"] = "Navigate the storyline."
        assert validate_facts(_spec(slide), fact_index).ok

    def test_insight_needs_sources(self, fact_index):
        bullets = [{"text": "Suggestion: Expand regionally.", "sourceKeys": [], "kind": "insight"}]
        result = validate_facts(_spec(_slide(bullets=bullets)), fact_index)
        assert {"INSIGHT_UNSUPPORTED", "MISSING_SOURCE_KEYS"} <= set(result.codes())


class TestNumericGuard:
    def test_numbers_outside_source_are_flagged(self):
        result = guard_numbers(_spec(_slide(title="Growth to 9000 sqft")), ["2008", "120"])
        assert [issue.code for issue in result.issues] == ["NUMBER_NOT_IN_SOURCE"]
        assert "9000" in result.issues[0].message

    def test_urls_are_ignored(self):
        slide = _slide(keyMessage="See https://example.com/v12345 for details.", keyMessageSourceKeys=[HQ])
        assert guard_numbers(_spec(slide), ["2008", "120"]).ok

    def test_thousands_separators(self):
        slide = _slide(title="Office of 45,000 sqft")
        assert guard_numbers(_spec(slide), ["2008", "120", "45000"]).ok


class TestValidateAll:
    def test_report_merges_validators(self, fact_index):
        spec = _spec(_slide(title="Growth to 9000 sqft"))
        report = validate_all(spec, fact_index, ["2008", "120"], min_bullets_per_page=1)
        assert not report.ok
        assert report.schema.ok
        assert report.numbers.codes() == ["NUMBER_NOT_IN_SOURCE"]
        body = report.to_dict(limit=5)
        assert set(body) == {"schema", "facts", "numbers"}
        assert body["numbers"]["ok"] is False

    def test_guard_skipped_without_source_numbers(self, fact_index):
        report = validate_all(_spec(_slide(title="Growth to 9000 sqft")), fact_index, [], min_bullets_per_page=1)
        assert report.numbers.ok
