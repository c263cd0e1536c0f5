import io

import pytest
from pptx import Presentation
from pptx.enum.shapes import MSO_SHAPE_TYPE
from pptx.util import Inches

from src.agents.deck_agent.pipeline import run_deck_agent
from src.deck_generation.image_cache import ImageCache, guess_mime, to_embeddable
from src.deck_generation.models import SlideSpec
from src.deck_generation.placeholders import gradient_placeholder, icon_placeholder
from src.deck_generation.renderer import RenderContext, plan_deck, render_deck

from conftest import PROJECT_IMAGE, FakeResponse, FakeSession, png_bytes

YEAR = "Company Profile / 公司概況.Year Established / 成立年份"
STAFF = "Company Profile / 公司概況.Number of Employees / 員工人數"
MISSING_IMAGE = "https://cdn.example.com/missing.png"


def _bullets(*texts, key=YEAR):
    return [{"text": text, "sourceKeys": [key], "kind": "fact"} for text in texts]


@pytest.fixture
def spec():
    return SlideSpec.model_validate(
        {
            "presentationTitle": "Harbour Line Interiors Ltd",
            "styleHint": "corporate",
            "slides": [
                {
                    "type": "title",
                    "title": "Harbour Line Interiors Ltd",
                    "keyMessage": "Workplace interiors since 2008.",
                    "keyMessageSourceKeys": [YEAR],
                    "images": [PROJECT_IMAGE],
                    "imagePlan": {"mode": "bg", "placement": "full-bleed", "overlay": "dark-55"},
                },
                {
                    "type": "agenda",
                    "title": "Agenda",
                    "keyMessage": "Navigate the storyline.",
                    "bullets": _bullets("1. Company Overview", "2. Selected Projects", "3. Contact"),
                },
                {
                    "type": "text",
                    "title": "Selected Projects",
                    "keyMessage": "Deliver landmark fit-outs.",
                    "layoutHint": "split-image",
                    "images": [PROJECT_IMAGE],
                    "bullets": _bullets("Present Central Tower fit-out.", "Present 45,000 sqft delivered."),
                },
                {
                    "type": "bigNumber",
                    "title": "Team Scale",
                    "keyMessage": "Staff a full delivery team.",
                    "number": "120",
                    "caption": "Employees",
                    "bullets": _bullets("Present headcount as 120 staff.", key=STAFF),
                },
                {
                    "type": "cards",
                    "title": "Our Services",
                    "keyMessage": "Deliver interiors end to end.",
                    "bullets": _bullets("Design workplaces.", "Build interiors.", "Manage projects.", "Advise clients."),
                },
                {
                    "type": "text",
                    "title": "Contact",
                    "keyMessage": "Reach the team by email.",
                    "images": [MISSING_IMAGE],
                    "bullets": _bullets("Present hello@harbourline.example."),
                },
            ],
        }
    )


def _open(data):
    return Presentation(io.BytesIO(data))


def _slide_text(slide):
    return " ".join(shape.text_frame.text for shape in slide.shapes if shape.has_text_frame)


class TestRenderDeck:
    def test_produces_a_readable_deck(self, spec, image_session):
        data = render_deck(spec, RenderContext.for_spec(spec, session=image_session))
        prs = _open(data)
        assert len(prs.slides) == 6
        assert prs.slide_width == Inches(13.333)
        assert prs.core_properties.title == "Harbour Line Interiors Ltd"
        assert "Harbour Line Interiors Ltd" in _slide_text(prs.slides[0])
        assert "Team Scale" in _slide_text(prs.slides[3])

    def test_fetched_images_are_embedded_once(self, spec, image_session):
        data = render_deck(spec, RenderContext.for_spec(spec, session=image_session))
        prs = _open(data)
        pictures = [shape for shape in prs.slides[0].shapes if shape.shape_type == MSO_SHAPE_TYPE.PICTURE]
        assert pictures
        fetched = [call["url"] for call in image_session.calls]
        assert fetched.count(PROJECT_IMAGE) == 1
        assert fetched.count(MISSING_IMAGE) == 1

    def test_missing_image_drops_media_layout(self, spec, image_session):
        ctx = RenderContext.for_spec(spec, session=image_session)
        planned = plan_deck(spec, ctx)
        contact = [item for item in planned if item.slide.slide.title == "Contact"][0]
        assert contact.slide.images == []
        assert contact.layout == "text"
        projects = [item for item in planned if item.slide.slide.title == "Selected Projects"][0]
        assert projects.layout == "split-image"

    def test_speaker_notes_list_sources(self, spec, image_session):
        prs = _open(render_deck(spec, RenderContext.for_spec(spec, session=image_session)))
        notes = prs.slides[2].notes_slide.notes_text_frame.text
        assert notes == f"Data source: {YEAR}"

    def test_notes_can_be_disabled(self, spec, image_session):
        ctx = RenderContext.for_spec(spec, session=image_session, show_source_in_notes=False)
        prs = _open(render_deck(spec, ctx))
        assert not any(slide.has_notes_slide for slide in prs.slides)

    def test_theme_follows_style_hint(self, spec, image_session):
        dark = spec.model_copy(update={"styleHint": "investor pitch"})
        assert RenderContext.for_spec(dark, session=image_session).theme.name == "dark-hero"
        assert RenderContext.for_spec(spec, theme_name="medical-clean", session=image_session).theme.name == "medical-clean"

    def test_renders_offline_pipeline_output(self, sample_input):
        result = run_deck_agent("Company profile deck", sample_input, budget_ms=0)
        spec = result.slide_spec
        prs = _open(render_deck(spec, RenderContext.for_spec(spec, session=FakeSession())))
        assert len(prs.slides) >= len(spec.slides)


class TestImageCache:
    def test_failures_are_remembered(self):
        session = FakeSession({MISSING_IMAGE: FakeResponse(500)})
        cache = ImageCache(2000, session=session)
        assert cache.get(MISSING_IMAGE) is None
        assert cache.get(MISSING_IMAGE) is None
        assert len(session.calls) == 1
        assert MISSING_IMAGE in cache

    def test_non_http_urls_are_ignored(self):
        session = FakeSession()
        assert ImageCache(session=session).get("data:image/png;base64,AAAA") is None
        assert session.calls == []

    def test_undecodable_payload_is_a_miss(self):
        session = FakeSession({PROJECT_IMAGE: FakeResponse(200, content=b"not an image")})
        assert ImageCache(session=session).get(PROJECT_IMAGE) is None

    def test_mime_guess(self):
        assert guess_mime("https://x.example/a.PNG?size=2") == "image/png"
        assert guess_mime("https://x.example/a", "image/webp; charset=binary") == "image/webp"
        assert guess_mime("https://x.example/a") == "image/jpeg"

    def test_png_passes_through(self):
        data = png_bytes()
        assert to_embeddable(data) == data


class TestPlaceholders:
    def test_placeholders_are_png(self):
        for data in (gradient_placeholder(), icon_placeholder()):
            assert data.startswith(b"\x89PNG")
