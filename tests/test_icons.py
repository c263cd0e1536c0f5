from pptx.enum.shapes import MSO_SHAPE

from src.deck_generation.icons import (
    DEFAULT_ICON,
    ICON_SHAPES,
    find_icon_by_text,
    is_known_icon,
    pick_icons,
    resolve_icon_shape,
)
from src.deck_generation.models import Slide


class TestIconPicker:
    def test_keyword_match(self):
        slides = pick_icons(
            [
                {
                    "type": "text",
                    "title": "Our Services",
                    "keyMessage": "Deliver interiors end to end.",
                    "bullets": [{"text": "Present workplace interior design."}],
                }
            ]
        )
        assert slides[0]["icons"] == [{"name": "briefcase", "placement": "card"}]

    def test_agenda_icons_sit_on_bullets(self):
        slides = pick_icons([{"type": "agenda", "title": "Agenda", "bullets": ["Company Overview"]}])
        assert slides[0]["icons"][0]["placement"] == "bullet"

    def test_unknown_topic_gets_default(self):
        assert find_icon_by_text("miscellaneous") == DEFAULT_ICON
        slides = pick_icons([{"type": "text", "title": "Miscellaneous"}])
        assert slides[0]["icons"][0]["name"] == DEFAULT_ICON

    def test_existing_icons_filtered_and_capped(self):
        slides = pick_icons(
            [
                {
                    "title": "Awards",
                    "icons": [
                        {"name": "award"},
                        {"name": "not-an-icon"},
                        {"name": "star", "placement": "title"},
                        {"name": "flag"},
                    ],
                }
            ],
            max_icons_per_slide=2,
        )
        assert slides[0]["icons"] == [
            {"name": "award", "placement": "card"},
            {"name": "star", "placement": "title"},
        ]

    def test_accepts_models_and_leaves_input_alone(self):
        slide = Slide(title="Contact", keyMessage="Reach us by email.")
        out = pick_icons([slide])
        assert out[0]["icons"][0]["name"] == "mail"
        assert slide.icons == []


class TestCatalog:
    def test_aliases_are_known(self):
        assert is_known_icon("awards")
        assert is_known_icon("layout-grid")
        assert not is_known_icon("rocket-ship")

    def test_shape_resolution(self):
        assert resolve_icon_shape("awards") == MSO_SHAPE.STAR_7_POINT
        assert resolve_icon_shape("rocket-ship") == ICON_SHAPES[DEFAULT_ICON]
