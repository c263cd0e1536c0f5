import pytest

from src.agents.deck_agent.llm_client import LLMError
from src.agents.deck_agent.pipeline import (
    SlideSpecValidationError,
    StageState,
    build_agenda_slides,
    compose_speaker_notes,
    run_deck_agent,
)
from src.deck_generation.models import Slide

YEAR = "Company Profile / 公司概況.Year Established / 成立年份"
STAFF = "Company Profile / 公司概況.Number of Employees / 員工人數"
HQ = "Company Profile / 公司概況.Headquarters / 總部"

SECTIONS = ["Company Overview", "Our Services", "Selected Projects", "Awards & Recognition", "Contact"]
BUDGET = 60000


def _overview(headcount="120"):
    return {
        "title": "Company Overview",
        "keyMessage": "Harbour Line has operated since 2008.",
        "keyMessageSourceKeys": [YEAR],
        "bullets": [
            {"text": "Present founding year as 2008.", "sourceKeys": [YEAR], "kind": "fact"},
            {"text": f"Present headcount as {headcount} staff.", "sourceKeys": [STAFF], "kind": "fact"},
            {"text": "Present headquarters in Hong Kong.", "sourceKeys": [HQ], "kind": "fact"},
        ],
    }


def _states(**overrides):
    states = {
        "planner": StageState.NOT_ATTEMPTED.value,
        "storyboard": StageState.NOT_ATTEMPTED.value,
        "copy_polish": StageState.NOT_ATTEMPTED.value,
        "icons": StageState.SUCCEEDED.value,
        "critic": StageState.NOT_ATTEMPTED.value,
    }
    states.update(overrides)
    return states


class TestOfflinePipeline:
    """With no budget every model stage is skipped and the draft is used."""

    def test_draft_deck_is_valid(self, sample_input, failing_chat):
        result = run_deck_agent("Company profile deck", sample_input, chat=failing_chat, budget_ms=0)
        spec = result.slide_spec
        titles = [slide.title for slide in spec.slides]
        assert titles == [spec.presentationTitle, "Agenda", *SECTIONS]
        assert spec.presentationTitle == "Harbour Line Interiors Ltd"
        assert result.stages == _states()
        assert failing_chat.calls == []
        assert all(part["ok"] for part in result.validation_report.values())

    def test_progress_is_reported_in_order(self, sample_input):
        seen = []
        run_deck_agent("deck", sample_input, budget_ms=0, on_progress=lambda value, stage: seen.append(value))
        assert seen == [8, 18, 30, 42, 58, 76]

    def test_framing_slides(self, sample_input):
        spec = run_deck_agent("deck", sample_input, budget_ms=0).slide_spec
        cover, agenda = spec.slides[0], spec.slides[1]
        assert cover.type == "title"
        assert cover.layoutHint == "text"
        assert agenda.type == "agenda"
        assert [b.text for b in agenda.bullets] == [f"{i}. {title}" for i, title in enumerate(SECTIONS, start=1)]

    def test_meta_records_outline_and_prompts(self, sample_input):
        spec = run_deck_agent("deck", sample_input, budget_ms=0).slide_spec
        assert spec.meta["finalOutline"] == [slide.title for slide in spec.slides]
        assert "Team & Leadership" in [item["title"] for item in spec.meta["skippedSections"]]
        assert spec.meta["copyPolish"]["attempts"] == 0
        assert "planner" in spec.meta["prompts"] and "storyboard" in spec.meta["prompts"]

    def test_every_slide_traces_to_sources(self, sample_input):
        spec = run_deck_agent("deck", sample_input, budget_ms=0).slide_spec
        for slide in spec.slides:
            assert slide.keyMessageSourceKeys
            assert all(b.sourceKeys for b in slide.bullets)
            assert slide.icons

    def test_notes_follow_flag(self, sample_input):
        with_sources = run_deck_agent("deck", sample_input, budget_ms=0).slide_spec
        assert with_sources.slides[2].speakerNotes.startswith("Data source: ")
        without = run_deck_agent("deck", sample_input, budget_ms=0, show_source_in_notes=False).slide_spec
        assert all(slide.speakerNotes == "" for slide in without.slides)

    def test_style_hint_from_prompt(self, sample_input):
        spec = run_deck_agent("Medical supplier overview", sample_input, budget_ms=0).slide_spec
        assert spec.styleHint == "medical clean"
        assert spec.slides[0].tone == "clinical"


class TestModelStages:
    def test_failing_chat_falls_back_everywhere(self, sample_input, failing_chat):
        offline = run_deck_agent("deck", sample_input, budget_ms=0).slide_spec
        result = run_deck_agent("deck", sample_input, chat=failing_chat, budget_ms=BUDGET)
        assert result.stages == _states(
            planner=StageState.FALLBACK_USED.value,
            storyboard=StageState.FALLBACK_USED.value,
            copy_polish=StageState.FALLBACK_USED.value,
        )
        # planner, storyboard and one copy-polish request; a failed request is not retried
        assert len(failing_chat.calls) == 3
        assert [s.title for s in result.slide_spec.slides] == [s.title for s in offline.slides]

    def test_planner_goals_are_merged(self, sample_input, scripted_chat):
        planner = {
            "sections": [
                {
                    "title": "company overview",
                    "goal": "Show scale",
                    "keyMessage": "Harbour Line is established. Extra sentence.",
                    "requiredFields": ["Company Profile.Year Established", "Nope.Path"],
                }
            ]
        }
        chat = scripted_chat([planner, {"slides": []}])
        result = run_deck_agent("deck", sample_input, chat=chat, budget_ms=BUDGET)
        first = result.sections_plan[0]
        assert first["title"] == "Company Overview"
        assert first["goal"] == "Show scale"
        assert first["keyMessage"] == "Harbour Line is established."
        assert first["requiredFields"] == [YEAR]
        assert [item["title"] for item in result.sections_plan] == SECTIONS
        assert result.stages["planner"] == StageState.SUCCEEDED.value
        assert result.stages["storyboard"] == StageState.FALLBACK_USED.value

    def test_storyboard_slides_are_used(self, sample_input, scripted_chat):
        chat = scripted_chat([LLMError("planner down"), {"slides": [_overview()]}])
        result = run_deck_agent("deck", sample_input, chat=chat, budget_ms=BUDGET)
        overview = result.slide_spec.slides[2]
        assert result.stages["storyboard"] == StageState.SUCCEEDED.value
        assert overview.keyMessage == "Harbour Line has operated since 2008."
        assert [b.text for b in overview.bullets][1] == "Present headcount as 120 staff."

    def test_critic_repairs_unbacked_number(self, sample_input, scripted_chat):
        chat = scripted_chat(
            [
                LLMError("planner down"),
                {"slides": [_overview(headcount="450")]},
                LLMError("polish down"),
                {"patches": [{"index": 0, "slide": _overview()}]},
            ]
        )
        result = run_deck_agent("deck", sample_input, chat=chat, budget_ms=BUDGET)
        assert result.stages["critic"] == StageState.SUCCEEDED.value
        assert "Fact repair engine" in chat.calls[-1]["messages"][0]["content"]
        assert "Present headcount as 120 staff." in [b.text for b in result.slide_spec.slides[2].bullets]

    def test_unrepairable_deck_raises(self, sample_input, scripted_chat):
        chat = scripted_chat(
            [
                LLMError("planner down"),
                {"slides": [_overview(headcount="450")]},
                LLMError("polish down"),
                {"patches": []},
                {"patches": []},
            ]
        )
        with pytest.raises(SlideSpecValidationError) as excinfo:
            run_deck_agent("deck", sample_input, chat=chat, budget_ms=BUDGET)
        assert "NUMBER_NOT_IN_SOURCE" in [issue.code for issue in excinfo.value.issues]

    def test_scalar_fields_from_storyboard_do_not_crash(self, sample_input, scripted_chat, fact_index):
        storyboard = {
            "slides": [
                {
                    "title": "Company Overview",
                    "icons": 5,
                    "bullets": "Present everything.",
                    "emphasis": {"phrases": "Harbour Line", "numbers": True},
                }
            ]
        }
        chat = scripted_chat([LLMError("planner down"), storyboard])
        result = run_deck_agent("deck", sample_input, chat=chat, budget_ms=BUDGET)
        overview = result.slide_spec.slides[2]
        assert result.stages["storyboard"] == StageState.SUCCEEDED.value
        assert overview.title == "Company Overview"
        assert overview.bullets
        assert all(key in fact_index for bullet in overview.bullets for key in bullet.sourceKeys)
        assert overview.icons

    def test_critic_removes_bullet_with_missing_path(self, sample_input, scripted_chat):
        overview = _overview()
        overview["bullets"].append({"text": "Present regional offices.", "sourceKeys": ["Nope.Path"], "kind": "fact"})
        chat = scripted_chat(
            [
                LLMError("planner down"),
                {"slides": [overview]},
                LLMError("polish down"),
                {"patches": [{"index": 0, "slide": _overview()}]},
            ]
        )
        result = run_deck_agent("deck", sample_input, chat=chat, budget_ms=BUDGET)
        repair_prompt = chat.calls[-1]["messages"]
        assert "Fact repair engine" in repair_prompt[0]["content"]
        assert "SOURCE_PATH_NOT_FOUND" in repair_prompt[-1]["content"]
        texts = [b.text for b in result.slide_spec.slides[2].bullets]
        assert "Present regional offices." not in texts
        assert all("Nope.Path" not in b.sourceKeys for s in result.slide_spec.slides for b in s.bullets)
        assert result.stages["critic"] == StageState.SUCCEEDED.value

    def test_safety_reduction_drops_missing_path_without_inventing_one(self, sample_input, scripted_chat):
        overview = _overview()
        overview["bullets"].append({"text": "Present regional offices.", "sourceKeys": ["Nope.Path"], "kind": "fact"})
        chat = scripted_chat(
            [LLMError("planner down"), {"slides": [overview]}, LLMError("polish down"), {"patches": []}, {"patches": []}]
        )
        result = run_deck_agent("deck", sample_input, chat=chat, budget_ms=BUDGET)
        slide = result.slide_spec.slides[2]
        assert [b.text for b in slide.bullets] == [b["text"] for b in _overview()["bullets"]]
        assert "auto-reduced to fit constraints" in slide.speakerNotes


class TestHelpers:
    def test_agenda_paginates(self):
        content = [Slide(title=f"Section {i}", keyMessageSourceKeys=["k"]) for i in range(10)]
        pages = build_agenda_slides(content, ["d"])
        assert [page.title for page in pages] == ["Agenda", "Agenda (cont.)"]
        assert len(pages[0].bullets) == 8
        assert pages[1].bullets[0].text == "9. Section 8"
        assert pages[0].density == "high"

    def test_speaker_notes(self):
        slide = Slide.model_validate(
            {"keyMessageSourceKeys": ["a"], "bullets": [{"text": "x", "sourceKeys": ["a", "b"]}]}
        )
        assert compose_speaker_notes(slide, True, False) == "Data source: a, b"
        assert compose_speaker_notes(slide, False, True) == "auto-reduced to fit constraints"
        assert compose_speaker_notes(slide, False, False) == ""
