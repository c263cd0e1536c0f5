from src.deck_generation.fact_index import build_fact_index, english_path, normalize_path


class TestNormalizePath:
    """Path normalization shared by every source-key lookup."""

    def test_separators_and_underscores(self):
        assert normalize_path("Company_Profile > Founded") == "Company Profile.Founded"
        assert normalize_path(["a-b", "0", "c"]) == "a b.0.c"

    def test_non_string_is_empty(self):
        assert normalize_path(None) == ""
        assert normalize_path(42) == ""

    def test_english_path_drops_cjk(self):
        assert english_path("Company Profile / 公司概況.Headquarters / 總部") == "Company Profile.Headquarters"


class TestBuildFactIndex:
    def test_scalars_objects_and_array_elements_are_registered(self, fact_index):
        assert "Company Profile / 公司概況" in fact_index
        assert "Services / 服務" in fact_index
        assert "Services / 服務.1" in fact_index
        node = fact_index["Company Profile / 公司概況.Year Established / 成立年份"]
        assert node.value == 2008
        assert node.raw_type == "number"
        assert node.tokens == ("2008",)

    def test_english_alias_resolves_to_canonical_path(self, fact_index):
        canonical = fact_index.canonical("Company Profile.Year Established")
        assert canonical == "Company Profile / 公司概況.Year Established / 成立年份"

    def test_lookup_accepts_unnormalized_paths(self, fact_index):
        assert "Company_Profile / 公司概況 > Headquarters / 總部" in fact_index
        assert fact_index.canonical("Not.A.Path") is None

    def test_leaf_paths_exclude_containers(self, fact_index):
        leaves = fact_index.leaf_paths()
        assert "Services / 服務" not in leaves
        assert "Services / 服務.0" in leaves

    def test_text_for_skips_unknown_paths(self, fact_index):
        text = fact_index.text_for(["Contact / 聯絡.Contact Number / 聯繫電話", "missing.path"])
        assert text == "+852 2345 6789"

    def test_compact_entries_respects_limits(self, fact_index):
        entries = fact_index.compact_entries(limit=3, max_value_chars=10)
        assert len(entries) == 3
        assert all(len(value) <= 13 for value in entries.values())

    def test_first_registration_wins(self):
        index = build_fact_index({"a_b": "first", "a b": "second"})
        assert index["a b"].value == "first"

    def test_empty_input(self):
        assert len(build_fact_index(None)) == 0
