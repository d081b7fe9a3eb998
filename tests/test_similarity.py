import pytest

from app.services.similarity import column_similarity, label_similarity, normalize_label


def test_normalize_label():
    assert normalize_label("  Cardiology - General ") == "cardiology general"
    assert normalize_label("OB/GYN") == "ob gyn"
    assert normalize_label("") == ""


class TestLabelSimilarity:
    def test_identical_after_normalizing(self):
        assert label_similarity("Cardiology", " cardiology ") == 1.0

    def test_containment_is_boosted(self):
        assert label_similarity("Cardio", "Cardiology") == 0.85

    def test_unrelated_labels_score_low(self):
        assert label_similarity("Dermatology", "Cardiology") < 0.7

    def test_blank_label(self):
        assert label_similarity("", "Cardiology") == 0.0


class TestColumnSimilarity:
    def test_formatting_differences_match_exactly(self):
        assert column_similarity("wRVU_P50", "wrvu p50") == 1.0

    @pytest.mark.parametrize("a,b", [
        ("tcc_p50", "tcc_p90"),
        ("tcc_p25", "tcc_p75"),
    ])
    def test_different_percentiles_stay_apart(self, a, b):
        assert column_similarity(a, b) == 0.2

    def test_different_prefixes_stay_apart(self):
        assert column_similarity("tcc_p50", "wrvu_p50") == 0.1

    def test_matching_data_type_adds_a_bonus(self):
        boosted = column_similarity("tcc_p", "tcc_p50", "number", "number")
        without = column_similarity("tcc_p", "tcc_p50", "number", "number", include_data_type_matching=False)
        mixed = column_similarity("tcc_p", "tcc_p50", "number", "string")

        assert without == pytest.approx(1 - 2 / 6)
        assert mixed == without
        assert boosted == pytest.approx(without + 0.1)
