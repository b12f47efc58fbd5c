"""Tests for symptom classification against the fixed taxonomy."""

from types import MappingProxyType

import pytest
from hypothesis import given
from hypothesis import strategies as st

from dormhealth.domain.models import SymptomCategory
from dormhealth.services.symptom_classifier import DEFAULT_TAXONOMY, SymptomClassifier

KNOWN_LABELS = [needle for needles in DEFAULT_TAXONOMY.values() for needle in needles]


@pytest.fixture
def classifier() -> SymptomClassifier:
    return SymptomClassifier()


class TestCategorize:
    def test_exact_label_matches_its_category(self, classifier: SymptomClassifier) -> None:
        assert classifier.categorize("cough") is SymptomCategory.RESPIRATORY
        assert classifier.categorize("nausea") is SymptomCategory.GASTROINTESTINAL
        assert classifier.categorize("fever") is SymptomCategory.SYSTEMIC
        assert classifier.categorize("rash") is SymptomCategory.OTHER

    def test_matching_is_case_insensitive_substring(self, classifier: SymptomClassifier) -> None:
        assert classifier.categorize("Dry COUGH at night") is SymptomCategory.RESPIRATORY
        assert classifier.categorize("mild headache") is SymptomCategory.SYSTEMIC

    def test_first_category_in_declaration_order_wins(
        self, classifier: SymptomClassifier
    ) -> None:
        # Mentions both a respiratory and a systemic symptom
        assert classifier.categorize("fever and cough") is SymptomCategory.RESPIRATORY

    def test_unknown_label_has_no_category(self, classifier: SymptomClassifier) -> None:
        assert classifier.categorize("sprained ankle") is None


class TestClassify:
    def test_counts_and_ranking(self, classifier: SymptomClassifier) -> None:
        analysis = classifier.classify(["cough", "fever", "Cough", "nausea", "cough"])

        assert [(s.label, s.count) for s in analysis.top_symptoms] == [
            ("cough", 3),
            ("fever", 1),
            ("nausea", 1),
        ]
        assert analysis.category_scores == {
            SymptomCategory.RESPIRATORY: 3,
            SymptomCategory.GASTROINTESTINAL: 1,
            SymptomCategory.SYSTEMIC: 1,
            SymptomCategory.OTHER: 0,
        }
        assert analysis.dominant_category is SymptomCategory.RESPIRATORY
        assert analysis.total_symptom_reports == 5

    def test_equal_counts_keep_first_seen_order(self, classifier: SymptomClassifier) -> None:
        analysis = classifier.classify(["rash", "fever", "cough", "fever", "rash"])

        assert [s.label for s in analysis.top_symptoms] == ["rash", "fever", "cough"]

    def test_category_tie_resolves_to_declaration_order(
        self, classifier: SymptomClassifier
    ) -> None:
        analysis = classifier.classify(["fever", "nausea"])

        assert analysis.dominant_category is SymptomCategory.GASTROINTESTINAL

    def test_empty_input_defaults_to_first_category(self, classifier: SymptomClassifier) -> None:
        analysis = classifier.classify([])

        assert analysis.top_symptoms == []
        assert analysis.total_symptom_reports == 0
        assert set(analysis.category_scores.values()) == {0}
        assert analysis.dominant_category is SymptomCategory.RESPIRATORY

    def test_unmatched_labels_rank_but_do_not_categorize(
        self, classifier: SymptomClassifier
    ) -> None:
        analysis = classifier.classify(["sprained ankle", "sprained ankle", "cough"])

        assert analysis.top_symptoms[0].label == "sprained ankle"
        assert analysis.total_symptom_reports == 3
        assert sum(analysis.category_scores.values()) == 1

    def test_top_symptoms_truncated_to_top_n(self) -> None:
        classifier = SymptomClassifier(top_n=2)

        analysis = classifier.classify(["cough", "fever", "rash", "cough"])

        assert len(analysis.top_symptoms) == 2
        assert analysis.total_symptom_reports == 4

    def test_same_input_same_output(self, classifier: SymptomClassifier) -> None:
        labels = ["fatigue", "cough", "diarrhea", "cough", "anxiety"]

        assert classifier.classify(labels) == classifier.classify(list(labels))

    @given(labels=st.lists(st.sampled_from(KNOWN_LABELS + ["unlisted"]), max_size=40))
    def test_classification_invariants(self, labels: list[str]) -> None:
        """Property-based test: counts never exceed the number of labels given."""
        analysis = SymptomClassifier().classify(labels)

        assert analysis.total_symptom_reports == len(labels)
        assert sum(analysis.category_scores.values()) == sum(
            1 for label in labels if label != "unlisted"
        )
        assert len(analysis.top_symptoms) <= 5
        counts = [s.count for s in analysis.top_symptoms]
        assert counts == sorted(counts, reverse=True)
        assert analysis.category_scores[analysis.dominant_category] == max(
            analysis.category_scores.values()
        )


class TestTaxonomy:
    def test_default_taxonomy_is_immutable(self) -> None:
        with pytest.raises(TypeError):
            DEFAULT_TAXONOMY[SymptomCategory.OTHER] = ("hiccups",)  # type: ignore[index]

    def test_custom_taxonomy_must_cover_every_category(self) -> None:
        partial = MappingProxyType({SymptomCategory.RESPIRATORY: ("cough",)})

        with pytest.raises(ValueError, match="missing categories"):
            SymptomClassifier(taxonomy=partial)

    def test_custom_taxonomy_is_used(self) -> None:
        taxonomy = {category: () for category in SymptomCategory}
        taxonomy[SymptomCategory.OTHER] = ("hiccups",)

        classifier = SymptomClassifier(taxonomy=taxonomy)

        assert classifier.categorize("hiccups") is SymptomCategory.OTHER
        assert classifier.categorize("cough") is None

    def test_top_n_must_be_positive(self) -> None:
        with pytest.raises(ValueError, match="top_n"):
            SymptomClassifier(top_n=0)
