"""
Symptom classification against a fixed taxonomy.

Labels are matched case-insensitively by substring: a label belongs to the
first category, in declaration order, that lists a substring it contains.
Labels that match nothing still count toward the top-symptom ranking and the
report total, but not toward any category.
"""

from collections import Counter
from collections.abc import Iterable, Mapping
from types import MappingProxyType

import structlog

from dormhealth.domain.models import SymptomAnalysis, SymptomCategory, SymptomCount

logger = structlog.get_logger(__name__)

Taxonomy = Mapping[SymptomCategory, tuple[str, ...]]

DEFAULT_TAXONOMY: Taxonomy = MappingProxyType(
    {
        SymptomCategory.RESPIRATORY: (
            "cough",
            "sore throat",
            "runny nose",
            "congestion",
            "shortness of breath",
        ),
        SymptomCategory.GASTROINTESTINAL: (
            "nausea",
            "vomiting",
            "diarrhea",
            "stomach pain",
            "loss of appetite",
        ),
        SymptomCategory.SYSTEMIC: ("fever", "chills", "fatigue", "body aches", "headache"),
        SymptomCategory.OTHER: ("rash", "dizziness", "insomnia", "anxiety"),
    }
)


class SymptomClassifier:
    """Pure, deterministic mapping from raw labels to a SymptomAnalysis."""

    def __init__(self, taxonomy: Taxonomy = DEFAULT_TAXONOMY, top_n: int = 5) -> None:
        if top_n <= 0:
            raise ValueError("top_n must be positive")
        missing = [category for category in SymptomCategory if category not in taxonomy]
        if missing:
            raise ValueError(f"Taxonomy is missing categories: {missing}")
        # Freeze a private copy in enum declaration order
        self.taxonomy: Taxonomy = MappingProxyType(
            {category: tuple(taxonomy[category]) for category in SymptomCategory}
        )
        self.top_n = top_n

    def categorize(self, label: str) -> SymptomCategory | None:
        """Category of a single label, or None when the taxonomy has no match."""
        lowered = label.lower()
        for category, needles in self.taxonomy.items():
            if any(needle in lowered for needle in needles):
                return category
        return None

    def classify(self, symptoms: Iterable[str]) -> SymptomAnalysis:
        # Counter keeps first-seen order, which the stable sort below relies on
        label_counts: Counter[str] = Counter()
        category_scores = {category: 0 for category in SymptomCategory}

        for symptom in symptoms:
            label = symptom.lower()
            label_counts[label] += 1
            category = self.categorize(label)
            if category is not None:
                category_scores[category] += 1

        ranked = sorted(label_counts.items(), key=lambda item: item[1], reverse=True)
        top_symptoms = [SymptomCount(label=label, count=count) for label, count in ranked]

        # max() returns the first maximal key, i.e. declaration order on ties
        dominant = max(category_scores, key=lambda category: category_scores[category])

        return SymptomAnalysis(
            top_symptoms=top_symptoms[: self.top_n],
            category_scores=category_scores,
            dominant_category=dominant,
            total_symptom_reports=sum(label_counts.values()),
        )
