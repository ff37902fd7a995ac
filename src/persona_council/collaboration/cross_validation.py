"""
CrossValidator -- reconciles persona analyses without understanding them.

Purely lexical:
  - Common points: keywords shared by at least half of the analyses, mapped to
    fixed theme sentences (risk, opportunity, recommendation)
  - Disagreements: mixed sentiment polarity, scattered recommendations, and
    critical-vs-supportive tension in the roster
  - Recommendations: extracted after connective phrases, de-duplicated by a
    short prefix, ranked by how many analyses share them
  - Confidence: agreement raises it, disagreement lowers it, team size raises
    it; averaged with the mean persona confidence and clamped to [0.1, 0.95]
"""

import logging
import math
import re
from collections import Counter

from ..personas.models import Persona
from .classifier import (
    ARCHETYPE_CRITICAL,
    ARCHETYPE_SUPPORTIVE,
    ArchetypeClassifier,
    SentimentScorer,
    tokenize,
)
from .models import CrossValidationResult, PersonaAnalysis

logger = logging.getLogger(__name__)

MIN_CONFIDENCE = 0.1
MAX_CONFIDENCE = 0.95
SINGLE_ANALYSIS_CONFIDENCE = 0.7
RECOMMENDATION_KEY_LENGTH = 20
MAX_RECOMMENDATIONS = 3
MIN_RECOMMENDATION_LENGTH = 5
DIVERGENT_RECOMMENDATION_RATIO = 0.7
AGREEMENT_SUFFIX = " (multiple analysts agree)"

SINGLE_ANALYSIS_POINT = "Single analysis; cross-validation is not possible"
SINGLE_ANALYSIS_RECOMMENDATION = "Add more personas to the collaboration to improve confidence"
GENERIC_COMMON_POINT = "Analysts contributed insights from different perspectives"
GENERIC_RECOMMENDATION = "Weigh all perspectives and build a balanced action plan"

# (keyword prefixes, sentence) -- a theme fires when any shared keyword starts with a prefix.
COMMON_POINT_THEMES: tuple[tuple[tuple[str, ...], str], ...] = (
    (("risk", "problem", "threat", "concern"), "Multiple analysts identified potential risks and challenges"),
    (("opportunit", "advantage", "strength", "upside"), "There is broad agreement on positive opportunities and strengths"),
    (("recommend", "suggest", "advice", "advis"), "All parties proposed concrete actions"),
)

RECOMMENDATION_PATTERNS = (
    re.compile(r"recommend(?:ation)?s?\s*:\s*([^.!?\n]+)", re.IGNORECASE),
    re.compile(r"suggest(?:ion)?s?\s*:\s*([^.!?\n]+)", re.IGNORECASE),
    re.compile(r"\bshould\s+([^.!?\n]+)", re.IGNORECASE),
    re.compile(r"\bneed\s+to\s+([^.!?\n]+)", re.IGNORECASE),
)


class CrossValidator:
    """
    Usage:
        result = CrossValidator().validate(analyses, personas)
        result.common_points, result.disagreements, result.confidence_score
    """

    def __init__(
        self,
        classifier: ArchetypeClassifier | None = None,
        sentiment: SentimentScorer | None = None,
    ):
        self._classifier = classifier or ArchetypeClassifier()
        self._sentiment = sentiment or SentimentScorer()

    def validate(
        self,
        analyses: list[PersonaAnalysis],
        personas: list[Persona] | None = None,
    ) -> CrossValidationResult:
        if len(analyses) < 2:
            return CrossValidationResult(
                common_points=[SINGLE_ANALYSIS_POINT],
                disagreements=[],
                confidence_score=SINGLE_ANALYSIS_CONFIDENCE,
                recommendations=[SINGLE_ANALYSIS_RECOMMENDATION],
            )

        common = self.find_common_points(analyses)
        disagreements = self.find_disagreements(analyses, personas or [])
        recommendations = self.rank_recommendations(analyses)
        confidence = self.confidence(analyses, common, disagreements)

        logger.debug(
            f"[CrossValidator] {len(common)} common, {len(disagreements)} disagreements, "
            f"confidence={confidence:.2f}"
        )
        return CrossValidationResult(
            common_points=common,
            disagreements=disagreements,
            confidence_score=confidence,
            recommendations=recommendations,
        )

    # -------------------------------------------------------------------------
    # Agreement
    # -------------------------------------------------------------------------

    def find_common_points(self, analyses: list[PersonaAnalysis]) -> list[str]:
        counts: Counter[str] = Counter()
        for analysis in analyses:
            counts.update(set(tokenize(analysis.analysis)))

        majority = math.ceil(len(analyses) / 2)
        shared = [word for word, count in counts.items() if count >= majority]

        points = [
            sentence
            for prefixes, sentence in COMMON_POINT_THEMES
            if any(word.startswith(prefixes) for word in shared)
        ]
        return points or [GENERIC_COMMON_POINT]

    # -------------------------------------------------------------------------
    # Disagreement
    # -------------------------------------------------------------------------

    def find_disagreements(
        self, analyses: list[PersonaAnalysis], personas: list[Persona]
    ) -> list[str]:
        disagreements = []

        polarities = {self._sentiment.polarity(a.analysis) for a in analyses}
        if "positive" in polarities and "negative" in polarities:
            disagreements.append(
                "Analysts diverge in outlook: some are optimistic while others are cautious"
            )

        all_recommendations = [r for a in analyses for r in self.extract_recommendations(a.analysis)]
        unique = {r.lower() for r in all_recommendations}
        if len(unique) > len(all_recommendations) * DIVERGENT_RECOMMENDATION_RATIO:
            disagreements.append("Recommended directions differ between analysts")

        participating = {a.persona_id for a in analyses}
        coverage = self._classifier.coverage([p for p in personas if p.id in participating])
        if ARCHETYPE_CRITICAL in coverage.archetypes and ARCHETYPE_SUPPORTIVE in coverage.archetypes:
            disagreements.append(
                "Critical and supportive perspectives are in tension; "
                "balance the identified risks against the opportunities"
            )

        return disagreements

    # -------------------------------------------------------------------------
    # Recommendations
    # -------------------------------------------------------------------------

    @staticmethod
    def extract_recommendations(text: str) -> list[str]:
        found = []
        for pattern in RECOMMENDATION_PATTERNS:
            for match in pattern.finditer(text):
                candidate = match.group(1).strip()
                if len(candidate) > MIN_RECOMMENDATION_LENGTH:
                    found.append(candidate)
        return found

    def rank_recommendations(self, analyses: list[PersonaAnalysis]) -> list[str]:
        counts: Counter[str] = Counter()
        first_seen: dict[str, str] = {}
        for analysis in analyses:
            for rec in self.extract_recommendations(analysis.analysis):
                key = rec[:RECOMMENDATION_KEY_LENGTH].lower()
                counts[key] += 1
                first_seen.setdefault(key, rec)

        if not counts:
            return [GENERIC_RECOMMENDATION]

        ranked = sorted(counts.items(), key=lambda kv: kv[1], reverse=True)
        return [
            first_seen[key] + (AGREEMENT_SUFFIX if count > 1 else "")
            for key, count in ranked[:MAX_RECOMMENDATIONS]
        ]

    # -------------------------------------------------------------------------
    # Confidence
    # -------------------------------------------------------------------------

    @staticmethod
    def confidence(
        analyses: list[PersonaAnalysis],
        common_points: list[str],
        disagreements: list[str],
    ) -> float:
        score = 0.5
        score += min(0.3, 0.1 * len(common_points))
        score -= min(0.2, 0.05 * len(disagreements))
        score += min(0.2, 0.05 * (len(analyses) - 1))

        mean_persona = sum(a.confidence for a in analyses) / len(analyses)
        blended = (score + mean_persona) / 2
        return max(MIN_CONFIDENCE, min(MAX_CONFIDENCE, blended))
