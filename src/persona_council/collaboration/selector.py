"""
PersonaSelector -- picks a small, complementary team of personas for a query.

Two stages:
  1. Relevance: every persona gets a base score from query type, keywords,
     category and the archetypes the query needs.
  2. Composition: greedy pass by descending score. The top scorer anchors the
     team; each further candidate earns diversity and complementarity bonuses
     and is admitted when the total clears ADMIT_THRESHOLD (or the team is
     still below the minimum size).

The result is never empty: with no positive scores, the first available
persona is returned.

Usage:
    selector = PersonaSelector()
    result = selector.select("Evaluate risk of launching this product now", personas)
    [p.name for p in result.personas]  # ["Skeptic", "Cheerleader"]
"""

import logging
from dataclasses import dataclass, field

from ..personas.models import Persona
from .classifier import (
    ARCHETYPE_ANALYTICAL,
    ARCHETYPE_CREATIVE,
    ARCHETYPE_CRITICAL,
    ARCHETYPE_SUPPORTIVE,
    ARCHETYPES,
    TYPE_KEYWORDS,
    ArchetypeClassifier,
    QueryAnalysis,
    QueryAnalyzer,
)
from .models import DEFAULT_MAX_PERSONAS, DEFAULT_MIN_PERSONAS

logger = logging.getLogger(__name__)

ADMIT_THRESHOLD = 3.0

# Relevance weights
TYPE_KEYWORD_WEIGHT = 2.0
GOAL_KEYWORD_WEIGHT = 3.0
DESCRIPTION_KEYWORD_WEIGHT = 2.0
TAG_KEYWORD_WEIGHT = 1.0
RULE_KEYWORD_WEIGHT = 1.0
CATEGORY_MATCH_WEIGHT = 5.0
NEEDS_MATCH_WEIGHT = 4.0

# Composition bonuses
NEW_CATEGORY_BONUS = 3.0
NEW_TAG_BONUS = 0.5
NEW_ARCHETYPE_BONUS = 2.0
CRITICAL_SUPPORTIVE_PAIR_BONUS = 2.0
ANALYTICAL_ON_COMPLEX_BONUS = 1.0
CREATIVE_ON_INNOVATION_BONUS = 1.0


@dataclass
class SelectionResult:
    """Selected personas plus the scores that led there."""

    personas: list[Persona] = field(default_factory=list)
    scores: dict[str, float] = field(default_factory=dict)
    query_analysis: QueryAnalysis | None = None
    fallback: bool = False


class PersonaSelector:
    def __init__(
        self,
        analyzer: QueryAnalyzer | None = None,
        classifier: ArchetypeClassifier | None = None,
    ):
        self._analyzer = analyzer or QueryAnalyzer()
        self._classifier = classifier or ArchetypeClassifier()

    def select(
        self,
        query: str,
        personas: list[Persona],
        min_personas: int = DEFAULT_MIN_PERSONAS,
        max_personas: int = DEFAULT_MAX_PERSONAS,
    ) -> SelectionResult:
        if not personas:
            return SelectionResult()

        analysis = self._analyzer.analyze(query)
        scores = {p.id: self.score(p, analysis) for p in personas}
        ranked = sorted(personas, key=lambda p: scores[p.id], reverse=True)

        if scores[ranked[0].id] <= 0:
            logger.info("[PersonaSelector] No persona matched, using first available")
            return SelectionResult(
                personas=[personas[0]],
                scores=scores,
                query_analysis=analysis,
                fallback=True,
            )

        selected = self._compose(ranked, scores, analysis, min_personas, max_personas)
        logger.debug(
            f"[PersonaSelector] Selected {[p.name for p in selected]} "
            f"(type={analysis.type}, category={analysis.category})"
        )
        return SelectionResult(personas=selected, scores=scores, query_analysis=analysis)

    # -------------------------------------------------------------------------
    # Relevance
    # -------------------------------------------------------------------------

    def score(self, persona: Persona, analysis: QueryAnalysis) -> float:
        name = persona.name.lower()
        goal = persona.goal.lower()
        rule = persona.rule.lower()
        description = persona.description.lower()
        tags = [t.lower() for t in persona.tags]

        score = 0.0
        for keyword in TYPE_KEYWORDS.get(analysis.type, ()):
            if keyword in name or keyword in goal or keyword in rule:
                score += TYPE_KEYWORD_WEIGHT

        for keyword in analysis.keywords:
            if keyword in goal:
                score += GOAL_KEYWORD_WEIGHT
            if keyword in description:
                score += DESCRIPTION_KEYWORD_WEIGHT
            if any(keyword in tag for tag in tags):
                score += TAG_KEYWORD_WEIGHT
            if keyword in rule:
                score += RULE_KEYWORD_WEIGHT

        if analysis.category and analysis.category == persona.category.lower():
            score += CATEGORY_MATCH_WEIGHT

        archetypes = self._classifier.classify(persona)
        needs = (
            (analysis.needs_critical, ARCHETYPE_CRITICAL),
            (analysis.needs_creative, ARCHETYPE_CREATIVE),
            (analysis.needs_analytical, ARCHETYPE_ANALYTICAL),
        )
        for needed, archetype in needs:
            if needed and archetype in archetypes:
                score += NEEDS_MATCH_WEIGHT

        return score

    # -------------------------------------------------------------------------
    # Composition
    # -------------------------------------------------------------------------

    def _compose(
        self,
        ranked: list[Persona],
        scores: dict[str, float],
        analysis: QueryAnalysis,
        min_personas: int,
        max_personas: int,
    ) -> list[Persona]:
        selected = [ranked[0]]

        for candidate in ranked[1:]:
            if len(selected) >= max_personas:
                break
            total = (
                scores[candidate.id]
                + self._diversity_bonus(candidate, selected)
                + self._complementary_bonus(candidate, selected, analysis)
            )
            if total >= ADMIT_THRESHOLD or len(selected) < min_personas:
                selected.append(candidate)

        return selected

    def _diversity_bonus(self, candidate: Persona, selected: list[Persona]) -> float:
        bonus = 0.0
        categories = {p.category for p in selected}
        if candidate.category and candidate.category not in categories:
            bonus += NEW_CATEGORY_BONUS

        tags = {t for p in selected for t in p.tags}
        bonus += NEW_TAG_BONUS * sum(1 for t in candidate.tags if t not in tags)

        covered = self._classifier.coverage(selected).archetypes
        candidate_types = self._classifier.classify(candidate)
        bonus += NEW_ARCHETYPE_BONUS * sum(
            1 for a in ARCHETYPES if a in candidate_types and a not in covered
        )
        return bonus

    def _complementary_bonus(
        self, candidate: Persona, selected: list[Persona], analysis: QueryAnalysis
    ) -> float:
        covered = self._classifier.coverage(selected).archetypes
        candidate_types = self._classifier.classify(candidate)

        bonus = 0.0
        if ARCHETYPE_CRITICAL in covered and ARCHETYPE_SUPPORTIVE in candidate_types:
            bonus += CRITICAL_SUPPORTIVE_PAIR_BONUS
        if ARCHETYPE_SUPPORTIVE in covered and ARCHETYPE_CRITICAL in candidate_types:
            bonus += CRITICAL_SUPPORTIVE_PAIR_BONUS
        if analysis.is_complex and ARCHETYPE_ANALYTICAL in candidate_types:
            bonus += ANALYTICAL_ON_COMPLEX_BONUS
        if analysis.is_innovation and ARCHETYPE_CREATIVE in candidate_types:
            bonus += CREATIVE_ON_INNOVATION_BONUS
        return bonus
