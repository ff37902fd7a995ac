"""
Keyword-table classifiers used by selection and cross-validation.

All heuristics here are lexical. The tables are versioned data: bump
KEYWORD_TABLE_VERSION whenever a table changes so selection results can be
traced back to the tables that produced them.

  QueryAnalyzer        -- query type, category, needs flags, keywords, complexity
  ArchetypeClassifier  -- critical / creative / analytical / supportive
  SentimentScorer      -- lexicon polarity normalized by word count
"""

import re
from dataclasses import dataclass, field

from ..personas.models import Persona

KEYWORD_TABLE_VERSION = "2024.1"

ARCHETYPE_CRITICAL = "critical"
ARCHETYPE_CREATIVE = "creative"
ARCHETYPE_ANALYTICAL = "analytical"
ARCHETYPE_SUPPORTIVE = "supportive"
ARCHETYPES = (ARCHETYPE_CRITICAL, ARCHETYPE_CREATIVE, ARCHETYPE_ANALYTICAL, ARCHETYPE_SUPPORTIVE)

# =============================================================================
# TABLES
# =============================================================================

# Checked in order; first match wins.
QUERY_TYPE_PATTERNS: tuple[tuple[str, str], ...] = (
    ("analysis", r"analy|evaluat|assess|research|investigat"),
    ("creative", r"idea|creativ|innovat|design|brainstorm"),
    ("problem", r"problem|bug|error|failure|fault|broken"),
    ("strategy", r"strateg|plan|proposal|roadmap|recommend"),
    ("review", r"review|critique|inspect|check|audit"),
)

QUERY_CATEGORY_PATTERNS: tuple[tuple[str, str], ...] = (
    ("technical", r"tech|code|program|develop|software|architecture"),
    ("business", r"business|market|sales|revenue|pricing"),
    ("product", r"product|feature|user|launch"),
    ("design", r"design|\bui\b|\bux\b|interface"),
)

NEEDS_CRITICAL_PATTERN = r"risk|problem|weakness|drawback|shortcoming|challenge|difficult|flaw"
NEEDS_CREATIVE_PATTERN = r"innovat|creativ|idea|inspiration|breakthrough|novel"
NEEDS_ANALYTICAL_PATTERN = r"analy|data|statistic|logic|reason|conclusion|evaluat"

# Keywords that make a persona relevant to a query type (matched in name/goal/rule).
TYPE_KEYWORDS: dict[str, tuple[str, ...]] = {
    "analysis": ("analy", "reflect", "logic", "research"),
    "creative": ("creativ", "innovat", "imagin", "inspir"),
    "problem": ("problem", "solv", "scrutin", "critic"),
    "strategy": ("strateg", "plan", "framework", "structur"),
    "review": ("review", "scrutin", "challeng", "critic"),
}

ARCHETYPE_KEYWORDS: dict[str, tuple[str, ...]] = {
    ARCHETYPE_CRITICAL: ("critic", "critique", "question", "challeng", "scrutin", "grumpy", "strict", "skeptic"),
    ARCHETYPE_CREATIVE: ("creativ", "innovat", "imagin", "inspir", "artistic", "design"),
    ARCHETYPE_ANALYTICAL: ("analy", "logic", "rational", "data", "research", "reflect"),
    ARCHETYPE_SUPPORTIVE: ("encourag", "support", "positive", "cheer", "strength", "fan"),
}

COMPLEXITY_PATTERN = r"multiple|various|comprehensive|thorough|in-depth|detailed|complex"
COMPOUND_PATTERN = r"analy\w*.+\band\b.+|\bboth\b.+\band\b|not only.+but"
INNOVATION_PATTERN = r"innovat|creativ|idea|inspiration|design|breakthrough|novel|unique"

POSITIVE_WORDS = (
    "good", "great", "excellent", "strong", "opportunit", "advantage", "benefit",
    "success", "promising", "positive", "strength", "growth", "win", "upside",
)
NEGATIVE_WORDS = (
    "bad", "poor", "risk", "problem", "weak", "threat", "fail", "concern",
    "danger", "difficult", "negative", "flaw", "loss", "downside",
)

STOPWORDS = frozenset(
    "a an the and or but if then of to in on at by for with from as is are was were be "
    "been being this that these those it its i you he she we they me my your our their "
    "do does did doing have has had should would could can will shall may might must "
    "what which who whom how why when where about into than so not no yes all any some "
    "please now just also very more most there here".split()
)

_TOKEN_RE = re.compile(r"[a-z0-9][a-z0-9'-]*")
_SENTENCE_SPLIT_RE = re.compile(r"[.!?;:]+")

MAX_QUERY_KEYWORDS = 10


# =============================================================================
# QUERY ANALYSIS
# =============================================================================


def tokenize(text: str) -> list[str]:
    """Lowercase word tokens, stopwords and single characters removed."""
    return [
        t.strip("'-")
        for t in _TOKEN_RE.findall(text.lower())
        if len(t.strip("'-")) > 1 and t not in STOPWORDS
    ]


def extract_keywords(text: str, limit: int = MAX_QUERY_KEYWORDS) -> list[str]:
    """First ``limit`` distinct non-stopword tokens, in order of appearance."""
    seen: list[str] = []
    for token in tokenize(text):
        if token not in seen:
            seen.append(token)
        if len(seen) >= limit:
            break
    return seen


@dataclass
class QueryAnalysis:
    type: str
    category: str | None
    keywords: list[str] = field(default_factory=list)
    needs_critical: bool = False
    needs_creative: bool = False
    needs_analytical: bool = False
    is_complex: bool = False
    is_innovation: bool = False
    complexity: float = 0.5


class QueryAnalyzer:
    """
    Lexical query classification.

    Usage:
        analysis = QueryAnalyzer().analyze("Evaluate risk of launching this product now")
        analysis.type            # "analysis"
        analysis.needs_critical  # True
    """

    def analyze(self, query: str) -> QueryAnalysis:
        text = query.lower()
        return QueryAnalysis(
            type=self._first_match(QUERY_TYPE_PATTERNS, text) or "general",
            category=self._first_match(QUERY_CATEGORY_PATTERNS, text),
            keywords=extract_keywords(query),
            needs_critical=bool(re.search(NEEDS_CRITICAL_PATTERN, text)),
            needs_creative=bool(re.search(NEEDS_CREATIVE_PATTERN, text)),
            needs_analytical=bool(re.search(NEEDS_ANALYTICAL_PATTERN, text)),
            is_complex=self.is_complex(query),
            is_innovation=bool(re.search(INNOVATION_PATTERN, text)),
            complexity=self.complexity(query),
        )

    @staticmethod
    def _first_match(table: tuple[tuple[str, str], ...], text: str) -> str | None:
        for label, pattern in table:
            if re.search(pattern, text):
                return label
        return None

    @staticmethod
    def _structural_indicators(query: str) -> int:
        text = query.lower()
        sentences = [s for s in _SENTENCE_SPLIT_RE.split(query) if s.strip()]
        return sum((
            bool(re.search(COMPLEXITY_PATTERN, text)),
            len(sentences) > 2,
            bool(re.search(COMPOUND_PATTERN, text)),
        ))

    def is_complex(self, query: str) -> bool:
        """At least two indicators among length and structure."""
        return (len(query) > 100) + self._structural_indicators(query) >= 2

    def complexity(self, query: str) -> float:
        """0.5 for short queries, 0.8 beyond 100 chars, +0.05 per structural indicator."""
        score = 0.8 if len(query) > 100 else 0.5
        score += 0.05 * self._structural_indicators(query)
        return min(score, 1.0)


# =============================================================================
# ARCHETYPES
# =============================================================================


class ArchetypeClassifier:
    """Maps a persona to the archetypes its name, goal and rule suggest."""

    def classify(self, persona: Persona) -> frozenset[str]:
        text = f"{persona.name} {persona.goal} {persona.rule}".lower()
        found = {
            archetype
            for archetype in (ARCHETYPE_CRITICAL, ARCHETYPE_CREATIVE, ARCHETYPE_ANALYTICAL)
            if any(k in text for k in ARCHETYPE_KEYWORDS[archetype])
        }
        if self._is_supportive(persona, text):
            found.add(ARCHETYPE_SUPPORTIVE)
        return frozenset(found)

    @staticmethod
    def _is_supportive(persona: Persona, text: str) -> bool:
        if persona.category.lower() == ARCHETYPE_SUPPORTIVE:
            return True
        tags = " ".join(persona.tags).lower()
        keywords = ARCHETYPE_KEYWORDS[ARCHETYPE_SUPPORTIVE]
        return any(k in tags for k in keywords) or any(k in text for k in keywords)

    def has(self, persona: Persona, archetype: str) -> bool:
        return archetype in self.classify(persona)

    def coverage(self, personas: list[Persona]) -> "ArchetypeCoverage":
        covered: set[str] = set()
        for persona in personas:
            covered |= self.classify(persona)
        return ArchetypeCoverage(archetypes=frozenset(covered), persona_count=len(personas))


@dataclass(frozen=True)
class ArchetypeCoverage:
    archetypes: frozenset[str]
    persona_count: int

    @property
    def has_critical(self) -> bool:
        return ARCHETYPE_CRITICAL in self.archetypes

    @property
    def has_creative(self) -> bool:
        return ARCHETYPE_CREATIVE in self.archetypes

    @property
    def is_complementary(self) -> bool:
        """More than one persona and at least two distinct archetypes."""
        return self.persona_count > 1 and len(self.archetypes) >= 2


# =============================================================================
# SENTIMENT
# =============================================================================


POSITIVE_THRESHOLD = 0.1
NEGATIVE_THRESHOLD = -0.1


class SentimentScorer:
    """(positive hits - negative hits) / word count."""

    def score(self, text: str) -> float:
        words = text.lower().split()
        if not words:
            return 0.0
        positive = sum(1 for w in words if any(p in w for p in POSITIVE_WORDS))
        negative = sum(1 for w in words if any(n in w for n in NEGATIVE_WORDS))
        return (positive - negative) / len(words)

    def polarity(self, text: str) -> str:
        value = self.score(text)
        if value > POSITIVE_THRESHOLD:
            return "positive"
        if value < NEGATIVE_THRESHOLD:
            return "negative"
        return "neutral"
