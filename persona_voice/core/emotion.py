"""
Emotion Classifier Module

Keyword-based emotion detection for user messages. Each emotion owns a fixed
keyword list; a message is scored by counting whole-word keyword matches.

Scoring rules:
- counts are per emotion, summed over its keywords (word-boundary regex)
- the emotion with the highest count wins, ties go to the first declared
- confidence is the winning count divided by the total of all counts
- no keyword match at all yields "neutral" with confidence 0.0

The classifier holds no state between calls.
"""

import re
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Pattern, Tuple

NEUTRAL = "neutral"


@dataclass
class EmotionPattern:
    """Keyword list for one emotion."""
    name: str
    keywords: List[str]


# Declaration order matters: it breaks ties.
DEFAULT_EMOTION_PATTERNS = [
    EmotionPattern(
        name="anxious",
        keywords=[
            "anxious", "anxiety", "worried", "worry", "worrying", "nervous",
            "scared", "afraid", "fear", "fearful", "panic", "stressed",
            "overwhelmed", "uneasy", "restless",
        ],
    ),
    EmotionPattern(
        name="sad",
        keywords=[
            "sad", "sadness", "depressed", "lonely", "grief", "grieving",
            "heartbroken", "crying", "cry", "tears", "miserable", "hopeless",
            "empty", "mourning", "hurting",
        ],
    ),
    EmotionPattern(
        name="angry",
        keywords=[
            "angry", "anger", "mad", "furious", "frustrated", "frustrating",
            "annoyed", "upset", "resent", "resentment", "bitter", "hate",
            "rage", "unfair",
        ],
    ),
    EmotionPattern(
        name="joyful",
        keywords=[
            "happy", "joy", "joyful", "glad", "excited", "grateful",
            "thankful", "blessed", "wonderful", "amazing", "celebrate",
            "delighted", "rejoice",
        ],
    ),
    EmotionPattern(
        name="confused",
        keywords=[
            "confused", "confusing", "unsure", "uncertain", "puzzled",
            "unclear", "doubt", "doubts", "don't understand",
            "do not understand", "don't know", "makes no sense",
        ],
    ),
    EmotionPattern(
        name="hopeful",
        keywords=[
            "hope", "hopeful", "hoping", "optimistic", "looking forward",
            "faith", "trust", "believe", "praying", "pray", "encouraged",
        ],
    ),
]

EMOTIONS: Tuple[str, ...] = tuple(p.name for p in DEFAULT_EMOTION_PATTERNS) + (NEUTRAL,)
GUIDED_EMOTIONS: Tuple[str, ...] = tuple(p.name for p in DEFAULT_EMOTION_PATTERNS)


@dataclass
class EmotionResult:
    """Outcome of classifying one piece of text."""
    primary_emotion: str = NEUTRAL
    confidence: float = 0.0
    counts: Dict[str, int] = field(default_factory=dict)

    @property
    def is_neutral(self) -> bool:
        return self.primary_emotion == NEUTRAL

    @property
    def total(self) -> int:
        return sum(self.counts.values())


class EmotionClassifier:
    """
    Stateless keyword emotion classifier.

    Usage:
        classifier = EmotionClassifier()
        result = classifier.classify("I'm so anxious and scared about this")
        result.primary_emotion  # "anxious"
    """

    def __init__(self, patterns: Optional[List[EmotionPattern]] = None):
        self._patterns = patterns or DEFAULT_EMOTION_PATTERNS
        self._compiled: List[Tuple[str, List[Pattern[str]]]] = [
            (
                p.name,
                [re.compile(rf"\b{re.escape(kw.lower())}\b") for kw in p.keywords],
            )
            for p in self._patterns
        ]

    def count(self, text: str) -> Dict[str, int]:
        """Count keyword hits per emotion, in declaration order."""
        lowered = (text or "").lower()
        return {
            name: sum(len(regex.findall(lowered)) for regex in regexes)
            for name, regexes in self._compiled
        }

    def classify(self, text: str) -> EmotionResult:
        """Classify text into a primary emotion with a confidence score."""
        counts = self.count(text)
        total = sum(counts.values())
        if total == 0:
            return EmotionResult(primary_emotion=NEUTRAL, confidence=0.0, counts=counts)

        primary = NEUTRAL
        best = 0
        for name, hits in counts.items():
            # Strictly greater keeps the first declared emotion on ties
            if hits > best:
                primary, best = name, hits

        return EmotionResult(
            primary_emotion=primary,
            confidence=best / total,
            counts=counts,
        )

    @property
    def emotions(self) -> List[str]:
        """Emotion names this classifier can return (excluding neutral)."""
        return [p.name for p in self._patterns]
