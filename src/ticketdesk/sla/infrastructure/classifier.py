"""
Keyword Classifier
==================

Rule-based ticket classification used when a ticket arrives without a
category or priority.

Category is the one whose keyword list has the largest share of matches
in the text (``inquiry`` when nothing matches). Priority is taken from the
first priority band with a matching keyword, and angry-guest wording
forces ``high``.
"""

import re
from typing import Dict, List, Tuple

from ticketdesk.config import Priority, TicketCategory
from ticketdesk.sla.application import Classification, IClassifier


CATEGORY_KEYWORDS: Dict[str, Tuple[str, ...]] = {
    TicketCategory.HOUSEKEEPING: (
        "room", "clean", "dirty", "towel", "bed", "bathroom", "shower", "toilet",
        "housekeeping", "maid", "vacuum", "dust", "linen", "pillow", "blanket",
    ),
    TicketCategory.FOOD_BEVERAGE: (
        "food", "restaurant", "meal", "breakfast", "dinner", "lunch", "drink",
        "kitchen", "chef", "waiter", "service", "taste", "cold", "hot", "menu",
    ),
    TicketCategory.FRONT_DESK: (
        "check-in", "check-out", "reception", "desk", "key", "card", "booking",
        "reservation", "bill", "invoice", "payment", "front desk", "lobby",
    ),
    TicketCategory.MAINTENANCE: (
        "broken", "repair", "fix", "maintenance", "leak", "light", "ac",
        "air conditioning", "heating", "plumbing", "electrical", "elevator",
    ),
    TicketCategory.IT_SUPPORT: (
        "wifi", "internet", "tv", "television", "phone", "technology",
        "computer", "connection", "network", "password", "login",
    ),
}

# Checked in order; first band with a match wins
PRIORITY_KEYWORDS: List[Tuple[str, Tuple[str, ...]]] = [
    (Priority.CRITICAL, ("emergency", "urgent", "critical", "immediately", "asap")),
    (Priority.HIGH, ("important", "serious", "major", "significant", "priority")),
    (Priority.MEDIUM, ("moderate", "standard", "normal", "regular")),
    (Priority.LOW, ("minor", "small", "trivial", "when possible")),
]

ESCALATION_KEYWORDS: Tuple[str, ...] = (
    "terrible", "horrible", "worst", "awful", "disgusting", "unacceptable",
    "furious", "angry", "frustrated", "disappointed", "never again",
)


def _contains(text: str, keyword: str) -> bool:
    """Whole-word (or whole-phrase) match, allowing a plural ``s``."""
    return re.search(rf"\b{re.escape(keyword)}s?\b", text) is not None


class KeywordClassifier(IClassifier):
    """Classifies free text by keyword lists; no external calls."""

    def __init__(
        self,
        category_keywords: Dict[str, Tuple[str, ...]] = CATEGORY_KEYWORDS,
        priority_keywords: List[Tuple[str, Tuple[str, ...]]] = PRIORITY_KEYWORDS,
        escalation_keywords: Tuple[str, ...] = ESCALATION_KEYWORDS
    ):
        self._category_keywords = category_keywords
        self._priority_keywords = priority_keywords
        self._escalation_keywords = escalation_keywords

    def classify(self, text: str) -> Classification:
        lowered = text.lower()
        return Classification(
            category=self.categorize(lowered),
            priority=self.prioritize(lowered),
        )

    def categorize(self, text: str) -> str:
        text = text.lower()
        best, best_score = TicketCategory.INQUIRY, 0.0
        for category, keywords in self._category_keywords.items():
            matches = sum(1 for keyword in keywords if _contains(text, keyword))
            score = matches / len(keywords)
            if score > best_score:
                best, best_score = category, score
        return best

    def prioritize(self, text: str) -> str:
        text = text.lower()
        if any(_contains(text, keyword) for keyword in self._escalation_keywords):
            return Priority.HIGH

        for priority, keywords in self._priority_keywords:
            if any(_contains(text, keyword) for keyword in keywords):
                return priority
        return Priority.MEDIUM
