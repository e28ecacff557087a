"""Recurring-payment detection and pattern matching for subscriptions."""

import logging
import re
from collections import Counter, defaultdict
from datetime import date

from subtrack.config import settings
from subtrack.currency import resolve_currency, to_cents
from subtrack.db.models import (
    DetectedPattern,
    RecurringPattern,
    Subscription,
    SubscriptionCandidate,
    SubscriptionMatch,
    SubscriptionPattern,
    Transaction,
)
from subtrack.db.repository import Repository
from subtrack.matching import (
    common_prefix,
    extract_core_words,
    longest_common_substring,
    mean,
    normalize_description,
    population_variance,
    string_similarity,
)
from subtrack.periods import add_months

logger = logging.getLogger(__name__)

# (frequency, expected interval days, tolerance, confidence floor, variance scale)
FREQUENCY_BANDS = (
    ("monthly", 30, 7, 0.5, 100),
    ("quarterly", 91, 14, 0.4, 200),
    ("annually", 365, 30, 0.3, 500),
)

PATTERN_TYPE_WEIGHTS = {
    "exact": 1.0,
    "contains": 0.9,
    "starts_with": 0.8,
    "regex": 0.85,
}

_CARD_PREFIX = re.compile(r"^(VISA|MASTERCARD|DEBIT|CREDIT)\s*", re.IGNORECASE)
_COMPANY_SUFFIX = re.compile(r"\s*\b(INC|LLC|LTD|AS|ASA)\.?$", re.IGNORECASE)
_REFERENCE_SUFFIX = re.compile(r"\s*\d{4}\s*$")
_WORD_START = re.compile(r"\b\w")


def classify_frequency(intervals: list[int]) -> tuple[str, float] | None:
    """Map day intervals to (frequency, base confidence), or None when irregular."""
    if not intervals:
        return None
    avg = mean(intervals)
    variance = population_variance(intervals)
    for frequency, expected, tolerance, floor, scale in FREQUENCY_BANDS:
        if abs(avg - expected) <= tolerance:
            return frequency, max(floor, 1 - variance / scale)
    return None


def generate_subscription_name(description: str) -> str:
    name = _CARD_PREFIX.sub("", description)
    name = _COMPANY_SUFFIX.sub("", name)
    name = _REFERENCE_SUFFIX.sub("", name)
    name = name.strip().replace(".", " ")
    name = " ".join(name.split())
    if not name:
        return "Unknown Subscription"
    return _WORD_START.sub(lambda m: m.group().upper(), name.lower())


def generate_patterns(description: str) -> list[DetectedPattern]:
    patterns = [DetectedPattern(pattern=description, pattern_type="exact", confidence=1.0)]

    core = extract_core_words(description)
    if core:
        patterns.append(DetectedPattern(pattern=" ".join(core), pattern_type="contains", confidence=0.8))

    if len(description) > 3:
        first_words = " ".join(description.split(" ")[:2])
        patterns.append(DetectedPattern(pattern=first_words, pattern_type="starts_with", confidence=0.7))

    return patterns


def extract_patterns(descriptions: list[str]) -> list[DetectedPattern]:
    if not descriptions:
        return []
    if len(set(descriptions)) == 1:
        return generate_patterns(descriptions[0])

    patterns = []
    substring = longest_common_substring(descriptions).strip()
    if len(substring) > 3:
        patterns.append(DetectedPattern(pattern=substring, pattern_type="contains", confidence=0.8))
    prefix = common_prefix(descriptions)
    if len(prefix) > 3:
        patterns.append(DetectedPattern(pattern=prefix.strip(), pattern_type="starts_with", confidence=0.7))
    return patterns


def pattern_matches(description: str, pattern: SubscriptionPattern) -> bool:
    text = description.lower()
    needle = pattern.pattern.lower()
    if pattern.pattern_type == "exact":
        return text == needle
    if pattern.pattern_type == "contains":
        return needle in text
    if pattern.pattern_type == "starts_with":
        return text.startswith(needle)
    if pattern.pattern_type == "regex":
        try:
            return re.search(pattern.pattern, description, re.IGNORECASE) is not None
        except re.error:
            logger.debug("Invalid regex pattern %r ignored", pattern.pattern)
            return False
    return False


def calculate_pattern_match(description: str, pattern: SubscriptionPattern) -> float:
    if not pattern_matches(description, pattern):
        return 0.0
    return PATTERN_TYPE_WEIGHTS.get(pattern.pattern_type, 0.0) * pattern.confidence_score


def ambiguous_matches(matches: list[SubscriptionMatch]) -> dict[int, list[SubscriptionMatch]]:
    """Transactions matched by more than one subscription, keyed by transaction id."""
    by_transaction: dict[int, list[SubscriptionMatch]] = defaultdict(list)
    for match in matches:
        by_transaction[match.transaction_id].append(match)
    return {
        tx_id: group
        for tx_id, group in by_transaction.items()
        if len({m.subscription_id for m in group}) > 1
    }


def _most_common_category(transactions: list[Transaction]) -> int | None:
    counts = Counter(t.category_id for t in transactions if t.category_id is not None)
    if not counts:
        return None
    # ties resolve to the first-seen category
    return counts.most_common(1)[0][0]


def _is_duplicate(candidate: SubscriptionCandidate, existing: list[Subscription]) -> bool:
    for sub in existing:
        similarity = string_similarity(candidate.name.lower(), sub.name.lower())
        if similarity > 0.6 and abs(candidate.amount - sub.amount) <= 1.0:
            return True
    return False


def _is_stale(candidate: SubscriptionCandidate, today: date) -> bool:
    if candidate.billing_frequency != "monthly":
        return False
    latest = max(t.date for t in candidate.matching_transactions)
    return latest < add_months(today, -settings.stale_candidate_months)


class SubscriptionPatternEngine:
    def __init__(self, repository: Repository):
        self.repository = repository

    def analyze_recurring_patterns(self, transactions: list[Transaction]) -> list[RecurringPattern]:
        groups: dict[str, list[Transaction]] = defaultdict(list)
        for t in transactions:
            if t.type != "expense":
                continue
            groups[f"{normalize_description(t.description)}:{to_cents(t.amount)}"].append(t)

        patterns = []
        for group in groups.values():
            if len(group) < 2:
                continue
            group = sorted(group, key=lambda t: t.date)
            intervals = [(b.date - a.date).days for a, b in zip(group, group[1:])]
            classified = classify_frequency(intervals)
            if classified is None:
                continue
            frequency, confidence = classified
            confidence *= min(1.0, 0.5 + 0.1 * len(group))

            first = group[0]
            patterns.append(
                RecurringPattern(
                    description=first.description,
                    amount=abs(first.amount),
                    currency=resolve_currency(first.currency),
                    frequency=frequency,
                    confidence=confidence,
                    transactions=group,
                    category_id=_most_common_category(group),
                )
            )
        return patterns

    async def detect_subscriptions(self, transactions: list[Transaction]) -> list[SubscriptionCandidate]:
        candidates = []
        for pattern in self.analyze_recurring_patterns(transactions):
            if pattern.confidence < settings.detection_min_confidence:
                continue
            candidates.append(
                SubscriptionCandidate(
                    name=generate_subscription_name(pattern.description),
                    amount=pattern.amount,
                    currency=pattern.currency,
                    billing_frequency=pattern.frequency,
                    confidence=pattern.confidence,
                    matching_transactions=pattern.transactions,
                    detected_patterns=generate_patterns(pattern.description),
                    reason=(
                        f"Detected {pattern.frequency} recurring payment of "
                        f"{pattern.amount:.2f} {pattern.currency}"
                    ),
                    category_id=pattern.category_id,
                )
            )

        existing = await self.repository.find_active_subscriptions()
        today = date.today()
        kept = [c for c in candidates if not _is_duplicate(c, existing) and not _is_stale(c, today)]
        kept.sort(key=lambda c: c.confidence, reverse=True)

        logger.info(
            "Detected %d subscription candidates from %d transactions",
            len(kept),
            len(transactions),
        )
        return kept

    async def match_existing_subscriptions(self, transactions: list[Transaction]) -> list[SubscriptionMatch]:
        matches = []
        for subscription in await self.repository.find_active_subscriptions():
            patterns = await self.repository.find_patterns_by_subscription(subscription.id)
            for t in transactions:
                if t.is_subscription:
                    continue
                best_score, best_pattern = 0.0, None
                for pattern in patterns:
                    score = calculate_pattern_match(t.description, pattern)
                    if score > best_score:
                        best_score, best_pattern = score, pattern
                if best_pattern is not None and best_score >= settings.match_min_confidence:
                    matches.append(
                        SubscriptionMatch(
                            transaction_id=t.id,
                            subscription_id=subscription.id,
                            confidence=best_score,
                            matched_pattern=best_pattern,
                        )
                    )
        matches.sort(key=lambda m: m.confidence, reverse=True)
        return matches

    async def create_patterns_for_subscription(
        self, subscription_id: int, transactions: list[Transaction]
    ) -> list[SubscriptionPattern]:
        created = []
        for detected in extract_patterns([t.description for t in transactions]):
            created.append(
                await self.repository.create_subscription_pattern(
                    SubscriptionPattern(
                        id=None,
                        subscription_id=subscription_id,
                        pattern=detected.pattern,
                        pattern_type=detected.pattern_type,
                        confidence_score=detected.confidence,
                        created_by="system",
                    )
                )
            )
        return created

    async def update_pattern_confidence(self, pattern_id: int, was_correct: bool) -> SubscriptionPattern | None:
        return await self.repository.update_pattern_usage(pattern_id, was_correct)
