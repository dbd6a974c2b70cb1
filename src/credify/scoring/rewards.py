# src/credify/scoring/rewards.py
"""
Reward matching (merchant category -> card ranking).

This module implements a simple, explainable card score:
- Each reward line on a card is compared with the merchant's category.
- An exact category match contributes the full rate, a fuzzy (substring) match
  contributes `rate * fuzzy_match_weight`, and any other line paying at least
  `generic_bonus_min_rate` contributes a small "good card anyway" bonus.
- Contributions are summed per card; cards the user already holds get a flat bonus.

Rates are compared as cash fractions: a points line (`3x`) is valued at one cent per
point (0.03), so percent and points cards share one scale.

Important scope note:
- Fuzzy matching is a declarative table (`CATEGORY_MATCH_TERMS`) that can be tuned
  from settings (`scoring.category_match_terms`) without touching this code.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable, Literal, Mapping, Sequence

from credify.config.settings import ScoringSettings
from credify.domain.models import Card, Merchant, RewardRate

MatchKind = Literal["exact", "fuzzy", "generic"]

# Canonical merchant category -> substrings accepted in a card's reward label.
CATEGORY_MATCH_TERMS: dict[str, tuple[str, ...]] = {
    "dining": ("dining", "restaurant"),
    "groceries": ("grocer", "supermarket"),
    "gas": ("gas", "fuel", "transportation"),
    "travel": ("travel", "hotel", "flight"),
    "shopping": ("shopping", "retail"),
    "entertainment": ("entertainment", "streaming"),
    "personal_care": ("salon", "spa", "beauty"),
    "auto_services": ("auto", "car"),
    "healthcare": ("health", "medical", "pharmacy"),
}

EVERYDAY_REASON = "Great rewards on everyday spending"


@dataclass(frozen=True)
class RewardMatch:
    """One reward line's contribution to a card score."""

    reward: RewardRate
    kind: MatchKind
    contribution: float


@dataclass(frozen=True)
class CardScore:
    """A ranked card plus the lines that produced its score."""

    card: Card
    score: float
    held: bool = False
    matches: list[RewardMatch] = field(default_factory=list)


def _match_terms(settings: ScoringSettings) -> Mapping[str, Sequence[str]]:
    return settings.category_match_terms or CATEGORY_MATCH_TERMS


def classify_reward(
    category: str, reward: RewardRate, match_terms: Mapping[str, Sequence[str]] = CATEGORY_MATCH_TERMS
) -> Literal["exact", "fuzzy"] | None:
    """Classify how a reward line relates to an (already lower-cased) merchant category."""
    reward_category = reward.category.strip().lower()
    if reward_category == category:
        return "exact"
    if any(term in reward_category for term in match_terms.get(category, ())):
        return "fuzzy"
    return None


def score_card(
    category: str,
    card: Card,
    *,
    held: bool = False,
    settings: ScoringSettings | None = None,
) -> CardScore:
    settings = settings or ScoringSettings()
    terms = _match_terms(settings)

    score = 0.0
    matches: list[RewardMatch] = []
    for reward in card.reward_rates:
        rate = reward.effective_rate
        kind = classify_reward(category, reward, terms)
        if kind == "exact":
            contribution = rate
        elif kind == "fuzzy":
            contribution = rate * settings.fuzzy_match_weight
        elif rate >= settings.generic_bonus_min_rate:
            kind = "generic"
            contribution = rate * settings.generic_bonus_weight
        else:
            continue
        score += contribution
        matches.append(RewardMatch(reward=reward, kind=kind, contribution=contribution))

    if held:
        score += settings.held_card_bonus
    return CardScore(card=card, score=score, held=held, matches=matches)


def rank_cards_detailed(
    merchant: Merchant | str,
    cards: Sequence[Card],
    *,
    held_card_ids: Iterable[str] = (),
    top_n: int | None = None,
    settings: ScoringSettings | None = None,
) -> list[CardScore]:
    """Score every card for the merchant's category and return the best `top_n`.

    Ordering is stable: cards with equal scores keep their catalog order, so a
    category nothing matches yields the catalog order unchanged.
    """
    settings = settings or ScoringSettings()
    category = (merchant.category if isinstance(merchant, Merchant) else merchant).strip().lower()
    held = set(held_card_ids)
    limit = int(top_n if top_n is not None else settings.top_n_default)

    scored = [score_card(category, c, held=c.id in held, settings=settings) for c in cards]
    scored.sort(key=lambda s: s.score, reverse=True)
    return scored[:limit]


def rank_cards(
    merchant: Merchant | str,
    cards: Sequence[Card],
    *,
    held_card_ids: Iterable[str] = (),
    top_n: int | None = None,
    settings: ScoringSettings | None = None,
) -> list[Card]:
    """Like `rank_cards_detailed`, returning only the cards (best first)."""
    return [
        s.card
        for s in rank_cards_detailed(
            merchant, cards, held_card_ids=held_card_ids, top_n=top_n, settings=settings
        )
    ]


def best_reward(
    category: str, card: Card, *, settings: ScoringSettings | None = None
) -> RewardRate | None:
    """The single best line for a category: exact match first, else the best fuzzy match."""
    settings = settings or ScoringSettings()
    terms = _match_terms(settings)
    category = category.strip().lower()

    exact: list[RewardRate] = []
    fuzzy: list[RewardRate] = []
    for reward in card.reward_rates:
        kind = classify_reward(category, reward, terms)
        if kind == "exact":
            exact.append(reward)
        elif kind == "fuzzy":
            fuzzy.append(reward)

    candidates = exact or fuzzy
    if not candidates:
        return None
    return max(candidates, key=lambda r: r.effective_rate)


def estimate_earnings(
    merchant: Merchant, card: Card, *, settings: ScoringSettings | None = None
) -> str:
    """Estimate what a typical purchase at `merchant` earns with `card`.

    Percent lines render as `"$0.80 cash back"`, points lines as `"120 points"`;
    without a matching line the default rate (1% cash back) applies.
    """
    settings = settings or ScoringSettings()
    spend = merchant.estimated_spend or settings.default_spend
    reward = best_reward(merchant.category, card, settings=settings)

    if reward is not None and reward.kind == "points":
        return f"{spend * reward.rate:.0f} points"
    rate = reward.rate if reward is not None else settings.default_rate
    return f"${spend * rate:.2f} cash back"


def recommendation_reason(
    merchant: Merchant, card: Card, *, settings: ScoringSettings | None = None
) -> str:
    """Short human-readable reason a card suits this merchant."""
    reward = best_reward(merchant.category, card, settings=settings)
    if reward is not None:
        return f"Earn {reward.label} on {merchant.category}"
    return EVERYDAY_REASON
