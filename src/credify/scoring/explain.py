"""
Small explainability formatting helpers.

Used by the CLI and the API to show why a card ranked where it did.
"""

from __future__ import annotations

from credify.scoring.rewards import CardScore


def one_line_summary(scored: CardScore) -> str:
    """Render a compact single-line summary for a scored card."""
    parts = [f"score={scored.score:.4f}"]
    for m in scored.matches:
        parts.append(f"{m.reward.category} {m.reward.label} {m.kind}=+{m.contribution:.4f}")
    if scored.held:
        parts.append("held")
    return " | ".join(parts)


def explain_payload(scored: CardScore) -> dict:
    """JSON-friendly breakdown of a card score."""
    return {
        "card_id": scored.card.id,
        "card_name": scored.card.name,
        "score": scored.score,
        "held": scored.held,
        "matches": [
            {
                "category": m.reward.category,
                "rate": m.reward.label,
                "kind": m.kind,
                "contribution": m.contribution,
            }
            for m in scored.matches
        ],
    }
