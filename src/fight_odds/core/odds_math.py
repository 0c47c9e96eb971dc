"""
Odds conversion and arbitrage mathematics.

All probability values are decimals in [0, 1].
American odds are numbers like -150 (favorite) or +130 (underdog).
"""

from __future__ import annotations


def american_to_prob(odds: float) -> float:
    """
    Convert American odds to implied probability.

    Args:
        odds: American odds (-150, +130, etc.)

    Returns:
        Implied probability in [0, 1]

    Examples:
        >>> american_to_prob(-150)  # Favorite
        0.6
        >>> american_to_prob(+120)  # Underdog
        0.4545...
    """
    if odds < 0:
        # Favorite: prob = |odds| / (|odds| + 100)
        return abs(odds) / (abs(odds) + 100)
    else:
        # Underdog: prob = 100 / (odds + 100)
        return 100 / (odds + 100)


def percentage_change(old: float, new: float) -> float:
    """
    Signed percentage change of a price, relative to the old price's magnitude.

    Examples:
        >>> percentage_change(-150, -120)
        20.0
        >>> percentage_change(130, 110)
        -15.38...
    """
    if old == 0:
        return 0.0
    return (new - old) / abs(old) * 100.0


def get_overround(probs: list[float]) -> float:
    """
    Sum of implied probabilities.

    Examples:
        >>> get_overround([0.5, 0.5])  # Fair odds
        1.0
    """
    return sum(probs)


def arbitrage_profit_pct(prob_sum: float) -> float:
    """
    Guaranteed profit (percent of total stake) for a book whose implied
    probabilities sum to ``prob_sum``. Negative when no arbitrage exists.

    Examples:
        >>> arbitrage_profit_pct(0.909)
        10.01...
    """
    if prob_sum <= 0:
        raise ValueError(f"Probability sum must be > 0, got {prob_sum}")
    return (1.0 / prob_sum - 1.0) * 100.0


def arbitrage_stakes(probs: list[float], total_stake: float) -> list[float]:
    """
    Split ``total_stake`` so every outcome returns the same payout.

    stake_i = total_stake * p_i / sum(p)
    """
    overround = get_overround(probs)
    if overround <= 0:
        raise ValueError(f"Overround must be > 0, got {overround}")
    return [total_stake * p / overround for p in probs]
