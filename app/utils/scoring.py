"""
Scoring rule for individual predictions.

For aggregated weekly and all-time standings, see
app/services/ranking_service.py
"""

POINTS_FOR_CORRECT_PICK = 1


def calculate_prediction_score(pick, outcome):
    """
    Calculate score for a single prediction.

    Returns:
        1 when the pick matches the resolved outcome
        0 for a wrong pick

    Args:
        pick: "H", "D" or "A"
        outcome: resolved outcome; must not be undetermined
    """
    if outcome is None:
        raise ValueError("Cannot score a prediction for an undetermined match")

    if pick == outcome:
        return POINTS_FOR_CORRECT_PICK

    return 0
