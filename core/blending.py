"""
Blend manually configured forecast rates with historical estimates.

effective = (1 - alpha) * manual + alpha * historical

applied independently to sell-through, the SS and FW coefficients and
YoY growth. Alpha is the blend weight clamped to [0, 1], and 0 when
calibration is switched off.
"""

from dataclasses import dataclass


@dataclass(frozen=True)
class BlendedRates:
    sell_thru: float
    coef_ss: float
    coef_fw: float
    growth_yoy: float
    alpha: float


def clamp(value: float, low: float, high: float) -> float:
    return min(high, max(low, value))


def effective_alpha(use_calibration: bool, blend_weight: float) -> float:
    return clamp(float(blend_weight), 0.0, 1.0) if use_calibration else 0.0


def blend(manual: float, historical: float, alpha: float) -> float:
    return (1 - alpha) * manual + alpha * historical


def blend_rates(params, hist) -> BlendedRates:
    """
    Compute the effective rates for a simulation run.

    Args:
        params: SimulationParameters (manual rates, use_calibration, blend_weight)
        hist: CalibrationEstimate

    Returns:
        BlendedRates
    """
    alpha = effective_alpha(params.use_calibration, params.blend_weight)
    return BlendedRates(
        sell_thru=blend(params.sell_thru, hist.sell_thru, alpha),
        coef_ss=blend(params.coef_ss, hist.coef_ss, alpha),
        coef_fw=blend(params.coef_fw, hist.coef_fw, alpha),
        growth_yoy=blend(params.growth_yoy, hist.growth_yoy, alpha),
        alpha=alpha,
    )
