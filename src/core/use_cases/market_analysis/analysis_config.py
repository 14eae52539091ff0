"""
Configuration for the Multi-Timeframe Trend & Support/Resistance Engine

This module provides configuration settings for every stage of the engine,
including indicator periods, trend classification thresholds, cross-timeframe
weighting, level clustering, trading zone construction and the final assessment.
"""

import copy
import os
from typing import Dict, Any, List

from dotenv import load_dotenv

load_dotenv()

# Default configuration for the analysis engine
DEFAULT_CONFIG = {
    # Timeframe Settings
    "timeframes": {
        "analysis": ["15m", "1h", "4h", "1d"],  # shortest first
        "weights": {"15m": 1, "1h": 2, "4h": 3, "1d": 4},
        "reference": "1d",
        "candle_limit": 200,
        "reference_limit": 500,
        "parallel": True,
    },

    # Indicator Settings
    "indicators": {
        "ema_periods": [20, 60, 120],
        "rsi_period": 14,
    },

    # Timeframe Trend Classification Settings
    "trend_detection": {
        "min_candles": 120,
        "regression_lookback": 20,
        "strong_spread": 0.05,   # |ema20 - ema120| / ema120 at or above -> STRONG
        "weak_spread": 0.015,    # below -> WEAK
        "confidence_weights": {
            "ema_ordering": 0.4,
            "price_position": 0.3,
            "regression_fit": 0.3,
        },
        "ordering_scale": 0.02,
        "price_distance_scale": 0.10,
        "strength_spread_scale": 0.10,
        "divergence_window": 5,
        "divergence_lookback": 60,
    },

    # Multi-Timeframe Aggregation Settings
    "trend_aggregation": {
        "alignment_threshold": 70.0,
        "strong_alignment": 80.0,
        "low_alignment": 50.0,
    },

    # Support/Resistance Detection Settings
    "support_resistance": {
        "min_candles": 50,
        "extrema_window": 5,
        "tolerance_fraction": 0.005,  # 0.5% of current price
        "major_min_touches": 5,
        "major_span_fraction": 0.5,
        "strong_min_touches": 3,
        "medium_min_touches": 2,
        "touch_weight": 20.0,
        "touch_cap": 70.0,
        "recency_weight": 30.0,
        "recency_decay_fraction": 0.25,
        "break_confirmation_pct": 0.01,
        "break_confirmation_bars": 2,
        "zone_epsilon": 0.001,
        "approach_threshold": 0.02,
    },

    # Trading Zone Settings
    "trading_zones": {
        "min_confidence": 70.0,
        "max_zones": 3,
        "base_tolerance_pct": 0.005,
        "stop_loss_multiplier": 2.0,
        "target_ratio": 0.618,
    },

    # Comprehensive Assessment Settings
    "assessment": {
        "volatile_strength": 60.0,
        "volatile_alignment": 50.0,
        "short_term_confidence": 60.0,
        "zone_availability": [0.5, 0.8, 0.9, 1.0],  # indexed by zone count, last entry for 3+
        "opportunity_thresholds": {
            "EXCELLENT": 75.0,
            "GOOD": 60.0,
            "FAIR": 40.0,
            "POOR": 20.0,
        },
    },
}

def get_config(override_config: Dict[str, Any] = None) -> Dict[str, Any]:
    """
    Get configuration for the analysis engine with environment overrides.

    Args:
        override_config: Optional configuration overrides

    Returns:
        Configuration dictionary
    """
    config = copy.deepcopy(DEFAULT_CONFIG)

    # Apply environment variable overrides
    env_overrides = _get_env_overrides()
    _deep_merge(config, env_overrides)

    # Apply user-provided overrides
    if override_config:
        _deep_merge(config, copy.deepcopy(override_config))

    return config

def _get_env_overrides() -> Dict[str, Any]:
    """
    Get configuration overrides from environment variables.

    Returns:
        Dictionary of environment-based overrides
    """
    overrides = {}

    # Timeframe overrides
    if os.getenv("TRE_TIMEFRAMES"):
        timeframes = [tf.strip() for tf in os.getenv("TRE_TIMEFRAMES").split(",") if tf.strip()]
        overrides.setdefault("timeframes", {})["analysis"] = timeframes

    if os.getenv("TRE_REFERENCE_TIMEFRAME"):
        overrides.setdefault("timeframes", {})["reference"] = os.getenv("TRE_REFERENCE_TIMEFRAME")

    if os.getenv("TRE_PARALLEL_TIMEFRAMES"):
        overrides.setdefault("timeframes", {})["parallel"] = os.getenv("TRE_PARALLEL_TIMEFRAMES").lower() == "true"

    # Trend detection overrides
    if os.getenv("TRE_MIN_CANDLES"):
        overrides.setdefault("trend_detection", {})["min_candles"] = int(os.getenv("TRE_MIN_CANDLES"))

    if os.getenv("TRE_STRONG_SPREAD"):
        overrides.setdefault("trend_detection", {})["strong_spread"] = float(os.getenv("TRE_STRONG_SPREAD"))

    if os.getenv("TRE_WEAK_SPREAD"):
        overrides.setdefault("trend_detection", {})["weak_spread"] = float(os.getenv("TRE_WEAK_SPREAD"))

    # Aggregation overrides
    if os.getenv("TRE_ALIGNMENT_THRESHOLD"):
        overrides.setdefault("trend_aggregation", {})["alignment_threshold"] = float(os.getenv("TRE_ALIGNMENT_THRESHOLD"))

    # Support/resistance overrides
    if os.getenv("TRE_SR_TOLERANCE_FRACTION"):
        overrides.setdefault("support_resistance", {})["tolerance_fraction"] = float(os.getenv("TRE_SR_TOLERANCE_FRACTION"))

    if os.getenv("TRE_SR_EXTREMA_WINDOW"):
        overrides.setdefault("support_resistance", {})["extrema_window"] = int(os.getenv("TRE_SR_EXTREMA_WINDOW"))

    # Trading zone overrides
    if os.getenv("TRE_ZONE_MIN_CONFIDENCE"):
        overrides.setdefault("trading_zones", {})["min_confidence"] = float(os.getenv("TRE_ZONE_MIN_CONFIDENCE"))

    if os.getenv("TRE_ZONE_MAX_ZONES"):
        overrides.setdefault("trading_zones", {})["max_zones"] = int(os.getenv("TRE_ZONE_MAX_ZONES"))

    return overrides

def _deep_merge(base_dict: Dict[str, Any], override_dict: Dict[str, Any]) -> None:
    """
    Deep merge override dictionary into base dictionary.

    Args:
        base_dict: Base dictionary to merge into
        override_dict: Dictionary with overrides
    """
    for key, value in override_dict.items():
        if key in base_dict and isinstance(base_dict[key], dict) and isinstance(value, dict):
            _deep_merge(base_dict[key], value)
        else:
            base_dict[key] = value

def normalize_weights(weights: Dict[str, float], keys: List[str]) -> Dict[str, float]:
    """
    Renormalize a weight table over ``keys`` so it sums to 1.

    Keys missing from the table get their positional weight (index + 1),
    which keeps longer timeframes dominant when they are listed last.
    """
    raw = {key: float(weights.get(key, idx + 1)) for idx, key in enumerate(keys)}
    if any(w <= 0 for w in raw.values()):
        raise ValueError(f"Weights must be positive, got {raw}")
    total = sum(raw.values())
    return {key: w / total for key, w in raw.items()}

def get_timeframe_config() -> Dict[str, Any]:
    """Get timeframe configuration."""
    return get_config()["timeframes"]

def get_indicator_config() -> Dict[str, Any]:
    """Get indicator configuration."""
    return get_config()["indicators"]

def get_trend_config() -> Dict[str, Any]:
    """Get trend classification configuration."""
    return get_config()["trend_detection"]

def get_aggregation_config() -> Dict[str, Any]:
    """Get multi-timeframe aggregation configuration."""
    return get_config()["trend_aggregation"]

def get_support_resistance_config() -> Dict[str, Any]:
    """Get support/resistance detection configuration."""
    return get_config()["support_resistance"]

def get_zone_config() -> Dict[str, Any]:
    """Get trading zone configuration."""
    return get_config()["trading_zones"]

def get_assessment_config() -> Dict[str, Any]:
    """Get comprehensive assessment configuration."""
    return get_config()["assessment"]

# Preset configurations for different use cases
PRESET_CONFIGS = {
    "conservative": {
        "trend_detection": {
            "strong_spread": 0.07,
            "weak_spread": 0.02,
        },
        "trend_aggregation": {
            "alignment_threshold": 80.0,
            "strong_alignment": 90.0,
        },
        "trading_zones": {
            "min_confidence": 80.0,
            "max_zones": 2,
        },
    },

    "aggressive": {
        "trend_detection": {
            "strong_spread": 0.03,
            "weak_spread": 0.01,
        },
        "trend_aggregation": {
            "alignment_threshold": 60.0,
            "strong_alignment": 70.0,
        },
        "trading_zones": {
            "min_confidence": 60.0,
        },
        "support_resistance": {
            "tolerance_fraction": 0.0075,
        },
    },

    "balanced": {
        "trend_aggregation": {
            "alignment_threshold": 70.0,
            "strong_alignment": 80.0,
        },
        "trading_zones": {
            "min_confidence": 70.0,
        },
    },
}

def get_preset_config(preset_name: str, override_config: Dict[str, Any] = None) -> Dict[str, Any]:
    """
    Get a preset configuration with optional overrides.

    Args:
        preset_name: Name of the preset ("conservative", "aggressive", "balanced")
        override_config: Optional additional overrides

    Returns:
        Configuration dictionary
    """
    if preset_name not in PRESET_CONFIGS:
        raise ValueError(f"Unknown preset: {preset_name}. Available presets: {list(PRESET_CONFIGS.keys())}")

    config = get_config()
    _deep_merge(config, copy.deepcopy(PRESET_CONFIGS[preset_name]))

    if override_config:
        _deep_merge(config, copy.deepcopy(override_config))

    return config
