"""Tests for morpho/curator_config.py."""

import os
import unittest
from unittest.mock import patch

from morpho.curator_config import (
    DEFAULT_CURATOR_CONFIG,
    DEFAULT_WEIGHTS,
    ENV_OVERRIDES,
    CuratorWeights,
    load_config_from_env,
    load_curator_config,
    merge_config,
    resolve_weights,
    weight_env_var,
)


class TestMergeConfig(unittest.TestCase):
    """Tests for merge_config."""

    def test_defaults(self):
        config = merge_config()
        self.assertEqual(config.utilization_ceiling, 0.9)
        self.assertEqual(config.price_stress_pct, 0.3)
        self.assertEqual(config.insolvency_tolerance_pct_tvl, 0.01)
        self.assertEqual(config.min_tvl_usd, 10_000)
        self.assertEqual(config.max_utilization_beyond, 1.1)
        self.assertIs(config.weights, DEFAULT_WEIGHTS)

    def test_scalar_overrides(self):
        config = merge_config({"utilization_ceiling": 0.85, "price_stress_pct": 0.25})
        self.assertEqual(config.utilization_ceiling, 0.85)
        self.assertEqual(config.price_stress_pct, 0.25)
        self.assertEqual(config.insolvency_tolerance_pct_tvl, 0.01)

    def test_none_override_is_ignored(self):
        config = merge_config({"price_stress_pct": None})
        self.assertEqual(config.price_stress_pct, 0.3)

    def test_clamps_percentage_fields_both_directions(self):
        self.assertEqual(merge_config({"price_stress_pct": 1.5}).price_stress_pct, 1)
        self.assertEqual(merge_config({"liquidity_stress_pct": -0.1}).liquidity_stress_pct, 0)
        self.assertEqual(merge_config({"utilization_ceiling": 1.2}).utilization_ceiling, 1)
        self.assertEqual(merge_config({"withdrawal_liquidity_min_pct": 3}).withdrawal_liquidity_min_pct, 1)
        self.assertEqual(merge_config({"insolvency_tolerance_pct_tvl": float("nan")}).insolvency_tolerance_pct_tvl, 0)

    def test_max_utilization_beyond_not_clamped(self):
        self.assertEqual(merge_config({"max_utilization_beyond": 1.3}).max_utilization_beyond, 1.3)

    def test_weights_normalized(self):
        config = merge_config(
            {
                "weights": {
                    "utilization": 0.4,
                    "rate_alignment": 0.3,
                    "stress_exposure": 0.6,
                    "withdrawal_liquidity": 0.4,
                    "liquidation_capacity": 0.3,
                }
            }
        )
        self.assertAlmostEqual(config.weights.total(), 1, places=5)
        self.assertAlmostEqual(config.weights.stress_exposure, 0.3, places=5)

    def test_zero_weights_fall_back_to_defaults(self):
        config = merge_config({"weights": {key: 0 for key in DEFAULT_WEIGHTS.as_dict()}})
        self.assertEqual(config.weights, DEFAULT_WEIGHTS)
        self.assertEqual(config.weights.utilization, 0.2)
        self.assertEqual(config.weights.stress_exposure, 0.3)

    def test_partial_weight_override(self):
        config = merge_config({"weights": {"utilization": 0.5}})
        self.assertAlmostEqual(config.weights.total(), 1, places=5)
        self.assertGreater(config.weights.utilization, 0.2)

    def test_accepts_weights_instance(self):
        weights = CuratorWeights(1, 1, 1, 1, 1)
        config = merge_config({"weights": weights})
        self.assertAlmostEqual(config.weights.utilization, 0.2)

    def test_unknown_key_raises(self):
        with self.assertRaises(ValueError):
            merge_config({"not_a_field": 1})

    def test_default_config_untouched(self):
        merge_config({"price_stress_pct": 0.5, "weights": {"utilization": 1}})
        self.assertEqual(DEFAULT_CURATOR_CONFIG.price_stress_pct, 0.3)
        self.assertEqual(DEFAULT_CURATOR_CONFIG.weights.utilization, 0.2)


class TestResolveWeights(unittest.TestCase):
    """Tests for resolve_weights."""

    def test_no_overrides_returns_defaults(self):
        self.assertIs(resolve_weights(None), DEFAULT_WEIGHTS)
        self.assertIs(resolve_weights({}), DEFAULT_WEIGHTS)

    def test_sum_is_one_for_nonzero_overrides(self):
        for overrides in (
            {"utilization": 3},
            {"rate_alignment": 0.01, "stress_exposure": 0},
            {"liquidation_capacity": 10, "withdrawal_liquidity": 5},
        ):
            with self.subTest(overrides=overrides):
                self.assertAlmostEqual(resolve_weights(overrides).total(), 1, places=5)

    def test_negative_weight_counts_as_zero(self):
        weights = resolve_weights({"utilization": -1})
        self.assertEqual(weights.utilization, 0)
        self.assertAlmostEqual(weights.total(), 1, places=5)

    def test_unknown_weight_raises(self):
        with self.assertRaises(ValueError):
            resolve_weights({"utilisation": 0.5})

    def test_defaults_sum_to_one(self):
        self.assertAlmostEqual(DEFAULT_WEIGHTS.total(), 1, places=5)


class TestLoadConfigFromEnv(unittest.TestCase):
    """Tests for load_config_from_env."""

    def test_empty_environment(self):
        with patch.dict(os.environ, {}, clear=True):
            self.assertEqual(load_config_from_env(), {})

    def test_percentage_vars(self):
        with patch.dict(
            os.environ,
            {"CURATOR_PRICE_STRESS_PCT": "0.25", "CURATOR_LIQUIDITY_STRESS_PCT": "0.35"},
            clear=True,
        ):
            config = load_config_from_env()
        self.assertEqual(config["price_stress_pct"], 0.25)
        self.assertEqual(config["liquidity_stress_pct"], 0.35)
        self.assertNotIn("weights", config)

    def test_weight_vars_use_uppercased_camel_key(self):
        self.assertEqual(weight_env_var("stress_exposure"), "CURATOR_WEIGHT_STRESSEXPOSURE")
        self.assertEqual(weight_env_var("utilization"), "CURATOR_WEIGHT_UTILIZATION")
        with patch.dict(
            os.environ,
            {
                "CURATOR_WEIGHT_UTILIZATION": "0.3",
                "CURATOR_WEIGHT_STRESSEXPOSURE": "0.4",
                "CURATOR_WEIGHT_STRESS_EXPOSURE": "0.9",
            },
            clear=True,
        ):
            config = load_config_from_env()
        self.assertEqual(config["weights"], {"utilization": 0.3, "stress_exposure": 0.4})

    def test_percent_looking_value_warns_but_is_kept(self):
        with patch.dict(os.environ, {"CURATOR_PRICE_STRESS_PCT": "30"}, clear=True):
            with self.assertLogs("morpho.curator_config", level="WARNING") as logs:
                config = load_config_from_env()
        self.assertEqual(config["price_stress_pct"], 30)
        self.assertIn("CURATOR_PRICE_STRESS_PCT looks like a percent", logs.output[0])

    def test_non_percentage_field_above_one_does_not_warn(self):
        with patch.dict(os.environ, {"CURATOR_MAX_UTILIZATION_BEYOND": "1.15"}, clear=True):
            with patch("morpho.curator_config.logger.warning") as mock_warning:
                config = load_config_from_env()
        self.assertEqual(config["max_utilization_beyond"], 1.15)
        mock_warning.assert_not_called()

    def test_invalid_numbers_are_absent(self):
        with patch.dict(
            os.environ,
            {
                "CURATOR_UTILIZATION_CEILING": "invalid",
                "CURATOR_PRICE_STRESS_PCT": "not-a-number",
                "CURATOR_MIN_TVL_USD": "inf",
                "CURATOR_RATE_ALIGNMENT_EPS": "",
            },
            clear=True,
        ):
            config = load_config_from_env()
        self.assertEqual(config, {})

    def test_every_table_entry(self):
        env = {
            "MORPHO_API_URL": "https://example.org/graphql",
            "CURATOR_UTILIZATION_CEILING": "0.85",
            "CURATOR_UTILIZATION_BUFFER_HOURS": "24",
            "CURATOR_MAX_UTILIZATION_BEYOND": "1.15",
            "CURATOR_RATE_ALIGNMENT_EPS": "0.03",
            "CURATOR_RATE_ALIGNMENT_HIGH_YIELD_BUFFER": "0.04",
            "CURATOR_RATE_ALIGNMENT_HIGH_YIELD_EPS": "0.02",
            "CURATOR_FALLBACK_BENCHMARK_RATE": "0.06",
            "CURATOR_PRICE_STRESS_PCT": "0.25",
            "CURATOR_LIQUIDITY_STRESS_PCT": "0.35",
            "CURATOR_WITHDRAWAL_LIQUIDITY_MIN_PCT": "0.15",
            "CURATOR_INSOLVENCY_TOLERANCE_PCT_TVL": "0.015",
            "CURATOR_MIN_TVL_USD": "20000",
            "CURATOR_CONFIG_VERSION": "test-v1",
        }
        self.assertEqual({entry.env_var for entry in ENV_OVERRIDES}, set(env))
        with patch.dict(os.environ, env, clear=True):
            config = load_config_from_env()
        self.assertEqual(
            config,
            {
                "morpho_api_url": "https://example.org/graphql",
                "utilization_ceiling": 0.85,
                "utilization_buffer_hours": 24,
                "max_utilization_beyond": 1.15,
                "rate_alignment_eps": 0.03,
                "rate_alignment_high_yield_buffer": 0.04,
                "rate_alignment_high_yield_eps": 0.02,
                "fallback_benchmark_rate": 0.06,
                "price_stress_pct": 0.25,
                "liquidity_stress_pct": 0.35,
                "withdrawal_liquidity_min_pct": 0.15,
                "insolvency_tolerance_pct_tvl": 0.015,
                "min_tvl_usd": 20000,
                "config_version": "test-v1",
            },
        )


class TestLoadCuratorConfig(unittest.TestCase):
    """Tests for load_curator_config."""

    def test_env_is_merged_and_clamped(self):
        with patch.dict(os.environ, {"CURATOR_PRICE_STRESS_PCT": "30"}, clear=True):
            config = load_curator_config()
        self.assertEqual(config.price_stress_pct, 1)

    def test_caller_overrides_win(self):
        with patch.dict(
            os.environ,
            {"CURATOR_MIN_TVL_USD": "20000", "CURATOR_PRICE_STRESS_PCT": "0.2"},
            clear=True,
        ):
            config = load_curator_config({"min_tvl_usd": 50_000})
        self.assertEqual(config.min_tvl_usd, 50_000)
        self.assertEqual(config.price_stress_pct, 0.2)

    def test_weights_merged_key_by_key(self):
        with patch.dict(
            os.environ,
            {"CURATOR_WEIGHT_UTILIZATION": "1", "CURATOR_WEIGHT_RATEALIGNMENT": "1"},
            clear=True,
        ):
            config = load_curator_config({"weights": {"rate_alignment": 0}})
        self.assertEqual(config.weights.rate_alignment, 0)
        self.assertAlmostEqual(config.weights.total(), 1, places=5)
        self.assertAlmostEqual(config.weights.utilization, 1 / 1.6)

    def test_no_env_no_overrides_is_default(self):
        with patch.dict(os.environ, {}, clear=True):
            self.assertEqual(load_curator_config(), DEFAULT_CURATOR_CONFIG)


if __name__ == "__main__":
    unittest.main()
