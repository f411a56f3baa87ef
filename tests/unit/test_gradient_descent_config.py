"""Unit tests for alignopt.optimization.config.

Tests the GradientDescentConfig dataclass and YAML/JSON loading.
"""

import json
import logging

import pytest
import yaml

from alignopt.optimization.config import (
    GradientDescentConfig,
    LearningRateEstimation,
    load_config,
)


class TestGradientDescentConfigDefaults:
    """Test GradientDescentConfig default values."""

    def test_default_learning_rate_settings(self):
        config = GradientDescentConfig()
        assert config.learning_rate == 1.0
        assert config.maximum_step_size_in_physical_units is None
        assert config.learning_rate_estimation is LearningRateEstimation.ONCE

    def test_default_scales_settings(self):
        config = GradientDescentConfig()
        assert config.scales is None
        assert config.do_estimate_scales is True

    def test_default_convergence_settings(self):
        config = GradientDescentConfig()
        assert config.minimum_convergence_value == 1e-8
        assert config.convergence_window_size == 50
        assert config.number_of_iterations == 100
        assert config.return_best_parameters_and_value is False

    def test_default_parallel_settings(self):
        config = GradientDescentConfig()
        assert 1 <= config.number_of_workers <= 4
        assert config.minimum_parallel_size == 4096
        assert config.max_numerical_errors == 10

    def test_defaults_are_valid(self):
        assert GradientDescentConfig().is_valid()


class TestGradientDescentConfigFromDict:
    """Test GradientDescentConfig.from_dict."""

    def test_from_empty_dict(self):
        config = GradientDescentConfig.from_dict({})
        assert config.learning_rate == 1.0
        assert config.convergence_window_size == 50

    def test_nested_sections(self):
        config = GradientDescentConfig.from_dict(
            {
                "learning_rate": 0.5,
                "learning_rate_estimation": "every_iteration",
                "convergence": {"minimum_value": 1e-6, "window_size": 10},
                "parallel": {"n_workers": 2, "minimum_size": 128},
            }
        )
        assert config.learning_rate == 0.5
        assert config.learning_rate_estimation is LearningRateEstimation.EVERY_ITERATION
        assert config.minimum_convergence_value == 1e-6
        assert config.convergence_window_size == 10
        assert config.number_of_workers == 2
        assert config.minimum_parallel_size == 128

    def test_flat_convergence_keys(self):
        config = GradientDescentConfig.from_dict(
            {"minimum_convergence_value": 1e-4, "convergence_window_size": 7}
        )
        assert config.minimum_convergence_value == 1e-4
        assert config.convergence_window_size == 7

    def test_scales_converted_to_floats(self):
        config = GradientDescentConfig.from_dict({"scales": [1, 2, "3.5"]})
        assert config.scales == [1.0, 2.0, 3.5]

    def test_unknown_estimation_mode_raises(self):
        with pytest.raises(ValueError):
            GradientDescentConfig.from_dict({"learning_rate_estimation": "sometimes"})

    def test_invalid_values_logged(self, caplog):
        with caplog.at_level(logging.WARNING, logger="alignopt"):
            config = GradientDescentConfig.from_dict({"learning_rate": -2.0})

        assert not config.is_valid()
        assert "learning_rate must be positive" in caplog.text

    def test_to_dict_feeds_from_dict(self):
        original = GradientDescentConfig(
            learning_rate=0.2,
            scales=[1.0, 4.0],
            learning_rate_estimation=LearningRateEstimation.MANUAL,
            convergence_window_size=12,
            number_of_workers=3,
        )
        restored = GradientDescentConfig.from_dict(original.to_dict())

        assert restored.to_dict() == original.to_dict()


class TestGradientDescentConfigValidation:
    """Test GradientDescentConfig.validate."""

    @pytest.mark.parametrize(
        "field_name, value, fragment",
        [
            ("learning_rate", 0.0, "learning_rate"),
            ("maximum_step_size_in_physical_units", -1.0, "maximum_step_size"),
            ("scales", [1.0, 0.0], "scales"),
            ("convergence_window_size", 1, "convergence_window_size"),
            ("number_of_iterations", -1, "number_of_iterations"),
            ("number_of_workers", 0, "number_of_workers"),
            ("minimum_parallel_size", 0, "minimum_parallel_size"),
            ("max_numerical_errors", 0, "max_numerical_errors"),
        ],
    )
    def test_invalid_field_reported(self, field_name, value, fragment):
        config = GradientDescentConfig(**{field_name: value})
        errors = config.validate()

        assert len(errors) == 1
        assert fragment in errors[0]

    def test_zero_iterations_allowed(self):
        assert GradientDescentConfig(number_of_iterations=0).is_valid()


class TestLoadConfig:
    """Test load_config with YAML and JSON files."""

    def test_yaml_optimizer_section(self, tmp_path):
        path = tmp_path / "registration.yaml"
        path.write_text(
            yaml.safe_dump(
                {
                    "metric": {"name": "mean_squares"},
                    "optimizer": {
                        "learning_rate": 0.25,
                        "number_of_iterations": 20,
                        "convergence": {"window_size": 6},
                        "return_best_parameters_and_value": True,
                    },
                }
            )
        )

        config = load_config(path)

        assert config.learning_rate == 0.25
        assert config.number_of_iterations == 20
        assert config.convergence_window_size == 6
        assert config.return_best_parameters_and_value is True

    def test_yaml_root_mapping(self, tmp_path):
        path = tmp_path / "optimizer.yml"
        path.write_text("learning_rate: 0.75\nlearning_rate_estimation: manual\n")

        config = load_config(str(path))

        assert config.learning_rate == 0.75
        assert config.learning_rate_estimation is LearningRateEstimation.MANUAL

    def test_empty_yaml_gives_defaults(self, tmp_path):
        path = tmp_path / "empty.yaml"
        path.write_text("")

        assert load_config(path).learning_rate == 1.0

    def test_json_file(self, tmp_path):
        path = tmp_path / "optimizer.json"
        path.write_text(json.dumps({"optimizer": {"number_of_iterations": 5}}))

        assert load_config(path).number_of_iterations == 5

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_config(tmp_path / "missing.yaml")

    def test_non_mapping_rejected(self, tmp_path):
        path = tmp_path / "list.yaml"
        path.write_text("- 1\n- 2\n")

        with pytest.raises(ValueError, match="mapping"):
            load_config(path)
