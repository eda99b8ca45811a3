"""
Tests for triangulation configuration.
"""

import pytest

from point_triangulation.config import OptimizerSettings, TriangulationParameters


class TestTriangulationParameters:
    """Tests for parameter defaults, validation and YAML handling."""

    def test_defaults(self):
        params = TriangulationParameters()
        assert params.rank_tolerance == 1e-9
        assert params.dehomogenize_tolerance is None
        assert params.refine is False
        assert params.enforce_cheirality is True
        assert params.optimizer.method == 'lm'
        assert params.optimizer.prior_sigma is None

    def test_from_dict_coerces_exponent_strings(self):
        """YAML 1.1 reads 1e-9 (no decimal point) as a string."""
        params = TriangulationParameters.from_dict({
            'rank_tolerance': '1e-7',
            'optimizer': {'function_tolerance': '1e-12', 'prior_sigma': '0.5'},
        })
        assert params.rank_tolerance == pytest.approx(1e-7)
        assert params.optimizer.function_tolerance == pytest.approx(1e-12)
        assert params.optimizer.prior_sigma == pytest.approx(0.5)

    def test_from_dict_none_gives_defaults(self):
        assert TriangulationParameters.from_dict(None) == TriangulationParameters()

    def test_rejects_non_positive_rank_tolerance(self):
        with pytest.raises(ValueError, match="rank_tolerance"):
            TriangulationParameters.from_dict({'rank_tolerance': 0})

    def test_rejects_non_positive_dehomogenize_tolerance(self):
        with pytest.raises(ValueError, match="dehomogenize_tolerance"):
            TriangulationParameters.from_dict({'dehomogenize_tolerance': -1.0})

    def test_yaml_file(self, tmp_path):
        config_path = tmp_path / "triangulation.yaml"
        config_path.write_text(
            "rank_tolerance: 1e-8\n"
            "refine: true\n"
            "enforce_cheirality: false\n"
            "optimizer:\n"
            "  method: trf\n"
            "  max_evaluations: 50\n"
        )

        params = TriangulationParameters.from_yaml(str(config_path))

        assert params.rank_tolerance == pytest.approx(1e-8)
        assert params.refine is True
        assert params.enforce_cheirality is False
        assert params.optimizer.method == 'trf'
        assert params.optimizer.max_evaluations == 50

    def test_save_and_load(self, tmp_path):
        params = TriangulationParameters(
            rank_tolerance=1e-6,
            dehomogenize_tolerance=1e-4,
            refine=True,
            optimizer=OptimizerSettings(prior_sigma=2.0),
        )
        config_path = tmp_path / "saved.yaml"
        params.to_yaml(str(config_path))

        assert TriangulationParameters.from_yaml(str(config_path)) == params

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            TriangulationParameters.from_yaml(str(tmp_path / "missing.yaml"))


class TestOptimizerSettings:
    """Tests for optimizer setting validation."""

    def test_valid_defaults(self):
        OptimizerSettings().validate()

    @pytest.mark.parametrize("kwargs", [
        {'method': 'dogbox'},
        {'max_evaluations': 0},
        {'function_tolerance': 0.0},
        {'step_tolerance': -1e-8},
        {'prior_sigma': 0.0},
    ])
    def test_invalid(self, kwargs):
        with pytest.raises(ValueError):
            OptimizerSettings(**kwargs).validate()
