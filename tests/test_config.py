import argparse

import pytest

from stipple_partition.config import PartitionConfig, DEFAULT_GENERATIONS


def test_defaults():
    config = PartitionConfig()
    assert config.generations == DEFAULT_GENERATIONS == 24
    assert config.weights() == (1, 1, 1)
    assert config.max_workers == 1
    assert config.strategy == 'dipole'
    assert config.density_model == 'avg'
    assert config.frame_capacity == 0
    assert config.save_all is False
    config.validate()


@pytest.mark.parametrize("field, value", [
    ('generations', -1),
    ('x_weight', -1),
    ('z_weight', -2),
    ('strategy', 'sah'),
    ('frame_capacity', -5),
    ('density_model', 'luma'),
])
def test_validate_rejects(field, value):
    config = PartitionConfig(**{field: value})
    with pytest.raises(ValueError):
        config.validate()


def test_save_load_round_trip(tmp_path):
    config = PartitionConfig(generations=7, y_weight=3, strategy='centroid', max_workers=0, save_all=True)
    path = tmp_path / 'nested' / 'config.json'
    config.save(path)
    assert PartitionConfig.load(path) == config


def test_from_args_overrides_only_given_values():
    base = PartitionConfig(generations=10, z_weight=5)
    args = argparse.Namespace(generations=None, x_weight=2, y_weight=None, z_weight=None,
                              workers=8, strategy=None, model='neg_red', capacity=4, save_all=True)
    config = PartitionConfig.from_args(args, base)

    assert config.generations == 10
    assert config.weights() == (2, 1, 5)
    assert config.max_workers == 8
    assert config.density_model == 'neg_red'
    assert config.frame_capacity == 4
    assert config.save_all is True


def test_from_args_validates():
    with pytest.raises(ValueError):
        PartitionConfig.from_args(argparse.Namespace(generations=-3))
