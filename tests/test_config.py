"""
Tests for configuration and logging setup
"""

import sys
from pathlib import Path

import pytest
from loguru import logger

# Add project root to path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from tilefeatures.config import LayerDefinition, ProcessingConfig, StoreConfig, get_config, validate_config
from tilefeatures.utils import setup_logging


def test_defaults_are_valid():
    validate_config(ProcessingConfig())
    assert get_config().store.enforce_integrity is True


def test_layer_zoom_range():
    layer = LayerDefinition(name="roads", minzoom=4, maxzoom=12)
    assert layer.write_to is None
    with pytest.raises(ValueError):
        LayerDefinition(name="roads", minzoom=13, maxzoom=12)


def test_add_layer_uses_max_zoom():
    config = ProcessingConfig(max_zoom=12)
    layer = config.add_layer("water", minzoom=3)
    assert layer.maxzoom == 12
    assert config.layers["water"] is layer


def test_validation_collects_every_error():
    config = ProcessingConfig(
        store=StoreConfig(used_way_growth_margin=0),
        threads=0,
        default_minzoom=20
    )
    config.add_layer("minor", write_to="missing")

    with pytest.raises(ValueError) as excinfo:
        validate_config(config)

    message = str(excinfo.value)
    assert "used_way_growth_margin" in message
    assert "threads" in message
    assert "default_minzoom" in message
    assert "write_to target 'missing'" in message


def test_layer_maxzoom_above_global_max():
    config = ProcessingConfig(max_zoom=10)
    config.layers["detail"] = LayerDefinition(name="detail", maxzoom=14)
    with pytest.raises(ValueError, match="exceeds max_zoom"):
        validate_config(config)


def test_setup_logging_levels():
    messages = []
    setup_logging(verbose=False)
    sink_id = logger.add(messages.append, level="INFO", format="{message}")
    logger.debug("hidden")
    logger.info("shown")
    logger.remove(sink_id)

    assert [m.strip() for m in messages] == ["shown"]
    setup_logging(verbose=True)
