"""Configuration modules for the interview voice pipeline."""

from .pipeline import (
    PipelineConfig,
    get_pipeline_config,
    load_pipeline_config,
    update_pipeline_config,
    reset_pipeline_config,
)

__all__ = [
    'PipelineConfig',
    'get_pipeline_config',
    'load_pipeline_config',
    'update_pipeline_config',
    'reset_pipeline_config',
]
