"""
Signal Pipeline

Runs the decision engine and the candle confirmation engine as two
independent loops over shared, explicitly owned state.
"""

from entrygate.pipeline.config import PipelineConfig
from entrygate.pipeline.runner import SignalPipeline

__all__ = ['PipelineConfig', 'SignalPipeline']
