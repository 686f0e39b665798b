"""Per-run state shared between deployment phases."""

from o11y_deploy.pipeline.context import PipelineContext

__all__ = ["PipelineContext"]
