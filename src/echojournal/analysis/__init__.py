"""Post-conversation analysis pipeline."""

from echojournal.analysis.pipeline import AnalysisPipeline, Stage

__all__ = ["AnalysisPipeline", "Stage"]
