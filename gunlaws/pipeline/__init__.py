# Pipeline package
from .analysis_pipeline import AnalysisPipeline, AnalysisResult, save_results

__all__ = ['AnalysisPipeline', 'AnalysisResult', 'save_results']
