# MaxVue analysis - edge/region detection, contrast maps and content classification.

from maxvue.analysis.content_analyzer import ContentAnalyzer, create_fallback_result, generate_cache_key
from maxvue.analysis.edges import detect_edges, detect_text_regions, sobel_magnitude
from maxvue.analysis.contrast import analyze_contrast, CONTRAST_ESTIMATORS
from maxvue.analysis.classification import classify_content

__all__ = [
    'ContentAnalyzer',
    'create_fallback_result',
    'generate_cache_key',
    'detect_edges',
    'detect_text_regions',
    'sobel_magnitude',
    'analyze_contrast',
    'CONTRAST_ESTIMATORS',
    'classify_content',
]
