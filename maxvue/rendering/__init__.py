# MaxVue rendering - shader pass on GPU devices with a CPU fallback.

from maxvue.rendering.gpu_renderer import GPURenderer, RendererState, ContextInfo, effective_parameters
from maxvue.rendering.shader import PresbyopiaShader
from maxvue.rendering.cpu_fallback import render_cpu_fallback, apply_global_adjustment

__all__ = [
    'GPURenderer',
    'RendererState',
    'ContextInfo',
    'effective_parameters',
    'PresbyopiaShader',
    'render_cpu_fallback',
    'apply_global_adjustment',
]
