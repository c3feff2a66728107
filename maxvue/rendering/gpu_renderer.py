"""
GPU renderer for presbyopia correction.

Runs PresbyopiaShader on a CUDA or MPS device, with a CPU fallback that
applies the global contrast/brightness step only.

Lifecycle:
    uninitialized -> initializing -> gpu-ready | fallback
    dispose() is valid from any state.

Once in fallback the renderer never retries GPU initialization; construct a
new instance to retry. A per-call GPU failure falls back to the CPU path for
that call only.
"""

import dataclasses
import logging
import threading
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Tuple, Union

import numpy as np
import torch
import torchvision.transforms.functional as TF
from PIL import Image

from maxvue.config import RendererConfig
from maxvue.processing.sources import VisualSource, as_source
from maxvue.rendering.cpu_fallback import render_cpu_fallback
from maxvue.rendering.shader import PresbyopiaShader
from maxvue.types import (
    CorrectionSettings,
    ErrorKind,
    PerformanceMetrics,
    PixelBuffer,
    ProcessingResult,
    ProcessingStrategy,
)
from maxvue.utils.exceptions import (
    GPUInitError,
    GPURenderError,
    InvalidSourceError,
    ShaderCompileError,
    SourceUnreadableError,
)
from maxvue.utils.error_handling import with_timeout

logger = logging.getLogger(__name__)

BYTES_PER_PIXEL = 4
MAX_BATTERY_IMPACT_PCT = 5.0
# Device setup plus shader warm-up slower than this is logged.
INIT_WARN_MS = 500.0

SourceLike = Union[VisualSource, PixelBuffer, np.ndarray, Image.Image]


class RendererState(Enum):
    UNINITIALIZED = "uninitialized"
    INITIALIZING = "initializing"
    GPU_READY = "gpu-ready"
    FALLBACK = "fallback"
    DISPOSED = "disposed"


@dataclass
class ContextInfo:
    """Description of the device context backing the renderer."""
    vendor: str = 'Unknown'
    renderer: str = 'Unknown'
    version: str = 'Unknown'
    extensions: List[str] = field(default_factory=list)


def effective_parameters(settings: CorrectionSettings,
                         strategy: ProcessingStrategy) -> Tuple[float, float]:
    """Contrast boost and edge enhancement after strategy multipliers, clamped to 0-100."""
    contrast = min(100.0, max(0.0, settings.contrast_boost * strategy.contrast_boost))
    edges = min(100.0, max(0.0, settings.edge_enhancement * strategy.edge_enhancement))
    return contrast, edges


class GPURenderer:
    """
    Caller-owned renderer. Owns its device and shader exclusively.

    Arguments:
        settings: Default correction settings (overridable per call)
        config: Renderer configuration
    """

    def __init__(self, settings: Optional[CorrectionSettings] = None,
                 config: Optional[RendererConfig] = None):
        self.settings = settings or CorrectionSettings()
        self.config = config or RendererConfig()
        self._state = RendererState.UNINITIALIZED
        self._device: Optional[torch.device] = None
        self._shader: Optional[PresbyopiaShader] = None
        self._metrics = PerformanceMetrics()
        self._lock = threading.RLock()

    @property
    def state(self) -> RendererState:
        return self._state

    def is_using_fallback(self) -> bool:
        return self._state == RendererState.FALLBACK

    @with_timeout(timeout_ms=INIT_WARN_MS)
    def initialize(self) -> bool:
        """
        Create the device context and build the shader.

        Idempotent. Returns False and enters fallback on any failure.
        """
        with self._lock:
            if self._state == RendererState.GPU_READY:
                return True
            if self._state in (RendererState.FALLBACK, RendererState.DISPOSED):
                return False

            self._state = RendererState.INITIALIZING
            logger.info("GPURenderer: starting initialization")
            try:
                device = self._resolve_device()
                shader = PresbyopiaShader(
                    blur_taps=self.config.blur_taps,
                    local_contrast_radius=self.config.local_contrast_radius,
                    edge_threshold=self.config.edge_threshold,
                ).to(device).eval()
                self._validate_shader(shader, device)
            except Exception as e:
                logger.warning(f"GPU initialization failed, falling back to CPU rendering: {e}")
                self._shader = None
                self._device = None
                self._state = RendererState.FALLBACK
                return False

            self._device = device
            self._shader = shader
            self._state = RendererState.GPU_READY
            logger.info(f"GPURenderer initialized on {device}")
            return True

    def _resolve_device(self) -> torch.device:
        requested = self.config.device
        if requested in ('auto', 'cuda') and torch.cuda.is_available():
            return torch.device('cuda')
        if requested in ('auto', 'mps') and hasattr(torch.backends, 'mps') and torch.backends.mps.is_available():
            return torch.device('mps')
        if requested == 'cpu' or self.config.allow_cpu_device:
            return torch.device('cpu')
        raise GPUInitError(f"No GPU device available (requested '{requested}')")

    def _validate_shader(self, shader: PresbyopiaShader, device: torch.device) -> None:
        """Run the shader once on a test pattern; raise ShaderCompileError if the output is unusable."""
        pattern = torch.linspace(0.0, 1.0, 64, device=device).view(1, 1, 8, 8).repeat(1, 3, 1, 1)
        try:
            with torch.no_grad():
                out = shader(pattern, 1.75, 50.0, 50.0)
        except Exception as e:
            raise ShaderCompileError(f"Shader warm-up failed: {e}") from e
        if out.shape != pattern.shape:
            raise ShaderCompileError(f"Shader produced shape {tuple(out.shape)}, expected {tuple(pattern.shape)}")
        if not torch.isfinite(out).all():
            raise ShaderCompileError("Shader produced non-finite output")

    def process_image(self, source: SourceLike,
                      strategy: Optional[ProcessingStrategy] = None,
                      settings: Optional[CorrectionSettings] = None) -> ProcessingResult:
        """
        Enhance a source.

        Arguments:
            source: Visual source or raw pixels
            strategy: Content strategy from the analyzer (neutral if None)
            settings: Per-call settings, defaults to the renderer's settings

        Returns:
            ProcessingResult; success is False only if both paths failed
        """
        start = time.perf_counter()
        settings = settings or self.settings
        strategy = strategy or ProcessingStrategy()
        contrast_boost, edge_enhancement = effective_parameters(settings, strategy)

        try:
            visual = as_source(source)
        except InvalidSourceError as e:
            logger.warning(f"Invalid source: {e}")
            return self._failure(start, ErrorKind.INVALID_SOURCE, (0, 0))

        if settings.use_gpu and strategy.use_gpu and self._state == RendererState.GPU_READY:
            try:
                pixels = visual.read_pixels()
                output = self._render_gpu(pixels, settings.reading_vision, contrast_boost, edge_enhancement)
                metrics = self._update_metrics(start, (output.width, output.height), fallback=False)
                return ProcessingResult(success=True, output_buffer=output, used_fallback=False, metrics=metrics)
            except Exception as e:
                logger.warning(f"GPU processing failed, using CPU fallback for this call: {e}")

        return self._process_with_cpu_fallback(visual, contrast_boost, start)

    def _render_gpu(self, pixels: PixelBuffer, reading_vision: float,
                    contrast_boost: float, edge_enhancement: float) -> PixelBuffer:
        with self._lock:
            if self._shader is None or self._state != RendererState.GPU_READY:
                raise GPURenderError("Shader is not available")

            rgba = TF.to_tensor(pixels.data)  # [4, H, W] in [0, 1]
            rgb = rgba[:3].unsqueeze(0).to(self._device)
            with torch.no_grad():
                out = self._shader(rgb, reading_vision, contrast_boost, edge_enhancement)
            if not torch.isfinite(out).all():
                raise GPURenderError("Shader produced non-finite output")
            out_rgb = (out.squeeze(0) * 255.0).round().clamp(0, 255).to(torch.uint8)
            out_rgb = out_rgb.permute(1, 2, 0).cpu().numpy()

        data = pixels.data.copy()
        data[..., :3] = out_rgb
        return PixelBuffer(data)

    def _process_with_cpu_fallback(self, visual: VisualSource, contrast_boost: float,
                                   start: float) -> ProcessingResult:
        size = (visual.width, visual.height)
        try:
            pixels = visual.read_pixels()
            output = render_cpu_fallback(pixels, contrast_boost)
        except SourceUnreadableError as e:
            logger.warning(f"CPU fallback cannot read source: {e}")
            return self._failure(start, ErrorKind.SOURCE_UNREADABLE, size)
        except InvalidSourceError as e:
            logger.warning(f"CPU fallback rejected source: {e}")
            return self._failure(start, ErrorKind.INVALID_SOURCE, size)
        except Exception as e:
            logger.error(f"CPU fallback failed: {e}")
            return self._failure(start, ErrorKind.GPU_RENDER_FAILURE, size)

        metrics = self._update_metrics(start, (output.width, output.height), fallback=True)
        return ProcessingResult(success=True, output_buffer=output, used_fallback=True, metrics=metrics)

    def _failure(self, start: float, error: ErrorKind, size: Tuple[int, int]) -> ProcessingResult:
        metrics = self._update_metrics(start, size, fallback=True)
        return ProcessingResult(success=False, used_fallback=True, metrics=metrics, error=error)

    def _update_metrics(self, start: float, size: Tuple[int, int], fallback: bool) -> PerformanceMetrics:
        processing_time = (time.perf_counter() - start) * 1000
        width, height = size
        metrics = PerformanceMetrics(
            fps=1000.0 / processing_time if processing_time > 0 else 0.0,
            processing_time_ms=processing_time,
            memory_usage_mb=(width * height * BYTES_PER_PIXEL) / (1024 * 1024),
            battery_impact_pct=min(processing_time / 100.0, MAX_BATTERY_IMPACT_PCT),
            fallback_triggered=fallback,
        )
        with self._lock:
            self._metrics = metrics
        return dataclasses.replace(metrics)

    def update_settings(self, **partial) -> None:
        """Replace individual settings fields, e.g. update_settings(contrast_boost=40)."""
        updated = dataclasses.replace(self.settings, **partial)
        updated.validate()
        self.settings = updated
        logger.debug(f"GPURenderer settings updated: {partial}")

    def get_performance_metrics(self) -> PerformanceMetrics:
        with self._lock:
            return dataclasses.replace(self._metrics)

    def get_context_info(self) -> ContextInfo:
        with self._lock:
            device = self._device
        if device is None:
            return ContextInfo()

        try:
            if device.type == 'cuda':
                props = torch.cuda.get_device_properties(device)
                return ContextInfo(
                    vendor='NVIDIA',
                    renderer=props.name,
                    version=f"CUDA {torch.version.cuda}",
                    extensions=[f"sm_{props.major}{props.minor}"] + (
                        ['cudnn'] if torch.backends.cudnn.is_available() else []
                    ),
                )
            if device.type == 'mps':
                return ContextInfo(vendor='Apple', renderer='Metal Performance Shaders',
                                   version=f"torch {torch.__version__}")
            return ContextInfo(vendor='PyTorch', renderer='CPU', version=f"torch {torch.__version__}")
        except Exception as e:
            logger.warning(f"Device context info not available: {e}")
            return ContextInfo()

    def dispose(self) -> None:
        """Release the shader and device memory. Safe from any state."""
        with self._lock:
            if self._state == RendererState.UNINITIALIZED:
                self._state = RendererState.DISPOSED
                return
            device = self._device
            self._shader = None
            self._device = None
            self._state = RendererState.DISPOSED
            if device is not None and device.type == 'cuda':
                torch.cuda.empty_cache()
        logger.info("GPURenderer: resources disposed")
