"""Tests for GPURenderer - state machine, shader pass, CPU fallback and metrics"""

import sys
from pathlib import Path

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent.parent))

import logging
import time

import numpy as np
import pytest
import torch

from maxvue.config import RendererConfig
from maxvue.processing.sources import BufferSource
from maxvue.rendering.cpu_fallback import apply_global_adjustment, brightness_factor, contrast_factor, render_cpu_fallback
from maxvue.rendering.gpu_renderer import INIT_WARN_MS, GPURenderer, RendererState, effective_parameters
from maxvue.rendering.shader import PresbyopiaShader
from maxvue.types import CorrectionSettings, ErrorKind, PixelBuffer, ProcessingStrategy
from maxvue.utils.exceptions import InvalidSettingsError


def make_frame(width: int = 64, height: int = 32) -> PixelBuffer:
    """Gray frame with a dark bar, alpha 200."""
    data = np.full((height, width, 4), 180, dtype=np.uint8)
    data[height // 4:height // 2, width // 4:(3 * width) // 4, :3] = 20
    data[..., 3] = 200
    return PixelBuffer(data)


def cpu_device_renderer(**settings) -> GPURenderer:
    return GPURenderer(settings=CorrectionSettings(**settings), config=RendererConfig(device='cpu'))


def test_initialize_state_machine():
    """initialize() is idempotent and ends in gpu-ready on an available device."""
    print("\nRenderer Test 1: State machine")
    renderer = cpu_device_renderer()
    assert renderer.state == RendererState.UNINITIALIZED
    assert renderer.initialize(), "Shader pass should initialize on the torch CPU device"
    assert renderer.state == RendererState.GPU_READY
    assert renderer.initialize(), "Second initialize should be a no-op returning True"
    assert not renderer.is_using_fallback()
    renderer.dispose()
    assert renderer.state == RendererState.DISPOSED
    assert not renderer.initialize(), "Disposed renderer cannot be reinitialized"
    print("  State machine: PASSED")


def test_no_gpu_enters_fallback(monkeypatch):
    """Requesting CUDA on a host without it falls back and never retries."""
    print("\nRenderer Test 2: No GPU available")
    monkeypatch.setattr(torch.cuda, 'is_available', lambda: False)
    renderer = GPURenderer(config=RendererConfig(device='cuda'))
    assert not renderer.initialize()
    assert renderer.state == RendererState.FALLBACK
    assert renderer.is_using_fallback()
    assert not renderer.initialize(), "Fallback is terminal for this instance"

    result = renderer.process_image(make_frame(), settings=CorrectionSettings(contrast_boost=40))
    assert result.success
    assert result.used_fallback
    assert result.metrics.fallback_triggered
    assert result.output_buffer is not None
    print("  No GPU available: PASSED")


def test_shader_compile_failure_enters_fallback(monkeypatch):
    def broken_forward(self, image, reading_vision, contrast_boost, edge_enhancement):
        raise RuntimeError("kernel launch failed")

    monkeypatch.setattr(PresbyopiaShader, 'forward', broken_forward)
    renderer = cpu_device_renderer()
    assert not renderer.initialize()
    assert renderer.state == RendererState.FALLBACK


def test_slow_initialization_is_logged(monkeypatch, caplog):
    def slow_forward(self, image, reading_vision, contrast_boost, edge_enhancement):
        time.sleep(INIT_WARN_MS / 1000.0 + 0.1)
        raise RuntimeError("device stalled")

    monkeypatch.setattr(PresbyopiaShader, 'forward', slow_forward)
    renderer = cpu_device_renderer()
    with caplog.at_level(logging.WARNING, logger='maxvue.utils.error_handling'):
        assert not renderer.initialize()
    assert renderer.state == RendererState.FALLBACK
    assert any('initialize' in r.message and 'exceeded' in r.message for r in caplog.records)


def test_gpu_path_output():
    """The shader pass produces an enhanced frame with alpha preserved."""
    print("\nRenderer Test 3: Shader pass")
    renderer = cpu_device_renderer(reading_vision=2.0, calibration=0.5, contrast_boost=30, edge_enhancement=50)
    renderer.initialize()
    frame = make_frame()
    result = renderer.process_image(frame)

    assert result.success and not result.used_fallback
    assert result.error is None
    out = result.output_buffer
    assert (out.width, out.height) == (frame.width, frame.height)
    assert np.array_equal(out.data[..., 3], frame.data[..., 3]), "Alpha must be preserved"
    assert not np.array_equal(out.data[..., :3], frame.data[..., :3]), "Enhancement should change pixels"
    assert np.array_equal(frame.data[0, 0], [180, 180, 180, 200]), "Source buffer must not be mutated"
    renderer.dispose()
    print("  Shader pass: PASSED")


def test_per_call_gpu_error_uses_cpu_for_that_call():
    renderer = cpu_device_renderer(contrast_boost=20)
    renderer.initialize()
    working_shader = renderer._shader

    def failing_shader(*args, **kwargs):
        raise RuntimeError("device lost")

    renderer._shader = failing_shader
    result = renderer.process_image(make_frame())
    assert result.success and result.used_fallback
    assert renderer.state == RendererState.GPU_READY, "A per-call failure must not change renderer state"

    renderer._shader = working_shader
    result = renderer.process_image(make_frame())
    assert not result.used_fallback
    renderer.dispose()


def test_use_gpu_flags_route_to_cpu():
    renderer = cpu_device_renderer(contrast_boost=20)
    renderer.initialize()
    result = renderer.process_image(make_frame(), settings=CorrectionSettings(contrast_boost=20, use_gpu=False))
    assert result.used_fallback

    result = renderer.process_image(make_frame(), strategy=ProcessingStrategy(use_gpu=False))
    assert result.used_fallback
    renderer.dispose()


def test_global_step_convergence():
    """The shader's global contrast/brightness step equals the CPU fallback numerically."""
    print("\nRenderer Test 4: GPU/CPU convergence")
    rng = np.random.default_rng(0)
    rgb = rng.random((16, 24, 3), dtype=np.float32)
    for boost in [0, 25, 60, 100]:
        cpu = apply_global_adjustment(rgb, contrast_factor(boost), brightness_factor(boost))
        tensor = torch.from_numpy(rgb).permute(2, 0, 1).unsqueeze(0)
        gpu = PresbyopiaShader.adjust_contrast(tensor, boost).squeeze(0).permute(1, 2, 0).numpy()
        assert np.allclose(cpu, gpu, atol=1e-6), f"Paths diverge at contrast_boost={boost}"
    print("  GPU/CPU convergence: PASSED")


def test_flat_frame_matches_cpu_fallback():
    """With no sharpening or edge work, a flat frame renders the same on both paths."""
    data = np.full((24, 24, 4), 100, dtype=np.uint8)
    data[..., 3] = 255
    frame = PixelBuffer(data)

    renderer = cpu_device_renderer(contrast_boost=40)
    renderer.initialize()
    gpu = renderer.process_image(frame).output_buffer
    cpu = render_cpu_fallback(frame, 40)
    diff = np.abs(gpu.data.astype(int) - cpu.data.astype(int))
    assert diff.max() <= 1
    renderer.dispose()


def test_effective_parameters_apply_strategy():
    settings = CorrectionSettings(contrast_boost=80, edge_enhancement=50)
    strategy = ProcessingStrategy(contrast_boost=1.3, edge_enhancement=1.1)
    contrast, edges = effective_parameters(settings, strategy)
    assert contrast == 100.0, "Scaled contrast is clamped to 100"
    assert edges == pytest.approx(55.0)


def test_cpu_fallback_formula():
    data = np.zeros((2, 2, 4), dtype=np.uint8)
    data[..., :3] = 255
    data[..., 3] = 77
    out = render_cpu_fallback(PixelBuffer(data), 50)
    # (1.0 - 0.5) * 1.5 + 0.5 = 1.25, * 1.25 -> clamped to 1.0
    assert np.all(out.data[..., :3] == 255)
    assert np.all(out.data[..., 3] == 77)
    assert contrast_factor(-100) == 0.5 and contrast_factor(150) == 2.0


def test_unusable_sources_fail_both_paths():
    """Zero-dimension and tainted sources yield success=False, never an exception."""
    print("\nRenderer Test 5: Unusable sources")
    renderer = cpu_device_renderer()
    renderer.initialize()

    empty = PixelBuffer(np.zeros((0, 0, 4), dtype=np.uint8))
    result = renderer.process_image(empty)
    assert not result.success
    assert result.error == ErrorKind.INVALID_SOURCE

    tainted = BufferSource(buffer=make_frame(), tainted=True)
    result = renderer.process_image(tainted)
    assert not result.success
    assert result.error == ErrorKind.SOURCE_UNREADABLE

    result = renderer.process_image("not a source")
    assert not result.success
    assert result.error == ErrorKind.INVALID_SOURCE
    renderer.dispose()
    print("  Unusable sources: PASSED")


def test_performance_metrics():
    renderer = GPURenderer(settings=CorrectionSettings(contrast_boost=10), config=RendererConfig(device='cpu'))
    renderer.initialize()
    result = renderer.process_image(make_frame(64, 32))
    metrics = renderer.get_performance_metrics()

    assert metrics.processing_time_ms > 0
    assert metrics.fps == pytest.approx(1000.0 / metrics.processing_time_ms)
    assert metrics.memory_usage_mb == pytest.approx(64 * 32 * 4 / (1024 * 1024))
    assert 0 <= metrics.battery_impact_pct <= 5.0
    assert metrics.fallback_triggered == result.used_fallback
    renderer.dispose()


def test_update_settings():
    renderer = GPURenderer()
    renderer.update_settings(contrast_boost=40, reading_vision=1.5)
    assert renderer.settings.contrast_boost == 40
    assert renderer.settings.reading_vision == 1.5
    with pytest.raises(InvalidSettingsError):
        renderer.update_settings(contrast_boost=200)
    assert renderer.settings.contrast_boost == 40, "Rejected update must leave settings unchanged"


def test_context_info():
    renderer = cpu_device_renderer()
    info = renderer.get_context_info()
    assert info.vendor == 'Unknown' and info.renderer == 'Unknown'

    renderer.initialize()
    info = renderer.get_context_info()
    assert info.renderer == 'CPU'
    assert info.version.startswith('torch')
    renderer.dispose()
    assert renderer.get_context_info().vendor == 'Unknown'


def test_dispose_is_safe_from_any_state():
    renderer = GPURenderer()
    renderer.dispose()
    assert renderer.state == RendererState.DISPOSED
    renderer.dispose()

    result = renderer.process_image(make_frame(), settings=CorrectionSettings(contrast_boost=10))
    assert result.success and result.used_fallback, "Disposed renderer still answers on the CPU path"


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
