"""
Configuration management for MaxVue.

Centralized configuration with:
- Environment variable support
- Type validation
- Default values
"""

import os
import json
from pathlib import Path
from typing import Optional, Dict, Any, List
from dataclasses import dataclass, field, asdict


DEFAULT_CORS_DOMAINS = [
    'picsum.photos',
    'images.unsplash.com',
    'via.placeholder.com',
    'placeholder.com',
]


@dataclass
class TextDetectionConfig:
    """Edge detection and text region finding."""
    sobel_threshold: float = 0.1
    min_region_size: int = 8
    max_region_size: int = 2000
    merge_distance: float = 50.0
    min_confidence: float = 0.3
    enable_font_size_estimation: bool = True
    transition_threshold: int = 50  # luminance delta counted as a line transition

    def __post_init__(self):
        """Validate configuration values."""
        if not (0 <= self.sobel_threshold <= 1):
            raise ValueError(f"sobel_threshold must be in [0, 1], got {self.sobel_threshold}")
        if self.min_region_size <= 0:
            raise ValueError(f"min_region_size must be > 0, got {self.min_region_size}")
        if self.max_region_size < self.min_region_size:
            raise ValueError(
                f"max_region_size must be >= min_region_size, got {self.max_region_size} < {self.min_region_size}"
            )
        if self.merge_distance < 0:
            raise ValueError(f"merge_distance must be >= 0, got {self.merge_distance}")
        if not (0 <= self.min_confidence <= 1):
            raise ValueError(f"min_confidence must be in [0, 1], got {self.min_confidence}")
        if self.transition_threshold <= 0:
            raise ValueError(f"transition_threshold must be > 0, got {self.transition_threshold}")


@dataclass
class ContrastAnalysisConfig:
    """Local contrast grid and enhancement map."""
    grid_cell_size: int = 20
    contrast_method: str = 'rms'
    enhancement_sensitivity: float = 1.0
    max_enhancement: float = 1.0
    priority_threshold: float = 0.7

    def __post_init__(self):
        """Validate configuration values."""
        if self.grid_cell_size <= 0:
            raise ValueError(f"grid_cell_size must be > 0, got {self.grid_cell_size}")
        if self.contrast_method not in ['rms', 'michelson', 'weber']:
            raise ValueError(f"Invalid contrast_method: {self.contrast_method}")
        if self.enhancement_sensitivity < 0:
            raise ValueError(f"enhancement_sensitivity must be >= 0, got {self.enhancement_sensitivity}")
        if self.max_enhancement < 0:
            raise ValueError(f"max_enhancement must be >= 0, got {self.max_enhancement}")


@dataclass
class ContentClassificationConfig:
    """Text-density thresholds for content type classification."""
    email_threshold: float = 0.2
    article_threshold: float = 0.3
    ui_threshold: float = 0.05
    document_threshold: float = 0.4
    enable_layout_analysis: bool = True
    enable_color_analysis: bool = True

    def __post_init__(self):
        """Validate configuration values."""
        for name in ('email_threshold', 'article_threshold', 'ui_threshold', 'document_threshold'):
            value = getattr(self, name)
            if not (0 <= value <= 1):
                raise ValueError(f"{name} must be in [0, 1], got {value}")


@dataclass
class PerformanceConfig:
    """Analyzer time budget, caching and parallelism."""
    max_processing_time_ms: float = 1000.0
    enable_caching: bool = True
    max_cache_size: int = 20
    use_parallel: bool = True
    max_workers: int = 3

    def __post_init__(self):
        """Validate configuration values."""
        if self.max_processing_time_ms <= 0:
            raise ValueError(f"max_processing_time_ms must be > 0, got {self.max_processing_time_ms}")
        if self.max_cache_size <= 0:
            raise ValueError(f"max_cache_size must be > 0, got {self.max_cache_size}")
        if self.max_workers <= 0:
            raise ValueError(f"max_workers must be > 0, got {self.max_workers}")


@dataclass
class AnalyzerConfig:
    """ContentAnalyzer configuration."""
    text_detection: TextDetectionConfig = field(default_factory=TextDetectionConfig)
    contrast_analysis: ContrastAnalysisConfig = field(default_factory=ContrastAnalysisConfig)
    content_classification: ContentClassificationConfig = field(default_factory=ContentClassificationConfig)
    performance: PerformanceConfig = field(default_factory=PerformanceConfig)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'AnalyzerConfig':
        return cls(
            text_detection=TextDetectionConfig(**data.get('text_detection', {})),
            contrast_analysis=ContrastAnalysisConfig(**data.get('contrast_analysis', {})),
            content_classification=ContentClassificationConfig(**data.get('content_classification', {})),
            performance=PerformanceConfig(**data.get('performance', {}))
        )

    @classmethod
    def from_file(cls, path: Path) -> 'AnalyzerConfig':
        """Load configuration from JSON file."""
        with open(path, 'r') as f:
            data = json.load(f)
        return cls.from_dict(data)

    def to_file(self, path: Path) -> None:
        """Save configuration to JSON file."""
        with open(path, 'w') as f:
            json.dump(asdict(self), f, indent=2)


@dataclass
class RendererConfig:
    """GPU renderer configuration."""
    device: str = 'auto'
    allow_cpu_device: bool = False  # run the shader pass on torch's CPU device when no GPU exists
    edge_threshold: float = 0.1
    blur_taps: int = 3  # Gaussian kernel spans -taps..taps
    local_contrast_radius: int = 2

    def __post_init__(self):
        """Validate configuration values."""
        if self.device not in ['auto', 'cuda', 'mps', 'cpu']:
            raise ValueError(f"Invalid device: {self.device}")
        if not (0 <= self.edge_threshold <= 1):
            raise ValueError(f"edge_threshold must be in [0, 1], got {self.edge_threshold}")
        if self.blur_taps <= 0:
            raise ValueError(f"blur_taps must be > 0, got {self.blur_taps}")
        if self.local_contrast_radius <= 0:
            raise ValueError(f"local_contrast_radius must be > 0, got {self.local_contrast_radius}")


@dataclass
class OriginPolicyConfig:
    """Which sources may have their pixels read."""
    page_origin: Optional[str] = None
    cors_enabled_domains: List[str] = field(default_factory=lambda: list(DEFAULT_CORS_DOMAINS))


@dataclass
class MonitoringConfig:
    window_size: int = 500
    latency_threshold_ms: float = 100.0
    fallback_rate_threshold: float = 0.5

    def __post_init__(self):
        """Validate configuration values."""
        if self.window_size <= 0:
            raise ValueError(f"window_size must be > 0, got {self.window_size}")
        if not (0 <= self.fallback_rate_threshold <= 1):
            raise ValueError(f"fallback_rate_threshold must be in [0, 1], got {self.fallback_rate_threshold}")


@dataclass
class Config:
    """Main configuration class."""
    analyzer: AnalyzerConfig = field(default_factory=AnalyzerConfig)
    renderer: RendererConfig = field(default_factory=RendererConfig)
    origin_policy: OriginPolicyConfig = field(default_factory=OriginPolicyConfig)
    monitoring: MonitoringConfig = field(default_factory=MonitoringConfig)
    log_level: str = 'INFO'
    log_dir: Path = Path("logs")

    @classmethod
    def from_env(cls) -> 'Config':
        """Load configuration from environment variables."""
        cors_domains = os.getenv('MAXVUE_CORS_DOMAINS')
        return cls(
            analyzer=AnalyzerConfig(
                contrast_analysis=ContrastAnalysisConfig(
                    contrast_method=os.getenv('MAXVUE_CONTRAST_METHOD', 'rms')
                ),
                performance=PerformanceConfig(
                    max_processing_time_ms=float(os.getenv('MAXVUE_MAX_PROCESSING_TIME_MS', '1000')),
                    enable_caching=os.getenv('MAXVUE_ENABLE_CACHING', 'true').lower() == 'true',
                    max_cache_size=int(os.getenv('MAXVUE_MAX_CACHE_SIZE', '20')),
                    use_parallel=os.getenv('MAXVUE_USE_PARALLEL', 'true').lower() == 'true'
                )
            ),
            renderer=RendererConfig(
                device=os.getenv('MAXVUE_DEVICE', 'auto'),
                allow_cpu_device=os.getenv('MAXVUE_ALLOW_CPU_DEVICE', 'false').lower() == 'true'
            ),
            origin_policy=OriginPolicyConfig(
                page_origin=os.getenv('MAXVUE_PAGE_ORIGIN', None),
                cors_enabled_domains=(
                    [d.strip() for d in cors_domains.split(',') if d.strip()]
                    if cors_domains else list(DEFAULT_CORS_DOMAINS)
                )
            ),
            log_level=os.getenv('MAXVUE_LOG_LEVEL', 'INFO'),
            log_dir=Path(os.getenv('MAXVUE_LOG_DIR', 'logs'))
        )

    @classmethod
    def from_file(cls, path: Path) -> 'Config':
        """Load configuration from JSON file."""
        with open(path, 'r') as f:
            data = json.load(f)
        return cls(
            analyzer=AnalyzerConfig.from_dict(data.get('analyzer', {})),
            renderer=RendererConfig(**data.get('renderer', {})),
            origin_policy=OriginPolicyConfig(**data.get('origin_policy', {})),
            monitoring=MonitoringConfig(**data.get('monitoring', {})),
            log_level=data.get('log_level', 'INFO'),
            log_dir=Path(data.get('log_dir', 'logs'))
        )

    def to_file(self, path: Path) -> None:
        """Save configuration to JSON file."""
        with open(path, 'w') as f:
            json.dump(self.to_dict(), f, indent=2)

    def to_dict(self) -> Dict[str, Any]:
        """Convert configuration to dictionary."""
        return {
            'analyzer': asdict(self.analyzer),
            'renderer': self.renderer.__dict__,
            'origin_policy': {
                'page_origin': self.origin_policy.page_origin,
                'cors_enabled_domains': list(self.origin_policy.cors_enabled_domains)
            },
            'monitoring': self.monitoring.__dict__,
            'log_level': self.log_level,
            'log_dir': str(self.log_dir)
        }
