"""
Presbyopia correction shader as a torch module.

One pass over the frame, stages chained in fixed order:
1. Unsharp mask with a Gaussian blur whose radius grows with reading vision
2. Sobel edge enhancement above a threshold
3. Local contrast from neighborhood min/max
4. Global contrast and brightness

Sampling outside the frame clamps to the edge pixel. Input and output are
RGB tensors [B, 3, H, W] in [0, 1].
"""

import torch
import torch.nn as nn
import torch.nn.functional as F

# Reading vision at which sharpening reaches full strength.
MAX_READING_VISION = 3.5
UNSHARP_GAIN = 1.5
LOCAL_CONTRAST_GAIN = 0.5


class PresbyopiaShader(nn.Module):
    def __init__(self, blur_taps: int = 3, local_contrast_radius: int = 2,
                 edge_threshold: float = 0.1, channels: int = 3):
        super().__init__()
        self.blur_taps = blur_taps
        self.local_contrast_radius = local_contrast_radius
        self.edge_threshold = edge_threshold
        self.channels = channels

        sobel_x = torch.tensor([[-1, 0, 1], [-2, 0, 2], [-1, 0, 1]], dtype=torch.float32)
        sobel_y = torch.tensor([[-1, -2, -1], [0, 0, 0], [1, 2, 1]], dtype=torch.float32)
        # Depthwise: one kernel copy per channel.
        self.register_buffer('sobel_x', sobel_x.view(1, 1, 3, 3).repeat(channels, 1, 1, 1))
        self.register_buffer('sobel_y', sobel_y.view(1, 1, 3, 3).repeat(channels, 1, 1, 1))

        offsets = torch.arange(-blur_taps, blur_taps + 1, dtype=torch.float32)
        # i^2 + j^2 for every tap of the blur window.
        self.register_buffer('tap_distance', offsets.view(-1, 1) ** 2 + offsets.view(1, -1) ** 2)

    def gaussian_kernel(self, radius: float) -> torch.Tensor:
        """Normalized depthwise Gaussian kernel [C, 1, K, K]."""
        weights = torch.exp(-self.tap_distance / (2.0 * radius * radius))
        weights = weights / weights.sum()
        k = weights.shape[-1]
        return weights.view(1, 1, k, k).repeat(self.channels, 1, 1, 1)

    def _depthwise(self, image: torch.Tensor, kernel: torch.Tensor) -> torch.Tensor:
        pad = kernel.shape[-1] // 2
        padded = F.pad(image, (pad, pad, pad, pad), mode='replicate')
        return F.conv2d(padded, kernel, groups=self.channels)

    def unsharp_mask(self, image: torch.Tensor, reading_vision: float) -> torch.Tensor:
        radius = 1.0 + (reading_vision / MAX_READING_VISION) * 2.0
        blurred = self._depthwise(image, self.gaussian_kernel(radius))
        strength = min(1.0, max(0.0, reading_vision / MAX_READING_VISION))
        sharpened = image + (image - blurred) * strength * UNSHARP_GAIN
        return sharpened.clamp(0.0, 1.0)

    def edge_magnitude(self, image: torch.Tensor) -> torch.Tensor:
        gx = self._depthwise(image, self.sobel_x)
        gy = self._depthwise(image, self.sobel_y)
        return torch.sqrt(gx * gx + gy * gy)

    def enhance_edges(self, image: torch.Tensor, edge_enhancement: float) -> torch.Tensor:
        edges = self.edge_magnitude(image)
        strength = min(1.0, max(0.0, edge_enhancement / 100.0))
        mask = (edges >= self.edge_threshold).to(image.dtype)  # GLSL step()
        return (image + mask * edges * strength).clamp(0.0, 1.0)

    def enhance_local_contrast(self, image: torch.Tensor, contrast_boost: float) -> torch.Tensor:
        r = self.local_contrast_radius
        padded = F.pad(image, (r, r, r, r), mode='replicate')
        local_max = F.max_pool2d(padded, kernel_size=2 * r + 1, stride=1)
        local_min = -F.max_pool2d(-padded, kernel_size=2 * r + 1, stride=1)
        enhanced = image + (local_max - local_min) * (contrast_boost / 100.0) * LOCAL_CONTRAST_GAIN
        return enhanced.clamp(0.0, 1.0)

    @staticmethod
    def adjust_contrast(image: torch.Tensor, contrast_boost: float) -> torch.Tensor:
        contrast = min(2.0, max(0.5, 1.0 + contrast_boost / 100.0))
        brightness = 1.0 + contrast_boost / 200.0
        adjusted = ((image - 0.5) * contrast + 0.5) * brightness
        return adjusted.clamp(0.0, 1.0)

    def forward(self, image: torch.Tensor, reading_vision: float,
                contrast_boost: float, edge_enhancement: float) -> torch.Tensor:
        color = self.unsharp_mask(image, reading_vision)
        color = self.enhance_edges(color, edge_enhancement)
        color = self.enhance_local_contrast(color, contrast_boost)
        return self.adjust_contrast(color, contrast_boost)
