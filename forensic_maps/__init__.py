"""
Pixel-level forensic heatmaps for tamper and AI-generation screening.

Every engine reads a working-resolution pixel buffer (larger side capped at
512 px) and returns a PNG-encoded RGBA heatmap together with the scalar
field it was rendered from.  ``forensic_maps.pipeline`` runs them together.

Modules
-------
utils       Pixel buffer source, working resolution, luma, output helpers
codec       ImageCodec collaborator (Pillow decode / JPEG / PNG)
colormap    Thermal "jet" colormap
ela         Error Level Analysis with percentile contrast scaling
edges       Sobel gradient-magnitude map
noisemap    Local Noise Analysis (8x8 block variance)
mfr         Median Filter Residual density map
pipeline    ForensicPipeline / ForensicReport orchestration
config      ForensicConfig + YAML loading
errors      DecodeError, EncodeError, FetchError
"""

from .errors import DecodeError, EncodeError, FetchError, ForensicError
from .config import ForensicConfig, load_config
from .codec import ImageCodec, PillowCodec
from .colormap import apply_jet, jet_color
from .utils import load_working_rgba, to_gray_u8, working_resolution
from .ela import ELAResult, ela_analyze
from .edges import SobelResult, sobel_analyze
from .noisemap import LNAResult, lna_analyze
from .mfr import MFRResult, mfr_analyze
from .pipeline import ALL_MAPS, ESSENTIAL_MAPS, SECONDARY_MAPS, ForensicPipeline, ForensicReport

__version__ = "0.1.0"

__all__ = [
    "ForensicError", "DecodeError", "EncodeError", "FetchError",
    "ForensicConfig", "load_config",
    "ImageCodec", "PillowCodec",
    "jet_color", "apply_jet",
    "working_resolution", "load_working_rgba", "to_gray_u8",
    "ELAResult", "ela_analyze",
    "SobelResult", "sobel_analyze",
    "LNAResult", "lna_analyze",
    "MFRResult", "mfr_analyze",
    "ALL_MAPS", "ESSENTIAL_MAPS", "SECONDARY_MAPS",
    "ForensicPipeline", "ForensicReport",
]
