"""
Preprocessor: Resize

Caps device photos and label scans at MAX_WIDTH x MAX_HEIGHT so inline payloads
stay small while serial plates remain legible. Images that already fit pass
through untouched.
"""
from PIL import Image

MAX_WIDTH  = 1600
MAX_HEIGHT = 1600


def fits(size: tuple[int, int]) -> bool:
    width, height = size
    return width <= MAX_WIDTH and height <= MAX_HEIGHT


def target_size(size: tuple[int, int]) -> tuple[int, int]:
    """Largest size with the same aspect ratio that fits the limit."""
    width, height = size
    scale = min(MAX_WIDTH / width, MAX_HEIGHT / height, 1.0)
    return max(1, round(width * scale)), max(1, round(height * scale))


def process(image: Image.Image) -> Image.Image:
    if fits(image.size):
        return image
    return image.resize(target_size(image.size), Image.Resampling.LANCZOS)
