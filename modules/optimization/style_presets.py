"""Style and image size preset management."""

from __future__ import annotations

import json
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Tuple

CUSTOM_PRESET_ID = "custom"
MIN_DIMENSION = 256
MAX_DIMENSION = 2048


@dataclass(slots=True)
class StylePreset:
    """Style text appended to the generation prompt."""

    id: str
    name: str
    description: str = ""
    prompt_suffix: str = ""


@dataclass(slots=True)
class ImageSize:
    id: str
    label: str
    width: int
    height: int


DEFAULT_PRESETS = (
    StylePreset(
        id="ecommerce",
        name="E-commerce Clean",
        description="Professional white background, studio lighting",
        prompt_suffix=(
            "Professional e-commerce product photography, clean white background, "
            "studio lighting, high resolution, sharp details"
        ),
    ),
    StylePreset(
        id="lifestyle",
        name="Lifestyle",
        description="Natural setting, warm and inviting",
        prompt_suffix=(
            "Lifestyle product photography, natural setting, warm lighting, "
            "authentic feel, high quality"
        ),
    ),
    StylePreset(
        id="minimalist",
        name="Minimalist",
        description="Simple, elegant, lots of whitespace",
        prompt_suffix=(
            "Minimalist product photography, simple composition, elegant, "
            "lots of negative space, clean aesthetic"
        ),
    ),
    StylePreset(
        id="bold",
        name="Bold & Colorful",
        description="Vibrant colors, energetic feel",
        prompt_suffix=(
            "Bold colorful product photography, vibrant colors, energetic, "
            "eye-catching, dynamic composition"
        ),
    ),
    StylePreset(
        id="premium",
        name="Premium Luxury",
        description="Dark background, dramatic lighting",
        prompt_suffix=(
            "Premium luxury product photography, dark moody background, dramatic lighting, "
            "sophisticated, high-end aesthetic"
        ),
    ),
    StylePreset(
        id="natural",
        name="Natural Organic",
        description="Earth tones, natural textures",
        prompt_suffix=(
            "Natural organic product photography, earth tones, natural textures, "
            "sustainable feel, authentic"
        ),
    ),
    StylePreset(id=CUSTOM_PRESET_ID, name="Custom", description="Define your own style"),
)

IMAGE_SIZES = (
    ImageSize(id="1:1", label="1:1 Square", width=1024, height=1024),
    ImageSize(id="4:3", label="4:3 Landscape", width=1024, height=768),
    ImageSize(id="3:4", label="3:4 Portrait", width=768, height=1024),
    ImageSize(id="16:9", label="16:9 Wide", width=1024, height=576),
    ImageSize(id="custom", label="Custom", width=1024, height=1024),
)


def clamp_dimension(value: object, default: int = 1024) -> int:
    try:
        numeric = int(value)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        return default
    return max(MIN_DIMENSION, min(numeric, MAX_DIMENSION))


def resolve_size(size_id: str, custom_width: object = None, custom_height: object = None) -> Tuple[int, int]:
    """Return (width, height) for a size preset; custom sizes are clamped."""
    if size_id == "custom":
        return clamp_dimension(custom_width), clamp_dimension(custom_height)
    for size in IMAGE_SIZES:
        if size.id == size_id:
            return size.width, size.height
    return IMAGE_SIZES[0].width, IMAGE_SIZES[0].height


class StylePresetRegistry:
    """In-memory registry of style presets."""

    def __init__(self, include_defaults: bool = True) -> None:
        self._presets: Dict[str, StylePreset] = {}
        if include_defaults:
            for preset in DEFAULT_PRESETS:
                self.add(preset)

    def load_from_file(self, path: Path) -> None:
        """Load extra or overriding presets from a JSON file."""
        if not path.exists():
            return
        with path.open("r", encoding="utf-8") as fp:
            data = json.load(fp)
        for entry in data:
            preset = StylePreset(
                id=entry["id"],
                name=entry.get("name", entry["id"]),
                description=entry.get("description", ""),
                prompt_suffix=entry.get("prompt_suffix", ""),
            )
            self.add(preset)

    def add(self, preset: StylePreset) -> None:
        """Register a new style preset."""
        self._presets[preset.id] = preset

    def list_presets(self) -> List[StylePreset]:
        """Return all registered presets."""
        return list(self._presets.values())

    def get(self, preset_id: str) -> StylePreset:
        """Retrieve a preset by id."""
        try:
            return self._presets[preset_id]
        except KeyError as exc:
            raise KeyError(f"Style preset '{preset_id}' not found") from exc

    def suffix_for(self, preset_id: str, custom_style: str = "") -> str:
        """Return the prompt suffix, using ``custom_style`` for the custom preset."""
        if preset_id == CUSTOM_PRESET_ID:
            return (custom_style or "").strip()
        try:
            return self.get(preset_id).prompt_suffix
        except KeyError:
            return self.list_presets()[0].prompt_suffix if self._presets else ""

    def display_name(self, preset_id: str) -> str:
        try:
            return self.get(preset_id).name
        except KeyError:
            return preset_id
