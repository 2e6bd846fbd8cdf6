"""
Theme Icon Source - Render app icons from XDG icon themes with Pillow.

An icon handle is either an absolute file path or an icon-theme name
("firefox"). Names are looked up in the XDG icon directories, preferring
larger raster sizes, then in /usr/share/pixmaps. The result is an RGBA
square of a fixed size with the icon centred on a transparent canvas.
"""

import os
from pathlib import Path
from typing import Callable, Optional

from loguru import logger
from PIL import Image, UnidentifiedImageError

from ..sources import IconNotFoundError, IconSource

DEFAULT_ICON_SIZE_PX = 96
PIXMAPS_PATH = "/usr/share/pixmaps"

# Raster formats Pillow can open; SVG would need a separate renderer
ICON_EXTENSIONS = (".png", ".xpm", ".ico", ".jpg")
PREFERRED_SIZES = ("256x256", "128x128", "96x96", "64x64", "48x48", "32x32", "scalable")


def xdg_icon_dirs() -> list[Path]:
    """Icon base directories in XDG precedence order."""
    xdg_data_home = os.environ.get("XDG_DATA_HOME", os.path.expanduser("~/.local/share"))
    data_dirs = os.environ.get("XDG_DATA_DIRS", "/usr/local/share:/usr/share").split(":")

    paths = [Path(xdg_data_home) / "icons"]
    paths.extend(Path(d) / "icons" for d in data_dirs if d)
    paths.append(Path(PIXMAPS_PATH))
    return paths


class ThemeIconSource(IconSource):
    """
    Renders icons for catalog components.

    Args:
        resolver: Maps (component_id, user_id) to an icon handle, or None
                  when the component is unknown
        size_px: Edge length of the rendered square
        search_paths: Icon base directories (defaults to XDG locations)
        theme: Theme directory searched first under each base
    """

    def __init__(
        self,
        resolver: Callable[[str, str], Optional[str]],
        size_px: int = DEFAULT_ICON_SIZE_PX,
        search_paths: Optional[list[Path]] = None,
        theme: str = "hicolor",
    ):
        self.resolver = resolver
        self.size_px = size_px
        self.search_paths = [Path(p) for p in search_paths] if search_paths is not None else xdg_icon_dirs()
        self.theme = theme

    def render_icon(self, component_id: str, user_id: str) -> Image.Image:
        handle = self.resolver(component_id, user_id)
        if not handle:
            raise IconNotFoundError(f"Component not found: {component_id}")

        path = self.find_icon_file(handle)
        if path is None:
            raise IconNotFoundError(f"No icon file for {handle!r} ({component_id})")

        try:
            with Image.open(path) as img:
                return self._fit(img.convert("RGBA"))
        except (OSError, UnidentifiedImageError, Image.DecompressionBombError) as e:
            logger.warning(f"Could not decode icon {path}: {e}")
            raise IconNotFoundError(f"Unreadable icon {path}") from e

    def find_icon_file(self, handle: str) -> Optional[Path]:
        """Locate the file for an icon handle (path or theme name)."""
        candidate = Path(handle)
        if candidate.is_absolute():
            return candidate if candidate.is_file() else None

        for base in self.search_paths:
            # Flat directories such as pixmaps
            for ext in ICON_EXTENSIONS:
                flat = base / f"{handle}{ext}"
                if flat.is_file():
                    return flat

            theme_dir = base / self.theme
            for size in PREFERRED_SIZES:
                for ext in ICON_EXTENSIONS:
                    themed = theme_dir / size / "apps" / f"{handle}{ext}"
                    if themed.is_file():
                        return themed
        return None

    def _fit(self, img: Image.Image) -> Image.Image:
        """Scale to fit size_px and centre on a transparent square."""
        img.thumbnail((self.size_px, self.size_px), Image.LANCZOS)
        if img.size != (self.size_px, self.size_px):
            # thumbnail() never upscales
            scale = self.size_px / max(img.size)
            new_size = (max(1, round(img.width * scale)), max(1, round(img.height * scale)))
            img = img.resize(new_size, Image.LANCZOS)

        canvas = Image.new("RGBA", (self.size_px, self.size_px), (0, 0, 0, 0))
        offset = ((self.size_px - img.width) // 2, (self.size_px - img.height) // 2)
        canvas.paste(img, offset, img)
        return canvas
