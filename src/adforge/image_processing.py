import io

from PIL import Image, ImageOps

from .config import Config
from .logger import AdForgeLogger


def _to_png_bytes(image: Image.Image) -> bytes:
    buf = io.BytesIO()
    image.save(buf, format="PNG")
    return buf.getvalue()


class ImageProcessor:
    """Handles resizing to platform sizes and product compositing."""

    def __init__(self, config: Config, logger: AdForgeLogger):
        self.config = config
        self.logger = logger

    def fit_to_size(self, image_data: bytes, width: int, height: int) -> bytes:
        """Scale to cover width x height, then centre-crop to exactly that size."""
        img = Image.open(io.BytesIO(image_data))
        if img.size == (width, height):
            return image_data

        self.logger.debug(f"Fitting {img.size[0]}x{img.size[1]} to {width}x{height}")
        fitted = ImageOps.fit(img.convert("RGBA"), (width, height), method=Image.LANCZOS, centering=(0.5, 0.5))
        return _to_png_bytes(fitted)

    def composite_product(self, background_data: bytes, product_data: bytes, scale_factor: float = None) -> bytes:
        """Paste a transparent product cut-out centred on the background."""
        if scale_factor is None:
            scale_factor = self.config.PRODUCT_SCALE

        background = Image.open(io.BytesIO(background_data)).convert("RGBA")
        product = Image.open(io.BytesIO(product_data)).convert("RGBA")

        # Scale the product to fit inside scale_factor of the shorter background side
        bw, bh = background.size
        box = int(min(bw, bh) * scale_factor)
        ratio = min(box / product.size[0], box / product.size[1])
        new_size = (max(1, int(product.size[0] * ratio)), max(1, int(product.size[1] * ratio)))
        product = product.resize(new_size, Image.LANCZOS)

        x = (bw - new_size[0]) // 2
        y = (bh - new_size[1]) // 2
        background.paste(product, (x, y), mask=product)
        self.logger.debug(f"Product composited at {(x, y, x + new_size[0], y + new_size[1])}")
        return _to_png_bytes(background)

    def mask_from_transparent(self, product_data: bytes) -> bytes:
        """Fill mask: white where the image is transparent (to generate), black where the product is."""
        img = Image.open(io.BytesIO(product_data)).convert("RGBA")
        alpha = img.split()[3]
        # Any partially opaque pixel belongs to the product
        alpha_binary = alpha.point(lambda v: 255 if v > 0 else 0)
        return _to_png_bytes(ImageOps.invert(alpha_binary))

    def center_on_canvas(self, product_data: bytes, width: int, height: int, scale_factor: float = None) -> bytes:
        """Place a product cut-out centred on a fully transparent width x height canvas."""
        canvas = Image.new("RGBA", (width, height), (0, 0, 0, 0))
        return self.composite_product(_to_png_bytes(canvas), product_data, scale_factor)
