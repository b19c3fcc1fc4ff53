from PIL import Image, ImageOps, UnidentifiedImageError
import io
import logging
from typing import Optional

from domain.exceptions import ConversionError

logger = logging.getLogger(__name__)

FIT_MODES = ("cover", "contain", "fill", "inside", "outside")
DEFAULT_FIT = "cover"


class ImageProcessingService:

    def resize(self, data: bytes, width: int, height: int, fit: Optional[str] = None) -> bytes:
        """Redimensiona una imagen y la devuelve en su formato original"""
        try:
            return ImageProcessingService.process_image(
                image_bytes=data,
                target_width=width,
                target_height=height,
                fit=fit or DEFAULT_FIT
            )
        except (UnidentifiedImageError, OSError) as e:
            logger.error(f"Error procesando imagen: {str(e)}")
            raise ConversionError(f"Failed to resize image: {e}") from e

    @staticmethod
    def process_image(image_bytes: bytes, target_width: int, target_height: int, fit: str = DEFAULT_FIT) -> bytes:
        """Aplica la estrategia de ajuste pedida sin modificar el buffer de entrada"""
        if fit not in FIT_MODES:
            raise ValueError(f"Unknown fit mode '{fit}'. Valid options: {', '.join(FIT_MODES)}")

        size = (target_width, target_height)

        # Abrir imagen desde bytes
        with Image.open(io.BytesIO(image_bytes)) as img:
            image_format = img.format if img.format in Image.SAVE else "PNG"

            # JPEG no admite transparencia ni paleta
            if image_format == "JPEG":
                img = ImageProcessingService._to_rgb(img)

            if fit == "fill":
                resized_img = img.resize(size, Image.LANCZOS)
            elif fit == "cover":
                resized_img = ImageOps.fit(img, size, Image.LANCZOS)
            elif fit == "inside":
                resized_img = ImageOps.contain(img, size, Image.LANCZOS)
            elif fit == "outside":
                resized_img = ImageOps.cover(img, size, Image.LANCZOS)
            else:
                resized_img = ImageProcessingService._pad(img, target_width, target_height)

            # Guardar en buffer de bytes
            img_byte_arr = io.BytesIO()
            if image_format == "JPEG":
                resized_img.save(img_byte_arr, format=image_format, quality=85)
            else:
                resized_img.save(img_byte_arr, format=image_format)

            return img_byte_arr.getvalue()

    @staticmethod
    def _to_rgb(img: Image.Image) -> Image.Image:
        # Convertir a RGB si es necesario
        if img.mode in ('RGBA', 'LA'):
            background = Image.new('RGB', img.size, (255, 255, 255))
            background.paste(img, mask=img.split()[-1])
            return background
        if img.mode != 'RGB':
            return img.convert('RGB')
        return img

    @staticmethod
    def _pad(img: Image.Image, target_width: int, target_height: int) -> Image.Image:
        """Encaja la imagen manteniendo relación de aspecto y rellena el resto del lienzo"""
        # Calcular nuevas dimensiones
        original_width, original_height = img.size
        ratio = min(target_width / original_width, target_height / original_height)
        new_size = (max(1, int(original_width * ratio)), max(1, int(original_height * ratio)))

        if img.mode in ('RGBA', 'LA', 'P'):
            img = img.convert('RGBA')
            canvas = Image.new('RGBA', (target_width, target_height), (0, 0, 0, 0))
        else:
            img = img.convert('RGB')
            canvas = Image.new('RGB', (target_width, target_height), (255, 255, 255))

        # Redimensionar y aplicar padding
        resized_img = img.resize(new_size, Image.LANCZOS)
        offset = (
            (target_width - new_size[0]) // 2,
            (target_height - new_size[1]) // 2
        )
        canvas.paste(resized_img, offset)
        return canvas
