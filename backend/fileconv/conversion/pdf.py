"""Image -> PDF executor: embed one image on a single page sized to its pixels."""
import io
import logging
from typing import Optional

from reportlab.lib.utils import ImageReader
from reportlab.pdfgen import canvas

from fileconv.conversion.images import is_svg, open_image, rasterize_svg
from fileconv.conversion.models import ConvertedFile
from fileconv.conversion.resize import to_portable_mode
from fileconv.detector import file_extension
from fileconv.errors import ConversionError, ErrorCode
from fileconv.registry import content_type_for, output_filename

logger = logging.getLogger("fileconv.pdf")

PDF_IMAGE_EXTENSIONS = ("jpg", "jpeg", "png", "gif", "webp", "bmp", "svg", "tiff", "tif", "avif")


def validate_pdf_source(filename: Optional[str], content_type: Optional[str]) -> None:
    ctype = (content_type or "").lower()
    if ctype.startswith("image/") or file_extension(filename) in PDF_IMAGE_EXTENSIONS:
        return
    raise ConversionError(ErrorCode.INVALID_FILE_TYPE, "Only image files can be converted to PDF")


def convert_image_to_pdf(data: bytes, filename: str, content_type: Optional[str]) -> ConvertedFile:
    validate_pdf_source(filename, content_type)
    raster = rasterize_svg(data) if is_svg(filename, content_type) else data
    with open_image(raster) as img:
        try:
            png = io.BytesIO()
            to_portable_mode(img).save(png, format="PNG")
            width, height = img.size
            png.seek(0)

            buf = io.BytesIO()
            pdf = canvas.Canvas(buf, pagesize=(width, height))
            pdf.setTitle(output_filename(filename, "pdf").rsplit(".", 1)[0])
            pdf.drawImage(ImageReader(png), 0, 0, width=width, height=height, mask="auto")
            pdf.showPage()
            pdf.save()
        except MemoryError as e:
            raise ConversionError(
                ErrorCode.IMAGE_TOO_LARGE,
                "Image is too large to process. Please resize or compress the image before conversion.",
            ) from e
        except (ValueError, OSError) as e:
            logger.exception("Image to PDF conversion failed for %s: %s", filename, e)
            raise ConversionError(
                "IMAGE_TO_PDF_FAILED",
                "Failed to convert IMAGE to PDF.",
                status_code=500,
                details=str(e),
            ) from e

    content = buf.getvalue()
    out_name = output_filename(filename, "pdf")
    logger.info("Converted %s -> %s (%sx%s, %s bytes)", filename, out_name, width, height, len(content))
    return ConvertedFile(content=content, content_type=content_type_for("pdf"), filename=out_name)
