"""reportlab painters stamped onto pages by ``PDFCodec.overlay``."""

from PIL import Image
from reportlab.lib.utils import ImageReader

from ..models.options import WatermarkOptions

WATERMARK_RGB = {
    "gray": (0.7, 0.7, 0.7),
    "red": (0.8, 0.2, 0.2),
    "blue": (0.2, 0.2, 0.8),
    "green": (0.2, 0.8, 0.2),
    "black": (0.1, 0.1, 0.1),
}

EDGE_MARGIN = 50
PAGE_NUMBER_MARGIN = 30
PAGE_NUMBER_FONT_SIZE = 10


def text_watermark_painter(options: WatermarkOptions):
    def paint(stamp, width, height, _position):
        stamp.setFillColorRGB(*WATERMARK_RGB[options.color])
        stamp.setFillAlpha(options.opacity)
        stamp.setFont("Helvetica", options.font_size)

        if options.position == "diagonal":
            stamp.saveState()
            stamp.translate(width / 2, height / 2)
            stamp.rotate(45)
            stamp.drawCentredString(0, 0, options.text)
            stamp.restoreState()
        elif options.position == "top-left":
            stamp.drawString(EDGE_MARGIN, height - EDGE_MARGIN, options.text)
        elif options.position == "top-right":
            stamp.drawRightString(width - EDGE_MARGIN, height - EDGE_MARGIN, options.text)
        elif options.position == "bottom-left":
            stamp.drawString(EDGE_MARGIN, EDGE_MARGIN, options.text)
        elif options.position == "bottom-right":
            stamp.drawRightString(width - EDGE_MARGIN, EDGE_MARGIN, options.text)
        else:
            stamp.drawCentredString(width / 2, height / 2, options.text)

    return paint


def image_watermark_painter(image: Image.Image, options: WatermarkOptions):
    source = ImageReader(image)
    image_width, image_height = image.size
    aspect_ratio = image_width / image_height

    def paint(stamp, width, height, _position):
        # Fit inside 30% of the page, keeping the aspect ratio
        max_width = width * 0.3
        max_height = height * 0.3
        draw_width = max_width
        draw_height = max_width / aspect_ratio
        if draw_height > max_height:
            draw_height = max_height
            draw_width = max_height * aspect_ratio

        if options.position == "top-left":
            x, y = EDGE_MARGIN, height - draw_height - EDGE_MARGIN
        elif options.position == "top-right":
            x, y = width - draw_width - EDGE_MARGIN, height - draw_height - EDGE_MARGIN
        elif options.position == "bottom-left":
            x, y = EDGE_MARGIN, EDGE_MARGIN
        elif options.position == "bottom-right":
            x, y = width - draw_width - EDGE_MARGIN, EDGE_MARGIN
        else:
            x, y = (width - draw_width) / 2, (height - draw_height) / 2

        stamp.setFillAlpha(options.opacity)
        stamp.drawImage(source, x, y, width=draw_width, height=draw_height, mask="auto")

    return paint


def page_number_painter(position: str):
    vertical, horizontal = position.split("-", 1)

    def paint(stamp, width, height, page_position):
        text = str(page_position)
        y = height - PAGE_NUMBER_MARGIN if vertical == "top" else PAGE_NUMBER_MARGIN
        stamp.setFillColorRGB(0.2, 0.2, 0.2)
        stamp.setFont("Helvetica", PAGE_NUMBER_FONT_SIZE)
        if horizontal == "left":
            stamp.drawString(PAGE_NUMBER_MARGIN, y, text)
        elif horizontal == "right":
            stamp.drawRightString(width - PAGE_NUMBER_MARGIN, y, text)
        else:
            stamp.drawCentredString(width / 2, y, text)

    return paint
