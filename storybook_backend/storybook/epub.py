"""
EPUB 3 export built with ebooklib.

Layout inside the package folder: ``images/cover.jpg``, ``images/pageN.jpg``,
``text/pageN.xhtml``, ``css/stylesheet.css``, ``toc.ncx`` (playOrder 1..N)
and ``nav.xhtml``. Every image is re-encoded to JPEG with Pillow, whatever
format the page held (data URI, remote file, placeholder PNG).
"""
import asyncio, base64, binascii, html, io, logging, uuid
from typing import List, Optional

import httpx
from PIL import Image, UnidentifiedImageError

from .errors import ExportError
from .exports import ExportFile, filename_for
from .models import StoryPage

logger = logging.getLogger(__name__)

EPUB_CSS = """body { font-family: sans-serif; }
img { max-width: 100%; height: auto; display: block; margin: 0 auto; }
p { text-align: center; margin-top: 1em; }
"""

PAGE_TEMPLATE = """<html xmlns="http://www.w3.org/1999/xhtml" xmlns:epub="http://www.idpf.org/2007/ops" xml:lang="es">
<head><title>Página {number}</title></head>
<body>
  {image}
  <p>{text}</p>
</body>
</html>"""


def to_jpeg(data: bytes) -> bytes:
    try:
        with Image.open(io.BytesIO(data)) as img:
            img.load()
            if img.mode in ("RGBA", "LA") or (img.mode == "P" and "transparency" in img.info):
                img = img.convert("RGBA")
                background = Image.new("RGB", img.size, (255, 255, 255))
                background.paste(img, mask=img.split()[-1])  # alpha channel as mask
                img = background
            elif img.mode != "RGB":
                img = img.convert("RGB")
            out = io.BytesIO()
            img.save(out, format="JPEG", quality=90)
            return out.getvalue()
    except (UnidentifiedImageError, OSError) as e:
        raise ExportError(f"unreadable image: {e}", "Una de las ilustraciones no se pudo convertir.") from e


async def load_image(url: str, transport: Optional[httpx.AsyncBaseTransport] = None) -> bytes:
    if url.startswith("data:"):
        header, _, payload = url.partition(",")
        try:
            return base64.b64decode(payload) if ";base64" in header else payload.encode("utf-8")
        except (binascii.Error, ValueError) as e:
            raise ExportError(f"invalid data URI: {e}", "Una de las ilustraciones está dañada.") from e
    try:
        async with httpx.AsyncClient(timeout=30, transport=transport, follow_redirects=True) as client:
            r = await client.get(url)
            r.raise_for_status()
            return r.content
    except httpx.HTTPError as e:
        logger.error(f"Failed to fetch image {url[:100]}: {e}")
        raise ExportError(f"could not fetch image: {e}", "No se pudo descargar una de las ilustraciones.") from e


async def export_epub(pages: List[StoryPage], title: str,
                      transport: Optional[httpx.AsyncBaseTransport] = None) -> ExportFile:
    try:
        from ebooklib import epub
    except ImportError as e:
        raise ExportError(
            "ebooklib is not installed",
            "La librería para crear EPUB no está disponible. Instala las dependencias del proyecto.",
        ) from e

    cover_url = pages[0].image_url if pages else None
    if not cover_url:
        raise ExportError("no cover image", "Se necesita al menos una imagen para crear la portada del EPUB.")

    logger.info(f"Exporting {len(pages)} pages to EPUB")
    urls = [cover_url] + [p.image_url for p in pages if p.image_url]
    raw_images = await asyncio.gather(*(load_image(u, transport) for u in urls))
    jpegs = [to_jpeg(data) for data in raw_images]
    cover_jpeg, page_jpegs = jpegs[0], iter(jpegs[1:])

    book = epub.EpubBook()
    book.set_identifier(f"urn:uuid:{uuid.uuid4()}")
    book.set_title(title or "Cuento")
    book.set_language("es")
    book.add_author("Cuentos Mágicos AI")
    book.set_cover("images/cover.jpg", cover_jpeg, create_page=False)

    css_item = epub.EpubItem(
        uid="css", file_name="css/stylesheet.css",
        media_type="text/css", content=EPUB_CSS.encode("utf-8"),
    )
    book.add_item(css_item)

    chapters = []
    for number, page in enumerate(pages, start=1):
        image_tag = ""
        if page.image_url:
            book.add_item(epub.EpubImage(
                uid=f"img{number}", file_name=f"images/page{number}.jpg",
                media_type="image/jpeg", content=next(page_jpegs),
            ))
            image_tag = f'<img src="../images/page{number}.jpg" alt="Ilustración de la página {number}" />'

        chapter = epub.EpubHtml(
            uid=f"page{number}", title=f"Página {number}",
            file_name=f"text/page{number}.xhtml", lang="es",
        )
        chapter.content = PAGE_TEMPLATE.format(number=number, image=image_tag, text=html.escape(page.text)).encode("utf-8")
        chapter.add_link(href="../css/stylesheet.css", rel="stylesheet", type="text/css")
        book.add_item(chapter)
        chapters.append(chapter)

    book.toc = chapters
    book.spine = chapters
    book.add_item(epub.EpubNcx())
    book.add_item(epub.EpubNav())

    buffer = io.BytesIO()
    epub.write_epub(buffer, book, {"play_order": {"enabled": True, "start_from": 1}, "raise_exceptions": True})
    return ExportFile(
        filename=filename_for(title, "epub"),
        media_type="application/epub+zip",
        content=buffer.getvalue(),
    )
