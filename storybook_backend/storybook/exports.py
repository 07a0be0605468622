"""
HTML and audiobook exports. Both read a finished page list and never mutate it.
"""
import html, json, logging, re
from typing import List

from pydantic import BaseModel

from .audio import concat_pcm, pcm_bytes_to_wav
from .errors import ExportError
from .models import StoryPage

logger = logging.getLogger(__name__)


class ExportFile(BaseModel):
    filename: str
    media_type: str
    content: bytes


def filename_for(title: str, ext: str, suffix: str = "") -> str:
    stem = re.sub(r"\s+", "_", (title or "").strip()) or "cuento"
    return f"{stem}{suffix}.{ext}"


HTML_STYLE = """
    body { font-family: sans-serif; margin: 0; background-color: #f0f8ff; display: flex; flex-direction: column; align-items: center; justify-content: center; min-height: 100vh; }
    .storybook-container { width: 90%; max-width: 800px; background: white; border-radius: 16px; box-shadow: 0 10px 30px rgba(0,0,0,0.1); overflow: hidden; }
    .page { display: flex; flex-direction: column; align-items: center; padding: 20px; animation: fadeIn 0.5s; }
    @keyframes fadeIn { from { opacity: 0; } to { opacity: 1; } }
    img { width: 100%; height: auto; border-radius: 8px; margin-bottom: 20px; max-height: 400px; object-fit: cover; }
    .text-container { text-align: center; }
    p { font-size: 1.2rem; line-height: 1.6; color: #333; }
    audio { margin-top: 15px; width: 100%; }
    .navigation { display: flex; justify-content: space-between; align-items: center; padding: 20px; width: 90%; max-width: 800px; box-sizing: border-box; }
    button { background-color: #4A90E2; color: white; border: none; padding: 10px 20px; border-radius: 5px; font-size: 1rem; cursor: pointer; }
    button:disabled { background-color: #ccc; cursor: not-allowed; }
    #page-counter { font-size: 1rem; color: #555; }
"""

# Page-turn state lives in the script; __PCM_PLAYER__ is replaced per audio mode.
HTML_SCRIPT = """
    let currentPage = 1;
    const totalPages = __TOTAL__;
    const pageCounter = document.getElementById('page-counter');
    const prevBtn = document.getElementById('prevBtn');
    const nextBtn = document.getElementById('nextBtn');
__PCM_PLAYER__
    function showPage(pageNumber) {
      stopAudio();
      document.querySelectorAll('.page').forEach(p => p.style.display = 'none');
      document.getElementById('page-' + pageNumber).style.display = 'flex';
      pageCounter.textContent = 'Página ' + pageNumber + ' de ' + totalPages;
      prevBtn.disabled = pageNumber === 1;
      nextBtn.disabled = pageNumber === totalPages;
      currentPage = pageNumber;
    }

    prevBtn.addEventListener('click', () => { if (currentPage > 1) { showPage(currentPage - 1); playPage(currentPage); } });
    nextBtn.addEventListener('click', () => { if (currentPage < totalPages) { showPage(currentPage + 1); playPage(currentPage); } });

    showPage(1);
"""

# 16-bit signed LE mono PCM decoded into a Web Audio buffer; one source plays at a time.
WEB_AUDIO_PLAYER = """
    const SAMPLE_RATE = 24000;
    const pcmPages = __PCM_PAGES__;
    let audioCtx = null;
    let currentSource = null;

    function decodePcm(b64) {
      const binary = atob(b64);
      const bytes = new Uint8Array(binary.length);
      for (let i = 0; i < binary.length; i++) bytes[i] = binary.charCodeAt(i);
      const view = new DataView(bytes.buffer);
      const frames = Math.floor(bytes.length / 2);
      const buffer = audioCtx.createBuffer(1, frames, SAMPLE_RATE);
      const channel = buffer.getChannelData(0);
      for (let i = 0; i < frames; i++) channel[i] = view.getInt16(i * 2, true) / 32768;
      return buffer;
    }

    function stopAudio() {
      if (currentSource) {
        try { currentSource.stop(); } catch (e) {}
        currentSource.disconnect();
        currentSource = null;
      }
    }

    function playPage(pageNumber) {
      const b64 = pcmPages[pageNumber - 1];
      if (!b64) return;
      if (!audioCtx) audioCtx = new (window.AudioContext || window.webkitAudioContext)();
      stopAudio();
      const source = audioCtx.createBufferSource();
      source.buffer = decodePcm(b64);
      source.connect(audioCtx.destination);
      source.onended = () => { if (currentSource === source) currentSource = null; };
      currentSource = source;
      source.start();
    }

    document.querySelectorAll('.replay').forEach(btn => btn.addEventListener('click', () => playPage(currentPage)));
"""

ELEMENT_AUDIO_PLAYER = """
    function stopAudio() {
      document.querySelectorAll('audio').forEach(a => { a.pause(); a.currentTime = 0; });
    }

    function playPage(pageNumber) {}

    document.querySelectorAll('audio').forEach(a => a.addEventListener('play', () => {
      document.querySelectorAll('audio').forEach(other => { if (other !== a) other.pause(); });
    }));
"""


def _page_html(page: StoryPage, number: int, web_audio: bool) -> str:
    if web_audio:
        audio = '<button class="replay" type="button">Escuchar</button>'
    elif page.audio_url:
        audio = f'<audio controls src="{html.escape(page.audio_url, quote=True)}"></audio>'
    else:
        audio = ""
    image = ""
    if page.image_url:
        image = f'<img src="{html.escape(page.image_url, quote=True)}" alt="Ilustración para la página {number}">'
    return f"""
      <div class="page" id="page-{number}" style="display: {'flex' if number == 1 else 'none'};">
        {image}
        <div class="text-container">
          <p>{html.escape(page.text)}</p>
          {audio}
        </div>
      </div>"""


def build_html(pages: List[StoryPage], title: str) -> str:
    web_audio = bool(pages) and all(p.pcm_data for p in pages)
    if web_audio:
        # "</" is escaped so page data can never close the script element
        pcm_pages = json.dumps([p.pcm_data for p in pages]).replace("</", "<\\/")
        player = WEB_AUDIO_PLAYER.replace("__PCM_PAGES__", pcm_pages)
    else:
        player = ELEMENT_AUDIO_PLAYER
    script = HTML_SCRIPT.replace("__TOTAL__", str(len(pages))).replace("__PCM_PLAYER__", player)
    body = "".join(_page_html(p, i + 1, web_audio) for i, p in enumerate(pages))
    safe_title = html.escape(title or "")
    return f"""<!DOCTYPE html>
<html lang="es">
<head>
  <meta charset="UTF-8">
  <meta name="viewport" content="width=device-width, initial-scale=1.0">
  <title>{safe_title}</title>
  <style>{HTML_STYLE}</style>
</head>
<body>
  <h1>{safe_title}</h1>
  <div class="storybook-container">{body}
  </div>
  <div class="navigation">
    <button id="prevBtn">Anterior</button>
    <span id="page-counter">Página 1 de {len(pages)}</span>
    <button id="nextBtn">Siguiente</button>
  </div>
  <script>{script}</script>
</body>
</html>
"""


def export_html(pages: List[StoryPage], title: str) -> ExportFile:
    if not pages:
        raise ExportError("no pages to export", "No hay páginas para exportar.")
    logger.info(f"Exporting {len(pages)} pages to HTML")
    return ExportFile(
        filename=filename_for(title, "html"),
        media_type="text/html",
        content=build_html(pages, title).encode("utf-8"),
    )


def export_audiobook(pages: List[StoryPage], title: str, retains_pcm: bool = True) -> ExportFile:
    """Concatenate every page's PCM in page order into one WAV file."""
    if not retains_pcm:
        raise ExportError(
            "narration is playback-only in this strategy",
            "El audiolibro no está disponible con esta configuración: la narración solo se guarda para reproducirse.",
        )
    segments = [p.pcm_data for p in pages if p.pcm_data]
    if not segments:
        raise ExportError("no page carries audio data", "No hay audio para exportar.")
    pcm = concat_pcm(segments)
    logger.info(f"Exporting audiobook: {len(segments)} segments, {len(pcm)} PCM bytes")
    return ExportFile(
        filename=filename_for(title, "wav", suffix="_audiolibro"),
        media_type="audio/wav",
        content=pcm_bytes_to_wav(pcm),
    )
