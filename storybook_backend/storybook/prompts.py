SYSTEM_PROMPT = """Eres un escritor experto de cuentos infantiles en español.
- Frases cortas y claras, vocabulario adecuado a la edad del lector.
- Tono cálido y positivo; sin violencia ni miedo excesivo.
- Cuando se pida JSON, responde ÚNICAMENTE con JSON válido, sin explicaciones."""


IDEA_PROMPT = """Sugiere 3 ideas concisas y creativas para un cuento infantil en español.
Cada idea debe ser una sola frase. Separa cada idea con un salto de línea."""


TITLE_PROMPT_TEMPLATE = """Crea un título corto y atractivo en español para un cuento infantil, de 5 palabras como máximo, basado en la idea: '{idea}'.
IMPORTANTE: Responde ÚNICAMENTE con el texto del título. No incluyas comillas, ni la palabra "Título:", ni ninguna otra explicación.
Ejemplo de respuesta para la idea "Un dragón con miedo a la oscuridad": El Dragón Miedoso"""


CHARACTER_PROMPT_TEMPLATE = """Basado en la idea de cuento '{idea}', describe en un párrafo detallado la apariencia visual del personaje principal para un cuento infantil.
Incluye detalles de su ropa, pelo, cara y cualquier rasgo distintivo.
La descripción debe ser en inglés para que la use un modelo de generación de imágenes."""


IMAGE_STYLE = "digital art illustration for a children's book, vibrant colors, friendly characters"


STORY_SCHEMA = r"""[
  {
    "text": "<texto de la página en español, 40 palabras como máximo>",
    "imagePrompt": "<descripción detallada en INGLÉS de la ilustración>"
  }
]"""


STORY_PROMPT_TEMPLATE = """Genera un cuento para niños de {age_label}. La idea es: '{idea}'.
El cuento debe tener exactamente {num_pages} páginas.
Devuelve la respuesta EXCLUSIVAMENTE en formato JSON: un array con {num_pages} objetos, uno por página.

Esquema:
{schema}

Reglas:
- "text": breve, no más de 40 palabras, en español.
- "imagePrompt": en INGLÉS, al estilo de '{style}'.
- IMPORTANTE: en CADA "imagePrompt" incluye esta descripción del personaje para mantener la consistencia visual: '{character_description}'.
Devuelve ÚNICAMENTE el JSON."""


NARRATION_PROMPT_TEMPLATE = "Narra el siguiente texto: {text}"
