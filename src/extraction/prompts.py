"""Instruction sent to the AI endpoint along with the drawing.

The base instruction asks for a JSON array of field records. A client
profile appends its own fields; the user's free-text context (an e-mail, a
note) is appended last.
"""

from __future__ import annotations

from src.schemas.catalog import ClientProfile

BASE_INSTRUCTION = """\
Tu es un ingenieur industriel specialise dans l interpretation rigoureuse de plans techniques. \
Tu dois extraire des informations techniques precises, structurees et exploitables automatiquement \
a partir d un dessin technique. Extraire toutes les informations necessaires a l estimation de prix \
ou a la fabrication d une piece. Ces donnees doivent etre normalisees, fiables, structurees, \
contextualisees et accompagnees d un niveau de confiance et d une justification.

IMPORTANT: Tu dois repondre UNIQUEMENT avec un tableau JSON d'objets. Chaque objet doit avoir les cles suivantes:
- "name": le nom du champ (ex: "reference_dessin", "description", "materiau", "type_piece", "longueur", \
"largeur", "hauteur", "epaisseur", "procedes", "notes_importantes", etc.)
- "data_type": le type de donnees ("string", "number", "boolean", "array", "object", etc.)
- "value": la valeur extraite (peut etre une string, un nombre, un objet, ou un tableau selon le type)
- "confidence": un score de confiance entre 0 et 100
- "justification": l'explication de comment la valeur a ete obtenue

Format attendu:
[
  {"name": "reference_dessin", "data_type": "string", "value": "...", "confidence": 95, \
"justification": "Present dans le cartouche"},
  {"name": "materiau", "data_type": "string", "value": "...", "confidence": 100, \
"justification": "Indique dans la zone materiau"},
  {"name": "type_piece", "data_type": "string", "value": "tube | plat | corniere | plaque | autre", \
"confidence": 90, "justification": "Deduit de la geometrie ou du texte"},
  {"name": "longueur", "data_type": "number", "value": 100, "confidence": 95, \
"justification": "Mesure sur le plan"},
  {"name": "procedes", "data_type": "array", "value": ["decoupe laser", "pliage", "percage"], \
"confidence": 90, "justification": "Indique dans la legende ou infere du plan"}
]"""

RULES = """\
Ne jamais inventer d information si elle n est pas visible. Toujours expliquer comment chaque valeur \
a ete trouvee. Si une unite est implicite, tu peux la deduire mais avec prudence. Utilise ton jugement \
d expert pour identifier des procedes ou types standards. Tu dois rendre la sortie exploitable \
automatiquement: pas de texte hors JSON. En cas de doute: si une valeur est manquante ou illisible, \
utilise value: "Non specifie" avec confidence: 0 et une justification claire."""


def _profile_section(profile: ClientProfile) -> str:
    details = []
    for field in profile.custom_fields:
        label = field.label or field.name
        instruction = field.instruction or f"Extraire {label}"
        if field.unit:
            instruction += f" (unite: {field.unit})"
        details.append(f"{field.name} ({label}): {instruction}")

    section = f'PROFIL D\'EXTRACTION "{profile.name}"\nAnalyse le document technique.'
    if details:
        section += " Extrais les informations suivantes: " + ", ".join(details)
        section += (
            "\n\nCes champs doivent etre inclus dans le tableau JSON avec le format standard "
            "(name, data_type, value, confidence, justification)."
        )
    return section


def _context_section(context_text: str) -> str:
    return (
        f"CONTEXTE ADDITIONNEL FOURNI PAR L'UTILISATEUR:\n{context_text}\n\n"
        "Utilise ce contexte pour enrichir et contextualiser ton analyse. Si le contexte contient des "
        "informations pertinentes (ex: courriel, notes, specifications), prends-les en compte pour "
        "ameliorer la precision de l'extraction."
    )


def build_instruction(profile: ClientProfile | None, context_text: str | None = None) -> str:
    """Assemble the full AI instruction for one drawing."""
    sections = [BASE_INSTRUCTION]
    if profile is not None:
        sections.append(_profile_section(profile))
    sections.append(RULES)
    if context_text and context_text.strip():
        sections.append(_context_section(context_text.strip()))
    return "\n\n".join(sections)
