"""WhatsApp message templates.

Static texts sent by the automation. Placeholders are limited to
`allowed_params` so no customer data ends up in a template by accident.
"""

from typing import Any

TEMPLATES: dict[str, dict[str, Any]] = {
    "welcome": {
        "text": (
            "¡Hola! 👋 Soy Hernán, Consultor de FincasYa.com 🏡\n"
            "Con gusto te ayudo a encontrar la finca ideal. Cuéntame:\n\n"
            "📅 ¿Para qué fechas la necesitas?\n"
            "👥 ¿Cuántas personas serían?\n"
            "🫂 ¿Es un plan familiar, de amigos o empresarial?\n"
            "🎉 ¿Van a realizar algún evento?\n\n"
            "Y si ya tienes una zona en mente (Girardot, Melgar, Restrepo...), "
            "¡dímela y te muestro las opciones disponibles! ✨"
        ),
        "allowed_params": [],
    },
    "single_listing_card": {
        "text": "Aquí está {title} 🏡",
        "allowed_params": ["title"],
    },
    "available_listings_card": {
        "text": "Estas son nuestras fincas disponibles para tus fechas:",
        "allowed_params": [],
    },
}


def render(template_key: str, params: dict[str, Any] | None = None) -> str:
    """Render template with params. Validates allowed_params.

    Raises:
        ValueError: If template_key unknown or params contains disallowed keys.
    """
    if template_key not in TEMPLATES:
        raise ValueError(f"Unknown template: {template_key}")

    params = params or {}
    template = TEMPLATES[template_key]
    extras = set(params) - set(template["allowed_params"])
    if extras:
        raise ValueError(f"Disallowed params for {template_key}: {extras}")

    return template["text"].format(**params)


WELCOME_MESSAGE = render("welcome")
