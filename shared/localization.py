"""Resolution of per-language product text."""

from shared.events import LocalizedText, ProductPayload

DEFAULT_LANGUAGE = "fr"
LANGUAGES = ("fr", "en")


def resolve_text(product: ProductPayload, language: str | None) -> LocalizedText:
    """Return the product's name/description in *language*.

    Falls back to the base fields when the language has no entry, and
    fills a missing localized description from the base description.
    """
    localized = product.translations.get(language or "")
    if localized is None:
        return LocalizedText(name=product.name, description=product.description)
    return LocalizedText(
        name=localized.name or product.name,
        description=localized.description if localized.description is not None else product.description,
    )
