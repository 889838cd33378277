"""Closed value sets shared by the extraction client and the HTTP shell.

Categories, currencies and models are fixed lists. The provider for a
model is derived from a static lookup, never chosen by the user.
"""

from enum import Enum
from pathlib import PurePath

from config import settings


class UnknownModelError(ValueError):
    """Model identifier is not one of the supported extraction models."""


class ExtractionModel(str, Enum):
    COMMAND_R = "cohere/command-r-08-2024"
    MIXTRAL = "mistralai/mixtral-8x7b-instruct"


# Must stay total over ExtractionModel
PROVIDERS: dict[ExtractionModel, str] = {
    ExtractionModel.COMMAND_R: "Cohere",
    ExtractionModel.MIXTRAL: "Fireworks",
}

MODEL_DESCRIPTIONS: dict[ExtractionModel, str] = {
    ExtractionModel.COMMAND_R: "",
    ExtractionModel.MIXTRAL: "faster but less accurate",
}

CATEGORIES: tuple[str, ...] = (
    "Air Transportation", "Communications", "Meals", "Entertainment",
    "Equipment", "Ground Transportation", "Insurance", "Legal", "Other",
    "Travel",
)

CURRENCIES: tuple[str, ...] = (
    "AED", "AFN", "ALL", "AMD", "ANG", "AOA", "ARS", "AUD", "AWG", "AZN",
    "BAM", "BBD", "BDT", "BGN", "BHD", "BIF", "BMD", "BND", "BOB", "BRL",
    "BSD", "BTN", "BWP", "BYN", "BZD", "CAD", "CDF", "CHF", "CLP", "CNY",
    "COP", "CRC", "CUC", "CUP", "CVE", "CZK", "DJF", "DKK", "DOP", "DZD",
    "EGP", "ERN", "ETB", "EUR", "FJD", "FKP", "GBP", "GEL", "GGP", "GHS",
    "GIP", "GMD", "GNF", "GTQ", "GYD", "HKD", "HNL", "HRK", "HTG", "HUF",
    "IDR", "ILS", "IMP", "INR", "IQD", "IRR", "ISK", "JEP", "JMD", "JOD",
    "JPY", "KES", "KGS", "KHR", "KMF", "KPW", "KRW", "KWD", "KYD", "KZT",
    "LAK", "LBP", "LKR", "LRD", "LSL", "LYD", "MAD", "MDL", "MGA", "MKD",
    "MMK", "MNT", "MOP", "MRU", "MUR", "MVR", "MWK", "MXN", "MYR", "MZN",
    "NAD", "NGN", "NIO", "NOK", "NPR", "NZD", "OMR", "PAB", "PEN", "PGK",
    "PHP", "PKR", "PLN", "PYG", "QAR", "RON", "RSD", "RUB", "RWF", "SAR",
    "SBD", "SCR", "SDG", "SEK", "SGD", "SHP", "SLL", "SOS", "SPL", "SRD",
    "STN", "SVC", "SYP", "SZL", "THB", "TJS", "TMT", "TND", "TOP", "TRY",
    "TTD", "TVD", "TWD", "TZS", "UAH", "UGX", "USD", "UYU", "UZS", "VEF",
    "VND", "VUV", "WST", "XAF", "XCD", "XDR", "XOF", "XPF", "YER", "ZAR",
    "ZMW", "ZWD",
)

DEFAULT_CURRENCY = "USD"

ACCEPTED_EXTENSIONS: tuple[str, ...] = (".png", ".jpg", ".jpeg", ".pdf")


def resolve_model(model: str | ExtractionModel) -> ExtractionModel:
    """Return the ExtractionModel for an identifier or raise UnknownModelError."""
    try:
        return ExtractionModel(model)
    except ValueError as e:
        raise UnknownModelError(f"Unsupported extraction model: {model!r}") from e


def provider_for(model: str | ExtractionModel) -> str:
    """Derive the upstream provider name for a model identifier."""
    return PROVIDERS[resolve_model(model)]


def default_model() -> ExtractionModel:
    return resolve_model(settings.DEFAULT_MODEL)


def is_accepted_filename(filename: str | None) -> bool:
    if not filename:
        return False
    return PurePath(filename).suffix.lower() in ACCEPTED_EXTENSIONS
