"""
Provider-type bucketing for surveys.

Older uploads carry no explicit provider type, so the bucket is inferred:
explicit provider type first, then data category, then substrings of the
survey name and vendor label, then PHYSICIAN. The order matters; for
example "APP Call Pay" lands in CALL, not APP.
"""

import re
from typing import Optional
from app.models.survey import Survey, ProviderType, DataCategory

KNOWN_SOURCES = ["MGMA", "SullivanCotter", "Gallagher", "ECG", "AMGA"]


def _text(survey: Survey) -> str:
    return f"{survey.name or ''} {survey.survey_type or ''}".lower()


def is_call_pay_survey(survey: Survey) -> bool:
    return (
        survey.provider_type == ProviderType.CALL
        or survey.data_category == DataCategory.CALL_PAY
        or "call pay" in _text(survey)
    )


def is_moonlighting_survey(survey: Survey) -> bool:
    return survey.data_category == DataCategory.MOONLIGHTING or "moonlighting" in _text(survey)


def is_compensation_survey(survey: Survey) -> bool:
    if survey.data_category is not None:
        return survey.data_category == DataCategory.COMPENSATION
    return not is_call_pay_survey(survey) and not is_moonlighting_survey(survey)


def effective_provider_type(survey: Survey) -> ProviderType:
    """Bucket a survey belongs to when no filter-specific rule applies."""
    if survey.provider_type is not None:
        return ProviderType(survey.provider_type)

    if survey.data_category == DataCategory.CALL_PAY:
        return ProviderType.CALL
    if survey.data_category == DataCategory.CUSTOM:
        return ProviderType.CUSTOM

    text = _text(survey)
    if "call pay" in text:
        return ProviderType.CALL
    if re.search(r"\bapps?\b", text) or "advanced practice" in text:
        return ProviderType.APP
    # "physician"/"phys" and everything unrecognised
    return ProviderType.PHYSICIAN


def matches_provider_type(survey: Survey, provider_type: Optional[ProviderType]) -> bool:
    """
    Whether a survey is in scope for a provider-type filter.

    CALL takes every call-pay survey whatever its declared type. PHYSICIAN
    and APP exclude call-pay and moonlighting data; PHYSICIAN additionally
    requires compensation data.
    """
    if provider_type is None:
        return True

    effective = effective_provider_type(survey)
    call_pay = is_call_pay_survey(survey)
    moonlighting = is_moonlighting_survey(survey)

    if provider_type == ProviderType.CALL:
        return call_pay
    if provider_type == ProviderType.PHYSICIAN:
        return (
            effective == ProviderType.PHYSICIAN
            and not call_pay
            and not moonlighting
            and is_compensation_survey(survey)
        )
    if provider_type == ProviderType.APP:
        return effective == ProviderType.APP and not call_pay and not moonlighting
    return effective == provider_type


def derive_survey_source(survey_type: str) -> str:
    """Vendor name from a survey type label, e.g. "MGMA Physician" -> "MGMA"."""
    label = (survey_type or "").strip()
    lowered = label.lower()
    for source in KNOWN_SOURCES:
        if lowered.startswith(source.lower()):
            return source
    return label.split()[0] if label else "Unknown"


def derive_data_category(survey_type: str) -> DataCategory:
    lowered = (survey_type or "").lower()
    if "call pay" in lowered:
        return DataCategory.CALL_PAY
    if "moonlighting" in lowered:
        return DataCategory.MOONLIGHTING
    return DataCategory.COMPENSATION


def normalize_provider_type(value: Optional[str]) -> Optional[ProviderType]:
    """Map free-text provider type labels from upload forms onto the enum."""
    if not value:
        return None
    upper = value.strip().upper()
    if upper in ("PHYSICIAN", "STAFF PHYSICIAN", "STAFFPHYSICIAN", "PHYS"):
        return ProviderType.PHYSICIAN
    if upper in ("APP", "ADVANCED PRACTICE PROVIDER", "ADVANCED PRACTICE"):
        return ProviderType.APP
    if upper in ("CALL", "CALL PAY"):
        return ProviderType.CALL
    if upper == "CUSTOM":
        return ProviderType.CUSTOM
    raise ValueError(f"Unknown provider type '{value}'")
