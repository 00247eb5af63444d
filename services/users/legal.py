"""
Terms of service / privacy policy version gating.

A user needs to re-accept a document whenever their stored version differs
from the current one. Versions are compared as plain strings.
"""

from typing import Optional

from common.constants import (
    CURRENT_PRIVACY_VERSION,
    CURRENT_TERMS_VERSION,
    LEGAL_LAST_UPDATED,
)
from common.timeutils import isoformat
from models.user_models import User


def needs_terms_update(user_version: Optional[str]) -> bool:
    return user_version is None or user_version != CURRENT_TERMS_VERSION


def needs_privacy_update(user_version: Optional[str]) -> bool:
    return user_version is None or user_version != CURRENT_PRIVACY_VERSION


def needs_legal_update(terms_version: Optional[str], privacy_version: Optional[str]) -> bool:
    return needs_terms_update(terms_version) or needs_privacy_update(privacy_version)


def legal_status(user: User) -> dict:
    needs_terms = needs_terms_update(user.terms_version)
    needs_privacy = needs_privacy_update(user.privacy_version)
    return {
        "needsUpdate": needs_terms or needs_privacy,
        "needsTermsUpdate": needs_terms,
        "needsPrivacyUpdate": needs_privacy,
        "currentTermsVersion": CURRENT_TERMS_VERSION,
        "currentPrivacyVersion": CURRENT_PRIVACY_VERSION,
        "userTermsVersion": user.terms_version,
        "userPrivacyVersion": user.privacy_version,
        "termsAcceptedAt": isoformat(user.terms_accepted_at),
        "privacyAcceptedAt": isoformat(user.privacy_accepted_at),
        "lastUpdated": LEGAL_LAST_UPDATED,
    }
