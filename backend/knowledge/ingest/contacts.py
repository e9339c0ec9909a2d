"""Identify users behind messaging channel contact numbers."""
from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Callable

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..core.config import settings
from ..core.errors import InputError, MetadataStoreError
from ..core.metrics import record_best_effort_failure
from ..models import ChannelUserMapping, UserProfile
from .namespaces import contact_owner_key

logger = logging.getLogger(__name__)

_NUMBER_CLEANER = re.compile(r"[^\d+]")


@dataclass(frozen=True, slots=True)
class ContactIdentity:
    """Outcome of identifying a contact; ``user_id`` is ``None`` for unknown contacts."""

    normalized_number: str
    user_id: str | None = None
    matched_by: str | None = None

    @property
    def owner_key(self) -> str:
        if self.user_id:
            return self.user_id
        return contact_owner_key(self.normalized_number)


def normalize_contact_number(raw: str, default_country_code: str | None = None) -> str:
    """Normalize a phone-like identifier to a canonical ``+<digits>`` form when possible."""

    country = default_country_code or settings.CHANNEL_DEFAULT_COUNTRY_CODE
    number = _NUMBER_CLEANER.sub("", raw or "")
    if not any(char.isdigit() for char in number):
        raise InputError("Contact number contains no digits")

    if number.startswith("00"):
        return "+" + number[2:]
    if number.startswith("+"):
        return number
    if len(number) == 11 and number.startswith("0"):
        return f"+{country}{number[1:]}"
    if len(number) > 10:
        return "+" + number
    if len(number) == 10:
        return f"+{country}{number}"
    return number


def number_variations(normalized: str, default_country_code: str | None = None) -> list[str]:
    """Return the distinct spellings under which a number may have been stored."""

    country = default_country_code or settings.CHANNEL_DEFAULT_COUNTRY_CODE
    variations = [normalized]

    national_prefix = f"+{country}"
    if normalized.startswith(national_prefix):
        national = normalized[len(national_prefix):]
        variations.append(national)
        if national.startswith("0"):
            variations.append(national[1:])
        else:
            variations.append("0" + national)

    if normalized.startswith("+"):
        variations.append(normalized[1:])
    else:
        variations.append("+" + normalized)

    return list(dict.fromkeys(variations))


class ContactIdentifier:
    """Resolve a contact number to a user through mappings and profiles.

    Lookup order is explicit channel mappings, then profiles by WhatsApp
    number, then profiles by phone number. Profile hits write a channel
    mapping so later lookups take the first path.
    """

    def __init__(
        self,
        session_factory: Callable[[], Session],
        *,
        default_country_code: str | None = None,
    ) -> None:
        self._session_factory = session_factory
        self._country = default_country_code or settings.CHANNEL_DEFAULT_COUNTRY_CODE

    def identify(self, raw_number: str) -> ContactIdentity:
        normalized = normalize_contact_number(raw_number, self._country)
        variations = number_variations(normalized, self._country)
        logger.debug("Identifying contact %s using variations %s", normalized, variations)

        try:
            with self._session_factory() as session:
                user_id = session.execute(
                    select(ChannelUserMapping.user_id)
                    .where(ChannelUserMapping.channel_identifier.in_(variations))
                    .order_by(ChannelUserMapping.created_at)
                    .limit(1)
                ).scalar_one_or_none()
                if user_id:
                    return ContactIdentity(normalized, user_id, "channel_mapping")

                profile = self._find_profile(session, UserProfile.whatsapp_number, variations)
                if profile is not None:
                    self._remember_mapping(session, profile, normalized)
                    return ContactIdentity(normalized, profile.user_id, "whatsapp_number")

                profile = self._find_profile(session, UserProfile.phone_number, variations)
                if profile is not None:
                    self._backfill_whatsapp_number(session, profile, normalized)
                    self._remember_mapping(session, profile, normalized)
                    return ContactIdentity(normalized, profile.user_id, "phone_number")
        except SQLAlchemyError as exc:
            logger.error("Contact lookup for %s failed: %s", normalized, exc)
            raise MetadataStoreError("Contact lookup failed") from exc

        logger.info("No user found for contact %s; using contact namespace", normalized)
        return ContactIdentity(normalized)

    @staticmethod
    def _find_profile(session: Session, column, variations: list[str]) -> UserProfile | None:
        return session.execute(
            select(UserProfile).where(column.in_(variations)).order_by(UserProfile.user_id).limit(1)
        ).scalar_one_or_none()

    def _remember_mapping(self, session: Session, profile: UserProfile, normalized: str) -> None:
        try:
            session.add(
                ChannelUserMapping(
                    channel_identifier=normalized, user_id=profile.user_id, is_verified=False
                )
            )
            session.commit()
            logger.info("Mapped contact %s to user %s", normalized, profile.user_id)
        except SQLAlchemyError as exc:
            session.rollback()
            record_best_effort_failure("channel_mapping")
            logger.warning("Could not store channel mapping for %s: %s", normalized, exc)

    def _backfill_whatsapp_number(
        self, session: Session, profile: UserProfile, normalized: str
    ) -> None:
        if profile.whatsapp_number:
            return
        try:
            profile.whatsapp_number = normalized
            session.commit()
        except SQLAlchemyError as exc:
            session.rollback()
            record_best_effort_failure("profile_backfill")
            logger.warning("Could not backfill whatsapp_number for %s: %s", profile.user_id, exc)
