"""Seed the development database with a profile and a channel mapping."""
from __future__ import annotations

import sys
from pathlib import Path

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from sqlalchemy.orm import Session

from backend.knowledge.core.db import SessionLocal
from backend.knowledge.ingest.contacts import normalize_contact_number
from backend.knowledge.models import ChannelUserMapping, UserProfile

DEV_USER_ID = "dev-user"
DEV_PHONE_NUMBER = "+55 (11) 98765-4321"


def _get_or_create_profile(session: Session, user_id: str, phone_number: str) -> UserProfile:
    profile = session.get(UserProfile, user_id)
    if profile is None:
        profile = UserProfile(user_id=user_id, display_name="Dev User", phone_number=phone_number)
        session.add(profile)
        session.flush()
    return profile


def _ensure_channel_mapping(session: Session, user_id: str, number: str) -> ChannelUserMapping:
    mapping = (
        session.query(ChannelUserMapping)
        .filter(ChannelUserMapping.channel_identifier == number)
        .one_or_none()
    )
    if mapping is None:
        mapping = ChannelUserMapping(channel_identifier=number, user_id=user_id, is_verified=True)
        session.add(mapping)
        session.flush()
    return mapping


def main(session_factory=SessionLocal) -> None:
    """Entry point for seeding data."""

    normalized = normalize_contact_number(DEV_PHONE_NUMBER)
    with session_factory() as session:
        profile = _get_or_create_profile(session, DEV_USER_ID, normalized)
        mapping = _ensure_channel_mapping(session, profile.user_id, normalized)
        session.commit()

        print("Seeded development data:")
        print(f"  User ID: {profile.user_id}")
        print(f"  Channel identifier: {mapping.channel_identifier}")


if __name__ == "__main__":
    main()
