"""Owner to namespace resolution with lazy provisioning."""
from __future__ import annotations

import hashlib
import logging
import re
import threading
from typing import Callable

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from ..core.config import settings
from ..core.errors import InputError, MetadataStoreError
from ..models import NamespaceMapping
from ..models.namespace_mappings import CONTACT_OWNER_PREFIX
from .storage import ObjectStoreGateway

logger = logging.getLogger(__name__)

_CONTACT_CLEANER = re.compile(r"[^0-9]+")
MAX_NAMESPACE_LENGTH = 63


def derive_user_namespace(user_identifier: str, prefix: str | None = None) -> str:
    """Return ``<prefix>-user-<first 16 hex chars of sha256(user)>``."""

    digest = hashlib.sha256(user_identifier.encode("utf-8")).hexdigest()[:16]
    return f"{prefix or settings.NAMESPACE_PREFIX}-user-{digest}"


def contact_digits(normalized_number: str) -> str:
    digits = _CONTACT_CLEANER.sub("", normalized_number or "")
    if not digits:
        raise InputError("Contact number contains no digits")
    return digits


def derive_contact_namespace(normalized_number: str, prefix: str | None = None) -> str:
    """Return ``<prefix>-contact-<digits>`` for an anonymous channel contact."""

    namespace = f"{prefix or settings.NAMESPACE_PREFIX}-contact-{contact_digits(normalized_number)}"
    if len(namespace) > MAX_NAMESPACE_LENGTH:
        raise InputError("Contact number is too long")
    return namespace


def contact_owner_key(normalized_number: str) -> str:
    """Key anonymous contacts by digits so ``+123`` and ``123`` share one owner."""
    return f"{CONTACT_OWNER_PREFIX}{contact_digits(normalized_number)}"


class NamespaceResolver:
    """Map owners to durable namespaces, creating them on first use.

    Resolution is idempotent under concurrency: the remote "already exists"
    answer counts as success and the unique constraint on the mapping table
    decides which writer's row survives. Losers re-read the winning row.
    """

    def __init__(
        self,
        session_factory: Callable[[], Session],
        gateway: ObjectStoreGateway,
        *,
        prefix: str | None = None,
    ) -> None:
        self._session_factory = session_factory
        self._gateway = gateway
        self._prefix = prefix or settings.NAMESPACE_PREFIX
        self._cache: dict[str, str] = {}
        self._lock = threading.Lock()

    def resolve(self, user_identifier: str) -> str:
        owner = (user_identifier or "").strip()
        if not owner:
            raise InputError("User identifier is required")
        return self._ensure(owner, derive_user_namespace(owner, self._prefix))

    def resolve_contact(self, normalized_number: str) -> str:
        namespace = derive_contact_namespace(normalized_number, self._prefix)
        return self._ensure(contact_owner_key(normalized_number), namespace)

    def lookup(self, owner_key: str) -> str | None:
        """Return the mapped namespace without provisioning anything."""

        with self._lock:
            cached = self._cache.get(owner_key)
        if cached:
            return cached
        namespace = self._read_mapping(owner_key)
        if namespace:
            self._remember(owner_key, namespace)
        return namespace

    def _ensure(self, owner_key: str, namespace: str) -> str:
        existing = self.lookup(owner_key)
        if existing:
            return existing

        if self._gateway.namespace_exists(namespace):
            logger.info("Namespace %s already provisioned remotely for %s", namespace, owner_key)
        else:
            self._gateway.create_namespace(namespace)

        stored = self._persist_mapping(owner_key, namespace)
        self._remember(owner_key, stored)
        return stored

    def _read_mapping(self, owner_key: str) -> str | None:
        try:
            with self._session_factory() as session:
                return session.execute(
                    select(NamespaceMapping.namespace).where(NamespaceMapping.owner_key == owner_key)
                ).scalar_one_or_none()
        except SQLAlchemyError as exc:
            logger.error("Failed to read namespace mapping for %s: %s", owner_key, exc)
            raise MetadataStoreError("Namespace mapping lookup failed") from exc

    def _persist_mapping(self, owner_key: str, namespace: str) -> str:
        try:
            with self._session_factory() as session:
                session.add(NamespaceMapping(owner_key=owner_key, namespace=namespace))
                try:
                    session.commit()
                except IntegrityError:
                    session.rollback()
                    logger.info("Namespace mapping for %s written concurrently; re-reading", owner_key)
                    winner = session.execute(
                        select(NamespaceMapping.namespace).where(
                            NamespaceMapping.owner_key == owner_key
                        )
                    ).scalar_one_or_none()
                    if winner is None:
                        raise MetadataStoreError(
                            f"Namespace {namespace} is mapped to a different owner"
                        ) from None
                    return winner
        except MetadataStoreError:
            raise
        except SQLAlchemyError as exc:
            logger.error("Failed to persist namespace mapping for %s: %s", owner_key, exc)
            raise MetadataStoreError("Namespace mapping insert failed") from exc
        logger.info("Mapped %s to namespace %s", owner_key, namespace)
        return namespace

    def _remember(self, owner_key: str, namespace: str) -> None:
        with self._lock:
            self._cache[owner_key] = namespace
