"""Duplicate-contact detection (advisory only, never blocks a save)"""

from typing import Iterable, List, Optional
import logging
import re

from orderdesk.config import settings
from orderdesk.models.entities import ContactRef, DuplicateMatch, EntityKind, OrderStatus

logger = logging.getLogger(__name__)

_NON_DIGITS = re.compile(r"\D")


def normalize_phone(
    phone: Optional[str],
    country_code: Optional[str] = None,
    min_digits: Optional[int] = None,
) -> str:
    """
    Reduce a phone number to its national significant digits.
    
    Strips punctuation, the default country code (with or without an
    international prefix "+" or "00") and the domestic trunk zero, so that
    "+212 600-000001", "212600000001" and "0600000001" all compare equal.
    A bare leading country code is only dropped when at least min_digits
    remain after it.
    
    Examples:
        >>> normalize_phone("+212600000001")
        '600000001'
        >>> normalize_phone("06 00 00 00 01")
        '600000001'
    """
    if not phone:
        return ""
    country_code = settings.DEFAULT_COUNTRY_CODE if country_code is None else country_code
    min_digits = settings.MIN_PHONE_DIGITS if min_digits is None else min_digits
    
    stripped = phone.strip()
    digits = _NON_DIGITS.sub("", stripped)
    international = stripped.startswith("+")
    if digits.startswith("00"):
        digits = digits[2:]
        international = True
    
    if country_code and digits.startswith(country_code):
        national = digits[len(country_code):]
        if international or len(national.lstrip("0")) >= min_digits:
            digits = national
    
    return digits.lstrip("0")


class DuplicateContactDetector:
    """Reports other orders and leads sharing a normalised phone number"""
    
    def __init__(
        self,
        include_trashed: Optional[bool] = None,
        country_code: Optional[str] = None,
        min_digits: Optional[int] = None,
    ):
        self.include_trashed = settings.DUPLICATES_INCLUDE_TRASHED if include_trashed is None else include_trashed
        self.country_code = settings.DEFAULT_COUNTRY_CODE if country_code is None else country_code
        self.min_digits = settings.MIN_PHONE_DIGITS if min_digits is None else min_digits
    
    def normalize(self, phone: Optional[str]) -> str:
        return normalize_phone(phone, self.country_code, self.min_digits)
    
    def is_checkable(self, phone: Optional[str]) -> bool:
        return len(_NON_DIGITS.sub("", phone or "")) >= self.min_digits
    
    def find_matches(
        self,
        phone: Optional[str],
        contacts: Iterable[ContactRef],
        exclude_kind: Optional[EntityKind] = None,
        exclude_id: Optional[str] = None,
    ) -> List[DuplicateMatch]:
        """
        Args:
            phone: Phone being edited
            contacts: Every other order/lead with a resolved phone
            exclude_kind, exclude_id: The entity being edited
            
        Returns:
            One match per other entity with the same normalised phone
        """
        if not self.is_checkable(phone):
            return []
        target = self.normalize(phone)
        if not target:
            return []
        
        matches: List[DuplicateMatch] = []
        for contact in contacts:
            if contact.kind == exclude_kind and contact.id == exclude_id:
                continue
            if (
                not self.include_trashed
                and contact.kind == EntityKind.ORDER
                and contact.status == OrderStatus.TRASHED.value
            ):
                continue
            if not self.is_checkable(contact.phone) or self.normalize(contact.phone) != target:
                continue
            matches.append(
                DuplicateMatch(
                    kind=contact.kind,
                    entity_id=contact.id,
                    display_id=contact.display_id,
                    name=contact.name,
                )
            )
        
        if matches:
            logger.info(f"Phone shared with {len(matches)} other record(s)")
        return matches
    
    async def check(
        self,
        phone: Optional[str],
        collaborator,
        exclude_kind: Optional[EntityKind] = None,
        exclude_id: Optional[str] = None,
    ) -> List[DuplicateMatch]:
        """Load contacts from the collaborator and match against them"""
        if not self.is_checkable(phone):
            return []
        contacts = await collaborator.list_contacts(include_trashed=self.include_trashed)
        return self.find_matches(phone, contacts, exclude_kind, exclude_id)
