#!/usr/bin/env python3
"""
Package Scanner - finds shipment tracking numbers in unread mail.

No carrier API calls; this only recognises tracking numbers in the subject and
snippet of shipping-looking emails and builds the carrier's tracking URL.
"""

import logging
import re
from datetime import datetime
from typing import Callable, List, Optional, Pattern, Sequence, Tuple

from daybrief.adapters import EmailAdapter
from daybrief.models import Email, PackageInfo

logger = logging.getLogger("packages")

# (carrier, pattern, url template). Checked in order; the first carrier to
# claim a number wins, so USPS is tried before the looser FedEx digit runs.
CARRIER_PATTERNS: List[Tuple[str, Pattern, str]] = [
    ("Amazon", re.compile(r"\b(TBA\d{12,16})\b", re.IGNORECASE), "https://track.amazon.com/tracking/{}"),
    ("UPS", re.compile(r"\b(1Z[A-Z0-9]{16})\b", re.IGNORECASE), "https://www.ups.com/track?tracknum={}"),
    ("USPS", re.compile(r"\b(9[2-4]\d{18,20})\b"), "https://tools.usps.com/go/TrackConfirmAction?tLabels={}"),
    ("FedEx", re.compile(r"\b(\d{22}|\d{20}|\d{15}|\d{12})\b"), "https://www.fedex.com/fedextrack/?tracknumbers={}"),
]

SHIPPING_KEYWORDS = (
    "tracking", "shipped", "shipment", "package", "delivery", "delivered",
    "out for delivery", "on its way", "order shipped", "order update",
    "ups", "fedex", "usps", "amazon", "dhl", "arriving",
)

TODAY_KEYWORDS = (
    "out for delivery", "arriving today", "delivery today", "arriving now",
    "will be delivered today", "expected today", "delivered today",
    "your delivery is today", "scheduled for today",
)


def looks_like_shipping(email: Email) -> bool:
    text = f"{email.subject} {email.snippet}".lower()
    return any(kw in text for kw in SHIPPING_KEYWORDS)


def arriving_today(email: Email, today: Optional[datetime] = None) -> bool:
    text = f"{email.subject} {email.snippet}".lower()
    if any(kw in text for kw in TODAY_KEYWORDS):
        return True
    today = today or datetime.now()
    received_today = email.date.startswith(today.strftime("%Y-%m-%d"))
    return received_today and "on its way" in text


def extract_tracking_numbers(text: str) -> List[Tuple[str, str, str]]:
    """Return (carrier, number, url) for every distinct number in ``text``."""
    found: List[Tuple[str, str, str]] = []
    seen = set()
    for carrier, pattern, url in CARRIER_PATTERNS:
        for match in pattern.finditer(text):
            number = match.group(1).upper()
            if number in seen:
                continue
            seen.add(number)
            found.append((carrier, number, url.format(number)))
    return found


def scan_emails(emails: Sequence[Email], today: Optional[datetime] = None) -> List[PackageInfo]:
    packages: List[PackageInfo] = []
    seen = set()
    for email in emails:
        if not looks_like_shipping(email):
            continue
        for carrier, number, url in extract_tracking_numbers(f"{email.subject} {email.snippet}"):
            if number in seen:
                continue
            seen.add(number)
            packages.append(
                PackageInfo(
                    tracking_number=number,
                    carrier=carrier,
                    tracking_url=url,
                    email_subject=email.subject,
                    email_from=email.sender,
                    email_date=email.date,
                    arriving_today=arriving_today(email, today),
                )
            )
    return packages


class EmailPackageScanner:
    """Package adapter backed by an email adapter."""

    def __init__(self, email: EmailAdapter, clock: Callable[[], datetime] = datetime.now):
        self.email = email
        self._clock = clock

    async def scan_for_packages(self) -> List[PackageInfo]:
        emails = await self.email.unread_across_accounts()
        packages = scan_emails(emails, self._clock())
        logger.info(f"Package scan: {len(packages)} tracking numbers in {len(emails)} emails")
        return packages
