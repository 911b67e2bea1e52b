import pytest

from daybrief.models import Email
from daybrief.packages import EmailPackageScanner, arriving_today, extract_tracking_numbers, scan_emails

from tests.fakes import T0, FakeClock, FakeEmail

UPS = "1Z999AA10123456784"
USPS = "9400111899223197428490"
AMAZON = "TBA123456789012"


def _emails():
    return [
        Email("1", "Your order shipped", "orders@shop.example", snippet=f"UPS tracking {UPS}",
              date="2026-03-09T18:00:00"),
        Email("2", "Out for delivery", "usps@example.com", snippet=f"USPS {USPS}",
              date="2026-03-10T07:00:00"),
        Email("3", "Lunch?", "friend@example.com", snippet="call me at 123456789012",
              date="2026-03-10T08:00:00"),
        Email("4", "Shipment update", "orders@shop.example", snippet=f"Still moving: {UPS.lower()}",
              date="2026-03-10T08:30:00"),
        Email("5", "Amazon: your parcel is on its way", "amazon@example.com", snippet=AMAZON,
              date="2026-03-10T06:00:00"),
    ]


def test_scan_finds_each_number_once():
    packages = scan_emails(_emails(), today=T0)

    assert [(p.carrier, p.tracking_number) for p in packages] == [
        ("UPS", UPS),
        ("USPS", USPS),
        ("Amazon", AMAZON),
    ]
    assert packages[0].tracking_url == f"https://www.ups.com/track?tracknum={UPS}"
    assert packages[0].email_subject == "Your order shipped"


def test_arriving_today_flags():
    packages = {p.tracking_number: p for p in scan_emails(_emails(), today=T0)}

    assert not packages[UPS].arriving_today
    assert packages[USPS].arriving_today
    # "on its way" only counts when the mail arrived today
    assert packages[AMAZON].arriving_today


def test_on_its_way_from_yesterday_is_not_today():
    email = Email("x", "Your parcel is on its way", "a@example.com", date="2026-03-09T10:00:00")
    assert not arriving_today(email, today=T0)


@pytest.mark.parametrize(
    "text, carrier",
    [
        (f"label {UPS}", "UPS"),
        (f"label {USPS}", "USPS"),
        (f"label {AMAZON}", "Amazon"),
        ("fedex 123456789012 ok", "FedEx"),
    ],
)
def test_carrier_detection(text, carrier):
    found = extract_tracking_numbers(text)
    assert [c for c, _, _ in found] == [carrier]


def test_non_shipping_mail_is_ignored():
    email = Email("3", "Lunch?", "friend@example.com", snippet="call me at 123456789012")
    assert scan_emails([email], today=T0) == []


@pytest.mark.asyncio
async def test_scanner_reads_unread_mail():
    scanner = EmailPackageScanner(FakeEmail(_emails()), clock=FakeClock())
    packages = await scanner.scan_for_packages()
    assert len(packages) == 3
