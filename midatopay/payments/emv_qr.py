"""
EMV-style TLV codec for MidatoPay QR codes

Three fields only: merchant address (01), amount (02) and payment id (03).
Each field is tag + two digit decimal length + value; a CRC16-CCITT of the
serialized fields is appended as four upper-case hex digits.
"""

import base64
import io
import re
import secrets
import time
from dataclasses import dataclass
from decimal import Decimal
from typing import Dict, List, Tuple

import qrcode
import qrcode.image.svg

from midatopay.errors import InvalidQRCode

TAG_MERCHANT_ADDRESS = "01"
TAG_AMOUNT = "02"
TAG_PAYMENT_ID = "03"

FIELD_NAMES = {
    TAG_MERCHANT_ADDRESS: "merchant_address",
    TAG_AMOUNT: "amount",
    TAG_PAYMENT_ID: "payment_id",
}

MAX_AMOUNT = Decimal("999999999.99")
AMOUNT_PATTERN = re.compile(r"[0-9]+(\.[0-9]+)?")


@dataclass(frozen=True)
class QRPaymentData:
    merchant_address: str
    amount: Decimal
    payment_id: str


def crc16_ccitt(data: str) -> str:
    """CRC16-CCITT (poly 0x1021, init 0xFFFF) as 4 upper-case hex digits"""
    crc = 0xFFFF
    for byte in data.encode("utf-8"):
        crc ^= byte << 8
        for _ in range(8):
            if crc & 0x8000:
                crc = (crc << 1) ^ 0x1021
            else:
                crc <<= 1
            crc &= 0xFFFF
    return f"{crc:04X}"


def serialize_tlv(fields: List[Tuple[str, str]]) -> str:
    parts = []
    for tag, value in fields:
        if len(value) > 99:
            raise ValueError(f"TLV value for tag {tag} is longer than 99 characters")
        parts.append(f"{tag}{len(value):02d}{value}")
    return "".join(parts)


def validate_payment_data(merchant_address: str, amount: Decimal, payment_id: str) -> List[str]:
    """Return a list of validation errors (empty when valid)"""
    errors = []
    if not merchant_address:
        errors.append("merchant address is required")
    elif len(merchant_address) < 10:
        errors.append("merchant address is too short")
    if amount is None or amount <= 0:
        errors.append("amount must be greater than 0")
    elif amount > MAX_AMOUNT:
        errors.append("amount exceeds the maximum")
    if not payment_id:
        errors.append("payment id is required")
    elif len(payment_id) < 5:
        errors.append("payment id is too short")
    return errors


def encode_payment_qr(merchant_address: str, amount, payment_id: str) -> str:
    """Build the TLV string (with CRC) for a payment"""
    amount = Decimal(str(amount))
    errors = validate_payment_data(merchant_address, amount, payment_id)
    if errors:
        raise ValueError(f"Validation failed: {', '.join(errors)}")

    tlv = serialize_tlv([
        (TAG_MERCHANT_ADDRESS, merchant_address),
        (TAG_AMOUNT, format(amount.normalize(), "f")),
        (TAG_PAYMENT_ID, payment_id),
    ])
    return tlv + crc16_ccitt(tlv)


def parse_payment_qr(qr_data: str) -> QRPaymentData:
    """
    Parse and verify a TLV string produced by encode_payment_qr.

    Raises:
        InvalidQRCode: CRC mismatch, truncated field or missing field
    """
    if not qr_data or len(qr_data) < 4:
        raise InvalidQRCode("QR data is too short")

    body, crc = qr_data[:-4], qr_data[-4:]
    if crc16_ccitt(body) != crc.upper():
        raise InvalidQRCode("CRC mismatch")

    fields: Dict[str, str] = {}
    pos = 0
    while pos < len(body):
        if pos + 4 > len(body):
            raise InvalidQRCode("Truncated TLV header")
        tag = body[pos:pos + 2]
        length_text = body[pos + 2:pos + 4]
        if not length_text.isdigit():
            raise InvalidQRCode(f"Invalid length for tag {tag}")
        length = int(length_text)
        value = body[pos + 4:pos + 4 + length]
        if len(value) != length:
            raise InvalidQRCode(f"Truncated value for tag {tag}")
        if tag in FIELD_NAMES:
            fields[FIELD_NAMES[tag]] = value
        pos += 4 + length

    missing = [name for name in FIELD_NAMES.values() if name not in fields]
    if missing:
        raise InvalidQRCode(f"Missing fields: {', '.join(missing)}")

    # Plain decimal only: no sign, exponent, NaN or Infinity
    if not AMOUNT_PATTERN.fullmatch(fields["amount"]):
        raise InvalidQRCode(f"Invalid amount: {fields['amount']}")
    amount = Decimal(fields["amount"])
    if amount <= 0:
        raise InvalidQRCode(f"Amount must be greater than 0: {fields['amount']}")

    return QRPaymentData(
        merchant_address=fields["merchant_address"],
        amount=amount,
        payment_id=fields["payment_id"],
    )


def generate_payment_reference() -> str:
    """Human-traceable reference: pay_<epoch ms>_<8 hex>"""
    return f"pay_{int(time.time() * 1000)}_{secrets.token_hex(4)}"


def render_qr_image(data: str) -> str:
    """Render data as an SVG QR code and return it as a data URL"""
    image = qrcode.make(data, image_factory=qrcode.image.svg.SvgPathImage, border=1)
    buffer = io.BytesIO()
    image.save(buffer)
    encoded = base64.b64encode(buffer.getvalue()).decode()
    return f"data:image/svg+xml;base64,{encoded}"
