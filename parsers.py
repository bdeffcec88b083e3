"""
Bank notification email parsers.

Each parser turns a raw email body (HTML or text) into the fields of a
transaction. Banks pick their parser by ``parser_type``; unknown types fall
back to the generic one.
"""

from __future__ import annotations

import html
import re
from dataclasses import dataclass
from typing import Callable, Optional


@dataclass(frozen=True)
class ParsedTransaction:
    amount: float
    currency: str
    idr_amount: Optional[float]
    merchant: str
    transaction_type: str


_LEADING_NUMBER = re.compile(r"[-+]?\d+(?:\.\d+)?")


def plain_text(content: str) -> str:
    text = html.unescape(re.sub(r"<[^>]+>", " ", content))
    # \s also covers the non-breaking spaces left by &nbsp;
    return re.sub(r"\s+", " ", text)


def _to_float(value: str) -> float:
    match = _LEADING_NUMBER.match(value.strip())
    return float(match.group(0)) if match else 0


def extract_amount(text: str) -> float:
    patterns = (
        r"(?:Rp|IDR|USD|CNY|PHP|SGD|\$|¥|₱)\s*([\d.,]+)",
        r"([\d.,]+)\s*(?:Rp|IDR|USD|CNY|PHP|SGD)",
    )
    for pattern in patterns:
        match = re.search(pattern, text, re.IGNORECASE)
        if not match:
            continue
        number = match.group(1)
        # 50.000 is fifty thousand, 99.99 is a decimal
        if "." in number and len(number.split(".")[-1]) > 2:
            number = number.replace(".", "")
        return _to_float(number.replace(",", ""))
    return 0


def extract_currency(text: str) -> str:
    upper = text.upper()
    if "RP" in upper or "IDR" in upper:
        return "IDR"
    if "USD" in upper or "$" in upper:
        return "USD"
    if "CNY" in upper or "¥" in upper:
        return "CNY"
    if "PHP" in upper or "₱" in upper:
        return "PHP"
    if "SGD" in upper:
        return "SGD"
    if "JPY" in upper:
        return "JPY"
    if "EUR" in upper or "€" in upper:
        return "EUR"
    return "IDR"


def extract_merchant(text: str) -> str:
    patterns = (
        r"(?:at|to|from|@)\s+([A-Z][A-Z0-9\s]+?)(?:\s+on|\s+for|\s+dated|$|\.|,)",
        r"(?:merchant|store|shop):\s*([A-Z][A-Z0-9\s]+?)(?:\s|$|\.|,)",
    )
    for pattern in patterns:
        match = re.search(pattern, text, re.IGNORECASE)
        if match:
            return match.group(1).strip()
    return "Unknown"


def parse_generic(content: str) -> ParsedTransaction:
    text = plain_text(content)
    amount = extract_amount(text)
    currency = extract_currency(text)
    return ParsedTransaction(
        amount=amount,
        currency=currency,
        idr_amount=amount if currency == "IDR" else None,
        merchant=extract_merchant(text),
        transaction_type="Unknown",
    )


def _parse_indonesian_amount(number: str) -> float:
    # Rp4.480.000,00 and IDR 33.999 use dots for thousands
    if "," in number:
        return _to_float(number.replace(".", "").replace(",", "."))
    if re.search(r"\.\d{3}", number):
        return _to_float(number.replace(".", ""))
    return _to_float(number.replace(",", ""))


def parse_bca_credit(content: str) -> ParsedTransaction:
    text = plain_text(content)
    lowered = text.lower()

    merchant_match = re.search(
        r"Merchant\s*/\s*ATM\s*:\s*(.+?)(?=\s+Jenis Transaksi)", text, re.IGNORECASE
    )
    merchant = merchant_match.group(1).strip() if merchant_match else "Unknown"

    type_match = re.search(
        r"Jenis Transaksi\s*:\s*(.+?)(?=\s+Otentikasi|\s+Pada Tanggal)",
        text,
        re.IGNORECASE,
    )
    transaction_type = type_match.group(1).strip() if type_match else "Credit Card"

    amount_match = re.search(
        r"Sejumlah\s*:\s*(?:Rp|IDR)\s*([\d.,]+)", text, re.IGNORECASE
    )
    amount = _parse_indonesian_amount(amount_match.group(1)) if amount_match else 0

    if "reversal/void" in lowered or "transaksi reversal" in lowered:
        transaction_type = f"Reversal - {transaction_type}"
        amount = -amount

    return ParsedTransaction(
        amount=amount,
        currency="IDR",
        idr_amount=amount,
        merchant=merchant,
        transaction_type=transaction_type,
    )


_BCA_DEBIT_TYPE = re.compile(
    r"(?:Transaction|Transfer) Type\s*:\s*(.+?)(?=\s+Source of Fund|\s+Flazz Card|\s+Payment to\s*:)",
    re.IGNORECASE,
)


def _parse_bca_debit_amount(number: str) -> float:
    # IDR 1,234.00 carries cents; IDR 25.000 uses dots for thousands
    cleaned = number.replace(",", "")
    if re.search(r"\.\d{2}$", cleaned):
        return _to_float(cleaned)
    return _to_float(cleaned.replace(".", ""))


def _clean_bca_merchant(merchant: str) -> str:
    merchant = re.sub(r"\s+billdesc\s*:.*$", "", merchant, flags=re.IGNORECASE)
    merchant = re.sub(r"\s+IDR\s*[\d.,]+.*$", "", merchant, flags=re.IGNORECASE)
    merchant = re.sub(r"\s+Bill\s*$", "", merchant, flags=re.IGNORECASE)
    merchant = re.sub(r"\s+/\s*$", "", merchant)
    return merchant.strip()


def _bca_debit_merchant(text: str, transaction_type: str) -> str:
    lowered = transaction_type.lower()

    if "qris" in lowered:
        paid_to = re.search(
            r"Payment to\s*:\s*([^:]+?)(?=\s+Merchant|\s+Acquirer)", text, re.IGNORECASE
        )
        if paid_to:
            return _clean_bca_merchant(paid_to.group(1))

    if "transfer" in lowered:
        if "bca account" in lowered:
            account = re.search(r"Beneficiary Account\s*:\s*(\S+)", text, re.IGNORECASE)
            name = re.search(
                r"Beneficiary Name\s*:\s*(.+?)(?=\s+Save to|\s+Transfer Amount)",
                text,
                re.IGNORECASE,
            )
            if account and name:
                return _clean_bca_merchant(
                    f"{account.group(1).strip()} - {name.group(1).strip()}"
                )
        # virtual account payments name the biller instead of a person
        company = re.search(
            r"Company/Product Name\s*:\s*(.+?)"
            r"(?=\s+billdesc|\s+Pay Amount|\s+Total|\s+Description|\s+IDR\s*[\d.,])",
            text,
            re.IGNORECASE,
        )
        if company:
            return _clean_bca_merchant(company.group(1))
        beneficiary = re.search(
            r"Beneficiary Name\s*:\s*(.+?)(?=\s+Save to|\s+Transfer)", text, re.IGNORECASE
        )
        if beneficiary:
            return _clean_bca_merchant(beneficiary.group(1))
        return transaction_type

    if "credit" in lowered or "paylater" in lowered:
        name = re.search(r"Name\s*:\s*(.+?)(?=\s+Total|$)", text, re.IGNORECASE)
        return name.group(1).strip() if name else transaction_type

    return transaction_type or "Unknown"


def parse_bca_debit(content: str) -> ParsedTransaction:
    """myBCA notifications: QRIS payments, transfers, Flazz top-ups, card bills."""
    text = plain_text(content)
    lowered = text.lower()

    type_match = _BCA_DEBIT_TYPE.search(text)
    transaction_type = type_match.group(1).strip() if type_match else ""
    merchant = _bca_debit_merchant(text, transaction_type)

    if "Credit Card" in text or "Paylater" in text:
        patterns = (r"Total Payment\s*:\s*IDR\s*([\d.,]+)",)
    elif "flazz" in lowered:
        patterns = (r"Top Up Amount\s*:\s*IDR\s*([\d.,]+)",)
    elif "qris" in lowered:
        patterns = (r"Total Payment\s*:\s*IDR\s*([\d.,]+)",)
    else:
        patterns = (
            r"Total Payment\s*:\s*IDR\s*([\d.,]+)",
            r"Amount\s*:\s*IDR\s*([\d.,]+)",
            r"IDR\s*([\d.,]+)",
        )

    amount = 0
    for pattern in patterns:
        match = re.search(pattern, text, re.IGNORECASE)
        if match:
            amount = _parse_bca_debit_amount(match.group(1))
            break

    return ParsedTransaction(
        amount=amount,
        currency="IDR",
        idr_amount=amount,
        merchant=merchant,
        transaction_type=transaction_type or "Unknown",
    )


def parse_jenius(content: str) -> ParsedTransaction:
    text = plain_text(content)

    cc_payment = re.search(
        r"Payment in the amount of IDR\s*([\d,]+)\s*for your Jenius Credit Card",
        text,
        re.IGNORECASE,
    )
    if cc_payment:
        amount = _to_float(cc_payment.group(1).replace(",", ""))
        return ParsedTransaction(
            amount=amount,
            currency="IDR",
            idr_amount=amount,
            merchant="Jenius Credit Card Payment",
            transaction_type="CC Payment",
        )

    merchant_match = re.search(
        r"Merchant:\s*(.+?)(?=\s+Transaction date)", text, re.IGNORECASE
    )
    merchant = merchant_match.group(1).strip() if merchant_match else "Unknown"
    # trailing terminal id + country code, e.g. "6281384748739ID"
    merchant = re.sub(r"\s+\d{10,}[A-Z]{2}$", "", merchant).strip()

    amount_match = re.search(r"Total:\s*IDR\s*([\d,.]+)", text, re.IGNORECASE)
    amount = _to_float(amount_match.group(1).replace(",", "")) if amount_match else 0

    transaction_type = "d-Card Transaction"
    if "has been refunded" in text.lower() or merchant.lower() == "refund":
        transaction_type = "d-Card Refund"
        amount = -amount

    return ParsedTransaction(
        amount=amount,
        currency="IDR",
        idr_amount=amount,
        merchant=merchant,
        transaction_type=transaction_type,
    )


def parse_krom(content: str) -> ParsedTransaction:
    text = plain_text(content)
    amount = 0
    merchant = "Unknown"
    transaction_type = "Transfer"

    amount_match = re.search(r"Jumlah:\s*Rp\s*([\d.]+)", text, re.IGNORECASE)
    if amount_match:
        amount = _to_float(amount_match.group(1).replace(".", ""))

    recipient_match = re.search(r"Ke:\s*([^•\d]+)", text, re.IGNORECASE)
    if recipient_match:
        merchant = re.sub(r"[\s•-]+$", "", recipient_match.group(1).strip()).strip()

    if "Transfer Berhasil" in text or "mengirim dana" in text:
        transaction_type = "Transfer Out"
    elif "menerima dana" in text or "Dana Masuk" in text:
        transaction_type = "Transfer In"

    if "Pembayaran Berhasil" in text or "QRIS" in text:
        transaction_type = "Payment"
        qris_merchant = re.search(
            r"(?:Merchant|Tujuan):\s*(.+?)(?=\s+(?:Tanggal|Jumlah|Metode))",
            text,
            re.IGNORECASE,
        )
        if qris_merchant:
            merchant = qris_merchant.group(1).strip()

    return ParsedTransaction(
        amount=amount,
        currency="IDR",
        idr_amount=amount,
        merchant=merchant,
        transaction_type=transaction_type,
    )


PARSERS: dict[str, Callable[[str], ParsedTransaction]] = {
    "bca-credit": parse_bca_credit,
    "bca-debit": parse_bca_debit,
    "jenius": parse_jenius,
    "krom": parse_krom,
    "generic": parse_generic,
}

PARSER_OPTIONS = (
    ("bca-credit", "BCA Credit Card"),
    ("bca-debit", "BCA Debit (myBCA)"),
    ("jenius", "Jenius SMBC"),
    ("krom", "Krom"),
    ("generic", "Generic"),
)


def parse_transaction(parser_type: str, content: str) -> ParsedTransaction:
    parser = PARSERS.get(parser_type) or PARSERS["generic"]
    return parser(content)
