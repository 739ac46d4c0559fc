"""
receiver/address.py
Address normalization shared by thread assignment, contact lookup
and the block list. Two spellings of the same number must map to
the same key: "+1 (612) 555-0001" and "+16125550001".
"""

import re

_NON_DIGIT = re.compile(r'\D')


def normalize_address(address: str) -> str:
    if not address:
        return ''
    address = address.strip()
    if '@' in address:
        return address.lower()
    digits = _NON_DIGIT.sub('', address)
    if not digits:
        # Alphanumeric sender ids ("BANK", "Google") are kept as-is
        return address.upper()
    return digits
