import re

_EVM_ADDRESS = re.compile(r"^0x[0-9a-fA-F]{40}$")


def pad_evm_address(address: str) -> str:
    """Pad an EVM address to 32 bytes for topic filtering."""
    return "0x" + address.lower().replace("0x", "").zfill(64)


def validate_evm_address(address: str) -> bool:
    return bool(_EVM_ADDRESS.match(address))


def normalize_address(address: str) -> str:
    return address.strip().lower()


def address_in_data(address: str, data: str | None) -> bool:
    """True if the 20 address bytes appear anywhere in a hex data payload.

    Non-indexed address parameters are ABI-encoded as 32-byte words, so the
    address shows up without its 0x prefix somewhere inside the payload.
    """
    if not data:
        return False
    return address.lower()[2:] in data.lower()
